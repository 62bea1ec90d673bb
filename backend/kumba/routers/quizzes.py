from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..content import ContentGenerator, QuizRequest, quiz_configuration
from ..db import get_db
from ..grading import get_quiz_for_attempt, question_id, question_points, submit_quiz, summarize_attempts
from ..models import Quiz
from ..repository import get_owned_topic, results_for
from ..schemas import GradedResult, SubmittedAnswer
from .auth import get_current_user, User
from .roadmap import get_content_generator

router = APIRouter(prefix="/quiz", tags=["quiz"])


class QuizSubmission(BaseModel):
	answers: List[SubmittedAnswer]
	# Seconds
	total_time_spent: int = Field(default=0, ge=0)


@router.post("/generate")
async def generate_quiz(
	req: QuizRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	generator: ContentGenerator = Depends(get_content_generator),
):
	topic, _ = get_owned_topic(db, user.username, req.topic_id)
	existing = [q.id for q in db.query(Quiz.id).filter(Quiz.topic_id == topic.id).all()]
	previous = [r.score for rows in results_for(db, user.username, existing).values() for r in rows]
	config = quiz_configuration(req, previous)
	generated = await generator.generate_quiz(topic.title, topic.content or "", config)

	row = Quiz(
		topic_id=topic.id,
		title=generated.title,
		description=generated.description,
		questions=generated.questions,
		passing_score=config.passing_score,
	)
	db.add(row)
	db.commit()
	return {
		"quiz": {
			"id": row.id,
			"title": row.title,
			"description": row.description,
			"questions": [
				{
					"id": question_id(q, i),
					"type": q.get("type"),
					"question": q.get("question"),
					"options": q.get("options"),
					"points": question_points(q),
					"difficulty": q.get("difficulty") or config.difficulty,
					"category": q.get("category") or "general",
				}
				for i, q in enumerate(generated.questions)
			],
			"passing_score": row.passing_score,
			"time_limit": config.time_limit,
			"configuration": config,
		}
	}


@router.get("/{quiz_id}")
def get_quiz(quiz_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return {"quiz": get_quiz_for_attempt(db, user.username, quiz_id)}


@router.post("/{quiz_id}/submit", response_model=GradedResult)
def submit(quiz_id: str, req: QuizSubmission, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return submit_quiz(db, user.username, quiz_id, req.answers, time_spent=req.total_time_spent)


@router.get("/{quiz_id}/results")
def results(quiz_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return summarize_attempts(db, user.username, quiz_id)
