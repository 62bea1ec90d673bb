from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Quiz, Topic
from ..repository import get_owned_topic, get_progress, progress_snapshot
from ..schemas import AccessDecision, CompletionOutcome, ProgressSnapshot
from ..unlock import check_access, complete_topic, record_time_spent, require_entry, start_topic
from .auth import get_current_user, User

router = APIRouter(prefix="/topics", tags=["topics"])


class CompleteTopicRequest(BaseModel):
	time_spent: int = Field(ge=0)
	mastery_score: Optional[int] = Field(default=None, ge=0, le=100)


class TimeSpentRequest(BaseModel):
	minutes: int = Field(ge=0)


@router.get("/{topic_id}")
def get_topic_detail(topic_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	topic, plan = get_owned_topic(db, user.username, topic_id)
	access = require_entry(db, user.username, topic, plan)
	quiz = db.query(Quiz).filter(Quiz.topic_id == topic.id).order_by(Quiz.created_at.asc()).first()
	siblings = (
		db.query(Topic)
		.filter(Topic.learning_plan_id == plan.id)
		.order_by(Topic.day_index.asc())
		.all()
	)
	return {
		"topic": {
			"id": topic.id,
			"title": topic.title,
			"description": topic.description,
			"content": topic.content,
			"day_index": topic.day_index,
			"goals": topic.goals,
			"time_estimate": topic.time_estimate,
			"status": topic.status,
		},
		"plan": {"id": plan.id, "title": plan.title, "total_days": plan.total_days, "mode": plan.mode},
		# Questions stay out of this payload; they are fetched per attempt without the answer key
		"quiz": {"id": quiz.id, "title": quiz.title, "passing_score": quiz.passing_score} if quiz else None,
		"progress": progress_snapshot(get_progress(db, user.username, topic.id)),
		"access": access,
		"all_topics": [
			{"id": t.id, "title": t.title, "day_index": t.day_index, "status": t.status}
			for t in siblings
		],
	}


@router.get("/{topic_id}/access", response_model=AccessDecision)
def topic_access(topic_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	get_owned_topic(db, user.username, topic_id)
	return check_access(db, user.username, topic_id)


@router.post("/{topic_id}/start", response_model=ProgressSnapshot)
def topic_start(topic_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return start_topic(db, user.username, topic_id)


@router.post("/{topic_id}/time", response_model=ProgressSnapshot)
def topic_time(topic_id: str, req: TimeSpentRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return record_time_spent(db, user.username, topic_id, req.minutes)


@router.post("/{topic_id}/complete", response_model=CompletionOutcome)
def topic_complete(topic_id: str, req: CompleteTopicRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return complete_topic(db, user.username, topic_id, time_spent=req.time_spent, mastery_score=req.mastery_score)
