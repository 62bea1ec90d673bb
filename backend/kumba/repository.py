"""Queries shared by the unlock engine, grading, modes and analytics.

Everything here reads; writes stay with the component that owns them.
"""
from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .errors import PlanNotFound, PlanNotOwned, QuizNotFound, TopicNotFound
from .models import LearningPlan, LearningProgress, Quiz, QuizResult, Topic, PROGRESS_COMPLETED
from .schemas import PlanWithTopics, ProgressSnapshot, QuizWithResults, ResultSnapshot, TopicWithProgress


def progress_snapshot(row: Optional[LearningProgress]) -> ProgressSnapshot:
	if row is None:
		return ProgressSnapshot()
	return ProgressSnapshot(
		status=row.status,
		completed_at=row.completed_at,
		time_spent=row.time_spent or 0,
		mastery_score=row.mastery_score,
	)


def result_snapshot(row: QuizResult) -> ResultSnapshot:
	return ResultSnapshot(
		id=row.id,
		score=row.score,
		passed=row.passed,
		time_spent=row.time_spent or 0,
		attempt_number=row.attempt_number,
		completed_at=row.completed_at,
	)


def get_topic(db: Session, topic_id: str) -> Topic:
	topic = db.get(Topic, topic_id)
	if topic is None:
		raise TopicNotFound()
	return topic


def get_owned_plan(db: Session, user_id: str, plan_id: str) -> LearningPlan:
	plan = db.get(LearningPlan, plan_id)
	if plan is None:
		raise PlanNotFound()
	if plan.user_id != user_id:
		raise PlanNotOwned()
	return plan


def get_owned_topic(db: Session, user_id: str, topic_id: str) -> Tuple[Topic, LearningPlan]:
	topic = get_topic(db, topic_id)
	plan = db.get(LearningPlan, topic.learning_plan_id)
	if plan is None:
		raise PlanNotFound()
	if plan.user_id != user_id:
		raise PlanNotOwned()
	return topic, plan


def get_owned_quiz(db: Session, user_id: str, quiz_id: str) -> Tuple[Quiz, Topic, LearningPlan]:
	quiz = db.get(Quiz, quiz_id)
	if quiz is None:
		raise QuizNotFound()
	topic, plan = get_owned_topic(db, user_id, quiz.topic_id)
	return quiz, topic, plan


def get_progress(db: Session, user_id: str, topic_id: str) -> Optional[LearningProgress]:
	return (
		db.query(LearningProgress)
		.filter(LearningProgress.user_id == user_id, LearningProgress.topic_id == topic_id)
		.first()
	)


def results_for(db: Session, user_id: str, quiz_ids: List[str]) -> Dict[str, List[QuizResult]]:
	by_quiz: Dict[str, List[QuizResult]] = {qid: [] for qid in quiz_ids}
	if not quiz_ids:
		return by_quiz
	rows = (
		db.query(QuizResult)
		.filter(QuizResult.user_id == user_id, QuizResult.quiz_id.in_(quiz_ids))
		.order_by(QuizResult.completed_at.desc(), QuizResult.attempt_number.desc())
		.all()
	)
	for row in rows:
		by_quiz[row.quiz_id].append(row)
	return by_quiz


def load_plan_topics(
	db: Session,
	user_id: str,
	plan_id: str,
	*,
	before_day: Optional[int] = None,
) -> List[TopicWithProgress]:
	"""Topics of a plan in day order, joined with the user's progress and quiz results."""
	query = db.query(Topic).filter(Topic.learning_plan_id == plan_id)
	if before_day is not None:
		query = query.filter(Topic.day_index < before_day)
	topics = query.order_by(Topic.day_index.asc()).all()
	if not topics:
		return []
	topic_ids = [t.id for t in topics]

	progress_rows = (
		db.query(LearningProgress)
		.filter(LearningProgress.user_id == user_id, LearningProgress.topic_id.in_(topic_ids))
		.all()
	)
	progress_by_topic = {p.topic_id: p for p in progress_rows}

	quizzes = db.query(Quiz).filter(Quiz.topic_id.in_(topic_ids)).order_by(Quiz.created_at.asc()).all()
	results = results_for(db, user_id, [q.id for q in quizzes])
	quizzes_by_topic: Dict[str, List[QuizWithResults]] = {tid: [] for tid in topic_ids}
	for quiz in quizzes:
		quizzes_by_topic[quiz.topic_id].append(
			QuizWithResults(
				id=quiz.id,
				topic_id=quiz.topic_id,
				title=quiz.title,
				passing_score=quiz.passing_score,
				question_count=len(quiz.questions or []),
				results=[result_snapshot(r) for r in results[quiz.id]],
			)
		)

	return [
		TopicWithProgress(
			id=t.id,
			learning_plan_id=t.learning_plan_id,
			day_index=t.day_index,
			title=t.title,
			description=t.description,
			goals=list(t.goals or []),
			time_estimate=t.time_estimate,
			status=t.status,
			progress=progress_snapshot(progress_by_topic.get(t.id)),
			quizzes=quizzes_by_topic[t.id],
		)
		for t in topics
	]


def completion_times(
	db: Session,
	user_id: str,
	*,
	plan_id: Optional[str] = None,
	since: Optional[datetime] = None,
) -> List[LearningProgress]:
	"""Completed progress rows, newest first."""
	query = db.query(LearningProgress).filter(
		LearningProgress.user_id == user_id,
		LearningProgress.status == PROGRESS_COMPLETED,
		LearningProgress.completed_at.isnot(None),
	)
	if plan_id is not None:
		query = query.filter(LearningProgress.learning_plan_id == plan_id)
	if since is not None:
		query = query.filter(LearningProgress.completed_at >= since)
	return query.order_by(LearningProgress.completed_at.desc()).all()


def load_user_plans(db: Session, user_id: str) -> List[PlanWithTopics]:
	plans = (
		db.query(LearningPlan)
		.filter(LearningPlan.user_id == user_id)
		.order_by(LearningPlan.created_at.asc())
		.all()
	)
	return [
		PlanWithTopics(
			id=p.id,
			title=p.title,
			description=p.description,
			status=p.status,
			mode=p.mode or "strict",
			total_days=p.total_days,
			created_at=p.created_at,
			topics=load_plan_topics(db, user_id, p.id),
		)
		for p in plans
	]
