"""Sequential unlock engine.

A topic is reachable when every earlier day of its plan is completed and, for
days that carry a quiz, that quiz has at least one passing result. Day 1 is
always reachable. Completing a topic opens the following day.
"""
from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import InvalidSubmission, QuizNotPassed, TopicLocked
from .insights import DEFAULT_INSIGHTS, InsightConfig, evaluate_rules
from .models import (
	LearningPlan,
	LearningProgress,
	Quiz,
	QuizResult,
	Topic,
	PLAN_COMPLETED,
	PROGRESS_COMPLETED,
	PROGRESS_IN_PROGRESS,
	PROGRESS_NOT_STARTED,
	TOPIC_COMPLETED,
	TOPIC_LOCKED,
	TOPIC_UNLOCKED,
)
from .modes import LearningMode, plan_mode
from .repository import (
	completion_times,
	get_owned_topic,
	get_progress,
	get_topic,
	load_plan_topics,
	progress_snapshot,
	results_for,
)
from .schemas import AccessDecision, Achievement, CompletionOutcome, ProgressSnapshot, TopicRef, TopicWithProgress
from .settings import settings
from .streak import calculate_streak
from .utils import naive_utc, resolve_now


logger = logging.getLogger(__name__)

# Pacing feedback compares against this when a topic has no estimate
DEFAULT_TIME_ESTIMATE = 60


def evaluate_access(day_index: int, is_completed: bool, previous: List[TopicWithProgress]) -> AccessDecision:
	"""Decide access from the earlier topics of the same plan (ascending day order)."""
	if day_index == 1:
		return AccessDecision(can_access=True, is_completed=is_completed, is_locked=False, prerequisites_met=True)

	for prev in previous:
		if not prev.is_completed:
			message = f"You must complete Day {prev.day_index}: {prev.title} before continuing."
		elif prev.has_quiz and not prev.quiz_passed:
			message = f"You must pass the quiz for Day {prev.day_index} before continuing."
		else:
			continue
		return AccessDecision(
			can_access=False,
			is_completed=is_completed,
			is_locked=True,
			prerequisites_met=False,
			message=message,
			blocking_topic_id=prev.id,
			blocking_day_index=prev.day_index,
		)

	return AccessDecision(can_access=True, is_completed=is_completed, is_locked=False, prerequisites_met=True)


def check_access(db: Session, user_id: str, topic_id: str) -> AccessDecision:
	topic = get_topic(db, topic_id)
	progress = get_progress(db, user_id, topic.id)
	is_completed = progress is not None and progress.status == PROGRESS_COMPLETED
	if topic.day_index == 1:
		return evaluate_access(1, is_completed, [])
	previous = load_plan_topics(db, user_id, topic.learning_plan_id, before_day=topic.day_index)
	return evaluate_access(topic.day_index, is_completed, previous)


def require_entry(db: Session, user_id: str, topic: Topic, plan: LearningPlan) -> AccessDecision:
	decision = check_access(db, user_id, topic.id)
	if decision.can_access:
		return decision
	# Outside strict mode the lock state written by the mode is authoritative
	if plan_mode(plan) is not LearningMode.strict and topic.status != TOPIC_LOCKED:
		return decision
	raise TopicLocked(
		decision.message,
		blocking_topic_id=decision.blocking_topic_id,
		blocking_day_index=decision.blocking_day_index,
	)


def _upsert_progress(db: Session, user_id: str, topic: Topic) -> LearningProgress:
	row = get_progress(db, user_id, topic.id)
	if row is not None:
		return row
	row = LearningProgress(
		user_id=user_id,
		topic_id=topic.id,
		learning_plan_id=topic.learning_plan_id,
		status=PROGRESS_NOT_STARTED,
		time_spent=0,
	)
	db.add(row)
	try:
		db.flush()
	except IntegrityError:
		# Another request created the row first; use theirs
		db.rollback()
		row = get_progress(db, user_id, topic.id)
		if row is None:
			raise
	return row


def start_topic(db: Session, user_id: str, topic_id: str) -> ProgressSnapshot:
	topic, plan = get_owned_topic(db, user_id, topic_id)
	require_entry(db, user_id, topic, plan)
	try:
		row = _upsert_progress(db, user_id, topic)
		if row.status != PROGRESS_COMPLETED:
			row.status = PROGRESS_IN_PROGRESS
		db.commit()
	except Exception:
		db.rollback()
		raise
	return progress_snapshot(row)


def record_time_spent(db: Session, user_id: str, topic_id: str, minutes: int) -> ProgressSnapshot:
	if minutes < 0:
		raise InvalidSubmission("Invalid time spent value")
	topic, _ = get_owned_topic(db, user_id, topic_id)
	try:
		row = _upsert_progress(db, user_id, topic)
		if row.status == PROGRESS_NOT_STARTED:
			row.status = PROGRESS_IN_PROGRESS
		row.time_spent = LearningProgress.time_spent + minutes
		db.commit()
	except Exception:
		db.rollback()
		raise
	return progress_snapshot(row)


def _quiz_gate(db: Session, user_id: str, topic: Topic) -> Tuple[bool, Optional[int]]:
	"""(has_quiz, score of the newest passing result or None)."""
	quiz_ids = [q.id for q in db.query(Quiz.id).filter(Quiz.topic_id == topic.id).all()]
	if not quiz_ids:
		return False, None
	passed = [r for rows in results_for(db, user_id, quiz_ids).values() for r in rows if r.passed]
	if not passed:
		return True, None
	return True, max(passed, key=lambda r: r.completed_at).score


def complete_topic(
	db: Session,
	user_id: str,
	topic_id: str,
	time_spent: int = 0,
	mastery_score: Optional[int] = None,
	now: Optional[datetime] = None,
	rules: InsightConfig = DEFAULT_INSIGHTS,
) -> CompletionOutcome:
	if time_spent < 0:
		raise InvalidSubmission("Invalid time spent value")
	topic, plan = get_owned_topic(db, user_id, topic_id)
	require_entry(db, user_id, topic, plan)

	has_quiz, mastery = _quiz_gate(db, user_id, topic)
	if not has_quiz:
		mastery = mastery_score if mastery_score is not None else 100
	elif mastery is None:
		raise QuizNotPassed()

	when = naive_utc(resolve_now(now))
	try:
		row = _upsert_progress(db, user_id, topic)
		row.status = PROGRESS_COMPLETED
		row.completed_at = when
		row.time_spent = LearningProgress.time_spent + time_spent
		row.mastery_score = mastery
		topic.status = TOPIC_COMPLETED

		next_topic = (
			db.query(Topic)
			.filter(Topic.learning_plan_id == topic.learning_plan_id, Topic.day_index == topic.day_index + 1)
			.first()
		)
		next_unlocked = False
		if next_topic is not None and next_topic.status == TOPIC_LOCKED:
			next_topic.status = TOPIC_UNLOCKED
			next_unlocked = True
		db.flush()

		total = db.query(func.count(Topic.id)).filter(Topic.learning_plan_id == plan.id).scalar() or 0
		done = (
			db.query(func.count(LearningProgress.id))
			.filter(
				LearningProgress.learning_plan_id == plan.id,
				LearningProgress.user_id == user_id,
				LearningProgress.status == PROGRESS_COMPLETED,
			)
			.scalar()
			or 0
		)
		plan_completed = total > 0 and done >= total
		if plan_completed:
			plan.status = PLAN_COMPLETED
		next_ref = TopicRef(id=next_topic.id, title=next_topic.title, day_index=next_topic.day_index) if next_unlocked else None
		db.commit()
	except Exception:
		db.rollback()
		logger.exception("Failed to complete topic %s for %s", topic_id, user_id)
		raise

	logger.info(
		"Topic %s completed by %s (mastery=%s, next_unlocked=%s, plan_completed=%s)",
		topic_id, user_id, mastery, next_unlocked, plan_completed,
	)
	feedback = completion_feedback(
		mastery,
		time_spent,
		topic.time_estimate or DEFAULT_TIME_ESTIMATE,
		quiz_passed=True,
		rules=rules,
	)
	return CompletionOutcome(
		topic_id=topic_id,
		progress=progress_snapshot(row),
		next_topic_unlocked=next_unlocked,
		next_topic=next_ref,
		plan_completed=plan_completed,
		feedback=feedback,
		achievements=achievements(db, user_id, plan.id, now=now, rules=rules),
	)


def completion_feedback(
	mastery_score: int,
	time_spent: int,
	time_estimate: int,
	quiz_passed: bool,
	rules: InsightConfig = DEFAULT_INSIGHTS,
) -> List[str]:
	metrics = {
		"mastery_score": mastery_score,
		"quiz_passed": 1 if quiz_passed else 0,
		"time_ratio": time_spent / time_estimate if time_estimate else 0,
	}
	return evaluate_rules(rules.completion, metrics)


def achievements(
	db: Session,
	user_id: str,
	plan_id: str,
	now: Optional[datetime] = None,
	rules: InsightConfig = DEFAULT_INSIGHTS,
) -> List[Achievement]:
	current = resolve_now(now)
	since = naive_utc(current - timedelta(days=settings.activity_lookback_days))
	rows = completion_times(db, user_id, plan_id=plan_id, since=since)
	streak = calculate_streak([r.completed_at for r in rows], now=current)
	perfect = (
		db.query(func.count(QuizResult.id))
		.join(Quiz, Quiz.id == QuizResult.quiz_id)
		.join(Topic, Topic.id == Quiz.topic_id)
		.filter(QuizResult.user_id == user_id, Topic.learning_plan_id == plan_id, QuizResult.score == 100)
		.scalar()
		or 0
	)
	earned = rules.earned_achievements({"learning_streak": streak, "perfect_scores": perfect})
	return [Achievement(type=a.type, title=a.title, description=a.description) for a in earned]
