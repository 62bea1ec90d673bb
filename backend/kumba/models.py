from __future__ import annotations
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Integer, Text, Boolean, JSON, ForeignKey, UniqueConstraint, Index
from .db import Base


# Topic lifecycle
TOPIC_LOCKED = "locked"
TOPIC_UNLOCKED = "unlocked"
TOPIC_COMPLETED = "completed"

# Per-user progress lifecycle
PROGRESS_NOT_STARTED = "not_started"
PROGRESS_IN_PROGRESS = "in_progress"
PROGRESS_COMPLETED = "completed"

PLAN_ACTIVE = "active"
PLAN_COMPLETED = "completed"


def utcnow() -> datetime:
	"""Naive UTC timestamp; every stored datetime uses this convention."""
	return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
	return uuid.uuid4().hex


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username; it doubles as the opaque user id everywhere else
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	language = Column(String(8), default="en", nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), ForeignKey("auth_users.username"), nullable=False, index=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=utcnow, nullable=False)


class LearningMaterial(Base):
	__tablename__ = "learning_materials"
	id = Column(String(32), primary_key=True, default=new_id)
	user_id = Column(String(128), ForeignKey("auth_users.username"), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	file_type = Column(String(32), default="text", nullable=False)
	extracted_text = Column(Text, nullable=True)
	status = Column(String(16), default="processing", nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class LearningPlan(Base):
	__tablename__ = "learning_plans"
	id = Column(String(32), primary_key=True, default=new_id)
	user_id = Column(String(128), ForeignKey("auth_users.username"), nullable=False, index=True)
	learning_material_id = Column(String(32), ForeignKey("learning_materials.id"), nullable=True)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	total_days = Column(Integer, nullable=False)
	status = Column(String(16), default=PLAN_ACTIVE, nullable=False)
	mode = Column(String(16), default="strict", nullable=False)
	mode_settings = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Topic(Base):
	__tablename__ = "topics"
	__table_args__ = (UniqueConstraint("learning_plan_id", "day_index", name="uq_topic_plan_day"),)
	id = Column(String(32), primary_key=True, default=new_id)
	learning_plan_id = Column(String(32), ForeignKey("learning_plans.id"), nullable=False, index=True)
	day_index = Column(Integer, nullable=False)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	content = Column(Text, default="", nullable=False)
	goals = Column(JSON, default=list, nullable=False)
	time_estimate = Column(Integer, nullable=True)  # minutes
	status = Column(String(16), default=TOPIC_LOCKED, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Quiz(Base):
	__tablename__ = "quizzes"
	id = Column(String(32), primary_key=True, default=new_id)
	topic_id = Column(String(32), ForeignKey("topics.id"), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	# List of {id, type, question, options, correctAnswer, explanation, points}
	questions = Column(JSON, default=list, nullable=False)
	passing_score = Column(Integer, default=70, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class QuizResult(Base):
	__tablename__ = "quiz_results"
	# Append-only. The attempt index makes two racing submissions collide instead of both passing the cap check.
	__table_args__ = (UniqueConstraint("user_id", "quiz_id", "attempt_number", name="uq_quiz_result_attempt"),)
	id = Column(String(32), primary_key=True, default=new_id)
	user_id = Column(String(128), ForeignKey("auth_users.username"), nullable=False, index=True)
	quiz_id = Column(String(32), ForeignKey("quizzes.id"), nullable=False, index=True)
	attempt_number = Column(Integer, default=1, nullable=False)
	score = Column(Integer, nullable=False)
	passed = Column(Boolean, nullable=False)
	answers = Column(JSON, default=list, nullable=False)
	time_spent = Column(Integer, default=0, nullable=False)
	completed_at = Column(DateTime, default=utcnow, nullable=False)


class LearningProgress(Base):
	__tablename__ = "learning_progress"
	__table_args__ = (
		UniqueConstraint("user_id", "topic_id", name="uq_progress_user_topic"),
		Index("ix_progress_user_plan", "user_id", "learning_plan_id"),
	)
	id = Column(String(32), primary_key=True, default=new_id)
	user_id = Column(String(128), ForeignKey("auth_users.username"), nullable=False, index=True)
	topic_id = Column(String(32), ForeignKey("topics.id"), nullable=False)
	learning_plan_id = Column(String(32), ForeignKey("learning_plans.id"), nullable=False)
	status = Column(String(16), default=PROGRESS_NOT_STARTED, nullable=False)
	completed_at = Column(DateTime, nullable=True)
	time_spent = Column(Integer, default=0, nullable=False)  # cumulative minutes
	mastery_score = Column(Integer, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
