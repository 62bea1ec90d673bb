"""Typed values passed between the unlock engine, grading and analytics."""
from __future__ import annotations
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field

from .models import PROGRESS_COMPLETED, PROGRESS_NOT_STARTED, TOPIC_LOCKED


class ProgressSnapshot(BaseModel):
	status: str = PROGRESS_NOT_STARTED
	completed_at: Optional[datetime] = None
	time_spent: int = 0
	mastery_score: Optional[int] = None


class ResultSnapshot(BaseModel):
	id: str
	score: int
	passed: bool
	time_spent: int = 0
	attempt_number: int = 1
	completed_at: datetime


class QuizWithResults(BaseModel):
	id: str
	topic_id: str
	title: str
	passing_score: int
	question_count: int = 0
	# Newest first
	results: List[ResultSnapshot] = Field(default_factory=list)

	@property
	def passed(self) -> bool:
		return any(r.passed for r in self.results)

	@property
	def latest(self) -> Optional[ResultSnapshot]:
		return self.results[0] if self.results else None


class TopicWithProgress(BaseModel):
	id: str
	learning_plan_id: str
	day_index: int
	title: str
	description: Optional[str] = None
	goals: List[str] = Field(default_factory=list)
	time_estimate: Optional[int] = None
	status: str = TOPIC_LOCKED
	progress: ProgressSnapshot = Field(default_factory=ProgressSnapshot)
	quizzes: List[QuizWithResults] = Field(default_factory=list)

	@property
	def has_quiz(self) -> bool:
		return bool(self.quizzes)

	@property
	def quiz_passed(self) -> bool:
		return any(q.passed for q in self.quizzes)

	@property
	def is_completed(self) -> bool:
		return self.progress.status == PROGRESS_COMPLETED

	@property
	def satisfies_gate(self) -> bool:
		"""Completed, and its quiz (if any) passed: later days may open."""
		return self.is_completed and (not self.has_quiz or self.quiz_passed)

	@property
	def latest_result(self) -> Optional[ResultSnapshot]:
		latest = [q.latest for q in self.quizzes if q.latest is not None]
		if not latest:
			return None
		return max(latest, key=lambda r: r.completed_at)


class TopicRef(BaseModel):
	id: str
	title: str
	day_index: int


class AccessDecision(BaseModel):
	can_access: bool
	is_completed: bool
	is_locked: bool
	prerequisites_met: bool
	# Informational only; callers branch on can_access
	message: Optional[str] = None
	blocking_topic_id: Optional[str] = None
	blocking_day_index: Optional[int] = None


class Achievement(BaseModel):
	type: str
	title: str
	description: str


class CompletionOutcome(BaseModel):
	topic_id: str
	progress: ProgressSnapshot
	next_topic_unlocked: bool = False
	next_topic: Optional[TopicRef] = None
	plan_completed: bool = False
	feedback: List[str] = Field(default_factory=list)
	achievements: List[Achievement] = Field(default_factory=list)


class SubmittedAnswer(BaseModel):
	question_id: Union[int, str]
	selected_answer: Any = None
	time_spent: int = 0


class GradedAnswer(BaseModel):
	question_id: Union[int, str]
	question: Optional[str] = None
	user_answer: Any = None
	correct_answer: Any = None
	is_correct: bool
	explanation: Optional[str] = None
	points: int = 0
	time_spent: int = 0


class GradedResult(BaseModel):
	id: str
	quiz_id: str
	score: int
	passed: bool
	passing_score: int
	total_questions: int
	correct_answers: int
	time_spent: int
	answers: List[GradedAnswer]
	attempts_used: int
	attempts_remaining: int
	# Advisory; the quiz passing score decides pass/fail
	meets_mode_minimum: Optional[bool] = None
	completion: Optional[CompletionOutcome] = None


class PlanWithTopics(BaseModel):
	id: str
	title: str
	description: Optional[str] = None
	status: str
	mode: str
	total_days: int
	created_at: Optional[datetime] = None
	topics: List[TopicWithProgress] = Field(default_factory=list)

	@property
	def completed_topics(self) -> int:
		return sum(1 for t in self.topics if t.is_completed)
