"""Learning modes: named policies that bulk-set topic locks for a plan."""
from __future__ import annotations
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .models import LearningPlan, Topic, TOPIC_LOCKED, TOPIC_UNLOCKED
from .repository import get_owned_plan, load_plan_topics
from .schemas import TopicWithProgress
from .utils import naive_utc, resolve_now


logger = logging.getLogger(__name__)


class LearningMode(str, Enum):
	strict = "strict"
	flexible = "flexible"
	exam_prep = "exam-prep"
	review = "review"


class ModeSettings(BaseModel):
	require_quiz_pass: bool = True
	allow_skipping: bool = False
	# Advisory threshold shown to the learner; Quiz.passing_score still decides pass/fail
	minimum_score: Optional[int] = Field(default=None, ge=0, le=100)
	review_frequency: Optional[int] = None
	time_limit: bool = False
	focus_on_weak_areas: bool = False


MODE_DEFAULTS: Dict[LearningMode, ModeSettings] = {
	LearningMode.strict: ModeSettings(require_quiz_pass=True, allow_skipping=False, minimum_score=70),
	LearningMode.flexible: ModeSettings(require_quiz_pass=False, allow_skipping=True, minimum_score=50),
	LearningMode.exam_prep: ModeSettings(require_quiz_pass=True, minimum_score=80, review_frequency=3, time_limit=True),
	LearningMode.review: ModeSettings(require_quiz_pass=False, focus_on_weak_areas=True),
}

MODE_DESCRIPTIONS: Dict[LearningMode, str] = {
	LearningMode.strict: "Strict mode activated. You must complete topics in order and pass all quizzes.",
	LearningMode.flexible: "Flexible mode activated. You can skip topics and return to them later.",
	LearningMode.exam_prep: "Exam preparation mode activated. Intensive study with frequent assessments.",
	LearningMode.review: "Review mode activated. Focus on reinforcing previously learned material.",
}

# How many not-yet-completed topics exam-prep opens ahead of the learner
EXAM_PREP_LOOKAHEAD = 2


class ModeConfiguration(BaseModel):
	plan_id: str
	mode: LearningMode
	settings: ModeSettings
	applied_at: datetime
	topic_statuses: Dict[str, str]
	message: str


def mode_description(mode: LearningMode) -> str:
	return MODE_DESCRIPTIONS[LearningMode(mode)]


def plan_mode(plan: LearningPlan) -> LearningMode:
	try:
		return LearningMode(plan.mode or LearningMode.strict.value)
	except ValueError:
		logger.warning("Plan %s has unknown mode %r, treating as strict", plan.id, plan.mode)
		return LearningMode.strict


def mode_settings_for(plan: LearningPlan) -> ModeSettings:
	base = MODE_DEFAULTS[plan_mode(plan)]
	stored = plan.mode_settings or {}
	return ModeSettings.model_validate({**base.model_dump(), **stored})


def compute_statuses(mode: LearningMode, topics: List[TopicWithProgress]) -> Dict[str, str]:
	"""Lock state per topic id for ``topics`` (day order) under ``mode``."""
	mode = LearningMode(mode)
	statuses: Dict[str, str] = {}
	if mode is LearningMode.flexible:
		return {t.id: TOPIC_UNLOCKED for t in topics}
	if mode is LearningMode.review:
		return {t.id: TOPIC_UNLOCKED if t.is_completed else TOPIC_LOCKED for t in topics}
	if mode is LearningMode.exam_prep:
		ahead = 0
		for t in topics:
			if t.is_completed:
				statuses[t.id] = TOPIC_UNLOCKED
			elif ahead < EXAM_PREP_LOOKAHEAD:
				statuses[t.id] = TOPIC_UNLOCKED
				ahead += 1
			else:
				statuses[t.id] = TOPIC_LOCKED
		return statuses

	# strict: same rule as the unlock engine, evaluated for every day at once
	gate_open = True
	for t in topics:
		open_now = t.day_index == 1 or gate_open
		statuses[t.id] = TOPIC_UNLOCKED if open_now else TOPIC_LOCKED
		gate_open = gate_open and t.satisfies_gate
	return statuses


def apply_mode(
	db: Session,
	user_id: str,
	plan_id: str,
	mode: LearningMode,
	overrides: Optional[Mapping[str, Any]] = None,
	now: Optional[datetime] = None,
) -> ModeConfiguration:
	mode = LearningMode(mode)
	plan = get_owned_plan(db, user_id, plan_id)
	topics = load_plan_topics(db, user_id, plan.id)
	statuses = compute_statuses(mode, topics)

	try:
		rows = db.query(Topic).filter(Topic.learning_plan_id == plan.id).all()
		for row in rows:
			row.status = statuses.get(row.id, row.status)
		merged = {**MODE_DEFAULTS[mode].model_dump(), **{k: v for k, v in (overrides or {}).items() if v is not None}}
		mode_settings = ModeSettings.model_validate(merged)
		plan.mode = mode.value
		plan.mode_settings = mode_settings.model_dump()
		db.commit()
	except Exception:
		db.rollback()
		raise

	logger.info("Applied %s mode to plan %s (%d topics)", mode.value, plan.id, len(statuses))
	return ModeConfiguration(
		plan_id=plan.id,
		mode=mode,
		settings=mode_settings,
		applied_at=naive_utc(resolve_now(now)),
		topic_statuses=statuses,
		message=mode_description(mode),
	)


def current_mode(db: Session, user_id: str, plan_id: str) -> Dict[str, Any]:
	plan = get_owned_plan(db, user_id, plan_id)
	mode = plan_mode(plan)
	return {
		"current_mode": mode.value,
		"settings": mode_settings_for(plan).model_dump(),
		"available_modes": available_modes(),
		"recommendations": {
			"recommended": LearningMode.strict.value,
			"reason": "Strict mode builds strong foundations before moving on.",
		},
	}


def available_modes() -> List[Dict[str, Any]]:
	return [
		{
			"id": LearningMode.strict.value,
			"name": "Strict Mode",
			"description": "Sequential learning required. Each topic must be completed before moving to the next.",
			"features": ["Sequential progression", "Mandatory quizzes", "Minimum score required"],
			"recommended": True,
		},
		{
			"id": LearningMode.flexible.value,
			"name": "Flexible Mode",
			"description": "Allows skipping topics and returning later. Great for review.",
			"features": ["Topic skipping allowed", "Optional quizzes", "Free progression"],
			"recommended": False,
		},
		{
			"id": LearningMode.exam_prep.value,
			"name": "Exam Preparation",
			"description": "Intensive mode with frequent quizzes and targeted reviews.",
			"features": ["Frequent quizzes", "Automatic reviews", "Performance tracking"],
			"recommended": False,
		},
		{
			"id": LearningMode.review.value,
			"name": "Review Mode",
			"description": "Focus on previously studied topics with review quizzes.",
			"features": ["Targeted review", "Recall quizzes", "Reinforcement"],
			"recommended": False,
		},
	]
