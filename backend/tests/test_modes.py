from datetime import datetime, timezone

import pytest

from kumba.errors import PlanNotOwned, TopicLocked
from kumba.grading import submit_quiz
from kumba.models import LearningPlan, QuizResult, TOPIC_LOCKED, TOPIC_UNLOCKED
from kumba.modes import (
	LearningMode,
	ModeSettings,
	apply_mode,
	available_modes,
	compute_statuses,
	current_mode,
	mode_settings_for,
	plan_mode,
)
from kumba.repository import load_plan_topics
from kumba.unlock import complete_topic, start_topic

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def statuses(db, plan, topics, mode):
	computed = compute_statuses(mode, load_plan_topics(db, "amara", plan.id))
	return [computed[t.id] for t in topics]


def test_strict_matches_sequential_rule(db, make_plan):
	plan, topics = make_plan(days=3, with_quiz=False)
	assert statuses(db, plan, topics, LearningMode.strict) == [TOPIC_UNLOCKED, TOPIC_LOCKED, TOPIC_LOCKED]
	complete_topic(db, "amara", topics[0].id, now=NOW)
	assert statuses(db, plan, topics, LearningMode.strict) == [TOPIC_UNLOCKED, TOPIC_UNLOCKED, TOPIC_LOCKED]


def test_flexible_opens_everything(db, make_plan):
	plan, topics = make_plan(days=3)
	assert statuses(db, plan, topics, LearningMode.flexible) == [TOPIC_UNLOCKED] * 3


def test_exam_prep_opens_a_window_ahead(db, make_plan):
	plan, topics = make_plan(days=4, with_quiz=False)
	complete_topic(db, "amara", topics[0].id, now=NOW)
	assert statuses(db, plan, topics, LearningMode.exam_prep) == [
		TOPIC_UNLOCKED, TOPIC_UNLOCKED, TOPIC_UNLOCKED, TOPIC_LOCKED,
	]


def test_review_opens_only_completed_topics(db, make_plan):
	plan, topics = make_plan(days=3, with_quiz=False)
	complete_topic(db, "amara", topics[0].id, now=NOW)
	assert statuses(db, plan, topics, LearningMode.review) == [TOPIC_UNLOCKED, TOPIC_LOCKED, TOPIC_LOCKED]


def test_apply_flexible_allows_skipping(db, make_plan):
	plan, topics = make_plan(days=3)
	config = apply_mode(db, "amara", plan.id, LearningMode.flexible, now=NOW)

	assert config.mode is LearningMode.flexible
	assert config.settings.allow_skipping
	assert set(config.topic_statuses.values()) == {TOPIC_UNLOCKED}
	assert plan.mode == "flexible"
	assert topics[2].status == TOPIC_UNLOCKED
	assert start_topic(db, "amara", topics[2].id).status == "in_progress"


def test_apply_back_to_strict_relocks(db, make_plan):
	plan, topics = make_plan(days=3)
	apply_mode(db, "amara", plan.id, LearningMode.flexible)
	apply_mode(db, "amara", plan.id, LearningMode.strict)
	assert [t.status for t in topics] == [TOPIC_UNLOCKED, TOPIC_LOCKED, TOPIC_LOCKED]


def test_overrides_merge_into_defaults(db, make_plan):
	plan, _ = make_plan(days=2)
	config = apply_mode(db, "amara", plan.id, "exam-prep", overrides={"minimum_score": 90, "time_limit": None})
	assert config.settings.minimum_score == 90
	assert config.settings.time_limit is True
	assert mode_settings_for(plan).minimum_score == 90


def test_apply_mode_checks_ownership(db, make_plan):
	plan, _ = make_plan(days=2)
	with pytest.raises(PlanNotOwned):
		apply_mode(db, "kofi", plan.id, LearningMode.flexible)


def test_unknown_stored_mode_reads_as_strict():
	plan = LearningPlan(id="p1", mode="turbo")
	assert plan_mode(plan) is LearningMode.strict
	assert mode_settings_for(plan) == ModeSettings(require_quiz_pass=True, allow_skipping=False, minimum_score=70)


def test_current_mode_lists_options(db, make_plan):
	plan, _ = make_plan(days=2)
	info = current_mode(db, "amara", plan.id)
	assert info["current_mode"] == "strict"
	assert info["settings"]["minimum_score"] == 70
	assert [m["id"] for m in available_modes()] == ["strict", "flexible", "exam-prep", "review"]


def test_exam_prep_window_can_be_started_and_completed(db, make_plan, quiz_of, answers):
	plan, topics = make_plan(days=4)
	submit_quiz(db, "amara", quiz_of(topics[0]).id, answers(4), now=NOW)
	apply_mode(db, "amara", plan.id, LearningMode.exam_prep, now=NOW)
	assert topics[2].status == TOPIC_UNLOCKED

	assert start_topic(db, "amara", topics[2].id).status == "in_progress"
	result = submit_quiz(db, "amara", quiz_of(topics[2]).id, answers(3), now=NOW)
	assert result.passed
	assert result.completion is not None
	assert result.completion.progress.status == "completed"
	assert result.completion.progress.mastery_score == 75
	assert result.meets_mode_minimum is False


def test_exam_prep_keeps_days_past_the_window_closed(db, make_plan, quiz_of, answers):
	plan, topics = make_plan(days=4)
	apply_mode(db, "amara", plan.id, LearningMode.exam_prep, now=NOW)
	assert topics[3].status == TOPIC_LOCKED
	with pytest.raises(TopicLocked):
		start_topic(db, "amara", topics[3].id)
	with pytest.raises(TopicLocked):
		submit_quiz(db, "amara", quiz_of(topics[3]).id, answers(4), now=NOW)
	assert db.query(QuizResult).count() == 0
