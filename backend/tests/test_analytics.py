from datetime import datetime, timedelta, timezone

import pytest

from kumba.analytics import AnalyticsAggregator, week_key, week_start
from kumba.errors import InvalidSubmission, PlanNotOwned
from kumba.grading import submit_quiz
from kumba.unlock import complete_topic, record_time_spent

NOW = datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def aggregator():
	return AnalyticsAggregator(now=NOW)


def test_week_helpers():
	day = NOW.date()
	assert week_start(day).isoformat() == "2026-03-09"
	assert week_key(day) == "2026-W11"


def test_empty_dashboard_is_zeroed(db, learner, aggregator):
	board = aggregator.dashboard(db, "amara")
	overview = board["overview"]
	assert overview["total_plans"] == 0
	assert overview["average_quiz_score"] == 0
	assert overview["learning_streak"] == 0
	assert len(board["charts"]["study_time"]) == 7
	assert len(board["charts"]["quiz_performance"]) == 8
	assert all(w["quiz_count"] == 0 for w in board["charts"]["quiz_performance"])
	assert board["recent_activity"] == []
	assert "Consider spending more time reviewing before taking quizzes." not in board["insights"]
	assert board["quote"]


def test_plan_progress_two_of_three(db, make_plan, aggregator):
	plan, topics = make_plan(days=3, with_quiz=False)
	complete_topic(db, "amara", topics[0].id, time_spent=30, now=NOW - timedelta(days=1))
	complete_topic(db, "amara", topics[1].id, time_spent=50, now=NOW)

	report = aggregator.plan_progress(db, "amara", plan.id)
	stats = report["statistics"]
	assert stats["overall_progress"] == 67
	assert stats["completed_topics"] == 2
	assert stats["total_time_spent"] == 80
	assert stats["learning_streak"] == 2
	assert report["plan"]["status"] == "active"
	assert report["current_topic"]["day_index"] == 3
	assert [t["is_unlocked"] for t in report["topics"]] == [True, True, True]
	assert "Great job! You're halfway through your learning journey." in report["insights"]


def test_plan_progress_of_another_user(db, make_plan, aggregator):
	plan, _ = make_plan(days=2)
	with pytest.raises(PlanNotOwned):
		aggregator.plan_progress(db, "kofi", plan.id)


def test_dashboard_counts_quiz_attempts(db, make_plan, quiz_of, answers, aggregator):
	_, topics = make_plan(days=2)
	quiz = quiz_of(topics[0])
	submit_quiz(db, "amara", quiz.id, answers(1), now=NOW - timedelta(hours=2))
	submit_quiz(db, "amara", quiz.id, answers(4), now=NOW - timedelta(hours=1))
	record_time_spent(db, "amara", topics[1].id, 10)

	board = aggregator.dashboard(db, "amara")
	overview = board["overview"]
	assert overview["total_quizzes"] == 2
	assert overview["passed_quizzes"] == 1
	assert overview["average_quiz_score"] == 63
	assert overview["completed_topics"] == 1
	assert overview["weekly_velocity"] == 1
	this_week = board["charts"]["quiz_performance"][-1]
	assert this_week["quiz_count"] == 2
	assert this_week["pass_rate"] == 50
	assert board["recent_activity"][0]["mastery_score"] == 100
	assert [t["day_index"] for t in board["upcoming_topics"]] == [2]


def test_chart_kinds(db, make_plan, aggregator):
	plan, topics = make_plan(days=3, with_quiz=False)
	complete_topic(db, "amara", topics[0].id, time_spent=30, now=NOW - timedelta(days=2))
	complete_topic(db, "amara", topics[1].id, time_spent=90, now=NOW)

	progress = aggregator.chart(db, "amara", "progress", plan_id=plan.id)
	assert [d["cumulative_topics"] for d in progress["data"]] == [1, 2]

	time_chart = aggregator.chart(db, "amara", "time")
	assert time_chart["summary"]["total_actual_time"] == 120
	assert time_chart["summary"]["total_estimated_time"] == 120

	streak = aggregator.chart(db, "amara", "streak", time_range=7)
	assert streak["summary"]["current_streak"] == 1
	assert streak["summary"]["active_days"] == 2

	topics_chart = aggregator.chart(db, "amara", "topics")
	assert topics_chart["summary"]["completion_rate"] == 100
	assert topics_chart["data"]["mastery_distribution"][0]["count"] == 2

	performance = aggregator.chart(db, "amara", "performance")
	assert performance["data"] == []
	assert performance["summary"]["best_week"] is None


def test_unknown_chart_kind(db, learner, aggregator):
	with pytest.raises(InvalidSubmission):
		aggregator.chart(db, "amara", "pie")


def test_mentor_context_flags_weak_topics(db, make_plan, quiz_of, answers, aggregator):
	_, topics = make_plan(days=2)
	submit_quiz(db, "amara", quiz_of(topics[0]).id, answers(1), now=NOW)

	context = aggregator.mentor_context(db, "amara")
	assert context["struggling_areas"] == ["Algebra day 1"]
	assert context["learning_streak"] == 0
	suggestions = aggregator.mentor_suggestions(context)
	assert "Start your learning journey today - even 15 minutes counts!" in suggestions
	assert suggestions[-1] == "Focus extra attention on: Algebra day 1"
