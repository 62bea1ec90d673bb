from datetime import date

from kumba.insights import (
	DEFAULT_INSIGHTS,
	InsightConfig,
	InsightRule,
	evaluate_rules,
)


def test_first_matching_rule_per_group_wins():
	groups = (
		(
			InsightRule("score", ">=", 90, "great"),
			InsightRule("score", ">=", 50, "fine"),
		),
		(InsightRule("streak", "==", 0, "start today"),),
	)
	assert evaluate_rules(groups, {"score": 95, "streak": 0}) == ["great", "start today"]
	assert evaluate_rules(groups, {"score": 60, "streak": 2}) == ["fine"]


def test_missing_metric_never_matches():
	groups = ((InsightRule("score", "<", 70, "review"),),)
	assert evaluate_rules(groups, {}) == []


def test_guard_blocks_rule():
	groups = ((InsightRule("average_quiz_score", "<", 70, "review", guard=("total_quizzes", ">", 0)),),)
	assert evaluate_rules(groups, {"average_quiz_score": 0, "total_quizzes": 0}) == []
	assert evaluate_rules(groups, {"average_quiz_score": 40, "total_quizzes": 2}) == ["review"]


def test_messages_are_formatted_from_metrics():
	lines = evaluate_rules(DEFAULT_INSIGHTS.dashboard, {
		"learning_streak": 9,
		"average_quiz_score": 80,
		"total_quizzes": 3,
		"completion_percentage": 50,
		"total_topics": 4,
		"weekly_velocity": 2,
	})
	assert lines == ["Amazing! You have a 9-day learning streak!"]


def test_achievements_by_threshold():
	earned = DEFAULT_INSIGHTS.earned_achievements({"learning_streak": 8, "perfect_scores": 5})
	assert [a.title for a in earned] == ["Week Warrior", "Perfect Scholar"]


def test_quote_rotates_daily():
	config = InsightConfig(quotes=("a", "b"))
	day = date(2026, 1, 1)
	assert config.quote_for(day) != config.quote_for(date(2026, 1, 2))
	assert InsightConfig(quotes=()).quote_for(day) is None
