"""Rule tables behind the encouragement text shown on dashboards.

Rules are grouped: inside a group the first matching rule wins, and every
group may contribute at most one line. Tables are plain immutable data handed
to the analytics aggregator so tests can swap them out.
"""
from __future__ import annotations
import operator
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple


_OPS: Dict[str, Callable[[Any, Any], bool]] = {
	">=": operator.ge,
	">": operator.gt,
	"<=": operator.le,
	"<": operator.lt,
	"==": operator.eq,
}


@dataclass(frozen=True)
class InsightRule:
	metric: str
	op: str
	threshold: float
	message: str
	# Extra condition, e.g. ("average_quiz_score", ">", 0) to skip users with no quizzes yet
	guard: Optional[Tuple[str, str, float]] = None

	def matches(self, metrics: Mapping[str, float]) -> bool:
		value = metrics.get(self.metric)
		if value is None:
			return False
		if not _OPS[self.op](value, self.threshold):
			return False
		if self.guard is not None:
			g_metric, g_op, g_threshold = self.guard
			g_value = metrics.get(g_metric)
			if g_value is None or not _OPS[g_op](g_value, g_threshold):
				return False
		return True


RuleGroup = Tuple[InsightRule, ...]


def evaluate_rules(groups: Tuple[RuleGroup, ...], metrics: Mapping[str, float]) -> List[str]:
	lines: List[str] = []
	for group in groups:
		for rule in group:
			if rule.matches(metrics):
				lines.append(rule.message.format(**metrics))
				break
	return lines


DASHBOARD_RULES: Tuple[RuleGroup, ...] = (
	(
		InsightRule("learning_streak", ">=", 7, "Amazing! You have a {learning_streak}-day learning streak!"),
		InsightRule("learning_streak", "==", 0, "Start a new learning streak today!"),
	),
	(
		InsightRule("average_quiz_score", ">=", 90, "Excellent quiz performance! You're mastering the material."),
		InsightRule("average_quiz_score", "<", 70, "Consider spending more time reviewing before taking quizzes.", guard=("total_quizzes", ">", 0)),
	),
	(
		InsightRule("completion_percentage", ">=", 80, "You're almost done! Keep up the momentum."),
		InsightRule("completion_percentage", "<", 20, "Great start! Consistency is key to success.", guard=("total_topics", ">", 0)),
	),
	(
		InsightRule("weekly_velocity", ">=", 5, "You're learning at an impressive pace!"),
		InsightRule("weekly_velocity", "==", 0, "Try to complete at least one topic this week."),
	),
)

PLAN_RULES: Tuple[RuleGroup, ...] = (
	(
		InsightRule("overall_progress", ">=", 80, "Excellent progress! You're almost done with this learning plan."),
		InsightRule("overall_progress", ">=", 50, "Great job! You're halfway through your learning journey."),
		InsightRule("overall_progress", "<", 20, "Just getting started! Stay consistent for best results."),
	),
	(
		InsightRule("average_quiz_score", ">=", 90, "Outstanding quiz performance! You're mastering the material."),
		InsightRule("average_quiz_score", ">=", 70, "Good quiz scores! Keep up the solid work."),
		InsightRule("average_quiz_score", ">", 0, "Consider reviewing topics where quiz scores are lower."),
	),
	(
		InsightRule("average_time_per_topic", ">", 120, "You're taking your time to thoroughly understand each topic.", guard=("completed_topics", ">", 0)),
		InsightRule("average_time_per_topic", "<", 30, "You're moving quickly! Make sure you're absorbing the material.", guard=("completed_topics", ">", 0)),
	),
)

COMPLETION_FEEDBACK_RULES: Tuple[RuleGroup, ...] = (
	(
		InsightRule("mastery_score", ">=", 90, "Excellent mastery! You've truly understood this topic."),
		InsightRule("mastery_score", ">=", 70, "Good job! You've grasped the key concepts well."),
		InsightRule("quiz_passed", "==", 1, "You passed! Consider reviewing to strengthen your understanding."),
	),
	(
		InsightRule("time_ratio", ">", 1.5, "You took extra time to thoroughly understand the material - great dedication!"),
		InsightRule("time_ratio", "<", 0.5, "You completed this quickly! Make sure you've absorbed all the key points."),
		InsightRule("time_ratio", ">=", 0, "Perfect pacing! You're managing your study time well."),
	),
)

MENTOR_SUGGESTION_RULES: Tuple[RuleGroup, ...] = (
	(
		InsightRule("learning_streak", "==", 0, "Start your learning journey today - even 15 minutes counts!"),
		InsightRule("learning_streak", "<", 3, "Build consistency - try to study a little each day"),
	),
	(
		InsightRule("average_quiz_score", "<", 70, "Review topics more thoroughly before taking quizzes"),
	),
	(
		InsightRule("overall_progress", "<", 20, "Focus on completing one topic at a time"),
		InsightRule("overall_progress", ">", 80, "You're almost done! Push through to the finish line"),
	),
)


@dataclass(frozen=True)
class AchievementRule:
	type: str
	metric: str
	threshold: float
	title: str
	description: str


ACHIEVEMENT_RULES: Tuple[AchievementRule, ...] = (
	AchievementRule("streak", "learning_streak", 7, "Week Warrior", "7 days learning streak!"),
	AchievementRule("streak", "learning_streak", 30, "Monthly Master", "30 days learning streak!"),
	AchievementRule("performance", "perfect_scores", 5, "Perfect Scholar", "5 perfect quiz scores!"),
)


MENTOR_QUOTES: Tuple[str, ...] = (
	"The expert in anything was once a beginner. Keep learning, step by step.",
	"Education is the most powerful weapon which you can use to change the world. - Nelson Mandela",
	"If you want to go fast, go alone. If you want to go far, go together. - African Proverb",
	"However far the stream flows, it never forgets its source. - African Proverb",
	"Wisdom is like a baobab tree; no one individual can embrace it. - African Proverb",
	"The best time to plant a tree was 20 years ago. The second best time is now. - African Proverb",
	"Smooth seas do not make skillful sailors. - African Proverb",
)


@dataclass(frozen=True)
class InsightConfig:
	dashboard: Tuple[RuleGroup, ...] = DASHBOARD_RULES
	plan: Tuple[RuleGroup, ...] = PLAN_RULES
	completion: Tuple[RuleGroup, ...] = COMPLETION_FEEDBACK_RULES
	mentor: Tuple[RuleGroup, ...] = MENTOR_SUGGESTION_RULES
	achievements: Tuple[AchievementRule, ...] = ACHIEVEMENT_RULES
	quotes: Tuple[str, ...] = field(default=MENTOR_QUOTES)

	def earned_achievements(self, metrics: Mapping[str, float]) -> List[AchievementRule]:
		return [a for a in self.achievements if metrics.get(a.metric, 0) >= a.threshold]

	def quote_for(self, day: date) -> Optional[str]:
		if not self.quotes:
			return None
		return self.quotes[day.toordinal() % len(self.quotes)]


DEFAULT_INSIGHTS = InsightConfig()
