"""Read-only dashboards built from progress records and the quiz result log.

The aggregator never writes. Empty inputs produce zeroed statistics and empty
or zero-filled series.
"""
from __future__ import annotations
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from .errors import InvalidSubmission
from .insights import DEFAULT_INSIGHTS, InsightConfig, evaluate_rules
from .models import LearningProgress, Quiz, QuizResult, Topic, PLAN_ACTIVE, PLAN_COMPLETED, PROGRESS_COMPLETED, PROGRESS_IN_PROGRESS, PROGRESS_NOT_STARTED, TOPIC_LOCKED, TOPIC_UNLOCKED
from .repository import completion_times, get_owned_plan, load_plan_topics, load_user_plans
from .schemas import PlanWithTopics, ProgressSnapshot, ResultSnapshot, TopicWithProgress
from .settings import settings
from .streak import calculate_streak, streak_calendar
from .utils import as_utc, mean_rounded, naive_utc, percent, resolve_now, round_half_up, utc_day


logger = logging.getLogger(__name__)

CHART_KINDS = ("progress", "time", "performance", "streak", "topics")
RECENT_ACTIVITY_LIMIT = 10
UPCOMING_TOPICS_LIMIT = 5

# Lower bound of each mastery band, best first
MASTERY_BANDS = (
	(90, "Excellent (90-100%)"),
	(80, "Good (80-89%)"),
	(70, "Satisfactory (70-79%)"),
	(0, "Needs Improvement (<70%)"),
)


def week_start(day: date) -> date:
	"""Monday of the ISO week containing ``day``."""
	return day - timedelta(days=day.weekday())


def week_key(day: date) -> str:
	year, week, _ = day.isocalendar()
	return f"{year}-W{week:02d}"


def _weekly_row(start: date, results: List[ResultSnapshot]) -> Dict[str, Any]:
	scores = [r.score for r in results]
	return {
		"week": week_key(start),
		"week_start": start.isoformat(),
		"quiz_count": len(results),
		"average_score": mean_rounded(scores),
		# Each attempt's own passed flag, so quizzes with different thresholds agree with grading
		"pass_rate": percent(sum(1 for r in results if r.passed), len(results)),
		"highest_score": max(scores, default=0),
		"lowest_score": min(scores, default=0),
	}


class AnalyticsAggregator:
	def __init__(
		self,
		rules: InsightConfig = DEFAULT_INSIGHTS,
		window_days: Optional[int] = None,
		performance_weeks: Optional[int] = None,
		now: Optional[datetime] = None,
	):
		self.rules = rules
		self.window_days = window_days or settings.dashboard_window_days
		self.performance_weeks = performance_weeks or settings.performance_weeks
		self._now = now

	@property
	def now(self) -> datetime:
		return resolve_now(self._now)

	@property
	def today(self) -> date:
		return self.now.date()

	# Series over already-loaded values

	def study_time_chart(self, progress: Sequence[ProgressSnapshot], days: Optional[int] = None) -> List[Dict[str, Any]]:
		"""Minutes and completions per UTC day for the trailing window, oldest first."""
		days = days or self.window_days
		by_day: Dict[date, List[ProgressSnapshot]] = defaultdict(list)
		for p in progress:
			if p.completed_at is not None:
				by_day[utc_day(p.completed_at)].append(p)
		rows = []
		for offset in range(days - 1, -1, -1):
			day = self.today - timedelta(days=offset)
			bucket = by_day.get(day, [])
			rows.append({
				"date": day.isoformat(),
				"time_spent": sum(p.time_spent for p in bucket),
				"topics_completed": len(bucket),
			})
		return rows

	def quiz_performance_chart(self, results: Sequence[ResultSnapshot]) -> List[Dict[str, Any]]:
		"""Attempts per ISO week for the last ``performance_weeks`` weeks, zero-filled."""
		this_week = week_start(self.today)
		starts = [this_week - timedelta(weeks=i) for i in range(self.performance_weeks - 1, -1, -1)]
		by_week: Dict[date, List[ResultSnapshot]] = defaultdict(list)
		for r in results:
			by_week[week_start(utc_day(r.completed_at))].append(r)
		return [_weekly_row(start, by_week.get(start, [])) for start in starts]

	def plan_progress_chart(self, plans: Sequence[PlanWithTopics]) -> List[Dict[str, Any]]:
		return [
			{
				"plan_id": p.id,
				"plan_title": p.title,
				"progress": percent(p.completed_topics, len(p.topics)),
				"completed_topics": p.completed_topics,
				"total_topics": len(p.topics),
			}
			for p in plans
		]

	def overview_from(self, plans: Sequence[PlanWithTopics]) -> Dict[str, Any]:
		topics = [t for p in plans for t in p.topics]
		results = [r for t in topics for q in t.quizzes for r in q.results]
		completed_at = [t.progress.completed_at for t in topics if t.is_completed and t.progress.completed_at]
		week_ago = self.now - timedelta(days=7)
		return {
			"total_plans": len(plans),
			"active_plans": sum(1 for p in plans if p.status == PLAN_ACTIVE),
			"completed_plans": sum(1 for p in plans if p.status == PLAN_COMPLETED),
			"total_topics": len(topics),
			"completed_topics": sum(1 for t in topics if t.is_completed),
			"total_quizzes": len(results),
			"passed_quizzes": sum(1 for r in results if r.passed),
			"average_quiz_score": mean_rounded(r.score for r in results),
			"total_study_time": sum(t.progress.time_spent for t in topics),
			"learning_streak": calculate_streak(completed_at, now=self.now),
			"weekly_velocity": sum(1 for ts in completed_at if as_utc(ts) >= week_ago),
		}

	def dashboard_insights(self, overview: Dict[str, Any]) -> List[str]:
		metrics = dict(overview)
		metrics["completion_percentage"] = percent(overview["completed_topics"], overview["total_topics"])
		return evaluate_rules(self.rules.dashboard, metrics)

	# Views that read the store

	def overview(self, db: Session, user_id: str) -> Dict[str, Any]:
		return self.overview_from(load_user_plans(db, user_id))

	def dashboard(self, db: Session, user_id: str) -> Dict[str, Any]:
		plans = load_user_plans(db, user_id)
		overview = self.overview_from(plans)
		topics = [(p, t) for p in plans for t in p.topics]
		results = [r for _, t in topics for q in t.quizzes for r in q.results]

		lookback = self.now - timedelta(days=settings.activity_lookback_days)
		recent = sorted(
			(
				(p, t) for p, t in topics
				if t.is_completed and t.progress.completed_at and as_utc(t.progress.completed_at) >= lookback
			),
			key=lambda pt: pt[1].progress.completed_at,
			reverse=True,
		)
		upcoming = [
			(p, t) for p, t in topics
			if not t.is_completed and (t.status == TOPIC_UNLOCKED or t.progress.status == PROGRESS_IN_PROGRESS)
		]
		return {
			"overview": overview,
			"charts": {
				"study_time": self.study_time_chart([t.progress for _, t in topics]),
				"progress": self.plan_progress_chart(plans),
				"quiz_performance": self.quiz_performance_chart(results),
			},
			"recent_activity": [
				{
					"topic_id": t.id,
					"topic_title": t.title,
					"day_index": t.day_index,
					"plan_title": p.title,
					"completed_at": t.progress.completed_at,
					"time_spent": t.progress.time_spent,
					"mastery_score": t.progress.mastery_score,
				}
				for p, t in recent[:RECENT_ACTIVITY_LIMIT]
			],
			"upcoming_topics": [
				{
					"id": t.id,
					"title": t.title,
					"day_index": t.day_index,
					"time_estimate": t.time_estimate,
					"plan_id": p.id,
					"plan_title": p.title,
				}
				for p, t in upcoming[:UPCOMING_TOPICS_LIMIT]
			],
			"insights": self.dashboard_insights(overview),
			"quote": self.rules.quote_for(self.today),
		}

	def plan_progress(self, db: Session, user_id: str, plan_id: str) -> Dict[str, Any]:
		plan = get_owned_plan(db, user_id, plan_id)
		topics = load_plan_topics(db, user_id, plan.id)
		total = len(topics)
		completed = sum(1 for t in topics if t.is_completed)
		in_progress = sum(1 for t in topics if t.progress.status == PROGRESS_IN_PROGRESS)
		total_time = sum(t.progress.time_spent for t in topics)
		latest_scores = [q.latest.score for t in topics for q in t.quizzes if q.latest is not None]
		average_score = mean_rounded(latest_scores)
		average_time = total_time / max(completed, 1)
		remaining_minutes = (total - completed) * average_time
		streak = calculate_streak(
			[t.progress.completed_at for t in topics if t.is_completed and t.progress.completed_at],
			now=self.now,
		)
		current = next(
			(t for t in topics if not t.is_completed and (t.status == TOPIC_UNLOCKED or t.progress.status == PROGRESS_IN_PROGRESS)),
			None,
		)
		overall = percent(completed, total)
		metrics = {
			"overall_progress": overall,
			"average_quiz_score": average_score,
			"average_time_per_topic": average_time,
			"completed_topics": completed,
		}
		return {
			"plan": {
				"id": plan.id,
				"title": plan.title,
				"description": plan.description,
				"total_days": plan.total_days,
				"status": plan.status,
				"mode": plan.mode,
				"created_at": plan.created_at,
			},
			"statistics": {
				"overall_progress": overall,
				"completed_topics": completed,
				"total_topics": total,
				"in_progress_topics": in_progress,
				"total_time_spent": total_time,
				"average_quiz_score": average_score,
				"learning_streak": streak,
				"estimated_completion_date": naive_utc(self.now + timedelta(minutes=remaining_minutes)),
			},
			"current_topic": {"id": current.id, "title": current.title, "day_index": current.day_index} if current else None,
			"topics": [self._topic_detail(t) for t in topics],
			"insights": evaluate_rules(self.rules.plan, metrics),
		}

	@staticmethod
	def _topic_detail(topic: TopicWithProgress) -> Dict[str, Any]:
		quiz = topic.quizzes[0] if topic.quizzes else None
		last = quiz.latest if quiz else None
		return {
			"id": topic.id,
			"title": topic.title,
			"description": topic.description,
			"day_index": topic.day_index,
			"status": topic.status,
			"goals": topic.goals,
			"time_estimate": topic.time_estimate,
			"progress": topic.progress.model_dump(),
			"quiz": {
				"id": quiz.id,
				"title": quiz.title,
				"passing_score": quiz.passing_score,
				"last_result": {"score": last.score, "passed": last.passed, "completed_at": last.completed_at} if last else None,
			} if quiz else None,
			"is_unlocked": topic.status != TOPIC_LOCKED,
			"can_start": topic.status == TOPIC_UNLOCKED or topic.progress.status == PROGRESS_IN_PROGRESS,
		}

	# Chart endpoint

	def chart(
		self,
		db: Session,
		user_id: str,
		kind: str,
		plan_id: Optional[str] = None,
		time_range: int = 30,
	) -> Dict[str, Any]:
		if kind not in CHART_KINDS:
			raise InvalidSubmission("Invalid chart type", allowed=list(CHART_KINDS))
		if plan_id is not None:
			get_owned_plan(db, user_id, plan_id)
		start = self.now - timedelta(days=time_range)
		since = naive_utc(start)

		if kind == "progress":
			rows = completion_times(db, user_id, plan_id=plan_id, since=since)
			return self._progress_chart([r.completed_at for r in rows])
		if kind == "time":
			rows = completion_times(db, user_id, plan_id=plan_id, since=since)
			return self._time_chart(db, rows)
		if kind == "performance":
			return self._performance_chart(self._results_since(db, user_id, plan_id, since))
		if kind == "streak":
			rows = completion_times(db, user_id, since=since)
			return streak_calendar([r.completed_at for r in rows], start, now=self.now)
		return self._topics_chart(db, user_id, plan_id)

	def _progress_chart(self, timestamps: List[datetime]) -> Dict[str, Any]:
		per_day: Dict[date, int] = defaultdict(int)
		for ts in timestamps:
			per_day[utc_day(ts)] += 1
		data = []
		cumulative = 0
		for day in sorted(per_day):
			cumulative += per_day[day]
			data.append({"date": day.isoformat(), "topics_completed": per_day[day], "cumulative_topics": cumulative})
		best = max(data, key=lambda d: d["topics_completed"], default=None)
		return {
			"type": "progress",
			"title": "Learning Progress Over Time",
			"data": data,
			"summary": {
				"total_topics_completed": cumulative,
				"average_per_day": round_half_up(cumulative / len(data) * 10) / 10 if data else 0,
				"most_productive_day": best,
			},
		}

	def _time_chart(self, db: Session, rows: List[LearningProgress]) -> Dict[str, Any]:
		topic_ids = {r.topic_id for r in rows}
		estimates = {
			t.id: t.time_estimate
			for t in db.query(Topic.id, Topic.time_estimate).filter(Topic.id.in_(topic_ids)).all()
		} if topic_ids else {}
		per_day: Dict[date, List[int]] = defaultdict(lambda: [0, 0])
		for r in rows:
			bucket = per_day[utc_day(r.completed_at)]
			bucket[0] += r.time_spent or 0
			bucket[1] += estimates.get(r.topic_id) or 60
		data = [
			{
				"date": day.isoformat(),
				"actual_time": actual,
				"estimated_time": estimated,
				"efficiency": percent(estimated, actual) if actual else 100,
			}
			for day, (actual, estimated) in sorted(per_day.items())
		]
		total_actual = sum(d["actual_time"] for d in data)
		total_estimated = sum(d["estimated_time"] for d in data)
		return {
			"type": "time",
			"title": "Study Time Analysis",
			"data": data,
			"summary": {
				"total_actual_time": total_actual,
				"total_estimated_time": total_estimated,
				"overall_efficiency": percent(total_estimated, total_actual) if total_actual else 100,
				"average_daily_time": round_half_up(total_actual / len(data)) if data else 0,
			},
		}

	@staticmethod
	def _results_since(db: Session, user_id: str, plan_id: Optional[str], since: datetime) -> List[ResultSnapshot]:
		query = db.query(QuizResult).filter(QuizResult.user_id == user_id, QuizResult.completed_at >= since)
		if plan_id is not None:
			query = (
				query.join(Quiz, Quiz.id == QuizResult.quiz_id)
				.join(Topic, Topic.id == Quiz.topic_id)
				.filter(Topic.learning_plan_id == plan_id)
			)
		rows = query.order_by(QuizResult.completed_at.asc()).all()
		return [
			ResultSnapshot(
				id=r.id,
				score=r.score,
				passed=r.passed,
				time_spent=r.time_spent or 0,
				attempt_number=r.attempt_number,
				completed_at=r.completed_at,
			)
			for r in rows
		]

	def _performance_chart(self, results: List[ResultSnapshot]) -> Dict[str, Any]:
		by_week: Dict[date, List[ResultSnapshot]] = defaultdict(list)
		for r in results:
			by_week[week_start(utc_day(r.completed_at))].append(r)
		data = [_weekly_row(start, by_week[start]) for start in sorted(by_week)]
		best = max(data, key=lambda d: d["average_score"], default=None)
		return {
			"type": "performance",
			"title": "Quiz Performance Trends",
			"data": data,
			"summary": {
				"overall_average": mean_rounded(r.score for r in results),
				"total_quizzes": len(results),
				"overall_pass_rate": percent(sum(1 for r in results if r.passed), len(results)),
				"best_week": best,
			},
		}

	@staticmethod
	def _topics_chart(db: Session, user_id: str, plan_id: Optional[str]) -> Dict[str, Any]:
		query = db.query(LearningProgress).filter(LearningProgress.user_id == user_id)
		if plan_id is not None:
			query = query.filter(LearningProgress.learning_plan_id == plan_id)
		rows = query.all()
		statuses = {s: sum(1 for r in rows if r.status == s) for s in (PROGRESS_COMPLETED, PROGRESS_IN_PROGRESS, PROGRESS_NOT_STARTED)}
		scored = [r.mastery_score for r in rows if r.mastery_score is not None]
		bands = {label: 0 for _, label in MASTERY_BANDS}
		for score in scored:
			label = next(label for floor, label in MASTERY_BANDS if score >= floor)
			bands[label] += 1
		return {
			"type": "topics",
			"title": "Topics Overview",
			"data": {
				"status_distribution": [{"status": s, "count": n} for s, n in statuses.items()],
				"mastery_distribution": [{"level": label, "count": n} for label, n in bands.items()],
			},
			"summary": {
				"total_topics": len(rows),
				"completion_rate": percent(statuses[PROGRESS_COMPLETED], len(rows)),
				"average_mastery": mean_rounded(scored),
			},
		}

	# Mentor chat

	def mentor_context(self, db: Session, user_id: str, plan_id: Optional[str] = None) -> Dict[str, Any]:
		"""Learner snapshot handed to the mentor prompt and the suggestion rules."""
		if plan_id is not None:
			get_owned_plan(db, user_id, plan_id)
		plans = [p for p in load_user_plans(db, user_id) if plan_id is None or p.id == plan_id]
		topics = [t for p in plans for t in p.topics]
		completed = [t for t in topics if t.is_completed]
		current = next(
			(t for t in topics if not t.is_completed and (t.status == TOPIC_UNLOCKED or t.progress.status == PROGRESS_IN_PROGRESS)),
			None,
		)
		recent = sorted(
			(r for t in topics for q in t.quizzes for r in q.results),
			key=lambda r: r.completed_at,
			reverse=True,
		)[:10]
		struggling = []
		for t in topics:
			scores = [r.score for q in t.quizzes for r in q.results]
			if scores and sum(scores) / len(scores) < 70:
				struggling.append(t.title)
		lookback = self.now - timedelta(days=settings.activity_lookback_days)
		return {
			"total_topics": len(topics),
			"completed_topics": len(completed),
			"overall_progress": len(completed) / len(topics) * 100 if topics else 0.0,
			"current_topic": {"title": current.title, "day_index": current.day_index, "goals": current.goals} if current else None,
			"average_quiz_score": sum(r.score for r in recent) / len(recent) if recent else 0.0,
			"learning_streak": calculate_streak(
				[t.progress.completed_at for t in completed if t.progress.completed_at and as_utc(t.progress.completed_at) >= lookback],
				now=self.now,
			),
			"struggling_areas": struggling[:3],
			"active_plans": sum(1 for p in plans if p.status == PLAN_ACTIVE),
		}

	def mentor_suggestions(self, context: Dict[str, Any]) -> List[str]:
		suggestions = evaluate_rules(self.rules.mentor, context)
		if context.get("struggling_areas"):
			suggestions.append(f"Focus extra attention on: {', '.join(context['struggling_areas'])}")
		return suggestions
