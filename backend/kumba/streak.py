"""Learning streaks over topic completion timestamps.

Days are UTC calendar days. A streak is the current run of consecutive
active days ending today, or ending yesterday when nothing has been completed
yet today; it is never the longest historical run.
"""
from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

from .utils import percent, resolve_now, utc_day


def active_days(timestamps: Iterable[Optional[datetime]]) -> Set[date]:
	return {utc_day(ts) for ts in timestamps if ts is not None}


def _streak_ending(days: Set[date], today: date) -> int:
	if not days:
		return 0
	anchor = today if today in days else today - timedelta(days=1)
	streak = 0
	while anchor - timedelta(days=streak) in days:
		streak += 1
	return streak


def calculate_streak(timestamps: Iterable[Optional[datetime]], now: Optional[datetime] = None) -> int:
	return _streak_ending(active_days(timestamps), resolve_now(now).date())


def streak_calendar(
	timestamps: Iterable[Optional[datetime]],
	start: datetime,
	now: Optional[datetime] = None,
) -> Dict[str, Any]:
	"""Day-by-day activity from ``start`` through today with a running streak."""
	days = active_days(timestamps)
	today = resolve_now(now).date()
	current = utc_day(start)
	rows: List[Dict[str, Any]] = []
	running = 0
	while current <= today:
		has_activity = current in days
		running = running + 1 if has_activity else 0
		rows.append({"date": current.isoformat(), "has_activity": has_activity, "streak": running})
		current += timedelta(days=1)

	active = sum(1 for r in rows if r["has_activity"])
	return {
		"type": "streak",
		"title": "Learning Streak Calendar",
		"data": rows,
		"summary": {
			"current_streak": _streak_ending(days, today),
			"max_streak": max((r["streak"] for r in rows), default=0),
			"active_days": active,
			"total_days": len(rows),
			"consistency_rate": percent(active, len(rows)),
		},
	}
