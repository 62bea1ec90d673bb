from datetime import datetime, timedelta, timezone

from kumba.streak import calculate_streak, streak_calendar

NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


def days_ago(*offsets):
	return [NOW - timedelta(days=d) for d in offsets]


def test_no_activity_is_zero():
	assert calculate_streak([], now=NOW) == 0
	assert calculate_streak([None, None], now=NOW) == 0


def test_gap_ends_the_run():
	assert calculate_streak(days_ago(0, 1, 2, 4), now=NOW) == 3


def test_run_may_end_yesterday():
	assert calculate_streak(days_ago(1, 2), now=NOW) == 2


def test_run_ending_two_days_ago_is_broken():
	assert calculate_streak(days_ago(2, 3, 4), now=NOW) == 0


def test_several_completions_on_one_day_count_once():
	same_day = [NOW - timedelta(hours=h) for h in (0, 1, 2)]
	assert calculate_streak(same_day, now=NOW) == 1


def test_naive_timestamps_are_utc():
	naive = [datetime(2026, 3, 10, 1, 0), datetime(2026, 3, 9, 23, 30)]
	assert calculate_streak(naive, now=NOW) == 2


def test_days_are_utc_calendar_days():
	# 23:30 at UTC-5 is already the next UTC day
	offset = timezone(timedelta(hours=-5))
	late = datetime(2026, 3, 9, 23, 30, tzinfo=offset)
	assert calculate_streak([late], now=NOW) == 1


def test_streak_calendar_summary():
	start = NOW - timedelta(days=6)
	chart = streak_calendar(days_ago(0, 1, 4, 5), start, now=NOW)
	assert chart["type"] == "streak"
	assert len(chart["data"]) == 7
	assert chart["summary"]["current_streak"] == 2
	assert chart["summary"]["max_streak"] == 2
	assert chart["summary"]["active_days"] == 4
	assert chart["summary"]["consistency_rate"] == 57
	assert chart["data"][-1] == {"date": "2026-03-10", "has_activity": True, "streak": 2}
