from __future__ import annotations
import math
from datetime import date, datetime, timezone
from typing import Iterable, Optional


def round_half_up(value: float) -> int:
	# round() is banker's rounding; scores round .5 upwards
	return int(math.floor(value + 0.5))


def percent(part: float, whole: float) -> int:
	if not whole:
		return 0
	return round_half_up(part / whole * 100)


def mean_rounded(values: Iterable[float]) -> int:
	values = list(values)
	if not values:
		return 0
	return round_half_up(sum(values) / len(values))


def as_utc(ts: datetime) -> datetime:
	"""Aware UTC datetime; naive values are taken to already be UTC."""
	if ts.tzinfo is None:
		return ts.replace(tzinfo=timezone.utc)
	return ts.astimezone(timezone.utc)


def utc_day(ts: datetime) -> date:
	return as_utc(ts).date()


def resolve_now(now: Optional[datetime] = None) -> datetime:
	return as_utc(now) if now is not None else datetime.now(timezone.utc)


def naive_utc(ts: datetime) -> datetime:
	return as_utc(ts).replace(tzinfo=None)
