from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..analytics import AnalyticsAggregator
from ..db import get_db
from .auth import get_current_user, User

router = APIRouter(tags=["analytics"])


def get_aggregator() -> AnalyticsAggregator:
	return AnalyticsAggregator()


@router.get("/analytics/dashboard")
def dashboard(
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	aggregator: AnalyticsAggregator = Depends(get_aggregator),
):
	return aggregator.dashboard(db, user.username)


@router.get("/progress/{plan_id}")
def plan_progress(
	plan_id: str,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	aggregator: AnalyticsAggregator = Depends(get_aggregator),
):
	return aggregator.plan_progress(db, user.username, plan_id)


@router.get("/charts/progress")
def charts(
	kind: str = Query("progress", alias="type"),
	plan_id: Optional[str] = None,
	time_range: int = Query(30, ge=1, le=365),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	aggregator: AnalyticsAggregator = Depends(get_aggregator),
):
	return aggregator.chart(db, user.username, kind, plan_id=plan_id, time_range=time_range)
