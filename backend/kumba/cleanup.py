from __future__ import annotations
import logging
from datetime import timedelta

from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import AuthSession, utcnow


logger = logging.getLogger(__name__)


def purge_stale_sessions(db: Session, older_than_days: int = 7) -> int:
	"""Drop login sessions idle for longer than ``older_than_days``; their tokens stop validating."""
	threshold = utcnow() - timedelta(days=older_than_days)
	res = db.execute(delete(AuthSession).where(AuthSession.last_activity_at < threshold))
	db.commit()
	removed = res.rowcount or 0
	if removed:
		logger.info("Purged %d idle sessions", removed)
	return removed
