import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .db import Base, engine, get_db
from .cleanup import purge_stale_sessions
from .settings import settings
from .routers import health
from .routers import auth
from .routers import roadmap
from .routers import topics
from .routers import quizzes
from .routers import analytics
from .routers import modes
from .routers import mentor

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Kumba.AI API")
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(roadmap.router)
app.include_router(topics.router)
app.include_router(quizzes.router)
app.include_router(analytics.router)
app.include_router(modes.router)
app.include_router(mentor.router)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
	logger.exception("Unhandled error on %s %s", request.method, request.url.path)
	return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def _purge_sessions_once():
	db = next(get_db())
	try:
		purge_stale_sessions(db, settings.session_retention_days)
	except Exception:
		logger.exception("Session cleanup failed")
	finally:
		db.close()


async def _cleanup_watcher():
	# Daily after the startup run
	while True:
		await asyncio.sleep(24 * 60 * 60)
		_purge_sessions_once()


@app.on_event("startup")
async def startup_event():
	Base.metadata.create_all(bind=engine)
	_purge_sessions_once()
	asyncio.create_task(_cleanup_watcher())
