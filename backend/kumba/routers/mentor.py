from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..analytics import AnalyticsAggregator
from ..content import ContentGenerator
from ..db import get_db
from ..models import utcnow
from .analytics import get_aggregator
from .auth import get_current_user, User
from .roadmap import get_content_generator

router = APIRouter(prefix="/mentor", tags=["mentor"])


class ChatRequest(BaseModel):
	message: str = Field(min_length=1, max_length=4000)
	plan_id: Optional[str] = None


@router.post("/chat")
async def chat(
	req: ChatRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	aggregator: AnalyticsAggregator = Depends(get_aggregator),
	generator: ContentGenerator = Depends(get_content_generator),
):
	context = aggregator.mentor_context(db, user.username, plan_id=req.plan_id)
	reply = await generator.mentor_reply(req.message.strip(), context)
	return {
		"response": reply,
		"timestamp": utcnow(),
		"context": {
			"user_progress": round(context["overall_progress"], 1),
			"current_streak": context["learning_streak"],
			"suggestions": aggregator.mentor_suggestions(context),
		},
	}
