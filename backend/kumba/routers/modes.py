from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..modes import LearningMode, ModeConfiguration, apply_mode, current_mode
from .auth import get_current_user, User

router = APIRouter(prefix="/modes", tags=["modes"])


class ModeRequest(BaseModel):
	plan_id: str
	mode: LearningMode
	settings: Optional[Dict[str, Any]] = None


@router.get("")
def get_mode(plan_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return current_mode(db, user.username, plan_id)


@router.post("", response_model=ModeConfiguration)
def set_mode(req: ModeRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return apply_mode(db, user.username, req.plan_id, req.mode, overrides=req.settings)
