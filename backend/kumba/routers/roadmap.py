from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..content import ContentGenerator, create_learning_plan
from ..db import get_db
from ..errors import InvalidSubmission, MaterialNotFound
from ..models import LearningMaterial, LearningPlan
from .auth import get_current_user, User

router = APIRouter(tags=["roadmap"])


async def get_content_generator(user: User = Depends(get_current_user)):
	generator = ContentGenerator.from_settings(language=user.language)
	try:
		yield generator
	finally:
		await generator.aclose()


class MaterialRequest(BaseModel):
	title: str = Field(min_length=1, max_length=256)
	description: Optional[str] = None
	file_type: str = "text"
	# Text already extracted from the upload
	text: str = ""


class RoadmapRequest(BaseModel):
	material_id: str
	days: Optional[int] = None


def _material_out(m: LearningMaterial) -> dict:
	return {
		"id": m.id,
		"title": m.title,
		"description": m.description,
		"file_type": m.file_type,
		"status": m.status,
		"created_at": m.created_at,
	}


@router.post("/materials", status_code=201)
def add_material(req: MaterialRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	text = req.text.strip()
	row = LearningMaterial(
		user_id=user.username,
		title=req.title.strip(),
		description=req.description,
		file_type=req.file_type,
		extracted_text=text or None,
		status="processed" if text else "processing",
	)
	db.add(row)
	db.commit()
	return _material_out(row)


@router.get("/materials")
def list_materials(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	rows = (
		db.query(LearningMaterial)
		.filter(LearningMaterial.user_id == user.username)
		.order_by(LearningMaterial.created_at.desc())
		.all()
	)
	return {"materials": [_material_out(m) for m in rows]}


@router.post("/roadmap", status_code=201)
async def generate_roadmap(
	req: RoadmapRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	generator: ContentGenerator = Depends(get_content_generator),
):
	material = db.get(LearningMaterial, req.material_id)
	if material is None or material.user_id != user.username:
		raise MaterialNotFound()
	if not material.extracted_text:
		raise InvalidSubmission("Material has not been processed yet")
	plan = await create_learning_plan(db, user.username, material, generator, days=req.days)
	return {
		"message": "Learning roadmap generated successfully",
		"learning_plan": {
			"id": plan.id,
			"title": plan.title,
			"description": plan.description,
			"total_days": plan.total_days,
			"mode": plan.mode,
		},
	}


@router.get("/roadmap")
def list_plans(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	plans = (
		db.query(LearningPlan)
		.filter(LearningPlan.user_id == user.username)
		.order_by(LearningPlan.created_at.desc())
		.all()
	)
	return {
		"plans": [
			{"id": p.id, "title": p.title, "total_days": p.total_days, "status": p.status, "mode": p.mode}
			for p in plans
		]
	}
