from fastapi import APIRouter

from ..settings import settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
	return {"status": "ok", "llm_configured": bool(settings.gemini_api_key or settings.openrouter_api_key)}
