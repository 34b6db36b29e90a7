from fastapi import APIRouter
from ...core.config import settings
from ...conversation.stages import ORDER

router = APIRouter(tags=["misc"])

@router.get("/health")
def health():
    return {"ok": True}

@router.get("/version")
def version():
    return {"version": settings.API_VERSION}

@router.get("/config/app")
def app_config():
    return {
        "chatEnabled": True,
        "streamingEnabled": True,
        "stages": [s.value for s in ORDER],
        "intakeCompletionThreshold": settings.INTAKE_COMPLETION_THRESHOLD,
        "matchLimit": settings.MATCH_LIMIT,
        "completionConfigured": bool(settings.OPENAI_API_KEY),
    }
