"""Health check endpoints."""
import logging

from fastapi import APIRouter, Depends

from app.api.grading import get_dispatcher
from app.agent.dispatcher import ScorerDispatcher
from app.config import Settings, get_settings

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "ok", "service": "Evidence Grader"}


@router.get("/api/health/config")
async def config_check(
    settings: Settings = Depends(get_settings),
    dispatcher: ScorerDispatcher = Depends(get_dispatcher),
):
    """Diagnostic endpoint: shows whether critical settings are configured (no secrets)."""
    return {
        "bedrock_api_key_set": bool(settings.bedrock_api_key),
        "aws_region": settings.aws_region,
        "backend_timeout_seconds": settings.backend_timeout_seconds,
        "backends": [
            {
                "backend_id": b.backend_id,
                "adapter": b.adapter,
                "endpoint_set": bool(b.endpoint),
                "api_key_set": bool(b.api_key),
            }
            for b in dispatcher.backends
        ],
    }
