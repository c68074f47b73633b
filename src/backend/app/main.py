"""
Evidence Grader — FastAPI Backend
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.agent.backends import build_backends
from app.agent.dispatcher import ScorerDispatcher
from app.api import grading, health
from app.config import get_settings

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(
    title="Evidence Grader",
    description="Multi-backend grading of EB-1A criterion evidence with streamed results",
    version="0.1.0",
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(health.router, tags=["health"])
app.include_router(grading.router, prefix="/api/grade", tags=["grading"])


@app.on_event("startup")
async def startup():
    """Build the backend list once and share one dispatcher across requests."""
    def _mask(val: str) -> str:
        if not val:
            return "(empty)"
        if len(val) <= 8:
            return "***"
        return val[:4] + "..." + val[-4:]

    backends = build_backends(settings)
    app.state.dispatcher = ScorerDispatcher(backends, settings)

    logger.info("=== Evidence Grader Backend Starting ===")
    logger.info(f"  aws_region             : {settings.aws_region}")
    logger.info(f"  bedrock_api_key        : {_mask(settings.bedrock_api_key)}")
    logger.info(f"  backend_timeout_seconds: {settings.backend_timeout_seconds}")
    logger.info(f"  cors_origins           : {settings.cors_origins}")
    for backend in backends:
        logger.info(
            f"  backend {backend.backend_id:<18}: {backend.display_name} "
            f"[{backend.adapter}] key={_mask(backend.api_key)}"
        )

    if not any(b.api_key for b in backends):
        logger.warning("No backend has an API key -- scoring calls will likely be rejected!")


@app.on_event("shutdown")
async def shutdown():
    dispatcher = getattr(app.state, "dispatcher", None)
    if dispatcher is not None:
        await dispatcher.aclose()
