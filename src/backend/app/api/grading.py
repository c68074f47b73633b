"""
REST + SSE API for grading evidence.

  POST /api/grade/stream   full round, streamed as server-sent events
  POST /api/grade/single   one backend (retry and non-streaming callers)
  POST /api/grade          full round, one JSON response when all settle
  GET  /api/grade/backends configured backends
  GET  /api/grade/criteria supported criteria

SSE frames are `data: <json>\\n\\n` with type one of grade, average,
error, done. Pre-flight problems (empty evidence, unknown criterion or
backend) are rejected with 400 before any backend is called.
"""
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from app.agent.aggregator import StreamingAggregator, format_sse
from app.agent.dispatcher import ScorerDispatcher, validate_request
from app.agent.retry import RetryCoordinator
from app.exceptions import ConfigurationError
from app.models.schemas import (
    BackendInfo,
    BackendSuccess,
    CriterionInfo,
    EvaluationRequest,
    RoundSummary,
    SingleGradeRequest,
    SingleGradeResponse,
)
from app.services.criteria import CRITERIA

logger = logging.getLogger(__name__)
router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_dispatcher(request: Request) -> ScorerDispatcher:
    """The dispatcher built at startup and shared by every request."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Scoring backends are not initialised")
    return dispatcher


def _preflight(body: EvaluationRequest) -> None:
    try:
        validate_request(body)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/stream")
async def grade_stream(
    body: EvaluationRequest, dispatcher: ScorerDispatcher = Depends(get_dispatcher)
):
    """
    Grade evidence with every backend, streaming results as they arrive.

    If the client disconnects, backend calls already started run to
    completion; their results are simply not delivered.
    """
    _preflight(body)
    aggregator = StreamingAggregator(dispatcher)

    async def _events():
        async for event in aggregator.stream(body):
            yield format_sse(event)

    return StreamingResponse(_events(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/single", response_model=SingleGradeResponse)
async def grade_single(
    body: SingleGradeRequest, dispatcher: ScorerDispatcher = Depends(get_dispatcher)
):
    """Grade evidence with one backend. Used to retry a failed backend."""
    try:
        result = await RetryCoordinator(dispatcher).retry(body, body.backend_id)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not isinstance(result, BackendSuccess):
        raise HTTPException(
            status_code=502,
            detail={
                "error": result.error,
                "backendId": result.backend_id,
                "displayName": result.display_name,
            },
        )
    return SingleGradeResponse(grade=result.to_grade())


@router.post("", response_model=RoundSummary)
async def grade_all(
    body: EvaluationRequest, dispatcher: ScorerDispatcher = Depends(get_dispatcher)
):
    """Grade evidence with every backend and answer once all have settled."""
    _preflight(body)
    return await StreamingAggregator(dispatcher).collect(body)


@router.get("/backends", response_model=List[BackendInfo])
async def list_backends(dispatcher: ScorerDispatcher = Depends(get_dispatcher)):
    return [
        BackendInfo(backend_id=b.backend_id, display_name=b.display_name, adapter=b.adapter)
        for b in dispatcher.backends
    ]


@router.get("/criteria", response_model=List[CriterionInfo])
async def list_criteria():
    return [
        CriterionInfo(criterion_id=c.criterion_id, name=c.name, description=c.description)
        for c in CRITERIA.values()
    ]
