"""
Streaming Aggregator — turns dispatcher completions into grading events.

Event sequence for one round:
  - success -> "grade" then "average" (aggregate after folding that grade in)
  - failure -> "error"
  - every backend settled -> one "done", then the stream ends

Events follow backend completion order, not configuration order. The
session's result list is only touched from the stream generator, so an
"average" event can never observe a half-applied update.
"""
from __future__ import annotations

import json
import logging
import math
from typing import AsyncIterator, Iterable, List, Optional, Sequence, Set

from app.agent.backends import BackendDescriptor
from app.agent.dispatcher import ScorerDispatcher, validate_request
from app.models.schemas import (
    AggregateVerdict,
    AverageEvent,
    BackendFailure,
    BackendFailureInfo,
    BackendResult,
    BackendSuccess,
    DoneEvent,
    ErrorEvent,
    EvaluationRequest,
    GradeEvent,
    GradingEvent,
    RoundSummary,
    grade_for_score,
)

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_aggregate(scores: Iterable[int], total_expected: int) -> Optional[AggregateVerdict]:
    """Average of the given success scores, or None before the first success."""
    scores = list(scores)
    if not scores:
        return None
    score = round_half_up(sum(scores) / len(scores))
    return AggregateVerdict(
        score=score,
        grade=grade_for_score(score),
        success_count=len(scores),
        total_expected=total_expected,
    )


class GradingSession:
    """Results of one round, in arrival order. Lives as long as one stream."""

    def __init__(self, backends: Sequence[BackendDescriptor]):
        self.expected_ids: List[str] = [b.backend_id for b in backends]
        self.results: List[BackendResult] = []
        self.completed_ids: Set[str] = set()

    @property
    def total_expected(self) -> int:
        return len(self.expected_ids)

    @property
    def is_complete(self) -> bool:
        return len(self.completed_ids) == self.total_expected

    @property
    def successes(self) -> List[BackendSuccess]:
        return [r for r in self.results if isinstance(r, BackendSuccess)]

    @property
    def failures(self) -> List[BackendFailure]:
        return [r for r in self.results if isinstance(r, BackendFailure)]

    def record(self, result: BackendResult) -> bool:
        """Append a result. Returns False for unknown or already-settled backends."""
        if result.backend_id not in self.expected_ids or result.backend_id in self.completed_ids:
            return False
        self.results.append(result)
        self.completed_ids.add(result.backend_id)
        return True

    def aggregate(self) -> Optional[AggregateVerdict]:
        return compute_aggregate(
            (r.verdict.score for r in self.successes), self.total_expected
        )

    def done_event(self) -> DoneEvent:
        failures = self.failures
        return DoneEvent(
            completed_count=len(self.successes),
            failed_count=len(failures),
            failed_backends=[f.display_name for f in failures],
        )


class StreamingAggregator:
    """
    Wraps a dispatcher round as an ordered event stream.

    Usage:
        aggregator = StreamingAggregator(dispatcher)
        async for event in aggregator.stream(request):
            send(format_sse(event))
    """

    def __init__(self, dispatcher: ScorerDispatcher):
        self._dispatcher = dispatcher

    async def stream(self, request: EvaluationRequest) -> AsyncIterator[GradingEvent]:
        """
        Run one grading round and yield its events.

        Raises:
            ConfigurationError: on the first iteration, before any backend
                is called, if the request fails pre-flight validation.
        """
        validate_request(request)
        session = GradingSession(self._dispatcher.backends)
        logger.info(
            f"Grading round for '{request.criterion_id}' across {session.total_expected} backends"
        )

        results = self._dispatcher.dispatch(request)
        try:
            async for result in results:
                if not session.record(result):
                    logger.warning(f"Ignoring duplicate result for {result.backend_id}")
                    continue

                if isinstance(result, BackendSuccess):
                    yield GradeEvent(**result.to_grade().model_dump())
                    yield AverageEvent(**session.aggregate().model_dump())
                else:
                    yield ErrorEvent(
                        backend_id=result.backend_id,
                        display_name=result.display_name,
                        message=result.error,
                    )

                if session.is_complete:
                    break
        finally:
            # Leaves in-flight backend calls running.
            await results.aclose()

        done = session.done_event()
        logger.info(
            f"Grading round for '{request.criterion_id}' done: "
            f"{done.completed_count} succeeded, {done.failed_count} failed"
        )
        yield done

    async def collect(self, request: EvaluationRequest) -> RoundSummary:
        """Run a full round without streaming and return the final picture."""
        summary = RoundSummary()
        async for event in self.stream(request):
            if isinstance(event, GradeEvent):
                summary.grades.append(event.to_grade())
            elif isinstance(event, AverageEvent):
                summary.average = event.to_aggregate()
            elif isinstance(event, ErrorEvent):
                summary.failures.append(
                    BackendFailureInfo(
                        backend_id=event.backend_id,
                        display_name=event.display_name,
                        error=event.message,
                    )
                )
        return summary


def format_sse(event: GradingEvent) -> str:
    """Render one event as a server-sent-events frame."""
    return f"data: {json.dumps(event.to_json_dict())}\n\n"
