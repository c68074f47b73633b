"""
Retry Coordinator — re-runs the pipeline for exactly one backend.

A retry is a self-contained request/response: it holds no session and
never touches results other backends already delivered. Per backend, a
round moves Pending -> Succeeded | Failed, and a retry moves it back to
Pending. Retrying a backend that already succeeded is allowed; deciding
whether to offer that is up to the caller.
"""
from __future__ import annotations

import logging
from typing import Sequence

from app.agent.aggregator import compute_aggregate
from app.agent.dispatcher import ScorerDispatcher, validate_request
from app.models.schemas import AggregateVerdict, BackendResult, EvaluationRequest, Verdict

logger = logging.getLogger(__name__)


class RetryCoordinator:
    def __init__(self, dispatcher: ScorerDispatcher):
        self._dispatcher = dispatcher

    async def retry(self, request: EvaluationRequest, backend_id: str) -> BackendResult:
        """
        Score the request with one named backend.

        Raises:
            ConfigurationError: invalid request or unknown backend id. Backend
                failures are returned as BackendFailure, not raised.
        """
        validate_request(request)
        backend = self._dispatcher.get_backend(backend_id)
        logger.info(f"Retrying '{request.criterion_id}' on {backend.display_name}")
        return await self._dispatcher.score_one(request, backend)


def fold_success(
    previous_scores: Sequence[int], verdict: Verdict, total_expected: int
) -> AggregateVerdict:
    """
    Aggregate after adding a retried backend's verdict as one more success.

    ``previous_scores`` are the scores of the successes the caller already
    holds for the round; they are left as they are.
    """
    return compute_aggregate([*previous_scores, verdict.score], total_expected)
