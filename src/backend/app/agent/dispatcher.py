"""
Scorer Fan-out Dispatcher — one concurrent call per scoring backend.

Per backend the pipeline is:
  1. build the prompt (shared by all backends)
  2. adapter builds the family payload and URL
  3. POST with bearer auth under a per-call deadline
  4. adapter pulls the raw text out of the response envelope
  5. normalizer turns the text into a Verdict

Every error along that path is caught at the per-backend boundary and
becomes a BackendFailure; nothing escapes to sibling calls or the caller.
Results are delivered in first-to-finish order.

Usage:
    dispatcher = ScorerDispatcher(build_backends(settings), settings)
    async for result in dispatcher.dispatch(request):
        ...
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Union

import httpx

from app.agent.backends import BackendDescriptor
from app.config import Settings
from app.exceptions import BackendCallError, ConfigurationError, NormalizationError
from app.models.schemas import (
    BackendFailure,
    BackendResult,
    BackendSuccess,
    EvaluationRequest,
)
from app.services.adapters import get_adapter
from app.services.criteria import get_criterion
from app.services.normalizer import normalize
from app.services.prompts import SYSTEM_PROMPT, build_user_prompt

logger = logging.getLogger(__name__)

# Called once per settled backend, as it settles
ResultCallback = Callable[[BackendResult], Union[None, Awaitable[None]]]

ERROR_BODY_EXCERPT = 300


def validate_request(request: EvaluationRequest) -> None:
    """
    Pre-flight checks, run before any backend is called.

    Raises:
        ConfigurationError: empty evidence or an unknown criterion.
    """
    if not request.evidence_text or not request.evidence_text.strip():
        raise ConfigurationError(
            "No evidence content provided. Please add petition evidence before grading."
        )
    get_criterion(request.criterion_id)


class ScorerDispatcher:
    """
    Fans one EvaluationRequest out to every configured backend.

    The backend list and settings are fixed at construction and shared by
    every round. The only per-instance mutable state is the set of
    in-flight tasks, kept so unobserved calls are not garbage collected.
    """

    def __init__(
        self,
        backends: Sequence[BackendDescriptor],
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not backends:
            raise ConfigurationError("No scoring backends configured")
        self._backends = tuple(backends)
        self._by_id: Dict[str, BackendDescriptor] = {b.backend_id: b for b in self._backends}
        if len(self._by_id) != len(self._backends):
            raise ConfigurationError("Backend ids must be unique")
        self._settings = settings
        self._client = client
        self._owns_client = client is None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def backends(self) -> List[BackendDescriptor]:
        return list(self._backends)

    def get_backend(self, backend_id: str) -> BackendDescriptor:
        try:
            return self._by_id[backend_id]
        except KeyError:
            raise ConfigurationError(f"Unknown backend: {backend_id}") from None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.backend_timeout_seconds)
            )
        return self._client

    async def aclose(self) -> None:
        if self._inflight:
            logger.info(f"Closing dispatcher with {len(self._inflight)} backend call(s) in flight")
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ──────────────────────────────────────────────
    # Per-backend pipeline
    # ──────────────────────────────────────────────

    async def score_one(
        self, request: EvaluationRequest, backend: BackendDescriptor
    ) -> BackendResult:
        """Run the full pipeline for one backend. Never raises."""
        start = time.monotonic()
        deadline = self._settings.backend_timeout_seconds

        try:
            raw = await asyncio.wait_for(self._call_backend(request, backend), timeout=deadline)
            verdict = normalize(raw)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            error = f"{backend.display_name} timed out after {deadline:g}s"
        except httpx.HTTPError as e:
            error = f"{backend.display_name} request failed: {str(e) or type(e).__name__}"
        except BackendCallError as e:
            error = str(e)
        except NormalizationError as e:
            logger.debug(f"[{backend.backend_id}] unparseable output: {e.raw_text[:500]!r}")
            error = f"{backend.display_name} returned an unusable response: {e}"
        except Exception as e:
            logger.exception(f"[{backend.backend_id}] unexpected error")
            error = f"{backend.display_name} failed: {e}"
        else:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.info(
                f"[{backend.backend_id}] {verdict.grade.value} ({verdict.score}) in {duration_ms}ms"
            )
            return BackendSuccess(
                backend_id=backend.backend_id,
                display_name=backend.display_name,
                verdict=verdict,
                duration_ms=duration_ms,
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.warning(f"[{backend.backend_id}] failed after {duration_ms}ms: {error}")
        return BackendFailure(
            backend_id=backend.backend_id,
            display_name=backend.display_name,
            error=error,
            duration_ms=duration_ms,
        )

    async def _call_backend(self, request: EvaluationRequest, backend: BackendDescriptor) -> str:
        adapter = get_adapter(backend.adapter)
        payload = adapter.build_payload(
            backend,
            SYSTEM_PROMPT,
            build_user_prompt(request),
            max_tokens=backend.max_tokens or self._settings.backend_max_tokens,
            temperature=(
                backend.temperature
                if backend.temperature is not None
                else self._settings.backend_temperature
            ),
        )
        headers = {"Content-Type": "application/json"}
        if backend.api_key:
            headers["Authorization"] = f"Bearer {backend.api_key}"

        client = await self._get_client()
        response = await client.post(adapter.endpoint_url(backend), json=payload, headers=headers)

        if not response.is_success:
            raise BackendCallError(
                f"{backend.display_name} API error: {response.status_code} - "
                f"{response.text[:ERROR_BODY_EXCERPT]}",
                status_code=response.status_code,
            )
        try:
            envelope = response.json()
        except ValueError:
            raise BackendCallError(
                f"{backend.display_name} returned a non-JSON response envelope",
                status_code=response.status_code,
            ) from None
        return adapter.extract_text(envelope)

    # ──────────────────────────────────────────────
    # Fan-out
    # ──────────────────────────────────────────────

    async def dispatch(
        self,
        request: EvaluationRequest,
        on_result: Optional[ResultCallback] = None,
    ) -> AsyncIterator[BackendResult]:
        """
        Start every backend call at once and yield results as they settle.

        Closing the iterator early does not cancel the calls already
        started; they run to completion and their results are dropped.
        """
        queue: asyncio.Queue[BackendResult] = asyncio.Queue()

        for backend in self._backends:
            task = asyncio.create_task(
                self._settle(request, backend, queue, on_result),
                name=f"score:{backend.backend_id}",
            )
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

        for _ in range(len(self._backends)):
            yield await queue.get()

    async def _settle(
        self,
        request: EvaluationRequest,
        backend: BackendDescriptor,
        queue: asyncio.Queue,
        on_result: Optional[ResultCallback],
    ) -> None:
        result = await self.score_one(request, backend)
        queue.put_nowait(result)
        if on_result is None:
            return
        try:
            outcome = on_result(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception(f"[{backend.backend_id}] result callback failed")
