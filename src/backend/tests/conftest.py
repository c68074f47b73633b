"""
Shared pytest fixtures.

Scoring backends are replaced by an httpx.MockTransport that routes each
request by host to a scripted behaviour: a delay, then a Converse envelope
with some text, an HTTP error status, or a transport exception.
"""
import asyncio
import json
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx
import pytest

from app.agent.backends import BackendDescriptor
from app.agent.dispatcher import ScorerDispatcher
from app.config import Settings
from app.models.schemas import EvaluationRequest


def verdict_json(grade="strong", score=80, feedback="Solid evidence.", suggestions=None) -> str:
    return json.dumps(
        {
            "grade": grade,
            "score": score,
            "feedback": feedback,
            "suggestions": suggestions if suggestions is not None else ["Add press coverage"],
        }
    )


def converse_envelope(text: str) -> dict:
    return {
        "output": {"message": {"role": "assistant", "content": [{"text": text}]}},
        "stopReason": "end_turn",
    }


@dataclass
class Behaviour:
    text: str = ""
    delay: float = 0.0
    status: int = 200
    raw_body: Optional[str] = None
    error: Optional[type] = None


class FakeBackends:
    """Scripted stand-in for every scoring backend, keyed by URL host."""

    def __init__(self):
        self.behaviours: Dict[str, Behaviour] = {}
        self.requests: List[httpx.Request] = []
        self.completed: List[str] = []

    def script(self, backend_id: str, text: str = "", **kwargs) -> None:
        self.behaviours[f"{backend_id}.test"] = Behaviour(text=text, **kwargs)

    @property
    def called_hosts(self) -> List[str]:
        return [r.url.host for r in self.requests]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        behaviour = self.behaviours[request.url.host]
        if behaviour.delay:
            await asyncio.sleep(behaviour.delay)
        self.completed.append(request.url.host)
        if behaviour.error is not None:
            raise behaviour.error("scripted transport failure", request=request)
        if behaviour.raw_body is not None:
            return httpx.Response(behaviour.status, text=behaviour.raw_body)
        if behaviour.status != 200:
            return httpx.Response(behaviour.status, text="upstream exploded")
        return httpx.Response(200, json=converse_envelope(behaviour.text))


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, bedrock_api_key="test-key", backend_timeout_seconds=5.0)


@pytest.fixture
def fake() -> FakeBackends:
    return FakeBackends()


@pytest.fixture
def make_backends():
    def _make(*backend_ids: str) -> List[BackendDescriptor]:
        return [
            BackendDescriptor(
                backend_id=backend_id,
                display_name=f"Backend {backend_id.upper()}",
                model_id=f"{backend_id}-model",
                adapter="converse",
                endpoint=f"https://{backend_id}.test",
                api_key=f"key-{backend_id}",
            )
            for backend_id in backend_ids
        ]

    return _make


@pytest.fixture
def make_dispatcher(settings, fake):
    def _make(backends: List[BackendDescriptor], **overrides) -> ScorerDispatcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))
        used = settings.model_copy(update=overrides) if overrides else settings
        return ScorerDispatcher(backends, used, client=client)

    return _make


@pytest.fixture
def evaluation_request() -> EvaluationRequest:
    return EvaluationRequest(
        criterion_id="awards",
        criterion_title="Awards",
        policy_text="Awards must be nationally or internationally recognized for excellence.",
        evidence_text=(
            "The applicant received the 2023 IEEE Outstanding Engineer Award, "
            "selected from 400 nominees nationwide."
        ),
        exhibits_text="",
        assume_exhibits_exist=False,
    )
