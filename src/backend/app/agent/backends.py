"""
Scoring backend descriptors.

A descriptor is the static identity of one backend: which endpoint to call,
which model to ask for and which adapter family speaks its protocol. The
list is built once from Settings at startup and shared read-only by every
grading round and retry.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional

from app.config import BackendSettings, Settings
from app.exceptions import ConfigurationError
from app.services.adapters import ADAPTERS


@dataclass(frozen=True)
class BackendDescriptor:
    """Identity and endpoint configuration of one scoring backend."""
    backend_id: str
    display_name: str
    model_id: str
    adapter: str
    endpoint: str = ""
    api_key: str = ""
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None

    def __repr__(self) -> str:
        # Keep the key out of logs and tracebacks.
        return (
            f"BackendDescriptor(backend_id={self.backend_id!r}, "
            f"display_name={self.display_name!r}, adapter={self.adapter!r})"
        )


# ──────────────────────────────────────────────
# Backend library (Bedrock Converse)
# ──────────────────────────────────────────────

BEDROCK_CLAUDE_OPUS = BackendDescriptor(
    backend_id="claude-opus-4-5",
    display_name="Claude Opus 4.5",
    model_id="us.anthropic.claude-opus-4-5-20251101-v1:0",
    adapter="converse",
)

BEDROCK_GEMMA = BackendDescriptor(
    backend_id="gemma-3-12b",
    display_name="Google Gemma 3 12B",
    model_id="google.gemma-3-12b-it",
    adapter="converse",
)

BEDROCK_DEEPSEEK = BackendDescriptor(
    backend_id="deepseek-r1",
    display_name="DeepSeek R1",
    model_id="us.deepseek.r1-v1:0",
    adapter="converse",
)

BEDROCK_MISTRAL = BackendDescriptor(
    backend_id="mistral-large-3",
    display_name="Mistral Large 3",
    model_id="mistral.mistral-large-3-675b-instruct",
    adapter="converse",
)

BEDROCK_LLAMA = BackendDescriptor(
    backend_id="llama4-maverick",
    display_name="Meta Llama 4 Maverick",
    model_id="us.meta.llama4-maverick-17b-instruct-v1:0",
    adapter="converse",
)

BEDROCK_QWEN = BackendDescriptor(
    backend_id="qwen3-235b",
    display_name="Qwen3 235B",
    model_id="qwen.qwen3-235b-a22b-2507-v1:0",
    adapter="converse",
)

DEFAULT_BACKENDS = [
    BEDROCK_CLAUDE_OPUS,
    BEDROCK_GEMMA,
    BEDROCK_DEEPSEEK,
    BEDROCK_MISTRAL,
    BEDROCK_LLAMA,
    BEDROCK_QWEN,
]


def _from_settings(entry: BackendSettings) -> BackendDescriptor:
    return BackendDescriptor(
        backend_id=entry.backend_id,
        display_name=entry.display_name,
        model_id=entry.model_id,
        adapter=entry.adapter,
        endpoint=entry.endpoint,
        api_key=entry.api_key,
        max_tokens=entry.max_tokens,
        temperature=entry.temperature,
    )


def build_backends(settings: Settings) -> List[BackendDescriptor]:
    """
    Resolve the configured backends against the settings.

    Endpoints and keys left empty fall back to the Bedrock runtime for the
    configured region and the Bedrock API key.

    Raises:
        ConfigurationError: a duplicate backend id or an unknown adapter.
    """
    configured = [_from_settings(b) for b in settings.backends] or DEFAULT_BACKENDS

    resolved: List[BackendDescriptor] = []
    seen = set()
    for backend in configured:
        if backend.backend_id in seen:
            raise ConfigurationError(f"Duplicate backend id: {backend.backend_id}")
        if backend.adapter not in ADAPTERS:
            raise ConfigurationError(
                f"Backend {backend.backend_id} uses unknown adapter: {backend.adapter}"
            )
        seen.add(backend.backend_id)
        resolved.append(
            replace(
                backend,
                endpoint=(backend.endpoint or settings.bedrock_endpoint).rstrip("/"),
                api_key=backend.api_key or settings.bedrock_api_key,
            )
        )
    return resolved
