"""
Backend Adapter Set — one adapter per scoring-backend family.

An adapter knows three things about its family: the URL to POST to, the
shape of the request payload, and where the generated text sits in the
response envelope. Everything after extract_text() is family-agnostic.

Families:
  - converse          AWS Bedrock Converse API (nested content array)
  - chat_completions  OpenAI-compatible /chat/completions
  - text_generation   Flat generated-text endpoints (TGI / HF Inference style)
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict

from app.exceptions import ConfigurationError

if TYPE_CHECKING:
    from app.agent.backends import BackendDescriptor


class BackendAdapter(ABC):
    """Maps one backend family's protocol to and from plain text."""

    family: str = ""

    @abstractmethod
    def endpoint_url(self, backend: BackendDescriptor) -> str:
        ...

    @abstractmethod
    def build_payload(
        self,
        backend: BackendDescriptor,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> Dict[str, Any]:
        ...

    @abstractmethod
    def extract_text(self, envelope: Any) -> str:
        """Return the generated text, or "" when the envelope carries none."""


class ConverseAdapter(BackendAdapter):
    family = "converse"

    def endpoint_url(self, backend: BackendDescriptor) -> str:
        return f"{backend.endpoint}/model/{backend.model_id}/converse"

    def build_payload(self, backend, system_prompt, user_prompt, max_tokens, temperature):
        return {
            "system": [{"text": system_prompt}],
            "messages": [
                {"role": "user", "content": [{"text": user_prompt}]},
            ],
            "inferenceConfig": {
                "maxTokens": max_tokens,
                "temperature": temperature,
            },
        }

    def extract_text(self, envelope: Any) -> str:
        # { output: { message: { content: [{ text: "..." }] } } }
        content = _dig(envelope, "output", "message", "content")
        if not isinstance(content, list):
            return ""
        # Reasoning models put a reasoningContent block before the text block.
        for block in content:
            if isinstance(block, dict) and isinstance(block.get("text"), str):
                return block["text"]
        return ""


class ChatCompletionsAdapter(BackendAdapter):
    family = "chat_completions"

    def endpoint_url(self, backend: BackendDescriptor) -> str:
        return f"{backend.endpoint}/chat/completions"

    def build_payload(self, backend, system_prompt, user_prompt, max_tokens, temperature):
        return {
            "model": backend.model_id,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

    def extract_text(self, envelope: Any) -> str:
        choices = _dig(envelope, "choices")
        if not isinstance(choices, list) or not choices:
            return ""
        text = _dig(choices[0], "message", "content")
        return text if isinstance(text, str) else ""


class TextGenerationAdapter(BackendAdapter):
    family = "text_generation"

    TEXT_FIELDS = ("generated_text", "text", "completion", "output")

    def endpoint_url(self, backend: BackendDescriptor) -> str:
        return backend.endpoint

    def build_payload(self, backend, system_prompt, user_prompt, max_tokens, temperature):
        return {
            "inputs": f"{system_prompt}\n\n{user_prompt}",
            "parameters": {
                "max_new_tokens": max_tokens,
                "temperature": temperature,
                "return_full_text": False,
            },
        }

    def extract_text(self, envelope: Any) -> str:
        if isinstance(envelope, list):
            envelope = envelope[0] if envelope else None
        if isinstance(envelope, str):
            return envelope
        if not isinstance(envelope, dict):
            return ""
        for field in self.TEXT_FIELDS:
            value = envelope.get(field)
            if isinstance(value, str):
                return value
        return ""


def _dig(node: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


ADAPTERS: Dict[str, BackendAdapter] = {
    adapter.family: adapter
    for adapter in (ConverseAdapter(), ChatCompletionsAdapter(), TextGenerationAdapter())
}


def get_adapter(family: str) -> BackendAdapter:
    try:
        return ADAPTERS[family]
    except KeyError:
        raise ConfigurationError(f"Unknown backend adapter: {family}") from None
