"""Provider wire schemas: request payload shape and SSE fragment extraction.

Each schema is one small class. Adding a provider that speaks an existing
schema only needs a registry entry; a new wire format needs one more
subclass here plus an entry in ``_SCHEMAS``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

if TYPE_CHECKING:
    from .config import ConfigurationSnapshot
    from .providers import ProviderDescriptor


class SchemaType(StrEnum):
    OPENAI_CHAT = "OpenAIChat"
    COHERE_CHAT = "CohereChat"
    GOOGLE_GENERATIVE = "GoogleGenerative"


class WireSchema(ABC):
    tag: SchemaType

    @abstractmethod
    def build_payload(self, snapshot: ConfigurationSnapshot, prompt: str) -> dict[str, Any]: ...

    @abstractmethod
    def extract_fragment(self, data: Any) -> str | None: ...

    def build_url(self, provider: ProviderDescriptor, snapshot: ConfigurationSnapshot) -> str:
        return provider.endpoint


def _first(items: Any) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


def _as_text(value: Any) -> str | None:
    return value if isinstance(value, str) else None


class OpenAIChatSchema(WireSchema):
    tag = SchemaType.OPENAI_CHAT

    def build_payload(self, snapshot: ConfigurationSnapshot, prompt: str) -> dict[str, Any]:
        return {
            "model": snapshot.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": True,
            "temperature": snapshot.temperature,
            "max_tokens": snapshot.max_tokens,
        }

    def extract_fragment(self, data: Any) -> str | None:
        if not isinstance(data, dict):
            return None
        choice = _first(data.get("choices"))
        if not isinstance(choice, dict):
            return None
        delta = choice.get("delta")
        if isinstance(delta, dict):
            text = _as_text(delta.get("content"))
            if text is not None:
                return text
        message = choice.get("message")
        if isinstance(message, dict):
            return _as_text(message.get("content"))
        return None


class CohereChatSchema(WireSchema):
    tag = SchemaType.COHERE_CHAT

    def build_payload(self, snapshot: ConfigurationSnapshot, prompt: str) -> dict[str, Any]:
        return {
            "model": snapshot.model,
            "message": prompt,
            "stream": True,
            "temperature": snapshot.temperature,
            "max_tokens": snapshot.max_tokens,
        }

    def extract_fragment(self, data: Any) -> str | None:
        if not isinstance(data, dict):
            return None
        event_type = data.get("event_type")
        if isinstance(event_type, str):
            kind = event_type.lower()
            if kind == "text-generation":
                text = _as_text(data.get("text"))
                if text is not None:
                    return text
            elif kind == "stream-end":
                # End of content; the line stream itself still decides termination.
                return None
        return _as_text(data.get("text"))


class GoogleGenerativeSchema(WireSchema):
    tag = SchemaType.GOOGLE_GENERATIVE

    def build_payload(self, snapshot: ConfigurationSnapshot, prompt: str) -> dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": snapshot.temperature,
                "maxOutputTokens": snapshot.max_tokens,
            },
        }

    def build_url(self, provider: ProviderDescriptor, snapshot: ConfigurationSnapshot) -> str:
        # Model lives in the path; alt=sse switches the reply from a JSON array to SSE lines.
        model = quote(snapshot.model, safe="-._~")
        return f"{provider.endpoint}/models/{model}:streamGenerateContent?alt=sse"

    def extract_fragment(self, data: Any) -> str | None:
        if not isinstance(data, dict):
            return None
        candidate = _first(data.get("candidates"))
        if not isinstance(candidate, dict):
            return None
        content = candidate.get("content")
        if not isinstance(content, dict):
            return None
        part = _first(content.get("parts"))
        if not isinstance(part, dict):
            return None
        return _as_text(part.get("text"))


_SCHEMAS: dict[SchemaType, WireSchema] = {
    s.tag: s for s in (OpenAIChatSchema(), CohereChatSchema(), GoogleGenerativeSchema())
}


def get_schema(tag: SchemaType | str) -> WireSchema:
    try:
        return _SCHEMAS[SchemaType(tag)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown wire schema '{tag}'") from None
