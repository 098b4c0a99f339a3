from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import StrEnum

from .llm_errors import ConfigurationError
from .schemas import SchemaType, WireSchema, get_schema

logger = logging.getLogger(__name__)


class CredentialTransport(StrEnum):
    HEADER = "header"
    URL_QUERY = "url-query"


@dataclass(frozen=True)
class ProviderDescriptor:
    name: str
    endpoint: str
    schema_type: SchemaType = SchemaType.OPENAI_CHAT
    credential_transport: CredentialTransport = CredentialTransport.HEADER
    extra_headers: dict[str, str] = field(default_factory=dict)

    @property
    def schema(self) -> WireSchema:
        return get_schema(self.schema_type)


_BUILTIN: tuple[ProviderDescriptor, ...] = (
    ProviderDescriptor("Groq", "https://api.groq.com/openai/v1/chat/completions"),
    ProviderDescriptor("Together", "https://api.together.xyz/v1/chat/completions"),
    ProviderDescriptor("Fireworks", "https://api.fireworks.ai/inference/v1/chat/completions"),
    ProviderDescriptor(
        "OpenRouter",
        "https://openrouter.ai/api/v1/chat/completions",
        extra_headers={
            "HTTP-Referer": "https://github.com/quickai/quickai",
            "X-Title": "QuickAI",
        },
    ),
    ProviderDescriptor("Cohere", "https://api.cohere.com/v1/chat", SchemaType.COHERE_CHAT),
    ProviderDescriptor(
        "Google",
        "https://generativelanguage.googleapis.com/v1beta",
        SchemaType.GOOGLE_GENERATIVE,
        CredentialTransport.URL_QUERY,
    ),
)

# Keyed by lower-cased name; lookups are case-insensitive.
_PROVIDERS: dict[str, ProviderDescriptor] = {p.name.lower(): p for p in _BUILTIN}
_registry_lock = threading.Lock()


def register_provider(descriptor: ProviderDescriptor) -> None:
    with _registry_lock:
        _PROVIDERS[descriptor.name.lower()] = descriptor
    logger.debug("Registered provider %s (%s)", descriptor.name, descriptor.schema_type)


def list_providers() -> list[str]:
    with _registry_lock:
        return [p.name for p in _PROVIDERS.values()]


def find_provider(name: str) -> ProviderDescriptor | None:
    with _registry_lock:
        return _PROVIDERS.get((name or "").strip().lower())


def get_provider(name: str) -> ProviderDescriptor:
    descriptor = find_provider(name)
    if descriptor is None:
        available = ", ".join(list_providers())
        raise ConfigurationError(f"Unsupported provider: {name} (available: {available})")
    return descriptor
