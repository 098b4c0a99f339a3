"""Outbound request construction per provider schema."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from .. import __version__
from .config import ConfigurationSnapshot
from .llm_errors import ConfigurationError
from .providers import CredentialTransport, ProviderDescriptor

USER_AGENT = f"QuickAI/{__version__}"


@dataclass(frozen=True)
class PreparedRequest:
    url: str
    headers: dict[str, str]
    body: dict[str, Any] = field(default_factory=dict)


def prune_none(value: Any) -> Any:
    """Drop None-valued keys recursively so absent options are omitted, not sent as null."""
    if isinstance(value, dict):
        return {k: prune_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [prune_none(v) for v in value if v is not None]
    return value


def build_request(
    provider: ProviderDescriptor,
    snapshot: ConfigurationSnapshot,
    prompt: str,
    credential: str,
) -> PreparedRequest:
    if not credential:
        raise ConfigurationError("Configure an API key to use this provider.")

    schema = provider.schema
    headers: dict[str, str] = {
        "Content-Type": "application/json",
        "Accept": "text/event-stream, application/json",
        "Cache-Control": "no-cache",
        "User-Agent": USER_AGENT,
    }
    url = schema.build_url(provider, snapshot)
    if provider.credential_transport == CredentialTransport.URL_QUERY:
        sep = "&" if "?" in url else "?"
        url = f"{url}{sep}key={quote(credential, safe='')}"
    else:
        headers["Authorization"] = f"Bearer {credential}"
    headers.update(provider.extra_headers)

    return PreparedRequest(
        url=url,
        headers=headers,
        body=prune_none(schema.build_payload(snapshot, prompt)),
    )
