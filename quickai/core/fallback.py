"""Credential ordering and the attempt sequence across them.

Only an authentication failure on the primary key moves on to the
secondary key. Any other failure ends the sequence: most non-auth
failures are provider-side, and a second key would spend another idle
window on the same outage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from .cancel import CancelSignal
from .executor import StreamExecutor
from .llm_errors import AuthenticationFailure, ConfigurationError, LLMError, StreamCancelled
from .message import M, emit
from .providers import get_provider
from .session import Session

logger = logging.getLogger(__name__)

NO_KEY_MESSAGE = "Configure an API key to use this provider."
SECONDARY_FALLBACK_MESSAGE = "Primary key failed. Trying secondary key..."
EXHAUSTED_MESSAGE = "All configured API keys failed. Verify credentials and provider status."


class KeyKind(StrEnum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class ApiKeyCandidate:
    key: str
    kind: KeyKind

    def __repr__(self) -> str:
        return f"ApiKeyCandidate(kind={self.kind.value}, key=****{self.key[-4:]})"


def enumerate_api_keys(primary: str | None, secondary: str | None) -> list[ApiKeyCandidate]:
    """Primary first, then secondary if present and different. Blank keys are skipped."""
    candidates: list[ApiKeyCandidate] = []
    if primary and primary.strip():
        candidates.append(ApiKeyCandidate(primary, KeyKind.PRIMARY))
    if secondary and secondary.strip() and secondary != primary:
        candidates.append(ApiKeyCandidate(secondary, KeyKind.SECONDARY))
    return candidates


def run_with_fallback(session: Session, executor: StreamExecutor, cancel: CancelSignal) -> None:
    """Stream *session*'s prompt, trying each configured key in order.

    Leaves the session Completed or Failed. Returns silently once *cancel*
    is set; cancellation is never reported as an error.
    """
    snapshot = session.snapshot
    try:
        provider = get_provider(snapshot.provider)
    except ConfigurationError:
        emit(M.AERR, f"Unsupported provider: {snapshot.provider}")
        session.set_error(f"Unsupported provider: {snapshot.provider}", cancel)
        return

    session.set_status(f"Requesting from {provider.name}...", cancel)

    prompt = session.snapshot_prompt()
    candidates = enumerate_api_keys(snapshot.primary_key, snapshot.secondary_key)
    if not candidates:
        session.set_error(NO_KEY_MESSAGE, cancel)
        return
    has_secondary = any(c.kind == KeyKind.SECONDARY for c in candidates)

    for candidate in candidates:
        if cancel.is_set():
            return

        emit(M.QREQ, f"[{provider.name}] model={snapshot.model} key={candidate.kind.value}")
        try:
            started = False
            for fragment in executor.execute(provider, snapshot, prompt, candidate.key, cancel):
                if not started:
                    emit(M.QSTR, f"[{provider.name}] first fragment")
                    started = True
                session.append(fragment, cancel)
            if session.mark_completed(cancel):
                emit(M.QEND, f"[{provider.name}] completed ({len(session.snapshot_response())} chars)")
            return
        except StreamCancelled:
            logger.debug("Attempt cancelled for %r", session.raw_query)
            return
        except AuthenticationFailure as e:
            if cancel.is_set():
                return
            if candidate.kind == KeyKind.PRIMARY and has_secondary:
                emit(M.AFBK, f"[{provider.name}] primary key rejected, trying secondary key")
                session.clear_buffer(cancel)
                session.set_status(SECONDARY_FALLBACK_MESSAGE, cancel)
                continue
            emit(M.AERR, f"[{provider.name}] {e}")
            session.set_error(str(e), cancel)
        except LLMError as e:
            if cancel.is_set():
                return
            emit(M.AERR, f"[{provider.name}] {e.error_class}: {e}")
            session.set_error(f"Request failed: {e}", cancel)
        except Exception as e:
            if cancel.is_set():
                return
            logger.exception("Unexpected failure streaming from %s", provider.name)
            session.set_error(f"Request failed: {e}", cancel)
        return

    # Every candidate was skipped over without a terminal outcome.
    if not session.completed and not cancel.is_set():
        session.set_error(EXHAUSTED_MESSAGE, cancel)
