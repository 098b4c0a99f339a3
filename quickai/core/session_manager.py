"""Engine facade called by the host: owns at most one live Session."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from .cancel import CancelSignal
from .config import QuickAIConfig
from .constants import TITLE_MAX_CHARS
from .executor import StreamExecutor
from .fallback import run_with_fallback
from .host import Host
from .message import M, emit
from .publisher import DisplaySummary, SessionState, truncate
from .session import Session
from .transport import Transport

logger = logging.getLogger(__name__)

EMPTY_PROMPT_TITLE = 'Type your question after "ai"'
EMPTY_PROMPT_SUBTITLE = "Example: ai explain recursion in simple terms."
NO_KEY_TITLE = "API key required"
NO_KEY_SUBTITLE = "Run 'quickai login <provider>' or set QUICKAI_PRIMARY_KEY to configure keys."


class SessionManager:
    """Creates, swaps, restarts and cancels sessions as the query text changes.

    ``self._lock`` guards which session is current and the configuration.
    Each Session guards its own state with its own lock; the two are never
    held together across a host callback or network call.
    """

    def __init__(
        self,
        host: Host,
        config: QuickAIConfig | None = None,
        transport: Transport | None = None,
        executor: StreamExecutor | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._host = host
        self._config = config or QuickAIConfig()
        self._owns_transport = transport is None and executor is None
        if executor is not None:
            self._transport = executor.transport
        else:
            self._transport = transport or Transport()
        self._executor = executor or StreamExecutor(self._transport)
        self._clock = clock
        self._lock = threading.Lock()
        self._session: Session | None = None
        self._refresh_pending = False
        self._disposed = False

    # ── read access ──────────────────────────────────────────────────

    @property
    def config(self) -> QuickAIConfig:
        with self._lock:
            return self._config

    @property
    def active_session(self) -> Session | None:
        with self._lock:
            return self._session

    @property
    def refresh_pending(self) -> bool:
        with self._lock:
            return self._refresh_pending

    def poll(self, raw_query: str) -> DisplaySummary | None:
        """Current display state, or None once the query text has moved on."""
        with self._lock:
            session = self._session
            if session is None or session.raw_query != raw_query:
                return None
            self._refresh_pending = False
        return session.summary(session.snapshot.provider, session.snapshot.model)

    def preview(self, raw_query: str, prompt: str) -> DisplaySummary:
        """What the host shows while the user is typing, before and during a request."""
        prompt = (prompt or "").strip()
        with self._lock:
            stale = None
            if self._session is not None and self._session.raw_query != raw_query:
                stale, self._session = self._session, None
            session = self._session
            config = self._config
            if session is not None:
                self._refresh_pending = False
        if stale is not None:
            self._discard(stale)

        if session is not None:
            return session.summary(session.snapshot.provider, session.snapshot.model)
        if not prompt:
            return DisplaySummary(title=EMPTY_PROMPT_TITLE, subtitle=EMPTY_PROMPT_SUBTITLE)
        if not config.has_api_key():
            return DisplaySummary(title=NO_KEY_TITLE, subtitle=NO_KEY_SUBTITLE, has_error=True)
        return DisplaySummary(
            title=truncate(prompt, TITLE_MAX_CHARS),
            subtitle=f"Press Enter to ask {config.provider} · {config.model}",
        )

    # ── inbound operations ───────────────────────────────────────────

    def submit(self, raw_query: str, prompt: str) -> Session | None:
        """Start streaming *prompt* unless a session for *raw_query* already exists.

        A session for a different raw query is cancelled and discarded first.
        Returns the current session, or None for an empty prompt.
        """
        prompt = (prompt or "").strip()
        started = False
        with self._lock:
            if self._disposed:
                raise RuntimeError("SessionManager has been disposed")
            stale = None
            if self._session is not None and self._session.raw_query != raw_query:
                stale, self._session = self._session, None
            session = self._session
            if session is None and prompt:
                session = Session(
                    raw_query,
                    prompt,
                    self._config.snapshot(),
                    runner=self._run,
                    publish=self._trigger_refresh,
                    clock=self._clock,
                )
                self._session = session
                started = True
        if stale is not None:
            self._discard(stale)
        if session is None:
            return None
        if started:
            session.start()
        self._trigger_refresh(session)
        return session

    def restart(self) -> bool:
        with self._lock:
            session = self._session
        if session is None:
            return False
        return session.restart()

    def cancel_active(self) -> None:
        with self._lock:
            session, self._session = self._session, None
            self._refresh_pending = False
        if session is not None:
            self._discard(session)

    reset = cancel_active

    def apply_configuration(self, config: QuickAIConfig | None) -> None:
        """Replace the configuration; None restores defaults. Always drops the active session."""
        with self._lock:
            self._config = config if config is not None else QuickAIConfig()
            session, self._session = self._session, None
            self._refresh_pending = False
            provider, model = self._config.provider, self._config.model
        if session is not None:
            self._discard(session)
        emit(M.SCFG, f"Configuration applied: provider={provider} model={model}")

    def show_full_response(self, raw_query: str) -> bool:
        text = self._response_for(raw_query)
        if not text:
            return False
        self._host.show_full_text("QuickAI Response", text)
        return True

    def copy_response(self, raw_query: str) -> bool:
        text = self._response_for(raw_query)
        if not text or not text.strip():
            return False
        try:
            copied = self._host.copy_text(text)
        except Exception:
            logger.warning("Host clipboard copy failed", exc_info=True)
            copied = False
        if copied:
            self._host.notify_transient("Response copied to clipboard.")
        else:
            self._host.show_full_text("QuickAI", "Unable to copy response.")
        return copied

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the active session's worker exits. True if it did within *timeout*."""
        session = self.active_session
        if session is None:
            return True
        return session.join(timeout)

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            session, self._session = self._session, None
        if session is not None:
            session.cancel()
        if self._owns_transport:
            self._transport.close()

    def __enter__(self) -> SessionManager:
        return self

    def __exit__(self, *exc: object) -> None:
        self.dispose()

    # ── internals ────────────────────────────────────────────────────

    def _run(self, session: Session, cancel: CancelSignal) -> None:
        run_with_fallback(session, self._executor, cancel)

    def _response_for(self, raw_query: str) -> str:
        with self._lock:
            session = self._session
        if session is None or session.raw_query != raw_query:
            return ""
        return session.snapshot_response()

    @staticmethod
    def _discard(session: Session) -> None:
        if session.state != SessionState.CANCELLED:
            emit(M.QCAN, f"Cancelled query: {session.raw_query}", truncate=120)
        session.cancel()

    def _trigger_refresh(self, session: Session) -> None:
        """Ask the host to re-poll, but only for the session that is still current."""
        with self._lock:
            if self._disposed or self._session is not session:
                return
            self._refresh_pending = True
        try:
            self._host.request_rerender(session.raw_query)
        except Exception:
            logger.warning("Host rerender request failed for %r", session.raw_query, exc_info=True)
