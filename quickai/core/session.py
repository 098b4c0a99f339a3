"""Synchronized state for one in-flight query.

All field access goes through ``self._lock``, held only for the duration
of a read or write. Network I/O and host callbacks always run outside it.

Mutations made by a worker pass the worker's CancelSignal. Once that
signal is cancelled or superseded by a restart, the worker's writes are
dropped and it can no longer trigger a publish.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from .cancel import CancelSignal
from .config import ConfigurationSnapshot
from .message import M, emit
from .publisher import DisplaySummary, RefreshThrottle, SessionState, build_summary

logger = logging.getLogger(__name__)

Runner = Callable[["Session", CancelSignal], None]
Publish = Callable[["Session"], None]


class Session:
    def __init__(
        self,
        raw_query: str,
        prompt: str,
        snapshot: ConfigurationSnapshot,
        runner: Runner,
        publish: Publish,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.raw_query = raw_query
        self.snapshot = snapshot
        self._runner = runner
        self._publish = publish
        self._lock = threading.Lock()
        self._prompt = prompt
        self._buffer: list[str] = []
        self._status: str | None = None
        self._has_error = False
        self._completed = False
        self._state = SessionState.EMPTY
        self._cancel = CancelSignal()
        self._throttle = RefreshThrottle(clock=clock)
        self._thread: threading.Thread | None = None

    # ── read access ──────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def completed(self) -> bool:
        with self._lock:
            return self._completed

    @property
    def has_error(self) -> bool:
        with self._lock:
            return self._has_error

    @property
    def status(self) -> str | None:
        with self._lock:
            return self._status

    @property
    def cancel_signal(self) -> CancelSignal:
        with self._lock:
            return self._cancel

    def snapshot_prompt(self) -> str:
        with self._lock:
            return self._prompt

    def snapshot_response(self) -> str:
        with self._lock:
            return "".join(self._buffer)

    def summary(self, provider: str, model: str) -> DisplaySummary:
        with self._lock:
            return build_summary(
                response="".join(self._buffer),
                status=self._status,
                state=self._state,
                completed=self._completed,
                has_error=self._has_error,
                provider=provider,
                model=model,
            )

    # ── lifecycle ────────────────────────────────────────────────────

    def start(self) -> None:
        with self._lock:
            if self._state != SessionState.EMPTY:
                return
            self._state = SessionState.PROMPTING
            signal = self._cancel
        self._launch(signal)

    def restart(self) -> bool:
        """Cancel the running attempt sequence and begin a fresh one from the primary key."""
        with self._lock:
            if self._state in (SessionState.EMPTY, SessionState.CANCELLED):
                return False
            old = self._cancel
            signal = CancelSignal()
            self._cancel = signal
            self._buffer.clear()
            self._status = None
            self._has_error = False
            self._completed = False
            self._state = SessionState.PROMPTING
            self._throttle.reset()
        old.cancel()
        emit(M.QRST, f"Restarting query: {self.raw_query}", truncate=120)
        self._launch(signal)
        return True

    def update_prompt(self, prompt: str) -> bool:
        with self._lock:
            if prompt == self._prompt:
                return False
            self._prompt = prompt
        return self.restart()

    def cancel(self) -> None:
        with self._lock:
            if self._state == SessionState.CANCELLED:
                return
            self._state = SessionState.CANCELLED
            signal = self._cancel
        signal.cancel()
        logger.debug("Session cancelled: %s", self.raw_query)

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the current worker thread; True once it has exited."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _launch(self, signal: CancelSignal) -> None:
        thread = threading.Thread(
            target=self._run,
            args=(signal,),
            name=f"quickai-stream-{id(signal):x}",
            daemon=True,
        )
        self._thread = thread
        thread.start()

    def _run(self, signal: CancelSignal) -> None:
        try:
            self._runner(self, signal)
        except Exception as e:
            logger.exception("Streaming worker crashed for %r", self.raw_query)
            self.set_error(f"Request failed: {e}", signal)

    # ── mutation ─────────────────────────────────────────────────────

    def _accepts(self, signal: CancelSignal | None) -> bool:
        # Caller holds self._lock.
        if self._state == SessionState.CANCELLED:
            return False
        if signal is None:
            return True
        return signal is self._cancel and not signal.is_set()

    def _notify(self, signal: CancelSignal | None) -> None:
        if signal is not None and signal.is_set():
            return
        self._publish(self)

    def append(self, fragment: str, signal: CancelSignal | None = None) -> bool:
        if not fragment:
            return False
        with self._lock:
            if not self._accepts(signal):
                return False
            self._buffer.append(fragment)
            self._status = None
            self._state = SessionState.STREAMING
            publish = self._throttle.record_fragment()
        if publish:
            self._notify(signal)
        return True

    def clear_buffer(self, signal: CancelSignal | None = None) -> bool:
        with self._lock:
            if not self._accepts(signal):
                return False
            self._buffer.clear()
            return True

    def set_status(self, message: str, signal: CancelSignal | None = None) -> bool:
        with self._lock:
            if not self._accepts(signal):
                return False
            self._status = message
            self._has_error = False
            if self._state == SessionState.EMPTY:
                self._state = SessionState.PROMPTING
        self._notify(signal)
        return True

    def set_error(self, message: str, signal: CancelSignal | None = None) -> bool:
        with self._lock:
            if not self._accepts(signal):
                return False
            self._status = message
            self._has_error = True
            self._state = SessionState.FAILED
            self._throttle.force()
        self._notify(signal)
        return True

    def mark_completed(self, signal: CancelSignal | None = None) -> bool:
        with self._lock:
            if not self._accepts(signal):
                return False
            self._completed = True
            self._state = SessionState.COMPLETED
            self._throttle.force()
        self._notify(signal)
        return True
