from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator

import requests

from .cancel import CancelSignal
from .config import ConfigurationSnapshot
from .constants import CONNECT_TIMEOUT, ERROR_BODY_EXCERPT, READ_TIMEOUT_GRACE
from .llm_errors import (
    AuthenticationFailure,
    ConfigurationError,
    StreamCancelled,
    TimeoutFailure,
    TransportFailure,
)
from .message import M, emit
from .providers import ProviderDescriptor
from .request_builder import PreparedRequest, build_request
from .sse import iter_fragments
from .transport import Transport

logger = logging.getLogger(__name__)


class IdleWatchdog:
    """Renewable deadline. Fires *on_fire* once if not re-armed within *timeout* seconds.

    One daemon thread per watchdog sleeps until the current deadline;
    ``arm()`` only moves the deadline, so a fast stream costs no extra threads.
    ``disarm()`` is final.
    """

    def __init__(self, timeout: float, on_fire: Callable[[], None]) -> None:
        self.timeout = timeout
        self._on_fire = on_fire
        self._cond = threading.Condition()
        self._deadline = 0.0
        self._thread: threading.Thread | None = None
        self._fired = False
        self._stopped = False

    @property
    def fired(self) -> bool:
        return self._fired

    def arm(self) -> None:
        with self._cond:
            if self._fired or self._stopped:
                return
            self._deadline = time.monotonic() + self.timeout
            if self._thread is None:
                self._thread = threading.Thread(target=self._watch, name="quickai-watchdog", daemon=True)
                self._thread.start()

    def disarm(self) -> None:
        with self._cond:
            self._stopped = True
            self._cond.notify_all()

    def _watch(self) -> None:
        with self._cond:
            while not self._stopped:
                remaining = self._deadline - time.monotonic()
                if remaining <= 0:
                    self._fired = True
                    break
                self._cond.wait(remaining)
            if not self._fired:
                return
        try:
            self._on_fire()
        except Exception:
            logger.debug("Watchdog callback failed", exc_info=True)


class StreamExecutor:
    """Issues one streaming request per (session, credential) and yields text fragments.

    Stateless apart from the shared transport; safe to call from several
    worker threads at once.
    """

    def __init__(self, transport: Transport, connect_timeout: float = CONNECT_TIMEOUT) -> None:
        self.transport = transport
        self.connect_timeout = connect_timeout

    def execute(
        self,
        provider: ProviderDescriptor,
        snapshot: ConfigurationSnapshot,
        prompt: str,
        credential: str,
        cancel: CancelSignal,
    ) -> Iterator[str]:
        """Lazy, finite, not restartable sequence of fragments.

        Raises AuthenticationFailure, TransportFailure, TimeoutFailure or
        ProtocolFailure on failure and StreamCancelled once *cancel* is set.
        The response is closed whenever the generator finishes or is closed.
        """
        if not credential:
            raise ConfigurationError("Configure an API key to use this provider.")
        if cancel.is_set():
            raise StreamCancelled()

        request = build_request(provider, snapshot, prompt, credential)
        idle = snapshot.timeout_seconds
        label = f"{provider.name} · {snapshot.model}"

        responses: list[requests.Response] = []
        responses_lock = threading.Lock()

        def _abort() -> None:
            with responses_lock:
                pending = list(responses)
            for r in pending:
                r.close()

        watchdog = IdleWatchdog(idle, _abort)
        unregister = cancel.on_cancel(_abort)
        watchdog.arm()
        try:
            response = self._post(request, label, idle, cancel, watchdog)
            with responses_lock:
                responses.append(response)
            # A cancel or timeout that fired while headers were pending had nothing to close.
            if cancel.is_set():
                raise StreamCancelled()
            if watchdog.fired:
                raise self._timeout(label, idle)

            self._check_status(response, label)

            try:
                # Raw bytes split on LF only: JSON strings may carry U+2028 and other
                # characters that str.splitlines() treats as line breaks.
                lines = response.iter_lines(delimiter=b"\n")
                for fragment in iter_fragments(lines, provider.schema, cancel):
                    watchdog.arm()
                    yield fragment
            except (requests.exceptions.RequestException, OSError, ValueError, AttributeError) as e:
                # Closing the response from another thread surfaces as any of these.
                if cancel.is_set():
                    raise StreamCancelled() from e
                if watchdog.fired or isinstance(e, requests.exceptions.Timeout):
                    raise self._timeout(label, idle) from e
                raise TransportFailure(f"Stream interrupted for {label}: {e}") from e

            if cancel.is_set():
                raise StreamCancelled()
            if watchdog.fired:
                raise self._timeout(label, idle)
        finally:
            watchdog.disarm()
            unregister()
            _abort()

    def _post(
        self,
        request: PreparedRequest,
        label: str,
        idle: float,
        cancel: CancelSignal,
        watchdog: IdleWatchdog,
    ) -> requests.Response:
        # Neither phase may outlast the idle window; the watchdog cannot abort a
        # request that has no response object yet.
        connect_timeout = min(self.connect_timeout, idle)
        read_timeout = idle + READ_TIMEOUT_GRACE
        try:
            return self.transport.post(
                request.url,
                json=request.body,
                headers=request.headers,
                timeout=(connect_timeout, read_timeout),
                stream=True,
            )
        except (requests.exceptions.ConnectTimeout, requests.exceptions.ReadTimeout) as e:
            if cancel.is_set():
                raise StreamCancelled() from e
            raise self._timeout(label, idle) from e
        except requests.exceptions.ConnectionError as e:
            if cancel.is_set():
                raise StreamCancelled() from e
            if watchdog.fired:
                raise self._timeout(label, idle) from e
            raise TransportFailure(f"Connection error for {label} (server unreachable)") from e
        except requests.exceptions.RequestException as e:
            if cancel.is_set():
                raise StreamCancelled() from e
            raise TransportFailure(f"Request failed for {label}: {e}") from e

    @staticmethod
    def _check_status(response: requests.Response, label: str) -> None:
        status = response.status_code
        if status in (401, 403):
            raise AuthenticationFailure("Authentication failed for the configured API key.")
        if 200 <= status < 300:
            return
        try:
            excerpt = response.text[:ERROR_BODY_EXCERPT]
        except (requests.exceptions.RequestException, OSError, ValueError):
            excerpt = ""
        message = f"HTTP {status} from {label}"
        if excerpt.strip():
            message += f": {excerpt.strip()}"
        raise TransportFailure(message, status_code=status)

    @staticmethod
    def _timeout(label: str, idle: float) -> TimeoutFailure:
        emit(M.ATMO, f"[{label}] No response within {idle:g}s")
        return TimeoutFailure(f"No response from {label} within {idle:g}s.")
