"""Process-wide HTTP transport shared by every session and provider."""

from __future__ import annotations

import logging
import threading
from typing import Any

import requests
from requests.adapters import HTTPAdapter

from .constants import POOL_CONNECTIONS, POOL_MAXSIZE

logger = logging.getLogger(__name__)


class Transport:
    """Pooled ``requests.Session`` with an explicit lifecycle.

    Created once when the engine starts, passed by reference to the
    executor, closed when the engine shuts down. Requests never hold a
    session lock while blocked here.
    """

    def __init__(self, session: requests.Session | None = None) -> None:
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=POOL_CONNECTIONS, pool_maxsize=POOL_MAXSIZE)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self._session = session
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        if self._closed:
            raise RuntimeError("Transport is closed")
        return self._session.post(url, **kwargs)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._session.close()
        logger.debug("Transport closed")

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

