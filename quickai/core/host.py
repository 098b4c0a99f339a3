from __future__ import annotations

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class Host(ABC):
    """Callbacks the engine makes into the front end that polls it.

    ``request_rerender`` is a hint that fresh state is available for
    *raw_query*; the host answers it by calling ``SessionManager.poll``.
    The engine never pushes text to a renderer directly.
    """

    @abstractmethod
    def request_rerender(self, raw_query: str) -> None: ...

    def notify_transient(self, message: str) -> None:
        logger.info("%s", message)

    def show_full_text(self, title: str, text: str) -> None:
        logger.info("%s: %s", title, text)

    def copy_text(self, text: str) -> bool:
        """Place *text* on the clipboard. Hosts without a clipboard return False."""
        return False


class NullHost(Host):
    """Host that ignores refresh hints; for headless use and tests."""

    def request_rerender(self, raw_query: str) -> None:
        pass
