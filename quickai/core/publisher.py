"""Refresh pacing and display formatting for a session's current state."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from .constants import CHUNKS_PER_REFRESH, MIN_REFRESH_INTERVAL, SUBTITLE_MAX_CHARS, TITLE_MAX_CHARS


class SessionState(StrEnum):
    EMPTY = "empty"
    PROMPTING = "prompting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DisplaySummary:
    title: str
    subtitle: str
    text: str = ""
    state: SessionState = SessionState.EMPTY
    completed: bool = False
    has_error: bool = False


class RefreshThrottle:
    """Decides whether a received fragment warrants a host re-render.

    Publishes once CHUNKS_PER_REFRESH fragments have accumulated or
    MIN_REFRESH_INTERVAL has passed since the last publish, whichever
    comes first. Not thread-safe; the owning session guards it.
    """

    def __init__(
        self,
        chunks_per_refresh: int = CHUNKS_PER_REFRESH,
        min_interval: float = MIN_REFRESH_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.chunks_per_refresh = chunks_per_refresh
        self.min_interval = min_interval
        self._clock = clock
        self.chunks_since_publish = 0
        self.last_publish = clock()

    def reset(self) -> None:
        self.chunks_since_publish = 0
        self.last_publish = self._clock()

    def record_fragment(self) -> bool:
        self.chunks_since_publish += 1
        now = self._clock()
        if self.chunks_since_publish >= self.chunks_per_refresh or now - self.last_publish >= self.min_interval:
            self.chunks_since_publish = 0
            self.last_publish = now
            return True
        return False

    def force(self) -> bool:
        """Completion and error transitions always publish."""
        self.chunks_since_publish = 0
        self.last_publish = self._clock()
        return True


def truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def build_summary(
    *,
    response: str,
    status: str | None,
    state: SessionState,
    completed: bool,
    has_error: bool,
    provider: str,
    model: str,
) -> DisplaySummary:
    origin = f"{provider} · {model}"

    if response:
        lines = [ln for ln in response.replace("\r", "\n").split("\n") if ln]
        if lines:
            title = truncate(lines[0], TITLE_MAX_CHARS)
            tail = origin if completed else "Streaming..."
            if len(lines) > 1:
                subtitle = f"{truncate(lines[1], SUBTITLE_MAX_CHARS)} | {tail}"
            else:
                subtitle = tail
        else:
            title = truncate(response, TITLE_MAX_CHARS)
            subtitle = origin if completed else "Streaming..."
    else:
        title = status or "Streaming response..."
        subtitle = "Request failed." if has_error else origin

    return DisplaySummary(
        title=title,
        subtitle=subtitle,
        text=response,
        state=state,
        completed=completed,
        has_error=has_error,
    )
