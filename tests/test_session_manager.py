"""Tests for quickai.core.session_manager: the host-facing engine facade."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock, patch

import pytest

from quickai.core.config import QuickAIConfig
from quickai.core.host import Host, NullHost
from quickai.core.llm_errors import StreamCancelled
from quickai.core.publisher import SessionState
from quickai.core.session_manager import EMPTY_PROMPT_TITLE, NO_KEY_TITLE, SessionManager

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _RecordingHost(Host):
    def __init__(self, copy_ok: bool = True):
        self.rerenders: list[str] = []
        self.transient: list[str] = []
        self.full_text: list[tuple[str, str]] = []
        self.copied: list[str] = []
        self.copy_ok = copy_ok

    def request_rerender(self, raw_query: str) -> None:
        self.rerenders.append(raw_query)

    def notify_transient(self, message: str) -> None:
        self.transient.append(message)

    def show_full_text(self, title: str, text: str) -> None:
        self.full_text.append((title, text))

    def copy_text(self, text: str) -> bool:
        self.copied.append(text)
        return self.copy_ok


class _FakeExecutor:
    """Yields canned fragments; with ``hold`` set, stalls until cancelled."""

    def __init__(self, fragments=("Hello", " world"), hold=False):
        self.fragments = list(fragments)
        self.hold = hold
        self.transport = MagicMock()
        self.prompts: list[str] = []
        self.entered = threading.Event()

    def execute(self, provider, snapshot, prompt, credential, cancel):
        self.prompts.append(prompt)
        self.entered.set()
        yield from self.fragments
        if self.hold:
            cancel.wait(5)
            raise StreamCancelled()


def _manager(executor=None, host=None, config=None):
    host = host or _RecordingHost()
    executor = executor or _FakeExecutor()
    config = config or QuickAIConfig(primary_key="pk")
    return SessionManager(host, config, executor=executor), host, executor


# ---------------------------------------------------------------------------
# submit / poll
# ---------------------------------------------------------------------------


def test_submit_streams_to_completion():
    manager, host, executor = _manager()
    session = manager.submit("ai hi there", "hi there")
    assert session is not None
    assert manager.wait(2)

    summary = manager.poll("ai hi there")
    assert summary.completed
    assert summary.text == "Hello world"
    assert summary.subtitle == "Groq · llama-3.1-8b-instant"
    assert executor.prompts == ["hi there"]
    assert "ai hi there" in host.rerenders


def test_empty_prompt_starts_nothing():
    manager, host, executor = _manager()
    assert manager.submit("ai ", "  ") is None
    assert manager.active_session is None
    assert executor.prompts == []


def test_resubmitting_same_query_reuses_session():
    manager, _, executor = _manager()
    first = manager.submit("ai q", "q")
    manager.wait(2)
    second = manager.submit("ai q", "q")
    assert first is second
    assert executor.prompts == ["q"]


def test_query_change_cancels_previous_session():
    executor = _FakeExecutor(fragments=["partial"], hold=True)
    manager, _, _ = _manager(executor=executor)
    first = manager.submit("ai one", "one")
    assert executor.entered.wait(2)

    second = manager.submit("ai two", "two")
    assert first.join(2)
    assert first.state == SessionState.CANCELLED
    assert manager.poll("ai one") is None
    assert manager.active_session is second
    manager.dispose()


def test_refresh_pending_cleared_by_poll():
    manager, _, _ = _manager()
    manager.submit("ai q", "q")
    manager.wait(2)
    assert manager.refresh_pending
    manager.poll("ai q")
    assert not manager.refresh_pending


def test_poll_for_unknown_query_is_none():
    manager, _, _ = _manager()
    assert manager.poll("ai nothing") is None


# ---------------------------------------------------------------------------
# restart / reset / configuration
# ---------------------------------------------------------------------------


def test_restart_reissues_request():
    manager, _, executor = _manager()
    manager.submit("ai q", "q")
    manager.wait(2)
    assert manager.restart()
    manager.wait(2)
    assert executor.prompts == ["q", "q"]
    assert manager.poll("ai q").text == "Hello world"


def test_restart_without_session():
    manager, _, _ = _manager()
    assert manager.restart() is False


def test_reset_cancels_and_forgets():
    executor = _FakeExecutor(hold=True)
    manager, _, _ = _manager(executor=executor)
    session = manager.submit("ai q", "q")
    executor.entered.wait(2)
    manager.reset()
    assert manager.active_session is None
    assert session.join(2)
    assert session.state == SessionState.CANCELLED


def test_apply_configuration_drops_session_and_uses_new_settings():
    manager, _, _ = _manager()
    session = manager.submit("ai q", "q")
    manager.wait(2)

    manager.apply_configuration(QuickAIConfig(provider="cohere", primary_key="co", model="command-r"))
    assert manager.active_session is None
    assert session.state == SessionState.CANCELLED
    assert manager.config.provider == "Cohere"

    fresh = manager.submit("ai q", "q")
    assert fresh is not session
    assert fresh.snapshot.model == "command-r"
    manager.wait(2)


def test_apply_none_restores_defaults():
    manager, _, _ = _manager()
    manager.apply_configuration(None)
    assert manager.config == QuickAIConfig()


# ---------------------------------------------------------------------------
# preview
# ---------------------------------------------------------------------------


def test_preview_empty_prompt():
    manager, _, _ = _manager()
    assert manager.preview("ai", "").title == EMPTY_PROMPT_TITLE


def test_preview_without_key_is_error():
    manager, _, _ = _manager(config=QuickAIConfig())
    summary = manager.preview("ai hi", "hi")
    assert summary.title == NO_KEY_TITLE
    assert summary.has_error


def test_preview_ready_to_ask():
    manager, _, _ = _manager()
    summary = manager.preview("ai hi", "hi")
    assert summary.title == "hi"
    assert summary.subtitle == "Press Enter to ask Groq · llama-3.1-8b-instant"


def test_preview_shows_active_session_and_discards_stale_one():
    manager, _, _ = _manager()
    session = manager.submit("ai q", "q")
    manager.wait(2)
    assert manager.preview("ai q", "q").text == "Hello world"

    manager.preview("ai qq", "qq")
    assert manager.active_session is None
    assert session.state == SessionState.CANCELLED


# ---------------------------------------------------------------------------
# copy / full text
# ---------------------------------------------------------------------------


def test_copy_response_notifies_on_success():
    manager, host, _ = _manager()
    manager.submit("ai q", "q")
    manager.wait(2)
    assert manager.copy_response("ai q") is True
    assert host.copied == ["Hello world"]
    assert host.transient == ["Response copied to clipboard."]


def test_copy_response_reports_failure():
    manager, host, _ = _manager(host=_RecordingHost(copy_ok=False))
    manager.submit("ai q", "q")
    manager.wait(2)
    assert manager.copy_response("ai q") is False
    assert host.full_text == [("QuickAI", "Unable to copy response.")]


def test_copy_and_show_need_matching_query_with_text():
    manager, host, _ = _manager()
    assert manager.copy_response("ai q") is False
    assert manager.show_full_response("ai q") is False
    assert host.copied == []
    assert host.full_text == []


def test_show_full_response():
    manager, host, _ = _manager()
    manager.submit("ai q", "q")
    manager.wait(2)
    assert manager.show_full_response("ai q")
    assert host.full_text == [("QuickAI Response", "Hello world")]


# ---------------------------------------------------------------------------
# lifecycle
# ---------------------------------------------------------------------------


def test_dispose_rejects_further_submits():
    manager, _, _ = _manager()
    manager.dispose()
    manager.dispose()
    with pytest.raises(RuntimeError):
        manager.submit("ai q", "q")


def test_owned_transport_closed_on_exit():
    with patch("quickai.core.session_manager.Transport") as transport_cls:
        with SessionManager(_RecordingHost(), QuickAIConfig(primary_key="pk")):
            pass
    transport_cls.return_value.close.assert_called_once()


def test_injected_executor_transport_not_closed():
    executor = _FakeExecutor()
    with SessionManager(NullHost(), QuickAIConfig(primary_key="pk"), executor=executor):
        pass
    executor.transport.close.assert_not_called()


def test_rerender_failure_is_contained():
    host = _RecordingHost()
    host.request_rerender = MagicMock(side_effect=RuntimeError("host gone"))
    manager, _, _ = _manager(host=host)
    manager.submit("ai q", "q")
    assert manager.wait(2)
    assert manager.poll("ai q").completed
