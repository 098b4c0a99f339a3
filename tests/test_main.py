"""Smoke tests for the quickai CLI."""

from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from quickai.core import config as config_mod
from quickai.core.config import QuickAIConfig
from quickai.core.key_store import StoredKeys
from quickai.main import _with_overrides, app

runner = CliRunner()


class _FakeExecutor:
    def __init__(self, *args, **kwargs):
        self.transport = MagicMock()

    def execute(self, provider, snapshot, prompt, credential, cancel):
        yield "Hello"
        yield " world"


@pytest.fixture
def no_key_store(monkeypatch):
    store = type("Store", (), {"load": lambda self, name: None})
    monkeypatch.setattr("quickai.core.key_store.KeyStore", store)


def test_providers_lists_builtins():
    with patch("quickai.main.KeyStore") as store_cls:
        store_cls.return_value.list_providers.return_value = ["groq"]
        result = runner.invoke(app, ["providers"])
    assert result.exit_code == 0
    for name in ("Groq", "Cohere", "Google"):
        assert name in result.output
    assert "yes" in result.output


def test_config_writes_file_and_masks_keys(tmp_path, monkeypatch, no_key_store):
    monkeypatch.setattr(config_mod, "CONFIG_DIR", str(tmp_path))
    monkeypatch.setattr(config_mod, "CONFIG_PATH", str(tmp_path / "config.yaml"))
    monkeypatch.setenv("QUICKAI_PRIMARY_KEY", "gsk_supersecret9876")

    result = runner.invoke(app, ["config"])
    assert result.exit_code == 0
    assert (tmp_path / "config.yaml").exists()
    assert "9876" in result.output
    assert "supersecret" not in result.output


def test_ask_without_key_exits_with_error():
    with patch("quickai.main.load_config", return_value=QuickAIConfig()):
        result = runner.invoke(app, ["ask", "hello"])
    assert result.exit_code == 1


def test_ask_streams_answer():
    with (
        patch("quickai.main.load_config", return_value=QuickAIConfig(primary_key="pk")),
        patch("quickai.core.session_manager.Transport"),
        patch("quickai.core.session_manager.StreamExecutor", _FakeExecutor),
    ):
        result = runner.invoke(app, ["ask", "say", "hello"])
    assert result.exit_code == 0, result.output
    assert "Hello world" in result.output


def test_login_saves_keys():
    with patch("quickai.main.KeyStore") as store_cls:
        result = runner.invoke(app, ["login", "groq", "--primary", "abc", "--secondary", "def"])
    assert result.exit_code == 0
    store_cls.return_value.save.assert_called_once_with("Groq", StoredKeys(primary="abc", secondary="def"))


def test_login_unknown_provider_fails():
    with patch("quickai.main.KeyStore") as store_cls:
        result = runner.invoke(app, ["login", "nope", "--primary", "abc"])
    assert result.exit_code == 1
    store_cls.return_value.save.assert_not_called()


def test_logout_deletes_keys():
    with patch("quickai.main.KeyStore") as store_cls:
        store_cls.return_value.delete.return_value = True
        result = runner.invoke(app, ["logout", "Groq"])
    assert result.exit_code == 0
    store_cls.return_value.delete.assert_called_once_with("Groq")


def test_overrides_are_clamped(no_key_store):
    cfg = _with_overrides(QuickAIConfig(primary_key="pk"), max_tokens=99999, temperature=None)
    assert cfg.max_tokens == 4096
    assert cfg.primary_key == "pk"


def test_no_overrides_returns_same_config():
    cfg = QuickAIConfig()
    assert _with_overrides(cfg, model=None) is cfg
