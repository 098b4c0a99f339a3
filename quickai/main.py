import logging
import threading
from typing import Any

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import __version__
from .core.config import CONFIG_PATH, QuickAIConfig, ensure_config_file, load_config, with_stored_keys
from .core.host import Host
from .core.key_store import KeyStore, StoredKeys
from .core.llm_errors import ConfigurationError
from .core.message import M, emit, set_print_fallback
from .core.providers import get_provider, list_providers
from .core.publisher import DisplaySummary
from .core.session_manager import SessionManager

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Ask hosted LLM providers and watch the answer stream in.")
console = Console()

# How long the render loop waits for a rerender hint before polling anyway.
_POLL_INTERVAL = 0.25


class ConsoleHost(Host):
    """Terminal front end: rerender hints wake the render loop, which polls the engine."""

    def __init__(self, out: Console) -> None:
        self.console = out
        self._dirty = threading.Event()

    def request_rerender(self, raw_query: str) -> None:
        self._dirty.set()

    def wait_for_refresh(self, timeout: float) -> bool:
        fired = self._dirty.wait(timeout)
        self._dirty.clear()
        return fired

    def notify_transient(self, message: str) -> None:
        self.console.print(Text(message, style="dim"))

    def show_full_text(self, title: str, text: str) -> None:
        self.console.print(Panel(Markdown(text), title=title, title_align="left"))


def _render(summary: DisplaySummary) -> Panel:
    body = Text(summary.text) if summary.text else Text(summary.title, style="red" if summary.has_error else "")
    style = "red" if summary.has_error else ("green" if summary.completed else "cyan")
    return Panel(Group(body), subtitle=Text(summary.subtitle, style="dim"), border_style=style)


@app.callback()
def _global_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@app.command()
def ask(
    prompt: list[str] = typer.Argument(..., help="Question to ask"),
    provider: str = typer.Option("", "--provider", "-p", help="Provider override"),
    model: str = typer.Option("", "--model", "-m", help="Model override"),
    max_tokens: int | None = typer.Option(None, "--max-tokens", help="Max output tokens (16-4096)"),
    temperature: float | None = typer.Option(None, "--temperature", "-t", help="Temperature (0.0-2.0)"),
    timeout: int | None = typer.Option(None, "--timeout", help="Idle timeout in seconds (3-30)"),
) -> None:
    """Stream an answer to PROMPT."""
    text = " ".join(prompt).strip()
    config = _with_overrides(
        load_config(),
        provider=provider or None,
        model=model or None,
        max_tokens=max_tokens,
        temperature=temperature,
        timeout_seconds=timeout,
    )
    if not config.has_api_key():
        emit(M.SERR, f"No API key configured for {config.provider}. Run 'quickai login {config.provider}'.")
        raise typer.Exit(1)

    host = ConsoleHost(console)
    raw_query = f"ai {text}"
    summary: DisplaySummary | None = None

    with SessionManager(host, config) as manager:
        if manager.submit(raw_query, text) is None:
            emit(M.SERR, "Prompt is empty.")
            raise typer.Exit(1)
        set_print_fallback(False)
        try:
            with Live(console=console, refresh_per_second=12, transient=True) as live:
                while True:
                    host.wait_for_refresh(_POLL_INTERVAL)
                    summary = manager.poll(raw_query)
                    if summary is None:
                        break
                    live.update(_render(summary))
                    if summary.completed or summary.has_error:
                        break
        except KeyboardInterrupt:
            manager.cancel_active()
            raise typer.Exit(130)
        finally:
            set_print_fallback(True)

    if summary is None or summary.has_error:
        emit(M.AERR, summary.title if summary else "Request did not complete.")
        raise typer.Exit(1)
    host.show_full_text(f"{config.provider} · {config.model}", summary.text)


@app.command()
def providers() -> None:
    """List supported providers."""
    table = Table(title="Providers")
    table.add_column("Name")
    table.add_column("Schema")
    table.add_column("Key via")
    table.add_column("Stored keys")
    table.add_column("Endpoint", overflow="fold")
    stored = set(KeyStore().list_providers())
    for name in list_providers():
        p = get_provider(name)
        has_keys = "yes" if p.name.lower() in stored else ""
        table.add_row(p.name, p.schema_type.value, p.credential_transport.value, has_keys, p.endpoint)
    console.print(table)


@app.command()
def login(
    provider_name: str = typer.Argument(..., help="Provider to store keys for"),
    primary: str = typer.Option(..., "--primary", prompt=True, hide_input=True, help="Primary API key"),
    secondary: str = typer.Option("", "--secondary", help="Optional fallback API key"),
) -> None:
    """Store API keys for a provider (encrypted at rest)."""
    try:
        descriptor = get_provider(provider_name)
    except ConfigurationError as e:
        emit(M.SERR, str(e))
        raise typer.Exit(1)
    KeyStore().save(
        descriptor.name,
        StoredKeys(primary=primary.strip() or None, secondary=secondary.strip() or None),
    )
    emit(M.SKEY, f"Stored keys for {descriptor.name}")


@app.command()
def logout(provider_name: str = typer.Argument(..., help="Provider to forget keys for")) -> None:
    """Delete stored API keys for a provider."""
    if KeyStore().delete(provider_name):
        emit(M.SKEY, f"Removed keys for {provider_name}")
    else:
        emit(M.SWRN, f"No stored keys for {provider_name}")


@app.command("config")
def show_config() -> None:
    """Show the effective configuration (keys masked)."""
    ensure_config_file()
    cfg = load_config()
    table = Table(title=f"QuickAI {__version__} · {CONFIG_PATH}")
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in cfg.masked().items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


def _with_overrides(config: QuickAIConfig, **overrides: Any) -> QuickAIConfig:
    changes = {k: v for k, v in overrides.items() if v is not None}
    if not changes:
        return config
    # Re-validate so overrides are clamped like file values.
    updated = QuickAIConfig(**{**config.model_dump(), **changes})
    if updated.provider != config.provider:
        updated = with_stored_keys(updated, prefer_stored=True)
    return updated


if __name__ == "__main__":
    app()
