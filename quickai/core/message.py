import sys
import threading
from datetime import datetime
from enum import StrEnum


class M(StrEnum):
    # ── Request lifecycle ──
    QREQ = "QREQ"  # request issued to provider (provider, model, key kind)
    QSTR = "QSTR"  # first fragment received
    QEND = "QEND"  # stream completed
    QCAN = "QCAN"  # session cancelled / replaced
    QRST = "QRST"  # session restarted

    # ── Failures ──
    AFBK = "AFBK"  # credential fallback (primary -> secondary)
    AERR = "AERR"  # provider or request error
    ATMO = "ATMO"  # idle timeout fired

    # ── System / Infrastructure ──
    SINF = "SINF"  # system info
    SWRN = "SWRN"  # system warning
    SERR = "SERR"  # system error
    SCFG = "SCFG"  # config message
    SKEY = "SKEY"  # key store operation


_enabled = True
_print_fallback = True
_print_lock = threading.Lock()


def set_enabled(value: bool) -> None:
    global _enabled
    _enabled = value


def set_print_fallback(value: bool) -> None:
    """Disable printing while a live renderer owns the terminal.

    Any print() to stdout while rich.Live is redrawing tears the display,
    so the CLI turns printing off for the duration of a streamed answer.
    """
    global _print_fallback
    _print_fallback = value


def _ts() -> str:
    return datetime.now().strftime("%H:%M:%S")


def emit(code: M, message: str, *, truncate: int = 0) -> None:
    if not _enabled:
        return
    if truncate > 0 and len(message) > truncate:
        message = message[:truncate] + f"... [{len(message) - truncate} chars]"
    if not _print_fallback:
        return
    with _print_lock:
        print(f"{{{code.value}}}{_ts()} {message}", file=sys.stderr, flush=True)
