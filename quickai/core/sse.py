"""SSE frame parsing shared by all provider schemas."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator

from .cancel import CancelSignal
from .llm_errors import ProtocolFailure, StreamCancelled
from .schemas import WireSchema

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


def _decode(raw_line: str | bytes) -> str:
    if isinstance(raw_line, bytes):
        try:
            return raw_line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolFailure(f"Response body is not valid UTF-8: {e}") from e
    return raw_line


def extract_payload(line: str) -> str | None:
    """Return the stripped payload of a ``data:`` line, or None for anything else.

    Lines split on LF alone keep the CR of a CRLF terminator; it is dropped here.
    """
    line = line.rstrip("\r")
    if not line or not line.strip():
        return None
    if line[: len(DATA_PREFIX)].lower() != DATA_PREFIX:
        return None
    payload = line[len(DATA_PREFIX) :].strip()
    return payload or None


def iter_fragments(
    lines: Iterable[str | bytes],
    schema: WireSchema,
    cancel: CancelSignal | None = None,
) -> Iterator[str]:
    """Yield non-empty text fragments from an SSE line stream.

    Ends at the ``[DONE]`` sentinel or when *lines* is exhausted. A frame whose
    JSON fails to parse is skipped; providers emit heartbeats and partial frames.
    Byte lines are decoded strictly as UTF-8; an undecodable line raises
    ProtocolFailure rather than passing replacement characters through.
    Raises StreamCancelled if *cancel* is set before the next line is read.
    """
    iterator = iter(lines)
    while True:
        if cancel is not None and cancel.is_set():
            raise StreamCancelled()
        try:
            raw_line = next(iterator)
        except StopIteration:
            return
        if cancel is not None and cancel.is_set():
            raise StreamCancelled()

        payload = extract_payload(_decode(raw_line))
        if payload is None:
            continue
        if payload.upper() == DONE_SENTINEL:
            return

        try:
            data = json.loads(payload)
        except (json.JSONDecodeError, ValueError):
            logger.debug("Skipping malformed %s frame: %.80s", schema.tag, payload)
            continue

        fragment = schema.extract_fragment(data)
        if fragment:
            yield fragment
