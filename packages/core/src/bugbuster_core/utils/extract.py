"""Recovering structured answers from agent transcripts.

Coding agents print far more than their answer: startup banners, tool-call
echoes (which often contain the very JSON shape we asked for, filled with
placeholder values), reasoning text, and finally the answer itself. A greedy
``\\{.*\\}`` match would swallow everything from the first brace of the first
echo to the last brace of the answer and fail to parse, or worse, parse into
the wrong object.

Instead, every ``{`` in the transcript is tried as the start of a JSON value
with ``json.JSONDecoder.raw_decode``, which stops at the end of the first
complete value. Of the objects that decode and carry the required key, the
last one wins, since agents give their final answer last.
"""

from __future__ import annotations

import json
import logging

from bugbuster_core.errors import ParseFailure

logger = logging.getLogger(__name__)

_DECODER = json.JSONDecoder()


def iter_json_objects(text: str):
    """Yield every JSON object embedded in ``text``, in order of appearance.

    Objects nested inside a yielded object are not yielded separately.
    """
    pos = text.find("{")
    while pos != -1:
        try:
            value, end = _DECODER.raw_decode(text, pos)
        except json.JSONDecodeError:
            pos = text.find("{", pos + 1)
            continue
        if isinstance(value, dict):
            yield value
        pos = text.find("{", end)


def extract_last_object(text: str, required_key: str) -> dict:
    """Return the last JSON object in ``text`` that contains ``required_key``.

    Raises ParseFailure when there is none.
    """
    found = None
    for obj in iter_json_objects(text or ""):
        if required_key in obj:
            found = obj
    if found is None:
        raise ParseFailure(f"No JSON object with key {required_key!r} in agent output", raw=text or "")
    return found


def stream_json_text(raw: str) -> str:
    """Flatten a Claude ``--output-format stream-json`` transcript to plain text.

    Each line is one JSON event. Text comes either as incremental
    ``event.delta.text`` chunks or as complete ``message.content`` blocks.
    Lines that are not JSON are kept verbatim, so plain-text transcripts pass
    through unchanged.
    """
    parts: list[str] = []
    for line in raw.splitlines():
        if not line.strip():
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            parts.append(line + "\n")
            continue
        if not isinstance(event, dict):
            parts.append(line + "\n")
            continue
        inner = event.get("event")
        delta = inner.get("delta") if isinstance(inner, dict) else None
        if isinstance(delta, dict) and delta.get("text"):
            parts.append(delta["text"])
        message = event.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("text"):
                    parts.append(block["text"])
    return "".join(parts)
