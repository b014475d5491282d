"""Tolerant extraction of structured payloads from free-text model output.

Reasoning-service replies mix prose, code fences and ``<think>`` blocks with
the JSON we asked for. The scanner walks the text for balanced ``{...}`` or
``[...]`` spans, decodes each, and returns the first one that has the
expected shape. Failure is a value, never an exception.
"""

import json
import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_PAIRS = {"{": "}", "[": "]"}


@dataclass(frozen=True)
class ParsedPayload:
    """Outcome of a parse: ``value`` is set iff ``ok``."""

    ok: bool
    value: Any = None
    error: str = ""

    @classmethod
    def failure(cls, error: str) -> "ParsedPayload":
        return cls(ok=False, error=error)


def strip_reasoning(text: str) -> str:
    """Drop ``<think>`` blocks, including an unterminated trailing one."""
    text = _THINK_RE.sub("", text)
    opened = text.lower().find("<think>")
    if opened != -1:
        text = text[:opened]
    return text


def iter_balanced(text: str, opener: str) -> Iterator[str]:
    """Yield every balanced span starting with ``opener``, in order of appearance.

    Brackets inside JSON string literals are ignored.
    """
    closer = _PAIRS[opener]
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = escaped = False
        end = None
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == opener:
                depth += 1
            elif ch == closer:
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if end is not None:
            yield text[start : end + 1]
        start = text.find(opener, start + 1)


def extract_object(text: str | None, required_keys: Iterable[str] = ()) -> ParsedPayload:
    """Return the first JSON object in ``text`` carrying all ``required_keys``."""
    if not text:
        return ParsedPayload.failure("empty response")

    required = set(required_keys)
    for candidate in iter_balanced(strip_reasoning(text), "{"):
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict) and required <= value.keys():
            return ParsedPayload(ok=True, value=value)

    logger.debug(f"No JSON object with keys {sorted(required)} in response: {text[:200]!r}")
    return ParsedPayload.failure(f"no object with keys {sorted(required)}")


def extract_string_list(text: str | None) -> ParsedPayload:
    """Return the first JSON array of strings in ``text``.

    Falls back to one entry per non-empty line (bullets and numbering
    stripped) when the reply holds no array.
    """
    if not text:
        return ParsedPayload.failure("empty response")

    cleaned = strip_reasoning(text)
    for candidate in iter_balanced(cleaned, "["):
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return ParsedPayload(ok=True, value=[v.strip() for v in value if v.strip()])

    lines = []
    for line in cleaned.splitlines():
        line = re.sub(r"^\s*(?:[-*•]|\d+[.)])\s*", "", line).strip().strip(",")
        if not line or line.endswith(":") or line.startswith(("```", "{", "}")):
            continue
        if len(line.split()) <= 4:
            lines.append(line)
    if lines:
        return ParsedPayload(ok=True, value=lines)
    return ParsedPayload.failure("no list in response")
