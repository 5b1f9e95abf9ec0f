# quotegate/extract.py
# Purpose: Pull the JSON object out of free-form model text.
# Pitfalls: Models wrap JSON in prose or markdown fences, or emit several objects.
#   We never raise; callers get found=False and decide what to show.

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

_FENCED = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", re.IGNORECASE)
_GREEDY = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class Extraction:
    data: dict[str, Any] | None
    found: bool
    source: str  # "fenced" | "balanced" | "greedy" | "none"


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        obj = json.loads(text)
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def _closing_brace(text: str, start: int) -> int | None:
    """Index of the "}" closing the "{" at `start`, skipping braces inside JSON strings."""
    depth = 0
    in_str = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def _balanced_objects(text: str):
    """Yield candidate {...} spans in order of their opening brace.

    A span that never closes, or that the caller cannot parse, does not end the
    scan: the next "{" after its start is tried.
    """
    start = text.find("{")
    while start != -1:
        end = _closing_brace(text, start)
        if end is not None:
            yield text[start : end + 1]
        start = text.find("{", start + 1)


def extract_json_object(text: str | None) -> Extraction:
    if not text:
        return Extraction(None, False, "none")

    for m in _FENCED.finditer(text):
        obj = _loads_object(m.group(1))
        if obj is not None:
            return Extraction(obj, True, "fenced")

    for span in _balanced_objects(text):
        obj = _loads_object(span)
        if obj is not None:
            return Extraction(obj, True, "balanced")

    m = _GREEDY.search(text)
    if m:
        obj = _loads_object(m.group(0))
        if obj is not None:
            return Extraction(obj, True, "greedy")

    return Extraction(None, False, "none")
