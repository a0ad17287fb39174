"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
from typing import Optional

from .errors import SynthesisParseError


def find_json_object(raw: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring of ``raw``, or None.

    Braces are matched by depth, so trailing prose or a closing code fence
    after the object is never swallowed. Braces inside JSON string literals
    are ignored.
    """
    if not raw:
        return None

    start = raw.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(raw)):
        ch = raw[pos]
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
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return raw[start:pos + 1]

    # Unbalanced
    return None


def extract_json_object(raw: str) -> dict:
    """Parse the first balanced JSON object in an LLM response.

    Raises:
        SynthesisParseError: no object, unbalanced braces, or invalid JSON.
    """
    candidate = find_json_object(raw)
    if candidate is None:
        raise SynthesisParseError("No balanced JSON object in model response", raw_response=raw or "")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise SynthesisParseError(f"Invalid JSON in model response: {e}", raw_response=raw) from e

    return data
