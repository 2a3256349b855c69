"""
Pull a JSON object out of free-form model output.

Models wrap JSON in prose or markdown fences, and sometimes emit stray braces
before the real payload. Scan for balanced {...} spans (ignoring braces inside
string literals) and return the first one that decodes to an object.
"""

import json
from typing import Any, Dict, Iterator, Tuple


class JSONExtractionError(ValueError):
    """No JSON object could be recovered from the text."""
    pass


def find_balanced_spans(text: str) -> Iterator[Tuple[int, int]]:
    """
    Yield (start, end) slices of top-level balanced brace spans, in order.

    `end` is exclusive. An unterminated trailing span is not yielded.
    """
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            # Quotes only delimit strings inside a candidate span
            if depth > 0:
                in_string = True
        elif ch == '{':
            if depth == 0:
                start = i
            depth += 1
        elif ch == '}' and depth > 0:
            depth -= 1
            if depth == 0:
                yield start, i + 1


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Extract the first JSON object from model output.

    Raises:
        JSONExtractionError: If the text is empty or holds no decodable object
    """
    if not text or not text.strip():
        raise JSONExtractionError("Empty model response")

    # Fast path: the whole response is JSON
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    found_span = False
    last_error = None
    for start, end in find_balanced_spans(text):
        found_span = True
        try:
            parsed = json.loads(text[start:end])
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if isinstance(parsed, dict):
            return parsed

    if not found_span:
        raise JSONExtractionError("No JSON object found in model response")
    raise JSONExtractionError(f"Could not parse JSON object in model response: {last_error}")
