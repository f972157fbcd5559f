"""Lenient JSON object extraction from free-form model replies.

Recovery runs as an ordered list of named stages. Each stage proposes a
candidate string; the first candidate that decodes to a JSON object wins and
the result records which stage produced it.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

_FENCE = re.compile(r"```(?:json|JSON)?")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


@dataclass
class JsonResult:
    """Outcome of a lenient extraction."""

    value: Optional[dict[str, Any]] = None
    stage: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.value is not None


def first_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring, ignoring braces in strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
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
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def _strict(text: str) -> Optional[str]:
    return text.strip()


def _balanced(text: str) -> Optional[str]:
    return first_balanced_object(text)


def _repaired(text: str) -> Optional[str]:
    candidate = first_balanced_object(text)
    if candidate is None:
        return None
    # Fix common issues: trailing commas
    return _TRAILING_COMMA.sub(r"\1", candidate)


def _unfenced(text: str) -> Optional[str]:
    stripped = _FENCE.sub("", text)
    if stripped == text:
        return None
    return _repaired(stripped)


STAGES: list[tuple[str, Callable[[str], Optional[str]]]] = [
    ("strict", _strict),
    ("balanced", _balanced),
    ("repaired", _repaired),
    ("unfenced", _unfenced),
]


def extract_json_object(text: Optional[str]) -> JsonResult:
    """Extract the first JSON object from text.

    Args:
        text: Raw model output

    Returns:
        JsonResult with the decoded object, or the last decode error
    """
    if not text or not text.strip():
        return JsonResult(error="Empty response")

    last_error = "No JSON object found"
    for name, stage in STAGES:
        candidate = stage(text)
        if not candidate:
            continue
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = f"{name}: {e}"
            continue
        if isinstance(value, dict):
            return JsonResult(value=value, stage=name)
        last_error = f"{name}: expected a JSON object, got {type(value).__name__}"

    return JsonResult(error=last_error)
