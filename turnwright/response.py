"""Parser for the tagged multi-section reply format.

A reply is a sequence of named sections::

    #[plan-description]
    ...
    #[end-plan-description]
    #[json-data]
    {"action": "start_multi_file", ...}
    #[end-json-data]

``json-data`` is mandatory. The other sections carry long free text that would
be awkward to escape inside JSON and are merged back into the object.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional

SECTION_PATTERN = re.compile(r"#\[([a-z-]+)\]([\s\S]*?)#\[end-\1\]")


@dataclass
class ResponseParseResult:
    """Result of parsing one model reply."""

    payload: Optional[dict[str, Any]] = None
    sections: dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    legacy: bool = False

    @property
    def ok(self) -> bool:
        return self.payload is not None


def _camel_case(tag: str) -> str:
    head, *rest = tag.split("-")
    return head + "".join(part.capitalize() for part in rest)


def extract_sections(raw: str) -> dict[str, str]:
    """Collect tagged sections keyed by camel-cased tag name.

    Args:
        raw: Raw model reply

    Returns:
        Mapping such as {"jsonData": "...", "contentFile": "..."}
    """
    sections: dict[str, str] = {}
    for match in SECTION_PATTERN.finditer(raw):
        sections[_camel_case(match.group(1))] = match.group(2).strip()
    return sections


def _hydrate(payload: dict[str, Any], sections: dict[str, str]) -> None:
    if "planDescription" in sections and isinstance(payload.get("plan"), dict):
        payload["plan"]["description"] = sections["planDescription"]

    if "fileMessage" in sections:
        payload["message"] = sections["fileMessage"]

    if "contentFile" in sections:
        target = payload.get("first_file") or payload.get("next_file")
        if isinstance(target, dict):
            file_obj = target.get("file")
            if not isinstance(file_obj, dict):
                file_obj = {}
                target["file"] = file_obj
            file_obj["content"] = sections["contentFile"]


def parse_response(raw: Optional[str]) -> ResponseParseResult:
    """Parse a reply into a JSON payload with section text merged in.

    Args:
        raw: Raw model reply

    Returns:
        ResponseParseResult; ``ok`` is False when no payload could be built
    """
    if raw is None or not raw.strip():
        return ResponseParseResult(error="Empty response")

    sections = extract_sections(raw)

    if not sections:
        # Untagged replies are accepted when the whole text is one JSON object
        try:
            payload = json.loads(raw.strip())
        except json.JSONDecodeError as e:
            return ResponseParseResult(error=f"No tagged sections and not valid JSON: {e}")
        if not isinstance(payload, dict):
            return ResponseParseResult(error="Untagged response is not a JSON object")
        return ResponseParseResult(payload=payload, legacy=True)

    if "jsonData" not in sections:
        return ResponseParseResult(sections=sections, error="Missing #[json-data] section")

    try:
        payload = json.loads(sections["jsonData"])
    except json.JSONDecodeError as e:
        return ResponseParseResult(sections=sections, error=f"Invalid JSON in #[json-data]: {e}")

    if not isinstance(payload, dict):
        return ResponseParseResult(sections=sections, error="#[json-data] is not a JSON object")

    _hydrate(payload, sections)
    return ResponseParseResult(payload=payload, sections=sections)
