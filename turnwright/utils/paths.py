"""Canonical project-relative path keys."""

import re

_LEADING = re.compile(r"^(?:\./|/)+")


class PathKey(str):
    """A normalized, project-relative path.

    Build one with ``normalize_path``; two keys are equal exactly when their
    raw spellings name the same project file.
    """

    __slots__ = ()

    def __new__(cls, raw: str = "") -> "PathKey":
        return super().__new__(cls, _canonical(raw))


def _canonical(raw: str) -> str:
    value = raw
    while True:
        cleaned = _LEADING.sub("", value.strip().replace("\\", "/")).strip()
        if cleaned == value:
            return cleaned
        value = cleaned


def normalize_path(raw) -> PathKey:
    """Normalize a raw path string into a PathKey.

    Trims whitespace, converts back-slashes to forward slashes and strips any
    leading run of ``./`` and ``/``. Idempotent. ``None`` and empty input give
    an empty key.

    Args:
        raw: Path as written by a user or the model

    Returns:
        Normalized PathKey
    """
    if isinstance(raw, PathKey):
        return raw
    if raw is None:
        return PathKey("")
    return PathKey(str(raw))
