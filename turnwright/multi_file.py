"""Multi-file task tracking.

A task is either Idle or Active. Active holds the declared plan split into
completed and remaining paths, both as PathKeys, so that every plan entry is
in exactly one of the two lists.
"""

from dataclasses import dataclass
from typing import Iterable, Union

from turnwright.utils.paths import PathKey, normalize_path


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Active:
    description: str
    all_files: tuple[PathKey, ...]
    completed: tuple[PathKey, ...]
    remaining: tuple[PathKey, ...]

    def __post_init__(self):
        if sorted(self.completed + self.remaining) != sorted(self.all_files):
            raise ValueError("completed and remaining must partition the plan")

    @property
    def next_file(self) -> str:
        return self.remaining[0] if self.remaining else ""

    @property
    def progress(self) -> str:
        return f"{len(self.completed)}/{len(self.all_files)}"


TaskState = Union[Idle, Active]


class TaskStateError(Exception):
    """Raised on a transition that is not valid from the current state."""


def _unique(paths: Iterable) -> tuple[PathKey, ...]:
    seen: list[PathKey] = []
    for raw in paths:
        key = normalize_path(raw)
        if key and key not in seen:
            seen.append(key)
    return tuple(seen)


def _complete(state: Active, path: PathKey) -> Active:
    if not path:
        return state
    all_files = state.all_files
    if path not in all_files:
        all_files = all_files + (path,)
    completed = state.completed if path in state.completed else state.completed + (path,)
    remaining = tuple(p for p in state.remaining if p != path)
    return Active(state.description, all_files, completed, remaining)


class MultiFileTracker:
    """Holds the multi-file task state shared across turns."""

    def __init__(self):
        self.state: TaskState = Idle()

    @property
    def active(self) -> bool:
        return isinstance(self.state, Active)

    def start(self, description: str, files: Iterable, first_path) -> Active:
        """Begin a task after its first file was applied.

        Args:
            description: Plan description
            files: Declared plan paths, in order
            first_path: Path of the file already applied

        Returns:
            The new Active state

        Raises:
            TaskStateError: If a task is already active
        """
        if self.active:
            raise TaskStateError("A multi-file task is already in progress")
        plan = _unique(files)
        seed = Active(description, plan, (), plan)
        self.state = _complete(seed, normalize_path(first_path))
        return self.state

    def advance(self, path) -> Active:
        """Mark ``path`` as completed."""
        if not isinstance(self.state, Active):
            raise TaskStateError("No multi-file task is active")
        self.state = _complete(self.state, normalize_path(path))
        return self.state

    def reset(self) -> None:
        self.state = Idle()
