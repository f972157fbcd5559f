"""File ignore rules handling using pathspec."""

from pathlib import Path

import pathspec

from turnwright.constants import BUILTIN_IGNORES

IGNORE_FILES = (".gitignore", ".turnwrightignore")


class IgnoreRules:
    """Handles file ignore rules from .gitignore and .turnwrightignore."""

    def __init__(self, project_root: Path):
        """Initialize ignore rules.

        Args:
            project_root: Root directory to search for ignore files
        """
        self.project_root = project_root
        self.spec = self._build_spec()

    def _build_spec(self) -> pathspec.PathSpec:
        """Build combined PathSpec from all ignore sources."""
        patterns = list(BUILTIN_IGNORES)

        # .turnwrightignore comes last so its negations win
        for name in IGNORE_FILES:
            ignore_path = self.project_root / name
            if ignore_path.is_file():
                try:
                    patterns.extend(ignore_path.read_text(encoding="utf-8").splitlines())
                except (IOError, UnicodeDecodeError):
                    continue

        # Filter out empty lines and comments
        patterns = [p.strip() for p in patterns if p.strip() and not p.strip().startswith("#")]

        return pathspec.PathSpec.from_lines("gitwildmatch", patterns)

    def should_ignore(self, path: Path, is_dir: bool = False) -> bool:
        """Check if a path should be ignored.

        Args:
            path: Path to check (can be absolute or relative)
            is_dir: Whether the path is a directory (matches "name/" patterns)

        Returns:
            True if the path should be ignored
        """
        try:
            if path.is_absolute():
                rel_path = path.relative_to(self.project_root)
            else:
                rel_path = path
        except ValueError:
            # Path is outside project root
            return True

        key = rel_path.as_posix()
        return self.spec.match_file(key + "/" if is_dir else key)
