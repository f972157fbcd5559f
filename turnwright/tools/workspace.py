"""Project workspace: file listing, reads and model-driven file actions."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from turnwright.constants import STATE_DIR
from turnwright.schema import FileRef
from turnwright.utils.ignore import IgnoreRules
from turnwright.utils.paths import PathKey, normalize_path


class FileActionError(Exception):
    """Raised when a read tool or file action cannot be carried out."""


@dataclass
class FileNode:
    """A file or folder in the project tree."""

    path: PathKey
    is_folder: bool
    tags: dict[str, list[str]] = field(default_factory=dict)

    def tag_list(self) -> list[str]:
        seen: list[str] = []
        for values in self.tags.values():
            for tag in values:
                if tag not in seen:
                    seen.append(tag)
        return seen


class Workspace:
    """Handles project file I/O with safety checks."""

    def __init__(
        self,
        project_root: Path,
        max_read_mb: int = 8,
        max_write_mb: int = 2,
        ignore_rules: Optional[IgnoreRules] = None,
    ):
        """Initialize the workspace.

        Args:
            project_root: Project root directory
            max_read_mb: Maximum file size to read (MB)
            max_write_mb: Maximum file size to write (MB)
            ignore_rules: Optional prebuilt ignore rules
        """
        self.project_root = project_root.resolve()
        self.max_read_bytes = max_read_mb * 1024 * 1024
        self.max_write_bytes = max_write_mb * 1024 * 1024
        self.ignore_rules = ignore_rules or IgnoreRules(self.project_root)
        self.tags_path = self.project_root / STATE_DIR / "tags.json"
        self._tags = self._load_tags()

    def nodes(self) -> dict[PathKey, FileNode]:
        """Walk the project and return every non-ignored file and folder.

        Returns:
            Mapping from PathKey to FileNode
        """
        nodes: dict[PathKey, FileNode] = {}

        for dirpath, dirnames, filenames in os.walk(self.project_root):
            current = Path(dirpath)

            # Prune ignored directories in place so os.walk skips them
            kept = []
            for name in sorted(dirnames):
                dir_path = current / name
                if self.ignore_rules.should_ignore(dir_path, is_dir=True):
                    continue
                kept.append(name)
                key = self._key(dir_path)
                nodes[key] = FileNode(path=key, is_folder=True)
            dirnames[:] = kept

            for name in sorted(filenames):
                file_path = current / name
                if self.ignore_rules.should_ignore(file_path):
                    continue
                key = self._key(file_path)
                nodes[key] = FileNode(path=key, is_folder=False, tags=self._tags.get(key, {}))

        return nodes

    def structure_lines(self) -> list[str]:
        """Sorted file paths, each followed by its tags when it has any."""
        lines = []
        for node in self.nodes().values():
            if node.is_folder:
                continue
            tags = node.tag_list()
            lines.append(f"{node.path} # tags: [{', '.join(tags)}]" if tags else str(node.path))
        return sorted(lines)

    def read(self, path: str) -> tuple[bool, Optional[str], Optional[str]]:
        """Read a text file.

        Args:
            path: Project-relative path

        Returns:
            Tuple of (success, content, error)
        """
        key = normalize_path(path)
        file_path = self._resolve_path(key)

        if not self._is_safe_path(file_path):
            return False, None, f"Path outside project root: {path}"

        if not file_path.exists():
            return False, None, f"File not found: {key}"

        if not file_path.is_file():
            return False, None, f"Not a file: {key}"

        try:
            size = file_path.stat().st_size
            if size > self.max_read_bytes:
                size_mb = size / (1024 * 1024)
                max_mb = self.max_read_bytes / (1024 * 1024)
                return False, None, f"File too large: {size_mb:.2f} MB (max: {max_mb} MB)"
        except OSError as e:
            return False, None, f"Cannot stat file: {e}"

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                content = f.read()
            return True, content, None
        except UnicodeDecodeError:
            return False, None, "File is not valid UTF-8 text"
        except IOError as e:
            return False, None, f"Cannot read file: {e}"

    def read_content(self, path: str) -> Optional[str]:
        """File content, or None when it cannot be read."""
        success, content, _ = self.read(path)
        return content if success else None

    def write(self, path: str, content: str) -> tuple[bool, Optional[str]]:
        """Write content to a file.

        Args:
            path: Project-relative path
            content: Content to write

        Returns:
            Tuple of (success, error)
        """
        file_path = self._resolve_path(normalize_path(path))

        if not self._is_safe_path(file_path):
            return False, f"Path outside project root: {path}"

        if file_path.is_dir():
            return False, f"Path is a folder: {path}"

        content_bytes = len(content.encode("utf-8"))
        if content_bytes > self.max_write_bytes:
            size_mb = content_bytes / (1024 * 1024)
            max_mb = self.max_write_bytes / (1024 * 1024)
            return False, f"Content too large: {size_mb:.2f} MB (max: {max_mb} MB)"

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return False, f"Cannot create folder: {e}"

        # Write atomically (temp file + rename)
        temp_path = file_path.with_suffix(file_path.suffix + ".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(content)
            temp_path.replace(file_path)
            return True, None
        except IOError as e:
            if temp_path.exists():
                temp_path.unlink()
            return False, f"Cannot write file: {e}"

    def delete(self, path: str) -> tuple[bool, Optional[str]]:
        """Delete a file.

        Args:
            path: Project-relative path

        Returns:
            Tuple of (success, error)
        """
        key = normalize_path(path)
        file_path = self._resolve_path(key)

        if not self._is_safe_path(file_path):
            return False, f"Path outside project root: {path}"

        if not file_path.is_file():
            return False, f"File not found: {key}"

        try:
            file_path.unlink()
            return True, None
        except OSError as e:
            return False, f"Cannot delete file: {e}"

    def read_tool(self, function_name: str, args: dict[str, Any]) -> str:
        """Run a read-only tool for the model.

        Args:
            function_name: "list_files" or "read_file"
            args: Tool arguments; read_file takes a single "path"

        Returns:
            Tool output text

        Raises:
            FileActionError: If the tool is unknown or the read fails
        """
        if function_name == "list_files":
            return "\n".join(self.structure_lines())

        if function_name == "read_file":
            path = args.get("path")
            if not path:
                raise FileActionError("read_file requires a path")
            success, content, error = self.read(path)
            if not success:
                raise FileActionError(error)
            return content

        raise FileActionError(f"Unknown tool: {function_name}")

    def apply_file_action(
        self,
        kind: str,
        file: FileRef,
        tags: Optional[dict[str, list[str]]] = None,
    ) -> str:
        """Apply one file action produced by the model.

        Args:
            kind: create_file, update_file, delete_file or noop
            file: Target path and, for writes, the full new content
            tags: Optional tags to store for the file

        Returns:
            Human-readable result line

        Raises:
            FileActionError: If the action fails
        """
        key = normalize_path(file.path)

        if kind == "noop":
            return f"✓ No changes to {key}" if key else "✓ No changes"

        if not key:
            raise FileActionError("File path is empty")

        if kind in ("create_file", "update_file"):
            if kind == "update_file" and file.content is None:
                raise FileActionError(f"No content provided for {key}")
            existed = self._resolve_path(key).is_file()
            success, error = self.write(key, file.content or "")
            if not success:
                raise FileActionError(error)
            if tags:
                self._tags[key] = tags
                self._save_tags()
            return f"✓ {'Updated' if existed else 'Created'} {key}"

        if kind == "delete_file":
            success, error = self.delete(key)
            if not success:
                raise FileActionError(error)
            if self._tags.pop(key, None) is not None:
                self._save_tags()
            return f"✓ Deleted {key}"

        raise FileActionError(f"Unsupported file action: {kind}")

    def _load_tags(self) -> dict[str, dict[str, list[str]]]:
        if not self.tags_path.exists():
            return {}
        try:
            with open(self.tags_path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError):
            return {}
        return data if isinstance(data, dict) else {}

    def _save_tags(self) -> None:
        self.tags_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.tags_path, "w") as f:
            json.dump(self._tags, f, indent=2, sort_keys=True)

    def _key(self, path: Path) -> PathKey:
        return normalize_path(path.relative_to(self.project_root).as_posix())

    def _resolve_path(self, path: str) -> Path:
        return (self.project_root / path).resolve()

    def _is_safe_path(self, path: Path) -> bool:
        """Check if a path is within project root."""
        try:
            path.resolve().relative_to(self.project_root)
            return True
        except ValueError:
            return False
