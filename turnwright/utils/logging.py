"""Session logging utilities."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from turnwright.constants import STATE_DIR


class SessionLogger:
    """Writes a durable transcript for one REPL session."""

    def __init__(self, project_root: Path, run_id: Optional[str] = None):
        """Initialize session logger.

        Args:
            project_root: Project root directory
            run_id: Optional run ID (generated if not provided)
        """
        self.project_root = project_root
        self.run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S")

        self.log_dir = project_root / STATE_DIR / "runs" / self.run_id
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.transcript_path = self.log_dir / "transcript.ndjson"
        self.responses_dir = self.log_dir / "responses"
        self.tests_dir = self.log_dir / "tests"

        self.responses_dir.mkdir(exist_ok=True)
        self.tests_dir.mkdir(exist_ok=True)

        self._response_count = 0

    def log_message(self, role: str, content: str, conversation_id: Optional[str] = None) -> None:
        """Append a conversation message to the transcript.

        Args:
            role: Message role
            content: Message content
            conversation_id: Optional chat the message belongs to
        """
        entry: dict[str, Any] = {
            "ts": datetime.now().isoformat(),
            "role": role,
            "content": content,
        }
        if conversation_id:
            entry["conversation"] = conversation_id
        self._append(entry)

    def log_event(self, kind: str, **data: Any) -> None:
        """Append a structured event (route decision, dispatch, parse error...)."""
        self._append({"ts": datetime.now().isoformat(), "event": kind, **data})

    def save_raw_response(self, text: str) -> Path:
        """Keep a raw model reply for later inspection.

        Args:
            text: Full reply text, after continuation merging

        Returns:
            Path of the saved file
        """
        self._response_count += 1
        path = self.responses_dir / f"{self._response_count:04d}.txt"
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path

    def save_test_report(self, target: str, report: dict) -> None:
        """Save a test report.

        Args:
            target: Test path or the all-tests sentinel
            report: Report dictionary
        """
        safe_target = "".join(c if c.isalnum() else "_" for c in target[:50])
        timestamp = datetime.now().strftime("%H%M%S")
        path = self.tests_dir / f"{timestamp}_{safe_target}.json"
        with open(path, "w") as f:
            json.dump(
                {"target": target, "timestamp": datetime.now().isoformat(), **report},
                f,
                indent=2,
            )

    def get_log_path(self) -> str:
        """Get the path to the log directory.

        Returns:
            Absolute path to log directory
        """
        return str(self.log_dir.absolute())

    def _append(self, entry: dict) -> None:
        with open(self.transcript_path, "a") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
