"""
JSONL logging for conversation sessions.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from encyclopedia.config import config
from encyclopedia.types import ProgressEvent, StructuredResponse


class SessionLogger:
    """JSONL logger for conversation events"""

    def __init__(self, log_dir: Optional[Path] = None):
        self.log_dir = Path(log_dir) if log_dir else config.log_dir
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = self.log_dir / "conversation_runs.jsonl"

    def log_event(self, event: Dict[str, Any]) -> None:
        """
        Log an event to JSONL file.

        Args:
            event: Event dictionary with at least 'event' key
        """
        if "timestamp" not in event:
            event["timestamp"] = datetime.now().isoformat()

        with open(self.log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, ensure_ascii=False) + "\n")

    def log_user_turn(self, session_id: str, provider: str, text: str, attachment: Optional[str] = None) -> None:
        self.log_event({
            "event": "user_turn",
            "session_id": session_id,
            "provider": provider,
            "text": text,
            "attachment": attachment,
        })

    def log_response(self, session_id: str, provider: str, response: StructuredResponse) -> None:
        self.log_event({
            "event": "response",
            "session_id": session_id,
            "provider": provider,
            "response": response.to_dict(),
        })

    def log_retry(self, session_id: str, provider: str, attempt: int, delay_seconds: float, reason: str) -> None:
        self.log_event({
            "event": "retry",
            "session_id": session_id,
            "provider": provider,
            "attempt": attempt,
            "delay_ms": int(delay_seconds * 1000),
            "reason": reason,
        })

    def log_error(self, session_id: str, provider: str, error: Exception) -> None:
        self.log_event({
            "event": "error",
            "session_id": session_id,
            "provider": provider,
            "kind": type(error).__name__,
            "message": str(error),
        })

    def log_progress(self, session_id: str, event: ProgressEvent) -> None:
        """Engine loading progress (only terminal or stage-changing events are worth logging)"""
        self.log_event({
            "event": "engine_progress",
            "session_id": session_id,
            "stage": event.stage,
            "fraction": round(event.fraction, 4),
            "done": event.done,
        })
