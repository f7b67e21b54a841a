"""
Event Sink - Append-only JSONL event logging.

Events are written to daily log files:
    logs/events/events_YYYY-MM-DD.jsonl

Thread-safe for concurrent writes.
"""

from __future__ import annotations

import json
import threading
from datetime import date
from pathlib import Path
from typing import Iterator

from launchscout.core.events import Event


class EventSink:
    """
    Append-only event sink that writes events to daily JSONL files.

    Thread-safe: uses a lock for file operations.
    """

    def __init__(self, log_dir: Path | str = "./logs/events"):
        self._log_dir = Path(log_dir)
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _get_log_file(self, event_date: date) -> Path:
        """Get the log file path for a given date."""
        return self._log_dir / f"events_{event_date.isoformat()}.jsonl"

    def emit(self, event: Event) -> None:
        """Write an event to the log as a single JSON line."""
        line = json.dumps(event.to_jsonl_dict(), separators=(",", ":"), default=str)

        with self._lock:
            log_file = self._get_log_file(event.timestamp.date())
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    async def emit_async(self, event: Event) -> None:
        """Async adapter so the sink can be passed as an ``emit_event`` callback."""
        self.emit(event)

    def read_events(self, event_date: date) -> Iterator[Event]:
        """Read all events from a specific date's log file, in write order."""
        log_file = self._get_log_file(event_date)
        if not log_file.exists():
            return

        with open(log_file, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield Event.from_jsonl_dict(json.loads(line))
