"""
Client-side reconciliation of the execution event stream.

An ObserverSession turns the messages received on /ws into a bounded,
newest-first activity log plus the latest metrics snapshot. It does no I/O;
crewdeck.client feeds it from a live connection.
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional

from loguru import logger

from .models import ExecutionMetrics, LogClassification, ObserverLogEntry, utcnow

METRICS_PANEL_CAPACITY = 10
FULL_LOG_CAPACITY = 1000

COMPLETED_ENTRY = "Execution completed successfully"
STOPPED_ENTRY = "Execution stopped by user"

def classify_message(message: str) -> LogClassification:
    """Classify a step message by keyword (case-sensitive, as emitted)"""
    if "completed" in message or "finished" in message:
        return LogClassification.SUCCESS
    if "Warning" in message or "delay" in message:
        return LogClassification.WARNING
    return LogClassification.INFO

class ObserverSession:
    """Bounded view of every execution event one observer receives"""

    def __init__(self, capacity: int = METRICS_PANEL_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: Deque[ObserverLogEntry] = deque(maxlen=capacity)
        self.metrics = ExecutionMetrics()
        self.progress = 0
        self.is_executing = False
        self.current_execution_id: Optional[str] = None
        self.messages_received = 0

    @classmethod
    def metrics_panel(cls) -> "ObserverSession":
        return cls(capacity=METRICS_PANEL_CAPACITY)

    @classmethod
    def full_log(cls) -> "ObserverSession":
        return cls(capacity=FULL_LOG_CAPACITY)

    @property
    def entries(self) -> List[ObserverLogEntry]:
        """Log entries, newest first"""
        return list(self._entries)

    def begin(self, execution_id: str) -> None:
        """Remember the execution this observer just started"""
        self.current_execution_id = execution_id
        self.is_executing = True

    def clear(self) -> None:
        self._entries.clear()

    def handle(self, message: Dict[str, Any]) -> Optional[ObserverLogEntry]:
        """Apply one wire message; returns the log entry it produced, if any"""
        self.messages_received += 1
        message_type = message.get("type")

        if message_type == "execution_update":
            return self._on_update(message)
        if message_type == "execution_completed":
            return self._on_terminal(message, COMPLETED_ENTRY, LogClassification.SUCCESS)
        if message_type == "execution_stopped":
            return self._on_terminal(message, STOPPED_ENTRY, LogClassification.WARNING)

        logger.debug(f"Observer ignoring message type {message_type!r}")
        return None

    def _append(self, entry: ObserverLogEntry) -> ObserverLogEntry:
        # deque(maxlen) evicts from the right, i.e. the oldest entry
        self._entries.appendleft(entry)
        return entry

    def _on_update(self, message: Dict[str, Any]) -> Optional[ObserverLogEntry]:
        # parse everything first so a bad payload leaves the snapshot untouched
        metrics, progress = self.metrics, self.progress
        if message.get("metrics") is not None:
            metrics = ExecutionMetrics(**message["metrics"])
        if message.get("progress") is not None:
            progress = int(message["progress"])
        self.metrics, self.progress = metrics, progress
        self.is_executing = True

        step = message.get("step")
        if not step:
            return None
        return self._append(ObserverLogEntry(
            timestamp=message.get("timestamp") or utcnow().isoformat(),
            message=step,
            classification=classify_message(step),
            executionId=message.get("executionId"),
        ))

    def _on_terminal(self, message: Dict[str, Any], text: str,
                     classification: LogClassification) -> ObserverLogEntry:
        execution_id = message.get("executionId")
        if self.current_execution_id is None or self.current_execution_id == execution_id:
            self.is_executing = False
            self.current_execution_id = None

        return self._append(ObserverLogEntry(
            timestamp=utcnow().isoformat(),
            message=text,
            classification=classification,
            executionId=execution_id,
        ))
