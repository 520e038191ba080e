import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from central_logger.errors import RecordStateError
from central_logger.severity import Severity


class RecordState(Enum):
    EMPTY = "empty"
    ACCUMULATING = "accumulating"
    FLUSHING = "flushing"
    DISCARDED = "discarded"


@dataclass
class LogRecord:
    """All log lines and metadata of one unit of work, stored as one document."""

    application: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    messages: Dict[str, List[str]] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    runtime: Optional[int] = None
    state: RecordState = RecordState.EMPTY

    @property
    def is_open(self) -> bool:
        return self.state in (RecordState.EMPTY, RecordState.ACCUMULATING)

    def add_message(self, severity: Severity, message: str) -> None:
        if not self.is_open:
            raise RecordStateError(f"Cannot append to a record in state '{self.state.value}'")
        self.messages.setdefault(severity.label, []).append(message)
        self.state = RecordState.ACCUMULATING

    def to_document(self) -> Dict[str, Any]:
        document = dict(self.metadata)
        document["timestamp"] = self.timestamp
        document["application"] = self.application
        document["messages"] = {label: list(lines) for label, lines in self.messages.items()}
        if self.runtime is not None:
            document["runtime"] = self.runtime
        return document

    def to_text(self, document: Optional[Dict[str, Any]] = None) -> str:
        """One JSON line for the file sink; pass an already sanitized document to reuse it."""
        payload = dict(document if document is not None else self.to_document())
        payload.pop("_id", None)
        return json.dumps(payload, default=str, ensure_ascii=False)
