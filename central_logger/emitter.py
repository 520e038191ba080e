import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Protocol

from central_logger.errors import StoreWriteFailure
from central_logger.file_sink import FileSink
from central_logger.record import LogRecord, RecordState
from central_logger.sanitizer import sanitize_document

logger = logging.getLogger(__name__)


class LogStore(Protocol):
    collection_name: str

    def insert(self, document: dict) -> None:
        ...


class EmitResult(Enum):
    STORED = "stored"
    STORED_AND_FILED = "stored_and_filed"
    FILED = "filed"
    DROPPED = "dropped"


@dataclass(frozen=True)
class EmitError:
    cause: Exception
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class FlushController:
    """
    Writes finished LogRecords to the capped collection and, depending on
    configuration, to a file sink.

    ``file_sink`` is None when file logging is disabled; then nothing ever
    reaches a file and failed inserts are only counted. ``dual_output``
    writes successfully stored records to the file as well.
    """

    def __init__(
        self,
        store: Optional[LogStore],
        file_sink: Optional[FileSink] = None,
        dual_output: bool = False,
    ):
        self.store = store
        self.file_sink = file_sink
        self.dual_output = dual_output
        self.failure_count = 0
        self.last_error: Optional[EmitError] = None
        self._lock = threading.Lock()

    def report_failure(self, error: Exception) -> None:
        with self._lock:
            self.failure_count += 1
            self.last_error = EmitError(error)

    def _write_file(self, record: LogRecord, document: dict) -> bool:
        try:
            self.file_sink.write(record.to_text(document))
            return True
        except OSError as e:
            logger.error(f"Failed to write log record to {self.file_sink.path}: {e}", exc_info=True)
            self.report_failure(e)
            return False

    def flush(self, record: LogRecord) -> EmitResult:
        if record.state in (RecordState.FLUSHING, RecordState.DISCARDED):
            return EmitResult.DROPPED
        record.state = RecordState.FLUSHING

        try:
            result = sanitize_document(record.to_document())
            if result.degraded:
                logger.debug("Log record contained unserializable values; stored their string form")
            document = result.value

            stored = False
            if self.store is not None:
                try:
                    self.store.insert(document)
                    stored = True
                except StoreWriteFailure as e:
                    logger.warning(f"{e}")
                    self.report_failure(e)

            if self.file_sink is None:
                return EmitResult.STORED if stored else EmitResult.DROPPED
            if stored and not self.dual_output:
                return EmitResult.STORED
            filed = self._write_file(record, document)
            if stored:
                return EmitResult.STORED_AND_FILED if filed else EmitResult.STORED
            return EmitResult.FILED if filed else EmitResult.DROPPED
        finally:
            record.state = RecordState.DISCARDED
