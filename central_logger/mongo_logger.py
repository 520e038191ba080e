"""
Leveled logger that aggregates every log call of a unit of work (usually one
HTTP request) into a single document in a capped MongoDB collection.

    settings = load_settings(APPLICATION_NAME="storefront")
    log = MongoLogger.connect(settings)

    with log.unit_of_work(path="/orders"):
        log.info("Loading orders")
        log.debug("3 rows")

Calls outside a unit of work accumulate into a record owned by the current
context and are written by ``flush()``, which is a no-op inside a unit of work.
Logging calls never raise.
"""
import logging
import math
import time
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Optional, Tuple, Union

from central_logger.accumulator import RecordAccumulator
from central_logger.database import MongoConnection
from central_logger.emitter import EmitResult, FlushController, LogStore
from central_logger.file_sink import FileSink
from central_logger.record import LogRecord
from central_logger.severity import Severity
from central_logger.store import CappedCollectionStore
from central_logger_config import Settings

logger = logging.getLogger(__name__)


@dataclass
class UnitOfWork:
    accumulator: RecordAccumulator
    token: Token
    unit_token: Optional[Token]
    started: float


class MongoLogger:
    DEBUG = Severity.DEBUG
    INFO = Severity.INFO
    WARN = Severity.WARN
    ERROR = Severity.ERROR
    FATAL = Severity.FATAL

    def __init__(
        self,
        settings: Settings,
        store: Optional[LogStore] = None,
        file_sink: Optional[FileSink] = None,
        level: Union[Severity, str, int, None] = None,
        connection: Optional[MongoConnection] = None,
    ):
        self.settings = settings
        self.store = store
        self.connection = connection
        self._level = Severity.parse(level) if level is not None else settings.min_severity

        if settings.FILE_LOGGING_ENABLED:
            self.file_sink = file_sink or FileSink(settings.log_file_path)
        else:
            self.file_sink = None

        self.controller = FlushController(store, self.file_sink, dual_output=settings.FILE_DUAL_OUTPUT)
        self._accumulator: ContextVar[Optional[RecordAccumulator]] = ContextVar(
            f"central_logger_accumulator_{id(self)}", default=None
        )
        self._unit: ContextVar[Optional[UnitOfWork]] = ContextVar(
            f"central_logger_unit_{id(self)}", default=None
        )

    @classmethod
    def connect(cls, settings: Settings, **kwargs) -> "MongoLogger":
        """Connect to MongoDB, make sure the capped collection exists, and build a logger."""
        if not settings.MONGODB_ENABLED:
            logger.info("MongoDB logging disabled by configuration; using file output only")
            return cls(settings, **kwargs)

        connection = MongoConnection(settings)
        database = connection.connect()
        store = CappedCollectionStore.from_settings(database, settings)
        store.ensure_collection()
        return cls(settings, store=store, connection=connection, **kwargs)

    # --- level -------------------------------------------------------------

    @property
    def level(self) -> Severity:
        return self._level

    @level.setter
    def level(self, value: Union[Severity, str, int]) -> None:
        self._level = Severity.parse(value)

    def is_enabled_for(self, severity: Union[Severity, str, int]) -> bool:
        return Severity.parse(severity) >= self._level

    # --- accumulation -------------------------------------------------------

    def _new_accumulator(self) -> RecordAccumulator:
        return RecordAccumulator(lambda: self._level, self.settings.APPLICATION_NAME)

    def _current(self) -> RecordAccumulator:
        accumulator = self._accumulator.get()
        if accumulator is None:
            accumulator = self._new_accumulator()
            self._accumulator.set(accumulator)
        return accumulator

    @property
    def in_unit_of_work(self) -> bool:
        return self._unit.get() is not None

    @property
    def current_record(self) -> Optional[LogRecord]:
        """The in-progress record of this context, if anything was logged yet."""
        accumulator = self._accumulator.get()
        return accumulator.record if accumulator is not None else None

    def log(self, severity: Union[Severity, str, int], message: Any, metadata: Optional[Mapping[str, Any]] = None) -> bool:
        """Record ``message`` (a string, any object, or an exception). Returns False if dropped."""
        try:
            accumulator = self._current()
            accepted = accumulator.append(Severity.parse(severity), message)
            if accepted and metadata:
                accumulator.merge_metadata(metadata)
            return accepted
        except Exception as e:
            logger.error(f"Failed to record log message: {e}", exc_info=True)
            return False

    def debug(self, message: Any, metadata: Optional[Mapping[str, Any]] = None) -> bool:
        return self.log(Severity.DEBUG, message, metadata)

    def info(self, message: Any, metadata: Optional[Mapping[str, Any]] = None) -> bool:
        return self.log(Severity.INFO, message, metadata)

    def warn(self, message: Any, metadata: Optional[Mapping[str, Any]] = None) -> bool:
        return self.log(Severity.WARN, message, metadata)

    warning = warn

    def error(self, message: Any, metadata: Optional[Mapping[str, Any]] = None) -> bool:
        return self.log(Severity.ERROR, message, metadata)

    def fatal(self, message: Any, metadata: Optional[Mapping[str, Any]] = None) -> bool:
        return self.log(Severity.FATAL, message, metadata)

    critical = fatal

    def add_metadata(self, **fields: Any) -> None:
        self.merge_metadata(fields)

    def merge_metadata(self, fields: Mapping[str, Any]) -> None:
        try:
            self._current().merge_metadata(fields)
        except Exception as e:
            logger.error(f"Failed to merge log metadata: {e}", exc_info=True)

    # --- emission -----------------------------------------------------------

    def emit(self, record: LogRecord) -> EmitResult:
        try:
            return self.controller.flush(record)
        except Exception as e:
            logger.error(f"Failed to flush log record: {e}", exc_info=True)
            self.controller.report_failure(e)
            return EmitResult.DROPPED

    def flush(self) -> EmitResult:
        """
        Write the current context's record now; the next call starts a fresh one.

        Inside a unit of work this does nothing and returns ``DROPPED``: the
        unit's record is written once, when the unit ends.
        """
        if self.in_unit_of_work:
            logger.debug("flush() ignored inside a unit of work")
            return EmitResult.DROPPED
        return self.emit(self._current().take())

    def write_now(
        self,
        entries: Iterable[Tuple[Union[Severity, str, int], Any]],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> EmitResult:
        """
        Write ``(severity, message)`` entries as a document of their own,
        leaving the context's in-progress record untouched.
        """
        accumulator = self._new_accumulator()
        accepted = False
        for severity, message in entries:
            accepted = accumulator.append(Severity.parse(severity), message) or accepted
        if not accepted:
            return EmitResult.DROPPED
        if metadata:
            accumulator.merge_metadata(metadata)
        return self.emit(accumulator.take())

    @property
    def failure_count(self) -> int:
        return self.controller.failure_count

    # --- units of work ------------------------------------------------------

    def begin(self, **metadata: Any) -> UnitOfWork:
        accumulator = self._new_accumulator()
        unit = UnitOfWork(accumulator, self._accumulator.set(accumulator), None, time.perf_counter())
        unit.unit_token = self._unit.set(unit)
        if metadata:
            self.merge_metadata(metadata)
        return unit

    def end(self, unit: UnitOfWork) -> LogRecord:
        """Close the unit of work and return its record, stamped with ``runtime`` in ms."""
        record = unit.accumulator.take()
        record.runtime = math.ceil((time.perf_counter() - unit.started) * 1000)
        self._accumulator.reset(unit.token)
        self._unit.reset(unit.unit_token)
        return record

    @contextmanager
    def unit_of_work(self, **metadata: Any) -> Iterator["MongoLogger"]:
        """
        Collect everything logged inside the block into one record and write
        it when the block exits. An escaping exception is logged at error
        severity and re-raised.
        """
        unit = self.begin(**metadata)
        try:
            yield self
        except Exception as exc:
            self.log(Severity.ERROR, exc)
            raise
        finally:
            self.emit(self.end(unit))

    # --- collection management ---------------------------------------------

    def reset_collection(self) -> None:
        if isinstance(self.store, CappedCollectionStore):
            self.store.reset()

    def close(self) -> None:
        if self.file_sink is not None:
            self.file_sink.close()
        if self.connection is not None:
            self.connection.close()
