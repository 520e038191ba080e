import traceback
from typing import Any, Callable, Mapping, Optional, Union

from central_logger.colors import is_colorized, strip_colors
from central_logger.enricher import merge_metadata
from central_logger.record import LogRecord
from central_logger.sanitizer import safe_str
from central_logger.severity import Severity


def format_exception(exc: BaseException) -> str:
    """``"<message>\\n<frame>\\n<frame>..."`` with one traceback frame per line."""
    message = safe_str(exc) or type(exc).__name__
    frames = [
        f"{frame.filename}:{frame.lineno}:in {frame.name}"
        for frame in traceback.extract_tb(exc.__traceback__)
    ]
    return "\n".join([message] + frames)


class RecordAccumulator:
    """
    Owns the in-progress LogRecord of one logical operation.

    The record is created on the first accepted log call or metadata merge,
    and handed over (and forgotten) by ``take``.
    """

    def __init__(
        self,
        min_severity: Union[Severity, Callable[[], Severity]] = Severity.DEBUG,
        application: Optional[str] = None,
    ):
        # a callable threshold is re-read on every append
        self._min_severity = min_severity
        self.application = application
        self._record: Optional[LogRecord] = None

    @property
    def min_severity(self) -> Severity:
        if callable(self._min_severity):
            return self._min_severity()
        return self._min_severity

    @min_severity.setter
    def min_severity(self, value: Union[Severity, Callable[[], Severity]]) -> None:
        self._min_severity = value

    @property
    def record(self) -> Optional[LogRecord]:
        return self._record

    def current(self) -> LogRecord:
        if self._record is None:
            self._record = LogRecord(application=self.application)
        return self._record

    def accepts(self, severity: Severity) -> bool:
        return severity >= self.min_severity

    def append(self, severity: Severity, message: Any) -> bool:
        """Record one log call. Returns False when the call was dropped."""
        if isinstance(message, BaseException):
            severity = Severity.ERROR
            text = format_exception(message)
        elif message is None:
            return False
        elif isinstance(message, str):
            text = message
        else:
            text = safe_str(message)

        if not self.accepts(severity):
            return False
        if is_colorized(text):
            text = strip_colors(text).strip()
        if not text:
            return False

        self.current().add_message(severity, text)
        return True

    def merge_metadata(self, fields: Mapping[str, Any]) -> None:
        if fields:
            merge_metadata(self.current(), fields)

    def take(self) -> LogRecord:
        """Hand over the current record (an empty one if nothing was logged) and reset."""
        record = self.current()
        self._record = None
        return record
