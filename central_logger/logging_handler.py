import logging
import threading

from central_logger.mongo_logger import MongoLogger
from central_logger.severity import Severity

# LogRecord attributes that are not caller supplied `extra` fields
STANDARD_ATTRS = {
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module", "msecs",
    "message", "msg", "name", "pathname", "process", "processName",
    "relativeCreated", "stack_info", "taskName", "thread", "threadName",
}

# the package's own diagnostics and the driver's logs are written while a
# record is being stored; routing them back into the store never terminates
IGNORED_LOGGERS = ("central_logger", "pymongo")


def is_ignored_logger(name: str) -> bool:
    return any(name == prefix or name.startswith(prefix + ".") for prefix in IGNORED_LOGGERS)


class CustomMongoLogHandler(logging.Handler):
    """
    Routes stdlib logging records into a MongoLogger.

    Inside a unit of work the record joins the unit's document. Outside one,
    each record is written immediately as a document of its own unless
    ``flush_outside_unit_of_work`` is False, in which case it joins the
    context's pending record.

    Records logged on the same thread while the handler is already emitting
    (for instance by a library called during the insert) are dropped.
    """

    def __init__(self, mongo_logger: MongoLogger, level=logging.NOTSET, flush_outside_unit_of_work: bool = True):
        super().__init__(level)
        self.mongo_logger = mongo_logger
        self.flush_outside_unit_of_work = flush_outside_unit_of_work
        self._local = threading.local()

    @property
    def emitting(self) -> bool:
        return getattr(self._local, "emitting", False)

    def emit(self, record):
        if is_ignored_logger(record.name) or self.emitting:
            return
        self._local.emitting = True
        try:
            severity = Severity.from_level(record.levelno)
            metadata = {
                key: value for key, value in record.__dict__.items()
                if key not in STANDARD_ATTRS and not key.startswith("_")
            }
            entries = [(severity, record.getMessage())]
            if record.exc_info and record.exc_info[1] is not None:
                entries.append((Severity.ERROR, record.exc_info[1]))

            if self.flush_outside_unit_of_work and not self.mongo_logger.in_unit_of_work:
                self.mongo_logger.write_now(entries, metadata)
            else:
                self.mongo_logger.log(entries[0][0], entries[0][1], metadata)
                for entry_severity, message in entries[1:]:
                    self.mongo_logger.log(entry_severity, message)
        except Exception:
            self.handleError(record)
        finally:
            self._local.emitting = False
