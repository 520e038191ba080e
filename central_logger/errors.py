class CentralLoggerError(Exception):
    """Base class for every error raised by central_logger."""


class ConfigurationError(CentralLoggerError, ValueError):
    """Invalid or unreadable configuration. Fatal at startup."""


class SerializationFailure(CentralLoggerError):
    """A value could not be encoded as BSON. Handled inside the sanitizer."""

    def __init__(self, value, cause: Exception):
        super().__init__(f"Cannot serialize value of type {type(value).__name__}: {cause}")
        self.value = value
        self.cause = cause


class StoreWriteFailure(CentralLoggerError):
    """Inserting a log document into the capped collection failed."""

    def __init__(self, collection_name: str, cause: Exception):
        super().__init__(f"Insert into '{collection_name}' failed: {cause}")
        self.collection_name = collection_name
        self.cause = cause


class RecordStateError(CentralLoggerError):
    """A log record was mutated after it left the accumulating state."""
