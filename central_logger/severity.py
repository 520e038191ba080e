import logging
from enum import IntEnum
from typing import Union


class Severity(IntEnum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4

    @property
    def label(self) -> str:
        """Key used under ``messages`` in stored documents."""
        return self.name.lower()

    def to_level(self) -> int:
        return _TO_STDLIB[self]

    @classmethod
    def from_level(cls, levelno: int) -> "Severity":
        """Map a stdlib ``logging`` level number onto the nearest lower severity."""
        if levelno >= logging.CRITICAL:
            return cls.FATAL
        if levelno >= logging.ERROR:
            return cls.ERROR
        if levelno >= logging.WARNING:
            return cls.WARN
        if levelno >= logging.INFO:
            return cls.INFO
        return cls.DEBUG

    @classmethod
    def parse(cls, value: Union["Severity", str, int]) -> "Severity":
        """
        Accepts a Severity, a name ("debug", "WARN", "warning", "critical"),
        or a stdlib logging level number.
        """
        if isinstance(value, Severity):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid severity: {value!r}")
        if isinstance(value, int):
            return cls.from_level(value)
        if isinstance(value, str):
            name = value.strip().lower()
            if name in _ALIASES:
                return _ALIASES[name]
        raise ValueError(
            f"Invalid severity: {value!r}. Expected one of: {', '.join(s.label for s in cls)}"
        )


_TO_STDLIB = {
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.FATAL: logging.CRITICAL,
}

_ALIASES = {severity.label: severity for severity in Severity}
_ALIASES.update({"warning": Severity.WARN, "critical": Severity.FATAL})
