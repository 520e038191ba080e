"""
Conversion of arbitrary Python values into BSON-safe documents.

Everything the sanitizer returns is built from str, int, float, bool, None,
datetime, list and dict-with-str-keys. Anything else is replaced with its
string form, so a log record can always be stored even when callers attach
open files, sockets or other objects to it.
"""
import datetime
import logging
from collections.abc import Mapping
from typing import Any, Dict, NamedTuple

import bson
from bson.errors import BSONError

from central_logger.errors import SerializationFailure

logger = logging.getLogger(__name__)

_INT64_MIN = -(2 ** 63)
_INT64_MAX = 2 ** 63 - 1
MAX_DEPTH = 32


class SanitizationResult(NamedTuple):
    value: Any
    degraded: bool = False


def safe_str(value: Any) -> str:
    """``str(value)``, or the default object repr when ``__str__`` itself fails."""
    try:
        return str(value)
    except Exception:
        return object.__repr__(value)


def _clean_text(text: str) -> str:
    try:
        text.encode("utf-8")
        return text
    except UnicodeEncodeError:
        return text.encode("utf-8", errors="replace").decode("utf-8")


class _Walker:
    def __init__(self):
        self.degraded = False
        self._active = set()

    def fallback(self, value: Any) -> str:
        self.degraded = True
        return _clean_text(safe_str(value))

    def key(self, key: Any) -> str:
        text = str.__str__(key) if isinstance(key, str) else self.fallback(key)
        if "\x00" in text:
            self.degraded = True
            text = text.replace("\x00", "")
        return _clean_text(text)

    def walk(self, value: Any, depth: int = 0) -> Any:
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, str):
            cleaned = _clean_text(str.__str__(value))
            if cleaned != value:
                self.degraded = True
            return cleaned
        if isinstance(value, int):
            if _INT64_MIN <= value <= _INT64_MAX:
                return int(value)
            return self.fallback(value)
        if isinstance(value, float):
            return float(value)
        if isinstance(value, datetime.datetime):
            return value
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).decode("utf-8", errors="replace")
        if isinstance(value, (Mapping, list, tuple, set, frozenset)):
            return self.container(value, depth)
        return self.fallback(value)

    def container(self, value: Any, depth: int) -> Any:
        marker = id(value)
        if marker in self._active:
            self.degraded = True
            return f"<recursive {type(value).__name__}>"
        if depth >= MAX_DEPTH:
            return self.fallback(value)

        self._active.add(marker)
        try:
            if isinstance(value, Mapping):
                return {self.key(k): self.walk(v, depth + 1) for k, v in value.items()}
            return [self.walk(item, depth + 1) for item in value]
        except Exception as e:
            # broken __iter__ / items() on a user-defined container
            logger.debug(f"Falling back to string for {type(value).__name__}: {e}")
            return self.fallback(value)
        finally:
            self._active.discard(marker)


def sanitize_with_result(value: Any) -> SanitizationResult:
    walker = _Walker()
    try:
        cleaned = walker.walk(value)
    except Exception as e:
        logger.debug(f"Sanitizer walk failed, storing string form: {e}")
        return SanitizationResult(_clean_text(safe_str(value)), True)
    return SanitizationResult(cleaned, walker.degraded)


def sanitize(value: Any) -> Any:
    """Return a BSON-safe copy of ``value``. Never raises."""
    return sanitize_with_result(value).value


def check_encodable(document: Dict[str, Any]) -> None:
    """Raise SerializationFailure if BSON refuses ``document``."""
    try:
        bson.encode(document)
    except (BSONError, OverflowError, TypeError, ValueError) as e:
        raise SerializationFailure(document, e) from e


def sanitize_document(document: Mapping) -> SanitizationResult:
    """
    Sanitize a top-level document and verify it against the BSON encoder.

    Fields that the encoder still rejects are replaced one by one with their
    string form; the document as a whole is always returned.
    """
    result = sanitize_with_result(document)
    cleaned = result.value
    if not isinstance(cleaned, dict):
        cleaned = {"value": cleaned}

    try:
        check_encodable(cleaned)
        return SanitizationResult(cleaned, result.degraded)
    except SerializationFailure as failure:
        logger.warning(f"Log document failed BSON encoding, degrading fields: {failure.cause}")

    repaired = {}
    for key, field_value in cleaned.items():
        try:
            check_encodable({key: field_value})
            repaired[key] = field_value
        except SerializationFailure:
            repaired[key] = ascii(field_value)
    return SanitizationResult(repaired, True)
