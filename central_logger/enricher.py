import logging
import uuid
from typing import Any, Dict, Mapping

from starlette.requests import HTTPConnection

from central_logger.record import LogRecord
from central_logger.sanitizer import safe_str

logger = logging.getLogger(__name__)

RESERVED_FIELDS = frozenset({"messages", "timestamp", "runtime"})
REQUEST_ID_HEADER = "x-request-id"


def merge_metadata(record: LogRecord, fields: Mapping[str, Any]) -> None:
    """
    Merge caller supplied fields into the record, last write wins per key.

    An explicit ``application`` field replaces the configured application
    name. Reserved core fields are never overwritten.
    """
    for key, value in fields.items():
        name = key if isinstance(key, str) else safe_str(key)
        if name in RESERVED_FIELDS:
            logger.debug(f"Ignoring reserved metadata field '{name}'")
            continue
        if name == "application":
            record.application = value
            continue
        record.metadata[name] = value


def request_metadata(scope: Dict[str, Any]) -> Dict[str, Any]:
    """Standard per-request fields taken from an ASGI HTTP scope."""
    connection = HTTPConnection(scope)
    headers = connection.headers

    params: Dict[str, Any] = {}
    for key, value in connection.query_params.multi_items():
        if key in params:
            existing = params[key]
            params[key] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            params[key] = value

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    elif connection.client is not None:
        ip = connection.client.host
    else:
        ip = None

    return {
        "method": scope.get("method"),
        "path": connection.url.path,
        "url": str(connection.url),
        "ip": ip,
        "params": params,
        "request_id": headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex,
    }
