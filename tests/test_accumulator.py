import re
import tempfile

import pytest

from central_logger.accumulator import RecordAccumulator, format_exception
from central_logger.errors import RecordStateError
from central_logger.record import LogRecord, RecordState
from central_logger.severity import Severity

EXCEPTION_MSG = "Foo"


def raise_and_capture(message: str) -> Exception:
    try:
        raise RuntimeError(message)
    except RuntimeError as e:
        return e


def test_first_append_creates_record_with_timestamp_and_application():
    accumulator = RecordAccumulator(application="central_foo")
    assert accumulator.record is None

    assert accumulator.append(Severity.DEBUG, "Test") is True

    record = accumulator.record
    assert record.state is RecordState.ACCUMULATING
    assert record.application == "central_foo"
    assert record.timestamp is not None
    assert record.messages == {"debug": ["Test"]}


def test_messages_are_grouped_by_severity_in_order():
    accumulator = RecordAccumulator()
    accumulator.append(Severity.INFO, "one")
    accumulator.append(Severity.WARN, "careful")
    accumulator.append(Severity.INFO, "two")
    assert accumulator.record.messages == {"info": ["one", "two"], "warn": ["careful"]}


@pytest.mark.parametrize("severity", [Severity.DEBUG, Severity.INFO])
def test_below_threshold_calls_do_not_touch_the_record(severity):
    accumulator = RecordAccumulator(min_severity=Severity.WARN)
    assert accumulator.append(severity, "ignored") is False
    assert accumulator.record is None

    accumulator.append(Severity.ERROR, "kept")
    before = {k: list(v) for k, v in accumulator.record.messages.items()}
    accumulator.append(severity, "ignored again")
    assert accumulator.record.messages == before


def test_empty_and_none_messages_are_dropped():
    accumulator = RecordAccumulator()
    assert accumulator.append(Severity.INFO, None) is False
    assert accumulator.append(Severity.INFO, "") is False
    assert accumulator.append(Severity.INFO, "\x1b[0m  \x1b[0m") is False
    assert accumulator.record is None


def test_colorized_message_is_stripped_and_trimmed():
    accumulator = RecordAccumulator()
    accumulator.append(Severity.DEBUG, "\x1b[31m TESTING \x1b[0m")
    assert accumulator.record.messages["debug"] == ["TESTING"]


def test_exception_is_recorded_at_error_with_backtrace():
    exc = raise_and_capture(EXCEPTION_MSG)
    accumulator = RecordAccumulator()

    accumulator.append(Severity.DEBUG, exc)

    lines = accumulator.record.messages["error"]
    assert len(lines) == 1
    assert re.match(f"^{EXCEPTION_MSG}", lines[0])
    frames = lines[0].split("\n")[1:]
    assert frames and "raise_and_capture" in frames[-1]


def test_exception_passes_threshold_as_error():
    accumulator = RecordAccumulator(min_severity=Severity.ERROR)
    assert accumulator.append(Severity.DEBUG, raise_and_capture("boom")) is True
    accumulator = RecordAccumulator(min_severity=Severity.FATAL)
    assert accumulator.append(Severity.FATAL, raise_and_capture("boom")) is False


def test_callable_threshold_is_read_on_every_call():
    threshold = [Severity.DEBUG]
    accumulator = RecordAccumulator(min_severity=lambda: threshold[0])
    assert accumulator.append(Severity.DEBUG, "kept") is True

    threshold[0] = Severity.WARN
    assert accumulator.append(Severity.INFO, "dropped") is False
    assert accumulator.record.messages == {"debug": ["kept"]}


def test_format_exception_without_traceback_or_message():
    assert format_exception(ValueError("plain")) == "plain"
    assert format_exception(KeyError()) == "KeyError"


def test_non_string_message_is_stored_as_text():
    accumulator = RecordAccumulator()
    with tempfile.TemporaryFile() as handle:
        accumulator.append(Severity.DEBUG, handle)
        assert accumulator.record.messages["debug"] == [str(handle)]


def test_take_resets_so_next_append_starts_fresh():
    accumulator = RecordAccumulator()
    accumulator.append(Severity.INFO, "first")
    first = accumulator.take()

    accumulator.append(Severity.INFO, "second")
    second = accumulator.take()

    assert first is not second
    assert first.messages == {"info": ["first"]}
    assert second.messages == {"info": ["second"]}


def test_take_without_calls_returns_an_empty_record():
    record = RecordAccumulator(application="app").take()
    assert record.state is RecordState.EMPTY
    assert record.messages == {}
    assert record.application == "app"


def test_metadata_merge_is_last_write_wins():
    accumulator = RecordAccumulator(application="configured")
    accumulator.merge_metadata({"user_id": 1, "tags": ["a"]})
    accumulator.merge_metadata({"user_id": 2})
    record = accumulator.record
    assert record.metadata == {"user_id": 2, "tags": ["a"]}
    assert record.application == "configured"


def test_explicit_application_overrides_configured_name():
    accumulator = RecordAccumulator(application="configured")
    accumulator.merge_metadata({"application": "explicit"})
    assert accumulator.record.application == "explicit"
    assert "application" not in accumulator.record.metadata


def test_reserved_fields_cannot_be_overwritten():
    accumulator = RecordAccumulator()
    accumulator.append(Severity.INFO, "kept")
    accumulator.merge_metadata({"messages": "nope", "timestamp": 0, "runtime": -1, 7: "seven"})
    record = accumulator.record
    assert record.messages == {"info": ["kept"]}
    assert record.metadata == {"7": "seven"}


def test_closed_record_rejects_messages():
    record = LogRecord()
    record.state = RecordState.DISCARDED
    with pytest.raises(RecordStateError):
        record.add_message(Severity.INFO, "late")


def test_document_puts_core_fields_above_metadata():
    record = LogRecord(application="app")
    record.add_message(Severity.INFO, "hello")
    record.metadata["path"] = "/orders"
    record.runtime = 12

    document = record.to_document()
    assert document["path"] == "/orders"
    assert document["messages"] == {"info": ["hello"]}
    assert document["application"] == "app"
    assert document["runtime"] == 12
    assert "timestamp" in document
