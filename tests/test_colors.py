import pytest

from central_logger.colors import is_colorized, strip_colors


@pytest.mark.parametrize("message, expected", [
    ("\x1b[31m TESTING \x1b[0m", " TESTING "),
    ("\x1b[1;32mok\x1b[0m done", "ok done"),
    ("\x1b[4;35;1mSQL (0.3ms)\x1b[0m  SELECT 1", "SQL (0.3ms)  SELECT 1"),
    ("trailing escape \x1b", "trailing escape "),
    ("cut off \x1b[31", "cut off [31"),
    ("\x9b33mbright\x9b0m", "bright"),
    ("\x1b]0;build server\x07deploying", "deploying"),
    ("\x1b]8;;https://example.com\x1b\\link\x1b]8;;\x1b\\ text", "link text"),
])
def test_strip_colors_removes_escape_sequences(message, expected):
    """Escape sequences disappear; every other character is kept verbatim."""
    stripped = strip_colors(message)
    assert stripped == expected
    assert "\x1b" not in stripped
    assert "\x9b" not in stripped


def test_strip_colors_is_idempotent():
    once = strip_colors("\x1b[31mred\x1b[0m and plain")
    assert strip_colors(once) == once


def test_plain_message_is_returned_unchanged():
    message = "  spaces, tabs\tand\nnewlines stay  "
    assert not is_colorized(message)
    assert strip_colors(message) == message


def test_is_colorized_detects_escape_character():
    assert is_colorized("\x1b[0m")
    assert not is_colorized("[0m without the escape byte")
