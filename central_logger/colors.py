import re

# OSC strings (terminated by BEL or ST), CSI sequences in 7-bit "ESC [" and
# 8-bit 0x9B form, two-byte escapes, then any stray ESC
ANSI_ESCAPE_RE = re.compile(
    r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|(?:\x1b\[|\x9b)[0-?]*[ -/]*[@-~]"
    r"|\x1b[@-Z\\-_]"
    r"|[\x1b\x9b]"
)


def is_colorized(message: str) -> bool:
    return "\x1b" in message or "\x9b" in message


def strip_colors(message: str) -> str:
    """Remove ANSI escape sequences, leaving every other character untouched."""
    if not is_colorized(message):
        return message
    return ANSI_ESCAPE_RE.sub("", message)
