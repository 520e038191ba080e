"""Append-only text file used as fallback (or second) output for log records."""

import os
import threading
from pathlib import Path
from typing import Optional, TextIO, Union


class FileSink:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._file: Optional[TextIO] = None

    @property
    def is_open(self) -> bool:
        return self._file is not None and not self._file.closed

    def _open(self) -> TextIO:
        if self.path.parent and not self.path.parent.exists():
            os.makedirs(self.path.parent, exist_ok=True)
        return open(self.path, "a", encoding="utf-8")

    def write(self, line: str) -> None:
        """Append a line. The file is opened on first write; OSError propagates."""
        with self._lock:
            if not self.is_open:
                self._file = self._open()
            self._file.write(line if line.endswith("\n") else line + "\n")
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            if self.is_open:
                self._file.close()
            self._file = None
