"""
Handlers installed by LoggingManager.
"""

import logging
import os
from pathlib import Path
import sys
from typing import IO, Optional, Union

from .manager import LogFormatter


def stream_supports_color(stream: IO) -> bool:
    """True when ``stream`` is an interactive terminal that accepts ANSI colours."""
    if "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb":
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


class FileHandler(logging.FileHandler):
    """
    Appends UTF-8 log lines to a file, creating missing parent directories.

    Colours are never written to files.
    """

    def __init__(self, filename: Union[str, Path], format_string: Optional[str] = None):
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(path, mode="a", encoding="utf-8")
        self.setFormatter(LogFormatter(format_string, use_colors=False))


class StreamHandler(logging.StreamHandler):
    """
    Console handler, stderr by default.

    ``use_colors`` is a request: it only takes effect on a colour-capable
    terminal, and the resolved value is kept on the handler.
    """

    def __init__(self, stream: Optional[IO] = None, use_colors: bool = True, format_string: Optional[str] = None):
        super().__init__(stream if stream is not None else sys.stderr)
        self.use_colors = use_colors and stream_supports_color(self.stream)
        self.setFormatter(LogFormatter(format_string, use_colors=self.use_colors))
