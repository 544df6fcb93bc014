"""
Logging framework for the migration engine.
"""

from .handlers import FileHandler, StreamHandler
from .manager import LogFormatter, LoggingManager

__all__ = [
    # Handler classes
    "FileHandler",
    "StreamHandler",
    # Main classes
    "LogFormatter",
    "LoggingManager",
]
