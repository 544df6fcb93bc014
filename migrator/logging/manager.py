"""
Logging management for the migration engine.

The engine only ever calls ``logging.getLogger``; this module decides
where those records go. The CLI builds one LoggingManager per process from
the ``log_*`` settings and shuts it down on exit.
"""

from contextlib import contextmanager
import logging
import threading
import time
from typing import Any, ClassVar, Dict, Iterator, Optional, Union

# ANSI SGR codes per level
LEVEL_COLORS: Dict[int, str] = {
    logging.DEBUG: "36",
    logging.INFO: "32",
    logging.WARNING: "33",
    logging.ERROR: "31",
    logging.CRITICAL: "35",
}


class LogFormatter(logging.Formatter):
    """
    Formatter that tags records with the migration they concern.

    A record logged with ``extra={"migration_version": "0003"}`` has its
    message prefixed with ``[Migration: 0003]``. Tracebacks of engine
    errors are followed by the error's context dictionary.
    """

    DEFAULT_FORMAT: ClassVar[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    DEFAULT_DATE_FORMAT: ClassVar[str] = "%Y-%m-%d %H:%M:%S"

    def __init__(
        self,
        format_string: Optional[str] = None,
        date_format: Optional[str] = None,
        use_colors: bool = False,
    ):
        super().__init__(format_string or self.DEFAULT_FORMAT, date_format or self.DEFAULT_DATE_FORMAT)
        self.use_colors = use_colors

    def formatMessage(self, record: logging.LogRecord) -> str:
        version = getattr(record, "migration_version", None)
        if version:
            original = record.message
            record.message = f"[Migration: {version}] {original}"
            try:
                return super().formatMessage(record)
            finally:
                record.message = original
        return super().formatMessage(record)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        return f"\033[{color}m{text}\033[0m" if color else text

    def formatException(self, ei: Any) -> str:
        text = super().formatException(ei)
        context = getattr(ei[1], "context", None) if ei else None
        if context:
            text += f"\nContext: {context}"
        return text


class LoggingManager:
    """
    Owns the root logger configuration for one process.

    Config keys (all optional): ``level`` (name or number, default INFO),
    ``format`` (format string for every handler), ``file`` (also write to
    this path) and ``use_colors`` (colour console output when the terminal
    allows it, default True).

    Usage:
        logging_manager = LoggingManager({"level": "DEBUG"})
        logger = logging_manager.get_logger("migrator")
        with logging_manager.log_performance("migrator", "up"):
            ...
        logging_manager.shutdown()
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.handlers: Dict[str, logging.Handler] = {}
        self.loggers: Dict[str, logging.Logger] = {}
        self._lock = threading.Lock()

        self._configure_root_logger()

    def _configure_root_logger(self) -> None:
        # Deferred: handlers imports LogFormatter from this module.
        from .handlers import FileHandler, StreamHandler

        root = logging.getLogger()
        root.setLevel(self._resolve_level(self.config.get("level") or "INFO"))
        for existing in list(root.handlers):
            root.removeHandler(existing)

        format_string = self.config.get("format")
        self.handlers["console"] = StreamHandler(
            use_colors=self.config.get("use_colors", True),
            format_string=format_string,
        )
        if self.config.get("file"):
            self.handlers["file"] = FileHandler(self.config["file"], format_string)

        for handler in self.handlers.values():
            root.addHandler(handler)

    @staticmethod
    def _resolve_level(level: Union[str, int]) -> int:
        return logging.getLevelName(level.upper()) if isinstance(level, str) else level

    def get_logger(self, name: str, level: Union[str, int, None] = None) -> logging.Logger:
        """
        Return the named logger, optionally pinning its level.

        Args:
            name: Dotted logger name
            level: Level applied the first time the logger is requested

        Returns:
            Logger instance
        """
        with self._lock:
            logger = self.loggers.get(name)
            if logger is None:
                logger = logging.getLogger(name)
                if level is not None:
                    logger.setLevel(self._resolve_level(level))
                self.loggers[name] = logger
            return logger

    @contextmanager
    def log_performance(self, logger_name: str, operation: str) -> Iterator[None]:
        """
        Log how long the wrapped block took, or how long it ran before failing.

        Exceptions propagate unchanged.
        """
        logger = self.get_logger(logger_name)
        started = time.monotonic()
        logger.debug(f"{operation}: started")

        try:
            yield
        except Exception as e:
            logger.error(f"{operation}: failed after {time.monotonic() - started:.3f}s - {e}")
            raise

        logger.info(f"{operation}: finished in {time.monotonic() - started:.3f}s")

    def shutdown(self) -> None:
        """Remove and close the handlers installed by this manager."""
        with self._lock:
            root = logging.getLogger()
            while self.handlers:
                _, handler = self.handlers.popitem()
                root.removeHandler(handler)
                handler.close()
            self.loggers.clear()
