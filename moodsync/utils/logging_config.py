"""
MoodSync Logging Configuration

Structured logging for MoodSync:
- structlog processors on top of stdlib logging
- Rotating main and errors-only log files
- Optional colored console output
- Per-session context via contextvars
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars


class MoodSyncLogger:
    """
    Centralized logging configuration for MoodSync.

    Provides structured logging with:
    - File rotation by size
    - Console output for development
    - Quieter third-party HTTP loggers
    """

    EXTERNAL_MODULES = ["aiohttp", "aiohttp.access", "urllib3", "google"]

    def __init__(
        self,
        log_dir: str = "logs",
        log_level: str = "INFO",
        enable_console: bool = True,
        enable_files: bool = True,
        max_file_size: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5
    ):
        """
        Initialize the logging system.

        Args:
            log_dir: Directory to store log files
            log_level: Default log level
            enable_console: Whether to enable console logging
            enable_files: Whether to write rotating log files
            max_file_size: Maximum size per log file before rotation
            backup_count: Number of backup files to keep
        """
        self.log_dir = Path(log_dir)
        self.log_level = getattr(logging, log_level.upper(), logging.INFO)
        self.enable_console = enable_console
        self.enable_files = enable_files
        self.max_file_size = max_file_size
        self.backup_count = backup_count

        self._setup_logging()

    def _setup_logging(self):
        """Configure the complete logging system."""
        root_logger = logging.getLogger()
        root_logger.handlers.clear()

        self._configure_structlog()

        if self.enable_files:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._setup_file_handlers()

        if self.enable_console:
            self._setup_console_handler()

        self._configure_external_loggers()
        root_logger.setLevel(self.log_level)

    def _configure_structlog(self):
        """Configure structlog for structured logging."""
        shared_processors = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        structlog.configure(
            processors=shared_processors + [
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def _setup_file_handlers(self):
        """Rotating main log plus an errors-only log."""
        root_logger = logging.getLogger()
        root_logger.addHandler(self._create_rotating_file_handler("moodsync.log", self.log_level))
        root_logger.addHandler(self._create_rotating_file_handler("errors.log", logging.ERROR))

    def _create_rotating_file_handler(
        self,
        filename: str,
        level: int
    ) -> logging.handlers.RotatingFileHandler:
        handler = logging.handlers.RotatingFileHandler(
            filename=self.log_dir / filename,
            maxBytes=self.max_file_size,
            backupCount=self.backup_count,
            encoding='utf-8'
        )
        handler.setLevel(level)
        handler.setFormatter(structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
        ))
        return handler

    def _setup_console_handler(self):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ))
        logging.getLogger().addHandler(console_handler)

    def _configure_external_loggers(self):
        # HTTP library chatter stays at WARNING even when debugging
        for module in self.EXTERNAL_MODULES:
            logging.getLogger(module).setLevel(logging.WARNING)

    def get_logger(self, name: str) -> structlog.stdlib.BoundLogger:
        """Get a structured logger for a specific component."""
        return structlog.get_logger(name)


_logger_instance: Optional[MoodSyncLogger] = None


def setup_logging(
    log_dir: str = "logs",
    log_level: str = "INFO",
    enable_console: bool = True,
    **kwargs
) -> MoodSyncLogger:
    """
    Setup the global logging configuration.

    Args:
        log_dir: Directory to store log files
        log_level: Default log level
        enable_console: Whether to enable console logging
        **kwargs: Additional arguments for MoodSyncLogger

    Returns:
        Configured logger instance
    """
    global _logger_instance

    _logger_instance = MoodSyncLogger(
        log_dir=log_dir,
        log_level=log_level,
        enable_console=enable_console,
        **kwargs
    )
    return _logger_instance


def set_session_context(session_id: str, user_id: Optional[str] = None):
    """Bind session identifiers to every log line emitted in this context."""
    clear_contextvars()
    bind_contextvars(session_id=session_id, user_id=user_id)


def clear_session_context():
    clear_contextvars()
