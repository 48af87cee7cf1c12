import logging
import logging.handlers
import sys
from typing import Any, Dict
from datetime import datetime

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.typing import EventDict, WrappedLogger

from link_analyzer.core.config import settings


class PrettyConsoleRenderer:
    """Custom console renderer for pretty terminal output."""

    # ANSI color codes
    COLORS = {
        'info': '\033[36m',      # Cyan
        'warning': '\033[33m',   # Yellow
        'error': '\033[31m',     # Red
        'critical': '\033[31m',  # Red
        'debug': '\033[90m',     # Gray
        'reset': '\033[0m',
        'dim': '\033[2m',
    }

    ICONS = {
        'info': 'ℹ',
        'warning': '⚠',
        'error': '✗',
        'critical': '✗',
        'debug': '○',
    }

    def __call__(self, logger: WrappedLogger, name: str, event_dict: EventDict) -> str:
        """Format log event for pretty console output."""
        level = event_dict.get('level', 'info').lower()
        timestamp = event_dict.get('timestamp', '')
        logger_name = event_dict.get('logger', '')
        event = event_dict.get('event', '')

        if timestamp:
            try:
                dt = datetime.fromisoformat(timestamp.replace('Z', '+00:00'))
                time_str = dt.strftime('%H:%M:%S')
            except ValueError:
                time_str = timestamp[:8]
        else:
            time_str = ''

        color = self.COLORS.get(level, self.COLORS['info'])
        icon = self.ICONS.get(level, self.ICONS['info'])

        parts = []

        if time_str:
            parts.append(f"{self.COLORS['dim']}{time_str}{self.COLORS['reset']}")

        parts.append(f"{color}{icon}{self.COLORS['reset']}")

        # Only show third-party logger names
        if logger_name and not logger_name.startswith('link_analyzer'):
            parts.append(f"{self.COLORS['dim']}[{logger_name}]{self.COLORS['reset']}")

        parts.append(str(event))

        extras = []
        exclude_keys = {'timestamp', 'level', 'logger', 'event', 'logger_name', 'exception'}
        for key, value in event_dict.items():
            if key not in exclude_keys:
                if isinstance(value, (list, tuple)) and len(value) > 3:
                    value_str = f"[{len(value)} items]"
                elif isinstance(value, dict):
                    value_str = f"[{len(value)} fields]"
                else:
                    value_str = str(value)
                extras.append(f"{self.COLORS['dim']}{key}={value_str}{self.COLORS['reset']}")

        if extras:
            parts.append(f"{self.COLORS['dim']}({', '.join(extras)}){self.COLORS['reset']}")

        line = ' '.join(parts)
        if event_dict.get('exception'):
            line += "\n" + event_dict['exception']
        return line


def _shared_processors() -> list:
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.contextvars.merge_contextvars,
    ]


def setup_logging() -> None:
    """Configure structured logging for the application."""

    shared_processors = _shared_processors()

    if settings.log_format == "json":
        renderer = JSONRenderer()
    else:
        renderer = PrettyConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))

    # File output is always JSON so it stays greppable
    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            settings.log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=JSONRenderer(),
                foreign_pre_chain=shared_processors,
            )
        )
        root_logger.addHandler(file_handler)

    # Silence noisy loggers
    for logger_name in ["httpx", "httpcore", "asyncio", "aiosqlite"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.stdlib.get_logger(name)


class LogContext:
    """Context manager for adding context to logs."""

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs
        self._tokens: Dict[str, Any] = {}

    def __enter__(self) -> None:
        self._tokens = structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
