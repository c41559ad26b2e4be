"""
Logging setup: structlog rendering through stdlib handlers.

Sinks come from ``LOG_CONSUMERS``; with none configured, both a console
(stderr) sink and a rotating ``agent.log`` file are installed.
"""

import logging
import logging.handlers
import sys
from pathlib import Path

import structlog

from .config import LogConsumerConfig, Settings

DEFAULT_LOG_FILE = "agent.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 3

SHARED_PROCESSORS = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _level(name: str | None, default: int) -> int:
    if not name:
        return default
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else default


def _formatter(colors: bool) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
    )


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(_formatter(colors=sys.stderr.isatty()))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    parent = Path(path).parent
    if str(parent) not in ("", "."):
        parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(_formatter(colors=False))
    return handler


def setup_logging(settings: Settings) -> list[str]:
    """Configure structlog and the root logger. Returns a description per sink."""
    level = _level(settings.log_level, logging.INFO)
    consumers = settings.log_consumers or [
        LogConsumerConfig(type="console"),
        LogConsumerConfig(type="file"),
    ]

    handlers: list[logging.Handler] = []
    descriptions: list[str] = []
    unknown: list[str] = []

    for consumer in consumers:
        sink_level = _level(consumer.level, level)
        level_name = logging.getLevelName(sink_level)
        sink_type = consumer.type.lower()

        if sink_type == "console":
            handlers.append(_console_handler(sink_level))
            descriptions.append(f"console (stderr, {level_name})")
        elif sink_type == "file":
            path = consumer.path or DEFAULT_LOG_FILE
            handlers.append(_file_handler(path, sink_level))
            descriptions.append(f"file ({path}, {level_name})")
        else:
            unknown.append(consumer.type)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(min([h.level for h in handlers], default=level))

    # SDK transports are chatty at DEBUG
    for noisy in ("httpx", "httpcore", "anthropic", "openai"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logger = structlog.get_logger()
    for sink_type in unknown:
        logger.warning("Unknown log consumer type", type=sink_type)

    return descriptions
