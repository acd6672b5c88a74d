from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog
from structlog.typing import EventDict, Processor

from kubedeck.config import AppSettings
from kubedeck.telemetry import REDACTED, is_sensitive_key

LOG_FILE_NAME = "kubedeck.log"
TELEMETRY_LOG_FILE_NAME = "kubedeck-telemetry.log"
ROOT_LOGGER_NAME = "kubedeck"
TELEMETRY_LOGGER_NAME = "kubedeck.telemetry"

# Keys structlog itself owns; never treated as user data.
_RESERVED_KEYS = frozenset({"event", "level", "logger", "timestamp", "telemetry_event"})


def configure_application_logging(settings: AppSettings) -> Path:
    """Route `kubedeck.*` loggers to stderr and to JSON files under `log_dir`.

    The console only shows records at `settings.log_level`; the files keep
    everything from DEBUG up. Stdout stays free for command output. Calling
    this again swaps the handlers instead of stacking them.
    """
    log_dir = settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME
    telemetry_log_file = log_dir / TELEMETRY_LOG_FILE_NAME
    console_level = _parse_level(settings.log_level)

    _configure_structlog()

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG)
    root.propagate = False
    _drop_handlers(root)

    console_handler = logging.StreamHandler(stream=sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(_console_formatter(colors=sys.stderr.isatty()))
    root.addHandler(console_handler)
    root.addHandler(_json_file_handler(log_file, logging.DEBUG))

    telemetry_logger = logging.getLogger(TELEMETRY_LOGGER_NAME)
    telemetry_logger.setLevel(logging.INFO)
    telemetry_logger.propagate = False
    _drop_handlers(telemetry_logger)
    telemetry_logger.addHandler(_json_file_handler(telemetry_log_file, logging.INFO))

    root.info(
        "logging configured console_level=%s path=%s telemetry_path=%s",
        logging.getLevelName(console_level),
        log_file,
        telemetry_log_file,
    )
    return log_file


def _parse_level(raw_level: str) -> int:
    resolved = logging.getLevelName(raw_level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _drop_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _json_file_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[
                _add_source_location,
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(sort_keys=True),
            ],
        )
    )
    return handler


def _console_formatter(*, colors: bool) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_pre_chain(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
    )


def _pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        _redact_credentials,
    ]


def _redact_credentials(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Blank out bound context such as `authorization` or `refresh_token`."""
    for key in list(event_dict):
        if key.startswith("_") or key in _RESERVED_KEYS:
            continue
        if is_sensitive_key(key):
            event_dict[key] = REDACTED
    return event_dict


def _add_source_location(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict["module"] = record.module
        event_dict["lineno"] = record.lineno
    return event_dict
