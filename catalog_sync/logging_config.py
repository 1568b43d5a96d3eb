"""Structured logging for sync passes.

Console output is human-readable with the vendor and run id in front of every
message emitted inside a pass. The files under the log directory are JSON for
Loki/Promtail: ``app.log`` gets everything, ``error.log`` only errors. Records
logged through :func:`get_logger` carry their sync context as top-level JSON
keys, and a rejected feed row attached as ``raw_row`` is flattened to a
bounded string.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from pythonjsonlogger import jsonlogger

from catalog_sync.config import settings

QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "sqlalchemy.engine", "aiosqlite")


def compact_row(row, max_chars: int | None = None) -> str:
    """Render a raw feed row as a single bounded line."""
    limit = max_chars if max_chars is not None else settings.log_raw_row_max_chars
    text = json.dumps(row, default=str, sort_keys=True, ensure_ascii=False)
    if len(text) > limit:
        return f"{text[:limit]}... ({len(text)} chars)"
    return text


class SyncJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter for Loki. Context passed as extra becomes top-level keys."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = (
            datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace('+00:00', 'Z')
        )
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['source'] = f"{record.filename}:{record.lineno}"

        # Set by the console formatter
        log_record.pop('sync_tag', None)

        if 'raw_row' in log_record:
            log_record['raw_row'] = compact_row(log_record['raw_row'])


class SyncConsoleFormatter(logging.Formatter):
    """Plain-text formatter that prefixes ``[vendor#run]`` when known."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s %(sync_tag)s%(message)s")

    def format(self, record):
        vendor = getattr(record, "vendor", None)
        run_id = getattr(record, "run_id", None)
        if vendor and run_id is not None:
            record.sync_tag = f"[{vendor}#{run_id}] "
        elif vendor:
            record.sync_tag = f"[{vendor}] "
        else:
            record.sync_tag = ""
        return super().format(record)


def setup_logging(log_dir: str | Path | None = None, level: str | None = None) -> Path:
    """
    Install console and JSON file handlers on the root logger.

    Args:
        log_dir: Directory for app.log and error.log. Defaults to
                 ``settings.log_dir``, relative to the working directory.
        level: Root level name. Defaults to ``settings.log_level``.

    Returns:
        The directory the log files are written to
    """
    logs_dir = Path(log_dir or settings.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    level_name = (level or settings.log_level).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name))
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(SyncConsoleFormatter())
    root_logger.addHandler(console_handler)

    json_formatter = SyncJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")

    json_handler = logging.FileHandler(logs_dir / "app.log", encoding="utf-8")
    json_handler.setFormatter(json_formatter)
    root_logger.addHandler(json_handler)

    error_handler = logging.FileHandler(logs_dir / "error.log", encoding="utf-8")
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(json_formatter)
    root_logger.addHandler(error_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Logging configured (level=%s, dir=%s)", level_name, logs_dir)
    return logs_dir


class SyncLogAdapter(logging.LoggerAdapter):
    """Logger adapter carrying sync context; per-call extra wins on conflict."""

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs

    def bind(self, **context) -> "SyncLogAdapter":
        """Return an adapter with additional context fields."""
        return SyncLogAdapter(self.logger, {**self.extra, **context})


def get_logger(name: str, **context) -> SyncLogAdapter:
    """
    Get a logger tagged with sync context.

    Args:
        name: Logger name (usually __name__)
        **context: Context fields such as vendor='lipseys', run_id=42

    Returns:
        SyncLogAdapter with context
    """
    return SyncLogAdapter(logging.getLogger(name), context)
