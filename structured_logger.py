#!/usr/bin/env python3
"""
Logging setup for pvc-sync.

Two output formats are supported on stdout:

- text: ``<ISO8601 timestamp> - <LEVEL> - <message>``, the default
- json: one JSON object per line, for log shippers

Under dry-run every line carries a `` [DRY RUN] `` marker; quiet mode hides
informational progress messages but keeps warnings and errors, and under
dry-run also the would-be command lines.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

DRY_RUN_PREFIX = " [DRY RUN] "
COMMAND_RECORD_FLAG = "command_line"
TEXT_FORMAT = '%(asctime)s - %(levelname)s - %(dry_run_prefix)s%(message)s'


class DryRunFilter(logging.Filter):
    """Attach the dry-run marker to every record passing through a handler."""

    def __init__(self, dry_run: bool):
        super().__init__()
        self.dry_run = dry_run

    def filter(self, record: logging.LogRecord) -> bool:
        record.dry_run_prefix = DRY_RUN_PREFIX if self.dry_run else ""
        record.dry_run = self.dry_run
        return True


class QuietFilter(logging.Filter):
    """
    Drop informational records in quiet mode.

    Under dry-run the would-be command lines stay visible, since they are the
    output the operator reviews.
    """

    def __init__(self, show_commands: bool):
        super().__init__()
        self.show_commands = show_commands

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.WARNING:
            return True
        return self.show_commands and getattr(record, COMMAND_RECORD_FLAG, False)


class TimestampedTextFormatter(logging.Formatter):
    """Line formatter with local ISO8601 timestamps including the UTC offset."""

    def __init__(self):
        super().__init__(fmt=TEXT_FORMAT)

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        created = datetime.fromtimestamp(record.created).astimezone()
        return created.isoformat(timespec='milliseconds')

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, 'dry_run_prefix'):
            record.dry_run_prefix = ""
        return super().format(record)


class StructuredJSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format with:
    - timestamp (ISO8601, UTC)
    - level
    - logger name
    - message
    - service
    - dry_run flag
    - additional fields passed as ``extra={"extra_fields": {...}}``
    """

    def __init__(self, service_name: str = "pvc-sync"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'service': self.service_name,
            'dry_run': getattr(record, 'dry_run', False),
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        extra_fields = getattr(record, 'extra_fields', None)
        if isinstance(extra_fields, dict):
            log_data.update(extra_fields)

        return json.dumps(log_data, default=str)


def setup_logging(
    dry_run: bool = False,
    quiet: bool = False,
    log_format: str = "text",
    stream=None,
) -> logging.Logger:
    """
    Configure the root logger for a pvc-sync run.

    Args:
        dry_run: Mark every line as a dry-run line
        quiet: Only emit warnings and errors, plus command lines under dry-run
        log_format: ``text`` or ``json``
        stream: Output stream, stdout by default

    Returns:
        Configured root logger
    """
    logger = logging.getLogger()
    logger.setLevel(logging.INFO)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(logging.INFO)
    if quiet:
        handler.addFilter(QuietFilter(show_commands=dry_run))
    handler.addFilter(DryRunFilter(dry_run))

    if log_format == "json":
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(TimestampedTextFormatter())

    logger.addHandler(handler)

    return logger
