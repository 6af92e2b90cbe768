"""Structured logging for DriveWatch Core

Every log line can carry the device being processed and the id of the
monitoring run, plus arbitrary keyword fields:

    from drivewatch_core.structured_logger import get_logger, device_context

    logger = get_logger("drivewatch.history")
    with device_context(device="/dev/sda"):
        logger.info("Recorded analysis", record_id=42)

JSON output (``configure_logging(json_format=True)``):

    {"timestamp": "2026-10-19T16:45:00.123Z", "level": "INFO",
     "logger": "drivewatch.history", "message": "Recorded analysis",
     "device": "/dev/sda", "run_id": "1a2b3c4d", "fields": {"record_id": 42}}

Console output:

    2026-10-19 16:45:00 INFO     drivewatch.history [/dev/sda] Recorded analysis record_id=42
"""

import json
import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union


_device: ContextVar[Optional[str]] = ContextVar('device', default=None)
_run_id: ContextVar[Optional[str]] = ContextVar('run_id', default=None)

_CONTEXT_FIELDS = ('device', 'run_id')

# Attributes every LogRecord has; anything else was passed as a field
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord('', logging.INFO, '', 0, '', (), None).__dict__
) | {'message', 'asctime', 'device_tag'} | set(_CONTEXT_FIELDS)


def _fields_of(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRIBUTES and not key.startswith('_')
    }


class DeviceContextFilter(logging.Filter):
    """Copy the current device context onto each record"""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_current_context().items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers"""

    def __init__(self, include_context: bool = True, flatten_extra: bool = False):
        super().__init__()
        self.include_context = include_context
        self.flatten_extra = flatten_extra

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_context:
            context = get_current_context(skip_empty=True)
            for key in _CONTEXT_FIELDS:
                value = getattr(record, key, None) or context.get(key)
                if value:
                    entry[key] = value

        fields = _fields_of(record)
        if fields and self.flatten_extra:
            entry.update(fields)
        elif fields:
            entry["fields"] = fields

        if record.levelno >= logging.WARNING:
            entry["source"] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
            }

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Single-line human readable output with the device in brackets"""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[2m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[1;31m',
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True, include_context: bool = True):
        super().__init__(
            fmt='%(asctime)s %(levelname)-8s %(name)s%(device_tag)s %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        self.use_colors = use_colors and sys.stdout.isatty()
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        device = getattr(record, 'device', None) or _device.get()
        record.device_tag = f" [{device}]" if device and self.include_context else ""

        line = super().format(record)
        fields = _fields_of(record)
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in fields.items())

        color = self.LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{line}{self.RESET}" if color else line


class StructuredLogger:
    """
    Logger that takes structured fields as keyword arguments.

    Example:
        logger = StructuredLogger("drivewatch.alerts")
        logger.warning("Webhook rejected alert", status_code=503)
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

    def _log(self, level: int, message: str, exc_info: bool = False, **fields):
        if self.logger.isEnabledFor(level):
            # stacklevel points the record at our caller, not this wrapper
            self.logger.log(level, message, exc_info=exc_info, extra=fields, stacklevel=3)

    def debug(self, message: str, **fields):
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields):
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields):
        self._log(logging.ERROR, message, **fields)

    def exception(self, message: str, **fields):
        self._log(logging.ERROR, message, exc_info=True, **fields)


class device_context:
    """
    Tag every log line in scope with a device and run id.

    Example:
        with device_context(device="/dev/nvme0n1"):
            store.record_analysis(snapshot, result)
    """

    def __init__(self, device: Optional[str] = None, run_id: Optional[str] = None):
        self.device = device
        self.run_id = run_id or _run_id.get() or uuid.uuid4().hex[:8]
        self._tokens = []

    def __enter__(self):
        self._tokens = [(_run_id, _run_id.set(self.run_id))]
        if self.device:
            self._tokens.append((_device, _device.set(self.device)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens = []


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)


def configure_logging(
    level: Union[int, str] = logging.INFO,
    json_format: bool = False,
    include_context: bool = True
):
    """
    Replace the root handlers with one stdout handler.

    Args:
        level: Level name or number
        json_format: JSON lines instead of console output
        include_context: Add device and run id to each line
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(DeviceContextFilter())
    if json_format:
        handler.setFormatter(JSONFormatter(include_context=include_context))
    else:
        handler.setFormatter(ConsoleFormatter(include_context=include_context))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_current_context(skip_empty: bool = False) -> Dict[str, Optional[str]]:
    """The device and run id of the enclosing device_context"""
    context = {
        "device": _device.get(),
        "run_id": _run_id.get(),
    }
    if skip_empty:
        return {key: value for key, value in context.items() if value}
    return context
