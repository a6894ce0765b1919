"""
Session Audit Logging.

Every FixRx component writes through a :class:`StructuredLogger`: one
JSON object per line, with the audit ``event`` name lifted to the top
level and any other ``extra`` fields kept under ``"extra"``::

    {"timestamp": "...", "level": "INFO", "logger": "fixrx.services",
     "event": "TOKEN_REFRESHED", "message": "Access token refreshed."}

Credentials must never reach a log sink.  Each handler carries a
:class:`TokenRedactionFilter` that masks bearer values and JWT-shaped
strings in the rendered message, and masks ``extra`` fields whose name
marks them as secret (``access_token``, ``refreshToken``,
``authorization``, ``password`` ...).
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Mapping, Optional, TextIO

REDACTED: str = "[REDACTED]"

_BEARER_VALUE = re.compile(r"(?i)\b(bearer\s+)[A-Za-z0-9\-._~+/]+=*")
_JWT_SHAPED = re.compile(r"\beyJ[\w-]*\.[\w-]+\.[\w-]+")

# Compared after lower-casing and dropping "_" / "-".
_SECRET_FIELDS: frozenset[str] = frozenset(
    {"authorization", "token", "accesstoken", "refreshtoken", "password", "secret"}
)

# Attributes every LogRecord has; anything else arrived through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord(
        name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
    ).__dict__.keys()
) | {"message", "asctime"}


def redact(text: str) -> str:
    """Mask bearer values and JWT-shaped substrings in *text*."""
    text = _BEARER_VALUE.sub(lambda m: m.group(1) + REDACTED, text)
    return _JWT_SHAPED.sub(REDACTED, text)


def _is_secret(field: str) -> bool:
    return field.lower().replace("_", "").replace("-", "") in _SECRET_FIELDS


def _scrub(field: str, value: Any) -> Any:
    if _is_secret(field):
        return REDACTED
    if isinstance(value, str):
        return redact(value)
    if isinstance(value, Mapping):
        return {str(k): _scrub(str(k), v) for k, v in value.items()}
    return value


class TokenRedactionFilter(logging.Filter):
    """Handler filter that strips credentials from a record before it is emitted.

    The message is rendered once (``msg % args``) and redacted, so a token
    passed as a format argument is masked too.  Never drops a record.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = ()
        for field in [k for k in record.__dict__ if k not in _RECORD_ATTRS]:
            setattr(record, field, _scrub(field, getattr(record, field)))
        return True


class JSONFormatter(logging.Formatter):
    """Renders a record as one JSON line.

    ``extra`` values that are JSON-native (numbers, booleans, mappings)
    keep their type; anything else is rendered with ``str``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        event = extra.pop("event", None)
        if event is not None:
            entry["event"] = str(event)
        entry["message"] = record.getMessage()
        if extra:
            entry["extra"] = extra

        if record.exc_info and not record.exc_text:
            record.exc_text = redact(self.formatException(record.exc_info))
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False, default=str)


class StructuredLogger:
    """Injectable audit logger.

    Parameters
    ----------
    name:
        ``logging`` name; handlers are attached once per name, so two
        instances with the same name share one set of sinks.
    level:
        Threshold for the logger and its handlers.
    stream:
        Console sink (default ``sys.stdout``).  Tests pass a ``StringIO``.
    log_file, max_bytes, backup_count:
        Rotating file sink; ``None`` falls back to ``LOG_FILE``,
        ``LOG_MAX_BYTES`` and ``LOG_BACKUP_COUNT`` from :class:`AppConfig`.
        An unwritable path degrades to console-only logging.
    """

    def __init__(
        self,
        name: str = "fixrx",
        level: int = logging.INFO,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(level)
        if not self._logger.handlers:
            self._attach_sinks(level, stream, log_file, max_bytes, backup_count)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _attach_sinks(
        self,
        level: int,
        stream: Optional[TextIO],
        log_file: Optional[str],
        max_bytes: Optional[int],
        backup_count: Optional[int],
    ) -> None:
        # Settings are read only when the first sink is built.
        from fixrx.config import get_config
        cfg = get_config()

        self._add_handler(logging.StreamHandler(stream or sys.stdout), level)

        path = Path(log_file or cfg.LOG_FILE)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            rotating = RotatingFileHandler(
                filename=str(path),
                maxBytes=max_bytes if max_bytes is not None else cfg.LOG_MAX_BYTES,
                backupCount=backup_count if backup_count is not None else cfg.LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning(
                "Log file %s unavailable (%s); console logging only.", path, exc,
            )
            return
        self._add_handler(rotating, level)

    def _add_handler(self, handler: logging.Handler, level: int) -> None:
        handler.setLevel(level)
        handler.addFilter(TokenRedactionFilter())
        handler.setFormatter(JSONFormatter())
        self._logger.addHandler(handler)


def get_logger(name: str = "fixrx") -> StructuredLogger:
    """``StructuredLogger`` with default sinks for *name*."""
    return StructuredLogger(name=name)
