# phigate/telemetry/logging.py
from __future__ import annotations

import contextvars
import hashlib
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, MutableMapping, Optional, Tuple

# ------------------------------- Session context ------------------------------

_session_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "phigate_session_id", default=None
)


def set_session_id(value: Optional[str]) -> contextvars.Token[Optional[str]]:
    return _session_id.set(value)


def get_session_id() -> Optional[str]:
    return _session_id.get()


def reset_session_id(token: contextvars.Token[Optional[str]]) -> None:
    _session_id.reset(token)


# ------------------------------- JSON utilities -------------------------------


def _iso8601(dt: datetime) -> str:
    # Always UTC, explicit trailing 'Z'
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


_JSON_SAFE_PRIMITIVES = (str, int, float, bool, type(None))


def _json_sanitize(value: Any) -> Any:
    """
    Best-effort JSON sanitizer for log payloads:
    - Pass through JSON-safe primitives
    - Convert bytes to utf-8 (errors replaced)
    - Convert datetimes to ISO8601
    - Fallback to str(value)
    """
    if isinstance(value, _JSON_SAFE_PRIMITIVES):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, datetime):
        return _iso8601(value)
    if isinstance(value, Mapping):
        return {str(k): _json_sanitize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_sanitize(v) for v in value]
    return str(value)


def mask_secret(val: Optional[str], prefix_len: int = 4) -> Optional[str]:
    """
    Masked representation of a credential for log lines.

    At most ``prefix_len`` characters are shown and at least one character is
    always withheld; an 8-char SHA-256 tail keeps different keys apart.
    """
    if not val:
        return val
    visible_len = min(max(int(prefix_len), 0), max(len(val) - 1, 0))
    tail = hashlib.sha256(val.encode("utf-8")).hexdigest()[:8]
    prefix = val[:visible_len]
    return f"{prefix}…{tail}" if prefix else f"…{tail}"


# ------------------------------ JSON formatter --------------------------------


class JsonFormatter(logging.Formatter):
    """
    Minimal JSON formatter with stable keys. Ensures all fields are
    JSON-serializable and line-oriented.
    """

    # Standard LogRecord attributes to exclude from "extra"
    _std_keys: Tuple[str, ...] = (
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    )

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()

        extra: Dict[str, Any] = {}
        for k, v in record.__dict__.items():
            if k not in self._std_keys and not k.startswith("_"):
                extra[k] = v

        sid = extra.get("session_id") or get_session_id()

        payload: Dict[str, Any] = {
            "ts": _iso8601(datetime.fromtimestamp(record.created, tz=timezone.utc)),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }
        if sid:
            payload["session_id"] = sid

        if extra:
            payload.update(_json_sanitize(extra))

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


# ------------------------------ Logger helpers --------------------------------


_configured = False


def configure_root_logging(level: int | str = "INFO", *, force: bool = False) -> None:
    """
    Idempotent root logger setup for JSON logs to stderr. Safe for tests.
    """
    global _configured
    if _configured and not force:
        return

    root = logging.getLogger()

    resolved_level = (
        level if isinstance(level, int) else getattr(logging, str(level).upper(), logging.INFO)
    )
    root.setLevel(resolved_level)

    # Remove pre-existing handlers to avoid duplicate lines
    for h in list(root.handlers):
        root.removeHandler(h)

    # stdout carries CLI results; logs go to stderr
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    _configured = True


class ContextAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """
    Bind static context (e.g., component, slot) to a logger, ensuring those
    keys appear on every log line via the 'extra' mechanism.
    """

    def __init__(self, logger: logging.Logger, extra: Mapping[str, Any] | None = None):
        super().__init__(logger, dict(extra or {}))

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        merged_extra: Dict[str, Any] = {}
        call_extra = kwargs.get("extra")
        if isinstance(call_extra, Mapping):
            merged_extra.update(dict(call_extra))
        for k, v in (self.extra or {}).items():
            merged_extra.setdefault(k, v)
        kwargs["extra"] = merged_extra
        return msg, kwargs


def bind(logger: logging.Logger | None = None, **context: Any) -> ContextAdapter:
    """
    Return a LoggerAdapter with bound context.

        log = bind(logging.getLogger(__name__), component="keys")
        log.info("selected", extra={"slot": 2})

    If logger is None, the root logger is used.
    """
    base = logger or logging.getLogger()
    return ContextAdapter(base, context)
