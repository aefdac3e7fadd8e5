"""
Logging setup and the per-run trace context.

The executor stamps the current run into a ContextVar:

    run start    -> execution_id, flow_id
    each node    -> node_id, node_name

ContextVars follow the task across awaits, so a bare ``logger.info()`` in
the dispatcher or a backend is attributed to the right run and node even
when several runs share the event loop. Both formatters below read it.
"""

import json
import logging
import os
import re
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

_ANSI = re.compile(r"\x1b\[[0-9;]*m")

# Record attributes passed via ``extra=`` that belong in JSON output
EXTRA_FIELDS = ("event", "node_id", "node_name", "status", "latency_ms", "model")

# Libraries whose own handlers would bypass the JSON formatter
NOISY_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy", "httpx", "httpcore", "openai")


def strip_ansi_codes(text: str) -> str:
    return _ANSI.sub("", text)


def _clean(value: Any) -> Any:
    return strip_ansi_codes(value) if isinstance(value, str) else value


class StructuredFormatter(logging.Formatter):
    """One JSON object per line for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
            **get_trace_context(),
        }
        entry.update(
            (name, _clean(getattr(record, name)))
            for name in EXTRA_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Terminal output: coloured level, then ``[exec:… | flow:… | node:…]``, then the message."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    @staticmethod
    def context_prefix(context: dict[str, Any]) -> str:
        labels = []
        if context.get("execution_id"):
            labels.append("exec:" + str(context["execution_id"])[-8:])
        if context.get("flow_id"):
            labels.append(f"flow:{context['flow_id']}")
        if context.get("node_name"):
            labels.append(f"node:{context['node_name']}")
        return "[" + " | ".join(labels) + "] " if labels else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        text = record.getMessage()
        if getattr(record, "event", None) is not None:
            text = f"{text} [{record.event}]"
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        prefix = self.context_prefix(get_trace_context())
        return f"{color}[{record.levelname:<8}]{self.RESET} {prefix}{text}"


def _resolve_format(format: str) -> str:
    if format != "auto":
        return format
    if os.getenv("LOG_FORMAT", "").lower() == "json":
        return "json"
    return "json" if os.getenv("ENV", "development").lower() == "production" else "human"


def configure_logging(level: str = "INFO", format: str = "auto") -> None:
    """
    Install a single stderr handler on the root logger. Call once at startup.

    ``format`` is "json", "human" or "auto". Auto picks JSON when
    LOG_FORMAT=json or ENV=production and human-readable text otherwise.
    """
    as_json = _resolve_format(format) == "json"

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter() if as_json else HumanReadableFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    if as_json:
        _quiet_third_party()


def _quiet_third_party() -> None:
    """Keep colour codes and banner output from backend libraries out of JSON logs."""
    os.environ["NO_COLOR"] = "1"
    os.environ["FORCE_COLOR"] = "0"

    import litellm

    litellm.suppress_debug_info = True

    for name in NOISY_LOGGERS:
        library_logger = logging.getLogger(name)
        library_logger.handlers.clear()
        library_logger.propagate = True


def set_trace_context(**fields: Any) -> None:
    """Add or overwrite fields in the current task's trace context."""
    trace_context.set({**(trace_context.get() or {}), **fields})


def get_trace_context() -> dict[str, Any]:
    return dict(trace_context.get() or {})


def clear_trace_context() -> None:
    trace_context.set(None)
