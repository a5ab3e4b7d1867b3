"""Plain-text log line layout shared by the operator's loggers."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

_LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "FATAL",
}


def _level_name(level: int | str) -> str:
    if isinstance(level, str):
        name = level.upper()
        return "WARN" if name == "WARNING" else name
    if level in _LEVEL_NAMES:
        return _LEVEL_NAMES[level]
    return f"LEVEL({level})"


def _render_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = repr(value)
    if text.endswith(".0"):
        text = text[:-2]
    return text


def _render_datetime(value: datetime) -> str:
    text = value.strftime("%Y-%m-%d %H:%M:%S")
    if value.microsecond:
        text += f".{value.microsecond:06d}".rstrip("0")
    if value.tzinfo is not None:
        text += value.strftime(" %z %Z")
    return text


def _render(value: Any) -> str:
    """Render a context value the way the log line shows it."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray)):
        return "[" + " ".join(str(b) for b in value) + "]"
    if isinstance(value, complex):
        imag = value.imag
        sign = "-" if imag < 0 or (imag == 0 and math.copysign(1.0, imag) < 0) else "+"
        return f"({_render_float(value.real)}{sign}{_render_float(abs(imag))}i)"
    if isinstance(value, float):
        return _render_float(value)
    if isinstance(value, datetime):
        return _render_datetime(value)
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda item: str(item[0]))
        return "map[" + " ".join(f"{_render(k)}:{_render(v)}" for k, v in items) + "]"
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_render(item) for item in value) + "]"
    return str(value)


class ContextFormatter(logging.Formatter):
    """Formats entries as a fixed header followed by ``{key=value}`` context pairs."""

    TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"

    def __init__(self, context: Mapping[str, Any] | None = None) -> None:
        super().__init__()
        self.context: dict[str, Any] = dict(context or {})

    def add(self, key: str, value: Any) -> None:
        """Attach a value to every entry formatted from now on."""
        self.context[key] = value

    def open_namespace(self, key: str) -> None:
        self.context["namespace"] = key

    def clone(self) -> ContextFormatter:
        """A formatter with an independent copy of this one's context."""
        return ContextFormatter(self.context)

    def format_entry(
        self,
        time: datetime,
        level: int | str,
        logger_name: str,
        message: str,
        fields: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None,
    ) -> str:
        """Build one log line, terminated by a newline."""
        enc = self.clone()
        if fields is not None:
            pairs = fields.items() if isinstance(fields, Mapping) else fields
            for key, value in pairs:
                enc.add(key, value)

        context_data = ", ".join(f"{{{k}={_render(v)}}}" for k, v in enc.context.items())
        stamp = time.strftime(self.TIME_FORMAT) + f".{time.microsecond // 1000:03d}"
        return (
            f"[{stamp}] [{_level_name(level)}] [request_id=-] [tenant_id=-] [thread=-] "
            f"[class={logger_name}] {message} {context_data}\n"
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format a standard logging record; ``extra={"context": {...}}`` adds fields."""
        fields = getattr(record, "context", None)
        time = datetime.fromtimestamp(record.created, tz=timezone.utc).astimezone()
        line = self.format_entry(
            time, record.levelno, record.name, record.getMessage(), fields
        ).rstrip("\n")
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line