"""
Veridity Logging and Tracing

Every component logs through a ``VeridityLogger`` bound to its layer.
Records carry structured context (keyword arguments) and the request's
correlation, trace and span ids, and are rendered by ``StructuredHandler``
as one JSON object per line, or as plain text for terminals.

Spans time a unit of work (a build, a proof generation). Nested spans
share the trace id of the outermost one; a finished span is logged at
debug level by the tracer.

    with get_tracer().span("build", Layer.BUILDER, circuit=name) as span:
        ...
        span.set_attribute("toolchain", "development")

Claim values, salts and identity numbers must never be passed as log
context; log circuit names, signal names and outcomes only.

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import sys
import time
import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional, TextIO

_correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar("veridity_correlation_id", default="")
_trace_id: contextvars.ContextVar[str] = contextvars.ContextVar("veridity_trace_id", default="")
_span_id: contextvars.ContextVar[str] = contextvars.ContextVar("veridity_span_id", default="")


class Layer(Enum):
    """Subsystem a logger or span belongs to."""
    ARTIFACTS = "artifacts"
    REGISTRY = "registry"
    BUILDER = "builder"
    ENCODER = "encoder"
    BACKEND = "backend"
    SERVICE = "service"
    RESILIENCE = "resilience"
    CONFIG = "config"
    CLI = "cli"
    TRACING = "tracing"


# =============================================================================
# HANDLER
# =============================================================================

class StructuredHandler(logging.Handler):
    """Renders Veridity records as JSON lines (``fmt="json"``) or text."""

    def __init__(self, stream: Optional[TextIO] = None, fmt: str = "json"):
        super().__init__()
        self.stream = stream or sys.stderr
        self.fmt = fmt

    @staticmethod
    def payload(record: logging.LogRecord) -> Dict[str, Any]:
        """The record as a flat dict; empty fields are left out."""
        fields: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
            "layer": getattr(record, "layer", ""),
            "error_code": getattr(record, "error_code", ""),
            "correlation_id": _correlation_id.get(),
            "trace_id": _trace_id.get(),
            "span_id": _span_id.get(),
            "context": getattr(record, "context", {}),
        }
        if record.exc_info:
            fields["exception"] = "".join(traceback.format_exception(*record.exc_info))
        return {k: v for k, v in fields.items() if v not in ("", {}, None)}

    def render(self, record: logging.LogRecord) -> str:
        fields = self.payload(record)
        if self.fmt != "text":
            return json.dumps(fields, default=str)

        context = " ".join(f"{k}={v}" for k, v in fields.get("context", {}).items())
        line = f"{fields['timestamp']} {fields['level'].upper():8} {fields['logger']}: {fields['message']} {context}"
        line = line.rstrip()
        if "exception" in fields:
            line += "\n" + fields["exception"].rstrip()
        return line

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.stream.write(self.render(record) + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


# =============================================================================
# LOGGER
# =============================================================================

class VeridityLogger:
    """
    Structured logger bound to a layer.

    Keyword arguments become the record's ``context``:

        logger.info("Circuit built", circuit="age_verification")
    """

    def __init__(self, name: str, layer: Layer):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"veridity.{layer.value}.{name}")
        if self._logger.level == logging.NOTSET:
            self._logger.setLevel(logging.INFO)
        if not any(isinstance(h, StructuredHandler) for h in self._logger.handlers):
            self._logger.addHandler(StructuredHandler())

    def _emit(self, level: int, message: str, error_code: str = "", exc_info: bool = False,
              context: Optional[Dict[str, Any]] = None) -> None:
        extra = {"layer": self.layer.value, "error_code": error_code, "context": context or {}}
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._emit(logging.DEBUG, message, context=context)

    def info(self, message: str, **context: Any) -> None:
        self._emit(logging.INFO, message, context=context)

    def warning(self, message: str, **context: Any) -> None:
        self._emit(logging.WARNING, message, context=context)

    def error(self, message: str, error_code: str = "", exc_info: bool = False, **context: Any) -> None:
        self._emit(logging.ERROR, message, error_code=error_code, exc_info=exc_info, context=context)


def get_logger(name: str, layer: Layer) -> VeridityLogger:
    """Get a logger for a Veridity component."""
    return VeridityLogger(name, layer)


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Apply level and output format to every Veridity logger created so far."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"unknown log level: {level}")
    logging.getLogger("veridity").setLevel(numeric)
    for name, candidate in list(logging.Logger.manager.loggerDict.items()):
        if name.startswith("veridity.") and isinstance(candidate, logging.Logger):
            candidate.setLevel(numeric)
            for handler in candidate.handlers:
                if isinstance(handler, StructuredHandler):
                    handler.fmt = fmt


def bind_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Tag subsequent records in this context with a correlation id (new if omitted)."""
    correlation_id = correlation_id or f"corr-{uuid.uuid4().hex[:12]}"
    _correlation_id.set(correlation_id)
    return correlation_id


# =============================================================================
# TRACING
# =============================================================================

@dataclass
class Span:
    """A timed unit of work."""
    name: str
    layer: str
    trace_id: str
    span_id: str
    parent_span_id: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict)
    status: str = "ok"
    started: float = field(default_factory=time.monotonic)
    ended: Optional[float] = None

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    @property
    def duration_ms(self) -> float:
        return ((self.ended or time.monotonic()) - self.started) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "layer": self.layer,
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
            "status": self.status,
            "duration_ms": round(self.duration_ms, 2),
            "attributes": dict(self.attributes),
        }


class Tracer:
    """Opens spans and logs each one when it finishes."""

    def __init__(self) -> None:
        self._logger = get_logger("tracer", Layer.TRACING)

    @contextlib.contextmanager
    def span(self, name: str, layer: Layer, **attributes: Any) -> Iterator[Span]:
        span = Span(
            name=name,
            layer=layer.value,
            trace_id=_trace_id.get() or uuid.uuid4().hex,
            span_id=uuid.uuid4().hex[:16],
            parent_span_id=_span_id.get(),
            attributes=attributes,
        )
        trace_token = _trace_id.set(span.trace_id)
        span_token = _span_id.set(span.span_id)
        try:
            yield span
        except BaseException as e:
            span.status = "error"
            span.set_attribute("error_type", type(e).__name__)
            raise
        finally:
            span.ended = time.monotonic()
            _span_id.reset(span_token)
            _trace_id.reset(trace_token)
            self._logger.debug("Span finished", span=span.to_dict())


_tracer = Tracer()


def get_tracer() -> Tracer:
    """Get the process-wide tracer."""
    return _tracer
