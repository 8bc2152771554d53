"""
ELM CDR Tracer

Lightweight spans for the retrieval request and the validation call it makes.
Span records follow the OpenTelemetry field names (trace_id, span_id,
parent_id, kind, status) so exported JSONL can be loaded by standard tooling.

The active span is tracked in a ContextVar, so a span opened inside a request
handler is parented to that request even when many requests run concurrently
on one event loop.
"""

import json
import time
import uuid
from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from elm_cdr.config import get_settings


class SpanKind(str, Enum):
    INTERNAL = "internal"
    SERVER = "server"
    CLIENT = "client"


class SpanStatus(str, Enum):
    UNSET = "unset"
    OK = "ok"
    ERROR = "error"


def _new_id() -> str:
    return uuid.uuid4().hex[:16]


@dataclass
class SpanEvent:
    """Point-in-time annotation on a span (e.g. an exception)."""

    name: str
    attributes: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


@dataclass
class Span:
    """One timed unit of work."""

    name: str
    trace_id: str
    span_id: str = field(default_factory=_new_id)
    parent_id: str | None = None
    kind: SpanKind = SpanKind.INTERNAL
    attributes: dict[str, Any] = field(default_factory=dict)
    events: list[SpanEvent] = field(default_factory=list)
    status: SpanStatus = SpanStatus.UNSET
    status_message: str | None = None
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None

    @property
    def duration_ms(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time) * 1000

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def record_exception(self, exc: BaseException) -> None:
        """Mark the span failed and attach the exception as an event."""
        self.status = SpanStatus.ERROR
        self.status_message = str(exc)
        self.events.append(
            SpanEvent("exception", {"type": type(exc).__name__, "message": str(exc)})
        )

    def finish(self) -> None:
        if self.end_time is None:
            self.end_time = time.time()
        if self.status == SpanStatus.UNSET:
            self.status = SpanStatus.OK

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["status"] = self.status.value
        data["duration_ms"] = self.duration_ms
        return data


_active_span: ContextVar[Span | None] = ContextVar("elm_cdr_active_span", default=None)


class Tracer:
    """
    Named span factory.

    Usage:
        tracer = get_tracer("elm_cdr.validation")

        with tracer.span("validate", kind=SpanKind.CLIENT) as span:
            span.set_attribute("library_name", name)
            ...
    """

    def __init__(self, name: str, export_path: Path | None = None, max_spans: int = 1000) -> None:
        """
        Args:
            name: Prefix for span names.
            export_path: Directory for JSONL export; None keeps spans in memory only.
            max_spans: Finished spans kept in memory; oldest are dropped.
        """
        self.name = name
        self.export_path = export_path
        self._finished: deque[Span] = deque(maxlen=max_spans)

    @property
    def current_span(self) -> Span | None:
        return _active_span.get()

    @contextmanager
    def span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[Span]:
        """Open a span, child of the active one if any, and make it active."""
        parent = _active_span.get()
        span = Span(
            name=f"{self.name}.{name}",
            trace_id=parent.trace_id if parent else _new_id(),
            parent_id=parent.span_id if parent else None,
            kind=kind,
            attributes=dict(attributes or {}),
        )
        token = _active_span.set(span)
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            raise
        finally:
            _active_span.reset(token)
            span.finish()
            self._finished.append(span)
            if self.export_path is not None:
                self._export(span)

    def get_spans(self) -> list[Span]:
        """Finished spans, oldest first."""
        return list(self._finished)

    def _export(self, span: Span) -> None:
        self.export_path.mkdir(parents=True, exist_ok=True)
        day = datetime.now(timezone.utc).strftime("%Y%m%d")
        with open(self.export_path / f"trace_{self.name}_{day}.jsonl", "a") as f:
            f.write(json.dumps(span.to_dict(), default=str) + "\n")


_tracers: dict[str, Tracer] = {}


def get_tracer(name: str) -> Tracer:
    """
    Get or create the tracer for `name`.

    Export is switched on by CDR_DEBUG when the tracer is first created.
    """
    if name not in _tracers:
        _tracers[name] = Tracer(name, get_settings().observability.trace_export_path)
    return _tracers[name]


def reset_tracers() -> None:
    """Drop all tracers (for testing)."""
    _tracers.clear()
