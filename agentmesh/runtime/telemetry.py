"""
Telemetry Collection - Callback and Interpretation Spans

WHAT: Lightweight span telemetry for Oracle callbacks and directive handling
WHERE: agentmesh/runtime/telemetry.py - observability layer
WHO: Oracle gateway and orchestrator emitting span data
TIME: Zero-overhead when disabled, <0.1ms overhead when enabled

Spans are context managers that measure duration and success and hand the
finished attribute map to a client. The default client discards spans, the
recording client keeps a bounded in-memory window of them, and the logging
client forwards them to the standard ``logging`` tree.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from contextlib import AbstractContextManager
from typing import Any, Deque, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TelemetrySpan(AbstractContextManager["TelemetrySpan"]):
    """One timed section; hands its attributes to the client on exit."""

    def __init__(
        self,
        client: "TelemetryClient",
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.name = name
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self._sink = client
        self._started_at = 0.0

    def __enter__(self) -> "TelemetrySpan":
        self._started_at = time.perf_counter()
        return self

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def __exit__(self, exc_type, exc, exc_tb) -> bool:
        elapsed = time.perf_counter() - self._started_at
        attrs = self.attributes
        attrs.setdefault("success", exc is None)
        if exc is not None:
            attrs.setdefault("error_type", type(exc).__name__)
        attrs["duration_ms"] = elapsed * 1000.0
        self._sink.emit_span(self.name, attrs)
        return False


class TelemetryClient:
    """Span factory. Concrete clients decide where finished spans go."""

    def span(
        self,
        name: str,
        *,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> TelemetrySpan:
        return TelemetrySpan(self, name, attributes)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not record spans")


class NoOpTelemetryClient(TelemetryClient):
    """Default client: spans are timed and then dropped."""

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        return None


class RecordingTelemetryClient(TelemetryClient):
    """Keep the most recent spans in memory for inspection."""

    def __init__(self, *, capacity: int = 1024) -> None:
        self.spans: Deque[Tuple[str, Dict[str, Any]]] = deque(maxlen=capacity)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        self.spans.append((name, dict(attributes)))

    def named(self, name: str) -> List[Dict[str, Any]]:
        return [attrs for span_name, attrs in self.spans if span_name == name]


class LoggingTelemetryClient(TelemetryClient):
    """Forward finished spans to a logger at a fixed level."""

    def __init__(self, *, level: int = logging.DEBUG, target: logging.Logger | None = None) -> None:
        self._level = level
        self._logger = target or logger

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        payload = {k: attributes[k] for k in sorted(attributes)}
        self._logger.log(self._level, f"[telemetry] {name}: {payload}")


__all__ = [
    "TelemetrySpan",
    "TelemetryClient",
    "NoOpTelemetryClient",
    "RecordingTelemetryClient",
    "LoggingTelemetryClient",
]
