from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Literal, Protocol
from urllib.parse import urlsplit, urlunsplit

import structlog

_SENSITIVE_ATTRIBUTE_TOKENS: frozenset[str] = frozenset(
    {"authorization", "body", "cookie", "html", "secret", "token"}
)
_MAX_STRING_LENGTH = 160

TelemetryAttribute = bool | int | float | str | None


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        _ = (event_name, attributes)


class StructuredLogTelemetrySink:
    def __init__(self) -> None:
        self._logger = structlog.get_logger("libmedium.telemetry")

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


@dataclass
class TimedEvent:
    """Mutable attribute bag for an in-flight :meth:`TelemetryClient.timed` block."""

    attributes: dict[str, Any]

    def set(self, **attributes: Any) -> None:
        self.attributes.update(attributes)


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def emit(self, event_name: str, **attributes: Any) -> None:
        if not self.enabled:
            return
        self.sink.emit(event_name=event_name, attributes=_sanitize_attributes(attributes))

    @contextmanager
    def timed(self, event_name: str, **attributes: Any) -> Iterator[TimedEvent]:
        """Emit ``event_name`` once the block exits, with duration and outcome."""
        event = TimedEvent(attributes=dict(attributes))
        started_at = perf_counter()
        try:
            yield event
        except BaseException as exc:
            self.emit(
                event_name,
                **event.attributes,
                outcome="error",
                error_type=type(exc).__name__,
                duration_ms=int((perf_counter() - started_at) * 1000),
            )
            raise
        self.emit(
            event_name,
            **event.attributes,
            outcome="ok",
            duration_ms=int((perf_counter() - started_at) * 1000),
        )


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if not enabled or sink == "none":
        return TelemetryClient.disabled()
    if sink == "log":
        return TelemetryClient(enabled=True, sink=StructuredLogTelemetrySink())

    logging.getLogger("libmedium.telemetry").warning(
        "unsupported telemetry sink requested; disabling telemetry sink=%s",
        sink,
    )
    return TelemetryClient.disabled()


def _sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, TelemetryAttribute]:
    sanitized: dict[str, TelemetryAttribute] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        if any(token in key for token in _SENSITIVE_ATTRIBUTE_TOKENS):
            sanitized[key] = "[redacted]"
        elif key == "url" or key.endswith("_url"):
            sanitized[key] = _strip_url_query(raw_value)
        else:
            sanitized[key] = _sanitize_value(raw_value)
    return sanitized


def _strip_url_query(value: Any) -> TelemetryAttribute:
    if not isinstance(value, str):
        return _sanitize_value(value)
    parts = urlsplit(value.strip())
    return _sanitize_value(urlunsplit((parts.scheme, parts.netloc, parts.path, "", "")))


def _sanitize_value(value: Any) -> TelemetryAttribute:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        compact = " ".join(value.split())
        if len(compact) <= _MAX_STRING_LENGTH:
            return compact
        return f"{compact[:_MAX_STRING_LENGTH]}..."
    return type(value).__name__
