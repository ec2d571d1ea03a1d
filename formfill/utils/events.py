"""Progress and diagnostic event channel shared by discovery, fill and batch code."""

from __future__ import annotations

import json
import logging
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field

ProgressStatus = Literal["processing", "completed", "error"]


class ProgressEvent(BaseModel):
    """Batch progress notification."""

    model_config = ConfigDict(extra="forbid")

    current: int
    total: int
    status: ProgressStatus
    record_id: str | None = None
    error: str | None = None


class DiagnosticEvent(BaseModel):
    """Structured diagnostic emitted by a component."""

    model_config = ConfigDict(extra="forbid")

    component: str
    event: str
    level: Literal["debug", "info", "warning", "error"] = "info"
    fields: dict[str, Any] = Field(default_factory=dict)


class EventSink(Protocol):
    """Observer interface passed into the engine instead of inline logging."""

    def on_progress(self, event: ProgressEvent) -> None:
        """Receive one progress event."""

    def on_diagnostic(self, event: DiagnosticEvent) -> None:
        """Receive one diagnostic event."""


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LoggingEventSink:
    """Write each event as one compact JSON line through stdlib logging."""

    def __init__(self, logger_prefix: str = "formfill") -> None:
        self._prefix = logger_prefix

    def on_progress(self, event: ProgressEvent) -> None:
        payload = {"event": "progress", **event.model_dump(mode="json", exclude_none=True)}
        logging.getLogger(f"{self._prefix}.batch").info(_dump_json(payload))

    def on_diagnostic(self, event: DiagnosticEvent) -> None:
        payload = {"event": event.event, **event.fields}
        logger = logging.getLogger(f"{self._prefix}.{event.component}")
        logger.log(_LEVELS[event.level], _dump_json(payload))


class CollectingEventSink:
    """Keep events in memory, in arrival order."""

    def __init__(self) -> None:
        self.progress: list[ProgressEvent] = []
        self.diagnostics: list[DiagnosticEvent] = []

    def on_progress(self, event: ProgressEvent) -> None:
        self.progress.append(event)

    def on_diagnostic(self, event: DiagnosticEvent) -> None:
        self.diagnostics.append(event)

    def diagnostic_names(self, component: str | None = None) -> list[str]:
        return [
            item.event
            for item in self.diagnostics
            if component is None or item.component == component
        ]


def emit_diagnostic(
    sink: EventSink | None,
    component: str,
    event: str,
    *,
    level: Literal["debug", "info", "warning", "error"] = "info",
    **fields: Any,
) -> None:
    """Send a diagnostic to ``sink`` when one is configured."""

    if sink is None:
        return
    sink.on_diagnostic(DiagnosticEvent(component=component, event=event, level=level, fields=fields))


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)
