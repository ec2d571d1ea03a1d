"""Fill and batch report models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from formfill.templates.models import ClassificationResult

FillOutcome = Literal["filled", "filled_with_original_fallback", "failed"]
FillState = Literal["loaded", "classified", "filled", "skipped_unfillable", "validated", "done"]
FieldStatus = Literal["filled", "not_found", "unsupported", "error"]


class FieldFillEntry(BaseModel):
    """Per-field fill log item."""

    model_config = ConfigDict(extra="forbid")

    field_name: str
    status: FieldStatus
    value: str | None = None
    widget_count: int = 0
    reason: str | None = None


class FillResult(BaseModel):
    """Outcome of filling one record; owns its output buffer."""

    model_config = ConfigDict(extra="forbid")

    record_id: str
    outcome: FillOutcome
    data: bytes = b""
    fields_attempted: int = 0
    fields_filled: int = 0
    classification: ClassificationResult | None = None
    entries: list[FieldFillEntry] = Field(default_factory=list)
    states: list[FillState] = Field(default_factory=list)
    fallback_reason: str | None = None
    note: str | None = None
    output_name: str | None = None

    def report(self) -> dict[str, object]:
        """JSON-safe view without the output bytes."""

        payload = self.model_dump(mode="json", exclude={"data"})
        payload["output_bytes"] = len(self.data)
        return payload


class BatchSummary(BaseModel):
    """Aggregate counts for one batch run."""

    model_config = ConfigDict(extra="forbid")

    total: int
    filled: int
    fallback: int
    failed: int
    success_rate: float


class BatchResult(BaseModel):
    """Ordered per-record results plus summary."""

    model_config = ConfigDict(extra="forbid")

    section: str
    summary: BatchSummary
    results: list[FillResult] = Field(default_factory=list)
