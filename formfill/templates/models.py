"""Data models for templates, field catalogs, records and mappings."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Complexity = Literal["simple", "complex"]


class SemanticType(str, Enum):
    """Semantic widget type presented to the mapping UI."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"

    @property
    def is_choice(self) -> bool:
        return self in (SemanticType.SINGLE_CHOICE, SemanticType.MULTI_CHOICE)


@dataclass(frozen=True)
class FieldDescriptor:
    """One fillable field in a template catalog."""

    name: str
    semantic_type: SemanticType = SemanticType.TEXT
    choice_options: tuple[str, ...] = ()
    required: bool = False
    synthetic: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("field name must be non-empty")
        if self.choice_options and not self.semantic_type.is_choice:
            object.__setattr__(self, "choice_options", ())

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "name": self.name,
            "semantic_type": self.semantic_type.value,
            "required": self.required,
            "synthetic": self.synthetic,
        }
        if self.semantic_type.is_choice:
            payload["choice_options"] = list(self.choice_options)
        return payload


class ClassificationResult(BaseModel):
    """Document classifier output. ``signals`` are diagnostics only."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    complexity: Complexity
    signals: list[str] = Field(default_factory=list)
    structural_count: int = 0
    domain_count: int = 0
    readable: bool = True

    @property
    def is_complex(self) -> bool:
        return self.complexity == "complex"


@dataclass(frozen=True)
class Template:
    """Immutable template bytes plus discovery metadata."""

    data: bytes
    file_name: str
    page_count: int
    fields: tuple[FieldDescriptor, ...]
    classification: ClassificationResult
    discovery_stage: str
    discovered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def field_by_name(self, name: str) -> FieldDescriptor | None:
        for descriptor in self.fields:
            if descriptor.name == name:
                return descriptor
        lowered = name.lower()
        for descriptor in self.fields:
            if descriptor.name.lower() == lowered:
                return descriptor
        return None

    @property
    def field_names(self) -> list[str]:
        return [descriptor.name for descriptor in self.fields]


@dataclass(frozen=True)
class DataRecord:
    """One row of input data. The engine never mutates it."""

    record_id: str
    values: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, column: str) -> object | None:
        return self.values.get(column)


@dataclass(frozen=True)
class FieldMapping:
    """Field name to source column and/or default value."""

    field_name: str
    source_column: str | None = None
    default_value: str | None = None


@dataclass
class DiscoveryResult:
    """Field discovery output with the stage that produced it."""

    fields: list[FieldDescriptor]
    stage: str
    sufficient: bool
    page_count: int
    classification: ClassificationResult
    attempts: dict[str, int] = field(default_factory=dict)

    @property
    def field_names(self) -> list[str]:
        return [descriptor.name for descriptor in self.fields]
