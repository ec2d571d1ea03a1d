"""Parse already-decoded JSON payloads into records and mappings."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from formfill.templates.models import DataRecord, FieldMapping

_ID_KEYS = ("record_id", "id")


def parse_records(raw: Any) -> list[DataRecord]:
    """Accept a list of row objects; ids come from ``record_id``/``id`` or the position."""

    if isinstance(raw, Mapping) and "records" in raw:
        raw = raw["records"]
    if not isinstance(raw, list):
        raise ValueError("Records JSON must be a list of objects")

    records: list[DataRecord] = []
    seen: set[str] = set()
    for position, row in enumerate(raw, start=1):
        if not isinstance(row, Mapping):
            raise ValueError(f"Record #{position} must be an object")
        record_id = next((str(row[key]) for key in _ID_KEYS if row.get(key) not in (None, "")), str(position))
        if record_id in seen:
            raise ValueError(f"Duplicate record id: {record_id}")
        seen.add(record_id)
        records.append(DataRecord(record_id=record_id, values={str(k): v for k, v in row.items()}))
    return records


def parse_mappings(raw: Any) -> list[FieldMapping]:
    """Accept ``[{field_name, source_column, default_value}]`` or ``{field: column}``."""

    if raw is None:
        return []
    if isinstance(raw, Mapping) and "mappings" in raw:
        raw = raw["mappings"]

    if isinstance(raw, Mapping):
        return [
            FieldMapping(field_name=str(field_name), source_column=None if column is None else str(column))
            for field_name, column in raw.items()
        ]

    if not isinstance(raw, list):
        raise ValueError("Mappings JSON must be a list or an object")

    mappings: list[FieldMapping] = []
    for position, item in enumerate(raw, start=1):
        if not isinstance(item, Mapping) or not item.get("field_name"):
            raise ValueError(f"Mapping #{position} must be an object with field_name")
        source_column = item.get("source_column")
        default_value = item.get("default_value")
        mappings.append(
            FieldMapping(
                field_name=str(item["field_name"]),
                source_column=None if source_column in (None, "") else str(source_column),
                default_value=None if default_value is None else str(default_value),
            )
        )
    return mappings
