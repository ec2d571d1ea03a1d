"""Engine settings model loaded from YAML."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DOMAIN_SIGNAL_PHRASES = (
    "Administratia Fondului pentru Mediu",
    "ecotichet",
    "cod numeric personal",
    "Guvernul Romaniei",
    "Internal Revenue Service",
    "OMB No.",
)
DEFAULT_PRIORITY_NAME_FRAGMENTS = (
    "nume",
    "prenume",
    "name",
    "cnp",
    "cod_numeric",
    "email",
    "telefon",
    "phone",
    "adresa",
    "address",
)
DEFAULT_TRUTHY_TOKENS = ("true", "yes", "1", "on", "y", "x", "checked", "da", "ja", "oui", "si", "sí")
DEFAULT_NAME_LIKE_COLUMNS = (
    "name",
    "full_name",
    "fullname",
    "first_name",
    "last_name",
    "lastname",
    "nume",
    "prenume",
)


class EngineSettings(BaseModel):
    """Tunable thresholds and vocabularies for discovery and fill.

    Rules:
    - sufficiency and priority-subset sizes are product decisions, kept tunable
    - token lists are matched case-insensitively
    - defaults mirror the bundled engine.yaml, which only overrides them
    - max_workers > 1 is experimental; PyMuPDF is not thread-safe
    """

    model_config = ConfigDict(extra="forbid")

    classifier_scan_bytes: int = Field(default=2 * 1024 * 1024, gt=0)
    complex_signal_threshold: int = Field(default=2, ge=1)
    domain_signal_phrases: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DOMAIN_SIGNAL_PHRASES), validate_default=True
    )

    pattern_scan_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    min_sufficient_fields: int = Field(default=5, ge=1)
    domain_lexicon: str | None = None
    placeholder_fields_per_page: int = Field(default=5, ge=1)
    placeholder_max_fields: int = Field(default=20, ge=1)

    complex_priority_limit: int = Field(default=5, ge=0)
    priority_name_fragments: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PRIORITY_NAME_FRAGMENTS), validate_default=True
    )
    text_max_length: int = Field(default=500, ge=1)
    truthy_tokens: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TRUTHY_TOKENS), validate_default=True
    )
    flatten_simple: bool = True
    min_output_bytes: int = Field(default=512, ge=0)

    name_like_columns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_NAME_LIKE_COLUMNS), validate_default=True
    )
    max_workers: int = Field(default=1, ge=1)

    @field_validator(
        "domain_signal_phrases",
        "priority_name_fragments",
        "truthy_tokens",
        "name_like_columns",
    )
    @classmethod
    def _lowercase_tokens(cls, value: list[str]) -> list[str]:
        normalized: list[str] = []
        for item in value:
            token = str(item).strip().lower()
            if token and token not in normalized:
                normalized.append(token)
        return normalized
