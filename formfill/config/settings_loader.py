"""Settings loading utilities for discovery and fill."""

from __future__ import annotations

from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from formfill.config.models import EngineSettings


def default_settings_path() -> Path:
    return Path(__file__).with_name("engine.yaml")


def load_settings(path: Path | None = None) -> EngineSettings:
    """Load and validate engine settings from YAML."""

    settings_path = path or default_settings_path()

    try:
        raw = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Settings file not found: {settings_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in settings file: {settings_path}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Settings file must contain a mapping: {settings_path}")

    _check_lexicon_name(raw, settings_path)

    try:
        return EngineSettings.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid settings schema: {settings_path}") from exc


def _check_lexicon_name(raw: dict[object, object], settings_path: Path) -> None:
    from formfill.templates.lexicons import list_lexicons

    name = raw.get("domain_lexicon")
    if name is None:
        return
    if not isinstance(name, str) or name not in list_lexicons():
        raise ValueError(
            f"Unknown domain_lexicon '{name}' in {settings_path}. "
            f"Supported: {', '.join(list_lexicons())}"
        )
