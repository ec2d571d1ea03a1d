from __future__ import annotations

import pytest

from formfill.config.models import EngineSettings
from formfill.config.settings_loader import load_settings


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings() -> EngineSettings:
    return load_settings()
