from __future__ import annotations

from pathlib import Path

import pytest

from freebucket.config import AppConfig
from tests.helpers.uploads import build_config


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return build_config(tmp_path)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "APP_ENV",
        "USAGE_SOURCE",
        "R2_ENDPOINT",
        "ALLOWED_ORIGINS",
        "VERCEL_URL",
        "ALLOWED_CONTENT_TYPES",
    ):
        monkeypatch.delenv(name, raising=False)
