from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from suggestbox.backends.memory import MemoryCollectionStore, MemoryIdentityProvider
from suggestbox.config import CONFIG_ENV_OVERRIDES, SuggestboxConfig

PATH = "artifacts/demo-project/public/data/suggestions"


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setenv("SUGGESTBOX_CONFIG", str(tmp_path / "config.json"))


@pytest.fixture
def config() -> SuggestboxConfig:
    return SuggestboxConfig(
        api_key="AIza-test",
        auth_domain="demo.firebaseapp.com",
        project_id="demo-project",
        storage_bucket="demo.appspot.com",
        messaging_sender_id="1234",
        app_id="1:1234:web:abcd",
        backend="memory",
    )


@pytest.fixture
def identity() -> MemoryIdentityProvider:
    return MemoryIdentityProvider("u123")


@pytest.fixture
def store() -> MemoryCollectionStore:
    return MemoryCollectionStore()


def at(minute: int) -> dt.datetime:
    return dt.datetime(2026, 1, 24, 12, minute, tzinfo=dt.UTC)
