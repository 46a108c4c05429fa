import json
from pathlib import Path

import pytest

from suggestbox.config import (
    SuggestboxConfig,
    get_config_path,
    get_env_overrides,
    load_config,
    read_config_file,
)
from suggestbox.errors import ConfigurationError


def test_read_config_file_rejects_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{not-json}")
    with pytest.raises(ValueError, match="invalid config json"):
        read_config_file(config_path)


def test_read_config_file_rejects_non_object(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("[1, 2]")
    with pytest.raises(ValueError, match="must be an object"):
        read_config_file(config_path)


def test_read_config_file_missing_or_blank_is_empty(tmp_path: Path) -> None:
    assert read_config_file(tmp_path / "missing.json") == {}
    blank = tmp_path / "blank.json"
    blank.write_text("  \n")
    assert read_config_file(blank) == {}


def test_config_path_honors_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = tmp_path / "custom.json"
    monkeypatch.setenv("SUGGESTBOX_CONFIG", str(target))
    assert get_config_path() == target


def test_load_config_accepts_web_client_keys(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "apiKey": "AIza-key",
                "authDomain": "demo.firebaseapp.com",
                "projectId": "demo-project",
                "storageBucket": "demo.appspot.com",
                "messagingSenderId": 1234,
                "appId": "1:1234:web:abcd",
                "unknown": "ignored",
            }
        )
    )

    cfg = load_config(config_path)

    assert cfg.api_key == "AIza-key"
    assert cfg.project_id == "demo-project"
    assert cfg.namespace == "demo-project"
    assert cfg.messaging_sender_id == "1234"
    assert cfg.backend == "firebase"


def test_env_overrides_take_precedence(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"api_key": "from-file", "project_id": "file-project"}))
    monkeypatch.setenv("SUGGESTBOX_API_KEY", "from-env")
    monkeypatch.setenv("SUGGESTBOX_BACKEND", "MEMORY")

    cfg = load_config(config_path)

    assert get_env_overrides()["api_key"] == "from-env"
    assert cfg.api_key == "from-env"
    assert cfg.project_id == "file-project"
    assert cfg.backend == "memory"


def test_load_config_tolerates_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{broken")
    with pytest.warns(RuntimeWarning, match="Ignoring config file"):
        cfg = load_config(config_path)
    assert cfg == SuggestboxConfig()


def test_read_config_file_normalizes_web_client_keys(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"apiKey": "AIza-key", "project_id": "demo", "extra": 1}))
    assert read_config_file(config_path) == {
        "api_key": "AIza-key",
        "project_id": "demo",
        "extra": 1,
    }


def test_unknown_backend_falls_back_with_warning(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SUGGESTBOX_BACKEND", "carrier-pigeon")
    with pytest.warns(RuntimeWarning, match="Unknown backend"):
        cfg = load_config()
    assert cfg.backend == "firebase"


def test_validate_requires_api_key() -> None:
    with pytest.raises(ConfigurationError, match="api_key is empty"):
        SuggestboxConfig(project_id="demo").validate()
    with pytest.raises(ConfigurationError):
        SuggestboxConfig(api_key="   ").validate()
    SuggestboxConfig(api_key="AIza-key").validate()


def test_to_dict_redacts_api_key(config: SuggestboxConfig) -> None:
    assert config.to_dict()["api_key"] == "AIza..."
    assert config.to_dict(redact=False)["api_key"] == "AIza-test"
