from __future__ import annotations

import json
import os
import warnings
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path("~/.config/suggestbox/config.json").expanduser()

BACKENDS = {"firebase", "memory"}

CONFIG_ENV_OVERRIDES = {
    "api_key": "SUGGESTBOX_API_KEY",
    "auth_domain": "SUGGESTBOX_AUTH_DOMAIN",
    "project_id": "SUGGESTBOX_PROJECT_ID",
    "storage_bucket": "SUGGESTBOX_STORAGE_BUCKET",
    "messaging_sender_id": "SUGGESTBOX_MESSAGING_SENDER_ID",
    "app_id": "SUGGESTBOX_APP_ID",
    "backend": "SUGGESTBOX_BACKEND",
}

# Accept the camelCase keys of a pasted web client config object.
_CAMEL_CASE_KEYS = {
    "apiKey": "api_key",
    "authDomain": "auth_domain",
    "projectId": "project_id",
    "storageBucket": "storage_bucket",
    "messagingSenderId": "messaging_sender_id",
    "appId": "app_id",
}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("SUGGESTBOX_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    """Parse the config file, normalizing web client keys to field names.

    Raises ValueError when the file is not a JSON object.
    """
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid config json in {config_path}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"config in {config_path} must be an object")
    return {_CAMEL_CASE_KEYS.get(key, key): value for key, value in data.items()}


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass(frozen=True)
class SuggestboxConfig:
    api_key: str = ""
    auth_domain: str = ""
    project_id: str = ""
    storage_bucket: str = ""
    messaging_sender_id: str = ""
    app_id: str = ""
    backend: str = "firebase"

    @property
    def namespace(self) -> str:
        return self.project_id

    def validate(self) -> None:
        # Only the API key is checked; the remaining fields come with it.
        if not self.api_key.strip():
            raise ConfigurationError(
                "invalid store configuration: api_key is empty; "
                f"set it in {get_config_path()} or via SUGGESTBOX_API_KEY"
            )

    def to_dict(self, *, redact: bool = True) -> dict[str, str]:
        data = asdict(self)
        if redact and data["api_key"]:
            data["api_key"] = data["api_key"][:4] + "..."
        return data


def _coerce_str(value: object, *, key: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    warnings.warn(f"Invalid string for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return None


def _apply_dict(values: dict[str, str], data: dict[str, Any]) -> dict[str, str]:
    known = {f.name for f in fields(SuggestboxConfig)}
    for key, value in data.items():
        if key not in known:
            continue
        parsed = _coerce_str(value, key=key)
        if parsed is not None:
            values[key] = parsed
    return values


def _resolve_backend(value: str) -> str:
    backend = value.lower()
    if backend in BACKENDS:
        return backend
    warnings.warn(f"Unknown backend {value!r}, using firebase", RuntimeWarning, stacklevel=2)
    return "firebase"


def load_config(path: Path | None = None) -> SuggestboxConfig:
    try:
        data = read_config_file(path)
    except ValueError as exc:
        warnings.warn(f"Ignoring config file: {exc}", RuntimeWarning, stacklevel=2)
        data = {}
    values = _apply_dict({}, data)
    values.update(get_env_overrides())
    if "backend" in values:
        values["backend"] = _resolve_backend(values["backend"])
    return SuggestboxConfig(**values)
