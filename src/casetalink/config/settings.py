from __future__ import annotations

import json
import os
import tomllib
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from .paths import default_config_path, default_data_dir, expand_path

CONFIG_ENV_VAR = "CASETALINK_CONFIG"


class DatabaseConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    path: str = Field(default_factory=lambda: str(default_data_dir()))


class DiscoveryConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    service_type: str = "_lutron._tcp.local."
    browse_timeout: float = Field(default=5.0, gt=0)
    info_timeout: float = Field(default=3.0, gt=0)


class PairingConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    port: int = Field(default=8083, ge=1, le=65535)
    connect_timeout: float = Field(default=10.0, gt=0)
    # the bridge keeps its pairing button active for 30 seconds
    button_timeout: float = Field(default=30.0, gt=0)
    csr_timeout: float = Field(default=5.0, gt=0)


class SessionConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    port: int = Field(default=8081, ge=1, le=65535)
    connect_timeout: float = Field(default=10.0, gt=0)
    request_timeout: float = Field(default=10.0, gt=0)


class Settings(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    pairing: PairingConfig = Field(default_factory=PairingConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)


def resolve_config_path(allow_missing: bool = False) -> tuple[Path, bool]:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = expand_path(env_path)
        if not allow_missing and not path.exists():
            raise FileNotFoundError(f"{CONFIG_ENV_VAR} points to missing file: {path}")
        return path, path.exists()

    path = default_config_path()
    return path, path.exists()


def load_settings(path: Path) -> Settings:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in config file: {path}\n{exc}") from exc

    try:
        return Settings.model_validate(data or {})
    except ValidationError as exc:
        raise ValueError(f"Invalid config file: {path}\n{exc}") from exc


@lru_cache
def get_settings() -> Settings:
    path, exists = resolve_config_path(allow_missing=False)
    if exists:
        return load_settings(path)
    return Settings()


def data_dir_from_settings(settings: Settings) -> Path:
    return expand_path(settings.database.path)


def _toml_string(value: str) -> str:
    return json.dumps(value)


def render_settings_toml(settings: Settings) -> str:
    lines = [
        "# casetalink configuration",
        "",
        "[database]",
        f"path = {_toml_string(settings.database.path)}",
        "",
        "[discovery]",
        f"service_type = {_toml_string(settings.discovery.service_type)}",
        f"browse_timeout = {settings.discovery.browse_timeout}",
        f"info_timeout = {settings.discovery.info_timeout}",
        "",
        "[pairing]",
        f"port = {settings.pairing.port}",
        f"connect_timeout = {settings.pairing.connect_timeout}",
        f"button_timeout = {settings.pairing.button_timeout}",
        f"csr_timeout = {settings.pairing.csr_timeout}",
        "",
        "[session]",
        f"port = {settings.session.port}",
        f"connect_timeout = {settings.session.connect_timeout}",
        f"request_timeout = {settings.session.request_timeout}",
        "",
    ]
    return "\n".join(lines)


def write_settings(settings: Settings, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_settings_toml(settings))
