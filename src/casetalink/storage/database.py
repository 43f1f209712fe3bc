from __future__ import annotations

import json
import logging
import os
import tempfile
import tomllib
from pathlib import Path

from pydantic import ValidationError

from casetalink.models import (
    BridgeConfig,
    BridgeIdentity,
    BridgeSecrets,
    CredentialBundle,
)

logger = logging.getLogger(__name__)

CONFIG_FILE = "bridge.toml"
SECRETS_FILE = "secrets.json"


def _toml_string(value: str) -> str:
    return json.dumps(value)


def _render_config_toml(config: BridgeConfig) -> str:
    lines = [
        "# casetalink bridge configuration",
        "# Written by casetalink; bridge_id is filled in after pairing",
        "",
        "[bridge]",
        f"host = {_toml_string(config.host)}",
        f"port = {config.port}",
    ]
    if config.bridge_id:
        lines.append(f"bridge_id = {_toml_string(config.bridge_id)}")
    lines.append("")
    return "\n".join(lines)


def _atomic_write(path: Path, text: str, mode: int = 0o644) -> None:
    """Replace ``path`` so readers see either the old or the new content."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class Database:
    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir
        self._config_path = data_dir / CONFIG_FILE
        self._secrets_path = data_dir / SECRETS_FILE

    @property
    def path(self) -> Path:
        return self._data_dir

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def secrets_path(self) -> Path:
        return self._secrets_path

    def ensure_dirs(self) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)

    def load_config(self) -> BridgeConfig:
        if not self._config_path.exists():
            return BridgeConfig()

        try:
            with self._config_path.open("rb") as handle:
                data = tomllib.load(handle) or {}
        except tomllib.TOMLDecodeError as exc:
            raise ValueError(
                f"Invalid TOML in bridge config: {self._config_path}\n{exc}"
            ) from exc

        try:
            return BridgeConfig.model_validate(data.get("bridge", {}))
        except ValidationError as exc:
            raise ValueError(
                f"Invalid bridge config: {self._config_path}\n{exc}"
            ) from exc

    def save_config(self, config: BridgeConfig) -> None:
        _atomic_write(self._config_path, _render_config_toml(config))

    def load_secrets(self) -> BridgeSecrets:
        if not self._secrets_path.exists():
            return BridgeSecrets()

        try:
            with self._secrets_path.open("r") as handle:
                data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ValueError(
                f"Invalid JSON in secrets file: {self._secrets_path}\n{exc}"
            ) from exc

        try:
            return BridgeSecrets.model_validate(data)
        except ValidationError as exc:
            raise ValueError(
                f"Invalid secrets file: {self._secrets_path}\n{exc}"
            ) from exc

    def save_secrets(self, secrets: BridgeSecrets) -> None:
        text = json.dumps(secrets.model_dump(mode="json"), indent=2)
        _atomic_write(self._secrets_path, text, mode=0o600)

    def load_bundle(self) -> CredentialBundle | None:
        return self.load_secrets().bundle

    def save_identity(self, identity: BridgeIdentity | None) -> BridgeConfig:
        config = self.load_config().with_identity(identity)
        self.save_config(config)
        logger.debug("Stored bridge identity %s", identity)
        return config

    def save_pairing(
        self, bundle: CredentialBundle, identity: BridgeIdentity
    ) -> BridgeConfig:
        # a bundle is never stored without the id it belongs to
        config = self.save_identity(identity)
        self.save_secrets(BridgeSecrets(bundle=bundle))
        return config

    def clear_credentials(self) -> BridgeConfig:
        self.save_secrets(BridgeSecrets())
        return self.save_identity(None)

    def init(self, force: bool = False) -> bool:
        if self._config_path.exists() and not force:
            return False
        self.ensure_dirs()
        self.save_config(BridgeConfig())
        if force:
            self.save_secrets(BridgeSecrets())
        return True
