"""Persisted bridge configuration and secrets."""

from __future__ import annotations

import ipaddress
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from casetalink.models.bridge import BridgeIdentity, CredentialBundle

# storage form of a pending identity
UNKNOWN_BRIDGE_ID = "UNKNOWN"


class BridgeConfig(BaseModel):
    """Configuration record: which bridge to talk to."""

    model_config = {"frozen": True, "extra": "forbid"}

    host: str = ""
    port: int = Field(default=8081, ge=1, le=65535)
    bridge_id: str | None = None

    @field_validator("host")
    @classmethod
    def _validate_host(cls, value: str) -> str:
        value = value.strip()
        if value:
            try:
                ipaddress.ip_address(value)
            except ValueError as exc:
                raise ValueError(f"host must be an IP address, got {value!r}") from exc
        return value

    @property
    def identity(self) -> BridgeIdentity | None:
        if not self.bridge_id:
            return None
        if self.bridge_id == UNKNOWN_BRIDGE_ID:
            return BridgeIdentity.pending()
        return BridgeIdentity.resolved(self.bridge_id)

    def with_identity(self, identity: BridgeIdentity | None) -> BridgeConfig:
        if identity is None:
            bridge_id = None
        elif identity.is_pending:
            bridge_id = UNKNOWN_BRIDGE_ID
        else:
            bridge_id = identity.bridge_id
        return self.model_copy(update={"bridge_id": bridge_id})


class BridgeSecrets(BaseModel):
    """Secret record: the credential bundle, if paired."""

    model_config = {"frozen": True, "extra": "forbid"}

    bundle: CredentialBundle | None = None


class InstanceStatus(str, Enum):
    INITIALIZING = "initializing"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    BAD_CONFIG = "bad_config"
    CONNECTION_FAILURE = "connection_failure"
    DISCONNECTED = "disconnected"
