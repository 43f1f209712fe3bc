"""Bridge and credential models."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field, field_validator

PEM_MARKER = "-----BEGIN "


class BridgeAddressRecord(BaseModel):
    """A bridge seen by discovery."""

    model_config = {"frozen": True}

    address: str
    bridge_id: str


class CredentialBundle(BaseModel):
    """Root CA, signed client certificate and private key, all PEM.

    A bundle is only ever constructed complete; a missing or empty field is a
    validation error.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    root_certificate: str = Field(min_length=1)
    client_certificate: str = Field(min_length=1)
    private_key: str = Field(min_length=1)

    @field_validator("root_certificate", "client_certificate", "private_key")
    @classmethod
    def _require_pem(cls, value: str) -> str:
        if PEM_MARKER not in value:
            raise ValueError("expected PEM-encoded data")
        return value


@dataclass(frozen=True)
class BridgeIdentity:
    """Configured bridge id, or a placeholder awaiting the bridge's own report.

    Absence of any identity is modelled as ``None`` by callers.
    """

    bridge_id: str | None = None

    @classmethod
    def pending(cls) -> BridgeIdentity:
        return cls(None)

    @classmethod
    def resolved(cls, bridge_id: str) -> BridgeIdentity:
        if not bridge_id:
            raise ValueError("bridge id must not be empty")
        return cls(normalize_bridge_id(bridge_id))

    @property
    def is_pending(self) -> bool:
        return self.bridge_id is None

    def __str__(self) -> str:
        return self.bridge_id or "pending"


def normalize_bridge_id(value: str | int) -> str:
    """Bridge ids are the serial number as upper-case hex.

    Discovery reports ``Lutron-0327abcd``; the bridge itself reports the same
    serial as a decimal integer.
    """
    if isinstance(value, int):
        return f"{value:08X}"
    return value.strip().upper()
