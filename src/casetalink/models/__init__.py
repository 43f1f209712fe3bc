"""Data models for casetalink."""

from casetalink.models.bridge import (
    BridgeAddressRecord,
    BridgeIdentity,
    CredentialBundle,
    normalize_bridge_id,
)
from casetalink.models.config import (
    UNKNOWN_BRIDGE_ID,
    BridgeConfig,
    BridgeSecrets,
    InstanceStatus,
)
from casetalink.models.device import DeviceRecord

__all__ = [
    "UNKNOWN_BRIDGE_ID",
    "BridgeAddressRecord",
    "BridgeConfig",
    "BridgeIdentity",
    "BridgeSecrets",
    "CredentialBundle",
    "DeviceRecord",
    "InstanceStatus",
    "normalize_bridge_id",
]
