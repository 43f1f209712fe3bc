"""casetalink - pair with and connect to Lutron Caseta bridges over LEAP."""

from __future__ import annotations

from importlib.metadata import version

from .config import Settings, get_settings
from .core import BridgePairing, ConnectionManager, DiscoveryRegistry, Reconciler
from .models import BridgeConfig, BridgeIdentity, CredentialBundle, DeviceRecord
from .storage import Database

__all__ = [
    "BridgeConfig",
    "BridgeIdentity",
    "BridgePairing",
    "ConnectionManager",
    "CredentialBundle",
    "Database",
    "DeviceRecord",
    "DiscoveryRegistry",
    "Reconciler",
    "Settings",
    "__version__",
    "get_settings",
]

__version__ = version("casetalink")
