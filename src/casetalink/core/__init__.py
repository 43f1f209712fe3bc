from __future__ import annotations

from .connection import ConnectionManager, ConnectionResult
from .credentials import generate_csr
from .discovery import BridgeDiscovery, DiscoveryRegistry, discover_bridges
from .pairing import BridgePairing, PairingState
from .reconciler import Reconciler

__all__ = [
    "BridgeDiscovery",
    "BridgePairing",
    "ConnectionManager",
    "ConnectionResult",
    "DiscoveryRegistry",
    "PairingState",
    "Reconciler",
    "discover_bridges",
    "generate_csr",
]
