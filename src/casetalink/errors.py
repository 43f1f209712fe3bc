"""Errors raised by the pairing and connection flow.

Every error is terminal to the attempt that raised it. Nothing in the core
retries; the next attempt starts when the configuration is saved again or the
controller is restarted.
"""

from __future__ import annotations

from typing import Any


class CasetaLinkError(Exception):
    """Base class for all casetalink errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class KeyGenerationFailed(CasetaLinkError):
    """The RSA keypair or CSR could not be produced."""


class PairingTransportError(CasetaLinkError):
    """The pairing endpoint could not be reached or dropped the connection."""


class PairingTimeout(CasetaLinkError):
    """The pairing button was not pressed within the pairing window."""


class CsrTimeout(CasetaLinkError):
    """The bridge did not answer the signing request in time."""


class CsrRejected(CasetaLinkError):
    """The bridge answered the signing request without a usable certificate."""

    def __init__(self, detail: str, response: Any = None) -> None:
        super().__init__(f"CSR rejected: {detail}")
        self.detail = detail
        self.response = response


class ConnectionFailed(CasetaLinkError):
    """The authenticated session could not be opened or used."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Bridge connection failed: {detail}")
        self.detail = detail


class NotConfigured(CasetaLinkError):
    """Credentials or bridge identity are missing."""


class IdentityUnresolvable(CasetaLinkError):
    """The stored credentials can never be matched to the bridge."""


class PairingBusy(CasetaLinkError):
    """Another pairing or reconciliation attempt is already in flight."""
