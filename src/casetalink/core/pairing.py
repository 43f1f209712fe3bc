"""Interactive pairing with a bridge.

The bridge only signs a client certificate after someone presses the pairing
button on it. The flow is strictly sequential and every wait is bounded:

    IDLE -> CONNECTING -> AWAITING_PHYSICAL_CONFIRMATION -> GENERATING_KEYS
         -> AWAITING_SIGNED_CERTIFICATE -> PAIRED

Any failure moves to FAILED and aborts the attempt; nothing is retried here.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import ValidationError

from casetalink.config import PairingConfig
from casetalink.core import transport
from casetalink.core.credentials import CLIENT_COMMON_NAME, generate_csr
from casetalink.errors import (
    CasetaLinkError,
    CsrRejected,
    CsrTimeout,
    PairingBusy,
    PairingTimeout,
    PairingTransportError,
)
from casetalink.models import CredentialBundle

logger = logging.getLogger(__name__)

PHYSICAL_ACCESS = "PhysicalAccess"
DEVICE_UID = "000000000000"


class PairingState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_PHYSICAL_CONFIRMATION = "awaiting_physical_confirmation"
    GENERATING_KEYS = "generating_keys"
    AWAITING_SIGNED_CERTIFICATE = "awaiting_signed_certificate"
    PAIRED = "paired"
    FAILED = "failed"


TERMINAL_STATES = {PairingState.IDLE, PairingState.PAIRED, PairingState.FAILED}


def is_physical_access_confirmation(message: transport.Message) -> bool:
    body = message.get("Body")
    if not isinstance(body, dict):
        return False
    status = body.get("Status")
    if not isinstance(status, dict):
        return False
    permissions = status.get("Permissions") or []
    return PHYSICAL_ACCESS in permissions


def build_csr_request(csr_pem: str) -> transport.Message:
    return {
        "Header": {"RequestType": "Execute", "Url": "/pair"},
        "Body": {
            "CommandType": "CSR",
            "Parameters": {
                "CSR": csr_pem,
                "DisplayName": CLIENT_COMMON_NAME,
                "DeviceUID": DEVICE_UID,
                "Role": "Admin",
            },
        },
    }


def _is_success(status_code: Any) -> bool:
    code = str(status_code or "").split(" ", 1)[0]
    return code.isdigit() and code.startswith("2")


def bundle_from_signing_result(
    response: transport.Message, private_key_pem: str
) -> CredentialBundle:
    """Build the bundle from a CSR response, or reject it as a whole."""
    status_code = (response.get("Header") or {}).get("StatusCode")
    if not _is_success(status_code):
        detail = f"bridge answered {status_code or 'without a status code'}"
        raise CsrRejected(detail, response)

    result = (response.get("Body") or {}).get("SigningResult") or {}
    try:
        return CredentialBundle(
            root_certificate=result.get("RootCertificate") or "",
            client_certificate=result.get("Certificate") or "",
            private_key=private_key_pem,
        )
    except ValidationError as exc:
        raise CsrRejected("signing result is incomplete", response) from exc


class BridgePairing:
    """Runs one pairing attempt at a time against a bridge."""

    def __init__(
        self,
        config: PairingConfig,
        on_state_change: Callable[[PairingState], None] | None = None,
    ) -> None:
        self._config = config
        self._on_state_change = on_state_change
        self._state = PairingState.IDLE
        self._connection: transport.LeapConnection | None = None

    @property
    def state(self) -> PairingState:
        return self._state

    def _set_state(self, state: PairingState) -> None:
        logger.debug("Pairing state %s -> %s", self._state.value, state.value)
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    async def pair(self, host: str) -> CredentialBundle:
        if self._state not in TERMINAL_STATES:
            raise PairingBusy(f"pairing already in progress ({self._state.value})")

        self._set_state(PairingState.CONNECTING)
        try:
            bundle = await self._run(host)
        except CasetaLinkError as exc:
            logger.error("Pairing with %s failed: %s", host, exc)
            self._set_state(PairingState.FAILED)
            raise
        except asyncio.CancelledError:
            self._set_state(PairingState.FAILED)
            raise
        finally:
            await self.close()

        self._set_state(PairingState.PAIRED)
        logger.info("Paired with bridge at %s", host)
        return bundle

    async def _run(self, host: str) -> CredentialBundle:
        try:
            self._connection = await transport.open_pairing_connection(
                host, self._config.port, self._config.connect_timeout
            )
        except OSError as exc:
            raise PairingTransportError(
                f"Failed to initialize pairing with {host}: {exc}"
            ) from exc
        logger.debug("Pairing connection to %s open", host)

        self._set_state(PairingState.AWAITING_PHYSICAL_CONFIRMATION)
        await self._await_physical_confirmation(self._connection)

        self._set_state(PairingState.GENERATING_KEYS)
        csr_pem, key_pem = await asyncio.to_thread(generate_csr)

        self._set_state(PairingState.AWAITING_SIGNED_CERTIFICATE)
        response = await self._request_signature(self._connection, csr_pem)
        return bundle_from_signing_result(response, key_pem)

    async def _await_physical_confirmation(
        self, connection: transport.LeapConnection
    ) -> None:
        logger.info(
            "Press the pairing button on the bridge (waiting %.0fs)",
            self._config.button_timeout,
        )
        try:
            async with asyncio.timeout(self._config.button_timeout):
                while True:
                    message = await connection.next_message()
                    if is_physical_access_confirmation(message):
                        logger.debug("Physical access confirmed")
                        return
                    logger.debug("Ignoring pairing message %s", message)
        except TimeoutError as exc:
            raise PairingTimeout(
                f"Pairing timed out after {self._config.button_timeout:.0f}s "
                "waiting for the pairing button"
            ) from exc
        except OSError as exc:
            raise PairingTransportError(
                f"Pairing connection lost while waiting for the button: {exc}"
            ) from exc

    async def _request_signature(
        self, connection: transport.LeapConnection, csr_pem: str
    ) -> transport.Message:
        try:
            response = await connection.request(
                build_csr_request(csr_pem), self._config.csr_timeout
            )
        except TimeoutError as exc:
            raise CsrTimeout(
                f"CSR response timed out after {self._config.csr_timeout:.0f}s"
            ) from exc
        except OSError as exc:
            raise PairingTransportError(
                f"Pairing connection lost during CSR: {exc}"
            ) from exc
        logger.debug("Got CSR response %s", response)
        return response

    async def close(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()
