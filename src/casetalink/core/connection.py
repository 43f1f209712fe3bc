from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from casetalink.config import SessionConfig
from casetalink.core import transport
from casetalink.errors import ConnectionFailed, IdentityUnresolvable, NotConfigured
from casetalink.models import (
    BridgeIdentity,
    CredentialBundle,
    DeviceRecord,
    normalize_bridge_id,
)
from casetalink.storage import Database

logger = logging.getLogger(__name__)

# device types reported for the bridge (or main repeater) itself
CONTROL_UNIT_TYPES = frozenset(
    {
        "SmartBridge",
        "SmartBridge2",
        "SmartBridgePRO",
        "SmartBridgePRO2",
        "RA2SelectMainRepeater",
        "RadioRa3Processor",
        "HWQSProcessor",
    }
)

DEVICE_LIST_REQUEST: transport.Message = {
    "CommuniqueType": "ReadRequest",
    "Header": {"Url": "/device"},
}


@dataclass
class ConnectionResult:
    identity: BridgeIdentity
    devices: list[DeviceRecord] = field(default_factory=list)
    enumerated: int = 0


def parse_device(item: Any) -> DeviceRecord:
    """Turn one entry of a ``/device`` response into a record.

    Raises ``ValueError`` for entries that are errors or lack required fields.
    """
    if not isinstance(item, dict):
        raise ValueError(f"expected an object, got {type(item).__name__}")
    if "ExceptionDetail" in item:
        detail = item["ExceptionDetail"] or {}
        raise ValueError(detail.get("Message") or str(detail))

    serial = item.get("SerialNumber")
    area = item.get("AssociatedArea")
    try:
        return DeviceRecord(
            href=item["href"],
            name=item.get("Name") or item["href"],
            serial_number=str(serial) if serial is not None else None,
            device_type=item["DeviceType"],
            model_number=item.get("ModelNumber") or "",
            associated_area=area.get("href") if isinstance(area, dict) else None,
        )
    except KeyError as exc:
        raise ValueError(f"missing field {exc}") from exc
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


def is_control_unit(device: DeviceRecord) -> bool:
    return device.device_type in CONTROL_UNIT_TYPES


def bridge_id_from_serial(serial: str) -> str:
    return normalize_bridge_id(int(serial) if serial.isdigit() else serial)


def _is_success(response: transport.Message) -> bool:
    status = str((response.get("Header") or {}).get("StatusCode") or "")
    return status.startswith("2")


class ConnectionManager:
    """Owns the authenticated session to the paired bridge."""

    def __init__(
        self, config: SessionConfig, database: Database | None = None
    ) -> None:
        self._config = config
        self._database = database
        self._session: transport.LeapConnection | None = None

    @property
    def session(self) -> transport.LeapConnection | None:
        return self._session

    @property
    def connected(self) -> bool:
        return self._session is not None and not self._session.closed

    async def connect(
        self,
        host: str,
        bundle: CredentialBundle | None,
        identity: BridgeIdentity | None,
        port: int | None = None,
    ) -> ConnectionResult:
        if bundle is None:
            raise NotConfigured("No credentials stored; pair with the bridge first")
        if identity is None:
            raise NotConfigured("No bridge id stored for the paired host")
        if not host:
            raise NotConfigured("No Host/IP")

        await self.close()
        port = port or self._config.port
        logger.debug("Opening session to %s:%d", host, port)
        try:
            session = await transport.open_session_connection(
                host, port, bundle, self._config.connect_timeout
            )
        except OSError as exc:
            raise ConnectionFailed(str(exc) or type(exc).__name__) from exc

        try:
            items = await self._enumerate(session)
            result = self._reconcile(items, identity)
        except BaseException:
            await session.close()
            raise

        self._session = session
        if identity.is_pending and self._database is not None:
            self._database.save_identity(result.identity)
        logger.info(
            "Connected to bridge %s at %s (%d devices)",
            result.identity,
            host,
            len(result.devices),
        )
        return result

    async def _enumerate(self, session: transport.LeapConnection) -> list[Any]:
        try:
            response = await session.request(
                DEVICE_LIST_REQUEST, self._config.request_timeout
            )
        except TimeoutError as exc:
            raise ConnectionFailed("device list request timed out") from exc
        except OSError as exc:
            raise ConnectionFailed(f"device list request failed: {exc}") from exc

        if not _is_success(response):
            status = (response.get("Header") or {}).get("StatusCode")
            raise ConnectionFailed(f"device list request answered {status}")

        items = (response.get("Body") or {}).get("Devices")
        if not isinstance(items, list):
            raise ConnectionFailed("device list response has no Devices")
        return items

    def _reconcile(
        self, items: list[Any], identity: BridgeIdentity
    ) -> ConnectionResult:
        resolved = identity
        devices: list[DeviceRecord] = []
        control_unit_seen = False

        for item in items:
            try:
                device = parse_device(item)
            except ValueError as exc:
                logger.warning("Skipping device entry: %s", exc)
                continue

            logger.info(
                "Found device: %s (model: %s, type: %s)",
                device.name,
                device.model_number,
                device.device_type,
            )

            if is_control_unit(device):
                control_unit_seen = True
                resolved = self._resolve_identity(resolved, device)
                continue

            if not device.is_controllable:
                logger.debug("Device %s has no area, not listed", device.name)
                continue
            devices.append(device)

        if resolved.is_pending:
            if control_unit_seen:
                raise IdentityUnresolvable("bridge reported no serial number")
            raise IdentityUnresolvable("bridge did not report its control unit")

        return ConnectionResult(
            identity=resolved, devices=devices, enumerated=len(items)
        )

    def _resolve_identity(
        self, identity: BridgeIdentity, device: DeviceRecord
    ) -> BridgeIdentity:
        if not device.serial_number:
            return identity
        reported = bridge_id_from_serial(device.serial_number)
        if identity.is_pending:
            logger.info("Resolved bridge id %s from %s", reported, device.name)
            return BridgeIdentity.resolved(reported)
        if identity.bridge_id != reported:
            raise IdentityUnresolvable(
                f"stored bridge id {identity.bridge_id} does not match "
                f"connected bridge {reported}"
            )
        return identity

    async def close(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            await session.close()
            logger.debug("Session to %s closed", session.name)
