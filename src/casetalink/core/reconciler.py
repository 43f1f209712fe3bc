"""Top-level driver tying discovery, pairing and the session together.

A reconciliation runs on start and on every configuration update. Only one
runs at a time; an overlapping request is rejected with ``PairingBusy``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from casetalink.config import Settings
from casetalink.core.connection import ConnectionManager
from casetalink.core.discovery import BridgeDiscovery, DiscoveryRegistry
from casetalink.core.pairing import BridgePairing
from casetalink.errors import (
    CasetaLinkError,
    IdentityUnresolvable,
    NotConfigured,
    PairingBusy,
)
from casetalink.models import (
    BridgeConfig,
    BridgeIdentity,
    BridgeSecrets,
    CredentialBundle,
    DeviceRecord,
    InstanceStatus,
)
from casetalink.storage import Database

logger = logging.getLogger(__name__)

StatusCallback = Callable[[InstanceStatus, str], None]


class Reconciler:
    def __init__(
        self,
        settings: Settings,
        database: Database,
        discovery: BridgeDiscovery | None = None,
        on_status: StatusCallback | None = None,
    ) -> None:
        self._database = database
        self.discovery = discovery or BridgeDiscovery(settings.discovery)
        self.pairing = BridgePairing(settings.pairing)
        self.connection = ConnectionManager(settings.session, database)
        self._on_status = on_status
        self._attempt: asyncio.Task[InstanceStatus] | None = None
        self.status = InstanceStatus.INITIALIZING
        self.status_detail = ""
        self.devices: list[DeviceRecord] = []

    @property
    def registry(self) -> DiscoveryRegistry:
        return self.discovery.registry

    @property
    def busy(self) -> bool:
        return self._attempt is not None and not self._attempt.done()

    def _update_status(self, status: InstanceStatus, detail: str = "") -> None:
        self.status = status
        self.status_detail = detail
        if status in (InstanceStatus.BAD_CONFIG, InstanceStatus.CONNECTION_FAILURE):
            logger.warning("Status %s: %s", status.value, detail)
        else:
            logger.info("Status %s%s", status.value, f": {detail}" if detail else "")
        if self._on_status is not None:
            self._on_status(status, detail)

    async def _run_exclusive(
        self, factory: Callable[[], Coroutine[Any, Any, InstanceStatus]]
    ) -> InstanceStatus:
        if self.busy:
            raise PairingBusy("a pairing or connection attempt is already running")

        self._attempt = asyncio.create_task(factory(), name="casetalink-reconcile")
        try:
            return await self._attempt
        finally:
            self._attempt = None

    async def start(self) -> InstanceStatus:
        """Reconcile against the stored configuration."""
        return await self._run_exclusive(lambda: self._reconcile(None))

    async def config_updated(self, update: BridgeConfig) -> InstanceStatus:
        """Apply a host/port submitted by the user, pairing when needed."""
        return await self._run_exclusive(lambda: self._reconcile(update))

    async def _reconcile(self, update: BridgeConfig | None) -> InstanceStatus:
        self.discovery.start()
        self.devices = []
        try:
            try:
                config, bundle = self._apply_update(update)
            except ValueError as exc:
                raise NotConfigured(str(exc)) from exc
            if not config.host:
                raise NotConfigured("No Host/IP")

            if bundle is None:
                if update is None:
                    raise NotConfigured(
                        "Not paired; save the configuration and press the "
                        "pairing button on the bridge"
                    )
                config, bundle = await self._pair(config)
            elif config.identity is None:
                config = self._recover_identity(config)

            await self._connect(config, bundle)
        except NotConfigured as exc:
            self._update_status(InstanceStatus.BAD_CONFIG, exc.message)
        except IdentityUnresolvable as exc:
            logger.warning("Clearing stored credentials: %s", exc.message)
            self._database.clear_credentials()
            self._update_status(
                InstanceStatus.DISCONNECTED, f"Needs re-pairing: {exc.message}"
            )
        except CasetaLinkError as exc:
            self._update_status(InstanceStatus.CONNECTION_FAILURE, exc.message)
        return self.status

    def _apply_update(
        self, update: BridgeConfig | None
    ) -> tuple[BridgeConfig, CredentialBundle | None]:
        stored = self._database.load_config()
        if update is None:
            return stored, self._database.load_bundle()

        if update.host != stored.host:
            # credentials were issued by whatever bridge used to be at the old host
            logger.info("Host changed from '%s' to '%s'", stored.host, update.host)
            config = BridgeConfig(host=update.host, port=update.port)
            self._database.save_secrets(BridgeSecrets())
            self._database.save_config(config)
            return config, None

        config = stored.model_copy(update={"port": update.port})
        self._database.save_config(config)
        return config, self._database.load_bundle()

    async def _pair(
        self, config: BridgeConfig
    ) -> tuple[BridgeConfig, CredentialBundle]:
        self._update_status(InstanceStatus.CONNECTING, "Pairing with Bridge")
        await self.connection.close()
        bundle = await self.pairing.pair(config.host)

        discovered = self.registry.get(config.host)
        if discovered:
            identity = BridgeIdentity.resolved(discovered)
        else:
            logger.info(
                "No discovered bridge at %s; bridge id will come from the bridge",
                config.host,
            )
            identity = BridgeIdentity.pending()
        config = self._database.save_pairing(bundle, identity)
        return config, bundle

    def _recover_identity(self, config: BridgeConfig) -> BridgeConfig:
        """Fill in a missing bridge id for stored credentials from discovery."""
        discovered = self.registry.get(config.host)
        if not discovered:
            raise IdentityUnresolvable("No Bridge ID for paired host")
        logger.info("Using discovered bridge id %s for %s", discovered, config.host)
        return self._database.save_identity(BridgeIdentity.resolved(discovered))

    async def _connect(self, config: BridgeConfig, bundle: CredentialBundle) -> None:
        self._update_status(InstanceStatus.CONNECTING, "Connecting to Bridge")
        result = await self.connection.connect(
            config.host, bundle, config.identity, config.port
        )
        self.devices = result.devices
        self._update_status(
            InstanceStatus.CONNECTED,
            f"Bridge {result.identity} ({len(result.devices)} devices)",
        )

    def forget(self) -> None:
        """Drop stored credentials and identity; the host is kept."""
        if self.busy:
            raise PairingBusy("cannot clear credentials while an attempt is running")
        self._database.clear_credentials()
        self.devices = []
        self._update_status(InstanceStatus.BAD_CONFIG, "Credentials cleared")

    async def shutdown(self) -> None:
        attempt, self._attempt = self._attempt, None
        if attempt is not None and not attempt.done():
            attempt.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await attempt
        await self.pairing.close()
        await self.connection.close()
        await self.discovery.stop()
        self._update_status(InstanceStatus.DISCONNECTED, "Shut down")
