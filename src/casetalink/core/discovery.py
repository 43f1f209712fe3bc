from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
import threading
from collections.abc import Callable

from zeroconf import ServiceBrowser, ServiceInfo, ServiceListener, Zeroconf

from casetalink.config import DiscoveryConfig
from casetalink.models import BridgeAddressRecord, normalize_bridge_id

logger = logging.getLogger(__name__)

HOSTNAME_PATTERN = re.compile(r"^lutron-(?P<id>[0-9a-z]+)(\.local)?\.?$", re.IGNORECASE)
SERIAL_TXT_KEYS = ("SERNUM", "sernum", "serial", "SERIAL")


class DiscoveryRegistry:
    """Address to bridge id mapping shared with the discovery thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bridges: dict[str, str] = {}

    def upsert(self, record: BridgeAddressRecord) -> None:
        with self._lock:
            self._bridges[record.address] = record.bridge_id

    def get(self, address: str) -> str | None:
        with self._lock:
            return self._bridges.get(address)

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._bridges)

    def host_choices(self) -> list[tuple[str, str]]:
        """``(address, label)`` pairs for a host selection list."""
        return [
            (address, f"{address} ({bridge_id})")
            for address, bridge_id in sorted(self.snapshot().items())
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._bridges)


def _txt_value(properties: dict[bytes, bytes | None], key: str) -> str | None:
    value = properties.get(key.encode())
    if not value:
        return None
    return value.decode("utf-8", errors="replace").strip() or None


def _pick_ip(info: ServiceInfo) -> str | None:
    """Prefer an IPv4 address."""
    addresses = sorted(
        info.parsed_addresses(), key=lambda item: ipaddress.ip_address(item).version
    )
    return addresses[0] if addresses else None


def _bridge_id_from_service_info(info: ServiceInfo) -> str | None:
    if info.server:
        match = HOSTNAME_PATTERN.match(info.server)
        if match:
            return normalize_bridge_id(match.group("id"))

    for key in SERIAL_TXT_KEYS:
        serial = _txt_value(info.properties, key)
        if serial:
            return normalize_bridge_id(serial)
    return None


def record_from_service_info(info: ServiceInfo) -> BridgeAddressRecord | None:
    address = _pick_ip(info)
    if address is None:
        return None
    bridge_id = _bridge_id_from_service_info(info)
    if bridge_id is None:
        logger.debug("Ignoring service at %s without a bridge id", address)
        return None
    return BridgeAddressRecord(address=address, bridge_id=bridge_id)


class BridgeListener(ServiceListener):
    def __init__(
        self,
        registry: DiscoveryRegistry,
        info_timeout: float,
        on_discovered: Callable[[BridgeAddressRecord], None] | None = None,
    ) -> None:
        self._registry = registry
        self._info_timeout_ms = max(int(info_timeout * 1000), 1)
        self._on_discovered = on_discovered

    def add_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        info = zc.get_service_info(type_, name, timeout=self._info_timeout_ms)
        if not info:
            return
        record = record_from_service_info(info)
        if record is None:
            return
        self._registry.upsert(record)
        logger.info("Discovered bridge %s at %s", record.bridge_id, record.address)
        if self._on_discovered is not None:
            self._on_discovered(record)

    def update_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        self.add_service(zc, type_, name)

    def remove_service(self, _zc: Zeroconf, _type_: str, name: str) -> None:
        # addresses stay known for the life of the process
        logger.debug("Bridge service %s went away", name)


class BridgeDiscovery:
    """Continuous mDNS browse feeding a :class:`DiscoveryRegistry`."""

    def __init__(
        self,
        config: DiscoveryConfig,
        registry: DiscoveryRegistry | None = None,
        on_discovered: Callable[[BridgeAddressRecord], None] | None = None,
    ) -> None:
        self._config = config
        self.registry = registry if registry is not None else DiscoveryRegistry()
        self._on_discovered = on_discovered
        self._zeroconf: Zeroconf | None = None
        self._browser: ServiceBrowser | None = None

    @property
    def is_running(self) -> bool:
        return self._zeroconf is not None

    def start(self) -> None:
        if self.is_running:
            return
        logger.debug("Starting bridge discovery for %s", self._config.service_type)
        self._zeroconf = Zeroconf()
        listener = BridgeListener(
            self.registry, self._config.info_timeout, self._on_discovered
        )
        self._browser = ServiceBrowser(
            self._zeroconf, self._config.service_type, listener
        )

    async def stop(self) -> None:
        zeroconf, self._zeroconf = self._zeroconf, None
        browser, self._browser = self._browser, None
        if zeroconf is None:
            return
        if browser is not None:
            browser.cancel()
        await asyncio.to_thread(zeroconf.close)
        logger.debug("Bridge discovery stopped")


async def discover_bridges(
    config: DiscoveryConfig, registry: DiscoveryRegistry | None = None
) -> dict[str, str]:
    """Browse for ``browse_timeout`` seconds and return what was found."""
    discovery = BridgeDiscovery(config, registry)
    discovery.start()
    try:
        await asyncio.sleep(config.browse_timeout)
    finally:
        await discovery.stop()

    bridges = discovery.registry.snapshot()
    logger.debug("Discovery complete: found %d bridges", len(bridges))
    return bridges
