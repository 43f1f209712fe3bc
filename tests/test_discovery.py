from __future__ import annotations

from types import SimpleNamespace

from casetalink.core.discovery import (
    BridgeListener,
    DiscoveryRegistry,
    record_from_service_info,
)
from casetalink.models import BridgeAddressRecord


def _service_info(server="Lutron-0327abcd.local.", addresses=None, properties=None):
    if addresses is None:
        addresses = ["192.168.1.40"]
    return SimpleNamespace(
        server=server,
        properties=properties or {},
        parsed_addresses=lambda: list(addresses),
    )


def test_registry_last_write_wins():
    registry = DiscoveryRegistry()
    registry.upsert(BridgeAddressRecord(address="192.168.1.40", bridge_id="AAAA0001"))
    registry.upsert(BridgeAddressRecord(address="192.168.1.40", bridge_id="BBBB0002"))

    assert registry.get("192.168.1.40") == "BBBB0002"
    assert len(registry) == 1


def test_registry_order_does_not_matter_for_distinct_addresses():
    records = [
        BridgeAddressRecord(address="192.168.1.41", bridge_id="AAAA0001"),
        BridgeAddressRecord(address="192.168.1.40", bridge_id="BBBB0002"),
    ]
    forward, backward = DiscoveryRegistry(), DiscoveryRegistry()
    for record in records:
        forward.upsert(record)
    for record in reversed(records):
        backward.upsert(record)

    assert forward.snapshot() == backward.snapshot()


def test_host_choices_are_labelled_and_sorted():
    registry = DiscoveryRegistry()
    registry.upsert(BridgeAddressRecord(address="192.168.1.41", bridge_id="AAAA0001"))
    registry.upsert(BridgeAddressRecord(address="192.168.1.40", bridge_id="BBBB0002"))

    assert registry.host_choices() == [
        ("192.168.1.40", "192.168.1.40 (BBBB0002)"),
        ("192.168.1.41", "192.168.1.41 (AAAA0001)"),
    ]


def test_record_from_hostname():
    record = record_from_service_info(
        _service_info(addresses=["fe80::1", "192.168.1.40"])
    )

    assert record == BridgeAddressRecord(address="192.168.1.40", bridge_id="0327ABCD")


def test_record_falls_back_to_txt_serial():
    info = _service_info(
        server="bridge.local.", properties={b"SERNUM": b"0327abcd", b"MACADDR": None}
    )

    record = record_from_service_info(info)

    assert record is not None
    assert record.bridge_id == "0327ABCD"


def test_record_without_id_or_address_is_ignored():
    assert record_from_service_info(_service_info(server="printer.local.")) is None
    assert record_from_service_info(_service_info(addresses=[])) is None


def test_listener_upserts_and_notifies():
    registry = DiscoveryRegistry()
    seen: list[BridgeAddressRecord] = []
    listener = BridgeListener(registry, info_timeout=1.0, on_discovered=seen.append)
    zc = SimpleNamespace(get_service_info=lambda type_, name, timeout: _service_info())

    listener.add_service(zc, "_lutron._tcp.local.", "Lutron Status._lutron._tcp.local.")
    listener.remove_service(zc, "_lutron._tcp.local.", "Lutron Status")

    assert registry.get("192.168.1.40") == "0327ABCD"
    assert [record.bridge_id for record in seen] == ["0327ABCD"]


def test_listener_skips_unresolved_services():
    registry = DiscoveryRegistry()
    listener = BridgeListener(registry, info_timeout=1.0)
    zc = SimpleNamespace(get_service_info=lambda type_, name, timeout: None)

    listener.update_service(zc, "_lutron._tcp.local.", "gone")

    assert len(registry) == 0
