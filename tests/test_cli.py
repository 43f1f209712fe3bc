from __future__ import annotations

import pytest
from typer.testing import CliRunner

import casetalink.cli.commands.devices as devices_cmd
import casetalink.cli.commands.discover as discover_cmd
import casetalink.cli.commands.pair as pair_cmd
from casetalink.cli.app import app
from casetalink.config import DatabaseConfig, Settings, get_settings, write_settings
from casetalink.models import BridgeConfig, BridgeSecrets, DeviceRecord, InstanceStatus
from casetalink.storage import Database
from fakes import make_bundle

runner = CliRunner()

KITCHEN = DeviceRecord(
    href="/device/5",
    name="Kitchen Lights",
    serial_number="71234567",
    device_type="WallDimmer",
    model_number="PD-6WCL-XX",
    associated_area="/area/3",
)


@pytest.fixture
def cli_db(tmp_path, monkeypatch) -> Database:
    data_dir = tmp_path / "data"
    config_path = tmp_path / "config.toml"
    write_settings(Settings(database=DatabaseConfig(path=str(data_dir))), config_path)
    monkeypatch.setenv("CASETALINK_CONFIG", str(config_path))
    get_settings.cache_clear()
    db = Database(data_dir)
    db.init()
    return db


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "casetalink version" in result.stdout


def test_init_creates_config_and_data_dir(tmp_path, monkeypatch):
    config_path = tmp_path / "config.toml"
    monkeypatch.setenv("CASETALINK_CONFIG", str(config_path))

    result = runner.invoke(app, ["init", "--data-dir", str(tmp_path / "data")])

    assert result.exit_code == 0
    assert config_path.exists()
    assert (tmp_path / "data" / "bridge.toml").exists()


def test_config_show(cli_db):
    result = runner.invoke(app, ["config", "show"])

    assert result.exit_code == 0
    assert "[pairing]" in result.stdout
    assert "button_timeout = 30.0" in result.stdout


def test_status_shows_stored_bridge(cli_db):
    cli_db.save_config(BridgeConfig(host="192.168.1.40", bridge_id="0327ABCD"))
    cli_db.save_secrets(BridgeSecrets(bundle=make_bundle()))

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Host: 192.168.1.40" in result.stdout
    assert "Bridge ID: 0327ABCD" in result.stdout
    assert "Credentials: yes" in result.stdout


def test_discover_lists_bridges(cli_db, monkeypatch):
    async def _fake_discover(config, registry=None):
        assert config.browse_timeout == 0.5
        return {"192.168.1.40": "0327ABCD"}

    monkeypatch.setattr(discover_cmd, "discover_bridges", _fake_discover)

    result = runner.invoke(app, ["discover", "--timeout", "0.5"])

    assert result.exit_code == 0
    assert "0327ABCD" in result.stdout
    assert "Found 1 bridge(s)" in result.stdout


def test_discover_nothing_found(cli_db, monkeypatch):
    async def _fake_discover(config, registry=None):
        return {}

    monkeypatch.setattr(discover_cmd, "discover_bridges", _fake_discover)

    result = runner.invoke(app, ["discover"])

    assert result.exit_code == 0
    assert "Enter the bridge address manually" in result.stdout


def test_pair_rejects_hostnames(cli_db):
    result = runner.invoke(app, ["pair", "bridge.local"])

    assert result.exit_code == 1
    assert "Invalid host" in result.stdout


def test_pair_prompts_for_button_and_lists_devices(cli_db, monkeypatch):
    seen: list[BridgeConfig] = []

    async def _fake_apply(settings, db, update, printer):
        seen.append(update)
        return InstanceStatus.CONNECTED, [KITCHEN]

    monkeypatch.setattr(pair_cmd, "_apply_config", _fake_apply)

    result = runner.invoke(app, ["pair", "192.168.1.40"])

    assert result.exit_code == 0
    assert "pairing button" in result.stdout
    assert "Kitchen Lights" in result.stdout
    assert seen == [BridgeConfig(host="192.168.1.40", port=8081)]


def test_pair_failure_exits_nonzero(cli_db, monkeypatch):
    async def _fake_apply(settings, db, update, printer):
        printer(InstanceStatus.CONNECTION_FAILURE, "Pairing timed out")
        return InstanceStatus.CONNECTION_FAILURE, []

    monkeypatch.setattr(pair_cmd, "_apply_config", _fake_apply)

    result = runner.invoke(app, ["pair", "192.168.1.40"])

    assert result.exit_code == 1
    assert "Pairing timed out" in result.stdout


def test_devices_lists_controllable_devices(cli_db, monkeypatch):
    async def _fake_reconcile(settings, db, printer):
        return InstanceStatus.CONNECTED, [KITCHEN]

    monkeypatch.setattr(devices_cmd, "_reconcile", _fake_reconcile)

    result = runner.invoke(app, ["devices", "--redact"])

    assert result.exit_code == 0
    assert "Kitchen Lights" in result.stdout
    assert "71xxxx01" in result.stdout
    assert "1 device(s)" in result.stdout


def test_devices_without_pairing_exits_nonzero(cli_db, monkeypatch):
    async def _fake_reconcile(settings, db, printer):
        return InstanceStatus.BAD_CONFIG, []

    monkeypatch.setattr(devices_cmd, "_reconcile", _fake_reconcile)

    result = runner.invoke(app, ["devices"])

    assert result.exit_code == 1


def test_forget_clears_credentials(cli_db):
    cli_db.save_config(BridgeConfig(host="192.168.1.40", bridge_id="0327ABCD"))
    cli_db.save_secrets(BridgeSecrets(bundle=make_bundle()))

    result = runner.invoke(app, ["forget"])

    assert result.exit_code == 0
    assert cli_db.load_bundle() is None
    assert cli_db.load_config().host == "192.168.1.40"


def test_pair_keeps_stored_port(cli_db, monkeypatch):
    cli_db.save_config(BridgeConfig(host="192.168.1.40", port=8443))
    seen: list[BridgeConfig] = []

    async def _fake_apply(settings, db, update, printer):
        seen.append(update)
        return InstanceStatus.CONNECTED, []

    monkeypatch.setattr(pair_cmd, "_apply_config", _fake_apply)

    result = runner.invoke(app, ["pair", "192.168.1.40"])

    assert result.exit_code == 0
    assert seen == [BridgeConfig(host="192.168.1.40", port=8443)]


def test_pair_with_corrupt_secrets_exits_nonzero(cli_db):
    cli_db.secrets_path.write_text("{not json")

    result = runner.invoke(app, ["pair", "192.168.1.40"])

    assert result.exit_code == 1
    assert "Invalid JSON in secrets file" in result.stdout


def test_pair_reports_store_errors_during_apply(cli_db, monkeypatch):
    async def _fake_apply(settings, db, update, printer):
        raise ValueError("Invalid bridge config")

    monkeypatch.setattr(pair_cmd, "_apply_config", _fake_apply)

    result = runner.invoke(app, ["pair", "192.168.1.40"])

    assert result.exit_code == 1
    assert "Invalid bridge config" in result.stdout


def test_config_show_lists_bridge_files(cli_db):
    result = runner.invoke(app, ["config", "show"])

    assert result.exit_code == 0
    assert "bridge.toml" in result.stdout
    assert "secrets.json" in result.stdout
