"""Tests for the operator command set."""

from typing import get_type_hints

import pytest

from relayfleet_cli.config import FleetConfig
from relayfleet_cli.errors import ErrorKind
from relayfleet_cli.orchestrator import Orchestrator
from relayfleet_cli.registry import PortRegistry, RegistryEntry
from relayfleet_cli.store import FileRecordStore
from relayfleet_cli.supervisor import SystemdSupervisor
from relayfleet_cli.units import relay_definition


@pytest.mark.parametrize("raw", ["abc", "", "0", "65536", "80 80", None, "-1"])
def test_add_rejects_bad_port(orchestrator, supervisor, raw):
    result = orchestrator.add(raw)

    assert result.kind == ErrorKind.INVALID_PORT
    assert result.exit_code == 2
    assert supervisor.calls == []


def test_add_accepts_padded_port(orchestrator, registry):
    result = orchestrator.add(" 8080 ", "@Fleet")

    assert result.ok
    assert registry.get(8080).label == "@Fleet"


def test_add_rejects_control_characters_in_label(orchestrator, supervisor):
    result = orchestrator.add("8080", "bad\nlabel")

    assert result.kind == ErrorKind.INVALID_LABEL
    assert supervisor.calls == []


def test_remove_and_update(orchestrator, registry):
    orchestrator.add("8080")

    assert orchestrator.update("8080", "@New").ok
    assert registry.get(8080).label == "@New"
    assert orchestrator.remove("8080").ok
    assert orchestrator.list() == []


def test_update_not_registered(orchestrator):
    result = orchestrator.update("8080", "@New")
    assert result.kind == ErrorKind.NOT_FOUND
    assert result.exit_code == 4


def test_restart_all_when_no_port(orchestrator):
    orchestrator.add("8080")
    orchestrator.add("8081")

    batch = orchestrator.restart()

    assert batch.ok
    assert [r.port for r in batch.results] == [8080, 8081]


def test_restart_single_port_validates(orchestrator):
    assert orchestrator.restart("x").kind == ErrorKind.INVALID_PORT


def test_status_lists_unit_states(orchestrator):
    orchestrator.add("8080")
    assert orchestrator.status()[0]["active"] is True


def test_logs(orchestrator, supervisor):
    supervisor.journals["relayfleet-proxy8080"] = "line 1\nline 2\n"
    supervisor.journals["relayfleet-tls"] = "tls line\n"

    result, text = orchestrator.logs("8080")
    assert result.ok
    assert text == "line 1\nline 2\n"

    result, text = orchestrator.logs(tls=True)
    assert text == "tls line\n"

    result, text = orchestrator.logs(None)
    assert result.kind == ErrorKind.INVALID_PORT
    assert text == ""


@pytest.mark.parametrize(
    "listen, host, connect, kind",
    [
        ("x", "127.0.0.1", "80", ErrorKind.INVALID_PORT),
        ("443", "", "80", ErrorKind.INVALID_HOST),
        ("443", "bad host", "80", ErrorKind.INVALID_HOST),
        ("443", "127.0.0.1", "99999", ErrorKind.INVALID_PORT),
    ],
)
def test_tls_start_validates(orchestrator, supervisor, listen, host, connect, kind):
    result = orchestrator.tls_start(listen, host, connect)

    assert result.kind == kind
    assert supervisor.calls == []


def test_tls_lifecycle(orchestrator):
    assert orchestrator.tls_start("443", "[::1]", "80").ok
    assert orchestrator.tls_status().config.connect_host == "::1"
    assert orchestrator.tls_restart().ok
    assert orchestrator.tls_stop().ok
    assert orchestrator.tls_restart().kind == ErrorKind.NOT_CONFIGURED


def test_uninstall_removes_everything(orchestrator, config, supervisor, registry_store, tls_store):
    orchestrator.add("8080")
    orchestrator.add("8081")
    orchestrator.tls_start("443", "127.0.0.1", "8080")
    supervisor.define(relay_definition(config, 9000, "@Stale"))

    batch = orchestrator.uninstall()

    assert batch.ok
    assert supervisor.units == {}
    assert not registry_store.exists()
    assert not tls_store.exists()
    assert not config.cert_dir.exists()
    assert not config.tls_config_path.exists()


def test_uninstall_is_rerunnable(orchestrator):
    orchestrator.add("8080")
    orchestrator.tls_start("443", "127.0.0.1", "8080")
    orchestrator.uninstall()

    batch = orchestrator.uninstall()

    assert batch.ok


def test_uninstall_continues_after_failure(orchestrator, relays, supervisor, monkeypatch):
    orchestrator.add("8080")
    orchestrator.add("8081")
    real_deactivate = relays.deactivate

    def flaky(port):
        if port == 8080:
            raise RuntimeError("boom")
        return real_deactivate(port)

    monkeypatch.setattr(relays, "deactivate", flaky)

    batch = orchestrator.uninstall()

    assert not batch.ok
    assert [r.port for r in batch.failures] == [8080]
    assert not supervisor.is_defined("relayfleet-proxy8081")


def test_from_config_wires_real_adapters(tmp_path):
    config = FleetConfig({"paths": {"base_dir": str(tmp_path)}})

    orchestrator = Orchestrator.from_config(config)

    assert isinstance(orchestrator.relays.supervisor, SystemdSupervisor)
    assert isinstance(orchestrator.registry.store, FileRecordStore)
    assert orchestrator.registry.store.path == tmp_path / "ports"
    assert orchestrator.tls.status_store.path == tmp_path / "tls_status"


def test_annotations_resolve_to_builtins():
    assert get_type_hints(Orchestrator.status)["return"] == list[dict]
    assert get_type_hints(Orchestrator.tls_warnings)["return"] == list[str]
    assert get_type_hints(PortRegistry.restore)["return"] == list[RegistryEntry]


def test_uninstall_continues_after_tls_removal_failure(orchestrator, tls, registry_store, monkeypatch):
    orchestrator.add("8080")

    def broken_purge():
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(tls, "purge", broken_purge)

    batch = orchestrator.uninstall()

    assert not batch.ok
    assert [r.unit for r in batch.failures] == ["relayfleet-tls"]
    assert not registry_store.exists()


def test_uninstall_continues_after_orphan_sweep_failure(orchestrator, relays, registry_store, monkeypatch):
    orchestrator.add("8080")

    def broken_sweep():
        raise OSError("unit directory unreadable")

    monkeypatch.setattr(relays, "sweep_orphans", broken_sweep)

    batch = orchestrator.uninstall()

    assert not batch.ok
    assert len(batch.failures) == 1
    assert "Orphan sweep failed" in batch.failures[0].message
    assert not registry_store.exists()
