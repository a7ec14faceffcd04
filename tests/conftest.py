"""Shared fixtures: in-memory supervisor and port probe."""

from pathlib import Path

import pytest

from relayfleet_cli.certificates import CertificateMaterial
from relayfleet_cli.config import FleetConfig
from relayfleet_cli.errors import SupervisorError
from relayfleet_cli.orchestrator import Orchestrator
from relayfleet_cli.registry import PortRegistry
from relayfleet_cli.relay import RelayUnitManager
from relayfleet_cli.store import MemoryRecordStore
from relayfleet_cli.tls_overlay import TlsOverlayManager


class FakeProbe:
    """Port probe backed by a set of listening ports."""

    def __init__(self, listening=None):
        self.listening = set(listening or ())
        self.terminated = []

    def is_listening(self, port):
        return port in self.listening

    def terminate_listeners(self, port, timeout=5.0):
        if port not in self.listening:
            return 0
        self.listening.discard(port)
        self.terminated.append(port)
        return 1


class FakeSupervisor:
    """
    In-memory service manager.

    Active units bind a port on the probe: a relay its --port, the TLS
    overlay the accept port of its engine config. Failures are
    injected per verb through fail_on; units in never_active start without
    error but never report active.
    """

    def __init__(self, probe=None):
        self.probe = probe
        self.units = {}
        self.active = set()
        self.enabled = set()
        self.calls = []
        self.fail_on = {}
        self.never_active = set()
        self.journals = {}
        self.bound = {}

    def _maybe_fail(self, verb, name):
        self.calls.append((verb, name))
        targets = self.fail_on.get(verb)
        if targets is not None and (not targets or name in targets):
            raise SupervisorError(["systemctl", verb, f"{name}.service"], 1, f"{verb} failed")

    def _port(self, name):
        """--port of a relay, or the accept line of the engine config it reads"""
        definition = self.units.get(name)
        if definition is None:
            return None
        args = definition.exec_args
        if "--port" in args:
            return int(args[args.index("--port") + 1])
        for arg in args[1:]:
            path = Path(arg)
            if not path.is_file():
                continue
            for line in path.read_text().splitlines():
                key, _, value = line.partition("=")
                if key.strip() == "accept":
                    return int(value.strip())
        return None

    def _bring_up(self, name):
        if name in self.never_active:
            return
        self.active.add(name)
        port = self._port(name)
        if port is not None:
            self.bound[name] = port
            if self.probe is not None:
                self.probe.listening.add(port)

    def _bring_down(self, name):
        self.active.discard(name)
        port = self.bound.pop(name, None)
        if self.probe is not None and port is not None:
            self.probe.listening.discard(port)

    def define(self, definition):
        self._maybe_fail("define", definition.name)
        self.units[definition.name] = definition
        return definition.name

    def undefine(self, name):
        self.calls.append(("undefine", name))
        return self.units.pop(name, None) is not None

    def is_defined(self, name):
        return name in self.units

    def definitions(self, prefix):
        return sorted(n for n in self.units if n.startswith(prefix))

    def reload(self):
        self._maybe_fail("daemon-reload", "")

    def enable(self, name):
        self._maybe_fail("enable", name)
        self.enabled.add(name)

    def disable(self, name):
        self._maybe_fail("disable", name)
        self.enabled.discard(name)

    def start(self, name):
        self._maybe_fail("start", name)
        self._bring_up(name)

    def stop(self, name):
        self._maybe_fail("stop", name)
        self._bring_down(name)

    def restart(self, name):
        self._maybe_fail("restart", name)
        self._bring_down(name)
        self._bring_up(name)

    def is_active(self, name):
        return name in self.active

    def is_enabled(self, name):
        return name in self.enabled

    def journal_tail(self, name, lines=200):
        return self.journals.get(name, "")


def fake_engine(binary, package):
    return "/usr/bin/stunnel"


def fake_certificate(cert_dir, common_name="relayfleet", days=3650):
    cert_dir.mkdir(parents=True, exist_ok=True)
    material = CertificateMaterial.in_dir(cert_dir)
    created = not material.exists()
    material.cert_path.write_text("cert")
    material.key_path.write_text("key")
    return material, created


@pytest.fixture
def config(tmp_path):
    return FleetConfig(
        {
            "paths": {"base_dir": str(tmp_path / "opt"), "unit_dir": str(tmp_path / "units")},
            "tls": {"config_path": str(tmp_path / "stunnel" / "relayfleet.conf"), "cert_dir": str(tmp_path / "certs")},
        }
    )


@pytest.fixture
def probe():
    return FakeProbe()


@pytest.fixture
def supervisor(probe):
    return FakeSupervisor(probe)


@pytest.fixture
def registry_store():
    return MemoryRecordStore()


@pytest.fixture
def tls_store():
    return MemoryRecordStore()


@pytest.fixture
def registry(config, registry_store, probe):
    return PortRegistry(registry_store, config.default_label, probe=probe)


@pytest.fixture
def relays(config, registry, supervisor, probe):
    return RelayUnitManager(config, registry, supervisor, probe)


@pytest.fixture
def tls(config, supervisor, probe, tls_store):
    return TlsOverlayManager(
        config, supervisor, probe, tls_store, ensure_engine=fake_engine, ensure_cert=fake_certificate
    )


@pytest.fixture
def orchestrator(registry, relays, tls):
    return Orchestrator(registry, relays, tls)
