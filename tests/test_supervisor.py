"""Tests for the systemd adapter and unit rendering."""

import subprocess
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from relayfleet_cli.config import FleetConfig
from relayfleet_cli.errors import SupervisorError
from relayfleet_cli.supervisor import SystemdSupervisor
from relayfleet_cli.units import (
    UnitDefinition,
    port_from_unit_name,
    quote_exec_arg,
    relay_definition,
    relay_unit_name,
    render_unit,
    tls_definition,
)


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestUnitRendering(unittest.TestCase):
    def setUp(self):
        self.config = FleetConfig()

    def test_relay_unit_name(self):
        self.assertEqual(relay_unit_name(self.config, 8080), "relayfleet-proxy8080")

    def test_port_from_unit_name(self):
        self.assertEqual(port_from_unit_name(self.config, "relayfleet-proxy8080.service"), 8080)
        self.assertEqual(port_from_unit_name(self.config, "relayfleet-proxy8080"), 8080)
        self.assertIsNone(port_from_unit_name(self.config, "relayfleet-proxyabc"))
        self.assertIsNone(port_from_unit_name(self.config, "sshd"))

    def test_relay_unit_text(self):
        text = render_unit(relay_definition(self.config, 8080, "@RustyProxy"))

        self.assertIn("ExecStart=/opt/relayfleet/proxy --port 8080 --status @RustyProxy\n", text)
        self.assertIn("Restart=always\n", text)
        self.assertIn("RestartSec=2\n", text)
        self.assertIn("LimitNOFILE=1048576\n", text)
        self.assertIn("WantedBy=multi-user.target", text)

    def test_label_with_spaces_is_quoted(self):
        text = render_unit(relay_definition(self.config, 80, 'My "fast" proxy'))
        self.assertIn('--status "My \\"fast\\" proxy"', text)

    def test_specifiers_are_escaped(self):
        self.assertEqual(quote_exec_arg("100%"), "100%%")
        self.assertEqual(quote_exec_arg("$HOME"), "$$HOME")
        self.assertEqual(quote_exec_arg(""), '""')

    def test_tls_definition_runs_engine_in_foreground(self):
        definition = tls_definition(self.config, "/usr/bin/stunnel4")

        self.assertEqual(definition.name, "relayfleet-tls")
        self.assertEqual(definition.exec_args, ("/usr/bin/stunnel4", "/etc/stunnel/relayfleet.conf"))
        self.assertEqual(definition.restart, "on-failure")

    def test_custom_limits(self):
        definition = UnitDefinition("x", "x", ("/bin/true",), limits={"nproc": 512})
        self.assertIn("LimitNPROC=512", render_unit(definition))


class TestSystemdSupervisor(unittest.TestCase):
    def setUp(self):
        self.tmp = TemporaryDirectory()
        self.unit_dir = Path(self.tmp.name)
        self.supervisor = SystemdSupervisor(self.unit_dir)
        self.definition = relay_definition(FleetConfig(), 8080, "@RustyProxy")

    def tearDown(self):
        self.tmp.cleanup()

    def test_define_and_undefine(self):
        self.supervisor.define(self.definition)

        path = self.unit_dir / "relayfleet-proxy8080.service"
        self.assertTrue(path.exists())
        self.assertTrue(self.supervisor.is_defined("relayfleet-proxy8080"))
        self.assertEqual(self.supervisor.definitions("relayfleet-proxy"), ["relayfleet-proxy8080"])

        self.assertTrue(self.supervisor.undefine("relayfleet-proxy8080"))
        self.assertFalse(self.supervisor.undefine("relayfleet-proxy8080"))
        self.assertFalse(path.exists())

    def test_definitions_missing_dir(self):
        supervisor = SystemdSupervisor(self.unit_dir / "missing")
        self.assertEqual(supervisor.definitions("relayfleet-proxy"), [])

    @patch("relayfleet_cli.supervisor.subprocess.run")
    def test_start_invokes_systemctl(self, mock_run):
        mock_run.return_value = completed()

        self.supervisor.start("relayfleet-proxy8080")

        args = mock_run.call_args[0][0]
        self.assertEqual(args, ["systemctl", "start", "relayfleet-proxy8080.service"])
        self.assertEqual(mock_run.call_args[1]["timeout"], 30)

    @patch("relayfleet_cli.supervisor.subprocess.run")
    def test_failure_raises_with_output(self, mock_run):
        mock_run.return_value = completed(returncode=1, stderr="Unit not found.\n")

        with self.assertRaises(SupervisorError) as ctx:
            self.supervisor.enable("relayfleet-proxy8080")

        self.assertEqual(ctx.exception.returncode, 1)
        self.assertIn("Unit not found.", str(ctx.exception))
        self.assertIn("exited with status 1", str(ctx.exception))

    @patch("relayfleet_cli.supervisor.subprocess.run")
    def test_timeout_raises(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="systemctl", timeout=30)

        with self.assertRaises(SupervisorError) as ctx:
            self.supervisor.reload()

        self.assertTrue(ctx.exception.timed_out)
        self.assertIn("timed out", str(ctx.exception))

    @patch("relayfleet_cli.supervisor.subprocess.run")
    def test_missing_systemctl_raises(self, mock_run):
        mock_run.side_effect = FileNotFoundError("systemctl")

        with self.assertRaises(SupervisorError):
            self.supervisor.stop("relayfleet-proxy8080")

    @patch("relayfleet_cli.supervisor.subprocess.run")
    def test_is_active_uses_returncode(self, mock_run):
        mock_run.return_value = completed(returncode=0)
        self.assertTrue(self.supervisor.is_active("relayfleet-tls"))

        mock_run.return_value = completed(returncode=3)
        self.assertFalse(self.supervisor.is_active("relayfleet-tls"))

        args = mock_run.call_args[0][0]
        self.assertEqual(args, ["systemctl", "is-active", "--quiet", "relayfleet-tls.service"])

    @patch("relayfleet_cli.supervisor.subprocess.run")
    def test_journal_tail(self, mock_run):
        mock_run.return_value = completed(stdout="a\nb\n")

        self.assertEqual(self.supervisor.journal_tail("relayfleet-tls", 50), "a\nb\n")
        args = mock_run.call_args[0][0]
        self.assertEqual(args, ["journalctl", "-u", "relayfleet-tls.service", "-n", "50", "--no-pager"])

    @patch("relayfleet_cli.supervisor.subprocess.run")
    def test_journal_tail_unavailable(self, mock_run):
        mock_run.side_effect = FileNotFoundError("journalctl")
        self.assertEqual(self.supervisor.journal_tail("relayfleet-tls"), "")

    def test_define_write_failure(self):
        blocker = self.unit_dir / "file"
        blocker.write_text("")
        supervisor = SystemdSupervisor(blocker / "units")

        with self.assertRaises(SupervisorError):
            supervisor.define(self.definition)


class TestSupervisorErrorMessage(unittest.TestCase):
    def test_plain_failure_message(self):
        error = SupervisorError(["systemctl", "start", "x.service"], None, "")
        self.assertEqual(str(error), "'systemctl start x.service' failed")


if __name__ == "__main__":
    unittest.main()
