"""Tests for TLS engine package installation."""

import subprocess
import unittest
from unittest.mock import patch

from relayfleet_cli import installer
from relayfleet_cli.errors import ToolError


def which_from(available):
    return lambda name: f"/usr/bin/{name}" if name in available else None


class TestEnsurePackage(unittest.TestCase):
    def test_already_installed_runs_nothing(self):
        with (
            patch("relayfleet_cli.installer.shutil.which", side_effect=which_from({"stunnel"})),
            patch("relayfleet_cli.installer.subprocess.run") as run,
        ):
            path = installer.ensure_package("stunnel", "stunnel4")

        self.assertEqual(path, "/usr/bin/stunnel")
        run.assert_not_called()

    def test_debian_binary_name_is_found(self):
        with patch("relayfleet_cli.installer.shutil.which", side_effect=which_from({"stunnel4"})):
            self.assertEqual(installer.find_executable("stunnel"), "/usr/bin/stunnel4")

    def test_installs_with_apt(self):
        available = {"apt-get"}

        def run(cmd, **kwargs):
            if cmd[:2] == ["apt-get", "install"]:
                available.add("stunnel4")
            return subprocess.CompletedProcess(cmd, 0, "", "")

        with (
            patch("relayfleet_cli.installer.shutil.which", side_effect=lambda n: which_from(available)(n)),
            patch("relayfleet_cli.installer.subprocess.run", side_effect=run) as mock_run,
        ):
            path = installer.ensure_package("stunnel", "stunnel4")

        self.assertEqual(path, "/usr/bin/stunnel4")
        commands = [c[0][0] for c in mock_run.call_args_list]
        self.assertEqual(commands, [["apt-get", "update", "-y"], ["apt-get", "install", "-y", "stunnel4"]])

    def test_dnf_uses_package_alias(self):
        available = {"dnf"}

        def run(cmd, **kwargs):
            available.add("stunnel")
            return subprocess.CompletedProcess(cmd, 0, "", "")

        with (
            patch("relayfleet_cli.installer.shutil.which", side_effect=lambda n: which_from(available)(n)),
            patch("relayfleet_cli.installer.subprocess.run", side_effect=run) as mock_run,
        ):
            installer.ensure_package("stunnel", "stunnel4")

        self.assertEqual(mock_run.call_args[0][0], ["dnf", "install", "-y", "stunnel"])

    def test_install_failure_raises(self):
        failed = subprocess.CompletedProcess([], 100, "", "E: Unable to locate package stunnel4\n")
        with (
            patch("relayfleet_cli.installer.shutil.which", side_effect=which_from({"apt-get"})),
            patch("relayfleet_cli.installer.subprocess.run", return_value=failed),
        ):
            with self.assertRaises(ToolError) as ctx:
                installer.ensure_package("stunnel", "stunnel4")

        self.assertIn("Unable to locate package", ctx.exception.output)

    def test_no_package_manager(self):
        with patch("relayfleet_cli.installer.shutil.which", return_value=None):
            with self.assertRaises(ToolError):
                installer.ensure_package("stunnel", "stunnel4")

    def test_installed_but_not_on_path(self):
        with (
            patch("relayfleet_cli.installer.shutil.which", side_effect=which_from({"pacman"})),
            patch("relayfleet_cli.installer.subprocess.run", return_value=subprocess.CompletedProcess([], 0, "", "")),
        ):
            with self.assertRaises(ToolError) as ctx:
                installer.ensure_package("stunnel", "stunnel4")

        self.assertIn("still not on PATH", str(ctx.exception))

    def test_run_cmd_timeout(self):
        with patch(
            "relayfleet_cli.installer.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="apt-get", timeout=600),
        ):
            with self.assertRaises(ToolError):
                installer._run_cmd(["apt-get", "update", "-y"])


if __name__ == "__main__":
    unittest.main()
