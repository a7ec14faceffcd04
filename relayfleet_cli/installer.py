"""Package installation for external tools (the TLS engine).

Only "make sure it is present" is handled here: if the binary is already on
PATH nothing runs, otherwise the first available package manager installs it
non-interactively.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess

from .errors import ToolError
from .subprocess_timeouts import get_timeout

logger = logging.getLogger("relayfleet.installer")

PACKAGE_MANAGERS: tuple[tuple[str, list[list[str]]], ...] = (
    ("apt-get", [["apt-get", "update", "-y"], ["apt-get", "install", "-y", "{package}"]]),
    ("dnf", [["dnf", "install", "-y", "{package}"]]),
    ("yum", [["yum", "install", "-y", "{package}"]]),
    ("pacman", [["pacman", "-S", "--noconfirm", "{package}"]]),
)

# Distribution package names that differ from the apt one
PACKAGE_ALIASES = {
    ("stunnel4", "dnf"): "stunnel",
    ("stunnel4", "yum"): "stunnel",
    ("stunnel4", "pacman"): "stunnel",
}


def find_executable(binary: str) -> str | None:
    """Find an executable on PATH (falls back to <binary>4 for stunnel on Debian)"""
    return shutil.which(binary) or shutil.which(f"{binary}4")


def _run_cmd(cmd: list[str]) -> None:
    logger.info("Running: %s", " ".join(cmd))
    env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=False,
            timeout=get_timeout("package_install"),
            env=env,
        )
    except subprocess.TimeoutExpired as e:
        raise ToolError(f"'{' '.join(cmd)}' timed out") from e
    except OSError as e:
        raise ToolError(f"'{' '.join(cmd)}' could not be run", str(e)) from e

    if result.returncode != 0:
        output = (result.stderr or result.stdout or "").strip()
        raise ToolError(f"'{' '.join(cmd)}' exited with status {result.returncode}", output)


def ensure_package(binary: str, package: str) -> str:
    """Make sure binary is installed, installing package if needed.

    Returns the executable path. Raises ToolError on failure.
    """
    found = find_executable(binary)
    if found:
        logger.debug("%s already installed at %s", binary, found)
        return found

    for manager, steps in PACKAGE_MANAGERS:
        if not shutil.which(manager):
            continue
        name = PACKAGE_ALIASES.get((package, manager), package)
        for step in steps:
            _run_cmd([part.format(package=name) for part in step])
        found = find_executable(binary)
        if not found:
            raise ToolError(f"{name} installed with {manager} but '{binary}' is still not on PATH")
        logger.info("Installed %s with %s", name, manager)
        return found

    raise ToolError(f"No supported package manager found to install {package}")
