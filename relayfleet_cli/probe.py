"""
Port probe - find and terminate TCP listeners using psutil.
"""

import logging
import socket
import time
from dataclasses import dataclass, field

import psutil

logger = logging.getLogger("relayfleet.probe")


@dataclass
class Listener:
    """A process listening on a TCP port."""

    port: int
    pid: int
    name: str
    cmdline: list[str] = field(default_factory=list)


def _bind_probe(port: int) -> bool:
    """Return True if binding the wildcard address on port fails"""
    families = [(socket.AF_INET, "0.0.0.0")]
    if socket.has_ipv6:
        families.append((socket.AF_INET6, "::"))

    for family, host in families:
        try:
            sock = socket.socket(family, socket.SOCK_STREAM)
        except OSError:
            # Address family unavailable on this host
            continue
        with sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if family == socket.AF_INET6:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
            try:
                sock.bind((host, port))
            except OSError:
                return True
    return False


class PortProbe:
    """Answers "is anything listening on this port" and clears stale listeners."""

    def _listening_connections(self, port: int):
        for conn in psutil.net_connections(kind="tcp"):
            if conn.status != psutil.CONN_LISTEN or not conn.laddr:
                continue
            if conn.laddr.port == port:
                yield conn

    def is_listening(self, port: int) -> bool:
        try:
            for _conn in self._listening_connections(port):
                return True
            return False
        except (psutil.AccessDenied, PermissionError):
            logger.debug("Socket table not readable, falling back to bind probe for port %s", port)
            return _bind_probe(port)

    def listeners(self, port: int) -> list[Listener]:
        """List processes listening on port (one entry per pid)"""
        found: dict[int, Listener] = {}
        try:
            connections = list(self._listening_connections(port))
        except (psutil.AccessDenied, PermissionError):
            return []

        for conn in connections:
            pid = conn.pid
            if not pid or pid in found:
                continue
            name = "unknown"
            cmdline: list[str] = []
            try:
                proc = psutil.Process(pid)
                name = proc.name()
                cmdline = proc.cmdline()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass
            found[pid] = Listener(port=port, pid=pid, name=name, cmdline=cmdline)
        return list(found.values())

    def terminate_listeners(self, port: int, timeout: float = 5.0) -> int:
        """
        Terminate every process still listening on port.

        Sends SIGTERM, escalates to SIGKILL after timeout, then waits until
        the port is no longer reported as listening. Returns the number of
        processes signalled.
        """
        targets = self.listeners(port)
        procs = []
        for listener in targets:
            try:
                proc = psutil.Process(listener.pid)
                proc.terminate()
                procs.append(proc)
                logger.info(
                    "Terminating lingering listener %s (pid %s) on port %s",
                    listener.name,
                    listener.pid,
                    port,
                )
            except psutil.NoSuchProcess:
                continue

        if procs:
            _gone, alive = psutil.wait_procs(procs, timeout=timeout)
            for proc in alive:
                try:
                    proc.kill()
                except psutil.NoSuchProcess:
                    continue
            psutil.wait_procs(alive, timeout=timeout)

        deadline = time.monotonic() + timeout
        while self.is_listening(port) and time.monotonic() < deadline:
            time.sleep(0.1)
        return len(procs)
