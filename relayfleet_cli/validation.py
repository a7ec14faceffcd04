"""Operator input validation for ports and hosts"""

import ipaddress
import logging
import re

from .errors import ErrorKind

logger = logging.getLogger("relayfleet.validation")

# RFC 1123 hostname label
_HOST_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


class InputError(ValueError):
    """Raw operator input was rejected before any side effect."""

    def __init__(self, kind: ErrorKind, message: str):
        self.kind = kind
        super().__init__(message)


def is_valid_port(port: int) -> bool:
    """Check port number range"""
    return isinstance(port, int) and not isinstance(port, bool) and 1 <= port <= 65535


def parse_port(value, what: str = "Port") -> int:
    """
    Parse a port from raw input.

    Accepts ints or decimal strings with surrounding whitespace.
    Raises InputError(INVALID_PORT) otherwise.
    """
    if isinstance(value, bool):
        raise InputError(ErrorKind.INVALID_PORT, f"{what} must be a number")
    if isinstance(value, int):
        port = value
    else:
        text = str(value if value is not None else "").strip()
        if not text.isdigit():
            raise InputError(ErrorKind.INVALID_PORT, f"{what} must be a number (got {value!r})")
        port = int(text)

    if not is_valid_port(port):
        raise InputError(ErrorKind.INVALID_PORT, f"{what} must be between 1 and 65535 (got {port})")
    return port


def validate_ip(ip: str) -> bool:
    """Validate IP address format (IPv4 or IPv6)"""
    try:
        ipaddress.ip_address(ip)
        return True
    except ValueError:
        return False


def validate_hostname(name: str) -> bool:
    """Validate a DNS hostname"""
    if len(name) > 253:
        return False
    labels = name.rstrip(".").split(".")
    return all(_HOST_LABEL.match(label) for label in labels)


def parse_host(value) -> str:
    """
    Parse a connect host from raw input.

    Accepts IPv4/IPv6 literals (brackets optional) and hostnames.
    Raises InputError(INVALID_HOST) otherwise.
    """
    host = str(value if value is not None else "").strip()
    if not host:
        raise InputError(ErrorKind.INVALID_HOST, "Host cannot be empty")
    if any(c.isspace() or ord(c) < 32 for c in host):
        raise InputError(ErrorKind.INVALID_HOST, "Host must not contain whitespace or control characters")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    if validate_ip(host) or validate_hostname(host):
        return host

    logger.debug("Rejected host %r", host)
    raise InputError(ErrorKind.INVALID_HOST, f"Invalid host: {host}")


def sanitize_label(value) -> str:
    """Strip a relay label; control characters are not allowed in unit files"""
    label = str(value if value is not None else "").strip()
    if any(ord(c) < 32 for c in label):
        raise InputError(ErrorKind.INVALID_LABEL, "Label must not contain control characters")
    return label
