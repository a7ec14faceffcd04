"""
Subprocess timeouts for relayfleet.

Every external command (systemctl, journalctl, package managers) runs with
one of these timeouts instead of a hard-coded value.
"""

# Timeout constants (in seconds)

# Short operations (< 5 seconds)
TIMEOUT_QUICK = 5
"""Quick operations: state queries, version checks."""

# Standard operations (< 30 seconds)
TIMEOUT_STANDARD = 30
"""Standard operations: start/stop/enable units, daemon-reload."""

# Long operations (< 60 seconds)
TIMEOUT_LONG = 60
"""Long operations: restarting units with slow shutdown."""

# Extended operations (< 600 seconds)
TIMEOUT_EXTENDED = 600
"""Extended operations: package index refresh and installation."""


# Operation-specific timeouts
TIMEOUTS = {
    # systemd operations
    "systemctl": TIMEOUT_STANDARD,
    "systemctl_query": TIMEOUT_QUICK,
    "systemctl_restart": TIMEOUT_LONG,
    "journalctl": TIMEOUT_STANDARD,
    # Package operations
    "package_install": TIMEOUT_EXTENDED,
    # Process termination grace period
    "listener_terminate": TIMEOUT_QUICK,
}


def get_timeout(operation: str, default: int = TIMEOUT_STANDARD) -> int:
    """
    Get the recommended timeout for a specific operation.

    Examples:
        >>> get_timeout("systemctl_query")
        5
        >>> get_timeout("package_install")
        600
        >>> get_timeout("unknown_operation")
        30
    """
    return TIMEOUTS.get(operation, default)
