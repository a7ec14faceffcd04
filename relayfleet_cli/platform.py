"""Platform detection"""

import os


def is_admin() -> bool:
    """Check if running with root privileges"""
    return os.geteuid() == 0 if hasattr(os, "geteuid") else False
