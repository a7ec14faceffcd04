"""Certificate material for the TLS overlay

This module provides:
- Idempotent self-signed key/certificate generation (never regenerates)
- Permission checks for the private key (0600 on Unix)
- Certificate expiration warnings (30-day threshold)
"""

import datetime as dt
import logging
import os
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from .errors import ToolError

logger = logging.getLogger("relayfleet.certificates")

KEY_FILENAME = "key.pem"
CERT_FILENAME = "cert.pem"


@dataclass(frozen=True)
class CertificateMaterial:
    """A private key and self-signed certificate at fixed paths."""

    cert_path: Path
    key_path: Path

    @classmethod
    def in_dir(cls, cert_dir: Path) -> "CertificateMaterial":
        return cls(cert_path=Path(cert_dir) / CERT_FILENAME, key_path=Path(cert_dir) / KEY_FILENAME)

    def exists(self) -> bool:
        return self.cert_path.exists() and self.key_path.exists()


def _build_self_signed(common_name: str, days: int) -> tuple[bytes, bytes]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - dt.timedelta(minutes=5))
        .not_valid_after(now + dt.timedelta(days=days))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    return key_pem, cert_pem


def ensure_certificate(cert_dir: Path, common_name: str = "relayfleet", days: int = 3650) -> tuple[CertificateMaterial, bool]:
    """Ensure a key/certificate pair exists in cert_dir

    Existing material is reused untouched. On any write failure both files
    are removed so a later call starts clean.

    Returns:
        Tuple of (material, created)
    """
    material = CertificateMaterial.in_dir(cert_dir)
    if material.exists():
        logger.debug("Reusing certificate material in %s", cert_dir)
        return material, False

    try:
        material.key_path.parent.mkdir(parents=True, exist_ok=True)
        key_pem, cert_pem = _build_self_signed(common_name, days)
        material.key_path.write_bytes(key_pem)
        set_secure_key_permissions(material.key_path)
        material.cert_path.write_bytes(cert_pem)
        if os.name != "nt":
            material.cert_path.chmod(0o644)
    except (OSError, ValueError) as e:
        material.key_path.unlink(missing_ok=True)
        material.cert_path.unlink(missing_ok=True)
        raise ToolError(f"Failed to generate certificate in {cert_dir}", str(e)) from e

    logger.info("Generated self-signed certificate for %s in %s", common_name, cert_dir)
    return material, True


def check_key_permissions(key_path: Path) -> tuple[bool, str]:
    """Check if private key has secure permissions (0600 on Unix)

    Args:
        key_path: Path to private key file

    Returns:
        Tuple of (is_secure, error_message)
    """
    if not key_path.exists():
        return False, f"Key file does not exist: {key_path}"

    if os.name == "nt":
        return True, ""

    try:
        mode = key_path.stat().st_mode

        if mode & (stat.S_IROTH | stat.S_IWOTH):
            return False, f"Private key {key_path} is world-readable/writable (permissions: {oct(stat.S_IMODE(mode))})"

        if mode & (stat.S_IRGRP | stat.S_IWGRP):
            logger.warning(
                "Private key %s is group-readable/writable (permissions: %s). Consider setting to 0600.",
                key_path,
                oct(stat.S_IMODE(mode)),
            )

        return True, ""

    except OSError as e:
        return False, f"Cannot check permissions for {key_path}: {e}"


def set_secure_key_permissions(key_path: Path) -> tuple[bool, str]:
    """Set secure permissions (0600) on private key file (Unix only)"""
    if not key_path.exists():
        return False, f"Key file does not exist: {key_path}"

    if os.name == "nt":
        return True, "Windows uses NTFS ACLs (skipping chmod)"

    try:
        key_path.chmod(0o600)
        return True, ""
    except OSError as e:
        return False, f"Cannot set permissions on {key_path}: {e}"


def check_certificate_expiration(cert_path: Path, warning_days: int = 30) -> tuple[bool, datetime | None, str]:
    """Check if certificate is expiring soon

    Returns:
        Tuple of (is_expiring_soon, expiration_date, message)
    """
    if not cert_path.exists():
        return False, None, f"Certificate file does not exist: {cert_path}"

    try:
        cert = x509.load_pem_x509_certificate(cert_path.read_bytes())
    except (OSError, ValueError) as e:
        logger.debug("Certificate expiration check failed for %s: %s", cert_path, e)
        return False, None, f"Cannot check expiration for {cert_path.name}: {e}"

    expiration_date = cert.not_valid_after_utc
    days_until_expiry = (expiration_date - datetime.now(timezone.utc)).days
    when = expiration_date.strftime("%Y-%m-%d")

    if days_until_expiry < 0:
        return True, expiration_date, f"Certificate {cert_path.name} EXPIRED on {when}"
    if days_until_expiry <= warning_days:
        return True, expiration_date, f"Certificate {cert_path.name} expires in {days_until_expiry} days ({when})"
    return (
        False,
        expiration_date,
        f"Certificate {cert_path.name} valid until {when} ({days_until_expiry} days remaining)",
    )
