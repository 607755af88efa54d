"""RSA key material: generation, PEM files, and loading.

Private keys are written as unencrypted PKCS#8 PEM and public keys as
SubjectPublicKeyInfo PEM. Loading also accepts the PKCS#1 ``RSA PRIVATE KEY``
and ``RSA PUBLIC KEY`` forms.
"""

from __future__ import annotations

import logging
import pathlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from simplelicense.core import KeyFormatError

logger = logging.getLogger(__name__)

MIN_KEY_SIZE = 2048
DEFAULT_KEY_SIZE = 2048
PUBLIC_EXPONENT = 65537

PemInput = Union[str, bytes]


@dataclass(frozen=True)
class KeyGenerationResult:
    private_key_path: pathlib.Path
    public_key_path: pathlib.Path
    success: bool = True


def _pem_bytes(pem: PemInput) -> bytes:
    if pem is None:
        raise TypeError("PEM text must not be None")
    if isinstance(pem, str):
        pem = pem.encode("ascii", errors="strict") if pem.isascii() else b""
    if not pem.strip():
        raise KeyFormatError("PEM text is empty or not ASCII")
    return pem


def _check_size(key_size: int, min_key_size: int) -> None:
    if key_size < min_key_size:
        raise KeyFormatError(f"RSA key must be at least {min_key_size} bits, got {key_size}")


def load_private_key(pem: PemInput, *, min_key_size: int = MIN_KEY_SIZE) -> rsa.RSAPrivateKey:
    """Parse an unencrypted RSA private key from PEM text."""
    data = _pem_bytes(pem)
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyFormatError(f"invalid private key PEM: {exc}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyFormatError(f"expected an RSA private key, got {type(key).__name__}")
    _check_size(key.key_size, min_key_size)
    return key


def load_public_key(pem: PemInput, *, min_key_size: int = MIN_KEY_SIZE) -> rsa.RSAPublicKey:
    """Parse an RSA public key from PEM text."""
    data = _pem_bytes(pem)
    try:
        key = serialization.load_pem_public_key(data)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyFormatError(f"invalid public key PEM: {exc}") from exc
    if not isinstance(key, rsa.RSAPublicKey):
        raise KeyFormatError(f"expected an RSA public key, got {type(key).__name__}")
    _check_size(key.key_size, min_key_size)
    return key


def private_key_pem(key: rsa.RSAPrivateKey) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def public_key_pem(key: Union[rsa.RSAPrivateKey, rsa.RSAPublicKey]) -> str:
    if isinstance(key, rsa.RSAPrivateKey):
        key = key.public_key()
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def generate_key_pair(key_size: int = DEFAULT_KEY_SIZE) -> Tuple[str, str]:
    """Generate a new RSA key pair.

    Returns:
      (private_key_pem, public_key_pem)
    """
    _check_size(key_size, MIN_KEY_SIZE)
    priv = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=key_size)
    return private_key_pem(priv), public_key_pem(priv)


def default_key_name(key_size: int, when: Optional[datetime] = None) -> str:
    when = when or datetime.now(timezone.utc)
    return f"key_{key_size}bit_{when:%Y%m%d}"


def write_key_files(
    directory: Union[str, pathlib.Path],
    key_name: Optional[str] = None,
    key_size: int = DEFAULT_KEY_SIZE,
) -> KeyGenerationResult:
    """Generate a key pair and write ``<name>_private.pem`` / ``<name>_public.pem``."""
    out_dir = pathlib.Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    name = (key_name or "").strip() or default_key_name(key_size)

    priv_pem, pub_pem = generate_key_pair(key_size)
    priv_path = out_dir / f"{name}_private.pem"
    pub_path = out_dir / f"{name}_public.pem"
    priv_path.write_text(priv_pem, encoding="ascii")
    pub_path.write_text(pub_pem, encoding="ascii")
    logger.info("wrote %d-bit RSA key pair %s to %s", key_size, name, out_dir)
    return KeyGenerationResult(private_key_path=priv_path, public_key_path=pub_path, success=True)
