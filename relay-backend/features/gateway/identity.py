"""Ed25519 device identity for OpenClaw gateway authentication.

This module handles identity generation, persistence, and loading:
- Ed25519 keypair generation
- Device ID computation (SHA256 hex of the raw public key)
- JSON persistence with PKCS8 PEM private key and 0600 permissions
- Silent regeneration of records that fail validation
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("id", "publicKey", "privateKeyPem")


def b64url_encode(data: bytes) -> str:
    """Base64url without padding, as used on the wire."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def compute_device_id(public_key: bytes) -> str:
    """Return the hex SHA256 of a raw public key (64 hex characters)."""
    return hashlib.sha256(public_key).hexdigest()


@dataclass(frozen=True)
class DeviceIdentity:
    """Persistent keypair plus the identifier derived from its public key."""

    id: str
    public_key: bytes
    private_key: Ed25519PrivateKey

    @property
    def public_key_b64url(self) -> str:
        return b64url_encode(self.public_key)

    def private_key_pem(self) -> str:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")

    def private_key_seed(self) -> bytes:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def to_record(self) -> dict[str, str]:
        """Return the JSON record persisted on disk."""
        return {
            "id": self.id,
            "publicKey": self.public_key_b64url,
            "privateKeyPem": self.private_key_pem(),
            "privateKeySeed": b64url_encode(self.private_key_seed()),
        }


def _raw_public_key(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def generate_identity() -> DeviceIdentity:
    """Create a fresh, unpersisted identity."""
    private_key = Ed25519PrivateKey.generate()
    public_key = _raw_public_key(private_key)
    return DeviceIdentity(id=compute_device_id(public_key), public_key=public_key, private_key=private_key)


def identity_from_record(record: Any) -> DeviceIdentity:
    """Rebuild an identity from a persisted record.

    Raises:
        ValueError: If the record is structurally invalid or inconsistent
    """
    if not isinstance(record, dict):
        raise ValueError("device record is not an object")
    missing = [name for name in _REQUIRED_FIELDS if not isinstance(record.get(name), str) or not record.get(name)]
    if missing:
        raise ValueError(f"device record missing fields: {', '.join(missing)}")

    private_key = serialization.load_pem_private_key(record["privateKeyPem"].encode("ascii"), password=None)
    if not isinstance(private_key, Ed25519PrivateKey):
        raise ValueError("device private key is not Ed25519")

    public_key = _raw_public_key(private_key)
    if b64url_decode(record["publicKey"]) != public_key:
        raise ValueError("device public key does not match private key")

    computed_id = compute_device_id(public_key)
    if computed_id != record["id"]:
        raise ValueError(f"device id mismatch: stored={record['id'][:16]}, computed={computed_id[:16]}")

    return DeviceIdentity(id=computed_id, public_key=public_key, private_key=private_key)


def _persist(identity: DeviceIdentity, path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(identity.to_record(), indent=2), encoding="utf-8")
        path.chmod(0o600)
    except OSError as exc:
        logger.warning("Failed to write device file %s: %s", path, exc)


def load_or_create(path: Union[str, Path]) -> DeviceIdentity:
    """Load the persisted identity at ``path`` or create and persist a new one.

    A missing file is not an error. An unreadable or inconsistent record is
    replaced by a freshly generated identity; it is never repaired in place.
    A write failure only loses persistence: the returned identity is still
    valid for the current process.
    """
    device_path = Path(path)
    existing: Optional[DeviceIdentity] = None

    if device_path.exists():
        try:
            record = json.loads(device_path.read_text(encoding="utf-8"))
            existing = identity_from_record(record)
        except (OSError, ValueError, TypeError, UnsupportedAlgorithm) as exc:
            logger.warning("Invalid device file %s, regenerating: %s", device_path, exc)

    if existing is not None:
        logger.info("Loaded device identity %s...", existing.id[:16])
        return existing

    identity = generate_identity()
    _persist(identity, device_path)
    logger.info("Generated new device identity %s... at %s", identity.id[:16], device_path)
    return identity


__all__ = [
    "DeviceIdentity",
    "b64url_decode",
    "b64url_encode",
    "compute_device_id",
    "generate_identity",
    "identity_from_record",
    "load_or_create",
]
