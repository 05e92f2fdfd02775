"""Challenge signing for the gateway connect handshake.

Payload format (pipe-delimited, part of the wire contract):
v2|{deviceId}|{clientId}|{clientMode}|{role}|{scopes}|{signedAtMs}|{token}|{nonce}

The Ed25519 signature is computed over the UTF-8 bytes of that string with no
pre-hashing, and transmitted as base64url without padding.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .exceptions import SigningFailure
from .identity import DeviceIdentity, b64url_encode

logger = logging.getLogger(__name__)

SIGNATURE_VERSION = "v2"
DEFAULT_CLIENT_ID = "gateway-client"
DEFAULT_CLIENT_MODE = "backend"


@dataclass(frozen=True)
class SignedChallenge:
    """Signature for one challenge nonce."""

    signature: str
    sign_string: str
    signed_at: int


def build_sign_string(
    device_id: str,
    client_id: str,
    client_mode: str,
    role: str,
    scopes: Sequence[str],
    signed_at_ms: int,
    token: Optional[str],
    nonce: str,
) -> str:
    """Return the signable string for a connect request."""
    return "|".join([
        SIGNATURE_VERSION,
        device_id,
        client_id,
        client_mode,
        role,
        ",".join(scopes),
        str(signed_at_ms),
        token or "",
        nonce,
    ])


def sign(
    identity: DeviceIdentity,
    nonce: str,
    signed_at: int,
    role: str,
    scopes: Sequence[str],
    token: Optional[str],
    *,
    client_id: str = DEFAULT_CLIENT_ID,
    client_mode: str = DEFAULT_CLIENT_MODE,
) -> SignedChallenge:
    """Sign a challenge nonce with the device key.

    Args:
        identity: Device identity holding the private key
        nonce: Challenge nonce from the gateway
        signed_at: Signing timestamp in epoch milliseconds
        role: Access role (e.g., "operator")
        scopes: Permission scopes, in the order they are requested
        token: Exact token sent in connect.params.auth.token, if any
        client_id: Gateway client id enum value
        client_mode: Gateway client mode enum value

    Returns:
        SignedChallenge with the base64url signature and the signed string

    Raises:
        SigningFailure: If the identity cannot produce a signature
    """
    sign_string = build_sign_string(
        device_id=identity.id,
        client_id=client_id,
        client_mode=client_mode,
        role=role,
        scopes=scopes,
        signed_at_ms=signed_at,
        token=token,
        nonce=nonce,
    )

    try:
        signature = identity.private_key.sign(sign_string.encode("utf-8"))
    except Exception as exc:
        raise SigningFailure(f"Device key could not sign challenge: {exc}") from exc

    logger.debug("Signed challenge for device %s...", identity.id[:16])
    return SignedChallenge(signature=b64url_encode(signature), sign_string=sign_string, signed_at=signed_at)


__all__ = ["SIGNATURE_VERSION", "SignedChallenge", "build_sign_string", "sign"]
