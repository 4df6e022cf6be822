"""Ed25519 request signatures over a canonical JSON envelope."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from ..transport.canonical_json import canonical_dumps, canonical_loads


class SignatureError(ValueError):
    """Raised when a request signature is invalid or malformed."""


def request_envelope(
    *,
    actor_id: str,
    method: str,
    path: str,
    timestamp: str,
    nonce: str,
    body: bytes | str | None,
) -> dict[str, Any]:
    """Build the document a client signs: request line, freshness fields and parsed body."""
    parsed: Any = None
    if body:
        try:
            parsed = canonical_loads(body)
        except ValueError as exc:
            raise SignatureError("signed body must be JSON") from exc
    return {
        "actor_id": actor_id,
        "method": method.upper(),
        "path": path,
        "timestamp": timestamp,
        "nonce": nonce,
        "body": parsed,
    }


def load_public_key(pem: str) -> Ed25519PublicKey:
    if not pem:
        raise SignatureError("public key missing")
    try:
        key = serialization.load_pem_public_key(pem.encode("utf-8"))
    except ValueError as exc:
        raise SignatureError("public key is not valid PEM") from exc
    if not isinstance(key, Ed25519PublicKey):
        raise SignatureError("public key must be Ed25519")
    return key


def load_private_key(pem: str) -> Ed25519PrivateKey:
    if not pem:
        raise SignatureError("private key missing")
    key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    if not isinstance(key, Ed25519PrivateKey):
        raise SignatureError("private key must be Ed25519")
    return key


def verify_signature(payload: Any, signature_b64: str, public_key_pem: str) -> None:
    """Validate an ed25519 signature over the canonical JSON payload."""
    if not signature_b64:
        raise SignatureError("signature missing")
    public_key = load_public_key(public_key_pem)
    try:
        signature = base64.b64decode(signature_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SignatureError("signature is not base64") from exc
    try:
        public_key.verify(signature, canonical_dumps(payload))
    except InvalidSignature as exc:
        raise SignatureError("signature verification failed") from exc


def sign_payload(payload: Any, private_key_pem: str) -> str:
    private_key = load_private_key(private_key_pem)
    signature = private_key.sign(canonical_dumps(payload))
    return base64.b64encode(signature).decode("utf-8")
