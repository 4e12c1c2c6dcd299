"""Password hashing and compact HMAC-signed tokens."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
from typing import Any

PBKDF2_ALGORITHM = "pbkdf2_sha256"
PBKDF2_ROUNDS = 120_000

_TOKEN_HEADER = {"alg": "HS256", "typ": "JWT"}


class TokenSignatureError(ValueError):
    """Token is not three well-formed parts signed with the expected key."""


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("ascii"))


def _json_part(value: dict[str, Any]) -> str:
    return _b64url_encode(json.dumps(value, separators=(",", ":")).encode("utf-8"))


def _sign(signing_input: str, secret_key: str) -> bytes:
    return hmac.new(
        secret_key.encode("utf-8"), signing_input.encode("utf-8"), hashlib.sha256
    ).digest()


def hash_password(password: str) -> str:
    """Hash ``password`` with PBKDF2-HMAC-SHA256 and a random 16-byte salt.

    Format: ``pbkdf2_sha256$<rounds>$<salt>$<digest>`` (base64url parts).
    """
    salt = os.urandom(16)
    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ROUNDS)
    return "$".join(
        (PBKDF2_ALGORITHM, str(PBKDF2_ROUNDS), _b64url_encode(salt), _b64url_encode(derived))
    )


def verify_password(password: str, stored_hash: str) -> bool:
    """Constant-time check of ``password`` against a :func:`hash_password` value."""
    try:
        algorithm, rounds_raw, salt_b64, digest_b64 = stored_hash.split("$", 3)
        rounds = int(rounds_raw)
        salt = _b64url_decode(salt_b64)
        expected = _b64url_decode(digest_b64)
    except (ValueError, TypeError):
        return False
    if algorithm != PBKDF2_ALGORITHM:
        return False

    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(derived, expected)


def hash_token(token: str) -> str:
    """SHA-256 hex digest stored in place of a live token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def build_signed_token(payload: dict[str, Any], secret_key: str) -> str:
    """Return ``header.payload.signature`` signed with HS256."""
    signing_input = f"{_json_part(_TOKEN_HEADER)}.{_json_part(payload)}"
    return f"{signing_input}.{_b64url_encode(_sign(signing_input, secret_key))}"


def decode_signed_token(token: str, secret_key: str) -> dict[str, Any]:
    """Verify the signature and return the payload.

    Raises :class:`TokenSignatureError` on any structural or signature
    problem. Expiry is not checked; callers compare ``exp`` to their clock.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise TokenSignatureError("Malformed token")
    header_part, payload_part, signature_part = parts

    try:
        signature = _b64url_decode(signature_part)
        header = json.loads(_b64url_decode(header_part))
    except (ValueError, UnicodeDecodeError) as exc:
        raise TokenSignatureError("Malformed token") from exc
    if not isinstance(header, dict) or header.get("alg") != _TOKEN_HEADER["alg"]:
        raise TokenSignatureError("Unsupported token algorithm")

    expected = _sign(f"{header_part}.{payload_part}", secret_key)
    if not hmac.compare_digest(expected, signature):
        raise TokenSignatureError("Invalid token signature")

    try:
        payload = json.loads(_b64url_decode(payload_part))
    except (ValueError, UnicodeDecodeError) as exc:
        raise TokenSignatureError("Invalid token payload") from exc
    if not isinstance(payload, dict):
        raise TokenSignatureError("Invalid token payload")
    return payload
