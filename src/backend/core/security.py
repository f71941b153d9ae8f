"""Security utilities: token validation, ballot hashing and receipt ids.

Voter identity arrives as a JWT issued by the external auth service. This
module only validates those tokens.
"""

import hashlib
import json
import secrets
from datetime import datetime, timezone
from typing import Any, Iterable

from jose import JWTError, jwt

from core.config import settings

# Token issuer and audience for validation
TOKEN_ISSUER = "sealedballot-auth"
TOKEN_AUDIENCE = "sealedballot-api"


def decode_token(token: str, expected_type: str | None = "access") -> dict[str, Any] | None:
    """
    Decode and validate a JWT token.

    Returns:
        The decoded payload or None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=TOKEN_ISSUER,
            audience=TOKEN_AUDIENCE,
        )
    except JWTError:
        return None
    if expected_type and payload.get("type") != expected_type:
        return None
    return payload


def canonical_options(selected_options: Iterable[int]) -> list[int]:
    """Distinct option ids in ascending numeric order."""
    return sorted({int(option_id) for option_id in selected_options})


def canonical_ballot_payload(
    poll_id: int,
    voter_id: int,
    selected_options: Iterable[int],
    timestamp: str,
) -> str:
    """
    Canonical JSON serialization of a ballot.

    Sorted keys, compact separators and ascending option ids, so the same
    logical vote always serializes to the same bytes regardless of the
    order in which the client listed its options.
    """
    return json.dumps(
        {
            "poll_id": int(poll_id),
            "voter_id": int(voter_id),
            "selected_options": canonical_options(selected_options),
            "timestamp": timestamp,
        },
        sort_keys=True,
        separators=(",", ":"),
    )


def format_ballot_timestamp(value: datetime) -> str:
    """
    The cast time as it is sealed into the payload and hashed.

    Receipts carry this exact string so a voter can recompute the hash.
    Naive values (as returned by SQLite) are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def compute_ballot_hash(
    poll_id: int,
    voter_id: int,
    selected_options: Iterable[int],
    timestamp: str,
) -> str:
    """
    SHA-256 integrity hash of a ballot.

    Deterministic and keyless: anyone holding the claimed ballot content can
    recompute it and compare against the hash printed on the receipt.
    """
    payload = canonical_ballot_payload(poll_id, voter_id, selected_options, timestamp)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def generate_receipt_id(nbytes: int | None = None) -> str:
    """Generate a fixed-length, URL-safe, unguessable receipt id."""
    return secrets.token_urlsafe(nbytes or settings.RECEIPT_TOKEN_BYTES)
