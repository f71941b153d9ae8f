"""
Ballot encryption at rest.

Every accepted ballot is sealed with AES-256-GCM before it reaches the
ballot store. The key is process-wide, loaded once at startup and never
mutated afterwards.

Stored format:
    enc:v1:<base64(nonce || ciphertext || tag)>

The nonce is 12 random bytes per call, so encrypting the same ballot twice
never yields the same bundle. Callers pass associated data that binds a
bundle to its (poll, voter) row; a bundle copied onto another row fails
authentication.
"""

import base64
import binascii
import secrets
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Optional

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.config import settings

logger = structlog.get_logger(__name__)

KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16


class CipherFailure(str, Enum):
    """Why a cipher operation failed."""

    KEY_UNAVAILABLE = "key_unavailable"
    AUTHENTICATION_FAILED = "authentication_failed"
    MALFORMED_INPUT = "malformed_input"


class CipherError(Exception):
    """Raised when ballot encryption/decryption fails."""

    def __init__(self, kind: CipherFailure, message: str):
        self.kind = kind
        super().__init__(message)


@dataclass(frozen=True)
class CiphertextBundle:
    """Nonce, ciphertext and authentication tag of one sealed ballot."""

    nonce: bytes
    ciphertext: bytes
    tag: bytes

    PREFIX = "enc:v1:"

    def serialize(self) -> str:
        raw = self.nonce + self.ciphertext + self.tag
        return f"{self.PREFIX}{base64.b64encode(raw).decode('ascii')}"

    @classmethod
    def parse(cls, value: str) -> "CiphertextBundle":
        """Parse a stored bundle, raising CipherError(MALFORMED_INPUT) on bad input."""
        if not isinstance(value, str) or not value.startswith(cls.PREFIX):
            raise CipherError(CipherFailure.MALFORMED_INPUT, "Unrecognised ciphertext bundle")
        try:
            raw = base64.b64decode(value[len(cls.PREFIX) :], validate=True)
        except (binascii.Error, ValueError) as e:
            raise CipherError(CipherFailure.MALFORMED_INPUT, "Ciphertext bundle is not valid base64") from e
        if len(raw) < NONCE_BYTES + TAG_BYTES:
            raise CipherError(CipherFailure.MALFORMED_INPUT, "Ciphertext bundle is truncated")
        return cls(
            nonce=raw[:NONCE_BYTES],
            ciphertext=raw[NONCE_BYTES:-TAG_BYTES],
            tag=raw[-TAG_BYTES:],
        )


def decode_key(key_str: Optional[str]) -> bytes:
    """Decode a base64 key string, raising CipherError(KEY_UNAVAILABLE) if unusable."""
    if not key_str:
        raise CipherError(CipherFailure.KEY_UNAVAILABLE, "BALLOT_ENCRYPTION_KEY is not configured")
    try:
        key = base64.b64decode(key_str, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CipherError(CipherFailure.KEY_UNAVAILABLE, "BALLOT_ENCRYPTION_KEY is not valid base64") from e
    if len(key) != KEY_BYTES:
        raise CipherError(
            CipherFailure.KEY_UNAVAILABLE,
            f"BALLOT_ENCRYPTION_KEY must decode to {KEY_BYTES} bytes, got {len(key)}",
        )
    return key


class BallotCipher:
    """
    AES-256-GCM encryption for ballot payloads.

    Args:
        encryption_key: 32-byte AES key. If None, loads BALLOT_ENCRYPTION_KEY
            from settings.
    """

    def __init__(self, encryption_key: Optional[bytes] = None):
        key = encryption_key if encryption_key is not None else decode_key(settings.BALLOT_ENCRYPTION_KEY)
        if len(key) != KEY_BYTES:
            raise CipherError(
                CipherFailure.KEY_UNAVAILABLE,
                f"Ballot key must be {KEY_BYTES} bytes, got {len(key)}",
            )
        self._aesgcm = AESGCM(key)
        logger.info("ballot_cipher_initialized", algorithm="AES-256-GCM")

    def encrypt(self, plaintext: str, associated_data: Optional[bytes] = None) -> CiphertextBundle:
        """Seal a plaintext payload under a fresh random nonce."""
        nonce = secrets.token_bytes(NONCE_BYTES)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), associated_data)
        return CiphertextBundle(nonce=nonce, ciphertext=sealed[:-TAG_BYTES], tag=sealed[-TAG_BYTES:])

    def decrypt(self, bundle: CiphertextBundle | str, associated_data: Optional[bytes] = None) -> str:
        """
        Open a sealed payload.

        Raises:
            CipherError: AUTHENTICATION_FAILED if the tag check fails,
                MALFORMED_INPUT if the bundle cannot be parsed.
        """
        if isinstance(bundle, str):
            bundle = CiphertextBundle.parse(bundle)
        if len(bundle.nonce) != NONCE_BYTES or len(bundle.tag) != TAG_BYTES:
            raise CipherError(CipherFailure.MALFORMED_INPUT, "Ciphertext bundle has invalid nonce or tag length")

        try:
            plaintext = self._aesgcm.decrypt(bundle.nonce, bundle.ciphertext + bundle.tag, associated_data)
        except InvalidTag as e:
            raise CipherError(CipherFailure.AUTHENTICATION_FAILED, "Ballot authentication failed") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CipherError(CipherFailure.MALFORMED_INPUT, "Ballot payload is not UTF-8") from e


@lru_cache()
def get_ballot_cipher() -> BallotCipher:
    """Get the process-wide BallotCipher instance."""
    return BallotCipher()


def generate_encryption_key() -> str:
    """
    Generate a new base64-encoded 256-bit encryption key.

    Use this to generate a new key for BALLOT_ENCRYPTION_KEY.
    """
    return base64.b64encode(secrets.token_bytes(KEY_BYTES)).decode("ascii")
