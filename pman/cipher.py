"""
AES-256-GCM encryption for stored secret values.

Envelope format (URL-safe base64 text, fits a TEXT column):

    [nonce 12B][ciphertext][GCM tag 16B]

The AES key is derived once from the configured key material with
HKDF-SHA256. A fresh random nonce is drawn for every encryption, so the
same plaintext never produces the same envelope twice.

Security Note:
    Never log plaintext or envelope values.
"""
import base64
import binascii
import os
import secrets
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from core.errors import DecryptionFailedError, EnvelopeMalformedError

logger = logging.getLogger(__name__)

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256
MIN_ENVELOPE_SIZE = NONCE_SIZE + TAG_SIZE

_KDF_CONTEXT = b"pman-secret-cipher-v1"


def derive_key(key_material: bytes) -> bytes:
    """Derive the 32-byte AES key from operator-supplied key material."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,  # deterministic: the same key material must always yield the same key
        info=_KDF_CONTEXT,
    )
    return hkdf.derive(key_material)


def generate_key() -> str:
    """Generate random key material for PMAN_ENCRYPTION_KEY (base64 text)."""
    return base64.b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")


class SecretCipher:
    """Authenticated encryption of secret values with one process-wide key.

    Holds no per-call state; one instance can be shared by every thread.
    """

    def __init__(self, key: str | bytes):
        if isinstance(key, str):
            key = key.encode("utf-8")
        if not key:
            raise ValueError("Encryption key material must not be empty")
        self._aead = AESGCM(derive_key(key))

    def __repr__(self) -> str:
        return "<SecretCipher AES-256-GCM>"

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret value and return its printable envelope."""
        nonce = os.urandom(NONCE_SIZE)
        ct = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.urlsafe_b64encode(nonce + ct).decode("ascii")

    def decrypt(self, envelope: str) -> str:
        """Decrypt an envelope produced by ``encrypt``.

        Raises:
            EnvelopeMalformedError: Not base64, or shorter than nonce + tag
            DecryptionFailedError: Wrong key or tampered data
        """
        try:
            raw = base64.urlsafe_b64decode(envelope.encode("ascii"))
        except (binascii.Error, ValueError, UnicodeEncodeError) as e:
            raise EnvelopeMalformedError("Envelope is not valid base64") from e

        if len(raw) < MIN_ENVELOPE_SIZE:
            raise EnvelopeMalformedError(
                f"Envelope too short: {len(raw)} bytes (minimum {MIN_ENVELOPE_SIZE})"
            )

        nonce, ct = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            plaintext = self._aead.decrypt(nonce, ct, None)
        except InvalidTag as e:
            raise DecryptionFailedError("Envelope failed authentication") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EnvelopeMalformedError("Decrypted value is not valid UTF-8") from e
