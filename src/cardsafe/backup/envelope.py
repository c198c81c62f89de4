"""
Password-based envelope encryption for backup files.

A backup file is one line of base64 text encoding the concatenation

    salt (64 bytes) || iv (16 bytes) || tag (16 bytes) || ciphertext

There is no header, magic number or length field; segment boundaries are
implied by the fixed prefix lengths. The ciphertext is AES-256-GCM over the
UTF-8 JSON payload, keyed by PBKDF2-HMAC-SHA512 (100,000 iterations) of the
backup password and the salt. A fresh salt and IV are drawn for every
encryption, so the same payload and password never produce the same file.

Decryption failures are reported with one generic message whether the
password was wrong or the file was damaged, so the error gives an attacker
guessing passwords nothing to distinguish.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from cardsafe.backup.errors import CorruptEnvelopeError, DecryptionError, EncryptionError

logger = logging.getLogger(__name__)

# Envelope layout and key derivation parameters. Changing any of these
# breaks compatibility with existing backup files.
KEY_LENGTH = 32  # 256 bits
IV_LENGTH = 16  # 128 bits
SALT_LENGTH = 64
TAG_LENGTH = 16
KDF_ITERATIONS = 100_000
HEADER_LENGTH = SALT_LENGTH + IV_LENGTH + TAG_LENGTH


@dataclass(frozen=True)
class Envelope:
    """The four segments of an encrypted backup."""

    salt: bytes
    iv: bytes
    tag: bytes
    ciphertext: bytes

    def to_bytes(self) -> bytes:
        """Concatenate the segments in on-disk order."""
        return self.salt + self.iv + self.tag + self.ciphertext

    def encode(self) -> str:
        """Encode as base64 text for file storage."""
        return base64.b64encode(self.to_bytes()).decode("ascii")

    @classmethod
    def from_bytes(cls, raw: bytes) -> Envelope:
        """
        Split raw envelope bytes at the fixed offsets.

        Raises:
            CorruptEnvelopeError: If the data is shorter than the prefix.
        """
        if len(raw) < HEADER_LENGTH:
            raise CorruptEnvelopeError()
        return cls(
            salt=raw[:SALT_LENGTH],
            iv=raw[SALT_LENGTH : SALT_LENGTH + IV_LENGTH],
            tag=raw[SALT_LENGTH + IV_LENGTH : HEADER_LENGTH],
            ciphertext=raw[HEADER_LENGTH:],
        )

    @classmethod
    def decode(cls, text: str) -> Envelope:
        """
        Parse base64 envelope text.

        Line breaks and other whitespace inside the text are ignored.

        Raises:
            CorruptEnvelopeError: If the text is not valid base64 or too short.
        """
        try:
            raw = base64.b64decode("".join(text.split()), validate=True)
        except (binascii.Error, ValueError) as e:
            raise CorruptEnvelopeError() from e
        return cls.from_bytes(raw)


def split_envelope(raw: bytes) -> Envelope:
    """Split decoded envelope bytes into salt, iv, tag and ciphertext."""
    return Envelope.from_bytes(raw)


def derive_key(password: str, salt: bytes) -> bytes:
    """
    Derive a 256-bit key from a password and salt.

    Deterministic: the same password and salt always give the same key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt_payload(payload: Any, password: str) -> str:
    """
    Encrypt a JSON-serializable payload under a password.

    Args:
        payload: Object to serialize as JSON.
        password: Backup password.

    Returns:
        Base64 envelope text.

    Raises:
        EncryptionError: If serialization or encryption fails.
    """
    try:
        plaintext = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode(
            "utf-8"
        )
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        key = derive_key(password, salt)
        sealed = AESGCM(key).encrypt(iv, plaintext, None)
    except (TypeError, ValueError, AttributeError) as e:
        logger.error(f"Encryption error: {type(e).__name__}: {e}")
        raise EncryptionError() from e

    # AESGCM appends the tag; the file format stores it before the ciphertext
    envelope = Envelope(
        salt=salt,
        iv=iv,
        tag=sealed[-TAG_LENGTH:],
        ciphertext=sealed[:-TAG_LENGTH],
    )
    return envelope.encode()


def decrypt_payload(text: str, password: str) -> Any:
    """
    Decrypt and parse envelope text.

    Args:
        text: Base64 envelope text as read from a backup file.
        password: Backup password.

    Returns:
        The decoded JSON payload.

    Raises:
        DecryptionError: Wrong password, tampering, or unparseable content.
        CorruptEnvelopeError: Envelope not decodable or too short (a
            DecryptionError with the same message).
    """
    envelope = Envelope.decode(text)

    try:
        key = derive_key(password, envelope.salt)
        plaintext = AESGCM(key).decrypt(envelope.iv, envelope.ciphertext + envelope.tag, None)
        return json.loads(plaintext.decode("utf-8"))
    except (InvalidTag, UnicodeDecodeError, ValueError, AttributeError) as e:
        logger.warning(f"Backup decryption failed ({type(e).__name__})")
        raise DecryptionError() from e
