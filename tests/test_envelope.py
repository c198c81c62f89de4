"""
Tests for the backup envelope codec.

Tests cover:
- Key derivation determinism
- Encrypt/decrypt round trip
- Wrong password and tamper rejection
- Envelope framing and malformed input
"""

import base64
import unittest

from cardsafe.backup.envelope import (
    HEADER_LENGTH,
    IV_LENGTH,
    KEY_LENGTH,
    SALT_LENGTH,
    TAG_LENGTH,
    Envelope,
    decrypt_payload,
    derive_key,
    encrypt_payload,
    split_envelope,
)
from cardsafe.backup.errors import (
    DECRYPT_FAILED_MESSAGE,
    BackupError,
    CorruptEnvelopeError,
    DecryptionError,
    EncryptionError,
)

SAMPLE_PAYLOAD = {
    "version": "1.0.0",
    "timestamp": "2026-10-18T12:34:56.789Z",
    "data": {
        "users": [{"id": 1, "photo": "p.png", "additionalData": {"Name": "Zoë"}}],
        "templates": [],
        "credentials": [],
        "fields": [],
    },
}


def _flip_byte(text: str, index: int) -> str:
    raw = bytearray(base64.b64decode(text))
    raw[index] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


class TestDeriveKey(unittest.TestCase):
    """Tests for password key derivation."""

    def test_deterministic(self):
        """Same password and salt give the same key."""
        salt = b"s" * SALT_LENGTH
        self.assertEqual(derive_key("pw", salt), derive_key("pw", salt))

    def test_key_length(self):
        self.assertEqual(len(derive_key("pw", b"s" * SALT_LENGTH)), KEY_LENGTH)

    def test_salt_changes_key(self):
        self.assertNotEqual(
            derive_key("pw", b"a" * SALT_LENGTH),
            derive_key("pw", b"b" * SALT_LENGTH),
        )


class TestEncryptDecrypt(unittest.TestCase):
    """Tests for payload encryption and decryption."""

    def test_round_trip(self):
        """Decrypting with the same password returns the original payload."""
        text = encrypt_payload(SAMPLE_PAYLOAD, "Secr3t!")
        self.assertEqual(decrypt_payload(text, "Secr3t!"), SAMPLE_PAYLOAD)

    def test_output_is_base64_with_header(self):
        text = encrypt_payload(SAMPLE_PAYLOAD, "Secr3t!")
        raw = base64.b64decode(text, validate=True)
        self.assertGreater(len(raw), HEADER_LENGTH)

    def test_fresh_salt_and_iv_each_time(self):
        """Two encryptions of the same payload differ in salt, IV and output."""
        first = Envelope.decode(encrypt_payload(SAMPLE_PAYLOAD, "pw"))
        second = Envelope.decode(encrypt_payload(SAMPLE_PAYLOAD, "pw"))

        self.assertNotEqual(first.salt, second.salt)
        self.assertNotEqual(first.iv, second.iv)
        self.assertNotEqual(first.encode(), second.encode())

    def test_wrong_password(self):
        text = encrypt_payload(SAMPLE_PAYLOAD, "right")

        with self.assertRaises(DecryptionError) as ctx:
            decrypt_payload(text, "wrong")

        self.assertEqual(str(ctx.exception), DECRYPT_FAILED_MESSAGE)

    def test_tampered_ciphertext(self):
        text = encrypt_payload(SAMPLE_PAYLOAD, "pw")
        ciphertext_length = len(base64.b64decode(text)) - HEADER_LENGTH
        offsets = [0, ciphertext_length // 2, ciphertext_length - 1]

        for offset in offsets:
            with self.subTest(offset=offset):
                with self.assertRaises(DecryptionError) as ctx:
                    decrypt_payload(_flip_byte(text, HEADER_LENGTH + offset), "pw")
                self.assertEqual(str(ctx.exception), DECRYPT_FAILED_MESSAGE)

    def test_tampered_tag(self):
        text = encrypt_payload(SAMPLE_PAYLOAD, "pw")
        tag_offset = SALT_LENGTH + IV_LENGTH

        for index in range(tag_offset, tag_offset + TAG_LENGTH):
            with self.subTest(index=index):
                with self.assertRaises(DecryptionError):
                    decrypt_payload(_flip_byte(text, index), "pw")

    def test_tampered_salt_and_iv(self):
        text = encrypt_payload(SAMPLE_PAYLOAD, "pw")

        for index in (0, SALT_LENGTH - 1, SALT_LENGTH, SALT_LENGTH + IV_LENGTH - 1):
            with self.subTest(index=index):
                with self.assertRaises(DecryptionError):
                    decrypt_payload(_flip_byte(text, index), "pw")

    def test_truncated_envelope(self):
        """Data shorter than the fixed prefix is a corrupt envelope."""
        text = base64.b64encode(b"x" * (HEADER_LENGTH - 1)).decode("ascii")

        with self.assertRaises(CorruptEnvelopeError) as ctx:
            decrypt_payload(text, "pw")

        self.assertEqual(str(ctx.exception), DECRYPT_FAILED_MESSAGE)

    def test_invalid_base64(self):
        with self.assertRaises(DecryptionError) as ctx:
            decrypt_payload("not base64 at all!!", "pw")

        self.assertEqual(str(ctx.exception), DECRYPT_FAILED_MESSAGE)

    def test_surrounding_whitespace_ignored(self):
        text = encrypt_payload(SAMPLE_PAYLOAD, "pw")
        self.assertEqual(decrypt_payload(f"\n{text}\n", "pw"), SAMPLE_PAYLOAD)

    def test_line_wrapped_envelope(self):
        """Envelopes re-wrapped at 76 columns by mail clients still decrypt."""
        text = encrypt_payload(SAMPLE_PAYLOAD, "pw")
        wrapped = "\r\n".join(text[i : i + 76] for i in range(0, len(text), 76))

        self.assertIn("\n", wrapped)
        self.assertEqual(decrypt_payload(wrapped, "pw"), SAMPLE_PAYLOAD)

    def test_unserializable_payload(self):
        with self.assertRaises(EncryptionError) as ctx:
            encrypt_payload({"bad": object()}, "pw")

        self.assertEqual(str(ctx.exception), "Failed to encrypt backup")
        self.assertIsInstance(ctx.exception, BackupError)


class TestEnvelopeFraming(unittest.TestCase):
    """Tests for the fixed-offset envelope layout."""

    def test_split_offsets(self):
        salt = bytes(range(SALT_LENGTH))
        iv = b"i" * IV_LENGTH
        tag = b"t" * TAG_LENGTH
        raw = salt + iv + tag + b"ciphertext"

        envelope = split_envelope(raw)

        self.assertEqual(envelope.salt, salt)
        self.assertEqual(envelope.iv, iv)
        self.assertEqual(envelope.tag, tag)
        self.assertEqual(envelope.ciphertext, b"ciphertext")
        self.assertEqual(envelope.to_bytes(), raw)

    def test_empty_ciphertext_allowed(self):
        envelope = split_envelope(b"\x00" * HEADER_LENGTH)
        self.assertEqual(envelope.ciphertext, b"")

    def test_too_short(self):
        with self.assertRaises(CorruptEnvelopeError):
            split_envelope(b"\x00" * (HEADER_LENGTH - 1))


if __name__ == "__main__":
    unittest.main()
