"""
Login password hashing for cardsafe credentials.

Credentials in the record store never hold plaintext passwords. Each password
is stretched with PBKDF2-HMAC-SHA256 and stored in a self-describing string:

    pbkdf2_sha256$<iterations>$<salt, urlsafe base64>$<hash, urlsafe base64>

Because the encoded form carries its own parameters, hashes produced with an
older iteration count keep verifying after the configured count is raised,
and restored credentials can be recognized as already hashed.

Security Design:
    - Random 128-bit salt per password
    - Iteration count configurable (security.password_hash_iterations)
    - Constant-time verification through the KDF's own verify()
"""

import base64
import binascii
import re
import secrets
from typing import Any

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from cardsafe.config.settings import DEFAULT_PASSWORD_HASH_ITERATIONS

HASH_SCHEME = "pbkdf2_sha256"
SALT_LENGTH = 16
HASH_LENGTH = 32
MIN_PASSWORD_LENGTH = 8

_HASH_PATTERN = re.compile(
    rf"^{HASH_SCHEME}\$(\d+)\$([A-Za-z0-9_\-]+=*)\$([A-Za-z0-9_\-]+=*)$"
)
# Modular-crypt bcrypt hashes written by earlier releases of the card app.
_BCRYPT_PATTERN = re.compile(r"^\$2[aby]\$\d{2}\$[./A-Za-z0-9]{53}$")
_SPECIAL_CHARS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")


class PasswordHasher:
    """
    Hash and verify login passwords.

    Usage:
        hasher = PasswordHasher()
        encoded = hasher.hash("Adm1n!pass")
        hasher.verify("Adm1n!pass", encoded)  # True
    """

    def __init__(self, iterations: int = DEFAULT_PASSWORD_HASH_ITERATIONS) -> None:
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self.iterations = iterations

    def hash(self, password: str) -> str:
        """
        Hash a plaintext password.

        Raises:
            ValueError: If the password is empty or not a string.
        """
        if not password or not isinstance(password, str):
            raise ValueError("Invalid password provided")

        salt = secrets.token_bytes(SALT_LENGTH)
        digest = self._kdf(salt, self.iterations).derive(password.encode("utf-8"))
        return "$".join(
            [
                HASH_SCHEME,
                str(self.iterations),
                base64.urlsafe_b64encode(salt).decode("ascii"),
                base64.urlsafe_b64encode(digest).decode("ascii"),
            ]
        )

    def verify(self, password: str, encoded: str) -> bool:
        """Check a plaintext password against an encoded hash."""
        if not password or not isinstance(password, str):
            return False

        match = _HASH_PATTERN.match(encoded or "")
        if match is None:
            return False

        try:
            iterations = int(match.group(1))
            salt = base64.urlsafe_b64decode(match.group(2))
            expected = base64.urlsafe_b64decode(match.group(3))
            self._kdf(salt, iterations).verify(password.encode("utf-8"), expected)
        except (InvalidKey, binascii.Error, ValueError):
            return False
        return True

    @staticmethod
    def is_hashed(value: str | None) -> bool:
        """
        Whether a value is already an encoded password hash.

        Recognizes this module's PBKDF2 format and bcrypt modular-crypt
        hashes, which are stored as is.
        """
        if not value:
            return False
        return bool(_HASH_PATTERN.match(value) or _BCRYPT_PATTERN.match(value))

    @staticmethod
    def _kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
        return PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=HASH_LENGTH,
            salt=salt,
            iterations=iterations,
        )


def check_strength(password: str) -> dict[str, Any]:
    """
    Score a password against the character-class policy.

    Returns:
        Dictionary with "strength" (weak/medium/strong), per-check results,
        "score" and "max_score".
    """
    checks = {
        "length": len(password) >= MIN_PASSWORD_LENGTH,
        "upper_case": any(c.isupper() for c in password),
        "lower_case": any(c.islower() for c in password),
        "numbers": any(c.isdigit() for c in password),
        "special_char": _SPECIAL_CHARS.search(password) is not None,
    }
    score = sum(1 for passed in checks.values() if passed)

    strength = "weak"
    if score >= 4:
        strength = "strong"
    elif score >= 3:
        strength = "medium"

    return {
        "strength": strength,
        "checks": checks,
        "score": score,
        "max_score": len(checks),
    }


def validate_password(password: str) -> None:
    """
    Validate a password meets the minimum requirements.

    Raises:
        ValueError: If the password is missing, too short, or too weak.
    """
    if not password or not isinstance(password, str):
        raise ValueError("Password is required")

    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )

    if check_strength(password)["score"] < 3:
        raise ValueError(
            "Password is too weak. Include uppercase, lowercase, numbers, "
            "and special characters."
        )
