"""Encryption of stored OAuth credentials.

Google and Microsoft access/refresh tokens are stored with Fernet symmetric
encryption. The key is derived from SECRET_KEY and ENCRYPTION_SALT with
PBKDF2-HMAC-SHA256 (480,000 iterations, 32-byte key).

## Usage

```python
from cycle_wellness.database.encryption import encrypt_token, decrypt_token

row.access_token_encrypted = encrypt_token(tokens.access_token)
access_token = decrypt_token(row.access_token_encrypted)
```

Rotating SECRET_KEY requires re-encrypting every stored token with
`TokenCipher.reencrypt`.
"""

from __future__ import annotations

import base64
import logging

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 480_000


class TokenCipher:
    """Fernet cipher bound to one secret/salt pair."""

    def __init__(self, secret_key: str, salt: str):
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt.encode("utf-8"),
            iterations=PBKDF2_ITERATIONS,
        )
        key = base64.urlsafe_b64encode(kdf.derive(secret_key.encode("utf-8")))
        self._fernet = Fernet(key)

    def encrypt(self, plaintext: str | None) -> str:
        """Encrypt a token; empty input stays empty."""
        if not plaintext:
            return ""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str | None) -> str:
        """Decrypt a stored token.

        Raises:
            ValueError: If the ciphertext was produced with another key or
                has been tampered with
        """
        if not ciphertext:
            return ""
        try:
            return self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            logger.error("Failed to decrypt token: invalid token or key")
            raise ValueError("Failed to decrypt token") from e

    def reencrypt(self, ciphertext: str, new_cipher: TokenCipher) -> str:
        """Decrypt with this cipher and encrypt with `new_cipher`."""
        return new_cipher.encrypt(self.decrypt(ciphertext))


_cipher: TokenCipher | None = None


def get_cipher() -> TokenCipher:
    """Cipher for the configured secret, created on first use."""
    global _cipher

    if _cipher is None:
        from cycle_wellness.config import get_settings

        settings = get_settings()
        _cipher = TokenCipher(settings.secret_key, settings.encryption_salt)

    return _cipher


def encrypt_token(plaintext: str | None) -> str:
    return get_cipher().encrypt(plaintext)


def decrypt_token(ciphertext: str | None) -> str:
    return get_cipher().decrypt(ciphertext)


def reset_cipher() -> None:
    """Drop the cached cipher (tests, or after changing SECRET_KEY)."""
    global _cipher
    _cipher = None
