"""At-rest encryption for MFA secrets.

Uses Fernet (AES-128-CBC + HMAC-SHA256). The key comes from
``MFA_ENCRYPTION_KEY``; generate one with::

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

from typing import Protocol

import structlog
from cryptography.fernet import Fernet, InvalidToken

from access_guard.config import Settings
from access_guard.errors import StoreUnavailable

logger = structlog.get_logger()


class SecretCipher(Protocol):
    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, token: str) -> str: ...


class FernetCipher:
    """Symmetric cipher for secrets stored by SQL adapters."""

    def __init__(self, key: str | bytes) -> None:
        self._fernet = Fernet(key.encode() if isinstance(key, str) else key)

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Decrypt a stored token.

        Raises:
            StoreUnavailable: token was tampered with or written under a
                different key. Callers fail closed.
        """
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken as exc:
            logger.error("mfa_secret_decrypt_failed")
            raise StoreUnavailable("Stored MFA secret could not be decrypted") from exc


def build_cipher(settings: Settings) -> FernetCipher:
    """Cipher from settings.

    Production refuses to start without a key. Other environments fall
    back to an ephemeral key, so secrets do not survive a restart.
    """
    if settings.mfa_encryption_key is not None:
        return FernetCipher(settings.mfa_encryption_key.get_secret_value())
    if settings.is_prod:
        raise RuntimeError("MFA_ENCRYPTION_KEY must be set in production")
    logger.warning("mfa_encryption_key_ephemeral", environment=str(settings.environment))
    return FernetCipher(Fernet.generate_key())
