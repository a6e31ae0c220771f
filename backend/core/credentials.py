"""Symmetric encryption for stored database credentials."""
from __future__ import annotations

import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class CredentialCipher:
    def __init__(self, key: str | bytes | None = None) -> None:
        if not key:
            logger.warning("CREDENTIAL_ENCRYPTION_KEY not set; generated credentials will not survive a restart")
            key = Fernet.generate_key()
        self._fernet = Fernet(key.encode("ascii") if isinstance(key, str) else key)

    def encrypt(self, secret: str) -> str:
        return self._fernet.encrypt(secret.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("credential cannot be decrypted with the configured key") from exc
