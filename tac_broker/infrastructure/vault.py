# tac_broker/infrastructure/vault.py
import os
from typing import Optional

import structlog
from cryptography.fernet import Fernet, InvalidToken

from tac_broker.gunbroker.errors import ConfigurationError, CredentialError

logger = structlog.get_logger(__name__)


class CredentialVault:
    """
    Reversible encryption for stored GunBroker passwords.
    Async on purpose: callers treat it as an I/O boundary so it can be swapped for a remote KMS.
    """

    def __init__(self, key: str):
        self.fernet = Fernet(key.encode() if isinstance(key, str) else key)

    @classmethod
    def from_env(cls) -> "CredentialVault":
        key: Optional[str] = os.getenv("CREDENTIALS_KEY")  # base64 Fernet key
        if not key:
            logger.error("credentials_key_missing")
            raise ConfigurationError(details="CREDENTIALS_KEY is not set")
        try:
            return cls(key)
        except ValueError:
            logger.error("credentials_key_invalid")
            raise ConfigurationError(details="CREDENTIALS_KEY is not a valid Fernet key")

    async def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            raise ValueError("nothing to encrypt")
        return self.fernet.encrypt(plaintext.encode()).decode()

    async def decrypt(self, ciphertext: str) -> str:
        if not ciphertext:
            raise CredentialError(details="no stored password")
        try:
            return self.fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            raise CredentialError(details="stored password could not be decrypted")
