# tac_broker/gunbroker/config.py
import os
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .errors import ConfigurationError

SANDBOX_DEFAULT_URL = "https://api.sandbox.gunbroker.com/v1"
PRODUCTION_DEFAULT_URL = "https://api.gunbroker.com/v1"
DEFAULT_TOKEN_TTL_SECONDS = 86400


class MarketplaceMode(str, Enum):
    SANDBOX = "sandbox"
    PRODUCTION = "production"

    @classmethod
    def from_sandbox_flag(cls, is_sandbox: bool) -> "MarketplaceMode":
        return cls.SANDBOX if is_sandbox else cls.PRODUCTION

    @property
    def is_sandbox(self) -> bool:
        return self is MarketplaceMode.SANDBOX


class ModeSettings(BaseModel):
    mode: MarketplaceMode
    base_url: Optional[str] = None
    dev_key: Optional[str] = None

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    @property
    def dev_key_preview(self) -> str:
        return redact(self.dev_key)


class MarketplaceSettings(BaseModel):
    """
    Per-mode base URL and developer key, plus client knobs.
    Built once per process (see dependencies.gunbroker) and handed to the token manager and executor.
    """

    sandbox: ModeSettings
    production: ModeSettings
    timeout: float = 30.0
    default_token_ttl: int = DEFAULT_TOKEN_TTL_SECONDS

    @classmethod
    def from_env(cls) -> "MarketplaceSettings":
        return cls(
            sandbox=ModeSettings(
                mode=MarketplaceMode.SANDBOX,
                base_url=os.getenv("GUNBROKER_STAGING_URL", SANDBOX_DEFAULT_URL),
                dev_key=os.getenv("GUNBROKER_STAGING_DEV_KEY"),
            ),
            production=ModeSettings(
                mode=MarketplaceMode.PRODUCTION,
                base_url=os.getenv("GUNBROKER_PRODUCTION_URL", PRODUCTION_DEFAULT_URL),
                dev_key=os.getenv("GUNBROKER_PRODUCTION_DEV_KEY"),
            ),
            timeout=float(os.getenv("GUNBROKER_TIMEOUT", "30")),
            default_token_ttl=int(os.getenv("GUNBROKER_DEFAULT_TOKEN_TTL", str(DEFAULT_TOKEN_TTL_SECONDS))),
        )

    def for_mode(self, mode: MarketplaceMode) -> ModeSettings:
        settings = self.sandbox if MarketplaceMode(mode).is_sandbox else self.production
        if not settings.dev_key:
            raise ConfigurationError(details=f"GunBroker dev key not configured for {settings.mode.value} mode")
        if not settings.base_url:
            raise ConfigurationError(details=f"GunBroker base URL not configured for {settings.mode.value} mode")
        return settings


def redact(secret: Optional[str], keep: int = 3) -> str:
    if not secret:
        return "<unset>"
    if len(secret) <= keep * 2:
        return "***"
    return f"{secret[:keep]}...{secret[-keep:]}"
