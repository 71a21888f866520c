# tac_broker/gunbroker/auth.py
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tac_broker.infrastructure.marketplace_client import MarketplaceHttpClient
from .config import DEFAULT_TOKEN_TTL_SECONDS, ModeSettings
from .errors import MarketplaceApiError, MarketplaceAuthError, RateLimitedError

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_PATH = "/Users/AccessToken"


class AuthResult(BaseModel):
    """
    Body of a successful POST /Users/AccessToken. GunBroker documents only `accessToken`,
    everything else is optional and the expiry is advisory.
    """

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken", min_length=1)
    token_type: str = Field(default="bearer", alias="tokenType")
    expires_in: Optional[int] = Field(default=None, alias="expiresIn")
    expiration_date: Optional[datetime] = Field(default=None, alias="expirationDate")
    user_id: Optional[int] = Field(default=None, alias="userId")

    @field_validator("expiration_date", mode="before")
    @classmethod
    def _ignore_unparseable_date(cls, value):
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
        return value

    def expires_at(self, now: datetime, default_ttl: int = DEFAULT_TOKEN_TTL_SECONDS) -> datetime:
        if self.expiration_date is not None:
            exp = self.expiration_date
            if exp.tzinfo is None:
                # GunBroker dates are UTC
                return exp.replace(tzinfo=timezone.utc)
            return exp.astimezone(timezone.utc)
        return now + timedelta(seconds=self.expires_in or default_ttl)


class GunbrokerAuthEndpoint:
    def __init__(self, http: MarketplaceHttpClient):
        self.http = http

    async def authenticate(self, mode: ModeSettings, username: str, password: str) -> AuthResult:
        logger.info(
            "gunbroker_authenticate",
            mode=mode.mode.value,
            username=username,
            dev_key=mode.dev_key_preview,
        )
        resp = await self.http.send(
            "POST",
            mode.url(ACCESS_TOKEN_PATH),
            headers={"X-DevKey": mode.dev_key, "Content-Type": "application/x-www-form-urlencoded"},
            data={"Username": username, "Password": password},
        )

        if resp.status_code == 429:
            logger.warning("gunbroker_authenticate_rate_limited", mode=mode.mode.value, username=username)
            raise RateLimitedError(retry_after=retry_after(resp.headers), body=resp.body)
        if not resp.ok:
            logger.warning(
                "gunbroker_authenticate_rejected",
                mode=mode.mode.value,
                username=username,
                status=resp.status_code,
            )
            raise MarketplaceAuthError(resp.status_code, details=resp.message())

        try:
            return AuthResult.model_validate(resp.body)
        except ValidationError:
            logger.error("gunbroker_authenticate_bad_payload", mode=mode.mode.value, username=username)
            raise MarketplaceApiError(502, message="Invalid response from GunBroker API")


def retry_after(headers: dict) -> Optional[int]:
    value = headers.get("retry-after")
    if value and value.strip().isdigit():
        return int(value.strip())
    return None
