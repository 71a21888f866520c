# tac_broker/gunbroker/executor.py
from typing import Any, Optional

import structlog

from tac_broker.infrastructure.marketplace_client import MarketplaceHttpClient, MarketplaceResponse
from tac_broker.models.integration import GunbrokerIntegration
from .auth import retry_after
from .config import MarketplaceSettings, ModeSettings
from .errors import MarketplaceApiError, RateLimitedError
from .token_manager import TokenManager

logger = structlog.get_logger(__name__)


class MarketplaceRequest:
    def __init__(self, path: str, method: str = "GET", params: Optional[dict] = None, json: Any = None):
        self.path = path
        self.method = method
        self.params = params
        self.json = json

    def __repr__(self) -> str:
        return f"MarketplaceRequest({self.method} {self.path})"


class RequestExecutor:
    """
    One logical GunBroker call: send with the current token, and on a 401 refresh
    once and resend once. Every other outcome is final.
    """

    def __init__(self, token_manager: TokenManager, http: MarketplaceHttpClient, settings: MarketplaceSettings):
        self.token_manager = token_manager
        self.http = http
        self.settings = settings

    async def call(self, integration: GunbrokerIntegration, request: MarketplaceRequest) -> MarketplaceResponse:
        mode = self.settings.for_mode(integration.mode)
        log = logger.bind(integration_id=str(integration.id), method=request.method, path=request.path)

        token = await self.token_manager.get_valid_token(integration)
        resp = await self._send(mode, token, request)
        log.debug("gunbroker_call_sent", status=resp.status_code)

        if resp.status_code == 401:
            log.info("gunbroker_call_unauthorized_refreshing")
            token = await self.token_manager.refresh(integration, rejected_token=token)
            resp = await self._send(mode, token, request)
            log.info("gunbroker_call_retried", status=resp.status_code)

        if resp.ok:
            return resp
        if resp.status_code == 429:
            log.warning("gunbroker_call_rate_limited")
            raise RateLimitedError(retry_after=retry_after(resp.headers), body=resp.body)
        log.warning("gunbroker_call_failed", status=resp.status_code)
        raise MarketplaceApiError(resp.status_code, body=resp.body, message=resp.message())

    async def _send(self, mode: ModeSettings, token: str, request: MarketplaceRequest) -> MarketplaceResponse:
        headers = {
            "X-DevKey": mode.dev_key,
            "X-AccessToken": token,
        }
        if request.json is not None:
            headers["Content-Type"] = "application/json"
        return await self.http.send(
            request.method,
            mode.url(request.path),
            headers=headers,
            params=request.params,
            json=request.json,
        )
