# tac_broker/infrastructure/marketplace_client.py
import httpx
import structlog
from typing import Any, Mapping, Optional

from tac_broker.gunbroker.errors import MarketplaceApiError

logger = structlog.get_logger(__name__)


class MarketplaceResponse:
    def __init__(self, status_code: int, body: Any, headers: Optional[Mapping[str, str]] = None):
        self.status_code = status_code
        self.body = body
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def message(self) -> Optional[str]:
        if isinstance(self.body, dict):
            return self.body.get("message") or self.body.get("Message")
        return None


class MarketplaceHttpClient:
    """
    Thin async HTTP layer for GunBroker. Never raises on status codes: callers decide
    what a 401 or 429 means. Transport failures become MarketplaceApiError.
    """

    def __init__(self, timeout: float = 30, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[dict] = None,
        params: Optional[dict] = None,
        json: Any = None,
        data: Optional[dict] = None,
    ) -> MarketplaceResponse:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                r = await client.request(method, url, headers=headers, params=params, json=json, data=data)
            except httpx.TimeoutException as exc:
                logger.warning("gunbroker_request_timeout", method=method, url=url, error=str(exc))
                raise MarketplaceApiError(504, message="GunBroker did not respond in time")
            except httpx.TransportError as exc:
                logger.warning("gunbroker_request_transport_error", method=method, url=url, error=str(exc))
                raise MarketplaceApiError(502, message="Could not reach GunBroker")

        try:
            body = r.json()
        except ValueError:
            body = r.text or None
        logger.debug("gunbroker_response", method=method, url=url, status=r.status_code)
        return MarketplaceResponse(r.status_code, body, r.headers)
