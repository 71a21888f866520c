# tac_broker/services/gunbroker_service.py
from typing import List, Optional
import uuid

from sqlmodel.ext.asyncio.session import AsyncSession

from tac_broker.gunbroker import transform
from tac_broker.gunbroker.config import MarketplaceMode
from tac_broker.gunbroker.errors import IntegrationNotFoundError
from tac_broker.gunbroker.executor import MarketplaceRequest, RequestExecutor
from tac_broker.gunbroker.token_manager import TokenManager
from tac_broker.infrastructure.integrations_repo import IntegrationRepository
from tac_broker.models.integration import GunbrokerIntegration

class GunbrokerService:
    def __init__(self, session: AsyncSession, token_manager: TokenManager, executor: RequestExecutor):
        self.repo = IntegrationRepository(session)
        self.token_manager = token_manager
        self.executor = executor

    async def connect(self, user_id: str, mode: MarketplaceMode, username: str, password: str) -> GunbrokerIntegration:
        return await self.token_manager.connect(user_id, mode, username, password)

    async def disconnect(self, user_id: str, integration_id: Optional[uuid.UUID], mode: MarketplaceMode) -> None:
        if integration_id is not None:
            await self.token_manager.disconnect(integration_id, user_id=user_id)
        else:
            await self.token_manager.disconnect_mode(user_id, mode)

    async def list_integrations(self, user_id: str) -> List[GunbrokerIntegration]:
        return await self.repo.list_active_by_user(user_id)

    async def resolve_integration(self, user_id: str, mode: Optional[MarketplaceMode] = None) -> GunbrokerIntegration:
        integration = await self.repo.get_active(user_id, mode)
        if not integration:
            raise IntegrationNotFoundError()
        return integration

    async def list_listings(
        self, user_id: str, page: int, page_size: int, time_frame: int, sort: int, mode: Optional[MarketplaceMode] = None
    ) -> dict:
        integration = await self.resolve_integration(user_id, mode)
        params = {"PageIndex": page, "PageSize": page_size, "TimeFrame": time_frame, "Sort": sort}
        resp = await self.executor.call(integration, MarketplaceRequest("/ItemsSelling", params=params))
        return transform.listings_page(resp.body, page, page_size, integration.is_sandbox)

    async def get_listing(self, user_id: str, item_id: int, mode: Optional[MarketplaceMode] = None) -> dict:
        integration = await self.resolve_integration(user_id, mode)
        resp = await self.executor.call(integration, MarketplaceRequest(f"/Items/{item_id}"))
        return resp.body

    async def list_orders(
        self,
        user_id: str,
        page: int,
        page_size: int,
        time_frame: int,
        sort: int,
        sort_order: int,
        mode: Optional[MarketplaceMode] = None,
    ) -> dict:
        integration = await self.resolve_integration(user_id, mode)
        params = {
            "PageIndex": page,
            "PageSize": page_size,
            "TimeFrame": time_frame,
            "Sort": sort,
            "SortOrder": sort_order,
        }
        resp = await self.executor.call(integration, MarketplaceRequest("/OrdersSold", params=params))
        return transform.orders_page(resp.body, page, page_size, integration.is_sandbox)

    async def get_order(self, user_id: str, order_id: int, mode: Optional[MarketplaceMode] = None) -> dict:
        integration = await self.resolve_integration(user_id, mode)
        resp = await self.executor.call(integration, MarketplaceRequest(f"/Orders/{order_id}"))
        return resp.body

    async def account_info(self, user_id: str, mode: Optional[MarketplaceMode] = None) -> dict:
        integration = await self.resolve_integration(user_id, mode)
        resp = await self.executor.call(integration, MarketplaceRequest("/Users/AccountInfo"))
        return {
            "connected": True,
            "integration_id": str(integration.id),
            "is_sandbox": integration.is_sandbox,
            "account": resp.body,
        }
