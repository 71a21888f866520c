# tac_broker/infrastructure/integrations_repo.py
from typing import Optional, List
import structlog
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from tac_broker.models.integration import GunbrokerIntegration, utcnow
from tac_broker.gunbroker.config import MarketplaceMode
from tac_broker.gunbroker.errors import ConcurrentConnectError
import uuid
from datetime import datetime

logger = structlog.get_logger(__name__)

class IntegrationRepository:
    """
    Repository for GunbrokerIntegration rows.
    All methods are async and expect an AsyncSession to be injected from the outside.
    Lookups only ever see active rows; disconnect is a soft delete.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, id: uuid.UUID, user_id: Optional[str] = None) -> Optional[GunbrokerIntegration]:
        q = select(GunbrokerIntegration).where(
            GunbrokerIntegration.id == id,
            GunbrokerIntegration.is_active == True,  # noqa: E712
        )
        if user_id is not None:
            q = q.where(GunbrokerIntegration.user_id == user_id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_active(self, user_id: str, mode: Optional[MarketplaceMode] = None) -> Optional[GunbrokerIntegration]:
        """
        Active integration for the user in the given mode.
        Without a mode, the most recently connected one wins.
        """
        q = select(GunbrokerIntegration).where(
            GunbrokerIntegration.user_id == user_id,
            GunbrokerIntegration.is_active == True,  # noqa: E712
        )
        if mode is not None:
            q = q.where(GunbrokerIntegration.is_sandbox == MarketplaceMode(mode).is_sandbox)
        q = q.order_by(GunbrokerIntegration.last_connected_at.desc()).limit(1)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_active_by_user(self, user_id: str) -> List[GunbrokerIntegration]:
        q = (
            select(GunbrokerIntegration)
            .where(GunbrokerIntegration.user_id == user_id, GunbrokerIntegration.is_active == True)  # noqa: E712
            .order_by(GunbrokerIntegration.created_at.desc())
        )
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def replace_active(self, integration: GunbrokerIntegration) -> GunbrokerIntegration:
        """
        Soft-delete whatever is active for (user, mode) and insert the new row.
        Both writes go out in the same transaction, so a crash leaves either the old row or the new one.
        A concurrent connect for the same (user, mode) shows up as a unique index violation;
        that is retried once, after which ConcurrentConnectError is raised.
        """
        for attempt in range(2):
            await self._deactivate_active(integration.user_id, integration.is_sandbox)
            self.session.add(integration)
            try:
                await self.session.commit()
            except IntegrityError as exc:
                await self.session.rollback()
                if attempt:
                    raise ConcurrentConnectError() from exc
                logger.warning("gunbroker_connect_conflict_retrying", user_id=integration.user_id)
                continue
            await self.session.refresh(integration)
            return integration

    async def _deactivate_active(self, user_id: str, is_sandbox: bool) -> None:
        await self.session.execute(
            update(GunbrokerIntegration)
            .where(
                GunbrokerIntegration.user_id == user_id,
                GunbrokerIntegration.is_sandbox == is_sandbox,
                GunbrokerIntegration.is_active == True,  # noqa: E712
            )
            .values(is_active=False, updated_at=utcnow())
        )

    async def update_token(
        self,
        id: uuid.UUID,
        access_token: str,
        expires_at: Optional[datetime],
        connected_at: datetime,
    ) -> bool:
        """
        Overwrite the token fields as a whole. Returns False when the row no longer exists.
        """
        res = await self.session.execute(
            update(GunbrokerIntegration)
            .where(GunbrokerIntegration.id == id)
            .values(
                access_token=access_token,
                token_expires_at=expires_at,
                last_connected_at=connected_at,
                updated_at=connected_at,
            )
        )
        await self.session.commit()
        return res.rowcount > 0

    async def deactivate(self, id: uuid.UUID, user_id: Optional[str] = None) -> bool:
        q = (
            update(GunbrokerIntegration)
            .where(GunbrokerIntegration.id == id, GunbrokerIntegration.is_active == True)  # noqa: E712
            .values(is_active=False, updated_at=utcnow())
        )
        if user_id is not None:
            q = q.where(GunbrokerIntegration.user_id == user_id)
        res = await self.session.execute(q)
        await self.session.commit()
        return res.rowcount > 0

    async def deactivate_mode(self, user_id: str, mode: MarketplaceMode) -> List[uuid.UUID]:
        q = select(GunbrokerIntegration.id).where(
            GunbrokerIntegration.user_id == user_id,
            GunbrokerIntegration.is_sandbox == MarketplaceMode(mode).is_sandbox,
            GunbrokerIntegration.is_active == True,  # noqa: E712
        )
        res = await self.session.execute(q)
        ids = list(res.scalars().all())
        if ids:
            await self.session.execute(
                update(GunbrokerIntegration)
                .where(GunbrokerIntegration.id.in_(ids))
                .values(is_active=False, updated_at=utcnow())
            )
            await self.session.commit()
        return ids
