# tac_broker/gunbroker/token_manager.py
"""
Access-token lifecycle for GunBroker integrations.

GunBroker hands out a bearer token for username + password and does not reliably say
when it expires, so `token_expires_at` is only a hint: a 401 from a data call is what
really marks a token stale (see executor.RequestExecutor).

Refreshes are deduplicated per integration id. The first caller starts a task, later
callers await the same task, and the task is shielded so a caller going away does not
abort a refresh other callers are waiting on.
"""
import asyncio
import functools
import uuid
from datetime import datetime
from typing import Callable, Dict, NamedTuple, Optional

import structlog

from tac_broker.infrastructure.database import SessionFactory, get_session
from tac_broker.infrastructure.integrations_repo import IntegrationRepository
from tac_broker.infrastructure.vault import CredentialVault
from tac_broker.models.integration import GunbrokerIntegration, utcnow
from .auth import GunbrokerAuthEndpoint
from .config import MarketplaceMode, MarketplaceSettings
from .errors import CredentialError

logger = structlog.get_logger(__name__)


class IssuedToken(NamedTuple):
    access_token: str
    expires_at: Optional[datetime]
    connected_at: datetime


class TokenManager:
    def __init__(
        self,
        settings: MarketplaceSettings,
        vault: CredentialVault,
        auth: GunbrokerAuthEndpoint,
        session_factory: SessionFactory = get_session,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.vault = vault
        self.auth = auth
        self.session_factory = session_factory
        self.clock = clock
        self._inflight: Dict[uuid.UUID, asyncio.Task] = {}
        # newest token this process obtained per integration
        self._issued: Dict[uuid.UUID, IssuedToken] = {}

    async def connect(self, user_id: str, mode: MarketplaceMode, username: str, password: str) -> GunbrokerIntegration:
        if not username or not password:
            raise ValueError("username and password are required")
        mode_settings = self.settings.for_mode(mode)

        result = await self.auth.authenticate(mode_settings, username, password)
        encrypted = await self.vault.encrypt(password)
        now = self.clock()
        integration = GunbrokerIntegration(
            user_id=user_id,
            username=username,
            encrypted_password=encrypted,
            access_token=result.access_token,
            token_expires_at=result.expires_at(now, self.settings.default_token_ttl),
            is_sandbox=mode_settings.mode.is_sandbox,
            is_active=True,
            last_connected_at=now,
        )
        async with self.session_factory() as session:
            repo = IntegrationRepository(session)
            previous = await repo.get_active(user_id, mode_settings.mode)
            previous_id = previous.id if previous is not None else None
            integration = await repo.replace_active(integration)

        self._issued.pop(previous_id, None)
        self._issued[integration.id] = IssuedToken(
            integration.access_token, integration.token_expires_at, integration.last_connected_at
        )
        logger.info(
            "gunbroker_connected",
            user_id=user_id,
            integration_id=str(integration.id),
            mode=mode_settings.mode.value,
            username=username,
        )
        return integration

    async def get_valid_token(self, integration: GunbrokerIntegration) -> str:
        issued = self._issued.get(integration.id)
        if issued is not None and self._is_newer(issued, integration):
            self._apply(integration, issued)

        if integration.access_token and self._is_fresh(integration.token_expires_at):
            return integration.access_token

        logger.info(
            "gunbroker_token_stale",
            integration_id=str(integration.id),
            expires_at=integration.token_expires_at.isoformat() if integration.token_expires_at else None,
        )
        return await self.refresh(integration)

    async def refresh(self, integration: GunbrokerIntegration, rejected_token: Optional[str] = None) -> str:
        """
        Re-authenticate with the stored credentials and persist the new token.

        `rejected_token` is the token a caller just saw fail. If another caller has
        already replaced it with a newer token, that one is returned without a new
        authenticate call.
        """
        key = integration.id
        issued = self._issued.get(key)
        if (
            rejected_token is not None
            and issued is not None
            and issued.access_token != rejected_token
            and self._is_newer(issued, integration)
        ):
            self._apply(integration, issued)
            return issued.access_token

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._refresh(key, integration.username, integration.encrypted_password, integration.mode)
            )
            self._inflight[key] = task
            task.add_done_callback(functools.partial(self._forget, key))
        else:
            logger.debug("gunbroker_refresh_joined", integration_id=str(key))

        issued = await asyncio.shield(task)
        self._apply(integration, issued)
        return issued.access_token

    async def disconnect(self, integration_id: uuid.UUID, user_id: Optional[str] = None) -> None:
        async with self.session_factory() as session:
            changed = await IntegrationRepository(session).deactivate(integration_id, user_id=user_id)
        self._issued.pop(integration_id, None)
        logger.info("gunbroker_disconnected", integration_id=str(integration_id), changed=changed)

    async def disconnect_mode(self, user_id: str, mode: MarketplaceMode) -> int:
        async with self.session_factory() as session:
            ids = await IntegrationRepository(session).deactivate_mode(user_id, mode)
        for integration_id in ids:
            self._issued.pop(integration_id, None)
        logger.info("gunbroker_disconnected_mode", user_id=user_id, mode=MarketplaceMode(mode).value, count=len(ids))
        return len(ids)

    async def _refresh(
        self, integration_id: uuid.UUID, username: str, encrypted_password: str, mode: MarketplaceMode
    ) -> IssuedToken:
        mode_settings = self.settings.for_mode(mode)
        try:
            password = await self.vault.decrypt(encrypted_password)
        except CredentialError:
            logger.error("gunbroker_credentials_unreadable", integration_id=str(integration_id))
            raise

        result = await self.auth.authenticate(mode_settings, username, password)
        now = self.clock()
        issued = IssuedToken(result.access_token, result.expires_at(now, self.settings.default_token_ttl), now)

        # persisted only once authenticate succeeded
        async with self.session_factory() as session:
            found = await IntegrationRepository(session).update_token(
                integration_id, issued.access_token, issued.expires_at, issued.connected_at
            )
        if not found:
            logger.warning("gunbroker_refresh_row_missing", integration_id=str(integration_id))

        self._issued[integration_id] = issued
        logger.info("gunbroker_token_refreshed", integration_id=str(integration_id), mode=mode_settings.mode.value)
        return issued

    def _forget(self, key: uuid.UUID, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # mark retrieved; awaiting callers already received the exception
            task.exception()

    def _is_fresh(self, expires_at: Optional[datetime]) -> bool:
        return expires_at is not None and expires_at > self.clock()

    @staticmethod
    def _is_newer(issued: IssuedToken, integration: GunbrokerIntegration) -> bool:
        if integration.access_token == issued.access_token:
            return False
        return integration.last_connected_at is None or issued.connected_at > integration.last_connected_at

    @staticmethod
    def _apply(integration: GunbrokerIntegration, issued: IssuedToken) -> None:
        integration.access_token = issued.access_token
        integration.token_expires_at = issued.expires_at
        integration.last_connected_at = issued.connected_at
