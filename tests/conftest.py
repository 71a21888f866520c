import asyncio
import os
from datetime import datetime, timedelta
from typing import Any, List, Optional, Tuple

# module-level settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")

import httpx
import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import create_async_engine

from tac_broker.gunbroker.auth import GunbrokerAuthEndpoint
from tac_broker.gunbroker.config import MarketplaceMode, MarketplaceSettings, ModeSettings
from tac_broker.gunbroker.executor import RequestExecutor
from tac_broker.gunbroker.token_manager import TokenManager
from tac_broker.infrastructure.database import init_db, session_factory as make_session_factory
from tac_broker.infrastructure.integrations_repo import IntegrationRepository
from tac_broker.infrastructure.marketplace_client import MarketplaceHttpClient
from tac_broker.infrastructure.vault import CredentialVault
from tac_broker.models.integration import GunbrokerIntegration, utcnow

SANDBOX_URL = "https://sandbox.test/v1"
PRODUCTION_URL = "https://production.test/v1"
SANDBOX_KEY = "sandbox-dev-key-123"
PRODUCTION_KEY = "production-dev-key-456"


class FakeGunbroker:
    """
    In-process GunBroker for httpx.MockTransport.
    Queue `(status, body)` or `(status, body, headers)` tuples on auth_responses / data_responses;
    when a queue is empty auth answers {"accessToken": "tok<n>"} and data answers 200 {"results": []}.
    """

    def __init__(self):
        self.auth_calls = 0
        self.auth_requests: List[httpx.Request] = []
        self.auth_responses: List[Tuple] = []
        self.auth_delay = 0.0
        self.data_requests: List[httpx.Request] = []
        self.data_responses: List[Tuple] = []
        self.data_handler = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/Users/AccessToken"):
            self.auth_calls += 1
            n = self.auth_calls
            self.auth_requests.append(request)
            queued = self.auth_responses.pop(0) if self.auth_responses else None
            if self.auth_delay:
                await asyncio.sleep(self.auth_delay)
            if queued is not None:
                return _response(queued)
            return httpx.Response(200, json={"accessToken": f"tok{n}"})

        self.data_requests.append(request)
        if self.data_handler is not None:
            return _response(self.data_handler(request))
        if self.data_responses:
            return _response(self.data_responses.pop(0))
        return httpx.Response(200, json={"results": []})

    def tokens_sent(self) -> List[Optional[str]]:
        return [r.headers.get("X-AccessToken") for r in self.data_requests]


def _response(entry: Tuple) -> httpx.Response:
    status, body = entry[0], entry[1]
    headers = entry[2] if len(entry) > 2 else None
    if isinstance(body, (dict, list)):
        return httpx.Response(status, json=body, headers=headers)
    return httpx.Response(status, text=body or "", headers=headers)


@pytest.fixture
def settings() -> MarketplaceSettings:
    return MarketplaceSettings(
        sandbox=ModeSettings(mode=MarketplaceMode.SANDBOX, base_url=SANDBOX_URL, dev_key=SANDBOX_KEY),
        production=ModeSettings(mode=MarketplaceMode.PRODUCTION, base_url=PRODUCTION_URL, dev_key=PRODUCTION_KEY),
    )


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault(Fernet.generate_key().decode())


@pytest.fixture
def gunbroker() -> FakeGunbroker:
    return FakeGunbroker()


@pytest.fixture
def http_client(gunbroker: FakeGunbroker) -> MarketplaceHttpClient:
    return MarketplaceHttpClient(timeout=5, transport=httpx.MockTransport(gunbroker.handler))


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tac_broker.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def token_manager(settings, vault, http_client, session_factory) -> TokenManager:
    return TokenManager(
        settings=settings,
        vault=vault,
        auth=GunbrokerAuthEndpoint(http_client),
        session_factory=session_factory,
    )


@pytest.fixture
def executor(token_manager, http_client, settings) -> RequestExecutor:
    return RequestExecutor(token_manager, http_client, settings)


@pytest.fixture
def seed_integration(session_factory, vault):
    async def _seed(
        user_id: str = "user-1",
        token: Optional[str] = "old",
        expires_at: Optional[datetime] = None,
        is_sandbox: bool = True,
        username: str = "bob",
        password: str = "pw",
        encrypted_password: Optional[str] = None,
    ) -> GunbrokerIntegration:
        integration = GunbrokerIntegration(
            user_id=user_id,
            username=username,
            encrypted_password=encrypted_password or await vault.encrypt(password),
            access_token=token,
            token_expires_at=expires_at,
            is_sandbox=is_sandbox,
            is_active=True,
            last_connected_at=utcnow() - timedelta(hours=1),
        )
        async with session_factory() as session:
            return await IntegrationRepository(session).replace_active(integration)

    return _seed


@pytest.fixture
def load_integration(session_factory):
    async def _load(integration_id: Any) -> Optional[GunbrokerIntegration]:
        async with session_factory() as session:
            return await session.get(GunbrokerIntegration, integration_id)

    return _load
