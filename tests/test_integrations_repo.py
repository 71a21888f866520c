import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from tac_broker.gunbroker.config import MarketplaceMode
from tac_broker.gunbroker.errors import ConcurrentConnectError
from tac_broker.infrastructure.integrations_repo import IntegrationRepository
from tac_broker.models.integration import GunbrokerIntegration, utcnow


def _row(**kwargs) -> GunbrokerIntegration:
    values = dict(user_id="user-1", username="bob", encrypted_password="x", access_token="t", is_sandbox=True)
    values.update(kwargs)
    return GunbrokerIntegration(**values)


@pytest.mark.asyncio
async def test_database_rejects_two_active_rows_per_mode(session_factory):
    async with session_factory() as session:
        session.add(_row())
        session.add(_row())
        with pytest.raises(IntegrityError):
            await session.commit()


@pytest.mark.asyncio
async def test_inactive_rows_do_not_count_towards_uniqueness(session_factory):
    async with session_factory() as session:
        session.add(_row(is_active=False))
        session.add(_row(is_active=False))
        session.add(_row())
        await session.commit()


@pytest.mark.asyncio
async def test_get_active_prefers_latest_connection(session_factory):
    now = utcnow()
    async with session_factory() as session:
        repo = IntegrationRepository(session)
        await repo.replace_active(_row(is_sandbox=True, last_connected_at=now - timedelta(days=1)))
        production = await repo.replace_active(_row(is_sandbox=False, last_connected_at=now))

        assert (await repo.get_active("user-1")).id == production.id
        assert (await repo.get_active("user-1", MarketplaceMode.SANDBOX)).is_sandbox is True
        assert await repo.get_active("user-2") is None


@pytest.mark.asyncio
async def test_lookups_skip_deactivated_rows(session_factory):
    async with session_factory() as session:
        repo = IntegrationRepository(session)
        integration = await repo.replace_active(_row())

        assert await repo.deactivate(integration.id) is True
        assert await repo.deactivate(integration.id) is False
        assert await repo.get_by_id(integration.id) is None


@pytest.mark.asyncio
async def test_update_token_reports_missing_rows(session_factory):
    now = utcnow()
    async with session_factory() as session:
        repo = IntegrationRepository(session)
        assert await repo.update_token(uuid.uuid4(), "new", now, now) is False

        integration = await repo.replace_active(_row())
        assert await repo.update_token(integration.id, "new", None, now) is True
        await session.refresh(integration)
        assert integration.access_token == "new"
        assert integration.token_expires_at is None


@pytest.mark.asyncio
async def test_replace_active_retries_after_concurrent_connect(session_factory, monkeypatch):
    async with session_factory() as session:
        repo = IntegrationRepository(session)
        winner_id = (await repo.replace_active(_row(access_token="winner"))).id

        # first pass misses the row a concurrent connect just committed
        real_deactivate = repo._deactivate_active
        calls = []

        async def deactivate_late(user_id, is_sandbox):
            calls.append(user_id)
            if len(calls) > 1:
                await real_deactivate(user_id, is_sandbox)

        monkeypatch.setattr(repo, "_deactivate_active", deactivate_late)
        latest = await repo.replace_active(_row(access_token="latest"))

        assert len(calls) == 2
        assert (await repo.get_active("user-1")).id == latest.id
        assert await repo.get_by_id(winner_id) is None


@pytest.mark.asyncio
async def test_replace_active_gives_up_after_second_conflict(session_factory, monkeypatch):
    async with session_factory() as session:
        repo = IntegrationRepository(session)
        existing_id = (await repo.replace_active(_row())).id

        async def never_deactivate(user_id, is_sandbox):
            return None

        monkeypatch.setattr(repo, "_deactivate_active", never_deactivate)
        with pytest.raises(ConcurrentConnectError) as excinfo:
            await repo.replace_active(_row())

        assert excinfo.value.status_code == 409
        assert (await repo.get_active("user-1")).id == existing_id


@pytest.mark.asyncio
async def test_timestamps_round_trip_as_aware_utc(session_factory):
    expires_at = utcnow() + timedelta(days=1)
    async with session_factory() as session:
        integration_id = (await IntegrationRepository(session).replace_active(_row(token_expires_at=expires_at))).id

    async with session_factory() as session:
        stored = await session.get(GunbrokerIntegration, integration_id)

    assert stored.token_expires_at == expires_at
    assert stored.token_expires_at.tzinfo is not None
    assert stored.created_at.utcoffset() == timedelta(0)
