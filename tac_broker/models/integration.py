# tac_broker/models/integration.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
from datetime import datetime, timezone
import uuid
from sqlalchemy import DateTime, Index, String, Text, text
from sqlalchemy.types import TypeDecorator

from tac_broker.gunbroker.config import MarketplaceMode


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    timestamptz that always hands back aware UTC datetimes.
    SQLite keeps no offset, so naive values read back are UTC by construction.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime given for a UTC column")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class GunbrokerIntegration(SQLModel, table=True):
    __tablename__ = "gunbroker_integrations"
    __table_args__ = (
        # one active integration per (user, mode)
        Index(
            "uq_gunbroker_integrations_active_mode",
            "user_id",
            "is_sandbox",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(sa_column=Column(String, index=True, nullable=False))
    username: str
    encrypted_password: str = Field(sa_column=Column(Text, nullable=False))
    access_token: Optional[str] = Field(default=None, sa_column=Column(Text))
    token_expires_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime()))
    is_sandbox: bool = Field(default=False)
    is_active: bool = Field(default=True)
    last_connected_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime()))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))

    @property
    def mode(self) -> MarketplaceMode:
        return MarketplaceMode.from_sandbox_flag(self.is_sandbox)
