# tac_broker/schemas/gunbroker_schema.py
from pydantic import BaseModel
from typing import Optional
import uuid
from datetime import datetime

from tac_broker.gunbroker.config import MarketplaceMode

class ConnectRequest(BaseModel):
    username: str
    password: str
    is_sandbox: bool = False

    @property
    def mode(self) -> MarketplaceMode:
        return MarketplaceMode.from_sandbox_flag(self.is_sandbox)

class DisconnectRequest(BaseModel):
    integration_id: Optional[uuid.UUID] = None
    is_sandbox: bool = False

class IntegrationRead(BaseModel):
    # no password or access token, ever
    id: uuid.UUID
    username: str
    is_sandbox: bool
    is_active: bool
    last_connected_at: Optional[datetime]
    token_expires_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}

class ConnectResponse(BaseModel):
    success: bool = True
    message: str
    integration: IntegrationRead
