# tac_broker/routers/gunbroker_router.py
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlmodel.ext.asyncio.session import AsyncSession

from tac_broker.dependencies.auth import get_current_user_id
from tac_broker.dependencies.db import get_session_dep
from tac_broker.dependencies.gunbroker import get_request_executor, get_token_manager
from tac_broker.gunbroker.config import MarketplaceMode
from tac_broker.gunbroker.errors import GunbrokerError
from tac_broker.gunbroker.executor import RequestExecutor
from tac_broker.gunbroker.token_manager import TokenManager
from tac_broker.schemas.gunbroker_schema import ConnectRequest, ConnectResponse, DisconnectRequest, IntegrationRead
from tac_broker.services.gunbroker_service import GunbrokerService

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/gunbroker", tags=["gunbroker"])


def get_service(
    session: AsyncSession = Depends(get_session_dep),
    token_manager: TokenManager = Depends(get_token_manager),
    executor: RequestExecutor = Depends(get_request_executor),
) -> GunbrokerService:
    return GunbrokerService(session, token_manager, executor)


def _mode(is_sandbox: Optional[bool]) -> Optional[MarketplaceMode]:
    return None if is_sandbox is None else MarketplaceMode.from_sandbox_flag(is_sandbox)


async def gunbroker_error_handler(request: Request, exc: GunbrokerError) -> JSONResponse:
    logger.warning(
        "gunbroker_error",
        error_type=type(exc).__name__,
        status=exc.status_code,
        message=exc.message,
    )
    return JSONResponse(exc.to_response(), status_code=exc.status_code)


@router.post("/connect", response_model=ConnectResponse)
async def connect(
    payload: ConnectRequest,
    user_id: str = Depends(get_current_user_id),
    svc: GunbrokerService = Depends(get_service),
):
    try:
        integration = await svc.connect(user_id, payload.mode, payload.username, payload.password)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {
        "success": True,
        "message": "Successfully connected to Gunbroker",
        "integration": IntegrationRead.model_validate(integration),
    }


@router.post("/disconnect")
async def disconnect(
    payload: DisconnectRequest,
    user_id: str = Depends(get_current_user_id),
    svc: GunbrokerService = Depends(get_service),
):
    await svc.disconnect(user_id, payload.integration_id, MarketplaceMode.from_sandbox_flag(payload.is_sandbox))
    if payload.integration_id is not None:
        message = "Successfully disconnected from Gunbroker"
    else:
        message = f"Successfully disconnected from Gunbroker in {'sandbox' if payload.is_sandbox else 'production'} mode"
    return {"success": True, "message": message}


@router.get("/integrations", response_model=List[IntegrationRead])
async def list_integrations(
    user_id: str = Depends(get_current_user_id),
    svc: GunbrokerService = Depends(get_service),
):
    return await svc.list_integrations(user_id)


@router.get("/listings")
async def list_listings(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=300),
    time_frame: int = 0,
    sort: int = 0,
    is_sandbox: Optional[bool] = None,
    user_id: str = Depends(get_current_user_id),
    svc: GunbrokerService = Depends(get_service),
):
    return await svc.list_listings(user_id, page, page_size, time_frame, sort, _mode(is_sandbox))


@router.get("/listings/{item_id}")
async def get_listing(
    item_id: int,
    is_sandbox: Optional[bool] = None,
    user_id: str = Depends(get_current_user_id),
    svc: GunbrokerService = Depends(get_service),
):
    return await svc.get_listing(user_id, item_id, _mode(is_sandbox))


@router.get("/orders")
async def list_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=300),
    time_frame: int = 8,
    sort: int = 0,
    sort_order: int = 1,
    is_sandbox: Optional[bool] = None,
    user_id: str = Depends(get_current_user_id),
    svc: GunbrokerService = Depends(get_service),
):
    return await svc.list_orders(user_id, page, page_size, time_frame, sort, sort_order, _mode(is_sandbox))


@router.get("/orders/{order_id}")
async def get_order(
    order_id: int,
    is_sandbox: Optional[bool] = None,
    user_id: str = Depends(get_current_user_id),
    svc: GunbrokerService = Depends(get_service),
):
    return await svc.get_order(user_id, order_id, _mode(is_sandbox))


@router.get("/test")
async def test_connection(
    is_sandbox: Optional[bool] = None,
    user_id: str = Depends(get_current_user_id),
    svc: GunbrokerService = Depends(get_service),
):
    return await svc.account_info(user_id, _mode(is_sandbox))
