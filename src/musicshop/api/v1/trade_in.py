"""Trade-in catalog and quote API endpoints."""

from fastapi import APIRouter, status

from musicshop.api.deps import AdminUser, CurrentUser, DbSession
from musicshop.schemas.common import ApiResponse
from musicshop.schemas.trade_in import (
    TradeInCatalogCreate,
    TradeInCatalogResponse,
    TradeInConditionResponse,
    TradeInQuoteRequest,
    TradeInQuoteResponse,
)
from musicshop.services.trade_in_service import TradeInService

router = APIRouter()


@router.get("/catalog", response_model=ApiResponse[list[TradeInCatalogResponse]])
async def list_catalog(db: DbSession, current_user: CurrentUser):
    """Get active trade-in catalog entries."""
    entries = await TradeInService(db).list_active_catalog()
    return ApiResponse(data=[TradeInCatalogResponse.model_validate(e) for e in entries])


@router.get("/conditions", response_model=ApiResponse[list[TradeInConditionResponse]])
async def list_conditions(db: DbSession, current_user: CurrentUser):
    conditions = await TradeInService(db).list_conditions()
    return ApiResponse(data=[TradeInConditionResponse.model_validate(c) for c in conditions])


@router.post("/quote", response_model=ApiResponse[TradeInQuoteResponse])
async def quote(data: TradeInQuoteRequest, db: DbSession, current_user: CurrentUser):
    """Preview the discount for trade-in lines; nothing is stored."""
    return ApiResponse(data=await TradeInService(db).quote(data))


@router.post(
    "/catalog",
    response_model=ApiResponse[TradeInCatalogResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_catalog_entry(data: TradeInCatalogCreate, db: DbSession, admin: AdminUser):
    """Add a catalog entry (admin only)."""
    entry = await TradeInService(db).create_entry(data, admin)
    return ApiResponse(data=TradeInCatalogResponse.model_validate(entry))


@router.post("/catalog/{entry_id}/activate", response_model=ApiResponse[TradeInCatalogResponse])
async def activate_catalog_entry(entry_id: int, db: DbSession, admin: AdminUser):
    """Make an entry the only active one for its product (admin only)."""
    entry = await TradeInService(db).activate(entry_id, admin)
    return ApiResponse(data=TradeInCatalogResponse.model_validate(entry))
