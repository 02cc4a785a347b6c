"""
Updates feed routes.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from centri.auth.verify import get_tenant_id
from centri.features.updates.domain.models import UpdateItem
from centri.models.api.update_response import (
    RefreshUpdatesResponse,
    UpdateActionResponse,
    UpdateListResponse,
)
from centri.services.container import ServiceContainer, get_services

router = APIRouter(prefix="/updates", tags=["updates"])


def _list_response(items: list[UpdateItem]) -> dict:
    return {"items": [item.to_dict() for item in items], "count": len(items)}


@router.post("/refresh", response_model=RefreshUpdatesResponse)
async def refresh_updates(
    tenant_id: str = Depends(get_tenant_id),
    services: ServiceContainer = Depends(get_services),
):
    """Collect from every source now and return the feed with per-source health."""
    result = await services.aggregator.refresh_updates(tenant_id)
    return result.to_dict()


@router.get("", response_model=UpdateListResponse)
async def list_updates(
    tenant_id: str = Depends(get_tenant_id),
    services: ServiceContainer = Depends(get_services),
):
    return _list_response(await services.aggregator.list_feed(tenant_id))


@router.get("/newsletters", response_model=UpdateListResponse)
async def list_newsletters(
    tenant_id: str = Depends(get_tenant_id),
    services: ServiceContainer = Depends(get_services),
):
    return _list_response(await services.aggregator.list_newsletters(tenant_id))


@router.post("/dismiss-all", response_model=UpdateActionResponse)
async def dismiss_all_updates(
    tenant_id: str = Depends(get_tenant_id),
    services: ServiceContainer = Depends(get_services),
):
    count = await services.aggregator.dismiss_all(tenant_id)
    return UpdateActionResponse(success=True, updated=count)


@router.post("/{item_id}/read", response_model=UpdateActionResponse)
async def mark_update_read(
    item_id: str,
    tenant_id: str = Depends(get_tenant_id),
    services: ServiceContainer = Depends(get_services),
):
    if not await services.aggregator.mark_read(tenant_id, item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Update not found")
    return UpdateActionResponse(success=True, updated=1)


@router.post("/{item_id}/dismiss", response_model=UpdateActionResponse)
async def dismiss_update(
    item_id: str,
    tenant_id: str = Depends(get_tenant_id),
    services: ServiceContainer = Depends(get_services),
):
    if not await services.aggregator.dismiss(tenant_id, item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Update not found")
    return UpdateActionResponse(success=True, updated=1)
