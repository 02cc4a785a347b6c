"""
Integration and sync routes.

Thin layer over the services container: every handler resolves the
tenant from the bearer token and delegates.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from centri.auth.verify import get_tenant_id
from centri.features.integrations.providers.base import ProviderConfigError, ProviderError
from centri.features.integrations.providers.registry import UnknownProviderError
from centri.features.integrations.services.credential_service import CredentialError
from centri.infrastructure.observability.logging import get_logger
from centri.models.api.integration_request import ClassifyEventRequest
from centri.models.api.integration_response import (
    ClassificationResponse,
    ConnectURLResponse,
    DisconnectResponse,
    IntegrationCallbackResponse,
    IntegrationListResponse,
    IntegrationStatus,
    SyncResponse,
)
from centri.services.container import ServiceContainer, get_services

logger = get_logger(__name__)

router = APIRouter(prefix="/integrations", tags=["integrations"])
sync_router = APIRouter(tags=["sync"])


def _unknown_provider(e: UnknownProviderError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@sync_router.post("/sync", response_model=SyncResponse)
async def sync_integrations(
    provider: str | None = Query(default=None, description="Sync only this provider"),
    tenant_id: str = Depends(get_tenant_id),
    services: ServiceContainer = Depends(get_services),
):
    """
    Run a sync pass for the tenant.

    Partial failures are reported per provider in the body; the request
    itself only fails for an unknown provider name.
    """
    try:
        summary = await services.sync.sync(tenant_id, provider)
    except UnknownProviderError as e:
        raise _unknown_provider(e) from None
    return summary.to_dict()


@router.post("/classify", response_model=ClassificationResponse)
async def classify_event(
    request: ClassifyEventRequest,
    tenant_id: str = Depends(get_tenant_id),
    services: ServiceContainer = Depends(get_services),
):
    result = await services.classifier.classify(request.to_context())
    return result.to_dict()


@router.get("", response_model=IntegrationListResponse)
async def list_integrations(
    tenant_id: str = Depends(get_tenant_id),
    services: ServiceContainer = Depends(get_services),
):
    records = await services.credentials.list_integrations(tenant_id)
    return IntegrationListResponse(
        integrations=[
            IntegrationStatus(
                provider=record.provider,
                needs_reconnect=record.needs_reconnect,
                last_error=record.last_error,
                last_synced_at=record.last_synced_at,
                expires_at=record.expires_at,
            )
            for record in records
        ]
    )


@router.get("/{provider}/connect-url", response_model=ConnectURLResponse)
async def get_connect_url(
    provider: str,
    tenant_id: str = Depends(get_tenant_id),
    services: ServiceContainer = Depends(get_services),
):
    try:
        auth_url = services.credentials.get_connect_url(tenant_id, provider)
    except UnknownProviderError as e:
        raise _unknown_provider(e) from None
    except ProviderConfigError as e:
        logger.error("Provider OAuth not configured", provider=provider, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{provider} integration is not configured",
        ) from None

    logger.info("Integration connect URL generated", tenant_id=tenant_id, provider=provider)
    return ConnectURLResponse(provider=provider, auth_url=auth_url)


@router.get("/{provider}/callback", response_model=IntegrationCallbackResponse)
async def oauth_callback(
    provider: str,
    code: str = Query(..., min_length=1),
    state: str = Query(..., min_length=1),
    services: ServiceContainer = Depends(get_services),
):
    """
    OAuth redirect target. Unauthenticated: the tenant comes from the
    encrypted state issued by connect-url.
    """
    try:
        record = await services.credentials.handle_callback(provider, code, state)
    except UnknownProviderError as e:
        raise _unknown_provider(e) from None
    except CredentialError as e:
        logger.warning("OAuth callback rejected", provider=provider, error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None
    except ProviderError as e:
        logger.error(
            "OAuth code exchange failed",
            provider=provider,
            error=str(e),
            status_code=e.status_code,
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Could not complete {provider} connection",
        ) from None

    return IntegrationCallbackResponse(
        success=True,
        provider=record.provider,
        message=f"{provider} connected",
    )


@router.delete("/{provider}", response_model=DisconnectResponse)
async def disconnect_integration(
    provider: str,
    tenant_id: str = Depends(get_tenant_id),
    services: ServiceContainer = Depends(get_services),
):
    disconnected = await services.credentials.disconnect(tenant_id, provider)
    if not disconnected:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"{provider} is not connected"
        )
    return DisconnectResponse(provider=provider, disconnected=True)
