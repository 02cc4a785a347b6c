"""
Provider adapter base class and error taxonomy.

Every concrete provider translates its own wire format into a SyncResult.
Adapters hold no per-tenant state: the credential is passed into each call
and discarded when it returns.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import httpx

from centri.config import Settings, settings
from centri.features.integrations.domain.models import Credential, SyncResult
from centri.infrastructure.observability.logging import get_logger, log_provider_call

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}
AUTH_STATUS_CODES = {401, 403}


class ProviderError(Exception):
    """Base exception for provider API errors."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        recoverable: bool = True,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.recoverable = recoverable
        self.response_data = response_data or {}


class ProviderAuthError(ProviderError):
    """Credential rejected (401/403-class); needs refresh or reconnect."""

    def __init__(self, message: str, provider: str | None = None, status_code: int | None = 401):
        super().__init__(message, provider=provider, status_code=status_code, recoverable=False)


class ProviderTransientError(ProviderError):
    """Timeouts, rate limits and 5xx; retried by the next scheduled sync."""


class ProviderConfigError(ProviderError):
    """OAuth client id/secret missing, or a capability the provider lacks."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message, provider=provider, recoverable=False)


class ProviderAdapter(ABC):
    """
    Capability set shared by all providers.

    Subclasses declare their OAuth endpoints and settings names, and
    implement sync_data. Providers whose tokens can be refreshed set
    supports_refresh and inherit the standard refresh_token grant.
    """

    name: str = ""
    auth_url: str = ""
    token_url: str = ""
    api_base_url: str = ""
    scopes: list[str] = []
    scope_separator: str = " "
    client_id_setting: str = ""
    client_secret_setting: str = ""
    supports_refresh: bool = False
    extra_auth_params: dict[str, str] = {}

    def __init__(self, config: Settings | None = None):
        self.config = config or settings

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    @property
    def client_id(self) -> str:
        value = getattr(self.config, self.client_id_setting, None)
        if not value:
            raise ProviderConfigError(f"{self.client_id_setting} not configured", self.name)
        return value

    @property
    def client_secret(self) -> str:
        value = getattr(self.config, self.client_secret_setting, None)
        if not value:
            raise ProviderConfigError(f"{self.client_secret_setting} not configured", self.name)
        return value

    def get_auth_url(self, redirect_uri: str, state: str | None = None) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
        }
        if self.scopes:
            params["scope"] = self.scope_separator.join(self.scopes)
        if state:
            params["state"] = state
        params.update(self.extra_auth_params)
        return f"{self.auth_url}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> Credential:
        data = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            }
        )
        return self._credential_from_token_response(data)

    async def refresh_credential(self, refresh_token: str) -> Credential:
        if not self.supports_refresh:
            raise ProviderConfigError(f"{self.name} does not support token refresh", self.name)
        data = await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )
        return self._credential_from_token_response(data)

    def _credential_from_token_response(self, data: dict[str, Any]) -> Credential:
        try:
            return Credential.from_token_response(data)
        except ValueError as e:
            raise ProviderAuthError(f"Token response rejected: {e}", self.name) from e

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        """POST to the token endpoint with client credentials in the form body."""
        body = {**form, "client_id": self.client_id, "client_secret": self.client_secret}
        async with self._create_client() as client:
            try:
                response = await client.post(
                    self.token_url, data=body, headers={"Accept": "application/json"}
                )
            except httpx.TimeoutException as e:
                raise ProviderTransientError("Token endpoint timed out", self.name) from e
            except httpx.RequestError as e:
                raise ProviderTransientError(f"Token endpoint unreachable: {e}", self.name) from e
        if response.status_code in (400, 401):
            raise ProviderAuthError(
                "Authorization rejected by provider. Please reconnect",
                self.name,
                status_code=response.status_code,
            )
        return self._handle_api_response(response, "token")

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    @abstractmethod
    async def sync_data(self, tenant_id: str, credential: Credential) -> SyncResult:
        """Fetch and normalize this provider's data for one tenant."""

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self.config.PROVIDER_REQUEST_TIMEOUT_SECONDS)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    def _get_auth_headers(self, credential: Credential) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credential.access_token}",
            "Accept": "application/json",
        }

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.api_base_url}{path}"

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        credential: Credential,
        *,
        operation: str,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """
        Issue one authenticated API call and return the decoded body.

        Raises:
            ProviderAuthError: 401/403
            ProviderTransientError: timeout, network error, 429 or 5xx
            ProviderError: any other non-success status
        """
        request_headers = self._get_auth_headers(credential)
        if headers:
            request_headers.update(headers)

        start = time.perf_counter()
        try:
            response = await client.request(
                method, self._url(path), params=params, json=json, headers=request_headers
            )
        except httpx.TimeoutException as e:
            log_provider_call(self.name, operation, False, _elapsed_ms(start), "timeout")
            raise ProviderTransientError(f"{operation} timed out", self.name) from e
        except httpx.RequestError as e:
            log_provider_call(self.name, operation, False, _elapsed_ms(start), str(e))
            raise ProviderTransientError(f"{operation} request failed: {e}", self.name) from e

        log_provider_call(self.name, operation, response.is_success, _elapsed_ms(start))
        return self._handle_api_response(response, operation)

    async def _get(self, client, path: str, credential: Credential, *, operation: str, **kwargs):
        return await self._request(client, "GET", path, credential, operation=operation, **kwargs)

    async def _safe_get(
        self,
        client: httpx.AsyncClient,
        result: SyncResult,
        path: str,
        credential: Credential,
        *,
        operation: str,
        **kwargs,
    ) -> Any | None:
        """
        GET that records transient failures on the SyncResult instead of raising.

        Auth failures still propagate so the orchestrator can refresh or flag
        the integration.
        """
        try:
            return await self._get(client, path, credential, operation=operation, **kwargs)
        except ProviderAuthError:
            raise
        except ProviderError as e:
            logger.warning(
                "Provider section failed, continuing with partial data",
                provider=self.name,
                operation=operation,
                status_code=e.status_code,
                error=str(e),
            )
            result.add_error(operation, e)
            return None

    def _handle_api_response(self, response: httpx.Response, operation: str) -> Any:
        if response.is_success:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise ProviderError(
                    f"Invalid response format from {operation}: {e}",
                    self.name,
                    status_code=response.status_code,
                ) from e

        status = response.status_code
        try:
            error_data = response.json() if response.content else {}
        except ValueError:
            error_data = {"raw": response.text[:200]}
        if not isinstance(error_data, dict):
            error_data = {"raw": error_data}

        if status in AUTH_STATUS_CODES:
            raise ProviderAuthError(
                f"{self.name} authorization expired. Please reconnect", self.name, status
            )
        if status in TRANSIENT_STATUS_CODES:
            raise ProviderTransientError(
                f"{self.name} {operation} temporarily unavailable ({status})",
                self.name,
                status_code=status,
                response_data=error_data,
            )
        raise ProviderError(
            f"{self.name} {operation} failed ({status})",
            self.name,
            status_code=status,
            recoverable=False,
            response_data=error_data,
        )


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def skip_malformed(provider: str, record_kind: str, record: Any, error: Exception) -> None:
    """Log a record that could not be normalized; the caller moves on to the next one."""
    record_id = record.get("id") if isinstance(record, dict) else None
    logger.warning(
        "Skipping malformed record",
        provider=provider,
        record_kind=record_kind,
        record_id=record_id,
        error=str(error),
        error_type=type(error).__name__,
    )
