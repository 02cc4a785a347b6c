"""
Credential provider for integrations.

Owns the encrypted credential blob on each integrations row: OAuth
connect/callback, decryption for the duration of one adapter call, and
refresh-before-expiry. Decrypted credentials are returned to the caller
and never cached here.
"""

import secrets
from datetime import UTC, datetime

from centri.config import Settings, settings
from centri.features.integrations.domain.models import Credential, IntegrationRecord
from centri.features.integrations.providers.base import (
    ProviderAuthError,
    ProviderConfigError,
    ProviderError,
)
from centri.features.integrations.providers.registry import ProviderRegistry
from centri.features.integrations.repository.integration_repository import IntegrationRepository
from centri.infrastructure.observability.logging import get_logger
from centri.services.infrastructure.encryption_service import (
    EncryptionError,
    decrypt_credential,
    encrypt_credential,
)

logger = get_logger(__name__)

# Refresh credentials expiring within this many seconds
REFRESH_BUFFER_SECONDS = 60
OAUTH_STATE_MAX_AGE_SECONDS = 600


class CredentialError(Exception):
    """Custom exception for credential operations."""

    def __init__(
        self,
        message: str,
        user_id: str | None = None,
        provider: str | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.user_id = user_id
        self.provider = provider
        self.recoverable = recoverable


class ReconnectRequiredError(CredentialError):
    """The stored credential can't be used or refreshed; the user must reconnect."""

    def __init__(self, message: str, user_id: str | None = None, provider: str | None = None):
        super().__init__(message, user_id=user_id, provider=provider, recoverable=False)


class CredentialService:
    def __init__(
        self,
        integrations: IntegrationRepository,
        registry: ProviderRegistry,
        config: Settings | None = None,
    ):
        self.integrations = integrations
        self.registry = registry
        self.config = config or settings

    async def get_decrypted_token(self, user_id: str, provider: str) -> Credential | None:
        """
        Load and decrypt the credential for (user, provider).

        Returns:
            Credential, or None when the provider isn't connected

        Raises:
            ReconnectRequiredError: The stored blob can't be decrypted or parsed
        """
        record = await self.integrations.get(user_id, provider)
        if not record:
            return None
        return self._decrypt(record)

    def _decrypt(self, record: IntegrationRecord) -> Credential:
        try:
            return Credential.from_dict(decrypt_credential(record.credential_encrypted))
        except (EncryptionError, ValueError) as e:
            logger.error(
                "Stored credential unreadable",
                user_id=record.user_id,
                provider=record.provider,
                error=str(e),
            )
            raise ReconnectRequiredError(
                "Stored credential is unreadable", record.user_id, record.provider
            ) from e

    async def save_tokens(
        self, user_id: str, provider: str, credential: Credential
    ) -> IntegrationRecord:
        """Encrypt and upsert the credential; a fresh save clears any reconnect flag."""
        record = await self.integrations.upsert(
            user_id,
            provider,
            encrypt_credential(credential.to_dict()),
            credential.expires_at,
        )
        logger.info(
            "Integration credential saved",
            user_id=user_id,
            provider=provider,
            has_refresh_token=bool(credential.refresh_token),
        )
        return record

    async def refresh_tokens(self, user_id: str, provider: str, credential: Credential) -> Credential:
        """
        Exchange the refresh token for a new credential and persist it.

        Raises:
            ReconnectRequiredError: No refresh token, no refresh handler for
                this provider, or the provider rejected the refresh
            ProviderError: Transient provider failure during refresh
        """
        adapter = self.registry.get(provider)
        if not credential.refresh_token or not adapter.supports_refresh:
            raise ReconnectRequiredError("Credential can't be refreshed automatically", user_id, provider)

        try:
            refreshed = await adapter.refresh_credential(credential.refresh_token)
        except (ProviderAuthError, ProviderConfigError) as e:
            logger.warning("Credential refresh rejected", user_id=user_id, provider=provider, error=str(e))
            raise ReconnectRequiredError(f"Refresh rejected: {e}", user_id, provider) from e

        merged = credential.merged_with(refreshed)
        await self.save_tokens(user_id, provider, merged)
        logger.info("Credential refreshed", user_id=user_id, provider=provider)
        return merged

    async def get_valid_credential(self, user_id: str, provider: str) -> Credential | None:
        """
        Credential ready for an adapter call, refreshed first if it expires within 60 s.

        A transient failure while refreshing returns the current credential;
        the adapter call then decides whether it is still accepted.
        """
        credential = await self.get_decrypted_token(user_id, provider)
        if credential is None:
            return None
        if not credential.expires_within(REFRESH_BUFFER_SECONDS):
            return credential
        if not credential.refresh_token or not self.registry.get(provider).supports_refresh:
            return credential

        try:
            return await self.refresh_tokens(user_id, provider, credential)
        except ReconnectRequiredError:
            raise
        except ProviderError as e:
            logger.warning(
                "Credential refresh failed, using current token",
                user_id=user_id,
                provider=provider,
                error=str(e),
            )
            return credential

    async def mark_reconnect_required(self, user_id: str, provider: str, reason: str) -> None:
        await self.integrations.mark_reconnect_required(user_id, provider, reason)
        logger.warning("Integration needs reconnect", user_id=user_id, provider=provider, reason=reason)

    async def disconnect(self, user_id: str, provider: str) -> bool:
        deleted = await self.integrations.delete(user_id, provider)
        logger.info("Integration disconnected", user_id=user_id, provider=provider, deleted=deleted)
        return deleted

    async def list_integrations(self, user_id: str) -> list[IntegrationRecord]:
        return await self.integrations.list_for_user(user_id)

    # ------------------------------------------------------------------
    # OAuth round-trip
    # ------------------------------------------------------------------

    def get_connect_url(self, user_id: str, provider: str) -> str:
        adapter = self.registry.get(provider)
        state = self._encode_state(user_id, provider)
        return adapter.get_auth_url(self.config.oauth_redirect_uri(provider), state=state)

    async def handle_callback(self, provider: str, code: str, state: str) -> IntegrationRecord:
        """
        Complete the OAuth flow: validate state, exchange the code, save tokens.

        Raises:
            CredentialError: Invalid or expired state
            ProviderError: Code exchange failed
        """
        user_id = self._decode_state(state, provider)
        adapter = self.registry.get(provider)
        credential = await adapter.exchange_code(code, self.config.oauth_redirect_uri(provider))
        return await self.save_tokens(user_id, provider, credential)

    def _encode_state(self, user_id: str, provider: str) -> str:
        payload = {
            "user_id": user_id,
            "provider": provider,
            "issued_at": int(datetime.now(UTC).timestamp()),
            "nonce": secrets.token_urlsafe(8),
        }
        return encrypt_credential(payload).decode("ascii")

    def _decode_state(self, state: str, provider: str) -> str:
        try:
            payload = decrypt_credential(state.encode("ascii"))
        except (EncryptionError, UnicodeEncodeError) as e:
            raise CredentialError("Invalid OAuth state", provider=provider, recoverable=False) from e

        age = int(datetime.now(UTC).timestamp()) - int(payload.get("issued_at", 0))
        if payload.get("provider") != provider or age > OAUTH_STATE_MAX_AGE_SECONDS:
            raise CredentialError("OAuth state expired or mismatched", provider=provider, recoverable=False)
        return payload["user_id"]
