"""
Tests for credential storage, refresh-before-expiry and the OAuth state round trip.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest

from centri.config import Settings
from centri.features.integrations.domain.models import Credential
from centri.features.integrations.providers.base import (
    ProviderConfigError,
    ProviderTransientError,
)
from centri.features.integrations.providers.github import GitHubAdapter
from centri.features.integrations.providers.registry import ProviderRegistry
from centri.features.integrations.services.credential_service import (
    CredentialError,
    CredentialService,
    ReconnectRequiredError,
)
from tests.conftest import TENANT_ID, FakeAdapter

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


class TestCredential:
    def test_from_token_response(self):
        credential = Credential.from_token_response(
            {
                "access_token": "at",
                "refresh_token": "rt",
                "expires_in": 3600,
                "scope": "repo",
                "token_type": "bearer",
                "team": {"id": "T1"},
            },
            now=NOW,
        )

        assert credential.expires_at == NOW + timedelta(hours=1)
        assert credential.extra == {"team": {"id": "T1"}}

    def test_token_response_without_access_token(self):
        with pytest.raises(ValueError):
            Credential.from_token_response({"error": "bad_verification_code"})

    def test_round_trips_through_dict(self):
        credential = Credential("at", "rt", expires_at=NOW, extra={"team": "T1"})
        assert Credential.from_dict(credential.to_dict()) == credential

    def test_expires_within(self):
        credential = Credential("at", expires_at=NOW + timedelta(seconds=30))

        assert credential.expires_within(60, now=NOW) is True
        assert credential.expires_within(10, now=NOW) is False
        assert Credential("at").expires_within(60, now=NOW) is False

    def test_merge_keeps_refresh_token_when_none_issued(self):
        old = Credential("old", "rt", scope="repo", extra={"a": 1})
        merged = old.merged_with(Credential("new", extra={"b": 2}))

        assert merged.access_token == "new"
        assert merged.refresh_token == "rt"
        assert merged.scope == "repo"
        assert merged.extra == {"a": 1, "b": 2}


@pytest.fixture
def adapter():
    return FakeAdapter("github", refreshed=Credential("fresh", expires_at=NOW + timedelta(days=1)))


@pytest.fixture
def service(encryption_key, integration_repo, adapter):
    return CredentialService(integration_repo, ProviderRegistry([adapter]))


@pytest.mark.asyncio
async def test_saved_credential_is_encrypted_at_rest(service, integration_repo):
    await service.save_tokens(TENANT_ID, "github", Credential("secret-token", "rt"))

    record = integration_repo.rows[(TENANT_ID, "github")]
    assert b"secret-token" not in record.credential_encrypted
    assert (await service.get_decrypted_token(TENANT_ID, "github")).access_token == "secret-token"


@pytest.mark.asyncio
async def test_missing_integration_returns_none(service):
    assert await service.get_decrypted_token(TENANT_ID, "github") is None
    assert await service.get_valid_credential(TENANT_ID, "github") is None


@pytest.mark.asyncio
async def test_expiring_credential_is_refreshed(service):
    soon = datetime.now(UTC) + timedelta(seconds=30)
    await service.save_tokens(TENANT_ID, "github", Credential("old", "rt", expires_at=soon))

    credential = await service.get_valid_credential(TENANT_ID, "github")

    assert credential.access_token == "fresh"
    assert credential.refresh_token == "rt"
    assert (await service.get_decrypted_token(TENANT_ID, "github")).access_token == "fresh"


@pytest.mark.asyncio
async def test_credential_far_from_expiry_is_not_refreshed(service, adapter):
    later = datetime.now(UTC) + timedelta(hours=1)
    await service.save_tokens(TENANT_ID, "github", Credential("current", "rt", expires_at=later))
    adapter.refresh_credential = AsyncMock()

    credential = await service.get_valid_credential(TENANT_ID, "github")

    assert credential.access_token == "current"
    adapter.refresh_credential.assert_not_awaited()


@pytest.mark.asyncio
async def test_transient_refresh_failure_keeps_current_token(service, adapter):
    soon = datetime.now(UTC) + timedelta(seconds=10)
    await service.save_tokens(TENANT_ID, "github", Credential("current", "rt", expires_at=soon))
    adapter.refreshed = ProviderTransientError("token endpoint timed out", "github")

    credential = await service.get_valid_credential(TENANT_ID, "github")

    assert credential.access_token == "current"


@pytest.mark.asyncio
async def test_refresh_without_refresh_token_requires_reconnect(service):
    with pytest.raises(ReconnectRequiredError) as exc_info:
        await service.refresh_tokens(TENANT_ID, "github", Credential("at"))

    assert exc_info.value.recoverable is False
    assert exc_info.value.provider == "github"


@pytest.mark.asyncio
async def test_rejected_refresh_requires_reconnect(service, adapter):
    adapter.refreshed = ProviderConfigError("GITHUB_CLIENT_ID not configured", "github")

    with pytest.raises(ReconnectRequiredError):
        await service.refresh_tokens(TENANT_ID, "github", Credential("at", "rt"))


@pytest.mark.asyncio
async def test_unreadable_blob_requires_reconnect(service, integration_repo):
    await service.save_tokens(TENANT_ID, "github", Credential("at"))
    integration_repo.rows[(TENANT_ID, "github")].credential_encrypted = b"garbage"

    with pytest.raises(ReconnectRequiredError):
        await service.get_decrypted_token(TENANT_ID, "github")


@pytest.mark.asyncio
async def test_mark_reconnect_and_disconnect(service, integration_repo):
    await service.save_tokens(TENANT_ID, "github", Credential("at"))

    await service.mark_reconnect_required(TENANT_ID, "github", "Refresh rejected")
    assert integration_repo.rows[(TENANT_ID, "github")].needs_reconnect is True

    assert await service.disconnect(TENANT_ID, "github") is True
    assert await service.disconnect(TENANT_ID, "github") is False
    assert await service.list_integrations(TENANT_ID) == []


class TestOAuthRoundTrip:
    @pytest.fixture
    def github(self):
        config = Settings(GITHUB_CLIENT_ID="client-id", GITHUB_CLIENT_SECRET="client-secret")
        adapter = GitHubAdapter(config)
        adapter.exchange_code = AsyncMock(return_value=Credential("oauth-token", "rt"))
        return adapter

    @pytest.fixture
    def oauth_service(self, encryption_key, integration_repo, github):
        return CredentialService(integration_repo, ProviderRegistry([github]))

    def _state(self, url):
        return parse_qs(urlparse(url).query)["state"][0]

    @pytest.mark.asyncio
    async def test_callback_saves_tokens_for_state_owner(self, oauth_service, github):
        url = oauth_service.get_connect_url(TENANT_ID, "github")

        assert url.startswith("https://github.com/login/oauth/authorize?")
        assert "client_id=client-id" in url

        record = await oauth_service.handle_callback("github", "the-code", self._state(url))

        assert record.user_id == TENANT_ID
        github.exchange_code.assert_awaited_once_with(
            "the-code", "http://localhost:8000/integrations/github/callback"
        )
        stored = await oauth_service.get_decrypted_token(TENANT_ID, "github")
        assert stored.access_token == "oauth-token"

    @pytest.mark.asyncio
    async def test_tampered_state_is_rejected(self, oauth_service, github):
        with pytest.raises(CredentialError):
            await oauth_service.handle_callback("github", "the-code", "not-a-state")
        github.exchange_code.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_state_for_another_provider_is_rejected(
        self, encryption_key, integration_repo, github
    ):
        slack = FakeAdapter("slack")
        service = CredentialService(integration_repo, ProviderRegistry([github, slack]))
        state = self._state(service.get_connect_url(TENANT_ID, "github"))

        with pytest.raises(CredentialError):
            await service.handle_callback("slack", "the-code", state)

    def test_missing_client_config_is_reported(self, encryption_key, integration_repo):
        adapter = GitHubAdapter(Settings(GITHUB_CLIENT_ID=None))
        service = CredentialService(integration_repo, ProviderRegistry([adapter]))

        with pytest.raises(ProviderConfigError):
            service.get_connect_url(TENANT_ID, "github")
