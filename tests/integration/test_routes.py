"""
HTTP-level tests for the sync, integrations and updates routes.

The app is exercised without its lifespan: the services container is
assembled from in-memory fakes and set on app.state directly.
"""

import asyncio
from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from centri.features.integrations.domain.models import Credential, NormalizedEmail, SyncResult
from centri.features.integrations.providers.registry import ProviderRegistry
from centri.features.integrations.services.classification_service import ClassificationService
from centri.features.integrations.services.credential_service import CredentialService
from centri.features.integrations.services.meeting_analysis_service import MeetingAnalysisService
from centri.features.integrations.services.sync_service import SyncService
from centri.features.updates.collectors.reminders import ReminderCollector
from centri.features.updates.domain.models import UpdateCandidate
from centri.features.updates.services.aggregator_service import UpdateAggregatorService
from centri.main import app
from centri.services.container import ServiceContainer
from tests.conftest import TENANT_ID, FakeAdapter, FakeLocks, FakeReminderRepository

EMAIL = NormalizedEmail(
    message_id="msg-1",
    subject="Please review the board deck",
    sender="Dana Lee <dana@acme.com>",
    received_at=datetime(2026, 10, 18, 8, 0, tzinfo=UTC),
    labels=["INBOX", "UNREAD"],
)


@pytest.fixture
def services(encryption_key, integration_repo, sync_repo, update_repo):
    registry = ProviderRegistry(
        [FakeAdapter("gmail", SyncResult(emails=[EMAIL])), FakeAdapter("slack", SyncResult())]
    )
    credentials = CredentialService(integration_repo, registry)
    classifier = ClassificationService(None)
    aggregator = UpdateAggregatorService(
        update_repo, credentials, collectors=[ReminderCollector(FakeReminderRepository())]
    )
    analysis = MeetingAnalysisService(sync_repo, None)
    sync = SyncService(
        integration_repo,
        sync_repo,
        credentials,
        registry,
        classifier,
        aggregator,
        analysis=analysis,
        locks=FakeLocks(),
    )
    return ServiceContainer(
        registry=registry,
        credentials=credentials,
        classifier=classifier,
        aggregator=aggregator,
        analysis=analysis,
        sync=sync,
    )


@pytest.fixture
def client(services, apply_auth_override):
    app.state.services = services
    apply_auth_override(app)
    yield TestClient(app)
    app.dependency_overrides.clear()


async def _connect_gmail(services):
    await services.credentials.save_tokens(TENANT_ID, "gmail", Credential(access_token="tok"))


@pytest.fixture
def connected(services):
    asyncio.run(_connect_gmail(services))
    return services


class TestSync:
    def test_sync_reports_each_provider(self, client, connected):
        response = client.post("/sync")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["tenant_id"] == TENANT_ID
        [gmail] = data["results"]
        assert gmail["provider"] == "gmail"
        assert gmail["status"] == "success"
        assert gmail["counts"]["emails"] == 1

        feed = client.get("/updates").json()
        assert feed["count"] == 1
        assert feed["items"][0]["external_id"] == "msg-1"
        assert feed["items"][0]["severity"] == "important"

    def test_sync_single_provider_not_connected(self, client, connected):
        response = client.post("/sync", params={"provider": "slack"})

        assert response.status_code == 200
        [result] = response.json()["results"]
        assert (result["status"], result["reason"]) == ("skipped", "not_connected")

    def test_sync_unknown_provider_is_404(self, client):
        response = client.post("/sync", params={"provider": "myspace"})
        assert response.status_code == 404

    def test_sync_requires_authentication(self, services):
        app.state.services = services
        response = TestClient(app).post("/sync")
        assert response.status_code in (401, 403)


class TestIntegrations:
    def test_classify_event(self, client):
        response = client.post(
            "/integrations/classify", json={"title": "Daily Standup", "duration_minutes": 15}
        )

        assert response.status_code == 200
        assert response.json() == {
            "type": "meeting",
            "confidence": 0.85,
            "reason": "Matched meeting keyword",
        }

    def test_classify_rejects_empty_title(self, client):
        response = client.post("/integrations/classify", json={"title": ""})
        assert response.status_code == 422

    def test_list_integrations(self, client, connected):
        response = client.get("/integrations")

        assert response.status_code == 200
        [integration] = response.json()["integrations"]
        assert integration["provider"] == "gmail"
        assert integration["needs_reconnect"] is False

    def test_connect_url_unknown_provider(self, client):
        assert client.get("/integrations/myspace/connect-url").status_code == 404

    def test_connect_url_unconfigured_provider(self, client):
        assert client.get("/integrations/gmail/connect-url").status_code == 503

    def test_callback_with_invalid_state(self, client):
        response = client.get(
            "/integrations/gmail/callback", params={"code": "abc", "state": "forged"}
        )
        assert response.status_code == 400

    def test_disconnect(self, client, connected):
        assert client.delete("/integrations/slack").status_code == 404

        response = client.delete("/integrations/gmail")

        assert response.status_code == 200
        assert response.json() == {"provider": "gmail", "disconnected": True}
        assert client.get("/integrations").json()["integrations"] == []


class TestUpdates:
    @pytest.fixture
    def seeded(self, services):
        now = datetime.now(UTC)
        candidates = [
            UpdateCandidate("github", "github_pr", "important", "PR opened: Billing", "e1", now),
            UpdateCandidate("github", "github_push", "info", "Push to dev", "e2", now),
            UpdateCandidate("gmail", "newsletter", "info", "Weekly digest", "n1", now),
        ]
        asyncio.run(services.aggregator.ingest(TENANT_ID, candidates))
        return services

    def test_refresh_reports_source_checks(self, client, seeded):
        response = client.post("/updates/refresh")

        assert response.status_code == 200
        data = response.json()
        assert data["source_checks"] == [
            {"source": "internal", "status": "checked_empty", "count": 0, "error": None}
        ]
        assert {item["external_id"] for item in data["items"]} == {"e1", "e2"}
        assert data["new_high_severity"] == 0

    def test_newsletters_listed_separately(self, client, seeded):
        data = client.get("/updates/newsletters").json()
        assert [item["external_id"] for item in data["items"]] == ["n1"]

    def test_read_and_dismiss(self, client, seeded):
        items = client.get("/updates").json()["items"]
        pr = next(item for item in items if item["external_id"] == "e1")

        assert client.post(f"/updates/{pr['id']}/read").json() == {"success": True, "updated": 1}
        assert client.post(f"/updates/{pr['id']}/dismiss").status_code == 200

        remaining = client.get("/updates").json()["items"]
        assert [item["external_id"] for item in remaining] == ["e2"]

    def test_unknown_item_is_404(self, client):
        assert client.post("/updates/missing/read").status_code == 404
        assert client.post("/updates/missing/dismiss").status_code == 404

    def test_dismiss_all(self, client, seeded):
        response = client.post("/updates/dismiss-all")

        assert response.json() == {"success": True, "updated": 3}
        assert client.get("/updates").json()["count"] == 0
