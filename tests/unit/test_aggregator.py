import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from centri.features.integrations.domain.models import Credential
from centri.features.integrations.providers.registry import ProviderRegistry
from centri.features.integrations.services.credential_service import CredentialService
from centri.features.updates.collectors.base import CollectorError, UpdateCollector
from centri.features.updates.domain.models import UpdateCandidate
from centri.features.updates.services.aggregator_service import UpdateAggregatorService
from centri.features.updates.services.notification_service import NotificationService
from tests.conftest import TENANT_ID, FakeAdapter

NOW = datetime.now(UTC)


def _candidate(external_id, severity="info", source="gmail", title="Hello", type_="email", when=NOW):
    return UpdateCandidate(
        source=source,
        type=type_,
        severity=severity,
        title=title,
        external_id=external_id,
        occurred_at=when,
    )


class StaticCollector(UpdateCollector):
    def __init__(self, source, provider, *batches, error=None):
        self.source = source
        self.provider = provider
        self.batches = list(batches)
        self.error = error
        self.credentials_seen = []

    async def collect(self, tenant_id, credential):
        self.credentials_seen.append(credential)
        if self.error:
            raise self.error
        return self.batches.pop(0) if len(self.batches) > 1 else self.batches[0]


@pytest.fixture
def credentials(encryption_key, integration_repo):
    registry = ProviderRegistry([FakeAdapter("gmail"), FakeAdapter("slack"), FakeAdapter("github")])
    return CredentialService(integration_repo, registry)


@pytest.fixture
def sender():
    return AsyncMock()


@pytest.fixture
def make_aggregator(update_repo, credentials, sender):
    def _make(*collectors):
        return UpdateAggregatorService(
            update_repo, credentials, collectors, notifications=NotificationService(sender)
        )

    return _make


async def _connect(credentials, *providers):
    for provider in providers:
        await credentials.save_tokens(TENANT_ID, provider, Credential(access_token=f"{provider}-tok"))


@pytest.mark.asyncio
async def test_refresh_dedups_and_preserves_flags(make_aggregator, credentials, update_repo):
    await _connect(credentials, "gmail")
    collector = StaticCollector(
        "gmail",
        "gmail",
        [_candidate("m1", title="Old subject"), _candidate("m1", title="Subject v2")],
        [_candidate("m1", title="Subject v3")],
    )
    aggregator = make_aggregator(collector)

    first = await aggregator.refresh_updates(TENANT_ID)
    [item] = first.items
    assert item.title == "Subject v2"
    await aggregator.mark_read(TENANT_ID, item.id)

    second = await aggregator.refresh_updates(TENANT_ID)

    [item] = second.items
    assert item.title == "Subject v3"
    assert item.is_read is True
    assert len(update_repo.for_user(TENANT_ID)) == 1
    assert collector.credentials_seen[0].access_token == "gmail-tok"


@pytest.mark.asyncio
async def test_high_severity_items_notified_once(make_aggregator, credentials, sender):
    await _connect(credentials, "gmail")
    aggregator = make_aggregator(
        StaticCollector("gmail", "gmail", [_candidate("m1", "urgent"), _candidate("m2", "info")])
    )

    first = await aggregator.refresh_updates(TENANT_ID)
    second = await aggregator.refresh_updates(TENANT_ID)

    assert first.new_high_severity == 1
    assert second.new_high_severity == 0
    sender.assert_awaited_once()
    tenant_id, items = sender.await_args.args
    assert tenant_id == TENANT_ID
    assert [c.external_id for c in items] == ["m1"]


@pytest.mark.asyncio
async def test_escalated_item_is_notified(make_aggregator, credentials, sender):
    await _connect(credentials, "gmail")
    aggregator = make_aggregator(
        StaticCollector("gmail", "gmail", [_candidate("m1", "info")], [_candidate("m1", "urgent")])
    )

    await aggregator.refresh_updates(TENANT_ID)
    result = await aggregator.refresh_updates(TENANT_ID)

    assert result.new_high_severity == 1
    assert result.items[0].severity == "urgent"


@pytest.mark.asyncio
async def test_failing_source_does_not_stop_others(make_aggregator, credentials, update_repo):
    await _connect(credentials, "gmail", "slack")
    aggregator = make_aggregator(
        StaticCollector("gmail", "gmail", [_candidate("m1")]),
        StaticCollector("slack", "slack", error=CollectorError("channel list failed", "slack")),
    )

    result = await aggregator.refresh_updates(TENANT_ID)
    checks = {c.source: c for c in result.source_checks}

    assert checks["gmail"].status == "checked_ok"
    assert checks["gmail"].count == 1
    assert checks["slack"].status == "error"
    assert checks["slack"].error == "channel list failed"
    assert [i.external_id for i in result.items] == ["m1"]


@pytest.mark.asyncio
async def test_source_statuses(make_aggregator, credentials):
    await _connect(credentials, "gmail")
    github = StaticCollector("github", "github", [_candidate("e1", source="github")])
    aggregator = make_aggregator(
        StaticCollector("gmail", "gmail", []),
        github,
        StaticCollector("internal", None, [_candidate("r1", source="internal")]),
    )

    result = await aggregator.refresh_updates(TENANT_ID)
    statuses = {c.source: c.status for c in result.source_checks}

    assert statuses == {
        "gmail": "checked_empty",
        "github": "not_connected",
        "internal": "checked_ok",
    }
    assert github.credentials_seen == []


@pytest.mark.asyncio
async def test_unreadable_credential_is_a_source_error(make_aggregator, credentials, integration_repo):
    await _connect(credentials, "gmail")
    integration_repo.rows[(TENANT_ID, "gmail")].credential_encrypted = b"not-a-token"
    aggregator = make_aggregator(StaticCollector("gmail", "gmail", [_candidate("m1")]))

    result = await aggregator.refresh_updates(TENANT_ID)

    assert result.source_checks[0].status == "error"
    assert result.items == []


@pytest.mark.asyncio
async def test_failed_notification_does_not_block_ingest(update_repo, credentials):
    sender = AsyncMock(side_effect=RuntimeError("smtp down"))
    aggregator = UpdateAggregatorService(
        update_repo, credentials, [], notifications=NotificationService(sender)
    )

    result = await aggregator.ingest(TENANT_ID, [_candidate("m1", "urgent")])

    assert result.notified == 0
    assert result.inserted == 1


@pytest.mark.asyncio
async def test_feed_excludes_newsletters_and_dismissed(make_aggregator, update_repo):
    aggregator = make_aggregator()
    await aggregator.ingest(
        TENANT_ID,
        [
            _candidate("m1"),
            _candidate("m2"),
            _candidate("n1", type_="newsletter"),
            _candidate("n2", type_="newsletter", when=NOW - timedelta(days=2)),
        ],
    )
    m2 = next(i for i in update_repo.for_user(TENANT_ID) if i.external_id == "m2")
    assert await aggregator.dismiss(TENANT_ID, m2.id) is True

    feed = await aggregator.list_feed(TENANT_ID)
    newsletters = await aggregator.list_newsletters(TENANT_ID)

    assert [i.external_id for i in feed] == ["m1"]
    assert [i.external_id for i in newsletters] == ["n1"]


@pytest.mark.asyncio
async def test_dismiss_all_and_unknown_item(make_aggregator):
    aggregator = make_aggregator()
    await aggregator.ingest(TENANT_ID, [_candidate("m1"), _candidate("m2")])

    assert await aggregator.dismiss_all(TENANT_ID) == 2
    assert await aggregator.list_feed(TENANT_ID) == []
    assert await aggregator.mark_read(TENANT_ID, "missing") is False


@pytest.mark.asyncio
async def test_overlapping_ingests_notify_once(update_repo, credentials):
    sent = []

    async def slow_sender(tenant_id, items):
        await asyncio.sleep(0)
        sent.append([c.external_id for c in items])

    aggregator = UpdateAggregatorService(
        update_repo, credentials, [], notifications=NotificationService(slow_sender)
    )

    results = await asyncio.gather(
        aggregator.ingest(TENANT_ID, [_candidate("m1", "urgent")]),
        aggregator.ingest(TENANT_ID, [_candidate("m1", "urgent")]),
    )

    assert sent == [["m1"]]
    assert sorted(r.notified for r in results) == [0, 1]
    assert len(update_repo.for_user(TENANT_ID)) == 1


@pytest.mark.asyncio
async def test_notification_follows_the_stored_write(make_aggregator, update_repo, sender):
    update_repo.upsert = AsyncMock(side_effect=RuntimeError("db down"))
    aggregator = make_aggregator()

    with pytest.raises(RuntimeError):
        await aggregator.ingest(TENANT_ID, [_candidate("m1", "urgent")])

    sender.assert_not_awaited()


@pytest.mark.asyncio
async def test_downgraded_then_escalated_item_notifies_again(make_aggregator, sender):
    aggregator = make_aggregator()

    await aggregator.ingest(TENANT_ID, [_candidate("m1", "urgent")])
    await aggregator.ingest(TENANT_ID, [_candidate("m1", "info")])
    again = await aggregator.ingest(TENANT_ID, [_candidate("m1", "urgent")])

    assert again.notified == 1
    assert sender.await_count == 2
