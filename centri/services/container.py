"""
Wiring for the feature services.

Built once at startup and stored on `app.state.services`; the worker
builds its own. Routes reach it through `get_services`, which tests
replace with a container of fakes.
"""

from dataclasses import dataclass

from fastapi import Request

from centri.config import Settings, settings
from centri.features.integrations.providers.github import GitHubAdapter
from centri.features.integrations.providers.gmail import GmailAdapter
from centri.features.integrations.providers.google_calendar import GoogleCalendarAdapter
from centri.features.integrations.providers.registry import (
    ProviderRegistry,
    build_default_registry,
)
from centri.features.integrations.providers.slack import SlackAdapter
from centri.features.integrations.repository.integration_repository import IntegrationRepository
from centri.features.integrations.repository.sync_repository import SyncRepository
from centri.features.integrations.services.classification_service import ClassificationService
from centri.features.integrations.services.credential_service import CredentialService
from centri.features.integrations.services.meeting_analysis_service import MeetingAnalysisService
from centri.features.integrations.services.sync_service import SyncService
from centri.features.updates.collectors.calendar import CalendarCollector
from centri.features.updates.collectors.chat import ChatCollector
from centri.features.updates.collectors.code_hosting import CodeHostingCollector
from centri.features.updates.collectors.mail import MailCollector
from centri.features.updates.collectors.reminders import ReminderCollector
from centri.features.updates.repository.reminder_repository import ReminderRepository
from centri.features.updates.repository.update_repository import UpdateRepository
from centri.features.updates.services.aggregator_service import UpdateAggregatorService
from centri.features.updates.services.notification_service import NotificationService
from centri.services.openai_service import TextGenerationService
from centri.services.redis_client import fast_redis


@dataclass(slots=True)
class ServiceContainer:
    registry: ProviderRegistry
    credentials: CredentialService
    classifier: ClassificationService
    aggregator: UpdateAggregatorService
    analysis: MeetingAnalysisService
    sync: SyncService


def build_services(config: Settings | None = None) -> ServiceContainer:
    config = config or settings
    registry = build_default_registry(config)
    integrations = IntegrationRepository()
    records = SyncRepository()
    text_generation = TextGenerationService()

    credentials = CredentialService(integrations, registry, config)
    classifier = ClassificationService(text_generation)
    aggregator = UpdateAggregatorService(
        UpdateRepository(),
        credentials,
        collectors=[
            MailCollector(_adapter(registry, "gmail", GmailAdapter), config),
            ChatCollector(_adapter(registry, "slack", SlackAdapter), config),
            CodeHostingCollector(_adapter(registry, "github", GitHubAdapter)),
            CalendarCollector(_adapter(registry, "google", GoogleCalendarAdapter), config),
            ReminderCollector(ReminderRepository()),
        ],
        notifications=NotificationService(),
        config=config,
    )
    analysis = MeetingAnalysisService(records, text_generation)
    sync = SyncService(
        integrations,
        records,
        credentials,
        registry,
        classifier,
        aggregator,
        analysis=analysis,
        locks=fast_redis,
        config=config,
    )
    return ServiceContainer(
        registry=registry,
        credentials=credentials,
        classifier=classifier,
        aggregator=aggregator,
        analysis=analysis,
        sync=sync,
    )


def _adapter(registry: ProviderRegistry, name: str, expected: type):
    adapter = registry.get(name)
    if not isinstance(adapter, expected):
        raise TypeError(f"Provider '{name}' is not a {expected.__name__}")
    return adapter


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services
