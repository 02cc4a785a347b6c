"""
Lookup table from provider key to adapter instance.

Built once at startup (or per test) and passed into the services that need
it; nothing here is module-global mutable state.
"""

from collections.abc import Iterable

from centri.config import Settings
from centri.features.integrations.providers.base import ProviderAdapter
from centri.features.integrations.providers.clickup import ClickUpAdapter
from centri.features.integrations.providers.fathom import FathomAdapter
from centri.features.integrations.providers.github import GitHubAdapter
from centri.features.integrations.providers.gmail import GmailAdapter
from centri.features.integrations.providers.google_calendar import GoogleCalendarAdapter
from centri.features.integrations.providers.google_chat import GoogleChatAdapter
from centri.features.integrations.providers.google_drive import GoogleDriveAdapter
from centri.features.integrations.providers.jira import JiraAdapter
from centri.features.integrations.providers.notion import NotionAdapter
from centri.features.integrations.providers.slack import SlackAdapter
from centri.features.integrations.providers.zoom import ZoomAdapter

DEFAULT_ADAPTERS: tuple[type[ProviderAdapter], ...] = (
    GoogleCalendarAdapter,
    GmailAdapter,
    SlackAdapter,
    GoogleChatAdapter,
    GitHubAdapter,
    JiraAdapter,
    ClickUpAdapter,
    NotionAdapter,
    GoogleDriveAdapter,
    ZoomAdapter,
    FathomAdapter,
)


class UnknownProviderError(KeyError):
    """Raised for a provider key with no registered adapter."""

    def __init__(self, provider: str):
        super().__init__(provider)
        self.provider = provider

    def __str__(self) -> str:
        return f"Unknown provider: {self.provider}"


class ProviderRegistry:
    def __init__(self, adapters: Iterable[ProviderAdapter]):
        self._adapters = {adapter.name: adapter for adapter in adapters}

    def get(self, provider: str) -> ProviderAdapter:
        try:
            return self._adapters[provider]
        except KeyError:
            raise UnknownProviderError(provider) from None

    def has(self, provider: str) -> bool:
        return provider in self._adapters

    def names(self) -> list[str]:
        return list(self._adapters)


def build_default_registry(config: Settings | None = None) -> ProviderRegistry:
    return ProviderRegistry(adapter_cls(config) for adapter_cls in DEFAULT_ADAPTERS)
