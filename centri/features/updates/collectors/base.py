from abc import ABC, abstractmethod

from centri.features.integrations.domain.models import Credential
from centri.features.updates.domain.models import UpdateCandidate


class CollectorError(Exception):
    """A source could not be read at all during this refresh."""

    def __init__(self, message: str, source: str | None = None):
        super().__init__(message)
        self.source = source


class UpdateCollector(ABC):
    """
    One feed source.

    `source` is the name reported in source checks and stored on items;
    `provider` is the integration whose credential the collector needs, or
    None for sources that only read local storage.
    """

    source: str = ""
    provider: str | None = None

    @abstractmethod
    async def collect(self, tenant_id: str, credential: Credential | None) -> list[UpdateCandidate]:
        """Return candidates for this source; raise to mark the source as errored."""
