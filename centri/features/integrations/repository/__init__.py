"""
Repositories for the integrations feature.
"""

from .integration_repository import IntegrationRepository
from .sync_repository import SyncRepository

__all__ = ["IntegrationRepository", "SyncRepository"]
