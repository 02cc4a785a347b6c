"""
Repositories for the updates feature.
"""

from .reminder_repository import ReminderRepository
from .update_repository import UpdateRepository

__all__ = ["ReminderRepository", "UpdateRepository"]
