"""
Job runners for the integrations feature.
"""

from .sync_job import SyncJob, start_sync_scheduler

__all__ = ["SyncJob", "start_sync_scheduler"]
