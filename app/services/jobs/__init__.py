"""
Background Job Queue
Dramatiq-based connector sync processing
"""
from app.services.jobs.broker import broker
from app.services.jobs.tasks import run_connector_sync, run_connector_sync_task

__all__ = ["broker", "run_connector_sync", "run_connector_sync_task"]
