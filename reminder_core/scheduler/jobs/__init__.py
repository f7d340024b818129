"""Jobs del scheduler."""

from reminder_core.scheduler.jobs.reconciliation import reconciliation_job
from reminder_core.scheduler.jobs.snapshot import save_registry_snapshot, snapshot_job

__all__ = [
    "reconciliation_job",
    "save_registry_snapshot",
    "snapshot_job",
]
