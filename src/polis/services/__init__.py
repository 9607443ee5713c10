"""Services module."""

from polis.services import health, integrity, lifecycle, provision
from polis.services.doctor import DiagnosticsService
from polis.services.reconcile import ConfigReconciler, ReconcileOutcome, should_update_vm_config
from polis.services.repair import RepairOutcome, RepairWorkflow
from polis.services.status import gather_status
from polis.services.workspace_start import StartOutcome, StartStatus, WorkspaceStarter

__all__ = [
    # Use cases
    "ConfigReconciler",
    "DiagnosticsService",
    "RepairWorkflow",
    "WorkspaceStarter",
    "gather_status",
    "should_update_vm_config",
    # Outcomes
    "ReconcileOutcome",
    "RepairOutcome",
    "StartOutcome",
    "StartStatus",
    # Step modules
    "health",
    "integrity",
    "lifecycle",
    "provision",
]
