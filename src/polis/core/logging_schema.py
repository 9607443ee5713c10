"""Logging field schema - v1.0

Standard fields (added to all logs):
- schema_version: Log schema version
- service: Service name (polis-cli)
- component: Component name (EXEC, LIFECYCLE, RECONCILE, DOCTOR, REPAIR, STATE)
- event: Event type (command_timeout, step_failed, etc.)
- trace_id: Workflow trace id
- duration_ms: Duration in milliseconds
"""

from enum import StrEnum


class LogEvent(StrEnum):
    """Standard log event types.

    Use these event types in the 'event' extra field for consistent
    log filtering and analysis.
    """

    # Process executor events
    COMMAND_COMPLETE = "command_complete"
    COMMAND_TIMEOUT = "command_timeout"
    COMMAND_SPAWN_FAILED = "command_spawn_failed"
    PROCESS_KILLED = "process_killed"

    # Lifecycle events
    STATE_OBSERVED = "state_observed"
    STATE_UNRECOGNIZED = "state_unrecognized"
    INSTANCE_LAUNCHED = "instance_launched"
    INSTANCE_STARTED = "instance_started"
    INSTANCE_STOPPED = "instance_stopped"
    INSTANCE_DELETED = "instance_deleted"
    WORKLOAD_CONFLICT = "workload_conflict"

    # Workflow step events (reconcile, repair, provision)
    STEP_STARTED = "step_started"
    STEP_SUCCESS = "step_success"
    STEP_SKIPPED = "step_skipped"
    STEP_FAILED = "step_failed"

    # Reconciliation events
    CONFIG_UP_TO_DATE = "config_up_to_date"
    CONFIG_DRIFT = "config_drift"
    CONFIG_UPDATED = "config_updated"
    DIGEST_MISMATCH = "digest_mismatch"
    DIGEST_VERIFY_SKIPPED = "digest_verify_skipped"

    # Diagnostics events
    PROBE_FAILED = "probe_failed"
    DIAGNOSTICS_COMPLETE = "diagnostics_complete"

    # Repair events
    REPAIR_COMPLETE = "repair_complete"

    # Identity state events
    IDENTITY_SAVED = "identity_saved"
    IDENTITY_CLEARED = "identity_cleared"
    IDENTITY_CORRUPT = "identity_corrupt"
    LOCK_CONTENDED = "lock_contended"


class ErrorClass(StrEnum):
    """Error classification for structured error logging."""

    ENVIRONMENT = "environment"  # Cannot spawn, CLI missing
    TIMEOUT = "timeout"  # Child exceeded its bound
    COMMAND = "command"  # Non-zero exit from a required step
    INTEGRITY = "integrity"  # Digest mismatch, corrupt identity, unsafe bundle


class Component(StrEnum):
    """Component identifiers for log filtering."""

    EXEC = "exec"  # Process executor
    LIFECYCLE = "lifecycle"  # Instance lifecycle state machine
    RECONCILE = "reconcile"  # Config reconciliation
    DOCTOR = "doctor"  # Diagnostics aggregator
    REPAIR = "repair"  # Repair workflow
    STATE = "state"  # Identity state store
