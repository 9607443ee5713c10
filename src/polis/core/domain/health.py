"""Diagnostics report types and pure issue collection.

No I/O here: probes live in polis.services.doctor, this module only holds
their results and turns them into actionable issues.
"""

from pydantic import BaseModel


class PrerequisiteChecks(BaseModel):
    """Instance CLI presence and version."""

    cli_found: bool
    cli_version: str | None = None
    cli_version_ok: bool

    model_config = {"frozen": True}


class ImageCheckResult(BaseModel):
    """Local base image cache."""

    cached: bool = False
    version: str | None = None
    sha256_preview: str | None = None  # first 12 hex chars
    image_override: str | None = None  # POLIS_IMAGE, if set

    model_config = {"frozen": True}


class WorkspaceChecks(BaseModel):
    ready: bool
    disk_space_gb: int
    disk_space_ok: bool
    image: ImageCheckResult

    model_config = {"frozen": True}


class NetworkChecks(BaseModel):
    internet: bool
    dns: bool

    model_config = {"frozen": True}


class SecurityChecks(BaseModel):
    """Security probes run inside the instance."""

    process_isolation: bool
    traffic_inspection: bool
    malware_db_current: bool
    malware_db_age_hours: int
    certificates_valid: bool
    certificates_expire_days: int  # <= 0 means expired

    model_config = {"frozen": True}

    @classmethod
    def unavailable(cls) -> "SecurityChecks":
        """Result used when the instance is not running and nothing is probed."""
        return cls(
            process_isolation=False,
            traffic_inspection=False,
            malware_db_current=False,
            malware_db_age_hours=0,
            certificates_valid=False,
            certificates_expire_days=0,
        )


class DoctorChecks(BaseModel):
    """Aggregate diagnostics report."""

    prerequisites: PrerequisiteChecks
    workspace: WorkspaceChecks
    network: NetworkChecks
    security: SecurityChecks

    model_config = {"frozen": True}


def collect_issues(
    checks: DoctorChecks, min_cli_version: str = "1.16.0", min_disk_gb: int = 10
) -> list[str]:
    """Collect actionable issues from check results.

    Certificates that are still valid but expire soon are not an issue here;
    repair regenerates them on its own schedule.
    """
    issues: list[str] = []

    if not checks.prerequisites.cli_found:
        issues.append("Multipass is not installed")
    elif not checks.prerequisites.cli_version_ok:
        version = checks.prerequisites.cli_version or "unknown"
        issues.append(f"Multipass {version} is too old (need >= {min_cli_version})")

    if not checks.workspace.disk_space_ok:
        issues.append(
            f"Low disk space ({checks.workspace.disk_space_gb} GB available, "
            f"need {min_disk_gb} GB)"
        )

    if not checks.network.dns:
        issues.append("DNS resolution failed")

    if not checks.security.traffic_inspection:
        issues.append("Traffic inspection not responding")

    if not checks.security.malware_db_current:
        issues.append(
            "Malware scanner database stale "
            f"(updated: {checks.security.malware_db_age_hours}h ago)"
        )

    if checks.security.certificates_expire_days <= 0:
        issues.append("Certificates expired")

    return issues
