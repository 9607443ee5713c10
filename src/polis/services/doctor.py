"""Diagnostics aggregator.

Four probe groups feed one DoctorChecks report. The instance state is
resolved once up front: when the instance is not Running the security group
is short-circuited to SecurityChecks.unavailable() instead of waiting out
probe timeouts. Every probe degrades to false/zero on failure, so run()
always returns a report.
"""

import asyncio
import json
import logging
import shutil
import time
from datetime import UTC, datetime
from pathlib import Path

from packaging.version import InvalidVersion, Version

from polis.app.config import DoctorConfig, InstanceConfig, WorkspaceConfig
from polis.core.domain.health import (
    DoctorChecks,
    ImageCheckResult,
    NetworkChecks,
    PrerequisiteChecks,
    SecurityChecks,
    WorkspaceChecks,
    collect_issues,
)
from polis.core.domain.instance import InstanceState, parse_cli_version
from polis.core.errors import PolisError
from polis.core.interfaces import CommandRunner, InstanceView, NetworkProbe, ProgressReporter
from polis.core.logging_schema import Component, LogEvent
from polis.services import lifecycle
from polis.services.health import query_status

logger = logging.getLogger(__name__)

IMAGE_FILE = "polis.qcow2"
IMAGE_METADATA_FILE = "image.json"
SHA256_PREVIEW_LEN = 12

MALWARE_DB_MTIME_COMMAND = (
    "stat -c %Y /var/lib/clamav/daily.cld /var/lib/clamav/daily.cvd 2>/dev/null "
    "| sort -rn | head -1"
)
CERT_DATE_FORMATS = ("%b %d %H:%M:%S %Y GMT", "%b  %d %H:%M:%S %Y GMT")


def _probe_failed(probe: str, reason: str) -> None:
    logger.info(
        "Probe %s failed: %s",
        probe,
        reason,
        extra={"event": LogEvent.PROBE_FAILED, "component": Component.DOCTOR, "probe": probe},
    )


def read_image_metadata(images_dir: Path) -> tuple[str | None, str | None]:
    """(version, sha256 preview) from image.json. Missing or malformed -> (None, None)."""
    try:
        data = json.loads((images_dir / IMAGE_METADATA_FILE).read_text())
    except (OSError, ValueError):
        return None, None
    if not isinstance(data, dict):
        return None, None
    version = data.get("version")
    sha256 = data.get("sha256")
    return (
        version if isinstance(version, str) else None,
        sha256[:SHA256_PREVIEW_LEN] if isinstance(sha256, str) else None,
    )


def parse_cert_enddate(output: str) -> datetime | None:
    """Parse `openssl x509 -enddate` output (notAfter=Mon DD HH:MM:SS YYYY GMT)."""
    line = output.strip()
    if not line.startswith("notAfter="):
        return None
    raw = line.removeprefix("notAfter=").strip()
    for fmt in CERT_DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).replace(tzinfo=UTC)
        except ValueError:
            continue
    return None


class DiagnosticsService:
    """Runs the doctor probes against the host and the instance."""

    def __init__(
        self,
        cmd_runner: CommandRunner,
        instance_view: InstanceView,
        network_probe: NetworkProbe,
        instance: InstanceConfig,
        workspace: WorkspaceConfig,
        config: DoctorConfig,
        reporter: ProgressReporter,
    ) -> None:
        self._cmd = cmd_runner
        self._view = instance_view
        self._network = network_probe
        self._instance = instance
        self._workspace = workspace
        self._config = config
        self._reporter = reporter

    async def run(self) -> DoctorChecks:
        """Run every probe group. Never raises."""
        self._reporter.step("checking workspace state...")
        current = await lifecycle.state(self._view, self._instance.name)
        running = current == InstanceState.RUNNING

        self._reporter.step("checking prerequisites, workspace and network...")
        prerequisites, workspace, network = await asyncio.gather(
            self.probe_prerequisites(),
            self.probe_workspace(running),
            self.probe_network(),
        )

        self._reporter.step("checking security...")
        security = await self.probe_security() if running else SecurityChecks.unavailable()

        checks = DoctorChecks(
            prerequisites=prerequisites,
            workspace=workspace,
            network=network,
            security=security,
        )
        self._reporter.success("diagnostics complete")
        logger.info(
            "Diagnostics complete",
            extra={
                "event": LogEvent.DIAGNOSTICS_COMPLETE,
                "component": Component.DOCTOR,
                "instance_state": current.value,
                "issue_count": len(self.issues(checks)),
            },
        )
        return checks

    def issues(self, checks: DoctorChecks) -> list[str]:
        return collect_issues(checks, self._instance.min_cli_version, self._config.min_disk_gb)

    # Prerequisites

    async def probe_prerequisites(self) -> PrerequisiteChecks:
        try:
            result = await self._cmd.run(self._instance.cli, ["version"])
        except PolisError as exc:
            _probe_failed("cli_version", exc.message)
            return PrerequisiteChecks(cli_found=False, cli_version_ok=False)

        version = parse_cli_version(result.stdout)
        version_ok = True
        if version is not None:
            try:
                version_ok = Version(version) >= Version(self._instance.min_cli_version)
            except InvalidVersion:
                pass
        return PrerequisiteChecks(cli_found=True, cli_version=version, cli_version_ok=version_ok)

    # Workspace

    async def probe_workspace(self, running: bool) -> WorkspaceChecks:
        disk_gb = await asyncio.to_thread(self._disk_space_gb)
        image = await asyncio.to_thread(self._image_cache)
        return WorkspaceChecks(
            ready=running,
            disk_space_gb=disk_gb,
            disk_space_ok=disk_gb >= self._config.min_disk_gb,
            image=image,
        )

    def _disk_space_gb(self) -> int:
        try:
            usage = shutil.disk_usage(self._config.disk_path)
        except OSError as exc:
            _probe_failed("disk_space", str(exc))
            return 0
        return usage.free // (1024**3)

    def _image_cache(self) -> ImageCheckResult:
        images_dir = self._config.images_dir
        cached = (images_dir / IMAGE_FILE).exists()
        version, sha256_preview = read_image_metadata(images_dir) if cached else (None, None)
        return ImageCheckResult(
            cached=cached,
            version=version,
            sha256_preview=sha256_preview,
            image_override=self._config.image_override,
        )

    # Network

    async def probe_network(self) -> NetworkChecks:
        internet, dns = await asyncio.gather(
            self._network.check_tcp_connectivity(self._config.probe_host, self._config.probe_port),
            self._network.check_dns_resolution(self._config.dns_host),
        )
        return NetworkChecks(internet=internet, dns=dns)

    # Security (instance must be running)

    async def probe_security(self) -> SecurityChecks:
        isolation, gate, (db_current, db_age), (certs_valid, expire_days) = await asyncio.gather(
            self.probe_process_isolation(),
            self.probe_gate_health(),
            self.probe_malware_db(),
            self.probe_certificates(),
        )
        return SecurityChecks(
            process_isolation=isolation,
            traffic_inspection=gate,
            malware_db_current=db_current,
            malware_db_age_hours=db_age,
            certificates_valid=certs_valid,
            certificates_expire_days=expire_days,
        )

    async def probe_process_isolation(self) -> bool:
        try:
            result = await self._view.exec(["sysbox-runc", "--version"])
        except PolisError as exc:
            _probe_failed("process_isolation", exc.message)
            return False
        return result.success

    async def probe_gate_health(self) -> bool:
        snapshot = await query_status(self._view, self._workspace.query_script)
        if snapshot is None:
            _probe_failed("gate_health", "status query unavailable")
            return False
        return snapshot.is_running("gate")

    async def probe_malware_db(self) -> tuple[bool, int]:
        try:
            result = await self._view.exec(
                ["docker", "exec", "polis-scanner", "sh", "-c", MALWARE_DB_MTIME_COMMAND]
            )
        except PolisError as exc:
            _probe_failed("malware_db", exc.message)
            return False, 0
        if not result.success:
            _probe_failed("malware_db", f"exit status {result.exit_status}")
            return False, 0
        try:
            mtime = int(result.stdout_text.strip())
        except ValueError:
            _probe_failed("malware_db", "unparseable mtime")
            return False, 0

        age_hours = max(0, int(time.time()) - mtime) // 3600
        return age_hours <= self._config.malware_db_max_age_hours, age_hours

    async def probe_certificates(self) -> tuple[bool, int]:
        ca_cert = f"{self._workspace.vm_root}/certs/ca/ca.pem"
        try:
            result = await self._view.exec(["openssl", "x509", "-enddate", "-noout", "-in", ca_cert])
        except PolisError as exc:
            _probe_failed("certificates", exc.message)
            return False, 0
        if not result.success:
            _probe_failed("certificates", f"exit status {result.exit_status}")
            return False, 0

        expiry = parse_cert_enddate(result.stdout_text)
        if expiry is None:
            _probe_failed("certificates", "unparseable notAfter")
            return False, 0
        # truncate toward zero: a cert expiring later today is 0 days, i.e. expired
        days = int((expiry - datetime.now(UTC)).total_seconds() / 86400)
        return days > 0, days
