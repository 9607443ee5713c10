"""Application configuration using pydantic-settings.

Every component receives the sub-config it needs through its constructor.
get_settings() is only called by the composition root (polis.app.bootstrap).
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from polis import __version__


class ExecutorConfig(BaseSettings):
    """Process executor timeouts."""

    model_config = SettingsConfigDict(env_prefix="POLIS_EXECUTOR_")

    cmd_timeout: float = Field(default=30.0)  # seconds (instance CLI: info, start, stop...)
    exec_timeout: float = Field(default=30.0)  # seconds (commands run inside the instance)
    kill_grace: float = Field(default=5.0)  # seconds (drain buffered output after kill)


class InstanceConfig(BaseSettings):
    """Instance-management CLI and VM shape."""

    model_config = SettingsConfigDict(env_prefix="POLIS_INSTANCE_")

    name: str = Field(default="polis")
    cli: str = Field(default="multipass")
    image: str = Field(default="24.04")
    cpus: str = Field(default="2")
    memory: str = Field(default="8G")
    disk: str = Field(default="40G")
    launch_timeout: int = Field(default=900)  # seconds, passed to `launch --timeout`
    min_cli_version: str = Field(default="1.16.0")

    # Default install location, appended to PATH on Windows only
    windows_install_dir: str = Field(default="C:\\Program Files\\Multipass\\bin")


class WorkspaceConfig(BaseSettings):
    """Layout of the workspace inside the instance and of the local bundle."""

    model_config = SettingsConfigDict(env_prefix="POLIS_WORKSPACE_")

    vm_root: str = Field(default="/opt/polis")
    assets_dir: Path = Field(default=Path("assets"))
    config_tarball: str = Field(default="polis-setup.config.tar")
    digest_manifest: str = Field(default="image-digests.json")
    cloud_init: str = Field(default="cloud-init.yaml")
    release_version: str = Field(default=__version__)

    @property
    def compose_path(self) -> str:
        return f"{self.vm_root}/docker-compose.yml"

    @property
    def config_hash_path(self) -> str:
        return f"{self.vm_root}/.config-hash"

    @property
    def certs_ready_path(self) -> str:
        return f"{self.vm_root}/.certs-ready"

    @property
    def env_path(self) -> str:
        return f"{self.vm_root}/.env"

    @property
    def query_script(self) -> str:
        return f"{self.vm_root}/scripts/polis-query.sh"

    @property
    def tarball_path(self) -> Path:
        return self.assets_dir / self.config_tarball

    @property
    def manifest_path(self) -> Path:
        return self.assets_dir / self.digest_manifest

    @property
    def cloud_init_path(self) -> Path:
        return self.assets_dir / self.cloud_init


class ReconcileConfig(BaseSettings):
    """Config reconciliation settings."""

    model_config = SettingsConfigDict(env_prefix="POLIS_RECONCILE_")

    pull_timeout: int = Field(default=600)  # seconds, enforced by `timeout` inside the VM


class RepairConfig(BaseSettings):
    """Repair workflow settings."""

    model_config = SettingsConfigDict(env_prefix="POLIS_REPAIR_")

    cert_expiry_window: int = Field(default=604800)  # seconds (7 days)


class HealthConfig(BaseSettings):
    """Readiness wait after (re)starting services."""

    model_config = SettingsConfigDict(env_prefix="POLIS_HEALTH_")

    max_attempts: int = Field(default=30)
    interval: float = Field(default=2.0)  # seconds


class DoctorConfig(BaseSettings):
    """Diagnostics thresholds and probe targets."""

    model_config = SettingsConfigDict(env_prefix="POLIS_DOCTOR_", populate_by_name=True)

    min_disk_gb: int = Field(default=10)
    malware_db_max_age_hours: int = Field(default=24)
    probe_host: str = Field(default="8.8.8.8")
    probe_port: int = Field(default=53)
    dns_host: str = Field(default="dns.google")
    network_timeout: float = Field(default=3.0)  # seconds
    probe_timeout: float = Field(default=10.0)  # seconds, per in-instance security probe
    disk_path: Path = Field(default=Path.home())
    images_dir: Path = Field(default=Path.home() / ".polis" / "images")
    image_override: str | None = Field(default=None, validation_alias="POLIS_IMAGE")


class StateConfig(BaseSettings):
    """Local identity state and instance lock locations."""

    model_config = SettingsConfigDict(env_prefix="POLIS_STATE_")

    state_dir: Path = Field(default=Path.home() / ".polis")
    state_file: str = Field(default="state.json")
    lock_file: str = Field(default="polis.lock")

    @property
    def state_path(self) -> Path:
        return self.state_dir / self.state_file

    @property
    def lock_path(self) -> Path:
        return self.state_dir / self.lock_file


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Standard fields added to all JSON logs:
    - schema_version: Log schema version for backwards compatibility
    - service: Service name (polis-cli)
    """

    model_config = SettingsConfigDict(env_prefix="POLIS_LOGGING_")

    level: str = Field(default="INFO")
    format: str = Field(default="json")  # "json" or "text"
    schema_version: str = Field(default="1.0")
    service_name: str = Field(default="polis-cli")
    rate_limit_seconds: float = Field(default=5.0)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="POLIS_",
        env_nested_delimiter="__",
    )

    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    instance: InstanceConfig = Field(default_factory=InstanceConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)
    repair: RepairConfig = Field(default_factory=RepairConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    doctor: DoctorConfig = Field(default_factory=DoctorConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


@lru_cache
def get_settings() -> Settings:
    return Settings()
