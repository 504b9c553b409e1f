"""Configuration settings for gce_imagegen.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.

Two layers live here:

- ``Settings``: tool-level defaults loaded from the environment.
- ``BuildConfig``: the immutable, fully resolved record for one bake run,
  shared read-only by every component build unit.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_ssh_key_file() -> Path:
    """Return the default SSH key used for remote sessions."""
    return Path.home() / ".ssh" / "google_empty"


class ConfigurationError(Exception):
    """Raised when a required configuration value cannot be resolved."""

    def __init__(self, message: str, code: str = "configuration_error") -> None:
        super().__init__(message)
        self.code = code


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the GCE_IMG_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="GCE_IMG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Identity and projects
    account: str | None = Field(
        default=None,
        description="gcloud account used for every call (active account if unset)",
    )
    build_project: str | None = Field(
        default=None,
        description="Project where builder instances, disks and images live",
    )
    publish_project: str | None = Field(
        default=None,
        description="Project receiving the final images (build project if unset)",
    )
    image_project: str | None = Field(
        default=None,
        description="Project owning the base image (derived from catalog if unset)",
    )

    # What to bake
    version: str = Field(
        default="nightly",
        description="Platform version to bake images for",
    )
    install_script: str = Field(
        default="https://raw.githubusercontent.com/spinnaker/spinnaker/master/dev/install_development.sh",
        description="Path or URL of the install script run on the builder",
    )
    update_os: bool = Field(
        default=True,
        description="Run a dist-upgrade on the builder before imaging",
    )
    source_image: str | None = Field(
        default=None,
        description="Explicit base image (skips the catalog lookup)",
    )
    base_image_family: str = Field(
        default="ubuntu-1404-lts",
        description="Image family searched when no source image is given",
    )

    # Instances
    zone: str = Field(
        default="us-central1-f",
        description="Compute zone for builder instances",
    )
    machine_type: str = Field(default="n1-standard-1")
    boot_disk_type: str = Field(default="pd-ssd")
    ssh_key_file: Path = Field(
        default_factory=_default_ssh_key_file,
        description="Private key for remote sessions (generated if absent)",
    )

    # Naming and remote layout
    image_prefix: str = Field(default="spinnaker")
    source_repo: str = Field(
        default="https://github.com/spinnaker/spinnaker.git",
        description="Repository cloned by the builder at boot",
    )
    remote_script_dir: str = Field(
        default="/spinnaker/dev",
        description="Directory on the builder holding the install script",
    )
    publish_script: Path = Field(
        default=Path("spinnaker/google/dev/publish_gce_release.sh"),
        description="Script copying an image between projects",
    )

    # External tools
    gcloud_bin: str = Field(default="gcloud")
    hal_bin: str = Field(default="hal")

    # Timing (in seconds)
    startup_delay: int = Field(
        default=120,
        ge=0,
        description="Longest wait for the builder's startup script",
    )
    startup_poll_interval: int = Field(
        default=10,
        ge=1,
        description="Interval between readiness polls",
    )
    command_timeout: int | None = Field(
        default=None,
        ge=1,
        description="Timeout for each external command (None = no timeout)",
    )

    # Output
    log_dir: Path = Field(
        default_factory=Path.cwd,
        description="Directory for per-component build logs",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )


class BuildConfig(BaseModel):
    """Resolved configuration for one bake run.

    Created once from settings plus flag overrides and never mutated
    afterwards; ``model_copy`` produces a new instance when defaults are
    fixed up.
    """

    model_config = ConfigDict(frozen=True)

    account: str | None
    build_project: str | None
    publish_project: str | None
    image_project: str | None
    install_script: str
    version: str
    zone: str
    update_os: bool
    ssh_key_file: Path
    base_image: str | None = None
    base_image_family: str
    log_dir: Path

    @property
    def install_script_name(self) -> str:
        """Basename of the install script as found on the builder."""
        return self.install_script.rstrip("/").rsplit("/", 1)[-1]

    def require(self, field_name: str) -> str:
        """Return a resolved string field or raise ConfigurationError."""
        value = getattr(self, field_name)
        if not value:
            raise ConfigurationError(
                f"Could not resolve '{field_name}'",
                code=f"missing_{field_name}",
            )
        return str(value)


def resolve_build_config(
    settings: Settings,
    account: str | None = None,
    image_project: str | None = None,
    install_script: str | None = None,
    update_os: bool | None = None,
    build_project: str | None = None,
    publish_project: str | None = None,
    version: str | None = None,
    zone: str | None = None,
    source_image: str | None = None,
    base_image_family: str | None = None,
    ssh_key_file: Path | None = None,
    log_dir: Path | None = None,
) -> BuildConfig:
    """Overlay flag values on settings to build a BuildConfig.

    Args:
        settings: Settings supplying defaults.
        account..log_dir: Flag values; None means "not given".

    Returns:
        Frozen BuildConfig. Account, projects and base image may still be
        unset; see ``gce_imagegen.builds.defaults.fix_defaults``.
    """
    build_project = build_project or settings.build_project
    return BuildConfig(
        account=account or settings.account,
        build_project=build_project,
        publish_project=publish_project or settings.publish_project or build_project,
        image_project=image_project or settings.image_project,
        install_script=install_script or settings.install_script,
        version=version or settings.version,
        zone=zone or settings.zone,
        update_os=settings.update_os if update_os is None else update_os,
        ssh_key_file=ssh_key_file or settings.ssh_key_file,
        base_image=source_image or settings.source_image,
        base_image_family=base_image_family or settings.base_image_family,
        log_dir=log_dir or settings.log_dir,
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = [
    "BuildConfig",
    "ConfigurationError",
    "Settings",
    "get_settings",
    "print_settings_json",
    "resolve_build_config",
]
