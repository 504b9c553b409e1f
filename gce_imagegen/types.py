"""Shared type definitions for gce_imagegen.

This module contains dataclasses and enums shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class BuildStatus(str, Enum):
    """Terminal status of a component build unit."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CleanupState(str, Enum):
    """How far a build unit progressed, as seen by the rollback handler."""

    NONE = "none"
    INSTANCE_CREATED = "instance_created"
    DISK_ISOLATED = "disk_isolated"
    DONE = "done"


@dataclass(frozen=True)
class ComponentEntry:
    """An artifact and the service it is configured as."""

    artifact: str
    service: str


@dataclass(frozen=True)
class BuildInstanceHandle:
    """Names derived for one component build.

    The builder instance and its prototype disk share a name.
    """

    target_image: str
    build_instance: str
    cleaner_instance: str

    @property
    def prototype_disk(self) -> str:
        return self.build_instance


@dataclass
class BuildResult:
    """Outcome of a single component build unit."""

    component: ComponentEntry
    exit_status: int
    log_path: Path
    log_text: str = ""
    target_image: str | None = None
    error_message: str | None = None

    @property
    def success(self) -> bool:
        return self.exit_status == 0

    @property
    def status(self) -> BuildStatus:
        return BuildStatus.SUCCEEDED if self.success else BuildStatus.FAILED


__all__ = [
    "BuildInstanceHandle",
    "BuildResult",
    "BuildStatus",
    "CleanupState",
    "ComponentEntry",
]
