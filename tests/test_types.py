"""Tests for shared types module."""

from pathlib import Path

import pytest

from gce_imagegen.types import (
    BuildInstanceHandle,
    BuildResult,
    BuildStatus,
    CleanupState,
    ComponentEntry,
)


class TestEnums:
    """Test enum definitions."""

    def test_build_status_values(self) -> None:
        """BuildStatus should have expected values."""
        assert BuildStatus.SUCCEEDED.value == "succeeded"
        assert BuildStatus.FAILED.value == "failed"

    def test_cleanup_state_values(self) -> None:
        """CleanupState should cover every rollback phase."""
        assert [s.value for s in CleanupState] == [
            "none",
            "instance_created",
            "disk_isolated",
            "done",
        ]


class TestDataclasses:
    """Test dataclass definitions."""

    def test_component_entry_is_frozen(self) -> None:
        """ComponentEntry should be immutable."""
        entry = ComponentEntry(artifact="vault", service="vault-server")
        with pytest.raises(AttributeError):
            entry.service = "other"  # type: ignore[misc]

    def test_handle_prototype_disk(self) -> None:
        """The prototype disk shares the builder instance name."""
        handle = BuildInstanceHandle(
            target_image="img", build_instance="build-img", cleaner_instance="clean-img"
        )
        assert handle.prototype_disk == "build-img"

    def test_build_result_status(self) -> None:
        """Exit status 0 means success."""
        entry = ComponentEntry(artifact="redis", service="redis")
        ok = BuildResult(component=entry, exit_status=0, log_path=Path("a.log"))
        failed = BuildResult(component=entry, exit_status=1, log_path=Path("a.log"))

        assert ok.success and ok.status is BuildStatus.SUCCEEDED
        assert not failed.success and failed.status is BuildStatus.FAILED
