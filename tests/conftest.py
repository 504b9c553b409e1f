"""Shared fixtures.

``FakeCloud`` replaces ``subprocess.run`` for the command runner and
answers gcloud, hal, ssh-keygen and publish commands without touching a
real cloud.
"""

import subprocess
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from gce_imagegen.config import BuildConfig, Settings, resolve_build_config

CATALOG_LINE = (
    "ubuntu-1404-trusty-v20170110 "
    "https://www.googleapis.com/compute/v1/projects/ubuntu-os-cloud/"
    "global/images/ubuntu-1404-trusty-v20170110"
)


class FakeCloud:
    """Record commands and answer them like the real tools would."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.failures: list[list] = []
        self.existing: set[str] = set()
        self.artifact_versions: dict[str, str] = {}
        self.catalog = CATALOG_LINE
        self.serial_output = ""
        self.gcloud_config = {"account": "builder@example.com", "project": "active-project"}
        self._lock = threading.Lock()

    def fail_on(self, *fragments: str, times: int | None = None) -> None:
        """Make commands containing all ``fragments`` exit 1.

        With ``times`` only that many matching commands fail.
        """
        self.failures.append([fragments, times])

    def _matches(self, cmd: list[str], fragments: tuple[str, ...]) -> bool:
        joined = " ".join(cmd)
        return all(f in joined for f in fragments)

    def __call__(self, cmd, **kwargs):
        cmd = list(cmd)
        with self._lock:
            self.calls.append(cmd)
            for failure in self.failures:
                fragments, remaining = failure
                if remaining == 0 or not self._matches(cmd, fragments):
                    continue
                if remaining is not None:
                    failure[1] = remaining - 1
                return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="")

        returncode = 0
        stdout = ""
        if cmd[0] == "hal":
            artifact = cmd[cmd.index("--artifact-name") + 1]
            stdout = self.artifact_versions.get(artifact, "1.2.3-20170101")
        elif cmd[1:3] == ["config", "get-value"]:
            stdout = self.gcloud_config.get(cmd[3], "")
        elif "get-serial-port-output" in cmd:
            stdout = self.serial_output
        elif cmd[1:4] == ["compute", "images", "list"]:
            stdout = self.catalog
        elif "describe" in cmd:
            name = cmd[cmd.index("describe") + 1]
            returncode = 0 if name in self.existing else 1

        if kwargs.get("stdout") is not subprocess.PIPE:
            stdout = None
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="")

    def matching(self, *fragments: str) -> list[list[str]]:
        with self._lock:
            return [c for c in self.calls if self._matches(c, fragments)]

    def index_of_command(self, *tokens: str) -> int:
        """Position of the first command whose subcommand tokens are exactly ``tokens``.

        Tokens are compared from the third element on (after ``gcloud compute``).
        """
        with self._lock:
            for i, c in enumerate(self.calls):
                if c[2 : 2 + len(tokens)] == list(tokens):
                    return i
        return -1

    def index_of(self, *fragments: str) -> int:
        """Position of the first command containing all fragments (-1 if none)."""
        with self._lock:
            for i, c in enumerate(self.calls):
                if self._matches(c, fragments):
                    return i
        return -1


@pytest.fixture
def fake_cloud():
    """Patch subprocess.run in the runner with a FakeCloud."""
    fake = FakeCloud()
    with patch("gce_imagegen.gcloud.runner.subprocess.run", side_effect=fake):
        yield fake


@pytest.fixture
def ssh_key(tmp_path: Path) -> Path:
    """Create an existing key pair so no key gets generated."""
    key = tmp_path / "keys" / "google_empty"
    key.parent.mkdir()
    key.write_text("PRIVATE")
    (key.parent / "google_empty.pub").write_text("tester:ssh-rsa AAAA tester\n")
    return key


@pytest.fixture
def settings(tmp_path: Path, ssh_key: Path) -> Settings:
    """Settings with no startup wait and logs under tmp_path."""
    return Settings(
        startup_delay=0,
        log_dir=tmp_path / "logs",
        ssh_key_file=ssh_key,
    )


@pytest.fixture
def build_config(settings: Settings) -> BuildConfig:
    """A fully resolved config needing no lookups."""
    return resolve_build_config(
        settings,
        account="builder@example.com",
        build_project="build-proj",
        publish_project="publish-proj",
        image_project="ubuntu-os-cloud",
        source_image="ubuntu-1404-trusty-v20170110",
        version="1.2.0",
    )
