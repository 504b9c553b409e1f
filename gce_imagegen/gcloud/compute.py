"""Wrapper around the ``gcloud compute`` command group.

This module composes cloud CLI commands for instance, disk and image
management, image catalog listing, and remote shell sessions. Command
composition is kept separate from execution so the commands can be
inspected in tests.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from gce_imagegen.gcloud.runner import CommandRunner

logger = logging.getLogger(__name__)

_SELF_LINK_PROJECT = re.compile(r"/projects/([^/]+)/global/images/")


@dataclass(frozen=True)
class CatalogImage:
    """An entry from the image catalog."""

    name: str
    project: str | None


def parse_catalog_entry(line: str) -> CatalogImage | None:
    """Parse one ``value(name,selfLink)`` line from ``images list``.

    Args:
        line: Whitespace separated name and selfLink.

    Returns:
        CatalogImage, or None for an empty line.
    """
    fields = line.split()
    if not fields:
        return None
    project = None
    if len(fields) > 1:
        match = _SELF_LINK_PROJECT.search(fields[1])
        project = match.group(1) if match else fields[1]
    return CatalogImage(name=fields[0], project=project)


class Compute:
    """Compose and run ``gcloud compute`` commands for one account and zone."""

    def __init__(
        self,
        runner: CommandRunner,
        account: str | None,
        zone: str,
        gcloud_bin: str = "gcloud",
    ) -> None:
        self.runner = runner
        self.account = account
        self.zone = zone
        self.gcloud_bin = gcloud_bin

    def command(self, project: str | None, *args: str, zonal: bool = True) -> list[str]:
        """Compose a ``gcloud compute`` command line.

        Args:
            project: Project flag value, omitted when None.
            *args: Subcommand and its arguments.
            zonal: Whether to append the --zone flag.

        Returns:
            Command as list of strings.
        """
        cmd = [self.gcloud_bin, "compute", *args]
        if project:
            cmd += ["--project", project]
        if self.account:
            cmd += ["--account", self.account]
        if zonal:
            cmd += ["--zone", self.zone]
        return cmd

    # Instances

    def create_instance_command(
        self,
        name: str,
        project: str,
        image: str,
        image_project: str | None,
        machine_type: str,
        ssh_keys_file: Path,
        startup_script: str,
        boot_disk_type: str | None = None,
        block_project_ssh_keys: bool = False,
    ) -> list[str]:
        args = [
            "instances",
            "create",
            name,
            "--machine-type",
            machine_type,
        ]
        if boot_disk_type:
            args += ["--boot-disk-type", boot_disk_type]
        args += ["--image", image]
        if image_project:
            args += ["--image-project", image_project]
        args += ["--metadata-from-file", f"ssh-keys={ssh_keys_file}"]
        metadata = f"startup-script={startup_script}"
        if block_project_ssh_keys:
            metadata = f"block-project-ssh-keys=TRUE,{metadata}"
        args += ["--metadata", metadata]
        return self.command(project, *args)

    def create_instance(
        self,
        name: str,
        project: str,
        image: str,
        image_project: str | None,
        machine_type: str,
        ssh_keys_file: Path,
        startup_script: str,
        boot_disk_type: str | None = None,
        block_project_ssh_keys: bool = False,
        quiet: bool = False,
    ) -> None:
        """Create an instance; ``quiet`` discards the CLI output."""
        cmd = self.create_instance_command(
            name=name,
            project=project,
            image=image,
            image_project=image_project,
            machine_type=machine_type,
            ssh_keys_file=ssh_keys_file,
            startup_script=startup_script,
            boot_disk_type=boot_disk_type,
            block_project_ssh_keys=block_project_ssh_keys,
        )
        self.runner.run(cmd, quiet=quiet)

    def delete_instance(self, name: str, project: str) -> None:
        self.runner.run(self.command(project, "instances", "delete", name, "--quiet"))

    def instance_exists(self, name: str, project: str) -> bool:
        return self.runner.succeeds(self.command(project, "instances", "describe", name))

    def delete_instance_if_exists(self, name: str, project: str) -> None:
        if self.instance_exists(name, project):
            self.delete_instance(name, project)

    def set_disk_auto_delete(
        self, instance: str, disk: str, project: str, auto_delete: bool = False
    ) -> None:
        flag = "--auto-delete" if auto_delete else "--no-auto-delete"
        self.runner.run(
            self.command(
                project,
                "instances",
                "set-disk-auto-delete",
                instance,
                flag,
                "--disk",
                disk,
            )
        )

    def attach_disk(self, instance: str, disk: str, device_name: str, project: str) -> None:
        self.runner.run(
            self.command(
                project,
                "instances",
                "attach-disk",
                instance,
                "--disk",
                disk,
                "--device-name",
                device_name,
            )
        )

    def detach_disk(self, instance: str, disk: str, project: str) -> None:
        self.runner.run(
            self.command(project, "instances", "detach-disk", instance, "--disk", disk)
        )

    def ssh_command(
        self, instance: str, project: str, ssh_key_file: Path, remote_command: str
    ) -> list[str]:
        return self.command(
            project,
            "ssh",
            instance,
            "--internal-ip",
            "--ssh-key-file",
            str(ssh_key_file),
            f"--command={remote_command}",
        )

    def ssh(
        self, instance: str, project: str, ssh_key_file: Path, remote_command: str
    ) -> None:
        """Run a command on an instance over its internal address."""
        self.runner.run(self.ssh_command(instance, project, ssh_key_file, remote_command))

    def serial_port_output(self, instance: str, project: str) -> str:
        return self.runner.capture(
            self.command(project, "instances", "get-serial-port-output", instance),
            quiet=True,
        )

    # Disks

    def disk_exists(self, name: str, project: str) -> bool:
        return self.runner.succeeds(self.command(project, "disks", "describe", name))

    def delete_disk(self, name: str, project: str) -> None:
        self.runner.run(self.command(project, "disks", "delete", name, "--quiet"))

    def delete_disk_if_exists(self, name: str, project: str) -> None:
        if self.disk_exists(name, project):
            self.delete_disk(name, project)
        else:
            self.runner.log.info("Disk '%s' not found in %s", name, project)

    # Images

    def image_exists(self, name: str, project: str) -> bool:
        return self.runner.succeeds(
            self.command(project, "images", "describe", name, zonal=False)
        )

    def delete_image(self, name: str, project: str) -> None:
        self.runner.run(
            self.command(project, "images", "delete", name, "--quiet", zonal=False)
        )

    def delete_image_if_exists(self, name: str, project: str) -> None:
        if self.image_exists(name, project):
            self.delete_image(name, project)
        else:
            self.runner.log.info("Image '%s' not found in %s", name, project)

    def create_image_from_disk(self, image: str, disk: str, project: str) -> None:
        self.runner.run(
            self.command(
                project,
                "images",
                "create",
                image,
                "--source-disk",
                disk,
                "--source-disk-zone",
                self.zone,
                zonal=False,
            )
        )

    def latest_family_image(self, family: str) -> CatalogImage | None:
        """Find the newest image in a family across visible projects.

        Args:
            family: Image family name.

        Returns:
            CatalogImage, or None when nothing matches.
        """
        output = self.runner.capture(
            self.command(
                None,
                "images",
                "list",
                "--filter",
                f"family={family}",
                "--sort-by",
                "~creationTimestamp",
                "--limit",
                "1",
                "--format",
                "value(name,selfLink)",
                zonal=False,
            )
        )
        for line in output.splitlines():
            entry = parse_catalog_entry(line)
            if entry is not None:
                return entry
        return None


__all__ = ["CatalogImage", "Compute", "parse_catalog_entry"]
