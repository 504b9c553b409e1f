"""Per-component image builder.

This module handles one component from version lookup to published image:

1. Resolve the artifact version and derive the target image name
2. Create a builder instance (and warm up a cleaner instance)
3. Wait for the builder's startup script
4. Run the install script, then optionally upgrade the OS
5. Keep the boot disk and delete the builder instance
6. Clean the prototype disk and create the target image from it
7. Publish the image and remove build-project leftovers

Every external command failure aborts the build. ``ComponentBuilder.rollback``
runs on every exit path and removes whatever the current ``CleanupState``
says may have been left behind.
"""

from __future__ import annotations

import logging
import shlex
import threading
import time
from collections.abc import Callable

from gce_imagegen.builds.naming import instance_handle, target_image_name
from gce_imagegen.config import BuildConfig, Settings
from gce_imagegen.gcloud.compute import Compute
from gce_imagegen.gcloud.runner import CommandError, CommandRunner
from gce_imagegen.gcloud.ssh import public_key_path
from gce_imagegen.types import BuildInstanceHandle, CleanupState, ComponentEntry

logger = logging.getLogger(__name__)

# Serial console lines printed by the guest agent once startup scripts ran
STARTUP_MARKERS = (
    "startup-script exit status",
    "Finished running startup scripts",
)

PROTOTYPE_DEVICE = "prototype"
PROTOTYPE_MOUNT = "/mnt/prototype"

UPDATE_OS_COMMAND = (
    "sudo DEBIAN_FRONTEND=noninteractive apt-get -y dist-upgrade"
    " && sudo apt-get autoremove -y"
)

CLEAN_DISK_STEPS = (
    f"sudo mkdir -p {PROTOTYPE_MOUNT}",
    f"sudo mount /dev/disk/by-id/google-{PROTOTYPE_DEVICE}-part1 {PROTOTYPE_MOUNT}",
    f"sudo rm -f {PROTOTYPE_MOUNT}/etc/ssh/ssh_host_*",
    f"sudo rm -rf {PROTOTYPE_MOUNT}/root/.ssh {PROTOTYPE_MOUNT}/home/*/.ssh",
    f"sudo rm -f {PROTOTYPE_MOUNT}/root/.bash_history {PROTOTYPE_MOUNT}/home/*/.bash_history",
    f"sudo find {PROTOTYPE_MOUNT}/var/log -type f -exec truncate -s 0 {{}} +",
    f"sudo umount {PROTOTYPE_MOUNT}",
)


class BakeError(Exception):
    """Raised when a component build cannot proceed."""

    def __init__(self, message: str, code: str = "bake_error") -> None:
        super().__init__(message)
        self.code = code


def wait_for_startup(
    compute: Compute,
    instance: str,
    project: str,
    max_delay: int,
    poll_interval: int,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Wait until the instance's startup script has finished.

    Polls the serial port output for a completion marker. When no marker
    shows up the call returns after ``max_delay`` seconds, so the worst
    case equals a fixed wait.

    Returns:
        True if the startup script was seen finishing, False on fallback.
    """
    deadline = clock() + max_delay
    while True:
        try:
            output = compute.serial_port_output(instance, project)
        except CommandError as e:
            compute.runner.log.debug("Serial output not available yet: %s", e)
            output = ""
        if any(marker in output for marker in STARTUP_MARKERS):
            return True
        remaining = deadline - clock()
        if remaining <= 0:
            return False
        sleep(min(poll_interval, remaining))


class ComponentBuilder:
    """Build, publish and clean up the image of one component.

    Attributes:
        config: Resolved run configuration (read-only).
        settings: Tool settings (read-only).
        component: The artifact/service pair to build.
        runner: Runner writing to this component's log.
        state: Progress marker consulted by ``rollback``.
        handle: Derived names, set once the artifact version is known.
    """

    def __init__(
        self,
        config: BuildConfig,
        settings: Settings,
        component: ComponentEntry,
        runner: CommandRunner,
    ) -> None:
        self.config = config
        self.settings = settings
        self.component = component
        self.runner = runner
        self.log = runner.log
        self.compute = Compute(
            runner,
            account=config.account,
            zone=config.zone,
            gcloud_bin=settings.gcloud_bin,
        )
        self.state = CleanupState.NONE
        self.handle: BuildInstanceHandle | None = None
        self._warm_up: threading.Thread | None = None

    @property
    def build_project(self) -> str:
        return self.config.require("build_project")

    @property
    def publish_project(self) -> str:
        return self.config.publish_project or self.build_project

    def _handle(self) -> BuildInstanceHandle:
        if self.handle is None:
            raise BakeError("Target image has not been resolved", code="no_target_image")
        return self.handle

    def resolve_artifact_version(self) -> str:
        """Ask the platform's version manifest for the artifact version."""
        version = self.runner.capture(
            [
                self.settings.hal_bin,
                "version",
                "bom",
                self.config.version,
                "--artifact-name",
                self.component.artifact,
                "--quiet",
                "--color",
                "false",
            ]
        )
        if not version:
            raise BakeError(
                f"No version of '{self.component.artifact}' in platform version "
                f"{self.config.version}",
                code="artifact_version_not_found",
            )
        return version

    def resolve_handle(self) -> BuildInstanceHandle:
        artifact_version = self.resolve_artifact_version()
        target = target_image_name(
            self.settings.image_prefix, self.component.artifact, artifact_version
        )
        self.handle = instance_handle(target)
        self.log.info("Target image: %s", target)
        return self.handle

    def build(self) -> str:
        """Run the whole build for this component.

        Returns:
            The published target image name.

        Raises:
            CommandError: If any external command fails.
            BakeError: If the build cannot proceed.
        """
        handle = self.resolve_handle()
        try:
            self.create_prototype_disk()
            self.extract_clean_prototype_disk()
            self.image_from_prototype_disk()
            self.state = CleanupState.DONE
        finally:
            self.rollback()

        self.delete_prototype_disk()
        self.publish()
        self.cleanup_build_project()
        self.log.info("Image %s ready in %s", handle.target_image, self.publish_project)
        return handle.target_image

    def _startup_script(self) -> str:
        return f"apt-get install -y git; git clone {self.settings.source_repo}"

    def _create_instance(self, name: str, boot_disk: bool, quiet: bool = False) -> None:
        self.compute.create_instance(
            name=name,
            project=self.build_project,
            image=self.config.require("base_image"),
            image_project=self.config.image_project,
            machine_type=self.settings.machine_type,
            ssh_keys_file=public_key_path(self.config.ssh_key_file),
            startup_script=self._startup_script(),
            boot_disk_type=self.settings.boot_disk_type if boot_disk else None,
            block_project_ssh_keys=boot_disk,
            quiet=quiet,
        )

    def _warm_up_cleaner(self) -> None:
        name = self._handle().cleaner_instance
        try:
            self._create_instance(name, boot_disk=False, quiet=True)
        except CommandError as e:
            self.log.warning("Warming up '%s' failed: %s", name, e)

    def _join_warm_up(self) -> None:
        if self._warm_up is not None:
            self._warm_up.join()
            self._warm_up = None

    def install_command(self) -> str:
        script = f"{self.settings.remote_script_dir}/{self.config.install_script_name}"
        args = ["--component", self.component.service, "--version", self.config.version]
        return "sudo bash " + shlex.join([script, *args])

    def create_prototype_disk(self) -> None:
        """Provision the builder, install the component, keep its disk."""
        handle = self._handle()
        instance = handle.build_instance

        self.log.info("Creating prototype instance '%s'", instance)
        self._create_instance(instance, boot_disk=True)
        self.state = CleanupState.INSTANCE_CREATED

        # Used later to clean the disk; started now to have it ready.
        self.log.info("Warming up '%s' for later", handle.cleaner_instance)
        self._warm_up = threading.Thread(
            target=self._warm_up_cleaner,
            name=f"warm-up-{handle.cleaner_instance}",
            daemon=True,
        )
        self._warm_up.start()

        if not wait_for_startup(
            self.compute,
            instance,
            self.build_project,
            max_delay=self.settings.startup_delay,
            poll_interval=self.settings.startup_poll_interval,
        ):
            self.log.info("No startup completion seen on '%s'; continuing", instance)

        self.log.info(
            "Installing %s onto '%s'", self.component.service, instance
        )
        self.compute.ssh(
            instance, self.build_project, self.config.ssh_key_file, self.install_command()
        )

        if self.config.update_os:
            self.log.info("Updating distribution on '%s'", instance)
            self.compute.ssh(
                instance, self.build_project, self.config.ssh_key_file, UPDATE_OS_COMMAND
            )

        self.log.info("Deleting '%s' but keeping disk", instance)
        self.compute.set_disk_auto_delete(
            instance, handle.prototype_disk, self.build_project, auto_delete=False
        )
        self.state = CleanupState.DISK_ISOLATED
        self.compute.delete_instance(instance, self.build_project)

    def extract_clean_prototype_disk(self) -> None:
        """Scrub host keys, credentials and logs from the prototype disk."""
        handle = self._handle()
        cleaner = handle.cleaner_instance
        project = self.build_project

        self._join_warm_up()
        if not self.compute.instance_exists(cleaner, project):
            self.log.info("Creating '%s' to clean the disk", cleaner)
            self._create_instance(cleaner, boot_disk=False)

        self.log.info("Cleaning '%s' on '%s'", handle.prototype_disk, cleaner)
        self.compute.attach_disk(cleaner, handle.prototype_disk, PROTOTYPE_DEVICE, project)
        self.compute.ssh(
            cleaner, project, self.config.ssh_key_file, " && ".join(CLEAN_DISK_STEPS)
        )
        self.compute.detach_disk(cleaner, handle.prototype_disk, project)
        self.compute.delete_instance(cleaner, project)

    def image_from_prototype_disk(self) -> None:
        handle = self._handle()
        self.log.info("Creating image '%s' from '%s'", handle.target_image, handle.prototype_disk)
        self.compute.create_image_from_disk(
            handle.target_image, handle.prototype_disk, self.build_project
        )

    def delete_prototype_disk(self) -> None:
        handle = self._handle()
        self.log.info("Deleting prototype disk '%s'", handle.prototype_disk)
        self.compute.delete_disk_if_exists(handle.prototype_disk, self.build_project)

    def publish(self) -> None:
        """Copy the target image into the publish project."""
        target = self._handle().target_image
        if self.publish_project == self.build_project:
            self.log.info("Publish project is the build project; nothing to copy")
            return

        self.compute.delete_disk_if_exists(target, self.publish_project)
        self.compute.delete_image_if_exists(target, self.publish_project)
        self.log.info("Publishing '%s' to %s", target, self.publish_project)
        self.runner.run(
            [
                "bash",
                str(self.settings.publish_script),
                "--zone",
                self.config.zone,
                "--service_account",
                self.config.require("account"),
                "--original_image",
                target,
                "--original_project",
                self.build_project,
                "--publish_image",
                target,
                "--publish_project",
                self.publish_project,
            ]
        )

    def cleanup_build_project(self) -> None:
        """Remove the target disk and image from the build project."""
        if self.publish_project == self.build_project:
            return
        target = self._handle().target_image
        self.compute.delete_disk_if_exists(target, self.build_project)
        self.compute.delete_image_if_exists(target, self.build_project)

    def rollback(self) -> None:
        """Remove resources left behind by an interrupted build.

        Errors are logged and do not replace the exception that caused
        the rollback.
        """
        state = self.state
        if state in (CleanupState.NONE, CleanupState.DONE) or self.handle is None:
            return

        handle = self.handle
        project = self.build_project
        self.log.warning("Rolling back '%s' (state=%s)", handle.target_image, state.value)
        self._join_warm_up()

        steps: list[tuple[str, Callable[[], None]]] = [
            (
                handle.build_instance,
                lambda: self.compute.delete_instance_if_exists(handle.build_instance, project),
            ),
            (
                handle.cleaner_instance,
                lambda: self.compute.delete_instance_if_exists(handle.cleaner_instance, project),
            ),
        ]
        if state is CleanupState.DISK_ISOLATED:
            steps.append(
                (
                    handle.prototype_disk,
                    lambda: self.compute.delete_disk_if_exists(handle.prototype_disk, project),
                )
            )

        for name, step in steps:
            try:
                step()
            except CommandError as e:
                self.log.error("Could not remove '%s': %s", name, e)

        self.state = CleanupState.NONE


__all__ = [
    "BakeError",
    "CLEAN_DISK_STEPS",
    "ComponentBuilder",
    "STARTUP_MARKERS",
    "UPDATE_OS_COMMAND",
    "wait_for_startup",
]
