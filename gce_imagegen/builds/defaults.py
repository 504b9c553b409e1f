"""Default fixup for a resolved BuildConfig.

Fills in what flags, environment and settings left unset by asking the
cloud CLI:

- the base image, from the newest image of the configured family
- the image project, from the same catalog entry
- the account and build project, from the active gcloud configuration
"""

from __future__ import annotations

import logging

from gce_imagegen.config import BuildConfig, ConfigurationError
from gce_imagegen.gcloud.compute import Compute
from gce_imagegen.gcloud.runner import CommandRunner

logger = logging.getLogger(__name__)


def active_gcloud_value(runner: CommandRunner, key: str, gcloud_bin: str = "gcloud") -> str | None:
    """Read a property (``account``, ``project``) from the gcloud config."""
    value = runner.capture([gcloud_bin, "config", "get-value", key])
    return value or None


def fix_defaults(
    config: BuildConfig,
    runner: CommandRunner,
    gcloud_bin: str = "gcloud",
) -> BuildConfig:
    """Resolve the fields of ``config`` that are still unset.

    Args:
        config: Config from ``resolve_build_config``.
        runner: Runner for the read-only catalog and config queries.
        gcloud_bin: gcloud executable.

    Returns:
        A new BuildConfig with account, projects and base image filled in.

    Raises:
        ConfigurationError: If a lookup comes back empty.
        CommandError: If a lookup command fails.
    """
    updates: dict[str, object] = {}

    account = config.account
    if not account:
        account = active_gcloud_value(runner, "account", gcloud_bin)
        if not account:
            raise ConfigurationError("No --account given and no active gcloud account")
        updates["account"] = account

    if not config.build_project:
        project = active_gcloud_value(runner, "project", gcloud_bin)
        if not project:
            raise ConfigurationError("No --build_project given and no active gcloud project")
        updates["build_project"] = project
        if not config.publish_project:
            updates["publish_project"] = project

    if not config.base_image:
        compute = Compute(runner, account=account, zone=config.zone, gcloud_bin=gcloud_bin)
        entry = compute.latest_family_image(config.base_image_family)
        if entry is None:
            raise ConfigurationError(
                f"No image found for family '{config.base_image_family}'",
                code="base_image_not_found",
            )
        logger.info("Using base image %s from family %s", entry.name, config.base_image_family)
        updates["base_image"] = entry.name
        if not config.image_project:
            if not entry.project:
                raise ConfigurationError(
                    f"Could not derive project of image '{entry.name}'",
                    code="image_project_not_found",
                )
            updates["image_project"] = entry.project

    if not updates:
        return config
    return config.model_copy(update=updates)


__all__ = ["active_gcloud_value", "fix_defaults"]
