"""Image and instance name derivation.

Target images are named ``<prefix>-<artifact>-<artifact version>`` with
periods and colons mapped to hyphens, which keeps names unique per
(artifact, version) pair and inside the image naming charset.
"""

import re

from gce_imagegen.types import BuildInstanceHandle

_UNSAFE_CHARS = re.compile(r"[.:]")


def sanitize_image_name(name: str) -> str:
    """Replace characters not allowed in image names with hyphens."""
    return _UNSAFE_CHARS.sub("-", name)


def target_image_name(prefix: str, artifact: str, artifact_version: str) -> str:
    """Compose the target image name for an artifact version.

    Args:
        prefix: Platform prefix (e.g. "spinnaker").
        artifact: Artifact name.
        artifact_version: Version resolved from the platform manifest.

    Returns:
        Sanitized image name.
    """
    return sanitize_image_name(f"{prefix}-{artifact}-{artifact_version}")


def instance_handle(target_image: str) -> BuildInstanceHandle:
    """Derive builder and cleaner instance names from a target image."""
    return BuildInstanceHandle(
        target_image=target_image,
        build_instance=f"build-{target_image}",
        cleaner_instance=f"clean-{target_image}",
    )


__all__ = ["instance_handle", "sanitize_image_name", "target_image_name"]
