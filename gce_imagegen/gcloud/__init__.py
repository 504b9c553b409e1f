"""Google Cloud CLI integration.

This module handles:
- Running external commands with per-unit log capture
- Composing ``gcloud compute`` commands
- SSH key provisioning for remote sessions
"""

from gce_imagegen.gcloud.compute import CatalogImage, Compute
from gce_imagegen.gcloud.runner import CommandError, CommandRunner, CommandTimeoutError

__all__ = [
    "CatalogImage",
    "CommandError",
    "CommandRunner",
    "CommandTimeoutError",
    "Compute",
]
