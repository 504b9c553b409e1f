"""Build orchestration module.

This module handles:
- Target image and instance naming
- Default fixup from the image catalog and gcloud config
- Per-component builds with rollback of partial resources
- Concurrent fan-out over the component table and aggregation
"""

from gce_imagegen.builds.builder import BakeError, ComponentBuilder
from gce_imagegen.builds.service import BakeReport, bake_all

__all__ = ["BakeError", "BakeReport", "ComponentBuilder", "bake_all"]
