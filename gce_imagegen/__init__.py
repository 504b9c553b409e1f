"""GCE Image Generator - bake machine images for platform components.

This package provides orchestration around the Google Cloud CLI for
building one image per platform component, publishing it to a separate
project, and cleaning up the transient resources used to build it.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
