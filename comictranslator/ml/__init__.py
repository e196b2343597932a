"""
Machine learning model lifetime management for ComicTranslator.

This subpackage contains modules for:
- Scoped model sessions with serialized calls and guaranteed release
- Materializing packaged model assets as files
"""

from .assets import materialize_model_asset, package_resource_reader
from .sessions import ModelSession, release_preserving_error

__all__ = [
    "ModelSession",
    "release_preserving_error",
    "materialize_model_asset",
    "package_resource_reader",
]
