"""Image transformation backend used inside execution units."""

from image_batch.transform.catalog import (
    TRANSFORMATIONS,
    TransformationSpec,
    enabled_transformations,
)
from image_batch.transform.pillow_backend import PillowTransformer

__all__ = [
    "TRANSFORMATIONS",
    "PillowTransformer",
    "TransformationSpec",
    "enabled_transformations",
]
