"""Catalogue of named transformations and their output files."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from image_batch.config import TransformSettings


@dataclass(slots=True, frozen=True)
class TransformationSpec:
    """One derived variant written for every source image."""

    name: str
    operation: str
    filename: str
    params: dict[str, Any] = field(default_factory=dict)


def _spec(name: str, operation: str, filename: str, **params: Any) -> TransformationSpec:
    return TransformationSpec(name=name, operation=operation, filename=filename, params=params)


TRANSFORMATIONS: dict[str, TransformationSpec] = {
    spec.name: spec
    for spec in (
        _spec("thumbnail", "resize", "thumbnail.jpg", width=150, height=150),
        _spec("small", "resize", "small.jpg", width=300, height=300),
        _spec("medium", "resize", "medium.jpg", width=600, height=600),
        _spec("large", "resize", "large.jpg", width=1200, height=1200),
        _spec("xlarge", "resize", "xlarge.jpg", width=1920, height=1920),
        _spec("grayscale", "grayscale", "grayscale.jpg"),
        _spec("blur", "blur", "blur.jpg", radius=5),
        _spec("sepia", "sepia", "sepia.jpg"),
        _spec("invert", "invert", "invert.jpg"),
        _spec("brightness", "brightness", "brightness.jpg", value=0.2),
        _spec("contrast", "contrast", "contrast.jpg", value=0.3),
        _spec("opacity", "opacity", "opacity.png", value=0.8),
        _spec("fade", "fade", "fade.jpg", value=0.5),
        _spec("rotate", "rotate", "rotated.jpg", degrees=90),
        _spec("rotate180", "rotate", "rotate180.jpg", degrees=180),
        _spec("rotate270", "rotate", "rotate270.jpg", degrees=270),
        _spec("flip_horizontal", "flip_horizontal", "flip-h.jpg"),
        _spec("flip_vertical", "flip_vertical", "flip-v.jpg"),
        _spec("pixelate", "pixelate", "pixelate.jpg", size=10),
        _spec("posterize", "posterize", "posterize.jpg", levels=5),
        _spec("normalize", "normalize", "normalize.jpg"),
        _spec("color_tone", "color_tone", "color-tone.jpg", red=255, green=100, blue=100),
    )
}


def enabled_transformations(settings: TransformSettings) -> list[TransformationSpec]:
    """Transformations to apply, in catalogue order."""

    if settings.enabled is None:
        return list(TRANSFORMATIONS.values())
    wanted = set(settings.enabled)
    return [spec for name, spec in TRANSFORMATIONS.items() if name in wanted]
