"""Pillow-backed job handler writing every enabled variant of one image."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any

from PIL import Image, ImageEnhance, ImageFilter, ImageOps

from image_batch.errors import TransformationError
from image_batch.orchestrator.handlers.base import UnitRequest
from image_batch.transform.catalog import TransformationSpec, enabled_transformations

logger = logging.getLogger(__name__)

_SAVE_FORMATS = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
    ".webp": "WEBP",
}


class PillowTransformer:
    """Apply each enabled transformation to a copy of the decoded source image.

    Sibling transformations run on a thread pool. A failing transformation
    fails the whole job, but files already written by the others are kept.
    """

    def run(self, request: UnitRequest) -> dict[str, Any]:
        specs = enabled_transformations(request.transform)
        output_dir = request.output_dir
        output_dir.mkdir(parents=True, exist_ok=True)

        with Image.open(request.job.source_path) as opened:
            opened.load()
            image = _decoded(opened)
        width, height = image.size

        outputs: list[str] = []
        failures: list[str] = []
        max_workers = max(1, min(request.transform.max_threads, len(specs)))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(
                    apply_and_save,
                    image,
                    spec,
                    output_dir,
                    quality=request.transform.quality,
                    fit_mode=request.transform.fit_mode,
                ): spec
                for spec in specs
            }
            for future in as_completed(futures):
                spec = futures[future]
                try:
                    outputs.append(future.result().name)
                except Exception as error:  # noqa: BLE001
                    logger.error("Error in %s for %s: %s", spec.name, request.job.name, error)
                    failures.append(f"{spec.name} ({error})")

        if failures:
            failures.sort()
            raise TransformationError(
                f"Failed to process tasks: {', '.join(failures)}",
                failed=tuple(item.split(" ", 1)[0] for item in failures),
            )

        return {
            "original_size": {"width": width, "height": height},
            "tasks_completed": len(specs),
            "outputs": sorted(outputs),
        }


def apply_and_save(
    image: Image.Image,
    spec: TransformationSpec,
    output_dir: Path,
    *,
    quality: int,
    fit_mode: str,
) -> Path:
    """Apply one transformation and write the encoded result."""

    operation = _OPERATIONS.get(spec.operation)
    if operation is None:
        raise ValueError(f"Unsupported transformation operation: {spec.operation}")
    result = operation(image.copy(), spec.params, fit_mode)
    path = output_dir / spec.filename
    save_image(result, path, quality=quality)
    return path


def save_image(image: Image.Image, path: Path, *, quality: int) -> None:
    save_format = _SAVE_FORMATS.get(path.suffix.lower())
    if save_format is None:
        raise ValueError(f"Unsupported output extension: {path.suffix}")
    if save_format == "JPEG":
        image = _flatten(image)
        image.save(path, save_format, quality=quality, optimize=True)
        return
    if save_format == "WEBP":
        image.save(path, save_format, quality=quality)
        return
    image.save(path, save_format, optimize=True)


def _decoded(image: Image.Image) -> Image.Image:
    if image.mode in ("RGB", "RGBA", "L"):
        return image.copy()
    has_alpha = "A" in image.getbands() or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


def _flatten(image: Image.Image) -> Image.Image:
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if image.mode not in ("RGB", "L"):
        return image.convert("RGB")
    return image


def _rgb(image: Image.Image) -> Image.Image:
    return image if image.mode == "RGB" else _flatten(image).convert("RGB")


def _resize(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    size = (int(params["width"]), int(params["height"]))
    if fit_mode == "contain":
        return ImageOps.contain(image, size, Image.Resampling.LANCZOS)
    if fit_mode == "fill":
        return image.resize(size, Image.Resampling.LANCZOS)
    return ImageOps.fit(image, size, Image.Resampling.LANCZOS)


def _grayscale(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    return ImageOps.grayscale(_rgb(image))


def _blur(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    return image.filter(ImageFilter.GaussianBlur(radius=params.get("radius", 5)))


_SEPIA_MATRIX = (
    0.393, 0.769, 0.189, 0,
    0.349, 0.686, 0.168, 0,
    0.272, 0.534, 0.131, 0,
)  # fmt: skip


def _sepia(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    return _rgb(image).convert("RGB", _SEPIA_MATRIX)


def _invert(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    return ImageOps.invert(_rgb(image))


def _brightness(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    return ImageEnhance.Brightness(_rgb(image)).enhance(1 + float(params.get("value", 0.2)))


def _contrast(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    return ImageEnhance.Contrast(_rgb(image)).enhance(1 + float(params.get("value", 0.3)))


def _with_opacity(image: Image.Image, factor: float) -> Image.Image:
    rgba = image.convert("RGBA")
    factor = min(1.0, max(0.0, factor))
    rgba.putalpha(rgba.getchannel("A").point(lambda alpha: round(alpha * factor)))
    return rgba


def _opacity(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    return _with_opacity(image, float(params.get("value", 0.8)))


def _fade(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    return _with_opacity(image, 1 - float(params.get("value", 0.5)))


def _rotate(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    # Positive degrees rotate clockwise.
    return image.rotate(-float(params.get("degrees", 90)), expand=True)


def _flip_horizontal(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    return ImageOps.mirror(image)


def _flip_vertical(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    return ImageOps.flip(image)


def _pixelate(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    block = max(1, int(params.get("size", 10)))
    width, height = image.size
    small = image.resize(
        (max(1, width // block), max(1, height // block)),
        Image.Resampling.NEAREST,
    )
    return small.resize((width, height), Image.Resampling.NEAREST)


def _posterize(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    levels = min(255, max(2, int(params.get("levels", 5))))
    step = 255 / (levels - 1)
    table = [round(round(value / step) * step) for value in range(256)]
    return _rgb(image).point(table * 3)


def _normalize(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    return ImageOps.autocontrast(_rgb(image))


def _color_tone(image: Image.Image, params: dict[str, Any], fit_mode: str) -> Image.Image:
    base = _rgb(image)
    tone = (
        int(params.get("red", 255)),
        int(params.get("green", 100)),
        int(params.get("blue", 100)),
    )
    return Image.blend(base, Image.new("RGB", base.size, tone), 0.5)


_OPERATIONS: dict[str, Callable[[Image.Image, dict[str, Any], str], Image.Image]] = {
    "resize": _resize,
    "grayscale": _grayscale,
    "blur": _blur,
    "sepia": _sepia,
    "invert": _invert,
    "brightness": _brightness,
    "contrast": _contrast,
    "opacity": _opacity,
    "fade": _fade,
    "rotate": _rotate,
    "flip_horizontal": _flip_horizontal,
    "flip_vertical": _flip_vertical,
    "pixelate": _pixelate,
    "posterize": _posterize,
    "normalize": _normalize,
    "color_tone": _color_tone,
}
