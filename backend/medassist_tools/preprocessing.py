from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)

SHARPEN_KERNEL = (0, -1, 0, -1, 5, -1, 0, -1, 0)


@dataclass(frozen=True)
class PreprocessingOptions:
    """Scan clean-up parameters.

    Pages whose long edge is below ``target_long_edge`` are upscaled to it and
    pages above ``max_long_edge`` are downscaled, keeping the aspect ratio.
    ``denoise_radius`` and ``threshold`` may be ``None`` to skip those stages.
    """

    target_long_edge: int = 2000
    max_long_edge: int = 4000
    contrast_factor: float = 1.5
    sharpen_kernel: tuple[int, ...] = SHARPEN_KERNEL
    denoise_radius: float | None = 0.5
    threshold: int | None = 128


class ImagePreprocessor:
    def __init__(self, options: PreprocessingOptions | None = None, *, enabled: bool = True) -> None:
        self.options = options or PreprocessingOptions()
        self.enabled = enabled

    def _stages(self) -> list[tuple[str, Callable[[Any], Any]]]:
        stages: list[tuple[str, Callable[[Any], Any]]] = [
            ("resize", self._resize),
            ("greyscale", self._greyscale),
            ("normalize", self._normalize),
            ("contrast", self._contrast),
            ("sharpen", self._sharpen),
        ]
        if self.options.denoise_radius:
            stages.append(("denoise", self._denoise))
        if self.options.threshold is not None:
            stages.append(("threshold", self._threshold))
        return stages

    def process(self, image_path: Path, work_dir: Path) -> Path:
        """Write an OCR-ready copy of ``image_path`` into ``work_dir``.

        Returns the original path when Pillow is unavailable, preprocessing is
        disabled, or the image cannot be opened or saved. A failing stage is
        logged and skipped.
        """
        if not self.enabled:
            return image_path
        try:
            from PIL import Image
        except ImportError:
            logger.warning("Pillow unavailable, skipping image preprocessing")
            return image_path

        try:
            with Image.open(image_path) as source:
                source.load()
                image = source.copy()
        except OSError as exc:
            logger.warning("could not open %s for preprocessing: %s", image_path.name, exc)
            return image_path

        for name, stage in self._stages():
            try:
                image = stage(image)
            except (OSError, ValueError) as exc:
                logger.warning("preprocessing stage %s skipped for %s: %s", name, image_path.name, exc)

        output_path = work_dir / f"{image_path.stem}_prepared.png"
        try:
            image.save(output_path, format="PNG")
        except OSError as exc:
            logger.warning("could not save preprocessed image for %s: %s", image_path.name, exc)
            return image_path
        return output_path

    def _resize(self, image: Any) -> Any:
        from PIL import Image

        width, height = image.size
        long_edge = max(width, height)
        if long_edge <= 0:
            return image
        if long_edge < self.options.target_long_edge:
            scale = self.options.target_long_edge / long_edge
        elif long_edge > self.options.max_long_edge:
            scale = self.options.max_long_edge / long_edge
        else:
            return image
        new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
        return image.resize(new_size, Image.Resampling.LANCZOS)

    def _greyscale(self, image: Any) -> Any:
        return image.convert("L")

    def _normalize(self, image: Any) -> Any:
        from PIL import ImageOps

        return ImageOps.autocontrast(image)

    def _contrast(self, image: Any) -> Any:
        from PIL import ImageEnhance

        return ImageEnhance.Contrast(image).enhance(self.options.contrast_factor)

    def _sharpen(self, image: Any) -> Any:
        from PIL import ImageFilter

        return image.filter(ImageFilter.Kernel((3, 3), list(self.options.sharpen_kernel), scale=1))

    def _denoise(self, image: Any) -> Any:
        from PIL import ImageFilter

        return image.filter(ImageFilter.GaussianBlur(radius=self.options.denoise_radius))

    def _threshold(self, image: Any) -> Any:
        cutoff = self.options.threshold
        return image.point(lambda value: 255 if value > cutoff else 0)
