"""Image optimization for Quire.

A one-off script that recompresses the site's source images into the built
site, run with ``quire images``. Only top-level JPEG and PNG files of the
source directory are processed.

- JPEG files are re-encoded at a fixed quality, optimized and progressive.
- PNG files are quantized to an adaptive palette and saved optimized.

Files Pillow cannot read are reported and skipped so one bad image does not
stop the run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image

JPEG_EXTENSIONS = {".jpg", ".jpeg"}
PNG_EXTENSIONS = {".png"}
DEFAULT_JPEG_QUALITY = 75
DEFAULT_PNG_COLORS = 256


@dataclass
class OptimizeReport:
    """Result of an optimization run.

    Attributes:
        written: Output files that were produced.
        skipped: Source files that could not be processed.
        bytes_before: Total size of the processed source files.
        bytes_after: Total size of the written files.
    """

    written: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    bytes_before: int = 0
    bytes_after: int = 0

    @property
    def saved(self) -> int:
        return self.bytes_before - self.bytes_after


class ImageOptimizer:
    """Recompresses JPEG and PNG images with Pillow.

    Attributes:
        jpeg_quality: JPEG quality (1-95).
        png_colors: Maximum palette size for PNG quantization.
    """

    def __init__(
        self,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        png_colors: int = DEFAULT_PNG_COLORS,
    ):
        if not 1 <= jpeg_quality <= 95:
            raise ValueError(f"jpeg_quality must be between 1 and 95, got {jpeg_quality}")
        if not 2 <= png_colors <= 256:
            raise ValueError(f"png_colors must be between 2 and 256, got {png_colors}")
        self.jpeg_quality = jpeg_quality
        self.png_colors = png_colors

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() in JPEG_EXTENSIONS | PNG_EXTENSIONS

    def process(self, source: Path, dest: Path) -> None:
        """Optimize a single image.

        Raises:
            OSError: If Pillow cannot read or write the image.
        """
        dest.parent.mkdir(parents=True, exist_ok=True)
        with Image.open(source) as img:
            if source.suffix.lower() in JPEG_EXTENSIONS:
                self._save_jpeg(img, dest)
            else:
                self._save_png(img, dest)

    def _save_jpeg(self, img: Image.Image, dest: Path) -> None:
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        img.save(
            dest,
            "JPEG",
            quality=self.jpeg_quality,
            optimize=True,
            progressive=True,
        )

    def _save_png(self, img: Image.Image, dest: Path) -> None:
        if img.mode == "P":
            quantized = img
        elif img.mode in ("RGBA", "LA"):
            quantized = img.convert("RGBA").quantize(
                colors=self.png_colors, method=Image.Quantize.FASTOCTREE
            )
        else:
            quantized = img.convert("RGB").quantize(colors=self.png_colors)
        quantized.save(dest, "PNG", optimize=True)

    def run(self, source_dir: Path, output_dir: Path) -> OptimizeReport:
        """Optimize every top-level image of ``source_dir`` into ``output_dir``.

        Args:
            source_dir: Directory holding the original images.
            output_dir: Directory receiving the optimized copies.

        Returns:
            OptimizeReport describing the run.
        """
        report = OptimizeReport()
        if not source_dir.is_dir():
            print(f"Image source directory not found: {source_dir}")
            return report

        for source in sorted(source_dir.iterdir()):
            if not source.is_file() or not self.can_process(source):
                continue
            dest = output_dir / source.name
            try:
                self.process(source, dest)
            except OSError as exc:
                print(f"Could not optimize {source.name}: {exc}")
                report.skipped.append(source)
                continue
            report.written.append(dest)
            report.bytes_before += source.stat().st_size
            report.bytes_after += dest.stat().st_size
        return report
