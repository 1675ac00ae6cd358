from __future__ import annotations

from pathlib import Path

from PIL import Image, ImageEnhance, ImageOps


class HudPreprocessor:
    """Make the light-on-dark HUD strip legible for Tesseract.

    Upscale, invert to dark-on-light, raise contrast, drop to grayscale.
    """

    def __init__(self, *, scale: int = 3, contrast: float = 1.5) -> None:
        self.scale = max(1, int(scale))
        self.contrast = contrast

    def enhance(self, image: Image.Image) -> Image.Image:
        image = image.convert("RGB")
        width, height = image.size
        if self.scale > 1 and width and height:
            image = image.resize((width * self.scale, height * self.scale), resample=Image.LANCZOS)
        image = ImageOps.invert(image)
        image = ImageEnhance.Contrast(image).enhance(self.contrast)
        return image.convert("L")

    def enhance_file(self, path: Path) -> Path:
        """Rewrite the frame at ``path`` in place and return it."""
        with Image.open(path) as source:
            enhanced = self.enhance(source)
        enhanced.save(path)
        return path
