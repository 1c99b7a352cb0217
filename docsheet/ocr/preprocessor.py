"""
Image preprocessing for OCR.

Optional enhancement applied before Tesseract:
- Grayscale conversion
- Contrast enhancement (CLAHE)
- Noise reduction and Otsu thresholding
"""

import logging
from dataclasses import dataclass, field

import cv2
import numpy as np
from PIL import Image

from docsheet.config import PreprocessingLevel

logger = logging.getLogger(__name__)


@dataclass
class PreprocessingResult:
    """Result of image preprocessing."""
    image: Image.Image
    original_size: tuple[int, int]
    processed_size: tuple[int, int]
    preprocessing_level: PreprocessingLevel
    messages: list[str] = field(default_factory=list)


def to_ocr_mode(image: Image.Image) -> Image.Image:
    """Flatten transparency onto white and convert to a Tesseract-friendly mode."""
    if image.mode in ("RGB", "L", "1"):
        return image
    if image.mode in ("RGBA", "LA"):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[3])
        return background
    return image.convert("RGB")


class ImagePreprocessor:
    """
    Preprocesses images for OCR.

    Higher levels may help on poor scans but can hurt clean digital
    images, so the default level is NONE.
    """

    def __init__(
        self,
        level: PreprocessingLevel = PreprocessingLevel.NONE,
        max_dimension: int = 4000,
    ):
        """
        Initialize the image preprocessor.

        Args:
            level: Preprocessing intensity level
            max_dimension: Maximum image dimension to prevent memory issues
        """
        self.level = level
        self.max_dimension = max_dimension

    def preprocess(self, image: Image.Image) -> PreprocessingResult:
        """
        Preprocess a PIL image for OCR.

        Args:
            image: Loaded PIL image

        Returns:
            PreprocessingResult with processed image and metadata
        """
        image = to_ocr_mode(image)
        original_size = image.size
        messages = []

        if self.level == PreprocessingLevel.NONE:
            return PreprocessingResult(
                image=image,
                original_size=original_size,
                processed_size=original_size,
                preprocessing_level=self.level,
                messages=["No preprocessing applied"],
            )

        gray = np.array(image.convert("L"))
        messages.append("Converted to grayscale")

        gray = self._resize_if_needed(gray, messages)

        clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
        gray = clahe.apply(gray)
        messages.append("Applied contrast enhancement")

        if self.level == PreprocessingLevel.STANDARD:
            # Bilateral filter keeps glyph edges sharp
            gray = cv2.bilateralFilter(gray, 9, 75, 75)
            messages.append("Applied noise reduction")

            _, gray = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
            messages.append("Applied Otsu thresholding")

        processed = Image.fromarray(gray)
        logger.debug(f"Preprocessed image ({self.level.value}): {', '.join(messages)}")

        return PreprocessingResult(
            image=processed,
            original_size=original_size,
            processed_size=processed.size,
            preprocessing_level=self.level,
            messages=messages,
        )

    def _resize_if_needed(self, gray: np.ndarray, messages: list[str]) -> np.ndarray:
        """Downscale if the image exceeds the maximum dimension."""
        height, width = gray.shape[:2]

        if max(height, width) > self.max_dimension:
            scale = self.max_dimension / max(height, width)
            new_width = int(width * scale)
            new_height = int(height * scale)
            gray = cv2.resize(gray, (new_width, new_height), interpolation=cv2.INTER_AREA)
            messages.append(f"Resized from {width}x{height} to {new_width}x{new_height}")

        return gray
