"""Local Tesseract OCR backend.

Renders PDFs to page images, optionally binarizes them with Otsu's
threshold, and reads each page line by line with Tesseract.
"""

import asyncio
from pathlib import Path

import cv2
import numpy as np
import pytesseract
from pdf2image import convert_from_path
from PIL import Image

from ocr_matcher.utils.config import OCRConfig
from ocr_matcher.utils.logger import get_logger

from .base import ExtractionOutcome, TextExtractionPort, join_fragments

logger = get_logger(__name__)


def binarize_otsu(image: np.ndarray) -> np.ndarray:
    """Binarize an image using Otsu's automatic thresholding.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Binary image with pixel values 0 or 255.
    """
    gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY) if len(image.shape) == 3 else image
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return binary


def _looks_like_pdf(path: Path) -> bool:
    with open(path, "rb") as f:
        return f.read(4) == b"%PDF"


class TesseractExtractor(TextExtractionPort):
    """Text extraction through a local Tesseract installation.

    Args:
        config: OCR configuration (language, page segmentation mode,
            PDF rendering DPI, preprocessing and normalization flags).
    """

    name = "tesseract"

    def __init__(self, config: OCRConfig) -> None:
        if config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = config.tesseract_cmd
        self.config = config

    async def extract(self, path: Path) -> ExtractionOutcome:
        path = Path(path)
        if not path.exists():
            logger.error("File %s does not exist", path)
            return ExtractionOutcome(
                error=f"File does not exist or is not accessible: {path}"
            )

        try:
            text = await asyncio.to_thread(self._extract_sync, path)
        except pytesseract.TesseractError as exc:
            logger.error("Tesseract failed on %s: %s", path.name, exc)
            return ExtractionOutcome(error=f"OCR Error: {exc}")
        except Exception as exc:
            logger.error("OCR extraction error for %s: %s", path.name, exc)
            return ExtractionOutcome(error=f"OCR Error: {exc}")

        if not text:
            logger.warning("No text extracted from %s", path.name)
            return ExtractionOutcome(error="OCR returned no usable text")

        logger.info("Extracted %d characters from %s", len(text), path.name)
        return ExtractionOutcome(text=text)

    def _extract_sync(self, path: Path) -> str:
        fragments: list[str] = []
        for image in self._load_images(path):
            if self.config.binarize:
                image = binarize_otsu(image)
            page_text = pytesseract.image_to_string(
                Image.fromarray(image),
                lang=self.config.default_lang,
                config=f"--psm {self.config.psm}",
            )
            fragments.extend(page_text.splitlines())
        return join_fragments(fragments, self.config.normalize_text)

    def _load_images(self, path: Path) -> list[np.ndarray]:
        """Load document pages as RGB numpy arrays."""
        if path.suffix.lower() == ".pdf" or _looks_like_pdf(path):
            pages = convert_from_path(str(path), dpi=self.config.pdf_dpi)
            logger.debug(
                "Rendered %d PDF pages at %d DPI", len(pages), self.config.pdf_dpi
            )
            return [np.array(page.convert("RGB")) for page in pages]

        with Image.open(path) as img:
            return [np.array(img.convert("RGB"))]
