"""Select the configured text extraction backend."""

from ocr_matcher.utils.config import OCRConfig

from .base import TextExtractionPort
from .remote import RemoteOCRExtractor
from .tesseract import TesseractExtractor

_BACKENDS: dict[str, type[TextExtractionPort]] = {
    "tesseract": TesseractExtractor,
    "remote": RemoteOCRExtractor,
}


def create_extractor(config: OCRConfig) -> TextExtractionPort:
    """Instantiate the OCR backend named by ``config.backend``.

    Raises:
        ValueError: If the backend name is unknown.
    """
    try:
        backend_cls = _BACKENDS[config.backend]
    except KeyError as exc:
        supported = ", ".join(sorted(_BACKENDS))
        raise ValueError(
            f"Unknown OCR backend '{config.backend}'. Supported: {supported}"
        ) from exc
    return backend_cls(config)
