"""Tests for the OCR extraction backends."""

import asyncio
import json
from pathlib import Path
from unittest.mock import patch

import httpx
import numpy as np
import pytest
import pytesseract
from PIL import Image

from ocr_matcher.extraction.base import join_fragments
from ocr_matcher.extraction.factory import create_extractor
from ocr_matcher.extraction.remote import RemoteOCRExtractor, pages_to_fragments
from ocr_matcher.extraction.tesseract import TesseractExtractor, binarize_otsu
from ocr_matcher.utils.config import OCRConfig


def _make_test_image(path: Path) -> Path:
    """Create a minimal test PNG image at the given path."""
    image = np.zeros((100, 200, 3), dtype=np.uint8)
    image[20:80, 40:160] = 255
    Image.fromarray(image).save(path, format="PNG")
    return path


class TestJoinFragments:
    """Tests for fragment concatenation."""

    def test_normalized_join(self) -> None:
        fragments = ["Coca-Cola 355ML", "", "  ***  ", "Agua de Coco 1L"]
        assert join_fragments(fragments) == "coca cola 355ml\nagua coco 1l"

    def test_raw_join(self) -> None:
        fragments = ["  Coca-Cola 355ML ", "", "Agua 1L"]
        joined = join_fragments(fragments, normalize_text=False)
        assert joined == "Coca-Cola 355ML\nAgua 1L"


class TestBinarizeOtsu:
    """Tests for Otsu binarization."""

    def test_output_is_binary(self) -> None:
        image = np.zeros((50, 50, 3), dtype=np.uint8)
        image[10:40, 10:40] = (200, 200, 200)
        binary = binarize_otsu(image)
        assert binary.shape == (50, 50)
        assert set(np.unique(binary)) <= {0, 255}

    def test_grayscale_input(self) -> None:
        image = np.full((20, 20), 30, dtype=np.uint8)
        image[5:15, 5:15] = 220
        assert binarize_otsu(image).ndim == 2


class TestTesseractExtractor:
    """Tests for the local Tesseract backend."""

    def test_extracts_image(self, tmp_path: Path) -> None:
        path = _make_test_image(tmp_path / "invoice.png")
        extractor = TesseractExtractor(OCRConfig())
        with patch(
            "ocr_matcher.extraction.tesseract.pytesseract.image_to_string",
            return_value="COCA COLA 355ML\n\nFANTA 2L\n",
        ) as mock_ocr:
            outcome = asyncio.run(extractor.extract(path))

        assert outcome.ok
        assert outcome.text == "coca cola 355ml\nfanta 2l"
        kwargs = mock_ocr.call_args.kwargs
        assert kwargs["lang"] == "spa+eng"
        assert kwargs["config"] == "--psm 6"

    def test_raw_text_when_normalization_disabled(self, tmp_path: Path) -> None:
        path = _make_test_image(tmp_path / "invoice.png")
        extractor = TesseractExtractor(OCRConfig(normalize_text=False, binarize=False))
        with patch(
            "ocr_matcher.extraction.tesseract.pytesseract.image_to_string",
            return_value="COCA COLA 355ML",
        ):
            outcome = asyncio.run(extractor.extract(path))
        assert outcome.text == "COCA COLA 355ML"

    def test_pdf_pages_rendered(self, tmp_path: Path) -> None:
        path = tmp_path / "delivery.pdf"
        path.write_bytes(b"%PDF-1.4 fake")
        pages = [Image.new("RGB", (60, 40), "white") for _ in range(2)]
        extractor = TesseractExtractor(OCRConfig(pdf_dpi=200))
        with (
            patch(
                "ocr_matcher.extraction.tesseract.convert_from_path",
                return_value=pages,
            ) as mock_convert,
            patch(
                "ocr_matcher.extraction.tesseract.pytesseract.image_to_string",
                side_effect=["Page One", "Page Two"],
            ),
        ):
            outcome = asyncio.run(extractor.extract(path))

        assert outcome.text == "page one\npage two"
        mock_convert.assert_called_once_with(str(path), dpi=200)

    def test_missing_file(self, tmp_path: Path) -> None:
        extractor = TesseractExtractor(OCRConfig())
        outcome = asyncio.run(extractor.extract(tmp_path / "missing.png"))
        assert not outcome.ok
        assert "does not exist" in outcome.error

    def test_tesseract_error_reported(self, tmp_path: Path) -> None:
        path = _make_test_image(tmp_path / "invoice.png")
        extractor = TesseractExtractor(OCRConfig())
        with patch(
            "ocr_matcher.extraction.tesseract.pytesseract.image_to_string",
            side_effect=pytesseract.TesseractError(1, "bad language"),
        ):
            outcome = asyncio.run(extractor.extract(path))
        assert outcome.error.startswith("OCR Error:")
        assert outcome.text == ""

    def test_unreadable_image_reported(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        outcome = asyncio.run(TesseractExtractor(OCRConfig()).extract(path))
        assert outcome.error.startswith("OCR Error:")

    def test_blank_page_is_error(self, tmp_path: Path) -> None:
        path = _make_test_image(tmp_path / "blank.png")
        extractor = TesseractExtractor(OCRConfig())
        with patch(
            "ocr_matcher.extraction.tesseract.pytesseract.image_to_string",
            return_value="  \n\n ",
        ):
            outcome = asyncio.run(extractor.extract(path))
        assert not outcome.ok
        assert outcome.error == "OCR returned no usable text"


def _ocr_service(pages: list[dict], status_code: int = 200):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/files"):
            return httpx.Response(200, json={"id": "file-123"})
        if status_code != 200:
            return httpx.Response(status_code, json={"detail": "boom"})
        return httpx.Response(200, json={"pages": pages})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), seen


class TestRemoteOCRExtractor:
    """Tests for the hosted OCR backend."""

    def test_pages_to_fragments(self) -> None:
        payload = {"pages": [{"markdown": "A\nB"}, {"text": "C"}, {}]}
        assert pages_to_fragments(payload) == ["A", "B", "C"]
        assert pages_to_fragments({}) == []

    def test_extracts_all_pages(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("MISTRAL_API_KEY", "test-key")
        path = tmp_path / "invoice.pdf"
        path.write_bytes(b"%PDF-1.4 fake")
        client, seen = _ocr_service(
            [{"markdown": "Coca Cola 355ml\nFanta 2L"}, {"markdown": "Sprite 600 ml"}]
        )
        extractor = RemoteOCRExtractor(OCRConfig(backend="remote"), client=client)

        outcome = asyncio.run(extractor.extract(path))

        assert outcome.text == "coca cola 355ml\nfanta 2l\nsprite 600 ml"
        assert [r.url.path for r in seen] == ["/v1/files", "/v1/ocr"]
        assert seen[0].headers["Authorization"] == "Bearer test-key"
        body = json.loads(seen[1].content)
        assert body["model"] == "mistral-ocr-latest"
        assert body["document"] == {"type": "file", "file_id": "file-123"}

    def test_http_error_reported(self, tmp_path: Path) -> None:
        path = tmp_path / "invoice.pdf"
        path.write_bytes(b"%PDF-1.4 fake")
        client, _ = _ocr_service([], status_code=500)
        extractor = RemoteOCRExtractor(OCRConfig(backend="remote"), client=client)

        outcome = asyncio.run(extractor.extract(path))
        assert outcome.error == "OCR Error: HTTP 500 from OCR service"

    def test_empty_response_is_error(self, tmp_path: Path) -> None:
        path = tmp_path / "invoice.pdf"
        path.write_bytes(b"%PDF-1.4 fake")
        client, _ = _ocr_service([{"markdown": "  \n"}])
        extractor = RemoteOCRExtractor(OCRConfig(backend="remote"), client=client)

        outcome = asyncio.run(extractor.extract(path))
        assert outcome.error == "OCR returned no usable text"

    def test_missing_file(self, tmp_path: Path) -> None:
        extractor = RemoteOCRExtractor(OCRConfig(backend="remote"))
        outcome = asyncio.run(extractor.extract(tmp_path / "missing.pdf"))
        assert "does not exist" in outcome.error


class TestCreateExtractor:
    """Tests for backend selection."""

    def test_tesseract_default(self) -> None:
        assert isinstance(create_extractor(OCRConfig()), TesseractExtractor)

    def test_remote(self) -> None:
        extractor = create_extractor(OCRConfig(backend="remote"))
        assert isinstance(extractor, RemoteOCRExtractor)
        assert extractor.name == "remote"

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="Unknown OCR backend"):
            create_extractor(OCRConfig(backend="abbyy"))
