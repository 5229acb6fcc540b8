"""Shared test fixtures for the OCR matcher test suite."""

import asyncio
from pathlib import Path
from typing import Any, Callable

import pytest

from ocr_matcher.comparison.base import ComparisonPort
from ocr_matcher.comparison.models import ComparisonResult, parse_comparison_payload
from ocr_matcher.errors import ComparisonError
from ocr_matcher.extraction.base import ExtractionOutcome, TextExtractionPort
from ocr_matcher.pipeline.uploads import UploadedFile
from ocr_matcher.storage.sql_store import SQLResultStore

PRODUCT_TEXT = "\n".join(
    [
        "FACTURA 001-234",
        "CODIGO DESCRIPCION CANTIDAD PRECIO",
        "COCA COLA 355ML 12P 2 24.00",
        "FANTA NARANJA 2L 6P 1 18.50",
        "SPRITE 600 ML 4 30.00",
        "AGUA CIEL 1.5L 3 12.00",
    ]
)


class FakeExtractor(TextExtractionPort):
    """Returns canned text per filename; names in ``failures`` error out."""

    name = "fake"

    def __init__(
        self,
        texts: dict[str, str] | None = None,
        failures: set[str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.texts = texts or {}
        self.failures = failures or set()
        self.delay = delay
        self.calls: list[str] = []

    async def extract(self, path: Path) -> ExtractionOutcome:
        name = Path(path).name.split("-", 1)[-1]
        self.calls.append(name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.failures:
            return ExtractionOutcome(error=f"OCR Error: cannot read {name}")
        return ExtractionOutcome(text=self.texts.get(name, PRODUCT_TEXT))


class FakeComparator(ComparisonPort):
    """Returns a fixed payload; raises for invoice names in ``failures``."""

    def __init__(
        self,
        payload: dict[str, Any],
        failures: set[str] | None = None,
        on_compare: Callable[[str], None] | None = None,
    ) -> None:
        self.payload = payload
        self.failures = failures or set()
        self.on_compare = on_compare
        self.calls: list[tuple[str, str]] = []

    async def compare(
        self,
        invoice_text: str,
        delivery_order_text: str,
        invoice_filename: str,
        delivery_order_filename: str,
    ) -> ComparisonResult:
        self.calls.append((invoice_filename, delivery_order_filename))
        if self.on_compare is not None:
            self.on_compare(invoice_filename)
        if invoice_filename in self.failures:
            raise ComparisonError("AI comparison failed: backend unavailable")
        return parse_comparison_payload(
            self.payload, invoice_filename, delivery_order_filename
        )


@pytest.fixture
def comparison_payload() -> dict[str, Any]:
    """An AI response with one row of each status and a bogus summary."""
    return {
        "items": [
            {
                "productName": "COCA COLA 355ML 12P",
                "invoiceValue": "2",
                "deliveryOrderValue": "2",
                "status": "match",
                "priceMatch": "match",
                "price": "24.00",
            },
            {
                "productName": "FANTA NARANJA 2L 6P",
                "invoiceValue": "1",
                "deliveryOrderValue": "2",
                "status": "warning",
                "note": "Quantity differs",
            },
        ],
        "metadata": [
            {
                "field": "Document number",
                "invoiceValue": "001-234",
                "deliveryOrderValue": "",
                "status": "error",
            }
        ],
        "summary": {"matches": 9, "warnings": 9, "errors": 9},
    }


@pytest.fixture
def store() -> SQLResultStore:
    """In-memory SQLite result store."""
    return SQLResultStore("sqlite://")


@pytest.fixture
def make_uploads(tmp_path: Path) -> Callable[..., list[UploadedFile]]:
    """Create temporary upload files named after the given filenames."""

    def _make(*names: str) -> list[UploadedFile]:
        files = []
        for name in names:
            path = tmp_path / f"upload-{name}"
            path.write_bytes(b"%PDF-1.4 fake")
            files.append(UploadedFile(name=name, path=path, size_bytes=13))
        return files

    return _make


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
