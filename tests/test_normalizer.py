"""Tests for OCR text normalization."""

import pytest

from ocr_matcher.text.normalizer import normalize, normalize_lines, strip_diacritics


class TestStripDiacritics:
    """Tests for accent removal."""

    def test_removes_accents(self) -> None:
        assert strip_diacritics("Peñafiel Café") == "Penafiel Cafe"

    def test_plain_text_unchanged(self) -> None:
        assert strip_diacritics("abc 123") == "abc 123"


class TestNormalize:
    """Tests for fragment normalization."""

    def test_accent_insensitive(self) -> None:
        assert normalize("Café") == normalize("CAFE") == "cafe"

    def test_collapses_punctuation(self) -> None:
        assert normalize("  COCA-COLA,  355ml!! ") == "coca cola 355ml"

    def test_drops_filler_tokens(self) -> None:
        assert normalize("Agua de Jamaica con Hielo 12 p") == "agua jamaica hielo 12"

    def test_filler_only_as_whole_words(self) -> None:
        assert normalize("Pepsi Dens Conga") == "pepsi dens conga"

    def test_empty_and_symbol_only(self) -> None:
        assert normalize("") == ""
        assert normalize("*** --- ***") == ""

    @pytest.mark.parametrize(
        "raw",
        [
            "Café con Leche 1.5L",
            "p de p",
            "SKU: 00-12 / PZ",
            "Ñandú   (6P)",
        ],
    )
    def test_idempotent(self, raw: str) -> None:
        once = normalize(raw)
        assert normalize(once) == once


class TestNormalizeLines:
    """Tests for block normalization."""

    def test_drops_empty_lines(self) -> None:
        text = "Línea Uno\n\n---\nDos de tres"
        assert normalize_lines(text) == "linea uno\ndos tres"
