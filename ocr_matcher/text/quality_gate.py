"""Heuristic quality gate for extracted document text.

Scores whether OCR output looks like a genuine product/line-item
document (a table of products with quantities and prices) rather than
fiscal boilerplate or repeated noise. Text that fails the gate is
unlikely to yield line items in an AI comparison.
"""

import re
from collections import Counter
from dataclasses import dataclass, field

from ocr_matcher.utils.logger import get_logger

from .normalizer import normalize, strip_diacritics

logger = get_logger(__name__)

# Patterns run against lines folded to lowercase without accents
_HEADER_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"codigo.*descripcion.*cantidad"),
    re.compile(r"(clave|sku|codigo).*(producto|articulo|descripcion)"),
    re.compile(r"descripcion.*(cant|unidad|u\.?m\.?)"),
    re.compile(r"(cant|cantidad).*(precio|importe|p\.?\s?unit)"),
    re.compile(r"\b(item|product|description)\b.*\b(qty|quantity)\b"),
]

_COLUMN_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\bprecio\s+unit(ario)?\b|\bp\.?\s?unit\b|\bunit\s+price\b"),
    re.compile(r"\bimporte\b|\bamount\b"),
    re.compile(r"\bcantidad\b|\bcant\.?(?=\s|$)|\bqty\b"),
    re.compile(r"\bunidad\b|\bu\.?m\.?(?=\s|$)|\buom\b"),
    re.compile(r"\bcajas?\b|\bpiezas?\b|\bpzas?\b"),
]

_UNIT_TOKEN = re.compile(r"\d+(?:[.,]\d+)?\s?(?:ml|l|lt|kg|g|gr)\b")
_PACK_TOKEN = re.compile(r"\b\d+\s?p\b|\bpk\s?\d+\b|\b\d+\s?pz\b")
_DIGIT = re.compile(r"\d")

BRAND_TERMS: tuple[str, ...] = (
    "penafiel",
    "dr pepper",
    "red bull",
    "rb",
    "snapple",
    "snap",
    "coca cola",
    "pepsi",
)

NOISE_TERMS: tuple[str, ...] = (
    "iva",
    "rfc",
    "regimen",
    "fiscal",
    "cfdi",
    "sello digital",
    "certificado",
    "subtotal",
    "impuesto",
    "retencion",
    "domicilio",
    "forma de pago",
    "metodo de pago",
    "cadena original",
)

_BRAND_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(term) for term in BRAND_TERMS) + r")\b"
)
_NOISE_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(term) for term in NOISE_TERMS) + r")\b"
)


@dataclass
class GateOptions:
    """Thresholds controlling the pass/fail decision."""

    min_product_lines: int = 3
    repetition_limit: float = 0.45
    pass_score: int = 5


@dataclass
class QualityAssessment:
    """Outcome of assessing one block of extracted text."""

    is_product_document: bool
    score: float
    reasons: list[str] = field(default_factory=list)
    stats: dict[str, float] = field(default_factory=dict)


def _fold(line: str) -> str:
    return strip_diacritics(line.lower())


def is_product_line(folded_line: str) -> bool:
    """Return whether a folded line looks like a product row.

    A product row mentions a measurement unit, a pack size, or a known
    brand next to a digit, and contains none of the fiscal noise terms.
    """
    if _NOISE_PATTERN.search(folded_line):
        return False
    if _UNIT_TOKEN.search(folded_line) or _PACK_TOKEN.search(folded_line):
        return True
    return bool(_BRAND_PATTERN.search(folded_line) and _DIGIT.search(folded_line))


class DocumentQualityGate:
    """Classifies extracted text as a product document or noise.

    Args:
        options: Default thresholds, overridable per call.
    """

    def __init__(self, options: GateOptions | None = None) -> None:
        self.options = options or GateOptions()

    def assess(
        self, text: str, options: GateOptions | None = None
    ) -> QualityAssessment:
        """Score a block of OCR text.

        Args:
            text: Raw or normalized extracted text.
            options: Per-call thresholds; defaults to the gate's own.

        Returns:
            The decision, the numeric score, human-readable reasons and
            the raw statistics behind them.
        """
        opts = options or self.options
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        total_lines = len(lines)
        reasons: list[str] = []

        if total_lines == 0:
            return QualityAssessment(
                is_product_document=False,
                score=0,
                reasons=["no text lines"],
                stats={
                    "total_lines": 0,
                    "unique_lines": 0,
                    "max_duplicate_count": 0,
                    "repetition_ratio": 0.0,
                    "header_hits": 0,
                    "column_hits": 0,
                    "product_like_lines": 0,
                    "noise_lines": 0,
                },
            )

        counts = Counter(normalize(line) for line in lines)
        max_duplicates = max(counts.values())
        repetition_ratio = max_duplicates / total_lines

        folded_lines = [_fold(line) for line in lines]
        folded_text = "\n".join(folded_lines)

        header_hits = sum(
            1 for pattern in _HEADER_PATTERNS if pattern.search(folded_text)
        )
        column_hits = sum(
            1 for pattern in _COLUMN_PATTERNS if pattern.search(folded_text)
        )
        noise_lines = sum(1 for line in folded_lines if _NOISE_PATTERN.search(line))
        product_like = sum(1 for line in folded_lines if is_product_line(line))

        penalty = 0
        if repetition_ratio > 0.35:
            penalty += 2
        if repetition_ratio > 0.45:
            penalty += 4

        score = 2 * header_hits + 2 * column_hits + min(product_like, 10) - penalty

        if header_hits:
            reasons.append(f"table header patterns found: {header_hits}")
        if column_hits:
            reasons.append(f"price/quantity column indicators: {column_hits}")
        reasons.append(f"product-like lines: {product_like}")
        if penalty:
            reasons.append(
                f"repetition ratio {repetition_ratio:.2f} penalized by {penalty}"
            )

        passed = True
        if score < opts.pass_score:
            passed = False
            reasons.append(f"score {score} below pass score {opts.pass_score}")
        if product_like < opts.min_product_lines:
            passed = False
            reasons.append(
                f"fewer than {opts.min_product_lines} product-like lines"
            )
        if repetition_ratio >= opts.repetition_limit:
            passed = False
            reasons.append(
                f"repetition ratio {repetition_ratio:.2f} reaches limit "
                f"{opts.repetition_limit:.2f}"
            )

        logger.debug(
            "Quality gate: score=%s product_lines=%d repetition=%.2f passed=%s",
            score,
            product_like,
            repetition_ratio,
            passed,
        )
        return QualityAssessment(
            is_product_document=passed,
            score=score,
            reasons=reasons,
            stats={
                "total_lines": total_lines,
                "unique_lines": len(counts),
                "max_duplicate_count": max_duplicates,
                "repetition_ratio": repetition_ratio,
                "header_hits": header_hits,
                "column_hits": column_hits,
                "product_like_lines": product_like,
                "noise_lines": noise_lines,
            },
        )


def assess(text: str, options: GateOptions | None = None) -> QualityAssessment:
    """Assess text with a default-configured gate."""
    return DocumentQualityGate().assess(text, options)
