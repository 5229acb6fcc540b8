"""Comparison result types and defensive parsing of AI responses.

The AI backend returns loosely shaped JSON. Everything is coerced here,
at the boundary: unknown statuses become ``error``, missing names get a
placeholder, and the summary is always recounted from the rows.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


class MatchStatus(StrEnum):
    """Classification of one compared row."""

    MATCH = "match"
    WARNING = "warning"
    ERROR = "error"


UNKNOWN_PRODUCT = "Unknown product"
UNKNOWN_FIELD = "Unknown field"


@dataclass
class ResultItem:
    """One product line compared across both documents."""

    product_name: str
    invoice_value: str
    delivery_order_value: str
    status: MatchStatus
    note: str | None = None
    price_match: str = "N/A"
    price: str = ""


@dataclass
class MetadataItem:
    """One header field (date, document number, ...) compared across documents."""

    field: str
    invoice_value: str
    delivery_order_value: str
    status: MatchStatus
    price_match: str = "N/A"


@dataclass
class Summary:
    """Per-status row counts."""

    matches: int = 0
    warnings: int = 0
    errors: int = 0


@dataclass
class ComparisonResult:
    """Structured comparison of an invoice against a delivery order."""

    id: str
    invoice_filename: str
    delivery_order_filename: str
    created_at: datetime
    items: list[ResultItem] = field(default_factory=list)
    metadata: list[MetadataItem] = field(default_factory=list)
    summary: Summary = field(default_factory=Summary)
    raw_data: dict[str, Any] = field(default_factory=dict)
    session_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


def coerce_status(value: Any) -> MatchStatus:
    """Map any upstream status value to a known status, defaulting to error."""
    if isinstance(value, str):
        try:
            return MatchStatus(value.strip().lower())
        except ValueError:
            pass
    return MatchStatus.ERROR


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def summarize(items: list[ResultItem], metadata: list[MetadataItem]) -> Summary:
    """Count statuses across both item and metadata rows."""
    summary = Summary()
    for row in [*items, *metadata]:
        if row.status is MatchStatus.MATCH:
            summary.matches += 1
        elif row.status is MatchStatus.WARNING:
            summary.warnings += 1
        else:
            summary.errors += 1
    return summary


def parse_comparison_payload(
    payload: Any,
    invoice_filename: str,
    delivery_order_filename: str,
) -> ComparisonResult:
    """Build a ComparisonResult from a decoded AI response.

    Any ``summary`` the payload carries is ignored.

    Args:
        payload: Decoded JSON object returned by the model.
        invoice_filename: Original invoice filename.
        delivery_order_filename: Original delivery order filename.

    Returns:
        A fully populated result with a recomputed summary.
    """
    if not isinstance(payload, dict):
        payload = {}

    raw_items = payload.get("items")
    raw_metadata = payload.get("metadata")

    items = [
        ResultItem(
            product_name=_text(entry.get("productName"), UNKNOWN_PRODUCT),
            invoice_value=_text(entry.get("invoiceValue")),
            delivery_order_value=_text(entry.get("deliveryOrderValue")),
            status=coerce_status(entry.get("status")),
            note=_text(entry.get("note")) or None,
            price_match=_text(entry.get("priceMatch"), "N/A"),
            price=_text(entry.get("price")),
        )
        for entry in (raw_items if isinstance(raw_items, list) else [])
        if isinstance(entry, dict)
    ]
    metadata = [
        MetadataItem(
            field=_text(entry.get("field"), UNKNOWN_FIELD),
            invoice_value=_text(entry.get("invoiceValue")),
            delivery_order_value=_text(entry.get("deliveryOrderValue")),
            status=coerce_status(entry.get("status")),
            price_match=_text(entry.get("priceMatch"), "N/A"),
        )
        for entry in (raw_metadata if isinstance(raw_metadata, list) else [])
        if isinstance(entry, dict)
    ]

    return ComparisonResult(
        id=uuid.uuid4().hex,
        invoice_filename=invoice_filename,
        delivery_order_filename=delivery_order_filename,
        created_at=datetime.now(timezone.utc),
        items=items,
        metadata=metadata,
        summary=summarize(items, metadata),
        raw_data=payload,
    )
