"""Pydantic request/response schemas for the FastAPI endpoints."""

from datetime import datetime

from pydantic import BaseModel

from ocr_matcher.comparison.models import ComparisonResult
from ocr_matcher.pipeline.status import ProcessingStatus
from ocr_matcher.storage.base import SessionInfo


class UploadResponse(BaseModel):
    """Response schema for an accepted batch."""

    accepted_pair_count: int
    message: str


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


class FileProgressResponse(BaseModel):
    """Progress of one uploaded file."""

    name: str
    role: str
    size_bytes: int
    status: str


class ProcessingStatusResponse(BaseModel):
    """Response schema for the batch status poll."""

    ocr_progress: int
    ai_progress: int
    current_ocr_file: str | None = None
    current_ai_stage: str | None = None
    files: list[FileProgressResponse]
    is_processing: bool
    error: str | None = None

    @classmethod
    def from_status(cls, status: ProcessingStatus) -> "ProcessingStatusResponse":
        return cls(**status.to_dict())


class ResultItemResponse(BaseModel):
    """One compared product row."""

    product_name: str
    invoice_value: str
    delivery_order_value: str
    status: str
    note: str | None = None
    price_match: str = "N/A"
    price: str = ""


class MetadataItemResponse(BaseModel):
    """One compared header field."""

    field: str
    invoice_value: str
    delivery_order_value: str
    status: str
    price_match: str = "N/A"


class SummaryResponse(BaseModel):
    matches: int
    warnings: int
    errors: int


class ComparisonResponse(BaseModel):
    """Response schema for a stored comparison."""

    id: str
    session_id: int | None = None
    invoice_filename: str
    delivery_order_filename: str
    created_at: datetime
    items: list[ResultItemResponse]
    metadata: list[MetadataItemResponse]
    summary: SummaryResponse

    @classmethod
    def from_result(cls, result: ComparisonResult) -> "ComparisonResponse":
        data = result.to_dict()
        data.pop("raw_data", None)
        data["created_at"] = result.created_at
        return cls(**data)


class SessionResponse(BaseModel):
    """Response schema for a pair session."""

    id: int
    invoice_filename: str
    delivery_order_filename: str
    status: str
    match_count: int
    warning_count: int
    error_count: int
    error_message: str | None = None
    created_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_info(cls, info: SessionInfo) -> "SessionResponse":
        return cls(
            id=info.id,
            invoice_filename=info.invoice_filename,
            delivery_order_filename=info.delivery_order_filename,
            status=info.status.value,
            match_count=info.match_count,
            warning_count=info.warning_count,
            error_count=info.error_count,
            error_message=info.error_message,
            created_at=info.created_at,
            completed_at=info.completed_at,
        )


class SessionDetailResponse(SessionResponse):
    """A session together with its stored comparisons."""

    comparisons: list[ComparisonResponse] = []


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    ocr_backend: str
    tesseract_available: bool
