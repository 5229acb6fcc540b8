"""FastAPI application for the OCR Matcher API.

Provides REST endpoints for uploading invoice / delivery order batches,
polling and cancelling the active batch, reading stored sessions and
comparisons, and health checks.
"""

import asyncio
import shutil
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import FastAPI, File, Header, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from ocr_matcher.errors import (
    ConflictError,
    NoActiveBatchError,
    NoDocumentsError,
    PersistenceError,
)
from ocr_matcher.pipeline.batch import BatchProcessingPipeline
from ocr_matcher.pipeline.uploads import UploadedFile, cleanup_files, save_upload
from ocr_matcher.utils.config import AppConfig, UploadConfig, load_config
from ocr_matcher.utils.logger import get_logger

from .schemas import (
    ComparisonResponse,
    HealthResponse,
    MessageResponse,
    ProcessingStatusResponse,
    SessionDetailResponse,
    SessionResponse,
    UploadResponse,
)

logger = get_logger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title="OCR Matcher API",
    description="Reconcile invoices against delivery orders with OCR and AI comparison",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def _get_config() -> AppConfig:
    return load_config()


@lru_cache(maxsize=1)
def _get_pipeline() -> BatchProcessingPipeline:
    """Build the process-wide pipeline on first use.

    Returns:
        The shared pipeline; its status survives across requests.
    """
    return BatchProcessingPipeline.from_config(_get_config())


def _check_files(files: list[UploadFile], role: str, config: UploadConfig) -> None:
    if len(files) > config.max_files_per_role:
        raise HTTPException(
            status_code=400,
            detail=(
                f"Too many {role} files: "
                f"at most {config.max_files_per_role} allowed"
            ),
        )
    for file in files:
        if file.content_type and file.content_type not in config.allowed_content_types:
            raise HTTPException(
                status_code=400,
                detail=f"Unsupported file type: {file.content_type}",
            )


async def _store_files(
    files: list[UploadFile], config: UploadConfig
) -> list[UploadedFile]:
    """Read, size-check and save uploads, removing partial saves on failure."""
    limit = config.max_file_size_mb * 1024 * 1024
    saved: list[UploadedFile] = []
    try:
        for file in files:
            name = file.filename or "document"
            too_large = HTTPException(
                status_code=400,
                detail=f"File {name} exceeds {config.max_file_size_mb} MB",
            )
            # Declared size, when the client sent one
            if file.size is not None and file.size > limit:
                raise too_large
            content = await file.read()
            if len(content) > limit:
                raise too_large
            saved.append(
                await asyncio.to_thread(
                    save_upload, content, name, Path(config.temp_dir)
                )
            )
    except BaseException:
        cleanup_files([f.path for f in saved])
        raise
    return saved


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    return HealthResponse(
        status="healthy",
        version=VERSION,
        ocr_backend=_get_config().ocr.backend,
        tesseract_available=shutil.which("tesseract") is not None,
    )


@app.post("/upload", response_model=UploadResponse, status_code=202)
async def upload_documents(
    invoices: Annotated[list[UploadFile] | None, File()] = None,
    delivery_orders: Annotated[list[UploadFile] | None, File()] = None,
    owner_id: Annotated[str | None, Header(alias="X-Owner-Id")] = None,
) -> UploadResponse:
    """Accept a batch of invoices and delivery orders for processing.

    Files are paired by position; surplus files on the longer side are
    listed in the status but never processed.

    Args:
        invoices: Invoice documents (PNG, JPEG, TIFF, or PDF).
        delivery_orders: Delivery order documents, same order as invoices.
        owner_id: Optional owner tag stored with every session.

    Returns:
        The number of pairs that will be processed.
    """
    pipeline = _get_pipeline()
    if pipeline.is_processing:
        raise HTTPException(
            status_code=409, detail="Another processing job is already in progress"
        )

    if not invoices or not delivery_orders:
        raise HTTPException(
            status_code=400,
            detail="You must upload at least one invoice and one delivery order",
        )

    config = _get_config().uploads
    _check_files(invoices, "invoice", config)
    _check_files(delivery_orders, "delivery order", config)

    saved_invoices = await _store_files(invoices, config)
    try:
        saved_deliveries = await _store_files(delivery_orders, config)
    except BaseException:
        cleanup_files([f.path for f in saved_invoices])
        raise

    try:
        receipt = pipeline.submit(saved_invoices, saved_deliveries, owner_id=owner_id)
    except (ConflictError, NoDocumentsError) as exc:
        cleanup_files([f.path for f in [*saved_invoices, *saved_deliveries]])
        status_code = 409 if isinstance(exc, ConflictError) else 400
        raise HTTPException(status_code=status_code, detail=exc.message) from exc

    logger.info(
        "Accepted %d invoices and %d delivery orders",
        len(saved_invoices),
        len(saved_deliveries),
    )
    return UploadResponse(
        accepted_pair_count=receipt.accepted_pair_count,
        message=f"Processing {receipt.accepted_pair_count} document pairs",
    )


@app.get("/processing/status", response_model=ProcessingStatusResponse)
async def processing_status() -> ProcessingStatusResponse:
    """Return a snapshot of the current batch progress."""
    return ProcessingStatusResponse.from_status(_get_pipeline().status_snapshot())


@app.post("/processing/cancel", response_model=MessageResponse)
async def cancel_processing() -> MessageResponse:
    """Stop the active batch before its next pair starts."""
    try:
        _get_pipeline().cancel()
    except NoActiveBatchError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    return MessageResponse(message="Processing cancelled")


@app.get("/sessions", response_model=list[SessionResponse])
def list_sessions(
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
) -> list[SessionResponse]:
    """List pair sessions, newest first; all of them unless ``limit`` is set."""
    try:
        sessions = _get_pipeline().store.list_sessions(limit=limit)
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc
    return [SessionResponse.from_info(s) for s in sessions]


@app.get("/sessions/{session_id}", response_model=SessionDetailResponse)
def get_session(session_id: int) -> SessionDetailResponse:
    """Return one session and its comparisons."""
    store = _get_pipeline().store
    try:
        info = store.get_session(session_id)
        if info is None:
            raise HTTPException(
                status_code=404, detail=f"Session {session_id} not found"
            )
        comparisons = store.get_session_comparisons(session_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc

    base = SessionResponse.from_info(info)
    return SessionDetailResponse(
        **base.model_dump(),
        comparisons=[ComparisonResponse.from_result(c) for c in comparisons],
    )


@app.get("/comparisons/latest", response_model=ComparisonResponse)
def latest_comparison() -> ComparisonResponse:
    """Return the most recently stored comparison."""
    try:
        result = _get_pipeline().store.get_latest_comparison()
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc
    if result is None:
        raise HTTPException(status_code=404, detail="No comparisons stored yet")
    return ComparisonResponse.from_result(result)


@app.get("/comparisons/{comparison_id}", response_model=ComparisonResponse)
def get_comparison(comparison_id: int) -> ComparisonResponse:
    """Return one stored comparison."""
    try:
        result = _get_pipeline().store.get_comparison(comparison_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc
    if result is None:
        raise HTTPException(
            status_code=404, detail=f"Comparison {comparison_id} not found"
        )
    return ComparisonResponse.from_result(result)
