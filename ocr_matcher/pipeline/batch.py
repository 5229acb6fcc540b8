"""Batch processing of invoice / delivery order pairs.

``submit`` accepts two ordered lists of uploaded files, pairs them by
position and schedules a background task that drives each pair through
OCR, AI comparison and persistence, strictly one pair at a time. A
failing pair is recorded on its own session and the batch moves on.
Cancellation is cooperative and takes effect between pairs.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ocr_matcher.comparison.base import ComparisonPort
from ocr_matcher.comparison.llm_matcher import LLMComparisonService
from ocr_matcher.comparison.models import ComparisonResult
from ocr_matcher.errors import (
    ComparisonError,
    ConflictError,
    ExtractionError,
    FatalBatchError,
    NoActiveBatchError,
    NoDocumentsError,
    PersistenceError,
)
from ocr_matcher.extraction.base import TextExtractionPort
from ocr_matcher.extraction.factory import create_extractor
from ocr_matcher.storage.base import ResultStore, SessionStatus
from ocr_matcher.storage.sql_store import SQLResultStore
from ocr_matcher.text.quality_gate import DocumentQualityGate, GateOptions
from ocr_matcher.utils.config import AppConfig
from ocr_matcher.utils.logger import get_logger

from .status import (
    FileProgressEntry,
    FileRole,
    FileStatus,
    ProcessingStatus,
    StatusTracker,
)
from .uploads import UploadedFile, cleanup_files

logger = get_logger(__name__)

CANCELLED_MESSAGE = "Processing cancelled by user"
COMPLETED_STAGE = "Processing completed"


@dataclass
class SubmitReceipt:
    """Acknowledgement returned when a batch is accepted.

    ``session_ids`` holds one slot per accepted pair, in pair order. The
    background task fills a slot once that pair's session exists; a slot
    stays ``None`` for a pair that never got one (skipped by cancellation
    or failed while creating it).
    """

    accepted_pair_count: int
    session_ids: list[int | None] = field(default_factory=list)


def _percent(done: int, total: int) -> int:
    return (done * 100) // total if total else 0


class BatchProcessingPipeline:
    """Runs document pairs through extraction, comparison and storage.

    At most one batch is active at a time; the ``is_processing`` flag of
    the tracked status is both the exclusivity gate and the cancellation
    signal.

    Args:
        extractor: OCR backend used for every file.
        comparator: AI comparison service used for every pair.
        store: Persistence for sessions and results.
        quality_gate: Optional gate whose verdict is logged for each
            extracted document; it never rejects a pair.
        ocr_timeout_s: Upper bound for a single extraction call.
        comparison_timeout_s: Upper bound for a single comparison call.
        tracker: Status holder; a private one is created by default.
    """

    def __init__(
        self,
        extractor: TextExtractionPort,
        comparator: ComparisonPort,
        store: ResultStore,
        quality_gate: DocumentQualityGate | None = None,
        ocr_timeout_s: float | None = None,
        comparison_timeout_s: float | None = None,
        tracker: StatusTracker | None = None,
    ) -> None:
        self.extractor = extractor
        self.comparator = comparator
        self.store = store
        self.quality_gate = quality_gate
        self.ocr_timeout_s = ocr_timeout_s
        self.comparison_timeout_s = comparison_timeout_s
        self.tracker = tracker or StatusTracker()
        self._task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls, config: AppConfig, store: ResultStore | None = None
    ) -> "BatchProcessingPipeline":
        """Wire the configured OCR backend, AI service and result store."""
        gate = None
        if config.quality_gate.enabled:
            gate = DocumentQualityGate(
                GateOptions(
                    min_product_lines=config.quality_gate.min_product_lines,
                    repetition_limit=config.quality_gate.repetition_limit,
                    pass_score=config.quality_gate.pass_score,
                )
            )
        return cls(
            extractor=create_extractor(config.ocr),
            comparator=LLMComparisonService(config.comparison),
            store=store or SQLResultStore.from_config(config.storage),
            quality_gate=gate,
            ocr_timeout_s=config.ocr.timeout_s,
            comparison_timeout_s=config.comparison.timeout_s,
        )

    def status_snapshot(self) -> ProcessingStatus:
        """Return a snapshot of the current batch status."""
        return self.tracker.snapshot()

    @property
    def is_processing(self) -> bool:
        return self.tracker.current.is_processing

    def submit(
        self,
        invoice_files: Sequence[UploadedFile],
        delivery_files: Sequence[UploadedFile],
        owner_id: str | None = None,
    ) -> SubmitReceipt:
        """Accept a batch and start processing it in the background.

        Must be called from within a running event loop. Returns as soon
        as the status has been reset; the pairs are processed by a task.

        Raises:
            ConflictError: If another batch is still in progress. Checked
                before the lists are validated.
            NoDocumentsError: If either list is empty.
        """
        loop = asyncio.get_running_loop()

        invoices = list(invoice_files)
        deliveries = list(delivery_files)
        pair_count = min(len(invoices), len(deliveries))

        with self.tracker.lock:
            if self.tracker.current.is_processing:
                raise ConflictError("Another processing job is already in progress")
            if not invoices or not deliveries:
                raise NoDocumentsError(
                    "You must upload at least one invoice and one delivery order"
                )
            entries = [
                FileProgressEntry(f.name, FileRole.INVOICE, f.size_bytes)
                for f in invoices
            ] + [
                FileProgressEntry(f.name, FileRole.DELIVERY_ORDER, f.size_bytes)
                for f in deliveries
            ]
            status = self.tracker.reset(entries)

        if len(invoices) != len(deliveries):
            logger.warning(
                "File count mismatch: %d invoices vs %d delivery orders, "
                "processing %d pairs",
                len(invoices),
                len(deliveries),
                pair_count,
            )
        logger.info("Starting batch of %d document pairs", pair_count)

        receipt = SubmitReceipt(
            accepted_pair_count=pair_count, session_ids=[None] * pair_count
        )
        task = loop.create_task(
            self._run(status, receipt, invoices, deliveries, owner_id)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._task = task
        return receipt

    def cancel(self) -> None:
        """Request cancellation of the active batch.

        The pair currently in flight runs to completion; no further pair
        is started.

        Raises:
            NoActiveBatchError: If no batch is running.
        """
        with self.tracker.lock:
            status = self.tracker.current
            if not status.is_processing:
                raise NoActiveBatchError("No processing job is currently running")
            status.is_processing = False
            status.ocr_progress = 0
            status.ai_progress = 0
            status.error = CANCELLED_MESSAGE
        logger.info("Batch cancellation requested")

    async def wait(self) -> None:
        """Wait until the most recently submitted batch has finished."""
        if self._task is not None:
            await self._task

    async def _run(
        self,
        status: ProcessingStatus,
        receipt: SubmitReceipt,
        invoices: list[UploadedFile],
        deliveries: list[UploadedFile],
        owner_id: str | None,
    ) -> None:
        pair_count = receipt.accepted_pair_count
        released: set[Path] = set()
        try:
            for index in range(pair_count):
                if not status.is_processing:
                    logger.info(
                        "Processing cancelled, stopping before pair %d/%d",
                        index + 1,
                        pair_count,
                    )
                    break
                invoice, delivery = invoices[index], deliveries[index]
                await self._process_pair(
                    status,
                    receipt,
                    index,
                    pair_count,
                    invoice,
                    delivery,
                    status.files[index],
                    status.files[len(invoices) + index],
                    owner_id,
                )
                released.update((invoice.path, delivery.path))

            with self.tracker.lock:
                status.is_processing = False
                if status.error is None:
                    status.ocr_progress = 100
                    status.ai_progress = 100
                    status.current_ai_stage = COMPLETED_STAGE
            if status.error is None:
                logger.info("Batch completed: %d pairs processed", pair_count)
            else:
                logger.warning("Batch finished with errors: %s", status.error)
        except Exception as exc:
            fatal = FatalBatchError(f"Error processing files: {exc}")
            logger.exception("Fatal error during batch processing")
            with self.tracker.lock:
                status.is_processing = False
                status.error = fatal.message
        finally:
            leftovers = [
                f.path for f in [*invoices, *deliveries] if f.path not in released
            ]
            if leftovers:
                await asyncio.to_thread(cleanup_files, leftovers)

    async def _process_pair(
        self,
        status: ProcessingStatus,
        receipt: SubmitReceipt,
        index: int,
        pair_count: int,
        invoice: UploadedFile,
        delivery: UploadedFile,
        invoice_entry: FileProgressEntry,
        delivery_entry: FileProgressEntry,
        owner_id: str | None,
    ) -> None:
        pair_no = index + 1
        logger.info(
            "Processing pair %d/%d: %s + %s",
            pair_no,
            pair_count,
            invoice.name,
            delivery.name,
        )
        session_id: int | None = None
        try:
            session_id = await asyncio.to_thread(
                self.store.create_session, invoice.name, delivery.name, owner_id
            )
            receipt.session_ids[index] = session_id
            with self.tracker.lock:
                invoice_entry.status = FileStatus.PROCESSING
                delivery_entry.status = FileStatus.PROCESSING
                status.current_ocr_file = invoice.name

            invoice_text = await self._extract(invoice, "invoice")
            with self.tracker.lock:
                invoice_entry.status = FileStatus.COMPLETED
                if status.is_processing:
                    status.ocr_progress = _percent(2 * index + 1, 2 * pair_count)
                status.current_ocr_file = delivery.name

            delivery_text = await self._extract(delivery, "delivery order")
            with self.tracker.lock:
                delivery_entry.status = FileStatus.COMPLETED
                if status.is_processing:
                    status.ocr_progress = _percent(2 * index + 2, 2 * pair_count)
                status.current_ocr_file = None

            self._log_quality(invoice.name, invoice_text)
            self._log_quality(delivery.name, delivery_text)

            with self.tracker.lock:
                if status.is_processing:
                    status.current_ai_stage = f"Analyzing pair {pair_no}/{pair_count}"
                    status.ai_progress = _percent(index, pair_count)

            result = await self._compare(invoice_text, delivery_text, invoice, delivery)
            with self.tracker.lock:
                if status.is_processing:
                    status.ai_progress = _percent(index + 1, pair_count)

            await asyncio.to_thread(
                self.store.save_comparison_result, session_id, result, owner_id
            )
        except Exception as exc:
            await self._fail_pair(
                status, pair_no, session_id, exc, invoice, delivery,
                invoice_entry, delivery_entry,
            )
            return

        logger.info("Pair %d saved under session %d", pair_no, session_id)
        await asyncio.to_thread(cleanup_files, [invoice.path, delivery.path])

    async def _fail_pair(
        self,
        status: ProcessingStatus,
        pair_no: int,
        session_id: int | None,
        exc: Exception,
        invoice: UploadedFile,
        delivery: UploadedFile,
        invoice_entry: FileProgressEntry,
        delivery_entry: FileProgressEntry,
    ) -> None:
        message = str(exc)
        if isinstance(exc, (ExtractionError, ComparisonError, PersistenceError)):
            logger.error("Error processing pair %d: %s", pair_no, message)
        else:
            logger.exception("Unexpected error processing pair %d", pair_no)

        if session_id is not None:
            try:
                await asyncio.to_thread(
                    self.store.update_session_status,
                    session_id,
                    SessionStatus.ERROR,
                    message,
                )
            except PersistenceError as store_exc:
                logger.error(
                    "Could not mark session %d as failed: %s", session_id, store_exc
                )

        with self.tracker.lock:
            invoice_entry.status = FileStatus.ERROR
            delivery_entry.status = FileStatus.ERROR
            status.current_ocr_file = None
            status.error = f"Error in pair {pair_no}: {message}"

        await asyncio.to_thread(cleanup_files, [invoice.path, delivery.path])

    async def _extract(self, document: UploadedFile, role_label: str) -> str:
        try:
            outcome = await asyncio.wait_for(
                self.extractor.extract(document.path), timeout=self.ocr_timeout_s
            )
        except TimeoutError as exc:
            raise ExtractionError(
                document.name,
                f"OCR timed out after {self.ocr_timeout_s}s on {role_label} "
                f"{document.name}",
            ) from exc
        if outcome.error:
            raise ExtractionError(
                document.name, f"OCR error in {role_label}: {outcome.error}"
            )
        return outcome.text

    async def _compare(
        self,
        invoice_text: str,
        delivery_text: str,
        invoice: UploadedFile,
        delivery: UploadedFile,
    ) -> ComparisonResult:
        try:
            return await asyncio.wait_for(
                self.comparator.compare(
                    invoice_text, delivery_text, invoice.name, delivery.name
                ),
                timeout=self.comparison_timeout_s,
            )
        except TimeoutError as exc:
            raise ComparisonError(
                f"AI comparison timed out after {self.comparison_timeout_s}s"
            ) from exc

    def _log_quality(self, filename: str, text: str) -> None:
        if self.quality_gate is None:
            return
        assessment = self.quality_gate.assess(text)
        if assessment.is_product_document:
            logger.debug(
                "%s looks like a product document (score %s)",
                filename,
                assessment.score,
            )
        else:
            logger.warning(
                "%s may not contain product lines (score %s): %s",
                filename,
                assessment.score,
                "; ".join(assessment.reasons),
            )
