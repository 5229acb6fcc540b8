"""Progress model for the batch pipeline.

One ``ProcessingStatus`` describes the batch currently (or most
recently) run by a pipeline. The pipeline is its only writer; every
other caller reads snapshots through ``StatusTracker``.
"""

import copy
import threading
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any


class FileRole(StrEnum):
    """Which side of a document pair a file belongs to."""

    INVOICE = "invoice"
    DELIVERY_ORDER = "delivery_order"


class FileStatus(StrEnum):
    """Extraction progress of a single uploaded file."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class FileProgressEntry:
    """Progress of one uploaded file."""

    name: str
    role: FileRole
    size_bytes: int
    status: FileStatus = FileStatus.PENDING


@dataclass
class ProcessingStatus:
    """Polling surface describing a batch in flight."""

    ocr_progress: int = 0
    ai_progress: int = 0
    current_ocr_file: str | None = None
    current_ai_stage: str | None = None
    files: list[FileProgressEntry] = field(default_factory=list)
    is_processing: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class StatusTracker:
    """Owns the current ProcessingStatus and serializes access to it.

    ``lock`` guards the check-and-set of ``is_processing`` and every
    multi-field update, so snapshots never observe a half-applied reset.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._current = ProcessingStatus()

    @property
    def current(self) -> ProcessingStatus:
        return self._current

    def snapshot(self) -> ProcessingStatus:
        """Return a deep copy of the current status."""
        with self.lock:
            return copy.deepcopy(self._current)

    def reset(self, files: list[FileProgressEntry]) -> ProcessingStatus:
        """Replace the status with a fresh, active one for a new batch."""
        with self.lock:
            self._current = ProcessingStatus(files=list(files), is_processing=True)
            return self._current
