"""Persistence port for comparison sessions and results."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from ocr_matcher.comparison.models import ComparisonResult


class SessionStatus(StrEnum):
    """Lifecycle of one document pair's session."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class SessionInfo:
    """Read model of a persisted pair session."""

    id: int
    invoice_filename: str
    delivery_order_filename: str
    status: SessionStatus
    match_count: int
    warning_count: int
    error_count: int
    error_message: str | None
    created_at: datetime
    completed_at: datetime | None
    owner_id: str | None = None


class ResultStore(ABC):
    """Stores one session per document pair and its comparison result.

    All methods raise ``PersistenceError`` when the backing store fails.
    """

    @abstractmethod
    def create_session(
        self,
        invoice_filename: str,
        delivery_order_filename: str,
        owner_id: str | None = None,
    ) -> int:
        """Create a session in ``processing`` state and return its id."""

    @abstractmethod
    def update_session_status(
        self,
        session_id: int,
        status: SessionStatus,
        error_message: str | None = None,
    ) -> None:
        """Move a session to a new status, recording an optional error."""

    @abstractmethod
    def save_comparison_result(
        self,
        session_id: int,
        result: ComparisonResult,
        owner_id: str | None = None,
    ) -> int:
        """Persist a result with its rows and complete the session.

        Returns:
            The id of the stored comparison.
        """

    @abstractmethod
    def get_comparison(self, comparison_id: int) -> ComparisonResult | None:
        """Load a stored comparison with its items and metadata."""

    @abstractmethod
    def get_session(self, session_id: int) -> SessionInfo | None:
        """Load one session."""

    @abstractmethod
    def list_sessions(self, limit: int | None = None) -> list[SessionInfo]:
        """List sessions, newest first."""

    @abstractmethod
    def get_latest_comparison(self) -> ComparisonResult | None:
        """Load the most recently stored comparison."""

    @abstractmethod
    def get_session_comparisons(self, session_id: int) -> list[ComparisonResult]:
        """Load every comparison stored under a session, oldest first."""
