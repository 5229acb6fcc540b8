"""SQLAlchemy implementation of the result store.

Works with any SQLAlchemy URL; SQLite is the default. Every public
method runs in its own transaction and converts database failures into
``PersistenceError``.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from ocr_matcher.comparison.models import (
    ComparisonResult,
    MetadataItem,
    ResultItem,
    coerce_status,
    summarize,
)
from ocr_matcher.errors import PersistenceError
from ocr_matcher.utils.config import StorageConfig
from ocr_matcher.utils.logger import get_logger

from .base import ResultStore, SessionInfo, SessionStatus
from .models import (
    Base,
    ComparisonItemRecord,
    ComparisonMetadataRecord,
    ComparisonRecord,
    SessionRecord,
)

logger = get_logger(__name__)


def _engine_for(database_url: str, echo: bool):
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    # Writes come from worker threads
    connect_args = {"check_same_thread": False}
    if url.database in (None, "", ":memory:"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args=connect_args,
            poolclass=StaticPool,
        )

    Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, echo=echo, connect_args=connect_args)


def _to_session_info(record: SessionRecord) -> SessionInfo:
    return SessionInfo(
        id=record.id,
        invoice_filename=record.invoice_filename,
        delivery_order_filename=record.delivery_order_filename,
        status=SessionStatus(record.status),
        match_count=record.match_count,
        warning_count=record.warning_count,
        error_count=record.error_count,
        error_message=record.error_message,
        created_at=record.created_at,
        completed_at=record.completed_at,
        owner_id=record.owner_id,
    )


def _to_result(record: ComparisonRecord) -> ComparisonResult:
    items = [
        ResultItem(
            product_name=row.product_name,
            invoice_value=row.invoice_value,
            delivery_order_value=row.delivery_order_value,
            status=coerce_status(row.status),
            note=row.note,
            price_match=row.price_match,
            price=row.price,
        )
        for row in record.items
    ]
    metadata = [
        MetadataItem(
            field=row.field,
            invoice_value=row.invoice_value,
            delivery_order_value=row.delivery_order_value,
            status=coerce_status(row.status),
            price_match=row.price_match,
        )
        for row in record.metadata_rows
    ]
    return ComparisonResult(
        id=str(record.id),
        invoice_filename=record.invoice_filename,
        delivery_order_filename=record.delivery_order_filename,
        created_at=record.created_at,
        items=items,
        metadata=metadata,
        summary=summarize(items, metadata),
        raw_data=record.raw_data or {},
        session_id=record.session_id,
    )


def _comparison_query():
    return select(ComparisonRecord).options(
        selectinload(ComparisonRecord.items),
        selectinload(ComparisonRecord.metadata_rows),
    )


class SQLResultStore(ResultStore):
    """Result store backed by a relational database.

    Args:
        database_url: SQLAlchemy database URL.
        echo: Log every SQL statement.
    """

    def __init__(self, database_url: str = "sqlite://", echo: bool = False) -> None:
        self.engine = _engine_for(database_url, echo)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)
        logger.info(
            "Result store ready at %s",
            make_url(database_url).render_as_string(hide_password=True),
        )

    @classmethod
    def from_config(cls, config: StorageConfig) -> "SQLResultStore":
        return cls(config.database_url, echo=config.echo)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Database operation failed: %s", exc)
            raise PersistenceError(f"Database operation failed: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_session(
        self,
        invoice_filename: str,
        delivery_order_filename: str,
        owner_id: str | None = None,
    ) -> int:
        with self._session() as session:
            record = SessionRecord(
                owner_id=owner_id,
                invoice_filename=invoice_filename,
                delivery_order_filename=delivery_order_filename,
                status=SessionStatus.PROCESSING.value,
            )
            session.add(record)
            session.flush()
            logger.debug(
                "Created session %d for %s + %s",
                record.id,
                invoice_filename,
                delivery_order_filename,
            )
            return record.id

    def update_session_status(
        self,
        session_id: int,
        status: SessionStatus,
        error_message: str | None = None,
    ) -> None:
        with self._session() as session:
            record = session.get(SessionRecord, session_id)
            if record is None:
                raise PersistenceError(f"Session {session_id} not found")
            record.status = SessionStatus(status).value
            if error_message is not None:
                record.error_message = error_message
            if record.status == SessionStatus.COMPLETED:
                record.completed_at = datetime.now(timezone.utc)

    def save_comparison_result(
        self,
        session_id: int,
        result: ComparisonResult,
        owner_id: str | None = None,
    ) -> int:
        summary = summarize(result.items, result.metadata)
        with self._session() as session:
            session_record = session.get(SessionRecord, session_id)
            if session_record is None:
                raise PersistenceError(f"Session {session_id} not found")

            comparison = ComparisonRecord(
                owner_id=owner_id,
                session_id=session_id,
                invoice_filename=result.invoice_filename,
                delivery_order_filename=result.delivery_order_filename,
                match_count=summary.matches,
                warning_count=summary.warnings,
                error_count=summary.errors,
                raw_data=result.raw_data,
                items=[
                    ComparisonItemRecord(
                        product_name=item.product_name,
                        invoice_value=item.invoice_value,
                        delivery_order_value=item.delivery_order_value,
                        status=item.status.value,
                        note=item.note,
                        price_match=item.price_match,
                        price=item.price,
                    )
                    for item in result.items
                ],
                metadata_rows=[
                    ComparisonMetadataRecord(
                        field=meta.field,
                        invoice_value=meta.invoice_value,
                        delivery_order_value=meta.delivery_order_value,
                        status=meta.status.value,
                        price_match=meta.price_match,
                    )
                    for meta in result.metadata
                ],
            )
            session.add(comparison)

            session_record.status = SessionStatus.COMPLETED.value
            session_record.match_count = summary.matches
            session_record.warning_count = summary.warnings
            session_record.error_count = summary.errors
            session_record.completed_at = datetime.now(timezone.utc)

            session.flush()
            logger.info(
                "Saved comparison %d under session %d", comparison.id, session_id
            )
            return comparison.id

    def get_comparison(self, comparison_id: int) -> ComparisonResult | None:
        with self._session() as session:
            record = session.scalars(
                _comparison_query().where(ComparisonRecord.id == comparison_id)
            ).first()
            return _to_result(record) if record else None

    def get_session(self, session_id: int) -> SessionInfo | None:
        with self._session() as session:
            record = session.get(SessionRecord, session_id)
            return _to_session_info(record) if record else None

    def list_sessions(self, limit: int | None = None) -> list[SessionInfo]:
        with self._session() as session:
            query = select(SessionRecord).order_by(
                SessionRecord.created_at.desc(), SessionRecord.id.desc()
            )
            if limit is not None:
                query = query.limit(limit)
            return [_to_session_info(r) for r in session.scalars(query)]

    def get_latest_comparison(self) -> ComparisonResult | None:
        with self._session() as session:
            record = session.scalars(
                _comparison_query().order_by(ComparisonRecord.id.desc()).limit(1)
            ).first()
            return _to_result(record) if record else None

    def get_session_comparisons(self, session_id: int) -> list[ComparisonResult]:
        with self._session() as session:
            records = session.scalars(
                _comparison_query()
                .where(ComparisonRecord.session_id == session_id)
                .order_by(ComparisonRecord.id)
            )
            return [_to_result(r) for r in records]
