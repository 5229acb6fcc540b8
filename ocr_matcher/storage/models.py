"""SQLAlchemy ORM tables for sessions and comparison results."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRecord(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, nullable=True)
    invoice_filename = Column(String, nullable=False)
    delivery_order_filename = Column(String, nullable=False)
    # processing | completed | error
    status = Column(String, nullable=False, default="processing")
    match_count = Column(Integer, nullable=False, default=0)
    warning_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    comparisons = relationship(
        "ComparisonRecord", back_populates="session", order_by="ComparisonRecord.id"
    )


class ComparisonRecord(Base):
    __tablename__ = "comparisons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, nullable=True)
    session_id = Column(Integer, ForeignKey("sessions.id"), nullable=False)
    invoice_filename = Column(String, nullable=False)
    delivery_order_filename = Column(String, nullable=False)
    match_count = Column(Integer, nullable=False, default=0)
    warning_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    raw_data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    session = relationship("SessionRecord", back_populates="comparisons")
    items = relationship(
        "ComparisonItemRecord",
        back_populates="comparison",
        cascade="all, delete-orphan",
        order_by="ComparisonItemRecord.id",
    )
    metadata_rows = relationship(
        "ComparisonMetadataRecord",
        back_populates="comparison",
        cascade="all, delete-orphan",
        order_by="ComparisonMetadataRecord.id",
    )


class ComparisonItemRecord(Base):
    __tablename__ = "comparison_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    comparison_id = Column(Integer, ForeignKey("comparisons.id"), nullable=False)
    product_name = Column(String, nullable=False)
    invoice_value = Column(String, nullable=False)
    delivery_order_value = Column(String, nullable=False)
    status = Column(String, nullable=False)
    note = Column(Text, nullable=True)
    price_match = Column(String, nullable=False, default="N/A")
    price = Column(String, nullable=False, default="")

    comparison = relationship("ComparisonRecord", back_populates="items")


class ComparisonMetadataRecord(Base):
    __tablename__ = "comparison_metadata"

    id = Column(Integer, primary_key=True, autoincrement=True)
    comparison_id = Column(Integer, ForeignKey("comparisons.id"), nullable=False)
    field = Column(String, nullable=False)
    invoice_value = Column(String, nullable=False)
    delivery_order_value = Column(String, nullable=False)
    status = Column(String, nullable=False)
    price_match = Column(String, nullable=False, default="N/A")

    comparison = relationship("ComparisonRecord", back_populates="metadata_rows")
