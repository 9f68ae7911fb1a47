"""SQLAlchemy table mappings for the embedded SQLite store."""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .base import utc_now
from .enums import SubmissionStatus


class Base(DeclarativeBase):
    """Declarative base for every oracle table."""


class InvoiceRow(Base):
    """Registry of valid tax invoices (faktur pajak)."""

    __tablename__ = "invoice_records"

    invoice_number: Mapped[str] = mapped_column(String(128), primary_key=True)
    seller_tax_id: Mapped[str] = mapped_column(String(64), default="")
    total_amount: Mapped[float] = mapped_column(Float, default=0)


class ProfileRow(Base):
    __tablename__ = "profiles"

    wallet_address: Mapped[str] = mapped_column(String(64), primary_key=True)
    business_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    npwp: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)


class SubmissionRow(Base):
    """One row per loan id; the primary key enforces a single submission."""

    __tablename__ = "submission_records"

    loan_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False)
    decided_at_block: Mapped[int] = mapped_column(BigInteger, default=0)
    tx_hash: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    nonce: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default=SubmissionStatus.PENDING.value, index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    outcome: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class ScanCursorRow(Base):
    """Single-row table holding the watcher's last processed block."""

    __tablename__ = "scan_cursor"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_processed_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
