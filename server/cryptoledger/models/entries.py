"""
Expense / income entries and their categories
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any

from sqlalchemy import String, DateTime, Integer, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from cryptoledger.core.database import Base, ExactDecimal
from cryptoledger.schemas.entries import ExpenseDetailsV1
from cryptoledger.utils.dates import as_utc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntryType(str, Enum):
    EXPENSE = "Expense"
    INCOME = "Income"


class LedgerEntry(Base):
    """A logged expense or income"""
    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    entry_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True, comment="Expense, Income")
    amount: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    entry_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    txn: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Versioned details blob, see ExpenseDetailsV1
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow
    )

    __table_args__ = (
        Index('idx_ledger_entries_type_date', 'entry_type', 'entry_date'),
    )

    @property
    def expense_details(self) -> Optional[ExpenseDetailsV1]:
        if not self.details:
            return None
        return ExpenseDetailsV1.model_validate(self.details)

    def to_dict(self) -> dict:
        details = self.expense_details
        return {
            "id": self.id,
            "type": self.entry_type,
            "amount": self.amount,
            "date": as_utc(self.entry_date).isoformat(),
            "txn": self.txn,
            "details": details.model_dump(by_alias=True, exclude={"version"}) if details else None,
        }


class Category(Base):
    """Expense category"""
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    icon: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
        }
