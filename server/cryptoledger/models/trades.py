"""
Trade positions, their close history and the realized P/L ledger
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, Boolean, DateTime, Integer, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cryptoledger.core.database import Base, ExactDecimal
from cryptoledger.utils.dates import as_utc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value else None


class TradeStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class HistoryType(str, Enum):
    CLOSE = "close"
    PARTIAL_CLOSE = "partial_close"


class TradePosition(Base):
    """An open or closed holding of a token"""
    __tablename__ = "trade_positions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # Token details
    token_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    token_symbol: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    token_name: Mapped[str] = mapped_column(String(255), nullable=False)
    token_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    market_cap_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_custom_token: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Purchase details
    purchase_price: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(
        ExactDecimal(),
        nullable=False,
        comment="Remaining quantity, decremented by partial closes"
    )
    purchase_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=TradeStatus.OPEN.value,
        index=True,
        comment="open, closed"
    )

    # Only meaningful while open
    current_price: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(), nullable=True)
    unrealized_pnl: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False, default=Decimal("0"))

    realized_pnl: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False, default=Decimal("0"))

    # Set only on full close
    close_price: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(), nullable=True)
    close_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow
    )

    history: Mapped[List["TradeHistoryEntry"]] = relationship(
        "TradeHistoryEntry",
        back_populates="trade",
        order_by="desc(TradeHistoryEntry.date)",
        cascade="all, delete-orphan",
    )

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN.value

    def __repr__(self) -> str:
        return f"<TradePosition(symbol={self.token_symbol}, qty={self.quantity}, status={self.status})>"

    def to_dict(self, include_history: bool = False) -> dict:
        """Convert to dictionary for API responses"""
        data = {
            "id": self.id,
            "tokenId": self.token_id,
            "tokenSymbol": self.token_symbol,
            "tokenName": self.token_name,
            "tokenImage": self.token_image,
            "marketCapRank": self.market_cap_rank,
            "isCustomToken": self.is_custom_token,
            "purchasePrice": self.purchase_price,
            "quantity": self.quantity,
            "purchaseDate": _iso(self.purchase_date),
            "status": self.status,
            "currentPrice": self.current_price,
            "unrealizedPnl": self.unrealized_pnl,
            "realizedPnl": self.realized_pnl,
            "closePrice": self.close_price,
            "closeDate": _iso(self.close_date),
        }
        if include_history:
            data["tradeHistory"] = [entry.to_dict() for entry in self.history]
        return data


class TradeHistoryEntry(Base):
    """Append-only record of one close action"""
    __tablename__ = "trade_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    trade_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("trade_positions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    amount: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False, comment="Quantity closed")
    price: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False, comment="Close price")
    type: Mapped[str] = mapped_column(String(20), nullable=False, comment="close, partial_close")
    pnl: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    trade: Mapped["TradePosition"] = relationship("TradePosition", back_populates="history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tradeId": self.trade_id,
            "date": _iso(self.date),
            "amount": self.amount,
            "price": self.price,
            "type": self.type,
            "pnl": self.pnl,
        }


class PnlLedgerEntry(Base):
    """Realized P/L of a fully closed trade"""
    __tablename__ = "pnl_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    trade_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("trade_positions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    tax_estimate: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False, default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index('idx_pnl_ledger_trade_date', 'trade_id', 'date'),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tradeId": self.trade_id,
            "date": _iso(self.date),
            "tokenSymbol": self.token_symbol,
            "type": "Trade",
            "amount": self.amount,
            "taxEstimate": self.tax_estimate,
        }
