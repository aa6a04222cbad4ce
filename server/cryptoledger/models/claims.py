"""
Daily token claim records
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any

from sqlalchemy import String, Boolean, DateTime, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from cryptoledger.core.database import Base, ExactDecimal
from cryptoledger.schemas.claims import ClaimDetailsV1
from cryptoledger.utils.dates import as_utc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClaimRecord(Base):
    """One row per calendar day with at least one claim"""
    __tablename__ = "claim_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # Always noon UTC of the calendar day; unique so two submissions for
    # the same day can never both create a row
    claim_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        unique=True
    )

    # Versioned token -> amount blob, see ClaimDetailsV1
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Always equals the sum of the token amounts in details
    total_amount: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False, default=Decimal("0"))

    held_for_taxes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tax_amount: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(), nullable=True)
    tax_percentage: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(), nullable=True)

    txn: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow
    )

    @property
    def token_claims(self) -> Dict[str, Decimal]:
        return ClaimDetailsV1.model_validate(self.details).token_claims

    @token_claims.setter
    def token_claims(self, claims: Dict[str, Decimal]) -> None:
        self.details = ClaimDetailsV1(token_claims=claims).to_json()

    @property
    def net_amount(self) -> Decimal:
        """Claim value left after the tax hold; derived, never stored"""
        return self.total_amount - (self.tax_amount or Decimal("0"))

    def __repr__(self) -> str:
        return f"<ClaimRecord(date={self.claim_date}, total={self.total_amount}, held={self.held_for_taxes})>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses"""
        return {
            "id": self.id,
            "date": as_utc(self.claim_date).isoformat(),
            "totalAmount": self.total_amount,
            "tokenTotals": self.token_claims,
            "heldForTaxes": self.held_for_taxes,
            "taxAmount": self.tax_amount,
            "taxPercentage": self.tax_percentage,
            "netAmount": self.net_amount,
            "txn": self.txn,
        }
