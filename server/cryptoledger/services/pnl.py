"""
Realized P/L ledger
"""
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoledger.models.trades import PnlLedgerEntry

ZERO = Decimal("0")


class PnlLedgerService:
    """Read side of the ledger written by full trade closes"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_entries(self) -> Dict[str, Any]:
        result = await self.db.execute(
            select(PnlLedgerEntry).order_by(PnlLedgerEntry.date.desc(), PnlLedgerEntry.id.desc())
        )
        entries = list(result.scalars().all())

        return {
            "records": [entry.to_dict() for entry in entries],
            "totalPnL": sum((entry.amount for entry in entries), ZERO),
            "totalTax": sum((entry.tax_estimate for entry in entries), ZERO),
        }
