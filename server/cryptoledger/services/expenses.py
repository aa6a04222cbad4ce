"""
Expense and income entries
"""
from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoledger.core.exceptions import InvalidAmountError, NotFoundError
from cryptoledger.core.logging import get_logger
from cryptoledger.models.entries import EntryType, LedgerEntry
from cryptoledger.schemas.entries import EntryDetailsIn
from cryptoledger.utils.dates import DateLike, to_utc_datetime

logger = get_logger(__name__)

ZERO = Decimal("0")
UNCATEGORIZED = "Uncategorized"


class ExpenseService:
    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _apply(
        entry: LedgerEntry,
        entry_type: str,
        amount: Decimal,
        date: DateLike,
        txn: Optional[str],
        details: Optional[EntryDetailsIn]
    ):
        if amount < ZERO:
            raise InvalidAmountError("Amount must not be negative", {"amount": amount})
        entry.entry_type = EntryType(entry_type).value
        entry.amount = amount
        entry.entry_date = to_utc_datetime(date)
        entry.txn = txn or None
        entry.details = details.to_stored().model_dump(by_alias=True) if details else None

    async def get(self, entry_id: int) -> LedgerEntry:
        entry = await self.db.get(LedgerEntry, entry_id)
        if entry is None:
            raise NotFoundError("Entry", entry_id)
        return entry

    async def create(
        self,
        entry_type: str,
        amount: Decimal,
        date: DateLike,
        txn: Optional[str] = None,
        details: Optional[EntryDetailsIn] = None
    ) -> LedgerEntry:
        entry = LedgerEntry()
        self._apply(entry, entry_type, amount, date, txn, details)
        self.db.add(entry)
        await self.db.flush()

        logger.log_business_event("entry_created", {
            "entry_id": entry.id,
            "type": entry.entry_type,
            "amount": str(amount)
        })
        return entry

    async def update(
        self,
        entry_id: int,
        entry_type: str,
        amount: Decimal,
        date: DateLike,
        txn: Optional[str] = None,
        details: Optional[EntryDetailsIn] = None
    ) -> LedgerEntry:
        entry = await self.get(entry_id)
        self._apply(entry, entry_type, amount, date, txn, details)
        await self.db.flush()
        logger.log_business_event("entry_updated", {"entry_id": entry.id})
        return entry

    async def delete(self, entry_id: int) -> None:
        entry = await self.get(entry_id)
        await self.db.delete(entry)
        await self.db.flush()
        logger.log_business_event("entry_deleted", {"entry_id": entry_id})

    async def list_entries(self) -> List[LedgerEntry]:
        result = await self.db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.entry_type.in_([t.value for t in EntryType]))
            .order_by(LedgerEntry.entry_date.desc(), LedgerEntry.id.desc())
        )
        return list(result.scalars().all())

    async def summary(self) -> Dict[str, Any]:
        """Income, expenses, net and expense totals per category"""
        income = ZERO
        expenses = ZERO
        by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)

        for entry in await self.list_entries():
            if entry.entry_type == EntryType.INCOME.value:
                income += entry.amount
                continue
            expenses += entry.amount
            details = entry.expense_details
            by_category[(details.category if details and details.category else UNCATEGORIZED)] += entry.amount

        return {
            "totalIncome": income,
            "totalExpenses": expenses,
            "net": income - expenses,
            "expensesByCategory": dict(sorted(by_category.items())),
        }
