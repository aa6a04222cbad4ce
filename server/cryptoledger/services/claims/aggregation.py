"""
Claim aggregation service.

Keeps one ClaimRecord per UTC calendar day: a submission for a day that
already has a record is merged into it, otherwise a new record is created.
Tax-hold fields are derived through the TaxWithholdingCalculator on every
write. The service only flushes; committing is left to the caller so a
failed request leaves nothing behind.
"""
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoledger.core.exceptions import AlreadyExistsError, NotFoundError
from cryptoledger.core.logging import get_logger
from cryptoledger.models.claims import ClaimRecord
from cryptoledger.schemas.claims import TokenDetail
from cryptoledger.services.claims.merger import merge_token_claims, reduce_token_details, total_of
from cryptoledger.services.tax import (
    FixedAmountMode,
    TaxMode,
    TaxWithholding,
    TaxWithholdingCalculator,
    tax_calculator,
)
from cryptoledger.utils.dates import DateLike, as_utc, day_bounds, normalize_claim_date

logger = get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class ClaimAggregationService:
    """Create, merge, edit and summarize daily claim records"""

    def __init__(self, db: AsyncSession, calculator: Optional[TaxWithholdingCalculator] = None):
        self.db = db
        self.calculator = calculator or tax_calculator

    async def _find_same_day(self, day: DateLike, exclude_id: Optional[int] = None) -> Optional[ClaimRecord]:
        start, end = day_bounds(day)
        query = select(ClaimRecord).where(ClaimRecord.claim_date.between(start, end))
        if exclude_id is not None:
            query = query.where(ClaimRecord.id != exclude_id)
        result = await self.db.execute(query)
        return result.scalars().first()

    @staticmethod
    def _check_caller_total(caller_total: Optional[Decimal], derived_total: Decimal, claim_date: datetime):
        if caller_total is not None and caller_total != derived_total:
            logger.warning(
                "Submitted total disagrees with token amounts, using derived total",
                claim_date=claim_date.date().isoformat(),
                submitted_total=str(caller_total),
                derived_total=str(derived_total)
            )

    def _withholding(self, mode: TaxMode, submitted_total: Decimal, ceiling: Decimal) -> TaxWithholding:
        # A fixed amount is bounded by what the record will hold after the
        # write; a percentage applies to the submitted tokens only.
        if isinstance(mode, FixedAmountMode):
            return self.calculator.compute(ceiling, mode)
        return self.calculator.compute(submitted_total, mode)

    async def submit(
        self,
        date: DateLike,
        token_details: Iterable[TokenDetail],
        total_amount: Optional[Decimal] = None,
        held_for_taxes: bool = False,
        tax_amount: Optional[Decimal] = None,
        tax_percentage: Optional[Decimal] = None,
        txn: Optional[str] = None
    ) -> ClaimRecord:
        """
        Record a claim, merging it into the same-day record when one exists.

        Returns:
            The created or merged ClaimRecord (flushed, not committed)

        Raises:
            InvalidAmountError: tax hold outside its allowed range
        """
        claim_date = normalize_claim_date(date)
        incoming = reduce_token_details(token_details)
        submitted_total = total_of(incoming)
        self._check_caller_total(total_amount, submitted_total, claim_date)

        mode = self.calculator.mode_from_request(held_for_taxes, tax_amount, tax_percentage)

        existing = await self._find_same_day(claim_date)
        if existing is None:
            withholding = self._withholding(mode, submitted_total, submitted_total)
            record = ClaimRecord(
                claim_date=claim_date,
                total_amount=submitted_total,
                held_for_taxes=withholding.held_for_taxes,
                tax_amount=withholding.tax_amount,
                tax_percentage=withholding.tax_percentage,
                txn=txn
            )
            record.token_claims = incoming
            self.db.add(record)
            try:
                await self.db.flush()
            except IntegrityError:
                # Lost a race with a concurrent submission for the same day
                await self.db.rollback()
                existing = await self._find_same_day(claim_date)
                if existing is None:
                    raise
                logger.info("Concurrent claim for the same day, merging", claim_date=claim_date.date().isoformat())
            else:
                logger.log_business_event("claim_created", {
                    "claim_id": record.id,
                    "claim_date": claim_date.date().isoformat(),
                    "tokens": len(incoming),
                    "total_amount": str(submitted_total)
                })
                return record

        return await self._merge(existing, incoming, submitted_total, mode, txn)

    async def _merge(
        self,
        record: ClaimRecord,
        incoming: Dict[str, Decimal],
        submitted_total: Decimal,
        mode: TaxMode,
        txn: Optional[str]
    ) -> ClaimRecord:
        merged = merge_token_claims(record.token_claims, incoming)
        merged_total = total_of(merged)
        existing_tax = record.tax_amount if record.held_for_taxes and record.tax_amount is not None else ZERO

        withholding = self._withholding(mode, submitted_total, merged_total - existing_tax)

        record.token_claims = merged
        record.total_amount = merged_total

        held = record.held_for_taxes or withholding.held_for_taxes
        if held:
            record.tax_amount = existing_tax + (withholding.tax_amount or ZERO)
            # The combined amount is only still a percentage of the total
            # when both parts were held at the same rate
            same_rate = (
                record.tax_percentage is not None
                and withholding.tax_percentage is not None
                and record.tax_percentage == withholding.tax_percentage
            )
            if not same_rate:
                record.tax_percentage = None
        else:
            record.tax_amount = None
            record.tax_percentage = None
        record.held_for_taxes = held

        if record.txn is None:
            record.txn = txn
        elif txn and txn != record.txn:
            logger.warning(
                "Claim merge keeps the first transaction reference",
                claim_id=record.id,
                kept_txn=record.txn,
                dropped_txn=txn
            )

        await self.db.flush()

        logger.log_business_event("claim_merged", {
            "claim_id": record.id,
            "claim_date": as_utc(record.claim_date).date().isoformat(),
            "tokens": len(merged),
            "total_amount": str(merged_total)
        })
        return record

    async def get(self, claim_id: int) -> ClaimRecord:
        record = await self.db.get(ClaimRecord, claim_id)
        if record is None:
            raise NotFoundError("Claim", claim_id)
        return record

    async def update(
        self,
        claim_id: int,
        date: DateLike,
        token_details: Iterable[TokenDetail],
        total_amount: Optional[Decimal] = None,
        held_for_taxes: bool = False,
        tax_amount: Optional[Decimal] = None,
        tax_percentage: Optional[Decimal] = None,
        txn: Optional[str] = None
    ) -> ClaimRecord:
        """
        Overwrite a claim by id. No same-day merge happens here; moving a
        claim onto a day that already has a record is rejected.

        Raises:
            NotFoundError: no claim with this id
            AlreadyExistsError: another record already holds the target day
            InvalidAmountError: tax hold outside its allowed range
        """
        record = await self.get(claim_id)

        claim_date = normalize_claim_date(date)
        if await self._find_same_day(claim_date, exclude_id=claim_id) is not None:
            raise AlreadyExistsError(
                f"A claim already exists for {claim_date.date().isoformat()}",
                {"date": claim_date.date().isoformat()}
            )

        claims = reduce_token_details(token_details)
        total = total_of(claims)
        self._check_caller_total(total_amount, total, claim_date)

        mode = self.calculator.mode_from_request(held_for_taxes, tax_amount, tax_percentage)
        withholding = self.calculator.compute(total, mode)

        record.claim_date = claim_date
        record.token_claims = claims
        record.total_amount = total
        record.held_for_taxes = withholding.held_for_taxes
        record.tax_amount = withholding.tax_amount
        record.tax_percentage = withholding.tax_percentage
        record.txn = txn

        await self.db.flush()

        logger.log_business_event("claim_updated", {
            "claim_id": record.id,
            "claim_date": claim_date.date().isoformat(),
            "total_amount": str(total)
        })
        return record

    async def delete(self, claim_id: int) -> None:
        record = await self.get(claim_id)
        await self.db.delete(record)
        await self.db.flush()
        logger.log_business_event("claim_deleted", {"claim_id": claim_id})

    async def list_claims(self) -> List[ClaimRecord]:
        result = await self.db.execute(select(ClaimRecord).order_by(ClaimRecord.claim_date.desc()))
        return list(result.scalars().all())

    async def summary(self) -> Dict[str, Any]:
        """Totals across all claims: claimed, held, net, per token and per month"""
        records = await self.list_claims()

        total_claimed = ZERO
        total_held = ZERO
        token_totals: Dict[str, Decimal] = {}
        monthly: Dict[str, Decimal] = defaultdict(lambda: ZERO)

        for record in records:
            total_claimed += record.total_amount
            if record.held_for_taxes:
                total_held += record.tax_amount or ZERO
            token_totals = merge_token_claims(token_totals, record.token_claims)
            monthly[as_utc(record.claim_date).strftime("%Y-%m")] += record.total_amount

        average_rate = total_held / total_claimed * HUNDRED if total_claimed else ZERO

        return {
            "totalClaimed": total_claimed,
            "totalHeldForTaxes": total_held,
            "netAfterTax": self.calculator.net_after_tax(total_claimed, total_held),
            "tokenTotals": token_totals,
            "monthlyTotals": dict(sorted(monthly.items())),
            "claimDays": len(records),
            "averageTaxRate": average_rate,
        }
