"""
Tax-hold calculation for claims.

A hold is either a percentage of the claim total or a fixed amount entered
by the user; exactly one of the two is the source of truth for any edit.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Union

from cryptoledger.core.config import settings
from cryptoledger.core.exceptions import InvalidAmountError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PercentageMode:
    percentage: Decimal


@dataclass(frozen=True)
class FixedAmountMode:
    amount: Decimal


@dataclass(frozen=True)
class NoTaxHold:
    pass


TaxMode = Union[PercentageMode, FixedAmountMode, NoTaxHold]


@dataclass(frozen=True)
class TaxWithholding:
    held_for_taxes: bool
    tax_amount: Optional[Decimal] = None
    tax_percentage: Optional[Decimal] = None


class TaxWithholdingCalculator:
    """Derives tax-hold fields from a claim total and a hold mode"""

    def __init__(self, preset_percentages: Optional[Iterable[Decimal]] = None):
        presets = preset_percentages if preset_percentages is not None else settings.tax.preset_percentages
        self.preset_percentages = frozenset(Decimal(p) for p in presets)

    def is_preset(self, percentage: Decimal) -> bool:
        return percentage in self.preset_percentages

    def compute(self, total_amount: Decimal, mode: TaxMode) -> TaxWithholding:
        """
        Raises:
            InvalidAmountError: percentage outside 0-100, or a fixed amount
                below zero or above the claim total
        """
        if isinstance(mode, NoTaxHold):
            return TaxWithholding(held_for_taxes=False)

        if isinstance(mode, PercentageMode):
            p = mode.percentage
            if p < ZERO or p > HUNDRED:
                raise InvalidAmountError(
                    f"Tax percentage must be between 0 and 100, got {p}",
                    {"taxPercentage": p}
                )
            return TaxWithholding(
                held_for_taxes=True,
                tax_amount=total_amount * p / HUNDRED,
                tax_percentage=p,
            )

        if isinstance(mode, FixedAmountMode):
            a = mode.amount
            if a < ZERO or a > total_amount:
                raise InvalidAmountError(
                    f"Tax amount must be between 0 and the claim total {total_amount}, got {a}",
                    {"taxAmount": a, "totalAmount": total_amount}
                )
            return TaxWithholding(held_for_taxes=True, tax_amount=a)

        raise TypeError(f"Unknown tax mode: {mode!r}")

    @staticmethod
    def mode_from_request(
        held_for_taxes: bool,
        tax_amount: Optional[Decimal] = None,
        tax_percentage: Optional[Decimal] = None
    ) -> TaxMode:
        """Pick the source of truth for one edit; a percentage wins over an amount"""
        if not held_for_taxes:
            return NoTaxHold()
        if tax_percentage is not None:
            return PercentageMode(tax_percentage)
        return FixedAmountMode(tax_amount if tax_amount is not None else ZERO)

    @staticmethod
    def net_after_tax(total_amount: Decimal, tax_amount: Optional[Decimal]) -> Decimal:
        return total_amount - (tax_amount or ZERO)


tax_calculator = TaxWithholdingCalculator()
