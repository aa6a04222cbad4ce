"""
Token claim merging
"""
from decimal import Decimal
from typing import Dict, Iterable, Mapping

from cryptoledger.schemas.claims import TokenDetail

ZERO = Decimal("0")


def merge_token_claims(
    existing: Mapping[str, Decimal],
    incoming: Mapping[str, Decimal]
) -> Dict[str, Decimal]:
    """
    Combine two symbol -> amount mappings by summing per symbol.

    Every symbol present in either input appears in the result; no other
    symbols do. Amounts are added as given, so negative values pass through.
    """
    merged: Dict[str, Decimal] = {}
    for symbol in list(existing) + [s for s in incoming if s not in existing]:
        merged[symbol] = existing.get(symbol, ZERO) + incoming.get(symbol, ZERO)
    return merged


def reduce_token_details(details: Iterable[TokenDetail]) -> Dict[str, Decimal]:
    """Collapse a submitted token list into a mapping, summing repeated symbols"""
    reduced: Dict[str, Decimal] = {}
    for detail in details:
        reduced[detail.symbol] = reduced.get(detail.symbol, ZERO) + detail.amount
    return reduced


def total_of(token_claims: Mapping[str, Decimal]) -> Decimal:
    return sum(token_claims.values(), ZERO)
