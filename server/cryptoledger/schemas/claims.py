"""
Claim schemas for request/response validation
"""
from decimal import Decimal
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator

from cryptoledger.utils.dates import calendar_day


class ClaimDetailsV1(BaseModel):
    """Stored shape of a claim's token amounts, validated on every write"""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    version: Literal[1] = 1
    token_claims: Dict[str, Decimal] = Field(default_factory=dict, alias="tokenClaims")

    @field_validator("token_claims")
    @classmethod
    def validate_symbols(cls, v: Dict[str, Decimal]) -> Dict[str, Decimal]:
        for symbol in v:
            if not symbol or not symbol.strip():
                raise ValueError("Token symbol must not be empty")
        return v

    def to_json(self) -> Dict[str, Any]:
        """JSON-safe dict; amounts are kept as strings to preserve precision"""
        return {
            "version": self.version,
            "tokenClaims": {symbol: str(amount) for symbol, amount in self.token_claims.items()},
        }


class TokenDetail(BaseModel):
    """One token line of a claim submission"""
    model_config = ConfigDict(populate_by_name=True)

    symbol: str = Field(..., min_length=1, validation_alias=AliasChoices("symbol", "tokenSymbol"))
    amount: Decimal

    @field_validator("symbol")
    @classmethod
    def strip_symbol(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Token symbol must not be empty")
        return v


class _ClaimPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str = Field(..., description="Calendar day (YYYY-MM-DD) or ISO datetime")
    token_details: List[TokenDetail] = Field(default_factory=list, alias="tokenDetails")
    total_amount: Optional[Decimal] = Field(None, alias="totalAmount")
    held_for_taxes: bool = Field(False, alias="heldForTaxes")
    tax_amount: Optional[Decimal] = Field(None, alias="taxAmount")
    tax_percentage: Optional[Decimal] = Field(None, alias="taxPercentage")
    txn: Optional[str] = Field(None, max_length=255)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        try:
            calendar_day(v)
        except ValueError as e:
            raise ValueError(f"Invalid date '{v}'") from e
        return v

    @field_validator("txn")
    @classmethod
    def blank_txn_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class ClaimSubmission(_ClaimPayload):
    """Body of a create-or-merge claim request"""


class ClaimUpdate(_ClaimPayload):
    """Body of a full claim overwrite"""
