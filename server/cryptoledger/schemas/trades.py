"""
Trade schemas for request validation
"""
from decimal import Decimal
from typing import Annotated, Optional
from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from cryptoledger.utils.dates import to_utc_datetime


def _check_date(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        to_utc_datetime(v)
    except ValueError as e:
        raise ValueError(f"Invalid date '{v}'") from e
    return v


DateStr = Annotated[str, AfterValidator(_check_date)]
OptionalDateStr = Annotated[Optional[str], AfterValidator(_check_date)]


class TradeCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token_id: str = Field(..., min_length=1, alias="tokenId")
    token_symbol: str = Field(..., min_length=1, alias="tokenSymbol")
    token_name: str = Field(..., min_length=1, alias="tokenName")
    token_image: Optional[str] = Field(None, alias="tokenImage")
    purchase_price: Decimal = Field(..., alias="purchasePrice")
    quantity: Decimal
    purchase_date: DateStr = Field(..., alias="purchaseDate")


class TradeClose(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    close_amount: Decimal = Field(..., alias="closeAmount")
    close_price: Decimal = Field(..., alias="closePrice")
    date: OptionalDateStr = Field(None, description="Close date; defaults to now")


class TradeUpdate(BaseModel):
    """Edit of an open trade's token or purchase fields"""
    model_config = ConfigDict(populate_by_name=True)

    token_id: Optional[str] = Field(None, min_length=1, alias="tokenId")
    token_symbol: Optional[str] = Field(None, min_length=1, alias="tokenSymbol")
    token_name: Optional[str] = Field(None, min_length=1, alias="tokenName")
    purchase_price: Optional[Decimal] = Field(None, alias="purchasePrice")
    quantity: Optional[Decimal] = None
    purchase_date: OptionalDateStr = Field(None, alias="purchaseDate")


class TokenUpdate(BaseModel):
    """Re-point a trade at different token metadata"""
    model_config = ConfigDict(populate_by_name=True)

    token_id: str = Field(..., min_length=1, alias="tokenId")
    token_symbol: str = Field(..., min_length=1, alias="tokenSymbol")
    token_name: str = Field(..., min_length=1, alias="tokenName")
    token_image: Optional[str] = Field(None, alias="tokenImage")
    is_custom_token: bool = Field(False, alias="isCustomToken")
    current_price: Optional[Decimal] = Field(None, alias="currentPrice")
