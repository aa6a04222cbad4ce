"""
Expense, income and category schemas
"""
from decimal import Decimal
from typing import Optional, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator

from cryptoledger.utils.dates import to_utc_datetime


class ExpenseDetailsV1(BaseModel):
    """Stored shape of an entry's details blob"""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    version: Literal[1] = 1
    description: str = Field(..., max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    vendor: Optional[str] = Field(None, max_length=255)
    tax_deductible: bool = Field(False, alias="taxDeductible")


class EntryDetailsIn(BaseModel):
    """Details as sent by clients; upgraded to ExpenseDetailsV1 on write"""
    model_config = ConfigDict(populate_by_name=True)

    description: str = Field(..., max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    vendor: Optional[str] = Field(None, max_length=255)
    tax_deductible: bool = Field(False, alias="taxDeductible")

    def to_stored(self) -> ExpenseDetailsV1:
        return ExpenseDetailsV1(**self.model_dump())


class EntryCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["Expense", "Income"]
    amount: Decimal
    date: str
    txn: Optional[str] = Field(None, max_length=255)
    details: Optional[EntryDetailsIn] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        try:
            to_utc_datetime(v)
        except ValueError as e:
            raise ValueError(f"Invalid date '{v}'") from e
        return v


class EntryUpdate(EntryCreate):
    pass


class CategoryCreate(BaseModel):
    name: str = Field(..., max_length=100)
    icon: Optional[str] = Field(None, max_length=50)
    color: Optional[str] = Field(None, max_length=20)
