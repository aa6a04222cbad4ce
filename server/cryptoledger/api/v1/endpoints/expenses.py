"""Expense and income endpoints."""
from fastapi import APIRouter, Depends, Path, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoledger.core.dependencies import get_db, get_expense_service
from cryptoledger.core.responses import create_success_response
from cryptoledger.schemas.entries import EntryCreate, EntryUpdate
from cryptoledger.services.expenses import ExpenseService

router = APIRouter()


@router.get("")
async def list_expenses(service: ExpenseService = Depends(get_expense_service)) -> JSONResponse:
    entries = await service.list_entries()
    return create_success_response(
        data=[entry.to_dict() for entry in entries],
        metadata={"count": len(entries)}
    )


@router.post("")
async def create_expense(
    body: EntryCreate,
    db: AsyncSession = Depends(get_db),
    service: ExpenseService = Depends(get_expense_service)
) -> JSONResponse:
    entry = await service.create(body.type, body.amount, body.date, txn=body.txn, details=body.details)
    await db.commit()
    return create_success_response(
        data=entry.to_dict(),
        message=f"{entry.entry_type} created",
        status_code=status.HTTP_201_CREATED
    )


@router.get("/summary")
async def get_expense_summary(service: ExpenseService = Depends(get_expense_service)) -> JSONResponse:
    return create_success_response(data=await service.summary())


@router.put("/{entry_id}")
async def update_expense(
    body: EntryUpdate,
    entry_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    service: ExpenseService = Depends(get_expense_service)
) -> JSONResponse:
    entry = await service.update(entry_id, body.type, body.amount, body.date, txn=body.txn, details=body.details)
    await db.commit()
    return create_success_response(data=entry.to_dict(), message="Entry updated")


@router.delete("/{entry_id}")
async def delete_expense(
    entry_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    service: ExpenseService = Depends(get_expense_service)
) -> JSONResponse:
    await service.delete(entry_id)
    await db.commit()
    return create_success_response(data={"id": entry_id}, message="Entry deleted")
