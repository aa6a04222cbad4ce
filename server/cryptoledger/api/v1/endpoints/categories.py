"""Expense category endpoints."""
from fastapi import APIRouter, Depends, Path, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoledger.core.dependencies import get_db, get_category_service
from cryptoledger.core.responses import create_success_response
from cryptoledger.schemas.entries import CategoryCreate
from cryptoledger.services.categories import CategoryService

router = APIRouter()


@router.get("")
async def list_categories(service: CategoryService = Depends(get_category_service)) -> JSONResponse:
    categories = await service.list_categories()
    return create_success_response(data=[category.to_dict() for category in categories])


@router.post("")
async def create_category(
    body: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    service: CategoryService = Depends(get_category_service)
) -> JSONResponse:
    category = await service.create(body.name, icon=body.icon, color=body.color)
    await db.commit()
    return create_success_response(
        data=category.to_dict(),
        message="Category created",
        status_code=status.HTTP_201_CREATED
    )


@router.delete("/{category_id}")
async def delete_category(
    category_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    service: CategoryService = Depends(get_category_service)
) -> JSONResponse:
    await service.delete(category_id)
    await db.commit()
    return create_success_response(data={"id": category_id}, message="Category deleted")
