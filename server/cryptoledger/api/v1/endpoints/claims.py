"""Claims API endpoints."""
from fastapi import APIRouter, Depends, Path, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoledger.core.dependencies import get_db, get_claim_service
from cryptoledger.core.logging import get_logger
from cryptoledger.core.responses import create_success_response
from cryptoledger.schemas.claims import ClaimSubmission, ClaimUpdate
from cryptoledger.services.claims import ClaimAggregationService

logger = get_logger(__name__)

router = APIRouter()


@router.post("")
async def create_or_merge_claim(
    body: ClaimSubmission,
    db: AsyncSession = Depends(get_db),
    service: ClaimAggregationService = Depends(get_claim_service)
) -> JSONResponse:
    """Record a claim; a second claim on the same day is merged into the first."""
    record = await service.submit(
        date=body.date,
        token_details=body.token_details,
        total_amount=body.total_amount,
        held_for_taxes=body.held_for_taxes,
        tax_amount=body.tax_amount,
        tax_percentage=body.tax_percentage,
        txn=body.txn
    )
    await db.commit()

    return create_success_response(
        data=record.to_dict(),
        message="Claim saved",
        status_code=status.HTTP_201_CREATED
    )


@router.get("")
async def list_claims(
    service: ClaimAggregationService = Depends(get_claim_service)
) -> JSONResponse:
    """All claims, newest day first."""
    records = await service.list_claims()
    return create_success_response(
        data=[record.to_dict() for record in records],
        metadata={"count": len(records)}
    )


@router.get("/summary")
async def get_claims_summary(
    service: ClaimAggregationService = Depends(get_claim_service)
) -> JSONResponse:
    return create_success_response(data=await service.summary())


@router.get("/{claim_id}")
async def get_claim(
    claim_id: int = Path(..., ge=1),
    service: ClaimAggregationService = Depends(get_claim_service)
) -> JSONResponse:
    record = await service.get(claim_id)
    return create_success_response(data=record.to_dict())


@router.put("/{claim_id}")
async def update_claim(
    body: ClaimUpdate,
    claim_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    service: ClaimAggregationService = Depends(get_claim_service)
) -> JSONResponse:
    """Overwrite a claim's tokens and tax fields; no same-day merge."""
    record = await service.update(
        claim_id,
        date=body.date,
        token_details=body.token_details,
        total_amount=body.total_amount,
        held_for_taxes=body.held_for_taxes,
        tax_amount=body.tax_amount,
        tax_percentage=body.tax_percentage,
        txn=body.txn
    )
    await db.commit()
    return create_success_response(data=record.to_dict(), message="Claim updated")


@router.delete("/{claim_id}")
async def delete_claim(
    claim_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    service: ClaimAggregationService = Depends(get_claim_service)
) -> JSONResponse:
    await service.delete(claim_id)
    await db.commit()
    return create_success_response(data={"id": claim_id}, message="Claim deleted")
