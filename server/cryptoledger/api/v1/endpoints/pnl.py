"""Realized P/L ledger endpoint."""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from cryptoledger.core.dependencies import get_pnl_service
from cryptoledger.core.responses import create_success_response
from cryptoledger.services.pnl import PnlLedgerService

router = APIRouter()


@router.get("")
async def list_pnl_entries(service: PnlLedgerService = Depends(get_pnl_service)) -> JSONResponse:
    """Ledger entries of fully closed trades, newest first, with totals."""
    return create_success_response(data=await service.list_entries())
