"""Trade API endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoledger.core.dependencies import get_db, get_trade_service
from cryptoledger.core.logging import get_logger
from cryptoledger.core.responses import create_success_response
from cryptoledger.models.trades import TradeStatus
from cryptoledger.schemas.trades import TokenUpdate, TradeClose, TradeCreate, TradeUpdate
from cryptoledger.services.trades import TradeService

logger = get_logger(__name__)

router = APIRouter()


@router.post("")
async def create_trade(
    body: TradeCreate,
    db: AsyncSession = Depends(get_db),
    service: TradeService = Depends(get_trade_service)
) -> JSONResponse:
    """Open a position. Token metadata is filled in from CoinGecko when it answers."""
    trade = await service.create_trade(
        token_id=body.token_id,
        token_symbol=body.token_symbol,
        token_name=body.token_name,
        purchase_price=body.purchase_price,
        quantity=body.quantity,
        purchase_date=body.purchase_date,
        token_image=body.token_image
    )
    await db.commit()
    return create_success_response(
        data=trade.to_dict(include_history=True),
        message="Trade created",
        status_code=status.HTTP_201_CREATED
    )


@router.get("")
async def list_trades(
    status_filter: Optional[TradeStatus] = Query(None, alias="status", description="open or closed"),
    service: TradeService = Depends(get_trade_service)
) -> JSONResponse:
    """Trades with history, realized P/L total and the tax estimate on it."""
    return create_success_response(data=await service.list_trades(status_filter))


@router.delete("/history/{history_id}")
async def delete_trade_history_entry(
    history_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    service: TradeService = Depends(get_trade_service)
) -> JSONResponse:
    """Undo a close: quantity comes back and the trade is reopened."""
    trade = await service.delete_history_entry(history_id)
    await db.commit()
    return create_success_response(data=trade.to_dict(), message="Trade history entry deleted")


@router.get("/{trade_id}")
async def get_trade(
    trade_id: int = Path(..., ge=1),
    service: TradeService = Depends(get_trade_service)
) -> JSONResponse:
    trade = await service.get_trade(trade_id)
    return create_success_response(data=trade.to_dict(include_history=True))


@router.put("/{trade_id}")
async def update_trade(
    body: TradeUpdate,
    trade_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    service: TradeService = Depends(get_trade_service)
) -> JSONResponse:
    trade = await service.update_trade(trade_id, **body.model_dump(exclude_none=True))
    await db.commit()
    return create_success_response(data=trade.to_dict(include_history=True), message="Trade updated")


@router.patch("/{trade_id}/token")
async def update_trade_token(
    body: TokenUpdate,
    trade_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    service: TradeService = Depends(get_trade_service)
) -> JSONResponse:
    trade = await service.update_token(trade_id, **body.model_dump())
    await db.commit()
    return create_success_response(data=trade.to_dict(include_history=True), message="Trade token updated")


@router.post("/{trade_id}/close")
async def close_trade(
    body: TradeClose,
    trade_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    service: TradeService = Depends(get_trade_service)
) -> JSONResponse:
    """Close all or part of a position."""
    trade, history = await service.close_trade(
        trade_id,
        close_amount=body.close_amount,
        close_price=body.close_price,
        date=body.date
    )
    await db.commit()
    return create_success_response(
        data={"trade": trade.to_dict(), "history": history.to_dict()},
        message="Trade closed" if not trade.is_open else "Trade partially closed"
    )


@router.delete("/{trade_id}")
async def delete_trade(
    trade_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    service: TradeService = Depends(get_trade_service)
) -> JSONResponse:
    await service.delete_trade(trade_id)
    await db.commit()
    return create_success_response(data={"id": trade_id}, message="Trade deleted")
