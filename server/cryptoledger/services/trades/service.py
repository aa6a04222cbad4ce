"""
Trade positions: open, close, undo a close, list with live prices.

Every write goes through the session passed in and is only flushed here; the
request's commit (or rollback on error) makes multi-row changes such as a
close with its history and ledger entry all-or-nothing.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cryptoledger.core.cache import TokenPriceCache
from cryptoledger.core.config import settings
from cryptoledger.core.exceptions import InvalidAmountError, InvalidStateError, NotFoundError
from cryptoledger.core.logging import get_logger
from cryptoledger.core.monitoring import monitor_performance
from cryptoledger.models.trades import PnlLedgerEntry, TradeHistoryEntry, TradePosition, TradeStatus
from cryptoledger.services.external.base import ExternalAPIError
from cryptoledger.services.external.coingecko_service import CoinGeckoService
from cryptoledger.services.trades.reconciler import (
    TradeSnapshot,
    reconcile_close,
    reconcile_history_delete,
)
from cryptoledger.utils.dates import DateLike, to_utc_datetime

logger = get_logger(__name__)

ZERO = Decimal("0")


def _require_positive(name: str, value: Decimal):
    if value is None or value <= ZERO:
        raise InvalidAmountError(f"{name} must be greater than 0", {name: value})


class TradeService:
    """Lifecycle of trade positions and their realized P/L"""

    def __init__(
        self,
        db: AsyncSession,
        coingecko: Optional[CoinGeckoService] = None,
        price_cache: Optional[TokenPriceCache] = None
    ):
        self.db = db
        self.coingecko = coingecko
        self.price_cache = price_cache

    @property
    def _enrichment_enabled(self) -> bool:
        return self.coingecko is not None and settings.enable_price_enrichment

    async def _load_trade(self, trade_id: int, lock: bool = False) -> TradePosition:
        query = (
            select(TradePosition)
            .options(selectinload(TradePosition.history))
            .where(TradePosition.id == trade_id)
        )
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        trade = result.scalars().first()
        if trade is None:
            raise NotFoundError("Trade", trade_id)
        return trade

    async def _token_metadata(self, token_id: str) -> Optional[Dict[str, Any]]:
        """Best-effort CoinGecko lookup; None when it is off or unavailable"""
        if not self._enrichment_enabled:
            return None
        try:
            return await self.coingecko.get_coin(token_id)
        except ExternalAPIError as e:
            logger.warning(
                "Token metadata unavailable, continuing without it",
                service=e.service,
                token_id=token_id,
                status_code=e.status_code,
                error_message=str(e)
            )
            return None

    async def create_trade(
        self,
        token_id: str,
        token_symbol: str,
        token_name: str,
        purchase_price: Decimal,
        quantity: Decimal,
        purchase_date: DateLike,
        token_image: Optional[str] = None
    ) -> TradePosition:
        _require_positive("purchasePrice", purchase_price)
        _require_positive("quantity", quantity)

        trade = TradePosition(
            token_id=token_id,
            token_symbol=token_symbol.strip().upper(),
            token_name=token_name.strip(),
            token_image=token_image,
            is_custom_token=False,
            purchase_price=purchase_price,
            quantity=quantity,
            purchase_date=to_utc_datetime(purchase_date),
            status=TradeStatus.OPEN.value,
            current_price=purchase_price,
            unrealized_pnl=ZERO,
            realized_pnl=ZERO,
            history=[]
        )

        metadata = await self._token_metadata(token_id)
        if metadata:
            trade.token_image = trade.token_image or metadata.get("image")
            trade.market_cap_rank = metadata.get("market_cap_rank")

        self.db.add(trade)
        await self.db.flush()

        logger.log_business_event("trade_created", {
            "trade_id": trade.id,
            "token_id": token_id,
            "quantity": str(quantity),
            "purchase_price": str(purchase_price),
            "enriched": metadata is not None
        })
        return trade

    @monitor_performance("trades.close")
    async def close_trade(
        self,
        trade_id: int,
        close_amount: Decimal,
        close_price: Decimal,
        date: Optional[DateLike] = None
    ) -> Tuple[TradePosition, TradeHistoryEntry]:
        """
        Close all or part of an open position.

        Raises:
            NotFoundError: no trade with this id
            InvalidStateError: the trade is already closed
            InvalidAmountError: close amount not in (0, quantity]
        """
        trade = await self._load_trade(trade_id, lock=True)
        close_date = to_utc_datetime(date) if date is not None else datetime.now(timezone.utc)

        outcome = reconcile_close(TradeSnapshot.from_model(trade), close_amount, close_price, close_date)

        history = TradeHistoryEntry(
            trade_id=trade.id,
            date=outcome.history.date,
            amount=outcome.history.amount,
            price=outcome.history.price,
            type=outcome.history.type,
            pnl=outcome.history.pnl
        )
        trade.history.append(history)

        trade.quantity = outcome.quantity
        trade.status = outcome.status
        trade.realized_pnl = outcome.realized_pnl
        trade.unrealized_pnl = outcome.unrealized_pnl
        if outcome.is_full_close:
            trade.close_price = outcome.close_price
            trade.close_date = outcome.close_date

        if outcome.pnl_entry is not None:
            self.db.add(PnlLedgerEntry(
                trade_id=trade.id,
                date=outcome.pnl_entry.date,
                token_symbol=outcome.pnl_entry.token_symbol,
                amount=outcome.pnl_entry.amount,
                tax_estimate=outcome.pnl_entry.tax_estimate
            ))

        await self.db.flush()

        logger.log_business_event("trade_closed", {
            "trade_id": trade.id,
            "type": history.type,
            "amount": str(close_amount),
            "price": str(close_price),
            "pnl": str(history.pnl),
            "remaining_quantity": str(trade.quantity)
        })
        return trade, history

    async def delete_history_entry(self, history_id: int) -> TradePosition:
        """
        Undo a close by deleting its history entry.

        The trade gets the quantity back, is reopened and loses the entry's
        P/L; a full close also loses its ledger entry.
        """
        entry = await self.db.get(TradeHistoryEntry, history_id)
        if entry is None:
            raise NotFoundError("Trade history entry", history_id)

        trade = await self._load_trade(entry.trade_id, lock=True)
        reversal = reconcile_history_delete(TradeSnapshot.from_model(trade), entry.amount, entry.pnl, entry.type)

        trade.quantity = reversal.quantity
        trade.status = reversal.status
        trade.realized_pnl = reversal.realized_pnl
        trade.unrealized_pnl = reversal.unrealized_pnl
        trade.close_price = None
        trade.close_date = None

        if reversal.delete_ledger_entry:
            await self.db.execute(
                delete(PnlLedgerEntry).where(
                    PnlLedgerEntry.trade_id == trade.id,
                    PnlLedgerEntry.date == entry.date
                )
            )

        trade.history.remove(entry)
        await self.db.flush()

        logger.log_business_event("trade_close_reverted", {
            "trade_id": trade.id,
            "history_id": history_id,
            "type": entry.type,
            "restored_quantity": str(entry.amount)
        })
        return trade

    async def _current_prices(self, trades: List[TradePosition]) -> Dict[str, Decimal]:
        """token_id -> price for open, non-custom trades; misses are left out"""
        token_ids = {t.token_id for t in trades if t.is_open and not t.is_custom_token}
        prices: Dict[str, Decimal] = {}
        missing = set()

        for token_id in token_ids:
            cached = self.price_cache.get(token_id) if self.price_cache else None
            if cached is not None:
                prices[token_id] = cached
            else:
                missing.add(token_id)

        if missing and self._enrichment_enabled:
            try:
                fetched = await self.coingecko.get_simple_prices(missing)
            except ExternalAPIError as e:
                logger.warning(
                    "Price lookup failed, open trades fall back to purchase price",
                    service=e.service,
                    tokens=len(missing),
                    error_message=str(e)
                )
                fetched = {}
            for token_id, price in fetched.items():
                if self.price_cache:
                    self.price_cache.set(token_id, price)
                prices[token_id] = price

        return prices

    def _priced(self, trade: TradePosition, prices: Dict[str, Decimal]) -> Dict[str, Any]:
        data = trade.to_dict(include_history=True)
        if not trade.is_open:
            return data

        if trade.is_custom_token:
            price = trade.current_price if trade.current_price is not None else trade.purchase_price
        else:
            price = prices.get(trade.token_id)
            if price is None:
                data["currentPrice"] = trade.purchase_price
                data["unrealizedPnl"] = ZERO
                return data

        data["currentPrice"] = price
        data["unrealizedPnl"] = (price - trade.purchase_price) * trade.quantity
        return data

    async def list_trades(self, status: Optional[TradeStatus] = None) -> Dict[str, Any]:
        """
        All trades (optionally one status) with history, newest purchase first.

        Open trades are priced for the response only; stored prices are not
        touched by a listing.
        """
        query = (
            select(TradePosition)
            .options(selectinload(TradePosition.history))
            .order_by(TradePosition.purchase_date.desc(), TradePosition.id.desc())
        )
        if status is not None:
            query = query.where(TradePosition.status == TradeStatus(status).value)

        result = await self.db.execute(query)
        trades = list(result.scalars().all())

        prices = await self._current_prices(trades)
        total_realized = sum((t.realized_pnl or ZERO for t in trades), ZERO)

        return {
            "trades": [self._priced(t, prices) for t in trades],
            "totalRealizedPnL": total_realized,
            "totalTaxEstimate": max(ZERO, total_realized * settings.tax.summary_tax_rate),
        }

    async def get_trade(self, trade_id: int) -> TradePosition:
        return await self._load_trade(trade_id)

    async def update_trade(
        self,
        trade_id: int,
        token_id: Optional[str] = None,
        token_symbol: Optional[str] = None,
        token_name: Optional[str] = None,
        purchase_price: Optional[Decimal] = None,
        quantity: Optional[Decimal] = None,
        purchase_date: Optional[DateLike] = None
    ) -> TradePosition:
        """Edit the token or purchase fields of an open trade"""
        trade = await self._load_trade(trade_id, lock=True)
        if not trade.is_open:
            raise InvalidStateError(
                f"Trade {trade_id} is closed and cannot be edited",
                {"tradeId": trade_id, "status": trade.status}
            )

        if purchase_price is not None:
            _require_positive("purchasePrice", purchase_price)
            trade.purchase_price = purchase_price
        if quantity is not None:
            _require_positive("quantity", quantity)
            trade.quantity = quantity
        if purchase_date is not None:
            trade.purchase_date = to_utc_datetime(purchase_date)
        if token_id is not None and token_id != trade.token_id:
            if self.price_cache:
                self.price_cache.invalidate(trade.token_id)
            trade.token_id = token_id
        if token_symbol is not None:
            trade.token_symbol = token_symbol.strip().upper()
        if token_name is not None:
            trade.token_name = token_name.strip()

        if trade.current_price is not None:
            trade.unrealized_pnl = (trade.current_price - trade.purchase_price) * trade.quantity

        await self.db.flush()
        logger.log_business_event("trade_updated", {"trade_id": trade.id})
        return trade

    async def update_token(
        self,
        trade_id: int,
        token_id: str,
        token_symbol: str,
        token_name: str,
        token_image: Optional[str] = None,
        is_custom_token: bool = False,
        current_price: Optional[Decimal] = None
    ) -> TradePosition:
        """Point a trade at different token metadata, e.g. a custom token with a manual price"""
        trade = await self._load_trade(trade_id, lock=True)

        if self.price_cache:
            self.price_cache.invalidate(trade.token_id)

        trade.token_id = token_id
        trade.token_symbol = token_symbol.strip().upper()
        trade.token_name = token_name.strip()
        trade.token_image = token_image
        trade.is_custom_token = is_custom_token

        if current_price is not None:
            if current_price < ZERO:
                raise InvalidAmountError("currentPrice must not be negative", {"currentPrice": current_price})
            trade.current_price = current_price
            if trade.is_open:
                trade.unrealized_pnl = (current_price - trade.purchase_price) * trade.quantity

        await self.db.flush()
        logger.log_business_event("trade_token_updated", {
            "trade_id": trade.id,
            "token_id": token_id,
            "is_custom_token": is_custom_token
        })
        return trade

    async def delete_trade(self, trade_id: int) -> None:
        """Remove a trade with its history and ledger entries"""
        trade = await self._load_trade(trade_id, lock=True)

        await self.db.execute(delete(PnlLedgerEntry).where(PnlLedgerEntry.trade_id == trade_id))
        token_id = trade.token_id
        await self.db.delete(trade)
        await self.db.flush()

        if self.price_cache:
            self.price_cache.invalidate(token_id)
        logger.log_business_event("trade_deleted", {"trade_id": trade_id})
