"""Buyer PnL - Weighted-average cost basis and per-wallet aggregation."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, List, Sequence
import logging

from logic.correlation.models import BuyerRecord, TokenTransaction

logger = logging.getLogger(__name__)


def calculate_pnl(
    buys: Sequence[TokenTransaction],
    sells: Sequence[TokenTransaction],
) -> Decimal:
    """
    Realized PnL of a wallet's sells against its weighted-average buy price.

    weighted_buy = sum(buy.market_cap * buy.tokens) / sum(buy.tokens)
    for each sell, oldest first:
        sold  = min(sell.tokens, remaining)
        pnl  += (sell.market_cap - weighted_buy) * sold / total_buy_tokens
        remaining -= sold

    Returns zero when nothing was bought.
    """
    total_tokens = sum((buy.token_amount for buy in buys), Decimal("0"))
    if total_tokens <= 0:
        return Decimal("0")

    weighted_buy = sum(
        (buy.market_cap * buy.token_amount for buy in buys), Decimal("0")
    ) / total_tokens

    pnl = Decimal("0")
    remaining = total_tokens
    for sell in sorted(sells, key=lambda tx: tx.timestamp):
        sold = min(sell.token_amount, remaining)
        if sold <= 0:
            continue
        pnl += (sell.market_cap - weighted_buy) * sold / total_tokens
        remaining -= sold

    return pnl


def aggregate_buyer(wallet: str, transactions: Sequence[TokenTransaction]) -> BuyerRecord:
    """Collapse one wallet's trades in a token into a BuyerRecord."""
    buys = [tx for tx in transactions if tx.is_buy]
    sells = [tx for tx in transactions if not tx.is_buy]

    return BuyerRecord(
        wallet=wallet,
        buy_amount=sum((tx.sol_amount for tx in buys), Decimal("0")),
        buy_time=min((tx.timestamp for tx in buys), default=0),
        sell_amount=sum((tx.sol_amount for tx in sells), Decimal("0")),
        sell_time=max((tx.timestamp for tx in sells), default=None),
        pnl=calculate_pnl(buys, sells),
        transactions=tuple(transactions),
    )


@dataclass
class CohortStats:
    """Summary of a token's buyers."""

    total_buyers: int
    total_volume: Decimal
    avg_buy: Decimal
    first_buy_time: Optional[int] = None
    last_buy_time: Optional[int] = None


def summarize_cohort(records: List[BuyerRecord]) -> CohortStats:
    """Compute buyer count, SOL volume, average buy and buy time range."""
    total_volume = sum((r.buy_amount for r in records), Decimal("0"))
    buy_times = sorted(r.buy_time for r in records if r.buy_time)

    return CohortStats(
        total_buyers=len(records),
        total_volume=total_volume,
        avg_buy=total_volume / len(records) if records else Decimal("0"),
        first_buy_time=buy_times[0] if buy_times else None,
        last_buy_time=buy_times[-1] if buy_times else None,
    )
