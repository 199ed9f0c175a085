"""Data models for the wallet cross-reference engine."""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from datetime import datetime
from enum import Enum
from typing import Optional, List, Tuple, Union
import json

from .errors import InvalidConfigError


def _to_decimal(value) -> Decimal:
    """Coerce a loosely-typed numeric field, treating missing values as zero."""
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def _optional_decimal(value, name: str) -> Optional[Decimal]:
    """Coerce an optional filter threshold, keeping ``None`` as absent."""
    if value is None or isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidConfigError(f"Invalid {name}: {value!r}") from None


class TradeSide(str, Enum):
    """Direction of a token trade."""
    BUY = "buy"
    SELL = "sell"


class PnlCondition(str, Enum):
    """Comparison applied by a cohort PnL filter."""
    GREATER = "gt"
    LESS = "lt"

    @classmethod
    def parse(cls, value: str) -> "PnlCondition":
        """Accept ``gt``/``lt`` as well as ``greater``/``less``."""
        aliases = {"greater": cls.GREATER, "less": cls.LESS}
        key = value.strip().lower()
        if key in aliases:
            return aliases[key]
        return cls(key)


class MatchPolicy(str, Enum):
    """How many cohorts a wallet must appear in to be reported."""
    ALL = "all"
    ANY = "any"

    @classmethod
    def parse(cls, value: str) -> "MatchPolicy":
        """Accept ``all``/``any`` as well as the ``and``/``or`` spelling."""
        aliases = {"and": cls.ALL, "or": cls.ANY}
        key = value.strip().lower()
        if key in aliases:
            return aliases[key]
        return cls(key)


@dataclass(frozen=True)
class TokenTransaction:
    """
    A single buy or sell of a token by a wallet.

    ``market_cap`` is the market cap (or any price proxy) at the time of the
    trade. It is supplied by the data provider and treated as opaque.
    """

    signature: str
    timestamp: int  # seconds since epoch
    side: TradeSide
    token_amount: Decimal = Decimal("0")
    sol_amount: Decimal = Decimal("0")
    market_cap: Decimal = Decimal("0")

    @property
    def is_buy(self) -> bool:
        return self.side == TradeSide.BUY

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "signature": self.signature,
            "timestamp": self.timestamp,
            "side": self.side.value,
            "token_amount": str(self.token_amount),
            "sol_amount": str(self.sol_amount),
            "market_cap": str(self.market_cap),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TokenTransaction":
        return cls(
            signature=data.get("signature", ""),
            timestamp=int(data.get("timestamp") or 0),
            side=TradeSide(data.get("side", data.get("type", "buy"))),
            token_amount=_to_decimal(data.get("token_amount")),
            sol_amount=_to_decimal(data.get("sol_amount")),
            market_cap=_to_decimal(data.get("market_cap")),
        )


@dataclass(frozen=True)
class BuyerRecord:
    """
    Aggregated activity of one wallet in one token cohort.

    Transactions keep discovery order, which is not necessarily
    chronological.
    """

    wallet: str
    buy_amount: Decimal = Decimal("0")
    buy_time: int = 0
    sell_amount: Decimal = Decimal("0")
    sell_time: Optional[int] = None
    pnl: Decimal = Decimal("0")
    transactions: Tuple[TokenTransaction, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "BuyerRecord":
        """
        Build a record from a loosely-shaped mapping.

        Missing numeric fields default to zero and missing transactions
        to an empty sequence.
        """
        sell_time = data.get("sell_time")
        return cls(
            wallet=data["wallet"],
            buy_amount=_to_decimal(data.get("buy_amount")),
            buy_time=int(data.get("buy_time") or 0),
            sell_amount=_to_decimal(data.get("sell_amount")),
            sell_time=int(sell_time) if sell_time else None,
            pnl=_to_decimal(data.get("pnl")),
            transactions=tuple(
                TokenTransaction.from_dict(tx) for tx in data.get("transactions") or []
            ),
        )


@dataclass
class CohortFilter:
    """
    Per-cohort predicates applied to buyer records.

    Any predicate left as ``None`` always passes. The PnL predicate only
    applies when both ``pnl_condition`` and ``min_pnl`` are set.
    """

    min_buy_amount: Optional[Decimal] = None
    before_date: Optional[Union[datetime, int]] = None
    pnl_condition: Optional[PnlCondition] = None
    min_pnl: Optional[Decimal] = None

    def __post_init__(self):
        if self.pnl_condition is not None:
            try:
                self.pnl_condition = PnlCondition.parse(self.pnl_condition)
            except (ValueError, AttributeError):
                raise InvalidConfigError(
                    f"Unknown PnL condition: {self.pnl_condition!r}"
                ) from None
        self.min_buy_amount = _optional_decimal(self.min_buy_amount, "min_buy_amount")
        self.min_pnl = _optional_decimal(self.min_pnl, "min_pnl")

    @property
    def before_timestamp(self) -> Optional[int]:
        """Cutoff expressed in epoch seconds, the unit of ``buy_time``."""
        if self.before_date is None:
            return None
        if isinstance(self.before_date, datetime):
            return int(self.before_date.timestamp())
        return int(self.before_date)

    @property
    def is_empty(self) -> bool:
        return (
            self.min_buy_amount is None
            and self.before_date is None
            and (self.pnl_condition is None or self.min_pnl is None)
        )


@dataclass
class CohortConfig:
    """A token to cross-reference together with its buyer filter."""

    token_id: str
    filters: CohortFilter = field(default_factory=CohortFilter)


@dataclass
class CorrelatedWallet:
    """
    A wallet found across one or more token cohorts.

    ``tokens`` holds each matched token once, in the order the wallet was
    first matched. ``transactions`` is the concatenation of the matched
    records' transactions in cohort order.
    """

    wallet: str
    tokens: List[str] = field(default_factory=list)
    total_pnl: Decimal = Decimal("0")
    transactions: List[TokenTransaction] = field(default_factory=list)
    risk_score: int = 0

    @property
    def token_count(self) -> int:
        return len(self.tokens)

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "wallet": self.wallet,
            "tokens": list(self.tokens),
            "total_pnl": str(self.total_pnl),
            "transactions": [tx.to_dict() for tx in self.transactions],
            "risk_score": self.risk_score,
        }

    def to_json(self) -> str:
        """Serialize to JSON."""
        return json.dumps(self.to_dict())
