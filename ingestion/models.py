"""Wallet-level records returned by the Helius client."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from logic.correlation.models import TradeSide


@dataclass(frozen=True)
class WalletTrade:
    """One swap in a wallet's trade history."""

    signature: str
    timestamp: int
    token_mint: Optional[str]
    action: TradeSide
    sol_amount: Decimal
    market_cap: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        return {
            "signature": self.signature,
            "timestamp": self.timestamp,
            "token_mint": self.token_mint,
            "action": self.action.value,
            "sol_amount": str(self.sol_amount),
            "market_cap": str(self.market_cap),
        }


@dataclass(frozen=True)
class TokenHolding:
    """A fungible token balance held by a wallet."""

    mint: str
    name: str = "Unknown"
    symbol: str = "UNK"
    balance: int = 0  # raw units
    decimals: int = 0
    image: Optional[str] = None

    @property
    def ui_balance(self) -> Decimal:
        """Balance scaled by the token's decimals."""
        return Decimal(self.balance) / (Decimal(10) ** self.decimals)
