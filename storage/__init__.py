"""Storage Layer - Persistent wallet lists."""

from .wallet_lists import (
    WalletListStore,
    WalletList,
    ListedWallet,
    ListSummary,
    ListNotFoundError,
)

__all__ = [
    "WalletListStore",
    "WalletList",
    "ListedWallet",
    "ListSummary",
    "ListNotFoundError",
]
