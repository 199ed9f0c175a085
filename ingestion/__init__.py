"""Ingestion Layer - Helius access for buyer cohorts and wallet activity."""

from .helius import HeliusClient
from .models import WalletTrade, TokenHolding
from .config import IngestionConfig

__all__ = [
    "HeliusClient",
    "WalletTrade",
    "TokenHolding",
    "IngestionConfig",
]
