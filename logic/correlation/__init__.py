"""Wallet Cross-Reference Engine - Wallets shared across token buyer cohorts."""

from .engine import (
    CorrelationEngine,
    BuyerCohortProvider,
    compute_risk_score,
    matches_filter,
    require_cohorts,
)
from .models import (
    TradeSide,
    PnlCondition,
    MatchPolicy,
    TokenTransaction,
    BuyerRecord,
    CohortFilter,
    CohortConfig,
    CorrelatedWallet,
)
from .errors import CorrelationError, RetrievalError, InvalidConfigError
from .config import CorrelationConfig

__all__ = [
    "CorrelationEngine",
    "BuyerCohortProvider",
    "compute_risk_score",
    "matches_filter",
    "require_cohorts",
    "TradeSide",
    "PnlCondition",
    "MatchPolicy",
    "TokenTransaction",
    "BuyerRecord",
    "CohortFilter",
    "CohortConfig",
    "CorrelatedWallet",
    "CorrelationError",
    "RetrievalError",
    "InvalidConfigError",
    "CorrelationConfig",
]
