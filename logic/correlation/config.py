"""Configuration for the wallet cross-reference engine."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass
class CorrelationConfig:
    """Risk scoring parameters for correlated wallets."""

    # Points per matched token
    TOKEN_WEIGHT: int = 10

    # Average gap between a wallet's trades below which timing counts as clustered
    CLUSTER_GAP_SECONDS: int = 300  # 5 minutes
    CLUSTER_BONUS: int = 20

    # Accumulated PnL above which the wallet counts as a large winner
    HIGH_PNL_THRESHOLD: Decimal = Decimal("10000")
    HIGH_PNL_BONUS: int = 30

    MAX_SCORE: int = 100


# Default configuration
DEFAULT_CONFIG = CorrelationConfig()
