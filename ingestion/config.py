"""Configuration for the Ingestion Layer."""

import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()


@dataclass
class IngestionConfig:
    """Configuration for Helius data access and wallet list storage."""

    # Helius API
    helius_api_key: str = field(
        default_factory=lambda: os.getenv("HELIUS_API_KEY", "")
    )
    api_base: str = field(
        default_factory=lambda: os.getenv("HELIUS_API_BASE", "https://api.helius.xyz/v0")
    )
    rpc_base: str = field(
        default_factory=lambda: os.getenv("HELIUS_RPC_URL", "https://mainnet.helius-rpc.com")
    )

    # Requests per minute across all endpoints
    requests_per_minute: int = field(
        default_factory=lambda: int(os.getenv("RATE_LIMIT", "100"))
    )

    # Pagination (Helius returns at most 100 transactions per page)
    max_pages: int = field(default_factory=lambda: int(os.getenv("HELIUS_MAX_PAGES", "10")))
    page_limit: int = 100

    # Retry / timeout
    max_retries: int = field(default_factory=lambda: int(os.getenv("HELIUS_MAX_RETRIES", "3")))
    timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("HELIUS_TIMEOUT_SECONDS", "30"))
    )

    # Redis Configuration (wallet lists)
    redis_host: str = field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    redis_port: int = field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")))
    wallet_lists_key: str = field(
        default_factory=lambda: os.getenv("WALLET_LISTS_KEY", "stalker:wallet_lists")
    )

    @property
    def request_interval_seconds(self) -> float:
        """Minimum spacing between two API requests."""
        if self.requests_per_minute <= 0:
            return 0.0
        return 60.0 / self.requests_per_minute

    @property
    def rpc_url(self) -> str:
        """Helius RPC URL (DAS methods) with the API key attached."""
        return f"{self.rpc_base}/?api-key={self.helius_api_key}"

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}"


# Default configuration
DEFAULT_CONFIG = IngestionConfig()
