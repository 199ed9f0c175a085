"""Wallet Cross-Reference Engine - Finds wallets shared across token cohorts."""

from decimal import Decimal
from typing import Dict, List, Protocol, Sequence
import logging

from .models import (
    BuyerRecord,
    CohortConfig,
    CohortFilter,
    CorrelatedWallet,
    MatchPolicy,
    PnlCondition,
)
from .config import CorrelationConfig, DEFAULT_CONFIG
from .errors import InvalidConfigError, RetrievalError

logger = logging.getLogger(__name__)


class BuyerCohortProvider(Protocol):
    """Protocol for the source of per-token buyer records."""
    async def fetch_buyers(self, token_id: str) -> List[BuyerRecord]: ...


def matches_filter(record: BuyerRecord, filters: CohortFilter) -> bool:
    """Return True if a buyer record passes every predicate of a cohort filter."""
    if filters is None:
        return True

    if filters.min_buy_amount is not None and record.buy_amount < filters.min_buy_amount:
        return False

    cutoff = filters.before_timestamp
    if cutoff is not None and record.buy_time > cutoff:
        return False

    if filters.pnl_condition is not None and filters.min_pnl is not None:
        if filters.pnl_condition == PnlCondition.GREATER and not record.pnl > filters.min_pnl:
            return False
        if filters.pnl_condition == PnlCondition.LESS and not record.pnl < filters.min_pnl:
            return False

    return True


def compute_risk_score(
    wallet: CorrelatedWallet,
    config: CorrelationConfig = DEFAULT_CONFIG,
) -> int:
    """
    Score how suspicious a correlated wallet looks, from 0 to 100.

    score = TOKEN_WEIGHT per matched token
          + CLUSTER_BONUS if the average gap between its sorted trade
            timestamps is under CLUSTER_GAP_SECONDS (needs 2+ trades)
          + HIGH_PNL_BONUS if accumulated PnL exceeds HIGH_PNL_THRESHOLD
    """
    score = config.TOKEN_WEIGHT * len(wallet.tokens)

    timestamps = sorted(tx.timestamp for tx in wallet.transactions)
    if len(timestamps) >= 2:
        # Consecutive gaps telescope to last - first
        avg_gap = (timestamps[-1] - timestamps[0]) / (len(timestamps) - 1)
        if avg_gap < config.CLUSTER_GAP_SECONDS:
            score += config.CLUSTER_BONUS

    if wallet.total_pnl > config.HIGH_PNL_THRESHOLD:
        score += config.HIGH_PNL_BONUS

    return max(0, min(score, config.MAX_SCORE))


def require_cohorts(cohort_configs: Sequence[CohortConfig], minimum: int = 1) -> None:
    """Raise InvalidConfigError unless at least ``minimum`` cohorts are given."""
    if len(cohort_configs) < max(minimum, 1):
        raise InvalidConfigError(
            f"At least {max(minimum, 1)} token(s) required for cross-reference, "
            f"got {len(cohort_configs)}"
        )


class CorrelationEngine:
    """
    Cross-references the buyers of several tokens.

    Algorithm:
    ```
    FOR each cohort C in the given order:
      1. Fetch buyers of C.token_id (one request in flight at a time)
      2. Keep records passing C.filters
      3. Accumulate per wallet: matched tokens, PnL sum, transactions
    Keep wallets matched in every cohort (ALL) or any cohort (ANY),
    score them, emit in first-seen order.
    ```

    Any retrieval failure aborts the whole run; no partial result is
    returned because ALL/ANY are meaningless over incomplete cohorts.
    """

    def __init__(
        self,
        provider: BuyerCohortProvider,
        config: CorrelationConfig = DEFAULT_CONFIG,
    ):
        """
        Initialize the engine.

        Args:
            provider: Source of buyer records per token
            config: Risk scoring parameters
        """
        self.provider = provider
        self.config = config

    async def correlate(
        self,
        cohort_configs: Sequence[CohortConfig],
        match_policy: MatchPolicy = MatchPolicy.ALL,
    ) -> List[CorrelatedWallet]:
        """
        Find wallets common to the given token cohorts.

        Args:
            cohort_configs: Tokens to cross-reference, each with its filter
            match_policy: ALL to require every cohort, ANY for at least one

        Returns:
            Scored wallets in the order they were first seen

        Raises:
            InvalidConfigError: If no cohorts were given or the policy is unknown
            RetrievalError: If any cohort could not be fetched
        """
        require_cohorts(cohort_configs)
        try:
            match_policy = MatchPolicy.parse(match_policy)
        except (ValueError, AttributeError):
            raise InvalidConfigError(f"Unknown match policy: {match_policy!r}") from None

        # Owned by this call only; dict preserves first-seen order
        accumulator: Dict[str, CorrelatedWallet] = {}

        for cohort in cohort_configs:
            buyers = await self._fetch_cohort(cohort.token_id)

            kept = 0
            for record in buyers:
                if not matches_filter(record, cohort.filters):
                    continue
                kept += 1

                entry = accumulator.get(record.wallet)
                if entry is None:
                    entry = CorrelatedWallet(wallet=record.wallet)
                    accumulator[record.wallet] = entry

                if cohort.token_id not in entry.tokens:
                    entry.tokens.append(cohort.token_id)
                entry.total_pnl += record.pnl
                entry.transactions.extend(record.transactions)

            logger.info(
                f"Cohort {cohort.token_id[:8]}...: {kept}/{len(buyers)} buyers passed filters"
            )

        required = len(cohort_configs)
        results = []
        for entry in accumulator.values():
            if match_policy == MatchPolicy.ALL and entry.token_count != required:
                continue
            entry.risk_score = self.compute_risk_score(entry)
            results.append(entry)

        logger.info(
            f"Cross-reference ({match_policy.value}) over {required} tokens: "
            f"{len(results)}/{len(accumulator)} wallets matched"
        )
        return results

    def compute_risk_score(self, wallet: CorrelatedWallet) -> int:
        """Score a wallet with this engine's configuration."""
        return compute_risk_score(wallet, self.config)

    async def _fetch_cohort(self, token_id: str) -> List[BuyerRecord]:
        """Fetch one cohort, normalizing provider failures to RetrievalError."""
        logger.debug(f"Fetching buyers for {token_id[:16]}...")
        try:
            return list(await self.provider.fetch_buyers(token_id))
        except RetrievalError:
            raise
        except Exception as e:
            logger.error(f"Buyer retrieval failed for {token_id[:16]}...: {e}")
            raise RetrievalError(token_id, e) from e
