"""Helius Client - Token buyer cohorts, wallet history and holdings.

Reads enhanced (parsed) transactions from the Helius REST API and holdings
from the DAS ``getAssetsByOwner`` RPC method.

API Docs: https://docs.helius.dev/solana-apis/enhanced-transactions-api
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, List, Dict, Tuple, Any
import aiohttp
import backoff

from analytics.pnl import aggregate_buyer
from logic.correlation.errors import RetrievalError
from logic.correlation.models import BuyerRecord, TokenTransaction, TradeSide
from .config import IngestionConfig, DEFAULT_CONFIG
from .models import WalletTrade, TokenHolding

logger = logging.getLogger(__name__)

SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = Decimal("1000000000")

RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


def _is_permanent_error(e: Exception) -> bool:
    """Client errors other than 429 will not succeed on retry."""
    return (
        isinstance(e, aiohttp.ClientResponseError)
        and 400 <= e.status < 500
        and e.status != 429
    )


def _decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid numeric value: {value!r}")


def implied_price(sol_amount: Decimal, token_amount: Decimal) -> Decimal:
    """SOL paid per token; used as the price proxy for PnL."""
    if token_amount <= 0:
        return Decimal("0")
    return sol_amount / token_amount


def _sol_amount(tx: dict, wallet: str, side: TradeSide) -> Decimal:
    """SOL leg of a swap, from a wSOL transfer or the wallet's native transfers."""
    for transfer in tx.get("tokenTransfers") or []:
        if transfer.get("mint") != SOL_MINT:
            continue
        if wallet in (transfer.get("fromUserAccount"), transfer.get("toUserAccount")):
            # tokenAmount is already in UI units
            return abs(_decimal(transfer.get("tokenAmount")))

    # Buys send SOL out of the wallet, sells bring it in
    key = "fromUserAccount" if side == TradeSide.BUY else "toUserAccount"
    lamports = sum(
        (_decimal(n.get("amount")) for n in tx.get("nativeTransfers") or [] if n.get(key) == wallet),
        Decimal("0"),
    )
    return abs(lamports) / LAMPORTS_PER_SOL


def parse_swap(
    tx: dict,
    mint: str,
    wallet: Optional[str] = None,
) -> Optional[Tuple[str, TokenTransaction]]:
    """
    Extract a wallet's buy or sell of ``mint`` from an enhanced transaction.

    Args:
        tx: Helius enhanced transaction
        mint: Token mint of interest
        wallet: Trading wallet (defaults to the fee payer)

    Returns:
        (wallet, TokenTransaction) or None if the transaction does not
        move ``mint`` in or out of the wallet
    """
    wallet = wallet or tx.get("feePayer")
    if not wallet:
        return None

    transfer = next(
        (
            t for t in tx.get("tokenTransfers") or []
            if t.get("mint") == mint
            and wallet in (t.get("toUserAccount"), t.get("fromUserAccount"))
        ),
        None,
    )
    if transfer is None:
        return None

    token_amount = abs(_decimal(transfer.get("tokenAmount")))
    if token_amount == 0:
        return None

    side = TradeSide.BUY if transfer.get("toUserAccount") == wallet else TradeSide.SELL
    sol_amount = _sol_amount(tx, wallet, side)

    return wallet, TokenTransaction(
        signature=tx.get("signature", ""),
        timestamp=int(tx.get("timestamp") or 0),
        side=side,
        token_amount=token_amount,
        sol_amount=sol_amount,
        market_cap=implied_price(sol_amount, token_amount),
    )


def build_buyer_records(transactions: List[dict], mint: str) -> List[BuyerRecord]:
    """Group a token's swaps by wallet and aggregate wallets that bought."""
    trades: Dict[str, List[TokenTransaction]] = {}
    for tx in transactions:
        parsed = parse_swap(tx, mint)
        if parsed is None:
            continue
        wallet, trade = parsed
        trades.setdefault(wallet, []).append(trade)

    return [
        aggregate_buyer(wallet, wallet_trades)
        for wallet, wallet_trades in trades.items()
        if any(trade.is_buy for trade in wallet_trades)
    ]


def parse_wallet_trade(tx: dict, wallet: str) -> Optional[WalletTrade]:
    """Turn one of a wallet's swaps into a WalletTrade."""
    mint = next(
        (
            t.get("mint") for t in tx.get("tokenTransfers") or []
            if t.get("mint") and t.get("mint") != SOL_MINT
            and wallet in (t.get("toUserAccount"), t.get("fromUserAccount"))
        ),
        None,
    )
    if mint is None:
        return None

    parsed = parse_swap(tx, mint, wallet)
    if parsed is None:
        return None
    _, trade = parsed

    return WalletTrade(
        signature=trade.signature,
        timestamp=trade.timestamp,
        token_mint=mint,
        action=trade.side,
        sol_amount=trade.sol_amount,
        market_cap=trade.market_cap,
    )


def parse_holdings(result: dict) -> List[TokenHolding]:
    """Parse a DAS getAssetsByOwner result into fungible holdings."""
    holdings = []
    for asset in (result or {}).get("items") or []:
        token_info = asset.get("token_info")
        if not token_info:
            continue
        metadata = (asset.get("content") or {}).get("metadata") or {}
        files = (asset.get("content") or {}).get("files") or []
        holdings.append(TokenHolding(
            mint=asset["id"],
            name=metadata.get("name") or "Unknown",
            symbol=metadata.get("symbol") or token_info.get("symbol") or "UNK",
            balance=int(token_info.get("balance") or 0),
            decimals=int(token_info.get("decimals") or 0),
            image=files[0].get("uri") if files else None,
        ))
    return holdings


class HeliusClient:
    """
    Client for the Helius enhanced transactions and DAS APIs.

    Implements the buyer cohort provider used by the correlation engine.
    Requests are issued one at a time, spaced by the configured rate limit,
    and retried with exponential backoff on transient failures.
    """

    def __init__(
        self,
        config: IngestionConfig = DEFAULT_CONFIG,
        session: aiohttp.ClientSession = None,
    ):
        """
        Initialize Helius client.

        Args:
            config: Ingestion configuration (API key, rate limit, retries)
            session: Optional aiohttp session (created if not provided)
        """
        self.config = config
        self._session = session
        self._owns_session = session is None
        self._lock = asyncio.Lock()
        self._last_request = 0.0

        self._request_json = backoff.on_exception(
            backoff.expo,
            RETRYABLE_ERRORS,
            max_tries=max(1, config.max_retries),
            giveup=_is_permanent_error,
            on_backoff=lambda details: logger.warning(
                f"Helius request failed, retrying... attempt {details['tries']}"
            ),
        )(self._request_json_once)

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _throttle(self) -> None:
        """Keep consecutive requests at least one interval apart."""
        loop = asyncio.get_running_loop()
        wait = self._last_request + self.config.request_interval_seconds - loop.time()
        if wait > 0:
            await asyncio.sleep(wait)
        self._last_request = loop.time()

    async def _request_json_once(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> Any:
        if self._session is None:
            raise RuntimeError("HeliusClient must be used as an async context manager")

        async with self._lock:
            await self._throttle()
            async with self._session.request(method, url, params=params, json=json_body) as resp:
                resp.raise_for_status()
                return await resp.json()

    async def _fetch_address_transactions(self, address: str, max_pages: int) -> List[dict]:
        """Page backwards through an address's swap transactions, newest first."""
        url = f"{self.config.api_base}/addresses/{address}/transactions"
        transactions: List[dict] = []
        before = None

        for _ in range(max(1, max_pages)):
            params = {
                "api-key": self.config.helius_api_key,
                "type": "SWAP",
                "limit": self.config.page_limit,
            }
            if before:
                params["before"] = before

            page = await self._request_json("GET", url, params=params)
            if not isinstance(page, list):
                raise ValueError(f"Unexpected Helius response: {type(page).__name__}")
            if not page:
                break

            transactions.extend(page)
            before = page[-1].get("signature")
            if len(page) < self.config.page_limit or not before:
                break

        return transactions

    async def fetch_buyers(self, token_id: str) -> List[BuyerRecord]:
        """
        Fetch the buyers of a token, one record per wallet.

        Args:
            token_id: Token mint address

        Returns:
            BuyerRecords in discovery order

        Raises:
            RetrievalError: On any network or parse failure
        """
        logger.info(f"Fetching buyers for {token_id[:16]}...")
        try:
            transactions = await self._fetch_address_transactions(token_id, self.config.max_pages)
            buyers = build_buyer_records(transactions, token_id)
        except Exception as e:
            logger.error(f"Failed to fetch buyers for {token_id[:16]}...: {e}")
            raise RetrievalError(token_id, e) from e

        logger.info(
            f"Found {len(buyers)} buyers in {len(transactions)} swaps for {token_id[:16]}..."
        )
        return buyers

    async def fetch_wallet_history(
        self,
        wallet_address: str,
        max_pages: int = 1,
    ) -> List[WalletTrade]:
        """
        Fetch a wallet's swaps, newest first.

        Args:
            wallet_address: Solana wallet address
            max_pages: Pages of 100 transactions to read
        """
        logger.info(f"Fetching history for {wallet_address[:8]}...")
        transactions = await self._fetch_address_transactions(wallet_address, max_pages)

        trades = []
        for tx in transactions:
            trade = parse_wallet_trade(tx, wallet_address)
            if trade:
                trades.append(trade)

        trades.sort(key=lambda t: t.timestamp, reverse=True)
        logger.info(f"Found {len(trades)} swaps for {wallet_address[:8]}...")
        return trades

    async def fetch_wallet_holdings(self, wallet_address: str) -> List[TokenHolding]:
        """Fetch a wallet's fungible token balances via DAS."""
        body = {
            "jsonrpc": "2.0",
            "id": f"holdings_{wallet_address[:8]}",
            "method": "getAssetsByOwner",
            "params": {
                "ownerAddress": wallet_address,
                "page": 1,
                "limit": 1000,
                "displayOptions": {"showFungible": True},
            },
        }
        data = await self._request_json("POST", self.config.rpc_url, json_body=body)
        if "error" in data:
            raise ValueError(f"DAS error: {data['error']}")
        return parse_holdings(data.get("result"))
