"""Tests for the Helius client parsing and buyer retrieval."""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock

import aiohttp

from ingestion.config import IngestionConfig
from ingestion.helius import (
    HeliusClient,
    SOL_MINT,
    build_buyer_records,
    implied_price,
    parse_holdings,
    parse_swap,
    parse_wallet_trade,
)
from logic.correlation import RetrievalError, TradeSide


MINT = "MintToken111111111111111111111111111111111"
WALLET_A = "WalletA11111111111111111111111111111111111"
WALLET_B = "WalletB11111111111111111111111111111111111"
POOL = "Pool1111111111111111111111111111111111111111"


def swap_tx(signature, timestamp, wallet, side, tokens, lamports):
    """Enhanced transaction of ``wallet`` buying or selling MINT for native SOL."""
    if side == "buy":
        token_transfer = {"fromUserAccount": POOL, "toUserAccount": wallet}
        native = {"fromUserAccount": wallet, "toUserAccount": POOL, "amount": lamports}
    else:
        token_transfer = {"fromUserAccount": wallet, "toUserAccount": POOL}
        native = {"fromUserAccount": POOL, "toUserAccount": wallet, "amount": lamports}
    token_transfer.update({"mint": MINT, "tokenAmount": tokens})
    return {
        "signature": signature,
        "timestamp": timestamp,
        "type": "SWAP",
        "feePayer": wallet,
        "tokenTransfers": [token_transfer],
        "nativeTransfers": [native],
    }


@pytest.fixture
def config():
    return IngestionConfig(
        helius_api_key="test-key",
        requests_per_minute=0,
        max_pages=3,
        max_retries=1,
    )


# ============================================================================
# Unit Tests - Parsing
# ============================================================================

class TestParseSwap:
    """Tests for swap transaction parsing."""

    def test_buy_with_native_sol(self):
        tx = swap_tx("sig1", 1000, WALLET_A, "buy", 5000, 2_000_000_000)

        wallet, trade = parse_swap(tx, MINT)

        assert wallet == WALLET_A
        assert trade.side == TradeSide.BUY
        assert trade.signature == "sig1"
        assert trade.timestamp == 1000
        assert trade.token_amount == Decimal("5000")
        assert trade.sol_amount == Decimal("2")
        assert trade.market_cap == Decimal("0.0004")

    def test_sell_with_native_sol(self):
        tx = swap_tx("sig2", 2000, WALLET_A, "sell", 1000, 500_000_000)

        _, trade = parse_swap(tx, MINT)

        assert trade.side == TradeSide.SELL
        assert trade.sol_amount == Decimal("0.5")

    def test_wrapped_sol_leg_preferred(self):
        tx = swap_tx("sig3", 3000, WALLET_A, "buy", 100, 999)
        tx["tokenTransfers"].append({
            "fromUserAccount": WALLET_A,
            "toUserAccount": POOL,
            "mint": SOL_MINT,
            "tokenAmount": 1.25,
        })

        _, trade = parse_swap(tx, MINT)

        assert trade.sol_amount == Decimal("1.25")

    def test_other_mint_ignored(self):
        tx = swap_tx("sig4", 4000, WALLET_A, "buy", 100, 1)
        assert parse_swap(tx, "SomeOtherMint") is None

    def test_zero_token_amount_ignored(self):
        tx = swap_tx("sig5", 5000, WALLET_A, "buy", 0, 1)
        assert parse_swap(tx, MINT) is None

    def test_missing_fee_payer_ignored(self):
        tx = swap_tx("sig6", 6000, WALLET_A, "buy", 10, 1)
        del tx["feePayer"]
        assert parse_swap(tx, MINT) is None

    def test_malformed_amount_raises(self):
        tx = swap_tx("sig7", 7000, WALLET_A, "buy", "not-a-number", 1)
        with pytest.raises(ValueError):
            parse_swap(tx, MINT)

    def test_implied_price_zero_tokens(self):
        assert implied_price(Decimal("1"), Decimal("0")) == Decimal("0")


class TestBuildBuyerRecords:
    """Tests for grouping swaps into buyer records."""

    def test_groups_by_wallet_in_discovery_order(self):
        txs = [
            swap_tx("b2", 300, WALLET_B, "buy", 100, 1_000_000_000),
            swap_tx("a2", 200, WALLET_A, "sell", 100, 3_000_000_000),
            swap_tx("a1", 100, WALLET_A, "buy", 100, 1_000_000_000),
        ]

        buyers = build_buyer_records(txs, MINT)

        assert [b.wallet for b in buyers] == [WALLET_B, WALLET_A]
        wallet_a = buyers[1]
        assert wallet_a.buy_amount == Decimal("1")
        assert wallet_a.sell_amount == Decimal("3")
        assert wallet_a.buy_time == 100
        assert wallet_a.sell_time == 200
        # Bought at 0.01, sold at 0.03 SOL per token, whole position
        assert wallet_a.pnl == Decimal("0.02")
        assert [t.signature for t in wallet_a.transactions] == ["a2", "a1"]

    def test_sell_only_wallets_dropped(self):
        txs = [swap_tx("s", 100, WALLET_A, "sell", 10, 1)]
        assert build_buyer_records(txs, MINT) == []


class TestParseWalletTrade:
    """Tests for wallet history parsing."""

    def test_trade(self):
        tx = swap_tx("sig", 100, WALLET_A, "buy", 10, 1_000_000_000)

        trade = parse_wallet_trade(tx, WALLET_A)

        assert trade.token_mint == MINT
        assert trade.action == TradeSide.BUY
        assert trade.sol_amount == Decimal("1")

    def test_no_token_leg(self):
        tx = {"signature": "x", "timestamp": 1, "tokenTransfers": [], "nativeTransfers": []}
        assert parse_wallet_trade(tx, WALLET_A) is None


class TestParseHoldings:
    """Tests for DAS holdings parsing."""

    def test_fungible_items(self):
        result = {
            "items": [
                {
                    "id": MINT,
                    "content": {
                        "metadata": {"name": "Test Token", "symbol": "TEST"},
                        "files": [{"uri": "https://example.com/t.png"}],
                    },
                    "token_info": {"balance": 1500000, "decimals": 6},
                },
                {"id": "nft", "content": {"metadata": {"name": "An NFT"}}},
            ]
        }

        holdings = parse_holdings(result)

        assert len(holdings) == 1
        assert holdings[0].symbol == "TEST"
        assert holdings[0].ui_balance == Decimal("1.5")
        assert holdings[0].image == "https://example.com/t.png"

    def test_empty_result(self):
        assert parse_holdings(None) == []


# ============================================================================
# Unit Tests - HeliusClient
# ============================================================================

class TestHeliusClient:
    """Tests for HeliusClient retrieval (HTTP layer mocked)."""

    @pytest.mark.asyncio
    async def test_fetch_buyers_paginates(self, config):
        config.page_limit = 2
        client = HeliusClient(config, session=AsyncMock())
        page1 = [
            swap_tx("a1", 200, WALLET_A, "buy", 10, 1_000_000_000),
            swap_tx("b1", 100, WALLET_B, "buy", 10, 1_000_000_000),
        ]
        page2 = [swap_tx("a0", 50, WALLET_A, "buy", 10, 1_000_000_000)]
        client._request_json = AsyncMock(side_effect=[page1, page2])

        buyers = await client.fetch_buyers(MINT)

        assert [b.wallet for b in buyers] == [WALLET_A, WALLET_B]
        assert buyers[0].buy_amount == Decimal("2")
        assert client._request_json.await_count == 2
        second_params = client._request_json.await_args_list[1].kwargs["params"]
        assert second_params["before"] == "b1"
        assert second_params["type"] == "SWAP"

    @pytest.mark.asyncio
    async def test_fetch_buyers_stops_at_max_pages(self, config):
        config.page_limit = 1
        config.max_pages = 2
        client = HeliusClient(config, session=AsyncMock())
        client._request_json = AsyncMock(side_effect=[
            [swap_tx("a", 3, WALLET_A, "buy", 1, 1)],
            [swap_tx("b", 2, WALLET_B, "buy", 1, 1)],
            [swap_tx("c", 1, WALLET_B, "buy", 1, 1)],
        ])

        await client.fetch_buyers(MINT)

        assert client._request_json.await_count == 2

    @pytest.mark.asyncio
    async def test_network_error_becomes_retrieval_error(self, config):
        client = HeliusClient(config, session=AsyncMock())
        client._request_json = AsyncMock(side_effect=aiohttp.ClientConnectionError("down"))

        with pytest.raises(RetrievalError) as exc_info:
            await client.fetch_buyers(MINT)

        assert exc_info.value.token_id == MINT

    @pytest.mark.asyncio
    async def test_unexpected_shape_becomes_retrieval_error(self, config):
        client = HeliusClient(config, session=AsyncMock())
        client._request_json = AsyncMock(return_value={"error": "bad"})

        with pytest.raises(RetrievalError):
            await client.fetch_buyers(MINT)

    @pytest.mark.asyncio
    async def test_request_requires_session(self, config):
        client = HeliusClient(config)
        with pytest.raises(RuntimeError):
            await client._request_json_once("GET", "https://example.com")

    @pytest.mark.asyncio
    async def test_wallet_history_newest_first(self, config):
        client = HeliusClient(config, session=AsyncMock())
        client._request_json = AsyncMock(return_value=[
            swap_tx("old", 100, WALLET_A, "buy", 1, 1),
            swap_tx("new", 900, WALLET_A, "sell", 1, 1),
        ])

        history = await client.fetch_wallet_history(WALLET_A)

        assert [t.signature for t in history] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_wallet_holdings(self, config):
        client = HeliusClient(config, session=AsyncMock())
        client._request_json = AsyncMock(return_value={
            "result": {"items": [{"id": MINT, "token_info": {"balance": 10, "decimals": 1}}]}
        })

        holdings = await client.fetch_wallet_holdings(WALLET_A)

        assert holdings[0].ui_balance == Decimal("1")
        body = client._request_json.await_args.kwargs["json_body"]
        assert body["method"] == "getAssetsByOwner"
        assert body["params"]["ownerAddress"] == WALLET_A

    def test_request_interval(self):
        assert IngestionConfig(requests_per_minute=120).request_interval_seconds == 0.5
        assert IngestionConfig(requests_per_minute=0).request_interval_seconds == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
