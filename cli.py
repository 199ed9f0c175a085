#!/usr/bin/env python3
"""
Wallet Stalker - Command Line Interface

Commands for exploring token buyers and wallet activity:
- Buyers: Who bought a token, with PnL per wallet
- Wallet: Trade history and holdings of a wallet
- Correlate: Wallets shared across several tokens' buyers
- Lists: Manage saved wallet lists

Usage:
    python cli.py buyers <mint>                         # Token buyers
    python cli.py buyers <mint> --save-list "Token buyers"   # Save all buyers to a list
    python cli.py wallet <address>                      # Wallet history + holdings
    python cli.py correlate <mintA> <mintB>             # Wallets in both
    python cli.py correlate <mintA>:min_buy=1,pnl=gt:0 <mintB> --match any
    python cli.py correlate <mintA> <mintB> --save-list "Early buyers" --csv out.csv
    python cli.py lists show                            # All lists
    python cli.py lists show <list_id>                  # One list
    python cli.py lists create <name>
    python cli.py lists export <list_id> <path.csv>
"""

import asyncio
import argparse
import csv
import logging
import os
import re
import sys
from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone
from typing import Optional, List

import aiohttp
from dotenv import load_dotenv
from redis.exceptions import RedisError

load_dotenv()

from analytics.pnl import summarize_cohort
from ingestion.config import IngestionConfig
from ingestion.helius import HeliusClient
from logic.correlation import (
    CorrelationEngine,
    CorrelationError,
    CohortConfig,
    CohortFilter,
    MatchPolicy,
    PnlCondition,
    require_cohorts,
)
from storage.wallet_lists import WalletListStore, ListNotFoundError

logger = logging.getLogger("wallet-stalker")

BASE58_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

# Cross-referencing needs at least two tokens
MIN_CORRELATION_TOKENS = 2


class Colors:
    """ANSI color codes for terminal output."""
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def color(text: str, c: str) -> str:
    """Apply color to text."""
    return f"{c}{text}{Colors.ENDC}"


def is_valid_solana_address(address: str) -> bool:
    """Base58, 32-44 characters."""
    return bool(address) and bool(BASE58_ADDRESS.match(address))


def format_wallet(address: str, length: int = 8) -> str:
    if not address:
        return "-"
    if len(address) <= length * 2:
        return address
    return f"{address[:length]}...{address[-length:]}"


def format_timestamp(timestamp: Optional[int]) -> str:
    if not timestamp:
        return "-"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


def format_pnl(pnl: Decimal) -> str:
    c = Colors.GREEN if pnl >= 0 else Colors.RED
    return color(f"{pnl:+.6f}", c)


def risk_color(score: int) -> str:
    if score < 20:
        return Colors.GREEN
    if score < 50:
        return Colors.YELLOW
    return Colors.RED


def parse_before(value: str) -> int:
    """Cutoff as epoch seconds, from an integer or an ISO date (UTC if naive)."""
    if value.isdigit():
        return int(value)
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def parse_cohort_arg(arg: str) -> CohortConfig:
    """
    Parse ``MINT[:key=value,...]`` into a CohortConfig.

    Keys: ``min_buy=<sol>``, ``before=<YYYY-MM-DD|epoch>``, ``pnl=<gt|lt>:<value>``.
    """
    token_id, _, spec = arg.partition(":")
    token_id = token_id.strip()
    if not is_valid_solana_address(token_id):
        raise ValueError(f"Invalid token address: {token_id}")

    filters = CohortFilter()
    for part in filter(None, (p.strip() for p in spec.split(","))):
        key, sep, value = part.partition("=")
        if not sep or not value:
            raise ValueError(f"Malformed filter '{part}' for {token_id}")

        if key == "min_buy":
            filters.min_buy_amount = _parse_decimal(value, token_id)
        elif key == "before":
            try:
                filters.before_date = parse_before(value)
            except ValueError:
                raise ValueError(f"Invalid date '{value}' for {token_id}") from None
        elif key == "pnl":
            condition, _, threshold = value.partition(":")
            try:
                filters.pnl_condition = PnlCondition.parse(condition)
            except ValueError:
                raise ValueError(f"Unknown PnL condition '{condition}' for {token_id}") from None
            filters.min_pnl = _parse_decimal(threshold, token_id)
        else:
            raise ValueError(f"Unknown filter '{key}' for {token_id}")

    return CohortConfig(token_id=token_id, filters=filters)


def _parse_decimal(value: str, token_id: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise ValueError(f"Invalid number '{value}' for {token_id}") from None


def write_csv(path: str, rows: List[dict]) -> None:
    """Write dict rows to a CSV file, header taken from the first row."""
    if not rows:
        raise ValueError("No data to export")
    with open(path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
        writer.writeheader()
        writer.writerows(rows)
    print(color(f"  Exported {len(rows)} rows to {path}", Colors.GREEN))


def get_redis(config: IngestionConfig):
    """Get async Redis client."""
    import redis.asyncio as redis
    return redis.from_url(config.redis_url, decode_responses=True)


async def save_to_list(
    config: IngestionConfig,
    records: list,
    name: Optional[str],
    list_id: Optional[str],
    kind: str,
) -> Optional[str]:
    """Append records to ``list_id``, or to a new list called ``name``."""
    if not records:
        print(color(f"  No {kind} data to save", Colors.YELLOW))
        return None

    client = get_redis(config)
    try:
        store = WalletListStore(client, config.wallet_lists_key)
        list_id = list_id or await store.create_list(name)
        added = await store.append_wallets(list_id, records)
        print(color(f"  Added {added} new wallets to list {list_id}", Colors.GREEN))
        return list_id
    finally:
        await client.aclose()


async def cmd_buyers(args):
    """Display the buyers of a token."""
    if not is_valid_solana_address(args.token):
        raise ValueError(f"Invalid Solana address format: {args.token}")

    config = IngestionConfig()
    async with HeliusClient(config) as client:
        buyers = await client.fetch_buyers(args.token)

    stats = summarize_cohort(buyers)
    print(color("\n===========================================", Colors.CYAN))
    print(color(f"  TOKEN BUYERS - {format_wallet(args.token)}", Colors.BOLD))
    print(color("===========================================\n", Colors.CYAN))
    print(f"  Total Buyers:  {stats.total_buyers}")
    print(f"  Total Volume:  {stats.total_volume:.4f} SOL")
    print(f"  Average Buy:   {stats.avg_buy:.4f} SOL")
    print(f"  Time Range:    {format_timestamp(stats.first_buy_time)} - "
          f"{format_timestamp(stats.last_buy_time)}")

    if buyers:
        print()
        print("  Wallet               Bought (SOL)  First Buy         Sold (SOL)    PnL")
        print("  " + "-" * 80)
        for b in buyers:
            print(
                f"  {format_wallet(b.wallet, 8):<20} {b.buy_amount:<13.4f} "
                f"{format_timestamp(b.buy_time):<17} {b.sell_amount:<13.4f} {format_pnl(b.pnl)}"
            )

    if args.csv:
        write_csv(args.csv, [
            {
                "wallet": b.wallet,
                "buy_amount": str(b.buy_amount),
                "buy_time": b.buy_time,
                "sell_amount": str(b.sell_amount),
                "sell_time": b.sell_time or "",
                "pnl": str(b.pnl),
            }
            for b in buyers
        ])

    if args.save_list or args.list_id:
        await save_to_list(config, buyers, args.save_list, args.list_id, "buyer")
    print()


async def cmd_wallet(args):
    """Display a wallet's trade history and holdings."""
    if not is_valid_solana_address(args.address):
        raise ValueError(f"Invalid Solana address format: {args.address}")

    config = IngestionConfig()
    async with HeliusClient(config) as client:
        history = await client.fetch_wallet_history(args.address, max_pages=args.pages)
        holdings = await client.fetch_wallet_holdings(args.address)

    print(color("\n===========================================", Colors.CYAN))
    print(color(f"  WALLET - {format_wallet(args.address)}", Colors.BOLD))
    print(color("===========================================\n", Colors.CYAN))
    print(f"  Swaps:          {len(history)}")
    print(f"  Unique Tokens:  {len({t.token_mint for t in history})}")
    print(f"  Holdings:       {len(holdings)}")

    if history:
        print()
        print("  Time              Action  Token                 SOL")
        print("  " + "-" * 60)
        for t in history:
            action = color(f"{t.action.value:<6}", Colors.GREEN if t.action.value == "buy" else Colors.RED)
            print(
                f"  {format_timestamp(t.timestamp):<17} {action}  "
                f"{format_wallet(t.token_mint, 8):<21} {t.sol_amount:.4f}"
            )

    if holdings:
        print()
        print("  Symbol     Balance")
        print("  " + "-" * 30)
        for h in holdings:
            print(f"  {h.symbol:<10} {h.ui_balance:,.4f}")

    if args.csv:
        write_csv(args.csv, [t.to_dict() for t in history])
    print()


async def cmd_correlate(args):
    """Cross-reference the buyers of several tokens."""
    cohorts = [parse_cohort_arg(arg) for arg in args.tokens]
    require_cohorts(cohorts, minimum=MIN_CORRELATION_TOKENS)
    policy = MatchPolicy.parse(args.match)

    config = IngestionConfig()
    async with HeliusClient(config) as client:
        engine = CorrelationEngine(client)
        wallets = await engine.correlate(cohorts, policy)

    print(color("\n===========================================", Colors.CYAN))
    print(color(f"  CROSS-REFERENCE ({policy.value.upper()}) - {len(cohorts)} TOKENS", Colors.BOLD))
    print(color("===========================================\n", Colors.CYAN))
    print(f"  Common Wallets: {color(str(len(wallets)), Colors.YELLOW)}")

    if wallets:
        print()
        print("  Wallet               Tokens  Total PnL            Risk")
        print("  " + "-" * 60)
        for w in wallets:
            risk = color(f"{w.risk_score}/100", risk_color(w.risk_score))
            print(f"  {format_wallet(w.wallet, 8):<20} {w.token_count:<7} {format_pnl(w.total_pnl):<28} {risk}")

    if args.csv:
        write_csv(args.csv, [
            {
                "wallet": w.wallet,
                "tokens": ";".join(w.tokens),
                "token_count": w.token_count,
                "total_pnl": str(w.total_pnl),
                "risk_score": w.risk_score,
            }
            for w in wallets
        ])

    if args.save_list or args.list_id:
        await save_to_list(config, wallets, args.save_list, args.list_id, "cross-reference")
    print()


async def cmd_lists(args):
    """Manage saved wallet lists."""
    config = IngestionConfig()
    client = get_redis(config)
    store = WalletListStore(client, config.wallet_lists_key)

    def need(n: int, usage: str) -> None:
        if len(args.args) < n:
            raise ValueError(f"Usage: lists {args.action} {usage}")

    try:
        if args.action == "show" and not args.args:
            lists = await store.all_lists()
            if not lists:
                print(color("\n  No wallet lists yet\n", Colors.YELLOW))
                return
            print()
            print("  List ID              Name                           Wallets  Created")
            print("  " + "-" * 80)
            for wl in lists:
                print(f"  {wl.list_id:<20} {wl.name[:30]:<30} {len(wl.wallets):<8} {wl.created_at:%Y-%m-%d}")
            print()

        elif args.action == "show":
            wl = await store.get_list(args.args[0])
            summary = await store.summarize(wl.list_id)
            print(color(f"\n  {wl.name} ({wl.list_id})", Colors.BOLD))
            print(f"  Wallets: {summary.wallet_count}   Total PnL: {format_pnl(summary.total_pnl)}   "
                  f"Avg Risk: {summary.avg_risk_score}/100\n")
            for w in wl.wallets:
                risk = color(f"{w.risk_score}/100", risk_color(w.risk_score))
                print(f"  {format_wallet(w.address, 12):<28} {format_pnl(w.pnl):<28} {risk}  {w.note or '-'}")
            print()

        elif args.action == "create":
            need(1, "<name>")
            list_id = await store.create_list(" ".join(args.args))
            print(color(f"  Created list {list_id}", Colors.GREEN))

        elif args.action == "delete":
            need(1, "<list_id>")
            await store.delete_list(args.args[0])
            print(color(f"  Deleted list {args.args[0]}", Colors.GREEN))

        elif args.action == "rename":
            need(2, "<list_id> <name>")
            await store.rename_list(args.args[0], " ".join(args.args[1:]))
            print(color("  List renamed", Colors.GREEN))

        elif args.action == "add":
            need(2, "<list_id> <address>")
            if not is_valid_solana_address(args.args[1]):
                raise ValueError(f"Invalid Solana address format: {args.args[1]}")
            is_new = await store.add_wallet(args.args[0], args.args[1], note=args.note or "")
            print(color("  Added wallet to list" if is_new else "  Updated wallet in list", Colors.GREEN))

        elif args.action == "remove":
            need(2, "<list_id> <address>")
            if await store.remove_wallet(args.args[0], args.args[1]):
                print(color("  Removed wallet from list", Colors.GREEN))
            else:
                print(color("  Wallet not in list", Colors.YELLOW))

        elif args.action == "export":
            need(2, "<list_id> <path.csv>")
            wl = await store.get_list(args.args[0])
            write_csv(args.args[1], [
                {
                    "address": w.address,
                    "note": w.note,
                    "pnl": str(w.pnl),
                    "risk_score": w.risk_score,
                    "buy_amount": w.metadata.get("buy_amount", ""),
                    "sell_amount": w.metadata.get("sell_amount", ""),
                    "added_at": w.added_at.isoformat(),
                }
                for w in wl.wallets
            ])
    finally:
        await client.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Wallet Stalker CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Buyers command
    buyers_parser = subparsers.add_parser("buyers", help="Analyze the buyers of a token")
    buyers_parser.add_argument("token", help="Token mint address")
    buyers_parser.add_argument("--csv", help="Export buyers to CSV")
    buyers_parser.add_argument("--save-list", help="Save all buyers to a new list with this name")
    buyers_parser.add_argument("--list-id", help="Append all buyers to an existing list")

    # Wallet command
    wallet_parser = subparsers.add_parser("wallet", help="Track a wallet's trades and holdings")
    wallet_parser.add_argument("address", help="Wallet address")
    wallet_parser.add_argument("--pages", type=int, default=1, help="Pages of history to read")
    wallet_parser.add_argument("--csv", help="Export history to CSV")

    # Correlate command
    correlate_parser = subparsers.add_parser("correlate", help="Cross-reference token buyers")
    correlate_parser.add_argument(
        "tokens", nargs="+",
        help="MINT[:min_buy=<sol>,before=<date|epoch>,pnl=<gt|lt>:<value>]",
    )
    correlate_parser.add_argument("--match", default="all", choices=["all", "any", "and", "or"])
    correlate_parser.add_argument("--save-list", help="Save results to a new list with this name")
    correlate_parser.add_argument("--list-id", help="Append results to an existing list")
    correlate_parser.add_argument("--csv", help="Export results to CSV")

    # Lists command
    lists_parser = subparsers.add_parser("lists", help="Manage wallet lists")
    lists_parser.add_argument(
        "action", choices=["show", "create", "delete", "rename", "add", "remove", "export"]
    )
    lists_parser.add_argument("args", nargs="*")
    lists_parser.add_argument("--note", help="Note for 'add'")

    return parser


def main():
    """Main CLI entry point."""
    log_level = os.getenv("LOG_LEVEL", "WARNING")
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    # Route to command handler
    handlers = {
        "buyers": cmd_buyers,
        "wallet": cmd_wallet,
        "correlate": cmd_correlate,
        "lists": cmd_lists,
    }

    handler = handlers.get(args.command)
    try:
        asyncio.run(handler(args))
    except (
        CorrelationError,
        ListNotFoundError,
        ValueError,
        aiohttp.ClientError,
        asyncio.TimeoutError,
        RedisError,
    ) as e:
        logger.debug("Command failed", exc_info=True)
        print(color(f"\n  Error: {e}\n", Colors.RED))
        sys.exit(1)


if __name__ == "__main__":
    main()
