"""Wallet Lists - Named lists of tracked wallets stored in Redis.

Each list is kept as one JSON blob in a Redis hash keyed by list id.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from datetime import datetime, timezone
from typing import Optional, List, Protocol, Iterable, Union
import json
import logging
import uuid

from logic.correlation.models import BuyerRecord, CorrelatedWallet

logger = logging.getLogger(__name__)


class ListNotFoundError(Exception):
    """Raised when a wallet list id is unknown."""

    def __init__(self, list_id: str):
        self.list_id = list_id
        super().__init__(f"Wallet list not found: {list_id}")


class RedisClient(Protocol):
    """Protocol for async Redis hash operations."""
    async def hget(self, name: str, key: str) -> Optional[str]: ...
    async def hset(self, name: str, key: str, value: str) -> int: ...
    async def hdel(self, name: str, *keys: str) -> int: ...
    async def hgetall(self, name: str) -> dict: ...


@dataclass
class ListedWallet:
    """A wallet saved in a list, with a note and scoring metadata."""

    address: str
    note: str = ""
    added_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict = field(default_factory=dict)

    @property
    def pnl(self) -> Decimal:
        return Decimal(str(self.metadata.get("pnl") or 0))

    @property
    def risk_score(self) -> int:
        return int(self.metadata.get("risk_score") or 0)

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "note": self.note,
            "added_at": self.added_at.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ListedWallet":
        return cls(
            address=data["address"],
            note=data.get("note", ""),
            added_at=datetime.fromisoformat(data["added_at"]),
            metadata=data.get("metadata") or {},
        )


@dataclass
class WalletList:
    """A named collection of wallets."""

    list_id: str
    name: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    wallets: List[ListedWallet] = field(default_factory=list)
    description: str = ""

    def find(self, address: str) -> Optional[ListedWallet]:
        return next((w for w in self.wallets if w.address == address), None)

    def to_json(self) -> str:
        """Serialize to JSON for Redis."""
        return json.dumps({
            "list_id": self.list_id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
            "description": self.description,
            "wallets": [w.to_dict() for w in self.wallets],
        })

    @classmethod
    def from_json(cls, json_str: str) -> "WalletList":
        """Deserialize from JSON."""
        data = json.loads(json_str)
        return cls(
            list_id=data["list_id"],
            name=data["name"],
            created_at=datetime.fromisoformat(data["created_at"]),
            description=data.get("description", ""),
            wallets=[ListedWallet.from_dict(w) for w in data.get("wallets", [])],
        )


@dataclass
class ListSummary:
    """Aggregate figures for a wallet list."""

    wallet_count: int
    total_pnl: Decimal
    avg_risk_score: int


def _listed_from(record: Union[CorrelatedWallet, BuyerRecord, dict]) -> ListedWallet:
    """Build a list entry from a correlated wallet, a token buyer or a wallet-shaped dict."""
    if isinstance(record, CorrelatedWallet):
        return ListedWallet(
            address=record.wallet,
            metadata={
                "pnl": str(record.total_pnl),
                "risk_score": record.risk_score,
                "tokens": list(record.tokens),
            },
        )

    if isinstance(record, BuyerRecord):
        return ListedWallet(
            address=record.wallet,
            metadata={
                "pnl": str(record.pnl),
                "buy_amount": str(record.buy_amount),
                "sell_amount": str(record.sell_amount),
            },
        )

    address = record.get("wallet") or record.get("address")
    if not address:
        raise ValueError(f"Wallet record has no address: {record!r}")
    metadata = {
        "pnl": str(record.get("pnl") or record.get("total_pnl") or 0),
        "risk_score": int(record.get("risk_score") or 0),
    }
    metadata.update(record.get("metadata") or {})
    return ListedWallet(address=address, note=record.get("note", ""), metadata=metadata)


class WalletListStore:
    """
    CRUD over named wallet lists.

    Usage:
        store = WalletListStore(redis.from_url(url, decode_responses=True))
        list_id = await store.create_list("Early buyers")
        added = await store.append_wallets(list_id, correlated_wallets)
    """

    def __init__(self, redis_client: RedisClient, key: str = "stalker:wallet_lists"):
        """
        Initialize the store.

        Args:
            redis_client: Async Redis client (decode_responses=True)
            key: Redis hash holding every list
        """
        self.redis = redis_client
        self.key = key

    async def _save(self, wallet_list: WalletList) -> None:
        await self.redis.hset(self.key, wallet_list.list_id, wallet_list.to_json())

    async def get_list(self, list_id: str) -> WalletList:
        """Load a list, raising ListNotFoundError if it does not exist."""
        raw = await self.redis.hget(self.key, list_id)
        if raw is None:
            raise ListNotFoundError(list_id)
        return WalletList.from_json(raw)

    async def all_lists(self) -> List[WalletList]:
        """All lists, oldest first."""
        raw = await self.redis.hgetall(self.key)
        lists = [WalletList.from_json(value) for value in raw.values()]
        return sorted(lists, key=lambda wl: wl.created_at)

    async def create_list(self, name: str, description: str = "") -> str:
        """Create an empty list and return its id."""
        if not name or not name.strip():
            raise ValueError("List name must not be empty")

        wallet_list = WalletList(
            list_id=f"list_{uuid.uuid4().hex[:12]}",
            name=name.strip(),
            description=description,
        )
        await self._save(wallet_list)
        logger.info(f"Created wallet list {wallet_list.list_id} ({wallet_list.name})")
        return wallet_list.list_id

    async def delete_list(self, list_id: str) -> None:
        removed = await self.redis.hdel(self.key, list_id)
        if not removed:
            raise ListNotFoundError(list_id)
        logger.info(f"Deleted wallet list {list_id}")

    async def rename_list(self, list_id: str, name: str) -> None:
        if not name or not name.strip():
            raise ValueError("List name must not be empty")
        wallet_list = await self.get_list(list_id)
        wallet_list.name = name.strip()
        await self._save(wallet_list)

    async def add_wallet(
        self,
        list_id: str,
        address: str,
        note: str = "",
        metadata: Optional[dict] = None,
    ) -> bool:
        """
        Add a wallet to a list, or update it if already present.

        Returns:
            True if the wallet was new to the list
        """
        wallet_list = await self.get_list(list_id)
        entry = ListedWallet(address=address, note=note.strip(), metadata=metadata or {})

        existing = wallet_list.find(address)
        if existing is not None:
            existing.note = entry.note
            existing.added_at = entry.added_at
            existing.metadata = {**existing.metadata, **entry.metadata}
        else:
            wallet_list.wallets.append(entry)

        await self._save(wallet_list)
        return existing is None

    async def remove_wallet(self, list_id: str, address: str) -> bool:
        """Remove a wallet from a list. Returns True if it was present."""
        wallet_list = await self.get_list(list_id)
        before = len(wallet_list.wallets)
        wallet_list.wallets = [w for w in wallet_list.wallets if w.address != address]
        await self._save(wallet_list)
        return len(wallet_list.wallets) < before

    async def append_wallets(
        self,
        list_id: str,
        wallets: Iterable[Union[CorrelatedWallet, BuyerRecord, dict]],
    ) -> int:
        """
        Bulk-add wallets, skipping addresses already in the list.

        Existing entries are never overwritten.

        Returns:
            Number of wallets newly added
        """
        wallet_list = await self.get_list(list_id)
        known = {w.address for w in wallet_list.wallets}

        added = 0
        for record in wallets:
            entry = _listed_from(record)
            if entry.address in known:
                continue
            wallet_list.wallets.append(entry)
            known.add(entry.address)
            added += 1

        await self._save(wallet_list)
        logger.info(f"Added {added} new wallets to {list_id}")
        return added

    async def summarize(self, list_id: str) -> ListSummary:
        """Wallet count, total PnL and rounded average risk score."""
        wallet_list = await self.get_list(list_id)
        wallets = wallet_list.wallets
        total_pnl = sum((w.pnl for w in wallets), Decimal("0"))
        avg_risk = round(sum(w.risk_score for w in wallets) / len(wallets)) if wallets else 0
        return ListSummary(
            wallet_count=len(wallets),
            total_pnl=total_pnl,
            avg_risk_score=avg_risk,
        )
