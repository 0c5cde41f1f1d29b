"""
Pool discovery indexer.

Finds pools through ``PoolCreated`` events visible on the mirror, reads
their current details from the lottery, and keeps one MongoDB document per
pool so front ends can list pools without walking the contract.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

import database
from lazylotto.errors import LottoPoolNotFound
from lazylotto.ledger import TINYBARS_PER_HBAR, is_hbar
from lazylotto.mirror import MirrorView
from schemas import IndexerState, Pool

logger = logging.getLogger(__name__)

POOL_COLLECTION = "pool"
STATE_COLLECTION = "indexer_state"


def format_win_rate(threshold: int) -> str:
    return f"{threshold / 1_000_000:g}%"


class PoolIndexer:
    def __init__(self, lotto, mirror: MirrorView, name: str = "pools"):
        self.lotto = lotto
        self.mirror = mirror
        self.name = name
        self.last_seq = -1
        self.known: List[int] = []
        self._load_state()

    @property
    def persistent(self) -> bool:
        return database.db is not None

    def _load_state(self):
        if not self.persistent:
            return
        for doc in database.get_documents(STATE_COLLECTION, {"name": self.name}, limit=1):
            state = IndexerState(**doc)
            self.last_seq = state.last_seq
            self.known = list(state.pool_ids)

    def _save_state(self):
        if not self.persistent:
            return
        state = IndexerState(name=self.name, last_seq=self.last_seq, pool_ids=self.known)
        database.upsert_document(STATE_COLLECTION, {"name": self.name}, state)

    def discover(self) -> List[int]:
        """Pick up pools created since the last checkpoint."""
        found = []
        for event in self.mirror.events("PoolCreated", contract=self.lotto.address, after_seq=self.last_seq):
            pool_id = event["pool_id"]
            if pool_id not in self.known:
                self.known.append(pool_id)
                found.append(pool_id)
            self.last_seq = event.seq
        if found:
            logger.info("indexer discovered pool(s) %s", found)
        return found

    def _fee_display(self, fee_token: str, entry_fee: int) -> str:
        if is_hbar(fee_token):
            return f"{entry_fee / TINYBARS_PER_HBAR:g} ℏ"
        token = self.lotto.ledger.tokens.get(fee_token)
        if token is None:
            return f"{entry_fee} (raw)"
        return f"{entry_fee / 10 ** token.decimals:g} {token.symbol}"

    def pool_document(self, pool_id: int) -> Pool:
        info = self.lotto.get_pool_basic_info(pool_id)
        pool = self.lotto.get_pool(pool_id)
        owner, is_global = None, True
        manager = self.lotto.pool_manager
        if manager is not None:
            is_global = manager.is_global_pool(pool_id)
            if not is_global:
                owner = manager.get_pool_owner(pool_id)
        return Pool(
            pool_id=pool_id,
            name=pool.name,
            status=pool.status,
            win_rate=info["win_rate"],
            win_rate_display=format_win_rate(info["win_rate"]),
            entry_fee=info["entry_fee"],
            fee_token=info["fee_token"],
            entry_fee_display=self._fee_display(info["fee_token"], info["entry_fee"]),
            prize_count=info["prize_count"],
            outstanding_entries=info["outstanding_entries"],
            ticket_token=info["ticket_token"],
            owner=owner,
            is_global=is_global,
            indexed_at=datetime.now(timezone.utc),
        )

    def run(self, active_only: bool = False) -> List[dict]:
        self.discover()
        indexed = []
        for pool_id in self.known:
            try:
                doc = self.pool_document(pool_id)
            except LottoPoolNotFound:
                logger.warning("indexed pool %d no longer resolves", pool_id)
                continue
            if active_only and doc.status != "active":
                continue
            if self.persistent:
                database.upsert_document(POOL_COLLECTION, {"pool_id": pool_id}, doc)
            indexed.append(doc.model_dump())
        self._save_state()
        logger.info("indexed %d pool(s), checkpoint seq=%d", len(indexed), self.last_seq)
        return indexed

    def stored_pools(self, status: Optional[str] = None) -> List[dict]:
        if not self.persistent:
            return []
        docs = database.get_documents(POOL_COLLECTION, {"status": status} if status else None)
        return sorted(docs, key=lambda d: d["pool_id"])
