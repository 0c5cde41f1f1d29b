"""
LazyLotto: the lottery engine.

A pool is an independent lottery with its own fee token, ticket NFT
collection and prize inventory. Users buy entries (counter form) or ticket
NFTs, roll them against the pool's win rate boosted by the bonus engine,
and collect won prize packages from a pending queue, either directly or by
first turning them into bearer NFTs that carry the claim.

Every state-changing method takes the calling account as its first
argument and, where HBAR is attached, a ``value`` keyword in tinybar.
"""

import copy
import hashlib
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from lazylotto.access import AdminControlled
from lazylotto.bonus import BonusEngine, effective_win_rate
from lazylotto.chain import Chain, external
from lazylotto.errors import (
    AlreadyWinningTicket,
    AssociationFailed,
    BadParameters,
    EntriesOutstanding,
    IncorrectFeeToken,
    InsufficientPayment,
    InvalidPrizeIndex,
    InvalidTicketNFT,
    LottoPoolNotFound,
    MaxEntriesReached,
    NoPendingPrizes,
    NoPrizesAvailable,
    NotAdmin,
    NotAuthorized,
    NotEnoughFungible,
    NotEnoughHbar,
    NotEnoughTicketsToRoll,
    NotWinner,
    NoTicketsToRoll,
    PoolIsClosed,
    PoolNotClosed,
    PoolOnPause,
)
from lazylotto.ledger import HBAR, ZERO_ADDRESS, Royalty, is_hbar
from lazylotto.models import (
    MAX_BPS,
    MAX_ROYALTIES,
    MAX_WIN_RATE,
    PendingPrize,
    Pool,
    PrizePackage,
    RollResult,
)
from lazylotto.prng import PrngSystemContract, split_seed

logger = logging.getLogger(__name__)


def _royalties(royalties) -> List[Royalty]:
    parsed = []
    for item in royalties or ():
        if isinstance(item, Royalty):
            parsed.append(Royalty(item.recipient, item.bps))
        elif isinstance(item, dict):
            parsed.append(Royalty(item["recipient"], int(item["bps"])))
        else:
            recipient, bps = item
            parsed.append(Royalty(recipient, int(bps)))
    if len(parsed) > MAX_ROYALTIES:
        raise BadParameters("too many royalties", count=len(parsed))
    if any(r.bps < 0 for r in parsed) or sum(r.bps for r in parsed) > MAX_BPS:
        raise BadParameters("royalties exceed 100%", total=sum(r.bps for r in parsed))
    if any(not r.recipient or r.recipient == ZERO_ADDRESS for r in parsed):
        raise BadParameters("royalty recipient required")
    return parsed


class LazyLotto(AdminControlled):
    def __init__(
        self,
        chain: Chain,
        admin: str,
        prng: PrngSystemContract,
        gas_station,
        delegate_registry=None,
        lazy_token: Optional[str] = None,
        burn_percentage: int = 0,
        name: str = "LazyLotto",
    ):
        super().__init__(chain, name, admin)
        self.prng = prng
        self.gas_station = gas_station
        self.delegate_registry = delegate_registry
        self.pool_manager = None
        self.bonuses = BonusEngine(lazy_token, burn_percentage)
        self._pools: List[Pool] = []
        self._user_entries: Dict[int, Dict[str, int]] = {}
        self._purchased: Dict[int, Dict[str, int]] = {}
        self._pending: Dict[str, List[PendingPrize]] = {}
        self._prizes_by_nft: Dict[Tuple[str, int], PendingPrize] = {}
        self._ticket_pools: Dict[str, int] = {}
        self._reserved: Dict[str, int] = {}
        self._nonce = 0
        self.total_rolls = 0
        self.total_wins = 0
        self.total_payout: Dict[str, int] = {}
        if lazy_token is not None:
            self.ledger.associate(self.address, lazy_token)

    # ---------- Internal helpers ----------
    def _pool(self, pool_id: int) -> Pool:
        if not isinstance(pool_id, int) or not 0 <= pool_id < len(self._pools):
            raise LottoPoolNotFound("no such pool", pool_id=pool_id)
        return self._pools[pool_id]

    @staticmethod
    def _require_open(pool: Pool):
        if pool.closed:
            raise PoolIsClosed("pool is closed", pool_id=pool.pool_id)
        if pool.paused:
            raise PoolOnPause("pool is paused", pool_id=pool.pool_id)

    def _can_manage_prizes(self, caller: str, pool_id: int):
        if self.is_admin(caller):
            return
        if self.pool_manager is not None and self.pool_manager.can_add_prizes(pool_id, caller):
            return
        raise NotAuthorized("caller cannot manage prizes", caller=caller, pool_id=pool_id)

    def _is_pool_owner(self, caller: str, pool_id: int) -> bool:
        return self.pool_manager is not None and self.pool_manager.get_pool_owner(pool_id) == caller

    def _reserve(self, token: str, amount: int):
        if amount:
            self._reserved[token] = self._reserved.get(token, 0) + amount

    def _release(self, token: str, amount: int):
        if amount:
            self._reserved[token] = self._reserved.get(token, 0) - amount

    def _take_hbar(self, caller: str, value: int, required: int):
        """Move attached HBAR in, insisting on ``required`` and refunding the rest."""
        if value < required:
            raise InsufficientPayment("attached HBAR too low", required=required, value=value)
        self.ledger.transfer_hbar(caller, self.address, value)
        self.ledger.transfer_hbar(self.address, caller, value - required)

    def _pull_fungible(self, caller: str, token: str, amount: int):
        self.ledger.associate(self.address, token)
        self.gas_station.pull_fungible(self.address, token, caller, amount, self.address)

    def _salt(self, user: str, pool_id: int) -> bytes:
        self._nonce += 1
        return hashlib.sha256(f"{user}:{pool_id}:{self._nonce}".encode()).digest()

    # ---------- Configuration ----------
    @external
    def set_prng(self, caller: str, prng_address: str):
        self._only_admin(caller)
        prng = self.chain.contract_at(prng_address)
        if not isinstance(prng, PrngSystemContract):
            raise BadParameters("address is not a PRNG", prng=prng_address)
        self.prng = prng
        self.emit("PrngUpdated", by=caller, prng=prng_address)

    @external
    def set_pool_manager(self, caller: str, manager_address: str):
        self._only_admin(caller)
        if self.pool_manager is not None:
            raise BadParameters("pool manager already set", manager=self.pool_manager.address)
        manager = self.chain.contract_at(manager_address)
        if manager is None or not hasattr(manager, "can_add_prizes"):
            raise BadParameters("address is not a pool manager", manager=manager_address)
        self.pool_manager = manager
        self.emit("PoolManagerSet", by=caller, manager=manager_address)

    @external
    def set_burn_percentage(self, caller: str, bps: int):
        self._only_admin(caller)
        old = self.bonuses.set_burn_percentage(bps)
        self.emit("BurnPercentageSet", setter=caller, old=old, new=bps)

    @external
    def set_burn_exempt_token(self, caller: str, token: str, exempt: bool = True):
        self._only_admin(caller)
        if not self.ledger.is_nft(token):
            raise BadParameters("exempt token must be an NFT collection", token=token)
        self.bonuses.set_burn_exempt_token(token, exempt)
        self.emit("BurnExemptTokenSet", setter=caller, token=token, exempt=exempt)

    @external
    def set_lazy_balance_bonus(self, caller: str, threshold: int, bps: int):
        self._only_admin(caller)
        old_threshold, old_bps = self.bonuses.set_lazy_balance_bonus(threshold, bps)
        self.emit(
            "LazyBalanceBonusSet",
            setter=caller, old_threshold=old_threshold, old_bps=old_bps, threshold=threshold, bps=bps,
        )

    @external
    def set_nft_bonus(self, caller: str, token: str, bps: int):
        self._only_admin(caller)
        if not self.ledger.is_nft(token):
            raise BadParameters("bonus token must be an NFT collection", token=token)
        old = self.bonuses.set_nft_bonus(token, bps)
        self.emit("NFTBonusSet", setter=caller, token=token, old=old, new=bps)

    @external
    def remove_nft_bonus(self, caller: str, token: str):
        self._only_admin(caller)
        old = self.bonuses.remove_nft_bonus(token)
        self.emit("NFTBonusSet", setter=caller, token=token, old=old, new=0)

    @external
    def set_time_bonus(self, caller: str, start: int, end: int, bps: int) -> int:
        self._only_admin(caller)
        index = self.bonuses.add_time_bonus(start, end, bps)
        self.emit("TimeBonusAdded", setter=caller, index=index, start=start, end=end, bps=bps)
        return index

    @external
    def remove_time_bonus(self, caller: str, index: int):
        self._only_admin(caller)
        removed = self.bonuses.remove_time_bonus(index)
        self.emit(
            "TimeBonusRemoved",
            setter=caller, index=index, start=removed.start, end=removed.end, bps=removed.bps,
        )

    # ---------- Pool lifecycle ----------
    @external
    def create_pool(
        self,
        caller: str,
        name: str,
        symbol: str,
        memo: str,
        royalties,
        ticket_cid: str,
        win_cid: str,
        win_rate_threshold: int,
        entry_fee: int,
        fee_token: str = HBAR,
        value: int = 0,
        max_tickets_per_buy: int = 0,
        max_entries_per_user: int = 0,
    ) -> int:
        is_global = self.is_admin(caller)
        if not is_global and self.pool_manager is None:
            raise NotAdmin("community pools need a pool manager", caller=caller)
        if not name or not ticket_cid or not win_cid:
            raise BadParameters("name and CIDs are required")
        if not 0 <= win_rate_threshold <= MAX_WIN_RATE:
            raise BadParameters("win rate out of range", win_rate=win_rate_threshold)
        if entry_fee <= 0:
            raise BadParameters("entry fee must be positive", entry_fee=entry_fee)
        if max_tickets_per_buy < 0 or max_entries_per_user < 0:
            raise BadParameters("caps must be non-negative")
        fee_token = fee_token or HBAR
        if not is_hbar(fee_token) and not self.ledger.is_fungible(fee_token):
            raise BadParameters("fee token must be HBAR or a fungible token", fee_token=fee_token)
        parsed_royalties = _royalties(royalties)

        creation_fee = 0 if is_global else self.pool_manager.creation_fee_hbar
        self._take_hbar(caller, value, creation_fee)

        pool_id = len(self._pools)
        ticket_token = self.ledger.create_nft_collection(
            name, symbol or "LOTTO", memo or "", self.address, parsed_royalties,
        )
        if not is_hbar(fee_token):
            self.ledger.associate(self.address, fee_token)
        self._ticket_pools[ticket_token] = pool_id
        self._pools.append(Pool(
            pool_id=pool_id,
            name=name,
            symbol=symbol,
            memo=memo or "",
            ticket_cid=ticket_cid,
            win_cid=win_cid,
            win_rate_threshold=win_rate_threshold,
            entry_fee=entry_fee,
            fee_token=fee_token,
            ticket_token=ticket_token,
            royalties=parsed_royalties,
            max_tickets_per_buy=max_tickets_per_buy,
            max_entries_per_user=max_entries_per_user,
            created_at=self.chain.now(),
        ))
        self._user_entries[pool_id] = {}
        self._purchased[pool_id] = {}

        if self.pool_manager is not None:
            if creation_fee:
                self.ledger.transfer_hbar(self.address, self.pool_manager.address, creation_fee)
            self.pool_manager.record_pool_creation(self.address, pool_id, caller, is_global)

        self.emit(
            "PoolCreated",
            pool_id=pool_id, name=name, fee_token=fee_token, entry_fee=entry_fee, ticket_token_id=ticket_token,
        )
        logger.info("pool %d (%s) created by %s, global=%s", pool_id, name, caller, is_global)
        return pool_id

    @external
    def update_pool_config(
        self,
        caller: str,
        pool_id: int,
        entry_fee: Optional[int] = None,
        win_rate_threshold: Optional[int] = None,
        max_tickets_per_buy: Optional[int] = None,
        max_entries_per_user: Optional[int] = None,
    ):
        self._only_admin(caller)
        pool = self._pool(pool_id)
        if pool.closed:
            raise PoolIsClosed("pool is closed", pool_id=pool_id)
        if entry_fee is not None:
            if entry_fee <= 0:
                raise BadParameters("entry fee must be positive", entry_fee=entry_fee)
            pool.entry_fee = entry_fee
        if win_rate_threshold is not None:
            if not 0 <= win_rate_threshold <= MAX_WIN_RATE:
                raise BadParameters("win rate out of range", win_rate=win_rate_threshold)
            pool.win_rate_threshold = win_rate_threshold
        if max_tickets_per_buy is not None:
            if max_tickets_per_buy < 0:
                raise BadParameters("cap must be non-negative")
            pool.max_tickets_per_buy = max_tickets_per_buy
        if max_entries_per_user is not None:
            if max_entries_per_user < 0:
                raise BadParameters("cap must be non-negative")
            pool.max_entries_per_user = max_entries_per_user
        self.emit(
            "PoolConfigUpdated",
            by=caller, pool_id=pool_id, entry_fee=pool.entry_fee, win_rate=pool.win_rate_threshold,
        )

    @external
    def pause_pool(self, caller: str, pool_id: int):
        self._only_admin(caller)
        pool = self._pool(pool_id)
        if pool.closed:
            raise PoolIsClosed("pool is closed", pool_id=pool_id)
        pool.paused = True
        self.emit("PoolPaused", by=caller, pool_id=pool_id)

    @external
    def unpause_pool(self, caller: str, pool_id: int):
        self._only_admin(caller)
        pool = self._pool(pool_id)
        if pool.closed:
            raise PoolIsClosed("pool is closed", pool_id=pool_id)
        pool.paused = False
        self.emit("PoolUnpaused", by=caller, pool_id=pool_id)

    @external
    def close_pool(self, caller: str, pool_id: int):
        self._only_admin(caller)
        pool = self._pool(pool_id)
        if pool.closed:
            raise PoolIsClosed("pool already closed", pool_id=pool_id)
        if pool.outstanding_entries or pool.outstanding_ticket_nfts:
            raise EntriesOutstanding(
                "pool has unrolled tickets",
                pool_id=pool_id,
                entries=pool.outstanding_entries,
                ticket_nfts=pool.outstanding_ticket_nfts,
            )
        pool.closed = True
        pool.paused = False
        self.emit("PoolClosed", by=caller, pool_id=pool_id)
        logger.info("pool %d closed by %s", pool_id, caller)

    # ---------- Prize inventory ----------
    def _validate_package(self, token: str, amount: int, nft_tokens, nft_serials) -> PrizePackage:
        token = token or HBAR
        nft_tokens = list(nft_tokens or [])
        nft_serials = [list(s) for s in (nft_serials or [])]
        if amount < 0:
            raise BadParameters("amount must be non-negative", amount=amount)
        if len(nft_tokens) != len(nft_serials):
            raise BadParameters("nft tokens and serials differ in length")
        if amount == 0 and not nft_tokens:
            raise BadParameters("empty prize package")
        if amount > 0 and not is_hbar(token) and not self.ledger.is_fungible(token):
            raise BadParameters("prize token must be HBAR or fungible", token=token)
        if len(set(nft_tokens)) != len(nft_tokens):
            raise BadParameters("duplicate NFT collection in package")
        for nft_token, serials in zip(nft_tokens, nft_serials):
            if not self.ledger.is_nft(nft_token):
                raise BadParameters("not an NFT collection", token=nft_token)
            if not serials:
                raise BadParameters("NFT collection without serials", token=nft_token)
            if any(s <= 0 for s in serials):
                raise BadParameters("NFT serial must be positive", token=nft_token)
            if len(set(serials)) != len(serials):
                raise BadParameters("duplicate NFT serial in package", token=nft_token)
        return PrizePackage(token, amount, nft_tokens, nft_serials)

    def _collect_nfts(self, caller: str, package: PrizePackage):
        for nft_token, serials in zip(package.nft_tokens, package.nft_serials):
            self.ledger.associate(self.address, nft_token)
            for serial in serials:
                if self.ledger.owner_of(nft_token, serial) != caller:
                    raise NotAuthorized("caller does not own prize NFT", token=nft_token, serial=serial)
                if not self.ledger.is_approved(nft_token, caller, self.address, serial):
                    raise NotAuthorized("prize NFT not approved to contract", token=nft_token, serial=serial)
                self.ledger.transfer_nft_from(nft_token, self.address, caller, serial, self.address)

    def _add_packages(self, caller: str, pool: Pool, packages: List[PrizePackage], value: int):
        hbar_needed = sum(p.amount for p in packages if p.is_hbar)
        self._take_hbar(caller, value, hbar_needed)
        ft_needed: Dict[str, int] = {}
        for package in packages:
            if package.amount and not package.is_hbar:
                ft_needed[package.token] = ft_needed.get(package.token, 0) + package.amount
        for token, amount in ft_needed.items():
            self._pull_fungible(caller, token, amount)
        for package in packages:
            self._collect_nfts(caller, package)
            self._reserve(package.token, package.amount)
            pool.prizes.append(package)
        self.emit("PoolPrizesUpdated", pool_id=pool.pool_id)

    @external
    def add_prize_package(
        self,
        caller: str,
        pool_id: int,
        token: str,
        amount: int,
        nft_tokens: Sequence[str] = (),
        nft_serials: Sequence[Sequence[int]] = (),
        value: int = 0,
    ) -> int:
        pool = self._pool(pool_id)
        self._can_manage_prizes(caller, pool_id)
        self._require_open(pool)
        package = self._validate_package(token, amount, nft_tokens, nft_serials)
        self._add_packages(caller, pool, [package], value)
        logger.info("prize added to pool %d by %s (%d packages)", pool_id, caller, len(pool.prizes))
        return len(pool.prizes) - 1

    @external
    def add_multiple_fungible_prizes(
        self, caller: str, pool_id: int, token: str, amounts: Sequence[int], value: int = 0,
    ) -> int:
        pool = self._pool(pool_id)
        self._can_manage_prizes(caller, pool_id)
        self._require_open(pool)
        if not amounts:
            raise BadParameters("no amounts given")
        if any(a <= 0 for a in amounts):
            raise BadParameters("every amount must be positive", amounts=list(amounts))
        packages = [self._validate_package(token, a, (), ()) for a in amounts]
        self._add_packages(caller, pool, packages, value)
        return len(pool.prizes)

    @external
    def remove_prizes(self, caller: str, pool_id: int, index: int) -> PrizePackage:
        pool = self._pool(pool_id)
        if not self.is_admin(caller) and not self._is_pool_owner(caller, pool_id):
            raise NotAuthorized("only admin or pool owner can remove prizes", caller=caller)
        if not pool.closed:
            raise PoolNotClosed("prizes can only be removed from closed pools", pool_id=pool_id)
        if not 0 <= index < len(pool.prizes):
            raise BadParameters("prize index out of range", index=index, prizes=len(pool.prizes))
        package = pool.prizes.pop(index)
        self._release(package.token, package.amount)
        self._pay_out(caller, package, burn_bps=0)
        self.emit("PoolPrizesUpdated", pool_id=pool_id)
        logger.info("prize %d removed from pool %d by %s", index, pool_id, caller)
        return copy.deepcopy(package)

    # ---------- Entries ----------
    def _buy(self, caller: str, pool_id: int, count: int, value: int, as_nft: bool) -> List[int]:
        self._when_not_paused()
        pool = self._pool(pool_id)
        self._require_open(pool)
        if count <= 0:
            raise BadParameters("ticket count must be positive", count=count)
        if pool.max_tickets_per_buy and count > pool.max_tickets_per_buy:
            raise BadParameters("too many tickets in one purchase", count=count, cap=pool.max_tickets_per_buy)
        purchased = self._purchased[pool_id].get(caller, 0)
        if pool.max_entries_per_user and purchased + count > pool.max_entries_per_user:
            raise MaxEntriesReached(
                "per-user entry cap reached", purchased=purchased, count=count, cap=pool.max_entries_per_user,
            )

        cost = count * pool.entry_fee
        if is_hbar(pool.fee_token):
            self._take_hbar(caller, value, cost)
        else:
            if value:
                raise IncorrectFeeToken("pool is paid in a fungible token", pool_id=pool_id)
            self._pull_fungible(caller, pool.fee_token, cost)

        self._purchased[pool_id][caller] = purchased + count
        pool.total_entries_sold += count
        serials: List[int] = []
        if as_nft:
            serials = self._mint_tickets(caller, pool, count)
        else:
            entries = self._user_entries[pool_id]
            entries[caller] = entries.get(caller, 0) + count
            pool.outstanding_entries += count

        if self.pool_manager is not None:
            self.pool_manager.record_proceeds(self.address, pool_id, pool.fee_token, cost)
        self.emit("PoolEntered", user=caller, pool_id=pool_id, count=count, ticket_ids=list(serials))
        return serials

    def _mint_tickets(self, user: str, pool: Pool, count: int) -> List[int]:
        if not self.ledger.is_associated(user, pool.ticket_token):
            raise AssociationFailed("user not associated with ticket token", token=pool.ticket_token)
        serials = []
        for _ in range(count):
            serial = self.ledger.mint_nft(
                pool.ticket_token,
                self.address,
                {"pool_id": pool.pool_id, "winning": False, "cid": pool.ticket_cid},
            )
            self.ledger.transfer_nft(pool.ticket_token, serial, self.address, user)
            serials.append(serial)
            self.emit("TicketRedeemedToNFT", user=user, pool_id=pool.pool_id, serial=serial)
        pool.outstanding_ticket_nfts += count
        return serials

    @external
    def buy_entry(self, caller: str, pool_id: int, count: int, value: int = 0) -> int:
        self._buy(caller, pool_id, count, value, as_nft=False)
        return count

    @external
    def buy_and_roll_entry(self, caller: str, pool_id: int, count: int, value: int = 0) -> RollResult:
        self._buy(caller, pool_id, count, value, as_nft=False)
        return self._roll_entries(caller, pool_id, count)

    @external
    def buy_and_redeem_entry(self, caller: str, pool_id: int, count: int, value: int = 0) -> List[int]:
        return self._buy(caller, pool_id, count, value, as_nft=True)

    @external
    def admin_grant_entry(self, caller: str, pool_id: int, count: int, recipient: str):
        self._only_admin(caller)
        pool = self._pool(pool_id)
        self._require_open(pool)
        if count <= 0 or not recipient or recipient == ZERO_ADDRESS:
            raise BadParameters("positive count and recipient required")
        entries = self._user_entries[pool_id]
        entries[recipient] = entries.get(recipient, 0) + count
        pool.outstanding_entries += count
        self.emit("EntryGranted", by=caller, user=recipient, pool_id=pool_id, count=count)

    @external
    def redeem_entries_to_nft(self, caller: str, pool_id: int, count: int) -> List[int]:
        self._when_not_paused()
        pool = self._pool(pool_id)
        if pool.closed:
            raise PoolIsClosed("pool is closed", pool_id=pool_id)
        if count <= 0:
            raise BadParameters("count must be positive", count=count)
        entries = self._user_entries[pool_id]
        available = entries.get(caller, 0)
        if available < count:
            raise NotEnoughTicketsToRoll("not enough entries to redeem", available=available, count=count)
        entries[caller] = available - count
        pool.outstanding_entries -= count
        return self._mint_tickets(caller, pool, count)

    # ---------- Rolling ----------
    def _roll(self, user: str, pool: Pool, count: int) -> RollResult:
        queue = self._pending.setdefault(user, [])
        offset = len(queue)
        boost = self.bonuses.calculate_boost(self.ledger, self.delegate_registry, user, self.chain.now())
        win_rate = effective_win_rate(pool.win_rate_threshold, boost)
        wins = 0
        for _ in range(count):
            high, low = split_seed(self.prng.get_seed(self._salt(user, pool.pool_id)))
            pool.total_rolls += 1
            self.total_rolls += 1
            self.emit("TicketRolled", user=user, pool_id=pool.pool_id, ticket_id=pool.total_rolls)
            if low % MAX_WIN_RATE >= win_rate or not pool.prizes:
                continue
            index = high % len(pool.prizes)
            package = pool.prizes[index]
            pool.prizes[index] = pool.prizes[-1]
            pool.prizes.pop()
            queue.append(PendingPrize(pool.pool_id, package))
            wins += 1
            pool.total_wins += 1
            self.total_wins += 1
            self.emit("PrizeWon", user=user, pool_id=pool.pool_id, prize_index=index)
        self.emit("TicketsRolled", user=user, pool_id=pool.pool_id, count=count, wins=wins, offset=offset)
        logger.info("%s rolled %d ticket(s) in pool %d: %d win(s)", user, count, pool.pool_id, wins)
        return RollResult(wins, offset)

    def _roll_entries(self, user: str, pool_id: int, count: Optional[int]) -> RollResult:
        self._when_not_paused()
        pool = self._pool(pool_id)
        self._require_open(pool)
        entries = self._user_entries[pool_id]
        available = entries.get(user, 0)
        if count is None:
            count = available
        elif count <= 0:
            raise BadParameters("roll count must be positive", count=count)
        if available == 0:
            raise NoTicketsToRoll("no entries to roll", pool_id=pool_id)
        if count > available:
            raise NotEnoughTicketsToRoll("not enough entries", available=available, count=count)
        if not pool.prizes:
            raise NoPrizesAvailable("pool has no prizes", pool_id=pool_id)
        entries[user] = available - count
        pool.outstanding_entries -= count
        return self._roll(user, pool, count)

    @external
    def roll_all(self, caller: str, pool_id: int) -> RollResult:
        return self._roll_entries(caller, pool_id, None)

    @external
    def roll_batch(self, caller: str, pool_id: int, count: int) -> RollResult:
        return self._roll_entries(caller, pool_id, count)

    @external
    def roll_with_nft(self, caller: str, pool_id: int, serials: Sequence[int]) -> RollResult:
        self._when_not_paused()
        pool = self._pool(pool_id)
        self._require_open(pool)
        serials = list(serials)
        if not serials:
            raise NoTicketsToRoll("no ticket serials given", pool_id=pool_id)
        if len(set(serials)) != len(serials):
            raise BadParameters("duplicate ticket serials")
        if not self.ledger.is_approved_for_all(pool.ticket_token, caller, self.address):
            raise NotAuthorized("ticket collection not approved to contract", token=pool.ticket_token)
        for serial in serials:
            nft = self.ledger.nft(pool.ticket_token, serial)
            if nft is None or nft.owner != caller:
                raise InvalidTicketNFT("caller does not hold ticket", token=pool.ticket_token, serial=serial)
            if nft.metadata.get("winning") or (pool.ticket_token, serial) in self._prizes_by_nft:
                raise AlreadyWinningTicket("serial is a winning ticket", serial=serial)
        if not pool.prizes:
            raise NoPrizesAvailable("pool has no prizes", pool_id=pool_id)
        for serial in serials:
            self.ledger.wipe_nft(pool.ticket_token, serial, caller)
        pool.outstanding_ticket_nfts -= len(serials)
        return self._roll(caller, pool, len(serials))

    # ---------- Settlement ----------
    def _pay_out(self, receiver: str, package: PrizePackage, burn_bps: int) -> dict:
        for token in package.tokens():
            if not self.ledger.is_associated(receiver, token):
                raise AssociationFailed("receiver not associated with prize token", token=token, receiver=receiver)
        paid = {"hbar": 0, "fungible": 0, "burned": 0, "nfts": 0}
        if package.amount:
            if package.is_hbar:
                self.ledger.transfer_hbar(self.address, receiver, package.amount)
                paid["hbar"] = package.amount
            else:
                burned = package.amount * burn_bps // MAX_BPS
                self.ledger.transfer_fungible(package.token, self.address, receiver, package.amount - burned)
                self.ledger.burn_fungible(package.token, self.address, burned)
                paid["fungible"] = package.amount - burned
                paid["burned"] = burned
        for nft_token, serials in zip(package.nft_tokens, package.nft_serials):
            for serial in serials:
                self.ledger.transfer_nft(nft_token, serial, self.address, receiver)
                paid["nfts"] += 1
        return paid

    def _settle(self, user: str, item: PendingPrize) -> dict:
        package = item.prize
        self._release(package.token, package.amount)
        paid = self._pay_out(user, package, self.bonuses.burn_for_user(self.ledger, user))
        if package.amount:
            token = HBAR if package.is_hbar else package.token
            self.total_payout[token] = self.total_payout.get(token, 0) + package.amount - paid["burned"]
        return paid

    def _queue(self, user: str) -> List[PendingPrize]:
        queue = self._pending.get(user)
        if not queue:
            raise NoPendingPrizes("no pending prizes", user=user)
        return queue

    @external
    def claim_prize(self, caller: str, index: int) -> dict:
        self._when_not_paused()
        queue = self._queue(caller)
        if not 0 <= index < len(queue):
            raise InvalidPrizeIndex("prize index out of range", index=index, pending=len(queue))
        item = queue[index]
        queue[index] = queue[-1]
        queue.pop()
        paid = self._settle(caller, item)
        self.emit("PrizeClaimed", user=caller, pool_id=item.pool_id, prize_index=index)
        logger.info("%s claimed prize %d from pool %d", caller, index, item.pool_id)
        return paid

    @external
    def claim_all_prizes(self, caller: str) -> int:
        self._when_not_paused()
        queue = self._queue(caller)
        items = list(queue)
        queue.clear()
        for index, item in enumerate(items):
            self._settle(caller, item)
            self.emit("PrizeClaimed", user=caller, pool_id=item.pool_id, prize_index=index)
        logger.info("%s claimed %d prize(s)", caller, len(items))
        return len(items)

    @external
    def redeem_prize_to_nft(self, caller: str, indices: Sequence[int]) -> List[int]:
        self._when_not_paused()
        queue = self._queue(caller)
        indices = list(indices)
        if not indices:
            raise BadParameters("no prize indices given")
        if len(set(indices)) != len(indices) or any(not 0 <= i < len(queue) for i in indices):
            raise InvalidPrizeIndex("invalid prize indices", indices=indices, pending=len(queue))
        serial_for: Dict[int, int] = {}
        for index in sorted(indices, reverse=True):
            item = queue[index]
            queue[index] = queue[-1]
            queue.pop()
            pool = self._pools[item.pool_id]
            if not self.ledger.is_associated(caller, pool.ticket_token):
                raise AssociationFailed("user not associated with ticket token", token=pool.ticket_token)
            serial = self.ledger.mint_nft(
                pool.ticket_token,
                self.address,
                {"pool_id": pool.pool_id, "winning": True, "cid": pool.win_cid},
            )
            self.ledger.transfer_nft(pool.ticket_token, serial, self.address, caller)
            item.as_nft = True
            item.bearer_serial = serial
            self._prizes_by_nft[(pool.ticket_token, serial)] = item
            serial_for[index] = serial
            self.emit("PrizeRedeemedToNFT", user=caller, prize_index=index, bearer_serial=serial)
        return [serial_for[i] for i in indices]

    @external
    def claim_prize_from_nft(self, caller: str, token: str, serials: Sequence[int]) -> int:
        self._when_not_paused()
        serials = list(serials)
        if not serials:
            raise BadParameters("no serials given")
        if len(set(serials)) != len(serials):
            raise BadParameters("duplicate serials")
        for serial in serials:
            item = self._prizes_by_nft.get((token, serial))
            if item is None:
                raise NotWinner("serial does not carry a prize", token=token, serial=serial)
            if self.ledger.owner_of(token, serial) != caller:
                raise NotAuthorized("caller does not hold the prize NFT", token=token, serial=serial)
            self.ledger.wipe_nft(token, serial, caller)
            del self._prizes_by_nft[(token, serial)]
            self.emit("PrizeNFTWipedForClaim", user=caller, nft_address=token, serial=serial)
            self._settle(caller, item)
            self.emit("PrizeClaimed", user=caller, pool_id=item.pool_id, prize_index=None)
        return len(serials)

    # ---------- Treasury ----------
    def locked_balance(self, token: str) -> int:
        locked = self._reserved.get(token, 0)
        if self.pool_manager is not None:
            locked += self.pool_manager.locked_balance(token)
        return locked

    def _available(self, token: str) -> int:
        if is_hbar(token):
            held = self.ledger.hbar_balance(self.address)
        else:
            held = self.ledger.ft_balance(token, self.address)
        return held - self.locked_balance(token)

    @external
    def transfer_hbar(self, caller: str, receiver: str, amount: int):
        self._only_admin(caller)
        if amount <= 0 or amount > self._available(HBAR):
            raise NotEnoughHbar("amount exceeds free HBAR", amount=amount, available=self._available(HBAR))
        self.ledger.transfer_hbar(self.address, receiver, amount)
        self.emit("HbarTransferred", by=caller, receiver=receiver, amount=amount)

    @external
    def transfer_fungible(self, caller: str, token: str, receiver: str, amount: int):
        self._only_admin(caller)
        if amount <= 0 or amount > self._available(token):
            raise NotEnoughFungible("amount exceeds free balance", token=token, amount=amount)
        self.ledger.transfer_fungible(token, self.address, receiver, amount)
        self.emit("FungibleTransferred", by=caller, token=token, receiver=receiver, amount=amount)

    @external
    def pay_from_pool_funds(self, caller: str, token: str, receiver: str, amount: int):
        """Payout hook for the linked pool manager (proceeds and platform fees)."""
        if self.pool_manager is None or caller != self.pool_manager.address:
            raise NotAuthorized("only the pool manager can move pool funds", caller=caller)
        if is_hbar(token):
            self.ledger.transfer_hbar(self.address, receiver, amount)
        else:
            self.ledger.transfer_fungible(token, self.address, receiver, amount)

    # ---------- Views ----------
    def total_pools(self) -> int:
        return len(self._pools)

    def get_pool(self, pool_id: int) -> Pool:
        return copy.deepcopy(self._pool(pool_id))

    def get_pool_basic_info(self, pool_id: int) -> dict:
        pool = self._pool(pool_id)
        return {
            "pool_id": pool_id,
            "name": pool.name,
            "ticket_cid": pool.ticket_cid,
            "win_cid": pool.win_cid,
            "win_rate": pool.win_rate_threshold,
            "entry_fee": pool.entry_fee,
            "prize_count": len(pool.prizes),
            "outstanding_entries": pool.outstanding_entries,
            "outstanding_ticket_nfts": pool.outstanding_ticket_nfts,
            "ticket_token": pool.ticket_token,
            "paused": pool.paused,
            "closed": pool.closed,
            "fee_token": pool.fee_token,
        }

    def is_pool_open(self, pool_id: int) -> bool:
        return self._pool(pool_id).is_open

    def get_prize_package(self, pool_id: int, index: int) -> PrizePackage:
        pool = self._pool(pool_id)
        if not 0 <= index < len(pool.prizes):
            raise BadParameters("prize index out of range", index=index)
        return copy.deepcopy(pool.prizes[index])

    def get_users_entries(self, pool_id: int, user: str) -> int:
        self._pool(pool_id)
        return self._user_entries[pool_id].get(user, 0)

    def get_user_entries(self, user: str) -> List[int]:
        return [self._user_entries[p.pool_id].get(user, 0) for p in self._pools]

    def get_pending_prizes(self, user: str) -> List[PendingPrize]:
        return copy.deepcopy(self._pending.get(user, []))

    def get_pending_prizes_count(self, user: str) -> int:
        return len(self._pending.get(user, []))

    def get_pending_prizes_page(self, user: str, offset: int, limit: int) -> List[PendingPrize]:
        if offset < 0 or limit < 0:
            raise BadParameters("offset and limit must be non-negative")
        return copy.deepcopy(self._pending.get(user, [])[offset:offset + limit])

    def get_pending_prize(self, user: str, index: int) -> PendingPrize:
        queue = self._pending.get(user, [])
        if not 0 <= index < len(queue):
            raise InvalidPrizeIndex("prize index out of range", index=index, pending=len(queue))
        return copy.deepcopy(queue[index])

    def get_pending_prize_by_nft(self, token: str, serial: int) -> PendingPrize:
        item = self._prizes_by_nft.get((token, serial))
        if item is None:
            raise InvalidTicketNFT("no prize attached to serial", token=token, serial=serial)
        return copy.deepcopy(item)

    def is_winning_ticket(self, token: str, serial: int) -> bool:
        return (token, serial) in self._prizes_by_nft

    def pool_for_ticket_token(self, token: str) -> Optional[int]:
        return self._ticket_pools.get(token)

    def calculate_boost(self, user: str, pool_id: Optional[int] = None) -> int:
        if pool_id is not None:
            self._pool(pool_id)
        return self.bonuses.calculate_boost(self.ledger, self.delegate_registry, user, self.chain.now())

    def get_burn_for_user(self, user: str) -> int:
        return self.bonuses.burn_for_user(self.ledger, user)

    @property
    def burn_percentage(self) -> int:
        return self.bonuses.burn_percentage

    def get_user_pool_state(self, user: str, pool_id: int) -> dict:
        pool = self._pool(pool_id)
        owned = self.ledger.serials_of(pool.ticket_token, user)
        winning = [s for s in owned if (pool.ticket_token, s) in self._prizes_by_nft]
        return {
            "pool_id": pool_id,
            "entries": self._user_entries[pool_id].get(user, 0),
            "purchased": self._purchased[pool_id].get(user, 0),
            "ticket_serials": [s for s in owned if s not in winning],
            "winning_serials": winning,
            "pending_prizes": sum(1 for p in self._pending.get(user, []) if p.pool_id == pool_id),
        }

    def get_lotto_stats(self) -> dict:
        return {
            "total_pools": len(self._pools),
            "total_rolls": self.total_rolls,
            "total_wins": self.total_wins,
            "total_payout": dict(self.total_payout),
            "paused": self.paused,
        }
