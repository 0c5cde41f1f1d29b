"""
Community pool facade.

Tracks who owns which pool, collects creation fees, freezes the platform's
share of proceeds per pool and lets owners withdraw what their pools earned.
The lottery contract holds the funds; this contract only keeps the books
and asks the lottery to pay out.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from lazylotto.access import AdminControlled
from lazylotto.chain import Chain, external
from lazylotto.errors import (
    BadParameters,
    CannotTransferGlobalPools,
    LottoPoolNotFound,
    NotAuthorized,
    NotEnoughHbar,
)
from lazylotto.ledger import HBAR, ZERO_ADDRESS, is_hbar

logger = logging.getLogger(__name__)

MAX_PLATFORM_PERCENTAGE = 25


class LazyLottoPoolManager(AdminControlled):
    def __init__(
        self,
        chain: Chain,
        admin: str,
        gas_station,
        lazy_token: Optional[str] = None,
        name: str = "LazyLottoPoolManager",
    ):
        super().__init__(chain, name, admin)
        self.gas_station = gas_station
        self.lazy_token = lazy_token
        self.lazy_lotto = None
        self.creation_fee_hbar = 0
        self.creation_fee_lazy = 0
        self.platform_proceeds_percentage = 0
        self._owners: Dict[int, str] = {}
        self._global_pools: List[int] = []
        self._community_pools: List[int] = []
        self._user_pools: Dict[str, List[int]] = {}
        self._platform_pct: Dict[int, int] = {}
        self._proceeds: Dict[int, Dict[str, Tuple[int, int]]] = {}
        self.platform_balance: Dict[str, int] = {}
        self._pool_prize_managers: Dict[int, str] = {}
        self._global_prize_managers: Set[str] = set()
        if lazy_token is not None:
            self.ledger.associate(self.address, lazy_token)

    def _only_lotto(self, caller: str):
        if self.lazy_lotto is None or caller != self.lazy_lotto.address:
            raise NotAuthorized("only the linked lottery can call this", caller=caller)

    def _known(self, pool_id: int):
        if pool_id not in self._platform_pct:
            raise LottoPoolNotFound("pool not registered", pool_id=pool_id)

    def _only_owner_or_admin(self, caller: str, pool_id: int):
        self._known(pool_id)
        if caller != self._owners.get(pool_id) and not self.is_admin(caller):
            raise NotAuthorized("caller is not the pool owner", caller=caller, pool_id=pool_id)

    # ---------- Linking and configuration ----------
    @external
    def set_lazy_lotto(self, caller: str, lotto_address: str):
        self._only_admin(caller)
        if self.lazy_lotto is not None:
            raise BadParameters("lottery already linked", lotto=self.lazy_lotto.address)
        lotto = self.chain.contract_at(lotto_address)
        if lotto is None or not hasattr(lotto, "pay_from_pool_funds"):
            raise BadParameters("address is not a lottery", lotto=lotto_address)
        self.lazy_lotto = lotto

    @external
    def set_creation_fees(self, caller: str, hbar: int, lazy: int):
        self._only_admin(caller)
        if hbar < 0 or lazy < 0:
            raise BadParameters("fees must be non-negative", hbar=hbar, lazy=lazy)
        if lazy and self.lazy_token is None:
            raise BadParameters("no LAZY token configured")
        self.creation_fee_hbar = hbar
        self.creation_fee_lazy = lazy
        self.emit("CreationFeesSet", by=caller, hbar=hbar, lazy=lazy)

    @external
    def set_platform_proceeds_percentage(self, caller: str, percentage: int):
        self._only_admin(caller)
        if not 0 <= percentage <= MAX_PLATFORM_PERCENTAGE:
            raise BadParameters("percentage must be within 0..25", percentage=percentage)
        old, self.platform_proceeds_percentage = self.platform_proceeds_percentage, percentage
        self.emit("PlatformProceedsPercentageSet", by=caller, old=old, new=percentage)

    # ---------- Hooks called by the lottery ----------
    @external
    def record_pool_creation(self, caller: str, pool_id: int, creator: str, is_global: bool):
        self._only_lotto(caller)
        if pool_id in self._platform_pct:
            raise BadParameters("pool already registered", pool_id=pool_id)
        self._platform_pct[pool_id] = self.platform_proceeds_percentage
        self._proceeds[pool_id] = {}
        if is_global:
            self._global_pools.append(pool_id)
        else:
            if self.creation_fee_lazy:
                self.gas_station.pull_fungible(
                    self.address, self.lazy_token, creator, self.creation_fee_lazy, self.address,
                )
            self._owners[pool_id] = creator
            self._community_pools.append(pool_id)
            self._user_pools.setdefault(creator, []).append(pool_id)
        logger.info("registered pool %d, owner=%s global=%s", pool_id, creator, is_global)

    @external
    def record_proceeds(self, caller: str, pool_id: int, token: str, amount: int):
        self._only_lotto(caller)
        self._known(pool_id)
        token = HBAR if is_hbar(token) else token
        total, withdrawn = self._proceeds[pool_id].get(token, (0, 0))
        self._proceeds[pool_id][token] = (total + amount, withdrawn)

    # ---------- Proceeds ----------
    @external
    def withdraw_pool_proceeds(self, caller: str, pool_id: int, token: str = HBAR) -> int:
        self._known(pool_id)
        owner = self._owners.get(pool_id)
        if owner is None or caller != owner:
            raise NotAuthorized("only the pool owner can withdraw proceeds", caller=caller, pool_id=pool_id)
        token = HBAR if is_hbar(token) else token
        total, withdrawn = self._proceeds[pool_id].get(token, (0, 0))
        available = total - withdrawn
        if available <= 0:
            raise BadParameters("no proceeds to withdraw", pool_id=pool_id, token=token)
        cut = available * self._platform_pct[pool_id] // 100
        self._proceeds[pool_id][token] = (total, total)
        self.platform_balance[token] = self.platform_balance.get(token, 0) + cut
        self.lazy_lotto.pay_from_pool_funds(self.address, token, owner, available - cut)
        self.emit(
            "PoolProceedsWithdrawn",
            pool_id=pool_id, owner=owner, token=token, amount=available - cut, platform_cut=cut,
        )
        logger.info("pool %d proceeds withdrawn: %d to owner, %d to platform", pool_id, available - cut, cut)
        return available - cut

    @external
    def withdraw_platform_fees(self, caller: str, token: str = HBAR) -> int:
        self._only_admin(caller)
        token = HBAR if is_hbar(token) else token
        amount = self.platform_balance.get(token, 0)
        if amount <= 0:
            raise BadParameters("no platform fees to withdraw", token=token)
        self.platform_balance[token] = 0
        self.lazy_lotto.pay_from_pool_funds(self.address, token, caller, amount)
        self.emit("PlatformFeesWithdrawn", by=caller, token=token, amount=amount)
        return amount

    def locked_balance(self, token: str) -> int:
        """Funds the lottery holds on behalf of pool owners and the platform."""
        token = HBAR if is_hbar(token) else token
        locked = self.platform_balance.get(token, 0)
        for pool_id in self._community_pools:
            total, withdrawn = self._proceeds[pool_id].get(token, (0, 0))
            locked += total - withdrawn
        return locked

    @external
    def transfer_hbar(self, caller: str, receiver: str, amount: int):
        self._only_admin(caller)
        if amount <= 0 or amount > self.ledger.hbar_balance(self.address):
            raise NotEnoughHbar("amount exceeds collected fees", amount=amount)
        self.ledger.transfer_hbar(self.address, receiver, amount)
        self.emit("HbarTransferred", by=caller, receiver=receiver, amount=amount)

    # ---------- Prize managers and ownership ----------
    @external
    def set_pool_prize_manager(self, caller: str, pool_id: int, manager: str):
        self._only_owner_or_admin(caller, pool_id)
        if not manager or manager == ZERO_ADDRESS:
            self._pool_prize_managers.pop(pool_id, None)
        else:
            self._pool_prize_managers[pool_id] = manager
        self.emit("PoolPrizeManagerSet", pool_id=pool_id, manager=manager or ZERO_ADDRESS)

    @external
    def add_global_prize_manager(self, caller: str, manager: str):
        self._only_admin(caller)
        if not manager or manager == ZERO_ADDRESS:
            raise BadParameters("manager address required")
        self._global_prize_managers.add(manager)
        self.emit("GlobalPrizeManagerAdded", manager=manager)

    @external
    def remove_global_prize_manager(self, caller: str, manager: str):
        self._only_admin(caller)
        if manager not in self._global_prize_managers:
            raise BadParameters("not a global prize manager", manager=manager)
        self._global_prize_managers.discard(manager)
        self.emit("GlobalPrizeManagerRemoved", manager=manager)

    def can_add_prizes(self, pool_id: int, account: str) -> bool:
        if self.is_admin(account) or account in self._global_prize_managers:
            return True
        if not account:
            return False
        return account == self._owners.get(pool_id) or account == self._pool_prize_managers.get(pool_id)

    @external
    def transfer_pool_ownership(self, caller: str, pool_id: int, new_owner: str):
        self._known(pool_id)
        if pool_id in self._global_pools:
            raise CannotTransferGlobalPools("global pools have no owner", pool_id=pool_id)
        self._only_owner_or_admin(caller, pool_id)
        if not new_owner or new_owner == ZERO_ADDRESS:
            raise BadParameters("new owner required")
        old = self._owners[pool_id]
        self._user_pools[old].remove(pool_id)
        self._user_pools.setdefault(new_owner, []).append(pool_id)
        self._owners[pool_id] = new_owner
        self.emit("PoolOwnerChanged", pool_id=pool_id, old_owner=old, new_owner=new_owner)
        logger.info("pool %d ownership %s -> %s", pool_id, old, new_owner)

    # ---------- Views ----------
    def get_pool_owner(self, pool_id: int) -> str:
        return self._owners.get(pool_id, ZERO_ADDRESS)

    def is_global_pool(self, pool_id: int) -> bool:
        return pool_id in self._global_pools

    def get_global_pools(self, offset: int = 0, limit: int = 100) -> List[int]:
        return self._global_pools[offset:offset + limit]

    def get_community_pools(self, offset: int = 0, limit: int = 100) -> List[int]:
        return self._community_pools[offset:offset + limit]

    def get_user_pools(self, owner: str) -> List[int]:
        return list(self._user_pools.get(owner, []))

    def total_global_pools(self) -> int:
        return len(self._global_pools)

    def total_community_pools(self) -> int:
        return len(self._community_pools)

    def get_pool_proceeds(self, pool_id: int, token: str = HBAR) -> Tuple[int, int]:
        self._known(pool_id)
        return self._proceeds[pool_id].get(HBAR if is_hbar(token) else token, (0, 0))

    def get_pool_platform_fee_percentage(self, pool_id: int) -> int:
        self._known(pool_id)
        return self._platform_pct[pool_id]

    def get_creation_fees(self) -> Tuple[int, int]:
        return self.creation_fee_hbar, self.creation_fee_lazy

    def get_platform_balance(self, token: str = HBAR) -> int:
        return self.platform_balance.get(HBAR if is_hbar(token) else token, 0)

    def get_pool_prize_manager(self, pool_id: int) -> str:
        return self._pool_prize_managers.get(pool_id, ZERO_ADDRESS)

    def is_global_prize_manager(self, account: str) -> bool:
        return account in self._global_prize_managers
