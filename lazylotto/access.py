import logging
from typing import List

from lazylotto.chain import Chain, Contract, external
from lazylotto.errors import BadParameters, ContractPaused, LastAdminError, NotAdmin
from lazylotto.ledger import ZERO_ADDRESS

logger = logging.getLogger(__name__)


class AdminControlled(Contract):
    """Admin set that can never become empty, plus a global pause switch."""

    def __init__(self, chain: Chain, name: str, admin: str):
        super().__init__(chain, name)
        if not admin or admin == ZERO_ADDRESS:
            raise BadParameters("initial admin required")
        self._admins: List[str] = [admin]
        self.paused = False
        self.emit("AdminAdded", admin=admin)

    def is_admin(self, account: str) -> bool:
        return account in self._admins

    def get_admins(self) -> List[str]:
        return list(self._admins)

    def _only_admin(self, caller: str):
        if caller not in self._admins:
            raise NotAdmin("caller is not an admin", caller=caller)

    def _when_not_paused(self):
        if self.paused:
            raise ContractPaused("contract is paused")

    @external
    def add_admin(self, caller: str, admin: str):
        self._only_admin(caller)
        if not admin or admin == ZERO_ADDRESS or admin in self._admins:
            raise BadParameters("invalid or existing admin", admin=admin)
        self._admins.append(admin)
        self.emit("AdminAdded", admin=admin)
        logger.info("%s: admin %s added by %s", self.name, admin, caller)

    @external
    def remove_admin(self, caller: str, admin: str):
        self._only_admin(caller)
        if admin not in self._admins:
            raise BadParameters("not an admin", admin=admin)
        if len(self._admins) == 1:
            raise LastAdminError("cannot remove the last admin", admin=admin)
        self._admins.remove(admin)
        self.emit("AdminRemoved", admin=admin)
        logger.info("%s: admin %s removed by %s", self.name, admin, caller)

    @external
    def renounce_admin(self, caller: str):
        self._only_admin(caller)
        if len(self._admins) == 1:
            raise LastAdminError("cannot renounce the last admin", admin=caller)
        self._admins.remove(caller)
        self.emit("AdminRemoved", admin=caller)

    @external
    def pause(self, caller: str):
        self._only_admin(caller)
        self.paused = True
        self.emit("Paused", by=caller)

    @external
    def unpause(self, caller: str):
        self._only_admin(caller)
        self.paused = False
        self.emit("Unpaused", by=caller)
