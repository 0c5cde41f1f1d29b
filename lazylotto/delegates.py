import logging
from typing import Dict, List, Tuple

from lazylotto.chain import Chain, Contract, external
from lazylotto.errors import BadParameters, NotAuthorized
from lazylotto.ledger import ZERO_ADDRESS

logger = logging.getLogger(__name__)


class LazyDelegateRegistry(Contract):
    """
    Records NFT delegations: an owner lends the benefits of a serial to a
    delegate without moving it. A delegation is only valid while the
    delegating owner still holds the serial.
    """

    def __init__(self, chain: Chain, name: str = "LazyDelegateRegistry"):
        super().__init__(chain, name)
        self._delegations: Dict[Tuple[str, int], Tuple[str, str]] = {}

    @external
    def delegate_nft(self, caller: str, delegate: str, token: str, serials: List[int]):
        if delegate == ZERO_ADDRESS or not serials:
            raise BadParameters("delegate and serials required")
        for serial in serials:
            if self.ledger.owner_of(token, serial) != caller:
                raise NotAuthorized("only the owner can delegate", token=token, serial=serial)
            self._delegations[(token, serial)] = (caller, delegate)
            self.emit("TokenDelegated", owner=caller, delegate=delegate, token=token, serial=serial)
        logger.info("%s delegated %d serial(s) of %s to %s", caller, len(serials), token, delegate)

    @external
    def revoke_delegate_nft(self, caller: str, token: str, serials: List[int]):
        for serial in serials:
            record = self._delegations.get((token, serial))
            if record is None or record[0] != caller:
                raise NotAuthorized("no delegation to revoke", token=token, serial=serial)
            del self._delegations[(token, serial)]
            self.emit("TokenDelegationRevoked", owner=caller, delegate=record[1], token=token, serial=serial)

    def _valid(self, token: str, serial: int) -> bool:
        record = self._delegations.get((token, serial))
        return record is not None and self.ledger.owner_of(token, serial) == record[0]

    def is_delegate(self, owner: str, delegate: str, token: str, serial: int) -> bool:
        return self._delegations.get((token, serial)) == (owner, delegate) and self._valid(token, serial)

    def get_delegate(self, token: str, serial: int):
        if not self._valid(token, serial):
            return None
        return self._delegations[(token, serial)][1]

    def get_serials_delegated_to(self, delegate: str, token: str) -> List[int]:
        return sorted(
            serial for (tok, serial), (_, dlg) in self._delegations.items()
            if tok == token and dlg == delegate and self._valid(tok, serial)
        )

    def get_nfts_delegated_to(self, delegate: str) -> List[str]:
        tokens = []
        for (tok, serial), (_, dlg) in self._delegations.items():
            if dlg == delegate and tok not in tokens and self._valid(tok, serial):
                tokens.append(tok)
        return tokens

    def total_delegations(self) -> int:
        return sum(1 for key in self._delegations if self._valid(*key))
