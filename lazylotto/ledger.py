"""
In-memory token ledger.

Holds native HBAR balances, fungible tokens, NFT collections, token
associations and allowances. Amounts are integers in the smallest unit
(tinybar for HBAR). The ledger does no authorisation of its own beyond what
the token service enforces: balances, associations, ownership and
allowances.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from lazylotto.errors import (
    AssociationFailed,
    BadParameters,
    FailedNFTCreate,
    FailedNFTMintAndSend,
    FailedNFTWipe,
    FungibleTokenTransferFailed,
    NFTTransferFailed,
    NotEnoughFungible,
    NotEnoughHbar,
)

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40
HBAR = ZERO_ADDRESS
TINYBARS_PER_HBAR = 100_000_000


def is_hbar(token: Optional[str]) -> bool:
    return token is None or token == ZERO_ADDRESS


@dataclass
class Royalty:
    recipient: str
    bps: int


@dataclass
class FungibleToken:
    address: str
    name: str
    symbol: str
    decimals: int
    treasury: str
    total_supply: int = 0
    kind: str = "FUNGIBLE_COMMON"


@dataclass
class Nft:
    serial: int
    owner: str
    metadata: Dict[str, object] = field(default_factory=dict)


@dataclass
class NftCollection:
    address: str
    name: str
    symbol: str
    memo: str
    treasury: str
    royalties: List[Royalty] = field(default_factory=list)
    next_serial: int = 1
    nfts: Dict[int, Nft] = field(default_factory=dict)
    kind: str = "NON_FUNGIBLE_UNIQUE"

    @property
    def total_supply(self) -> int:
        return len(self.nfts)


class Ledger:
    def __init__(self):
        self._next_id = 1001
        self.hbar: Dict[str, int] = {}
        self.tokens: Dict[str, object] = {}
        self.ft_balances: Dict[str, Dict[str, int]] = {}
        self.ft_allowances: Dict[Tuple[str, str, str], int] = {}
        self.nft_spenders: Dict[Tuple[str, int], str] = {}
        self.operators: Set[Tuple[str, str, str]] = set()
        self.associations: Dict[str, Set[str]] = {}

    # ---------- Accounts ----------
    def new_address(self) -> str:
        address = "0x" + format(self._next_id, "040x")
        self._next_id += 1
        return address

    def create_account(self, hbar: int = 0) -> str:
        address = self.new_address()
        self.hbar[address] = hbar
        self.associations[address] = set()
        return address

    def exists(self, account: str) -> bool:
        return account in self.hbar

    def hbar_balance(self, account: str) -> int:
        return self.hbar.get(account, 0)

    def fund(self, account: str, amount: int):
        """Credit HBAR out of thin air (development networks only)."""
        self.hbar[account] = self.hbar.get(account, 0) + amount

    def transfer_hbar(self, sender: str, receiver: str, amount: int):
        if amount < 0:
            raise BadParameters("negative HBAR amount", amount=amount)
        if amount == 0:
            return
        if self.hbar.get(sender, 0) < amount:
            raise NotEnoughHbar(
                "insufficient HBAR balance",
                account=sender, required=amount, available=self.hbar.get(sender, 0),
            )
        self.hbar[sender] -= amount
        self.hbar[receiver] = self.hbar.get(receiver, 0) + amount

    # ---------- Tokens ----------
    def token(self, address: str):
        try:
            return self.tokens[address]
        except KeyError:
            raise BadParameters("unknown token", token=address) from None

    def is_fungible(self, address: str) -> bool:
        return isinstance(self.tokens.get(address), FungibleToken)

    def is_nft(self, address: str) -> bool:
        return isinstance(self.tokens.get(address), NftCollection)

    def associate(self, account: str, token: str):
        self.token(token)
        self.associations.setdefault(account, set()).add(token)

    def is_associated(self, account: str, token: str) -> bool:
        token_obj = self.tokens.get(token)
        if token_obj is not None and token_obj.treasury == account:
            return True
        return token in self.associations.get(account, ())

    def _require_association(self, account: str, token: str):
        if not self.is_associated(account, token):
            raise AssociationFailed("account not associated with token", account=account, token=token)

    # ---------- Fungible ----------
    def create_fungible(self, name: str, symbol: str, decimals: int, initial_supply: int, treasury: str) -> str:
        if not name or not symbol or decimals < 0 or initial_supply < 0:
            raise BadParameters("invalid fungible token definition")
        address = self.new_address()
        self.tokens[address] = FungibleToken(address, name, symbol, decimals, treasury, initial_supply)
        self.ft_balances[address] = {treasury: initial_supply}
        logger.debug("created fungible %s (%s) supply=%d", symbol, address, initial_supply)
        return address

    def ft_balance(self, token: str, account: str) -> int:
        return self.ft_balances.get(token, {}).get(account, 0)

    def mint_fungible(self, token: str, amount: int):
        ft = self.token(token)
        if not isinstance(ft, FungibleToken) or amount <= 0:
            raise BadParameters("cannot mint", token=token, amount=amount)
        ft.total_supply += amount
        balances = self.ft_balances[token]
        balances[ft.treasury] = balances.get(ft.treasury, 0) + amount

    def transfer_fungible(self, token: str, sender: str, receiver: str, amount: int):
        if not self.is_fungible(token):
            raise FungibleTokenTransferFailed("not a fungible token", token=token)
        if amount < 0:
            raise BadParameters("negative token amount", amount=amount)
        if amount == 0:
            return
        self._require_association(receiver, token)
        balances = self.ft_balances[token]
        if balances.get(sender, 0) < amount:
            raise NotEnoughFungible(
                "insufficient token balance",
                token=token, account=sender, required=amount, available=balances.get(sender, 0),
            )
        balances[sender] -= amount
        balances[receiver] = balances.get(receiver, 0) + amount

    def approve_fungible(self, token: str, owner: str, spender: str, amount: int):
        if not self.is_fungible(token) or amount < 0:
            raise BadParameters("invalid allowance", token=token, amount=amount)
        self.ft_allowances[(token, owner, spender)] = amount

    def allowance(self, token: str, owner: str, spender: str) -> int:
        return self.ft_allowances.get((token, owner, spender), 0)

    def transfer_fungible_from(self, token: str, spender: str, owner: str, receiver: str, amount: int):
        allowed = self.allowance(token, owner, spender)
        if allowed < amount:
            raise NotEnoughFungible(
                "insufficient allowance",
                token=token, owner=owner, spender=spender, required=amount, allowance=allowed,
            )
        self.transfer_fungible(token, owner, receiver, amount)
        self.ft_allowances[(token, owner, spender)] = allowed - amount

    def burn_fungible(self, token: str, holder: str, amount: int):
        ft = self.token(token)
        if amount == 0:
            return
        balances = self.ft_balances[token]
        if balances.get(holder, 0) < amount:
            raise NotEnoughFungible("cannot burn more than held", token=token, account=holder)
        balances[holder] -= amount
        ft.total_supply -= amount

    # ---------- Non-fungible ----------
    def create_nft_collection(
        self,
        name: str,
        symbol: str,
        memo: str,
        treasury: str,
        royalties: Optional[List[Royalty]] = None,
    ) -> str:
        if not name or not symbol:
            raise FailedNFTCreate("collection needs a name and symbol", name=name, symbol=symbol)
        address = self.new_address()
        self.tokens[address] = NftCollection(address, name, symbol, memo, treasury, list(royalties or []))
        logger.debug("created collection %s (%s)", symbol, address)
        return address

    def _collection(self, token: str) -> NftCollection:
        coll = self.tokens.get(token)
        if not isinstance(coll, NftCollection):
            raise BadParameters("not an NFT collection", token=token)
        return coll

    def mint_nft(self, token: str, receiver: str, metadata: Optional[Dict[str, object]] = None) -> int:
        coll = self._collection(token)
        if not self.is_associated(receiver, token):
            raise FailedNFTMintAndSend("receiver not associated", token=token, receiver=receiver)
        serial = coll.next_serial
        coll.next_serial += 1
        coll.nfts[serial] = Nft(serial, receiver, dict(metadata or {}))
        return serial

    def nft(self, token: str, serial: int) -> Optional[Nft]:
        coll = self.tokens.get(token)
        if not isinstance(coll, NftCollection):
            return None
        return coll.nfts.get(serial)

    def owner_of(self, token: str, serial: int) -> Optional[str]:
        item = self.nft(token, serial)
        return item.owner if item else None

    def serials_of(self, token: str, owner: str) -> List[int]:
        coll = self.tokens.get(token)
        if not isinstance(coll, NftCollection):
            return []
        return sorted(s for s, n in coll.nfts.items() if n.owner == owner)

    def holds_any(self, token: str, owner: str) -> bool:
        coll = self.tokens.get(token)
        if not isinstance(coll, NftCollection):
            return False
        return any(n.owner == owner for n in coll.nfts.values())

    def approve_nft(self, token: str, owner: str, spender: str, serial: int):
        if self.owner_of(token, serial) != owner:
            raise NFTTransferFailed("only the owner can approve", token=token, serial=serial)
        self.nft_spenders[(token, serial)] = spender

    def set_approval_for_all(self, token: str, owner: str, operator: str, approved: bool = True):
        self._collection(token)
        key = (token, owner, operator)
        if approved:
            self.operators.add(key)
        else:
            self.operators.discard(key)

    def is_approved_for_all(self, token: str, owner: str, operator: str) -> bool:
        return (token, owner, operator) in self.operators

    def is_approved(self, token: str, owner: str, spender: str, serial: int) -> bool:
        return (
            self.nft_spenders.get((token, serial)) == spender
            or self.is_approved_for_all(token, owner, spender)
        )

    def transfer_nft(self, token: str, serial: int, sender: str, receiver: str):
        item = self.nft(token, serial)
        if item is None or item.owner != sender:
            raise NFTTransferFailed("sender does not own serial", token=token, serial=serial, sender=sender)
        self._require_association(receiver, token)
        item.owner = receiver
        self.nft_spenders.pop((token, serial), None)

    def transfer_nft_from(self, token: str, spender: str, owner: str, serial: int, receiver: str):
        if not self.is_approved(token, owner, spender, serial):
            raise NFTTransferFailed("spender not approved", token=token, serial=serial, spender=spender)
        self.transfer_nft(token, serial, owner, receiver)

    def wipe_nft(self, token: str, serial: int, account: str):
        coll = self._collection(token)
        item = coll.nfts.get(serial)
        if item is None or item.owner != account:
            raise FailedNFTWipe("serial not held by account", token=token, serial=serial, account=account)
        del coll.nfts[serial]
        self.nft_spenders.pop((token, serial), None)
