import logging
from typing import Optional, Set

from lazylotto.chain import Chain, Contract, external
from lazylotto.errors import BadParameters, NotAdmin, NotAuthorized

logger = logging.getLogger(__name__)


class LazyGasStation(Contract):
    """
    Pulls fungible tokens from users on behalf of registered contracts.

    Users grant their allowance to the gas station once; every contract that
    needs to take tokens from them goes through ``pull_fungible``.
    """

    def __init__(self, chain: Chain, owner: str, name: str = "LazyGasStation"):
        super().__init__(chain, name)
        self.owner = owner
        self.contract_users: Set[str] = set()

    @external
    def add_contract_user(self, caller: str, contract: str):
        if caller != self.owner:
            raise NotAdmin("only the gas station owner can add users", caller=caller)
        self.contract_users.add(contract)
        self.emit("ContractUserAdded", contract=contract)

    @external
    def remove_contract_user(self, caller: str, contract: str):
        if caller != self.owner:
            raise NotAdmin("only the gas station owner can remove users", caller=caller)
        self.contract_users.discard(contract)
        self.emit("ContractUserRemoved", contract=contract)

    @external
    def pull_fungible(self, caller: str, token: str, user: str, amount: int, receiver: Optional[str] = None):
        if caller not in self.contract_users:
            raise NotAuthorized("caller is not a registered contract user", caller=caller)
        if amount <= 0:
            raise BadParameters("amount must be positive", amount=amount)
        receiver = receiver or caller
        self.ledger.transfer_fungible_from(token, self.address, user, receiver, amount)
        self.emit("GasStationFungiblePulled", token=token, user=user, receiver=receiver, amount=amount)


class LAZYTokenCreator(Contract):
    """Issues the platform fungible token and acts as its treasury."""

    def __init__(self, chain: Chain, owner: str, name: str = "LAZYTokenCreator"):
        super().__init__(chain, name)
        self.owner = owner
        self.token: Optional[str] = None

    @external
    def create_token(self, caller: str, name: str, symbol: str, decimals: int, initial_supply: int) -> str:
        if caller != self.owner:
            raise NotAdmin("only the owner can create the token", caller=caller)
        if self.token is not None:
            raise BadParameters("token already created", token=self.token)
        self.token = self.ledger.create_fungible(name, symbol, decimals, initial_supply, self.address)
        self.emit("TokenCreated", token=self.token, supply=initial_supply, decimals=decimals)
        logger.info("created %s token %s", symbol, self.token)
        return self.token

    @external
    def transfer_token(self, caller: str, receiver: str, amount: int):
        if caller != self.owner:
            raise NotAdmin("only the owner can send from treasury", caller=caller)
        self.ledger.transfer_fungible(self.token, self.address, receiver, amount)
