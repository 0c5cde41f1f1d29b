"""
Deploys the whole LazyLotto stack onto a fresh chain.

Order follows the production rollout: LAZY token creator and token, gas
station, delegate registry, PRNG, lottery, pool manager, then the links
between them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from lazylotto.chain import Chain
from lazylotto.delegates import LazyDelegateRegistry
from lazylotto.gas_station import LAZYTokenCreator, LazyGasStation
from lazylotto.ledger import TINYBARS_PER_HBAR
from lazylotto.lotto import LazyLotto
from lazylotto.pool_manager import LazyLottoPoolManager
from lazylotto.prng import MockPrng, PrngSystemContract

logger = logging.getLogger(__name__)

LAZY_INITIAL_SUPPLY = 1_000_000_000


@dataclass
class Deployment:
    chain: Chain
    admin: str
    lazy_token: str
    token_creator: LAZYTokenCreator
    gas_station: LazyGasStation
    delegate_registry: LazyDelegateRegistry
    prng: PrngSystemContract
    lotto: LazyLotto
    pool_manager: Optional[LazyLottoPoolManager] = None

    @property
    def ledger(self):
        return self.chain.ledger

    def new_account(self, hbar: int = 0, lazy: int = 0) -> str:
        """Open an account with ``hbar`` whole HBAR and ``lazy`` LAZY units, associated with LAZY."""
        account = self.ledger.create_account(hbar * TINYBARS_PER_HBAR)
        self.ledger.associate(account, self.lazy_token)
        if lazy:
            self.send_lazy(account, lazy)
        return account

    def send_lazy(self, account: str, amount: int):
        self.token_creator.transfer_token(self.admin, account, amount)

    def approve_gas_station(self, account: str, token: str, amount: int):
        self.ledger.approve_fungible(token, account, self.gas_station.address, amount)


def deploy_all(
    admin_hbar: int = 10_000,
    burn_percentage: int = 0,
    lazy_decimals: int = 1,
    lazy_supply: int = LAZY_INITIAL_SUPPLY,
    deterministic_prng: bool = False,
    with_pool_manager: bool = True,
    timestamp: Optional[int] = None,
) -> Deployment:
    chain = Chain(timestamp)
    admin = chain.ledger.create_account(admin_hbar * TINYBARS_PER_HBAR)

    token_creator = LAZYTokenCreator(chain, admin)
    lazy_token = token_creator.create_token(admin, "LAZY", "LAZY", lazy_decimals, lazy_supply)
    chain.ledger.associate(admin, lazy_token)

    gas_station = LazyGasStation(chain, admin)
    registry = LazyDelegateRegistry(chain)
    prng = MockPrng(chain) if deterministic_prng else PrngSystemContract(chain)

    lotto = LazyLotto(
        chain, admin, prng, gas_station,
        delegate_registry=registry, lazy_token=lazy_token, burn_percentage=burn_percentage,
    )
    gas_station.add_contract_user(admin, lotto.address)

    manager = None
    if with_pool_manager:
        manager = LazyLottoPoolManager(chain, admin, gas_station, lazy_token=lazy_token)
        gas_station.add_contract_user(admin, manager.address)
        lotto.set_pool_manager(admin, manager.address)
        manager.set_lazy_lotto(admin, lotto.address)

    logger.info(
        "deployed LazyLotto %s (manager=%s, LAZY=%s)",
        lotto.address, manager.address if manager else None, lazy_token,
    )
    return Deployment(chain, admin, lazy_token, token_creator, gas_station, registry, prng, lotto, manager)
