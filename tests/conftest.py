import pytest

from lazylotto.deploy import deploy_all
from lazylotto.ledger import HBAR, TINYBARS_PER_HBAR

NOW = 1_750_000_000
ONE_HBAR = TINYBARS_PER_HBAR
HALF_WIN_RATE = 50_000_000


@pytest.fixture
def dep():
    return deploy_all(deterministic_prng=True, timestamp=NOW)


@pytest.fixture
def chain(dep):
    return dep.chain


@pytest.fixture
def ledger(dep):
    return dep.ledger


@pytest.fixture
def lotto(dep):
    return dep.lotto


@pytest.fixture
def manager(dep):
    return dep.pool_manager


@pytest.fixture
def admin(dep):
    return dep.admin


@pytest.fixture
def lazy(dep):
    return dep.lazy_token


@pytest.fixture
def alice(dep):
    return dep.new_account(hbar=100, lazy=10_000)


@pytest.fixture
def bob(dep):
    return dep.new_account(hbar=100, lazy=10_000)


@pytest.fixture
def carol(dep):
    return dep.new_account(hbar=100)


@pytest.fixture
def make_pool(dep):
    def _make(caller=None, fee_token=HBAR, entry_fee=ONE_HBAR, win_rate=HALF_WIN_RATE, value=0, name="Pool", **kwargs):
        return dep.lotto.create_pool(
            caller or dep.admin, name, "LOTTO", "memo", kwargs.pop("royalties", []),
            "ipfs://ticket", "ipfs://win", win_rate, entry_fee, fee_token, value=value, **kwargs,
        )
    return _make


@pytest.fixture
def make_collection(dep):
    """NFT collection with the admin as treasury and one serial minted to each holder."""
    def _make(name="Collection", holders=()):
        token = dep.ledger.create_nft_collection(name, name[:3].upper(), "", dep.admin)
        for holder in holders:
            dep.ledger.associate(holder, token)
            dep.ledger.mint_nft(token, holder)
        return token
    return _make


@pytest.fixture
def hbar_pool(dep, make_pool):
    """1 HBAR entry, 50% win rate, one 5 HBAR prize."""
    pool_id = make_pool()
    dep.lotto.add_prize_package(dep.admin, pool_id, HBAR, 5 * ONE_HBAR, value=5 * ONE_HBAR)
    return pool_id
