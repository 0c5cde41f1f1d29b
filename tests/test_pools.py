import pytest

from lazylotto.deploy import deploy_all
from lazylotto.errors import (
    BadParameters,
    EntriesOutstanding,
    LottoPoolNotFound,
    NotAdmin,
    PoolIsClosed,
    PoolOnPause,
)
from lazylotto.ledger import HBAR, Royalty
from tests.conftest import HALF_WIN_RATE, ONE_HBAR


def test_create_pool_mints_ticket_collection(dep, lotto, make_pool, alice):
    pool_id = make_pool(royalties=[(alice, 500)])
    pool = lotto.get_pool(pool_id)

    assert pool_id == 0
    assert lotto.total_pools() == 1
    assert pool.status == "active"
    collection = dep.ledger.token(pool.ticket_token)
    assert collection.treasury == lotto.address
    assert collection.royalties == [Royalty(alice, 500)]

    event = lotto.events("PoolCreated")[-1]
    assert event["pool_id"] == pool_id
    assert event["fee_token"] == HBAR
    assert event["entry_fee"] == ONE_HBAR
    assert event["ticket_token_id"] == pool.ticket_token


@pytest.mark.parametrize("kwargs", [
    {"win_rate": 100_000_001},
    {"entry_fee": 0},
    {"royalties": [("0x" + "1" * 40, 100)] * 11},
    {"royalties": [("0x" + "1" * 40, 6_000), ("0x" + "2" * 40, 5_000)]},
])
def test_create_pool_rejects_bad_parameters(lotto, make_pool, kwargs):
    with pytest.raises(BadParameters):
        make_pool(**kwargs)
    assert lotto.total_pools() == 0


def test_fee_token_must_be_fungible(make_pool, make_collection):
    with pytest.raises(BadParameters):
        make_pool(fee_token=make_collection("Art"), entry_fee=1)


def test_community_pools_need_a_manager():
    dep = deploy_all(deterministic_prng=True, with_pool_manager=False)
    user = dep.new_account(hbar=10)
    with pytest.raises(NotAdmin):
        dep.lotto.create_pool(user, "Mine", "M", "", [], "t", "w", HALF_WIN_RATE, ONE_HBAR)


def test_pause_and_unpause(lotto, admin, alice, hbar_pool):
    lotto.pause_pool(admin, hbar_pool)
    assert lotto.get_pool(hbar_pool).status == "paused"
    with pytest.raises(PoolOnPause):
        lotto.buy_entry(alice, hbar_pool, 1, value=ONE_HBAR)

    lotto.unpause_pool(admin, hbar_pool)
    lotto.buy_entry(alice, hbar_pool, 1, value=ONE_HBAR)
    assert lotto.get_users_entries(hbar_pool, alice) == 1


def test_pool_lifecycle_is_admin_only(lotto, alice, hbar_pool):
    for op in (lotto.pause_pool, lotto.unpause_pool, lotto.close_pool):
        with pytest.raises(NotAdmin):
            op(alice, hbar_pool)


def test_close_with_outstanding_entries_then_after_roll(lotto, admin, alice, hbar_pool):
    lotto.buy_entry(alice, hbar_pool, 1, value=ONE_HBAR)
    with pytest.raises(EntriesOutstanding):
        lotto.close_pool(admin, hbar_pool)

    lotto.roll_all(alice, hbar_pool)
    lotto.close_pool(admin, hbar_pool)
    assert lotto.get_pool(hbar_pool).status == "closed"
    with pytest.raises(PoolIsClosed):
        lotto.buy_entry(alice, hbar_pool, 1, value=ONE_HBAR)


def test_outstanding_ticket_nfts_block_close(dep, lotto, admin, alice, hbar_pool):
    dep.ledger.associate(alice, lotto.get_pool(hbar_pool).ticket_token)
    lotto.buy_and_redeem_entry(alice, hbar_pool, 1, value=ONE_HBAR)
    with pytest.raises(EntriesOutstanding):
        lotto.close_pool(admin, hbar_pool)


def test_closing_a_paused_pool_clears_pause(lotto, admin, hbar_pool):
    lotto.pause_pool(admin, hbar_pool)
    lotto.close_pool(admin, hbar_pool)
    pool = lotto.get_pool(hbar_pool)
    assert (pool.paused, pool.closed) == (False, True)
    with pytest.raises(PoolIsClosed):
        lotto.pause_pool(admin, hbar_pool)
    with pytest.raises(PoolIsClosed):
        lotto.close_pool(admin, hbar_pool)


def test_prizes_cannot_be_added_to_paused_or_closed_pools(lotto, admin, hbar_pool):
    lotto.pause_pool(admin, hbar_pool)
    with pytest.raises(PoolOnPause):
        lotto.add_prize_package(admin, hbar_pool, HBAR, ONE_HBAR, value=ONE_HBAR)
    lotto.close_pool(admin, hbar_pool)
    with pytest.raises(PoolIsClosed):
        lotto.add_prize_package(admin, hbar_pool, HBAR, ONE_HBAR, value=ONE_HBAR)


def test_update_pool_config(lotto, admin, hbar_pool):
    lotto.update_pool_config(admin, hbar_pool, entry_fee=2 * ONE_HBAR, win_rate_threshold=10)
    info = lotto.get_pool_basic_info(hbar_pool)
    assert (info["entry_fee"], info["win_rate"]) == (2 * ONE_HBAR, 10)
    with pytest.raises(BadParameters):
        lotto.update_pool_config(admin, hbar_pool, win_rate_threshold=-1)


def test_unknown_pool(lotto):
    with pytest.raises(LottoPoolNotFound):
        lotto.get_pool(7)
    with pytest.raises(LottoPoolNotFound):
        lotto.get_users_entries(7, "0x")


def test_basic_info_shape(lotto, hbar_pool):
    info = lotto.get_pool_basic_info(hbar_pool)
    assert info["prize_count"] == 1
    assert info["fee_token"] == HBAR
    assert info["paused"] is False and info["closed"] is False


def test_paused_pool_rejects_every_roll_path(dep, lotto, admin, alice, hbar_pool):
    ticket = lotto.get_pool(hbar_pool).ticket_token
    dep.ledger.associate(alice, ticket)
    dep.ledger.set_approval_for_all(ticket, alice, lotto.address)
    lotto.buy_entry(alice, hbar_pool, 2, value=2 * ONE_HBAR)
    serials = lotto.buy_and_redeem_entry(alice, hbar_pool, 1, value=ONE_HBAR)

    lotto.pause_pool(admin, hbar_pool)
    with pytest.raises(PoolOnPause):
        lotto.roll_all(alice, hbar_pool)
    with pytest.raises(PoolOnPause):
        lotto.roll_batch(alice, hbar_pool, 1)
    with pytest.raises(PoolOnPause):
        lotto.roll_with_nft(alice, hbar_pool, serials)
    assert lotto.get_users_entries(hbar_pool, alice) == 2
    assert dep.ledger.owner_of(ticket, serials[0]) == alice

    lotto.unpause_pool(admin, hbar_pool)
    assert lotto.roll_batch(alice, hbar_pool, 1).wins == 1


def test_ten_royalties_at_full_share_are_accepted(dep, lotto, make_pool):
    recipients = [dep.new_account() for _ in range(10)]
    pool_id = make_pool(royalties=[(r, 1_000) for r in recipients])
    collection = dep.ledger.token(lotto.get_pool(pool_id).ticket_token)
    assert sum(r.bps for r in collection.royalties) == 10_000
    assert len(collection.royalties) == 10


def test_fresh_deployment_creates_and_rolls_a_pool():
    dep = deploy_all(deterministic_prng=True)
    lotto = dep.lotto
    user = dep.new_account(hbar=20)

    pool_id = lotto.create_pool(
        dep.admin, "Daily", "DLY", "", [], "ipfs://ticket", "ipfs://win", HALF_WIN_RATE, ONE_HBAR,
    )
    lotto.add_prize_package(dep.admin, pool_id, HBAR, 2 * ONE_HBAR, value=2 * ONE_HBAR)
    result = lotto.buy_and_roll_entry(user, pool_id, 1, value=ONE_HBAR)

    assert result.wins == 1
    assert lotto.get_pending_prizes_count(user) == 1
    assert lotto.events("PoolCreated")[-1]["name"] == "Daily"
    assert dep.gas_station.events("ContractUserAdded")[0]["contract"] == lotto.address
