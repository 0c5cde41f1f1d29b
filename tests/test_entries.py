import pytest

from lazylotto.errors import (
    AssociationFailed,
    BadParameters,
    IncorrectFeeToken,
    InsufficientPayment,
    InvalidTicketNFT,
    MaxEntriesReached,
    NoPrizesAvailable,
    NotAdmin,
    NotAuthorized,
    NotEnoughFungible,
    NotEnoughTicketsToRoll,
    NoTicketsToRoll,
)
from lazylotto.ledger import HBAR
from lazylotto.models import MAX_WIN_RATE
from tests.conftest import ONE_HBAR


def test_buy_entry_refunds_overpayment(ledger, lotto, alice, hbar_pool):
    before = ledger.hbar_balance(alice)
    lotto.buy_entry(alice, hbar_pool, 2, value=5 * ONE_HBAR)

    assert ledger.hbar_balance(alice) == before - 2 * ONE_HBAR
    assert lotto.get_users_entries(hbar_pool, alice) == 2
    assert lotto.get_pool(hbar_pool).outstanding_entries == 2
    event = lotto.events("PoolEntered")[-1]
    assert (event["user"], event["pool_id"], event["count"], event["ticket_ids"]) == (alice, hbar_pool, 2, [])


def test_underpayment_reverts(ledger, lotto, alice, hbar_pool):
    before = ledger.hbar_balance(alice)
    with pytest.raises(InsufficientPayment):
        lotto.buy_entry(alice, hbar_pool, 2, value=ONE_HBAR)
    assert ledger.hbar_balance(alice) == before
    assert lotto.get_users_entries(hbar_pool, alice) == 0


def test_fungible_entry_loss_path(dep, lotto, admin, alice, lazy, make_pool):
    pool_id = make_pool(fee_token=lazy, entry_fee=100)
    lotto.add_prize_package(admin, pool_id, HBAR, ONE_HBAR, value=ONE_HBAR)
    dep.prng.set_values(0, MAX_WIN_RATE - 1)
    dep.approve_gas_station(alice, lazy, 200)
    before = dep.ledger.ft_balance(lazy, alice)

    lotto.buy_entry(alice, pool_id, 2)
    result = lotto.roll_all(alice, pool_id)

    assert result.wins == 0
    assert lotto.get_pending_prizes_count(alice) == 0
    assert lotto.get_users_entries(pool_id, alice) == 0
    assert dep.ledger.ft_balance(lazy, alice) == before - 200
    assert dep.ledger.ft_balance(lazy, lotto.address) == 200


def test_fungible_pool_rejects_hbar_and_missing_allowance(dep, lotto, alice, lazy, make_pool):
    pool_id = make_pool(fee_token=lazy, entry_fee=100)
    dep.approve_gas_station(alice, lazy, 100)
    with pytest.raises(IncorrectFeeToken):
        lotto.buy_entry(alice, pool_id, 1, value=ONE_HBAR)
    with pytest.raises(NotEnoughFungible):
        lotto.buy_entry(alice, pool_id, 2)


def test_max_tickets_per_buy(lotto, alice, make_pool):
    pool_id = make_pool(max_tickets_per_buy=3)
    with pytest.raises(BadParameters):
        lotto.buy_entry(alice, pool_id, 4, value=4 * ONE_HBAR)
    lotto.buy_entry(alice, pool_id, 3, value=3 * ONE_HBAR)


def test_max_entries_per_user_allows_equality(lotto, alice, bob, make_pool):
    pool_id = make_pool(max_entries_per_user=3)
    lotto.buy_entry(alice, pool_id, 2, value=2 * ONE_HBAR)
    lotto.buy_entry(alice, pool_id, 1, value=ONE_HBAR)
    with pytest.raises(MaxEntriesReached):
        lotto.buy_entry(alice, pool_id, 1, value=ONE_HBAR)
    lotto.buy_entry(bob, pool_id, 3, value=3 * ONE_HBAR)


def test_zero_count_rejected(lotto, alice, hbar_pool):
    with pytest.raises(BadParameters):
        lotto.buy_entry(alice, hbar_pool, 0)


def test_roll_all_consumes_one_draw_per_entry(dep, lotto, alice, hbar_pool):
    lotto.buy_entry(alice, hbar_pool, 3, value=3 * ONE_HBAR)
    draws = dep.prng.draws

    result = lotto.roll_all(alice, hbar_pool)

    assert dep.prng.draws - draws == 3
    assert lotto.get_users_entries(hbar_pool, alice) == 0
    # a single prize: the first roll takes it, the rest roll against an empty pool
    assert result.wins == 1
    assert len(lotto.events("TicketRolled")) == 3
    assert lotto.events("TicketsRolled")[-1]["offset"] == 0
    assert lotto.get_pool(hbar_pool).total_rolls == 3


def test_roll_batch_bounds(lotto, alice, hbar_pool):
    with pytest.raises(NoTicketsToRoll):
        lotto.roll_batch(alice, hbar_pool, 1)
    lotto.buy_entry(alice, hbar_pool, 2, value=2 * ONE_HBAR)
    with pytest.raises(NotEnoughTicketsToRoll):
        lotto.roll_batch(alice, hbar_pool, 3)
    with pytest.raises(BadParameters):
        lotto.roll_batch(alice, hbar_pool, 0)

    lotto.roll_batch(alice, hbar_pool, 1)
    assert lotto.get_users_entries(hbar_pool, alice) == 1


def test_roll_without_prizes_keeps_entries(lotto, alice, make_pool):
    pool_id = make_pool()
    lotto.buy_entry(alice, pool_id, 1, value=ONE_HBAR)
    with pytest.raises(NoPrizesAvailable):
        lotto.roll_all(alice, pool_id)
    assert lotto.get_users_entries(pool_id, alice) == 1


def test_zero_win_rate_always_loses(lotto, admin, alice, make_pool):
    pool_id = make_pool(win_rate=0)
    lotto.add_prize_package(admin, pool_id, HBAR, ONE_HBAR, value=ONE_HBAR)
    result = lotto.buy_and_roll_entry(alice, pool_id, 2, value=2 * ONE_HBAR)
    assert result.wins == 0


def test_full_win_rate_always_wins(dep, lotto, admin, alice, make_pool):
    pool_id = make_pool(win_rate=MAX_WIN_RATE)
    lotto.add_prize_package(admin, pool_id, HBAR, ONE_HBAR, value=ONE_HBAR)
    dep.prng.set_values(0, MAX_WIN_RATE - 1)
    assert lotto.buy_and_roll_entry(alice, pool_id, 1, value=ONE_HBAR).wins == 1


def test_buy_and_redeem_mints_ticket_nfts(dep, lotto, alice, hbar_pool):
    ticket = lotto.get_pool(hbar_pool).ticket_token
    with pytest.raises(AssociationFailed):
        lotto.buy_and_redeem_entry(alice, hbar_pool, 2, value=2 * ONE_HBAR)

    dep.ledger.associate(alice, ticket)
    serials = lotto.buy_and_redeem_entry(alice, hbar_pool, 2, value=2 * ONE_HBAR)

    assert serials == [1, 2]
    assert all(dep.ledger.owner_of(ticket, s) == alice for s in serials)
    pool = lotto.get_pool(hbar_pool)
    assert (pool.outstanding_entries, pool.outstanding_ticket_nfts) == (0, 2)
    assert lotto.events("PoolEntered")[-1]["ticket_ids"] == [1, 2]


def test_roll_with_nft_wipes_tickets(dep, lotto, alice, bob, hbar_pool):
    ticket = lotto.get_pool(hbar_pool).ticket_token
    dep.ledger.associate(alice, ticket)
    serials = lotto.buy_and_redeem_entry(alice, hbar_pool, 2, value=2 * ONE_HBAR)

    with pytest.raises(NotAuthorized):
        lotto.roll_with_nft(alice, hbar_pool, serials)
    dep.ledger.set_approval_for_all(ticket, alice, lotto.address)
    with pytest.raises(InvalidTicketNFT):
        lotto.roll_with_nft(alice, hbar_pool, [serials[0], 99])

    result = lotto.roll_with_nft(alice, hbar_pool, serials)

    assert result.wins == 1
    assert all(dep.ledger.owner_of(ticket, s) is None for s in serials)
    assert lotto.get_pool(hbar_pool).outstanding_ticket_nfts == 0


def test_redeem_entries_to_nft_moves_accounting(dep, lotto, alice, hbar_pool):
    dep.ledger.associate(alice, lotto.get_pool(hbar_pool).ticket_token)
    lotto.buy_entry(alice, hbar_pool, 3, value=3 * ONE_HBAR)
    with pytest.raises(NotEnoughTicketsToRoll):
        lotto.redeem_entries_to_nft(alice, hbar_pool, 4)

    serials = lotto.redeem_entries_to_nft(alice, hbar_pool, 2)

    pool = lotto.get_pool(hbar_pool)
    assert len(serials) == 2
    assert (pool.outstanding_entries, pool.outstanding_ticket_nfts) == (1, 2)
    assert lotto.get_users_entries(hbar_pool, alice) == 1


def test_admin_grant_entry(ledger, lotto, admin, alice, hbar_pool):
    with pytest.raises(NotAdmin):
        lotto.admin_grant_entry(alice, hbar_pool, 3, alice)
    before = ledger.hbar_balance(alice)
    lotto.admin_grant_entry(admin, hbar_pool, 3, alice)
    assert lotto.get_users_entries(hbar_pool, alice) == 3
    assert ledger.hbar_balance(alice) == before
    assert lotto.events("EntryGranted")[-1]["count"] == 3


def test_user_pool_state(dep, lotto, alice, hbar_pool):
    dep.ledger.associate(alice, lotto.get_pool(hbar_pool).ticket_token)
    lotto.buy_entry(alice, hbar_pool, 2, value=2 * ONE_HBAR)
    lotto.redeem_entries_to_nft(alice, hbar_pool, 1)
    state = lotto.get_user_pool_state(alice, hbar_pool)
    assert state["entries"] == 1
    assert state["ticket_serials"] == [1]
    assert state["purchased"] == 2
    assert lotto.get_user_entries(alice) == [1]
