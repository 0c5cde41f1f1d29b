import pytest

from lazylotto.errors import (
    AlreadyWinningTicket,
    AssociationFailed,
    ContractPaused,
    InvalidPrizeIndex,
    InvalidTicketNFT,
    NoPendingPrizes,
    NotAuthorized,
    NotWinner,
)
from lazylotto.ledger import HBAR
from tests.conftest import HALF_WIN_RATE, ONE_HBAR


@pytest.fixture
def winner(lotto, alice, hbar_pool):
    """Alice holds one pending 5 HBAR prize from the HBAR pool."""
    lotto.buy_and_roll_entry(alice, hbar_pool, 1, value=ONE_HBAR)
    return alice


def test_hbar_win_is_paid_in_full_to_exempt_holder(dep, lotto, admin, alice, make_pool, make_collection):
    lotto.set_burn_percentage(admin, 50)
    exempt = make_collection("Exempt", holders=[alice])
    lotto.set_burn_exempt_token(admin, exempt, True)
    pool_id = make_pool(win_rate=HALF_WIN_RATE)
    lotto.add_prize_package(admin, pool_id, HBAR, 5 * ONE_HBAR, value=5 * ONE_HBAR)

    result = lotto.buy_and_roll_entry(alice, pool_id, 1, value=ONE_HBAR)

    assert result == (1, 0)
    assert lotto.events("TicketRolled")[-1]["user"] == alice
    won = lotto.events("PrizeWon")[-1]
    assert (won["user"], won["pool_id"], won["prize_index"]) == (alice, pool_id, 0)
    assert lotto.get_pending_prizes_count(alice) == 1

    before = dep.ledger.hbar_balance(alice)
    lotto.claim_prize(alice, 0)
    assert dep.ledger.hbar_balance(alice) == before + 5 * ONE_HBAR
    assert lotto.get_pending_prizes(alice) == []
    assert lotto.get_lotto_stats()["total_payout"] == {HBAR: 5 * ONE_HBAR}


@pytest.fixture
def lazy_prize_pool(dep, lotto, admin, lazy, make_pool):
    pool_id = make_pool()
    dep.send_lazy(admin, 1_000)
    dep.approve_gas_station(admin, lazy, 1_000)
    lotto.add_prize_package(admin, pool_id, lazy, 1_000)
    return pool_id


def test_fungible_payout_burns_share(dep, lotto, admin, alice, lazy, lazy_prize_pool):
    lotto.set_burn_percentage(admin, 2_500)
    supply = dep.ledger.token(lazy).total_supply
    before = dep.ledger.ft_balance(lazy, alice)

    lotto.buy_and_roll_entry(alice, lazy_prize_pool, 1, value=ONE_HBAR)
    lotto.claim_prize(alice, 0)

    assert dep.ledger.ft_balance(lazy, alice) == before + 750
    assert dep.ledger.token(lazy).total_supply == supply - 250
    assert dep.ledger.ft_balance(lazy, lotto.address) == 0


def test_exempt_holder_skips_burn(dep, lotto, admin, alice, lazy, lazy_prize_pool, make_collection):
    lotto.set_burn_percentage(admin, 2_500)
    lotto.set_burn_exempt_token(admin, make_collection("Exempt", holders=[alice]), True)
    before = dep.ledger.ft_balance(lazy, alice)

    lotto.buy_and_roll_entry(alice, lazy_prize_pool, 1, value=ONE_HBAR)
    assert lotto.get_burn_for_user(alice) == 0
    lotto.claim_all_prizes(alice)

    assert dep.ledger.ft_balance(lazy, alice) == before + 1_000


def test_claim_swaps_last_prize_into_place(ledger, lotto, admin, alice, make_pool):
    pool_id = make_pool()
    for amount in (1, 2, 3):
        lotto.add_prize_package(admin, pool_id, HBAR, amount * ONE_HBAR, value=amount * ONE_HBAR)
    lotto.buy_entry(alice, pool_id, 3, value=3 * ONE_HBAR)
    lotto.roll_all(alice, pool_id)

    amounts = [p.prize.amount // ONE_HBAR for p in lotto.get_pending_prizes(alice)]
    assert amounts == [1, 3, 2]

    before = ledger.hbar_balance(alice)
    lotto.claim_prize(alice, 0)
    assert ledger.hbar_balance(alice) == before + ONE_HBAR
    assert [p.prize.amount // ONE_HBAR for p in lotto.get_pending_prizes(alice)] == [2, 3]
    assert [p.prize.amount // ONE_HBAR for p in lotto.get_pending_prizes_page(alice, 1, 5)] == [3]


def test_claim_errors(lotto, winner):
    with pytest.raises(InvalidPrizeIndex):
        lotto.claim_prize(winner, 1)
    lotto.claim_prize(winner, 0)
    with pytest.raises(NoPendingPrizes):
        lotto.claim_prize(winner, 0)
    with pytest.raises(NoPendingPrizes):
        lotto.claim_all_prizes(winner)


def test_claim_all_prizes(ledger, lotto, admin, alice, make_pool):
    pool_id = make_pool()
    lotto.add_multiple_fungible_prizes(admin, pool_id, HBAR, [ONE_HBAR, ONE_HBAR], value=2 * ONE_HBAR)
    lotto.buy_and_roll_entry(alice, pool_id, 2, value=2 * ONE_HBAR)
    before = ledger.hbar_balance(alice)

    assert lotto.claim_all_prizes(alice) == 2
    assert ledger.hbar_balance(alice) == before + 2 * ONE_HBAR
    assert len(lotto.events("PrizeClaimed")) == 2


def test_nft_prize_needs_association(dep, lotto, admin, alice, make_pool, make_collection):
    art = make_collection("Art")
    dep.ledger.mint_nft(art, admin)
    dep.ledger.set_approval_for_all(art, admin, lotto.address)
    pool_id = make_pool()
    lotto.add_prize_package(admin, pool_id, HBAR, 0, [art], [[1]])
    lotto.buy_and_roll_entry(alice, pool_id, 1, value=ONE_HBAR)

    with pytest.raises(AssociationFailed):
        lotto.claim_prize(alice, 0)
    assert lotto.get_pending_prizes_count(alice) == 1

    dep.ledger.associate(alice, art)
    lotto.claim_prize(alice, 0)
    assert dep.ledger.owner_of(art, 1) == alice


def test_redeem_to_bearer_nft_then_claim(ledger, lotto, winner, hbar_pool):
    ticket = lotto.get_pool(hbar_pool).ticket_token
    ledger.associate(winner, ticket)

    [serial] = lotto.redeem_prize_to_nft(winner, [0])

    assert ledger.owner_of(ticket, serial) == winner
    assert ledger.nft(ticket, serial).metadata["winning"] is True
    assert lotto.get_pending_prizes(winner) == []
    bearer = lotto.get_pending_prize_by_nft(ticket, serial)
    assert (bearer.prize.token, bearer.prize.amount, bearer.bearer_serial) == (HBAR, 5 * ONE_HBAR, serial)
    assert lotto.events("PrizeRedeemedToNFT")[-1]["bearer_serial"] == serial

    before = ledger.hbar_balance(winner)
    lotto.claim_prize_from_nft(winner, ticket, [serial])

    assert ledger.owner_of(ticket, serial) is None
    assert ledger.hbar_balance(winner) == before + 5 * ONE_HBAR
    assert lotto.events("PrizeNFTWipedForClaim")[-1]["serial"] == serial
    with pytest.raises(InvalidTicketNFT):
        lotto.get_pending_prize_by_nft(ticket, serial)


def test_bearer_nft_carries_the_claim(ledger, lotto, winner, bob, hbar_pool):
    ticket = lotto.get_pool(hbar_pool).ticket_token
    ledger.associate(winner, ticket)
    ledger.associate(bob, ticket)
    [serial] = lotto.redeem_prize_to_nft(winner, [0])
    ledger.transfer_nft(ticket, serial, winner, bob)

    with pytest.raises(NotAuthorized):
        lotto.claim_prize_from_nft(winner, ticket, [serial])
    before = ledger.hbar_balance(bob)
    lotto.claim_prize_from_nft(bob, ticket, [serial])
    assert ledger.hbar_balance(bob) == before + 5 * ONE_HBAR


def test_winning_serial_cannot_be_rolled(ledger, lotto, winner, hbar_pool):
    ticket = lotto.get_pool(hbar_pool).ticket_token
    ledger.associate(winner, ticket)
    [serial] = lotto.redeem_prize_to_nft(winner, [0])
    ledger.set_approval_for_all(ticket, winner, lotto.address)
    with pytest.raises(AlreadyWinningTicket):
        lotto.roll_with_nft(winner, hbar_pool, [serial])


def test_plain_ticket_is_not_a_winner(ledger, lotto, alice, hbar_pool):
    ticket = lotto.get_pool(hbar_pool).ticket_token
    ledger.associate(alice, ticket)
    [serial] = lotto.buy_and_redeem_entry(alice, hbar_pool, 1, value=ONE_HBAR)
    with pytest.raises(NotWinner):
        lotto.claim_prize_from_nft(alice, ticket, [serial])


def test_redeem_rejects_bad_indices(ledger, lotto, winner, hbar_pool):
    ledger.associate(winner, lotto.get_pool(hbar_pool).ticket_token)
    with pytest.raises(InvalidPrizeIndex):
        lotto.redeem_prize_to_nft(winner, [0, 0])
    with pytest.raises(InvalidPrizeIndex):
        lotto.redeem_prize_to_nft(winner, [3])


def test_claims_blocked_by_global_pause(lotto, admin, winner):
    lotto.pause(admin)
    with pytest.raises(ContractPaused):
        lotto.claim_prize(winner, 0)
    with pytest.raises(ContractPaused):
        lotto.redeem_prize_to_nft(winner, [0])
