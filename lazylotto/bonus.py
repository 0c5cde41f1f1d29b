"""
Win-rate bonus engine.

Three independent sources add basis points to a boost: active time
windows, held (or delegated) NFT collections and a LAZY balance threshold.
The sum is scaled by 10_000 to the 10^8 fixed point used by win rates and
is applied at roll time, so a window affects every roll made inside it no
matter when the entries were bought.
"""

from typing import Dict, List, Optional

from lazylotto.errors import BadParameters
from lazylotto.ledger import Ledger
from lazylotto.models import MAX_BPS, MAX_WIN_RATE, TimeBonus

BPS_SCALE = 10_000


def effective_win_rate(threshold: int, boost: int) -> int:
    """Apply a boost multiplicatively, saturating at 10^8."""
    boosted = threshold + threshold * boost // MAX_WIN_RATE
    return min(boosted, MAX_WIN_RATE)


def _check_bps(bps: int):
    if not 0 <= bps <= MAX_BPS:
        raise BadParameters("bps out of range", bps=bps)


class BonusEngine:
    def __init__(self, lazy_token: Optional[str] = None, burn_percentage: int = 0):
        _check_bps(burn_percentage)
        self.lazy_token = lazy_token
        self.burn_percentage = burn_percentage
        self.burn_exempt_tokens: List[str] = []
        self.lazy_balance_threshold = 0
        self.lazy_balance_bonus_bps = 0
        self.nft_bonus_bps: Dict[str, int] = {}
        self.time_bonuses: List[TimeBonus] = []

    # ---------- Configuration ----------
    def set_burn_percentage(self, bps: int) -> int:
        _check_bps(bps)
        old, self.burn_percentage = self.burn_percentage, bps
        return old

    def set_burn_exempt_token(self, token: str, exempt: bool):
        if exempt and token not in self.burn_exempt_tokens:
            self.burn_exempt_tokens.append(token)
        elif not exempt and token in self.burn_exempt_tokens:
            self.burn_exempt_tokens.remove(token)

    def set_lazy_balance_bonus(self, threshold: int, bps: int):
        if threshold <= 0:
            raise BadParameters("threshold must be positive", threshold=threshold)
        _check_bps(bps)
        old = (self.lazy_balance_threshold, self.lazy_balance_bonus_bps)
        self.lazy_balance_threshold = threshold
        self.lazy_balance_bonus_bps = bps
        return old

    def set_nft_bonus(self, token: str, bps: int) -> int:
        _check_bps(bps)
        old = self.nft_bonus_bps.get(token, 0)
        self.nft_bonus_bps[token] = bps
        return old

    def remove_nft_bonus(self, token: str) -> int:
        if token not in self.nft_bonus_bps:
            raise BadParameters("no bonus for token", token=token)
        return self.nft_bonus_bps.pop(token)

    def add_time_bonus(self, start: int, end: int, bps: int) -> int:
        if start >= end:
            raise BadParameters("time bonus must start before it ends", start=start, end=end)
        _check_bps(bps)
        self.time_bonuses.append(TimeBonus(start, end, bps))
        return len(self.time_bonuses) - 1

    def remove_time_bonus(self, index: int) -> TimeBonus:
        if not 0 <= index < len(self.time_bonuses):
            raise BadParameters("time bonus index out of range", index=index)
        return self.time_bonuses.pop(index)

    # ---------- Evaluation ----------
    def time_bps(self, now: int) -> int:
        return sum(tb.bps for tb in self.time_bonuses if tb.active(now))

    def nft_bps(self, ledger: Ledger, registry, user: str) -> int:
        total = 0
        for token, bps in self.nft_bonus_bps.items():
            if ledger.holds_any(token, user):
                total += bps
            elif registry is not None and registry.get_serials_delegated_to(user, token):
                total += bps
        return total

    def lazy_bps(self, ledger: Ledger, user: str) -> int:
        if self.lazy_token is None or self.lazy_balance_threshold == 0:
            return 0
        if ledger.ft_balance(self.lazy_token, user) >= self.lazy_balance_threshold:
            return self.lazy_balance_bonus_bps
        return 0

    def calculate_boost(self, ledger: Ledger, registry, user: str, now: int) -> int:
        total = self.time_bps(now) + self.nft_bps(ledger, registry, user) + self.lazy_bps(ledger, user)
        return total * BPS_SCALE

    def burn_for_user(self, ledger: Ledger, user: str) -> int:
        if any(ledger.holds_any(token, user) for token in self.burn_exempt_tokens):
            return 0
        return self.burn_percentage

    def snapshot(self) -> dict:
        return {
            "burn_percentage": self.burn_percentage,
            "burn_exempt_tokens": list(self.burn_exempt_tokens),
            "lazy_token": self.lazy_token,
            "lazy_balance_threshold": self.lazy_balance_threshold,
            "lazy_balance_bonus_bps": self.lazy_balance_bonus_bps,
            "nft_bonus_bps": dict(self.nft_bonus_bps),
            "time_bonuses": [vars(tb).copy() for tb in self.time_bonuses],
        }
