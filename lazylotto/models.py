from dataclasses import asdict, dataclass, field
from typing import Dict, List, NamedTuple, Optional

from lazylotto.ledger import Royalty, is_hbar

MAX_WIN_RATE = 100_000_000
MAX_BPS = 10_000
MAX_ROYALTIES = 10


@dataclass
class PrizePackage:
    token: str
    amount: int = 0
    nft_tokens: List[str] = field(default_factory=list)
    nft_serials: List[List[int]] = field(default_factory=list)

    @property
    def is_hbar(self) -> bool:
        return is_hbar(self.token)

    def tokens(self) -> List[str]:
        """Distinct token handles the receiver must be associated with."""
        found = []
        if self.amount > 0 and not self.is_hbar:
            found.append(self.token)
        for tok in self.nft_tokens:
            if tok not in found:
                found.append(tok)
        return found

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PendingPrize:
    pool_id: int
    prize: PrizePackage
    as_nft: bool = False
    bearer_serial: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "pool_id": self.pool_id,
            "prize": self.prize.to_dict(),
            "as_nft": self.as_nft,
            "bearer_serial": self.bearer_serial,
        }


@dataclass
class TimeBonus:
    start: int
    end: int
    bps: int

    def active(self, now: int) -> bool:
        return self.start <= now <= self.end


@dataclass
class Pool:
    pool_id: int
    name: str
    symbol: str
    memo: str
    ticket_cid: str
    win_cid: str
    win_rate_threshold: int
    entry_fee: int
    fee_token: str
    ticket_token: str
    royalties: List[Royalty] = field(default_factory=list)
    prizes: List[PrizePackage] = field(default_factory=list)
    paused: bool = False
    closed: bool = False
    outstanding_entries: int = 0
    outstanding_ticket_nfts: int = 0
    max_tickets_per_buy: int = 0
    max_entries_per_user: int = 0
    total_entries_sold: int = 0
    total_rolls: int = 0
    total_wins: int = 0
    created_at: int = 0

    @property
    def status(self) -> str:
        if self.closed:
            return "closed"
        if self.paused:
            return "paused"
        return "active"

    @property
    def is_open(self) -> bool:
        return not self.paused and not self.closed

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["status"] = self.status
        data["prize_count"] = len(self.prizes)
        return data


class RollResult(NamedTuple):
    wins: int
    offset: int
