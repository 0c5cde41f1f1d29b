"""
Transactional execution environment.

``Chain`` owns the ledger, the event log and every deployed contract. Each
externally originated call runs through ``Chain.call``: calls are serialised,
the outermost one snapshots all state, and any exception restores that
snapshot so a failed call leaves no trace (events included).
"""

import copy
import functools
import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, List, Optional

from lazylotto.errors import LottoError, ReentrancyGuard
from lazylotto.events import Event, EventLog
from lazylotto.ledger import Ledger

logger = logging.getLogger(__name__)


class Chain:
    def __init__(self, timestamp: Optional[int] = None):
        self.ledger = Ledger()
        self.events = EventLog()
        self.contracts: Dict[str, "Contract"] = {}
        self._timestamp = timestamp
        self._lock = threading.RLock()
        self._depth = 0

    # ---------- Clock ----------
    def now(self) -> int:
        if self._timestamp is not None:
            return self._timestamp
        return int(time.time())

    def set_time(self, timestamp: Optional[int]):
        """Pin consensus time; ``None`` follows the wall clock again."""
        self._timestamp = timestamp

    def advance(self, seconds: int):
        self._timestamp = self.now() + seconds

    # ---------- Contracts ----------
    def register(self, contract: "Contract"):
        self.contracts[contract.address] = contract

    def contract_at(self, address: str) -> Optional["Contract"]:
        return self.contracts.get(address)

    def emit(self, contract: str, name: str, /, **args) -> Event:
        event = self.events.append(contract, name, args, self.now())
        logger.debug("event %s %s %s", contract, name, args)
        return event

    # ---------- Transactions ----------
    def _snapshot(self):
        memo = {id(self): self}
        for contract in self.contracts.values():
            memo[id(contract)] = contract
        state = {
            address: copy.deepcopy(contract.__dict__, memo)
            for address, contract in self.contracts.items()
        }
        return (
            dict(self.contracts),
            state,
            copy.deepcopy(self.ledger.__dict__),
            len(self.events),
        )

    def _restore(self, snapshot):
        contracts, state, ledger_state, event_count = snapshot
        self.contracts.clear()
        self.contracts.update(contracts)
        for address, saved in state.items():
            target = contracts[address].__dict__
            target.clear()
            target.update(saved)
        self.ledger.__dict__.clear()
        self.ledger.__dict__.update(ledger_state)
        self.events.truncate(event_count)

    @contextmanager
    def view(self):
        """Hold the call lock while reading so a reverting call cannot restore state mid-read."""
        with self._lock:
            yield self

    @contextmanager
    def call(self, label: str = "call"):
        with self._lock:
            snapshot = self._snapshot() if self._depth == 0 else None
            self._depth += 1
            try:
                yield self
            except Exception as exc:
                if snapshot is not None:
                    self._restore(snapshot)
                    if isinstance(exc, LottoError):
                        logger.warning("%s reverted: %s %s", label, exc.code, exc.context)
                    else:
                        logger.exception("%s failed", label)
                raise
            finally:
                self._depth -= 1


class Contract:
    """Base for deployed contracts: an account address plus an event emitter."""

    def __init__(self, chain: Chain, name: str):
        self.chain = chain
        self.name = name
        self.address = chain.ledger.create_account()
        self._entered = False
        chain.register(self)

    @property
    def ledger(self) -> Ledger:
        return self.chain.ledger

    def emit(self, event: str, /, **args) -> Event:
        return self.chain.emit(self.address, event, **args)

    def events(self, name: Optional[str] = None) -> List[Event]:
        return self.chain.events.filter(name=name, contract=self.address)

    def __repr__(self):
        return f"<{type(self).__name__} {self.name} {self.address}>"


def external(fn):
    """Run a state-changing contract method as one atomic, non-reentrant call."""

    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        with self.chain.call(f"{self.name}.{fn.__name__}"):
            if self._entered:
                raise ReentrancyGuard("reentrant call", method=fn.__name__)
            self._entered = True
            try:
                return fn(self, *args, **kwargs)
            finally:
                self._entered = False

    return wrapper
