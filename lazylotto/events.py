from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional


@dataclass(frozen=True)
class Event:
    """One emitted contract log."""
    seq: int
    contract: str
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = 0

    def __getitem__(self, key):
        return self.args[key]

    def to_dict(self) -> dict:
        return {
            "seq": self.seq,
            "contract": self.contract,
            "name": self.name,
            "args": dict(self.args),
            "timestamp": self.timestamp,
        }


class EventLog:
    def __init__(self):
        self._events: List[Event] = []

    def __len__(self):
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)

    def append(self, contract: str, name: str, args: Dict[str, Any], timestamp: int) -> Event:
        event = Event(len(self._events), contract, name, args, timestamp)
        self._events.append(event)
        return event

    def truncate(self, length: int):
        del self._events[length:]

    def filter(
        self,
        name: Optional[str] = None,
        contract: Optional[str] = None,
        after_seq: int = -1,
        until_timestamp: Optional[int] = None,
    ) -> List[Event]:
        out = []
        for ev in self._events:
            if ev.seq <= after_seq:
                continue
            if name is not None and ev.name != name:
                continue
            if contract is not None and ev.contract != contract:
                continue
            if until_timestamp is not None and ev.timestamp > until_timestamp:
                continue
            out.append(ev)
        return out

    def last(self, name: Optional[str] = None) -> Optional[Event]:
        for ev in reversed(self._events):
            if name is None or ev.name == name:
                return ev
        return None
