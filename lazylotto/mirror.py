"""
Eventually-consistent reads.

``MirrorView`` is the in-process stand-in for a mirror node: it sees the
chain's event log only once events are ``lag`` seconds old. Callers that
need to observe a state change through it poll with ``wait_for``.

``MirrorNodeClient`` talks to a real Hedera mirror node over its REST API;
the service exposes it for reading contract logs of a live deployment.
"""

import logging
import time
from typing import Any, Callable, Dict, Iterator, List, Optional

import requests

from lazylotto.chain import Chain
from lazylotto.events import Event

logger = logging.getLogger(__name__)


class MirrorNodeError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class MirrorView:
    def __init__(self, chain: Chain, lag: int = 5, sleep: Callable[[float], None] = time.sleep):
        self.chain = chain
        self.lag = lag
        self._sleep = sleep

    def horizon(self) -> int:
        """Latest consensus timestamp visible through the mirror."""
        return self.chain.now() - self.lag

    def events(
        self,
        name: Optional[str] = None,
        contract: Optional[str] = None,
        after_seq: int = -1,
    ) -> List[Event]:
        return self.chain.events.filter(
            name=name, contract=contract, after_seq=after_seq, until_timestamp=self.horizon(),
        )

    def latest(self, name: str, contract: Optional[str] = None) -> Optional[Event]:
        found = self.events(name=name, contract=contract)
        return found[-1] if found else None

    def wait_for(
        self,
        predicate: Callable[["MirrorView"], Any],
        retries: int = 10,
        interval: float = 1.0,
    ):
        """Poll until ``predicate`` returns something truthy, or give up with ``TimeoutError``."""
        for attempt in range(retries + 1):
            result = predicate(self)
            if result:
                return result
            if attempt < retries:
                logger.debug("mirror not caught up (attempt %d/%d), sleeping %.1fs", attempt + 1, retries, interval)
                self._sleep(interval)
        raise TimeoutError(f"mirror did not reach expected state after {retries} retries")

    def wait_for_event(self, name: str, contract: Optional[str] = None, after_seq: int = -1, **kwargs) -> Event:
        def seen(view):
            found = view.events(name=name, contract=contract, after_seq=after_seq)
            return found[0] if found else None

        return self.wait_for(seen, **kwargs)


class MirrorNodeClient:
    def __init__(self, base_url: str, timeout: int = 10, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> dict:
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise MirrorNodeError(f"mirror node unreachable: {e}", url=url) from e
        if resp.status_code != 200:
            raise MirrorNodeError(f"mirror node returned {resp.status_code}", resp.status_code, url)
        return resp.json()

    def _paged(self, path: str, key: str, params: Optional[Dict[str, Any]] = None) -> Iterator[dict]:
        data = self._get(path, params)
        while True:
            for item in data.get(key, []):
                yield item
            next_link = (data.get("links") or {}).get("next")
            if not next_link:
                return
            logger.debug("following mirror pagination link %s", next_link)
            data = self._get(next_link)

    def get_contract_logs(self, contract_id: str, after_timestamp: Optional[str] = None, limit: int = 100) -> List[dict]:
        params = {"order": "asc", "limit": limit}
        if after_timestamp:
            params["timestamp"] = f"gt:{after_timestamp}"
        return list(self._paged(f"/api/v1/contracts/{contract_id}/results/logs", "logs", params))

    def get_account_nfts(self, account_id: str, token_id: Optional[str] = None) -> List[dict]:
        params = {"limit": 100}
        if token_id:
            params["token.id"] = token_id
        return list(self._paged(f"/api/v1/accounts/{account_id}/nfts", "nfts", params))

    def get_token(self, token_id: str) -> dict:
        return self._get(f"/api/v1/tokens/{token_id}")

    def contract_call(self, to: str, data: str, sender: Optional[str] = None, estimate: bool = False) -> str:
        """Run a read-only EVM call and return the hex result."""
        payload = {"block": "latest", "data": data, "estimate": estimate, "to": to}
        if sender:
            payload["from"] = sender
        url = f"{self.base_url}/api/v1/contracts/call"
        try:
            resp = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise MirrorNodeError(f"mirror node unreachable: {e}", url=url) from e
        if resp.status_code != 200:
            raise MirrorNodeError(f"contract call failed with {resp.status_code}", resp.status_code, url)
        return resp.json().get("result", "0x")
