import functools
import logging
import threading
from typing import Callable, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import database
from database import create_document
from lazylotto.config import get_settings
from lazylotto.deploy import Deployment, deploy_all
from lazylotto.errors import AUTHORISATION, LIFECYCLE, LOOKUP, LottoError
from lazylotto.indexer import PoolIndexer
from lazylotto.ledger import HBAR, TINYBARS_PER_HBAR
from lazylotto.log import configure_logging
from lazylotto.mirror import MirrorNodeClient, MirrorNodeError, MirrorView
from schemas import Transaction

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="LazyLotto")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Models ----------
class AccountRequest(BaseModel):
    hbar: Optional[int] = Field(None, ge=0, description="Whole HBAR to credit, defaults to INITIAL_HBAR")
    lazy: int = Field(0, ge=0, description="LAZY units sent from the treasury")


class TokenRequest(BaseModel):
    token: str


class AllowanceRequest(BaseModel):
    token: str
    amount: int = Field(..., ge=0)


class CallerRequest(BaseModel):
    caller: str


class CreatePoolRequest(BaseModel):
    caller: str
    name: str
    symbol: str
    memo: str = ""
    royalties: List[dict] = Field(default_factory=list, description="[{recipient, bps}]")
    ticket_cid: str
    win_cid: str
    win_rate: int = Field(..., ge=0, le=100_000_000)
    entry_fee: int = Field(..., gt=0)
    fee_token: str = HBAR
    value: int = Field(0, ge=0, description="Attached tinybar")
    max_tickets_per_buy: int = Field(0, ge=0)
    max_entries_per_user: int = Field(0, ge=0)


class PrizeRequest(BaseModel):
    caller: str
    token: str = HBAR
    amount: int = Field(0, ge=0)
    nft_tokens: List[str] = Field(default_factory=list)
    nft_serials: List[List[int]] = Field(default_factory=list)
    value: int = Field(0, ge=0)


class FungiblePrizesRequest(BaseModel):
    caller: str
    token: str
    amounts: List[int]
    value: int = Field(0, ge=0)


class BuyRequest(BaseModel):
    user: str
    count: int = Field(..., gt=0)
    value: int = Field(0, ge=0)
    mode: str = Field("entry", description="entry | roll | nft")


class GrantRequest(BaseModel):
    caller: str
    recipient: str
    count: int = Field(..., gt=0)


class RollRequest(BaseModel):
    user: str
    count: Optional[int] = Field(None, gt=0, description="Omit to roll every entry")


class SerialsRequest(BaseModel):
    user: str
    serials: List[int]


class CountRequest(BaseModel):
    user: str
    count: int = Field(..., gt=0)


class ClaimRequest(BaseModel):
    index: Optional[int] = Field(None, ge=0, description="Omit to claim every pending prize")


class RedeemRequest(BaseModel):
    indices: List[int]


class ClaimNftRequest(BaseModel):
    token: str
    serials: List[int]


class TimeBonusRequest(BaseModel):
    caller: str
    start: int
    end: int
    bps: int


class NftBonusRequest(BaseModel):
    caller: str
    token: str
    bps: int


class LazyBonusRequest(BaseModel):
    caller: str
    threshold: int
    bps: int


class BurnRequest(BaseModel):
    caller: str
    bps: int


class CreationFeesRequest(BaseModel):
    caller: str
    hbar: int = Field(..., ge=0)
    lazy: int = Field(..., ge=0)


class PercentageRequest(BaseModel):
    caller: str
    percentage: int


class WithdrawRequest(BaseModel):
    caller: str
    token: str = HBAR


class OwnerRequest(BaseModel):
    caller: str
    account: str


class ClockRequest(BaseModel):
    advance: int = Field(0, description="Seconds to move the consensus clock forward")
    timestamp: Optional[int] = Field(None, description="Pin the clock to this timestamp")


# ---------- Helpers ----------
STATUS_BY_KIND = {AUTHORISATION: 403, LIFECYCLE: 409, LOOKUP: 404}

_deployment: Optional[Deployment] = None
_deployment_lock = threading.Lock()


def get_deployment() -> Deployment:
    global _deployment
    if _deployment is None:
        with _deployment_lock:
            if _deployment is None:
                _deployment = deploy_all(burn_percentage=settings.default_burn_percentage, lazy_decimals=settings.lazy_decimals)
    return _deployment


def reset_deployment(deployment: Optional[Deployment] = None) -> Deployment:
    global _deployment
    with _deployment_lock:
        _deployment = deployment
    return get_deployment()


def locked(fn):
    """Run a route while holding the chain lock, so reads never see a call half restored."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        with get_deployment().chain.view():
            return fn(*args, **kwargs)

    return wrapper


def require_non_mainnet(what: str):
    if settings.environment == "mainnet":
        raise HTTPException(status_code=403, detail=f"{what} is disabled on mainnet")


def get_mirror() -> MirrorView:
    return MirrorView(get_deployment().chain, lag=settings.mirror_lag_seconds)


def record(operation: str, caller: str, params: dict, fn: Callable):
    """Run a contract call and keep an audit record when a database is configured."""
    try:
        result = fn()
    except LottoError as e:
        if database.db is not None:
            create_document("transaction", Transaction(
                operation=operation, caller=caller, params=params, status="reverted", error=e.code,
            ))
        raise
    if database.db is not None:
        create_document("transaction", Transaction(operation=operation, caller=caller, params=params))
    return result


def require_account(address: str):
    if not get_deployment().ledger.exists(address):
        raise HTTPException(status_code=404, detail="Account not found")


def require_manager():
    manager = get_deployment().pool_manager
    if manager is None:
        raise HTTPException(status_code=404, detail="Pool manager not deployed")
    return manager


@app.exception_handler(LottoError)
def lotto_error_handler(request: Request, exc: LottoError):
    return JSONResponse(status_code=STATUS_BY_KIND.get(exc.kind, 400), content=exc.to_dict())


# ---------- Routes ----------
@app.get("/")
def read_root():
    return {"message": "LazyLotto Backend Running"}


@app.get("/health")
@locked
def health():
    dep = get_deployment()
    response = {
        "backend": "✅ Running",
        "environment": settings.environment,
        "mirror_node": settings.mirror_url,
        "lotto": dep.lotto.address,
        "pool_manager": dep.pool_manager.address if dep.pool_manager else None,
        "paused": dep.lotto.paused,
        "database": "❌ Not Available",
        "collections": [],
    }
    if database.db is not None:
        response["database"] = "✅ Connected"
        try:
            response["collections"] = database.db.list_collection_names()[:10]
        except Exception as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    return response


# Accounts
@app.post("/api/accounts")
@locked
def open_account(body: AccountRequest):
    dep = get_deployment()
    hbar = settings.initial_hbar if body.hbar is None else body.hbar
    address = dep.new_account(hbar=hbar, lazy=body.lazy)
    logger.info("opened account %s with %d HBAR", address, hbar)
    return account_detail(address)


@app.get("/api/accounts/{address}")
@locked
def account_detail(address: str):
    require_account(address)
    ledger = get_deployment().ledger
    return {
        "address": address,
        "hbar": ledger.hbar_balance(address),
        "hbar_display": f"{ledger.hbar_balance(address) / TINYBARS_PER_HBAR:g} ℏ",
        "tokens": {
            token: ledger.ft_balance(token, address) if ledger.is_fungible(token) else ledger.serials_of(token, address)
            for token in sorted(ledger.associations.get(address, ()))
        },
    }


@app.post("/api/accounts/{address}/associate")
@locked
def associate(address: str, body: TokenRequest):
    require_account(address)
    get_deployment().ledger.associate(address, body.token)
    return account_detail(address)


@app.post("/api/accounts/{address}/allowance")
@locked
def approve_gas_station(address: str, body: AllowanceRequest):
    require_account(address)
    get_deployment().approve_gas_station(address, body.token, body.amount)
    return {"owner": address, "token": body.token, "amount": body.amount}


@app.post("/api/accounts/{address}/nft-approval")
@locked
def approve_lotto_for_nfts(address: str, body: TokenRequest):
    require_account(address)
    dep = get_deployment()
    dep.ledger.set_approval_for_all(body.token, address, dep.lotto.address, True)
    return {"owner": address, "token": body.token, "operator": dep.lotto.address}


# Pools
@app.get("/api/pools")
@locked
def list_pools(status: Optional[str] = None):
    lotto = get_deployment().lotto
    pools = [lotto.get_pool(i).to_dict() for i in range(lotto.total_pools())]
    if status:
        pools = [p for p in pools if p["status"] == status]
    return pools


@app.post("/api/pools")
@locked
def create_pool(body: CreatePoolRequest):
    lotto = get_deployment().lotto
    pool_id = record("LazyLotto.create_pool", body.caller, body.model_dump(), lambda: lotto.create_pool(
        body.caller, body.name, body.symbol, body.memo, body.royalties, body.ticket_cid, body.win_cid,
        body.win_rate, body.entry_fee, body.fee_token, value=body.value,
        max_tickets_per_buy=body.max_tickets_per_buy, max_entries_per_user=body.max_entries_per_user,
    ))
    return get_pool(pool_id)


@app.get("/api/pools/{pool_id}")
@locked
def get_pool(pool_id: int):
    return get_deployment().lotto.get_pool(pool_id).to_dict()


@app.post("/api/pools/{pool_id}/lifecycle/{action}")
@locked
def pool_lifecycle(pool_id: int, action: str, body: CallerRequest):
    lotto = get_deployment().lotto
    actions = {"pause": lotto.pause_pool, "unpause": lotto.unpause_pool, "close": lotto.close_pool}
    if action not in actions:
        raise HTTPException(status_code=404, detail="Unknown pool action")
    record(f"LazyLotto.{action}_pool", body.caller, {"pool_id": pool_id}, lambda: actions[action](body.caller, pool_id))
    return get_pool(pool_id)


@app.post("/api/pools/{pool_id}/prizes")
@locked
def add_prize(pool_id: int, body: PrizeRequest):
    lotto = get_deployment().lotto
    index = record("LazyLotto.add_prize_package", body.caller, body.model_dump(), lambda: lotto.add_prize_package(
        body.caller, pool_id, body.token, body.amount, body.nft_tokens, body.nft_serials, value=body.value,
    ))
    return {"pool_id": pool_id, "index": index, "prize_count": lotto.get_pool_basic_info(pool_id)["prize_count"]}


@app.post("/api/pools/{pool_id}/prizes/fungible")
@locked
def add_fungible_prizes(pool_id: int, body: FungiblePrizesRequest):
    lotto = get_deployment().lotto
    count = record("LazyLotto.add_multiple_fungible_prizes", body.caller, body.model_dump(),
                   lambda: lotto.add_multiple_fungible_prizes(body.caller, pool_id, body.token, body.amounts, value=body.value))
    return {"pool_id": pool_id, "prize_count": count}


@app.get("/api/pools/{pool_id}/prizes/{index}")
@locked
def get_prize(pool_id: int, index: int):
    return get_deployment().lotto.get_prize_package(pool_id, index).to_dict()


@app.delete("/api/pools/{pool_id}/prizes/{index}")
@locked
def remove_prize(pool_id: int, index: int, caller: str):
    lotto = get_deployment().lotto
    package = record("LazyLotto.remove_prizes", caller, {"pool_id": pool_id, "index": index},
                     lambda: lotto.remove_prizes(caller, pool_id, index))
    return package.to_dict()


@app.post("/api/pools/{pool_id}/buy")
@locked
def buy(pool_id: int, body: BuyRequest):
    lotto = get_deployment().lotto
    operations = {
        "entry": lotto.buy_entry,
        "roll": lotto.buy_and_roll_entry,
        "nft": lotto.buy_and_redeem_entry,
    }
    if body.mode not in operations:
        raise HTTPException(status_code=400, detail="mode must be entry, roll or nft")
    result = record(f"LazyLotto.{operations[body.mode].__name__}", body.user, body.model_dump(),
                    lambda: operations[body.mode](body.user, pool_id, body.count, value=body.value))
    if body.mode == "roll":
        return {"wins": result.wins, "offset": result.offset}
    if body.mode == "nft":
        return {"serials": result}
    return {"entries": lotto.get_users_entries(pool_id, body.user)}


@app.post("/api/pools/{pool_id}/grant")
@locked
def grant_entry(pool_id: int, body: GrantRequest):
    lotto = get_deployment().lotto
    record("LazyLotto.admin_grant_entry", body.caller, body.model_dump(),
           lambda: lotto.admin_grant_entry(body.caller, pool_id, body.count, body.recipient))
    return {"entries": lotto.get_users_entries(pool_id, body.recipient)}


@app.post("/api/pools/{pool_id}/roll")
@locked
def roll(pool_id: int, body: RollRequest):
    lotto = get_deployment().lotto
    if body.count is None:
        result = record("LazyLotto.roll_all", body.user, {"pool_id": pool_id}, lambda: lotto.roll_all(body.user, pool_id))
    else:
        result = record("LazyLotto.roll_batch", body.user, body.model_dump(),
                        lambda: lotto.roll_batch(body.user, pool_id, body.count))
    return {"wins": result.wins, "offset": result.offset}


@app.post("/api/pools/{pool_id}/roll-nft")
@locked
def roll_with_nft(pool_id: int, body: SerialsRequest):
    lotto = get_deployment().lotto
    result = record("LazyLotto.roll_with_nft", body.user, body.model_dump(),
                    lambda: lotto.roll_with_nft(body.user, pool_id, body.serials))
    return {"wins": result.wins, "offset": result.offset}


@app.post("/api/pools/{pool_id}/redeem-entries")
@locked
def redeem_entries(pool_id: int, body: CountRequest):
    lotto = get_deployment().lotto
    serials = record("LazyLotto.redeem_entries_to_nft", body.user, body.model_dump(),
                     lambda: lotto.redeem_entries_to_nft(body.user, pool_id, body.count))
    return {"serials": serials}


# Users
@app.get("/api/users/{address}/pools/{pool_id}")
@locked
def user_pool_state(address: str, pool_id: int):
    return get_deployment().lotto.get_user_pool_state(address, pool_id)


@app.get("/api/users/{address}/prizes")
@locked
def pending_prizes(address: str, offset: int = 0, limit: int = 50):
    lotto = get_deployment().lotto
    return {
        "total": lotto.get_pending_prizes_count(address),
        "prizes": [p.to_dict() for p in lotto.get_pending_prizes_page(address, offset, limit)],
    }


@app.post("/api/users/{address}/claim")
@locked
def claim(address: str, body: ClaimRequest):
    lotto = get_deployment().lotto
    if body.index is None:
        claimed = record("LazyLotto.claim_all_prizes", address, {}, lambda: lotto.claim_all_prizes(address))
        return {"claimed": claimed}
    paid = record("LazyLotto.claim_prize", address, body.model_dump(), lambda: lotto.claim_prize(address, body.index))
    return {"claimed": 1, "paid": paid}


@app.post("/api/users/{address}/redeem")
@locked
def redeem_prizes(address: str, body: RedeemRequest):
    lotto = get_deployment().lotto
    serials = record("LazyLotto.redeem_prize_to_nft", address, body.model_dump(),
                     lambda: lotto.redeem_prize_to_nft(address, body.indices))
    return {"serials": serials}


@app.post("/api/users/{address}/claim-nft")
@locked
def claim_from_nft(address: str, body: ClaimNftRequest):
    lotto = get_deployment().lotto
    claimed = record("LazyLotto.claim_prize_from_nft", address, body.model_dump(),
                     lambda: lotto.claim_prize_from_nft(address, body.token, body.serials))
    return {"claimed": claimed}


@app.get("/api/prize-nfts/{token}/{serial}")
@locked
def prize_by_nft(token: str, serial: int):
    return get_deployment().lotto.get_pending_prize_by_nft(token, serial).to_dict()


@app.get("/api/users/{address}/boost")
@locked
def boost(address: str, pool_id: Optional[int] = None):
    lotto = get_deployment().lotto
    return {"boost": lotto.calculate_boost(address, pool_id), "burn_bps": lotto.get_burn_for_user(address)}


@app.get("/api/stats")
@locked
def stats():
    dep = get_deployment()
    body = dep.lotto.get_lotto_stats()
    body["bonuses"] = dep.lotto.bonuses.snapshot()
    if dep.pool_manager is not None:
        body["global_pools"] = dep.pool_manager.total_global_pools()
        body["community_pools"] = dep.pool_manager.total_community_pools()
    return body


# Admin
@app.post("/api/admin/contract/{action}")
@locked
def admin_switch(action: str, body: CallerRequest):
    require_non_mainnet("Admin routes")
    lotto = get_deployment().lotto
    if action not in ("pause", "unpause"):
        raise HTTPException(status_code=404, detail="Unknown admin action")
    record(f"LazyLotto.{action}", body.caller, {}, lambda: getattr(lotto, action)(body.caller))
    return {"paused": lotto.paused}


@app.post("/api/admin/bonuses/time")
@locked
def add_time_bonus(body: TimeBonusRequest):
    require_non_mainnet("Admin routes")
    lotto = get_deployment().lotto
    index = record("LazyLotto.set_time_bonus", body.caller, body.model_dump(),
                   lambda: lotto.set_time_bonus(body.caller, body.start, body.end, body.bps))
    return {"index": index}


@app.post("/api/admin/bonuses/nft")
@locked
def set_nft_bonus(body: NftBonusRequest):
    require_non_mainnet("Admin routes")
    lotto = get_deployment().lotto
    record("LazyLotto.set_nft_bonus", body.caller, body.model_dump(),
           lambda: lotto.set_nft_bonus(body.caller, body.token, body.bps))
    return lotto.bonuses.snapshot()


@app.post("/api/admin/bonuses/lazy")
@locked
def set_lazy_bonus(body: LazyBonusRequest):
    require_non_mainnet("Admin routes")
    lotto = get_deployment().lotto
    record("LazyLotto.set_lazy_balance_bonus", body.caller, body.model_dump(),
           lambda: lotto.set_lazy_balance_bonus(body.caller, body.threshold, body.bps))
    return lotto.bonuses.snapshot()


@app.post("/api/admin/burn")
@locked
def set_burn(body: BurnRequest):
    require_non_mainnet("Admin routes")
    lotto = get_deployment().lotto
    record("LazyLotto.set_burn_percentage", body.caller, body.model_dump(),
           lambda: lotto.set_burn_percentage(body.caller, body.bps))
    return {"burn_percentage": lotto.burn_percentage}


# Pool manager
@app.post("/api/manager/fees")
@locked
def set_creation_fees(body: CreationFeesRequest):
    require_non_mainnet("Admin routes")
    manager = require_manager()
    record("LazyLottoPoolManager.set_creation_fees", body.caller, body.model_dump(),
           lambda: manager.set_creation_fees(body.caller, body.hbar, body.lazy))
    hbar, lazy = manager.get_creation_fees()
    return {"hbar": hbar, "lazy": lazy}


@app.post("/api/manager/platform-percentage")
@locked
def set_platform_percentage(body: PercentageRequest):
    require_non_mainnet("Admin routes")
    manager = require_manager()
    record("LazyLottoPoolManager.set_platform_proceeds_percentage", body.caller, body.model_dump(),
           lambda: manager.set_platform_proceeds_percentage(body.caller, body.percentage))
    return {"percentage": manager.platform_proceeds_percentage}


@app.post("/api/manager/pools/{pool_id}/withdraw")
@locked
def withdraw_proceeds(pool_id: int, body: WithdrawRequest):
    manager = require_manager()
    amount = record("LazyLottoPoolManager.withdraw_pool_proceeds", body.caller, body.model_dump(),
                    lambda: manager.withdraw_pool_proceeds(body.caller, pool_id, body.token))
    return {"paid": amount, "platform_balance": manager.get_platform_balance(body.token)}


@app.post("/api/manager/platform/withdraw")
@locked
def withdraw_platform(body: WithdrawRequest):
    require_non_mainnet("Admin routes")
    manager = require_manager()
    amount = record("LazyLottoPoolManager.withdraw_platform_fees", body.caller, body.model_dump(),
                    lambda: manager.withdraw_platform_fees(body.caller, body.token))
    return {"paid": amount}


@app.post("/api/manager/pools/{pool_id}/owner")
@locked
def transfer_ownership(pool_id: int, body: OwnerRequest):
    manager = require_manager()
    record("LazyLottoPoolManager.transfer_pool_ownership", body.caller, body.model_dump(),
           lambda: manager.transfer_pool_ownership(body.caller, pool_id, body.account))
    return {"pool_id": pool_id, "owner": manager.get_pool_owner(pool_id)}


@app.post("/api/manager/pools/{pool_id}/prize-manager")
@locked
def set_prize_manager(pool_id: int, body: OwnerRequest):
    manager = require_manager()
    record("LazyLottoPoolManager.set_pool_prize_manager", body.caller, body.model_dump(),
           lambda: manager.set_pool_prize_manager(body.caller, pool_id, body.account))
    return {"pool_id": pool_id, "prize_manager": manager.get_pool_prize_manager(pool_id)}


@app.get("/api/manager/pools")
@locked
def manager_pools(owner: Optional[str] = None, offset: int = 0, limit: int = 100):
    manager = require_manager()
    if owner:
        return {"owner": owner, "pools": manager.get_user_pools(owner)}
    return {
        "global": manager.get_global_pools(offset, limit),
        "community": manager.get_community_pools(offset, limit),
    }


# Mirror and indexer
@app.get("/api/events")
@locked
def mirror_events(name: Optional[str] = None, after_seq: int = -1):
    return [e.to_dict() for e in get_mirror().events(name=name, after_seq=after_seq)]


@app.post("/api/indexer/run")
@locked
def run_indexer(active_only: bool = False):
    indexer = PoolIndexer(get_deployment().lotto, get_mirror())
    docs = indexer.run(active_only=active_only)
    return {"indexed": len(docs), "last_seq": indexer.last_seq, "pools": docs}


@app.get("/api/mirror/contracts/{contract_id}/logs")
def mirror_node_logs(contract_id: str, after: Optional[str] = None):
    client = MirrorNodeClient(settings.mirror_url, timeout=settings.mirror_timeout)
    try:
        return client.get_contract_logs(contract_id, after_timestamp=after)
    except MirrorNodeError as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.post("/api/dev/clock")
@locked
def move_clock(body: ClockRequest):
    require_non_mainnet("Clock control")
    chain = get_deployment().chain
    if body.timestamp is not None:
        chain.set_time(body.timestamp)
    if body.advance:
        chain.advance(body.advance)
    return {"now": chain.now()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
