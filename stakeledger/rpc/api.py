from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict
from stakeproto.config.params import PRECISION
from stakeproto.crypto.addresses import is_valid_address, decode_address, address_from_pubkey
from stakeproto.crypto.keys import verify
from stakeproto.types.errors import LedgerError, Unauthorized, ContractPaused
from stakeproto.types.requests import signing_hash, MAX_REQUEST_AGE
from ..core.ledger import StakingLedger
from ..core.rewards import per_stake_pending, to_whole_units
from ..core.token import TokenLedger
import logging
import threading
import time

logger = logging.getLogger(__name__)

app = FastAPI(title="StakeLedger Node RPC")

# Enable CORS for dashboards
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
ledger: Optional[StakingLedger] = None
token: Optional[TokenLedger] = None

MAX_EVENTS_LIMIT = 1000

# Signing hashes of accepted requests, by timestamp
_seen_requests: Dict[bytes, int] = {}
_seen_lock = threading.Lock()


def _remember_request(digest: bytes, timestamp: int, now: int) -> bool:
    """Records an accepted request. False if it was already seen."""
    with _seen_lock:
        for key in [k for k, ts in _seen_requests.items() if now - ts > MAX_REQUEST_AGE]:
            del _seen_requests[key]
        if digest in _seen_requests:
            return False
        _seen_requests[digest] = timestamp
        return True


# --- Request bodies ---
class CallerRequest(BaseModel):
    """
    Body of every mutating call, signed by the caller's key.

    `sender` must be the address of `pub_key`, and `signature` must cover the
    rest of the body (see `stakeproto.types.requests.signing_hash`). A body is
    accepted once, and only within MAX_REQUEST_AGE seconds of `timestamp`.
    """
    sender: str
    pub_key: str
    timestamp: int
    nonce: str
    signature: str

    @model_validator(mode="after")
    def check_signature(self):
        prefix = ledger.config.bech32_prefix_acc if ledger else None
        if not is_valid_address(self.sender, prefix):
            raise ValueError(f"Invalid address: {self.sender}")

        try:
            pub = bytes.fromhex(self.pub_key)
            sig = bytes.fromhex(self.signature)
        except ValueError:
            raise ValueError("pub_key and signature must be hex")

        hrp, _ = decode_address(self.sender)
        if address_from_pubkey(pub, prefix=hrp) != self.sender:
            raise ValueError("Sender does not match public key")

        now = int(time.time())
        if abs(now - self.timestamp) > MAX_REQUEST_AGE:
            raise ValueError("Request expired")

        digest = signing_hash(self.model_dump())
        if not verify(digest, sig, pub):
            raise ValueError("Invalid signature")
        if not _remember_request(digest, self.timestamp, now):
            raise ValueError("Request already processed")
        return self

class AmountRequest(CallerRequest):
    amount: int

class WithdrawRequest(CallerRequest):
    stake_ids: List[int] = Field(default_factory=list)
    total_amount: int

class WithdrawStakeRequest(CallerRequest):
    stake_id: int

class LockDurationRequest(CallerRequest):
    seconds: int

class RewardRateRequest(CallerRequest):
    rate_percent: int


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    logger.debug(f"{request.url.path} rejected: {exc.code}")
    status_code = 400
    if isinstance(exc, Unauthorized):
        status_code = 403
    elif isinstance(exc, ContractPaused):
        status_code = 409
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def _require_ledger() -> StakingLedger:
    if not ledger:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return ledger


def _require_token() -> TokenLedger:
    if not token:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return token


# --- Views ---
@app.get("/status")
async def get_status():
    lg = _require_ledger()
    return {
        "network": lg.config.network_id,
        "params": lg.params.model_dump(),
        "custody_address": lg.custody.address,
        "custody_balance": str(lg.custody.balance()),
        "total_staked": str(lg.total_staked()),
    }

@app.get("/stakes/{address}")
async def get_stakes(address: str):
    lg = _require_ledger()
    stakes = lg.all_stakes(address)
    account = lg.state.get_account(address)
    pending = per_stake_pending(account, lg.params.reward_rate_percent, lg.clock())
    lock = lg.params.lock_duration
    return {
        "address": address,
        "active_count": lg.active_stake_count(address),
        "stakes": [
            {
                "stake_id": i,
                "amount": str(s.amount),
                "deposited_at": s.deposited_at,
                "unlock_time": s.deposited_at + lock,
                "can_withdraw": lg.can_withdraw(address, i),
                "pending_reward": str(to_whole_units(pending[i])),
            }
            for i, s in enumerate(stakes)
        ],
    }

@app.get("/stakes/{address}/{stake_id}")
async def get_stake(address: str, stake_id: int):
    lg = _require_ledger()
    amount, deposited_at = lg.stake_info(address, stake_id)
    return {
        "address": address,
        "stake_id": stake_id,
        "amount": str(amount),
        "deposited_at": deposited_at,
        "unlock_time": lg.unlock_time(address, stake_id),
        "can_withdraw": lg.can_withdraw(address, stake_id),
    }

@app.get("/rewards/{address}")
async def get_rewards(address: str):
    lg = _require_ledger()
    accrued = lg.accrued_rewards(address)
    return {
        "address": address,
        "accrued_scaled": str(accrued),
        "claimable": str(accrued // PRECISION),
        "total_claimed": str(lg.state.get_account(address).total_claimed),
    }

@app.get("/events")
async def get_events(address: Optional[str] = None, limit: int = 100):
    lg = _require_ledger()
    limit = max(1, min(limit, MAX_EVENTS_LIMIT))
    return {"events": [e.to_dict() for e in lg.events(address, limit)]}

@app.get("/token/balance/{address}")
async def get_token_balance(address: str):
    lg = _require_ledger()
    tk = _require_token()
    return {
        "address": address,
        "balance": str(tk.balance_of(address)),
        "allowance": str(tk.allowance(address, lg.custody.address)),
    }


# --- Ledger operations ---
@app.post("/stake")
async def post_stake(req: AmountRequest):
    stake_id = _require_ledger().stake(req.sender, req.amount)
    return {"status": "ok", "stake_id": stake_id}

@app.post("/withdraw")
async def post_withdraw(req: WithdrawRequest):
    paid = _require_ledger().withdraw(req.sender, req.stake_ids, req.total_amount)
    return {"status": "ok", "amount": str(paid)}

@app.post("/withdraw/stake")
async def post_withdraw_stake(req: WithdrawStakeRequest):
    paid = _require_ledger().withdraw_stake(req.sender, req.stake_id)
    return {"status": "ok", "amount": str(paid)}

@app.post("/claim")
async def post_claim(req: CallerRequest):
    paid = _require_ledger().claim_rewards(req.sender)
    return {"status": "ok", "amount": str(paid)}

@app.post("/checkpoint")
async def post_checkpoint(req: CallerRequest):
    unclaimed = _require_ledger().checkpoint(req.sender)
    return {"status": "ok", "unclaimed_scaled": str(unclaimed)}


# --- Administration ---
@app.post("/admin/fund")
async def post_fund(req: AmountRequest):
    _require_ledger().fund_rewards(req.sender, req.amount)
    return {"status": "ok"}

@app.post("/admin/lock_duration")
async def post_lock_duration(req: LockDurationRequest):
    _require_ledger().set_lock_duration(req.sender, req.seconds)
    return {"status": "ok"}

@app.post("/admin/reward_rate")
async def post_reward_rate(req: RewardRateRequest):
    _require_ledger().set_reward_rate(req.sender, req.rate_percent)
    return {"status": "ok"}

@app.post("/admin/pause")
async def post_pause(req: CallerRequest):
    _require_ledger().pause(req.sender)
    return {"status": "ok"}

@app.post("/admin/unpause")
async def post_unpause(req: CallerRequest):
    _require_ledger().unpause(req.sender)
    return {"status": "ok"}


# --- Token ---
@app.post("/token/approve")
async def post_approve(req: AmountRequest):
    lg = _require_ledger()
    tk = _require_token()
    if not tk.approve(req.sender, lg.custody.address, req.amount):
        raise HTTPException(status_code=400, detail=f"Invalid allowance {req.amount}")
    return {"status": "ok"}

@app.post("/faucet")
async def post_faucet(req: CallerRequest):
    lg = _require_ledger()
    amount = lg.config.faucet_amount
    if not amount:
        raise HTTPException(status_code=403, detail=f"Faucet disabled on {lg.config.network_id}")
    _require_token().mint(req.sender, amount)
    return {"status": "ok", "amount": str(amount)}


@app.get("/metrics")
async def get_metrics():
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    try:
        from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
        from stakeledger.observability.metrics import metrics_registry, update_metrics

        if ledger:
            update_metrics(ledger)

        metrics_data = generate_latest(metrics_registry)

        return Response(
            content=metrics_data,
            media_type=CONTENT_TYPE_LATEST
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Metrics error: {str(e)}")

def start_rpc_server(ledger_instance: StakingLedger, token_instance: TokenLedger, host: str = "0.0.0.0", port: int = 8000):
    global ledger, token
    ledger = ledger_instance
    token = token_instance
    import uvicorn
    uvicorn.run(app, host=host, port=port)
