"""
Aggregator Service (FastAPI)

REST endpoints around one YieldAggregator:
- GET  /health, /status, /pools, /pools/{address}, /best_pool
- GET  /preview, /projected_yield, /reconcile, /invariants, /events, /report, /metrics
- POST /allocate, /withdraw              (vault)
- POST /rebalance, /refresh_yields       (anyone)
- POST /pools, DELETE /pools/{address}   (admin)
- POST /limits, /policy, /cooldown, /pause, /unpause, /emergency_unwind (admin)

The caller identity travels in the X-Caller header and stands in for the
transaction sender. Engine errors map onto HTTP status codes.
"""

import os
import logging
from pathlib import Path
from typing import Dict, List, Literal, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Header, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
import uvicorn

from aggregator import (
    AggregatorError, EngineNotPaused, EnginePaused, InsufficientAllocation, NoActivePools,
    PoolAlreadyExists, PoolNotFound, ReentrancyError, RegistryFull, Unauthorized,
    ValidationError, VenueCallFailed, YieldAggregator
)
from aggregator.report import generate_allocation_report
from monitoring import AuditLogger, MetricsCollector
from utils.config import CONFIG
from venues import POOL_TYPES, HttpYieldOracle, MockOracle, MockPool, SimpleVault, TokenLedger

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================

class AmountRequest(BaseModel):
    amount: int = Field(gt=0)


class AddPoolRequest(BaseModel):
    """New mock pool for the reference world."""
    address: str
    pool_type: Literal["AMM", "LENDING", "STAKING"] = "AMM"
    initial_yield: Optional[int] = Field(default=None, ge=0)
    name: Optional[str] = None


class LimitsRequest(BaseModel):
    max_pool_allocation_bps: int
    min_allocation: int


class PolicyRequest(BaseModel):
    rebalance_threshold_bps: int
    min_slippage_bps: Optional[int] = None
    max_slippage_bps: Optional[int] = None


class CooldownRequest(BaseModel):
    seconds: int


class PoolInfoResponse(BaseModel):
    address: str
    name: str
    pool_type: str
    reported_yield: int
    allocation: int
    last_updated: int
    active: bool


class DistributionResponse(BaseModel):
    amount: int
    path: str
    cap: int
    placements: Dict[str, int]
    escape_amount: int


class RebalanceResponse(BaseModel):
    executed: bool
    skipped_reason: Optional[str]
    best_pool: Optional[str]
    best_yield: int
    total_moved: int
    moves: List[dict]


class ReconcileResponse(BaseModel):
    total_pools: int
    total_allocated: int
    idle_balance: int
    is_reconciled: bool
    discrepancies: list


# ============================================================================
# Application State
# ============================================================================

ADMIN = os.environ.get("AGG_ADMIN", "admin")
VAULT = os.environ.get("AGG_VAULT", "vault")
SEED_BALANCE = int(os.environ.get("AGG_SEED_BALANCE", "1000000"))


class AppState:
    """
    Reference world: one token, an oracle, the three standard pool
    types, a vault and the engine, with audit and metrics attached.
    """

    def __init__(self, log_dir: Optional[Path] = None, oracle_url: Optional[str] = None):
        oracle_url = CONFIG.ORACLE_URL if oracle_url is None else oracle_url

        self.token = TokenLedger()
        self.pools = {
            f"pool-{kind.lower()}": MockPool(f"pool-{kind.lower()}", self.token, pool_type=kind)
            for kind in POOL_TYPES
        }
        if oracle_url:
            self.oracle = HttpYieldOracle(oracle_url)
        else:
            self.oracle = MockOracle({a: p.base_apy_bps for a, p in self.pools.items()})

        self.engine = YieldAggregator(self.token, self.oracle, admin=ADMIN, vault=VAULT)
        self.vault = SimpleVault(VAULT, self.token)
        self.vault.connect(self.engine)
        self.token.mint(VAULT, SEED_BALANCE)

        self.metrics = MetricsCollector()
        self.metrics.attach(self.engine)
        self.audit = AuditLogger(log_dir=log_dir)
        self.audit.attach(self.engine)

        for address, pool in self.pools.items():
            self.engine.add_pool(ADMIN, pool, initial_yield=pool.base_apy_bps)

        self.requests_served = 0

        logger.info(f"AggregatorService initialized with {len(self.pools)} pools")


app_state: Optional[AppState] = None


def get_state() -> AppState:
    """Dependency to get application state."""
    global app_state
    if app_state is None:
        app_state = AppState()
    return app_state


# ============================================================================
# FastAPI App
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    global app_state
    if app_state is None:
        app_state = AppState()
    logger.info("Aggregator service started")
    yield
    logger.info("Aggregator service stopped")


app = FastAPI(
    title="Yield Aggregator",
    description="Capital allocation engine for a pooled-yield vault",
    version="1.0.0",
    lifespan=lifespan
)


def status_for(exc: AggregatorError) -> int:
    """HTTP status for an engine error."""
    if isinstance(exc, Unauthorized):
        return 403
    if isinstance(exc, PoolNotFound):
        return 404
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, VenueCallFailed):
        return 502
    if isinstance(exc, (PoolAlreadyExists, RegistryFull, NoActivePools, InsufficientAllocation,
                        EnginePaused, EngineNotPaused, ReentrancyError)):
        return 409
    return 400


@app.exception_handler(AggregatorError)
async def aggregator_error_handler(request: Request, exc: AggregatorError):
    status = status_for(exc)
    logger.warning(f"{request.method} {request.url.path} -> {status}: {exc}")
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "detail": str(exc)}
    )


def _pool_response(record) -> PoolInfoResponse:
    return PoolInfoResponse(
        address=record.address,
        name=record.name,
        pool_type=record.pool_type,
        reported_yield=record.reported_yield,
        allocation=record.allocation,
        last_updated=record.last_updated,
        active=record.active
    )


def _plan_response(plan) -> DistributionResponse:
    return DistributionResponse(
        amount=plan.amount,
        path=plan.path,
        cap=plan.cap,
        placements=plan.by_pool(),
        escape_amount=plan.escape_amount
    )


# ============================================================================
# Read Endpoints
# ============================================================================

@app.get("/health")
async def health_check(state: AppState = Depends(get_state)):
    """Health check endpoint."""
    violations = state.engine.check_invariants(include_cap=False)
    return {
        "status": "healthy" if not violations else "degraded",
        "paused": state.engine.paused,
        "pools": len(state.engine.get_active_pools()),
        "total_allocated": state.engine.total_allocated,
        "requests_served": state.requests_served
    }


@app.get("/status")
async def engine_status(state: AppState = Depends(get_state)):
    return state.engine.status()


@app.get("/pools", response_model=List[PoolInfoResponse])
async def list_pools(state: AppState = Depends(get_state)):
    return [_pool_response(r) for r in state.engine.registry_snapshot()]


@app.get("/pools/{address}", response_model=PoolInfoResponse)
async def get_pool(address: str, state: AppState = Depends(get_state)):
    return _pool_response(state.engine.get_pool(address))


@app.get("/best_pool")
async def best_pool(state: AppState = Depends(get_state)):
    address, yield_bps = state.engine.best_pool()
    return {"address": address, "yield_bps": yield_bps}


@app.get("/allocations")
async def allocations(state: AppState = Depends(get_state)):
    """Share of total allocated per pool, in bps."""
    return state.engine.allocation_percentages()


@app.get("/preview", response_model=DistributionResponse)
async def preview(amount: int = Query(gt=0), state: AppState = Depends(get_state)):
    return _plan_response(state.engine.preview_distribution(amount))


@app.get("/projected_yield")
async def projected_yield(
    duration: int = Query(ge=0),
    amount: Optional[int] = Query(default=None, gt=0),
    state: AppState = Depends(get_state)
):
    return {
        "duration": duration,
        "amount": amount,
        "projected_yield": state.engine.projected_yield(duration, amount)
    }


@app.get("/reconcile", response_model=ReconcileResponse)
async def reconcile(state: AppState = Depends(get_state)):
    return ReconcileResponse(**state.engine.reconcile())


@app.get("/invariants")
async def invariants(state: AppState = Depends(get_state)):
    violations = state.engine.check_invariants()
    return {"ok": not violations, "violations": violations}


@app.get("/events")
async def events(n: int = Query(default=50, ge=1, le=1000), state: AppState = Depends(get_state)):
    return [
        {
            "timestamp": e.timestamp,
            "event_type": e.event_type.value,
            "actor": e.actor,
            "pool": e.pool,
            "amount": e.amount,
            "meta": e.meta
        }
        for e in state.engine.events.tail(n)
    ]


@app.get("/report", response_class=PlainTextResponse)
async def report(state: AppState = Depends(get_state)):
    return generate_allocation_report(state.engine)


@app.get("/metrics")
async def metrics(state: AppState = Depends(get_state)):
    """Prometheus scrape endpoint."""
    return Response(generate_latest(state.metrics.registry), media_type=CONTENT_TYPE_LATEST)


# ============================================================================
# Vault Endpoints
# ============================================================================

@app.post("/allocate", response_model=DistributionResponse)
async def allocate(req: AmountRequest, x_caller: str = Header(), state: AppState = Depends(get_state)):
    """
    Allocate capital from the calling vault.
    The vault's approval is issued on its behalf and revoked if the
    allocation is rejected.
    """
    state.requests_served += 1
    state.token.approve(x_caller, state.engine.address, req.amount)
    try:
        with state.metrics.time_operation("allocate"):
            plan = state.engine.allocate(x_caller, req.amount)
    except Exception:
        state.token.approve(x_caller, state.engine.address, 0)
        raise
    return _plan_response(plan)


@app.post("/withdraw")
async def withdraw(req: AmountRequest, x_caller: str = Header(), state: AppState = Depends(get_state)):
    state.requests_served += 1
    with state.metrics.time_operation("withdraw_for_vault"):
        draws = state.engine.withdraw_for_vault(x_caller, req.amount)
    return {"amount": req.amount, "draws": draws}


# ============================================================================
# Open Endpoints
# ============================================================================

@app.post("/rebalance", response_model=RebalanceResponse)
async def rebalance(x_caller: Optional[str] = Header(default=None), state: AppState = Depends(get_state)):
    state.requests_served += 1
    with state.metrics.time_operation("rebalance"):
        result = state.engine.rebalance(x_caller)
    if not result.executed:
        state.metrics.record_rebalance(result.skipped_reason)

    return RebalanceResponse(
        executed=result.executed,
        skipped_reason=result.skipped_reason,
        best_pool=result.best_pool,
        best_yield=result.best_yield,
        total_moved=result.total_moved,
        moves=[
            {"source": m.source, "amount": m.amount, "destinations": m.destinations}
            for m in result.moves
        ]
    )


@app.post("/refresh_yields")
async def refresh_yields(x_caller: Optional[str] = Header(default=None), state: AppState = Depends(get_state)):
    state.requests_served += 1
    summary = state.engine.refresh_yields(x_caller)
    return {
        "updated": [{"pool": a, "old": old, "new": new} for a, old, new in summary.updated],
        "unchanged": summary.unchanged,
        "failed": [{"pool": r.address, "error": r.error} for r in summary.failed]
    }


# ============================================================================
# Admin Endpoints
# ============================================================================

@app.post("/pools", response_model=PoolInfoResponse)
async def add_pool(req: AddPoolRequest, x_caller: str = Header(), state: AppState = Depends(get_state)):
    state.requests_served += 1
    pool = MockPool(req.address, state.token, pool_type=req.pool_type, name=req.name)
    initial_yield = pool.base_apy_bps if req.initial_yield is None else req.initial_yield

    record = state.engine.add_pool(x_caller, pool, initial_yield=initial_yield)
    state.pools[req.address] = pool
    if isinstance(state.oracle, MockOracle):
        state.oracle.set_yield(req.address, initial_yield)
    return _pool_response(record)


@app.delete("/pools/{address}")
async def remove_pool(address: str, x_caller: str = Header(), state: AppState = Depends(get_state)):
    state.requests_served += 1
    drained = state.engine.remove_pool(x_caller, address)
    state.pools.pop(address, None)
    return {"address": address, "drained": drained}


@app.post("/limits")
async def set_limits(req: LimitsRequest, x_caller: str = Header(), state: AppState = Depends(get_state)):
    state.engine.set_allocation_limits(x_caller, req.max_pool_allocation_bps, req.min_allocation)
    return {"status": "limits_updated", **req.model_dump()}


@app.post("/policy")
async def set_policy(req: PolicyRequest, x_caller: str = Header(), state: AppState = Depends(get_state)):
    state.engine.set_rebalance_policy(
        x_caller, req.rebalance_threshold_bps, req.min_slippage_bps, req.max_slippage_bps
    )
    return {"status": "policy_updated", "rebalance_threshold_bps": req.rebalance_threshold_bps}


@app.post("/cooldown")
async def set_cooldown(req: CooldownRequest, x_caller: str = Header(), state: AppState = Depends(get_state)):
    state.engine.set_rebalance_cooldown(x_caller, req.seconds)
    return {"status": "cooldown_updated", "seconds": req.seconds}


@app.post("/pause")
async def pause(x_caller: str = Header(), state: AppState = Depends(get_state)):
    state.engine.pause(x_caller)
    return {"status": "paused"}


@app.post("/unpause")
async def unpause(x_caller: str = Header(), state: AppState = Depends(get_state)):
    state.engine.unpause(x_caller)
    return {"status": "unpaused"}


@app.post("/emergency_unwind")
async def emergency_unwind(x_caller: str = Header(), state: AppState = Depends(get_state)):
    """
    Circuit breaker: pull everything back to the vault.
    """
    result = state.engine.emergency_unwind_all(x_caller)
    return {"status": "unwound", "withdrawn": result.withdrawn, "forwarded": result.forwarded}


# ============================================================================
# Main
# ============================================================================

def main():
    """Run the aggregator service."""
    import argparse

    parser = argparse.ArgumentParser(description="Run aggregator service")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind")
    parser.add_argument("--metrics-port", type=int, default=None, help="Standalone Prometheus port")

    args = parser.parse_args()

    if args.metrics_port:
        get_state().metrics.start_server(args.metrics_port)

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
