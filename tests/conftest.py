"""Shared fixtures: a three-pool world around one engine on a manual clock."""

import logging
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from aggregator import AllocationLimits, RebalancePolicy, YieldAggregator
from simulation import SimClock
from venues import MockOracle, MockPool, TokenLedger

ADMIN = "admin"
VAULT = "vault"
VAULT_BALANCE = 10_000_000


def make_world(
    yields=(800, 1200, 1500),
    cap_bps=5000,
    min_allocation=100,
    threshold_bps=100,
    cooldown=3600,
    vault_balance=VAULT_BALANCE
):
    """
    Pools are named A, B, C, ... in registration order, each with the
    given yield mirrored in the oracle.
    """
    clock = SimClock()
    token = TokenLedger()
    names = [chr(ord("A") + i) for i in range(len(yields))]
    pools = [MockPool(f"pool-{n}", token, pool_type="OTHER", name=n) for n in names]
    oracle = MockOracle({p.address: y for p, y in zip(pools, yields)}, seed=0)

    engine = YieldAggregator(
        token,
        oracle,
        admin=ADMIN,
        vault=VAULT,
        limits=AllocationLimits(cap_bps, min_allocation),
        policy=RebalancePolicy(rebalance_threshold_bps=threshold_bps),
        rebalance_cooldown=cooldown,
        clock=clock
    )
    for pool, y in zip(pools, yields):
        engine.add_pool(ADMIN, pool, initial_yield=y)

    token.mint(VAULT, vault_balance)

    world = SimpleNamespace(
        clock=clock,
        token=token,
        oracle=oracle,
        engine=engine,
        pools=pools,
        addr={n: p.address for n, p in zip(names, pools)},
    )
    return world


def fund(world, amount, caller=VAULT):
    """Vault-side approve then allocate."""
    world.token.approve(caller, world.engine.address, amount)
    return world.engine.allocate(caller, amount)


def allocations(world):
    return {r.name: r.allocation for r in world.engine.registry_snapshot()}


@pytest.fixture(autouse=True)
def quiet_logs(caplog):
    caplog.set_level(logging.WARNING)


@pytest.fixture
def world():
    return make_world()
