"""
Allocation Simulator

Drives a full reference world through time:
- Yields drift with a bounded random walk; oracle reads fail at random
- The vault receives deposits and redemptions of random size
- A keeper calls rebalance() every step (cooldown permitting)

Each step records per-pool allocation and yield so concentration,
rebalance churn and escape-valve usage can be studied afterwards.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from tqdm import tqdm

from aggregator import AllocationLimits, RebalancePolicy, YieldAggregator
from automation.keeper_worker import KeeperWorker
from utils.config import BPS_DENOMINATOR, RESULTS_DIR, SECONDS_PER_YEAR
from venues import POOL_TYPES, MockOracle, MockPool, SimpleVault, TokenLedger

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ADMIN = "sim-admin"
VAULT = "sim-vault"
DEPOSITOR = "sim-depositor"
KEEPER = "sim-keeper"


class SimClock:
    """Manually advanced clock handed to the engine."""

    def __init__(self, start: int = 1_700_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int):
        self.now += seconds


@dataclass
class SimulationConfig:
    steps: int = 200
    step_seconds: int = 3600
    seed: Optional[int] = 42

    pool_types: List[str] = field(default_factory=lambda: ["AMM", "LENDING", "STAKING"])
    initial_deposit: int = 100_000
    depositor_balance: int = 10_000_000
    max_flow: int = 10_000
    withdraw_probability: float = 0.3

    yield_step_bps: float = 75.0
    oracle_failure_probability: float = 0.02

    max_pool_allocation_bps: Optional[int] = None
    min_allocation: Optional[int] = None
    rebalance_threshold_bps: Optional[int] = None
    rebalance_cooldown: int = 6 * 3600


class AllocationSimulator:
    """
    Usage:
        sim = AllocationSimulator(SimulationConfig(steps=100, seed=7))
        history = sim.run()
        print(sim.summary(history))
    """

    def __init__(self, config: Optional[SimulationConfig] = None):
        self.config = config or SimulationConfig()
        cfg = self.config

        # independent streams for capital flows and yield shocks
        flow_seed, oracle_seed = np.random.SeedSequence(cfg.seed).spawn(2)
        self.rng = np.random.default_rng(flow_seed)
        self.clock = SimClock()

        self.token = TokenLedger()
        self.pools: Dict[str, MockPool] = {}
        for i, kind in enumerate(cfg.pool_types):
            if kind not in POOL_TYPES:
                raise ValueError(f"Unknown pool type {kind!r}, expected one of {list(POOL_TYPES)}")
            address = f"pool-{kind.lower()}-{i}"
            self.pools[address] = MockPool(address, self.token, pool_type=kind)

        self.oracle = MockOracle(
            {a: p.base_apy_bps for a, p in self.pools.items()},
            seed=oracle_seed
        )

        defaults = AllocationLimits()
        limits = AllocationLimits(
            max_pool_allocation_bps=cfg.max_pool_allocation_bps or defaults.max_pool_allocation_bps,
            min_allocation=defaults.min_allocation if cfg.min_allocation is None else cfg.min_allocation
        )
        policy = RebalancePolicy()
        if cfg.rebalance_threshold_bps is not None:
            policy = RebalancePolicy(
                min_slippage_bps=policy.min_slippage_bps,
                max_slippage_bps=policy.max_slippage_bps,
                rebalance_threshold_bps=cfg.rebalance_threshold_bps
            )

        self.engine = YieldAggregator(
            self.token,
            self.oracle,
            admin=ADMIN,
            vault=VAULT,
            limits=limits,
            policy=policy,
            rebalance_cooldown=cfg.rebalance_cooldown,
            clock=self.clock
        )
        self.vault = SimpleVault(VAULT, self.token)
        self.vault.connect(self.engine)
        self.keeper = KeeperWorker(self.engine, caller=KEEPER)

        for address, pool in self.pools.items():
            self.engine.add_pool(ADMIN, pool, initial_yield=pool.base_apy_bps)

        self.token.mint(DEPOSITOR, cfg.depositor_balance)

        self._escapes = 0
        self.engine.events.subscribe(self._on_event)

        logger.info(f"AllocationSimulator initialized: {len(self.pools)} pools, {cfg.steps} steps")

    def _on_event(self, event):
        if event.meta.get("escape_amount", 0) > 0 or event.meta.get("path") == "escape_valve":
            self._escapes += 1

    def _inject_oracle_faults(self):
        for address in self.pools:
            if self.rng.random() < self.config.oracle_failure_probability:
                self.oracle.fail(address)
            else:
                self.oracle.recover(address)

    def _vault_flow(self) -> int:
        """Random deposit (+) or redemption (-). Returns signed amount."""
        cfg = self.config
        amount = int(self.rng.integers(1, cfg.max_flow + 1))

        if self.rng.random() < cfg.withdraw_probability and self.engine.total_allocated > 0:
            amount = min(amount, self.engine.total_allocated)
            self.vault.withdraw(DEPOSITOR, amount)
            return -amount

        if self.token.balance_of(DEPOSITOR) < amount:
            return 0
        self.vault.deposit(DEPOSITOR, amount)
        return amount

    def _snapshot_row(self, step: int, flow: int, keeper_result: dict, escape: bool) -> dict:
        row = {
            "step": step,
            "timestamp": self.clock.now,
            "flow": flow,
            "total_allocated": self.engine.total_allocated,
            "rebalance_status": keeper_result["status"],
            "moved": keeper_result["moved"],
            "escape_valve": escape,
            "violations": len(self.engine.check_invariants(include_cap=False)),
        }
        for record in self.engine.registry_snapshot():
            row[f"alloc_{record.address}"] = record.allocation
            row[f"yield_{record.address}"] = record.reported_yield
        return row

    def run(self, show_progress: bool = True) -> pd.DataFrame:
        """
        Run the simulation.

        Returns:
            DataFrame with one row per step
        """
        cfg = self.config
        self.vault.deposit(DEPOSITOR, cfg.initial_deposit)

        rows = []
        for step in tqdm(range(cfg.steps), desc="Simulating", disable=not show_progress):
            self.clock.advance(cfg.step_seconds)
            self.oracle.random_walk(step_bps=cfg.yield_step_bps)
            self._inject_oracle_faults()

            self._escapes = 0
            flow = self._vault_flow()
            keeper_result = self.keeper.run_once()

            rows.append(self._snapshot_row(step, flow, keeper_result, self._escapes > 0))

        history = pd.DataFrame(rows).set_index("step")
        logger.info(f"Simulation complete: {len(history)} steps, "
                    f"final total {self.engine.total_allocated:,}")
        return history

    def summary(self, history: pd.DataFrame) -> dict:
        """Aggregate statistics for a run."""
        alloc_cols = [c for c in history.columns if c.startswith("alloc_")]
        yield_cols = [c for c in history.columns if c.startswith("yield_")]

        allocs = history[alloc_cols].to_numpy(dtype=float)
        yields = history[yield_cols].to_numpy(dtype=float)
        totals = allocs.sum(axis=1)

        weighted = np.divide(
            (allocs * yields).sum(axis=1), totals,
            out=np.zeros_like(totals), where=totals > 0
        )
        best = yields.max(axis=1)

        return {
            "steps": len(history),
            "final_total_allocated": int(history["total_allocated"].iloc[-1]) if len(history) else 0,
            "rebalances_executed": int((history["rebalance_status"] == "executed").sum()),
            "capital_moved": int(history["moved"].sum()),
            "escape_valve_steps": int(history["escape_valve"].sum()),
            "invariant_violations": int(history["violations"].sum()),
            "avg_weighted_yield_bps": float(weighted.mean()) if len(weighted) else 0.0,
            "avg_best_yield_bps": float(best.mean()) if len(best) else 0.0,
            "final_shares_bps": {
                c[len("alloc_"):]: int(history[c].iloc[-1] * BPS_DENOMINATOR // max(1, history["total_allocated"].iloc[-1]))
                for c in alloc_cols
            },
            "projected_annual_yield": self.engine.projected_yield(SECONDS_PER_YEAR),
        }

    def generate_report(self, history: pd.DataFrame, output_path: Optional[Path] = None) -> Path:
        """Write a markdown summary of the run."""
        stats = self.summary(history)
        output_path = Path(output_path) if output_path else RESULTS_DIR / (
            f"simulation_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}.md"
        )
        output_path.parent.mkdir(parents=True, exist_ok=True)

        lines = [
            "# Allocation Simulation Report",
            "",
            f"Generated: {datetime.now(timezone.utc).isoformat()}",
            "",
            "## Summary",
            "",
            "| Metric | Value |",
            "|--------|-------|",
        ]
        for key, value in stats.items():
            if key == "final_shares_bps":
                continue
            lines.append(f"| {key} | {value:,.2f} |" if isinstance(value, float) else f"| {key} | {value} |")

        lines.extend(["", "## Final Shares", "", "| Pool | Share |", "|------|-------|"])
        for pool, share in stats["final_shares_bps"].items():
            lines.append(f"| {pool} | {share / 100:.2f}% |")

        output_path.write_text("\n".join(lines) + "\n")
        logger.info(f"Simulation report saved: {output_path}")
        return output_path
