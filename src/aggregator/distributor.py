"""
Capped Distributor

Decides where an amount of new capital goes:

1. Simple path   - whole amount to the best pool if it stays under the cap
2. Multi path    - greedy fill down the yield-sorted pools, each up to the cap,
                   skipping pools whose headroom is below the dust floor
3. Escape valve  - anything left once every pool is at its cap is forced
                   into the best pool, past the cap

The cap for every pool is measured against the post-allocation total:
    cap = (total_allocated + amount) * max_pool_allocation_bps // 10000

The escape valve is the only way a pool can end up above the cap. Rebalance
plans switch it off and leave whatever the caps cannot absorb in place.

Planning is pure; the engine applies a plan with one deposit per placement.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from .errors import NoActivePools, ZeroAmount
from .policy import AllocationLimits
from .registry import PoolRecord
from .selector import best_record, sort_by_yield_desc

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PATH_SIMPLE = "simple"
PATH_MULTI = "multi"
PATH_ESCAPE_VALVE = "escape_valve"


@dataclass
class Placement:
    address: str
    amount: int
    forced: bool = False  # escape-valve placement, ignores the cap


@dataclass
class DistributionPlan:
    """Where an amount goes, before any capital moves."""
    amount: int
    projected_total: int
    cap: int
    path: str
    placements: List[Placement] = field(default_factory=list)
    escape_amount: int = 0
    unplaced: int = 0

    @property
    def escape_valve_used(self) -> bool:
        return self.escape_amount > 0

    @property
    def placed(self) -> int:
        return self.amount - self.unplaced

    def by_pool(self) -> Dict[str, int]:
        totals: Dict[str, int] = {}
        for p in self.placements:
            totals[p.address] = totals.get(p.address, 0) + p.amount
        return totals


def plan_distribution(
    records: List[PoolRecord],
    total_allocated: int,
    amount: int,
    limits: AllocationLimits,
    allow_escape: bool = True
) -> DistributionPlan:
    """
    Plan the placement of `amount` across active pools.

    Args:
        records: Registry records (inactive ones are ignored)
        total_allocated: Capital already placed
        amount: New capital to place
        limits: Concentration cap and dust floor
        allow_escape: Force leftover capital past the cap. When False the
            leftover is reported as `unplaced` instead.

    Returns:
        DistributionPlan whose placements plus `unplaced` sum to exactly `amount`
    """
    if amount <= 0:
        raise ZeroAmount("distribute")

    best = best_record(records)
    if best is None:
        raise NoActivePools()

    projected_total = total_allocated + amount
    cap = limits.cap_for(projected_total)

    if best.allocation + amount <= cap:
        return DistributionPlan(
            amount=amount,
            projected_total=projected_total,
            cap=cap,
            path=PATH_SIMPLE,
            placements=[Placement(best.address, amount)]
        )

    placements: List[Placement] = []
    remaining = amount

    for record in sort_by_yield_desc(records):
        if remaining == 0:
            break
        available = max(0, cap - record.allocation)
        if available == 0 or available < limits.min_allocation:
            continue
        placed = min(remaining, available)
        placements.append(Placement(record.address, placed))
        remaining -= placed

    escape_amount = 0
    if remaining > 0 and not allow_escape:
        return DistributionPlan(
            amount=amount,
            projected_total=projected_total,
            cap=cap,
            path=PATH_MULTI,
            placements=placements,
            unplaced=remaining
        )

    if remaining > 0:
        # every pool is at its cap: keep the capital productive anyway
        placements.append(Placement(best.address, remaining, forced=True))
        escape_amount = remaining
        logger.warning(
            f"Escape valve: {remaining} forced into {best.address} past cap {cap}"
        )

    return DistributionPlan(
        amount=amount,
        projected_total=projected_total,
        cap=cap,
        path=PATH_ESCAPE_VALVE if escape_amount else PATH_MULTI,
        placements=placements,
        escape_amount=escape_amount
    )
