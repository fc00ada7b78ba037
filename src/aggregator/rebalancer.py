"""
Rebalancer decisions.

A funded pool lags when the best pool out-yields it by more than the
threshold. Each laggard gives up half of its allocation per rebalance;
the moved capital re-enters through the distributor, restricted to pools
that out-yield the laggard and with the escape valve off, so destination
caps still apply. Whatever the destinations cannot absorb stays put.
Partial correction keeps any single rebalance cheap and damps churn
on noisy yields; the cooldown bounds how often it can happen.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .registry import PoolRecord

SKIP_COOLDOWN = "cooldown"
SKIP_NO_POOLS = "no_active_pools"
SKIP_NO_LAGGARDS = "no_laggards"
SKIP_DUST = "below_min_allocation"
SKIP_NO_CAPACITY = "no_destination_capacity"

MOVE_FRACTION_DIVISOR = 2


@dataclass
class RebalanceMove:
    source: str
    amount: int
    source_yield: int
    best_yield: int
    destinations: dict = field(default_factory=dict)  # address -> amount


@dataclass
class RebalanceResult:
    executed: bool
    timestamp: int
    skipped_reason: Optional[str] = None
    best_pool: Optional[str] = None
    best_yield: int = 0
    moves: List[RebalanceMove] = field(default_factory=list)

    @property
    def total_moved(self) -> int:
        return sum(m.amount for m in self.moves)


def cooldown_elapsed(now: int, last_rebalance_time: int, cooldown: int) -> bool:
    return now >= last_rebalance_time + cooldown


def is_laggard(record: PoolRecord, best_yield: int, threshold_bps: int) -> bool:
    return (
        record.active
        and record.allocation > 0
        and best_yield > record.reported_yield + threshold_bps
    )


def select_laggards(
    records: List[PoolRecord],
    best_yield: int,
    threshold_bps: int
) -> List[str]:
    """Addresses of funded pools trailing the best by more than the threshold."""
    return [r.address for r in records if is_laggard(r, best_yield, threshold_bps)]


def move_amount(allocation: int) -> int:
    return allocation // MOVE_FRACTION_DIVISOR


def destinations_for(records: List[PoolRecord], source: PoolRecord) -> List[PoolRecord]:
    """Active pools that out-yield the source; never the source itself."""
    return [
        r for r in records
        if r.active and r.address != source.address and r.reported_yield > source.reported_yield
    ]
