"""Admin-settable allocation limits and rebalance policy."""

from dataclasses import dataclass

from utils.config import BPS_DENOMINATOR, MAX_YIELD_BPS, CONFIG
from .errors import InvalidBasisPoints, InvalidParameter


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class AllocationLimits:
    max_pool_allocation_bps: int = CONFIG.MAX_POOL_ALLOCATION_BPS
    min_allocation: int = CONFIG.MIN_ALLOCATION

    def validate(self) -> "AllocationLimits":
        cap = self.max_pool_allocation_bps
        if not _is_int(cap) or cap <= 0 or cap > BPS_DENOMINATOR:
            raise InvalidBasisPoints("max_pool_allocation_bps", cap, 1, BPS_DENOMINATOR)
        if not _is_int(self.min_allocation) or self.min_allocation < 0:
            raise InvalidParameter("min_allocation", self.min_allocation, "must be a non-negative integer")
        return self

    def cap_for(self, projected_total: int) -> int:
        """Per-pool ceiling for a given post-allocation total."""
        return projected_total * self.max_pool_allocation_bps // BPS_DENOMINATOR


@dataclass(frozen=True)
class RebalancePolicy:
    """
    Slippage bounds are guardrails validated at set time only; the
    threshold is the minimum yield gap (bps) that triggers a move.
    """
    min_slippage_bps: int = CONFIG.MIN_SLIPPAGE_BPS
    max_slippage_bps: int = CONFIG.MAX_SLIPPAGE_BPS
    rebalance_threshold_bps: int = CONFIG.REBALANCE_THRESHOLD_BPS

    def validate(self) -> "RebalancePolicy":
        for name in ("min_slippage_bps", "max_slippage_bps"):
            value = getattr(self, name)
            if not _is_int(value) or value < 0 or value > BPS_DENOMINATOR:
                raise InvalidBasisPoints(name, value, 0, BPS_DENOMINATOR)
        if self.min_slippage_bps > self.max_slippage_bps:
            raise InvalidParameter(
                "min_slippage_bps", self.min_slippage_bps,
                f"exceeds max_slippage_bps={self.max_slippage_bps}"
            )
        threshold = self.rebalance_threshold_bps
        if not _is_int(threshold) or threshold < 0 or threshold > MAX_YIELD_BPS:
            raise InvalidBasisPoints("rebalance_threshold_bps", threshold, 0, MAX_YIELD_BPS)
        return self
