"""
Mock Yield Oracle

Stand-in for the on-chain APY oracle. Yields are set by hand (tests,
service) or drift with a bounded random walk (simulation). Individual
pools can be marked as failing to exercise the engine's per-read fault
isolation.
"""

import logging
from typing import Dict, Iterable, Optional, Set

import numpy as np

from utils.config import MAX_YIELD_BPS

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class OracleUnavailable(Exception):
    pass


class MockOracle:
    """
    Usage:
        oracle = MockOracle({"0xamm": 850, "0xlend": 1230})
        oracle.set_yield("0xamm", 900)
        oracle.current_yield("0xamm")  # 900
    """

    def __init__(self, yields: Optional[Dict[str, int]] = None, seed: Optional[int] = None):
        self.yields: Dict[str, int] = dict(yields or {})
        self.failing: Set[str] = set()
        self.reads = 0
        self.rng = np.random.default_rng(seed)

    def current_yield(self, address: str) -> int:
        self.reads += 1
        if address in self.failing:
            raise OracleUnavailable(f"No APY feed for {address}")
        if address not in self.yields:
            raise OracleUnavailable(f"Unknown pool {address}")
        return self.yields[address]

    def get_pool_apy(self, address: str) -> int:
        return self.current_yield(address)

    def get_active_pools(self):
        return sorted(self.yields)

    def set_yield(self, address: str, yield_bps: int):
        self.yields[address] = yield_bps

    def fail(self, address: str):
        self.failing.add(address)

    def recover(self, address: str):
        self.failing.discard(address)

    def random_walk(
        self,
        addresses: Optional[Iterable[str]] = None,
        step_bps: float = 50.0,
        floor_bps: int = 0,
        ceiling_bps: int = MAX_YIELD_BPS
    ) -> Dict[str, int]:
        """Move each yield by a normal shock, clipped to [floor, ceiling]."""
        targets = list(addresses) if addresses is not None else list(self.yields)
        shocks = self.rng.normal(0.0, step_bps, size=len(targets))
        for address, shock in zip(targets, shocks):
            current = self.yields.get(address, 0)
            self.yields[address] = int(np.clip(round(current + shock), floor_bps, ceiling_bps))
        return {a: self.yields[a] for a in targets}
