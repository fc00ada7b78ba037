"""
Yield Signal Reader

Refreshes each active pool's reported yield from the oracle.

This is the engine's only fault-tolerant external call: every read
returns an explicit OracleReading, and a failed reading skips that pool
without aborting the refresh or the operation that triggered it.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from utils.config import MAX_YIELD_BPS
from .registry import PoolRecord

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class OracleReading:
    """Outcome of one oracle read."""
    address: str
    ok: bool
    yield_bps: Optional[int] = None
    error: Optional[str] = None


@dataclass
class RefreshSummary:
    updated: List[Tuple[str, int, int]] = field(default_factory=list)  # (address, old, new)
    unchanged: List[str] = field(default_factory=list)
    failed: List[OracleReading] = field(default_factory=list)

    @property
    def reads(self) -> int:
        return len(self.updated) + len(self.unchanged) + len(self.failed)


class YieldSignalReader:
    """
    Usage:
        reader = YieldSignalReader(oracle)
        summary = reader.refresh(registry.active(), now)
    """

    def __init__(self, oracle):
        self.oracle = oracle

    def read(self, address: str) -> OracleReading:
        try:
            value = self.oracle.current_yield(address)
        except Exception as e:
            return OracleReading(address=address, ok=False, error=f"{type(e).__name__}: {e}")

        if isinstance(value, bool) or not isinstance(value, int):
            return OracleReading(address=address, ok=False, error=f"non-integer yield {value!r}")
        if value < 0 or value > MAX_YIELD_BPS:
            return OracleReading(address=address, ok=False, error=f"yield {value} out of range")

        return OracleReading(address=address, ok=True, yield_bps=value)

    def refresh(self, records: List[PoolRecord], now: int) -> RefreshSummary:
        summary = RefreshSummary()

        for record in records:
            if not record.active:
                continue

            reading = self.read(record.address)
            if not reading.ok:
                logger.warning(f"Yield read failed for {record.address}: {reading.error}")
                summary.failed.append(reading)
                continue

            if reading.yield_bps != record.reported_yield:
                summary.updated.append((record.address, record.reported_yield, reading.yield_bps))
                record.reported_yield = reading.yield_bps
                record.last_updated = now
            else:
                summary.unchanged.append(record.address)

        return summary
