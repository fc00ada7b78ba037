"""
Pool Registry

Dense array of pool records plus an address → position index.
Removal swaps the last record into the freed slot and truncates, so
iteration never walks over dead entries.

Capacity and yield bounds are enforced here; allocation bookkeeping
(total_allocated) lives in the engine, which mutates records and the
running total together.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Optional

from utils.config import MAX_POOLS, MAX_YIELD_BPS, ZERO_ADDRESS
from .errors import (
    InvalidAddress, PoolAlreadyExists, PoolNotFound, RegistryFull, YieldOutOfRange
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

POOL_TYPES = ("AMM", "LENDING", "STAKING", "OTHER")


@dataclass
class PoolRecord:
    """One registered venue."""
    address: str
    reported_yield: int  # bps
    allocation: int = 0  # asset units
    last_updated: int = 0
    active: bool = True
    name: str = ""
    pool_type: str = "OTHER"

    def info(self) -> tuple:
        """(address, yield, allocation, last_updated, active)"""
        return (self.address, self.reported_yield, self.allocation,
                self.last_updated, self.active)


def validate_address(address) -> str:
    if not isinstance(address, str) or not address.strip() or address == ZERO_ADDRESS:
        raise InvalidAddress(address)
    return address


def validate_yield(yield_bps) -> int:
    if isinstance(yield_bps, bool) or not isinstance(yield_bps, int):
        raise YieldOutOfRange(yield_bps, MAX_YIELD_BPS)
    if yield_bps < 0 or yield_bps > MAX_YIELD_BPS:
        raise YieldOutOfRange(yield_bps, MAX_YIELD_BPS)
    return yield_bps


class PoolRegistry:
    """
    Arena-style pool registry.

    Usage:
        registry = PoolRegistry()
        registry.add("0xpool", initial_yield=1200, timestamp=now)
        best = max(registry.active(), key=lambda r: r.reported_yield)
    """

    def __init__(self, capacity: int = MAX_POOLS):
        self.capacity = capacity
        self._records: List[PoolRecord] = []
        self._index: Dict[str, int] = {}

    def add(
        self,
        address: str,
        initial_yield: int,
        timestamp: int = 0,
        name: str = "",
        pool_type: str = "OTHER"
    ) -> PoolRecord:
        validate_address(address)
        if address in self._index:
            raise PoolAlreadyExists(address)
        if len(self._records) >= self.capacity:
            raise RegistryFull(self.capacity)
        validate_yield(initial_yield)

        record = PoolRecord(
            address=address,
            reported_yield=initial_yield,
            last_updated=timestamp,
            name=name or address,
            pool_type=pool_type if pool_type in POOL_TYPES else "OTHER",
        )
        self._index[address] = len(self._records)
        self._records.append(record)
        return record

    def remove(self, address: str) -> PoolRecord:
        """Mark inactive and compact out. Allocation must already be zero."""
        position = self._position(address)
        record = self._records[position]
        if record.allocation != 0:
            raise ValueError(f"Cannot remove {address} with allocation {record.allocation}")

        last = self._records[-1]
        self._records[position] = last
        self._index[last.address] = position
        self._records.pop()
        del self._index[address]

        record.active = False
        return record

    def get(self, address: str) -> PoolRecord:
        return self._records[self._position(address)]

    def find(self, address: str) -> Optional[PoolRecord]:
        position = self._index.get(address)
        return self._records[position] if position is not None else None

    def _position(self, address: str) -> int:
        try:
            return self._index[address]
        except KeyError:
            raise PoolNotFound(address) from None

    def active(self) -> List[PoolRecord]:
        """Active records in registry (iteration) order."""
        return [r for r in self._records if r.active]

    def addresses(self) -> List[str]:
        return [r.address for r in self._records if r.active]

    def snapshot(self) -> List[PoolRecord]:
        """Detached copies, safe to hand out."""
        return [replace(r) for r in self._records]

    def restore(self, records: List[PoolRecord]):
        self._records = [replace(r) for r in records]
        self._index = {r.address: i for i, r in enumerate(self._records)}

    def __contains__(self, address: str) -> bool:
        return address in self._index

    def __iter__(self) -> Iterator[PoolRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)
