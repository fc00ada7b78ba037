"""Best-venue selection and yield ordering."""

from typing import Iterable, List, Optional, Tuple

from utils.config import ZERO_ADDRESS
from .registry import PoolRecord


def best_record(records: Iterable[PoolRecord]) -> Optional[PoolRecord]:
    """Highest-yield active record; first seen wins ties."""
    best = None
    best_yield = -1
    for record in records:
        if not record.active:
            continue
        # strict > keeps the earliest record on ties
        if record.reported_yield > best_yield:
            best = record
            best_yield = record.reported_yield
    return best


def best_venue(records: Iterable[PoolRecord]) -> Tuple[str, int]:
    """(address, yield) of the best active pool, or (ZERO_ADDRESS, 0)."""
    best = best_record(records)
    if best is None:
        return ZERO_ADDRESS, 0
    return best.address, best.reported_yield


def sort_by_yield_desc(records: Iterable[PoolRecord]) -> List[PoolRecord]:
    """Active records by yield, highest first. Stable for ties."""
    return sorted(
        (r for r in records if r.active),
        key=lambda r: r.reported_yield,
        reverse=True
    )
