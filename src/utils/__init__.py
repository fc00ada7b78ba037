"""
Utilities package.

Modules:
- config: Environment-backed engine configuration and protocol constants
"""

from .config import (
    CONFIG,
    AggregatorConfig,
    BPS_DENOMINATOR,
    MAX_YIELD_BPS,
    MAX_POOLS,
    SECONDS_PER_YEAR,
    ZERO_ADDRESS,
)

__all__ = [
    'CONFIG',
    'AggregatorConfig',
    'BPS_DENOMINATOR',
    'MAX_YIELD_BPS',
    'MAX_POOLS',
    'SECONDS_PER_YEAR',
    'ZERO_ADDRESS'
]
