"""
Venues package: collaborators the engine talks to.

Modules:
- interfaces: Protocols for oracle, venue and asset token
- token: In-memory single-asset ledger
- mock_oracle: Hand-set / random-walk yield oracle
- http_oracle: JSON-over-HTTP yield oracle
- mock_pool: AMM / lending / staking pool stand-ins
- vault: Capital source and sink calling the engine
"""

from .interfaces import YieldOracle, Venue, AssetToken, Journaled
from .token import TokenLedger, InsufficientBalance, InsufficientAllowance
from .mock_oracle import MockOracle, OracleUnavailable
from .http_oracle import HttpYieldOracle, OracleResponseError
from .mock_pool import MockPool, PoolCallRejected, POOL_TYPES
from .vault import SimpleVault

__all__ = [
    'YieldOracle',
    'Venue',
    'AssetToken',
    'Journaled',
    'TokenLedger',
    'InsufficientBalance',
    'InsufficientAllowance',
    'MockOracle',
    'OracleUnavailable',
    'HttpYieldOracle',
    'OracleResponseError',
    'MockPool',
    'PoolCallRejected',
    'POOL_TYPES',
    'SimpleVault'
]
