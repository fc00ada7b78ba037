"""
Pooled-yield allocation engine.

Modules:
- registry: Arena-style pool registry
- signals: Fault-tolerant oracle yield reader
- selector: Best-venue selection
- distributor: Capped greedy distribution with escape valve
- rebalancer: Laggard detection and partial moves
- policy: Allocation limits and rebalance policy
- access: Role-based access control
- events: Engine event log
- engine: YieldAggregator, the transactional entry points
- report: Registry tables and markdown reports
"""

from .access import AccessControl, Role
from .distributor import DistributionPlan, Placement, plan_distribution
from .engine import UnwindResult, YieldAggregator
from .errors import (
    AggregatorError,
    EngineNotPaused,
    EnginePaused,
    InsufficientAllocation,
    InvalidAddress,
    InvalidBasisPoints,
    InvalidParameter,
    NoActivePools,
    PoolAlreadyExists,
    PoolNotFound,
    ReentrancyError,
    RegistryFull,
    Unauthorized,
    ValidationError,
    VenueCallFailed,
    YieldOutOfRange,
    ZeroAmount,
)
from .events import Event, EventLog, EventType
from .policy import AllocationLimits, RebalancePolicy
from .rebalancer import RebalanceMove, RebalanceResult
from .registry import PoolRecord, PoolRegistry
from .signals import OracleReading, RefreshSummary, YieldSignalReader

__all__ = [
    'YieldAggregator',
    'UnwindResult',
    'PoolRecord',
    'PoolRegistry',
    'OracleReading',
    'RefreshSummary',
    'YieldSignalReader',
    'DistributionPlan',
    'Placement',
    'plan_distribution',
    'RebalanceMove',
    'RebalanceResult',
    'AllocationLimits',
    'RebalancePolicy',
    'AccessControl',
    'Role',
    'Event',
    'EventLog',
    'EventType',
    'AggregatorError',
    'ValidationError',
    'ZeroAmount',
    'InvalidAddress',
    'YieldOutOfRange',
    'InvalidBasisPoints',
    'InvalidParameter',
    'Unauthorized',
    'PoolNotFound',
    'PoolAlreadyExists',
    'RegistryFull',
    'NoActivePools',
    'InsufficientAllocation',
    'EnginePaused',
    'EngineNotPaused',
    'ReentrancyError',
    'VenueCallFailed'
]
