"""
Automation package for running the engine as a service.

Modules:
- aggregator_service: FastAPI REST endpoints
- keeper_worker: Scheduled rebalance trigger
"""

from .aggregator_service import app, AppState, get_state, status_for
from .keeper_worker import KeeperWorker

__all__ = [
    'app',
    'AppState',
    'get_state',
    'status_for',
    'KeeperWorker'
]
