"""
Simulation package.

Modules:
- simulator: Multi-step vault flow and yield drift simulation
"""

from .simulator import AllocationSimulator, SimulationConfig, SimClock

__all__ = [
    'AllocationSimulator',
    'SimulationConfig',
    'SimClock'
]
