"""
Aggregator Errors

Every rejected operation raises a distinct, named condition so callers
and tests can tell causes apart:

1. Validation   - bad amount, address, yield or bps parameter
2. Authorization - caller lacks the required role
3. Not found / duplicate - registry lookups, capacity
4. Collaborator - venue or token call failed (fatal)
5. State        - paused / not paused engine, nested call

Oracle read failures never surface here; the yield reader isolates them.
"""

from typing import Optional


class AggregatorError(Exception):
    """Base class for all engine errors."""


# Validation

class ValidationError(AggregatorError, ValueError):
    """Input rejected before any state change."""


class ZeroAmount(ValidationError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation}: amount must be greater than zero")


class InvalidAddress(ValidationError):
    def __init__(self, address):
        self.address = address
        super().__init__(f"Invalid address: {address!r}")


class YieldOutOfRange(ValidationError):
    def __init__(self, yield_bps, max_bps: int):
        self.yield_bps = yield_bps
        self.max_bps = max_bps
        super().__init__(f"Yield {yield_bps} bps outside [0, {max_bps}]")


class InvalidBasisPoints(ValidationError):
    def __init__(self, name: str, value, low: int, high: int):
        self.name = name
        self.value = value
        super().__init__(f"{name}={value} outside [{low}, {high}] bps")


class InvalidParameter(ValidationError):
    def __init__(self, name: str, value, reason: str):
        self.name = name
        self.value = value
        super().__init__(f"{name}={value!r}: {reason}")


# Authorization

class Unauthorized(AggregatorError, PermissionError):
    def __init__(self, caller: str, role):
        self.caller = caller
        self.role = role
        super().__init__(f"{caller!r} lacks role {getattr(role, 'value', role)}")


# Not found / duplicate

class PoolNotFound(AggregatorError, LookupError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Pool not registered: {address}")


class PoolAlreadyExists(AggregatorError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Pool already registered: {address}")


class RegistryFull(AggregatorError):
    def __init__(self, capacity: int):
        self.capacity = capacity
        super().__init__(f"Registry at capacity ({capacity} pools)")


class NoActivePools(AggregatorError):
    def __init__(self):
        super().__init__("No active pools registered")


class InsufficientAllocation(AggregatorError):
    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(f"Requested {requested} but only {available} allocated")


# State

class EnginePaused(AggregatorError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation} blocked: engine is paused")


class EngineNotPaused(AggregatorError):
    def __init__(self):
        super().__init__("unpause rejected: engine is not paused")


class ReentrancyError(AggregatorError):
    def __init__(self, operation: str, active: Optional[str] = None):
        self.operation = operation
        self.active = active
        super().__init__(f"Reentrant call to {operation} while {active} in progress")


# Collaborator

class VenueCallFailed(AggregatorError):
    """A venue or token call aborted the operation."""

    def __init__(self, target: str, call: str, amount: int, reason: str):
        self.target = target
        self.call = call
        self.amount = amount
        self.reason = reason
        super().__init__(f"{call}({amount}) on {target} failed: {reason}")
