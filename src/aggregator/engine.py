"""
Yield Aggregator Engine

Allocates vault capital across registered yield pools:
- allocate: capped greedy distribution of new capital
- rebalance: partial (50%) correction of laggards, behind a cooldown
- withdraw_for_vault / emergency_unwind_all: capital back to the vault
- add_pool / remove_pool / limits / policy / pause: admin lifecycle

Execution model:
Every mutating entry point runs as one transaction. A global lock
serializes callers, nested calls into the engine are rejected, and any
exception restores engine state, the token ledger and every journaled
venue before propagating. Events are published only on commit.

No background work. Every decision happens inside the call that asks for it.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Tuple

from utils.config import BPS_DENOMINATOR, CONFIG, MAX_POOLS, SECONDS_PER_YEAR
from venues.interfaces import Journaled
from .access import AccessControl, Role
from .distributor import DistributionPlan, plan_distribution
from .errors import (
    AggregatorError, EngineNotPaused, EnginePaused, InsufficientAllocation,
    InvalidParameter, NoActivePools, ReentrancyError, VenueCallFailed, ZeroAmount
)
from .events import Event, EventLog, EventType
from .policy import AllocationLimits, RebalancePolicy
from .rebalancer import (
    RebalanceMove, RebalanceResult, SKIP_COOLDOWN, SKIP_DUST, SKIP_NO_CAPACITY,
    SKIP_NO_LAGGARDS, SKIP_NO_POOLS, cooldown_elapsed, destinations_for,
    move_amount, select_laggards
)
from .registry import PoolRecord, PoolRegistry
from .selector import best_record, best_venue, sort_by_yield_desc
from .signals import RefreshSummary, YieldSignalReader

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class UnwindResult:
    withdrawn: Dict[str, int] = field(default_factory=dict)
    forwarded: int = 0


def _require_amount(amount, operation: str) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidParameter("amount", amount, "must be an integer")
    if amount <= 0:
        raise ZeroAmount(operation)
    return amount


class YieldAggregator:
    """
    Pool allocation and rebalancing engine.

    Usage:
        engine = YieldAggregator(token, oracle, admin="0xadmin", vault="0xvault")
        engine.add_pool("0xadmin", pool, initial_yield=1200)
        engine.allocate("0xvault", 10_000)
        engine.rebalance("0xkeeper")
    """

    def __init__(
        self,
        token,
        oracle,
        admin: str,
        vault: Optional[str] = None,
        address: str = "yield-aggregator",
        limits: Optional[AllocationLimits] = None,
        policy: Optional[RebalancePolicy] = None,
        rebalance_cooldown: Optional[int] = None,
        capacity: int = MAX_POOLS,
        clock: Optional[Callable[[], float]] = None,
        event_log: Optional[EventLog] = None
    ):
        """
        Initialize the engine.

        Args:
            token: Asset token ledger shared with pools and vault
            oracle: Yield oracle (read per pool, failures tolerated)
            admin: Initial admin identity
            vault: Vault identity, the only allowed allocate/withdraw caller
            address: The engine's own account on the token ledger
            limits: Concentration cap and dust floor
            policy: Rebalance threshold and slippage guardrails
            rebalance_cooldown: Seconds between effective rebalances
            capacity: Maximum number of registered pools
            clock: Returns the current timestamp (seconds)
            event_log: Event sink (a fresh EventLog if None)
        """
        self.address = address
        self.token = token
        self.oracle = oracle
        self.reader = YieldSignalReader(oracle)
        self.registry = PoolRegistry(capacity)
        self.access = AccessControl(admins=[admin], vaults=[vault] if vault else [])
        self.vault = vault

        self.limits = (limits or AllocationLimits()).validate()
        self.policy = (policy or RebalancePolicy()).validate()
        self.rebalance_cooldown = (
            CONFIG.REBALANCE_COOLDOWN if rebalance_cooldown is None else rebalance_cooldown
        )
        if self.rebalance_cooldown < 0:
            raise InvalidParameter("rebalance_cooldown", rebalance_cooldown, "must be >= 0")
        self.last_rebalance_time = 0
        self.paused = False

        self.clock = clock or time.time
        self.events = event_log or EventLog()

        self._total_allocated = 0
        self._venues: Dict[str, object] = {}

        # Transaction state
        self._lock = threading.RLock()
        self._depth = 0
        self._operation: Optional[str] = None
        self._now: Optional[int] = None
        self._pending: List[Event] = []

        logger.info(f"YieldAggregator initialized at {address}")
        logger.info(f"  Max pool allocation: {self.limits.max_pool_allocation_bps} bps")
        logger.info(f"  Min allocation: {self.limits.min_allocation}")
        logger.info(f"  Rebalance threshold: {self.policy.rebalance_threshold_bps} bps")
        logger.info(f"  Rebalance cooldown: {self.rebalance_cooldown}s")

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str):
        with self._lock:
            if self._depth > 0:
                raise ReentrancyError(operation, self._operation)

            self._depth += 1
            self._operation = operation
            self._now = int(self.clock())
            self._pending = []
            saved = self._capture()

            try:
                yield self._now
                events = self._pending
            except Exception as e:
                self._rollback(saved)
                logger.error(f"{operation} aborted, state rolled back: {e}")
                raise
            finally:
                self._pending = []
                self._now = None
                self._operation = None
                self._depth -= 1

            self.events.publish(events)

    def _capture(self) -> dict:
        return {
            "records": self.registry.snapshot(),
            "total": self._total_allocated,
            "venues": dict(self._venues),
            "venue_state": {
                a: v.snapshot() for a, v in self._venues.items() if isinstance(v, Journaled)
            },
            "token": self.token.snapshot(),
            "access": self.access.snapshot(),
            "vault": self.vault,
            "limits": self.limits,
            "policy": self.policy,
            "cooldown": self.rebalance_cooldown,
            "last_rebalance_time": self.last_rebalance_time,
            "paused": self.paused,
        }

    def _rollback(self, saved: dict):
        self.registry.restore(saved["records"])
        self._total_allocated = saved["total"]
        self._venues = saved["venues"]
        for address, state in saved["venue_state"].items():
            self._venues[address].restore(state)
        self.token.restore(saved["token"])
        self.access.restore(saved["access"])
        self.vault = saved["vault"]
        self.limits = saved["limits"]
        self.policy = saved["policy"]
        self.rebalance_cooldown = saved["cooldown"]
        self.last_rebalance_time = saved["last_rebalance_time"]
        self.paused = saved["paused"]

    def _emit(self, event_type: EventType, actor=None, pool=None, amount=None, **meta):
        self._pending.append(Event(
            timestamp=self._now if self._now is not None else int(self.clock()),
            event_type=event_type,
            actor=actor,
            pool=pool,
            amount=amount,
            meta=meta
        ))

    # ------------------------------------------------------------------
    # External calls (fail-fast)
    # ------------------------------------------------------------------

    def _call(self, target: str, call: str, amount: int, fn, *args):
        try:
            return fn(*args)
        except AggregatorError:
            raise
        except Exception as e:
            raise VenueCallFailed(target, call, amount, f"{type(e).__name__}: {e}") from e

    def _deposit_to(self, record: PoolRecord, amount: int):
        venue = self._venues[record.address]
        self._call(record.address, "approve", amount, self.token.approve,
                   self.address, record.address, amount)
        self._call(record.address, "deposit", amount, venue.deposit, self.address, amount)
        record.allocation += amount
        self._total_allocated += amount

    def _withdraw_from(self, record: PoolRecord, amount: int):
        venue = self._venues[record.address]
        self._call(record.address, "withdraw", amount, venue.withdraw, self.address, amount)
        record.allocation -= amount
        self._total_allocated -= amount

    def _forward_to_vault(self, amount: int):
        self._call(self.vault, "transfer", amount, self.token.transfer,
                   self.address, self.vault, amount)

    def _require_vault(self):
        if not self.vault:
            raise InvalidParameter("vault", self.vault, "no vault registered")

    def _execute_plan(self, plan: DistributionPlan):
        for placement in plan.placements:
            self._deposit_to(self.registry.get(placement.address), placement.amount)

    def _refresh(self) -> RefreshSummary:
        summary = self.reader.refresh(self.registry.active(), self._now)
        for address, old, new in summary.updated:
            self._emit(EventType.YIELD_UPDATED, pool=address, old_yield=old, new_yield=new)
        for reading in summary.failed:
            self._emit(EventType.YIELD_READ_FAILED, pool=reading.address, error=reading.error)
        return summary

    # ------------------------------------------------------------------
    # Vault entry points
    # ------------------------------------------------------------------

    def allocate(self, caller: str, amount: int) -> DistributionPlan:
        """
        Pull `amount` from the vault and place it across pools.

        Returns:
            The DistributionPlan that was applied
        """
        with self._transaction("allocate"):
            self.access.require(Role.VAULT, caller)
            _require_amount(amount, "allocate")
            if self.paused:
                raise EnginePaused("allocate")
            if not self.registry.active():
                raise NoActivePools()

            self._call(caller, "transfer_from", amount, self.token.transfer_from,
                       self.address, caller, self.address, amount)

            self._refresh()
            plan = plan_distribution(
                self.registry.active(), self._total_allocated, amount, self.limits
            )
            self._execute_plan(plan)

            self._emit(
                EventType.FUNDS_ALLOCATED,
                actor=caller,
                amount=amount,
                path=plan.path,
                placements=plan.by_pool(),
                escape_amount=plan.escape_amount
            )
            logger.info(f"Allocated {amount} via {plan.path} path: {plan.by_pool()}")
            return plan

    def withdraw_for_vault(self, caller: str, amount: int) -> Dict[str, int]:
        """
        Pull `amount` out of the best available pools, highest yield
        first, and send it to the vault. Available while paused.

        Returns:
            address -> amount drawn from that pool
        """
        with self._transaction("withdraw_for_vault"):
            self.access.require(Role.VAULT, caller)
            _require_amount(amount, "withdraw_for_vault")
            if amount > self._total_allocated:
                raise InsufficientAllocation(amount, self._total_allocated)

            draws = self._greedy_draws(amount)
            for address, draw in draws.items():
                self._withdraw_from(self.registry.get(address), draw)

            self._call(caller, "transfer", amount, self.token.transfer,
                       self.address, caller, amount)

            self._emit(EventType.FUNDS_WITHDRAWN, actor=caller, amount=amount, draws=draws)
            logger.info(f"Withdrew {amount} for vault: {draws}")
            return draws

    def _greedy_draws(self, amount: int) -> Dict[str, int]:
        draws: Dict[str, int] = {}
        remaining = amount
        for record in sort_by_yield_desc(self.registry.active()):
            if remaining == 0:
                break
            take = min(remaining, record.allocation)
            if take > 0:
                draws[record.address] = take
                remaining -= take
        return draws

    # ------------------------------------------------------------------
    # Open entry points
    # ------------------------------------------------------------------

    def rebalance(self, caller: Optional[str] = None) -> RebalanceResult:
        """
        Move half of every lagging pool's allocation toward the best pool.

        Inside the cooldown window this is a silent no-op.
        """
        with self._transaction("rebalance") as now:
            if not cooldown_elapsed(now, self.last_rebalance_time, self.rebalance_cooldown):
                logger.debug(f"Rebalance skipped: cooldown until "
                             f"{self.last_rebalance_time + self.rebalance_cooldown}")
                return RebalanceResult(executed=False, timestamp=now, skipped_reason=SKIP_COOLDOWN)

            if not self.registry.active():
                return RebalanceResult(executed=False, timestamp=now, skipped_reason=SKIP_NO_POOLS)

            self._refresh()
            best = best_record(self.registry.active())
            threshold = self.policy.rebalance_threshold_bps
            laggards = select_laggards(self.registry.active(), best.reported_yield, threshold)

            result = RebalanceResult(
                executed=False,
                timestamp=now,
                best_pool=best.address,
                best_yield=best.reported_yield
            )
            if not laggards:
                result.skipped_reason = SKIP_NO_LAGGARDS
                return result

            blocked = False
            for address in laggards:
                record = self.registry.get(address)
                amount = move_amount(record.allocation)
                if amount == 0 or amount < self.limits.min_allocation:
                    logger.info(f"Skipping {address}: move {amount} below dust floor")
                    continue

                plan = plan_distribution(
                    destinations_for(self.registry.active(), record),
                    self._total_allocated - amount,
                    amount,
                    self.limits,
                    allow_escape=False
                )
                if plan.placed == 0:
                    logger.info(f"Skipping {address}: no better pool has room under the cap")
                    blocked = True
                    continue

                self._withdraw_from(record, plan.placed)
                self._execute_plan(plan)

                move = RebalanceMove(
                    source=address,
                    amount=plan.placed,
                    source_yield=record.reported_yield,
                    best_yield=best.reported_yield,
                    destinations=plan.by_pool()
                )
                result.moves.append(move)
                self._emit(
                    EventType.POOL_REBALANCED,
                    actor=caller,
                    pool=address,
                    amount=move.amount,
                    destinations=move.destinations,
                    path=plan.path
                )

            if not result.moves:
                result.skipped_reason = SKIP_NO_CAPACITY if blocked else SKIP_DUST
                return result

            result.executed = True
            self.last_rebalance_time = now
            self._emit(
                EventType.REBALANCE_COMPLETED,
                actor=caller,
                amount=result.total_moved,
                moves=len(result.moves),
                best_pool=best.address
            )
            logger.info(f"Rebalance moved {result.total_moved} across {len(result.moves)} pools")
            return result

    def refresh_yields(self, caller: Optional[str] = None) -> RefreshSummary:
        """Re-read every active pool's yield from the oracle."""
        with self._transaction("refresh_yields"):
            summary = self._refresh()
            logger.info(f"Yield refresh: {len(summary.updated)} updated, "
                        f"{len(summary.failed)} failed")
            return summary

    # ------------------------------------------------------------------
    # Admin entry points
    # ------------------------------------------------------------------

    def add_pool(
        self,
        caller: str,
        venue,
        initial_yield: int,
        name: Optional[str] = None,
        pool_type: Optional[str] = None
    ) -> PoolRecord:
        with self._transaction("add_pool") as now:
            self.access.require(Role.ADMIN, caller)
            address = getattr(venue, "address", None)
            record = self.registry.add(
                address,
                initial_yield,
                timestamp=now,
                name=name or getattr(venue, "name", ""),
                pool_type=pool_type or getattr(venue, "pool_type", "OTHER")
            )
            self._venues[address] = venue

            self._emit(EventType.POOL_ADDED, actor=caller, pool=address,
                       initial_yield=initial_yield, pool_type=record.pool_type)
            logger.info(f"Pool added: {address} @ {initial_yield} bps")
            return replace(record)

    def remove_pool(self, caller: str, address: str) -> int:
        """
        Drain a pool to the vault, then deregister it.

        Returns:
            Amount drained from the pool
        """
        with self._transaction("remove_pool"):
            self.access.require(Role.ADMIN, caller)
            record = self.registry.get(address)

            drained = record.allocation
            if drained > 0:
                self._require_vault()
                self._withdraw_from(record, drained)
                self._forward_to_vault(drained)

            self.registry.remove(address)
            del self._venues[address]

            self._emit(EventType.POOL_REMOVED, actor=caller, pool=address, amount=drained)
            logger.info(f"Pool removed: {address} (drained {drained})")
            return drained

    def emergency_unwind_all(self, caller: str) -> UnwindResult:
        """
        Circuit breaker: empty every pool and send the engine's whole
        balance to the vault. Pools stay registered.
        """
        with self._transaction("emergency_unwind_all"):
            self.access.require(Role.ADMIN, caller)
            self._require_vault()

            result = UnwindResult()
            for record in self.registry.active():
                if record.allocation > 0:
                    amount = record.allocation
                    self._withdraw_from(record, amount)
                    result.withdrawn[record.address] = amount

            result.forwarded = self.token.balance_of(self.address)
            if result.forwarded > 0:
                self._forward_to_vault(result.forwarded)

            self._emit(EventType.EMERGENCY_UNWIND, actor=caller, amount=result.forwarded,
                       withdrawn=dict(result.withdrawn))
            logger.warning(f"EMERGENCY UNWIND by {caller}: forwarded {result.forwarded} to vault")
            return result

    def pause(self, caller: str):
        with self._transaction("pause"):
            self.access.require(Role.ADMIN, caller)
            if self.paused:
                raise EnginePaused("pause")
            self.paused = True
            self._emit(EventType.PAUSED, actor=caller)
            logger.warning(f"Engine paused by {caller}")

    def unpause(self, caller: str):
        with self._transaction("unpause"):
            self.access.require(Role.ADMIN, caller)
            if not self.paused:
                raise EngineNotPaused()
            self.paused = False
            self._emit(EventType.UNPAUSED, actor=caller)
            logger.info(f"Engine unpaused by {caller}")

    def set_allocation_limits(self, caller: str, max_pool_allocation_bps: int, min_allocation: int):
        with self._transaction("set_allocation_limits"):
            self.access.require(Role.ADMIN, caller)
            self.limits = AllocationLimits(max_pool_allocation_bps, min_allocation).validate()
            self._emit(EventType.LIMITS_UPDATED, actor=caller,
                       max_pool_allocation_bps=max_pool_allocation_bps,
                       min_allocation=min_allocation)

    def set_rebalance_policy(
        self,
        caller: str,
        rebalance_threshold_bps: int,
        min_slippage_bps: Optional[int] = None,
        max_slippage_bps: Optional[int] = None
    ):
        with self._transaction("set_rebalance_policy"):
            self.access.require(Role.ADMIN, caller)
            self.policy = RebalancePolicy(
                min_slippage_bps=self.policy.min_slippage_bps if min_slippage_bps is None else min_slippage_bps,
                max_slippage_bps=self.policy.max_slippage_bps if max_slippage_bps is None else max_slippage_bps,
                rebalance_threshold_bps=rebalance_threshold_bps
            ).validate()
            self._emit(EventType.POLICY_UPDATED, actor=caller,
                       rebalance_threshold_bps=self.policy.rebalance_threshold_bps,
                       min_slippage_bps=self.policy.min_slippage_bps,
                       max_slippage_bps=self.policy.max_slippage_bps)

    def set_rebalance_cooldown(self, caller: str, seconds: int):
        with self._transaction("set_rebalance_cooldown"):
            self.access.require(Role.ADMIN, caller)
            if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds < 0:
                raise InvalidParameter("rebalance_cooldown", seconds, "must be a non-negative integer")
            self.rebalance_cooldown = seconds
            self._emit(EventType.COOLDOWN_UPDATED, actor=caller, cooldown=seconds)

    def set_vault(self, caller: str, vault: str):
        with self._transaction("set_vault"):
            self.access.require(Role.ADMIN, caller)
            if self.vault:
                self.access.revoke(Role.VAULT, self.vault)
                self._emit(EventType.ROLE_REVOKED, actor=caller, role=Role.VAULT.value, account=self.vault)
            self.access.grant(Role.VAULT, vault)
            self.vault = vault
            self._emit(EventType.ROLE_GRANTED, actor=caller, role=Role.VAULT.value, account=vault)

    def grant_role(self, caller: str, role: Role, account: str) -> bool:
        with self._transaction("grant_role"):
            self.access.require(Role.ADMIN, caller)
            granted = self.access.grant(role, account)
            if granted:
                self._emit(EventType.ROLE_GRANTED, actor=caller, role=role.value, account=account)
            return granted

    def revoke_role(self, caller: str, role: Role, account: str) -> bool:
        with self._transaction("revoke_role"):
            self.access.require(Role.ADMIN, caller)
            revoked = self.access.revoke(role, account)
            if revoked:
                self._emit(EventType.ROLE_REVOKED, actor=caller, role=role.value, account=account)
            return revoked

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def total_allocated(self) -> int:
        with self._lock:
            return self._total_allocated

    def get_total_allocated(self) -> int:
        return self.total_allocated

    def best_pool(self) -> Tuple[str, int]:
        with self._lock:
            return best_venue(self.registry.active())

    def get_pool(self, address: str) -> PoolRecord:
        with self._lock:
            return replace(self.registry.get(address))

    def get_pool_info(self, address: str) -> tuple:
        """(address, yield, allocation, last_updated, active)"""
        return self.get_pool(address).info()

    def get_active_pools(self) -> List[str]:
        with self._lock:
            return self.registry.addresses()

    def registry_snapshot(self) -> List[PoolRecord]:
        with self._lock:
            return self.registry.snapshot()

    def allocation_percentage(self, address: str) -> int:
        """Share of total allocated held by a pool, in bps."""
        with self._lock:
            record = self.registry.get(address)
            if self._total_allocated == 0:
                return 0
            return record.allocation * BPS_DENOMINATOR // self._total_allocated

    def allocation_percentages(self) -> Dict[str, int]:
        with self._lock:
            return {a: self.allocation_percentage(a) for a in self.registry.addresses()}

    def preview_distribution(self, amount: int) -> DistributionPlan:
        """Plan for a hypothetical allocation at current stored yields."""
        _require_amount(amount, "preview_distribution")
        with self._lock:
            return plan_distribution(
                self.registry.snapshot(), self._total_allocated, amount, self.limits
            )

    def projected_yield(self, duration_seconds: int, amount: Optional[int] = None) -> int:
        """
        Estimated earnings over a duration at current yields.

        If `amount` is given, the preview placement of that amount is
        layered on top of current allocations first.
        """
        if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, int) or duration_seconds < 0:
            raise InvalidParameter("duration_seconds", duration_seconds, "must be a non-negative integer")

        with self._lock:
            records = {r.address: r for r in self.registry.snapshot() if r.active}
            if amount is not None:
                for address, placed in self.preview_distribution(amount).by_pool().items():
                    records[address].allocation += placed

            weighted = sum(r.allocation * r.reported_yield for r in records.values())
            return weighted * duration_seconds // (BPS_DENOMINATOR * SECONDS_PER_YEAR)

    def check_invariants(self, include_cap: bool = True) -> List[str]:
        """
        Returns a list of violations (empty when healthy).

        The cap check flags any pool above total * cap_bps / 10000; after
        an escape-valve distribution that is expected.
        """
        violations = []
        with self._lock:
            active_sum = sum(r.allocation for r in self.registry if r.active)
            if active_sum != self._total_allocated:
                violations.append(
                    f"sum of allocations {active_sum} != total_allocated {self._total_allocated}"
                )
            for record in self.registry:
                if record.allocation < 0:
                    violations.append(f"{record.address} has negative allocation {record.allocation}")
                if not record.active and record.allocation > 0:
                    violations.append(f"{record.address} inactive with allocation {record.allocation}")

            if include_cap:
                cap = self.limits.cap_for(self._total_allocated)
                for record in self.registry.active():
                    if record.allocation > cap:
                        violations.append(
                            f"cap: {record.address} holds {record.allocation} > {cap}"
                        )
        return violations

    def reconcile(self) -> Dict:
        """
        Compare recorded allocations with the pools' own balances.
        Returns discrepancies.
        """
        discrepancies = []
        with self._lock:
            for record in self.registry.active():
                actual = self._venues[record.address].balance_of(self.address)
                if actual != record.allocation:
                    discrepancies.append({
                        "type": "allocation_mismatch",
                        "pool": record.address,
                        "expected": record.allocation,
                        "actual": actual
                    })

            return {
                "total_pools": len(self.registry),
                "total_allocated": self._total_allocated,
                "idle_balance": self.token.balance_of(self.address),
                "discrepancies": discrepancies,
                "is_reconciled": len(discrepancies) == 0
            }

    def status(self) -> Dict:
        with self._lock:
            best_address, best_yield = best_venue(self.registry.active())
            return {
                "paused": self.paused,
                "pools": len(self.registry),
                "total_allocated": self._total_allocated,
                "best_pool": best_address,
                "best_yield": best_yield,
                "last_rebalance_time": self.last_rebalance_time,
                "rebalance_cooldown": self.rebalance_cooldown,
                "max_pool_allocation_bps": self.limits.max_pool_allocation_bps,
                "min_allocation": self.limits.min_allocation,
                "rebalance_threshold_bps": self.policy.rebalance_threshold_bps,
            }
