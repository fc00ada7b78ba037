"""
Collaborator interfaces consumed by the engine.

The engine only ever talks to these shapes:
- YieldOracle: read-only, may fail per call
- Venue: state-mutating deposit/withdraw, fully succeeds or raises
- AssetToken: single underlying asset ledger with snapshot/restore so an
  aborted engine operation leaves balances untouched
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class YieldOracle(Protocol):
    def current_yield(self, address: str) -> int:
        ...


@runtime_checkable
class Venue(Protocol):
    address: str

    def deposit(self, sender: str, amount: int) -> None:
        ...

    def withdraw(self, sender: str, amount: int) -> None:
        ...

    def balance_of(self, account: str) -> int:
        ...


@runtime_checkable
class AssetToken(Protocol):
    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        ...

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        ...

    def allowance(self, owner: str, spender: str) -> int:
        ...

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        ...

    def snapshot(self) -> Any:
        ...

    def restore(self, state: Any) -> None:
        ...


@runtime_checkable
class Journaled(Protocol):
    """Collaborator whose state can be captured and rolled back."""

    def snapshot(self) -> Any:
        ...

    def restore(self, state: Any) -> None:
        ...
