"""
Asset Token Ledger

In-memory single-asset ledger with ERC20-style balance / transfer /
approve / transfer_from semantics. Pools, the vault and the engine all
settle against one ledger, so snapshotting it captures every balance an
engine operation can touch.
"""

import logging
from typing import Dict, Tuple

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class InsufficientBalance(Exception):
    pass


class InsufficientAllowance(Exception):
    pass


class TokenLedger:
    """
    Usage:
        token = TokenLedger(symbol="BDAG")
        token.mint("vault", 1_000_000)
        token.approve("vault", "engine", 10_000)
        token.transfer_from("engine", "vault", "engine", 10_000)
    """

    def __init__(self, symbol: str = "BDAG", decimals: int = 18):
        self.symbol = symbol
        self.decimals = decimals
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}
        self.total_supply = 0

    def mint(self, to: str, amount: int):
        self._check_amount(amount)
        self.balances[to] = self.balances.get(to, 0) + amount
        self.total_supply += amount

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        self._check_amount(amount)
        self._move(sender, to, amount)
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        self._check_amount(amount)
        self.allowances[(owner, spender)] = amount
        return True

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        self._check_amount(amount)
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise InsufficientAllowance(
                f"{spender} allowed {allowed} of {owner}'s {self.symbol}, needs {amount}"
            )
        self._move(owner, to, amount)
        self.allowances[(owner, spender)] = allowed - amount
        return True

    def _move(self, sender: str, to: str, amount: int):
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalance(f"{sender} has {balance} {self.symbol}, needs {amount}")
        self.balances[sender] = balance - amount
        self.balances[to] = self.balance_of(to) + amount

    @staticmethod
    def _check_amount(amount: int):
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValueError(f"Invalid token amount: {amount!r}")

    def snapshot(self) -> tuple:
        return dict(self.balances), dict(self.allowances), self.total_supply

    def restore(self, state: tuple) -> None:
        balances, allowances, total_supply = state
        self.balances = dict(balances)
        self.allowances = dict(allowances)
        self.total_supply = total_supply
