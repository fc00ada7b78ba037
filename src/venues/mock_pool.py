"""
Mock Yield Pools

Opaque deposit/withdraw targets modelled on AMM, lending
and staking pools. Deposits pull tokens with transfer_from, so the caller
must approve first. Failure switches and a deposit hook let tests force
aborts and reentrant callbacks.
"""

import logging
from typing import Callable, Dict, Optional

from .token import TokenLedger

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


POOL_TYPES = {
    "AMM": {"name": "AMM Pool", "description": "Automated Market Maker", "risk_level": "Medium", "base_apy_bps": 850},
    "LENDING": {"name": "Lending Pool", "description": "Lending Protocol", "risk_level": "Low", "base_apy_bps": 1230},
    "STAKING": {"name": "Staking Pool", "description": "Staking Rewards", "risk_level": "High", "base_apy_bps": 1570},
}


class PoolCallRejected(Exception):
    pass


class MockPool:
    """
    Usage:
        pool = MockPool("0xamm", token, pool_type="AMM")
        token.approve("engine", pool.address, 500)
        pool.deposit("engine", 500)
        pool.withdraw("engine", 200)
    """

    def __init__(
        self,
        address: str,
        token: TokenLedger,
        pool_type: str = "AMM",
        name: Optional[str] = None
    ):
        self.address = address
        self.token = token
        self.pool_type = pool_type
        self.name = name or POOL_TYPES.get(pool_type, {}).get("name", address)
        self.deposits: Dict[str, int] = {}

        self.reject_deposits = False
        self.reject_withdrawals = False
        self.on_deposit: Optional[Callable[[str, int], None]] = None

    @property
    def base_apy_bps(self) -> int:
        return POOL_TYPES.get(self.pool_type, {}).get("base_apy_bps", 0)

    def deposit(self, sender: str, amount: int) -> None:
        if self.reject_deposits:
            raise PoolCallRejected(f"{self.address} rejected deposit of {amount}")
        if amount <= 0:
            raise PoolCallRejected("deposit amount must be positive")

        self.token.transfer_from(self.address, sender, self.address, amount)
        self.deposits[sender] = self.deposits.get(sender, 0) + amount

        if self.on_deposit:
            self.on_deposit(sender, amount)

    def withdraw(self, sender: str, amount: int) -> None:
        if self.reject_withdrawals:
            raise PoolCallRejected(f"{self.address} rejected withdrawal of {amount}")
        held = self.deposits.get(sender, 0)
        if amount <= 0 or amount > held:
            raise PoolCallRejected(f"{sender} cannot withdraw {amount}, holds {held}")

        self.deposits[sender] = held - amount
        self.token.transfer(self.address, sender, amount)

    def balance_of(self, account: str) -> int:
        return self.deposits.get(account, 0)

    def snapshot(self) -> Dict[str, int]:
        return dict(self.deposits)

    def restore(self, state: Dict[str, int]) -> None:
        self.deposits = dict(state)
