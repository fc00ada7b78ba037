"""
Vault stand-in.

The real vault owns share accounting and fees; here it is only the
engine's capital source and sink. It approves the engine and forwards
deposits into allocate(), and asks for withdraw_for_vault() when its
idle balance cannot cover a redemption.
"""

import logging

from .token import TokenLedger

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SimpleVault:
    def __init__(self, address: str, token: TokenLedger):
        self.address = address
        self.token = token
        self.engine = None

    def connect(self, engine):
        self.engine = engine

    @property
    def idle_balance(self) -> int:
        return self.token.balance_of(self.address)

    def deposit(self, user: str, amount: int):
        """Take user funds and push them straight into the engine."""
        self.token.transfer(user, self.address, amount)
        return self.push(amount)

    def push(self, amount: int):
        self.token.approve(self.address, self.engine.address, amount)
        return self.engine.allocate(self.address, amount)

    def withdraw(self, user: str, amount: int):
        """Pay a user, pulling the shortfall out of the engine first."""
        shortfall = amount - self.idle_balance
        if shortfall > 0:
            self.engine.withdraw_for_vault(self.address, shortfall)
        self.token.transfer(self.address, user, amount)
        logger.info(f"Vault paid {amount} to {user}")
