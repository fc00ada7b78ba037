"""
Role-based access control.

Each mutating entry point checks its capability up front:
    ADMIN - registry lifecycle, limits, policy, pause, emergency unwind
    VAULT - allocate, withdraw_for_vault
rebalance() and refresh_yields() are open to anyone.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, Set

from .errors import Unauthorized, InvalidAddress

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class Role(Enum):
    ADMIN = "admin"
    VAULT = "vault"


class AccessControl:
    """Role → authorized identities."""

    def __init__(self, admins: Iterable[str] = (), vaults: Iterable[str] = ()):
        self._members: Dict[Role, Set[str]] = {role: set() for role in Role}
        for admin in admins:
            self.grant(Role.ADMIN, admin)
        for vault in vaults:
            self.grant(Role.VAULT, vault)

    def grant(self, role: Role, account: str) -> bool:
        """Grant role. Returns False if already held."""
        if not account or not isinstance(account, str):
            raise InvalidAddress(account)
        if account in self._members[role]:
            return False
        self._members[role].add(account)
        logger.info(f"Granted {role.value} to {account}")
        return True

    def revoke(self, role: Role, account: str) -> bool:
        """Revoke role. Returns False if not held."""
        if account not in self._members[role]:
            return False
        self._members[role].discard(account)
        logger.info(f"Revoked {role.value} from {account}")
        return True

    def has_role(self, role: Role, account: str) -> bool:
        return account in self._members[role]

    def require(self, role: Role, account: str):
        if not self.has_role(role, account):
            logger.warning(f"Unauthorized: {account} attempted {role.value} action")
            raise Unauthorized(account, role)

    def members(self, role: Role) -> Set[str]:
        return set(self._members[role])

    def snapshot(self) -> Dict[Role, Set[str]]:
        return {role: set(members) for role, members in self._members.items()}

    def restore(self, state: Dict[Role, Set[str]]):
        self._members = {role: set(members) for role, members in state.items()}
