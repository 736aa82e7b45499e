"""
Access Control: role assignments and the authorization gate.

Every mutating ledger operation passes through `check_role` before any state
is touched. A failed check raises `Unauthorized`; nothing is ever partially
applied.

Roles:

- ADMINISTRATOR: grants and revokes every role, its own included
- ISSUER: issues units into batches
- RETIRER: retires units on behalf of any holder
- PROJECT_MANAGER: creates and edits projects

The three non-admin roles are flat; holding one implies nothing about the
others. The deploying principal is seeded as ADMINISTRATOR.
"""

from __future__ import annotations

import logging

from sustaim.ledger.errors import Unauthorized
from sustaim.ledger.schema import Role

logger = logging.getLogger(__name__)


class RoleStore:
    """Plain (role, principal) membership table."""

    def __init__(self, assignments: dict[Role, set[str]] | None = None) -> None:
        self._members: dict[Role, set[str]] = {role: set() for role in Role}
        for role, principals in (assignments or {}).items():
            self._members[Role(role)].update(principals)

    def contains(self, role: Role, principal: str) -> bool:
        return principal in self._members[role]

    def add(self, role: Role, principal: str) -> bool:
        """Add membership. Returns False if it was already held."""
        if principal in self._members[role]:
            return False
        self._members[role].add(principal)
        return True

    def discard(self, role: Role, principal: str) -> bool:
        """Remove membership. Returns False if it was not held."""
        if principal not in self._members[role]:
            return False
        self._members[role].discard(principal)
        return True

    def members(self, role: Role) -> list[str]:
        return sorted(self._members[role])

    def export(self) -> dict[Role, list[str]]:
        return {role: sorted(principals) for role, principals in self._members.items()}


def check_role(store: RoleStore, principal: str, role: Role) -> None:
    """
    Raise `Unauthorized` unless `principal` holds `role` in `store`.

    This is the single authorization check used by every component.
    """
    if not store.contains(role, principal):
        logger.warning("Authorization denied: %s lacks %s", principal, role.value)
        raise Unauthorized(principal, role)


class AccessController:
    """
    Holds role assignments and answers authorization checks.

    Usage:
        access = AccessController(admin="0xdeployer")
        access.grant_role("0xdeployer", Role.ISSUER, "0xminter")
        access.check_role("0xminter", Role.ISSUER)
    """

    def __init__(self, store: RoleStore | None = None, admin: str | None = None) -> None:
        """
        Initialize the controller.

        Args:
            store: Injected role table. A fresh empty table by default.
            admin: Principal seeded as ADMINISTRATOR (the deployer).
        """
        self.store = store if store is not None else RoleStore()
        if admin is not None:
            self.store.add(Role.ADMINISTRATOR, admin)
            logger.info("Administrator seeded: %s", admin)

    def has_role(self, role: Role, principal: str) -> bool:
        """Pure lookup. Never fails."""
        return self.store.contains(Role(role), principal)

    def check_role(self, principal: str, role: Role) -> None:
        check_role(self.store, principal, Role(role))

    def grant_role(self, caller: str, role: Role, principal: str) -> None:
        """Grant `role` to `principal`. Caller must be an administrator."""
        role = Role(role)
        self.check_role(caller, Role.ADMINISTRATOR)
        if self.store.add(role, principal):
            logger.info("Role granted: %s -> %s by %s", role.value, principal, caller)

    def revoke_role(self, caller: str, role: Role, principal: str) -> None:
        """Revoke `role` from `principal`. Caller must be an administrator."""
        role = Role(role)
        self.check_role(caller, Role.ADMINISTRATOR)
        if self.store.discard(role, principal):
            logger.info("Role revoked: %s from %s by %s", role.value, principal, caller)

    def renounce_role(self, caller: str, role: Role) -> None:
        """Drop one of the caller's own roles. Needs no other authority."""
        role = Role(role)
        if self.store.discard(role, caller):
            logger.info("Role renounced: %s by %s", role.value, caller)

    def members(self, role: Role) -> list[str]:
        return self.store.members(Role(role))
