"""
Tests for Access Control: role assignments and the authorization gate.

Validates:
- Deployer seeded as administrator
- Only administrators grant and revoke
- Idempotent grant / revoke
- Flat, independent non-admin roles
"""

from __future__ import annotations

import pytest

from sustaim.governance.access import AccessController, RoleStore, check_role
from sustaim.ledger.errors import Unauthorized
from sustaim.ledger.schema import Role


class TestAccessController:
    """Test role granting, revoking and checking."""

    def setup_method(self):
        self.access = AccessController(admin="owner")

    def test_deployer_is_admin(self):
        assert self.access.has_role(Role.ADMINISTRATOR, "owner")
        assert not self.access.has_role(Role.ISSUER, "owner")

    def test_admin_grants_role(self):
        self.access.grant_role("owner", Role.ISSUER, "minter")
        assert self.access.has_role(Role.ISSUER, "minter")

    def test_non_admin_cannot_grant(self):
        with pytest.raises(Unauthorized):
            self.access.grant_role("minter", Role.ISSUER, "minter")
        assert not self.access.has_role(Role.ISSUER, "minter")

    def test_non_admin_cannot_revoke(self):
        self.access.grant_role("owner", Role.RETIRER, "burner")
        with pytest.raises(Unauthorized):
            self.access.revoke_role("burner", Role.RETIRER, "burner")
        assert self.access.has_role(Role.RETIRER, "burner")

    def test_grant_is_idempotent(self):
        self.access.grant_role("owner", Role.PROJECT_MANAGER, "pm")
        self.access.grant_role("owner", Role.PROJECT_MANAGER, "pm")
        assert self.access.members(Role.PROJECT_MANAGER) == ["pm"]

    def test_revoke_absent_role_succeeds(self):
        self.access.revoke_role("owner", Role.ISSUER, "nobody")
        assert not self.access.has_role(Role.ISSUER, "nobody")

    def test_admin_can_grant_admin(self):
        self.access.grant_role("owner", Role.ADMINISTRATOR, "second")
        self.access.grant_role("second", Role.ISSUER, "minter")
        assert self.access.has_role(Role.ISSUER, "minter")

    def test_admin_can_revoke_itself(self):
        self.access.revoke_role("owner", Role.ADMINISTRATOR, "owner")
        assert not self.access.has_role(Role.ADMINISTRATOR, "owner")
        with pytest.raises(Unauthorized):
            self.access.grant_role("owner", Role.ISSUER, "minter")

    def test_roles_are_flat(self):
        """Holding one non-admin role grants nothing else."""
        self.access.grant_role("owner", Role.ISSUER, "minter")
        with pytest.raises(Unauthorized):
            self.access.check_role("minter", Role.RETIRER)
        with pytest.raises(Unauthorized):
            self.access.check_role("minter", Role.PROJECT_MANAGER)

    def test_renounce_own_role(self):
        self.access.grant_role("owner", Role.ISSUER, "minter")
        self.access.renounce_role("minter", Role.ISSUER)
        assert not self.access.has_role(Role.ISSUER, "minter")

    def test_role_accepts_string_value(self):
        self.access.grant_role("owner", "issuer", "minter")
        assert self.access.has_role(Role.ISSUER, "minter")


class TestCheckRole:
    """Test the standalone permission check against an injected store."""

    def test_check_passes_for_member(self):
        store = RoleStore({Role.RETIRER: {"burner"}})
        check_role(store, "burner", Role.RETIRER)

    def test_check_raises_for_non_member(self):
        store = RoleStore()
        with pytest.raises(Unauthorized) as exc_info:
            check_role(store, "anyone", Role.ISSUER)
        assert exc_info.value.principal == "anyone"
        assert exc_info.value.role == Role.ISSUER
