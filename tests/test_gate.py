"""
Tests for rbac/gate.py -- identifier parsing and the ordered decision pipeline.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import FakeAccessor, RaisingAccessor, ShapeAccessor
from rbac.gate import MAX_IDENTIFIER, Decision, InvalidIdentifierError, authorize, parse_identifier
from rbac.store import RBACStore


@pytest.fixture
def accessor() -> FakeAccessor:
    # Tenant 1: role 1 (admin), role 2 (viewer). Tenant 2: role 3.
    return FakeAccessor(
        role_tenants={1: 1, 2: 1, 3: 2},
        role_permissions={1: ["role.update", "permission.assign"], 2: ["role.read"], 3: ["permission.assign"]},
        user_roles={100: [1], 200: [2], 300: [3]},
    )


class TestParseIdentifier:
    @pytest.mark.parametrize("value, expected", [(5, 5), ("5", 5), (" 12 ", 12)])
    def test_accepts_positive_integers(self, value, expected):
        assert parse_identifier(value, "roleId") == expected

    @pytest.mark.parametrize("value", [None, "", "   ", 0])
    def test_missing(self, value):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            parse_identifier(value, "tenantId")
        assert exc_info.value.missing is True
        assert str(exc_info.value) == "tenantId is required"

    @pytest.mark.parametrize("value", ["abc", -3, "-1", "1.5", True, "0.0"])
    def test_invalid(self, value):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            parse_identifier(value, "roleId")
        assert exc_info.value.missing is False
        assert exc_info.value.field == "roleId"

    @pytest.mark.parametrize("value", ["1e3", "1e1000000", "0x10", "1_000", "\uff11\uff12", "\u00b2", 7.0, "+5"])
    def test_only_plain_digits_accepted(self, value):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            parse_identifier(value, "roleId")
        assert exc_info.value.missing is False

    def test_upper_bound(self):
        assert parse_identifier(MAX_IDENTIFIER, "roleId") == MAX_IDENTIFIER
        assert parse_identifier(str(MAX_IDENTIFIER), "roleId") == MAX_IDENTIFIER
        for value in (MAX_IDENTIFIER + 1, str(MAX_IDENTIFIER + 1), "9" * 5000, 10**400):
            with pytest.raises(InvalidIdentifierError):
                parse_identifier(value, "roleId")

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_identifier("x", "roleId")


class TestAuthorize:
    def test_allowed(self, accessor):
        assert authorize(accessor, 100, 1, "role.update") is Decision.allowed
        assert Decision.allowed.is_allowed

    def test_non_member_stops_at_membership(self, accessor):
        decision = authorize(accessor, 300, 1, "permission.assign", target_role_id=1)
        assert decision is Decision.not_tenant_member
        assert not decision.is_allowed
        # Only the membership query ran.
        assert [c[0] for c in accessor.calls] == ["user_roles_in_tenant"]

    def test_missing_permission_stops_before_binding(self, accessor):
        decision = authorize(accessor, 200, 1, "permission.assign", target_role_id=3)
        assert decision is Decision.missing_permission
        assert "role_tenant_id" not in [c[0] for c in accessor.calls]

    def test_cross_tenant_role_reference(self, accessor):
        assert authorize(accessor, 100, 1, "permission.assign", target_role_id=3) is Decision.cross_tenant_reference

    def test_unknown_target_role_is_cross_tenant_reference(self, accessor):
        assert authorize(accessor, 100, 1, "permission.assign", target_role_id=999) is Decision.cross_tenant_reference

    def test_same_tenant_role_reference(self, accessor):
        assert authorize(accessor, 100, 1, "permission.assign", target_role_id=2) is Decision.allowed

    def test_binding_skipped_without_target(self, accessor):
        authorize(accessor, 100, 1, "role.update")
        assert "role_tenant_id" not in [c[0] for c in accessor.calls]

    def test_store_down_denies_at_first_step(self):
        assert authorize(RaisingAccessor(), 100, 1, "role.update") is Decision.not_tenant_member

    def test_database_error_denies(self):
        store = MagicMock(spec=RBACStore)
        store.user_roles_in_tenant.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
        assert authorize(store, 100, 1, "role.read") is Decision.not_tenant_member
        store.role_tenant_id.assert_not_called()

    def test_binding_store_error_denies(self):
        grants = FakeAccessor(
            role_tenants={1: 1}, role_permissions={1: ["permission.assign"]}, user_roles={100: [1]}
        ).user_roles_in_tenant(100, 1)
        accessor = ShapeAccessor(grants, role_tenant="not-a-number")
        assert authorize(accessor, 100, 1, "permission.assign", target_role_id=5) is Decision.cross_tenant_reference

    def test_store_error_denial_logged_as_warning(self, caplog):
        with caplog.at_level("WARNING", logger="rbac.gate"):
            authorize(RaisingAccessor(), 100, 1, "role.update")
        assert "store unavailable" in caplog.text

    def test_decision_values_are_stable(self):
        assert {d.value for d in Decision} == {
            "allowed",
            "not_tenant_member",
            "missing_permission",
            "cross_tenant_reference",
        }
