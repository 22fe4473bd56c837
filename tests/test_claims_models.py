"""
Unit tests for the claims schema.
"""
import pytest

from src.claims.models import (
    EmployeeClaims, GuestClaims, HostClaims, EmployeePermission, Position,
    PERMISSION_SETS, CAPABILITY_FLAGS, derive_capability_flags, parse_permissions,
    parse_claims, claims_kind, create_employee_claims, create_guest_claims, create_host_claims
)
from src.errors import ValidationError


class TestPermissions:
    """Permission tokens and their boolean projection."""

    def test_closed_set_has_21_tokens(self):
        assert len(EmployeePermission) == 21

    def test_admin_set_holds_every_permission(self):
        assert set(PERMISSION_SETS["ADMIN"]) == set(EmployeePermission)

    def test_unknown_token_rejected(self):
        with pytest.raises(ValidationError):
            parse_permissions(["read_bookings", "fly_planes"])

    def test_string_is_not_a_permission_list(self):
        with pytest.raises(ValidationError):
            parse_permissions("read_bookings")

    def test_parse_dedupes_in_canonical_order(self):
        parsed = parse_permissions(["manage_staff", "read_bookings", "manage_staff"])
        assert parsed == [EmployeePermission.READ_BOOKINGS, EmployeePermission.MANAGE_STAFF]

    def test_flags_follow_permissions(self):
        flags = derive_capability_flags(["process_payouts", "moderate_reviews"])

        assert set(flags) == set(CAPABILITY_FLAGS)
        assert flags["canProcessPayouts"] is True
        assert flags["canHandleDisputes"] is True
        assert flags["canModerateReviews"] is True
        assert flags["canManageUsers"] is False

    def test_flags_ignore_unknown_tokens(self):
        assert not any(derive_capability_flags(["bogus"]).values())


class TestEmployeeClaims:

    def test_factory_uses_position_permission_set(self):
        claims = create_employee_claims("EMP001", "staff", "operations", "supervisor", 3)
        assert claims.permissions == PERMISSION_SETS["SUPERVISOR"]

    def test_director_falls_back_to_staff_set(self):
        claims = create_employee_claims("EMP002", "admin", "management", Position.DIRECTOR, 5)
        assert claims.permissions == PERMISSION_SETS["STAFF"]

    def test_territorial_access_follows_regions(self):
        regional = create_employee_claims("E1", "staff", "it", "staff", 1, assigned_regions=["north"])
        local = create_employee_claims("E2", "staff", "it", "staff", 1)

        assert regional.territorial_access.value == "region"
        assert local.territorial_access.value == "parish"

    def test_wire_form(self):
        data = create_employee_claims("EMP001", "staff", "finance", "manager", 4).to_dict()

        assert data['userType'] == "employee"
        assert data['isEmployee'] is True
        assert data['employeeId'] == "EMP001"
        assert data['accessLevel'] == 4
        assert data['canAccessFinancials'] is True
        assert data['canAssignStaff'] is True

    @pytest.mark.parametrize("level", [0, 6, "3", True, None])
    def test_access_level_bounds(self, level):
        with pytest.raises(ValidationError):
            EmployeeClaims(role="staff", employee_id="E", department="it",
                           position="staff", access_level=level)

    def test_non_employee_role_rejected(self):
        with pytest.raises(ValidationError):
            EmployeeClaims(role="host", employee_id="E", department="it",
                           position="staff", access_level=1)

    def test_from_dict_ignores_supplied_flags(self):
        data = create_employee_claims("EMP001", "staff", "it", "staff", 1).to_dict()
        data['canProcessPayouts'] = True

        claims = EmployeeClaims.from_dict(data)

        assert claims.to_dict()['canProcessPayouts'] is False

    def test_from_dict_reports_missing_fields(self):
        with pytest.raises(ValidationError, match="employeeId"):
            EmployeeClaims.from_dict({'userType': 'employee', 'isEmployee': True, 'role': 'staff',
                                      'department': 'it', 'position': 'staff', 'accessLevel': 1})


class TestVariants:

    def test_parse_selects_single_variant(self):
        employee = create_employee_claims("E1", "staff", "it", "staff", 1).to_dict()
        guest = create_guest_claims("g1").to_dict()
        host = create_host_claims("h1").to_dict()

        assert isinstance(parse_claims(employee), EmployeeClaims)
        assert isinstance(parse_claims(guest), GuestClaims)
        assert isinstance(parse_claims(host), HostClaims)

    @pytest.mark.parametrize("raw", [
        None,
        {},
        "not claims",
        {'userType': 'employee', 'role': 'staff'},
        {'userType': 'employee', 'isEmployee': True, 'role': 'guest'},
        {'userType': 'customer', 'role': 'staff'},
        {'userType': 'customer', 'role': 'host', 'isEmployee': True},
    ])
    def test_inconsistent_discriminants_resolve_to_none(self, raw):
        assert claims_kind(raw) is None
        assert parse_claims(raw) is None

    def test_host_verified_needs_four_checks(self):
        host = create_host_claims("h1")
        for name in ('email', 'phone', 'identity'):
            setattr(host.verification, name, True)
        assert host.is_verified is False

        host.verification.business = True
        assert host.is_verified is True

    def test_guest_round_trip_keeps_preferences(self):
        guest = create_guest_claims("g1")
        guest.preferences.favorite_regions = ["coast"]

        restored = GuestClaims.from_dict(guest.to_dict())

        assert restored.preferences.favorite_regions == ["coast"]
        assert restored.membership_level.value == "basic"
