"""
Tests for the claims mutation service.
"""
import pytest
from unittest.mock import AsyncMock

from config.settings import app_config
from src.api.services.claims_service import ClaimsMutationService, merge_claims, build_employee_claims
from src.api.services.employee_service import EmployeeDirectoryService, EmployeeFilters
from src.claims.models import CAPABILITY_FLAGS, CreationState, create_host_claims, derive_capability_flags
from src.errors import (
    AuthorizationError, ValidationError, NotFoundError, ProviderError,
    UpstreamProviderError, ClaimsAttachmentError
)
from tests.factories import employee_claims


def host_claims():
    return create_host_claims("h1").to_dict()


@pytest.fixture
def service(provider, mock_firestore, mock_notifier, audit):
    return ClaimsMutationService(provider, firestore=mock_firestore, notifier=mock_notifier, audit=audit)


@pytest.fixture
def new_employee():
    return {
        'role': 'staff',
        'employeeId': 'EMP100',
        'department': 'customer_service',
        'position': 'supervisor',
        'accessLevel': 3,
        'assignedRegions': ['north'],
    }


class TestCreateEmployee:

    @pytest.mark.asyncio
    async def test_creates_account_and_attaches_claims(self, service, provider, admin_caller, new_employee,
                                                       mock_firestore, mock_notifier):
        result = await service.create_employee_account(
            admin_caller, "new.hire@example.com", "New Hire", new_employee
        )

        assert result.state is CreationState.DONE
        assert result.message == "Employee New Hire created successfully"
        stored = provider.accounts[result.uid].custom_claims
        assert stored['isEmployee'] is True
        assert stored['territorialAccess'] == "region"
        assert stored['canManageUsers'] is True
        assert result.employee.custom_claims == stored
        mock_firestore.mirror_user_claims.assert_called_once()
        mock_firestore.create_employee_profile.assert_called_once()
        mock_notifier.send_welcome.assert_called_once_with(
            "new.hire@example.com", "New Hire", "https://example.com/reset?email=new.hire@example.com"
        )

    @pytest.mark.asyncio
    async def test_password_supplied_skips_reset_link(self, service, provider, admin_caller, new_employee,
                                                      mock_notifier):
        await service.create_employee_account(
            admin_caller, "a@example.com", "A", new_employee, password="s3cret-pass"
        )

        assert provider.count('generate_password_reset_link') == 0
        mock_notifier.send_welcome.assert_called_once_with("a@example.com", "A", None)

    @pytest.mark.asyncio
    async def test_missing_fields_listed(self, service, provider, admin_caller):
        with pytest.raises(ValidationError, match="Missing required fields: email, customClaims"):
            await service.create_employee_account(admin_caller, "", "Name", None)
        assert provider.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email", ["plainaddress", "a@b", "a b@c.com"])
    async def test_invalid_email_format(self, service, provider, admin_caller, new_employee, email):
        with pytest.raises(ValidationError, match="Invalid email format"):
            await service.create_employee_account(admin_caller, email, "Name", new_employee)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_capability_flags_rejected_as_input(self, service, provider, admin_caller, new_employee):
        new_employee['canProcessPayouts'] = True

        with pytest.raises(ValidationError, match="canProcessPayouts"):
            await service.create_employee_account(admin_caller, "x@example.com", "X", new_employee)
        assert provider.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code,message,status", [
        ("auth/email-already-exists",
         "Email address x@example.com is already in use by another account", 409),
        ("auth/invalid-email", "Invalid email address: x@example.com", 400),
        ("auth/weak-password", "Password is too weak. Please use a stronger password", 400),
        ("auth/internal-error", "Failed to create user account: boom", 502),
    ])
    async def test_provider_errors_mapped(self, service, provider, admin_caller, new_employee,
                                          code, message, status):
        provider.create_error = ProviderError(code, "boom")

        with pytest.raises(UpstreamProviderError) as exc_info:
            await service.create_employee_account(admin_caller, "x@example.com", "X", new_employee)

        assert exc_info.value.message == message
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_claims_attachment_retried(self, service, provider, admin_caller, new_employee):
        provider.failing_claims_writes = 2

        result = await service.create_employee_account(admin_caller, "r@example.com", "R", new_employee)

        assert result.state is CreationState.DONE
        assert provider.count('set_custom_claims') == 3

    @pytest.mark.asyncio
    async def test_claims_attachment_backs_off_between_attempts(self, service, provider, admin_caller,
                                                                new_employee, monkeypatch, mocker):
        monkeypatch.setattr(app_config, "claims_attach_backoff", 0.5)
        sleep = mocker.patch("src.api.services.claims_service.asyncio.sleep", new=AsyncMock())
        provider.failing_claims_writes = 10

        with pytest.raises(ClaimsAttachmentError):
            await service.create_employee_account(admin_caller, "b@example.com", "B", new_employee)

        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_partial_failure_carries_account_id(self, service, provider, admin_caller, new_employee,
                                                      audit, mock_firestore):
        provider.failing_claims_writes = 10

        with pytest.raises(ClaimsAttachmentError) as exc_info:
            await service.create_employee_account(admin_caller, "p@example.com", "P", new_employee)

        error = exc_info.value
        assert error.account_id in provider.accounts
        assert error.result.state is CreationState.PARTIAL_FAILURE
        assert error.details == {'uid': error.account_id}
        assert provider.count('set_custom_claims') == 3
        assert audit.stats['partial_failures'] == 1
        mock_firestore.mirror_user_claims.assert_not_called()

    @pytest.mark.asyncio
    async def test_mirror_failures_do_not_fail_creation(self, service, admin_caller, new_employee,
                                                        mock_firestore, mock_notifier, audit):
        mock_firestore.mirror_user_claims.side_effect = RuntimeError("firestore down")
        mock_firestore.create_employee_profile.return_value = False
        mock_notifier.send_welcome.side_effect = RuntimeError("smtp down")

        result = await service.create_employee_account(admin_caller, "m@example.com", "M", new_employee)

        assert result.success
        assert result.mirrored is False
        assert audit.stats['best_effort_failures'] == 3

    @pytest.mark.asyncio
    async def test_requires_manage_staff(self, service, provider, staff_reader, new_employee):
        with pytest.raises(AuthorizationError):
            await service.create_employee_account(staff_reader, "s@example.com", "S", new_employee)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_only_super_admin_grants_super_admin(self, service, admin_caller, super_admin_caller,
                                                       new_employee):
        new_employee['role'] = 'super_admin'

        with pytest.raises(AuthorizationError):
            await service.create_employee_account(admin_caller, "s@example.com", "S", new_employee)

        result = await service.create_employee_account(super_admin_caller, "s@example.com", "S", new_employee)
        assert result.success


class TestUpdateClaims:

    @pytest.fixture
    def staff_account(self, provider):
        return provider.add("u1", claims=employee_claims("EMP001"))

    @pytest.mark.asyncio
    async def test_flags_recomputed_from_permissions(self, service, provider, admin_caller, staff_account):
        claims = await service.update_claims(admin_caller, "u1", {'permissions': ['process_payouts', 'read_users']})

        stored = provider.accounts["u1"].custom_claims
        expected = derive_capability_flags(['process_payouts', 'read_users'])
        assert {flag: stored[flag] for flag in CAPABILITY_FLAGS} == expected
        assert stored['canProcessPayouts'] is True
        assert stored['canManageBookings'] is False
        assert claims == stored

    @pytest.mark.asyncio
    async def test_merge_keeps_untouched_fields(self, service, provider, admin_caller, staff_account):
        await service.update_claims(admin_caller, "u1", {'accessLevel': 4})

        stored = provider.accounts["u1"].custom_claims
        assert stored['accessLevel'] == 4
        assert stored['employeeId'] == "EMP001"
        assert stored['permissions'] == employee_claims("EMP001")['permissions']

    @pytest.mark.asyncio
    @pytest.mark.parametrize("update", [
        {'canManageUsers': True},
        {'permissions': ['read_bookings', 'launch_rockets']},
        {'accessLevel': 9},
        {'userType': 'customer'},
        {'isEmployee': False},
        {'role': 'host'},
        {},
    ])
    async def test_invalid_updates_rejected(self, service, provider, admin_caller, staff_account, update):
        before = dict(provider.accounts["u1"].custom_claims)

        with pytest.raises(ValidationError):
            await service.update_claims(admin_caller, "u1", update)

        assert provider.accounts["u1"].custom_claims == before

    @pytest.mark.asyncio
    async def test_unknown_account(self, service, admin_caller):
        with pytest.raises(NotFoundError):
            await service.update_claims(admin_caller, "ghost", {'accessLevel': 2})

    @pytest.mark.asyncio
    async def test_update_requires_manage_staff(self, service, provider, staff_reader, staff_account):
        with pytest.raises(AuthorizationError):
            await service.update_claims(staff_reader, "u1", {'accessLevel': 4})
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_mirror_refreshed(self, service, admin_caller, staff_account, mock_firestore):
        await service.update_claims(admin_caller, "u1", {'accessLevel': 4})

        mock_firestore.mirror_user_claims.assert_called_once()
        mock_firestore.update_employee_profile.assert_called_once()

    @pytest.mark.asyncio
    async def test_last_writer_wins(self, service, provider, admin_caller, staff_account):
        await service.update_claims(admin_caller, "u1", {'accessLevel': 3})
        await service.update_claims(admin_caller, "u1", {'accessLevel': 5})

        assert provider.accounts["u1"].custom_claims['accessLevel'] == 5


class TestBatchUpdate:

    @pytest.mark.asyncio
    async def test_failures_do_not_block_other_items(self, service, provider, admin_caller):
        provider.add("u1", claims=employee_claims("EMP001"))
        provider.add("u2", claims=employee_claims("EMP002"))

        results = await service.batch_update_claims(admin_caller, [
            ("u1", {'accessLevel': 4}),
            {'uid': "ghost", 'claims': {'accessLevel': 4}},
            ("u2", {'canAssignStaff': True}),
            {'uid': "u2", 'claims': {'permissions': ['manage_staff']}},
        ])

        assert [(r.uid, r.success) for r in results] == [
            ("u1", True), ("ghost", False), ("u2", False), ("u2", True)
        ]
        assert "canAssignStaff" in results[2].error
        assert provider.accounts["u2"].custom_claims['canAssignStaff'] is True
        assert provider.accounts["u1"].custom_claims['accessLevel'] == 4

    @pytest.mark.asyncio
    async def test_provider_failure_reported_per_item(self, service, provider, admin_caller):
        provider.add("u1", claims=employee_claims("EMP001"))
        provider.failing_gets.add("u1")

        results = await service.batch_update_claims(admin_caller, [("u1", {'accessLevel': 4})])

        assert results[0].success is False
        assert results[0].to_dict()['error']

    @pytest.mark.asyncio
    async def test_empty_batch(self, service, admin_caller):
        assert await service.batch_update_claims(admin_caller, []) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_item", [None, ("u2",), ("u2", {'accessLevel': 4}, "extra"), "u2"])
    async def test_malformed_item_reported_in_place(self, service, provider, admin_caller, bad_item):
        provider.add("u1", claims=employee_claims("EMP001"))
        provider.add("u3", claims=employee_claims("EMP003"))

        results = await service.batch_update_claims(admin_caller, [
            ("u1", {'accessLevel': 4}),
            bad_item,
            ("u3", {'accessLevel': 4}),
        ])

        assert [r.success for r in results] == [True, False, True]
        assert results[1].uid == ""
        assert results[1].error == "Malformed batch item"
        assert provider.accounts["u3"].custom_claims['accessLevel'] == 4


class TestVariantAssignment:

    @pytest.mark.asyncio
    async def test_self_service_host(self, service, provider, guest_caller):
        provider.add("guest-1", claims={'role': 'guest', 'userType': 'customer', 'isEmployee': False})

        claims = await service.set_host_claims(guest_caller, "guest-1")

        assert claims['role'] == "host"
        assert claims['hostStatus'] == "pending"
        assert provider.accounts["guest-1"].custom_claims['hostId'] == "guest-1"

    @pytest.mark.asyncio
    async def test_other_account_requires_admin(self, service, provider, guest_caller):
        provider.add("other", claims={})

        with pytest.raises(AuthorizationError):
            await service.set_guest_claims(guest_caller, "other")

    @pytest.mark.asyncio
    async def test_employee_cannot_demote_self(self, service, provider, staff_reader):
        provider.add("reader-1", claims=staff_reader.claims)

        with pytest.raises(AuthorizationError):
            await service.set_guest_claims(staff_reader, "reader-1")

    @pytest.mark.asyncio
    async def test_set_employee_claims(self, service, provider, admin_caller, new_employee):
        provider.add("u9", claims={'role': 'guest', 'userType': 'customer'})

        claims = await service.set_employee_claims(admin_caller, "u9", new_employee)

        assert claims['userType'] == "employee"
        assert provider.accounts["u9"].custom_claims['employeeId'] == "EMP100"

    @pytest.mark.asyncio
    async def test_host_verification_unlocks_listing(self, service, provider, admin_caller):
        provider.add("h1", claims=host_claims())

        for item in ('email', 'phone', 'identity'):
            claims = await service.verify_host_documentation(admin_caller, "h1", item, True)
            assert claims['permissions']['canListProperties'] is False

        claims = await service.verify_host_documentation(admin_caller, "h1", "business", True)

        assert claims['permissions']['canListProperties'] is True
        assert claims['permissions']['canWithdrawEarnings'] is True
        assert claims['hostStatus'] == "active"

    @pytest.mark.asyncio
    async def test_host_verification_validates_type(self, service, provider, admin_caller):
        provider.add("h1", claims=host_claims())

        with pytest.raises(ValidationError):
            await service.verify_host_documentation(admin_caller, "h1", "passport", True)

    @pytest.mark.asyncio
    async def test_host_verification_requires_admin(self, service, provider, staff_reader):
        with pytest.raises(AuthorizationError):
            await service.verify_host_documentation(staff_reader, "h1", "email", True)


class TestAccountDisabled:

    @pytest.mark.asyncio
    async def test_disable_and_enable(self, service, provider, admin_caller):
        provider.add("u1", claims=employee_claims("EMP001"))

        account = await service.set_account_disabled(admin_caller, "u1", True)
        assert account.disabled is True

        account = await service.set_account_disabled(admin_caller, "u1", False)
        assert account.disabled is False

    @pytest.mark.asyncio
    async def test_cannot_disable_self(self, service, admin_caller):
        with pytest.raises(ValidationError):
            await service.set_account_disabled(admin_caller, admin_caller.uid, True)

    @pytest.mark.asyncio
    async def test_unknown_account(self, service, admin_caller):
        with pytest.raises(NotFoundError):
            await service.set_account_disabled(admin_caller, "ghost", True)


def test_build_employee_claims_defaults_permissions():
    claims = build_employee_claims({'role': 'staff', 'employeeId': 'E1', 'department': 'it',
                                    'position': 'director', 'accessLevel': 5})

    assert claims['permissions'] == employee_claims("E1", position="staff")['permissions']
    assert claims['territorialAccess'] == "parish"


def test_build_employee_claims_keeps_custom_permissions():
    claims = build_employee_claims({'role': 'staff', 'employeeId': 'E1', 'department': 'it',
                                    'position': 'staff', 'accessLevel': 1,
                                    'customPermissions': ['manage_staff']})

    assert claims['customPermissions'] == ['manage_staff']


def test_merge_rejects_unresolvable_record():
    with pytest.raises(ValidationError):
        merge_claims({}, {'accessLevel': 2})


class TestCreatedEmployeeInDirectory:
    """Accounts created here are listed by the directory service."""

    @pytest.mark.asyncio
    async def test_created_staff_member_listed_by_department(self, service, provider, audit, admin_caller):
        directory = EmployeeDirectoryService(provider, audit=audit)

        result = await service.create_employee_account(admin_caller, "ops@example.com", "Olive Ops", {
            'role': 'staff',
            'employeeId': 'EMP200',
            'department': 'operations',
            'position': 'staff',
            'accessLevel': 2,
            'permissions': ['read_bookings', 'read_properties'],
        })

        operations = await directory.get_employees(admin_caller, EmployeeFilters(department="operations"))
        finance = await directory.get_employees(admin_caller, EmployeeFilters(department="finance"))

        assert result.uid in [e.uid for e in operations.employees]
        assert result.uid not in [e.uid for e in finance.employees]
        listed = next(e for e in operations.employees if e.uid == result.uid)
        assert listed.custom_claims['permissions'] == ['read_bookings', 'read_properties']
        assert listed.custom_claims['canManageBookings'] is False
