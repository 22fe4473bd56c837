"""
Claims mutation service: employee creation and claims updates.

The identity provider's custom claims are the authoritative record. The
Firestore ``userClaims`` and ``employees`` documents are convenience copies
written best effort after the provider call succeeds.
"""
import asyncio
import re
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Iterable, Union, Tuple

from ...claims import checker
from ...claims.models import (
    CreationState, EmployeeClaims, HostClaims, HostStatus, UserRole,
    CAPABILITY_FLAGS, HOST_VERIFICATION_FIELDS, PERMISSION_SETS,
    claims_kind, parse_claims, parse_permissions,
    create_guest_claims, create_host_claims
)
from ...errors import (
    AuthenticationError, AuthorizationError, ValidationError, NotFoundError,
    ProviderError, UpstreamProviderError, ClaimsAttachmentError
)
from ...firebase_sync.firestore_client import FirestoreClient
from ...identity.caller import CallerContext
from ...identity.provider import AccountRecord, IdentityProvider
from ...notifications.notifier import StaffNotifier
from ...utils.logger import get_logger, AuditLogger
from config.settings import app_config

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

DISCRIMINANT_FIELDS = ('userType', 'isEmployee')

CREATE_ERROR_MESSAGES = {
    "auth/email-already-exists": ("Email address {email} is already in use by another account", 409),
    "auth/invalid-email": ("Invalid email address: {email}", 400),
    "auth/weak-password": ("Password is too weak. Please use a stronger password", 400),
}


@dataclass
class EmployeeCreationResult:
    """Outcome of the employee creation wizard."""
    state: CreationState
    uid: Optional[str] = None
    employee: Optional[AccountRecord] = None
    message: str = ""
    mirrored: bool = False
    welcome_sent: bool = False

    @property
    def success(self) -> bool:
        return self.state is CreationState.DONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'state': self.state.value,
            'uid': self.uid,
            'employee': self.employee.to_dict() if self.employee else None,
            'message': self.message,
        }


@dataclass
class ClaimsUpdateResult:
    """Per-account outcome of a claims update."""
    uid: str
    success: bool
    error: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {'uid': self.uid, 'success': self.success}
        if self.error:
            data['error'] = self.error
        return data


ClaimsUpdate = Union[Tuple[str, Dict[str, Any]], Dict[str, Any]]


def unpack_batch_item(item: Any) -> Tuple[Optional[str], Any]:
    """Split a batch item into uid and partial claims."""
    if isinstance(item, dict):
        return item.get('uid'), item.get('claims')
    if isinstance(item, (tuple, list)) and len(item) == 2:
        return item[0], item[1]
    raise ValidationError("Malformed batch item")


def reject_capability_flags(claims: Dict[str, Any]):
    """Capability flags are derived from permissions and never accepted as input."""
    supplied = sorted(name for name in claims if name in CAPABILITY_FLAGS)
    if supplied:
        raise ValidationError(
            f"Capability flags are derived from permissions and cannot be set: {', '.join(supplied)}"
        )


def build_employee_claims(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate employee claims input and return the custom-claims wire form.

    Permissions default to the position's predefined set when omitted.
    Extra keys such as ``customPermissions`` are kept.
    """
    if not isinstance(raw, dict):
        raise ValidationError("customClaims must be an object")
    reject_capability_flags(raw)

    data = dict(raw)
    data.setdefault('userType', 'employee')
    data.setdefault('isEmployee', True)
    if data.get('userType') != 'employee' or data.get('isEmployee') is not True:
        raise ValidationError("Employee claims require userType 'employee' and isEmployee true")
    if data.get('permissions') is None:
        position = str(data.get('position') or '').upper()
        data['permissions'] = PERMISSION_SETS.get(position, PERMISSION_SETS["STAFF"])
    if data.get('territorialAccess') is None:
        data['territorialAccess'] = 'region' if data.get('assignedRegions') else 'parish'

    employee = EmployeeClaims.from_dict(data)

    result = {key: value for key, value in data.items() if key not in CAPABILITY_FLAGS}
    if 'customPermissions' in result:
        result['customPermissions'] = [p.value for p in parse_permissions(result['customPermissions'])]
    result.update(employee.to_dict())
    return result


def merge_claims(existing: Dict[str, Any], partial: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge a partial update into existing claims and re-derive every flag.

    Raises:
        ValidationError: for capability flags in ``partial``, malformed
            fields, or a change of claims variant
    """
    if not isinstance(partial, dict) or not partial:
        raise ValidationError("Claims update must be a non-empty object")
    reject_capability_flags(partial)

    current_kind = claims_kind(existing)
    if current_kind is None:
        raise ValidationError("Account has no claims variant to update; assign one first")

    for name in DISCRIMINANT_FIELDS:
        if name in partial and partial[name] != existing.get(name):
            raise ValidationError(f"Claims updates cannot change '{name}'")

    merged = {key: value for key, value in existing.items() if key not in CAPABILITY_FLAGS}
    merged.update(partial)

    if claims_kind(merged) != current_kind:
        raise ValidationError("Claims updates cannot change the account kind")

    if current_kind == 'employee':
        return build_employee_claims(merged)

    variant = parse_claims(merged)
    merged.update(variant.to_dict())
    return merged


class ClaimsMutationService:
    """Writes claims through the identity provider and mirrors them to Firestore."""

    def __init__(
        self,
        provider: IdentityProvider,
        firestore: Optional[FirestoreClient] = None,
        notifier: Optional[StaffNotifier] = None,
        audit: Optional[AuditLogger] = None
    ):
        self.logger = get_logger("claims_mutation")
        self.provider = provider
        self.firestore = firestore or FirestoreClient()
        self.notifier = notifier or StaffNotifier()
        self.audit = audit or AuditLogger(self.logger)

    # Authorization

    def _require_caller(self, caller: Optional[CallerContext]):
        if caller is None or not caller.uid:
            raise AuthenticationError("Authentication required")

    def _require_manager(self, caller: Optional[CallerContext], operation: str):
        self._require_caller(caller)
        if not checker.can_manage_employees(caller.claims):
            self.audit.log_denied(caller.uid, "manage_employees", operation)
            raise AuthorizationError(f"Insufficient permissions to {operation}")

    def _require_admin(self, caller: Optional[CallerContext], operation: str):
        self._require_caller(caller)
        if not checker.is_admin(caller.claims):
            self.audit.log_denied(caller.uid, "admin", operation)
            raise AuthorizationError(f"Admin role required to {operation}")

    def _require_self_or_admin(self, caller: Optional[CallerContext], uid: str, operation: str):
        self._require_caller(caller)
        if caller.uid != uid and not checker.is_admin(caller.claims):
            self.audit.log_denied(caller.uid, "self_or_admin", operation)
            raise AuthorizationError("Users can only set claims for themselves")

    def _check_role_grant(self, caller: CallerContext, claims: Dict[str, Any], previous_role: Optional[str] = None):
        granted = claims.get('role')
        if granted == UserRole.SUPER_ADMIN.value and previous_role != granted:
            if caller.claims.get('role') != UserRole.SUPER_ADMIN.value:
                self.audit.log_denied(caller.uid, "grant_super_admin", "grant super_admin role")
                raise AuthorizationError("Only super admins can grant the super_admin role")

    # Provider helpers

    async def _get_account(self, uid: str) -> AccountRecord:
        if not uid:
            raise ValidationError("User UID is required")
        try:
            return await self.provider.get_account(uid)
        except ProviderError as e:
            if e.code == "auth/user-not-found":
                raise NotFoundError(f"No account with uid {uid}")
            raise UpstreamProviderError(f"Failed to get account: {e.message}", code=e.code)

    async def _write_claims(self, uid: str, claims: Dict[str, Any]):
        try:
            await self.provider.set_custom_claims(uid, claims)
        except ProviderError as e:
            if e.code == "auth/user-not-found":
                raise NotFoundError(f"No account with uid {uid}")
            raise UpstreamProviderError(f"Failed to set claims: {e.message}", code=e.code)

    async def _best_effort(self, operation: str, uid: str, fn, *args) -> bool:
        """Run a blocking mirror write; failures are logged, never raised."""
        try:
            ok = await asyncio.to_thread(fn, *args)
        except Exception as e:
            self.audit.log_best_effort_failure(operation, uid, e)
            return False
        if not ok:
            self.audit.log_best_effort_failure(operation, uid, "write reported failure")
        return bool(ok)

    async def _mirror(self, uid: str, claims: Dict[str, Any], updated_by: str) -> bool:
        mirrored = await self._best_effort(
            "mirror_user_claims", uid, self.firestore.mirror_user_claims, uid, claims, updated_by
        )
        if claims_kind(claims) == 'employee':
            await self._best_effort(
                "update_employee_profile", uid,
                self.firestore.update_employee_profile, uid, claims, updated_by
            )
        return mirrored

    # Employee creation

    def _validate_creation(self, email: Any, display_name: Any, custom_claims: Any) -> Dict[str, Any]:
        missing = [name for name, value in (
            ('email', email), ('displayName', display_name), ('customClaims', custom_claims)
        ) if not value]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        if not isinstance(email, str) or not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format")
        return build_employee_claims(custom_claims)

    async def create_employee_account(
        self,
        caller: Optional[CallerContext],
        email: Optional[str],
        display_name: Optional[str],
        custom_claims: Optional[Dict[str, Any]],
        password: Optional[str] = None,
        photo_url: Optional[str] = None,
        send_welcome_email: Optional[bool] = None
    ) -> EmployeeCreationResult:
        """
        Create an employee account and attach its claims.

        Runs the wizard Draft -> Validating -> Creating -> ClaimsAttaching and
        ends in Done. When the account exists but claims could not be
        attached after retries, raises ClaimsAttachmentError carrying the new
        uid and a PARTIAL_FAILURE result for manual reconciliation.

        Raises:
            ValidationError: for missing or malformed input (no remote call made)
            UpstreamProviderError: if the account could not be created
            ClaimsAttachmentError: if claims attachment failed after creation
        """
        result = EmployeeCreationResult(state=CreationState.DRAFT)
        self._require_manager(caller, "create employees")

        result.state = CreationState.VALIDATING
        claims = self._validate_creation(email, display_name, custom_claims)
        self._check_role_grant(caller, claims)

        result.state = CreationState.CREATING
        try:
            account = await self.provider.create_account(
                email=email, display_name=display_name, password=password, photo_url=photo_url
            )
        except ProviderError as e:
            template, status = CREATE_ERROR_MESSAGES.get(e.code, (None, None))
            if template:
                raise UpstreamProviderError(template.format(email=email), code=e.code, status_code=status)
            raise UpstreamProviderError(f"Failed to create user account: {e.message}", code=e.code)

        result.uid = account.uid
        result.state = CreationState.CLAIMS_ATTACHING
        attempts = 1 + max(app_config.claims_attach_retries, 0)
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                await self.provider.set_custom_claims(account.uid, claims)
                last_error = None
                break
            except Exception as e:
                last_error = e
                self.logger.warning("Claims attachment failed",
                                    uid=account.uid, attempt=attempt, attempts=attempts, error=str(e))
                if attempt < attempts:
                    await asyncio.sleep(app_config.claims_attach_backoff * 2 ** (attempt - 1))

        if last_error is not None:
            result.state = CreationState.PARTIAL_FAILURE
            result.employee = account
            result.message = (
                f"Account {account.uid} was created but its claims could not be attached"
            )
            self.audit.log_partial_failure(account.uid, last_error)
            raise ClaimsAttachmentError(f"{result.message}: {last_error}", account.uid, result)

        account.custom_claims = dict(claims)
        result.employee = account
        result.state = CreationState.DONE
        result.message = f"Employee {display_name} created successfully"

        result.mirrored = await self._best_effort(
            "mirror_user_claims", account.uid,
            self.firestore.mirror_user_claims, account.uid, claims, caller.uid
        )
        await self._best_effort(
            "create_employee_profile", account.uid,
            self.firestore.create_employee_profile, account.to_dict(), claims, caller.uid
        )

        if send_welcome_email is None:
            send_welcome_email = app_config.send_welcome_email
        if send_welcome_email:
            result.welcome_sent = await self._send_welcome(account, password)

        self.logger.info("Employee created",
                         uid=account.uid, created_by=caller.uid,
                         role=claims.get('role'), department=claims.get('department'))
        return result

    async def _send_welcome(self, account: AccountRecord, password: Optional[str]) -> bool:
        reset_link = None
        if not password:
            try:
                reset_link = await self.provider.generate_password_reset_link(account.email)
            except Exception as e:
                self.audit.log_best_effort_failure("generate_password_reset_link", account.uid, e)
        return await self._best_effort(
            "send_welcome", account.uid,
            self.notifier.send_welcome, account.email, account.display_name, reset_link
        )

    # Claims updates

    async def _apply_update(self, caller: CallerContext, uid: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        account = await self._get_account(uid)
        claims = merge_claims(account.custom_claims, partial)
        self._check_role_grant(caller, claims, account.custom_claims.get('role'))
        await self._write_claims(uid, claims)
        await self._mirror(uid, claims, caller.uid)
        self.logger.info("Claims updated",
                         uid=uid, updated_by=caller.uid, fields=sorted(partial))
        return claims

    async def update_claims(
        self,
        caller: Optional[CallerContext],
        uid: Optional[str],
        partial: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """
        Merge ``partial`` into the account's claims.

        Capability flags are recomputed from the merged permissions. There is
        no concurrency token: the last write wins.

        Returns:
            The claims now attached to the account
        """
        self._require_manager(caller, "update claims")
        if not uid:
            raise ValidationError("User UID is required")
        return await self._apply_update(caller, uid, partial)

    async def batch_update_claims(
        self,
        caller: Optional[CallerContext],
        updates: Iterable[ClaimsUpdate]
    ) -> List[ClaimsUpdateResult]:
        """
        Apply updates one account at a time.

        A failing item is reported in its result and does not stop the rest.
        """
        self._require_manager(caller, "update claims")
        if updates is None:
            raise ValidationError("updates must be a list")

        results = []
        for item in updates:
            uid = None
            try:
                uid, partial = unpack_batch_item(item)
                if not uid:
                    raise ValidationError("User UID is required")
                claims = await self._apply_update(caller, uid, partial)
                results.append(ClaimsUpdateResult(uid=uid, success=True, claims=claims))
            except Exception as e:
                message = getattr(e, 'message', None) or str(e)
                self.logger.warning("Batch claims update failed for account", uid=uid, error=message)
                results.append(ClaimsUpdateResult(uid=uid or "", success=False, error=message))

        self.logger.info("Batch claims update finished",
                         total=len(results),
                         succeeded=sum(1 for r in results if r.success))
        return results

    # Variant assignment

    async def set_employee_claims(
        self,
        caller: Optional[CallerContext],
        uid: Optional[str],
        employee_data: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Replace an account's claims with employee claims."""
        self._require_manager(caller, "set employee claims")
        account = await self._get_account(uid)
        claims = build_employee_claims(employee_data or {})
        self._check_role_grant(caller, claims, account.custom_claims.get('role'))
        await self._write_claims(uid, claims)
        await self._mirror(uid, claims, caller.uid)
        self.logger.info("Employee claims set", uid=uid, set_by=caller.uid)
        return claims

    async def _set_customer_claims(self, caller, uid, factory, operation) -> Dict[str, Any]:
        if not uid:
            raise ValidationError("User UID is required")
        self._require_self_or_admin(caller, uid, operation)
        account = await self._get_account(uid)
        if checker.is_employee(account.custom_claims) and not checker.is_admin(caller.claims):
            self.audit.log_denied(caller.uid, "admin", operation)
            raise AuthorizationError("Only admins can change the claims of an employee account")
        claims = factory(uid).to_dict()
        await self._write_claims(uid, claims)
        await self._mirror(uid, claims, caller.uid)
        self.logger.info("Customer claims set", uid=uid, role=claims.get('role'), set_by=caller.uid)
        return claims

    async def set_host_claims(self, caller: Optional[CallerContext], uid: Optional[str]) -> Dict[str, Any]:
        """Turn the account into a pending host."""
        return await self._set_customer_claims(
            caller, uid, create_host_claims, "set host claims"
        )

    async def set_guest_claims(self, caller: Optional[CallerContext], uid: Optional[str]) -> Dict[str, Any]:
        """Turn the account into a guest."""
        return await self._set_customer_claims(
            caller, uid, create_guest_claims, "set guest claims"
        )

    async def verify_host_documentation(
        self,
        caller: Optional[CallerContext],
        host_uid: Optional[str],
        verification_type: str,
        approved: bool
    ) -> Dict[str, Any]:
        """
        Record an approval decision for one host verification item.

        Once email, phone, identity and business are verified the host may
        list properties, receive bookings and withdraw earnings.
        """
        self._require_admin(caller, "verify host documentation")
        if verification_type not in HOST_VERIFICATION_FIELDS:
            raise ValidationError(
                f"Invalid verificationType '{verification_type}'. "
                f"Allowed values: {', '.join(HOST_VERIFICATION_FIELDS)}"
            )

        account = await self._get_account(host_uid)
        if not checker.is_host(account.custom_claims):
            raise NotFoundError("User is not a host")

        host = HostClaims.from_dict(account.custom_claims)
        setattr(host.verification, verification_type, bool(approved))

        verified = host.is_verified
        host.permissions.can_list_properties = verified
        host.permissions.can_receive_bookings = verified
        host.permissions.can_withdraw_earnings = verified
        if verified and host.host_status is HostStatus.PENDING:
            host.host_status = HostStatus.ACTIVE

        claims = dict(account.custom_claims)
        claims.update(host.to_dict())
        await self._write_claims(host_uid, claims)
        await self._mirror(host_uid, claims, caller.uid)

        self.logger.info("Host verification recorded",
                         uid=host_uid, verification_type=verification_type,
                         approved=bool(approved), verified=verified)
        return claims

    async def set_account_disabled(
        self,
        caller: Optional[CallerContext],
        uid: Optional[str],
        disabled: bool
    ) -> AccountRecord:
        """Soft-disable or re-enable an account; accounts are never deleted here."""
        self._require_manager(caller, "disable accounts")
        if not uid:
            raise ValidationError("User UID is required")
        if uid == caller.uid and disabled:
            raise ValidationError("You cannot disable your own account")

        try:
            account = await self.provider.set_disabled(uid, bool(disabled))
        except ProviderError as e:
            if e.code == "auth/user-not-found":
                raise NotFoundError(f"No account with uid {uid}")
            raise UpstreamProviderError(f"Failed to update account: {e.message}", code=e.code)

        self.logger.info("Account disabled flag changed",
                         uid=uid, disabled=bool(disabled), changed_by=caller.uid)
        return account
