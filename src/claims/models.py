"""
Claims schema for marketplace accounts.

Every account carries exactly one claims variant (employee, guest or host),
selected by the ``userType``/``role`` discriminant pair. The wire form is the
camelCase dictionary stored as Firebase custom claims.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List, Iterable, Union
from enum import Enum

from ..errors import ValidationError


class UserRole(str, Enum):
    """Account roles."""
    GUEST = "guest"
    HOST = "host"
    STAFF = "staff"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class UserType(str, Enum):
    """Account kinds."""
    CUSTOMER = "customer"
    EMPLOYEE = "employee"


class Department(str, Enum):
    """Employee departments."""
    CUSTOMER_SERVICE = "customer_service"
    OPERATIONS = "operations"
    FINANCE = "finance"
    MARKETING = "marketing"
    IT = "it"
    MANAGEMENT = "management"


class Position(str, Enum):
    """Employee positions."""
    STAFF = "staff"
    SUPERVISOR = "supervisor"
    MANAGER = "manager"
    DIRECTOR = "director"
    ADMIN = "admin"


class TerritorialAccess(str, Enum):
    """Geographic scope granted to an employee."""
    PARISH = "parish"
    REGION = "region"
    NATIONAL = "national"


class EmployeePermission(str, Enum):
    """Closed set of fine-grained employee capabilities."""
    # Bookings
    READ_BOOKINGS = "read_bookings"
    WRITE_BOOKINGS = "write_bookings"
    CANCEL_BOOKINGS = "cancel_bookings"
    # Users
    READ_USERS = "read_users"
    WRITE_USERS = "write_users"
    SUSPEND_USERS = "suspend_users"
    # Properties
    READ_PROPERTIES = "read_properties"
    WRITE_PROPERTIES = "write_properties"
    APPROVE_PROPERTIES = "approve_properties"
    # Reviews
    READ_REVIEWS = "read_reviews"
    MODERATE_REVIEWS = "moderate_reviews"
    DELETE_REVIEWS = "delete_reviews"
    # Financial
    READ_FINANCIALS = "read_financials"
    PROCESS_PAYOUTS = "process_payouts"
    REFUND_PAYMENTS = "refund_payments"
    # Analytics
    READ_ANALYTICS = "read_analytics"
    EXPORT_DATA = "export_data"
    GENERATE_REPORTS = "generate_reports"
    # Staff
    MANAGE_STAFF = "manage_staff"
    ASSIGN_TERRITORIES = "assign_territories"
    VIEW_ADMIN_PANEL = "view_admin_panel"


class MembershipLevel(str, Enum):
    """Guest loyalty tiers."""
    BASIC = "basic"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class GuestAccountStatus(str, Enum):
    """Guest account states."""
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PENDING_VERIFICATION = "pending_verification"


class HostStatus(str, Enum):
    """Host account states."""
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DEACTIVATED = "deactivated"


class HostLevel(str, Enum):
    """Host experience tiers."""
    NEW = "new"
    EXPERIENCED = "experienced"
    SUPERHOST = "superhost"


class CreationState(str, Enum):
    """Employee creation wizard states; DONE and PARTIAL_FAILURE are terminal."""
    DRAFT = "draft"
    VALIDATING = "validating"
    CREATING = "creating"
    CLAIMS_ATTACHING = "claims_attaching"
    DONE = "done"
    PARTIAL_FAILURE = "partial_failure"


P = EmployeePermission

# Predefined permission sets, keyed by position
PERMISSION_SETS: Dict[str, List[EmployeePermission]] = {
    "STAFF": [
        P.READ_BOOKINGS, P.WRITE_BOOKINGS,
        P.READ_USERS, P.READ_PROPERTIES,
        P.READ_REVIEWS, P.MODERATE_REVIEWS,
    ],
    "SUPERVISOR": [
        P.READ_BOOKINGS, P.WRITE_BOOKINGS, P.CANCEL_BOOKINGS,
        P.READ_USERS, P.WRITE_USERS,
        P.READ_PROPERTIES, P.WRITE_PROPERTIES,
        P.READ_REVIEWS, P.MODERATE_REVIEWS, P.DELETE_REVIEWS,
        P.READ_ANALYTICS,
    ],
    "MANAGER": [
        P.READ_BOOKINGS, P.WRITE_BOOKINGS, P.CANCEL_BOOKINGS,
        P.READ_USERS, P.WRITE_USERS, P.SUSPEND_USERS,
        P.READ_PROPERTIES, P.WRITE_PROPERTIES, P.APPROVE_PROPERTIES,
        P.READ_REVIEWS, P.MODERATE_REVIEWS, P.DELETE_REVIEWS,
        P.READ_FINANCIALS, P.PROCESS_PAYOUTS,
        P.READ_ANALYTICS, P.EXPORT_DATA, P.GENERATE_REPORTS,
        P.MANAGE_STAFF,
    ],
    "ADMIN": list(EmployeePermission),
}

# Boolean capability flags and the permission each one projects
CAPABILITY_FLAGS: Dict[str, EmployeePermission] = {
    "canModerateReviews": P.MODERATE_REVIEWS,
    "canManageBookings": P.WRITE_BOOKINGS,
    "canAccessFinancials": P.READ_FINANCIALS,
    "canManageUsers": P.WRITE_USERS,
    "canManageProperties": P.WRITE_PROPERTIES,
    "canAccessAnalytics": P.READ_ANALYTICS,
    "canHandleDisputes": P.PROCESS_PAYOUTS,
    "canProcessPayouts": P.PROCESS_PAYOUTS,
    "canAssignStaff": P.MANAGE_STAFF,
    "canViewReports": P.GENERATE_REPORTS,
}

EMPLOYEE_ROLES = (UserRole.STAFF, UserRole.ADMIN, UserRole.SUPER_ADMIN)
MIN_ACCESS_LEVEL = 1
MAX_ACCESS_LEVEL = 5


def _now() -> str:
    return datetime.utcnow().isoformat()


def _coerce_enum(enum_cls, value: Any, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field_name} '{value}'. Allowed values: {allowed}")


def parse_permissions(values: Optional[Iterable[Any]]) -> List[EmployeePermission]:
    """
    Parse permission tokens into a de-duplicated list in canonical order.

    Raises:
        ValidationError: if a token is not a known permission
    """
    if values is None:
        return []
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise ValidationError("permissions must be a list of permission tokens")
    parsed = {_coerce_enum(EmployeePermission, value, "permission") for value in values}
    return [permission for permission in EmployeePermission if permission in parsed]


def derive_capability_flags(permissions: Iterable[Any]) -> Dict[str, bool]:
    """Compute the ten capability flags from a permission set."""
    granted = set()
    for permission in permissions or []:
        try:
            granted.add(EmployeePermission(permission))
        except ValueError:
            continue
    return {flag: permission in granted for flag, permission in CAPABILITY_FLAGS.items()}


def validate_access_level(value: Any) -> int:
    """Access level is an ordinal between 1 and 5."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("accessLevel must be an integer between 1 and 5")
    if not MIN_ACCESS_LEVEL <= value <= MAX_ACCESS_LEVEL:
        raise ValidationError("accessLevel must be an integer between 1 and 5")
    return value


def _string_list(value: Any, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, (list, tuple, set, frozenset)):
        raise ValidationError(f"{field_name} must be a list of strings")
    result = []
    for item in value:
        if not isinstance(item, str):
            raise ValidationError(f"{field_name} must be a list of strings")
        if item not in result:
            result.append(item)
    return result


@dataclass
class EmployeeClaims:
    """Authorization record for staff accounts."""
    role: UserRole
    employee_id: str
    department: Department
    position: Position
    access_level: int
    assigned_regions: List[str] = field(default_factory=list)
    assigned_parishes: List[str] = field(default_factory=list)
    territorial_access: TerritorialAccess = TerritorialAccess.PARISH
    permissions: List[EmployeePermission] = field(default_factory=list)
    is_active: bool = True
    employee_status: str = "active"
    created_at: str = field(default_factory=_now)
    last_login: str = field(default_factory=_now)

    def __post_init__(self):
        self.role = _coerce_enum(UserRole, self.role, "role")
        if self.role not in EMPLOYEE_ROLES:
            raise ValidationError(f"Role '{self.role.value}' is not an employee role")
        self.department = _coerce_enum(Department, self.department, "department")
        self.position = _coerce_enum(Position, self.position, "position")
        self.territorial_access = _coerce_enum(
            TerritorialAccess, self.territorial_access, "territorialAccess"
        )
        self.access_level = validate_access_level(self.access_level)
        self.permissions = parse_permissions(self.permissions)
        self.assigned_regions = _string_list(self.assigned_regions, "assignedRegions")
        self.assigned_parishes = _string_list(self.assigned_parishes, "assignedParishes")

    @property
    def capability_flags(self) -> Dict[str, bool]:
        return derive_capability_flags(self.permissions)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the custom-claims wire form."""
        data = {
            'role': self.role.value,
            'userType': UserType.EMPLOYEE.value,
            'isEmployee': True,
            'isActive': self.is_active,
            'employeeStatus': self.employee_status,
            'employeeId': self.employee_id,
            'department': self.department.value,
            'position': self.position.value,
            'accessLevel': self.access_level,
            'assignedRegions': list(self.assigned_regions),
            'assignedParishes': list(self.assigned_parishes),
            'territorialAccess': self.territorial_access.value,
            'permissions': [permission.value for permission in self.permissions],
            'createdAt': self.created_at,
            'lastLogin': self.last_login,
        }
        data.update(self.capability_flags)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EmployeeClaims':
        """
        Build employee claims from the wire form.

        Capability flags present in ``data`` are ignored; they are always
        recomputed from ``permissions``.
        """
        if data.get('userType') != UserType.EMPLOYEE.value:
            raise ValidationError("Employee claims require userType 'employee'")
        if data.get('isEmployee') is False:
            raise ValidationError("Employee claims require isEmployee to be true")
        missing = [name for name in ('role', 'employeeId', 'department', 'position', 'accessLevel')
                   if data.get(name) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required claims fields: {', '.join(missing)}")

        return cls(
            role=data['role'],
            employee_id=str(data['employeeId']),
            department=data['department'],
            position=data['position'],
            access_level=data['accessLevel'],
            assigned_regions=data.get('assignedRegions') or [],
            assigned_parishes=data.get('assignedParishes') or [],
            territorial_access=data.get('territorialAccess') or TerritorialAccess.PARISH.value,
            permissions=data.get('permissions') or [],
            is_active=data.get('isActive', True) is not False,
            employee_status=data.get('employeeStatus', "active"),
            created_at=data.get('createdAt') or _now(),
            last_login=data.get('lastLogin') or _now(),
        )


@dataclass
class GuestVerification:
    email: bool = False
    phone: bool = False
    identity: bool = False
    payment: bool = False


@dataclass
class BookingHistory:
    total_bookings: int = 0
    total_spent: float = 0
    average_rating: float = 0
    last_booking_date: str = ""


@dataclass
class GuestPreferences:
    favorite_regions: List[str] = field(default_factory=list)
    property_types: List[str] = field(default_factory=list)
    price_min: float = 0
    price_max: float = 1000


@dataclass
class GuestClaims:
    """Authorization record for guest accounts."""
    guest_id: str
    membership_level: MembershipLevel = MembershipLevel.BASIC
    account_status: GuestAccountStatus = GuestAccountStatus.PENDING_VERIFICATION
    verification: GuestVerification = field(default_factory=GuestVerification)
    booking_history: BookingHistory = field(default_factory=BookingHistory)
    preferences: GuestPreferences = field(default_factory=GuestPreferences)
    loyalty_points: int = 0
    can_book_properties: bool = True
    can_leave_reviews: bool = True
    is_active: bool = True
    created_at: str = field(default_factory=_now)
    last_login: str = field(default_factory=_now)

    def __post_init__(self):
        self.membership_level = _coerce_enum(MembershipLevel, self.membership_level, "membershipLevel")
        self.account_status = _coerce_enum(GuestAccountStatus, self.account_status, "accountStatus")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the custom-claims wire form."""
        return {
            'role': UserRole.GUEST.value,
            'userType': UserType.CUSTOMER.value,
            'isEmployee': False,
            'isActive': self.is_active,
            'guestId': self.guest_id,
            'membershipLevel': self.membership_level.value,
            'accountStatus': self.account_status.value,
            'verificationStatus': {
                'email': self.verification.email,
                'phone': self.verification.phone,
                'identity': self.verification.identity,
                'payment': self.verification.payment,
            },
            'bookingHistory': {
                'totalBookings': self.booking_history.total_bookings,
                'totalSpent': self.booking_history.total_spent,
                'averageRating': self.booking_history.average_rating,
                'lastBookingDate': self.booking_history.last_booking_date,
            },
            'preferences': {
                'favoriteRegions': list(self.preferences.favorite_regions),
                'propertyTypes': list(self.preferences.property_types),
                'priceRange': {'min': self.preferences.price_min, 'max': self.preferences.price_max},
            },
            'loyaltyPoints': self.loyalty_points,
            'canBookProperties': self.can_book_properties,
            'canLeaveReviews': self.can_leave_reviews,
            'createdAt': self.created_at,
            'lastLogin': self.last_login,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GuestClaims':
        verification = data.get('verificationStatus') or {}
        history = data.get('bookingHistory') or {}
        preferences = data.get('preferences') or {}
        price_range = preferences.get('priceRange') or {}
        return cls(
            guest_id=str(data.get('guestId', "")),
            membership_level=data.get('membershipLevel', MembershipLevel.BASIC.value),
            account_status=data.get('accountStatus', GuestAccountStatus.PENDING_VERIFICATION.value),
            verification=GuestVerification(
                email=bool(verification.get('email')),
                phone=bool(verification.get('phone')),
                identity=bool(verification.get('identity')),
                payment=bool(verification.get('payment')),
            ),
            booking_history=BookingHistory(
                total_bookings=history.get('totalBookings', 0),
                total_spent=history.get('totalSpent', 0),
                average_rating=history.get('averageRating', 0),
                last_booking_date=history.get('lastBookingDate', ""),
            ),
            preferences=GuestPreferences(
                favorite_regions=list(preferences.get('favoriteRegions') or []),
                property_types=list(preferences.get('propertyTypes') or []),
                price_min=price_range.get('min', 0),
                price_max=price_range.get('max', 1000),
            ),
            loyalty_points=data.get('loyaltyPoints', 0),
            can_book_properties=data.get('canBookProperties', True),
            can_leave_reviews=data.get('canLeaveReviews', True),
            is_active=data.get('isActive', True) is not False,
            created_at=data.get('createdAt') or _now(),
            last_login=data.get('lastLogin') or _now(),
        )


@dataclass
class HostVerification:
    email: bool = False
    phone: bool = False
    identity: bool = False
    business: bool = False
    tax: bool = False
    property: bool = False


@dataclass
class BusinessMetrics:
    property_count: int = 0
    total_earnings: float = 0
    average_rating: float = 0
    response_rate: float = 0
    acceptance_rate: float = 0
    cancellation_rate: float = 0


@dataclass
class HostPermissions:
    can_list_properties: bool = False
    can_receive_bookings: bool = False
    can_withdraw_earnings: bool = False
    can_modify_pricing: bool = True


HOST_VERIFICATION_FIELDS = ('email', 'phone', 'identity', 'business', 'tax', 'property')


@dataclass
class HostClaims:
    """Authorization record for host accounts."""
    host_id: str
    host_status: HostStatus = HostStatus.PENDING
    host_level: HostLevel = HostLevel.NEW
    verification: HostVerification = field(default_factory=HostVerification)
    business_metrics: BusinessMetrics = field(default_factory=BusinessMetrics)
    permissions: HostPermissions = field(default_factory=HostPermissions)
    payout_setup: bool = False
    tax_documents: bool = False
    is_active: bool = True
    created_at: str = field(default_factory=_now)
    last_login: str = field(default_factory=_now)

    def __post_init__(self):
        self.host_status = _coerce_enum(HostStatus, self.host_status, "hostStatus")
        self.host_level = _coerce_enum(HostLevel, self.host_level, "hostLevel")

    @property
    def is_verified(self) -> bool:
        v = self.verification
        return v.email and v.phone and v.identity and v.business

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the custom-claims wire form."""
        v = self.verification
        m = self.business_metrics
        p = self.permissions
        return {
            'role': UserRole.HOST.value,
            'userType': UserType.CUSTOMER.value,
            'isEmployee': False,
            'isActive': self.is_active,
            'hostId': self.host_id,
            'hostStatus': self.host_status.value,
            'hostLevel': self.host_level.value,
            'verificationStatus': {name: getattr(v, name) for name in HOST_VERIFICATION_FIELDS},
            'businessMetrics': {
                'propertyCount': m.property_count,
                'totalEarnings': m.total_earnings,
                'averageRating': m.average_rating,
                'responseRate': m.response_rate,
                'acceptanceRate': m.acceptance_rate,
                'cancellationRate': m.cancellation_rate,
            },
            'permissions': {
                'canListProperties': p.can_list_properties,
                'canReceiveBookings': p.can_receive_bookings,
                'canWithdrawEarnings': p.can_withdraw_earnings,
                'canModifyPricing': p.can_modify_pricing,
            },
            'payoutSetup': self.payout_setup,
            'taxDocuments': self.tax_documents,
            'createdAt': self.created_at,
            'lastLogin': self.last_login,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HostClaims':
        verification = data.get('verificationStatus') or {}
        metrics = data.get('businessMetrics') or {}
        permissions = data.get('permissions')
        if not isinstance(permissions, dict):
            permissions = {}
        return cls(
            host_id=str(data.get('hostId', "")),
            host_status=data.get('hostStatus', HostStatus.PENDING.value),
            host_level=data.get('hostLevel', HostLevel.NEW.value),
            verification=HostVerification(
                **{name: bool(verification.get(name)) for name in HOST_VERIFICATION_FIELDS}
            ),
            business_metrics=BusinessMetrics(
                property_count=metrics.get('propertyCount', 0),
                total_earnings=metrics.get('totalEarnings', 0),
                average_rating=metrics.get('averageRating', 0),
                response_rate=metrics.get('responseRate', 0),
                acceptance_rate=metrics.get('acceptanceRate', 0),
                cancellation_rate=metrics.get('cancellationRate', 0),
            ),
            permissions=HostPermissions(
                can_list_properties=bool(permissions.get('canListProperties', False)),
                can_receive_bookings=bool(permissions.get('canReceiveBookings', False)),
                can_withdraw_earnings=bool(permissions.get('canWithdrawEarnings', False)),
                can_modify_pricing=bool(permissions.get('canModifyPricing', True)),
            ),
            payout_setup=bool(data.get('payoutSetup', False)),
            tax_documents=bool(data.get('taxDocuments', False)),
            is_active=data.get('isActive', True) is not False,
            created_at=data.get('createdAt') or _now(),
            last_login=data.get('lastLogin') or _now(),
        )


Claims = Union[EmployeeClaims, GuestClaims, HostClaims]


def claims_kind(raw: Any) -> Optional[str]:
    """
    Name the claims variant selected by the discriminant pair.

    Returns 'employee', 'guest', 'host' or None when the discriminants are
    missing or inconsistent.
    """
    if not isinstance(raw, dict):
        return None
    user_type = raw.get('userType')
    role = raw.get('role')
    if user_type == UserType.EMPLOYEE.value:
        if raw.get('isEmployee') is True and role in {r.value for r in EMPLOYEE_ROLES}:
            return 'employee'
        return None
    if user_type == UserType.CUSTOMER.value and raw.get('isEmployee') is not True:
        if role == UserRole.GUEST.value:
            return 'guest'
        if role == UserRole.HOST.value:
            return 'host'
    return None


def parse_claims(raw: Any) -> Optional[Claims]:
    """
    Parse the active claims variant, or None for an unresolvable record.

    Raises:
        ValidationError: if the discriminants select a variant whose fields
            are malformed
    """
    kind = claims_kind(raw)
    if kind == 'employee':
        return EmployeeClaims.from_dict(raw)
    if kind == 'guest':
        return GuestClaims.from_dict(raw)
    if kind == 'host':
        return HostClaims.from_dict(raw)
    return None


def create_employee_claims(
    employee_id: str,
    role: Union[str, UserRole],
    department: Union[str, Department],
    position: Union[str, Position],
    access_level: int,
    assigned_regions: Optional[List[str]] = None,
    assigned_parishes: Optional[List[str]] = None,
    permissions: Optional[List[Union[str, EmployeePermission]]] = None,
    territorial_access: Optional[Union[str, TerritorialAccess]] = None,
) -> EmployeeClaims:
    """
    Build employee claims, defaulting permissions from the position.

    Positions without a predefined set fall back to the staff permissions.
    """
    position = _coerce_enum(Position, position, "position")
    if permissions is None:
        permissions = PERMISSION_SETS.get(position.value.upper(), PERMISSION_SETS["STAFF"])
    if territorial_access is None:
        territorial_access = TerritorialAccess.REGION if assigned_regions else TerritorialAccess.PARISH
    return EmployeeClaims(
        role=role,
        employee_id=employee_id,
        department=department,
        position=position,
        access_level=access_level,
        assigned_regions=assigned_regions or [],
        assigned_parishes=assigned_parishes or [],
        territorial_access=territorial_access,
        permissions=permissions,
    )


def create_guest_claims(guest_id: str) -> GuestClaims:
    return GuestClaims(guest_id=guest_id)


def create_host_claims(host_id: str) -> HostClaims:
    return HostClaims(host_id=host_id)
