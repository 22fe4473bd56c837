"""
Employee directory: list, search, inspect and summarize staff accounts.

Only accounts carrying employee claims are ever returned, whatever filters
the caller supplies.
"""
import locale
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple, Callable

from ...claims import checker
from ...errors import (
    AuthenticationError, AuthorizationError, ValidationError,
    NotFoundError, ProviderError, UpstreamProviderError
)
from ...identity.caller import CallerContext
from ...identity.provider import AccountRecord, IdentityProvider
from ...utils.logger import get_logger, AuditLogger
from config.settings import app_config


class FilterField(str, Enum):
    """Filterable employee attributes."""
    DEPARTMENT = "department"
    ROLE = "role"
    POSITION = "position"
    IS_ACTIVE = "isActive"
    ASSIGNED_REGION = "assignedRegion"
    ASSIGNED_PARISH = "assignedParish"
    ACCESS_LEVEL = "accessLevel"
    SEARCH_TERM = "searchTerm"


@dataclass(frozen=True)
class EmployeeFilters:
    """Optional, conjunctive employee filters."""
    department: Optional[str] = None
    role: Optional[str] = None
    position: Optional[str] = None
    is_active: Optional[bool] = None
    assigned_region: Optional[str] = None
    assigned_parish: Optional[str] = None
    access_level: Optional[int] = None
    search_term: Optional[str] = None

    _FIELDS = {
        FilterField.DEPARTMENT: 'department',
        FilterField.ROLE: 'role',
        FilterField.POSITION: 'position',
        FilterField.IS_ACTIVE: 'is_active',
        FilterField.ASSIGNED_REGION: 'assigned_region',
        FilterField.ASSIGNED_PARISH: 'assigned_parish',
        FilterField.ACCESS_LEVEL: 'access_level',
        FilterField.SEARCH_TERM: 'search_term',
    }

    def active(self) -> List[Tuple[FilterField, Any]]:
        """Filters that were supplied, as (field, value) pairs."""
        supplied = []
        for filter_field, attr in self._FIELDS.items():
            value = getattr(self, attr)
            if value is None or value == "":
                continue
            supplied.append((filter_field, value))
        return supplied

    def with_search_term(self, search_term: str) -> 'EmployeeFilters':
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values['search_term'] = search_term
        return EmployeeFilters(**values)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'EmployeeFilters':
        """Build from the camelCase request form; unknown keys are rejected."""
        if not data:
            return cls()
        values = {}
        for key, value in data.items():
            try:
                filter_field = FilterField(key)
            except ValueError:
                raise ValidationError(f"Unknown employee filter '{key}'")
            values[cls._FIELDS[filter_field]] = value
        return cls(**values)


class SortField(str, Enum):
    """Sortable employee attributes."""
    DISPLAY_NAME = "displayName"
    EMAIL = "email"
    UID = "uid"
    CREATION_TIME = "metadata.creationTime"
    LAST_SIGN_IN_TIME = "metadata.lastSignInTime"
    EMPLOYEE_ID = "customClaims.employeeId"
    DEPARTMENT = "customClaims.department"
    POSITION = "customClaims.position"
    ROLE = "customClaims.role"
    ACCESS_LEVEL = "customClaims.accessLevel"

    @classmethod
    def parse(cls, value: Any) -> 'SortField':
        """Accept the dotted wire path or its last segment."""
        if isinstance(value, cls):
            return value
        if value is None or value == "":
            return cls.DISPLAY_NAME
        for member in cls:
            if value in (member.value, member.value.rsplit(".", 1)[-1]):
                return member
        raise ValidationError(f"Unsupported orderBy '{value}'")


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


_SORT_VALUES: Dict[SortField, Callable[[AccountRecord], Any]] = {
    SortField.DISPLAY_NAME: lambda a: a.display_name,
    SortField.EMAIL: lambda a: a.email,
    SortField.UID: lambda a: a.uid,
    SortField.CREATION_TIME: lambda a: a.creation_time,
    SortField.LAST_SIGN_IN_TIME: lambda a: a.last_sign_in_time,
    SortField.EMPLOYEE_ID: lambda a: a.custom_claims.get('employeeId'),
    SortField.DEPARTMENT: lambda a: a.custom_claims.get('department'),
    SortField.POSITION: lambda a: a.custom_claims.get('position'),
    SortField.ROLE: lambda a: a.custom_claims.get('role'),
    SortField.ACCESS_LEVEL: lambda a: a.custom_claims.get('accessLevel'),
}


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _contains(values: Any, item: Any) -> bool:
    return isinstance(values, (list, tuple, set, frozenset)) and item in values


def matches_filter(employee: AccountRecord, filter_field: FilterField, value: Any) -> bool:
    """Whether one employee satisfies one filter."""
    claims = employee.custom_claims
    value = _plain(value)

    if filter_field is FilterField.DEPARTMENT:
        return claims.get('department') == value
    if filter_field is FilterField.ROLE:
        return claims.get('role') == value
    if filter_field is FilterField.POSITION:
        return claims.get('position') == value
    if filter_field is FilterField.IS_ACTIVE:
        return claims.get('isActive') == value
    if filter_field is FilterField.ASSIGNED_REGION:
        return _contains(claims.get('assignedRegions'), value)
    if filter_field is FilterField.ASSIGNED_PARISH:
        return _contains(claims.get('assignedParishes'), value)
    if filter_field is FilterField.ACCESS_LEVEL:
        return claims.get('accessLevel') == value
    if filter_field is FilterField.SEARCH_TERM:
        needle = str(value).lower()
        haystack = (
            employee.email,
            employee.display_name,
            claims.get('employeeId'),
            claims.get('department'),
            claims.get('position'),
        )
        return any(needle in str(item or "").lower() for item in haystack)
    raise ValueError(f"Unhandled filter field {filter_field}")


def matches_filters(employee: AccountRecord, filters: EmployeeFilters) -> bool:
    """All supplied filters hold (AND across fields)."""
    return all(matches_filter(employee, f, v) for f, v in filters.active())


def configure_collation(name: Optional[str] = None) -> bool:
    """
    Select the LC_COLLATE locale used by ``sort_employees``.

    Without this call Python stays in the C locale and names sort by
    case-folded code point.

    Returns:
        True if the locale was applied, False if it is not installed
    """
    name = app_config.collation_locale if name is None else name
    try:
        locale.setlocale(locale.LC_COLLATE, name)
        return True
    except locale.Error as e:
        get_logger("employee_directory").warning(
            "Collation locale unavailable, sorting by code point", locale=name or "<environment>", error=str(e)
        )
        return False


def sort_employees(
    employees: List[AccountRecord],
    order_by: SortField = SortField.DISPLAY_NAME,
    direction: SortDirection = SortDirection.ASC
) -> List[AccountRecord]:
    """Ordering by the LC_COLLATE locale; missing values sort as the empty string."""
    extract = _SORT_VALUES[order_by]

    def key(employee: AccountRecord):
        value = extract(employee)
        text = "" if value is None else str(value)
        return locale.strxfrm(text.casefold()), text, employee.uid

    return sorted(employees, key=key, reverse=direction is SortDirection.DESC)


@dataclass
class DirectoryPage:
    """One page of the filtered, sorted employee set."""
    employees: List[AccountRecord] = field(default_factory=list)
    has_more: bool = False
    total_count: int = 0
    last_doc_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'employees': [employee.to_dict() for employee in self.employees],
            'hasMore': self.has_more,
            'totalCount': self.total_count,
            'lastDocId': self.last_doc_id,
        }


def paginate(
    employees: List[AccountRecord],
    page_size: int,
    last_doc_id: Optional[str] = None
) -> DirectoryPage:
    """Slice the page after ``last_doc_id``; an unknown cursor restarts at 0."""
    start = 0
    if last_doc_id:
        for index, employee in enumerate(employees):
            if employee.uid == last_doc_id:
                start = index + 1
                break

    page = employees[start:start + page_size]
    return DirectoryPage(
        employees=page,
        has_more=start + page_size < len(employees),
        total_count=len(employees),
        last_doc_id=page[-1].uid if page else None,
    )


class EmployeeSource(ABC):
    """Produces the filtered employee set for one request."""

    @abstractmethod
    async def load_employees(self, filters: EmployeeFilters) -> List[AccountRecord]:
        """Every employee account satisfying ``filters``, in any order."""


class EnumeratingEmployeeSource(EmployeeSource):
    """
    Employee source for providers without server-side account queries.

    Lists every account in fixed-size batches, re-fetches each one for its
    current claims, then filters in memory. A failing lookup drops that one
    account from the result.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        audit: Optional[AuditLogger] = None,
        batch_size: Optional[int] = None
    ):
        self.provider = provider
        self.logger = get_logger("employee_source")
        self.audit = audit or AuditLogger(self.logger)
        self.batch_size = batch_size or app_config.list_accounts_batch_size

    async def list_all_accounts(self) -> List[AccountRecord]:
        accounts: List[AccountRecord] = []
        page_token = None
        while True:
            try:
                batch, page_token = await self.provider.list_accounts(self.batch_size, page_token)
            except ProviderError as e:
                raise UpstreamProviderError(f"Failed to list accounts: {e.message}", code=e.code)
            accounts.extend(batch)
            if not page_token:
                break
        return accounts

    async def load_employees(self, filters):
        accounts = await self.list_all_accounts()

        employees = []
        for account in accounts:
            try:
                record = await self.provider.get_account(account.uid)
            except Exception as e:
                self.audit.log_skipped_account(account.uid, e)
                continue

            if not checker.is_employee(record.custom_claims):
                continue
            if matches_filters(record, filters):
                employees.append(record)

        self.logger.info("Employees after filtering",
                         total_accounts=len(accounts),
                         matched=len(employees),
                         filters=[f.value for f, _ in filters.active()])
        return employees


class EmployeeDirectoryService:
    """Read-side employee operations, gated on the caller's claims."""

    def __init__(
        self,
        provider: IdentityProvider,
        source: Optional[EmployeeSource] = None,
        audit: Optional[AuditLogger] = None
    ):
        self.logger = get_logger("employee_directory")
        self.audit = audit or AuditLogger(self.logger)
        self.provider = provider
        self.source = source or EnumeratingEmployeeSource(provider, self.audit)

    def authorize(self, caller: Optional[CallerContext], operation: str):
        """Reject callers without directory access before any provider call."""
        if caller is None or not caller.uid:
            raise AuthenticationError("Authentication required")
        if not checker.can_view_employees(caller.claims):
            self.audit.log_denied(caller.uid, "view_employees", operation)
            raise AuthorizationError(f"Insufficient permissions to {operation}")

    @staticmethod
    def _validate_page_size(page_size: Any) -> int:
        if isinstance(page_size, bool) or not isinstance(page_size, int):
            raise ValidationError("pageSize must be an integer")
        if not 1 <= page_size <= app_config.max_page_size:
            raise ValidationError(f"pageSize must be between 1 and {app_config.max_page_size}")
        return page_size

    async def get_employees(
        self,
        caller: Optional[CallerContext],
        filters: Optional[EmployeeFilters] = None,
        page_size: Optional[int] = None,
        last_doc_id: Optional[str] = None,
        order_by: Any = SortField.DISPLAY_NAME,
        order_direction: Any = SortDirection.ASC
    ) -> DirectoryPage:
        """
        One page of employees matching ``filters``.

        Args:
            caller: Verified caller; needs read_users, manage_staff, admin or
                super_admin
            filters: Conjunctive filters (all optional)
            page_size: Items per page
            last_doc_id: Cursor returned with the previous page
            order_by: Sort field or its wire path (``customClaims.department``)
            order_direction: 'asc' or 'desc'

        Returns:
            DirectoryPage with hasMore, totalCount and the next cursor
        """
        self.authorize(caller, "view employees")
        filters = filters or EmployeeFilters()
        page_size = self._validate_page_size(
            app_config.default_page_size if page_size is None else page_size
        )
        sort_field = SortField.parse(order_by)
        try:
            direction = SortDirection(_plain(order_direction) or SortDirection.ASC.value)
        except ValueError:
            raise ValidationError("orderDirection must be 'asc' or 'desc'")

        employees = await self.source.load_employees(filters)
        ordered = sort_employees(employees, sort_field, direction)
        page = paginate(ordered, page_size, last_doc_id)

        self.logger.info("Employee page served",
                         caller_uid=caller.uid,
                         returned=len(page.employees),
                         total_count=page.total_count,
                         has_more=page.has_more)
        return page

    async def search_employees(
        self,
        caller: Optional[CallerContext],
        search_term: Optional[str],
        filters: Optional[EmployeeFilters] = None,
        page_size: Optional[int] = None
    ) -> DirectoryPage:
        """First page of employees whose identity fields contain ``search_term``."""
        self.authorize(caller, "search employees")
        if not isinstance(search_term, str) or not search_term.strip():
            raise ValidationError("Search term is required")

        filters = (filters or EmployeeFilters()).with_search_term(search_term.strip())
        page_size = self._validate_page_size(
            app_config.default_page_size if page_size is None else page_size
        )

        employees = await self.source.load_employees(filters)
        ordered = sort_employees(employees, SortField.DISPLAY_NAME, SortDirection.ASC)
        return paginate(ordered, page_size)

    async def get_employee_stats(self, caller: Optional[CallerContext]) -> Dict[str, Any]:
        """Headcount breakdowns over every employee."""
        self.authorize(caller, "view employee statistics")
        employees = await self.source.load_employees(EmployeeFilters())
        return compute_employee_stats(employees)

    async def get_employee_by_id(self, caller: Optional[CallerContext], uid: Optional[str]) -> AccountRecord:
        """
        Fetch one employee.

        Raises:
            ValidationError: if uid is missing
            NotFoundError: if the account does not exist or is not an employee
        """
        self.authorize(caller, "view employee details")
        if not uid:
            raise ValidationError("Employee UID is required")

        try:
            record = await self.provider.get_account(uid)
        except ProviderError as e:
            if e.code == "auth/user-not-found":
                raise NotFoundError(f"No account with uid {uid}")
            raise UpstreamProviderError(f"Failed to get employee: {e.message}", code=e.code)

        if not checker.is_employee(record.custom_claims):
            raise NotFoundError("User is not an employee")
        return record


def _numeric(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


def compute_employee_stats(employees: List[AccountRecord]) -> Dict[str, Any]:
    """Totals by activity, role, department, position and region."""
    def is_inactive(employee: AccountRecord) -> bool:
        return employee.custom_claims.get('isActive') is False or employee.disabled

    by_role = {'staff': 0, 'admin': 0, 'super_admin': 0}
    by_department: Dict[str, int] = {}
    by_position: Dict[str, int] = {}
    by_region: Dict[str, int] = {}
    access_total = 0.0

    for employee in employees:
        claims = employee.custom_claims
        role = claims.get('role')
        if role in by_role:
            by_role[role] += 1

        department = claims.get('department') or 'unknown'
        by_department[department] = by_department.get(department, 0) + 1

        position = claims.get('position') or 'unknown'
        by_position[position] = by_position.get(position, 0) + 1

        regions = claims.get('assignedRegions')
        for region in regions if isinstance(regions, list) else []:
            by_region[region] = by_region.get(region, 0) + 1

        access_total += _numeric(claims.get('accessLevel'), 1) or 1

    inactive = sum(1 for employee in employees if is_inactive(employee))
    return {
        'total': len(employees),
        'active': len(employees) - inactive,
        'inactive': inactive,
        'byRole': by_role,
        'byDepartment': by_department,
        'byPosition': by_position,
        'byRegion': by_region,
        'averageAccessLevel': access_total / len(employees) if employees else 0,
    }
