"""
Capability predicates over an already-fetched claims record.

Predicates accept a raw custom-claims dictionary (as decoded from an ID
token), one of the claims dataclasses, or anything else. Missing fields,
wrong types and wrong discriminants all answer False; no predicate raises.
"""
from collections.abc import Mapping
from typing import Any, Iterable, Union

from .models import EmployeePermission, UserRole, UserType, TerritorialAccess

ADMIN_ROLES = frozenset({UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value})
STAFF_PORTAL_ROLES = frozenset({UserRole.STAFF.value}) | ADMIN_ROLES

DIRECTORY_PERMISSIONS = frozenset({
    EmployeePermission.READ_USERS.value,
    EmployeePermission.MANAGE_STAFF.value,
})
STAFF_MANAGEMENT_PERMISSIONS = frozenset({EmployeePermission.MANAGE_STAFF.value})

Token = Union[str, EmployeePermission]


def _as_mapping(claims: Any) -> Mapping:
    if isinstance(claims, Mapping):
        return claims
    to_dict = getattr(claims, "to_dict", None)
    if callable(to_dict):
        try:
            data = to_dict()
        except Exception:
            return {}
        return data if isinstance(data, Mapping) else {}
    return {}


def _token_value(token: Any) -> Any:
    return token.value if isinstance(token, EmployeePermission) else token


def _contains(collection: Any, value: Any) -> bool:
    if not isinstance(collection, (list, tuple, set, frozenset)):
        return False
    try:
        return value in collection
    except TypeError:
        return False


def _granted(claims: Mapping, tokens: Iterable[str]) -> bool:
    """Any of ``tokens`` in permissions or customPermissions."""
    for key in ("permissions", "customPermissions"):
        values = claims.get(key)
        if any(_contains(values, token) for token in tokens):
            return True
    return False


def is_employee(claims: Any) -> bool:
    data = _as_mapping(claims)
    return data.get("isEmployee") is True and data.get("userType") == UserType.EMPLOYEE.value


def is_guest(claims: Any) -> bool:
    data = _as_mapping(claims)
    return data.get("role") == UserRole.GUEST.value and data.get("userType") == UserType.CUSTOMER.value


def is_host(claims: Any) -> bool:
    data = _as_mapping(claims)
    return data.get("role") == UserRole.HOST.value and data.get("userType") == UserType.CUSTOMER.value


def is_admin(claims: Any) -> bool:
    return _as_mapping(claims).get("role") in ADMIN_ROLES


def has_permission(claims: Any, token: Token) -> bool:
    data = _as_mapping(claims)
    if not is_employee(data):
        return False
    return _contains(data.get("permissions"), _token_value(token))


def has_access_level(claims: Any, min_level: int) -> bool:
    data = _as_mapping(claims)
    if not is_employee(data):
        return False
    level = data.get("accessLevel")
    if isinstance(level, bool) or not isinstance(level, (int, float)):
        return False
    if isinstance(min_level, bool) or not isinstance(min_level, (int, float)):
        return False
    return level >= min_level


def _has_territory(claims: Any, key: str, value: Any) -> bool:
    data = _as_mapping(claims)
    if not is_employee(data):
        return False
    if data.get("territorialAccess") == TerritorialAccess.NATIONAL.value:
        return True
    return _contains(data.get(key), value)


def has_regional_access(claims: Any, region: str) -> bool:
    return _has_territory(claims, "assignedRegions", region)


def has_parish_access(claims: Any, parish: str) -> bool:
    return _has_territory(claims, "assignedParishes", parish)


def can_access_admin_portal(claims: Any) -> bool:
    data = _as_mapping(claims)
    return is_employee(data) and data.get("role") in ADMIN_ROLES


def can_access_staff_portal(claims: Any) -> bool:
    data = _as_mapping(claims)
    return is_employee(data) and data.get("role") in STAFF_PORTAL_ROLES


def is_verified_host(claims: Any) -> bool:
    data = _as_mapping(claims)
    if not is_host(data):
        return False
    verification = data.get("verificationStatus")
    if not isinstance(verification, Mapping):
        return False
    return all(verification.get(name) is True for name in ("email", "phone", "identity", "business"))


def is_verified_guest(claims: Any) -> bool:
    data = _as_mapping(claims)
    if not is_guest(data):
        return False
    verification = data.get("verificationStatus")
    if not isinstance(verification, Mapping):
        return False
    return verification.get("email") is True and verification.get("phone") is True


def can_view_employees(claims: Any) -> bool:
    """Caller may read the employee directory."""
    data = _as_mapping(claims)
    return data.get("role") in ADMIN_ROLES or _granted(data, DIRECTORY_PERMISSIONS)


def can_manage_employees(claims: Any) -> bool:
    """Caller may create employees and change other accounts' claims."""
    data = _as_mapping(claims)
    return data.get("role") in ADMIN_ROLES or _granted(data, STAFF_MANAGEMENT_PERMISSIONS)


def portal_access(claims: Any) -> dict:
    """Summary of the portals and capability flags a claims record opens."""
    data = _as_mapping(claims)
    return {
        "isEmployee": is_employee(data),
        "isGuest": is_guest(data),
        "isHost": is_host(data),
        "canAccessAdminPortal": can_access_admin_portal(data),
        "canAccessStaffPortal": can_access_staff_portal(data),
        "canViewEmployees": can_view_employees(data),
        "canManageEmployees": can_manage_employees(data),
    }
