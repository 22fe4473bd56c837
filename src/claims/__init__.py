"""
Claims schema, capability checks and the client-side claims session.
"""

from .models import (
    UserRole, UserType, Department, Position, TerritorialAccess,
    EmployeePermission, CreationState, EmployeeClaims, GuestClaims, HostClaims,
    PERMISSION_SETS, CAPABILITY_FLAGS, derive_capability_flags, parse_claims,
    create_employee_claims, create_guest_claims, create_host_claims
)
from . import checker

__all__ = [
    'UserRole', 'UserType', 'Department', 'Position', 'TerritorialAccess',
    'EmployeePermission', 'CreationState', 'EmployeeClaims', 'GuestClaims', 'HostClaims',
    'PERMISSION_SETS', 'CAPABILITY_FLAGS', 'derive_capability_flags', 'parse_claims',
    'create_employee_claims', 'create_guest_claims', 'create_host_claims', 'checker'
]
