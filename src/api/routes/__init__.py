"""
API routes and endpoints.
"""

from . import accounts, claims, employees, health

__all__ = ["accounts", "claims", "employees", "health"]
