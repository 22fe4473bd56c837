"""
Identity provider boundary.
"""

from .provider import AccountRecord, IdentityProvider, FirebaseIdentityProvider

__all__ = ['AccountRecord', 'IdentityProvider', 'FirebaseIdentityProvider']
