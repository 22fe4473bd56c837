"""
Bearer-token authentication for API routes.
"""
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...errors import AuthenticationError, ProviderError
from ...identity.caller import CallerContext
from ...identity.provider import IdentityProvider
from ..dependencies import get_identity_provider

bearer_scheme = HTTPBearer(auto_error=False)


async def verify_bearer_token(provider: IdentityProvider, token: Optional[str]) -> CallerContext:
    """Verify an ID token with the identity provider."""
    if not token:
        raise AuthenticationError("Authentication required")
    try:
        decoded = await provider.verify_id_token(token)
    except ProviderError as e:
        raise AuthenticationError("Invalid or expired token", {"code": e.code})

    caller = CallerContext.from_token(decoded)
    if not caller.uid:
        raise AuthenticationError("Token has no subject")
    return caller


async def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    provider: IdentityProvider = Depends(get_identity_provider)
) -> CallerContext:
    """Route dependency resolving the verified caller."""
    return await verify_bearer_token(provider, credentials.credentials if credentials else None)
