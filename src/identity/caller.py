"""
Identity of the account making a request.
"""
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

SYSTEM_UID = "system"


@dataclass(frozen=True)
class CallerContext:
    """Verified caller and its decoded token claims."""
    uid: str
    claims: Dict[str, Any] = field(default_factory=dict)
    email: Optional[str] = None

    @classmethod
    def from_token(cls, decoded: Dict[str, Any]) -> 'CallerContext':
        """Build from a verified ID token payload."""
        uid = decoded.get('uid') or decoded.get('user_id') or decoded.get('sub')
        return cls(uid=uid, claims=dict(decoded), email=decoded.get('email'))

    @classmethod
    def system(cls) -> 'CallerContext':
        """Trusted caller for service-account tooling."""
        return cls(uid=SYSTEM_UID, claims={'role': 'super_admin'})
