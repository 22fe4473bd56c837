"""
Identity provider boundary.

The directory and mutation services only talk to ``IdentityProvider``; the
Firebase Authentication adapter below is the production implementation.
Firebase has no server-side filtering of accounts, so callers enumerate.
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple

from firebase_admin import auth, exceptions as firebase_exceptions

from ..errors import ProviderError
from ..firebase_sync.app import get_firebase_app
from ..utils.logger import get_logger


@dataclass
class AccountRecord:
    """Identity record owned by the provider."""
    uid: str
    email: str = ""
    display_name: str = ""
    photo_url: Optional[str] = None
    email_verified: bool = False
    disabled: bool = False
    creation_time: str = ""
    last_sign_in_time: str = ""
    custom_claims: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_user_record(cls, record: Any) -> 'AccountRecord':
        """Build from a ``firebase_admin.auth.UserRecord``."""
        metadata = record.user_metadata
        return cls(
            uid=record.uid,
            email=record.email or "",
            display_name=record.display_name or "",
            photo_url=record.photo_url,
            email_verified=bool(record.email_verified),
            disabled=bool(record.disabled),
            creation_time=_millis_to_iso(metadata.creation_timestamp if metadata else None),
            last_sign_in_time=_millis_to_iso(metadata.last_sign_in_timestamp if metadata else None),
            custom_claims=dict(record.custom_claims or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Directory wire form of the account."""
        return {
            'uid': self.uid,
            'email': self.email,
            'displayName': self.display_name,
            'photoURL': self.photo_url,
            'emailVerified': self.email_verified,
            'disabled': self.disabled,
            'metadata': {
                'creationTime': self.creation_time,
                'lastSignInTime': self.last_sign_in_time,
            },
            'customClaims': dict(self.custom_claims),
        }


def _millis_to_iso(value: Optional[int]) -> str:
    if not value:
        return ""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()


class IdentityProvider(ABC):
    """Account and claims primitives consumed by the services."""

    @abstractmethod
    async def list_accounts(
        self, max_results: int, page_token: Optional[str] = None
    ) -> Tuple[List[AccountRecord], Optional[str]]:
        """One page of accounts plus the token of the next page (None at the end)."""

    @abstractmethod
    async def get_account(self, uid: str) -> AccountRecord:
        """Fresh account record including its custom claims."""

    @abstractmethod
    async def create_account(
        self,
        email: str,
        display_name: str,
        password: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> AccountRecord:
        """Create an unverified account."""

    @abstractmethod
    async def set_custom_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        """Replace the account's custom claims."""

    @abstractmethod
    async def set_disabled(self, uid: str, disabled: bool) -> AccountRecord:
        """Soft-disable or re-enable an account."""

    @abstractmethod
    async def generate_password_reset_link(self, email: str) -> str:
        """Link the new account holder uses to choose a password."""

    @abstractmethod
    async def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        """Verify a bearer ID token and return its decoded claims."""


def translate_auth_error(error: Exception) -> Exception:
    """Map Firebase Admin exceptions onto provider error codes."""
    if isinstance(error, auth.EmailAlreadyExistsError):
        return ProviderError("auth/email-already-exists", str(error))
    if isinstance(error, auth.UserNotFoundError):
        return ProviderError("auth/user-not-found", str(error))
    if isinstance(error, auth.ExpiredIdTokenError):
        return ProviderError("auth/id-token-expired", str(error))
    if isinstance(error, auth.RevokedIdTokenError):
        return ProviderError("auth/id-token-revoked", str(error))
    if isinstance(error, auth.InvalidIdTokenError):
        return ProviderError("auth/invalid-id-token", str(error))
    if isinstance(error, ValueError):
        message = str(error)
        lowered = message.lower()
        if "email" in lowered:
            return ProviderError("auth/invalid-email", message)
        if "password" in lowered:
            return ProviderError("auth/weak-password", message)
        return ProviderError("auth/invalid-argument", message)
    if isinstance(error, firebase_exceptions.FirebaseError):
        code = (error.code or "unknown").lower().replace("_", "-")
        return ProviderError(f"auth/{code}", str(error))
    return error


class FirebaseIdentityProvider(IdentityProvider):
    """Firebase Authentication adapter; SDK calls run off the event loop."""

    def __init__(self):
        self.logger = get_logger("firebase_identity")
        self._app = None

    @property
    def app(self):
        if self._app is None:
            self._app = get_firebase_app()
        return self._app

    async def _call(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, app=self.app, **kwargs)
        except Exception as e:
            translated = translate_auth_error(e)
            if translated is e:
                raise
            raise translated from e

    async def list_accounts(self, max_results, page_token=None):
        page = await self._call(auth.list_users, page_token=page_token, max_results=max_results)
        accounts = [AccountRecord.from_user_record(user) for user in page.users]
        return accounts, page.next_page_token or None

    async def get_account(self, uid):
        record = await self._call(auth.get_user, uid)
        return AccountRecord.from_user_record(record)

    async def create_account(self, email, display_name, password=None, photo_url=None):
        kwargs: Dict[str, Any] = {
            'email': email,
            'display_name': display_name,
            'email_verified': False,
        }
        if password:
            kwargs['password'] = password
        if photo_url:
            kwargs['photo_url'] = photo_url
        record = await self._call(auth.create_user, **kwargs)
        self.logger.info("Created account", uid=record.uid)
        return AccountRecord.from_user_record(record)

    async def set_custom_claims(self, uid, claims):
        await self._call(auth.set_custom_user_claims, uid, claims)

    async def set_disabled(self, uid, disabled):
        record = await self._call(auth.update_user, uid, disabled=disabled)
        return AccountRecord.from_user_record(record)

    async def generate_password_reset_link(self, email):
        return await self._call(auth.generate_password_reset_link, email)

    async def verify_id_token(self, id_token):
        return await self._call(auth.verify_id_token, id_token)
