"""
Shared fixtures: an in-memory identity provider and sample claims.
"""
import pytest
from unittest.mock import Mock
from typing import Dict, Any, Optional

from config.settings import app_config
from src.errors import ProviderError
from src.identity.caller import CallerContext
from src.identity.provider import AccountRecord, IdentityProvider
from src.utils.logger import AuditLogger
from tests.factories import employee_claims


class InMemoryIdentityProvider(IdentityProvider):
    """Identity provider holding accounts in a dict and counting calls."""

    def __init__(self):
        self.accounts: Dict[str, AccountRecord] = {}
        self.calls = []
        self.failing_gets = set()
        self.failing_claims_writes = 0
        self.create_error: Optional[ProviderError] = None
        self.tokens: Dict[str, Dict[str, Any]] = {}
        self._next_uid = 1

    def add(self, uid: str, email: str = "", display_name: str = "", claims=None, disabled=False):
        self.accounts[uid] = AccountRecord(
            uid=uid,
            email=email or f"{uid}@example.com",
            display_name=display_name,
            disabled=disabled,
            custom_claims=dict(claims or {}),
        )
        return self.accounts[uid]

    def _copy(self, account: AccountRecord) -> AccountRecord:
        return AccountRecord(**{**account.__dict__, 'custom_claims': dict(account.custom_claims)})

    async def list_accounts(self, max_results, page_token=None):
        self.calls.append(('list_accounts', max_results, page_token))
        uids = sorted(self.accounts)
        start = int(page_token or 0)
        batch = uids[start:start + max_results]
        next_token = str(start + max_results) if start + max_results < len(uids) else None
        # Listing omits claims so the service must fetch them per account
        return [AccountRecord(uid=uid, email=self.accounts[uid].email) for uid in batch], next_token

    async def get_account(self, uid):
        self.calls.append(('get_account', uid))
        if uid in self.failing_gets:
            raise ProviderError("auth/internal-error", f"lookup failed for {uid}")
        if uid not in self.accounts:
            raise ProviderError("auth/user-not-found", f"No user record for {uid}")
        return self._copy(self.accounts[uid])

    async def create_account(self, email, display_name, password=None, photo_url=None):
        self.calls.append(('create_account', email))
        if self.create_error:
            raise self.create_error
        uid = f"new-{self._next_uid}"
        self._next_uid += 1
        account = self.add(uid, email=email, display_name=display_name)
        account.photo_url = photo_url
        return self._copy(account)

    async def set_custom_claims(self, uid, claims):
        self.calls.append(('set_custom_claims', uid))
        if self.failing_claims_writes:
            self.failing_claims_writes -= 1
            raise ProviderError("auth/internal-error", "claims write failed")
        if uid not in self.accounts:
            raise ProviderError("auth/user-not-found", f"No user record for {uid}")
        self.accounts[uid].custom_claims = dict(claims)

    async def set_disabled(self, uid, disabled):
        self.calls.append(('set_disabled', uid, disabled))
        if uid not in self.accounts:
            raise ProviderError("auth/user-not-found", f"No user record for {uid}")
        self.accounts[uid].disabled = disabled
        return self._copy(self.accounts[uid])

    async def generate_password_reset_link(self, email):
        self.calls.append(('generate_password_reset_link', email))
        return f"https://example.com/reset?email={email}"

    async def verify_id_token(self, id_token):
        self.calls.append(('verify_id_token',))
        if id_token not in self.tokens:
            raise ProviderError("auth/invalid-id-token", "Invalid token")
        return dict(self.tokens[id_token])

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
def provider():
    return InMemoryIdentityProvider()


@pytest.fixture
def audit():
    return AuditLogger(Mock())


@pytest.fixture
def admin_caller():
    return CallerContext(uid="admin-1", claims={'role': 'admin', 'userType': 'employee', 'isEmployee': True})


@pytest.fixture
def super_admin_caller():
    return CallerContext(uid="root-1", claims={'role': 'super_admin', 'userType': 'employee', 'isEmployee': True})


@pytest.fixture
def staff_reader():
    """Staff member holding read_users."""
    return CallerContext(uid="reader-1", claims=employee_claims(employee_id="EMP900"))


@pytest.fixture
def guest_caller():
    return CallerContext(uid="guest-1", claims={'role': 'guest', 'userType': 'customer', 'isEmployee': False})


@pytest.fixture
def mock_firestore():
    """Firestore mirror whose writes all succeed."""
    client = Mock()
    client.mirror_user_claims.return_value = True
    client.create_employee_profile.return_value = True
    client.update_employee_profile.return_value = True
    return client


@pytest.fixture
def mock_notifier():
    notifier = Mock()
    notifier.send_welcome.return_value = True
    return notifier


@pytest.fixture(autouse=True)
def no_claims_backoff(monkeypatch):
    """Claims attachment retries run without waiting."""
    monkeypatch.setattr(app_config, "claims_attach_backoff", 0)
