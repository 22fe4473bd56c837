"""
Dependency injection and service container for FastAPI application.
"""
from functools import lru_cache
from fastapi import Depends

from ..firebase_sync.firestore_client import FirestoreClient
from ..identity.provider import FirebaseIdentityProvider, IdentityProvider
from ..notifications.notifier import StaffNotifier
from ..utils.logger import setup_logger, AuditLogger
from .config import settings


_logger = None


def get_logger():
    """Get application logger instance."""
    global _logger
    if _logger is None:
        _logger = setup_logger("fastapi_app", settings.log_level)
    return _logger


@lru_cache(maxsize=1)
def get_identity_provider() -> IdentityProvider:
    """Get identity provider instance with caching."""
    return FirebaseIdentityProvider()


@lru_cache(maxsize=1)
def get_firestore_client() -> FirestoreClient:
    """Get Firestore mirror client with caching."""
    return FirestoreClient()


@lru_cache(maxsize=1)
def get_notifier() -> StaffNotifier:
    return StaffNotifier()


@lru_cache(maxsize=1)
def get_audit_logger() -> AuditLogger:
    return AuditLogger(get_logger())


def get_employee_service(
    provider: IdentityProvider = Depends(get_identity_provider),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Employee directory service bound to the current providers."""
    from .services.employee_service import EmployeeDirectoryService
    return EmployeeDirectoryService(provider, audit=audit)


def get_claims_service(
    provider: IdentityProvider = Depends(get_identity_provider),
    firestore: FirestoreClient = Depends(get_firestore_client),
    notifier: StaffNotifier = Depends(get_notifier),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Claims mutation service bound to the current providers."""
    from .services.claims_service import ClaimsMutationService
    return ClaimsMutationService(provider, firestore=firestore, notifier=notifier, audit=audit)


def reset_dependencies():
    """Drop cached instances (used on shutdown)."""
    global _logger
    _logger = None
    get_identity_provider.cache_clear()
    get_firestore_client.cache_clear()
    get_notifier.cache_clear()
    get_audit_logger.cache_clear()
