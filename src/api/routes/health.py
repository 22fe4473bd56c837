"""
Liveness endpoint; the only route that needs no bearer token.
"""
from typing import Dict

from fastapi import APIRouter

from ..config import settings
from ..models import HealthResponse
from config.settings import firebase_config


router = APIRouter(prefix="/health", tags=["health"])


def firebase_status() -> Dict[str, str]:
    """Configuration state of the Firebase backends, without calling them."""
    if firebase_config.use_emulator:
        credentials = "emulator"
    elif firebase_config.credentials_json or firebase_config.credentials_file:
        credentials = "service_account"
    else:
        credentials = "application_default"
    return {
        "identity_provider": "firebase_auth",
        "credentials": credentials,
        "project": firebase_config.project_id or "unset",
    }


@router.get(
    "",
    response_model=HealthResponse,
    summary="Liveness check",
    responses={200: {"description": "Service is up"}}
)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        dependencies=firebase_status()
    )
