"""
Claims endpoints: the caller's own claims and admin claims changes.
"""
from fastapi import APIRouter, Depends, HTTPException

from ...claims import checker
from ...errors import ClaimsServiceError
from ...identity.caller import CallerContext
from ..dependencies import get_claims_service
from ..models import (
    UpdateClaimsRequest, BatchUpdateClaimsRequest, EmployeeClaimsRequest,
    HostVerificationRequest, ClaimsResponse, BatchClaimsResponse, ErrorResponse
)
from ..security.auth import get_caller
from ..services.claims_service import ClaimsMutationService

router = APIRouter(prefix="/claims", tags=["claims"])

ERRORS = {400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 403: {"model": ErrorResponse},
          404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}}


@router.get("/me", response_model=ClaimsResponse, responses={401: {"model": ErrorResponse}})
async def get_my_claims(caller: CallerContext = Depends(get_caller)):
    """Claims from the caller's verified token and the portals they open."""
    return {
        "success": True,
        "message": "Claims retrieved",
        "data": {"uid": caller.uid, "claims": caller.claims, "access": checker.portal_access(caller.claims)},
    }


@router.post("/batch", response_model=BatchClaimsResponse, responses=ERRORS)
async def batch_update_claims(
    payload: BatchUpdateClaimsRequest,
    caller: CallerContext = Depends(get_caller),
    service: ClaimsMutationService = Depends(get_claims_service)
):
    try:
        results = await service.batch_update_claims(
            caller, [(item.uid, item.claims) for item in payload.updates]
        )
        failed = sum(1 for result in results if not result.success)
        message = "Claims updated" if not failed else f"{failed} of {len(results)} updates failed"
        return {"success": failed == 0, "message": message, "data": [r.to_dict() for r in results]}
    except ClaimsServiceError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Failed to update claims", "details": {"error": str(e)}})


@router.patch("/{uid}", response_model=ClaimsResponse, responses=ERRORS)
async def update_claims(
    uid: str,
    payload: UpdateClaimsRequest,
    caller: CallerContext = Depends(get_caller),
    service: ClaimsMutationService = Depends(get_claims_service)
):
    try:
        claims = await service.update_claims(caller, uid, payload.updates)
        return {"success": True, "message": "Claims updated", "data": claims}
    except ClaimsServiceError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Failed to update claims", "details": {"error": str(e)}})


@router.post("/{uid}/employee", response_model=ClaimsResponse, responses=ERRORS)
async def set_employee_claims(
    uid: str,
    payload: EmployeeClaimsRequest,
    caller: CallerContext = Depends(get_caller),
    service: ClaimsMutationService = Depends(get_claims_service)
):
    try:
        claims = await service.set_employee_claims(caller, uid, payload.employee_data)
        return {"success": True, "message": "Employee claims set successfully", "data": claims}
    except ClaimsServiceError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Failed to set employee claims", "details": {"error": str(e)}})


@router.post("/{uid}/host", response_model=ClaimsResponse, responses=ERRORS)
async def set_host_claims(
    uid: str,
    caller: CallerContext = Depends(get_caller),
    service: ClaimsMutationService = Depends(get_claims_service)
):
    try:
        claims = await service.set_host_claims(caller, uid)
        return {"success": True, "message": "Host claims set successfully", "data": claims}
    except ClaimsServiceError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Failed to set host claims", "details": {"error": str(e)}})


@router.post("/{uid}/guest", response_model=ClaimsResponse, responses=ERRORS)
async def set_guest_claims(
    uid: str,
    caller: CallerContext = Depends(get_caller),
    service: ClaimsMutationService = Depends(get_claims_service)
):
    try:
        claims = await service.set_guest_claims(caller, uid)
        return {"success": True, "message": "Guest claims set successfully", "data": claims}
    except ClaimsServiceError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Failed to set guest claims", "details": {"error": str(e)}})


@router.post("/{uid}/host-verification", response_model=ClaimsResponse, responses=ERRORS)
async def verify_host_documentation(
    uid: str,
    payload: HostVerificationRequest,
    caller: CallerContext = Depends(get_caller),
    service: ClaimsMutationService = Depends(get_claims_service)
):
    try:
        claims = await service.verify_host_documentation(
            caller, uid, payload.verification_type, payload.approved
        )
        return {"success": True, "message": "Host verification updated", "data": claims}
    except ClaimsServiceError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Failed to verify host documentation", "details": {"error": str(e)}})
