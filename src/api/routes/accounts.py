"""
Account administration endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException

from ...errors import ClaimsServiceError
from ...identity.caller import CallerContext
from ..dependencies import get_claims_service
from ..models import AccountDisabledRequest, AccountResponse, ErrorResponse
from ..security.auth import get_caller
from ..services.claims_service import ClaimsMutationService

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.put(
    "/{uid}/disabled",
    response_model=AccountResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def set_account_disabled(
    uid: str,
    payload: AccountDisabledRequest,
    caller: CallerContext = Depends(get_caller),
    service: ClaimsMutationService = Depends(get_claims_service)
):
    try:
        account = await service.set_account_disabled(caller, uid, payload.disabled)
        message = "Account disabled" if payload.disabled else "Account enabled"
        return {"success": True, "message": message, "data": account.to_dict()}
    except ClaimsServiceError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Failed to update account", "details": {"error": str(e)}})
