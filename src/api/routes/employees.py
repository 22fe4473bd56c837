"""
Employee directory endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException

from ...errors import ClaimsServiceError
from ...identity.caller import CallerContext
from ..dependencies import get_employee_service, get_claims_service
from ..models import (
    GetEmployeesRequest, SearchEmployeesRequest, CreateEmployeeRequest,
    EmployeePageResponse, EmployeeResponse, EmployeeStatsResponse, ErrorResponse
)
from ..security.auth import get_caller
from ..services.claims_service import ClaimsMutationService
from ..services.employee_service import EmployeeDirectoryService, EmployeeFilters

router = APIRouter(prefix="/employees", tags=["employees"])

ERRORS = {400: {"model": ErrorResponse}, 401: {"model": ErrorResponse},
          403: {"model": ErrorResponse}, 502: {"model": ErrorResponse}}


def _filters(request) -> EmployeeFilters:
    if request.filters is None:
        return EmployeeFilters()
    return EmployeeFilters.from_dict(request.filters.model_dump(by_alias=True, exclude_none=True))


@router.post("/query", response_model=EmployeePageResponse, responses=ERRORS)
async def get_employees(
    payload: GetEmployeesRequest,
    caller: CallerContext = Depends(get_caller),
    service: EmployeeDirectoryService = Depends(get_employee_service)
):
    """Filtered, sorted and paginated employee listing."""
    try:
        page = await service.get_employees(
            caller,
            filters=_filters(payload),
            page_size=payload.page_size,
            last_doc_id=payload.last_doc_id,
            order_by=payload.order_by,
            order_direction=payload.order_direction,
        )
        return {"success": True, "message": "Employees retrieved", "data": page.to_dict()}
    except ClaimsServiceError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Failed to fetch employees", "details": {"error": str(e)}})


@router.post("/search", response_model=EmployeePageResponse, responses=ERRORS)
async def search_employees(
    payload: SearchEmployeesRequest,
    caller: CallerContext = Depends(get_caller),
    service: EmployeeDirectoryService = Depends(get_employee_service)
):
    try:
        page = await service.search_employees(
            caller, payload.search_term, filters=_filters(payload), page_size=payload.page_size
        )
        data = {"employees": page.to_dict()["employees"], "totalCount": page.total_count}
        return {"success": True, "message": "Search completed", "data": data}
    except ClaimsServiceError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Failed to search employees", "details": {"error": str(e)}})


@router.get("/stats", response_model=EmployeeStatsResponse, responses=ERRORS)
async def get_employee_stats(
    caller: CallerContext = Depends(get_caller),
    service: EmployeeDirectoryService = Depends(get_employee_service)
):
    try:
        stats = await service.get_employee_stats(caller)
        return {"success": True, "message": "Employee statistics retrieved", "data": stats}
    except ClaimsServiceError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Failed to fetch employee statistics", "details": {"error": str(e)}})


@router.get("/{uid}", response_model=EmployeeResponse, responses={**ERRORS, 404: {"model": ErrorResponse}})
async def get_employee_by_id(
    uid: str,
    caller: CallerContext = Depends(get_caller),
    service: EmployeeDirectoryService = Depends(get_employee_service)
):
    try:
        employee = await service.get_employee_by_id(caller, uid)
        return {"success": True, "message": "Employee retrieved", "data": employee.to_dict()}
    except ClaimsServiceError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Failed to fetch employee", "details": {"error": str(e)}})


@router.post("", status_code=201, response_model=EmployeeResponse, responses={**ERRORS, 409: {"model": ErrorResponse}})
async def create_employee(
    payload: CreateEmployeeRequest,
    caller: CallerContext = Depends(get_caller),
    service: ClaimsMutationService = Depends(get_claims_service)
):
    """Create an employee account with its claims attached."""
    try:
        result = await service.create_employee_account(
            caller,
            email=payload.email,
            display_name=payload.display_name,
            custom_claims=payload.custom_claims,
            password=payload.password,
            photo_url=payload.photo_url,
            send_welcome_email=payload.send_welcome_email,
        )
        return {"success": True, "message": result.message, "data": result.employee.to_dict()}
    except ClaimsServiceError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Failed to create employee", "details": {"error": str(e)}})
