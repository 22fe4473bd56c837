"""
Immutable data models for API responses and requests.

Request bodies use the camelCase field names of the client (``pageSize``,
``lastDocId``, ``customClaims``); snake_case names are accepted as well.
"""
from typing import Optional, Dict, Any, List, Literal
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    """Base for request bodies."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class APIResponse(BaseModel):
    """Base API response model."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool = Field(..., description="Whether the request was successful")
    message: str = Field(..., description="Response message")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Response timestamp")

    @field_serializer('timestamp')
    def serialize_timestamp(self, timestamp: datetime) -> str:
        return timestamp.isoformat()


class ErrorResponse(APIResponse):
    """Error response model."""
    error_code: Optional[str] = Field(None, description="Error code for debugging")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")


class HealthResponse(BaseModel):
    """Health check response model."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Health check timestamp")
    version: str = Field(..., description="API version")
    dependencies: Dict[str, str] = Field(default_factory=dict, description="Dependency statuses")

    @field_serializer('timestamp')
    def serialize_timestamp(self, timestamp: datetime) -> str:
        return timestamp.isoformat()


# Employee directory

class EmployeeFiltersRequest(RequestModel):
    """Optional filters; every supplied field must match."""
    department: Optional[str] = None
    role: Optional[str] = None
    position: Optional[str] = None
    is_active: Optional[bool] = None
    assigned_region: Optional[str] = None
    assigned_parish: Optional[str] = None
    access_level: Optional[int] = None
    search_term: Optional[str] = None


class GetEmployeesRequest(RequestModel):
    filters: Optional[EmployeeFiltersRequest] = None
    page_size: int = Field(50, ge=1, le=1000, description="Employees per page")
    last_doc_id: Optional[str] = Field(None, description="uid of the last employee of the previous page")
    order_by: str = Field("displayName", description="Sort field, e.g. displayName or customClaims.department")
    order_direction: Literal["asc", "desc"] = "asc"


class SearchEmployeesRequest(RequestModel):
    search_term: Optional[str] = None
    filters: Optional[EmployeeFiltersRequest] = None
    page_size: int = Field(50, ge=1, le=1000)


class CreateEmployeeRequest(RequestModel):
    email: Optional[str] = None
    password: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = Field(None, alias="photoURL")
    custom_claims: Optional[Dict[str, Any]] = None
    send_welcome_email: Optional[bool] = None


class EmployeePageResponse(APIResponse):
    """Page of employees with pagination metadata."""
    data: Dict[str, Any] = Field(..., description="employees, hasMore, totalCount and lastDocId")


class EmployeeResponse(APIResponse):
    data: Optional[Dict[str, Any]] = Field(None, description="Employee account and claims")


class EmployeeStatsResponse(APIResponse):
    data: Dict[str, Any] = Field(..., description="Employee statistics")


# Claims

class UpdateClaimsRequest(RequestModel):
    updates: Dict[str, Any] = Field(..., description="Claims fields to merge")


class BatchClaimsItem(RequestModel):
    uid: str
    claims: Dict[str, Any]


class BatchUpdateClaimsRequest(RequestModel):
    updates: List[BatchClaimsItem]


class EmployeeClaimsRequest(RequestModel):
    employee_data: Dict[str, Any]


class HostVerificationRequest(RequestModel):
    verification_type: str = Field(..., description="email, phone, identity, business, tax or property")
    approved: bool


class AccountDisabledRequest(RequestModel):
    disabled: bool


class ClaimsResponse(APIResponse):
    data: Dict[str, Any] = Field(..., description="Claims attached to the account")


class BatchClaimsResponse(APIResponse):
    data: List[Dict[str, Any]] = Field(..., description="Per-account results")


class AccountResponse(APIResponse):
    data: Dict[str, Any] = Field(..., description="Account record")
