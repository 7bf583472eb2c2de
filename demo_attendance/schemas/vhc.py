from datetime import datetime
from typing import Any, Optional, List
from pydantic import BaseModel, Field
from enum import Enum


class CodeSettingsEnum(str, Enum):
    number_of_views = "number_of_views"
    deadline_date = "deadline_date"


class CodeStateEnum(str, Enum):
    activated = "Activated"
    deactivated = "Deactivated"


class PaymentStateEnum(str, Enum):
    paid = "Paid"
    not_paid = "Not Paid"


# VHC schemas
class VHCCreate(BaseModel):
    number_of_codes: int = 1
    code_settings: CodeSettingsEnum
    number_of_views: Optional[int] = None
    deadline_date: Optional[str] = None
    code_state: CodeStateEnum


class VHCUpdate(BaseModel):
    code_settings: Optional[CodeSettingsEnum] = None
    number_of_views: Optional[int] = None
    deadline_date: Optional[str] = None
    code_state: Optional[CodeStateEnum] = None
    payment_state: Optional[PaymentStateEnum] = None


class VHCInDB(BaseModel):
    id: int
    code: str = Field(..., alias="VHC")
    code_settings: CodeSettingsEnum
    number_of_views: Optional[int] = None
    deadline_date: Optional[str] = None
    code_state: CodeStateEnum
    payment_state: PaymentStateEnum
    viewed: bool
    viewed_by_who: Optional[int] = None
    made_by_who: Optional[str] = None
    date: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class Pagination(BaseModel):
    currentPage: int
    totalPages: int
    totalCount: int
    hasNextPage: bool
    hasPrevPage: bool


class VHCListResponse(BaseModel):
    data: List[VHCInDB]
    pagination: Optional[Pagination] = None


class VHCCreateResponse(BaseModel):
    success: bool
    message: str
    data: List[VHCInDB]


# Check / consume schemas
class VHCCheckRequest(BaseModel):
    # Typed loosely so services.vhc can answer bad input with the check body
    code: Optional[Any] = Field(None, alias="VHC")
    session_id: Optional[Any] = None

    class Config:
        populate_by_name = True


class VHCDecrementRequest(BaseModel):
    vhc_id: Optional[int] = None
