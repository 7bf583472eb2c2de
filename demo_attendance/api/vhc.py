from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Body
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from demo_attendance.database import get_db
from demo_attendance.models.vhc import VHCCode
from demo_attendance.middleware.authentication import allow_staff, allow_all_roles
from demo_attendance.schemas.users import TokenData
from demo_attendance.schemas.vhc import (
    VHCCreate,
    VHCUpdate,
    VHCListResponse,
    VHCCreateResponse,
    VHCCheckRequest,
    VHCDecrementRequest,
)
from demo_attendance.services.vhc import (
    VHCValidationError,
    VHCGenerationError,
    VoucherRejected,
    VoucherTargetNotFound,
    create_vouchers,
    list_vouchers,
    update_voucher,
    check_voucher,
    decrement_views,
)

router = APIRouter()


def _rejection(message: str, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "valid": False, "error": message}
    )


async def _get_voucher_or_404(db: AsyncSession, vhc_id: Optional[int]) -> VHCCode:
    if not vhc_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="VHC ID is required"
        )
    vhc = await db.get(VHCCode, vhc_id)
    if not vhc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="VHC record not found"
        )
    return vhc


@router.get("/vhc", response_model=VHCListResponse, response_model_by_alias=True)
async def get_vhc_codes(
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    viewed: Optional[str] = Query(None),
    code_state: Optional[str] = Query(None),
    payment_state: Optional[str] = Query(None),
    sortBy: Optional[str] = Query(None),
    sortOrder: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    """
    List VHC codes. Without page or limit every code is returned.
    """
    vouchers, pagination = await list_vouchers(
        db,
        page=page,
        limit=limit,
        search=search,
        viewed=viewed,
        code_state=code_state,
        payment_state=payment_state,
        sort_by=sortBy,
        sort_order=sortOrder,
    )
    return {"data": vouchers, "pagination": pagination}


@router.post("/vhc", response_model=VHCCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_vhc_codes(
    vhc_data: VHCCreate = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    """
    Create between 1 and 50 codes sharing the same settings.
    """
    try:
        vouchers = await create_vouchers(db, vhc_data, made_by_who=current_user.assistant_id or current_user.id)
    except VHCValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except VHCGenerationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )

    return {
        "success": True,
        "message": f"{len(vouchers)} VHC code(s) created successfully",
        "data": vouchers,
    }


@router.put("/vhc")
async def update_vhc_code(
    id: Optional[int] = Query(None),
    vhc_data: VHCUpdate = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    vhc = await _get_voucher_or_404(db, id)
    try:
        await update_voucher(db, vhc, vhc_data)
    except VHCValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    return {"success": True, "message": "VHC updated successfully"}


@router.delete("/vhc")
async def delete_vhc_code(
    id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    vhc = await _get_voucher_or_404(db, id)
    await db.delete(vhc)
    await db.commit()
    return {"success": True, "message": "VHC deleted successfully"}


@router.post("/vhc/check")
async def check_vhc_code(
    check_data: VHCCheckRequest = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_all_roles)
):
    """
    Validate a code for a homework video session.

    Rejected codes answer 200 with success and valid set to false; only
    malformed input and missing targets use error statuses.
    """
    try:
        vhc = await check_voucher(
            db,
            code=check_data.code,
            session_id=check_data.session_id,
            student_id=current_user.student_id,
        )
    except VHCValidationError as e:
        return _rejection(str(e), status.HTTP_400_BAD_REQUEST)
    except VoucherTargetNotFound as e:
        return _rejection(e.message, status.HTTP_404_NOT_FOUND)
    except VoucherRejected as e:
        return _rejection(e.message)

    return {
        "success": True,
        "valid": True,
        "message": "VHC validated successfully",
        "vhc_id": vhc.id,
        "code_settings": vhc.code_settings,
        "number_of_views": vhc.number_of_views,
        "deadline_date": vhc.deadline_date,
    }


@router.post("/vhc/decrement-views")
async def decrement_vhc_views(
    decrement_data: VHCDecrementRequest = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_all_roles)
):
    """
    Consume one view after playback starts. Deadline codes have nothing to
    consume and always succeed. Students may only consume a code pinned to
    them.
    """
    vhc = await _get_voucher_or_404(db, decrement_data.vhc_id)

    owner = None
    if not current_user.is_staff:
        owner = current_user.student_id
        if owner is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Student ID is required"
            )

    try:
        remaining = await decrement_views(db, vhc, student_id=owner)
    except VoucherRejected as e:
        return _rejection(e.message)

    if remaining is None:
        return {"success": True, "message": "No decrement needed for deadline date codes"}

    return {
        "success": True,
        "message": "Views decremented successfully",
        "number_of_views": remaining,
    }
