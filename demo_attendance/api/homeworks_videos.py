from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Body
from sqlalchemy.ext.asyncio import AsyncSession

from demo_attendance.database import get_db
from demo_attendance.middleware.authentication import allow_staff
from demo_attendance.schemas.users import TokenData
from demo_attendance.schemas.homeworks_videos import (
    HomeworkVideoSessionCreate,
    HomeworkVideoSessionUpdate,
    HomeworkVideoSessionListResponse,
)
from demo_attendance.services.videos import (
    VideoSessionError,
    create_session,
    delete_session,
    list_sessions,
    serialize_session,
    update_session,
)

router = APIRouter()


def _require_id(session_id: Optional[int]) -> int:
    if not session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session ID is required"
        )
    return session_id


@router.get("/homeworks-videos", response_model=HomeworkVideoSessionListResponse)
async def get_homework_video_sessions(
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    sessions = await list_sessions(db)
    return {"sessions": [serialize_session(session) for session in sessions]}


@router.post("/homeworks-videos", status_code=status.HTTP_201_CREATED)
async def create_homework_video_session(
    session_data: HomeworkVideoSessionCreate = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    """
    Create a session of YouTube videos for a grade and week.
    """
    try:
        session = await create_session(db, session_data)
    except VideoSessionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    return {"success": True, "session": serialize_session(session)}


@router.put("/homeworks-videos")
async def update_homework_video_session(
    id: Optional[int] = Query(None),
    session_data: HomeworkVideoSessionUpdate = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    session_id = _require_id(id)
    try:
        session = await update_session(db, session_id, session_data)
    except VideoSessionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    if not session:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found"
        )
    return {"success": True, "message": "Session updated successfully"}


@router.delete("/homeworks-videos")
async def delete_homework_video_session(
    id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    session_id = _require_id(id)
    if not await delete_session(db, session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found"
        )
    return {"success": True, "message": "Session deleted successfully"}
