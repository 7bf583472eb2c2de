from fastapi import APIRouter, Depends, HTTPException, status, Path, Body
from sqlalchemy.ext.asyncio import AsyncSession

from demo_attendance.database import get_db
from demo_attendance.models.students import Student
from demo_attendance.models.homeworks_videos import HomeworkVideoSession
from demo_attendance.middleware.authentication import allow_all_roles, ensure_own_student
from demo_attendance.schemas.users import TokenData
from demo_attendance.schemas.students import WatchHomeworkVideoRequest, WatchActionEnum, WeekRecordInDB
from demo_attendance.services.weeks import mark_homework_video_viewed

router = APIRouter()

@router.post("/students/{student_id}/watch-homework-video")
async def watch_homework_video(
    student_id: int = Path(..., gt=0),
    watch_data: WatchHomeworkVideoRequest = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_all_roles)
):
    """
    Record a student opening or finishing a homework video.

    Finishing marks the session's week as watched; opening records nothing.
    """
    ensure_own_student(current_user, student_id, "Forbidden: You can only update your own data")

    if not watch_data.session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session ID is required"
        )

    student = await db.get(Student, student_id)
    if not student:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found"
        )

    session = await db.get(HomeworkVideoSession, watch_data.session_id)
    if not session:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Homework video session not found"
        )

    if watch_data.action == WatchActionEnum.view.value:
        return {"success": True, "message": "Video view recorded"}

    if watch_data.action != WatchActionEnum.finish.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid action. Use "view" or "finish"'
        )

    week_record = None
    if session.week is not None:
        record = await mark_homework_video_viewed(db, student_id, session.week)
        await db.commit()
        await db.refresh(record)
        week_record = WeekRecordInDB.model_validate(record).model_dump(by_alias=True)

    return {
        "success": True,
        "message": "Homework video marked as viewed",
        "week_record": week_record,
    }
