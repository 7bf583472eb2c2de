from typing import Optional

from sqlalchemy import and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from demo_attendance.models.students import WeekRecord


async def get_week_record(db: AsyncSession, student_id: int, week: int) -> Optional[WeekRecord]:
    result = await db.execute(
        select(WeekRecord).where(
            and_(
                WeekRecord.student_id == student_id,
                WeekRecord.week == week
            )
        )
    )
    return result.scalars().first()


async def mark_homework_video_viewed(db: AsyncSession, student_id: int, week: int) -> WeekRecord:
    """
    Set view_homework_video on the student's record for the week, creating
    the record with default values when the week has none yet.

    The caller owns the transaction and must commit.
    """
    record = await get_week_record(db, student_id, week)

    if record:
        record.view_homework_video = True
    else:
        record = WeekRecord(
            student_id=student_id,
            week=week,
            attended=False,
            hw_done=False,
            view_homework_video=True,
            quiz_degree=None,
            comment=None,
            message_state=False,
        )
        db.add(record)

    await db.flush()
    return record
