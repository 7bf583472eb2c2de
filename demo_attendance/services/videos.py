import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from demo_attendance.models.homeworks_videos import HomeworkVideoSession
from demo_attendance.schemas.homeworks_videos import (
    HomeworkVideoSessionCreate, SessionPaymentStateEnum
)
from demo_attendance.services.vhc import format_created_date

logger = logging.getLogger(__name__)

YOUTUBE_ID_PATTERN = re.compile(r"(?:youtu\.be/|youtube\.com/(?:watch\?v=|embed/))([a-zA-Z0-9_-]{11})")
SUPPORTED_VIDEO_TYPE = "youtube"


class VideoSessionError(ValueError):
    """Invalid homework video session payload (HTTP 400)."""


def extract_youtube_id(url: str) -> Optional[str]:
    match = YOUTUBE_ID_PATTERN.search(url or "")
    return match.group(1) if match else None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def build_video_list(data: HomeworkVideoSessionCreate) -> List[Dict[str, Any]]:
    """
    Normalise the ``videos`` list (or the older ``video_urls`` list) into
    stored video entries. Only YouTube videos are accepted.
    """
    videos = []

    if data.videos:
        for position, video in enumerate(data.videos, start=1):
            if video is None or not video.video_id:
                raise VideoSessionError(f"Invalid video data at position {position}")

            video_id = video.video_id.strip()
            if video.video_type:
                if video.video_type != SUPPORTED_VIDEO_TYPE:
                    raise VideoSessionError(
                        f"Invalid video type at position {position}. Only YouTube is supported."
                    )
            elif "youtube.com" in video_id or "youtu.be" in video_id:
                video_id = extract_youtube_id(video_id)
                if not video_id:
                    raise VideoSessionError(f"Invalid YouTube URL at position {position}")

            videos.append({
                "video_id": video_id,
                "video_type": SUPPORTED_VIDEO_TYPE,
                "video_name": _clean(video.video_name),
            })
    elif data.video_urls:
        for position, url in enumerate(data.video_urls, start=1):
            if not url or not url.strip():
                continue
            video_id = extract_youtube_id(url.strip())
            if not video_id:
                raise VideoSessionError(f"Invalid YouTube URL at position {position}")
            videos.append({"video_id": video_id, "video_type": SUPPORTED_VIDEO_TYPE, "video_name": None})
    else:
        raise VideoSessionError("At least one video is required")

    if not videos:
        raise VideoSessionError("At least one valid video is required")
    return videos


def validate_session_fields(data: HomeworkVideoSessionCreate) -> Dict[str, Any]:
    grade = _clean(data.grade)
    if not grade:
        raise VideoSessionError("Grade is required")

    name = _clean(data.name)
    if not name:
        raise VideoSessionError("Name is required")

    allowed = {state.value for state in SessionPaymentStateEnum}
    if data.payment_state not in allowed:
        raise VideoSessionError(
            'Video Payment State is required and must be "paid", "free", or "free_if_attended"'
        )

    return {
        "week": data.week,
        "grade": grade,
        "payment_state": data.payment_state,
        "name": name,
        "videos": build_video_list(data),
        "description": _clean(data.description),
        "date": format_created_date(datetime.now()),
    }


def serialize_session(session: HomeworkVideoSession) -> Dict[str, Any]:
    """Session as JSON, with each video also exposed as numbered flat keys."""
    payload = {
        "id": session.id,
        "week": session.week,
        "grade": session.grade,
        "payment_state": session.payment_state,
        "name": session.name,
        "description": session.description,
        "date": session.date,
        "videos": list(session.videos or []),
    }
    for position, video in enumerate(session.videos or [], start=1):
        payload[f"video_ID_{position}"] = video.get("video_id")
        payload[f"video_type_{position}"] = video.get("video_type")
        if video.get("video_name"):
            payload[f"video_name_{position}"] = video["video_name"]
    return payload


async def find_conflicting_session(
    db: AsyncSession,
    grade: str,
    week: Optional[int],
    exclude_id: Optional[int] = None,
) -> Optional[HomeworkVideoSession]:
    """Another session for the same grade and week, if any."""
    if week is None:
        return None
    filters = [HomeworkVideoSession.grade == grade, HomeworkVideoSession.week == week]
    if exclude_id is not None:
        filters.append(HomeworkVideoSession.id != exclude_id)
    result = await db.execute(select(HomeworkVideoSession).where(and_(*filters)))
    return result.scalars().first()


async def list_sessions(db: AsyncSession) -> List[HomeworkVideoSession]:
    # Week ascending, newest first within a week
    result = await db.execute(
        select(HomeworkVideoSession).order_by(
            HomeworkVideoSession.week.asc(),
            HomeworkVideoSession.created_at.desc(),
            HomeworkVideoSession.id.desc(),
        )
    )
    return list(result.scalars().all())


async def create_session(db: AsyncSession, data: HomeworkVideoSessionCreate) -> HomeworkVideoSession:
    fields = validate_session_fields(data)
    if await find_conflicting_session(db, fields["grade"], fields["week"]):
        raise VideoSessionError(
            f"A homework video session already exists for grade {fields['grade']} week {fields['week']}"
        )

    session = HomeworkVideoSession(**fields)
    db.add(session)
    await db.commit()
    await db.refresh(session)
    logger.info(f"Homework video session {session.id} created for grade {session.grade}")
    return session


async def update_session(
    db: AsyncSession,
    session_id: int,
    data: HomeworkVideoSessionCreate,
) -> Optional[HomeworkVideoSession]:
    fields = validate_session_fields(data)

    session = await db.get(HomeworkVideoSession, session_id)
    if not session:
        return None

    if await find_conflicting_session(db, fields["grade"], fields["week"], exclude_id=session_id):
        raise VideoSessionError(
            f"A homework video session already exists for grade {fields['grade']} week {fields['week']}"
        )

    for key, value in fields.items():
        setattr(session, key, value)

    await db.commit()
    await db.refresh(session)
    return session


async def delete_session(db: AsyncSession, session_id: int) -> bool:
    session = await db.get(HomeworkVideoSession, session_id)
    if not session:
        return False
    await db.delete(session)
    await db.commit()
    return True
