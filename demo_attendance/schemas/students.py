from typing import Optional
from pydantic import BaseModel, Field
from enum import Enum

from demo_attendance.schemas.scoring import HwDoneValue


class WeekRecordInDB(BaseModel):
    week: int
    attended: bool = False
    hw_done: Optional[HwDoneValue] = Field(False, alias="hwDone")
    hw_degree: Optional[str] = Field(None, alias="hwDegree")
    view_homework_video: bool = False
    quiz_degree: Optional[str] = Field(None, alias="quizDegree")
    comment: Optional[str] = None
    message_state: bool = False

    class Config:
        from_attributes = True
        populate_by_name = True


class WatchActionEnum(str, Enum):
    view = "view"
    finish = "finish"


class WatchHomeworkVideoRequest(BaseModel):
    session_id: Optional[int] = None
    # view | finish, checked by the route so the error names both
    action: Optional[str] = None
