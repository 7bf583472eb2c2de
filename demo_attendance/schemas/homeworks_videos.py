from typing import Optional, List, Dict, Any
from pydantic import BaseModel
from enum import Enum


class SessionPaymentStateEnum(str, Enum):
    paid = "paid"
    free = "free"
    free_if_attended = "free_if_attended"


class VideoInput(BaseModel):
    video_id: Optional[str] = None
    video_type: Optional[str] = None
    video_name: Optional[str] = None


# Fields are checked by services.videos so errors keep their UI wording
class HomeworkVideoSessionCreate(BaseModel):
    name: Optional[str] = None
    grade: Optional[str] = None
    payment_state: Optional[str] = None
    week: Optional[int] = None
    description: Optional[str] = None
    videos: Optional[List[Optional[VideoInput]]] = None
    video_urls: Optional[List[Optional[str]]] = None


class HomeworkVideoSessionUpdate(HomeworkVideoSessionCreate):
    pass


class HomeworkVideoSessionListResponse(BaseModel):
    sessions: List[Dict[str, Any]]
