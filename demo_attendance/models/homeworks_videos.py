from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, CheckConstraint
from sqlalchemy.sql import func
from demo_attendance.database import Base

# Per-grade, per-week bundle of homework videos
class HomeworkVideoSession(Base):
    __tablename__ = "homeworks_videos"

    id = Column(Integer, primary_key=True, index=True)
    week = Column(Integer, nullable=True)
    grade = Column(String(50), nullable=False)
    payment_state = Column(String(20), nullable=False)
    name = Column(String(255), nullable=False)
    # [{"video_id": ..., "video_type": "youtube", "video_name": ...}, ...]
    videos = Column(JSON, nullable=False, default=list)
    description = Column(Text)
    date = Column(String(50))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("payment_state IN ('paid', 'free', 'free_if_attended')", name="check_session_payment_state"),
    )
