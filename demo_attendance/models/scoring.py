from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, CheckConstraint
from demo_attendance.database import Base

# Scoring rule table entry
class ScoringCondition(Base):
    __tablename__ = "scoring_system_conditions"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(20), nullable=False)
    with_degree = Column(Boolean, nullable=True)
    rules = Column(JSON, nullable=False)
    bonus_rules = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        CheckConstraint("type IN ('attendance', 'homework', 'quiz')", name="check_scoring_condition_type"),
    )

# One applied score change
class ScoringHistory(Base):
    __tablename__ = "scoring_system_history"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    process_id = Column(String(100), nullable=False)
    process_name = Column(String(255))
    process_week = Column(Integer, nullable=True)
    score_before_process = Column(Integer, nullable=False, default=0)
    score_added = Column(Integer, nullable=False, default=0)
    score_after_process = Column(Integer, nullable=False, default=0)
    type = Column(String(20), nullable=False)
    data = Column(JSON)
    bonus_points = Column(Integer, nullable=False, default=0)
    bonus_weeks = Column(JSON, nullable=False, default=list)
    base_points = Column(Integer, nullable=False, default=0)
    timestamp = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
