from sqlalchemy import Column, Integer, String, ForeignKey, Text, Boolean, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from demo_attendance.database import Base

# Student model
class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    grade = Column(String(50))
    main_center = Column(String(100))
    school = Column(String(255))
    # NULL keeps the student out of every ranking group
    score = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    weeks = relationship(
        "WeekRecord",
        back_populates="student",
        order_by="WeekRecord.week",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

# Per-week engagement snapshot
class WeekRecord(Base):
    __tablename__ = "student_weeks"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    week = Column(Integer, nullable=False)
    attended = Column(Boolean, nullable=False, default=False)
    # true | false | "Not Completed" | "No Homework"
    hw_done = Column(JSON, nullable=True, default=False)
    hw_degree = Column(String(50))
    view_homework_video = Column(Boolean, nullable=False, default=False)
    quiz_degree = Column(String(50))
    comment = Column(Text)
    message_state = Column(Boolean, nullable=False, default=False)

    # Relationships
    student = relationship("Student", back_populates="weeks")

    __table_args__ = (
        UniqueConstraint('student_id', 'week', name='uix_student_week'),
    )
