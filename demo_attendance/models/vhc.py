from sqlalchemy import Column, Integer, String, Boolean, DateTime, CheckConstraint
from sqlalchemy.sql import func
from demo_attendance.database import Base

# Homework video access code
class VHCCode(Base):
    __tablename__ = "vhc_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column("vhc", String(9), unique=True, nullable=False, index=True)
    code_settings = Column(String(20), nullable=False)
    number_of_views = Column(Integer)
    deadline_date = Column(String(10))
    code_state = Column(String(20), nullable=False, default="Activated")
    payment_state = Column(String(20), nullable=False, default="Not Paid")
    viewed = Column(Boolean, nullable=False, default=False)
    viewed_by_who = Column(Integer)
    made_by_who = Column(String(100))
    date = Column(String(50))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("code_settings IN ('number_of_views', 'deadline_date')", name="check_vhc_code_settings"),
        CheckConstraint("code_state IN ('Activated', 'Deactivated')", name="check_vhc_code_state"),
        CheckConstraint("payment_state IN ('Paid', 'Not Paid')", name="check_vhc_payment_state"),
        CheckConstraint("number_of_views IS NULL OR number_of_views >= 0", name="check_vhc_views_not_negative"),
    )
