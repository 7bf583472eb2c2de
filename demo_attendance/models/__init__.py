# Import all models to ensure they're registered with SQLAlchemy
from demo_attendance.database import Base
from demo_attendance.models.students import Student, WeekRecord
from demo_attendance.models.vhc import VHCCode
from demo_attendance.models.homeworks_videos import HomeworkVideoSession
from demo_attendance.models.scoring import ScoringCondition, ScoringHistory
