from typing import Optional
from pydantic import BaseModel
from enum import Enum


class RoleEnum(str, Enum):
    admin = "admin"
    developer = "developer"
    assistant = "assistant"
    student = "student"


STAFF_ROLES = [RoleEnum.admin.value, RoleEnum.developer.value, RoleEnum.assistant.value]
ALL_ROLES = STAFF_ROLES + [RoleEnum.student.value]


# Token schemas
class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    """Identity carried by a verified bearer token."""
    id: str
    role: str
    assistant_id: Optional[str] = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def student_id(self) -> Optional[int]:
        # Student accounts carry their numeric student id in assistant_id
        raw = self.assistant_id or self.id
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None
