from datetime import datetime
from typing import Optional, List, Dict, Any, Union, Literal
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum


class ScoringTypeEnum(str, Enum):
    attendance = "attendance"
    homework = "homework"
    quiz = "quiz"


# Homework completion tri-state (plus the "no homework this week" marker)
HwDoneValue = Union[bool, Literal["Not Completed", "No Homework"]]


# Rule schemas
class AttendanceRule(BaseModel):
    key: str
    points: int


class RangeRule(BaseModel):
    min: float = Field(..., ge=0, le=100)
    max: float = Field(..., ge=0, le=100)
    points: int

    @model_validator(mode="after")
    def min_not_above_max(self):
        if self.min > self.max:
            raise ValueError("min must not be greater than max")
        return self


class HwDoneRule(BaseModel):
    hw_done: HwDoneValue = Field(..., alias="hwDone")
    points: int

    class Config:
        populate_by_name = True


class BonusCondition(BaseModel):
    last_n: int = Field(..., alias="lastN", gt=0)
    percentage: Optional[float] = Field(None, ge=0, le=100)
    hw_done: Optional[HwDoneValue] = Field(None, alias="hwDone")

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def needs_one_target(self):
        if self.percentage is None and self.hw_done is None:
            raise ValueError("bonus condition needs a percentage or an hwDone value")
        return self


class BonusRule(BaseModel):
    key: Optional[str] = None
    condition: BonusCondition
    points: int


# Scoring condition schemas
class ScoringConditionBase(BaseModel):
    type: ScoringTypeEnum
    with_degree: Optional[bool] = Field(None, alias="withDegree")
    rules: List[Dict[str, Any]] = Field(..., min_length=1)
    bonus_rules: List[BonusRule] = Field(default_factory=list, alias="bonusRules")

    class Config:
        populate_by_name = True

    @field_validator("bonus_rules", mode="before")
    @classmethod
    def null_bonus_rules(cls, v):
        return v or []

    @model_validator(mode="after")
    def rules_match_type(self):
        """Validate every rule against the shape its condition type expects."""
        rule_model = rule_model_for(self.type, self.with_degree)
        self.rules = [
            rule_model.model_validate(rule).model_dump(by_alias=True)
            for rule in self.rules
        ]
        return self

    def stored_bonus_rules(self) -> List[Dict[str, Any]]:
        return [rule.model_dump(by_alias=True, exclude_none=True) for rule in self.bonus_rules]


class ScoringConditionCreate(ScoringConditionBase):
    pass


class ScoringConditionUpdate(ScoringConditionBase):
    id: int


class ScoringConditionDelete(BaseModel):
    id: int


class ScoringConditionInDB(BaseModel):
    id: int
    type: ScoringTypeEnum
    with_degree: Optional[bool] = Field(None, alias="withDegree")
    rules: List[Dict[str, Any]]
    bonus_rules: List[Dict[str, Any]] = Field(default_factory=list, alias="bonusRules")

    class Config:
        from_attributes = True
        populate_by_name = True


def rule_model_for(type_, with_degree: Optional[bool]):
    if type_ == ScoringTypeEnum.attendance:
        return AttendanceRule
    if type_ == ScoringTypeEnum.homework and not with_degree:
        return HwDoneRule
    return RangeRule


# Score calculation schemas
class ScoreData(BaseModel):
    status: Optional[str] = None
    previous_status: Optional[str] = Field(None, alias="previousStatus")
    percentage: Optional[float] = None
    previous_percentage: Optional[float] = Field(None, alias="previousPercentage")
    hw_done: Optional[HwDoneValue] = Field(None, alias="hwDone")
    previous_hw_done: Optional[HwDoneValue] = Field(None, alias="previousHwDone")
    reverse_only: bool = Field(False, alias="reverseOnly")
    auto_reverse_homework: bool = Field(True, alias="autoReverseHomework")
    auto_reverse_quiz: bool = Field(True, alias="autoReverseQuiz")

    class Config:
        populate_by_name = True


class ScoreCalculationRequest(BaseModel):
    student_id: int = Field(..., alias="studentId")
    type: ScoringTypeEnum
    data: ScoreData = Field(default_factory=ScoreData)
    week: Optional[int] = None

    class Config:
        populate_by_name = True


class ScoreCalculationResponse(BaseModel):
    success: bool
    pointsAdded: int
    basePoints: int
    bonusPoints: int
    previousScore: int
    newScore: int
    processId: Optional[str] = None
    message: Optional[str] = None


class LastHistoryRequest(BaseModel):
    student_id: int = Field(..., alias="studentId")
    type: ScoringTypeEnum
    week: Optional[int] = None

    class Config:
        populate_by_name = True


class ScoringHistoryInDB(BaseModel):
    id: int
    student_id: int
    process_id: str
    process_name: Optional[str] = None
    process_week: Optional[int] = None
    score_before_process: int
    score_added: int
    score_after_process: int
    type: ScoringTypeEnum
    data: Optional[Dict[str, Any]] = None
    bonus_points: int
    bonus_weeks: List[int] = Field(default_factory=list)
    base_points: int
    timestamp: datetime

    class Config:
        from_attributes = True


class LastHistoryResponse(BaseModel):
    success: bool
    found: bool
    history: Optional[ScoringHistoryInDB] = None


# Ranking schemas
class StudentRankingResponse(BaseModel):
    success: bool
    centerRank: Optional[int] = None
    centerTotal: Optional[int] = None
    gradeRank: Optional[int] = None
    gradeTotal: Optional[int] = None
    mainCenter: str
    grade: str


class StudentScoreRow(BaseModel):
    id: int
    name: str
    grade: Optional[str] = None
    main_center: Optional[str] = None
    school: Optional[str] = None
    score: Optional[int] = None
    centerRank: Optional[int] = None
    centerTotal: Optional[int] = None
    gradeRank: Optional[int] = None
    gradeTotal: Optional[int] = None


class ViewScoresResponse(BaseModel):
    success: bool
    data: List[StudentScoreRow]
    pagination: Dict[str, Any]
