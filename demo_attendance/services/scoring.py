"""
Scoring rule evaluation and the score calculator.

A scoring condition holds an ordered rule table for one kind of event
(attendance, homework with or without a degree, quiz) plus optional streak
bonus rules. The calculator picks the condition for an event, evaluates it,
applies the delta to the student's score (never below 0) and records a
ScoringHistory row so the change can be reversed later.
"""
import logging
import math
import re
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from demo_attendance.config import settings
from demo_attendance.models.scoring import ScoringCondition, ScoringHistory
from demo_attendance.models.students import Student
from demo_attendance.schemas.scoring import (
    ScoreData, ScoringConditionCreate, ScoringConditionUpdate, ScoringTypeEnum
)

logger = logging.getLogger(__name__)

DEGREE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*/\s*(\d+(?:\.\d+)?)$")
SKIPPED_QUIZ_DEGREES = {"Didn't Attend The Quiz", "No Quiz"}

# hwDone states that earned points and are reversed when they change
REWARDED_HW_STATES = (True, "Not Completed")


class ScoringError(ValueError):
    """Invalid scoring request or rule table (HTTP 400)."""


class ScoringNotFound(LookupError):
    """Student or scoring conditions missing (HTTP 404)."""


# Rule evaluation

def _same_hw_state(rule_value: Any, value: Any) -> bool:
    if rule_value == value and type(rule_value) is type(value):
        return True
    return _as_text(rule_value) == _as_text(value)


def _as_text(value: Any) -> str:
    # Mirror JSON spelling so "true" and True compare equal
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def evaluate_attendance(rules: Iterable[Dict], status: Optional[str]) -> int:
    if not status:
        return 0
    for rule in rules:
        if rule.get("key") == status:
            return rule.get("points", 0)
    return 0


def evaluate_range(rules: Iterable[Dict], percentage: Optional[float]) -> int:
    """First rule whose inclusive [min, max] range holds the percentage."""
    if percentage is None:
        return 0
    for rule in rules:
        if rule["min"] <= percentage <= rule["max"]:
            return rule.get("points", 0)
    return 0


def evaluate_hw_done(rules: Iterable[Dict], hw_done: Any) -> int:
    if hw_done is None:
        return 0
    for rule in rules:
        if _same_hw_state(rule.get("hwDone"), hw_done):
            return rule.get("points", 0)
    return 0


def uses_ranges(condition: ScoringCondition) -> bool:
    return condition.type == ScoringTypeEnum.quiz.value or (
        condition.type == ScoringTypeEnum.homework.value and condition.with_degree is True
    )


def evaluate(condition: ScoringCondition, data: Dict[str, Any]) -> int:
    """
    Points for one observed state. ``data`` carries ``status``,
    ``percentage`` or ``hwDone`` depending on the condition type.
    """
    if condition.type == ScoringTypeEnum.attendance.value:
        return evaluate_attendance(condition.rules, data.get("status"))
    if uses_ranges(condition):
        return evaluate_range(condition.rules, data.get("percentage"))
    return evaluate_hw_done(condition.rules, data.get("hwDone"))


# Bonus streaks

def js_round(value: float) -> int:
    return int(math.floor(value + 0.5))


def degree_percentage(degree: Optional[str]) -> Optional[int]:
    """Rounded percentage for an ``"obtained / total"`` degree string."""
    if not degree or not isinstance(degree, str):
        return None
    match = DEGREE_PATTERN.match(degree.strip())
    if not match:
        return None
    obtained, total = float(match.group(1)), float(match.group(2))
    return js_round(obtained / total * 100) if total > 0 else 0


def week_values(weeks: Iterable, type_: str, with_degree: Optional[bool]) -> Dict[int, Any]:
    """
    Map week number to the value streak bonuses compare against: a
    percentage for quizzes and graded homework, the hwDone state otherwise.
    """
    values = {}
    for record in weeks:
        if not record.week:
            continue
        if type_ == ScoringTypeEnum.quiz.value:
            if record.quiz_degree in SKIPPED_QUIZ_DEGREES:
                continue
            value = degree_percentage(record.quiz_degree)
        elif type_ == ScoringTypeEnum.homework.value and with_degree:
            value = degree_percentage(record.hw_degree)
        elif type_ == ScoringTypeEnum.homework.value:
            value = record.hw_done
        else:
            value = None
        if value is not None:
            values.setdefault(record.week, value)
    return values


def _block_matches(condition: Dict[str, Any], value: Any) -> bool:
    if condition.get("percentage") is not None:
        return isinstance(value, (int, float)) and not isinstance(value, bool) \
            and value >= condition["percentage"]
    return _same_hw_state(condition.get("hwDone"), value)


def calculate_bonus(
    condition: ScoringCondition,
    weeks: Iterable,
    current_week: Optional[int] = None,
) -> Tuple[int, List[int]]:
    """
    Award each bonus rule once per fixed block of ``lastN`` weeks
    (1..N, N+1..2N, ...) in which every week exists and meets the rule.
    A block only counts when it holds ``current_week``, or when no week is
    given. Returns the bonus points and the sorted weeks involved.
    """
    if not condition.bonus_rules:
        return 0, []

    values = week_values(weeks, condition.type, condition.with_degree)
    if not values:
        return 0, []

    bonus_points = 0
    bonus_weeks = set()
    max_week = max(values)

    for rule in condition.bonus_rules:
        target = rule.get("condition") or {}
        last_n = target.get("lastN")
        if not last_n or (target.get("percentage") is None and target.get("hwDone") is None):
            continue
        if len(values) < last_n:
            continue

        for start in range(1, max_week + 1, last_n):
            block = list(range(start, start + last_n))
            if not all(week in values and _block_matches(target, values[week]) for week in block):
                continue
            if current_week is not None and current_week not in block:
                continue
            bonus_points += rule.get("points", 0)
            bonus_weeks.update(block)
            logger.info(
                f"[SCORING] Bonus ({condition.type} streak): +{rule.get('points', 0)} points "
                f"for weeks {block[0]}-{block[-1]}"
            )

    return bonus_points, sorted(bonus_weeks)


# Conditions

async def list_conditions(db: AsyncSession) -> List[ScoringCondition]:
    result = await db.execute(select(ScoringCondition).order_by(ScoringCondition.id))
    return list(result.scalars().all())


def find_condition(conditions: Iterable[ScoringCondition], type_: str, data: ScoreData) -> Optional[ScoringCondition]:
    """Homework uses the graded table when a percentage, current or previous, is supplied."""
    for condition in conditions:
        if condition.type != type_:
            continue
        if type_ == ScoringTypeEnum.homework.value:
            graded = data.percentage is not None or data.previous_percentage is not None
            if graded != (condition.with_degree is True):
                continue
        return condition
    return None


async def create_condition(db: AsyncSession, data: ScoringConditionCreate) -> ScoringCondition:
    condition = ScoringCondition(
        type=data.type.value,
        with_degree=data.with_degree,
        rules=data.rules,
        bonus_rules=data.stored_bonus_rules(),
    )
    db.add(condition)
    await db.commit()
    await db.refresh(condition)
    return condition


async def update_condition(db: AsyncSession, data: ScoringConditionUpdate) -> Optional[ScoringCondition]:
    condition = await db.get(ScoringCondition, data.id)
    if not condition:
        return None

    condition.type = data.type.value
    condition.with_degree = data.with_degree
    condition.rules = data.rules
    condition.bonus_rules = data.stored_bonus_rules()

    await db.commit()
    await db.refresh(condition)
    return condition


async def delete_condition(db: AsyncSession, condition_id: int) -> bool:
    condition = await db.get(ScoringCondition, condition_id)
    if not condition:
        return False
    await db.delete(condition)
    await db.commit()
    return True


# History

async def get_last_history(
    db: AsyncSession,
    student_id: int,
    type_: str,
    week: Optional[int] = None,
) -> Optional[ScoringHistory]:
    filters = [ScoringHistory.student_id == student_id, ScoringHistory.type == type_]
    if week is not None:
        filters.append(ScoringHistory.process_week == week)
    result = await db.execute(
        select(ScoringHistory)
        .where(and_(*filters))
        .order_by(ScoringHistory.timestamp.desc(), ScoringHistory.id.desc())
        .limit(1)
    )
    return result.scalars().first()


async def _history_for_reverse(db: AsyncSession, student_id: int, type_: str, week: Optional[int]) -> Optional[ScoringHistory]:
    history = None
    if week is not None:
        history = await get_last_history(db, student_id, type_, week)
    if history is None:
        history = await get_last_history(db, student_id, type_)
    return history


def _process_id(student_id: int, label: str) -> str:
    return f"{student_id}_{label}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _process_name(condition: ScoringCondition, data: Dict[str, Any]) -> str:
    if condition.type == ScoringTypeEnum.attendance.value:
        return f"Attendance: {data.get('status') or 'unknown'}"
    if condition.type == ScoringTypeEnum.quiz.value:
        return f"Quiz: {data.get('percentage') or 0}%"
    if condition.with_degree:
        return f"Homework (with degree): {data.get('percentage') or 0}%"
    hw_done = data.get("hwDone")
    return f"Homework (without degree): {_as_text(hw_done) if hw_done is not None else 'unknown'}"


# Calculator

class ScoreResult:
    def __init__(self, points_added=0, base_points=0, bonus_points=0,
                 previous_score=0, new_score=0, process_id=None, message=None):
        self.points_added = points_added
        self.base_points = base_points
        self.bonus_points = bonus_points
        self.previous_score = previous_score
        self.new_score = new_score
        self.process_id = process_id
        self.message = message

    def as_response(self) -> Dict[str, Any]:
        response = {
            "success": True,
            "pointsAdded": self.points_added,
            "basePoints": self.base_points,
            "bonusPoints": self.bonus_points,
            "previousScore": self.previous_score,
            "newScore": self.new_score,
            "processId": self.process_id,
        }
        if self.message:
            response["message"] = self.message
        return response


async def _reverse_from_history(
    db: AsyncSession,
    condition: ScoringCondition,
    student_id: int,
    week: Optional[int],
    previous_state: Dict[str, Any],
) -> Tuple[int, int, List[int]]:
    """
    Points to take back for a reverse-only request: the base points last
    recorded for this student and type (preferring the given week), or the
    rule value of ``previous_state`` when nothing usable was recorded.
    Returns (points previously applied, bonus delta, bonus weeks).
    """
    history = await _history_for_reverse(db, student_id, condition.type, week)
    if history is None:
        return evaluate(condition, previous_state), 0, []

    if history.base_points != 0:
        previous_points = history.base_points
    elif history.score_added != 0:
        previous_points = history.score_added
    else:
        previous_points = evaluate(condition, previous_state)

    bonus_points = 0
    bonus_weeks = []
    if history.bonus_points:
        bonus_points = -history.bonus_points
        bonus_weeks = list(history.bonus_weeks or [])
        logger.info(f"[SCORING] Reversing {condition.type} bonus points: {bonus_points} for weeks {bonus_weeks}")
    return previous_points, bonus_points, bonus_weeks


async def _homework_points(db, condition, student, data: ScoreData, week) -> Tuple[int, int, List[int]]:
    if condition.with_degree:
        if data.reverse_only and data.previous_percentage is not None:
            previous, bonus, weeks = await _reverse_from_history(
                db, condition, student.id, week, {"percentage": data.previous_percentage}
            )
            return -previous, bonus, weeks
        if data.percentage is None:
            return 0, 0, []
        points = evaluate_range(condition.rules, data.percentage) \
            - evaluate_range(condition.rules, data.previous_percentage)
        bonus, weeks = calculate_bonus(condition, student.weeks, week)
        return points, bonus, weeks

    if data.reverse_only and data.previous_hw_done is not None:
        previous, bonus, weeks = await _reverse_from_history(
            db, condition, student.id, week, {"hwDone": data.previous_hw_done}
        )
        return -previous, bonus, weeks

    previous_rewarded = any(_same_hw_state(state, data.previous_hw_done) for state in REWARDED_HW_STATES)
    if data.hw_done is False:
        # The penalty for false only applies once a previous state exists
        if data.previous_hw_done is None:
            return 0, 0, []
        if previous_rewarded:
            return -evaluate_hw_done(condition.rules, data.previous_hw_done), 0, []

    points = evaluate_hw_done(condition.rules, data.hw_done)
    if previous_rewarded:
        points -= evaluate_hw_done(condition.rules, data.previous_hw_done)
    bonus, weeks = calculate_bonus(condition, student.weeks, week)
    return points, bonus, weeks


async def _quiz_points(db, condition, student, data: ScoreData, week) -> Tuple[int, int, List[int]]:
    if data.reverse_only and data.previous_percentage is not None:
        previous, bonus, weeks = await _reverse_from_history(
            db, condition, student.id, week, {"percentage": data.previous_percentage}
        )
        return -previous, bonus, weeks
    if data.percentage is None:
        return 0, 0, []

    previous = data.previous_percentage
    # Dropping to 0% only takes back what was earned
    if data.percentage == 0 and previous is not None and previous > 0:
        return -evaluate_range(condition.rules, previous), 0, []

    points = evaluate_range(condition.rules, data.percentage)
    # The 0% penalty stays when a real result replaces it
    if previous is not None and not (previous == 0 and data.percentage > 0):
        points -= evaluate_range(condition.rules, previous)
    bonus, weeks = calculate_bonus(condition, student.weeks, week)
    return points, bonus, weeks


def _attendance_points(condition, data: ScoreData) -> int:
    if data.reverse_only and data.previous_status:
        return -evaluate_attendance(condition.rules, data.previous_status)
    return evaluate_attendance(condition.rules, data.status)


def _history_base_points(condition: ScoringCondition, data: ScoreData, points: int) -> int:
    """Points for the new state alone, so a later reversal can undo exactly that."""
    if data.reverse_only:
        return points
    if condition.type == ScoringTypeEnum.attendance.value and data.status is not None:
        return evaluate_attendance(condition.rules, data.status)
    if uses_ranges(condition) and data.percentage is not None:
        return evaluate_range(condition.rules, data.percentage)
    if condition.type == ScoringTypeEnum.homework.value and "hw_done" in data.model_fields_set:
        if data.hw_done is False and data.previous_hw_done is None:
            return 0
        return evaluate_hw_done(condition.rules, data.hw_done)
    return points


async def _auto_reverse(db, student_id: int, type_: str, week: int, score: int) -> Tuple[int, int]:
    """
    Undo the last ``type_`` history of ``week`` after its attendance was
    reversed. Returns (points applied, new score).
    """
    history = await get_last_history(db, student_id, type_, week)
    if history is None or history.base_points == 0:
        return 0, score

    points = -history.base_points
    new_score = max(0, score + points)
    data = dict(history.data or {})
    if type_ == ScoringTypeEnum.homework.value and "hwDone" in data:
        label = _as_text(data["hwDone"])
    else:
        label = f"{data.get('percentage') or 0}%"
    data.update({"reverseOnly": True, "autoReversedBy": "attendance"})

    db.add(ScoringHistory(
        student_id=student_id,
        process_id=_process_id(student_id, f"{type_}_auto_reverse"),
        process_name=f"{type_.capitalize()} (auto-reverse from attendance): {label}",
        process_week=week,
        score_before_process=score,
        score_added=points,
        score_after_process=new_score,
        type=type_,
        data=data,
        bonus_points=0,
        bonus_weeks=[],
        base_points=points,
    ))
    logger.info(f"[SCORING] Auto-reversed {type_} for week {week}: {score} -> {new_score}")
    return points, new_score


async def calculate_score(
    db: AsyncSession,
    student_id: int,
    type_: str,
    data: ScoreData,
    week: Optional[int] = None,
) -> ScoreResult:
    """
    Apply one scoring event to a student and record it in the history.

    Raises ScoringNotFound when the student or the whole rule table is
    missing and ScoringError when no condition fits the event.
    """
    if not settings.SCORING_SYSTEM_ENABLED:
        return ScoreResult(message="Scoring system is disabled")

    student = await db.get(Student, student_id)
    if not student:
        raise ScoringNotFound("Student not found")

    conditions = await list_conditions(db)
    if not conditions:
        raise ScoringNotFound("Scoring system conditions not found. Please seed the database first.")

    condition = find_condition(conditions, type_, data)
    if condition is None:
        raise ScoringError(f"No scoring condition found for type: {type_}")

    bonus_points = 0
    bonus_weeks: List[int] = []
    if type_ == ScoringTypeEnum.attendance.value:
        points = _attendance_points(condition, data)
    elif type_ == ScoringTypeEnum.homework.value:
        points, bonus_points, bonus_weeks = await _homework_points(db, condition, student, data, week)
    else:
        points, bonus_points, bonus_weeks = await _quiz_points(db, condition, student, data, week)

    total = points + bonus_points
    current_score = student.score or 0
    new_score = max(0, current_score + total)
    logger.info(f"[SCORING] Student {student_id} ({student.name}): {current_score} -> {new_score} ({total:+d} points)")

    stored_data = data.model_dump(by_alias=True, exclude_unset=True)
    stored_data["bonusWeeks"] = bonus_weeks
    process_id = _process_id(student_id, type_)

    db.add(ScoringHistory(
        student_id=student_id,
        process_id=process_id,
        process_name=_process_name(condition, stored_data),
        process_week=week,
        score_before_process=current_score,
        score_added=total,
        score_after_process=new_score,
        type=type_,
        data=stored_data,
        bonus_points=bonus_points,
        bonus_weeks=bonus_weeks,
        base_points=_history_base_points(condition, data, points),
    ))

    if type_ == ScoringTypeEnum.attendance.value and data.reverse_only and week is not None:
        for linked_type, enabled in (
            (ScoringTypeEnum.homework.value, data.auto_reverse_homework),
            (ScoringTypeEnum.quiz.value, data.auto_reverse_quiz),
        ):
            if not enabled:
                continue
            reversed_points, new_score = await _auto_reverse(db, student_id, linked_type, week, new_score)
            total += reversed_points

    student.score = new_score
    await db.commit()

    return ScoreResult(
        points_added=total,
        base_points=points,
        bonus_points=bonus_points,
        previous_score=current_score,
        new_score=new_score,
        process_id=process_id,
    )


# Seeding

DEFAULT_SCORING_CONDITIONS = [
    {
        "type": "attendance",
        "rules": [
            {"key": "attend", "points": 10},
            {"key": "absent", "points": -5},
        ],
        "bonusRules": [],
    },
    {
        "type": "homework",
        "withDegree": True,
        "rules": [
            {"min": 100, "max": 100, "points": 20},
            {"min": 75, "max": 99, "points": 15},
            {"min": 50, "max": 74, "points": 10},
            {"min": 1, "max": 49, "points": 5},
            {"min": 0, "max": 0, "points": -20},
        ],
        "bonusRules": [
            {"key": "fourWeeks100", "condition": {"lastN": 4, "percentage": 100}, "points": 25},
        ],
    },
    {
        "type": "homework",
        "withDegree": False,
        "rules": [
            {"hwDone": True, "points": 20},
            {"hwDone": "Not Completed", "points": 10},
            {"hwDone": False, "points": -20},
        ],
        "bonusRules": [],
    },
    {
        "type": "quiz",
        "rules": [
            {"min": 100, "max": 100, "points": 25},
            {"min": 75, "max": 99, "points": 20},
            {"min": 50, "max": 74, "points": 15},
            {"min": 20, "max": 49, "points": 10},
            {"min": 1, "max": 19, "points": 5},
            {"min": 0, "max": 0, "points": -25},
        ],
        "bonusRules": [
            {"key": "fourWeeks100", "condition": {"lastN": 4, "percentage": 100}, "points": 30},
        ],
    },
]


async def seed_scoring_conditions(db: AsyncSession) -> List[ScoringCondition]:
    """Replace the rule table with the default conditions."""
    await db.execute(delete(ScoringCondition))
    conditions = []
    for raw in DEFAULT_SCORING_CONDITIONS:
        data = ScoringConditionCreate.model_validate(raw)
        condition = ScoringCondition(
            type=data.type.value,
            with_degree=data.with_degree,
            rules=data.rules,
            bonus_rules=data.stored_bonus_rules(),
        )
        db.add(condition)
        conditions.append(condition)
    await db.commit()
    logger.info(f"Seeded {len(conditions)} scoring conditions")
    return conditions
