import math
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Body
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from demo_attendance.database import get_db
from demo_attendance.models.students import Student
from demo_attendance.middleware.authentication import allow_staff, allow_all_roles, ensure_own_student
from demo_attendance.schemas.users import TokenData
from demo_attendance.schemas.scoring import (
    ScoringConditionCreate,
    ScoringConditionUpdate,
    ScoringConditionDelete,
    ScoringConditionInDB,
    ScoreCalculationRequest,
    ScoreCalculationResponse,
    LastHistoryRequest,
    LastHistoryResponse,
    StudentRankingResponse,
    StudentScoreRow,
    ViewScoresResponse,
)
from demo_attendance.services.ranking import compute_rankings, rank_student, group_name
from demo_attendance.services.scoring import (
    ScoringError,
    ScoringNotFound,
    calculate_score,
    create_condition,
    delete_condition,
    get_last_history,
    list_conditions,
    update_condition,
)

router = APIRouter()

# view-scores sort keys; strings compare case-insensitively
SCORE_SORT_KEYS = {
    "score": lambda s: s.score or 0,
    "id": lambda s: s.id or 0,
    "name": lambda s: (s.name or "").lower(),
    "grade": lambda s: s.grade or "",
    "school": lambda s: (s.school or "").lower(),
    "main_center": lambda s: (s.main_center or "").lower(),
}


async def _all_students(db: AsyncSession):
    # Ordered by id so equal scores rank the lower id first
    result = await db.execute(select(Student).order_by(Student.id))
    return result.scalars().all()


def _serialize_conditions(conditions):
    return [
        ScoringConditionInDB.model_validate(condition).model_dump(by_alias=True)
        for condition in conditions
    ]


@router.get("/scoring/conditions")
async def get_scoring_conditions(
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    conditions = await list_conditions(db)
    return {"success": True, "conditions": _serialize_conditions(conditions)}


@router.get("/scoring/conditions-public")
async def get_public_scoring_conditions(
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_all_roles)
):
    """
    Read-only rule table for the student scoring rules page.
    """
    conditions = await list_conditions(db)
    return {"success": True, "conditions": _serialize_conditions(conditions)}


@router.post("/scoring/conditions")
async def create_scoring_condition(
    condition_data: ScoringConditionCreate = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    condition = await create_condition(db, condition_data)
    return {
        "success": True,
        "id": condition.id,
        "condition": ScoringConditionInDB.model_validate(condition).model_dump(by_alias=True),
    }


@router.put("/scoring/conditions")
async def update_scoring_condition(
    condition_data: ScoringConditionUpdate = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    condition = await update_condition(db, condition_data)
    if not condition:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Condition not found"
        )
    return {
        "success": True,
        "condition": ScoringConditionInDB.model_validate(condition).model_dump(by_alias=True),
    }


@router.delete("/scoring/conditions")
async def delete_scoring_condition(
    condition_data: ScoringConditionDelete = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    if not await delete_condition(db, condition_data.id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Condition not found"
        )
    return {"success": True, "message": "Condition deleted successfully"}


@router.post("/scoring/calculate", response_model=ScoreCalculationResponse)
async def calculate_student_score(
    request: ScoreCalculationRequest = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_all_roles)
):
    """
    Apply an attendance, homework or quiz result to a student's score.
    Students may only score themselves.
    """
    ensure_own_student(
        current_user, request.student_id,
        "Forbidden: Students can only update their own score"
    )

    try:
        result = await calculate_score(
            db,
            student_id=request.student_id,
            type_=request.type.value,
            data=request.data,
            week=request.week,
        )
    except ScoringNotFound as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except ScoringError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    return result.as_response()


@router.post("/scoring/get-last-history", response_model=LastHistoryResponse)
async def get_last_scoring_history(
    request: LastHistoryRequest = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_all_roles)
):
    ensure_own_student(
        current_user, request.student_id,
        "Forbidden: Students can only access their own history"
    )

    history = await get_last_history(db, request.student_id, request.type.value, request.week)
    return {"success": True, "found": history is not None, "history": history}


@router.get("/scoring/student-rankings", response_model=StudentRankingResponse)
async def get_student_rankings(
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_all_roles)
):
    """
    The requesting student's rank within their main center and grade.
    """
    student_id = current_user.student_id
    if not student_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Student ID is required"
        )

    students = await _all_students(db)
    ranking = rank_student(students, student_id)
    if ranking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found"
        )

    student = next(s for s in students if s.id == student_id)
    return {
        "success": True,
        **ranking.as_response(),
        "mainCenter": group_name(student.main_center),
        "grade": group_name(student.grade),
    }


@router.get("/scoring/view-scores", response_model=ViewScoresResponse)
async def view_scores(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1),
    search: Optional[str] = Query(None),
    grade: Optional[str] = Query(None),
    center: Optional[str] = Query(None),
    score: Optional[str] = Query(None),
    sortBy: str = Query("score"),
    sortOrder: str = Query("desc"),
    db: AsyncSession = Depends(get_db),
    current_user: TokenData = Depends(allow_staff)
):
    """
    Every student with their rankings, filtered, sorted and paginated.
    Rankings are always computed over the whole student table.
    """
    students = await _all_students(db)
    rankings = compute_rankings(students)

    rows = list(students)
    term = (search or "").strip()
    if term:
        if term.isdigit():
            rows = [s for s in rows if s.id == int(term)]
        else:
            rows = [s for s in rows if term.lower() in (s.name or "").lower()]
    if grade:
        rows = [s for s in rows if s.grade == grade]
    if center:
        rows = [s for s in rows if s.main_center == center]
    if score:
        try:
            minimum = int(score.replace("+", "").strip())
        except ValueError:
            minimum = None
        if minimum is not None:
            rows = [s for s in rows if (s.score or 0) >= minimum]

    rows.sort(key=SCORE_SORT_KEYS.get(sortBy, SCORE_SORT_KEYS["score"]), reverse=sortOrder == "desc")

    total_count = len(rows)
    total_pages = math.ceil(total_count / limit)
    start = (page - 1) * limit

    data = [
        StudentScoreRow(
            id=s.id,
            name=s.name,
            grade=s.grade,
            main_center=s.main_center,
            school=s.school,
            score=s.score,
            **rankings[s.id].as_response(),
        )
        for s in rows[start:start + limit]
    ]

    return {
        "success": True,
        "data": data,
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "totalCount": total_count,
            "hasNextPage": page < total_pages,
            "hasPrevPage": page > 1,
        },
    }
