"""
VHC (homework video code) generation, validation and consumption.

A voucher runs in one of two modes:

* ``number_of_views``: the first successful check pins the voucher to the
  checking student (``viewed``/``viewed_by_who``); playback then consumes
  views through :func:`decrement_views` until none remain.
* ``deadline_date``: any student may use the voucher any number of times
  until the deadline day, which itself already counts as expired.

``Deactivated`` overrides both modes. Pinning and decrementing are each a
single conditional UPDATE, so racing requests cannot both win.
"""
import logging
import math
import re
import secrets
import string
from datetime import date, datetime
from typing import Any, List, Optional, Tuple

from sqlalchemy import and_, or_, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from demo_attendance.config import settings
from demo_attendance.models.homeworks_videos import HomeworkVideoSession
from demo_attendance.models.students import Student
from demo_attendance.models.vhc import VHCCode
from demo_attendance.schemas.vhc import (
    VHCCreate, VHCUpdate, CodeSettingsEnum, CodeStateEnum
)
from demo_attendance.services.weeks import mark_homework_video_viewed

logger = logging.getLogger(__name__)

CODE_LENGTH = 9
DEADLINE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MSG_INCORRECT_FORMAT = "❌ Sorry, this code is incorrect"
MSG_INCORRECT = "❌ Sorry, This code is incorrect"
MSG_DEACTIVATED = "❌ Sorry, This code is deactivated"
MSG_EXPIRED = "❌ Sorry, This code is expired"
MSG_ALREADY_USED = "❌ Sorry, This code is already used"
MSG_NO_VIEWS = "❌ Sorry, this code has no views remaining"

SORTABLE_FIELDS = {
    "VHC": VHCCode.code,
    "code_settings": VHCCode.code_settings,
    "number_of_views": VHCCode.number_of_views,
    "deadline_date": VHCCode.deadline_date,
    "code_state": VHCCode.code_state,
    "payment_state": VHCCode.payment_state,
    "viewed": VHCCode.viewed,
    "viewed_by_who": VHCCode.viewed_by_who,
    "made_by_who": VHCCode.made_by_who,
    "date": VHCCode.created_at,
}

_random = secrets.SystemRandom()


class VHCValidationError(ValueError):
    """Malformed voucher input (HTTP 400)."""


class VHCGenerationError(RuntimeError):
    """Could not find enough unused codes within the retry budget."""


class VoucherRejected(Exception):
    """An expected business-rule rejection of a submitted code."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class VoucherTargetNotFound(LookupError):
    """The student or homework video session a check refers to is missing."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Code generation

def generate_vhc_code(rng=_random) -> str:
    """Five digits, two uppercase and two lowercase letters in shuffled order."""
    chars = (
        [rng.choice(string.digits) for _ in range(5)]
        + [rng.choice(string.ascii_uppercase) for _ in range(2)]
        + [rng.choice(string.ascii_lowercase) for _ in range(2)]
    )
    # Fisher-Yates
    for i in range(len(chars) - 1, 0, -1):
        j = rng.randint(0, i)
        chars[i], chars[j] = chars[j], chars[i]
    return "".join(chars)


async def generate_unique_codes(
    db: AsyncSession,
    count: int,
    attempts: Optional[int] = None,
    generator=generate_vhc_code,
) -> List[str]:
    """
    Generate ``count`` codes that differ, ignoring case, from each other and
    from every stored voucher.
    """
    attempts = attempts or settings.VHC_CODE_GENERATION_ATTEMPTS
    codes = {}

    for _ in range(attempts):
        missing = count - len(codes)
        if missing <= 0:
            break

        candidates = {}
        for _ in range(missing):
            code = generator()
            if code.lower() not in codes:
                candidates.setdefault(code.lower(), code)
        if not candidates:
            continue

        result = await db.execute(
            select(func.lower(VHCCode.code)).where(
                func.lower(VHCCode.code).in_(list(candidates.keys()))
            )
        )
        taken = set(result.scalars().all())
        if taken:
            logger.info(f"Discarding {len(taken)} generated VHC code(s) that already exist")

        for key, code in candidates.items():
            if key not in taken and len(codes) < count:
                codes[key] = code

    if len(codes) < count:
        raise VHCGenerationError(f"Could not generate {count} unique VHC codes")

    return list(codes.values())


# Dates

def format_created_date(moment: datetime) -> str:
    """MM/DD/YYYY at hh:mm AM/PM"""
    return moment.strftime("%m/%d/%Y at %I:%M %p")


def parse_deadline(value: str) -> date:
    if not isinstance(value, str) or not DEADLINE_PATTERN.match(value.strip()):
        raise VHCValidationError("Invalid date format. Expected YYYY-MM-DD")
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise VHCValidationError("Invalid date format. Expected YYYY-MM-DD")


def validate_future_deadline(value: Optional[str], today: Optional[date] = None) -> str:
    if not value:
        raise VHCValidationError("Deadline date is required")
    deadline = parse_deadline(value)
    if deadline <= (today or date.today()):
        raise VHCValidationError("Deadline date must be in the future")
    return value.strip()


def is_expired(deadline_date: Optional[str], today: Optional[date] = None) -> bool:
    """The deadline day itself already counts as expired."""
    if not deadline_date:
        return False
    try:
        deadline = parse_deadline(deadline_date)
    except VHCValidationError:
        # Unparseable stored deadlines cannot be honoured
        return True
    return deadline <= (today or date.today())


# State machine

def rejection_reason(vhc: Optional[VHCCode], student_id: Optional[int], today: Optional[date] = None) -> Optional[str]:
    """
    Evaluate a voucher against a check by ``student_id`` without touching
    the database. Returns the rejection message, or None when the check may
    proceed.
    """
    if vhc is None:
        return MSG_INCORRECT

    if vhc.code_state == CodeStateEnum.deactivated.value:
        return MSG_DEACTIVATED

    if vhc.code_settings == CodeSettingsEnum.deadline_date.value:
        if is_expired(vhc.deadline_date, today):
            return MSG_EXPIRED
        return None

    if vhc.viewed:
        return MSG_ALREADY_USED
    if (vhc.number_of_views or 0) <= 0:
        return MSG_ALREADY_USED
    if vhc.viewed_by_who is not None and vhc.viewed_by_who != student_id:
        return MSG_ALREADY_USED
    return None


async def find_by_code(db: AsyncSession, code: str) -> Optional[VHCCode]:
    result = await db.execute(
        select(VHCCode).where(func.lower(VHCCode.code) == code.strip().lower())
    )
    return result.scalars().first()


async def pin_voucher(db: AsyncSession, vhc: VHCCode, student_id: int) -> bool:
    """
    Atomically assign a view-count voucher to ``student_id``.

    Returns False when another request pinned or exhausted the voucher
    after it was read.
    """
    result = await db.execute(
        update(VHCCode)
        .where(
            and_(
                VHCCode.id == vhc.id,
                VHCCode.code_state == CodeStateEnum.activated.value,
                VHCCode.viewed.is_(False),
                VHCCode.number_of_views > 0,
                or_(VHCCode.viewed_by_who.is_(None), VHCCode.viewed_by_who == student_id),
            )
        )
        .values(viewed=True, viewed_by_who=student_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _session_key(value: Any) -> int:
    # Clients send the id as a number or a numeric string
    if value is None or value == "":
        raise VHCValidationError("Session ID is required")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise VHCValidationError("Invalid session ID")


async def check_voucher(
    db: AsyncSession,
    code: Any,
    session_id: Any,
    student_id: Optional[int],
    today: Optional[date] = None,
) -> VHCCode:
    """
    Validate a submitted code for a homework video session and record the
    student's view of that session's week.

    Raises VHCValidationError for malformed input, VoucherTargetNotFound for
    a missing student or session and VoucherRejected for a refused code.
    """
    if not isinstance(code, str) or len(code) != CODE_LENGTH:
        raise VHCValidationError(MSG_INCORRECT_FORMAT)
    session_id = _session_key(session_id)

    vhc = await find_by_code(db, code)
    reason = rejection_reason(vhc, student_id, today)
    if reason:
        logger.info(f"VHC check rejected for student {student_id}: {reason}")
        raise VoucherRejected(reason)

    student = await db.get(Student, student_id) if student_id is not None else None
    if not student:
        raise VoucherTargetNotFound("Student not found")

    session = await db.get(HomeworkVideoSession, session_id)
    if not session:
        raise VoucherTargetNotFound("Homework video session not found")

    if vhc.code_settings == CodeSettingsEnum.number_of_views.value:
        if not await pin_voucher(db, vhc, student_id):
            await db.rollback()
            logger.info(f"VHC {vhc.id} was taken by a concurrent check")
            raise VoucherRejected(MSG_ALREADY_USED)

    if session.week is not None:
        await mark_homework_video_viewed(db, student_id, session.week)

    await db.commit()
    await db.refresh(vhc)

    logger.info(f"VHC {vhc.id} accepted for student {student_id} (session {session_id})")
    return vhc


async def decrement_views(db: AsyncSession, vhc: VHCCode, student_id: Optional[int] = None) -> Optional[int]:
    """
    Consume one view of a view-count voucher.

    When ``student_id`` is given only the student the voucher is pinned to
    may consume it. Returns the remaining views, or None for deadline
    vouchers, which have nothing to consume. Raises VoucherRejected when no
    views remain or the voucher belongs to someone else.
    """
    if vhc.code_settings != CodeSettingsEnum.number_of_views.value:
        return None

    conditions = [VHCCode.id == vhc.id, VHCCode.number_of_views > 0]
    if student_id is not None:
        if vhc.viewed_by_who != student_id:
            logger.info(f"VHC {vhc.id} decrement refused for student {student_id}: pinned to {vhc.viewed_by_who}")
            raise VoucherRejected(MSG_ALREADY_USED)
        conditions.append(VHCCode.viewed_by_who == student_id)

    result = await db.execute(
        update(VHCCode)
        .where(and_(*conditions))
        .values(number_of_views=VHCCode.number_of_views - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise VoucherRejected(MSG_NO_VIEWS)

    await db.commit()
    await db.refresh(vhc)
    return vhc.number_of_views


# Staff operations

async def create_vouchers(db: AsyncSession, data: VHCCreate, made_by_who: str, today: Optional[date] = None) -> List[VHCCode]:
    max_codes = settings.VHC_MAX_CODES_PER_REQUEST
    if data.number_of_codes < 1 or data.number_of_codes > max_codes:
        raise VHCValidationError(f"Number of codes must be between 1 and {max_codes}")

    number_of_views = None
    deadline_date = None
    if data.code_settings == CodeSettingsEnum.number_of_views:
        if not data.number_of_views or data.number_of_views < 1:
            raise VHCValidationError("Number of views must be at least 1")
        number_of_views = data.number_of_views
    else:
        deadline_date = validate_future_deadline(data.deadline_date, today)

    codes = await generate_unique_codes(db, data.number_of_codes)
    created_on = format_created_date(datetime.now())

    vouchers = [
        VHCCode(
            code=code,
            code_settings=data.code_settings.value,
            number_of_views=number_of_views,
            deadline_date=deadline_date,
            code_state=data.code_state.value,
            payment_state="Not Paid",
            viewed=False,
            viewed_by_who=None,
            made_by_who=made_by_who,
            date=created_on,
        )
        for code in codes
    ]
    db.add_all(vouchers)
    await db.commit()
    for voucher in vouchers:
        await db.refresh(voucher)

    logger.info(f"{len(vouchers)} VHC code(s) created by {made_by_who}")
    return vouchers


async def update_voucher(db: AsyncSession, vhc: VHCCode, data: VHCUpdate, today: Optional[date] = None) -> VHCCode:
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise VHCValidationError("No valid fields to update")

    mode = data.code_settings.value if data.code_settings else vhc.code_settings
    switching = data.code_settings is not None and mode != vhc.code_settings

    if mode == CodeSettingsEnum.number_of_views.value:
        if data.number_of_views is not None or switching:
            if not data.number_of_views or data.number_of_views < 1:
                raise VHCValidationError("Number of views must be at least 1")
            vhc.number_of_views = data.number_of_views
        vhc.deadline_date = None
    else:
        if "deadline_date" in changes or switching:
            vhc.deadline_date = validate_future_deadline(data.deadline_date, today)
        vhc.number_of_views = None

    vhc.code_settings = mode
    if data.code_state is not None:
        vhc.code_state = data.code_state.value
    if data.payment_state is not None:
        vhc.payment_state = data.payment_state.value

    await db.commit()
    await db.refresh(vhc)
    return vhc


async def list_vouchers(
    db: AsyncSession,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    search: Optional[str] = None,
    viewed: Optional[str] = None,
    code_state: Optional[str] = None,
    payment_state: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> Tuple[List[VHCCode], Optional[dict]]:
    """
    List vouchers. Pagination, search, filters and sorting only apply when
    ``page`` or ``limit`` is given; otherwise every voucher is returned.
    """
    if not page and not limit:
        result = await db.execute(select(VHCCode).order_by(VHCCode.id))
        return list(result.scalars().all()), None

    current_page = page if page and page > 0 else 1
    page_size = limit if limit and limit > 0 else 100

    filters = []
    term = (search or "").strip()
    if term:
        filters.append(
            or_(
                VHCCode.code.istartswith(term, autoescape=True),
                VHCCode.made_by_who.icontains(term, autoescape=True),
            )
        )
    if viewed is not None and viewed != "":
        filters.append(VHCCode.viewed.is_(viewed == "true"))
    if code_state:
        filters.append(VHCCode.code_state == code_state)
    if payment_state:
        filters.append(VHCCode.payment_state == payment_state)

    count_result = await db.execute(select(func.count(VHCCode.id)).where(*filters))
    total_count = count_result.scalar() or 0
    total_pages = math.ceil(total_count / page_size)

    column = SORTABLE_FIELDS.get(sort_by or "date", VHCCode.created_at)
    ordering = column.desc() if sort_order == "desc" else column.asc()

    result = await db.execute(
        select(VHCCode)
        .where(*filters)
        .order_by(ordering, VHCCode.id)
        .offset((current_page - 1) * page_size)
        .limit(page_size)
    )

    pagination = {
        "currentPage": current_page,
        "totalPages": total_pages,
        "totalCount": total_count,
        "hasNextPage": current_page < total_pages,
        "hasPrevPage": current_page > 1,
    }
    return list(result.scalars().all()), pagination
