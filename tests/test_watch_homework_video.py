from sqlalchemy.future import select

from demo_attendance.models.homeworks_videos import HomeworkVideoSession
from demo_attendance.models.students import Student, WeekRecord
from demo_attendance.services.weeks import get_week_record, mark_homework_video_viewed


def video_session(week=2):
    return HomeworkVideoSession(
        week=week, grade="G1", payment_state="free", name="Homework",
        videos=[{"video_id": "dQw4w9WgXcQ", "video_type": "youtube", "video_name": None}],
    )


async def watch(client, headers, student_id, session_id, action):
    return await client.post(
        f"/api/students/{student_id}/watch-homework-video",
        json={"session_id": session_id, "action": action},
        headers=headers,
    )


async def week_records(session_factory, student_id):
    async with session_factory() as db:
        result = await db.execute(select(WeekRecord).where(WeekRecord.student_id == student_id))
        return result.scalars().all()


async def test_finishing_twice_keeps_one_week_record(client, add_rows, session_factory, student_headers):
    student = await add_rows(Student(name="Alice", score=0))
    session = await add_rows(video_session(week=2))

    for _ in range(2):
        resp = await watch(client, student_headers(student.id), student.id, session.id, "finish")
        assert resp.status_code == 200

    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Homework video marked as viewed"
    assert body["week_record"]["week"] == 2
    assert body["week_record"]["view_homework_video"] is True
    assert body["week_record"]["hwDone"] is False

    records = await week_records(session_factory, student.id)
    assert len(records) == 1
    assert records[0].view_homework_video is True


async def test_finishing_keeps_existing_week_data(client, add_rows, session_factory, staff_headers):
    student = await add_rows(Student(name="Alice", score=0))
    await add_rows(WeekRecord(student_id=student.id, week=2, attended=True, hw_done=True, quiz_degree="9 / 10"))
    session = await add_rows(video_session(week=2))

    resp = await watch(client, staff_headers, student.id, session.id, "finish")

    assert resp.json()["week_record"]["quizDegree"] == "9 / 10"
    records = await week_records(session_factory, student.id)
    assert len(records) == 1
    assert records[0].attended is True
    assert records[0].hw_done is True
    assert records[0].view_homework_video is True


async def test_viewing_records_nothing(client, add_rows, session_factory, student_headers):
    student = await add_rows(Student(name="Alice", score=0))
    session = await add_rows(video_session())

    resp = await watch(client, student_headers(student.id), student.id, session.id, "view")

    assert resp.json() == {"success": True, "message": "Video view recorded"}
    assert await week_records(session_factory, student.id) == []


async def test_session_without_week_has_no_record(client, add_rows, session_factory, student_headers):
    student = await add_rows(Student(name="Alice", score=0))
    session = await add_rows(video_session(week=None))

    resp = await watch(client, student_headers(student.id), student.id, session.id, "finish")

    assert resp.json()["week_record"] is None
    assert await week_records(session_factory, student.id) == []


async def test_watch_errors(client, add_rows, student_headers):
    alice, bob = await add_rows(Student(name="Alice", score=0), Student(name="Bob", score=0))
    session = await add_rows(video_session())

    resp = await watch(client, student_headers(alice.id), bob.id, session.id, "finish")
    assert resp.status_code == 403
    assert resp.json() == {"error": "Forbidden: You can only update your own data"}

    resp = await watch(client, student_headers(alice.id), alice.id, None, "finish")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Session ID is required"}

    resp = await watch(client, student_headers(alice.id), alice.id, 999, "finish")
    assert resp.status_code == 404

    resp = await watch(client, student_headers(alice.id), alice.id, session.id, "pause")
    assert resp.status_code == 400
    assert resp.json() == {"error": 'Invalid action. Use "view" or "finish"'}


async def test_mark_viewed_is_idempotent(db, add_rows):
    student = await add_rows(Student(name="Alice", score=0))

    first = await mark_homework_video_viewed(db, student.id, 5)
    await db.commit()
    second = await mark_homework_video_viewed(db, student.id, 5)
    await db.commit()

    assert first.id == second.id
    record = await get_week_record(db, student.id, 5)
    assert record.view_homework_video is True
    assert record.attended is False


async def test_extra_payment_state_field_is_ignored(client, add_rows, student_headers):
    student = await add_rows(Student(name="Alice", score=0))
    session = await add_rows(video_session(week=4))

    resp = await client.post(
        f"/api/students/{student.id}/watch-homework-video",
        json={"session_id": session.id, "action": "finish", "payment_state": "paid"},
        headers=student_headers(student.id),
    )

    assert resp.status_code == 200
    assert resp.json()["week_record"]["week"] == 4
