from datetime import date, timedelta

from sqlalchemy.future import select

from demo_attendance.models.homeworks_videos import HomeworkVideoSession
from demo_attendance.models.students import Student, WeekRecord
from demo_attendance.models.vhc import VHCCode
from demo_attendance.services.vhc import check_voucher, find_by_code, pin_voucher

TOMORROW = (date.today() + timedelta(days=1)).isoformat()
TODAY = date.today().isoformat()


def views_voucher(code="12345ABcd", views=1, **overrides):
    fields = dict(
        code=code,
        code_settings="number_of_views",
        number_of_views=views,
        deadline_date=None,
        code_state="Activated",
        payment_state="Not Paid",
        viewed=False,
        viewed_by_who=None,
        made_by_who="admin-1",
        date="01/01/2026 at 10:00 AM",
    )
    fields.update(overrides)
    return VHCCode(**fields)


def deadline_voucher(code="54321XYxy", deadline=TOMORROW, **overrides):
    return views_voucher(
        code=code,
        code_settings="deadline_date",
        views=None,
        deadline_date=deadline,
        **overrides,
    )


def video_session(week=1):
    return HomeworkVideoSession(
        week=week,
        grade="G1",
        payment_state="paid",
        name=f"Week {week}",
        videos=[{"video_id": "dQw4w9WgXcQ", "video_type": "youtube", "video_name": None}],
    )


async def setup_students_and_session(add_rows, week=1):
    alice, bob = await add_rows(
        Student(name="Alice", grade="G1", main_center="Cairo", score=0),
        Student(name="Bob", grade="G1", main_center="Cairo", score=0),
    )
    session = await add_rows(video_session(week))
    return alice, bob, session


async def check(client, headers, code, session_id):
    return await client.post(
        "/api/vhc/check",
        json={"VHC": code, "session_id": session_id},
        headers=headers,
    )


# Create / list / update / delete

async def test_create_five_view_codes(client, staff_headers):
    resp = await client.post(
        "/api/vhc",
        json={
            "number_of_codes": 5,
            "code_settings": "number_of_views",
            "number_of_views": 3,
            "code_state": "Activated",
        },
        headers=staff_headers,
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "5 VHC code(s) created successfully"
    codes = [item["VHC"] for item in body["data"]]
    assert len(codes) == 5
    assert len({c.lower() for c in codes}) == 5
    for item in body["data"]:
        assert len(item["VHC"]) == 9
        assert item["number_of_views"] == 3
        assert item["deadline_date"] is None
        assert item["payment_state"] == "Not Paid"
        assert item["viewed"] is False
        assert item["made_by_who"] == "admin-1"


async def test_assistant_codes_record_assistant_id(client, make_headers):
    headers = make_headers(role="assistant", user_id="user-7", assistant_id="42")

    resp = await client.post(
        "/api/vhc",
        json={"number_of_codes": 1, "code_settings": "number_of_views", "number_of_views": 1, "code_state": "Activated"},
        headers=headers,
    )

    assert resp.status_code == 201
    assert resp.json()["data"][0]["made_by_who"] == "42"


async def test_create_deadline_codes(client, staff_headers):
    resp = await client.post(
        "/api/vhc",
        json={
            "number_of_codes": 2,
            "code_settings": "deadline_date",
            "deadline_date": TOMORROW,
            "number_of_views": 4,
            "code_state": "Deactivated",
        },
        headers=staff_headers,
    )

    assert resp.status_code == 201
    for item in resp.json()["data"]:
        assert item["deadline_date"] == TOMORROW
        assert item["number_of_views"] is None
        assert item["code_state"] == "Deactivated"


async def test_create_validation_errors(client, staff_headers):
    base = {"code_settings": "number_of_views", "number_of_views": 1, "code_state": "Activated"}

    resp = await client.post("/api/vhc", json={**base, "number_of_codes": 51}, headers=staff_headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Number of codes must be between 1 and 50"}

    resp = await client.post(
        "/api/vhc", json={**base, "number_of_codes": 1, "number_of_views": 0}, headers=staff_headers
    )
    assert resp.json() == {"error": "Number of views must be at least 1"}

    resp = await client.post(
        "/api/vhc",
        json={"number_of_codes": 1, "code_settings": "deadline_date", "deadline_date": TODAY, "code_state": "Activated"},
        headers=staff_headers,
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Deadline date must be in the future"}

    resp = await client.post(
        "/api/vhc", json={**base, "number_of_codes": 1, "code_state": "Paused"}, headers=staff_headers
    )
    assert resp.status_code == 400
    assert "error" in resp.json()


async def test_vhc_management_requires_staff(client, make_headers):
    resp = await client.get("/api/vhc")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Missing token"}

    resp = await client.get("/api/vhc", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401

    resp = await client.get("/api/vhc", headers=make_headers(role="student", user_id="s", assistant_id=1))
    assert resp.status_code == 403


async def test_list_without_pagination_returns_everything(client, add_rows, staff_headers):
    await add_rows(views_voucher("11111AAaa"), views_voucher("22222BBbb"), deadline_voucher("33333CCcc"))

    resp = await client.get("/api/vhc", headers=staff_headers)

    body = resp.json()
    assert [item["VHC"] for item in body["data"]] == ["11111AAaa", "22222BBbb", "33333CCcc"]
    assert body["pagination"] is None


async def test_list_with_pagination_filters_and_sort(client, add_rows, staff_headers):
    await add_rows(
        views_voucher("11111AAaa"),
        views_voucher("22222BBbb", viewed=True, viewed_by_who=1),
        views_voucher("33333CCcc", code_state="Deactivated"),
        views_voucher("44444DDdd", made_by_who="assistant-9"),
    )

    resp = await client.get(
        "/api/vhc",
        params={"page": 1, "limit": 2, "sortBy": "VHC", "sortOrder": "desc"},
        headers=staff_headers,
    )
    body = resp.json()
    assert [item["VHC"] for item in body["data"]] == ["44444DDdd", "33333CCcc"]
    assert body["pagination"] == {
        "currentPage": 1,
        "totalPages": 2,
        "totalCount": 4,
        "hasNextPage": True,
        "hasPrevPage": False,
    }

    resp = await client.get("/api/vhc", params={"page": 1, "viewed": "true"}, headers=staff_headers)
    assert [item["VHC"] for item in resp.json()["data"]] == ["22222BBbb"]

    resp = await client.get("/api/vhc", params={"page": 1, "code_state": "Deactivated"}, headers=staff_headers)
    assert [item["VHC"] for item in resp.json()["data"]] == ["33333CCcc"]

    resp = await client.get("/api/vhc", params={"page": 1, "search": "ASSISTANT"}, headers=staff_headers)
    assert [item["VHC"] for item in resp.json()["data"]] == ["44444DDdd"]

    resp = await client.get("/api/vhc", params={"page": 1, "search": "2222"}, headers=staff_headers)
    assert [item["VHC"] for item in resp.json()["data"]] == ["22222BBbb"]


async def test_update_switches_mode_and_clears_other_field(client, add_rows, fetch, staff_headers):
    voucher = await add_rows(views_voucher(views=3))

    resp = await client.put(
        "/api/vhc",
        params={"id": voucher.id},
        json={"code_settings": "deadline_date", "deadline_date": TOMORROW, "payment_state": "Paid"},
        headers=staff_headers,
    )

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "VHC updated successfully"}
    stored = await fetch(VHCCode, voucher.id)
    assert stored.code_settings == "deadline_date"
    assert stored.deadline_date == TOMORROW
    assert stored.number_of_views is None
    assert stored.payment_state == "Paid"

    resp = await client.put(
        "/api/vhc",
        params={"id": voucher.id},
        json={"code_settings": "number_of_views"},
        headers=staff_headers,
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Number of views must be at least 1"}


async def test_update_errors(client, add_rows, staff_headers):
    voucher = await add_rows(views_voucher())

    resp = await client.put("/api/vhc", params={"id": voucher.id}, json={}, headers=staff_headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "No valid fields to update"}

    resp = await client.put("/api/vhc", params={"id": 999}, json={"code_state": "Deactivated"}, headers=staff_headers)
    assert resp.status_code == 404
    assert resp.json() == {"error": "VHC record not found"}

    resp = await client.put(
        "/api/vhc",
        params={"id": voucher.id},
        json={"code_settings": "deadline_date", "deadline_date": "tomorrow"},
        headers=staff_headers,
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid date format. Expected YYYY-MM-DD"}


async def test_delete_voucher(client, add_rows, fetch, staff_headers):
    voucher = await add_rows(views_voucher())

    resp = await client.delete("/api/vhc", params={"id": voucher.id}, headers=staff_headers)
    assert resp.status_code == 200
    assert await fetch(VHCCode, voucher.id) is None

    resp = await client.delete("/api/vhc", params={"id": voucher.id}, headers=staff_headers)
    assert resp.status_code == 404


# Check / decrement

async def test_single_use_voucher_lifecycle(client, add_rows, fetch, student_headers):
    alice, bob, session = await setup_students_and_session(add_rows)
    voucher = await add_rows(views_voucher(views=1))

    resp = await check(client, student_headers(alice.id), "12345ABcd", session.id)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["valid"] is True
    assert body["vhc_id"] == voucher.id
    assert body["code_settings"] == "number_of_views"
    assert body["number_of_views"] == 1

    stored = await fetch(VHCCode, voucher.id)
    assert stored.viewed is True
    assert stored.viewed_by_who == alice.id
    assert stored.number_of_views == 1

    resp = await client.post(
        "/api/vhc/decrement-views", json={"vhc_id": voucher.id}, headers=student_headers(alice.id)
    )
    assert resp.json() == {"success": True, "message": "Views decremented successfully", "number_of_views": 0}

    for student in (alice, bob):
        resp = await check(client, student_headers(student.id), "12345ABcd", session.id)
        assert resp.status_code == 200
        assert resp.json() == {"success": False, "valid": False, "error": "❌ Sorry, This code is already used"}


async def test_pinned_voucher_rejects_other_students(client, add_rows, student_headers):
    alice, bob, session = await setup_students_and_session(add_rows)
    await add_rows(views_voucher(views=2))

    resp = await check(client, student_headers(alice.id), "12345abcd", session.id)
    assert resp.json()["valid"] is True

    resp = await check(client, student_headers(bob.id), "12345ABcd", session.id)
    assert resp.json()["error"] == "❌ Sorry, This code is already used"


async def test_decrement_stops_at_zero(client, add_rows, fetch, student_headers):
    alice, _, _ = await setup_students_and_session(add_rows)
    voucher = await add_rows(views_voucher(views=0, viewed=True, viewed_by_who=alice.id))

    resp = await client.post(
        "/api/vhc/decrement-views", json={"vhc_id": voucher.id}, headers=student_headers(alice.id)
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "success": False,
        "valid": False,
        "error": "❌ Sorry, this code has no views remaining",
    }
    assert (await fetch(VHCCode, voucher.id)).number_of_views == 0


async def test_students_cannot_consume_someone_elses_views(client, add_rows, fetch, student_headers, staff_headers):
    alice, bob, session = await setup_students_and_session(add_rows)
    pinned = await add_rows(views_voucher(views=3))
    unchecked = await add_rows(views_voucher(code="77777QQqq", views=2))

    resp = await check(client, student_headers(alice.id), "12345ABcd", session.id)
    assert resp.json()["valid"] is True

    for vhc_id in (pinned.id, unchecked.id):
        resp = await client.post(
            "/api/vhc/decrement-views", json={"vhc_id": vhc_id}, headers=student_headers(bob.id)
        )
        assert resp.status_code == 200
        assert resp.json() == {"success": False, "valid": False, "error": "❌ Sorry, This code is already used"}

    assert (await fetch(VHCCode, pinned.id)).number_of_views == 3
    assert (await fetch(VHCCode, unchecked.id)).number_of_views == 2

    resp = await client.post(
        "/api/vhc/decrement-views", json={"vhc_id": pinned.id}, headers=student_headers(alice.id)
    )
    assert resp.json()["number_of_views"] == 2

    resp = await client.post("/api/vhc/decrement-views", json={"vhc_id": pinned.id}, headers=staff_headers)
    assert resp.json()["number_of_views"] == 1


async def test_decrement_unknown_and_deadline_vouchers(client, add_rows, student_headers):
    alice, _, _ = await setup_students_and_session(add_rows)
    voucher = await add_rows(deadline_voucher())

    resp = await client.post("/api/vhc/decrement-views", json={"vhc_id": 999}, headers=student_headers(alice.id))
    assert resp.status_code == 404

    resp = await client.post(
        "/api/vhc/decrement-views", json={"vhc_id": voucher.id}, headers=student_headers(alice.id)
    )
    assert resp.json() == {"success": True, "message": "No decrement needed for deadline date codes"}


async def test_deadline_voucher_allows_repeated_use(client, add_rows, fetch, student_headers):
    alice, bob, session = await setup_students_and_session(add_rows)
    voucher = await add_rows(deadline_voucher())

    for student in (alice, bob, alice, bob):
        resp = await check(client, student_headers(student.id), "54321XYxy", session.id)
        body = resp.json()
        assert body["valid"] is True
        assert body["deadline_date"] == TOMORROW
        assert body["number_of_views"] is None

    stored = await fetch(VHCCode, voucher.id)
    assert stored.viewed is False
    assert stored.viewed_by_who is None
    assert stored.number_of_views is None


async def test_deadline_voucher_expires_on_deadline_day(client, add_rows, student_headers):
    alice, _, session = await setup_students_and_session(add_rows)
    await add_rows(deadline_voucher(code="54321XYxy", deadline=TODAY))

    resp = await check(client, student_headers(alice.id), "54321XYxy", session.id)
    assert resp.status_code == 200
    assert resp.json() == {"success": False, "valid": False, "error": "❌ Sorry, This code is expired"}


async def test_deactivated_voucher_is_always_rejected(client, add_rows, student_headers):
    alice, _, session = await setup_students_and_session(add_rows)
    await add_rows(
        views_voucher(code="11111AAaa", views=5, code_state="Deactivated"),
        deadline_voucher(code="22222BBbb", code_state="Deactivated"),
    )

    for code in ("11111AAaa", "22222BBbb"):
        resp = await check(client, student_headers(alice.id), code, session.id)
        assert resp.json()["error"] == "❌ Sorry, This code is deactivated"


async def test_check_input_errors(client, add_rows, student_headers):
    alice, _, session = await setup_students_and_session(add_rows)
    await add_rows(views_voucher())

    resp = await check(client, student_headers(alice.id), "12345", session.id)
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "valid": False, "error": "❌ Sorry, this code is incorrect"}

    resp = await check(client, student_headers(alice.id), "99999ZZzz", session.id)
    assert resp.status_code == 200
    assert resp.json() == {"success": False, "valid": False, "error": "❌ Sorry, This code is incorrect"}

    resp = await client.post("/api/vhc/check", json={"VHC": "12345ABcd"}, headers=student_headers(alice.id))
    assert resp.status_code == 400
    assert resp.json()["valid"] is False


async def test_check_wrongly_typed_input_keeps_check_body(client, add_rows, student_headers):
    alice, _, session = await setup_students_and_session(add_rows)
    await add_rows(views_voucher(views=2))

    resp = await check(client, student_headers(alice.id), 123456789, session.id)
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "valid": False, "error": "❌ Sorry, this code is incorrect"}

    resp = await check(client, student_headers(alice.id), "12345ABcd", "abc")
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "valid": False, "error": "Invalid session ID"}

    resp = await check(client, student_headers(alice.id), "12345ABcd", str(session.id))
    assert resp.status_code == 200
    assert resp.json()["valid"] is True


async def test_check_missing_session_leaves_voucher_untouched(client, add_rows, fetch, student_headers):
    alice, _, _ = await setup_students_and_session(add_rows)
    voucher = await add_rows(views_voucher())

    resp = await check(client, student_headers(alice.id), "12345ABcd", 999)

    assert resp.status_code == 404
    assert resp.json() == {"success": False, "valid": False, "error": "Homework video session not found"}
    stored = await fetch(VHCCode, voucher.id)
    assert stored.viewed is False
    assert stored.viewed_by_who is None


async def test_check_marks_session_week_watched(client, add_rows, session_factory, student_headers):
    alice, _, session = await setup_students_and_session(add_rows, week=3)
    await add_rows(views_voucher())

    resp = await check(client, student_headers(alice.id), "12345ABcd", session.id)
    assert resp.json()["valid"] is True

    async with session_factory() as db:
        result = await db.execute(select(WeekRecord).where(WeekRecord.student_id == alice.id))
        records = result.scalars().all()
    assert len(records) == 1
    assert records[0].week == 3
    assert records[0].view_homework_video is True
    assert records[0].attended is False
    assert records[0].hw_done is False


async def test_racing_pin_only_one_student_wins(add_rows, session_factory):
    alice, bob, session = await setup_students_and_session(add_rows)
    await add_rows(views_voucher(views=1))

    async with session_factory() as first, session_factory() as second:
        # Both requests read the voucher before either pins it
        stale = await find_by_code(first, "12345ABcd")
        await check_voucher(second, "12345ABcd", session.id, bob.id)

        assert await pin_voucher(first, stale, alice.id) is False
        await first.rollback()

    async with session_factory() as db:
        stored = await find_by_code(db, "12345ABcd")
    assert stored.viewed_by_who == bob.id
