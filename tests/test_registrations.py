import io
import os
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from extensions import db
from models import Invoice, Notification, Registration, RoomFeeInvoice
from services.errors import ConflictError, NotFoundError, ValidationError, WindowClosedError


@pytest.fixture
def male_room(make_building, make_room, make_user, semester, add_stay):
    """Phòng 2 chỗ ở tòa nam, đã có một sinh viên nam."""
    room = make_room(make_building(gender_restriction="MALE"), max_capacity=2, price=Decimal("1800000"))
    add_stay(make_user("MALE"), room, semester)
    return room


def counts():
    return Registration.query.count(), Invoice.query.count(), RoomFeeInvoice.query.count()


def test_female_student_rejected_from_male_room(login_as, make_user, male_room):
    student = make_user("FEMALE")
    resp = login_as(student).post("/registrations", json={
        "registration_type": "NORMAL",
        "desired_room_id": male_room.id,
    })
    assert resp.status_code == 400
    body = resp.get_json()
    assert "giới tính" in body["message"]
    assert body["reason"] == "GENDER_MISMATCH"
    assert counts() == (0, 0, 0)


def test_male_student_gets_room_fee_invoice(login_as, make_user, male_room, semester):
    student = make_user("MALE")
    resp = login_as(student).post("/registrations", json={
        "registration_type": "NORMAL",
        "desired_room_id": male_room.id,
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["invoice_id"] is not None

    db.session.expire_all()
    registration = db.session.get(Registration, body["id"])
    assert registration.status == "PENDING"
    assert registration.student_id == student.id
    assert registration.invoice_id == body["invoice_id"]

    invoice = db.session.get(Invoice, body["invoice_id"])
    assert invoice.total_amount == Decimal("1800000")
    assert invoice.status == "PUBLISHED"
    assert invoice.invoice_category == "ROOM_FEE"
    assert invoice.invoice_code == f"RF-{semester.id}-{registration.id:06d}"
    assert invoice.room_fee.room_id == male_room.id
    assert invoice.room_fee.student_id == student.id


def test_closed_window_writes_nothing(login_as, make_user, male_room):
    resp = login_as(make_user("MALE")).post("/registrations", json={
        "registration_type": "RENEWAL",
        "desired_room_id": male_room.id,
    })
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["window_state"] == "CLOSED"
    assert "đã đóng" in body["message"]
    assert counts() == (0, 0, 0)


def test_no_active_semester(login_as, make_user, app):
    resp = login_as(make_user()).post("/registrations", json={"registration_type": "NORMAL"})
    assert resp.status_code == 400
    assert resp.get_json()["window_state"] == "NOT_CONFIGURED"


def test_full_room_rejected(login_as, make_user, male_room, semester, add_stay):
    add_stay(make_user("MALE"), male_room, semester)
    resp = login_as(make_user("MALE")).post("/registrations", json={
        "registration_type": "NORMAL",
        "desired_room_id": male_room.id,
    })
    assert resp.status_code == 400
    assert resp.get_json()["reason"] == "ROOM_FULL"
    assert counts() == (0, 0, 0)


def test_student_with_stay_cannot_register_again(login_as, make_user, make_building, make_room, semester, add_stay):
    student = make_user("MALE")
    add_stay(student, make_room(make_building()), semester)
    other = make_room(make_building(name="B2"))
    resp = login_as(student).post("/registrations", json={
        "registration_type": "NORMAL",
        "desired_room_id": other.id,
    })
    assert resp.status_code == 400
    assert resp.get_json()["reason"] == "ALREADY_ASSIGNED"


def test_unknown_room_is_404(login_as, make_user, semester):
    resp = login_as(make_user()).post("/registrations", json={
        "registration_type": "NORMAL",
        "desired_room_id": 4242,
    })
    assert resp.status_code == 404
    assert counts() == (0, 0, 0)


def test_unknown_student_is_404(engine, semester):
    with pytest.raises(NotFoundError):
        engine.registrations.submit({"student_id": 999, "registration_type": "NORMAL"})


def test_registration_without_room_has_no_invoice(login_as, make_user, make_building, semester):
    building = make_building()
    resp = login_as(make_user()).post("/registrations", json={
        "registration_type": "NORMAL",
        "desired_building_id": building.id,
    })
    assert resp.status_code == 201
    assert resp.get_json()["invoice_id"] is None
    assert Invoice.query.count() == 0


def test_priority_requires_category(engine, make_user, semester):
    student = make_user()
    with pytest.raises(ValidationError):
        engine.registrations.submit({"student_id": student.id, "registration_type": "PRIORITY"})


def test_priority_with_evidence_upload(login_as, make_user, semester, app):
    resp = login_as(make_user()).post(
        "/registrations",
        data={
            "registration_type": "PRIORITY",
            "priority_category": "POOR_HOUSEHOLD",
            "priority_description": "Hộ nghèo",
            "evidence_file": (io.BytesIO(b"%PDF-1.4"), "giay xac nhan.pdf"),
        },
        content_type="multipart/form-data",
    )
    assert resp.status_code == 201
    db.session.expire_all()
    registration = db.session.get(Registration, resp.get_json()["id"])
    assert registration.registration_type == "PRIORITY"
    assert registration.evidence_file_path.startswith("uploads/registrations/")
    assert registration.evidence_file_path.endswith("giay_xac_nhan.pdf")
    assert registration.invoice_id is None


def test_invalid_type(engine, make_user, semester):
    with pytest.raises(ValidationError):
        engine.registrations.submit({"student_id": make_user().id, "registration_type": "VIP"})


def test_student_cannot_register_for_someone_else(login_as, make_user, semester):
    other = make_user()
    resp = login_as(make_user()).post("/registrations", json={
        "student_id": other.id,
        "registration_type": "NORMAL",
    })
    assert resp.status_code == 403


def test_anonymous_request_is_401(client, semester):
    assert client.post("/registrations", json={"registration_type": "NORMAL"}).status_code == 401


def test_submit_before_window_opens(engine, make_user, semester):
    early = semester.registration_open_date - timedelta(minutes=1)
    with pytest.raises(WindowClosedError) as exc:
        engine.registrations.submit({"student_id": make_user().id, "registration_type": "NORMAL"}, now=early)
    assert exc.value.payload["window_state"] == "NOT_YET_OPEN"


#-------------------------------------------------------
# Duyệt đơn

def test_manager_rejects_and_student_is_notified(login_as, manager, make_user, make_registration, semester):
    student = make_user()
    registration = make_registration(student, semester)
    resp = login_as(manager).put(
        f"/registrations/{registration.id}/status",
        json={"status": "rejected", "admin_note": "Thiếu giấy tờ"},
    )
    assert resp.status_code == 200

    db.session.expire_all()
    assert db.session.get(Registration, registration.id).status == "REJECTED"
    notification = Notification.query.filter_by(user_id=student.id).one()
    assert notification.title == "Đơn đăng ký KTX bị từ chối"
    assert "Lý do: Thiếu giấy tờ" in notification.message


def test_return_then_resubmit(engine, make_user, make_registration, semester):
    registration = make_registration(make_user(), semester)
    engine.registrations.update_status(registration.id, "RETURN", "Bổ sung minh chứng")
    engine.registrations.update_status(registration.id, "PENDING")
    assert db.session.get(Registration, registration.id).status == "PENDING"


def test_final_status_cannot_change(engine, make_user, make_registration, semester):
    registration = make_registration(make_user(), semester, status="APPROVED")
    with pytest.raises(ConflictError):
        engine.registrations.update_status(registration.id, "REJECTED")


def test_unknown_status(engine, make_user, make_registration, semester):
    registration = make_registration(make_user(), semester)
    with pytest.raises(ValidationError):
        engine.registrations.update_status(registration.id, "CANCELLED")


def test_student_cannot_change_status(login_as, make_user, make_registration, semester):
    student = make_user()
    registration = make_registration(student, semester)
    resp = login_as(student).put(f"/registrations/{registration.id}/status", json={"status": "APPROVED"})
    assert resp.status_code == 403


def test_get_registration_shows_assigned_room(login_as, make_user, make_building, make_room,
                                              make_registration, semester, add_stay):
    student = make_user()
    room = make_room(make_building(name="A1"))
    registration = make_registration(student, semester, status="APPROVED")
    add_stay(student, room, semester)

    body = login_as(student).get(f"/registrations/{registration.id}").get_json()
    assert body["assigned_room_id"] == room.id
    assert body["assigned_building_name"] == "A1"


def test_get_registration_of_other_student_is_forbidden(login_as, make_user, make_registration, semester):
    registration = make_registration(make_user(), semester)
    resp = login_as(make_user()).get(f"/registrations/{registration.id}")
    assert resp.status_code == 403


def test_export_excel(login_as, manager, make_user, make_registration, semester):
    make_registration(make_user(), semester, created_at=datetime.now() - timedelta(hours=1))
    resp = login_as(manager).get(f"/registrations/export?semester_id={semester.id}")
    assert resp.status_code == 200
    assert resp.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert resp.data[:2] == b"PK"


def test_pending_registrations_do_not_hold_capacity(engine, make_user, make_building, make_room, semester):
    room = make_room(make_building(), max_capacity=1)
    engine.registrations.submit({
        "student_id": make_user("FEMALE").id, "registration_type": "NORMAL", "desired_room_id": room.id,
    })
    # Đơn PENDING chưa chiếm chỗ, sinh viên thứ hai vẫn đăng ký được
    result = engine.registrations.submit({
        "student_id": make_user("MALE").id, "registration_type": "NORMAL", "desired_room_id": room.id,
    })
    assert result.invoice_id is not None


def uploaded_files(app):
    folder = app.config["UPLOAD_FOLDER_REGISTRATIONS"]
    return set(os.listdir(folder)) if os.path.isdir(folder) else set()


def test_rejected_submission_leaves_no_evidence_file(login_as, make_user, semester, app):
    before = uploaded_files(app)
    resp = login_as(make_user()).post(
        "/registrations",
        data={
            "registration_type": "RENEWAL",
            "evidence_file": (io.BytesIO(b"%PDF-1.4"), "minh chung.pdf"),
        },
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400
    assert resp.get_json()["window_state"] == "CLOSED"
    assert uploaded_files(app) == before
    assert counts() == (0, 0, 0)


#-------------------------------------------------------
# Danh sách đơn

@pytest.fixture
def listing(make_user, make_registration, semester):
    t0 = datetime.now() - timedelta(days=1)
    an = make_user(fullname="Nguyễn Văn An")
    binh = make_user(fullname="Trần Thị Bình", gender="FEMALE")
    cuong = make_user(fullname="Lê Văn Cường")
    regs = [
        make_registration(an, semester, created_at=t0),
        make_registration(binh, semester, registration_type="PRIORITY", created_at=t0 + timedelta(hours=1),
                          priority_category="POOR_HOUSEHOLD"),
        make_registration(cuong, semester, status="REJECTED", created_at=t0 + timedelta(hours=2)),
        make_registration(an, semester, registration_type="RENEWAL", created_at=t0 + timedelta(hours=3)),
    ]
    return {"students": (an, binh, cuong), "registrations": regs}


def test_list_registrations_paged_newest_first(login_as, manager, listing):
    regs = listing["registrations"]
    client = login_as(manager)

    body = client.get("/registrations?page=1&limit=3").get_json()
    assert body["meta"] == {"total": 4, "page": 1, "limit": 3, "totalPages": 2}
    assert [r["id"] for r in body["data"]] == [regs[3].id, regs[2].id, regs[1].id]

    body = client.get("/registrations?page=2&limit=3").get_json()
    assert [r["id"] for r in body["data"]] == [regs[0].id]


def test_list_registrations_filters(login_as, manager, listing):
    regs = listing["registrations"]
    an = listing["students"][0]
    client = login_as(manager)

    body = client.get("/registrations?status=rejected").get_json()
    assert [r["id"] for r in body["data"]] == [regs[2].id]

    body = client.get("/registrations?registration_type=RENEWAL").get_json()
    assert [r["id"] for r in body["data"]] == [regs[3].id]

    body = client.get("/registrations", query_string={"search": "Bình"}).get_json()
    assert [r["id"] for r in body["data"]] == [regs[1].id]

    body = client.get("/registrations", query_string={"search": an.student_code}).get_json()
    assert {r["id"] for r in body["data"]} == {regs[0].id, regs[3].id}
    assert body["meta"]["total"] == 2


def test_list_priority_registrations(login_as, manager, listing):
    body = login_as(manager).get("/registrations/priority").get_json()
    assert [r["id"] for r in body["data"]] == [listing["registrations"][1].id]
    assert body["data"][0]["priority_category"] == "POOR_HOUSEHOLD"


def test_list_registrations_bad_paging(login_as, manager, listing):
    client = login_as(manager)
    assert client.get("/registrations?limit=0").status_code == 400
    assert client.get("/registrations?limit=500").status_code == 400
    assert client.get("/registrations?page=0").status_code == 400


def test_student_cannot_list_all_registrations(login_as, listing):
    client = login_as(listing["students"][0])
    assert client.get("/registrations").status_code == 403
    assert client.get("/registrations/priority").status_code == 403


def test_my_registrations(login_as, listing):
    an, binh, _ = listing["students"]
    regs = listing["registrations"]

    body = login_as(an).get("/registrations/mine").get_json()
    assert [r["id"] for r in body] == [regs[3].id, regs[0].id]

    body = login_as(binh).get("/registrations/mine").get_json()
    assert [r["id"] for r in body] == [regs[1].id]
