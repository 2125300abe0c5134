import logging
import os
import time
from math import ceil
from collections import namedtuple
from datetime import datetime

from sqlalchemy import or_
from werkzeug.utils import secure_filename

from extensions import db
from models.building import Building
from models.invoice import Invoice
from models.registration import Registration, REGISTRATION_TYPES
from models.room_fee_invoice import RoomFeeInvoice
from models.stay_record import StayRecord
from models.user import User
from services import eligibility
from services.db_utils import atomic
from services.errors import ConflictError, ConstraintViolation, NotFoundError, ValidationError
from services.notifications import individual
from services.windows import require_open_window

logger = logging.getLogger(__name__)

SubmitResult = namedtuple("SubmitResult", ["registration_id", "invoice_id"])

MAX_PAGE_SIZE = 100

# Trạng thái quản lý được phép chuyển
TRANSITIONS = {
    "PENDING": {"APPROVED", "REJECTED", "RETURN"},
    "RETURN": {"PENDING", "REJECTED"},
    "APPROVED": set(),
    "REJECTED": set(),
}

DECISION_MESSAGES = {
    "APPROVED": (
        "Đơn đăng ký KTX đã được duyệt",
        "Đơn đăng ký chỗ ở KTX của bạn đã được duyệt. {note}",
        "Ghi chú: {}",
        "Vui lòng theo dõi thông tin tiếp theo.",
    ),
    "REJECTED": (
        "Đơn đăng ký KTX bị từ chối",
        "Đơn đăng ký chỗ ở KTX của bạn đã bị từ chối. {note}",
        "Lý do: {}",
        "Vui lòng liên hệ ban quản lý để biết thêm chi tiết.",
    ),
    "RETURN": (
        "Yêu cầu bổ sung hồ sơ đăng ký KTX",
        "Đơn đăng ký KTX của bạn cần bổ sung thông tin. {note}",
        "Nội dung: {}",
        "Vui lòng kiểm tra và cập nhật hồ sơ.",
    ),
}


def _optional_int(value, field):
    if value in (None, "", "null"):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Giá trị {field} không hợp lệ.", field=field)


def save_evidence_file(fileobj, upload_folder):
    """Store an uploaded evidence file and return its relative path."""
    if not fileobj or not fileobj.filename:
        return None
    safe = secure_filename(fileobj.filename)
    fname = f"{int(time.time()*1000)}_{safe}"
    os.makedirs(upload_folder, exist_ok=True)
    fileobj.save(os.path.join(upload_folder, fname))
    return f"uploads/registrations/{fname}"


def discard_evidence_file(relative_path, upload_folder):
    if not relative_path:
        return
    path = os.path.join(upload_folder, os.path.basename(relative_path))
    if os.path.exists(path):
        os.remove(path)


class RegistrationService:
    """Creates registrations with their room-fee invoice and applies manager decisions."""

    def __init__(self, notifier):
        self.notifier = notifier

    def validate(self, data):
        student_id = _optional_int(data.get("student_id"), "student_id")
        if student_id is None:
            raise ValidationError("Thiếu mã sinh viên.", field="student_id")

        registration_type = (data.get("registration_type") or "").upper()
        if registration_type not in REGISTRATION_TYPES:
            raise ValidationError("Loại đăng ký không hợp lệ.", field="registration_type")

        priority_category = data.get("priority_category") or "NONE"
        if registration_type == "PRIORITY" and priority_category == "NONE":
            raise ValidationError("Đăng ký ưu tiên cần chọn diện ưu tiên.", field="priority_category")

        return {
            "student_id": student_id,
            "registration_type": registration_type,
            "desired_room_id": _optional_int(data.get("desired_room_id"), "desired_room_id"),
            "desired_building_id": _optional_int(data.get("desired_building_id"), "desired_building_id"),
            "priority_category": priority_category,
            "priority_description": data.get("priority_description") or None,
        }

    def submit(self, data, evidence_file_path=None, now=None):
        """Persist a registration and, for a NORMAL room choice, its invoice.

        Window check, room checks and both inserts share one transaction, so
        either everything commits or nothing does.
        """
        fields = self.validate(data)

        with atomic():
            semester = require_open_window(fields["registration_type"], now=now)

            student = db.session.get(User, fields["student_id"])
            if student is None or student.role != "student":
                raise NotFoundError("Không tìm thấy sinh viên.", student_id=fields["student_id"])

            if fields["desired_building_id"] and db.session.get(Building, fields["desired_building_id"]) is None:
                raise NotFoundError("Không tìm thấy tòa nhà.", building_id=fields["desired_building_id"])

            room = None
            if fields["desired_room_id"]:
                if fields["registration_type"] == "NORMAL":
                    if eligibility.has_active_stay(student.id, semester.id):
                        raise ConstraintViolation("Bạn đã có chỗ ở trong học kỳ này.", reason="ALREADY_ASSIGNED")
                    room = eligibility.check_room(fields["desired_room_id"], semester.id, student)
                else:
                    room = eligibility.load_room_for_update(fields["desired_room_id"])

            registration = Registration(
                semester_id=semester.id,
                status="PENDING",
                evidence_file_path=evidence_file_path,
                created_at=now or datetime.now(),
                **fields,
            )
            db.session.add(registration)
            db.session.flush()

            if room is not None and fields["registration_type"] == "NORMAL":
                invoice = self._issue_room_fee_invoice(registration, room, semester)
                registration.invoice_id = invoice.id

            result = SubmitResult(registration.id, registration.invoice_id)

        logger.info(
            "Registration %s created for student %s (type=%s, room=%s, invoice=%s)",
            result.registration_id, fields["student_id"], fields["registration_type"],
            fields["desired_room_id"], result.invoice_id,
        )
        return result

    def _issue_room_fee_invoice(self, registration, room, semester):
        invoice = Invoice(
            invoice_code=f"RF-{semester.id}-{registration.id:06d}",
            invoice_category="ROOM_FEE",
            total_amount=room.price_per_semester,
            status="PUBLISHED",
            published_at=datetime.now(),
        )
        db.session.add(invoice)
        db.session.flush()
        db.session.add(RoomFeeInvoice(
            invoice_id=invoice.id,
            student_id=registration.student_id,
            room_id=room.id,
            semester_id=semester.id,
            price_per_semester=room.price_per_semester,
        ))
        return invoice

    def update_status(self, registration_id, status, admin_note=None):
        """Apply a manager decision and notify the student."""
        if status not in TRANSITIONS:
            raise ValidationError("Trạng thái không hợp lệ.", field="status")

        with atomic():
            registration = db.session.get(Registration, registration_id, with_for_update=True)
            if registration is None:
                raise NotFoundError("Không tìm thấy đơn đăng ký.", registration_id=registration_id)
            if status not in TRANSITIONS[registration.status]:
                raise ConflictError(
                    f"Không thể chuyển đơn từ {registration.status} sang {status}.",
                    current_status=registration.status,
                )

            registration.status = status
            registration.admin_note = admin_note

            if status in DECISION_MESSAGES:
                title, template, with_note, without_note = DECISION_MESSAGES[status]
                note = with_note.format(admin_note) if admin_note else without_note
                self.notifier.send(individual(registration.student_id), title, template.format(note=note))

        logger.info("Registration %s moved to %s", registration_id, status)
        return registration

    def _to_dict(self, registration):
        stay = StayRecord.query.filter_by(
            student_id=registration.student_id,
            semester_id=registration.semester_id,
            status="ACTIVE",
        ).first()
        return registration.to_dict(assigned_room=stay.room if stay else None)

    def get(self, registration_id):
        registration = db.session.get(Registration, registration_id)
        if registration is None:
            raise NotFoundError("Không tìm thấy đơn đăng ký.", registration_id=registration_id)
        return self._to_dict(registration)

    def for_student(self, student_id):
        registrations = (
            Registration.query
            .filter_by(student_id=student_id)
            .order_by(Registration.created_at.desc(), Registration.id.desc())
            .all()
        )
        return [self._to_dict(r) for r in registrations]

    def search(self, page=1, limit=20, status=None, registration_type=None, search=None, semester_id=None):
        """Paged registration list for managers, newest first."""
        if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError("Tham số phân trang không hợp lệ.", page=page, limit=limit)

        query = Registration.query.join(User, Registration.student_id == User.id)
        if status:
            query = query.filter(Registration.status == status.upper())
        if registration_type:
            query = query.filter(Registration.registration_type == registration_type.upper())
        if semester_id:
            query = query.filter(Registration.semester_id == semester_id)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(User.fullname.ilike(pattern), User.student_code.ilike(pattern)))

        total = query.count()
        rows = (
            query
            .order_by(Registration.created_at.desc(), Registration.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "data": [r.to_dict() for r in rows],
            "meta": {
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": ceil(total / limit),
            },
        }
