import logging
from dataclasses import dataclass, field

from extensions import db
from models.building import Building
from models.registration import Registration
from models.room import Room
from models.semester import Semester
from services import eligibility
from services.db_utils import atomic
from services.errors import ConflictError, DormError, NotFoundError
from services.notifications import individual

logger = logging.getLogger(__name__)

NO_ELIGIBLE_ROOM = "NO_ELIGIBLE_ROOM"
NO_CAPACITY = "NO_CAPACITY"
ALREADY_ASSIGNED = "ALREADY_ASSIGNED"
NOT_PENDING = "NOT_PENDING"
ASSIGNMENT_ERROR = "ASSIGNMENT_ERROR"

FAILURE_MESSAGES = {
    eligibility.ROOM_UNAVAILABLE: "Phòng mong muốn không còn nhận sinh viên",
    eligibility.ROOM_FULL: "Phòng mong muốn đã hết chỗ",
    eligibility.GENDER_MISMATCH: "Phòng mong muốn không phù hợp giới tính",
    NO_CAPACITY: "Không còn phòng trống",
    NO_ELIGIBLE_ROOM: "Không có phòng phù hợp",
    ALREADY_ASSIGNED: "Sinh viên đã có chỗ ở trong học kỳ",
}


@dataclass
class RoomSlot:
    """In-memory availability snapshot of one room for the whole run."""
    room_id: int
    room_number: str
    building_id: int
    building_name: str
    building_gender: str
    max_capacity: int
    occupancy: int
    genders: list = field(default_factory=list)

    @property
    def free(self):
        return self.max_capacity - self.occupancy

    def accepts(self, gender):
        return self.free > 0 and not eligibility.gender_mismatch(self.building_gender, self.genders, gender)


@dataclass
class AssignmentReport:
    total: int = 0
    success: int = 0
    failed: int = 0
    details: list = field(default_factory=list)

    def to_dict(self):
        return {"total": self.total, "success": self.success, "failed": self.failed, "details": self.details}


class RoomAllocator:
    """Greedy FIFO matcher of PENDING NORMAL registrations to rooms.

    Availability is snapshotted once per run and updated in memory, so two
    runs for the same semester must not overlap.
    """

    def __init__(self, notifier):
        self.notifier = notifier

    def pending_registrations(self, semester_id):
        return (
            Registration.query
            .filter_by(semester_id=semester_id, status="PENDING", registration_type="NORMAL")
            .order_by(Registration.created_at.asc(), Registration.id.asc())
            .all()
        )

    def snapshot(self, semester_id):
        rows = (
            db.session.query(Room, Building)
            .join(Building, Room.building_id == Building.id)
            .filter(Room.status == "AVAILABLE")
            .all()
        )
        slots = {}
        for room, building in rows:
            count, genders = eligibility.room_occupancy(room.id, semester_id)
            if count >= room.max_capacity:
                continue
            slots[room.id] = RoomSlot(
                room_id=room.id,
                room_number=room.room_number,
                building_id=building.id,
                building_name=building.name,
                building_gender=building.gender_restriction,
                max_capacity=room.max_capacity,
                occupancy=count,
                genders=genders,
            )
        return slots

    def choose(self, registration, gender, slots):
        """Return (slot, None) or (None, failure_reason)."""
        named_reason = None
        if registration.desired_room_id:
            slot = slots.get(registration.desired_room_id)
            if slot is not None and slot.accepts(gender):
                return slot, None
            if slot is None:
                room = db.session.get(Room, registration.desired_room_id)
                if room is None or room.status not in ("AVAILABLE", "FULL"):
                    named_reason = eligibility.ROOM_UNAVAILABLE
                else:
                    named_reason = eligibility.ROOM_FULL
            else:
                named_reason = eligibility.GENDER_MISMATCH

        candidates = list(slots.values())
        if registration.desired_building_id:
            candidates = [s for s in candidates if s.building_id == registration.desired_building_id]

        # Ưu tiên lấp đầy phòng đã có người trước khi mở phòng mới
        candidates.sort(key=lambda s: (-s.occupancy, s.room_id))
        for slot in candidates:
            if slot.accepts(gender):
                return slot, None

        if named_reason:
            return None, named_reason
        if not candidates:
            return None, NO_CAPACITY
        return None, NO_ELIGIBLE_ROOM

    def auto_assign(self, semester_id):
        semester = db.session.get(Semester, semester_id)
        if semester is None:
            raise NotFoundError("Không tìm thấy học kỳ.", semester_id=semester_id)

        registrations = self.pending_registrations(semester_id)
        slots = self.snapshot(semester_id)
        report = AssignmentReport(total=len(registrations))
        logger.info(
            "Auto-assign semester %s: %d pending registrations, %d rooms with free slots",
            semester_id, len(registrations), len(slots),
        )

        for registration in registrations:
            student = registration.student
            detail = {
                "registration_id": registration.id,
                "student_id": student.id,
                "mssv": student.student_code,
                "student_name": student.fullname,
            }

            if eligibility.has_active_stay(student.id, semester_id):
                slot, reason = None, ALREADY_ASSIGNED
            else:
                slot, reason = self.choose(registration, student.gender, slots)

            if slot is None:
                report.failed += 1
                detail.update(status="failed", reason=reason, message=FAILURE_MESSAGES[reason])
                report.details.append(detail)
                continue

            try:
                self._assign(registration.id, student.id, slot, semester_id)
            except DormError as exc:
                # Lỗi của một đơn không dừng cả lượt xếp phòng
                reason = exc.payload.get("reason") or ASSIGNMENT_ERROR
                if reason in (eligibility.ROOM_FULL, eligibility.ROOM_UNAVAILABLE):
                    slots.pop(slot.room_id, None)
                logger.warning("Auto-assign of registration %s failed: %s", detail["registration_id"], exc.message)
                report.failed += 1
                detail.update(status="failed", reason=reason, message=exc.message)
                report.details.append(detail)
                continue

            slot.occupancy += 1
            slot.genders.append(student.gender)
            if slot.free <= 0:
                del slots[slot.room_id]

            report.success += 1
            detail.update(
                status="success",
                room_id=slot.room_id,
                room_number=slot.room_number,
                building_name=slot.building_name,
            )
            report.details.append(detail)

        logger.info(
            "Auto-assign semester %s finished: %d success, %d failed",
            semester_id, report.success, report.failed,
        )
        return report

    def _assign(self, registration_id, student_id, slot, semester_id):
        note = f"Tự động xếp phòng {slot.room_number} - {slot.building_name}"
        with atomic():
            # Khóa lại đơn: thanh toán hoặc job quá hạn có thể vừa đổi trạng thái
            registration = db.session.get(
                Registration, registration_id, with_for_update=True, populate_existing=True
            )
            if registration is None or registration.status != "PENDING":
                raise ConflictError("Đơn đăng ký không còn ở trạng thái chờ xếp phòng.", reason=NOT_PENDING)

            student = registration.student
            room = eligibility.check_room(slot.room_id, semester_id, student)
            registration.status = "APPROVED"
            registration.admin_note = note
            semester = registration.semester
            eligibility.create_stay(student_id, room, semester, registration_id=registration.id)
            self.notifier.send(
                individual(student_id),
                "Đã được xếp phòng KTX",
                f"Bạn đã được xếp vào phòng {slot.room_number} tòa {slot.building_name} "
                f"cho học kỳ {semester.name}.",
            )
