from extensions import db
from models.room import Room
from models.stay_record import StayRecord
from models.user import User
from services.errors import ConstraintViolation, NotFoundError

ROOM_UNAVAILABLE = "ROOM_UNAVAILABLE"
ROOM_FULL = "ROOM_FULL"
GENDER_MISMATCH = "GENDER_MISMATCH"

MESSAGES = {
    ROOM_UNAVAILABLE: "Phòng hiện không nhận đăng ký.",
    ROOM_FULL: "Phòng đã hết chỗ.",
    GENDER_MISMATCH: "Phòng không phù hợp giới tính.",
}


def gender_mismatch(building_gender, occupant_genders, student_gender):
    """True khi sinh viên không được ở phòng này.

    Tòa MIXED vẫn xếp phòng theo một giới: phòng đã có người thì mọi người
    trong phòng phải cùng giới với sinh viên.
    """
    if building_gender not in (None, "MIXED") and building_gender != student_gender:
        return True
    return any(g != student_gender for g in occupant_genders)


def room_occupancy(room_id, semester_id):
    """Return (count, genders) of the room's ACTIVE stays in the semester."""
    rows = (
        db.session.query(User.gender)
        .join(StayRecord, StayRecord.student_id == User.id)
        .filter(
            StayRecord.room_id == room_id,
            StayRecord.semester_id == semester_id,
            StayRecord.status == "ACTIVE",
        )
        .all()
    )
    genders = [r[0] for r in rows]
    return len(genders), genders


def active_stay(student_id, semester_id):
    return StayRecord.query.filter_by(
        student_id=student_id, semester_id=semester_id, status="ACTIVE"
    ).first()


def has_active_stay(student_id, semester_id):
    return db.session.query(
        StayRecord.query.filter_by(
            student_id=student_id, semester_id=semester_id, status="ACTIVE"
        ).exists()
    ).scalar()


def room_rejection(room, semester_id, student):
    """Return the reason code the room must be refused for, or None."""
    if room.status == "FULL":
        return ROOM_FULL
    if room.status != "AVAILABLE":
        return ROOM_UNAVAILABLE
    count, genders = room_occupancy(room.id, semester_id)
    if count >= room.max_capacity:
        return ROOM_FULL
    if gender_mismatch(room.building.gender_restriction, genders, student.gender):
        return GENDER_MISMATCH
    return None


def load_room_for_update(room_id):
    # Khóa dòng phòng để hai giao dịch đồng thời không cùng qua bước kiểm tra sức chứa
    room = db.session.get(Room, room_id, with_for_update=True)
    if room is None:
        raise NotFoundError("Không tìm thấy phòng.", room_id=room_id)
    return room


def check_room(room_id, semester_id, student):
    """Lock and validate the room for ``student``; raise on any violation."""
    room = load_room_for_update(room_id)
    reason = room_rejection(room, semester_id, student)
    if reason:
        raise ConstraintViolation(MESSAGES[reason], reason=reason, room_id=room.id)
    return room


def refresh_room_status(room, semester_id):
    count, _ = room_occupancy(room.id, semester_id)
    if room.status == "AVAILABLE" and count >= room.max_capacity:
        room.status = "FULL"


def create_stay(student_id, room, semester, registration_id=None):
    stay = StayRecord(
        student_id=student_id,
        registration_id=registration_id,
        room_id=room.id,
        semester_id=semester.id,
        start_date=semester.start_date,
        end_date=semester.end_date,
        status="ACTIVE",
    )
    db.session.add(stay)
    db.session.flush()
    refresh_room_status(room, semester.id)
    return stay
