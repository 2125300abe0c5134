from extensions import db
from datetime import datetime

REGISTRATION_TYPES = ("NORMAL", "PRIORITY", "RENEWAL")
REGISTRATION_STATUSES = ("PENDING", "APPROVED", "REJECTED", "RETURN")


class Registration(db.Model):
    __tablename__ = "registrations"

    id = db.Column(db.Integer, primary_key=True)

    # Liên kết
    student_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    semester_id = db.Column(db.Integer, db.ForeignKey("semesters.id", ondelete="CASCADE"), nullable=False)
    desired_room_id = db.Column(db.Integer, db.ForeignKey("rooms.id", ondelete="SET NULL"))
    desired_building_id = db.Column(db.Integer, db.ForeignKey("buildings.id", ondelete="SET NULL"))
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="SET NULL"))

    registration_type = db.Column(
        db.Enum(*REGISTRATION_TYPES, name="registration_type"),
        nullable=False
    )

    # Chính sách ưu tiên
    priority_category = db.Column(db.String(50), default="NONE")
    priority_description = db.Column(db.Text)
    evidence_file_path = db.Column(db.String(255))   # File minh chứng

    status = db.Column(
        db.Enum(*REGISTRATION_STATUSES, name="registration_status"),
        default="PENDING",
        nullable=False
    )
    admin_note = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    # Quan hệ
    student = db.relationship("User", back_populates="registrations")
    semester = db.relationship("Semester", back_populates="registrations")
    desired_room = db.relationship("Room")
    desired_building = db.relationship("Building")
    invoice = db.relationship("Invoice", cascade="all, delete", single_parent=True)

    def to_dict(self, assigned_room=None):
        return {
            "id": self.id,
            "student_id": self.student_id,
            "student_name": self.student.fullname if self.student else None,
            "mssv": self.student.student_code if self.student else None,
            "semester_id": self.semester_id,
            "registration_type": self.registration_type,
            "desired_room_id": self.desired_room_id,
            "desired_building_id": self.desired_building_id,
            "priority_category": self.priority_category,
            "priority_description": self.priority_description,
            "evidence_file_path": self.evidence_file_path,
            "invoice_id": self.invoice_id,
            "status": self.status,
            "admin_note": self.admin_note,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "assigned_room_id": assigned_room.id if assigned_room else None,
            "assigned_room_number": assigned_room.room_number if assigned_room else None,
            "assigned_building_name": assigned_room.building.name if assigned_room else None,
        }
