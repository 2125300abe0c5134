from extensions import db

class StayRecord(db.Model):
    __tablename__ = "stay_records"

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    semester_id = db.Column(db.Integer, db.ForeignKey("semesters.id", ondelete="CASCADE"), nullable=False)
    # Đơn đăng ký đã sinh ra chỗ ở này (xếp phòng tự động hoặc thanh toán)
    registration_id = db.Column(db.Integer, db.ForeignKey("registrations.id", ondelete="SET NULL"))

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date)

    status = db.Column(
        db.Enum("ACTIVE", "ENDED", name="stay_status"),
        default="ACTIVE",
        nullable=False
    )

    created_at = db.Column(db.DateTime, server_default=db.func.now())

    # Quan hệ
    student = db.relationship("User", back_populates="stay_records")
    room = db.relationship("Room", back_populates="stay_records")
    semester = db.relationship("Semester")
