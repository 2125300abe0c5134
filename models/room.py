from extensions import db

class Room(db.Model):
    __tablename__ = "rooms"

    id = db.Column(db.Integer, primary_key=True)
    building_id = db.Column(db.Integer, db.ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False)
    room_number = db.Column(db.String(10), nullable=False)
    floor = db.Column(db.Integer, default=1)
    max_capacity = db.Column(db.Integer, nullable=False, default=4)

    price_per_semester = db.Column(db.Numeric(12, 2), nullable=False)

    # Số người ở không lưu ở đây, đếm từ stay_records ACTIVE theo học kỳ
    status = db.Column(
        db.Enum("AVAILABLE", "FULL", "MAINTENANCE", name="room_status"),
        default="AVAILABLE"
    )

    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())

    # Quan hệ
    building = db.relationship("Building", back_populates="rooms")
    stay_records = db.relationship("StayRecord", back_populates="room", cascade="all, delete")
    utility_invoices = db.relationship("UtilityInvoice", back_populates="room", cascade="all, delete")
