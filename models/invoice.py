from extensions import db
from datetime import datetime

INVOICE_CATEGORIES = ("ROOM_FEE", "UTILITY", "OTHER")


class Invoice(db.Model):
    __tablename__ = "invoices"

    id = db.Column(db.Integer, primary_key=True)
    invoice_code = db.Column(db.String(20), nullable=False, unique=True)
    invoice_category = db.Column(
        db.Enum(*INVOICE_CATEGORIES, name="invoice_category"),
        nullable=False
    )
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(
        db.Enum("DRAFT", "PUBLISHED", "PAID", name="invoice_status"),
        default="DRAFT",
        nullable=False
    )

    published_at = db.Column(db.DateTime)
    paid_at = db.Column(db.DateTime)
    paid_by_student_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))

    created_at = db.Column(db.DateTime, default=datetime.now)

    # Bảng chi tiết theo loại hóa đơn
    room_fee = db.relationship("RoomFeeInvoice", back_populates="invoice", uselist=False, cascade="all, delete-orphan")
    paid_by = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "invoice_code": self.invoice_code,
            "invoice_category": self.invoice_category,
            "total_amount": float(self.total_amount or 0),
            "status": self.status,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "paid_by_student_id": self.paid_by_student_id,
        }
