from extensions import db
from datetime import datetime

class UtilityInvoice(db.Model):
    __tablename__ = "utility_invoices"

    id = db.Column(db.Integer, primary_key=True)
    cycle_id = db.Column(db.Integer, db.ForeignKey("utility_invoice_cycles.id", ondelete="CASCADE"), nullable=False)
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="SET NULL"))

    # Chỉ số cũ = None nghĩa là phòng chưa có mốc, cần nhập tay
    electricity_old = db.Column(db.Integer)
    electricity_new = db.Column(db.Integer)
    water_old = db.Column(db.Integer)
    water_new = db.Column(db.Integer)
    amount = db.Column(db.Numeric(12, 2))

    status = db.Column(
        db.Enum("DRAFT", "PUBLISHED", name="utility_invoice_status"),
        default="DRAFT",
        nullable=False
    )

    created_at = db.Column(db.DateTime, default=datetime.now)

    cycle = db.relationship("UtilityInvoiceCycle", back_populates="utility_invoices")
    room = db.relationship("Room", back_populates="utility_invoices")
    invoice = db.relationship("Invoice")

    @property
    def readings_complete(self):
        return None not in (self.electricity_old, self.electricity_new, self.water_old, self.water_new)

    def to_dict(self):
        return {
            "id": self.id,
            "cycle_id": self.cycle_id,
            "room_id": self.room_id,
            "invoice_id": self.invoice_id,
            "electricity_old": self.electricity_old,
            "electricity_new": self.electricity_new,
            "water_old": self.water_old,
            "water_new": self.water_new,
            "amount": float(self.amount) if self.amount is not None else None,
            "status": self.status,
        }
