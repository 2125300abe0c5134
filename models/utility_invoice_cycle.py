from extensions import db

class UtilityInvoiceCycle(db.Model):
    __tablename__ = "utility_invoice_cycles"
    __table_args__ = (db.UniqueConstraint("month", "year", name="uq_cycle_month_year"),)

    id = db.Column(db.Integer, primary_key=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)

    status = db.Column(
        db.Enum("DRAFT", "PUBLISHED", "CLOSED", name="utility_cycle_status"),
        default="DRAFT",
        nullable=False
    )

    published_at = db.Column(db.DateTime)
    closed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    utility_invoices = db.relationship("UtilityInvoice", back_populates="cycle", cascade="all, delete-orphan")
