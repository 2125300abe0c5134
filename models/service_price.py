from extensions import db

class ServicePrice(db.Model):
    __tablename__ = "service_prices"

    id = db.Column(db.Integer, primary_key=True)
    service_name = db.Column(db.Enum("ELECTRICITY", "WATER", name="service_name"), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    unit = db.Column(db.String(20))
    apply_date = db.Column(db.Date)
    is_active = db.Column(db.Boolean, default=True)
