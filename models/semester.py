from extensions import db

class Semester(db.Model):
    __tablename__ = "semesters"

    id = db.Column(db.Integer, primary_key=True)
    term = db.Column(db.String(20), nullable=False)            # VD: HK1, HK2, HE
    academic_year = db.Column(db.String(20), nullable=False)   # VD: 2025-2026

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)

    # Ba đợt đăng ký độc lập
    registration_open_date = db.Column(db.DateTime)           # NORMAL
    registration_close_date = db.Column(db.DateTime)
    registration_special_open_date = db.Column(db.DateTime)   # PRIORITY
    registration_special_close_date = db.Column(db.DateTime)
    renewal_open_date = db.Column(db.DateTime)                # RENEWAL
    renewal_close_date = db.Column(db.DateTime)

    is_active = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, server_default=db.func.now())

    registrations = db.relationship("Registration", back_populates="semester", lazy=True)

    @property
    def name(self):
        return f"{self.term} {self.academic_year}"

    def to_dict(self):
        def iso(value):
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "name": self.name,
            "term": self.term,
            "academic_year": self.academic_year,
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "registration_open_date": iso(self.registration_open_date),
            "registration_close_date": iso(self.registration_close_date),
            "registration_special_open_date": iso(self.registration_special_open_date),
            "registration_special_close_date": iso(self.registration_special_close_date),
            "renewal_open_date": iso(self.renewal_open_date),
            "renewal_close_date": iso(self.renewal_close_date),
            "is_active": self.is_active,
        }
