from extensions import db

class Building(db.Model):
    __tablename__ = "buildings"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    location = db.Column(db.String(255))

    gender_restriction = db.Column(
        db.Enum("MALE", "FEMALE", "MIXED", name="building_gender"),
        nullable=False,
        default="MIXED"
    )

    created_at = db.Column(db.DateTime, server_default=db.func.now())

    rooms = db.relationship("Room", back_populates="building", cascade="all, delete")
