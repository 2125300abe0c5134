from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from extensions import db


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    fullname = db.Column(db.String(100), nullable=False)
    username = db.Column(db.String(50), nullable=False, unique=True)
    student_code = db.Column(db.String(20), unique=True)   # MSSV, chỉ sinh viên mới có
    email = db.Column(db.String(100), unique=True)
    phone_number = db.Column(db.String(15))
    class_name = db.Column(db.String(50))
    password_hash = db.Column(db.String(255), nullable=False)

    gender = db.Column(db.Enum("MALE", "FEMALE", name="user_gender"))

    role = db.Column(
        db.Enum("admin", "manager", "student", name="user_roles"),
        default="student"
    )
    status = db.Column(
        db.Enum("active", "inactive", "banned", name="user_status"),
        default="active"
    )
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())

    # Quan hệ
    registrations = db.relationship("Registration", back_populates="student", lazy=True)
    stay_records = db.relationship("StayRecord", back_populates="student", lazy=True)
    notifications = db.relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_manager(self):
        return self.role in ("admin", "manager")

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)
