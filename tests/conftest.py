import os
import tempfile
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from flask import g

_tmp_dir = tempfile.mkdtemp(prefix="dorm-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_tmp_dir, "test.db")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["MAIL_ENABLED"] = "false"
os.environ["UPLOAD_FOLDER_REGISTRATIONS"] = os.path.join(_tmp_dir, "uploads")

from app import app as flask_app  # noqa: E402
from extensions import db  # noqa: E402
from models import Building, Registration, Room, Semester, StayRecord, User  # noqa: E402


@pytest.fixture
def app():
    flask_app.config["TESTING"] = True
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def engine(app):
    return app.extensions["dorm_engine"]


def login(client, user):
    with client.session_transaction() as sess:
        sess["_user_id"] = str(user.id)
        sess["_fresh"] = True
    # Các request dùng chung app context của fixture, Flask-Login cache người dùng trên g
    g.pop("_login_user", None)


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def factory(gender="MALE", role="student", **kwargs):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            fullname=kwargs.pop("fullname", f"Sinh viên {n}"),
            username=kwargs.pop("username", f"user{n}"),
            student_code=f"B23DCCN{n:03d}" if role == "student" else None,
            email=f"user{n}@example.com",
            gender=gender,
            role=role,
            **kwargs,
        )
        user.set_password("123456")
        db.session.add(user)
        db.session.commit()
        return user

    return factory


@pytest.fixture
def manager(make_user):
    return make_user(gender=None, role="manager", fullname="Quản lý")


@pytest.fixture
def admin(make_user):
    return make_user(gender=None, role="admin", fullname="Admin")


@pytest.fixture
def make_building(app):
    def factory(gender_restriction="MIXED", name="B1"):
        building = Building(name=name, location="Khu A", gender_restriction=gender_restriction)
        db.session.add(building)
        db.session.commit()
        return building

    return factory


@pytest.fixture
def make_room(app):
    counter = {"n": 0}

    def factory(building, max_capacity=2, price=Decimal("1500000"), status="AVAILABLE"):
        counter["n"] += 1
        room = Room(
            building_id=building.id,
            room_number=f"{building.name}-{100 + counter['n']}",
            floor=1,
            max_capacity=max_capacity,
            price_per_semester=price,
            status=status,
        )
        db.session.add(room)
        db.session.commit()
        return room

    return factory


@pytest.fixture
def semester(app):
    now = datetime.now()
    sem = Semester(
        term="HK1",
        academic_year="2026-2027",
        start_date=(now + timedelta(days=30)).date(),
        end_date=(now + timedelta(days=150)).date(),
        registration_open_date=now - timedelta(days=1),
        registration_close_date=now + timedelta(days=7),
        registration_special_open_date=now - timedelta(days=1),
        registration_special_close_date=now + timedelta(days=7),
        renewal_open_date=now - timedelta(days=10),
        renewal_close_date=now - timedelta(days=3),
        is_active=True,
    )
    db.session.add(sem)
    db.session.commit()
    return sem


@pytest.fixture
def add_stay(app):
    def factory(student, room, semester, status="ACTIVE"):
        stay = StayRecord(
            student_id=student.id,
            room_id=room.id,
            semester_id=semester.id,
            start_date=semester.start_date,
            end_date=semester.end_date,
            status=status,
        )
        db.session.add(stay)
        db.session.commit()
        return stay

    return factory


@pytest.fixture
def make_registration(app):
    def factory(student, semester, registration_type="NORMAL", created_at=None, **kwargs):
        registration = Registration(
            student_id=student.id,
            semester_id=semester.id,
            registration_type=registration_type,
            status=kwargs.pop("status", "PENDING"),
            created_at=created_at or datetime.now(),
            **kwargs,
        )
        db.session.add(registration)
        db.session.commit()
        return registration

    return factory


@pytest.fixture
def login_as(client):
    def do(user):
        login(client, user)
        return client

    return do
