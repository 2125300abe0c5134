import os
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import random
from datetime import date, datetime, timedelta
from app import app
from extensions import db
from models import Building, Room, Semester, ServicePrice, SystemSetting, User, Registration

# ====== CONFIG ======
FLOORS = 3
ROOMS_PER_FLOOR = 4
PENDING_REGISTRATIONS = 20   # số đơn NORMAL chờ xếp phòng
# =====================

def create_settings():
    if not SystemSetting.current():
        db.session.add(SystemSetting(
            system_name="KTX Sinh viên",
            hotline="0123456789",
            email="ktx@example.com",
            address="Hà Nội",
            utility_start_day=27,
            utility_end_day=5,
            max_reservation_time=24,
        ))
    if not ServicePrice.query.first():
        db.session.add(ServicePrice(service_name="ELECTRICITY", unit_price=2950, unit="kWh", apply_date=date.today()))
        db.session.add(ServicePrice(service_name="WATER", unit_price=10000, unit="m3", apply_date=date.today()))
    db.session.commit()

def create_buildings():
    print("🏢 Tạo tòa nhà và phòng...")
    buildings = [
        Building(name="B1", location="Khu A", gender_restriction="MALE"),
        Building(name="B2", location="Khu A", gender_restriction="FEMALE"),
        Building(name="B3", location="Khu B", gender_restriction="MIXED"),
    ]
    db.session.add_all(buildings)
    db.session.flush()

    rooms = []
    for b in buildings:
        for floor in range(1, FLOORS + 1):
            for i in range(1, ROOMS_PER_FLOOR + 1):
                capacity = random.choice([2, 4, 6])
                rooms.append(Room(
                    building_id=b.id,
                    room_number=f"{b.name}-{floor}{i:02d}",
                    floor=floor,
                    max_capacity=capacity,
                    price_per_semester=capacity * 400000 + 600000,
                    status="AVAILABLE",
                ))
    db.session.add_all(rooms)
    db.session.commit()
    print(f"✅ Đã tạo {len(buildings)} tòa, {len(rooms)} phòng.")

def create_semester():
    print("📅 Tạo học kỳ đang mở đăng ký...")
    Semester.query.update({"is_active": False})
    now = datetime.now()
    semester = Semester(
        term="HK1",
        academic_year=f"{now.year}-{now.year + 1}",
        start_date=(now + timedelta(days=30)).date(),
        end_date=(now + timedelta(days=150)).date(),
        registration_open_date=now - timedelta(days=1),
        registration_close_date=now + timedelta(days=14),
        registration_special_open_date=now - timedelta(days=7),
        registration_special_close_date=now + timedelta(days=3),
        renewal_open_date=now - timedelta(days=14),
        renewal_close_date=now - timedelta(days=2),
        is_active=True,
    )
    db.session.add(semester)
    db.session.commit()
    return semester

def create_pending_registrations(semester):
    print("📝 Tạo đơn đăng ký chờ xếp phòng...")
    buildings = Building.query.all()
    students = User.query.filter_by(role="student").all()
    created = 0
    for i in range(min(PENDING_REGISTRATIONS, len(students))):
        student = students[i]
        db.session.add(Registration(
            student_id=student.id,
            semester_id=semester.id,
            registration_type="NORMAL",
            desired_building_id=random.choice(buildings).id if random.random() < 0.5 else None,
            status="PENDING",
            created_at=datetime.now() - timedelta(minutes=PENDING_REGISTRATIONS - i),
        ))
        created += 1
    db.session.commit()
    print(f"✅ Đã tạo {created} đơn đăng ký.")

if __name__ == "__main__":
    with app.app_context():
        db.create_all()
        create_settings()
        create_buildings()
        semester = create_semester()
        create_pending_registrations(semester)
