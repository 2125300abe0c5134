import os
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from app import app, db
from models import Room
from services.eligibility import room_occupancy
from services.windows import get_active_semester

if __name__ == "__main__":
    with app.app_context():
        semester = get_active_semester()
        if semester is None:
            print("⚠️ Không có học kỳ đang hoạt động, không thể đồng bộ.")
            raise SystemExit(1)

        print(f"🔄 Bắt đầu đồng bộ trạng thái phòng theo học kỳ {semester.name}...")

        rooms = Room.query.filter(Room.status.in_(["AVAILABLE", "FULL"])).all()
        for room in rooms:
            count, _ = room_occupancy(room.id, semester.id)
            room.status = "FULL" if count >= room.max_capacity else "AVAILABLE"
            print(f" - {room.building.name} | {room.room_number}: {count}/{room.max_capacity} ({room.status})")

        db.session.commit()
        print("✅ Đồng bộ trạng thái phòng thành công!")
