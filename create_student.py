import os
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from app import app, db
from models.user import User

with app.app_context():
    ustu = [
        ("Nguyễn Văn An", "nguyenvanan", "B23DCCN091", "D23CQCN01-B", "nvan@gmail.com", "0912345678", "MALE"),
        ("Trần Thị Bình", "tranthibinh", "B23DCCN002", "D23CQCN01-B", "ttb@gmail.com", "0912345679", "FEMALE"),
        ("Lê Văn Cường", "levancuong", "B23DCCN123", "D23CQCN01-B", "lvc@gmail.com", "0912345680", "MALE"),
        ("Phạm Thị Dung", "phamthidung", "B23DCCN004", "D23CQCN02-B", "ptd@gmail.com", "0912345681", "FEMALE"),
        ("Hoàng Văn Em", "hoangvanem", "B23DCCN005", "D23CQCN02-B", "hve@gmail.com", "0912345682", "MALE"),
        ("Đỗ Thị Hoa", "dothihoa", "B23DCCN006", "D23CQCN02-B", "dth@gmail.com", "0912345683", "FEMALE"),
        ("Nguyễn Văn Huy", "nguyenvanhuy", "B23DCCN007", "D23CQCN03-B", "nvh@gmail.com", "0912345684", "MALE"),
        ("Trần Thị Kim", "tranthikim", "B23DCCN008", "D23CQCN03-B", "ttk@gmail.com", "0912345685", "FEMALE"),
    ]

    created = 0
    for u in ustu:
        if User.query.filter_by(username=u[1]).first():
            continue
        student = User(
            fullname=u[0],
            username=u[1],
            student_code=u[2],
            class_name=u[3],
            email=u[4],
            phone_number=u[5],
            gender=u[6],
            role="student",
        )
        student.set_password('123456')
        db.session.add(student)
        created += 1

    db.session.commit()
    print(f"thành công! Đã tạo {created} sinh viên.")
