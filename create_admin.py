import os
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from app import app, db
from models.user import User

with app.app_context():
    for username, fullname, role, password in [
        ("admin", "Admin", "admin", "admin123"),
        ("manager", "Quản lý KTX", "manager", "manager123"),
    ]:
        if User.query.filter_by(username=username).first():
            print(f"⚠️ Tài khoản {username} đã tồn tại!")
            continue
        user = User(
            fullname=fullname,
            username=username,
            email=f"{username}@example.com",
            role=role,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        print(f"Đã tạo tài khoản {role}: {username}")
