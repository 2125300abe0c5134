from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from extensions import db
from models.notification import Notification
from services import get_engine
from services.db_utils import atomic
from services.errors import ValidationError
from services.notifications import parse_target
from blueprints.access import manager_required

notifications_bp = Blueprint("notifications", __name__)

#-------------------------------------------------------
# Quản lý gửi thông báo theo phạm vi
@notifications_bp.route("", methods=["POST"])
@manager_required
def send_notification():
    data = request.get_json(silent=True) or {}
    title = (data.get("title") or "").strip()
    content = (data.get("content") or "").strip()
    if not title or not content:
        raise ValidationError("Thông báo cần có tiêu đề và nội dung.")

    target = parse_target(data.get("target_scope"), data.get("target_value"))
    with atomic():
        recipients = get_engine().notifier.send(target, title, content)

    return jsonify({"message": "Đã gửi thông báo", "recipients": len(recipients)}), 201

#-------------------------------------------------------
# Thông báo của người dùng hiện tại
@notifications_bp.route("")
@login_required
def my_notifications():
    notifs = (
        Notification.query
        .filter_by(user_id=current_user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .all()
    )
    return jsonify([
        {
            "id": n.id,
            "title": n.title,
            "message": n.message,
            "is_read": n.is_read,
            "created_at": n.created_at.isoformat() if n.created_at else None,
        }
        for n in notifs
    ])

@notifications_bp.route("/mark_all_read", methods=["POST"])
@login_required
def mark_all_read():
    Notification.query.filter_by(user_id=current_user.id, is_read=False).update({"is_read": True})
    db.session.commit()
    return "", 204
