from flask import Blueprint, jsonify, request
from flask_login import current_user
from services import get_engine
from services.scheduler import JobAlreadyRunning
from services.utility_cycles import publish_cycle, record_readings

admin_bp = Blueprint("admin", __name__)

# Middleware: chỉ quản lý / admin mới vào được
@admin_bp.before_request
def restrict_to_staff():
    if not current_user.is_authenticated:
        return jsonify({"message": "Vui lòng đăng nhập."}), 401
    if not current_user.is_manager:
        return jsonify({"message": "Bạn không có quyền truy cập trang quản trị."}), 403

def admin_only():
    if current_user.role != "admin":
        return jsonify({"message": "Chỉ admin mới được thao tác với tác vụ định kỳ."}), 403
    return None

#-------------------------------------------------------
# Tác vụ định kỳ (chạy tay để kiểm tra vận hành)
@admin_bp.route("/jobs")
def list_jobs():
    denied = admin_only()
    if denied:
        return denied

    scheduler = get_engine().scheduler
    jobs = []
    for name in scheduler.job_names:
        next_run = scheduler.next_run(name)
        jobs.append({"name": name, "next_run": next_run.isoformat() if next_run else None})
    return jsonify({"running": scheduler.running, "jobs": jobs})

@admin_bp.route("/jobs/<string:name>/run", methods=["POST"])
def run_job(name):
    denied = admin_only()
    if denied:
        return denied

    scheduler = get_engine().scheduler
    if name not in scheduler.job_names:
        return jsonify({"message": "Không tìm thấy tác vụ."}), 404
    try:
        result = scheduler.run(name)
    except JobAlreadyRunning:
        return jsonify({"message": "Tác vụ đang chạy, vui lòng thử lại sau."}), 409

    if isinstance(result, list):
        summary = {"affected": len(result), "ids": result}
    elif result is None:
        summary = {"affected": 0}
    else:
        summary = {"affected": 1, "id": result}
    return jsonify({"message": "Đã chạy tác vụ", "job": name, "result": summary})

#-------------------------------------------------------
# Điện nước
@admin_bp.route("/utility-invoices/<int:utility_invoice_id>/readings", methods=["PUT"])
def update_readings(utility_invoice_id):
    data = request.get_json(silent=True) or {}
    return jsonify(record_readings(utility_invoice_id, data))

@admin_bp.route("/utility-cycles/<int:cycle_id>/publish", methods=["POST"])
def publish_utility_cycle(cycle_id):
    published = publish_cycle(cycle_id, get_engine().notifier)
    return jsonify({"message": "Đã phát hành hóa đơn điện nước", "published": published})
