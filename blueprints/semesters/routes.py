from flask import Blueprint, jsonify
from services.windows import get_active_semester

semesters_bp = Blueprint("semesters", __name__)

@semesters_bp.route("/active")
def active_semester():
    semester = get_active_semester()
    if not semester:
        return jsonify({"message": "Không có học kỳ nào đang hoạt động."}), 404
    return jsonify(semester.to_dict())
