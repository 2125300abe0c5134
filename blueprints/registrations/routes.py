from flask import Blueprint, jsonify, request, current_app, send_file
from flask_login import current_user, login_required
from extensions import db
from models.registration import Registration
from models.room import Room
from models.stay_record import StayRecord
from models.semester import Semester
from services import get_engine
from services.errors import NotFoundError, ValidationError
from services.registrations import discard_evidence_file, save_evidence_file
from services.windows import resolve_window
from blueprints.access import manager_required, acting_student_id
from datetime import datetime
import io
import pandas as pd

registrations_bp = Blueprint("registrations", __name__)

def request_data():
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()

#-------------------------------------------------------
# Sinh viên gửi đơn đăng ký
@registrations_bp.route("", methods=["POST"])
@login_required
def create_registration():
    data = request_data()

    student_id = acting_student_id(data.get("student_id"))
    if student_id is None:
        return jsonify({"message": "Không thể đăng ký thay sinh viên khác."}), 403
    data["student_id"] = student_id

    upload_folder = current_app.config["UPLOAD_FOLDER_REGISTRATIONS"]
    evidence = save_evidence_file(request.files.get("evidence_file"), upload_folder)
    try:
        result = get_engine().registrations.submit(data, evidence_file_path=evidence)
    except Exception:
        # Đơn không được tạo thì xóa file minh chứng vừa lưu
        discard_evidence_file(evidence, upload_folder)
        raise

    return jsonify({
        "message": "Đăng ký thành công",
        "id": result.registration_id,
        "invoice_id": result.invoice_id,
    }), 201

#-------------------------------------------------------
# Danh sách đơn
def list_args():
    return {
        "page": request.args.get("page", 1, type=int),
        "limit": request.args.get("limit", 20, type=int),
        "status": request.args.get("status"),
        "search": request.args.get("search"),
        "semester_id": request.args.get("semester_id", type=int),
    }

@registrations_bp.route("", methods=["GET"])
@manager_required
def list_registrations():
    args = list_args()
    args["registration_type"] = request.args.get("registration_type")
    return jsonify(get_engine().registrations.search(**args))

@registrations_bp.route("/priority")
@manager_required
def list_priority_registrations():
    return jsonify(get_engine().registrations.search(registration_type="PRIORITY", **list_args()))

# Đơn của sinh viên đang đăng nhập
@registrations_bp.route("/mine")
@login_required
def my_registrations():
    return jsonify(get_engine().registrations.for_student(current_user.id))

# Trạng thái cổng đăng ký hiện tại
@registrations_bp.route("/window")
def registration_window():
    registration_type = (request.args.get("type") or "NORMAL").upper()
    window = resolve_window(registration_type)
    return jsonify({
        "registration_type": registration_type,
        "state": window.state,
        "semester_id": window.semester.id if window.semester else None,
        "open_at": window.open_at.isoformat() if window.open_at else None,
        "close_at": window.close_at.isoformat() if window.close_at else None,
    })

#-------------------------------------------------------
# Quản lý: xếp phòng tự động
@registrations_bp.route("/auto-assign", methods=["POST"])
@manager_required
def auto_assign():
    data = request_data()
    try:
        semester_id = int(data.get("semester_id"))
    except (TypeError, ValueError):
        raise ValidationError("Thiếu học kỳ cần xếp phòng.", field="semester_id")

    report = get_engine().allocator.auto_assign(semester_id)
    return jsonify({"message": "Xếp phòng tự động hoàn tất", "result": report.to_dict()})

# Duyệt / từ chối / yêu cầu bổ sung
@registrations_bp.route("/<int:registration_id>/status", methods=["PUT"])
@manager_required
def update_registration_status(registration_id):
    data = request_data()
    status = (data.get("status") or "").upper()
    get_engine().registrations.update_status(registration_id, status, data.get("admin_note"))
    return jsonify({"message": "Cập nhật trạng thái thành công"})

@registrations_bp.route("/<int:registration_id>")
@login_required
def get_registration(registration_id):
    data = get_engine().registrations.get(registration_id)
    if acting_student_id(data["student_id"]) is None:
        return jsonify({"message": "Bạn không có quyền xem đơn này."}), 403
    return jsonify(data)

#-------------------------------------------------------
# Xuất file excel danh sách đơn theo học kỳ
@registrations_bp.route("/export")
@manager_required
def export_registrations():
    semester_id = request.args.get("semester_id", type=int)
    semester = db.session.get(Semester, semester_id) if semester_id else None
    if semester is None:
        raise NotFoundError("Không tìm thấy học kỳ.", semester_id=semester_id)

    registrations = (
        Registration.query
        .filter_by(semester_id=semester.id)
        .order_by(Registration.created_at.asc())
        .all()
    )
    stays = {
        s.student_id: s for s in StayRecord.query.filter_by(semester_id=semester.id, status="ACTIVE").all()
    }

    rows = []
    for r in registrations:
        stay = stays.get(r.student_id)
        desired = db.session.get(Room, r.desired_room_id) if r.desired_room_id else None
        rows.append({
            "MSSV": r.student.student_code,
            "Họ tên": r.student.fullname,
            "Giới tính": r.student.gender,
            "Loại đăng ký": r.registration_type,
            "Diện ưu tiên": r.priority_category,
            "Phòng mong muốn": desired.room_number if desired else "",
            "Phòng được xếp": f"{stay.room.room_number} ({stay.room.building.name})" if stay else "",
            "Trạng thái": r.status,
            "Ghi chú": r.admin_note or "",
            "Ngày tạo": r.created_at.strftime("%d/%m/%Y %H:%M") if r.created_at else "",
        })
    df = pd.DataFrame(rows, columns=[
        "MSSV", "Họ tên", "Giới tính", "Loại đăng ký", "Diện ưu tiên",
        "Phòng mong muốn", "Phòng được xếp", "Trạng thái", "Ghi chú", "Ngày tạo",
    ])

    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="xlsxwriter") as writer:
        df.to_excel(writer, index=False, sheet_name="Đơn đăng ký")

        workbook = writer.book
        worksheet = writer.sheets["Đơn đăng ký"]
        header_format = workbook.add_format({"bold": True, "bg_color": "#CCE5FF", "border": 1})
        for col_num, value in enumerate(df.columns.values):
            worksheet.write(0, col_num, value, header_format)

    output.seek(0)
    filename = f"Dang_ky_KTX_{semester.term}_{datetime.now().strftime('%Y-%m-%d_%H-%M')}.xlsx"

    return send_file(
        output,
        as_attachment=True,
        download_name=filename,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
