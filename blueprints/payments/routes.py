from flask import Blueprint, jsonify, request
from flask_login import login_required
from services import get_engine
from services.errors import ReferenceNotFound, ValidationError
from services.payment_refs import ALL_INVOICES
from blueprints.access import acting_student_id

payments_bp = Blueprint("payments", __name__)

def int_field(data, name):
    try:
        return int(data.get(name))
    except (TypeError, ValueError):
        raise ValidationError(f"Thiếu hoặc sai {name}.", field=name)

def payer_id(data):
    requested = data.get("studentId")
    if requested not in (None, ""):
        requested = int_field(data, "studentId")
    return acting_student_id(requested)

# Tạo mã QR thanh toán tất cả hóa đơn chưa trả (hiệu lực 5 phút)
@payments_bp.route("/qrcode/all", methods=["POST"])
@login_required
def generate_qrcode_all():
    data = request.get_json(silent=True) or {}
    student_id = payer_id(data)
    if student_id is None:
        return jsonify({"message": "Không thể thanh toán hóa đơn này!"}), 403

    return jsonify(get_engine().payments.issue_all(student_id))

# Tạo mã QR thanh toán cho một hóa đơn (hiệu lực 5 phút)
@payments_bp.route("/qrcode/<int:invoice_id>", methods=["POST"])
@login_required
def generate_qrcode(invoice_id):
    data = request.get_json(silent=True) or {}
    student_id = payer_id(data)
    if student_id is None:
        return jsonify({"message": "Không thể thanh toán hóa đơn này!"}), 403

    result = get_engine().payments.issue(invoice_id, student_id)
    return jsonify(result)

# Xác nhận thanh toán bằng mã tham chiếu
@payments_bp.route("/confirm", methods=["POST"])
@login_required
def confirm_payment():
    data = request.get_json(silent=True) or {}
    payment_ref = data.get("paymentRef")
    if not payment_ref:
        raise ValidationError("Thiếu mã thanh toán.", field="paymentRef")
    if data.get("invoiceId") == ALL_INVOICES:
        invoice_id = ALL_INVOICES
    else:
        invoice_id = int_field(data, "invoiceId")
    student_id = int_field(data, "studentId")
    if acting_student_id(student_id) is None:
        return jsonify({"message": "Không thể thanh toán hóa đơn này!"}), 403

    result = get_engine().payments.redeem(payment_ref, invoice_id, student_id)
    return jsonify(result)

@payments_bp.route("/verify/<payment_ref>")
@login_required
def verify_payment_ref(payment_ref):
    try:
        result = get_engine().payments.verify(payment_ref)
    except ReferenceNotFound as e:
        return jsonify(e.to_dict()), 404
    return jsonify(result)
