import base64
import io
import json
import logging
from datetime import datetime

import qrcode
from qrcode.constants import ERROR_CORRECT_H

from extensions import db
from models.invoice import Invoice
from models.registration import Registration
from models.room_fee_invoice import RoomFeeInvoice
from models.stay_record import StayRecord
from models.utility_invoice import UtilityInvoice
from services import eligibility
from services.db_utils import atomic
from services.errors import ConflictError, ConstraintViolation, NotFoundError, TransientStoreError, ValidationError
from services.notifications import individual

logger = logging.getLogger(__name__)


def render_qr(data):
    """Encode ``data`` as a PNG QR code data URL."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=10, border=1)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer)
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("utf-8")


def unpaid_invoices(student_id):
    """PUBLISHED invoices the student owes: own room fees and utilities of the current room."""
    room_fees = (
        Invoice.query
        .join(RoomFeeInvoice, RoomFeeInvoice.invoice_id == Invoice.id)
        .filter(RoomFeeInvoice.student_id == student_id, Invoice.status == "PUBLISHED")
        .all()
    )
    current_rooms = db.select(StayRecord.room_id).where(
        StayRecord.student_id == student_id, StayRecord.status == "ACTIVE"
    )
    utilities = (
        Invoice.query
        .join(UtilityInvoice, UtilityInvoice.invoice_id == Invoice.id)
        .filter(UtilityInvoice.room_id.in_(current_rooms), Invoice.status == "PUBLISHED")
        .all()
    )
    invoices = {inv.id: inv for inv in room_fees + utilities}
    return [invoices[i] for i in sorted(invoices)]


class PaymentBroker:
    """Issues payment references for invoices and redeems them exactly once."""

    def __init__(self, store, notifier):
        self.store = store
        self.notifier = notifier

    def issue(self, invoice_id, student_id):
        invoice = db.session.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError("Không tìm thấy hóa đơn.", invoice_id=invoice_id)
        if invoice.status == "PAID":
            raise ConflictError("Hóa đơn đã được thanh toán.", invoice_id=invoice.id)
        if invoice.status != "PUBLISHED":
            raise ValidationError("Hóa đơn chưa được phát hành.", invoice_id=invoice.id)
        if invoice.room_fee is not None and invoice.room_fee.student_id != student_id:
            raise ValidationError("Hóa đơn không thuộc về sinh viên này.", invoice_id=invoice.id)

        amount = float(invoice.total_amount or 0)
        reference = self.store.issue(invoice.id, student_id, amount)

        qr_data = {
            "invoiceId": invoice.id,
            "invoiceCode": invoice.invoice_code,
            "amount": amount,
            "studentId": student_id,
            "paymentRef": reference.token,
            "expiresAt": reference.expires_at.isoformat(),
            "category": invoice.invoice_category,
        }
        return {
            "success": True,
            "paymentRef": reference.token,
            "qrCode": render_qr(json.dumps(qr_data)),
            "expiresAt": reference.expires_at.isoformat(),
            "invoiceData": {
                "invoiceCode": invoice.invoice_code,
                "amount": amount,
                "category": invoice.invoice_category,
            },
        }

    def issue_all(self, student_id):
        """One reference covering every unpaid invoice of the student."""
        invoices = unpaid_invoices(student_id)
        if not invoices:
            raise NotFoundError("Không có hóa đơn nào cần thanh toán.", student_id=student_id)

        total = sum(float(inv.total_amount or 0) for inv in invoices)
        codes = [inv.invoice_code for inv in invoices]
        reference = self.store.issue_bundle([inv.id for inv in invoices], student_id, total)

        qr_data = {
            "type": "all",
            "invoiceIds": list(reference.invoice_ids),
            "invoiceCodes": codes,
            "totalAmount": total,
            "studentId": student_id,
            "paymentRef": reference.token,
            "expiresAt": reference.expires_at.isoformat(),
            "invoiceCount": len(invoices),
        }
        return {
            "success": True,
            "paymentRef": reference.token,
            "qrCode": render_qr(json.dumps(qr_data)),
            "expiresAt": reference.expires_at.isoformat(),
            "invoiceData": {
                "invoiceCount": len(invoices),
                "totalAmount": total,
                "invoiceCodes": codes,
            },
        }

    def verify(self, token):
        reference = self.store.peek(token)
        result = {
            "valid": True,
            "expiresAt": reference.expires_at.isoformat(),
            "amount": reference.amount,
        }
        if reference.is_bundle:
            invoices = Invoice.query.filter(Invoice.id.in_(reference.invoice_ids)).order_by(Invoice.id).all()
            result["invoiceCodes"] = [inv.invoice_code for inv in invoices]
            result["invoiceCount"] = len(reference.invoice_ids)
        else:
            invoice = db.session.get(Invoice, reference.invoice_id)
            result["invoiceCode"] = invoice.invoice_code if invoice else None
        return result

    def redeem(self, token, invoice_id, student_id, now=None):
        """Consume the reference and mark its invoice(s) PAID in one transaction."""
        reference = self.store.redeem(token, invoice_id, student_id)
        now = now or datetime.now()
        invoice_ids = reference.invoice_ids or (reference.invoice_id,)
        try:
            with atomic():
                paid = [self._settle(i, reference.student_id, now) for i in invoice_ids]
        except TransientStoreError:
            self.store.restore(reference)
            raise

        logger.info(
            "Invoices %s paid by student %s",
            ", ".join(p["invoice_code"] for p in paid), reference.student_id,
        )
        result = {"success": True, "message": "Thanh toán thành công"}
        if reference.is_bundle:
            result["invoices"] = paid
            result["totalAmount"] = reference.amount
        else:
            result["invoice"] = paid[0]
        return result

    def _settle(self, invoice_id, student_id, now):
        invoice = db.session.get(Invoice, invoice_id, with_for_update=True)
        if invoice is None:
            raise NotFoundError("Không tìm thấy hóa đơn.", invoice_id=invoice_id)
        if invoice.status == "PAID":
            raise ConflictError("Hóa đơn đã được thanh toán.", invoice_id=invoice.id)

        if invoice.invoice_category == "ROOM_FEE":
            registration = (
                Registration.query
                .filter_by(invoice_id=invoice.id)
                .with_for_update()
                .first()
            )
            if registration is not None:
                self._confirm_stay(registration)

        invoice.status = "PAID"
        invoice.paid_at = now
        invoice.paid_by_student_id = student_id
        return invoice.to_dict()

    def _confirm_stay(self, registration):
        # Đơn đã bị job quá hạn từ chối trước khi thanh toán kịp commit
        if registration.status == "REJECTED":
            raise ConflictError(
                "Đơn đăng ký đã bị hủy do quá thời hạn thanh toán.",
                registration_id=registration.id,
            )

        stay = eligibility.active_stay(registration.student_id, registration.semester_id)
        if stay is not None:
            # Đơn đã được xếp phòng tự động, chỉ cần ghi nhận tiền phòng
            if stay.registration_id == registration.id:
                registration.status = "APPROVED"
                return
            raise ConflictError(
                "Bạn đã có chỗ ở trong học kỳ này, không thể thanh toán tiền phòng khác.",
                registration_id=registration.id,
                reason="ALREADY_ASSIGNED",
            )

        if not registration.desired_room_id:
            raise ConstraintViolation("Đơn đăng ký không có phòng để xếp.", registration_id=registration.id)

        student = registration.student
        room = eligibility.check_room(registration.desired_room_id, registration.semester_id, student)
        eligibility.create_stay(student.id, room, registration.semester, registration_id=registration.id)
        registration.status = "APPROVED"
        registration.admin_note = "Đã thanh toán tiền phòng, tự động xếp phòng"
        self.notifier.send(
            individual(student.id),
            "Thanh toán thành công",
            "Bạn đã thanh toán thành công và được phân phòng. Vui lòng kiểm tra thông tin phòng ở của bạn.",
        )
        logger.info("Student %s assigned to room %s after payment", student.id, room.id)
