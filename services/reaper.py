import logging
from datetime import datetime, timedelta

from flask import current_app

from models.registration import Registration
from models.system_setting import SystemSetting
from services.db_utils import atomic
from services.notifications import individual

logger = logging.getLogger(__name__)


def hold_duration_hours():
    setting = SystemSetting.current()
    if setting and setting.max_reservation_time:
        return setting.max_reservation_time
    return current_app.config.get("HOLD_DURATION_HOURS", 24)


def reject_expired_holds(notifier, now=None, hours=None):
    """Reject PENDING NORMAL room holds older than the hold duration.

    Candidate rows are locked first; a row a payment committed in the
    meantime is no longer PENDING and is skipped.
    """
    now = now or datetime.now()
    hours = hours or hold_duration_hours()
    cutoff = now - timedelta(hours=hours)
    note = f"Tự động từ chối do quá thời hạn thanh toán ({hours}h)"

    with atomic():
        expired = (
            Registration.query
            .filter(
                Registration.registration_type == "NORMAL",
                Registration.status == "PENDING",
                Registration.desired_room_id.isnot(None),
                Registration.created_at < cutoff,
            )
            .order_by(Registration.id)
            .with_for_update()
            .all()
        )
        expired = [r for r in expired if r.status == "PENDING"]
        if not expired:
            logger.info("[CRON] No expired registrations found")
            return []

        for registration in expired:
            registration.status = "REJECTED"
            registration.admin_note = note

        notifier.send(
            individual(*[r.student_id for r in expired]),
            "Đơn đăng ký bị từ chối",
            f"Đơn đăng ký chỗ ở của bạn đã bị từ chối do quá thời hạn thanh toán ({hours} giờ). "
            "Vui lòng đăng ký lại nếu còn phòng trống.",
        )
        rejected = [r.id for r in expired]

    logger.info("[CRON] Rejected %d expired registrations (max reservation time: %sh)", len(rejected), hours)
    return rejected
