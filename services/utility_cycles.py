import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from extensions import db
from models.invoice import Invoice
from models.room import Room
from models.service_price import ServicePrice
from models.utility_invoice import UtilityInvoice
from models.utility_invoice_cycle import UtilityInvoiceCycle
from services.db_utils import atomic
from services.errors import ConflictError, NotFoundError, ValidationError
from services.notifications import NotificationTarget

logger = logging.getLogger(__name__)

DEFAULT_PRICES = {"ELECTRICITY": Decimal("2950"), "WATER": Decimal("10000")}


def bootstrap_monthly_cycle(now=None):
    """Open this month's utility cycle with one draft invoice per active room.

    Old meter readings are carried over from the room's latest PUBLISHED
    utility invoice; None means the room still needs a manual baseline.
    Returns the new cycle id, or None when the month already has one.
    """
    now = now or datetime.now()
    month, year = now.month, now.year

    if UtilityInvoiceCycle.query.filter_by(month=month, year=year).first():
        logger.info("[CRON] Cycle already exists for %s/%s, skipping creation", month, year)
        return None

    try:
        with atomic():
            cycle = UtilityInvoiceCycle(month=month, year=year, status="DRAFT")
            db.session.add(cycle)
            db.session.flush()

            rooms = Room.query.filter(Room.status.in_(["AVAILABLE", "FULL"])).order_by(Room.id).all()
            for room in rooms:
                last = (
                    UtilityInvoice.query
                    .filter_by(room_id=room.id, status="PUBLISHED")
                    .order_by(UtilityInvoice.created_at.desc(), UtilityInvoice.id.desc())
                    .first()
                )
                db.session.add(UtilityInvoice(
                    cycle_id=cycle.id,
                    room_id=room.id,
                    electricity_old=last.electricity_new if last else None,
                    water_old=last.water_new if last else None,
                    status="DRAFT",
                ))
                if last is None:
                    logger.info("[CRON] Room %s: no previous readings found", room.room_number)
    except IntegrityError:
        # Một tiến trình khác vừa tạo chu kỳ của tháng này
        logger.info("[CRON] Cycle for %s/%s was created concurrently, skipping", month, year)
        return None

    cycle_id = cycle.id
    logger.info("[CRON] Created cycle %s for %s/%s with %d utility invoices", cycle_id, month, year, len(rooms))
    return cycle_id


def record_readings(utility_invoice_id, data):
    with atomic():
        ui = db.session.get(UtilityInvoice, utility_invoice_id, with_for_update=True)
        if ui is None:
            raise NotFoundError("Không tìm thấy hóa đơn điện nước.", utility_invoice_id=utility_invoice_id)
        if ui.status != "DRAFT":
            raise ConflictError("Hóa đơn điện nước đã được phát hành.")

        for key in ("electricity_old", "electricity_new", "water_old", "water_new"):
            if key in data and data[key] not in (None, ""):
                try:
                    value = int(data[key])
                except (TypeError, ValueError):
                    raise ValidationError(f"Chỉ số {key} không hợp lệ.", field=key)
                if value < 0:
                    raise ValidationError(f"Chỉ số {key} không được âm.", field=key)
                setattr(ui, key, value)

        for old, new in (("electricity_old", "electricity_new"), ("water_old", "water_new")):
            old_value, new_value = getattr(ui, old), getattr(ui, new)
            if old_value is not None and new_value is not None and new_value < old_value:
                raise ValidationError("Chỉ số mới phải lớn hơn hoặc bằng chỉ số cũ.", field=new)
        result = ui.to_dict()
    return result


def _unit_price(service_name):
    price = (
        ServicePrice.query
        .filter_by(service_name=service_name, is_active=True)
        .order_by(ServicePrice.apply_date.desc(), ServicePrice.id.desc())
        .first()
    )
    return Decimal(price.unit_price) if price else DEFAULT_PRICES[service_name]


def publish_cycle(cycle_id, notifier):
    """Turn every recorded draft of the cycle into a PUBLISHED UTILITY invoice."""
    with atomic():
        cycle = db.session.get(UtilityInvoiceCycle, cycle_id, with_for_update=True)
        if cycle is None:
            raise NotFoundError("Không tìm thấy chu kỳ điện nước.", cycle_id=cycle_id)
        if cycle.status != "DRAFT":
            raise ConflictError("Chu kỳ điện nước đã được phát hành.", cycle_id=cycle_id)

        drafts = (
            UtilityInvoice.query
            .filter_by(cycle_id=cycle.id, status="DRAFT")
            .order_by(UtilityInvoice.room_id)
            .all()
        )
        if not drafts:
            raise ValidationError("Chu kỳ không có hóa đơn điện nước nào.")
        missing = [ui.room_id for ui in drafts if not ui.readings_complete]
        if missing:
            raise ValidationError("Chưa nhập đủ chỉ số điện nước cho tất cả các phòng.", room_ids=missing)

        elec_price = _unit_price("ELECTRICITY")
        water_price = _unit_price("WATER")
        year_month = f"{cycle.year}{cycle.month:02d}"
        now = datetime.now()

        for seq, ui in enumerate(drafts, start=1):
            amount = (
                (ui.electricity_new - ui.electricity_old) * elec_price
                + (ui.water_new - ui.water_old) * water_price
            )
            invoice = Invoice(
                invoice_code=f"UTIL-{year_month}-{seq:04d}",
                invoice_category="UTILITY",
                total_amount=amount,
                status="PUBLISHED",
                published_at=now,
            )
            db.session.add(invoice)
            db.session.flush()
            ui.invoice_id = invoice.id
            ui.amount = amount
            ui.status = "PUBLISHED"

        cycle.status = "PUBLISHED"
        cycle.published_at = now

        notifier.send(
            NotificationTarget("ROOM", tuple(ui.room_id for ui in drafts)),
            f"Hóa đơn điện nước tháng {cycle.month}/{cycle.year}",
            f"Hóa đơn điện nước tháng {cycle.month}/{cycle.year} của phòng bạn đã được phát hành. "
            "Vui lòng thanh toán đúng hạn.",
        )
        published = len(drafts)

    logger.info("Published %d utility invoices for cycle %s", published, cycle_id)
    return published
