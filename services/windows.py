from collections import namedtuple
from datetime import datetime

from models.semester import Semester
from services.errors import WindowClosedError

NOT_CONFIGURED = "NOT_CONFIGURED"
NOT_YET_OPEN = "NOT_YET_OPEN"
OPEN = "OPEN"
CLOSED = "CLOSED"

# Mỗi loại đăng ký dùng một cặp (mở, đóng) riêng trên học kỳ
WINDOW_FIELDS = {
    "NORMAL": ("registration_open_date", "registration_close_date"),
    "PRIORITY": ("registration_special_open_date", "registration_special_close_date"),
    "RENEWAL": ("renewal_open_date", "renewal_close_date"),
}

WindowStatus = namedtuple("WindowStatus", ["state", "semester", "open_at", "close_at"])


def get_active_semester():
    return Semester.query.filter_by(is_active=True).order_by(Semester.id.desc()).first()


def resolve_window(registration_type, now=None, semester=None):
    """Tell whether the window of ``registration_type`` is open right now."""
    now = now or datetime.now()
    semester = semester or get_active_semester()
    fields = WINDOW_FIELDS.get(registration_type)
    if semester is None or fields is None:
        return WindowStatus(NOT_CONFIGURED, semester, None, None)

    open_at = getattr(semester, fields[0])
    close_at = getattr(semester, fields[1])
    if open_at is None or close_at is None:
        return WindowStatus(NOT_CONFIGURED, semester, open_at, close_at)
    if now < open_at:
        return WindowStatus(NOT_YET_OPEN, semester, open_at, close_at)
    if now > close_at:
        return WindowStatus(CLOSED, semester, open_at, close_at)
    return WindowStatus(OPEN, semester, open_at, close_at)


def _fmt(value):
    return value.strftime("%H:%M %d/%m/%Y")


def require_open_window(registration_type, now=None):
    """Return the active semester, or raise WindowClosedError with the exact dates."""
    window = resolve_window(registration_type, now=now)
    if window.state == OPEN:
        return window.semester

    payload = {
        "window_state": window.state,
        "open_at": window.open_at.isoformat() if window.open_at else None,
        "close_at": window.close_at.isoformat() if window.close_at else None,
    }
    if window.state == NOT_CONFIGURED:
        if window.semester is None:
            message = "Không có học kỳ nào đang mở đăng ký."
        else:
            message = "Đợt đăng ký này chưa được cấu hình cho học kỳ hiện tại."
    elif window.state == NOT_YET_OPEN:
        message = (
            f"Cổng đăng ký chưa mở. Thời gian đăng ký từ {_fmt(window.open_at)} "
            f"đến {_fmt(window.close_at)}."
        )
    else:
        message = f"Cổng đăng ký đã đóng lúc {_fmt(window.close_at)}."
    raise WindowClosedError(message, **payload)
