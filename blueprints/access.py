from functools import wraps

from flask import jsonify
from flask_login import current_user, login_required


def manager_required(view):
    """Chỉ quản lý / admin mới được gọi."""
    @wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        if not current_user.is_manager:
            return jsonify({"message": "Bạn không có quyền thực hiện thao tác này."}), 403
        return view(*args, **kwargs)
    return wrapper


def acting_student_id(requested_id):
    """Sinh viên chỉ được thao tác cho chính mình; quản lý có thể làm thay."""
    if current_user.is_manager:
        return requested_id
    if requested_id not in (None, "", current_user.id, str(current_user.id)):
        return None
    return current_user.id
