from flask import Blueprint, jsonify, request
from flask_login import login_user, logout_user, login_required, current_user
from models.user import User

auth_bp = Blueprint("auth", __name__)

# Đăng nhập
@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or request.form
    username = data.get("username")
    password = data.get("password")

    user = User.query.filter_by(username=username).first()
    if not user or not user.check_password(password or ""):
        return jsonify({"message": "Sai tên đăng nhập hoặc mật khẩu!"}), 401
    if user.status != "active":
        return jsonify({"message": "Tài khoản đã bị khóa."}), 403

    login_user(user)
    return jsonify({"message": "Đăng nhập thành công!", "user": {"id": user.id, "role": user.role}})

# Đăng xuất
@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"message": "Đã đăng xuất."})

@auth_bp.route("/me")
@login_required
def me():
    return jsonify({
        "id": current_user.id,
        "fullname": current_user.fullname,
        "role": current_user.role,
        "gender": current_user.gender,
    })
