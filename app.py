from flask import Flask, jsonify
from flask_login import LoginManager
from dotenv import load_dotenv
import logging
import os
from extensions import db, mail
from flask_migrate import Migrate

# Setup Flask
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

def env_flag(name, default="false"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")

app = Flask(__name__)
app.config['SECRET_KEY'] = os.getenv("SECRET_KEY", "secret_key")
app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv("DATABASE_URL", "sqlite:///dorm.db")
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

# Giới hạn thời gian chờ khóa / lấy kết nối, hết hạn thì báo lỗi có thể thử lại
DB_LOCK_TIMEOUT = int(os.getenv("DB_LOCK_TIMEOUT", 10))
engine_options = {"pool_pre_ping": True}
if app.config['SQLALCHEMY_DATABASE_URI'].startswith("sqlite"):
    engine_options["connect_args"] = {"timeout": DB_LOCK_TIMEOUT}
else:
    engine_options["pool_timeout"] = DB_LOCK_TIMEOUT
    if app.config['SQLALCHEMY_DATABASE_URI'].startswith("mysql"):
        engine_options["connect_args"] = {
            "init_command": f"SET SESSION innodb_lock_wait_timeout = {DB_LOCK_TIMEOUT}"
        }
app.config['SQLALCHEMY_ENGINE_OPTIONS'] = engine_options

# Cấu hình engine đăng ký / xếp phòng
app.config["HOLD_DURATION_HOURS"] = int(os.getenv("HOLD_DURATION_HOURS", 24))
app.config["PAYMENT_REF_TTL_MINUTES"] = int(os.getenv("PAYMENT_REF_TTL_MINUTES", 5))
app.config["PAYMENT_REF_SWEEP_PROBABILITY"] = float(os.getenv("PAYMENT_REF_SWEEP_PROBABILITY", 0.1))
app.config["UTILITY_START_DAY"] = int(os.getenv("UTILITY_START_DAY", 27))
app.config["SCHEDULER_ENABLED"] = env_flag("SCHEDULER_ENABLED", "true")
app.config["MAIL_ENABLED"] = env_flag("MAIL_ENABLED")

# Lưu file minh chứng của đơn đăng ký
UPLOAD_FOLDER_REGISTRATIONS = os.getenv(
    "UPLOAD_FOLDER_REGISTRATIONS",
    os.path.join(os.path.dirname(__file__), "static", "uploads", "registrations"),
)
app.config["UPLOAD_FOLDER_REGISTRATIONS"] = UPLOAD_FOLDER_REGISTRATIONS
app.config["MAX_CONTENT_LENGTH"] = 5 * 1024 * 1024  # 5MB/file

# Cấu hình Flask-Mail
app.config.update(
    MAIL_SERVER=os.getenv("MAIL_SERVER", "smtp.gmail.com"),
    MAIL_PORT=int(os.getenv("MAIL_PORT", 587)),
    MAIL_USE_TLS=True,
    MAIL_USERNAME=os.getenv("MAIL_USERNAME"),
    MAIL_PASSWORD=os.getenv("MAIL_PASSWORD"),
    MAIL_DEFAULT_SENDER=os.getenv("MAIL_DEFAULT_SENDER", os.getenv("MAIL_USERNAME")),
)


# Khởi tạo db, migrate, mail
db.init_app(app)
migrate = Migrate(app, db)
mail.init_app(app)

# Login Manager
login_manager = LoginManager(app)

# Import models sau khi db đã init
from models import User
from services import init_engine
from services.errors import DormError


# Import blueprints
from blueprints.auth.routes import auth_bp
app.register_blueprint(auth_bp, url_prefix="/auth")

from blueprints.registrations.routes import registrations_bp
app.register_blueprint(registrations_bp, url_prefix="/registrations")

from blueprints.payments.routes import payments_bp
app.register_blueprint(payments_bp, url_prefix="/payments")

from blueprints.semesters.routes import semesters_bp
app.register_blueprint(semesters_bp, url_prefix="/semesters")

from blueprints.notifications.routes import notifications_bp
app.register_blueprint(notifications_bp, url_prefix="/notifications")

from blueprints.admin.routes import admin_bp
app.register_blueprint(admin_bp, url_prefix="/admin")

engine = init_engine(app)

@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))

@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"message": "Vui lòng đăng nhập."}), 401

@app.errorhandler(DormError)
def handle_dorm_error(error):
    return jsonify(error.to_dict()), error.status_code

@app.route("/")
def home():
    return jsonify({"service": "dorm-registration", "scheduler": engine.scheduler.running})

if app.config["SCHEDULER_ENABLED"]:
    engine.scheduler.start()

if __name__ == "__main__":
    app.run(debug=True, use_reloader=False)
