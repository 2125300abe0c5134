from extensions import db

class SystemSetting(db.Model):
    __tablename__ = "system_setting"

    id = db.Column(db.Integer, primary_key=True)
    system_name = db.Column(db.String(100))
    hotline = db.Column(db.String(20))
    email = db.Column(db.String(100))
    address = db.Column(db.String(255))

    utility_start_day = db.Column(db.Integer, default=27)    # ngày chốt điện nước hằng tháng
    utility_end_day = db.Column(db.Integer, default=5)
    max_reservation_time = db.Column(db.Integer, default=24)  # số giờ giữ chỗ chờ thanh toán

    @classmethod
    def current(cls):
        return cls.query.order_by(cls.id).first()
