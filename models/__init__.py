from .user import User
from .building import Building
from .room import Room
from .semester import Semester
from .registration import Registration
from .invoice import Invoice
from .room_fee_invoice import RoomFeeInvoice
from .utility_invoice_cycle import UtilityInvoiceCycle
from .utility_invoice import UtilityInvoice
from .stay_record import StayRecord
from .notification import Notification
from .system_setting import SystemSetting
from .service_price import ServicePrice



__all__ = ["User", "Building", "Room", "Semester", "Registration", "Invoice", "RoomFeeInvoice", "UtilityInvoiceCycle", "UtilityInvoice", "StayRecord", "Notification", "SystemSetting", "ServicePrice"]
