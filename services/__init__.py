from collections import namedtuple

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models.system_setting import SystemSetting
from services.allocator import RoomAllocator
from services.notifications import DatabaseNotificationSender, MailNotificationSender
from services.payment_refs import InMemoryPaymentReferenceStore
from services.payments import PaymentBroker
from services.reaper import reject_expired_holds
from services.registrations import RegistrationService
from services.scheduler import JobScheduler
from services.utility_cycles import bootstrap_monthly_cycle

Engine = namedtuple("Engine", ["notifier", "registrations", "allocator", "payments", "scheduler"])

UTILITY_JOB = "utility_cycle_bootstrap"
REAPER_JOB = "expired_hold_reaper"


def utility_start_day(app):
    day = app.config.get("UTILITY_START_DAY", 27)
    with app.app_context():
        try:
            setting = SystemSetting.current()
        except SQLAlchemyError:
            # Bảng chưa được tạo (lần chạy đầu, trước khi migrate)
            setting = None
        if setting and setting.utility_start_day:
            day = setting.utility_start_day
    return day


def init_engine(app):
    """Build the engine's collaborators once and attach them to ``app``."""
    notifier = DatabaseNotificationSender()
    if app.config.get("MAIL_ENABLED"):
        notifier = MailNotificationSender(notifier)

    store = InMemoryPaymentReferenceStore(
        ttl_minutes=app.config.get("PAYMENT_REF_TTL_MINUTES", 5),
        sweep_probability=app.config.get("PAYMENT_REF_SWEEP_PROBABILITY", 0.1),
    )

    scheduler = JobScheduler(app)
    scheduler.add_job(
        UTILITY_JOB,
        bootstrap_monthly_cycle,
        CronTrigger(day=utility_start_day(app), hour=0, minute=0),
    )
    scheduler.add_job(
        REAPER_JOB,
        lambda: reject_expired_holds(notifier),
        IntervalTrigger(hours=1),
    )

    engine = Engine(
        notifier=notifier,
        registrations=RegistrationService(notifier),
        allocator=RoomAllocator(notifier),
        payments=PaymentBroker(store, notifier),
        scheduler=scheduler,
    )
    app.extensions["dorm_engine"] = engine
    return engine


def get_engine():
    return current_app.extensions["dorm_engine"]
