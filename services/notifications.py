import json
import logging
from collections import namedtuple

from flask_mail import Message
from sqlalchemy import event
from sqlalchemy.orm import Session

from extensions import db, mail
from models.notification import Notification
from models.room import Room
from models.stay_record import StayRecord
from models.user import User
from services.errors import ValidationError

logger = logging.getLogger(__name__)

OUTBOX_KEY = "mail_outbox"

SCOPES = ("INDIVIDUAL", "ROOM", "BUILDING", "ALL")

NotificationTarget = namedtuple("NotificationTarget", ["scope", "ids"])


def individual(*student_ids):
    return NotificationTarget("INDIVIDUAL", tuple(student_ids))


def parse_target(scope, ids=None):
    """Validate a notification target once, at the boundary.

    ``ids`` may be a list, a single id, or a JSON-encoded list as older
    clients send it.
    """
    scope = (scope or "").upper()
    if scope not in SCOPES:
        raise ValidationError("Phạm vi gửi thông báo không hợp lệ.", scope=scope)
    if scope == "ALL":
        return NotificationTarget(scope, ())

    if isinstance(ids, str):
        try:
            ids = json.loads(ids)
        except ValueError:
            raise ValidationError("Danh sách người nhận không hợp lệ.")
    if isinstance(ids, (int, str)):
        ids = [ids]
    try:
        parsed = tuple(int(i) for i in ids or ())
    except (TypeError, ValueError):
        raise ValidationError("Danh sách người nhận không hợp lệ.")
    if not parsed:
        raise ValidationError("Chưa chọn người nhận thông báo.")
    return NotificationTarget(scope, parsed)


class NotificationSender:
    """Delivers a titled message to the students a target resolves to."""

    def send(self, target, title, content):
        raise NotImplementedError


class DatabaseNotificationSender(NotificationSender):
    """Adds Notification rows to the current session.

    Rows commit or roll back together with the caller's transaction.
    """

    def resolve(self, target):
        if target.scope == "INDIVIDUAL":
            return list(dict.fromkeys(target.ids))

        query = db.session.query(User.id).filter(User.role == "student")
        if target.scope == "ALL":
            return [r[0] for r in query.order_by(User.id).all()]

        query = query.join(StayRecord, StayRecord.student_id == User.id).filter(StayRecord.status == "ACTIVE")
        if target.scope == "ROOM":
            query = query.filter(StayRecord.room_id.in_(target.ids))
        else:
            query = query.join(Room, Room.id == StayRecord.room_id).filter(Room.building_id.in_(target.ids))
        return [r[0] for r in query.distinct().order_by(User.id).all()]

    def send(self, target, title, content):
        recipients = self.resolve(target)
        for user_id in recipients:
            db.session.add(Notification(user_id=user_id, title=title, message=content))
        return recipients


class MailNotificationSender(NotificationSender):
    """Forwards to another sender, then e-mails every recipient.

    Messages wait in the session's outbox and go out only after the caller's
    transaction commits; a rollback drops them.
    """

    def __init__(self, inner):
        self.inner = inner

    def send(self, target, title, content):
        recipients = self.inner.send(target, title, content)
        if not recipients:
            return recipients
        users = User.query.filter(User.id.in_(recipients), User.email.isnot(None)).all()
        outbox = db.session.info.setdefault(OUTBOX_KEY, [])
        for user in users:
            outbox.append((user.id, Message(subject=title, recipients=[user.email], body=content)))
        return recipients


@event.listens_for(Session, "after_commit")
def _send_outbox(session):
    for user_id, message in session.info.pop(OUTBOX_KEY, []):
        try:
            mail.send(message)
        except Exception:
            logger.exception("Could not e-mail notification to user %s", user_id)


@event.listens_for(Session, "after_rollback")
def _drop_outbox(session):
    dropped = session.info.pop(OUTBOX_KEY, [])
    if dropped:
        logger.info("Dropped %d notification e-mails of a rolled back transaction", len(dropped))
