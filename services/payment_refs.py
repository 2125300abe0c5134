"""Short-lived payment references.

The in-memory store only works inside one process. A deployment with several
worker processes needs a shared TTL store (e.g. Redis) implementing the same
interface with an atomic take on redeem.
"""
import random
import secrets
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta

from services.errors import ReferenceExpired, ReferenceMismatch, ReferenceNotFound

# Mã thanh toán gộp mọi hóa đơn chưa trả của sinh viên
ALL_INVOICES = "all"


@dataclass(frozen=True)
class PaymentReference:
    token: str
    invoice_id: int
    student_id: int
    amount: float
    expires_at: datetime      # giờ hệ thống, để hiển thị
    deadline: float           # mốc monotonic, dùng để kiểm tra hết hạn
    payload: dict = None
    invoice_ids: tuple = ()   # khác rỗng khi mã dùng cho nhiều hóa đơn

    @property
    def is_bundle(self):
        return bool(self.invoice_ids)

    def matches(self, invoice_id, student_id):
        try:
            if int(student_id) != self.student_id:
                return False
        except (TypeError, ValueError):
            return False
        if self.is_bundle:
            return invoice_id == ALL_INVOICES
        try:
            return int(invoice_id) == self.invoice_id
        except (TypeError, ValueError):
            return False


class PaymentReferenceStore:
    def issue(self, invoice_id, student_id, amount, payload=None):
        raise NotImplementedError

    def issue_bundle(self, invoice_ids, student_id, amount, payload=None):
        raise NotImplementedError

    def peek(self, token):
        raise NotImplementedError

    def redeem(self, token, invoice_id, student_id):
        raise NotImplementedError

    def restore(self, reference):
        raise NotImplementedError

    def sweep(self):
        raise NotImplementedError


class InMemoryPaymentReferenceStore(PaymentReferenceStore):
    def __init__(self, ttl_minutes=5, sweep_probability=0.1, clock=time.monotonic, rng=random.random):
        self.ttl = timedelta(minutes=ttl_minutes)
        self.sweep_probability = sweep_probability
        self.clock = clock
        self.rng = rng
        self._entries = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._entries)

    def issue(self, invoice_id, student_id, amount, payload=None):
        return self._add(int(invoice_id), (), student_id, amount, payload)

    def issue_bundle(self, invoice_ids, student_id, amount, payload=None):
        return self._add(None, tuple(int(i) for i in invoice_ids), student_id, amount, payload)

    def _add(self, invoice_id, invoice_ids, student_id, amount, payload):
        reference = PaymentReference(
            token=secrets.token_hex(16),
            invoice_id=invoice_id,
            student_id=int(student_id),
            amount=amount,
            expires_at=datetime.now() + self.ttl,
            deadline=self.clock() + self.ttl.total_seconds(),
            payload=payload,
            invoice_ids=invoice_ids,
        )
        with self._lock:
            self._entries[reference.token] = reference
        if self.rng() < self.sweep_probability:
            self.sweep()
        return reference

    def _live(self, token):
        reference = self._entries.get(token)
        if reference is None:
            raise ReferenceNotFound("Mã thanh toán không hợp lệ hoặc đã hết hạn.", reason="NOT_FOUND")
        if self.clock() > reference.deadline:
            del self._entries[token]
            raise ReferenceExpired("Mã thanh toán đã hết hạn.", reason="EXPIRED")
        return reference

    def peek(self, token):
        with self._lock:
            return self._live(token)

    def redeem(self, token, invoice_id, student_id):
        # Kiểm tra và xóa trong cùng một lần giữ khóa: mỗi mã chỉ dùng được một lần
        with self._lock:
            reference = self._live(token)
            if not reference.matches(invoice_id, student_id):
                raise ReferenceMismatch("Thông tin thanh toán không khớp.", reason="MISMATCH")
            del self._entries[token]
            return reference

    def restore(self, reference):
        with self._lock:
            if self.clock() <= reference.deadline:
                self._entries.setdefault(reference.token, reference)

    def sweep(self):
        now = self.clock()
        with self._lock:
            expired = [t for t, ref in self._entries.items() if now > ref.deadline]
            for token in expired:
                del self._entries[token]
        return len(expired)
