"""Error taxonomy of the registration engine.

Every error carries the HTTP status the REST layer answers with and a
user-facing message stating the concrete reason.
"""


class DormError(Exception):
    status_code = 500
    retryable = False

    def __init__(self, message, **payload):
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self):
        data = {"message": self.message}
        data.update(self.payload)
        if self.retryable:
            data["retryable"] = True
        return data


class ValidationError(DormError):
    """Thiếu hoặc sai dữ liệu đầu vào."""
    status_code = 400


class WindowClosedError(DormError):
    """Đăng ký ngoài thời gian mở cổng."""
    status_code = 400


class ConstraintViolation(DormError):
    """Phòng đầy, sai giới tính, phòng không nhận đăng ký..."""
    status_code = 400


class NotFoundError(DormError):
    status_code = 404


class ConflictError(DormError):
    status_code = 400


class ReferenceNotFound(ConflictError):
    reason = "NOT_FOUND"


class ReferenceExpired(ConflictError):
    reason = "EXPIRED"


class ReferenceMismatch(ConflictError):
    reason = "MISMATCH"


class TransientStoreError(DormError):
    """Timeout hoặc tranh chấp khóa; giao dịch chưa commit nên có thể thử lại."""
    status_code = 500
    retryable = True
