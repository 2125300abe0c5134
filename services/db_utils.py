import logging
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError

from extensions import db
from services.errors import TransientStoreError

logger = logging.getLogger(__name__)


@contextmanager
def atomic():
    """Commit everything done in the block, or roll it all back.

    Lock wait and pool checkout timeouts surface as OperationalError and are
    reported as TransientStoreError: nothing was committed, so the whole
    operation may be retried.
    """
    try:
        yield db.session
        db.session.commit()
    except (OperationalError, PoolTimeoutError) as exc:
        db.session.rollback()
        logger.warning("Store operation timed out or hit lock contention: %s", exc)
        raise TransientStoreError("Hệ thống đang bận, vui lòng thử lại sau.") from exc
    except Exception:
        db.session.rollback()
        raise
