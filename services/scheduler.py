import logging
import threading
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


class JobAlreadyRunning(Exception):
    pass


class JobScheduler:
    """Named periodic jobs run inside the Flask app context.

    A job never overlaps with itself: each has a non-blocking lock that both
    scheduled ticks and manual runs must take.
    """

    def __init__(self, app=None):
        self.app = app
        self._jobs = {}
        self._locks = {}
        self._scheduler = BackgroundScheduler()

    def add_job(self, name, func, trigger):
        self._jobs[name] = (func, trigger)
        self._locks[name] = threading.Lock()
        self._scheduler.add_job(
            self._tick,
            trigger=trigger,
            args=[name],
            id=name,
            name=name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    @property
    def job_names(self):
        return list(self._jobs)

    @property
    def running(self):
        return self._scheduler.running

    def start(self):
        if not self._scheduler.running:
            self._scheduler.start()
            for name in self._jobs:
                logger.info("[CRON] Job %s scheduled, next run at %s", name, self.next_run(name))

    def shutdown(self):
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def next_run(self, name, now=None):
        func, trigger = self._jobs[name]
        if self._scheduler.running and now is None:
            job = self._scheduler.get_job(name)
            return job.next_run_time if job else None
        now = now or datetime.now(trigger.timezone)
        return trigger.get_next_fire_time(None, now)

    def run(self, name):
        """Run a job now and return its result; raise JobAlreadyRunning if it is busy."""
        func, _ = self._jobs[name]
        lock = self._locks[name]
        if not lock.acquire(blocking=False):
            raise JobAlreadyRunning(name)
        try:
            with self.app.app_context():
                return func()
        finally:
            lock.release()

    def _tick(self, name):
        logger.info("[CRON] Starting %s job...", name)
        try:
            result = self.run(name)
        except JobAlreadyRunning:
            logger.warning("[CRON] %s is still running, skipping this tick", name)
            return
        except Exception:
            # Lỗi được ghi lại, lần chạy kế tiếp sẽ thử lại
            logger.exception("[CRON] Error in %s job", name)
            return
        logger.info("[CRON] %s job completed: %s", name, result)
