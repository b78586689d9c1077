"""Periodic reaping of abandoned PENDING bookings and completion of finished ones."""
import logging
import threading

from sqlalchemy.exc import SQLAlchemyError

from models import db
from services.errors import BookingError

logger = logging.getLogger(__name__)


def reap_expired(bookings) -> int:
    reaped = 0
    for booking_id in bookings.find_expired():
        try:
            if bookings.expire_reap(booking_id) is not None:
                reaped += 1
        except (BookingError, SQLAlchemyError):
            # left PENDING; the next sweep tries again
            db.session.rollback()
            logger.exception("expiry_reap_failed", extra={"booking_id": booking_id})
    return reaped


def complete_finished(bookings) -> int:
    completed = 0
    for booking_id in bookings.find_finished():
        try:
            bookings.complete(booking_id)
            completed += 1
        except (BookingError, SQLAlchemyError):
            db.session.rollback()
            logger.exception("booking_complete_failed", extra={"booking_id": booking_id})
    return completed


def sweep_once(bookings) -> dict:
    result = {"reaped": reap_expired(bookings), "completed": complete_finished(bookings)}
    if result["reaped"] or result["completed"]:
        logger.info("expiry_sweep", extra=result)
    return result


class ExpirySweeper:
    """Runs ``sweep_once`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, app, interval: int = None):
        self.app = app
        self.interval = interval or app.extensions["booking_engine"].settings.sweep_interval_seconds
        self._stop = threading.Event()
        self._thread = None

    def run(self):
        """Sweep until ``stop()`` is called. Blocks the calling thread."""
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(self.interval)

    def tick(self) -> dict:
        with self.app.app_context():
            try:
                return sweep_once(self.app.extensions["booking_engine"].bookings)
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception("expiry_sweep_failed")
                return {"reaped": 0, "completed": 0}
            finally:
                db.session.remove()

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="expiry-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
