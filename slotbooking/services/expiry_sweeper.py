"""Background release of lapsed slot holds."""

import logging
import threading
import time

from slotbooking.core import config, exceptions
from slotbooking.services.reservations import ReservationManager

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """
    Runs ``ReservationManager.expire_stale`` on a fixed interval in a daemon thread.

    Each tick retries persistence failures with linear backoff; nothing raised
    by a tick stops the loop. Safe to run in several processes at once since
    the underlying update is idempotent.
    """

    def __init__(
        self,
        reservations: ReservationManager,
        interval_seconds: float | None = None,
        max_retries: int | None = None,
        retry_backoff_seconds: float | None = None,
    ):
        self.reservations = reservations
        self.interval_seconds = interval_seconds or config.EXPIRY_SWEEP_INTERVAL_SECONDS
        self.max_retries = config.EXPIRY_SWEEP_MAX_RETRIES if max_retries is None else max_retries
        self.retry_backoff_seconds = (
            config.EXPIRY_SWEEP_RETRY_BACKOFF_SECONDS if retry_backoff_seconds is None else retry_backoff_seconds
        )
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> list[int] | None:
        attempt = 0
        while True:
            try:
                freed = self.reservations.expire_stale()
                logger.debug('[SLOT-EXPIRY] Sweep released %d holds', len(freed))
                return freed
            except exceptions.PersistenceError:
                attempt += 1
                if attempt > self.max_retries:
                    logger.error('[SLOT-EXPIRY] Sweep failed after %d attempts', attempt, exc_info=True)
                    return None
                logger.warning('[SLOT-EXPIRY] Sweep attempt %d failed, retrying', attempt, exc_info=True)
                if self._stop.wait(self.retry_backoff_seconds * attempt):
                    return None
            except Exception:
                logger.exception('[SLOT-EXPIRY] Unexpected error during sweep')
                return None

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            started = time.monotonic()
            self.run_once()
            logger.debug('[SLOT-EXPIRY] Tick took %.3fs', time.monotonic() - started)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name='slot-expiry-sweeper', daemon=True)
        self._thread.start()
        logger.info('[SLOT-EXPIRY] Sweeper started (every %ss)', self.interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info('[SLOT-EXPIRY] Sweeper stopped')
