"""Background scheduler that runs the batch alert sweep periodically."""
import logging
import threading
import time

import schedule

logger = logging.getLogger("petalerts.scheduler")


class SweepScheduler:
    """Runs BatchScheduler.batch_check_alerts every interval_seconds in a daemon thread.

    Runs never overlap: a sweep that is still in progress when the next one
    comes due causes that run to be skipped. When a NotificationMaintenance is
    given, it runs as a second job every maintenance_interval seconds.
    """

    def __init__(self, batch, interval_seconds=3600, maintenance=None, maintenance_interval=900):
        self.batch = batch
        self.interval = interval_seconds
        self.maintenance = maintenance
        self.maintenance_interval = maintenance_interval
        self.last_maintenance = None
        self._scheduler = schedule.Scheduler()
        self._thread = None
        self._running = False
        self._sweep_lock = threading.Lock()
        self._callbacks = []
        self._consecutive_failures = 0
        self.last_result = None

    def on_sweep(self, callback):
        """Register callback called with the BatchRunResult after each sweep."""
        self._callbacks.append(callback)

    def start(self, run_immediately=True):
        if self._running:
            return
        self._running = True
        self._scheduler.every(self.interval).seconds.do(self.run_sweep)
        if self.maintenance is not None:
            self._scheduler.every(self.maintenance_interval).seconds.do(self.run_maintenance)

        self._thread = threading.Thread(target=self._run_loop, args=(run_immediately,),
                                        daemon=True)
        self._thread.start()
        logger.info(f"Sweep scheduler started (every {self.interval}s)")

    def stop(self):
        self._running = False
        self._scheduler.clear()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Sweep scheduler stopped")

    def _run_loop(self, run_immediately):
        if run_immediately:
            self.run_sweep()
        while self._running:
            self._scheduler.run_pending()
            time.sleep(1)

    def run_sweep(self):
        if not self._sweep_lock.acquire(blocking=False):
            logger.warning("Previous sweep still running; skipping this run")
            return None
        try:
            result = self.batch.batch_check_alerts()
            self._consecutive_failures = 0
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Sweep failed ({self._consecutive_failures} consecutive): {e}")
            if self._consecutive_failures >= 5:
                logger.critical("5+ consecutive sweep failures!")
            return None
        finally:
            self._sweep_lock.release()

        self.last_result = result
        for cb in self._callbacks:
            try:
                cb(result)
            except Exception as e:
                logger.warning(f"Sweep callback error: {e}")
        return result

    def run_maintenance(self):
        if self.maintenance is None:
            return None
        try:
            result = self.maintenance.run()
        except Exception as e:
            logger.error(f"Notification maintenance failed: {e}")
            return None
        self.last_maintenance = result
        return result
