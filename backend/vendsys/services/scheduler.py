# Overview: Background thread that runs the liveness sweep on a fixed interval.

from __future__ import annotations

from threading import Event, Lock, Thread

from flask import Flask

from ..errors import StoreUnavailableError
from ..extensions import db
from . import monitor_service


class MonitorScheduler(Thread):
    """
    Runs the liveness sweep every `interval_seconds` inside an app context.

    Overlap policy: skip-if-running. A tick that fires while another sweep is
    still in progress (a slow tick, or a manual run through the API or CLI)
    is logged and skipped, never queued.
    """

    def __init__(self, app: Flask, interval_seconds: float):
        super().__init__(name="liveness-monitor", daemon=True)
        self._app = app
        self._interval = interval_seconds
        self._stop_event = Event()
        self.ticks_run = 0
        self.ticks_skipped = 0

    def stop(self) -> None:
        self._stop_event.set()

    def run_once(self):
        """Run one tick. Returns the SweepResult, or None when skipped or failed."""
        with self._app.app_context():
            try:
                result = monitor_service.try_sweep()
                if result is None:
                    self.ticks_skipped += 1
                else:
                    self.ticks_run += 1
                return result
            except StoreUnavailableError:
                self._app.logger.error("Liveness sweep aborted: data store unavailable; retrying next tick")
            except Exception:
                self._app.logger.exception("Liveness sweep failed")
            finally:
                db.session.remove()
        return None

    def run(self) -> None:
        self._app.logger.info("Liveness monitor scheduled every %.0f seconds", self._interval)
        while not self._stop_event.wait(self._interval):
            self.run_once()
        self._app.logger.info("Liveness monitor stopped")


def start_monitor(app: Flask) -> MonitorScheduler:
    interval = app.config.get("MONITOR_INTERVAL_MINUTES", 5) * 60
    scheduler = MonitorScheduler(app, interval)
    app.extensions["monitor_scheduler"] = scheduler
    scheduler.start()
    return scheduler


_start_lock = Lock()


def ensure_monitor_started(app: Flask) -> MonitorScheduler:
    """
    Start the monitor once per process.

    Hooked to the first served request, so CLI commands (`flask db upgrade`,
    `flask monitor run`) never spawn a background thread.
    """
    scheduler = app.extensions.get("monitor_scheduler")
    if scheduler is not None:
        return scheduler
    with _start_lock:
        scheduler = app.extensions.get("monitor_scheduler")
        if scheduler is None:
            scheduler = start_monitor(app)
    return scheduler
