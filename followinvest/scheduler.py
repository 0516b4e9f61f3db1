"""Background exchange-rate refresher.

Runs the rate refresh once after a short startup delay, then at a fixed
interval. A failed cycle is retried with doubling backoff; once retries
are exhausted the cycle is abandoned and the next one runs on schedule.
Stopping is cooperative: ``stop()`` sets an event that every wait
observes, so the loop exits promptly between fetches but never cuts a
fetch short.

"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import timedelta
from enum import StrEnum

from followinvest.resolvers.exchange_rates import RefreshReport

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = timedelta(hours=24)
DEFAULT_INITIAL_DELAY = timedelta(minutes=2)
DEFAULT_INITIAL_BACKOFF = timedelta(minutes=5)
DEFAULT_MAX_RETRIES = 3


class RefresherState(StrEnum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    STOPPED = "stopped"


class ScheduledRefresher:
    """Periodically calls ``refresh`` on a daemon thread.

    Args:
        refresh: Refresh callable, typically ``update_all`` bound to the
            tracked pairs.
        interval: Time between cycles.
        initial_delay: Time before the first cycle.
        max_retries: Retries after a failed first attempt.
        initial_backoff: Wait before the first retry; doubles each retry.
        stop_event: Event signalling shutdown of the first run; a new one
            by default. A restart after a stop gets a fresh event.

    """

    def __init__(
        self,
        refresh: Callable[[], RefreshReport],
        *,
        interval: timedelta = DEFAULT_INTERVAL,
        initial_delay: timedelta = DEFAULT_INITIAL_DELAY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_backoff: timedelta = DEFAULT_INITIAL_BACKOFF,
        stop_event: threading.Event | None = None,
    ) -> None:
        if max_retries < 0:
            msg = f"max_retries must be >= 0, got {max_retries}"
            raise ValueError(msg)
        self._refresh = refresh
        self.interval = interval
        self.initial_delay = initial_delay
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self._stop_event = stop_event or threading.Event()
        self._thread: threading.Thread | None = None
        self.state = RefresherState.IDLE

    @property
    def is_running(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and not self._stop_event.is_set()
        )

    def start(self) -> None:
        """Start the refresher thread. No-op if already running."""
        if self.is_running:
            return
        if self._stop_event.is_set():
            # A stopped loop may still be inside a fetch; it keeps the old event
            self._stop_event = threading.Event()
        self.state = RefresherState.IDLE
        self._thread = threading.Thread(
            target=self.run,
            args=(self._stop_event,),
            name="rate-refresher",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Exchange rate refresher started (first run in %s, then every %s)",
            self.initial_delay,
            self.interval,
        )

    def stop(self, timeout: float | None = None) -> None:
        """Signal the loop to stop and wait for the thread to finish.

        If ``timeout`` expires mid-fetch the thread is left to finish on
        its own; it exits as soon as the fetch returns.
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(
                    "Exchange rate refresher still finishing a fetch after %ss",
                    timeout,
                )
            else:
                self._thread = None
        self.state = RefresherState.STOPPED
        logger.info("Exchange rate refresher stopped")

    def _wait(self, seconds: float, stop_event: threading.Event | None = None) -> bool:
        """Sleep up to ``seconds``; True when a stop was requested."""
        event = self._stop_event if stop_event is None else stop_event
        return event.wait(seconds)

    def _set_state(self, stop_event: threading.Event, state: RefresherState) -> None:
        # A superseded loop leaves the current run's state alone
        if stop_event is self._stop_event:
            self.state = state

    def run(self, stop_event: threading.Event | None = None) -> None:
        """Loop until stopped: initial delay, then one cycle per interval."""
        stop = self._stop_event if stop_event is None else stop_event
        if not self._wait(self.initial_delay.total_seconds(), stop):
            while not stop.is_set():
                self.refresh_with_retry(stop)
                if self._wait(self.interval.total_seconds(), stop):
                    break
        self._set_state(stop, RefresherState.STOPPED)

    def _attempt(self) -> bool:
        try:
            report = self._refresh()
        except Exception:
            logger.exception("Exchange rate refresh failed")
            return False
        if report.all_failed:
            logger.warning(
                "Exchange rate refresh failed for every pair: %s",
                ", ".join(report.failed),
            )
            return False
        return True

    def refresh_with_retry(self, stop_event: threading.Event | None = None) -> bool:
        """Run one cycle, retrying with doubling backoff on failure.

        Args:
            stop_event: Event of the loop running this cycle; the current
                run's event by default.

        Returns:
            True if an attempt succeeded; False if retries were exhausted
            or a stop was requested during a backoff wait.

        """
        stop = self._stop_event if stop_event is None else stop_event
        self._set_state(stop, RefresherState.REFRESHING)
        try:
            if self._attempt():
                return True
            backoff = self.initial_backoff.total_seconds()
            for retry in range(1, self.max_retries + 1):
                logger.info(
                    "Retrying exchange rate refresh in %.0fs (retry %d/%d)",
                    backoff,
                    retry,
                    self.max_retries,
                )
                if self._wait(backoff, stop):
                    return False
                if self._attempt():
                    return True
                backoff *= 2
            logger.error(
                "Exchange rate refresh failed after %d retries; waiting for next cycle",
                self.max_retries,
            )
            return False
        finally:
            if self.state is RefresherState.REFRESHING:
                self._set_state(stop, RefresherState.IDLE)
