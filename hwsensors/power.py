"""Tracking of host power, BIOS POST and manufacturing mode state."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol

log = logging.getLogger(__name__)

HOST_RUNNING_SUFFIX = ".Running"
POST_INACTIVE = "Inactive"
MANUFACTURING_MODE = "xyz.openbmc_project.Control.Security.SpecialMode.Modes.Manufacturing"
VALIDATION_UNSECURE_MODE = (
    "xyz.openbmc_project.Control.Security.SpecialMode.Modes.ValidationUnsecure"
)

POWER_ON_DELAY = 10.0
STATUS_RETRY_DELAY = 15.0
STATUS_RETRIES = 2


class Cancellable(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], Cancellable]
StateQuery = Callable[[], str]


def _thread_scheduler(delay: float, callback: Callable[[], None]) -> Cancellable:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class PowerMonitor:
    """Keeps the host power and POST state that sensors consult before reading.

    A power-on change takes effect only after ``power_on_delay`` seconds,
    since the host reports running before its rails are stable; power-off
    takes effect at once.  The optional queries supply initial states and
    are retried after ``retry_delay`` seconds when they raise.
    """

    def __init__(
        self,
        host_state_query: StateQuery | None = None,
        post_state_query: StateQuery | None = None,
        *,
        scheduler: Scheduler | None = None,
        validate_unsecure: bool = False,
        power_on_delay: float = POWER_ON_DELAY,
        retry_delay: float = STATUS_RETRY_DELAY,
        retries: int = STATUS_RETRIES,
    ) -> None:
        self._host_query = host_state_query
        self._post_query = post_state_query
        self._schedule = scheduler or _thread_scheduler
        self._validate_unsecure = validate_unsecure
        self._power_on_delay = power_on_delay
        self._retry_delay = retry_delay
        self._retries = retries
        self._lock = threading.RLock()
        self._watching = False
        self._power_on = False
        self._bios_post = False
        self._manufacturing_mode = False
        self._power_timer: Cancellable | None = None
        self._power_generation = 0
        self._retry_timers: list[Cancellable] = []

    def setup(self) -> None:
        """Start tracking state; later calls do nothing."""
        with self._lock:
            if self._watching:
                return
            self._watching = True
        self._fetch(self._host_query, self._apply_host_state, self._retries, "power")
        self._fetch(self._post_query, self._apply_post_state, self._retries, "post")

    def is_power_on(self) -> bool:
        """Return whether the host is powered on; requires ``setup``."""
        with self._lock:
            if not self._watching:
                raise RuntimeError("Power Match Not Created")
            return self._power_on

    def has_bios_post(self) -> bool:
        """Return whether the BIOS has completed POST; requires ``setup``."""
        with self._lock:
            if not self._watching:
                raise RuntimeError("Post Match Not Created")
            return self._bios_post

    @property
    def manufacturing_mode(self) -> bool:
        """Whether the system is in manufacturing mode."""
        return self._manufacturing_mode

    def on_host_state_changed(self, state: str) -> None:
        """Handle a change of the host state property."""
        with self._lock:
            self._cancel_power_timer()
            if not state.endswith(HOST_RUNNING_SUFFIX):
                self._power_on = False
                return
            generation = self._power_generation

            def turn_on() -> None:
                with self._lock:
                    if generation != self._power_generation:
                        return
                    self._power_timer = None
                    self._power_on = True

            self._power_timer = self._schedule(self._power_on_delay, turn_on)

    def on_post_state_changed(self, state: str) -> None:
        """Handle a change of the operating system state property."""
        self._apply_post_state(state)

    def on_special_mode_changed(self, mode: str) -> None:
        """Handle a change of the security special mode."""
        enabled = mode == MANUFACTURING_MODE or (
            self._validate_unsecure and mode == VALIDATION_UNSECURE_MODE
        )
        with self._lock:
            self._manufacturing_mode = enabled

    def cancel(self) -> None:
        """Cancel any pending delayed update or retry."""
        with self._lock:
            self._cancel_power_timer()
            for timer in self._retry_timers:
                timer.cancel()
            self._retry_timers.clear()

    def _cancel_power_timer(self) -> None:
        self._power_generation += 1
        if self._power_timer is not None:
            self._power_timer.cancel()
            self._power_timer = None

    def _apply_host_state(self, state: str) -> None:
        with self._lock:
            self._power_on = state.endswith(HOST_RUNNING_SUFFIX)

    def _apply_post_state(self, state: str) -> None:
        with self._lock:
            self._bios_post = state != POST_INACTIVE

    def _fetch(
        self,
        query: StateQuery | None,
        apply: Callable[[str], None],
        retries: int,
        what: str,
    ) -> None:
        if query is None:
            return
        try:
            state = query()
        except Exception as exc:  # the query is supplied by the caller
            if retries:
                with self._lock:
                    self._retry_timers.append(
                        self._schedule(
                            self._retry_delay,
                            lambda: self._fetch(query, apply, retries - 1, what),
                        )
                    )
                return
            log.error("error getting %s status %s", what, exc)
            return
        apply(state)