"""
Simulation Loop
===============

Periodic driver that couples the chiller process model to the
register store.

Each tick, in this order:
1. Reset       - coil 301 ON restores defaults and clears the coil
2. Setting     - float at registers 0-1 adopted if in (0, 30)
3. Simulate    - coil 302 ON advances entering/leaving temperatures
4. Publish     - coil 300 ON writes the three floats to registers 0-5
5. Log summary - or "paused" when coil 300 is OFF

Coil states are sampled once at the start of the tick. The store lock
is held for the whole tick body, so client writes land either before
or after a tick, never in the middle (last write wins).

Author: Guilherme F. G. Santos
Date: January 2026
License: MIT
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from .process import ChillerProcessModel, ChillerState
from ..modbus.protocols import get_float_at, set_float_at
from ..modbus.register_map import (
    COIL_PUBLISH_ENABLE,
    COIL_RESET,
    COIL_SIMULATION_ENABLE,
    REG_ENTERING_TEMP,
    REG_LEAVING_TEMP,
    REG_SETTING_TEMP,
)
from ..modbus.store import RegisterStore

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_SEC = 2.0


@dataclass
class TickResult:
    """What a single tick did."""

    state: ChillerState
    reset: bool
    setting_adopted: bool
    simulated: bool
    published: bool


class SimulationLoop:
    """
    Fixed-period simulation driver.

    Ticks never overlap: the background thread runs them one after the
    other, and ``tick()`` itself is serialized by a lock so a manual
    call from another thread waits for the running tick.
    """

    def __init__(
        self,
        store: RegisterStore,
        model: Optional[ChillerProcessModel] = None,
        period_sec: float = DEFAULT_PERIOD_SEC,
        clock: Callable[[], float] = time.time,
    ):
        if period_sec <= 0:
            raise ValueError(f"Period must be positive: {period_sec}")

        self.store = store
        self.model = model or ChillerProcessModel()
        self.period_sec = period_sec
        self.clock = clock

        self.tick_count = 0

        self._tick_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._running = threading.Event()
        self._shutdown_requested = threading.Event()

    @property
    def state(self) -> ChillerState:
        return self.model.state

    def initialize_registers(self):
        """Write the current (default) state to registers 0-5."""
        self._publish(self.model.state)

    def _publish(self, state: ChillerState):
        with self.store.locked():
            set_float_at(self.store, REG_SETTING_TEMP, state.setting_temp)
            set_float_at(self.store, REG_ENTERING_TEMP, state.entering_temp)
            set_float_at(self.store, REG_LEAVING_TEMP, state.leaving_temp)

    def tick(self, now_ms: Optional[float] = None) -> TickResult:
        """
        Run one simulation tick.

        Args:
            now_ms: Wall-clock time in milliseconds (defaults to the clock)

        Returns:
            TickResult describing the steps taken
        """
        with self._tick_lock, self.store.locked():
            if now_ms is None:
                now_ms = self.clock() * 1000.0

            publish_enabled = self.store.read_coil(COIL_PUBLISH_ENABLE)
            reset_requested = self.store.read_coil(COIL_RESET)
            simulation_enabled = self.store.read_coil(COIL_SIMULATION_ENABLE)

            if reset_requested:
                logger.warning("Reset requested - restoring defaults")
                self.model.reset()
                self.store.write_coil(COIL_RESET, False)

            # A client write present in the same tick overrides the reset
            setting = get_float_at(self.store, REG_SETTING_TEMP)
            setting_adopted = self.model.apply_setting(setting)

            if simulation_enabled:
                self.model.step(now_ms)

            state = self.model.state
            if publish_enabled:
                self._publish(state)
                logger.info(
                    f"Published -> Setting: {state.setting_temp:.2f}°C | "
                    f"Entering: {state.entering_temp:.2f}°C | "
                    f"Leaving: {state.leaving_temp:.2f}°C"
                )
            else:
                logger.info(f"Publishing paused (coil {COIL_PUBLISH_ENABLE} = OFF)")

            self.tick_count += 1

            return TickResult(
                state=replace(state),
                reset=reset_requested,
                setting_adopted=setting_adopted,
                simulated=simulation_enabled,
                published=publish_enabled,
            )

    def start(self):
        """Start ticking in a background thread (first tick after one period)."""
        if self._running.is_set():
            logger.warning("Simulation loop already running")
            return

        self._running.set()
        self._shutdown_requested.clear()

        self._thread = threading.Thread(
            target=self._run, daemon=True, name="ChillerSimulation"
        )
        self._thread.start()

        logger.info(f"Simulation loop started (period {self.period_sec:.1f}s)")

    def _run(self):
        next_tick = time.monotonic() + self.period_sec

        while not self._shutdown_requested.wait(
            max(0.0, next_tick - time.monotonic())
        ):
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Simulation tick failed: {type(e).__name__}: {e}")

            # An overrun tick is followed immediately by the next one
            next_tick = max(next_tick + self.period_sec, time.monotonic())

        self._running.clear()

    def stop(self, timeout: float = 3.0):
        """Stop the background thread."""
        if not self._running.is_set():
            return

        self._shutdown_requested.set()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

            if self._thread.is_alive():
                logger.warning("Simulation thread did not terminate cleanly")

        self._running.clear()
        logger.info("Simulation loop stopped")

    @property
    def is_running(self) -> bool:
        return self._running.is_set()
