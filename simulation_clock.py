"""
Simulation Clock
Drives the kiosk simulation one simulated minute at a time.

The clock owns a SimPy environment holding a single ticking process. Each
tick runs to completion inside env.step(), so ticks never overlap and pause
or cancel always land between ticks. In real-time mode the environment is
paced against the wall clock (tick duration = 1000 / simulated minutes per
second, in ms); headless runs use a plain environment and tick as fast as
the step callback allows.

States: Idle -> Running <-> Paused -> Completed
"""

import logging
from enum import Enum
from time import monotonic
from typing import Callable, Optional

import simpy
import simpy.rt

from queue_errors import SimulationError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SIMULATED_MINUTES_PER_SECOND = 60.0


class ClockState(Enum):
    IDLE = "Idle"
    RUNNING = "Running"
    PAUSED = "Paused"
    COMPLETED = "Completed"


class PacedEnvironment(simpy.rt.RealtimeEnvironment):
    """
    Real-time environment whose wall-clock factor can change mid-run.

    Re-pacing anchors the wall clock at the current simulated time, so
    elapsed progress is kept and no catch-up burst follows a pause.
    Not strict: a slow tick delays the following ones instead of failing.
    """

    def __init__(self, factor: float):
        self._pace = factor
        super().__init__(initial_time=0, factor=factor, strict=False)

    @property
    def factor(self) -> float:
        return self._pace

    @factor.setter
    def factor(self, value: float):
        self._pace = value

    def repace(self, factor: Optional[float] = None):
        if factor is not None:
            self._pace = factor
        self.env_start = self.now
        self.real_start = monotonic()


class SimulationClock:
    """
    Tick driver for the simulation.

    `on_tick(tick)` is called once per simulated minute with the index of the
    minute being processed and returns True when the simulation is over.
    """

    def __init__(self, on_tick: Callable[[int], bool],
                 simulated_minutes_per_second: float = DEFAULT_SIMULATED_MINUTES_PER_SECOND,
                 realtime: bool = True):
        self.on_tick = on_tick
        self.realtime = realtime
        self.simulated_minutes_per_second = self._check_speed(simulated_minutes_per_second)
        self.state = ClockState.IDLE
        self.current_tick = 0
        self.env = None

    @staticmethod
    def _check_speed(simulated_minutes_per_second) -> float:
        try:
            speed = float(simulated_minutes_per_second)
        except (TypeError, ValueError):
            raise ValidationError(f"Simulation speed must be a number, got {simulated_minutes_per_second!r}")
        if not speed > 0:
            raise ValidationError("Simulation speed must be greater than 0 simulated minutes per second")
        return speed

    @property
    def tick_duration_ms(self) -> float:
        """Wall-clock milliseconds per simulated minute"""
        return 1000 / self.simulated_minutes_per_second

    def _make_env(self):
        if self.realtime:
            return PacedEnvironment(factor=self.tick_duration_ms / 1000)
        return simpy.Environment()

    def _ticker(self, env):
        while True:
            yield env.timeout(1)

            finished = self.on_tick(self.current_tick)
            if finished:
                self.state = ClockState.COMPLETED
                return

            self.current_tick += 1

    def initialise(self):
        """Discard any previous run and start ticking from minute 0"""
        self.current_tick = 0
        self.env = self._make_env()
        self.env.process(self._ticker(self.env))
        self.state = ClockState.RUNNING
        logger.info("Running simulation with one tick every %.1f milliseconds", self.tick_duration_ms)

    def run(self, until_tick: Optional[int] = None) -> ClockState:
        """
        Process ticks while the clock is running.

        Returns when the clock is paused, cancelled or completed, or once
        `until_tick` ticks have been processed.
        """
        if self.state is ClockState.IDLE or self.env is None:
            raise SimulationError("Simulation has not been initialised")

        env = self.env
        # wall time spent outside run() must not be caught up in a burst
        if isinstance(env, PacedEnvironment):
            env.repace()

        while self.state is ClockState.RUNNING:
            if until_tick is not None and self.current_tick >= until_tick:
                break
            env.step()

        return self.state

    def pause(self):
        if self.state is not ClockState.RUNNING:
            raise SimulationError("Simulation is not running")
        self.state = ClockState.PAUSED
        logger.info("Simulation paused at tick %d", self.current_tick)

    def resume(self):
        if self.state is not ClockState.PAUSED:
            raise SimulationError("Simulation is not paused")
        if isinstance(self.env, PacedEnvironment):
            self.env.repace()
        self.state = ClockState.RUNNING
        logger.info("Simulation resumed at tick %d", self.current_tick)

    def toggle(self):
        if self.state is ClockState.RUNNING:
            self.pause()
        else:
            self.resume()

    def cancel(self):
        """Stop between ticks and forget the run"""
        self.state = ClockState.IDLE
        self.current_tick = 0
        self.env = None

    def set_speed(self, simulated_minutes_per_second: float):
        """
        Change the tick cadence.

        A running clock keeps its progress and uses the new cadence from the
        next tick on.
        """
        self.simulated_minutes_per_second = self._check_speed(simulated_minutes_per_second)
        logger.info("Simulation speed updated to %s simulated minutes per second",
                    self.simulated_minutes_per_second)

        if isinstance(self.env, PacedEnvironment):
            self.env.repace(self.tick_duration_ms / 1000)
            logger.debug("Clock re-paced to one tick every %.1f milliseconds", self.tick_duration_ms)
