"""
Kiosk Queue Simulation
Tick-based simulation of attendees queueing at a bank of identical kiosks.

Every tick is one simulated minute:
1. Termination check: the run ends at the horizon, or as soon as nobody is
   left to arrive and every queue is empty
2. Admission: attendees whose arrival time has passed join the shortest queue
3. Service: each kiosk completes up to max(1, floor(60 / seconds_at_kiosk))
   attendees from the front of its queue
4. Observation: every queue length is recorded for the end-of-run statistics

The queue and attendee objects below are the single source of truth; any UI
only renders them.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Sequence

import numpy as np

from arrival_curve import ArrivalCurve
from queue_errors import SimulationError, ValidationError
from simulation_clock import ClockState, SimulationClock

logger = logging.getLogger(__name__)

MS_PER_MINUTE = 60000
MAX_DURATION_HOURS = 8


class SimulationEvent(Enum):
    """Notifications published to subscribers of a KioskSimulation"""
    TICK = "tick"  # (current simulated minute)
    PAUSED = "paused"  # ()
    RESUMED = "resumed"  # ()
    COMPLETED = "completed"  # (SimulationSummary)
    RESET = "reset"  # ()


@dataclass
class SimulationConfig:
    """Configuration for a kiosk simulation run"""
    num_attendees: int = 100
    num_kiosks: int = 4
    seconds_at_kiosk: float = 60.0  # service duration, same for every kiosk

    # Tick cadence: how many simulated minutes play per wall-clock second
    simulated_minutes_per_second: float = 60.0

    max_duration_hours: float = MAX_DURATION_HOURS

    @property
    def max_duration_ticks(self) -> int:
        return int(self.max_duration_hours * 60)

    def validate(self):
        """Raise ValidationError unless every field is a usable positive value"""
        for name in ('num_attendees', 'num_kiosks'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
                raise ValidationError(f"Please enter a valid {name.replace('_', ' ')} (greater than 0).")

        for name in ('seconds_at_kiosk', 'simulated_minutes_per_second', 'max_duration_hours'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
                raise ValidationError(f"{name.replace('_', ' ')} must be a number")
            if not math.isfinite(value) or value <= 0:
                raise ValidationError(f"{name.replace('_', ' ')} must be greater than 0")


@dataclass
class Attendee:
    """
    One person moving through the system.

    Offsets are milliseconds from the start of the simulation. The front-of-
    queue stamp is synthetic: it is derived from the tick it was first
    examined in, not from continuous service time.
    """
    id: int
    arrival_offset_ms: int
    queue_entry_offset_ms: Optional[float] = None
    time_reached_front_ms: Optional[float] = None
    service_end_offset_ms: Optional[float] = None

    @property
    def service_start_offset_ms(self) -> Optional[float]:
        return self.time_reached_front_ms

    @property
    def waiting_time_ms(self) -> Optional[float]:
        if self.time_reached_front_ms is None:
            return None
        # the synthetic stamp may precede arrival within the same tick window
        return max(0.0, self.time_reached_front_ms - self.arrival_offset_ms)

    @property
    def time_in_system_ms(self) -> Optional[float]:
        if self.service_end_offset_ms is None:
            return None
        return max(0.0, self.service_end_offset_ms - self.arrival_offset_ms)


@dataclass
class Kiosk:
    """One server with its own FIFO queue"""
    index: int
    seconds_per_service: float
    queue: Deque[Attendee] = field(default_factory=deque)

    @property
    def minutes_per_service(self) -> float:
        return self.seconds_per_service / 60

    @property
    def throughput_per_tick(self) -> int:
        """Attendees examined per tick; at least one even for long services"""
        return max(1, math.floor(60 / self.seconds_per_service))


@dataclass
class SimulationSummary:
    """
    End-of-run statistics.

    With no observations (a run that ended on its first tick) the maximum is
    reported as 0 and the average as NaN.
    """
    max_queue_length: int
    average_queue_length: float
    completed_count: int
    ticks_elapsed: int
    average_wait_seconds: float


@dataclass
class SimulationState:
    """Everything a run mutates; owned by one QueueScheduler"""
    kiosks: List[Kiosk]
    pending_attendees: Deque[Attendee]
    current_tick: int = 0
    completed: List[Attendee] = field(default_factory=list)
    observed_queue_lengths: List[int] = field(default_factory=list)

    @property
    def completed_count(self) -> int:
        return len(self.completed)

    def queue_lengths(self) -> List[int]:
        return [len(kiosk.queue) for kiosk in self.kiosks]

    def attendees_in_queues(self) -> int:
        return sum(self.queue_lengths())

    def queue_length_history(self) -> np.ndarray:
        """Observed lengths as a (ticks, kiosks) matrix"""
        history = np.array(self.observed_queue_lengths, dtype=int)
        return history.reshape(-1, len(self.kiosks))

    def clear(self):
        for kiosk in self.kiosks:
            kiosk.queue.clear()
        self.pending_attendees.clear()
        self.completed.clear()
        self.observed_queue_lengths.clear()
        self.current_tick = 0


def _check_schedule(arrival_times) -> List[int]:
    if arrival_times is None:
        raise SimulationError("Invalid arrival times provided.")

    offsets = list(arrival_times)
    for offset in offsets:
        if isinstance(offset, bool) or not isinstance(offset, (int, float, np.number)) or not math.isfinite(offset):
            raise SimulationError(f"Arrival offset {offset!r} is not a finite number")
        if offset < 0:
            raise SimulationError(f"Arrival offset {offset} is negative")

    if any(later < earlier for earlier, later in zip(offsets, offsets[1:])):
        raise SimulationError("Arrival times must be sorted ascending")

    return offsets


class QueueScheduler:
    """
    Admission into the shortest queue and per-kiosk service advancement.

    Build with `QueueScheduler.build`, which validates everything before any
    state exists.
    """

    def __init__(self, state: SimulationState, max_duration_ticks: int):
        self.state = state
        self.max_duration_ticks = max_duration_ticks

    @classmethod
    def build(cls, arrival_times: Sequence[float], num_kiosks: int, seconds_at_kiosk: float,
              max_duration_ticks: int = MAX_DURATION_HOURS * 60) -> 'QueueScheduler':
        """
        Create a fresh scheduler for one run.

        An empty schedule is allowed here; the run then completes on its first tick.
        """
        if isinstance(num_kiosks, bool) or not isinstance(num_kiosks, (int, np.integer)) or num_kiosks <= 0:
            raise ValidationError("Please enter a valid number of kiosks (greater than 0).")
        if not isinstance(seconds_at_kiosk, (int, float, np.number)) or not seconds_at_kiosk > 0:
            raise ValidationError("Please enter a valid number of seconds at each kiosk (greater than 0).")

        offsets = _check_schedule(arrival_times)

        state = SimulationState(
            kiosks=[Kiosk(index=i, seconds_per_service=float(seconds_at_kiosk)) for i in range(num_kiosks)],
            pending_attendees=deque(
                Attendee(id=i + 1, arrival_offset_ms=offset) for i, offset in enumerate(offsets)
            ),
        )
        return cls(state, max_duration_ticks)

    def is_finished(self) -> bool:
        state = self.state
        if state.current_tick >= self.max_duration_ticks:
            return True
        return not state.pending_attendees and state.attendees_in_queues() == 0

    def shortest_queue(self) -> Kiosk:
        """Kiosk with the fewest queued attendees; the lowest index wins ties"""
        return min(self.state.kiosks, key=lambda kiosk: len(kiosk.queue))

    def admit_due_attendees(self) -> List[Attendee]:
        """Move every attendee who has arrived by the current tick into a queue"""
        state = self.state
        now_ms = state.current_tick * MS_PER_MINUTE
        admitted = []

        # the schedule is sorted, so due attendees are always at the front
        while state.pending_attendees and state.pending_attendees[0].arrival_offset_ms <= now_ms:
            attendee = state.pending_attendees.popleft()
            attendee.queue_entry_offset_ms = attendee.arrival_offset_ms
            self.shortest_queue().queue.append(attendee)
            admitted.append(attendee)

        return admitted

    def _serve_kiosk(self, kiosk: Kiosk) -> List[Attendee]:
        tick = self.state.current_tick
        throughput = kiosk.throughput_per_tick
        offset_per_tick = kiosk.seconds_per_service * 1000 / throughput
        start_offset = max(0, tick - 1) * MS_PER_MINUTE
        served_before_ms = (tick - kiosk.minutes_per_service) * MS_PER_MINUTE

        finished = []
        for slot in range(throughput):
            if not kiosk.queue:
                break

            slot_offset = start_offset + slot * offset_per_tick
            front = kiosk.queue[0]
            if front.time_reached_front_ms is None:
                front.time_reached_front_ms = slot_offset

            if front.time_reached_front_ms < served_before_ms:
                kiosk.queue.popleft()
                front.service_end_offset_ms = slot_offset
                finished.append(front)

                if kiosk.queue:
                    kiosk.queue[0].time_reached_front_ms = slot_offset

        return finished

    def advance_service(self) -> List[Attendee]:
        """Run one tick of service at every kiosk; returns who completed"""
        finished = []
        for kiosk in self.state.kiosks:
            finished.extend(self._serve_kiosk(kiosk))
        self.state.completed.extend(finished)
        return finished

    def observe(self):
        self.state.observed_queue_lengths.extend(self.state.queue_lengths())

    def step(self) -> bool:
        """
        Process the current tick. Returns True, without doing any work, when
        the simulation has already reached its end.
        """
        if self.is_finished():
            return True

        self.admit_due_attendees()
        self.advance_service()
        self.observe()
        self.state.current_tick += 1
        return False

    def summary(self) -> SimulationSummary:
        observed = self.state.observed_queue_lengths
        if observed:
            max_queue_length = int(max(observed))
            average_queue_length = float(np.mean(observed))
        else:
            max_queue_length = 0
            average_queue_length = float('nan')

        waits = [a.waiting_time_ms for a in self.state.completed if a.waiting_time_ms is not None]
        average_wait_seconds = float(np.mean(waits)) / 1000 if waits else float('nan')

        return SimulationSummary(
            max_queue_length=max_queue_length,
            average_queue_length=average_queue_length,
            completed_count=self.state.completed_count,
            ticks_elapsed=self.state.current_tick,
            average_wait_seconds=average_wait_seconds,
        )


class KioskSimulation:
    """
    Simulation controller: owns the state, the clock and the subscriber lists.

    Subscribers register per SimulationEvent; callbacks run synchronously
    inside the tick that triggers them.
    """

    def __init__(self, config: Optional[SimulationConfig] = None, realtime: bool = True):
        self.config = config or SimulationConfig()
        self.clock = SimulationClock(self._on_tick, self.config.simulated_minutes_per_second, realtime)
        self.scheduler: Optional[QueueScheduler] = None
        self.last_summary: Optional[SimulationSummary] = None
        self._subscribers: Dict[SimulationEvent, List[Callable]] = {event: [] for event in SimulationEvent}

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, event: SimulationEvent, callback: Callable):
        self._subscribers[event].append(callback)

    def unsubscribe(self, event: SimulationEvent, callback: Callable):
        self._subscribers[event].remove(callback)

    def _publish(self, event: SimulationEvent, *args):
        for callback in list(self._subscribers[event]):
            callback(*args)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> ClockState:
        return self.clock.state

    @property
    def state(self) -> SimulationState:
        if self.scheduler is None:
            raise SimulationError("Simulation has not been initialised")
        return self.scheduler.state

    def queue_lengths(self) -> List[int]:
        return self.state.queue_lengths()

    def summary(self) -> SimulationSummary:
        if self.scheduler is None:
            raise SimulationError("Simulation has not been initialised")
        return self.scheduler.summary()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialise(self, arrival_times: Sequence[float], config: Optional[SimulationConfig] = None):
        """
        Reset to a fresh run over `arrival_times` and start the clock.

        All validation happens before anything is touched: a rejected call
        leaves the previous run exactly as it was.
        """
        config = config or self.config
        config.validate()

        if arrival_times is not None and len(arrival_times) != config.num_attendees:
            raise ValidationError(
                f"Expected {config.num_attendees} arrival times, got {len(arrival_times)}"
            )

        scheduler = QueueScheduler.build(
            arrival_times,
            num_kiosks=config.num_kiosks,
            seconds_at_kiosk=config.seconds_at_kiosk,
            max_duration_ticks=config.max_duration_ticks,
        )

        self.clock.cancel()
        self.config = config
        self.clock.set_speed(config.simulated_minutes_per_second)
        self.scheduler = scheduler
        self.last_summary = None
        self._publish(SimulationEvent.RESET)

        self.clock.initialise()
        logger.info("Initialised simulation: %d attendees, %d kiosks, %.0f s per attendee",
                    config.num_attendees, config.num_kiosks, config.seconds_at_kiosk)
        self._publish(SimulationEvent.RESUMED)

    def run(self, until_tick: Optional[int] = None) -> ClockState:
        return self.clock.run(until_tick)

    def run_for(self, ticks: int) -> ClockState:
        """Process at most `ticks` more ticks, for callers that drive the run in slices"""
        return self.clock.run(self.clock.current_tick + ticks)

    def pause(self):
        self.clock.pause()
        self._publish(SimulationEvent.PAUSED)

    def resume(self):
        self.clock.resume()
        self._publish(SimulationEvent.RESUMED)

    def toggle(self):
        if self.clock.state is ClockState.RUNNING:
            self.pause()
        else:
            self.resume()

    def cancel(self):
        """Stop ticking; the state of the interrupted run stays readable"""
        self.clock.cancel()

    def reset(self):
        """Clear every queue, the pending set and the completed set"""
        self.clock.cancel()
        if self.scheduler is not None:
            self.scheduler.state.clear()
        self.last_summary = None
        self._publish(SimulationEvent.RESET)

    def set_speed(self, simulated_minutes_per_second: float):
        self.clock.set_speed(simulated_minutes_per_second)
        self.config.simulated_minutes_per_second = self.clock.simulated_minutes_per_second

    def _on_tick(self, tick: int) -> bool:
        if self.scheduler.is_finished():
            self.last_summary = self.scheduler.summary()
            logger.info("Simulation completed after %d ticks. Max queue length observed: %d. "
                        "Average queue length observed: %.1f.",
                        self.last_summary.ticks_elapsed, self.last_summary.max_queue_length,
                        self.last_summary.average_queue_length)
            self._publish(SimulationEvent.COMPLETED, self.last_summary)
            return True

        self._publish(SimulationEvent.TICK, tick)
        self.scheduler.step()
        return False


def run_headless(config: SimulationConfig, curve: ArrivalCurve,
                 rng: Optional[np.random.Generator] = None) -> KioskSimulation:
    """Sample a schedule from `curve` and run a non-realtime simulation to completion"""
    config.validate()
    arrival_times = curve.generate_arrival_times(config.num_attendees, config.max_duration_hours, rng)

    simulation = KioskSimulation(config, realtime=False)
    simulation.initialise(arrival_times)
    simulation.run()
    return simulation
