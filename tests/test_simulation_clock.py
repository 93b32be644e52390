import pytest

from queue_errors import SimulationError, ValidationError
from simulation_clock import ClockState, PacedEnvironment, SimulationClock


class Recorder:
    """Step callback that finishes after a fixed number of ticks"""

    def __init__(self, finish_at=None):
        self.ticks = []
        self.finish_at = finish_at

    def __call__(self, tick):
        self.ticks.append(tick)
        return self.finish_at is not None and tick >= self.finish_at


def test_clock_starts_idle_and_refuses_to_run():
    clock = SimulationClock(Recorder(), realtime=False)

    assert clock.state is ClockState.IDLE
    with pytest.raises(SimulationError):
        clock.run()


def test_ticks_until_step_reports_termination():
    recorder = Recorder(finish_at=3)
    clock = SimulationClock(recorder, realtime=False)
    clock.initialise()

    assert clock.state is ClockState.RUNNING
    assert clock.run() is ClockState.COMPLETED
    assert recorder.ticks == [0, 1, 2, 3]
    assert clock.current_tick == 3


def test_run_until_tick_stops_without_completing():
    recorder = Recorder()
    clock = SimulationClock(recorder, realtime=False)
    clock.initialise()

    assert clock.run(until_tick=5) is ClockState.RUNNING
    assert recorder.ticks == [0, 1, 2, 3, 4]

    clock.run(until_tick=7)
    assert recorder.ticks == list(range(7))


def test_pause_and_resume_only_from_matching_state():
    clock = SimulationClock(Recorder(), realtime=False)

    with pytest.raises(SimulationError):
        clock.pause()
    with pytest.raises(SimulationError):
        clock.resume()

    clock.initialise()
    with pytest.raises(SimulationError):
        clock.resume()

    clock.pause()
    assert clock.state is ClockState.PAUSED
    with pytest.raises(SimulationError):
        clock.pause()

    clock.resume()
    assert clock.state is ClockState.RUNNING


def test_pause_from_inside_a_tick_stops_between_ticks():
    ticks = []

    def on_tick(tick):
        ticks.append(tick)
        if tick == 2:
            clock.pause()
        return tick >= 5

    clock = SimulationClock(on_tick, realtime=False)
    clock.initialise()

    assert clock.run() is ClockState.PAUSED
    assert ticks == [0, 1, 2]
    assert clock.current_tick == 3

    clock.resume()
    assert clock.run() is ClockState.COMPLETED
    assert ticks == [0, 1, 2, 3, 4, 5]


def test_toggle_flips_between_running_and_paused():
    clock = SimulationClock(Recorder(), realtime=False)
    clock.initialise()

    clock.toggle()
    assert clock.state is ClockState.PAUSED
    clock.toggle()
    assert clock.state is ClockState.RUNNING


def test_cancel_returns_to_idle():
    clock = SimulationClock(Recorder(), realtime=False)
    clock.initialise()
    clock.run(until_tick=3)

    clock.cancel()

    assert clock.state is ClockState.IDLE
    assert clock.current_tick == 0
    with pytest.raises(SimulationError):
        clock.run()


def test_initialise_restarts_from_tick_zero():
    recorder = Recorder(finish_at=2)
    clock = SimulationClock(recorder, realtime=False)
    clock.initialise()
    clock.run()

    recorder.ticks.clear()
    clock.initialise()
    clock.run()

    assert recorder.ticks == [0, 1, 2]


def test_tick_duration_follows_speed():
    clock = SimulationClock(Recorder(), simulated_minutes_per_second=4)
    assert clock.tick_duration_ms == 250

    clock.set_speed(10)
    assert clock.tick_duration_ms == 100


@pytest.mark.parametrize("speed", [0, -1, "fast", None])
def test_rejects_non_positive_speed(speed):
    with pytest.raises(ValidationError):
        SimulationClock(Recorder(), simulated_minutes_per_second=speed)

    clock = SimulationClock(Recorder())
    with pytest.raises(ValidationError):
        clock.set_speed(speed)


def test_realtime_clock_uses_paced_environment():
    clock = SimulationClock(Recorder(finish_at=4), simulated_minutes_per_second=100000)
    clock.initialise()

    assert isinstance(clock.env, PacedEnvironment)
    assert clock.env.factor == pytest.approx(1e-5)
    assert clock.run() is ClockState.COMPLETED


def test_speed_change_while_running_keeps_progress():
    ticks = []

    def on_tick(tick):
        ticks.append(tick)
        if tick == 3:
            clock.set_speed(50000)
        return tick >= 6

    clock = SimulationClock(on_tick, simulated_minutes_per_second=100000)
    clock.initialise()

    assert clock.run() is ClockState.COMPLETED
    assert ticks == list(range(7))
    assert clock.env.factor == pytest.approx(2e-5)
    assert clock.env.now == 7


def test_run_reanchors_paced_clock_at_current_time():
    clock = SimulationClock(Recorder(), simulated_minutes_per_second=100000)
    clock.initialise()
    clock.run(until_tick=2)

    clock.run(until_tick=2)

    assert clock.env.env_start == clock.env.now == 2
