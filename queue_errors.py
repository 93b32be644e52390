"""
Errors raised by the kiosk queue simulator.

ValidationError covers bad or missing numeric input and is always raised
before any state is touched, so the caller can fix the input and retry.
SimulationError covers broken internal preconditions (a malformed arrival
schedule, ticking a simulation that was never initialised) and is fatal
to the current run.
"""


class QueueSimulatorError(Exception):
    """Base class for every error raised by the simulator"""


class ValidationError(QueueSimulatorError):
    """Input rejected before any state mutation"""


class SimulationError(QueueSimulatorError):
    """Invalid internal precondition for the current run"""
