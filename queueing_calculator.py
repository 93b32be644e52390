"""
Queueing Calculator
Closed-form M/M/c analysis used to size a bank of kiosks.

Key Concepts:
- Utilization: ρ = λ / (c × μ) where c = servers, μ = service rate per server
- Erlang C: Probability that an arriving attendee has to queue
- Little's Law: L = λW ties queue length to time in system

Both rates are expressed per minute: arrivals are given per hour and
service time in seconds, and each is converted before use.
"""

import math
from dataclasses import dataclass
from typing import List, Optional

import pandas as pd
from scipy import special

from queue_errors import ValidationError

DEFAULT_MAX_SERVERS = 8


class QueueingTheory:
    """
    Theoretical calculations for M/M/c queues.

    Parameters:
    - λ (lambda): Arrival rate (attendees per minute)
    - μ (mu): Service rate per server (attendees per minute)
    - c: Number of servers
    """

    @staticmethod
    def utilization(arrival_rate: float, service_rate: float, num_servers: int) -> float:
        """
        Calculate server utilization (ρ).
        ρ = λ / (c × μ)

        Must be < 1 for stable queue, otherwise queue grows unbounded.
        """
        if num_servers <= 0 or service_rate <= 0:
            return float('inf')
        return arrival_rate / (num_servers * service_rate)

    @staticmethod
    def _log_term(offered_load: float, n: int) -> float:
        # log(a^n / n!), stays finite for large server counts
        return n * math.log(offered_load) - special.gammaln(n + 1)

    @staticmethod
    def empty_system_probability(arrival_rate: float, service_rate: float, num_servers: int) -> float:
        """
        Steady-state probability of zero attendees in the system (P0).

        P0 = [ Σ_{n<c} a^n/n! + a^c / (c! (1 - ρ)) ]^-1 with a = λ/μ
        """
        c = num_servers
        rho = QueueingTheory.utilization(arrival_rate, service_rate, c)
        if rho >= 1:
            return 0.0

        a = arrival_rate / service_rate
        sum_term = sum(math.exp(QueueingTheory._log_term(a, n)) for n in range(c))
        last_term = math.exp(QueueingTheory._log_term(a, c)) / (1 - rho)
        return 1 / (sum_term + last_term)

    @staticmethod
    def erlang_c(arrival_rate: float, service_rate: float, num_servers: int) -> float:
        """
        Erlang C formula: Probability that an arriving attendee has to wait.

        P_wait = (cρ)^c × P0 / (c! (1 - ρ))
        """
        c = num_servers
        rho = QueueingTheory.utilization(arrival_rate, service_rate, c)

        if rho >= 1:
            return 1.0  # System unstable, everyone waits

        p0 = QueueingTheory.empty_system_probability(arrival_rate, service_rate, c)
        # (cρ)^c / c! is the same log term as a^c / c! since cρ = a
        return math.exp(QueueingTheory._log_term(c * rho, c)) * p0 / (1 - rho)

    @staticmethod
    def avg_queue_length(arrival_rate: float, service_rate: float, num_servers: int) -> float:
        """
        Average number of attendees waiting in queue (Lq).

        Lq = Erlang_C × ρ / (1 - ρ)
        """
        rho = QueueingTheory.utilization(arrival_rate, service_rate, num_servers)

        if rho >= 1:
            return float('inf')

        erlang_c = QueueingTheory.erlang_c(arrival_rate, service_rate, num_servers)
        return erlang_c * rho / (1 - rho)

    @staticmethod
    def avg_in_system(arrival_rate: float, service_rate: float, num_servers: int) -> float:
        """Average number of attendees in system (L = Lq + λ/μ)"""
        lq = QueueingTheory.avg_queue_length(arrival_rate, service_rate, num_servers)

        if lq == float('inf'):
            return float('inf')

        return lq + (arrival_rate / service_rate)

    @staticmethod
    def avg_system_time(arrival_rate: float, service_rate: float, num_servers: int) -> float:
        """
        Average total time in system, from Little's Law: W = L / λ.

        Includes both waiting time and service time.
        """
        l = QueueingTheory.avg_in_system(arrival_rate, service_rate, num_servers)

        if l == float('inf'):
            return float('inf')

        return l / arrival_rate


@dataclass
class ServerCountResult:
    """One row of the calculator table: the outcome for a single server count"""
    server_count: int
    utilization: float
    stable: bool
    meets_goal: bool = False

    # Only populated for stable rows
    p0: Optional[float] = None
    prob_wait: Optional[float] = None
    avg_in_system: Optional[float] = None
    queue_length: Optional[float] = None
    avg_time_in_system: Optional[float] = None  # seconds
    avg_time_in_queue: Optional[float] = None  # seconds

    @property
    def utilization_percent(self) -> int:
        return round(self.utilization * 100)

    @property
    def checkout_time(self) -> str:
        """Time in system as m:ss, or an empty string for unstable rows"""
        if self.avg_time_in_system is None:
            return ""
        minutes, seconds = divmod(round(self.avg_time_in_system), 60)
        return f"{minutes}:{seconds:02d}"


@dataclass
class CalculatorReport:
    """All server-count rows plus the recommended (smallest goal-meeting) count"""
    arrival_rate: float  # per minute
    service_rate: float  # per minute, one server
    rows: List[ServerCountResult]
    recommended_server_count: Optional[int] = None

    def to_frame(self) -> pd.DataFrame:
        records = []
        for row in self.rows:
            records.append({
                "Servers": row.server_count,
                "Utilization (%)": row.utilization_percent,
                "Stable": row.stable,
                "Queue Length": round(row.queue_length, 2) if row.stable else None,
                "Time in System (s)": row.avg_time_in_system,
                "Checkout Time": row.checkout_time,
                "Meets Goal": row.meets_goal,
            })
        return pd.DataFrame.from_records(records)


def _require_positive(name: str, value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(number) or number <= 0:
        raise ValidationError(f"{name} must be a positive number, got {value!r}")
    return number


def evaluate(arrivals_per_hour: float, mean_service_seconds: float,
             service_goal_seconds: float, max_servers: int = DEFAULT_MAX_SERVERS) -> CalculatorReport:
    """
    Evaluate server counts 1..max_servers against a time-in-system goal.

    Rows with ρ >= 1 are reported unstable and carry no further statistics.
    The recommendation is the first stable row whose average time in system
    does not exceed the goal; None when no row meets it.
    """
    arrivals_per_hour = _require_positive("Arrivals per hour", arrivals_per_hour)
    mean_service_seconds = _require_positive("Service time", mean_service_seconds)
    service_goal_seconds = _require_positive("Service goal", service_goal_seconds)
    if isinstance(max_servers, bool) or not isinstance(max_servers, int) or max_servers < 1:
        raise ValidationError(f"Maximum server count must be a positive integer, got {max_servers!r}")

    arrival_rate = arrivals_per_hour / 60
    service_rate = 60 / mean_service_seconds

    rows = []
    recommended = None

    for c in range(1, max_servers + 1):
        rho = QueueingTheory.utilization(arrival_rate, service_rate, c)

        if rho >= 1:
            rows.append(ServerCountResult(server_count=c, utilization=rho, stable=False))
            continue

        w = QueueingTheory.avg_system_time(arrival_rate, service_rate, c)
        wq = w - 1 / service_rate

        row = ServerCountResult(
            server_count=c,
            utilization=rho,
            stable=True,
            p0=QueueingTheory.empty_system_probability(arrival_rate, service_rate, c),
            prob_wait=QueueingTheory.erlang_c(arrival_rate, service_rate, c),
            avg_in_system=QueueingTheory.avg_in_system(arrival_rate, service_rate, c),
            queue_length=arrival_rate * wq,
            avg_time_in_system=w * 60,
            avg_time_in_queue=wq * 60,
        )
        row.meets_goal = row.avg_time_in_system <= service_goal_seconds

        if row.meets_goal and recommended is None:
            recommended = c

        rows.append(row)

    return CalculatorReport(
        arrival_rate=arrival_rate,
        service_rate=service_rate,
        rows=rows,
        recommended_server_count=recommended,
    )
