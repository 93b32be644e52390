"""
Kiosk Queue Simulator
Size a bank of check-in kiosks two ways: closed-form M/M/c queueing theory
and a minute-by-minute simulation driven by an editable arrival curve.

Key Concepts:
- Utilization: ρ = λ / (c × μ) must stay below 1 or the line grows forever
- Erlang C: Probability that an arriving attendee has to queue
- Arrival curve: relative arrival intensity over the event, sampled into a
  concrete arrival schedule by inverse-transform sampling
- Shortest-queue admission: each arrival joins the kiosk with the fewest people

Run with:
    streamlit run kiosk_queue_simulator.py
"""

import numpy as np
import streamlit as st

from arrival_curve import POINT_IDS, PRESETS, ArrivalCurve
from kiosk_simulation import KioskSimulation, SimulationConfig
from queue_errors import QueueSimulatorError
from queue_plots import (create_arrival_curve_plot, create_queue_length_plot,
                         create_server_count_plot, queue_length_frame)
from queueing_calculator import evaluate
from simulation_clock import ClockState

LIVE_REFRESH_TICKS = 5  # simulated minutes per redraw of the live charts

st.set_page_config(layout="wide", page_title="Kiosk Queue Simulator")

st.title("🎟️ Kiosk Queue Simulator")

st.markdown("""
Plan check-in capacity with **queueing theory** and a **tick-based simulation**.

**Key Concepts**:
- **Utilization**: ρ = λ / (c × μ) (must be < 1 for a stable line)
- **Erlang C**: Probability that an arriving attendee has to wait
- **Arrival curve**: When attendees turn up, drawn as a spline you can shape
- **Shortest queue**: Each arrival joins the kiosk with the fewest people
""")

if "curve_values" not in st.session_state:
    st.session_state.curve_values = ArrivalCurve.preset('default').to_values()

# Sidebar for configuration
st.sidebar.header("⚙️ Configuration")

tab_calc, tab_sim = st.tabs(["📐 Calculator (M/M/c)", "🔬 Simulation"])

# ============================================================================
# CALCULATOR
# ============================================================================

with tab_calc:
    st.header("📐 How many kiosks do you need?")

    col1, col2, col3 = st.columns(3)
    with col1:
        service_seconds = st.number_input(
            "Avg Service Time (s)", min_value=1.0, max_value=3600.0, value=120.0, step=5.0,
            help="Average time one attendee spends at a kiosk"
        )
    with col2:
        arrivals_per_hour = st.number_input(
            "Arrivals per Hour", min_value=1.0, max_value=10000.0, value=30.0, step=5.0,
            help="Average number of attendees arriving each hour"
        )
    with col3:
        goal_seconds = st.number_input(
            "Service Goal (s)", min_value=1.0, max_value=7200.0, value=180.0, step=10.0,
            help="Target average time from joining the line to leaving the kiosk"
        )

    try:
        report = evaluate(arrivals_per_hour, service_seconds, goal_seconds)
    except QueueSimulatorError as e:
        st.error(str(e))
        report = None

    if report is not None:
        if report.recommended_server_count is not None:
            st.success(f"✅ Recommended kiosks: **{report.recommended_server_count}**")
        else:
            st.warning("⚠️ No kiosk count up to 8 meets the service goal.")

        st.dataframe(report.to_frame(), use_container_width=True)
        st.plotly_chart(create_server_count_plot(report, goal_seconds), use_container_width=True)

        with st.expander("🔍 Details per kiosk count"):
            for row in report.rows:
                if not row.stable:
                    st.markdown(f"**{row.server_count} kiosks**: attendees arrive faster than they "
                                f"can be served, so statistics are unavailable. The line is always growing.")
                    continue
                st.markdown(f"""
**{row.server_count} kiosks**
- Arrival rate: {report.arrival_rate:.3f}/min, service rate of one kiosk: {report.service_rate:.3f}/min
- Utilization: {row.utilization:.3f}
- P(zero attendees): {row.p0:.4f}, P(wait): {row.prob_wait:.4f}
- Avg in system: {row.avg_in_system:.2f}, avg in line: {row.queue_length:.2f}
- Avg time in system: {row.avg_time_in_system:.1f}s ({row.checkout_time}), in line: {row.avg_time_in_queue:.1f}s
""")

# ============================================================================
# SIMULATION
# ============================================================================

st.sidebar.subheader("📈 Arrival Curve")
preset = st.sidebar.selectbox("Preset", list(PRESETS), help="Stock arrival patterns")
if st.sidebar.button("Apply Preset"):
    st.session_state.curve_values = ArrivalCurve.preset(preset).to_values()

# stored values may sit slightly outside [0, 1] after a G1 re-projection
values = st.session_state.curve_values
curve = ArrivalCurve.from_pairs([(values[f"{p}x"], values[f"{p}y"]) for p in POINT_IDS])

anchor = st.sidebar.radio("Move anchor", ["p0", "p3", "p6"], horizontal=True,
                          help="Anchors carry their control points with them")
anchor_point = curve.points[POINT_IDS.index(anchor)]
anchor_x = st.sidebar.slider("Anchor time", 0.0, 1.0, float(anchor_point.x), 0.01)
anchor_y = st.sidebar.slider("Anchor intensity", 0.0, 1.0, float(anchor_point.y), 0.01)
if (anchor_x, anchor_y) != (anchor_point.x, anchor_point.y):
    try:
        moved = curve.move_point(anchor, anchor_x, anchor_y)
        moved.validate()
        curve = moved
        st.session_state.curve_values = curve.to_values()
    except QueueSimulatorError as e:
        st.sidebar.error(str(e))

with st.sidebar.expander("🔧 Control Points"):
    edited = {}
    for key, value in curve.to_values().items():
        edited[key] = st.number_input(key, min_value=0.0, max_value=1.0,
                                      value=float(min(1.0, max(0.0, value))), step=0.01, format="%.3f")
    if st.button("Apply Control Points"):
        try:
            curve = ArrivalCurve.from_values(edited).enforce_g1_continuity()
            st.session_state.curve_values = curve.to_values()
        except QueueSimulatorError as e:
            st.error(str(e))

st.sidebar.subheader("🖥️ Kiosks")
num_attendees = st.sidebar.number_input("Number of Attendees", min_value=1, max_value=20000, value=300)
num_kiosks = st.sidebar.slider("Number of Kiosks", min_value=1, max_value=30, value=4)
seconds_at_kiosk = st.sidebar.slider("Seconds at Kiosk", min_value=5, max_value=600, value=60, step=5)

st.sidebar.subheader("⏱️ Simulation")
speed = st.sidebar.slider("Simulated Minutes per Second", min_value=1, max_value=480, value=60)
live = st.sidebar.checkbox("Animate in real time", value=True)
seed = st.sidebar.number_input("Random Seed (0 = random)", min_value=0, max_value=10**6, value=0)

with tab_sim:
    st.header("🔬 Arrival-Driven Simulation")

    curve_chart = st.empty()
    curve_chart.plotly_chart(create_arrival_curve_plot(curve), use_container_width=True)

    if st.button("🚀 Run Simulation", type="primary"):
        config = SimulationConfig(
            num_attendees=int(num_attendees),
            num_kiosks=int(num_kiosks),
            seconds_at_kiosk=float(seconds_at_kiosk),
            simulated_minutes_per_second=float(speed),
        )
        rng = np.random.default_rng(int(seed)) if seed else None

        try:
            arrival_times = curve.generate_arrival_times(config.num_attendees, config.max_duration_hours, rng)
            simulation = KioskSimulation(config, realtime=live)
            simulation.initialise(arrival_times)
            st.session_state.simulation = simulation
            st.session_state.arrival_times = arrival_times
        except QueueSimulatorError as e:
            st.error(str(e))

    # the run lives in session state and advances a slice per script rerun,
    # so the pause button and speed slider act on it while it is running
    simulation = st.session_state.get("simulation")
    arrival_times = st.session_state.get("arrival_times")

    if simulation is not None:
        status = simulation.status

        col1, col2 = st.columns([1, 4])
        with col1:
            if status in (ClockState.RUNNING, ClockState.PAUSED):
                label = "⏸️ Pause" if status is ClockState.RUNNING else "▶️ Resume"
                if st.button(label):
                    simulation.toggle()
                    status = simulation.status

        if status in (ClockState.RUNNING, ClockState.PAUSED) and \
                speed != simulation.config.simulated_minutes_per_second:
            simulation.set_speed(float(speed))

        if status is ClockState.RUNNING:
            status = simulation.run_for(LIVE_REFRESH_TICKS) if live else simulation.run()

        state = simulation.state
        hours, minutes = divmod(state.current_tick, 60)
        with col2:
            st.markdown(f"⏱️ **{hours}h {minutes:02d}m** · {status.value} · queues: {state.queue_lengths()} · "
                        f"completed: {state.completed_count}")

        if status is not ClockState.COMPLETED:
            curve_chart.plotly_chart(
                create_arrival_curve_plot(curve, arrival_times, current_minute=state.current_tick),
                use_container_width=True
            )
            st.plotly_chart(create_queue_length_plot(state), use_container_width=True)
            if status is ClockState.RUNNING:
                st.rerun()
        else:
            summary = simulation.last_summary
            st.success(f"Simulation completed. Max queue length observed: {summary.max_queue_length}. "
                       f"Average queue length observed: {summary.average_queue_length:.1f}.")

            col1, col2, col3, col4 = st.columns(4)
            with col1:
                st.metric("Completed", summary.completed_count)
            with col2:
                st.metric("Max Queue Length", summary.max_queue_length)
            with col3:
                st.metric("Avg Queue Length", f"{summary.average_queue_length:.1f}")
            with col4:
                st.metric("Avg Wait", f"{summary.average_wait_seconds / 60:.1f} min"
                          if not np.isnan(summary.average_wait_seconds) else "–")

            curve_chart.plotly_chart(create_arrival_curve_plot(curve, arrival_times),
                                     use_container_width=True)
            st.plotly_chart(create_queue_length_plot(state), use_container_width=True)

            with st.expander("📋 Queue Lengths per Minute"):
                st.dataframe(queue_length_frame(state), use_container_width=True)

    with st.expander("📚 How the simulation works"):
        st.markdown("""
        ### One tick = one simulated minute

        1. **Arrivals**: everyone whose arrival time has passed joins the shortest queue
           (ties go to the lowest-numbered kiosk)
        2. **Service**: each kiosk serves at least one attendee per tick, more when the
           service takes under a minute (60 / seconds at kiosk per tick)
        3. **Observation**: every queue length is recorded
        4. **End**: after 8 simulated hours, or once everyone has arrived and been served

        ### Arrival curve

        Seven control points define a two-part cubic Bézier curve. The curve is sampled
        1000 times; the heights become weights and each attendee's arrival is drawn from
        the resulting distribution. A flat curve spreads arrivals evenly.
        """)
