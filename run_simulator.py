#!/usr/bin/env python3
"""
Kiosk Queue Simulator Launcher
Run this to see the menu: launch the dashboard, or use the calculator and a
headless simulation straight from the terminal
"""

import logging
import os
import subprocess
import sys

import numpy as np

from arrival_curve import PRESETS, ArrivalCurve
from kiosk_simulation import SimulationConfig, SimulationSummary, run_headless
from queue_errors import QueueSimulatorError
from queueing_calculator import CalculatorReport, evaluate

DASHBOARD_FILE = 'kiosk_queue_simulator.py'

MENU = {
    '1': {
        'name': 'Kiosk Queue Dashboard',
        'description': 'Interactive calculator, arrival-curve editor and live simulation',
    },
    '2': {
        'name': 'Queue Calculator',
        'description': 'M/M/c table and recommended kiosk count for a service goal',
    },
    '3': {
        'name': 'Headless Simulation',
        'description': 'Run one simulation to completion and print its statistics',
    },
}


def print_banner():
    """Print welcome banner"""
    print("=" * 70)
    print("  🎟️  KIOSK QUEUE SIMULATOR 🎟️")
    print("=" * 70)
    print()
    print("Plan check-in capacity for an event:")
    print("  • Closed-form M/M/c sizing against a service-time goal")
    print("  • Arrival curves shaped by a two-segment Bézier spline")
    print("  • Minute-by-minute simulation with shortest-queue admission")
    print()
    print("=" * 70)
    print()


def print_menu():
    """Print main menu"""
    print("Available Tools:")
    print()

    for key, item in MENU.items():
        print(f"  [{key}] {item['name']}")
        print(f"      {item['description']}")
        print()

    print("  [h] Show help and requirements")
    print("  [q] Quit")
    print()


def check_requirements():
    """Check if required packages are installed"""
    required = ['streamlit', 'simpy', 'plotly', 'numpy', 'pandas', 'scipy']
    missing = []

    for package in required:
        try:
            __import__(package)
        except ImportError:
            missing.append(package)

    if missing:
        print("⚠️  Missing required packages:")
        print()
        for pkg in missing:
            print(f"   • {pkg}")
        print()
        print("Install with:")
        print(f"   pip install {' '.join(missing)}")
        print()
        return False

    return True


def show_help():
    """Show help information"""
    print()
    print("=" * 70)
    print("HELP & REQUIREMENTS")
    print("=" * 70)
    print()
    print("Requirements:")
    print("  • Python 3.8+")
    print("  • streamlit (web UI)")
    print("  • simpy (simulation clock)")
    print("  • plotly (interactive plots)")
    print("  • numpy, scipy (numerical computing)")
    print("  • pandas (result tables)")
    print()
    print("Installation:")
    print("  pip install -e .")
    print()
    print("Running the dashboard:")
    print(f"  streamlit run {DASHBOARD_FILE}")
    print()
    print("Tips:")
    print("  • Start with the calculator to get a baseline kiosk count")
    print("  • Then simulate the same count against a realistic arrival curve")
    print("  • Peaky arrival curves need more kiosks than the average rate suggests")
    print()
    print("=" * 70)
    print()


def prompt_number(label, default, cast=float):
    """Ask for a number, falling back to `default` on empty input"""
    raw = input(f"{label} [{default}]: ").strip()
    if not raw:
        return cast(default)
    try:
        return cast(raw)
    except ValueError:
        raise QueueSimulatorError(f"{label}: {raw!r} is not a number")


def format_calculator_report(report: CalculatorReport) -> str:
    lines = [report.to_frame().to_string(index=False), ""]
    if report.recommended_server_count is None:
        lines.append("No kiosk count meets the service goal.")
    else:
        lines.append(f"Recommended kiosks: {report.recommended_server_count}")
    return "\n".join(lines)


def format_summary(summary: SimulationSummary) -> str:
    average = ("n/a" if np.isnan(summary.average_queue_length)
               else f"{summary.average_queue_length:.1f}")
    return "\n".join([
        f"Simulated minutes:     {summary.ticks_elapsed}",
        f"Completed attendees:   {summary.completed_count}",
        f"Max queue length:      {summary.max_queue_length}",
        f"Average queue length:  {average}",
    ])


def run_dashboard():
    """Run the dashboard using streamlit"""
    if not os.path.exists(DASHBOARD_FILE):
        print(f"❌ Error: {DASHBOARD_FILE} not found!")
        print("   Make sure you're in the correct directory.")
        return False

    print(f"🚀 Launching {DASHBOARD_FILE}...")
    print("   (Press Ctrl+C to stop)")
    print()

    try:
        subprocess.run(['streamlit', 'run', DASHBOARD_FILE])
        return True
    except KeyboardInterrupt:
        print("\n⏹️  Stopped dashboard")
        return True
    except FileNotFoundError:
        print("❌ Error: streamlit not found!")
        print("   Install with: pip install streamlit")
        return False


def run_calculator():
    service_seconds = prompt_number("Avg service time (s)", 120)
    arrivals_per_hour = prompt_number("Arrivals per hour", 30)
    goal_seconds = prompt_number("Service goal (s)", 180)

    report = evaluate(arrivals_per_hour, service_seconds, goal_seconds)
    print()
    print(format_calculator_report(report))


def run_simulation():
    preset = input(f"Arrival curve preset {list(PRESETS)} [default]: ").strip() or 'default'
    config = SimulationConfig(
        num_attendees=prompt_number("Number of attendees", 100, int),
        num_kiosks=prompt_number("Number of kiosks", 4, int),
        seconds_at_kiosk=prompt_number("Seconds at kiosk", 60),
    )
    seed = prompt_number("Random seed (0 = random)", 0, int)
    rng = np.random.default_rng(seed) if seed else None

    simulation = run_headless(config, ArrivalCurve.preset(preset), rng)
    print()
    print(format_summary(simulation.last_summary))


def main():
    """Main launcher loop"""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print_banner()

    # Check requirements
    if not check_requirements():
        print("Please install required packages first.")
        sys.exit(1)

    actions = {'1': run_dashboard, '2': run_calculator, '3': run_simulation}

    while True:
        print_menu()
        choice = input("Select option: ").strip().lower()
        print()

        if choice == 'q':
            print("👋 Goodbye!")
            break

        elif choice == 'h':
            show_help()

        elif choice in actions:
            print(f"Running: {MENU[choice]['name']}")
            print()
            try:
                actions[choice]()
            except QueueSimulatorError as e:
                print(f"❌ Error: {e}")
            print()
            input("Press Enter to return to menu...")

        else:
            print(f"❌ Invalid choice: {choice}")
            print()


if __name__ == '__main__':
    try:
        main()
    except KeyboardInterrupt:
        print("\n\n👋 Interrupted. Goodbye!")
        sys.exit(0)
