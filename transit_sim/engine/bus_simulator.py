"""
Bus state simulation for the OnTime transit simulator.

This module implements the per-tick update rule for simulated buses: a
bounded random walk on speed, delay and occupancy, followed by status
derivation and progress advance along the route.
"""

import random
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Tuple

from transit_sim.common.models import (
    DELAYED_THRESHOLD_MIN,
    BusSimState,
    BusStatus,
    derive_status,
)

# Uniform draw in [0, 1)
RandomDraw = Callable[[], float]

MAX_SPEED_KMH = 45.0
SPEED_STEP_KMH = 10.0
DELAY_STEP_MIN = 2.0
OCCUPANCY_STEP_PCT = 10.0

STATUS_COLORS = {
    BusStatus.MOVING: ("green", "#10B981"),
    BusStatus.STOPPED: ("yellow", "#F59E0B"),
    BusStatus.DELAYED: ("orange", "#F97316"),
    BusStatus.OUT_OF_SERVICE: ("red", "#EF4444"),
}
DEFAULT_STATUS_COLOR = ("gray", "#6B7280")


def seeded_random(seed: Optional[int] = None) -> RandomDraw:
    """Return a uniform draw function backed by its own random.Random."""
    return random.Random(seed).random


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def status_color(status: BusStatus) -> Tuple[str, str]:
    """
    Get the display colours for a status.

    Returns:
        Tuple of (status colour name, dot colour hex)
    """
    return STATUS_COLORS.get(status, DEFAULT_STATUS_COLOR)


def delay_color(delay_min: float) -> str:
    """
    Get the display colour for a delay.

    - Early (negative delay): green
    - Up to 3 minutes late: yellow
    - Up to 7 minutes late: orange
    - Later than that: red
    """
    if delay_min < 0:
        return "green"
    if delay_min <= 3:
        return "yellow"
    if delay_min <= 7:
        return "orange"
    return "red"


def update_bus_state(
    state: BusSimState,
    draw: RandomDraw,
    progress_delta: float = 0.0,
    now: Optional[datetime] = None,
    delay_bounds: Optional[Tuple[float, float]] = None
) -> BusSimState:
    """
    Apply one simulation tick to a bus.

    The rule draws three uniform values, in this order:
    1. Speed: a stopped bus stays at 0, otherwise speed moves by up to
       +/-5 km/h and is clamped to [0, 45]
    2. Delay: moves by up to +/-1 minute, clamped to `delay_bounds` if given
    3. Occupancy: moves by up to +/-5 points (rounded) and is clamped to [0, 100]

    The status is then derived from the new speed and delay, and progress
    advances by `progress_delta` modulo 1.0 unless the bus ends up Stopped.
    A bus that is OutOfService is left untouched apart from its timestamp.

    Args:
        state: Current bus state
        draw: Source of uniform random draws in [0, 1)
        progress_delta: Progress to add this tick
        now: Timestamp for last_update (defaults to datetime.now())
        delay_bounds: Optional (min, max) clamp for delay in minutes

    Returns:
        New bus state
    """
    now = now or datetime.now()

    if state.status == BusStatus.OUT_OF_SERVICE:
        return replace(state, last_update=now)

    if state.status == BusStatus.STOPPED:
        speed = 0.0
    else:
        speed = clamp(state.speed_kmh + (draw() - 0.5) * SPEED_STEP_KMH, 0.0, MAX_SPEED_KMH)

    delay = state.delay_min + (draw() - 0.5) * DELAY_STEP_MIN
    if delay_bounds is not None:
        delay = clamp(delay, delay_bounds[0], delay_bounds[1])

    occupancy = int(clamp(
        state.occupancy_pct + round((draw() - 0.5) * OCCUPANCY_STEP_PCT),
        0,
        100
    ))

    status = derive_status(speed, delay)

    progress = state.progress
    if status != BusStatus.STOPPED:
        progress = advance_progress(progress, progress_delta)

    return replace(
        state,
        progress=progress,
        speed_kmh=speed,
        delay_min=delay,
        occupancy_pct=occupancy,
        status=status,
        last_update=now
    )


def advance_progress(progress: float, delta: float) -> float:
    """
    Add `delta` to `progress`, wrapping into [0, 1).

    Raises:
        ValueError: If delta is negative
    """
    if delta < 0:
        raise ValueError(f"progress delta must be non-negative, got {delta}")

    return (progress + delta) % 1.0
