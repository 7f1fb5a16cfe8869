"""Cursor smoothing: turn raw mouse moves into one eased sample per video frame."""

from __future__ import annotations

import bisect
import math
from typing import Protocol, Sequence

from screenreel.bundle import MouseMove
from screenreel.edits.schema import SpringConfig
from screenreel.models import CursorSample

# Integration steps per output frame; keeps the spring stable at low fps.
SUBSTEPS: int = 8


class CursorSmoother(Protocol):
    def __call__(
        self,
        moves: Sequence[MouseMove],
        spring: SpringConfig,
        fps: float,
    ) -> list[CursorSample]: ...


def _step(pos: float, vel: float, target: float, spring: SpringConfig, dt: float) -> tuple[float, float]:
    # Semi-implicit Euler: update velocity first, then position with the new velocity.
    accel = (-spring.stiffness * (pos - target) - spring.damping * vel) / spring.mass
    vel += accel * dt
    return pos + vel * dt, vel


def smooth_cursor_data(
    moves: Sequence[MouseMove],
    spring: SpringConfig,
    fps: float,
) -> list[CursorSample]:
    """Follow the raw cursor with a damped spring, sampled at every frame time.

    Samples run from t=0 to the last move's timestamp, one per ``1000 / fps``
    ms. At each sample the spring pulls toward the most recent raw position;
    before the first move the cursor rests on the first recorded position.
    The sprite id is always that of the most recent raw move.

    Returns samples sorted by ``process_time_ms``; empty for no moves.
    """
    if not moves or fps <= 0:
        return []

    ordered = sorted(moves, key=lambda m: m.process_time_ms)
    times = [m.process_time_ms for m in ordered]
    frame_ms = 1000.0 / fps
    dt = frame_ms / 1000.0 / SUBSTEPS

    x, y = ordered[0].x, ordered[0].y
    vx = vy = 0.0
    samples: list[CursorSample] = []

    frame_count = int(math.floor(times[-1] / frame_ms)) + 1 if times[-1] > 0 else 1
    for frame in range(frame_count):
        t = frame * frame_ms
        index = max(bisect.bisect_right(times, t) - 1, 0)
        target = ordered[index]
        if frame > 0:
            for _ in range(SUBSTEPS):
                x, vx = _step(x, vx, target.x, spring, dt)
                y, vy = _step(y, vy, target.y, spring, dt)
        samples.append(CursorSample(process_time_ms=t, x=x, y=y, cursor_id=target.cursor_id))
    return samples
