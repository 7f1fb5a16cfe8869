"""Decompose an arbitrary speed multiplier into a chain of atempo stages.

FFmpeg's ``atempo`` only accepts factors in [0.5, 2.0]; larger or smaller
factors are reached by chaining stages whose product is the requested scale.
"""

from __future__ import annotations

import math

from screenreel.errors import InvalidConfigError

ATEMPO_MIN: float = 0.5
ATEMPO_MAX: float = 2.0
IDENTITY_EPSILON: float = 0.01
IDENTITY_FILTER: str = "anull"


def build_tempo_chain(scale: float) -> list[float]:
    """Return the stage multipliers for *scale*; an empty list is the identity.

    Raises
    ------
    InvalidConfigError
        If *scale* is not a finite, strictly positive number.
    """
    if not math.isfinite(scale) or not scale > 0.0:
        raise InvalidConfigError(f"time_scale must be a finite number > 0, got {scale}")
    if abs(scale - 1.0) < IDENTITY_EPSILON:
        return []

    remaining = scale
    stages: list[float] = []
    while remaining > ATEMPO_MAX:
        stages.append(ATEMPO_MAX)
        remaining /= ATEMPO_MAX
    while remaining < ATEMPO_MIN:
        stages.append(ATEMPO_MIN)
        remaining /= ATEMPO_MIN

    if abs(remaining - 1.0) > IDENTITY_EPSILON:
        stages.append(remaining)
    return stages


def format_tempo_chain(stages: list[float]) -> str:
    """Render stages as filter text (``anull`` for the identity)."""
    if not stages:
        return IDENTITY_FILTER
    parts = []
    for factor in stages:
        if factor in (ATEMPO_MIN, ATEMPO_MAX):
            parts.append(f"atempo={factor:.1f}")
        else:
            parts.append(f"atempo={factor:.4f}")
    return ",".join(parts)


def tempo_filter(scale: float) -> str:
    """Shorthand for ``format_tempo_chain(build_tempo_chain(scale))``."""
    return format_tempo_chain(build_tempo_chain(scale))
