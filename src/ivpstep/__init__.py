"""
ivpstep: stepping engine for initial value problems.

Approximates solutions of first-order initial value problems
x'(t) = f(t, x(t)), x(t0) = x0 with explicit, implicit, adaptive and
multistep methods. Solutions can be computed eagerly within an interval or
lazily on demand, while detecting and locating events along the way.
"""

from . import time_steppers
from .core import (
    IVP,
    CacheSolution,
    DenseSolution,
    Event,
    HermiteInterpolator,
    LinearInterpolator,
    Method,
    NewtonSolver,
    Point,
    Profiler,
    RootNotFoundError,
    SecantSolver,
    Stepper,
    dense_solve,
    profile,
    step_until,
)

__all__ = [
    "Point",
    "IVP",
    "Stepper",
    "Method",
    "Event",
    "step_until",
    "LinearInterpolator",
    "HermiteInterpolator",
    "DenseSolution",
    "dense_solve",
    "CacheSolution",
    "NewtonSolver",
    "SecantSolver",
    "RootNotFoundError",
    "profile",
    "Profiler",
    "time_steppers",
]
