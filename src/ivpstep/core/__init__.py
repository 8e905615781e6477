"""
Core functionality of ivpstep.

The data model, the Stepper and Method abstractions, interpolation, root
finding, event handling and the solution stores.
"""

from .cache import CacheSolution
from .events import Event, EventTracker, different_sign, step_until
from .interpolation import HermiteInterpolator, Interpolator, LinearInterpolator
from .problem import IVP, Point
from .profiling import Profiler, profile
from .solution import DenseSolution, dense_solve
from .solvers import AbstractRootSolver, NewtonSolver, RootNotFoundError, SecantSolver, finite_difference_derivative
from .stepper import (
    AdaptiveStepMethod,
    ConfigurableStepper,
    FixedStepMethod,
    Method,
    Stepper,
    adaptive_update_step,
)

__all__ = [
    "Point",
    "IVP",
    "Stepper",
    "ConfigurableStepper",
    "Method",
    "FixedStepMethod",
    "AdaptiveStepMethod",
    "adaptive_update_step",
    "Interpolator",
    "LinearInterpolator",
    "HermiteInterpolator",
    "AbstractRootSolver",
    "NewtonSolver",
    "SecantSolver",
    "RootNotFoundError",
    "finite_difference_derivative",
    "Event",
    "EventTracker",
    "different_sign",
    "step_until",
    "DenseSolution",
    "dense_solve",
    "CacheSolution",
    "Profiler",
    "profile",
]
