"""
Methods for stepping initial value problems.

This package provides explicit and implicit single-step schemes, adaptive
Runge-Kutta schemes and Adams multistep schemes, with or without step size
control.
"""

from .adams import AdamsBashforth, AdamsBashforthMoulton, AdaptiveAdamsBashforthMoulton, StepHistory
from .runge_kutta import AdaptiveRungeKutta4, RungeKutta4, RungeKuttaFehlberg45, rk4_step
from .time_steppers import AdaptiveEuler, Euler, ImplicitEuler, ModifiedEuler, Trapezium

__all__ = [
    "Euler",
    "ModifiedEuler",
    "AdaptiveEuler",
    "ImplicitEuler",
    "Trapezium",
    "RungeKutta4",
    "AdaptiveRungeKutta4",
    "RungeKuttaFehlberg45",
    "rk4_step",
    "AdamsBashforth",
    "AdamsBashforthMoulton",
    "AdaptiveAdamsBashforthMoulton",
    "StepHistory",
]
