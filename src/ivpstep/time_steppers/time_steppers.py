"""Euler schemes and implicit single-step schemes."""

from __future__ import annotations

import copy
from collections.abc import Callable

import numpy as np

from ivpstep.core.problem import IVP, Point
from ivpstep.core.solvers import (
    AbstractRootSolver,
    NewtonSolver,
    RootNotFoundError,
    SecantSolver,
    finite_difference_derivative,
)
from ivpstep.core.stepper import AdaptiveStepMethod, ConfigurableStepper, FixedStepMethod, Method, check_step_sizes
from ivpstep.core.types import PartialFunction


class Euler(FixedStepMethod):
    """
    Explicit Euler (Forward Euler) scheme.

    x(t+h) = x(t) + h*f(t, x(t)), a first-order method.
    """

    order = 1

    def step(self, state: IVP, dt: float) -> bool:
        deriv = state.evaluate(state.start)
        if deriv is None:
            return False
        state.start.value = state.start.value + dt * deriv
        return True


class ModifiedEuler(FixedStepMethod):
    """
    Modified Euler (Heun) scheme.

    x(t+h) = x(t) + h/2 * (f(t, x(t)) + f(t+h, x(t) + h*f(t, x(t)))),
    a second-order method.
    """

    order = 2

    def step(self, state: IVP, dt: float) -> bool:
        start = state.start
        k1 = state.evaluate(start)
        if k1 is None:
            return False
        k2 = state.evaluate(Point(start.time + dt, start.value + dt * k1))
        if k2 is None:
            return False
        start.value = start.value + dt / 2 * (k1 + k2)
        return True


class AdaptiveEuler(AdaptiveStepMethod):
    """Explicit Euler scheme with step size control by Richardson extrapolation."""

    def __init__(
        self, error_tolerance: float = 1e-3, dt: float = 1e-2, dt_min: float = 1e-8, dt_max: float = 1.0
    ) -> None:
        super().__init__(Euler(dt), error_tolerance, dt, dt_min, dt_max)


#: The partial derivative of the derivative function with respect to the
#: (scalar) dependent variable, as a function of (t, x).
ValueDerivative = Callable[[float, float], float]


class ImplicitMethod(Method):
    """
    Base class for implicit single-step schemes on scalar problems.

    A step of size h solves w = x + (1-theta)*h*f(t, x) + theta*h*f(t+h, w)
    for the new value w with a root solver. The steppers are
    ConfigurableSteppers, they are exhausted when the root solver fails.
    """

    #: weight of the derivative at the new point
    theta = 1.0

    def __init__(
        self,
        dt: float = 1e-2,
        tolerance: float = 1e-10,
        dfdx: ValueDerivative | None = None,
        solver: AbstractRootSolver | None = None,
    ) -> None:
        """
        Initialize the method.

        Parameters
        ----------
        dt
            The (positive) time step size.
        tolerance
            The convergence tolerance of the root solver.
        dfdx
            The partial derivative of f with respect to x. If not given, it is
            approximated by finite differences.
        solver
            The root solver, a NewtonSolver by default. A SecantSolver starts
            from the current value and the explicit Euler prediction.
        """
        super().__init__()
        check_step_sizes(dt)
        #: the time step size
        self.dt = dt
        #: the partial derivative of f with respect to x
        self.dfdx = dfdx
        #: the root solver, each stepper works with a copy
        self.solver = solver if solver is not None else NewtonSolver()
        self.solver.convergence_tolerance = tolerance

    def stepper(self, ivp: IVP, direction: int) -> ImplicitStepper:
        if ivp.dimension != 1:
            raise ValueError(f"{type(self).__name__} only solves scalar problems, got dimension {ivp.dimension}")
        return ImplicitStepper(ivp, direction * self.dt, self.theta, copy.copy(self.solver), self.dfdx)


class ImplicitStepper(ConfigurableStepper):
    """Stepper of an ImplicitMethod."""

    def __init__(
        self,
        ivp: IVP,
        dt: float,
        theta: float,
        solver: AbstractRootSolver,
        dfdx: ValueDerivative | None,
    ) -> None:
        super().__init__(dt)
        self.state = ivp
        self.theta = theta
        self.solver = solver
        self.dfdx = dfdx

    def _advance_by(self, dt: float) -> Point | None:
        start = self.state.start
        t, x = start.time, float(start.value[0])
        t_new = t + dt
        theta = self.theta
        explicit = 0.0
        if theta < 1 or isinstance(self.solver, SecantSolver):
            deriv = self.state.evaluate(start)
            if deriv is None:
                return None
            explicit = float(deriv[0])
        # constant part of the equation
        c = x + (1 - theta) * dt * explicit

        def residual(w: float) -> float | None:
            deriv = self.state.evaluate(Point(t_new, [w]))
            if deriv is None:
                return None
            return w - c - theta * dt * float(deriv[0])

        try:
            if isinstance(self.solver, SecantSolver):
                guess = x + dt * explicit
                w = self.solver.solve(residual, x, guess if guess != x else x + dt)
            elif isinstance(self.solver, NewtonSolver):
                w = self.solver.solve(residual, x, self._residual_derivative(residual, t_new, dt))
            else:
                raise TypeError(f"Unsupported root solver: {type(self.solver).__name__}")
        except RootNotFoundError as err:
            self.log(err)
            return None
        start.value = np.array([w])
        start.time = t_new
        return start

    def _residual_derivative(self, residual: PartialFunction, t_new: float, dt: float) -> PartialFunction:
        dfdx = self.dfdx
        if dfdx is None:
            return lambda w: finite_difference_derivative(residual, w)
        return lambda w: 1 - self.theta * dt * dfdx(t_new, w)


class ImplicitEuler(ImplicitMethod):
    """
    Implicit Euler (Backward Euler) scheme for scalar problems.

    Solves w = x(t) + h*f(t+h, w) for x(t+h) = w, a first-order method with
    better stability for stiff problems than the explicit Euler scheme.
    """

    theta = 1.0


class Trapezium(ImplicitMethod):
    """
    Trapezium (Crank-Nicolson) scheme for scalar problems.

    Solves w = x(t) + h/2*(f(t, x(t)) + f(t+h, w)) for x(t+h) = w, a
    second-order implicit method.
    """

    theta = 0.5
