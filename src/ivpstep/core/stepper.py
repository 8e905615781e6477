"""
Stepper and Method base classes.

A Stepper is an iterator over the points of the solution of an IVP, moving
in one direction of time. A Method is a factory of Steppers, producing one
that moves forward and one that moves backward from the initial point.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator

import numpy as np

from .problem import IVP, Point
from .profiling import profile
from .types import Array


class Stepper:
    """
    Abstract base class for all steppers.

    A stepper owns a private copy of the state of the problem it is solving
    and emits the points of the solution one by one, with strictly increasing
    (forward) or strictly decreasing (backward) times. When no more points are
    available, because the solution left the domain of the derivative, the
    tolerance could not be met with the minimum step or a hard boundary was
    reached, the stepper is exhausted, permanently.
    """

    def __init__(self) -> None:
        """Initialize the Stepper."""
        #: how verbose should the stepping be? 0 = quiet, larger numbers = print more details
        self.verbosity = 0
        # set once no more points can be emitted
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        """Whether the stepper has run out of points."""
        return self._exhausted

    @profile
    def next_point(self) -> Point | None:
        """
        Go to the next point of the solution.

        Returns
        -------
        Point | None
            The next point or None if the stepper is exhausted. The point is
            owned by the stepper and may be overwritten by the next call, take
            a copy to keep it.
        """
        if self._exhausted:
            return None
        return self._emit(self._advance())

    def _advance(self) -> Point | None:
        """Compute the next point, return None if there is none."""
        raise NotImplementedError("'Stepper' is an abstract base class - do not use for actual stepping!")

    def _emit(self, point: Point | None) -> Point | None:
        if point is None:
            self._exhausted = True
            if self.verbosity > 0:
                print(f"{type(self).__name__} exhausted")
        elif self.verbosity > 1:
            print(f"{type(self).__name__} reached t = {point.time}")
        return point

    def log(self, *args, **kwargs) -> None:
        """Print a message about a rejected or retried step, if verbosity is high enough."""
        if self.verbosity > 1:
            print(f"{type(self).__name__}:", *args, **kwargs)

    def __iter__(self) -> Iterator[Point]:
        return self

    def __next__(self) -> Point:
        point = self.next_point()
        if point is None:
            raise StopIteration
        return point.copy()


class ConfigurableStepper(Stepper):
    """
    A stepper that allows specifying the time delta of the next step.

    The delta is the difference between the time of the next point and the
    time of the latest one, so it is negative for backward steppers.
    """

    def __init__(self, dt: float) -> None:
        """
        Initialize the ConfigurableStepper.

        Parameters
        ----------
        dt
            The signed time step used by next_point().
        """
        super().__init__()
        #: the signed time step size
        self.dt = dt

    @profile
    def next_step(self, dt: float) -> Point | None:
        """
        Like next_point, but step to the time of the latest point plus dt.

        Parameters
        ----------
        dt
            The signed time delta of the step.

        Returns
        -------
        Point | None
            The next point or None if the stepper is exhausted.
        """
        if self._exhausted:
            return None
        return self._emit(self._advance_by(dt))

    def _advance(self) -> Point | None:
        return self._advance_by(self.dt)

    def _advance_by(self, dt: float) -> Point | None:
        """Compute the point dt after the latest one, return None if there is none."""
        raise NotImplementedError("'ConfigurableStepper' is an abstract base class - do not use for actual stepping!")


class Method:
    """
    Abstract base class for all solving methods.

    A method is a stateless factory of steppers: each call to forward() or
    backward() creates an independent stepper from a copy of the problem's
    initial state.
    """

    def __init__(self) -> None:
        """Initialize the Method."""
        #: verbosity passed to the steppers created by this method
        self.verbosity = 0

    def forward(self, ivp: IVP) -> Stepper:
        """Create a stepper moving to increasing times from the initial point of the problem."""
        stepper = self.stepper(ivp.copy(), 1)
        stepper.verbosity = self.verbosity
        return stepper

    def backward(self, ivp: IVP) -> Stepper:
        """Create a stepper moving to decreasing times from the initial point of the problem."""
        stepper = self.stepper(ivp.copy(), -1)
        stepper.verbosity = self.verbosity
        return stepper

    def stepper(self, ivp: IVP, direction: int) -> Stepper:
        """
        Create a stepper for the given problem.

        Parameters
        ----------
        ivp
            A private copy of the problem, owned by the new stepper.
        direction
            1 for stepping forward, -1 for stepping backward.

        Raises
        ------
        NotImplementedError
            This is an abstract base class.
        """
        raise NotImplementedError("'Method' is an abstract base class - do not use for actual solving!")


def check_step_sizes(dt: float, dt_min: float | None = None, dt_max: float | None = None) -> None:
    """
    Validate the step sizes given to a method.

    Raises
    ------
    ValueError
        If a step size is not positive or dt_min exceeds dt_max.
    """
    if dt <= 0:
        raise ValueError(f"The time step must be positive, got {dt}")
    if dt_min is not None and dt_min <= 0:
        raise ValueError(f"The minimum time step must be positive, got {dt_min}")
    if dt_min is not None and dt_max is not None and dt_min > dt_max:
        raise ValueError(f"The minimum time step {dt_min} exceeds the maximum {dt_max}")


#: The update of a fixed-step method. Stores in state.start.value the value at
#: time state.start.time + dt, leaving the time untouched. Returns False on
#: failure (e.g. when leaving the domain), leaving the state unspecified.
StepFunction = Callable[[IVP, float], bool]


class FixedStepMethod(Method):
    """
    Abstract base class for methods where all steps have the same size.

    Subclasses implement the update of a single step in step(). The
    steppers created are ConfigurableSteppers.
    """

    #: the convergence order of the method, used by adaptive wrappers
    order = 1

    def __init__(self, dt: float = 1e-2) -> None:
        """
        Initialize the method.

        Parameters
        ----------
        dt
            The (positive) time step size.
        """
        super().__init__()
        check_step_sizes(dt)
        #: the time step size
        self.dt = dt

    def step(self, state: IVP, dt: float) -> bool:
        """
        Advance the value of state.start by dt, leaving its time untouched.

        Parameters
        ----------
        state
            The problem whose initial point is advanced in place.
        dt
            The signed time step.

        Returns
        -------
        bool
            False if the step failed, e.g. by leaving the domain. The state
            is unspecified afterwards.

        Raises
        ------
        NotImplementedError
            This is an abstract base class.
        """
        raise NotImplementedError("'FixedStepMethod' is an abstract base class - do not use for actual stepping!")

    def stepper(self, ivp: IVP, direction: int) -> FixedStepper:
        return FixedStepper(ivp, direction * self.dt, self.step)


class FixedStepper(ConfigurableStepper):
    """Steps a problem with a fixed-step update function."""

    def __init__(self, ivp: IVP, dt: float, step: StepFunction) -> None:
        """
        Initialize the FixedStepper.

        Parameters
        ----------
        ivp
            The problem, owned by the stepper.
        dt
            The signed default time step.
        step
            The update function of the method.
        """
        super().__init__(dt)
        self.state = ivp
        self._step = step

    def _advance_by(self, dt: float) -> Point | None:
        if not self._step(self.state, dt):
            return None
        self.state.start.time += dt
        return self.state.start


def adaptive_update_step(dt: float, tolerance: float, error: float, dt_max: float, order: int) -> float:
    """
    Compute the next step size of an adaptive method.

    With the adjustment a = tolerance*|dt|/(2*error), the step is scaled by
    q = a (order 1) or q = a^(1/order), saturated into [0.1, 4]. The result
    keeps the sign of dt and its absolute value is capped at dt_max.

    Parameters
    ----------
    dt
        The (signed) step size that was tried.
    tolerance
        The error tolerance per unit of time.
    error
        The estimated error of the step tried.
    dt_max
        The maximum absolute step size.
    order
        The order of the method.

    Returns
    -------
    float
        The new (signed) step size.
    """
    if error == 0:
        q = 4.0
    else:
        adjust = tolerance * abs(dt) / (2 * error)
        q = adjust if order == 1 else adjust ** (1 / order)
    new_dt = float(np.clip(q, 0.1, 4.0)) * dt
    if abs(new_dt) > dt_max:
        new_dt = float(np.copysign(dt_max, new_dt))
    return new_dt


class AdaptiveStepMethod(Method):
    """
    Adaptive step size control for any fixed-step method via Richardson extrapolation.

    For a step h from (t, x), F = y(h, t, x) is one full step of the inner
    method and H = y(h/2, t+h/2, y(h/2, t, x)) two half steps. The error is
    estimated as e = |H - F| * (1 + 1/(2^k - 1)), with k the order of the
    inner method. If e <= tolerance*|h| the extrapolated value
    (1 + 1/(2^k-1))*H - F/(2^k-1) is accepted, otherwise the step is retried
    with a step size from adaptive_update_step(). If the inner method fails,
    the step size is halved. The steppers end once the step size would have to
    drop below dt_min; it saturates at dt_max.

    The steppers are not ConfigurableSteppers.
    """

    def __init__(
        self,
        method: FixedStepMethod,
        error_tolerance: float = 1e-3,
        dt: float = 1e-2,
        dt_min: float = 1e-8,
        dt_max: float = 1.0,
        order: int | None = None,
    ) -> None:
        """
        Initialize the method.

        Parameters
        ----------
        method
            The fixed-step method to adapt.
        error_tolerance
            The error allowed per unit of time in a single step.
        dt
            The initial step size.
        dt_min
            The minimum step size.
        dt_max
            The maximum step size.
        order
            The order of the inner method, defaults to method.order.
        """
        super().__init__()
        check_step_sizes(dt, dt_min, dt_max)
        if error_tolerance <= 0:
            raise ValueError(f"The error tolerance must be positive, got {error_tolerance}")
        #: the wrapped fixed-step method
        self.method = method
        #: local error tolerance per unit of time
        self.error_tolerance = error_tolerance
        #: initial time step size
        self.dt = dt
        #: minimum time step size
        self.dt_min = dt_min
        #: maximum time step size
        self.dt_max = dt_max
        #: convergence order of the wrapped method
        self.order = method.order if order is None else order
        if self.order < 1:
            raise ValueError(f"The order must be positive, got {self.order}")

    def stepper(self, ivp: IVP, direction: int) -> AdaptiveStepper:
        return AdaptiveStepper(
            ivp, direction * self.dt, self.method.step, self.order, self.error_tolerance, self.dt_min, self.dt_max
        )


class AdaptiveStepper(Stepper):
    """Stepper of an AdaptiveStepMethod."""

    def __init__(
        self,
        ivp: IVP,
        dt: float,
        step: StepFunction,
        order: int,
        error_tolerance: float,
        dt_min: float,
        dt_max: float,
    ) -> None:
        super().__init__()
        self.state = ivp
        #: the signed step size tried next
        self.dt = dt
        self.order = order
        self.error_tolerance = error_tolerance
        self.dt_min = dt_min
        self.dt_max = dt_max
        self._step = step
        # extrapolation weights: x = (1 + w)*H - w*F with w = 1/(2^k - 1)
        self._weight = 1 / (2**order - 1)

    def _richardson_pair(self) -> tuple[Array, Array] | None:
        """Compute one full step and two half steps, restoring the state afterwards."""
        start = self.state.start
        t, x = start.time, start.value
        h = self.dt
        try:
            start.value = x.copy()
            if not self._step(self.state, h):
                return None
            full = start.value
            start.value = x.copy()
            if not self._step(self.state, h / 2):
                return None
            start.time = t + h / 2
            if not self._step(self.state, h / 2):
                return None
            return full, start.value
        finally:
            start.time = t
            start.value = x

    def _advance(self) -> Point | None:
        while abs(self.dt) >= self.dt_min:
            pair = self._richardson_pair()
            if pair is None:
                self.dt *= 0.5
                self.log(f"step failed at t = {self.state.start.time}, halving to dt = {self.dt}")
                continue
            full, half = pair
            error = float(np.linalg.norm(half - full)) * (1 + self._weight)
            if error > self.error_tolerance * abs(self.dt):
                self.dt = adaptive_update_step(self.dt, self.error_tolerance, error, self.dt_max, self.order)
                self.log(f"step rejected with error {error:.2e}, retrying with dt = {self.dt}")
                continue
            start = self.state.start
            start.value = (1 + self._weight) * half - self._weight * full
            start.time += self.dt
            self.dt = adaptive_update_step(self.dt, self.error_tolerance, error, self.dt_max, self.order)
            return start
        return None
