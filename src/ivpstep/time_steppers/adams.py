"""
Adams multistep schemes.

The multistep schemes need the values and derivatives at the last four
points. They are kept in a StepHistory, which is bootstrapped with
Runge-Kutta-4 steps.
"""

from __future__ import annotations

from collections import deque
from typing import NamedTuple

import numpy as np

from ivpstep.core.problem import IVP, Point
from ivpstep.core.stepper import ConfigurableStepper, Method, Stepper, adaptive_update_step, check_step_sizes
from ivpstep.core.types import Array

from .runge_kutta import rk4_step

#: coefficients (a, b) of the fourth-order Adams-Bashforth formula
ADAMS_BASHFORTH = (np.array([1.]), np.array([55., -59., 37., -9.]) / 24)
#: coefficients (a, b) of the fourth-order Adams-Moulton formula, the first entry is the predicted point
ADAMS_MOULTON = (np.array([0., 1.]), np.array([9., 19., -5., 1.]) / 24)


class HistoryEntry(NamedTuple):
    """The value at a past point and the derivative there, None while not evaluated."""
    value: Array
    derivative: Array | None


class StepHistory:
    """
    Fixed-capacity window of the values and derivatives at the latest points.

    Entries are ordered from the newest to the oldest. When the window is
    full, pushing a new entry evicts the oldest one.
    """

    def __init__(self, capacity: int = 4) -> None:
        if capacity < 1:
            raise ValueError(f"The capacity must be positive, got {capacity}")
        self._entries: deque[HistoryEntry] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        """The maximum number of entries."""
        return self._entries.maxlen  # type: ignore[return-value]

    @property
    def full(self) -> bool:
        """Whether the window holds as many entries as its capacity."""
        return len(self._entries) == self.capacity

    def push(self, value: Array, derivative: Array | None = None) -> None:
        """Add the entry of a new point, evicting the oldest entry if the window is full."""
        self._entries.appendleft(HistoryEntry(value, derivative))

    def set_derivative(self, index: int, derivative: Array) -> None:
        """Set the derivative of the entry at the given index (0 = newest)."""
        self._entries[index] = self._entries[index]._replace(derivative=derivative)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> HistoryEntry:
        return self._entries[index]

    def combine(self, a: Array, b: Array, dt: float, leading: HistoryEntry | None = None) -> Array:
        """
        Compute the linear multistep combination sum(a_i*x_i) + dt*sum(b_i*f_i).

        Parameters
        ----------
        a
            The coefficients of the values, newest first.
        b
            The coefficients of the derivatives, newest first.
        dt
            The time step.
        leading
            An entry that is not part of the history yet (e.g. a predicted
            point), taking index 0 in front of the stored entries.

        Returns
        -------
        Array
            The combination, a new array.
        """
        entries = list(self._entries) if leading is None else [leading, *self._entries]
        if len(entries) < max(len(a), len(b)):
            raise ValueError(f"The combination needs {max(len(a), len(b))} entries, the history has {len(entries)}")
        result = np.zeros_like(entries[0].value)
        for coeff, entry in zip(a, entries):
            result += coeff * entry.value
        for coeff, entry in zip(b, entries):
            if entry.derivative is None:
                raise ValueError("The derivative of a history entry has not been evaluated")
            result += dt * coeff * entry.derivative
        return result


def predict_correct(state: IVP, history: StepHistory, time: float, dt: float) -> tuple[Array, Array] | None:
    """
    Perform an Adams-Bashforth predictor step followed by an Adams-Moulton corrector step.

    Parameters
    ----------
    state
        The problem, used to evaluate derivatives only.
    history
        A full history, the newest entry at the given time. A missing
        derivative of the newest entry is evaluated and stored.
    time
        The time of the newest entry.
    dt
        The time step.

    Returns
    -------
    tuple[Array, Array] | None
        The predicted and the corrected value at time + dt, or None if a
        derivative could not be evaluated.
    """
    newest = history[0]
    if newest.derivative is None:
        deriv = state.evaluate(Point(time, newest.value))
        if deriv is None:
            return None
        history.set_derivative(0, deriv)
    predicted = history.combine(*ADAMS_BASHFORTH, dt)
    deriv = state.evaluate(Point(time + dt, predicted))
    if deriv is None:
        return None
    corrected = history.combine(*ADAMS_MOULTON, dt, leading=HistoryEntry(predicted, deriv))
    return predicted, corrected


class AdamsBashforth(Method):
    """
    Explicit fourth-order Adams-Bashforth scheme

    x(t+h) = x(t) + h/24 * (55*f(t) - 59*f(t-h) + 37*f(t-2h) - 9*f(t-3h))

    The first three steps are taken with the classical Runge-Kutta-4 scheme.
    """

    order = 4
    #: whether the prediction is improved with an Adams-Moulton corrector
    corrector = False

    def __init__(self, dt: float = 1e-2) -> None:
        super().__init__()
        check_step_sizes(dt)
        #: the time step size
        self.dt = dt

    def stepper(self, ivp: IVP, direction: int) -> AdamsStepper:
        return AdamsStepper(ivp, direction * self.dt, self.corrector)


class AdamsBashforthMoulton(AdamsBashforth):
    """
    Fourth-order Adams-Bashforth-Moulton predictor-corrector scheme.

    The Adams-Bashforth prediction w is corrected with the Adams-Moulton formula
    x(t+h) = x(t) + h/24 * (9*f(t+h, w) + 19*f(t) - 5*f(t-h) + f(t-2h)).
    """

    corrector = True


class AdamsStepper(ConfigurableStepper):
    """
    Stepper of the AdamsBashforth and AdamsBashforthMoulton schemes.

    The history holds points spaced by the latest step. A step with another
    delta restarts the history from the latest point, so the next three steps
    are Runge-Kutta-4 steps again.
    """

    def __init__(self, ivp: IVP, dt: float, corrector: bool) -> None:
        super().__init__(dt)
        self.state = ivp
        self.corrector = corrector
        self.history = StepHistory(4)
        self.history.push(ivp.start.value.copy())
        # time delta between the entries of the history
        self._spacing = dt

    def _advance_by(self, dt: float) -> Point | None:
        start = self.state.start
        if dt != self._spacing:
            self.history.clear()
            self.history.push(start.value.copy())
            self._spacing = dt
        if not self.history.full:
            # bootstrap the history
            deriv = rk4_step(self.state, dt)
            if deriv is None:
                return None
            self.history.set_derivative(0, deriv)
            start.time += dt
            self.history.push(start.value.copy())
            return start
        if self.corrector:
            result = predict_correct(self.state, self.history, start.time, dt)
            if result is None:
                return None
            value = result[1]
        else:
            if self.history[0].derivative is None:
                deriv = self.state.evaluate(start)
                if deriv is None:
                    return None
                self.history.set_derivative(0, deriv)
            value = self.history.combine(*ADAMS_BASHFORTH, dt)
        start.time += dt
        start.value = value
        self.history.push(value.copy())
        return start


class AdaptiveAdamsBashforthMoulton(Method):
    """
    Adams-Bashforth-Moulton predictor-corrector scheme with adaptive step size.

    The local error is estimated from the difference of the predicted and the
    corrected values as |corrected - predicted| * 19/270. A rejected step
    shrinks the step size and rebuilds the history from the latest accepted
    point: three Runge-Kutta-4 steps and one verified predictor-corrector
    step, whose points are all emitted. Steps with an error well below the
    tolerance grow the step size, which also rebuilds the history.
    """

    def __init__(
        self, error_tolerance: float = 1e-3, dt: float = 1e-2, dt_min: float = 1e-8, dt_max: float = 1.0
    ) -> None:
        super().__init__()
        check_step_sizes(dt, dt_min, dt_max)
        if error_tolerance <= 0:
            raise ValueError(f"The error tolerance must be positive, got {error_tolerance}")
        #: local error tolerance per unit of time
        self.error_tolerance = error_tolerance
        #: initial time step size
        self.dt = dt
        #: minimum time step size
        self.dt_min = dt_min
        #: maximum time step size
        self.dt_max = dt_max

    def stepper(self, ivp: IVP, direction: int) -> AdaptiveAdamsStepper:
        return AdaptiveAdamsStepper(ivp, direction * self.dt, self.error_tolerance, self.dt_min, self.dt_max)


class AdaptiveAdamsStepper(Stepper):
    """Stepper of the AdaptiveAdamsBashforthMoulton scheme."""

    def __init__(self, ivp: IVP, dt: float, error_tolerance: float, dt_min: float, dt_max: float) -> None:
        super().__init__()
        self.state = ivp
        #: the signed step size
        self.dt = dt
        self.error_tolerance = error_tolerance
        self.dt_min = dt_min
        self.dt_max = dt_max
        #: values and derivatives at the latest accepted points
        self.history = StepHistory(4)
        self.history.push(ivp.start.value.copy())
        #: time of the newest entry of the history
        self.time = ivp.start.time
        # accepted points not emitted yet
        self._pending: deque[Point] = deque()
        # the history must be rebuilt with the current step size before the next step
        self._rebuild = True

    @staticmethod
    def _error(predicted: Array, corrected: Array) -> float:
        return float(np.linalg.norm(corrected - predicted)) * 19 / 270

    def _build_window(self) -> tuple[StepHistory, list[Point], float] | None:
        """Compute a new history from the newest accepted point with the current step size."""
        dt = self.dt
        scratch = IVP(self.state.derivative, Point(self.time, self.history[0].value))
        history = StepHistory(4)
        history.push(scratch.start.value.copy())
        points = []
        for _ in range(3):
            deriv = rk4_step(scratch, dt)
            if deriv is None:
                return None
            history.set_derivative(0, deriv)
            scratch.start.time += dt
            history.push(scratch.start.value.copy())
            points.append(scratch.start.copy())
        result = predict_correct(scratch, history, scratch.start.time, dt)
        if result is None:
            return None
        predicted, corrected = result
        history.push(corrected)
        points.append(Point(scratch.start.time + dt, corrected))
        return history, points, self._error(predicted, corrected)

    def _rebuild_history(self) -> bool:
        """Rebuild the history and queue its points, shrinking the step as needed. False if below dt_min."""
        while abs(self.dt) >= self.dt_min:
            window = self._build_window()
            if window is None:
                self.dt *= 0.5
                self.log(f"rebuild left the domain at t = {self.time}, halving to dt = {self.dt}")
                continue
            history, points, error = window
            if error > self.error_tolerance * abs(self.dt):
                self.dt = adaptive_update_step(self.dt, self.error_tolerance, error, self.dt_max, 4)
                self.log(f"rebuild rejected with error {error:.2e}, retrying with dt = {self.dt}")
                continue
            self.history = history
            self.time = points[-1].time
            self._pending.extend(points)
            self._rebuild = False
            return True
        return False

    def _try_step(self) -> None:
        """Perform a predictor-corrector step, queueing the point if accepted."""
        result = predict_correct(self.state, self.history, self.time, self.dt)
        if result is None:
            self.dt *= 0.5
            self._rebuild = True
            self.log(f"step left the domain at t = {self.time}, halving to dt = {self.dt}")
            return
        predicted, corrected = result
        error = self._error(predicted, corrected)
        tolerance = self.error_tolerance * abs(self.dt)
        if error > tolerance:
            self.dt = adaptive_update_step(self.dt, self.error_tolerance, error, self.dt_max, 4)
            self._rebuild = True
            self.log(f"step rejected with error {error:.2e}, retrying with dt = {self.dt}")
            return
        self.time += self.dt
        self.history.push(corrected)
        self._pending.append(Point(self.time, corrected))
        if 10 * error < tolerance:
            dt = adaptive_update_step(self.dt, self.error_tolerance, error, self.dt_max, 4)
            # no rebuild if the step size is saturated
            if dt != self.dt:
                self.dt = dt
                self._rebuild = True

    def _advance(self) -> Point | None:
        while not self._pending:
            if abs(self.dt) < self.dt_min:
                return None
            if self._rebuild:
                if not self._rebuild_history():
                    return None
                continue
            self._try_step()
        point = self._pending.popleft()
        start = self.state.start
        start.time = point.time
        start.value = point.value.copy()
        return start
