from __future__ import annotations

import numpy as np

from ivpstep.core.problem import IVP, Point
from ivpstep.core.stepper import AdaptiveStepMethod, FixedStepMethod, Method, Stepper, adaptive_update_step, check_step_sizes
from ivpstep.core.types import Array


def rk4_step(state: IVP, dt: float) -> Array | None:
    """
    Perform a classical Runge-Kutta-4 step on the value of state.start.

    The time of state.start is left untouched.

    Returns
    -------
    Array | None
        The derivative at the point the step started from, for reuse by
        multistep methods, or None if the step left the domain.
    """
    start = state.start
    t, x = start.time, start.value
    k1 = state.evaluate(start)
    if k1 is None:
        return None
    k2 = state.evaluate(Point(t + dt / 2, x + dt / 2 * k1))
    if k2 is None:
        return None
    k3 = state.evaluate(Point(t + dt / 2, x + dt / 2 * k2))
    if k3 is None:
        return None
    k4 = state.evaluate(Point(t + dt, x + dt * k3))
    if k4 is None:
        return None
    start.value = x + dt / 6. * (k1 + 2 * k2 + 2 * k3 + k4)
    return k1


class RungeKutta4(FixedStepMethod):
    """
    Classical Runge-Kutta-4 scheme
    """

    order = 4

    def step(self, state: IVP, dt: float) -> bool:
        return rk4_step(state, dt) is not None


class AdaptiveRungeKutta4(AdaptiveStepMethod):
    """Classical Runge-Kutta-4 scheme with step size control by Richardson extrapolation."""

    def __init__(
        self, error_tolerance: float = 1e-3, dt: float = 1e-2, dt_min: float = 1e-8, dt_max: float = 1.0
    ) -> None:
        super().__init__(RungeKutta4(dt), error_tolerance, dt, dt_min, dt_max)


class RungeKuttaFehlberg45(Method):
    """
    Runge-Kutta-Fehlberg(45) scheme with adaptive step size.
    Local truncation error is estimated by comparison of
    RK4 and RK5 schemes and determines the optimal step size.
    The RK4 value is kept.
    """

    def __init__(
        self, error_tolerance: float = 1e-3, dt: float = 1e-2, dt_min: float = 1e-8, dt_max: float = 1.0
    ) -> None:
        super().__init__()
        check_step_sizes(dt, dt_min, dt_max)
        if error_tolerance <= 0:
            raise ValueError(f"The error tolerance must be positive, got {error_tolerance}")
        #: local truncation error tolerance per unit of time
        self.error_tolerance = error_tolerance
        #: initial time step size
        self.dt = dt
        #: minimum time step size
        self.dt_min = dt_min
        #: maximum time step size
        self.dt_max = dt_max

    def stepper(self, ivp: IVP, direction: int) -> FehlbergStepper:
        return FehlbergStepper(ivp, direction * self.dt, self.error_tolerance, self.dt_min, self.dt_max)


class FehlbergStepper(Stepper):
    """Stepper of the RungeKuttaFehlberg45 method."""

    # Coefficients related to the independent variable of the evaluations
    _a2 = 2.500000000000000e-01  # 1/4
    _a3 = 3.750000000000000e-01  # 3/8
    _a4 = 9.230769230769231e-01  # 12/13
    _a5 = 1.000000000000000e+00  # 1
    _a6 = 5.000000000000000e-01  # 1/2

    # Coefficients related to the dependent variable of the evaluations
    _b21 = 2.500000000000000e-01  # 1/4
    _b31 = 9.375000000000000e-02  # 3/32
    _b32 = 2.812500000000000e-01  # 9/32
    _b41 = 8.793809740555303e-01  # 1932/2197
    _b42 = -3.277196176604461e+00  # -7200/2197
    _b43 = 3.320892125625853e+00  # 7296/2197
    _b51 = 2.032407407407407e+00  # 439/216
    _b52 = -8.000000000000000e+00  # -8
    _b53 = 7.173489278752436e+00  # 3680/513
    _b54 = -2.058966861598441e-01  # -845/4104
    _b61 = -2.962962962962963e-01  # -8/27
    _b62 = 2.000000000000000e+00  # 2
    _b63 = -1.381676413255361e+00  # -3544/2565
    _b64 = 4.529727095516569e-01  # 1859/4104
    _b65 = -2.750000000000000e-01  # -11/40

    # Coefficients related to the truncation error
    # Obtained through the difference of the 5th and 4th order RK methods:
    #     R = (1/h)|y5_i+1 - y4_i+1|
    _r1 = 2.777777777777778e-03  # 1/360
    _r3 = -2.994152046783626e-02  # -128/4275
    _r4 = -2.919989367357789e-02  # -2197/75240
    _r5 = 2.000000000000000e-02  # 1/50
    _r6 = 3.636363636363636e-02  # 2/55

    # Coefficients related to RK 4th order method
    _c1 = 1.157407407407407e-01  # 25/216
    _c3 = 5.489278752436647e-01  # 1408/2565
    _c4 = 5.353313840155945e-01  # 2197/4104
    _c5 = -2.000000000000000e-01  # -1/5

    def __init__(self, ivp: IVP, dt: float, error_tolerance: float, dt_min: float, dt_max: float) -> None:
        super().__init__()
        self.state = ivp
        #: the signed step size tried next
        self.dt = dt
        self.error_tolerance = error_tolerance
        self.dt_min = dt_min
        self.dt_max = dt_max

    def _stages(self, h: float) -> tuple[Array, Array] | None:
        """Compute the RK4 increment and the truncation error vector of a step h, None on domain failure."""
        start = self.state.start
        t, x = start.time, start.value

        def k(a: float, dx: Array | float) -> Array | None:
            deriv = self.state.evaluate(Point(t + a * h, x + dx))
            return None if deriv is None else h * deriv

        k1 = k(0, 0)
        if k1 is None:
            return None
        k2 = k(self._a2, self._b21 * k1)
        if k2 is None:
            return None
        k3 = k(self._a3, self._b31 * k1 + self._b32 * k2)
        if k3 is None:
            return None
        k4 = k(self._a4, self._b41 * k1 + self._b42 * k2 + self._b43 * k3)
        if k4 is None:
            return None
        k5 = k(self._a5, self._b51 * k1 + self._b52 * k2 + self._b53 * k3 + self._b54 * k4)
        if k5 is None:
            return None
        k6 = k(self._a6, self._b61 * k1 + self._b62 * k2 + self._b63 * k3 + self._b64 * k4 + self._b65 * k5)
        if k6 is None:
            return None
        increment = self._c1 * k1 + self._c3 * k3 + self._c4 * k4 + self._c5 * k5
        error = self._r1 * k1 + self._r3 * k3 + self._r4 * k4 + self._r5 * k5 + self._r6 * k6
        return increment, error

    def _advance(self) -> Point | None:
        while abs(self.dt) >= self.dt_min:
            stages = self._stages(self.dt)
            if stages is None:
                self.dt *= 0.5
                self.log(f"stage left the domain at t = {self.state.start.time}, halving to dt = {self.dt}")
                continue
            increment, error_vector = stages
            # Calulate local truncation error
            error = float(np.linalg.norm(error_vector))
            dt_old = self.dt
            self.dt = adaptive_update_step(dt_old, self.error_tolerance, error, self.dt_max, 4)
            if error > self.error_tolerance * abs(dt_old):
                self.log(f"step rejected with error {error:.2e}, retrying with dt = {self.dt}")
                continue
            # step accepted: the RK4 value is stored
            start = self.state.start
            start.value = start.value + increment
            start.time += dt_old
            return start
        return None
