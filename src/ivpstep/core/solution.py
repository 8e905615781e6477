"""Dense solutions: eagerly computed points of a solution within an interval."""

from __future__ import annotations

import numpy as np

from .interpolation import Interpolator
from .problem import IVP, Point
from .profiling import profile
from .stepper import Method
from .types import Array


class DenseSolution:
    """
    Precomputed points of a solution, with interpolation in between.

    Usually created by dense_solve(). Supports no events.
    """

    def __init__(self, points: list[Point], interpolator: Interpolator) -> None:
        """
        Initialize the DenseSolution.

        Parameters
        ----------
        points
            The explicitly computed points, non-empty and by strictly
            increasing time. They must not be modified afterwards.
        interpolator
            Used to compute the values between the points.
        """
        if not points:
            raise ValueError("A dense solution needs at least one point")
        #: the explicitly computed points, by increasing time
        self.points = points
        #: the interpolator for values between the points
        self.interpolator = interpolator
        self._times = np.array([p.time for p in points])

    @property
    def start(self) -> float:
        """The earliest time of the stored points."""
        return self.points[0].time

    @property
    def end(self) -> float:
        """The latest time of the stored points."""
        return self.points[-1].time

    @profile
    def get(self, t: float) -> Array | None:
        """
        Get the value of the solution at time t.

        Parameters
        ----------
        t
            The time, between start and end.

        Returns
        -------
        Array | None
            A new array with the (interpolated) value, or None if t is outside
            of [start, end]. At the times of stored points, their exact value
            is returned.
        """
        if t < self.start or t > self.end:
            return None
        # binary search for the first point not before t
        i = int(np.searchsorted(self._times, t, side="left"))
        if self._times[i] == t:
            return self.points[i].value.copy()
        return self.interpolator.interpolate(self.points[i - 1], self.points[i], t)

    def point_coords(self) -> Array:
        """
        Arrange the stored points for plotting.

        Returns
        -------
        Array
            An array of shape (n+1, N) for N points of dimension n. The first
            row holds the times, row j+1 the j-th component of the values.
        """
        return np.vstack((self._times, np.array([p.value for p in self.points]).T))


@profile
def dense_solve(method: Method, ivp: IVP, start: float, end: float, interpolator: Interpolator) -> DenseSolution | None:
    """
    Solve an initial value problem in the interval [start, end].

    The points are computed eagerly with the forward and backward steppers of
    the method, stepping until one point beyond each end of the interval.
    The initial time does not need to be inside the interval.

    Parameters
    ----------
    method
        The solving method.
    ivp
        The problem to solve.
    start
        The start of the interval.
    end
        The end of the interval.
    interpolator
        Used to compute the values between the points.

    Returns
    -------
    DenseSolution | None
        The solution, holding at most one point beyond each end of the
        interval. If a stepper was exhausted early, it covers less than the
        requested interval (compare its start and end). None if the steppers
        could not reach the interval at all.
    """
    if start > end:
        raise ValueError(f"The interval start {start} is after its end {end}")
    t0 = ivp.start.time
    backward: list[Point] = []
    if start < t0:
        for point in method.backward(ivp):
            backward.append(point)
            if point.time <= start:
                break
    forward: list[Point] = []
    if end > t0:
        for point in method.forward(ivp):
            forward.append(point)
            if point.time >= end:
                break
    points = backward[::-1] + [ivp.start.copy()] + forward
    times = np.array([p.time for p in points])
    # drop everything beyond the first point past each end
    first = max(int(np.searchsorted(times, start, side="right")) - 1, 0)
    last = min(int(np.searchsorted(times, end, side="left")), len(points) - 1)
    if times[first] > end or times[last] < start:
        return None
    return DenseSolution(points[first : last + 1], interpolator)
