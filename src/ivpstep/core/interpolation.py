"""Interpolation between two points of a solution."""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
import scipy.interpolate

from .problem import IVP, Derivative, Point
from .types import Array


class Interpolator:
    """
    Abstract base class for all interpolators.

    An interpolator approximates the solution between two known points of it
    with distinct times. Interpolators never fail: whatever knowledge on the
    underlying function they use, they degrade to something simpler if it is
    unavailable.
    """

    def interpolate(self, p1: Point, p2: Point, t: float) -> Array:
        """
        Approximate the value of the solution at time t.

        Parameters
        ----------
        p1
            A point of the solution.
        p2
            Another point of the solution, with a time different from p1's.
        t
            The time to approximate the value at, usually between p1 and p2.

        Returns
        -------
        Array
            A new array with the approximated value.

        Raises
        ------
        NotImplementedError
            This is an abstract base class.
        """
        raise NotImplementedError("'Interpolator' is an abstract base class - do not use for actual interpolation!")

    def segment(self, p1: Point, p2: Point) -> Callable[[float], Array]:
        """
        Fix the end points and return the interpolation as a function of time.

        Subclasses may precompute whatever the end points determine, so that
        repeated evaluations within one step are cheap.
        """
        return lambda t: self.interpolate(p1, p2, t)


class LinearInterpolator(Interpolator):
    """
    Straight line interpolation between two points.

    Also valid for extrapolation, there is no bounds check.
    """

    def interpolate(self, p1: Point, p2: Point, t: float) -> Array:
        # x1 + (x2-x1)*(t-t1)/(t2-t1) == x1*(1-ratio) + x2*ratio
        ratio = (t - p1.time) / (p2.time - p1.time)
        return p1.value * (1 - ratio) + p2.value * ratio


class HermiteInterpolator(Interpolator):
    """
    Cubic Hermite interpolation.

    Matches the values and the derivatives of the solution at both end points.
    The derivatives are obtained from the derivative function of the problem;
    if it is undefined at either end point, linear interpolation is used.
    """

    def __init__(self, derivative: Derivative) -> None:
        """
        Initialize the HermiteInterpolator.

        Parameters
        ----------
        derivative
            The derivative function of the problem being interpolated.
        """
        #: the derivative function of the problem
        self.derivative = derivative
        # fallback for points outside of the domain
        self._linear = LinearInterpolator()

    @classmethod
    def for_ivp(cls, ivp: IVP) -> HermiteInterpolator:
        """Create a Hermite interpolator suitable for the given problem."""
        return cls(ivp.derivative)

    def spline(self, p1: Point, p2: Point) -> scipy.interpolate.CubicHermiteSpline | None:
        """
        Build the cubic Hermite spline through two points.

        Returns
        -------
        scipy.interpolate.CubicHermiteSpline | None
            The spline, or None if the derivative is undefined at either point.
        """
        d1, ok = self.derivative(p1)
        if not ok:
            return None
        d2, ok = self.derivative(p2)
        if not ok:
            return None
        # the spline requires increasing abscissae
        if p1.time > p2.time:
            p1, p2 = p2, p1
            d1, d2 = d2, d1
        return scipy.interpolate.CubicHermiteSpline(
            [p1.time, p2.time],
            np.vstack((p1.value, p2.value)),
            np.vstack((np.asarray(d1, dtype=np.float64), np.asarray(d2, dtype=np.float64))),
        )

    def interpolate(self, p1: Point, p2: Point, t: float) -> Array:
        return self.segment(p1, p2)(t)

    def segment(self, p1: Point, p2: Point) -> Callable[[float], Array]:
        spline = self.spline(p1, p2)
        if spline is None:
            return self._linear.segment(p1, p2)
        return lambda t: np.asarray(spline(t), dtype=np.float64)
