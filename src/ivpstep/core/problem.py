"""The data model: solution points and initial value problems."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeAlias

import numpy as np

from .types import Array, ArrayLike


class Point:
    """
    A point of the solution of an initial value problem.

    Holds the value of the independent variable (time) and of the dependent
    variable (a vector of fixed dimension). The value is always an independent
    copy of whatever was passed to the constructor.
    """

    def __init__(self, time: float, value: ArrayLike) -> None:
        """
        Initialize the Point.

        Parameters
        ----------
        time
            The independent variable.
        value
            The dependent variable, copied into a 1-d float array.
        """
        #: the independent variable
        self.time = float(time)
        #: the dependent variable
        self.value: Array = np.array(value, dtype=np.float64).reshape(-1)

    @property
    def dimension(self) -> int:
        """The number of components of the dependent variable."""
        return self.value.size

    def copy(self) -> Point:
        """Return a deep copy of the point."""
        return Point(self.time, self.value)

    def __repr__(self) -> str:
        return f"Point(time={self.time!r}, value={self.value!r})"


#: The derivative function of an IVP. Returns the derivative at the given point
#: and a flag telling whether the point is in the domain of the function. If the
#: flag is False, the returned vector is meaningless.
Derivative: TypeAlias = Callable[[Point], tuple[ArrayLike, bool]]


class IVP:
    """
    An initial value problem x'(t) = f(t, x(t)), x(t0) = x0.

    The problem is given by a pure derivative function and the initial point.
    Ideally, the domain of the derivative is restricted to the connected
    component containing the initial point, as otherwise a method could jump
    into another component and produce invalid results undetected.
    """

    def __init__(self, derivative: Derivative, start: Point) -> None:
        """
        Initialize the IVP.

        Parameters
        ----------
        derivative
            The derivative function f, mapping a Point to (f(t, x), in_domain).
        start
            The initial values (t0, x0). A copy is stored.
        """
        #: the derivative function
        self.derivative = derivative
        #: the initial point, methods use it as their mutable state
        self.start = start.copy()

    @property
    def dimension(self) -> int:
        """The dimension of the dependent variable."""
        return self.start.dimension

    def evaluate(self, point: Point) -> Array | None:
        """
        Evaluate the derivative function at a point.

        Parameters
        ----------
        point
            The point to evaluate the derivative at.

        Returns
        -------
        Array | None
            The derivative as a float array or None if the point is outside of
            the domain of the derivative function.
        """
        deriv, ok = self.derivative(point)
        if not ok:
            return None
        return np.asarray(deriv, dtype=np.float64).reshape(-1)

    def copy(self) -> IVP:
        """Copy the problem, deep-copying the initial point and sharing the derivative."""
        return IVP(self.derivative, self.start)
