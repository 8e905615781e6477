"""Root-finding algorithms for scalar equations."""

from __future__ import annotations

from typing import NoReturn

import numdifftools.fornberg as fornberg
import numpy as np

from .profiling import profile
from .types import PartialFunction


class RootNotFoundError(np.linalg.LinAlgError):
    """Raised when a root solver fails to find a root of an equation."""


class AbstractRootSolver:
    """
    Abstract base class for all root solvers.

    Root solvers find a root of a scalar function f(x) = 0 using an iterative
    procedure. The functions may be partial: they return None for arguments
    outside of their domain, in which case the solver fails, as it cannot
    tell whether a root exists.
    """

    def __init__(self, convergence_tolerance: float = 1e-10) -> None:
        """
        Initialize the solver.

        Parameters
        ----------
        convergence_tolerance
            The solve converges once the correction of an iteration is at most
            this tolerance in absolute value.
        """
        #: maximum number of iterations during solve
        self.max_iterations = 100
        #: absolute convergence tolerance for the iteration's correction
        self.convergence_tolerance = convergence_tolerance
        #: how verbose should the solving be? 0 = quiet, larger numbers = print more details
        self.verbosity = 0
        # number of iterations taken during the last solve
        self._iteration_count: int | None = None

    @property
    def niterations(self) -> int | None:
        """The number of iterations taken in the last solve."""
        return self._iteration_count

    def throw_no_convergence_error(self, reason: str) -> NoReturn:
        """
        Raise an error when the solver failed to find a root.

        Parameters
        ----------
        reason
            Short description of why the solve failed.

        Raises
        ------
        RootNotFoundError
            Always.
        """
        if self.niterations is None:
            it = ""
        else:
            it = f" after {self.niterations} iterations"
        raise RootNotFoundError(f"{type(self).__name__} did not converge{it}: {reason}")

    def _converged(self, x: float, correction: float) -> bool:
        if self.verbosity > 1:
            print(f"{type(self).__name__} step #{self._iteration_count}, correction: {correction:.2e}")
        if abs(correction) <= self.convergence_tolerance:
            if self.verbosity > 0:
                print(f"{type(self).__name__} converged after {self._iteration_count} iterations, root: {x}")
            return True
        return False


class NewtonSolver(AbstractRootSolver):
    """Newton's method: iterate x <- x - f(x)/f'(x)."""

    @profile
    def solve(self, f: PartialFunction, x0: float, df: PartialFunction) -> float:
        """
        Find a root of f starting at x0.

        Parameters
        ----------
        f
            The function to find a root of.
        x0
            The initial guess.
        df
            The derivative of f.

        Returns
        -------
        float
            The root found.

        Raises
        ------
        RootNotFoundError
            If f or df are undefined at some iterate, the derivative vanishes
            or the iteration does not converge within max_iterations.
        """
        self._iteration_count = 0
        x = x0
        while self._iteration_count < self.max_iterations:
            fx = f(x)
            if fx is None:
                self.throw_no_convergence_error(f"function undefined at x = {x}")
            dfx = df(x)
            if dfx is None:
                self.throw_no_convergence_error(f"derivative undefined at x = {x}")
            if dfx == 0:
                self.throw_no_convergence_error(f"vanishing derivative at x = {x}")
            correction = fx / dfx
            x = x - correction
            self._iteration_count += 1
            if self._converged(x, correction):
                return x
        self.throw_no_convergence_error("maximum number of iterations reached")


class SecantSolver(AbstractRootSolver):
    """The secant method: Newton's method with the derivative replaced by a difference quotient."""

    @profile
    def solve(self, f: PartialFunction, x0: float, x1: float) -> float:
        """
        Find a root of f starting from two initial guesses.

        Parameters
        ----------
        f
            The function to find a root of.
        x0
            The first initial guess.
        x1
            The second initial guess, distinct from x0.

        Returns
        -------
        float
            The root found.

        Raises
        ------
        RootNotFoundError
            If f is undefined at some iterate, the difference quotient vanishes
            or the iteration does not converge within max_iterations.
        """
        self._iteration_count = 0
        prev, cur = x0, x1
        fprev = f(prev)
        if fprev is None:
            self.throw_no_convergence_error(f"function undefined at x = {prev}")
        fcur = f(cur)
        if fcur is None:
            self.throw_no_convergence_error(f"function undefined at x = {cur}")
        while self._iteration_count < self.max_iterations:
            if fprev == fcur:
                if fcur == 0:
                    return cur
                self.throw_no_convergence_error(f"vanishing difference quotient at x = {cur}")
            correction = fcur * (prev - cur) / (fprev - fcur)
            x = cur - correction
            self._iteration_count += 1
            if self._converged(x, correction):
                return x
            fx = f(x)
            if fx is None:
                self.throw_no_convergence_error(f"function undefined at x = {x}")
            prev, fprev, cur, fcur = cur, fcur, x, fx
        self.throw_no_convergence_error("maximum number of iterations reached")


def finite_difference_derivative(f: PartialFunction, x: float, dx: float = 1e-6) -> float | None:
    """
    Approximate the derivative of a scalar function with central differences.

    The stencil weights are obtained from Fornberg's (1988) algorithm.

    Parameters
    ----------
    f
        The function to differentiate.
    x
        Where to evaluate the derivative.
    dx
        The spacing of the stencil, relative to max(1, |x|).

    Returns
    -------
    float | None
        The approximated derivative or None if f is undefined at any of the
        stencil's nodes.
    """
    h = dx * max(1.0, abs(x))
    nodes = np.array([x - h, x, x + h])
    weights = fornberg.fd_weights(x=nodes, x0=x, n=1)
    values = []
    for node in nodes:
        v = f(float(node))
        if v is None:
            return None
        values.append(v)
    return float(np.dot(weights, values))
