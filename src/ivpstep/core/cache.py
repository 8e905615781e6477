"""
Lazily computed solutions.

A CacheSolution stores the points of the solution of a problem in an
interval that grows on demand: it starts with the initial point only and,
whenever a value outside of the covered interval is requested, steps in the
corresponding direction until the interval covers it.
"""

from __future__ import annotations

from bisect import bisect_left
from collections.abc import Iterable

import numpy as np

from .events import Event, EventTracker
from .interpolation import Interpolator
from .problem import IVP, Point
from .profiling import profile
from .stepper import ConfigurableStepper, Method, Stepper
from .types import Array


class SolutionBranch:
    """The points of a lazily computed solution in one direction of time."""

    def __init__(self, stepper: Stepper, tracker: EventTracker, direction: int) -> None:
        #: the stepper producing new points, None once retired
        self.stepper: Stepper | None = stepper
        #: the crossing values of the events, kept between expansions
        self.tracker = tracker
        #: 1 for the forward branch, -1 for the backward one
        self.direction = direction
        #: the stored points, strictly monotone in time along the direction
        self.points: list[Point] = []
        # direction * time of each point, increasing, for binary search
        self.keys: list[float] = []
        #: index of the event that stopped the branch, if any
        self.event: int | None = None

    def append(self, point: Point) -> None:
        self.points.append(point)
        self.keys.append(self.direction * point.time)


class CacheSolution:
    """
    A dynamic, lazily expanded solution of an initial value problem.

    Forward and backward steppers are driven only as far as needed to answer
    the queries. Events are tracked along the way; once a stepper is
    exhausted or an event stops the computation in one direction, that
    direction is retired for good.
    """

    def __init__(
        self, method: Method, ivp: IVP, interpolator: Interpolator, events: Iterable[Event] = ()
    ) -> None:
        """
        Initialize the CacheSolution.

        Parameters
        ----------
        method
            The solving method.
        ivp
            The problem to solve.
        interpolator
            Used to compute the values between the points and to locate events.
        events
            The events to take into account.
        """
        self.events = list(events)
        self.interpolator = interpolator
        #: the initial point, shared by both branches
        self.initial = ivp.start.copy()
        self._forward = SolutionBranch(
            method.forward(ivp), EventTracker(self.events, interpolator, self.initial), 1
        )
        self._backward = SolutionBranch(
            method.backward(ivp), EventTracker(self.events, interpolator, self.initial), -1
        )
        self._forward.append(self.initial)
        #: print log messages?
        self.verbose = False

    def log(self, *args, **kwargs) -> None:
        """Wrap print() for log messages, printed only if verbose is switched on."""
        if self.verbose:
            print(*args, **kwargs)

    @property
    def start(self) -> float:
        """The time of the stored point with the lowest time."""
        return self._last(self._backward).time

    @property
    def end(self) -> float:
        """The time of the stored point with the greatest time."""
        return self._last(self._forward).time

    @property
    def forward_points(self) -> list[Point]:
        """The points from the initial one to later times. Must not be modified."""
        return self._forward.points

    @property
    def backward_points(self) -> list[Point]:
        """The points from the initial one to earlier times, initial excluded. Must not be modified."""
        return self._backward.points

    @property
    def forward_event(self) -> int | None:
        """Index of the event that stopped the forward computation, if any."""
        return self._forward.event

    @property
    def backward_event(self) -> int | None:
        """Index of the event that stopped the backward computation, if any."""
        return self._backward.event

    def points(self) -> list[Point]:
        """All the stored points, by increasing time."""
        return self._backward.points[::-1] + self._forward.points

    def point_coords(self) -> Array:
        """
        Arrange the stored points for plotting.

        Returns
        -------
        Array
            An array of shape (n+1, N) for N points of dimension n. The first
            row holds the times, row j+1 the j-th component of the values.
        """
        points = self.points()
        times = np.array([p.time for p in points])
        return np.vstack((times, np.array([p.value for p in points]).T))

    def _last(self, branch: SolutionBranch) -> Point:
        return branch.points[-1] if branch.points else self.initial

    def _retire(self, branch: SolutionBranch, reason: str) -> None:
        branch.stepper = None
        name = "forward" if branch.direction > 0 else "backward"
        self.log(f"CacheSolution: {name} computation {reason} at t = {self._last(branch).time}")

    def _add(self, branch: SolutionBranch, point: Point) -> bool:
        """Process the events in the step to a new point and store it, unless an event stops."""
        index = branch.tracker.process(self._last(branch), point)
        if index is not None:
            branch.event = index
            self._retire(branch, f"stopped by event {index}")
            return False
        branch.append(point.copy())
        return True

    def _expand(self, branch: SolutionBranch, t: float) -> bool:
        """Step in the branch's direction until t is covered. Returns False if it is not."""
        while branch.direction * (t - self._last(branch).time) > 0:
            if branch.stepper is None:
                return False
            point = branch.stepper.next_point()
            if point is None:
                self._retire(branch, "exhausted")
                return False
            if not self._add(branch, point):
                return False
        return True

    def _lookup(self, branch: SolutionBranch, t: float) -> Array:
        """Get the value at a covered time t on the side of the given branch."""
        key = branch.direction * t
        i = bisect_left(branch.keys, key)
        if branch.keys[i] == key:
            return branch.points[i].value.copy()
        before = branch.points[i - 1] if i > 0 else self.initial
        return self.interpolator.interpolate(before, branch.points[i], t)

    @profile
    def get(self, t: float) -> Array | None:
        """
        Get the value of the solution at time t.

        If t is outside of the stored interval, points are computed until the
        interval covers it.

        Parameters
        ----------
        t
            The time.

        Returns
        -------
        Array | None
            A new array with the value, or None if t could not be reached
            because the stepper was exhausted or an event stopped the
            computation. Points are kept as far as they were computed.
        """
        if t < self.start and not self._expand(self._backward, t):
            return None
        if t > self.end and not self._expand(self._forward, t):
            return None
        if t >= self.initial.time:
            return self._lookup(self._forward, t)
        return self._lookup(self._backward, t)

    def _step(self, branch: SolutionBranch, h: float) -> Array | None:
        if h <= 0:
            raise ValueError(f"The step must be positive, got {h}")
        stepper = branch.stepper
        if stepper is None:
            return None
        if not isinstance(stepper, ConfigurableStepper):
            return self.get(self._last(branch).time + branch.direction * h)
        point = stepper.next_step(branch.direction * h)
        if point is None:
            self._retire(branch, "exhausted")
            return None
        if not self._add(branch, point):
            return None
        return point.value.copy()

    def step_forward(self, h: float) -> Array | None:
        """
        Get the value at end + h.

        If the forward stepper is a ConfigurableStepper, it takes a step of
        exactly h, otherwise this is get(end + h).

        Parameters
        ----------
        h
            The (positive) step.

        Returns
        -------
        Array | None
            The new value or None if it could not be computed.
        """
        return self._step(self._forward, h)

    def step_backward(self, h: float) -> Array | None:
        """Get the value at start - h, see step_forward()."""
        return self._step(self._backward, h)

    def step_to_end(self) -> int | None:
        """
        Compute points to later times until the stepper is exhausted or an event stops.

        Returns
        -------
        int | None
            The index of the event that stopped the computation, if any.
        """
        self._expand(self._forward, np.inf)
        return self._forward.event

    def step_to_beginning(self) -> int | None:
        """Compute points to earlier times until the stepper is exhausted or an event stops, see step_to_end()."""
        self._expand(self._backward, -np.inf)
        return self._backward.event
