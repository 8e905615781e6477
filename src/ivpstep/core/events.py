"""Events: detecting where a function of the solution crosses zero and reacting to it."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from .interpolation import Interpolator
from .problem import Point
from .profiling import profile
from .stepper import Stepper


def different_sign(a: float, b: float) -> bool:
    """Whether there is a zero of a continuous function taking the values a and b (zero included)."""
    return (a <= 0 and b >= 0) or (a >= 0 and b <= 0)


class Event:
    """
    A condition that can happen at a point of the solution, and an action to take.

    The event happens where the crossing function changes its sign. When an
    occurrence is found, the action is called with a point close to the zero
    and returns whether the computation should continue.
    """

    def __init__(self, crossing: Callable[[Point], float], tolerance: float, action: Callable[[Point], bool]) -> None:
        """
        Initialize the Event.

        Parameters
        ----------
        crossing
            A function of the solution points, continuous in time along the
            trajectory, whose zeros are the points where the event happens.
        tolerance
            A point p is close enough to an occurrence to be passed to the
            action once |crossing(p)| < tolerance. With a zero tolerance the
            search goes on until the bracketing times cannot be told apart.
        action
            Called with each occurrence. Returns False to stop the computation.
        """
        if tolerance < 0:
            raise ValueError(f"The event tolerance must not be negative, got {tolerance}")
        #: the crossing function
        self.crossing = crossing
        #: maximum absolute value of the crossing function at a located occurrence
        self.tolerance = tolerance
        #: the action called with each occurrence
        self.action = action

    @profile
    def locate(self, interpolator: Interpolator, p1: Point, p2: Point) -> Point:
        """
        Find an occurrence of the event in a step of the solution by bisection.

        The crossing function must change its sign between p1 and p2. The
        intermediate points are obtained with the interpolator, not by
        stepping. The search moves towards the zero according to whether the
        crossing function decreases or increases along the step.

        Parameters
        ----------
        interpolator
            Used to approximate the solution between p1 and p2.
        p1
            The point where the step starts.
        p2
            The point where the step ends.

        Returns
        -------
        Point
            A point with |crossing(point)| < tolerance, or the last midpoint
            once the bracketing interval cannot shrink any further in
            floating point.
        """
        decreasing = self.crossing(p1) > self.crossing(p2)
        segment = interpolator.segment(p1, p2)
        # times on the side of p1 and of p2 of the bracketing interval
        near, far = p1.time, p2.time
        while True:
            t = (near + far) / 2
            mid = Point(t, segment(t))
            value = self.crossing(mid)
            if abs(value) < self.tolerance or t in (near, far):
                return mid
            if (value > 0) == decreasing:
                near = t
            else:
                far = t


class EventTracker:
    """
    Follows the crossing functions of a set of events along consecutive points.

    Keeps the last value of each crossing function, so a sequence of points
    can be processed across several calls.
    """

    def __init__(self, events: Iterable[Event], interpolator: Interpolator, initial: Point) -> None:
        """
        Initialize the EventTracker.

        Parameters
        ----------
        events
            The events to track.
        interpolator
            Used to locate occurrences inside a step.
        initial
            The point the sequence starts at.
        """
        self.events = list(events)
        self.interpolator = interpolator
        #: the crossing values at the latest point processed
        self.values = [event.crossing(initial) for event in self.events]

    def detect(self, previous: Point, current: Point) -> list[tuple[int, Point]]:
        """
        Detect and locate the occurrences of the events in the step from previous to current.

        Returns
        -------
        list[tuple[int, Point]]
            (event index, located point) pairs, in the order the occurrences
            happen along the step, that is by increasing time when stepping
            forward and by decreasing time when stepping backward.
        """
        occurrences = []
        for i, event in enumerate(self.events):
            value = event.crossing(current)
            if different_sign(self.values[i], value):
                occurrences.append((i, event.locate(self.interpolator, previous, current)))
            self.values[i] = value
        direction = 1 if current.time >= previous.time else -1
        occurrences.sort(key=lambda occurrence: direction * occurrence[1].time)
        return occurrences

    def dispatch(self, occurrences: list[tuple[int, Point]]) -> int | None:
        """
        Call the actions of the occurrences in order until one of them says to stop.

        Returns
        -------
        int | None
            The index of the event that stopped the computation, None if none did.
        """
        for index, point in occurrences:
            if not self.events[index].action(point):
                return index
        return None

    def process(self, previous: Point, current: Point) -> int | None:
        """Detect, locate and dispatch the occurrences in a step, see detect() and dispatch()."""
        return self.dispatch(self.detect(previous, current))


def step_until(
    stepper: Stepper,
    initial: Point,
    interpolator: Interpolator,
    events: Iterable[Event] = (),
    callback: Callable[[Point], None] | None = None,
) -> int | None:
    """
    Step until the stepper is exhausted or an event says to stop.

    For every new point, the events occurring in the step that leads to it
    are located and their actions are called in the order the occurrences
    happen. If no action stopped the computation, the callback is called with
    (a copy of) the point.

    Parameters
    ----------
    stepper
        The stepper to pull points from.
    initial
        The point the stepper starts at.
    interpolator
        Used to locate occurrences inside a step.
    events
        The events to track.
    callback
        Optional function called with each new point.

    Returns
    -------
    int | None
        The index of the event whose action stopped the stepping, or None if
        the stepper was exhausted.
    """
    tracker = EventTracker(events, interpolator, initial)
    previous = initial.copy()
    for point in stepper:
        index = tracker.process(previous, point)
        if index is not None:
            return index
        if callback is not None:
            callback(point)
        previous = point
    return None
