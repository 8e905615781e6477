"""Execution time profiling of the stepping engine's hot paths."""

from __future__ import annotations

import time
from collections.abc import Callable
from functools import wraps


class CallProfile:
    """
    Accumulated execution time and call count of one profiled function.

    Profiles form a tree: a function called from within another profiled
    function is recorded as a child of the caller's profile.
    """

    def __init__(self, name: str) -> None:
        """
        Initialize the CallProfile.

        Parameters
        ----------
        name
            The qualified name of the profiled function.
        """
        self.name = name
        self.execution_time = 0.0
        self.ncalls = 0
        self.children: dict[str, CallProfile] = {}

    def child(self, name: str) -> CallProfile:
        """Get the profile of a nested call, creating it if needed."""
        if name not in self.children:
            self.children[name] = CallProfile(name)
        return self.children[name]

    def totals(self) -> dict[str, CallProfile]:
        """
        Merge the whole subtree into one profile per function name.

        Returns
        -------
        dict[str, CallProfile]
            The merged profiles, keyed by function name.
        """
        merged: dict[str, CallProfile] = {}
        stack = list(self.children.values())
        while stack:
            p = stack.pop()
            total = merged.setdefault(p.name, CallProfile(p.name))
            total.execution_time += p.execution_time
            total.ncalls += p.ncalls
            stack.extend(p.children.values())
        return merged

    def print_tree(self, total_time: float, depth: int = 0) -> None:
        """
        Print this profile and its children as an indented tree.

        Parameters
        ----------
        total_time
            The time the relative share is computed against.
        depth
            The nesting depth, used for indentation.
        """
        name = "  " * depth + self.name
        share = self.execution_time / total_time if total_time > 0 else 0.0
        print(f"{name:<70} {self.execution_time:10.3f}s {share:11.2%} {self.ncalls:8d}")
        for p in sorted(self.children.values(), key=lambda c: c.execution_time, reverse=True):
            p.print_tree(self.execution_time, depth + 1)


class Profiler:
    """
    Static class for controlling the profiling of decorated functions.

    Profiling is inactive until Profiler.start() is called, so that the
    decorator costs no more than one check per call otherwise.
    """

    _start_time: float | None = None
    _root = CallProfile("")
    _current = _root

    @staticmethod
    def start() -> None:
        """(Re)start the Profiler, dropping all previous measurements."""
        Profiler._root = CallProfile("")
        Profiler._current = Profiler._root
        Profiler._start_time = time.time()

    @staticmethod
    def stop() -> None:
        """Stop profiling. The measurements are kept until the next start."""
        Profiler._start_time = None

    @staticmethod
    def is_active() -> bool:
        """Check if the Profiler is running."""
        return Profiler._start_time is not None

    @staticmethod
    def results() -> dict[str, CallProfile]:
        """The measurements so far, merged per function name."""
        return Profiler._root.totals()

    @staticmethod
    def print_summary(nested: bool = True) -> None:
        """
        Print a summary on the execution times of the decorated functions.

        Parameters
        ----------
        nested
            Whether to show the call tree or a flat list per function.
        """
        if not Profiler.is_active():
            print("Profiler is inactive.")
            return
        assert Profiler._start_time is not None
        total_time = time.time() - Profiler._start_time
        print("Profiler results:")
        print("{:<70} {:>11} {:>11} {:>8}".format("function", "total", "relative", "#calls"))
        print("-" * 103)
        if nested:
            for p in sorted(Profiler._root.children.values(), key=lambda c: c.execution_time, reverse=True):
                p.print_tree(total_time)
        else:
            for p in sorted(Profiler.results().values(), key=lambda c: c.execution_time, reverse=True):
                p.print_tree(total_time)


def profile(method: Callable) -> Callable:
    """
    Decorate a function to measure its execution time while profiling is active.

    Parameters
    ----------
    method
        The function to profile.

    Returns
    -------
    Callable
        The wrapped function.
    """

    @wraps(method)
    def do_profile(*args, **kw):
        if not Profiler.is_active():
            return method(*args, **kw)
        parent = Profiler._current
        current = parent.child(method.__qualname__)
        Profiler._current = current
        ts = time.time()
        try:
            return method(*args, **kw)
        finally:
            current.execution_time += time.time() - ts
            current.ncalls += 1
            Profiler._current = parent

    return do_profile
