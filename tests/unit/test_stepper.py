"""Unit tests for the Stepper and Method base classes and the adaptive wrapper."""

import numpy as np
import pytest

from ivpstep.core.problem import IVP, Point
from ivpstep.core.stepper import AdaptiveStepMethod, Method, Stepper, adaptive_update_step
from ivpstep.time_steppers import AdaptiveEuler, AdaptiveRungeKutta4, Euler, RungeKutta4


def constant(p: Point):
    """x' = 1."""
    return np.ones_like(p.value), True


def decay(p: Point):
    """x' = -x."""
    return -p.value, True


def falling(p: Point):
    """x' = -1, defined for x > 0 only."""
    if p.value[0] <= 0:
        return np.zeros(1), False
    return -np.ones(1), True


def test_abstract_classes() -> None:
    with pytest.raises(NotImplementedError):
        Stepper().next_point()
    with pytest.raises(NotImplementedError):
        Method().forward(IVP(constant, Point(0.0, [0.0])))


def test_adaptive_update_step() -> None:
    # adjustment a = tol*|dt|/(2*error) = 0.5
    assert adaptive_update_step(0.1, 1e-3, 1e-4, 1.0, 1) == pytest.approx(0.05)
    assert adaptive_update_step(0.1, 1e-3, 1e-4, 1.0, 2) == pytest.approx(0.1 * np.sqrt(0.5))
    assert adaptive_update_step(-0.1, 1e-3, 1e-4, 1.0, 1) == pytest.approx(-0.05)
    # fourth root of the adjustment 0.25
    assert adaptive_update_step(1.0, 0.01, 0.02, 10.0, 4) == pytest.approx(np.sqrt(0.5))


def test_adaptive_update_step_saturation() -> None:
    assert adaptive_update_step(0.1, 1e-3, 0.0, 1.0, 4) == pytest.approx(0.4)
    assert adaptive_update_step(0.1, 1e-3, 1e-12, 1.0, 1) == pytest.approx(0.4)
    assert adaptive_update_step(0.1, 1e-3, 1e3, 1.0, 1) == pytest.approx(0.01)
    assert adaptive_update_step(0.5, 1e-3, 0.0, 1.0, 4) == 1.0
    assert adaptive_update_step(-0.5, 1e-3, 0.0, 1.0, 4) == -1.0


def test_forward_and_backward_are_independent() -> None:
    ivp = IVP(decay, Point(0.0, [1.0]))
    method = Euler(dt=0.1)
    forward = method.forward(ivp)
    backward = method.backward(ivp)
    f1 = forward.next_point().copy()
    b1 = backward.next_point().copy()
    assert f1.time == pytest.approx(0.1)
    assert b1.time == pytest.approx(-0.1)
    np.testing.assert_allclose(f1.value, [0.9])
    np.testing.assert_allclose(b1.value, [1.1])
    # the problem itself is untouched
    assert ivp.start.time == 0.0
    np.testing.assert_array_equal(ivp.start.value, [1.0])


def test_steppers_inherit_verbosity() -> None:
    method = Euler(dt=0.1)
    method.verbosity = 2
    assert method.forward(IVP(decay, Point(0.0, [1.0]))).verbosity == 2


def test_configurable_step() -> None:
    stepper = Euler(dt=0.1).forward(IVP(constant, Point(0.0, [0.0])))
    p = stepper.next_step(0.5)
    assert p.time == pytest.approx(0.5)
    np.testing.assert_allclose(p.value, [0.5])
    p = stepper.next_point()
    assert p.time == pytest.approx(0.6)


def test_exhaustion_is_permanent() -> None:
    stepper = Euler(dt=0.1).forward(IVP(falling, Point(0.0, [0.25])))
    points = list(stepper)
    assert [p.time for p in points] == pytest.approx([0.1, 0.2, 0.3])
    assert stepper.exhausted
    assert stepper.next_point() is None
    assert stepper.next_step(0.01) is None


def test_iteration_yields_copies() -> None:
    stepper = Euler(dt=0.1).forward(IVP(decay, Point(0.0, [1.0])))
    first = next(stepper)
    second = next(stepper)
    assert first is not second
    assert first.time == pytest.approx(0.1)
    assert second.time == pytest.approx(0.2)


def test_invalid_step_sizes() -> None:
    with pytest.raises(ValueError):
        Euler(dt=0.0)
    with pytest.raises(ValueError):
        AdaptiveEuler(dt=0.1, dt_min=1.0, dt_max=0.5)
    with pytest.raises(ValueError):
        AdaptiveEuler(error_tolerance=0.0)


def test_richardson_exact_steps_grow() -> None:
    # Euler is exact for a constant derivative, every step is accepted with growth 4
    method = AdaptiveEuler(error_tolerance=1e-3, dt=0.01, dt_min=1e-6, dt_max=0.1)
    stepper = method.forward(IVP(constant, Point(0.0, [0.0])))
    times = [stepper.next_point().time for _ in range(4)]
    assert times == pytest.approx([0.01, 0.05, 0.15, 0.25])
    np.testing.assert_allclose(stepper.next_point().value, [0.35])


def test_richardson_order_from_method() -> None:
    assert AdaptiveStepMethod(RungeKutta4()).order == 4
    assert AdaptiveStepMethod(Euler(), order=2).order == 2


def test_richardson_local_error_control() -> None:
    tolerance = 1e-4
    method = AdaptiveRungeKutta4(error_tolerance=tolerance, dt=0.1, dt_min=1e-8, dt_max=0.5)
    stepper = method.forward(IVP(decay, Point(0.0, [1.0])))
    for _ in range(10):
        p = stepper.next_point()
        assert p is not None
        np.testing.assert_allclose(p.value, np.exp(-p.time), atol=5e-4)


def test_richardson_backward() -> None:
    method = AdaptiveEuler(error_tolerance=1e-3, dt=0.01)
    stepper = method.backward(IVP(decay, Point(0.0, [1.0])))
    times = [stepper.next_point().time for _ in range(20)]
    assert all(t1 > t2 for t1, t2 in zip(times, times[1:]))
    assert stepper.next_point().value[0] > 1.0


def test_richardson_exhausts_at_domain_boundary() -> None:
    method = AdaptiveEuler(error_tolerance=1e-3, dt=0.05, dt_min=1e-4, dt_max=0.1)
    stepper = method.forward(IVP(falling, Point(0.0, [0.2])))
    points = list(stepper)
    assert stepper.exhausted
    times = [p.time for p in points]
    assert all(t1 < t2 for t1, t2 in zip(times, times[1:]))
    assert times[-1] < 0.3
