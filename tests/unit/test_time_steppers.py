"""Sociable unit tests for the concrete methods."""

import numpy as np
import pytest

from ivpstep.core.problem import IVP, Point
from ivpstep.core.solvers import SecantSolver
from ivpstep.core.stepper import ConfigurableStepper
from ivpstep.time_steppers import (
    AdamsBashforth,
    AdamsBashforthMoulton,
    AdaptiveAdamsBashforthMoulton,
    Euler,
    ImplicitEuler,
    ModifiedEuler,
    RungeKutta4,
    RungeKuttaFehlberg45,
    StepHistory,
    Trapezium,
    rk4_step,
)


def decay(p: Point):
    """x' = -x. Analytical solution: x(t) = x(0) * exp(-t)."""
    return -p.value, True


def oscillator(p: Point):
    """x'' = -x as a first-order system. Solution from (1, 0): (cos(t), -sin(t))."""
    return np.array([p.value[1], -p.value[0]]), True


def positive_decay(p: Point):
    """x' = -1 + x/10, defined for x > 0 only."""
    if p.value[0] <= 0:
        return np.zeros(1), False
    return -1 + p.value / 10, True


def decay_problem(x0: float = 1.0) -> IVP:
    return IVP(decay, Point(0.0, [x0]))


def error_at_one(method, nsteps: int) -> float:
    """Absolute error at t = 1 when solving the decay problem forward."""
    stepper = method.forward(decay_problem())
    for _ in range(nsteps):
        p = stepper.next_point()
    assert p.time == pytest.approx(1.0)
    return abs(p.value[0] - np.exp(-1.0))


def test_euler_step() -> None:
    stepper = Euler(dt=0.1).forward(decay_problem())
    p = stepper.next_point()
    # Euler: x_new = x_old + dt * f(x_old) = 1.0 + 0.1 * (-1.0) = 0.9
    np.testing.assert_allclose(p.value, [0.9])
    assert p.time == pytest.approx(0.1)


def test_euler_closed_form() -> None:
    h = 0.05
    points = []
    for p in Euler(dt=h).forward(decay_problem(2.0)):
        points.append(p)
        if len(points) == 30:
            break
    for n, p in enumerate(points, start=1):
        assert p.time == pytest.approx(n * h)
        assert p.value[0] == pytest.approx(2.0 * (1 - h) ** n)


def test_euler_backward() -> None:
    stepper = Euler(dt=0.1).backward(decay_problem())
    p = stepper.next_point()
    assert p.time == pytest.approx(-0.1)
    np.testing.assert_allclose(p.value, [1.1])


def test_modified_euler_step() -> None:
    p = ModifiedEuler(dt=0.1).forward(decay_problem()).next_point()
    # x + h/2*(-x - (x - h*x)) = 1 - 0.1 + 0.005
    np.testing.assert_allclose(p.value, [0.905])


@pytest.mark.parametrize(
    "method_class, order",
    [(Euler, 1), (ModifiedEuler, 2), (RungeKutta4, 4)],
)
def test_convergence_order(method_class, order: int) -> None:
    ratio = error_at_one(method_class(dt=0.1), 10) / error_at_one(method_class(dt=0.05), 20)
    assert ratio == pytest.approx(2**order, rel=0.15)


def test_rk4_step() -> None:
    p = RungeKutta4(dt=0.1).forward(decay_problem()).next_point()
    np.testing.assert_allclose(p.value, [np.exp(-0.1)], atol=1e-6)


def test_rk4_step_returns_first_derivative() -> None:
    state = decay_problem(2.0)
    deriv = rk4_step(state, 0.1)
    np.testing.assert_allclose(deriv, [-2.0])
    # the time is left untouched
    assert state.start.time == 0.0
    np.testing.assert_allclose(state.start.value, [2.0 * np.exp(-0.1)], atol=1e-6)


def test_rk4_system() -> None:
    stepper = RungeKutta4(dt=0.01).forward(IVP(oscillator, Point(0.0, [1.0, 0.0])))
    for _ in range(314):
        p = stepper.next_point()
    np.testing.assert_allclose(p.value, [np.cos(3.14), -np.sin(3.14)], atol=1e-8)


def test_implicit_euler_step() -> None:
    p = ImplicitEuler(dt=0.1).forward(decay_problem()).next_point()
    # Implicit Euler: x_new = x_old + dt * f(x_new) => x_new = 1.0 / 1.1
    np.testing.assert_allclose(p.value, [1.0 / 1.1])
    assert p.time == pytest.approx(0.1)


def test_implicit_euler_with_partial_derivative() -> None:
    method = ImplicitEuler(dt=0.1, dfdx=lambda t, x: -1.0)
    stepper = method.forward(decay_problem())
    for n in range(1, 6):
        p = stepper.next_point()
        assert p.value[0] == pytest.approx(1.1**-n)


def test_implicit_euler_with_secant_solver() -> None:
    p = ImplicitEuler(dt=0.1, solver=SecantSolver()).forward(decay_problem()).next_point()
    np.testing.assert_allclose(p.value, [1.0 / 1.1])


def test_implicit_euler_backward() -> None:
    p = ImplicitEuler(dt=0.1).backward(decay_problem()).next_point()
    # x_new = x_old - dt * f(x_new) => x_new = 1.0 / 0.9
    np.testing.assert_allclose(p.value, [1.0 / 0.9])
    assert p.time == pytest.approx(-0.1)


def test_trapezium_step() -> None:
    stepper = Trapezium(dt=0.1).forward(decay_problem())
    assert isinstance(stepper, ConfigurableStepper)
    ratio = (1 - 0.05) / (1 + 0.05)
    for n in range(1, 4):
        assert stepper.next_point().value[0] == pytest.approx(ratio**n)


def test_trapezium_is_second_order() -> None:
    ratio = error_at_one(Trapezium(dt=0.1), 10) / error_at_one(Trapezium(dt=0.05), 20)
    assert ratio == pytest.approx(4.0, rel=0.15)


def test_implicit_methods_only_solve_scalar_problems() -> None:
    ivp = IVP(oscillator, Point(0.0, [1.0, 0.0]))
    with pytest.raises(ValueError):
        ImplicitEuler().forward(ivp)
    with pytest.raises(ValueError):
        Trapezium().backward(ivp)


def test_implicit_euler_exhausts_when_root_not_found() -> None:
    # only defined at the initial time, the implicit equation has no solution
    def only_at_start(p: Point):
        return -p.value, p.time == 0.0

    stepper = ImplicitEuler(dt=0.1).forward(IVP(only_at_start, Point(0.0, [1.0])))
    assert stepper.next_point() is None
    assert stepper.exhausted


def test_rkf45_accuracy() -> None:
    method = RungeKuttaFehlberg45(error_tolerance=1e-6, dt=0.1, dt_min=1e-10, dt_max=0.5)
    stepper = method.forward(decay_problem())
    previous = 0.0
    while previous < 3.0:
        p = stepper.next_point()
        assert p.time > previous
        previous = p.time
        np.testing.assert_allclose(p.value, [np.exp(-p.time)], atol=1e-5)


def test_rkf45_backward() -> None:
    method = RungeKuttaFehlberg45(error_tolerance=1e-6, dt=0.1)
    stepper = method.backward(IVP(oscillator, Point(0.0, [1.0, 0.0])))
    for _ in range(10):
        p = stepper.next_point()
    assert p.time < 0
    np.testing.assert_allclose(p.value, [np.cos(p.time), -np.sin(p.time)], atol=1e-4)


def test_rkf45_exhausts_at_domain_boundary() -> None:
    method = RungeKuttaFehlberg45(error_tolerance=1e-3, dt=0.1, dt_min=1e-6, dt_max=0.5)
    stepper = method.forward(IVP(positive_decay, Point(0.0, [1.0])))
    points = list(stepper)
    assert stepper.exhausted
    # the solution reaches zero at t = 10 ln(10/9)
    assert points[-1].time == pytest.approx(10 * np.log(10 / 9), abs=1e-3)


def test_step_history() -> None:
    history = StepHistory(3)
    for i in range(5):
        history.push(np.array([float(i)]), np.array([10.0 * i]))
    assert len(history) == 3
    assert history.full
    assert [entry.value[0] for entry in history] == [4.0, 3.0, 2.0]
    history.clear()
    assert len(history) == 0


def test_step_history_combine() -> None:
    history = StepHistory(2)
    history.push(np.array([1.0]), np.array([2.0]))
    history.push(np.array([3.0]), np.array([4.0]))
    # a0*x0 + a1*x1 + dt*(b0*f0 + b1*f1) with newest first
    result = history.combine(np.array([1.0, 2.0]), np.array([0.5, 1.0]), 0.1)
    np.testing.assert_allclose(result, [3.0 + 2.0 + 0.1 * (2.0 + 2.0)])
    leading = history[0]._replace(value=np.array([0.0]), derivative=np.array([10.0]))
    result = history.combine(np.array([0.0, 1.0]), np.array([1.0]), 0.1, leading=leading)
    np.testing.assert_allclose(result, [3.0 + 1.0])
    with pytest.raises(ValueError):
        history.combine(np.array([1.0, 1.0, 1.0]), np.array([]), 0.1)


def test_step_history_missing_derivative() -> None:
    history = StepHistory(1)
    history.push(np.array([1.0]))
    with pytest.raises(ValueError):
        history.combine(np.array([1.0]), np.array([1.0]), 0.1)
    history.set_derivative(0, np.array([2.0]))
    np.testing.assert_allclose(history.combine(np.array([1.0]), np.array([1.0]), 0.1), [1.2])


@pytest.mark.parametrize("method_class", [AdamsBashforth, AdamsBashforthMoulton])
def test_adams_bootstrap_with_rk4(method_class) -> None:
    adams = method_class(dt=0.1).forward(decay_problem())
    rk4 = RungeKutta4(dt=0.1).forward(decay_problem())
    for _ in range(3):
        np.testing.assert_allclose(adams.next_point().value, rk4.next_point().value)
    assert adams.next_point().time == pytest.approx(0.4)


def test_adams_bashforth_step() -> None:
    h = 0.1
    stepper = AdamsBashforth(dt=h).forward(decay_problem())
    values = [1.0] + [stepper.next_point().value[0] for _ in range(3)]
    derivs = [-x for x in values]
    expected = values[3] + h / 24 * (55 * derivs[3] - 59 * derivs[2] + 37 * derivs[1] - 9 * derivs[0])
    assert stepper.next_point().value[0] == pytest.approx(expected)


def test_adams_bashforth_moulton_step() -> None:
    h = 0.1
    stepper = AdamsBashforthMoulton(dt=h).forward(decay_problem())
    values = [1.0] + [stepper.next_point().value[0] for _ in range(3)]
    derivs = [-x for x in values]
    predicted = values[3] + h / 24 * (55 * derivs[3] - 59 * derivs[2] + 37 * derivs[1] - 9 * derivs[0])
    expected = values[3] + h / 24 * (9 * -predicted + 19 * derivs[3] - 5 * derivs[2] + derivs[1])
    assert stepper.next_point().value[0] == pytest.approx(expected)


@pytest.mark.parametrize("method_class", [AdamsBashforth, AdamsBashforthMoulton])
def test_adams_accuracy(method_class) -> None:
    assert error_at_one(method_class(dt=0.01), 100) < 1e-7


def test_adams_configurable_step() -> None:
    stepper = AdamsBashforthMoulton(dt=0.1).backward(decay_problem())
    assert isinstance(stepper, ConfigurableStepper)
    for n in range(1, 7):
        p = stepper.next_step(-0.05)
        assert p.time == pytest.approx(-0.05 * n)
    np.testing.assert_allclose(p.value, [np.exp(0.3)], atol=1e-6)


def test_adams_exhausts_at_domain_boundary() -> None:
    stepper = AdamsBashforth(dt=0.5).forward(IVP(positive_decay, Point(0.0, [1.0])))
    points = list(stepper)
    assert stepper.exhausted
    assert len(points) < 5


def test_adaptive_adams_accuracy() -> None:
    method = AdaptiveAdamsBashforthMoulton(error_tolerance=1e-5, dt=0.01, dt_min=1e-8, dt_max=0.2)
    stepper = method.forward(decay_problem())
    previous = 0.0
    while previous < 5.0:
        p = stepper.next_point()
        assert p.time > previous
        previous = p.time
        np.testing.assert_allclose(p.value, [np.exp(-p.time)], atol=1e-4)


def test_adaptive_adams_grows_step() -> None:
    method = AdaptiveAdamsBashforthMoulton(error_tolerance=1e-3, dt=1e-3, dt_min=1e-8, dt_max=0.1)
    stepper = method.forward(decay_problem())
    for _ in range(40):
        stepper.next_point()
    assert stepper.dt > 1e-3


def test_adaptive_adams_backward() -> None:
    method = AdaptiveAdamsBashforthMoulton(error_tolerance=1e-5, dt=0.01, dt_max=0.1)
    stepper = method.backward(IVP(oscillator, Point(0.0, [1.0, 0.0])))
    times = []
    for _ in range(30):
        p = stepper.next_point()
        times.append(p.time)
        np.testing.assert_allclose(p.value, [np.cos(p.time), -np.sin(p.time)], atol=1e-4)
    assert all(t1 > t2 for t1, t2 in zip(times, times[1:]))


def test_adaptive_adams_exhausts_at_domain_boundary() -> None:
    method = AdaptiveAdamsBashforthMoulton(error_tolerance=1e-3, dt=0.1, dt_min=1e-4, dt_max=0.5)
    stepper = method.forward(IVP(positive_decay, Point(0.0, [1.0])))
    points = list(stepper)
    assert stepper.exhausted
    assert points[-1].time == pytest.approx(10 * np.log(10 / 9), abs=1e-2)


@pytest.mark.parametrize("method_class", [AdamsBashforth, AdamsBashforthMoulton])
def test_adams_step_with_other_delta_restarts_history(method_class) -> None:
    stepper = method_class(dt=0.1).forward(decay_problem())
    for _ in range(4):
        p = stepper.next_point()
    before = p.copy()
    after = stepper.next_step(0.01)
    assert after.time == pytest.approx(0.41)
    # an accurate step from the previous point, whatever its own error
    np.testing.assert_allclose(after.value, before.value * np.exp(-0.01), atol=1e-11)
    assert len(stepper.history) == 2
