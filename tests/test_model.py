"""Tests for DynamicSystem."""

import dataclasses

import numpy as np
import pytest

from process_sim import DimensionError, DynamicSystem, NonFiniteResultError


def mixing_tank(t, x, xa, u, p, w):
    """Concentration in a stirred tank with inflow u and feed w."""
    return np.array([u[0] / p[0] * (w[0] - x[0])])


def test_dimensions():
    model = DynamicSystem(mixing_tank, n_x=1, n_u=1, n_p=1, n_w=1)
    dims = model.dimensions()
    assert dims == (1, 0, 1, 1, 1, 1)
    assert dims.n_y == 1


def test_evaluate_rhs():
    model = DynamicSystem(mixing_tank, n_x=1, n_u=1, n_p=1, n_w=1)
    dx = model.evaluate_rhs(0.0, [0.2], [], [2.0], [4.0], [1.0])
    np.testing.assert_allclose(dx, [0.4])


def test_evaluate_rhs_argument_dimensions():
    model = DynamicSystem(mixing_tank, n_x=1, n_u=1, n_p=1, n_w=1)
    with pytest.raises(DimensionError) as excinfo:
        model.evaluate_rhs(0.0, [0.2], [], [2.0, 1.0], [4.0], [1.0])
    assert excinfo.value.name == "u"


def test_evaluate_rhs_result_dimension():
    model = DynamicSystem(lambda t, x, xa, u, p, w: np.zeros(3), n_x=2)
    with pytest.raises(DimensionError):
        model.evaluate_rhs(0.0, [0.0, 0.0], [], [], [], [])


def test_evaluate_rhs_non_finite():
    model = DynamicSystem(lambda t, x, xa, u, p, w: x / 0.0, n_x=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        with pytest.raises(NonFiniteResultError) as excinfo:
            model.evaluate_rhs(1.5, [0.0], [], [], [], [])
    assert excinfo.value.function == "rhs"
    assert excinfo.value.t == 1.5


def test_default_output_is_state():
    model = DynamicSystem(lambda t, x, xa, u, p, w: -x, n_x=2)
    x = np.array([1.0, 2.0])
    y = model.evaluate_output(0.0, x, [], [], [], [])
    np.testing.assert_array_equal(y, x)

    # The output does not alias the state
    y[0] = 10.0
    assert x[0] == 1.0


def test_custom_output():
    model = DynamicSystem(
        lambda t, x, xa, u, p, w: -x,
        n_x=2,
        output=lambda t, x, xa, u, p, w: np.array([x.sum()]),
        n_y=1,
    )
    assert model.n_y == 1
    np.testing.assert_allclose(
        model.evaluate_output(0.0, [1.0, 2.0], [], [], [], []), [3.0]
    )


def test_algebraic_residual():
    model = DynamicSystem(
        lambda t, x, xa, u, p, w: -x + xa,
        n_x=1,
        n_xa=1,
        algebraic=lambda t, x, xa, u, p, w: xa - 0.5 * x,
    )
    r = model.evaluate_algebraic(0.0, [2.0], [1.5], [], [], [])
    np.testing.assert_allclose(r, [0.5])


def test_no_algebraic_states():
    model = DynamicSystem(lambda t, x, xa, u, p, w: -x, n_x=1)
    assert model.evaluate_algebraic(0.0, [1.0], [], [], [], []).shape == (0,)


def test_invalid_declarations():
    rhs = lambda t, x, xa, u, p, w: -x  # noqa: E731
    with pytest.raises(ValueError):
        DynamicSystem(rhs, n_x=1, n_xa=1)
    with pytest.raises(ValueError):
        DynamicSystem(rhs, n_x=1, algebraic=rhs)
    with pytest.raises(ValueError):
        DynamicSystem(rhs, n_x=1, output=rhs)
    with pytest.raises(ValueError):
        DynamicSystem(rhs, n_x=-1)


def test_model_is_immutable():
    model = DynamicSystem(lambda t, x, xa, u, p, w: -x, n_x=1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        model.n_x = 2
