"""Tests for the TimeGrid container."""

import numpy as np
import pandas as pd
import pytest

from process_sim import (
    DimensionError,
    NoDataError,
    OrderError,
    TimeGrid,
)


def test_append_and_read():
    """Appended samples are returned in order."""
    grid = TimeGrid(dimension=2)
    assert grid.is_empty()

    grid.append(0.0, [1.0, 2.0])
    grid.append(0.5, [3.0, 4.0])

    assert grid.size() == len(grid) == 2
    assert grid.dimension == 2
    assert grid.first_time == 0.0
    assert grid.last_time == 0.5
    assert grid.time_at(-1) == 0.5
    np.testing.assert_array_equal(grid.value(0), [1.0, 2.0])
    np.testing.assert_array_equal(grid.times, [0.0, 0.5])
    assert grid.values.shape == (2, 2)


def test_append_out_of_order_leaves_grid_unchanged():
    """A non-increasing time raises OrderError and stores nothing."""
    grid = TimeGrid.from_arrays([0.0, 1.0], [[0.0], [1.0]])

    with pytest.raises(OrderError):
        grid.append(0.5, [9.0])
    with pytest.raises(OrderError):
        grid.append(1.0, [9.0])

    assert grid.size() == 2
    assert grid.last_time == 1.0
    np.testing.assert_array_equal(grid.value(-1), [1.0])


def test_append_wrong_dimension():
    grid = TimeGrid(dimension=2)
    with pytest.raises(DimensionError) as excinfo:
        grid.append(0.0, [1.0])
    assert excinfo.value.expected == 2
    assert excinfo.value.actual == 1
    assert grid.is_empty()


def test_grid_grows_past_initial_capacity():
    """Storage is extended transparently."""
    times = np.linspace(0.0, 10.0, 101)
    grid = TimeGrid(dimension=1)
    for t in times:
        grid.append(t, [2.0 * t])

    assert grid.size() == 101
    np.testing.assert_array_equal(grid.times, times)
    np.testing.assert_allclose(grid.values[:, 0], 2.0 * times)


def test_value_at_knots_is_exact():
    """Queries at stored times return the stored values."""
    times = [0.0, 0.1, 0.3, 1.7]
    values = [[1.0, -1.0], [2.5, 0.0], [np.pi, 7.0], [0.1, 0.2]]
    grid = TimeGrid.from_arrays(times, values)

    for t, v in zip(times, values):
        np.testing.assert_array_equal(grid.value_at(t), v)


def test_value_at_interpolates_and_clamps():
    grid = TimeGrid.from_arrays([0.0, 2.0], [0.0, 4.0])

    np.testing.assert_allclose(grid.value_at(0.5), [1.0])
    np.testing.assert_allclose(grid.value_at(1.5), [3.0])

    # Outside the data range
    np.testing.assert_array_equal(grid.value_at(-3.0), [0.0])
    np.testing.assert_array_equal(grid.value_at(10.0), [4.0])


def test_value_at_empty_grid():
    with pytest.raises(NoDataError):
        TimeGrid(dimension=1).value_at(0.0)
    with pytest.raises(NoDataError):
        TimeGrid(dimension=1).last_time


def test_index_at_zero_order_hold():
    grid = TimeGrid.from_arrays([0.0, 1.0, 2.0], [10.0, 20.0, 30.0])

    assert grid.index_at(-1.0) == 0
    assert grid.index_at(0.0) == 0
    assert grid.index_at(0.999) == 0
    assert grid.index_at(1.0) == 1
    assert grid.index_at(1.5) == 1
    assert grid.index_at(5.0) == 2


def test_from_arrays_one_dimensional_values():
    """A 1-D value array is one component per sample."""
    grid = TimeGrid.from_arrays([0.0, 1.0, 2.0], [5.0, 6.0, 7.0])
    assert grid.dimension == 1
    assert grid.values.shape == (3, 1)


def test_from_arrays_checks_data():
    with pytest.raises(OrderError):
        TimeGrid.from_arrays([0.0, 2.0, 1.0], [1.0, 2.0, 3.0])
    with pytest.raises(DimensionError):
        TimeGrid.from_arrays([0.0, 1.0], [[1.0], [2.0]], dimension=2)
    with pytest.raises(ValueError):
        TimeGrid.from_arrays([0.0, 1.0], [[1.0], [2.0], [3.0]])


def test_zero_dimensional_grid():
    """Grids of dimension 0 still carry times."""
    grid = TimeGrid.from_arrays([0.0, 1.0], dimension=0)
    assert grid.dimension == 0
    assert grid.size() == 2
    assert grid.value_at(0.5).shape == (0,)
    grid.append(2.0, [])
    assert grid.last_time == 2.0


def test_constant_grid():
    grid = TimeGrid.constant(1.0, 3.0)
    assert grid.size() == 1
    assert grid.dimension == 1
    np.testing.assert_array_equal(grid.value_at(100.0), [3.0])


def test_copy_is_independent():
    grid = TimeGrid.from_arrays([0.0, 1.0], [1.0, 2.0])
    copy = grid.copy()
    assert copy == grid

    copy.append(2.0, [3.0])
    assert grid.size() == 2
    assert copy.size() == 3
    assert copy != grid

    # Returned arrays are copies too
    grid.values[0, 0] = 99.0
    np.testing.assert_array_equal(grid.value(0), [1.0])


def test_to_dataframe():
    grid = TimeGrid.from_arrays([0.0, 1.0], [[1.0, 2.0], [3.0, 4.0]])

    df = grid.to_dataframe()
    assert isinstance(df, pd.DataFrame)
    assert list(df.columns) == ["v1", "v2"]
    assert df.index.name == "time"
    assert df.loc[1.0, "v2"] == 4.0

    df = grid.to_dataframe(columns=["a", "b"])
    assert list(df.columns) == ["a", "b"]

    with pytest.raises(DimensionError):
        grid.to_dataframe(columns=["a"])
