"""Tests for disturbance tables and DisturbanceSource."""

import numpy as np
import pytest

from process_sim import (
    DisturbanceSource,
    MalformedDataError,
    TimeGrid,
    read_disturbance_table,
)


TABLE = """\
# measured inflow and temperature
time\tw1\tw2
----\t--\t--
0.0\t1.0\t20.0
1.0\t3.0\t21.0

# gap in the measurements
4.0\t3.0\t24.0
"""


def test_read_table_skips_header():
    """Header, separator, comment and blank lines are ignored."""
    table = read_disturbance_table(TABLE.splitlines())
    assert table.shape == (3, 3)
    np.testing.assert_array_equal(table[:, 0], [0.0, 1.0, 4.0])
    np.testing.assert_array_equal(table[2], [4.0, 3.0, 24.0])


def test_read_table_inconsistent_columns():
    lines = ["t w", "0.0 1.0", "1.0 2.0 3.0"]
    with pytest.raises(MalformedDataError) as excinfo:
        read_disturbance_table(lines)
    assert excinfo.value.line == 3


def test_read_table_non_numeric_row():
    lines = ["0.0 1.0", "1.0 abc"]
    with pytest.raises(MalformedDataError) as excinfo:
        read_disturbance_table(lines)
    assert excinfo.value.line == 2


def test_read_table_short_row():
    lines = ["t w1 w2", "0.0 1.0 2.0", "", "1.0 2.0"]
    with pytest.raises(MalformedDataError) as excinfo:
        read_disturbance_table(lines)
    assert excinfo.value.line == 4


def test_read_table_trailing_comment():
    lines = ["0.0\t1.0  # start", "2.0\t3.0"]
    table = read_disturbance_table(lines)
    np.testing.assert_array_equal(table, [[0.0, 1.0], [2.0, 3.0]])


def test_read_table_requires_values():
    with pytest.raises(MalformedDataError):
        read_disturbance_table(["time w1", "# nothing here"])
    with pytest.raises(MalformedDataError):
        read_disturbance_table(["0.0", "1.0"])


def test_sample_at_knots_is_exact():
    data = np.array([[0.0, 1.0, -2.0], [0.3, 1.7, 5.0], [2.0, 0.1, 0.0]])
    source = DisturbanceSource.load(data)

    assert source.dimension == 2
    for row in data:
        np.testing.assert_array_equal(source.sample(row[0]), row[1:])


def test_sample_interpolates_and_clamps():
    source = DisturbanceSource.load([[0.0, 1.0], [1.0, 3.0]])

    np.testing.assert_allclose(source.sample(0.25), [1.5])
    np.testing.assert_allclose(source(0.5), [2.0])
    np.testing.assert_array_equal(source.sample(-5.0), [1.0])
    np.testing.assert_array_equal(source.sample(5.0), [3.0])
    assert source.t_min == 0.0
    assert source.t_max == 1.0


def test_load_rejects_bad_tables():
    """Non-increasing times and ragged rows are malformed."""
    with pytest.raises(MalformedDataError):
        DisturbanceSource.load([[0.0, 1.0], [0.0, 2.0]])
    with pytest.raises(MalformedDataError):
        DisturbanceSource.load([[1.0, 1.0], [0.5, 2.0]])
    with pytest.raises(MalformedDataError):
        DisturbanceSource.load([[0.0, 1.0], [1.0, 2.0, 3.0]])
    with pytest.raises(MalformedDataError):
        DisturbanceSource.load([[0.0], [1.0]])
    with pytest.raises(MalformedDataError):
        DisturbanceSource.load([[0.0, np.nan], [1.0, 2.0]])


def test_load_from_grid():
    grid = TimeGrid.from_arrays([0.0, 2.0], [0.0, 4.0])
    source = DisturbanceSource.load(grid)
    np.testing.assert_allclose(source.sample(1.0), [2.0])

    # The source keeps its own copy
    grid.append(3.0, [100.0])
    assert source.t_max == 2.0


def test_load_with_time_units():
    """Time columns in minutes are converted to seconds."""
    source = DisturbanceSource.load([[0.0, 0.0], [2.0, 1.0]], time_units="min")
    assert source.t_max == pytest.approx(120.0)
    np.testing.assert_allclose(source.sample(60.0), [0.5])


def test_from_file(tmp_path):
    path = tmp_path / "disturbances.txt"
    path.write_text(TABLE)

    source = DisturbanceSource.from_file(path)
    assert source.dimension == 2
    assert source.t_max == 4.0
    np.testing.assert_allclose(source.sample(2.5), [3.0, 22.5])


def test_from_file_malformed(tmp_path):
    path = tmp_path / "bad.txt"
    path.write_text("0.0 1.0 2.0\n1.0 2.0\n")
    with pytest.raises(MalformedDataError):
        DisturbanceSource.from_file(path)
