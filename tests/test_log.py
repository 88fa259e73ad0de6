"""Tests for the simulation log."""

import numpy as np
import pandas as pd
import pytest

from process_sim import (
    DimensionError,
    Dimensions,
    LogChannel,
    OrderError,
    SimulationLog,
    TimeGrid,
)

DIMS = Dimensions(n_x=2, n_xa=0, n_u=1, n_p=1, n_w=0, n_y=1)


def make_log():
    log = SimulationLog(DIMS)
    for t in (0.0, 0.5, 1.0):
        log.record(LogChannel.SIMULATED_DIFFERENTIAL_STATES, t, [t, -t])
        log.record(LogChannel.SIMULATED_ALGEBRAIC_STATES, t, [])
        log.record(LogChannel.SIMULATED_CONTROLS, t, [1.0])
        log.record(LogChannel.SIMULATED_PARAMETERS, t, [2.0])
        log.record(LogChannel.SIMULATED_DISTURBANCES, t, [])
        log.record(LogChannel.PROCESS_OUTPUT, t, [2 * t])
    nominal = TimeGrid.from_arrays([0.0, 1.0], [1.0, 1.0])
    log.record_grid(LogChannel.NOMINAL_CONTROLS, nominal)
    return log


def test_channel_dimensions():
    log = SimulationLog(DIMS)
    assert log.is_empty()
    assert set(log.channels()) == set(LogChannel)
    assert log.get(LogChannel.SIMULATED_DIFFERENTIAL_STATES).dimension == 2
    assert log.get(LogChannel.SIMULATED_ALGEBRAIC_STATES).dimension == 0
    assert log.get(LogChannel.NOMINAL_PARAMETERS).dimension == 1
    assert log.get("LOG_PROCESS_OUTPUT").dimension == 1


def test_parse_channel():
    assert LogChannel.parse("log_simulated_controls") is (
        LogChannel.SIMULATED_CONTROLS
    )
    with pytest.raises(ValueError):
        LogChannel.parse("LOG_EVERYTHING")
    assert LogChannel.NOMINAL_CONTROLS not in LogChannel.simulated()


def test_record_checks():
    log = make_log()
    with pytest.raises(OrderError):
        log.record(LogChannel.SIMULATED_CONTROLS, 0.5, [1.0])
    with pytest.raises(DimensionError):
        log.record(LogChannel.SIMULATED_CONTROLS, 2.0, [1.0, 2.0])
    with pytest.raises(DimensionError):
        log.record_grid(
            LogChannel.NOMINAL_CONTROLS, TimeGrid.constant(0.0, [1.0, 2.0])
        )


def test_reset():
    log = make_log()
    assert not log.is_empty()
    log.reset()
    assert log.is_empty()


def test_to_dataframe():
    df = make_log().to_dataframe()
    assert isinstance(df, pd.DataFrame)
    assert df.index.name == "time"
    assert list(df.columns) == ["x1", "x2", "u1", "p1", "y1"]
    np.testing.assert_allclose(df["x2"], [0.0, -0.5, -1.0])
    np.testing.assert_allclose(df["y1"], [0.0, 1.0, 2.0])


def test_to_dataframe_outer_join():
    """Channels with different sample times are joined on time."""
    df = make_log().to_dataframe(
        [LogChannel.PROCESS_OUTPUT, LogChannel.NOMINAL_CONTROLS]
    )
    assert list(df.index) == [0.0, 0.5, 1.0]
    assert np.isnan(df.loc[0.5, "u_nominal1"])


def test_save_load_npz(tmp_path):
    log = make_log()
    path = str(tmp_path / "log.npz")
    log.save(path)

    loaded = SimulationLog.load(path, DIMS)
    for channel in LogChannel:
        assert loaded.get(channel) == log.get(channel)


def test_save_load_mat(tmp_path):
    log = make_log()
    path = str(tmp_path / "log.mat")
    log.save(path)

    loaded = SimulationLog.load(path, DIMS)
    states = loaded.get(LogChannel.SIMULATED_DIFFERENTIAL_STATES)
    np.testing.assert_allclose(states.values, [[0, 0], [0.5, -0.5], [1, -1]])
    assert loaded.get(LogChannel.NOMINAL_CONTROLS).size() == 2
    assert loaded.get(LogChannel.NOMINAL_PARAMETERS).is_empty()


def test_save_csv(tmp_path):
    path = tmp_path / "log.csv"
    make_log().save(str(path))

    df = pd.read_csv(path)
    assert list(df.columns) == ["time", "x1", "x2", "u1", "p1", "y1"]
    assert len(df) == 3


def test_save_unsupported_extension(tmp_path):
    with pytest.raises(ValueError):
        make_log().save(str(tmp_path / "log.xlsx"))
