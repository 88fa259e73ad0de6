"""Tests for process options and YAML configuration."""

import math

import pytest

from process_sim import (
    IntegratorType,
    Option,
    PlotResolution,
    ProcessOptions,
    read_options,
)
from process_sim.options import flatten_options


def test_defaults():
    options = ProcessOptions()
    assert options.get(Option.ABSOLUTE_TOLERANCE) == 1e-6
    assert options.get(Option.RELATIVE_TOLERANCE) == 1e-6
    assert options.get(Option.INTEGRATOR_TYPE) is IntegratorType.RK45
    assert options.get(Option.PLOT_RESOLUTION) is PlotResolution.MEDIUM
    assert options.get(Option.MAX_INTEGRATOR_STEPSIZE) == math.inf


def test_set_returns_new_options():
    options = ProcessOptions()
    updated = options.set("ABSOLUTE_TOLERANCE", 1e-8)
    assert updated.abs_tol == 1e-8
    assert options.abs_tol == 1e-6


def test_set_coerces_values():
    options = ProcessOptions()
    options = options.set(Option.INTEGRATOR_TYPE, "INT_BDF")
    options = options.set("log_resolution", "low")
    options = options.set(Option.MAX_NUM_INTEGRATOR_STEPS, 50.0)

    assert options.integrator_type is IntegratorType.BDF
    assert options.plot_resolution is PlotResolution.COARSE
    assert options.max_num_steps == 50
    assert isinstance(options.max_num_steps, int)


def test_set_rejects_invalid():
    options = ProcessOptions()
    with pytest.raises(ValueError):
        options.set("NOT_AN_OPTION", 1.0)
    with pytest.raises(ValueError):
        options.set(Option.ABSOLUTE_TOLERANCE, -1.0)
    with pytest.raises(ValueError):
        options.set(Option.INTEGRATOR_TYPE, "EULER")
    with pytest.raises(ValueError):
        options.set(Option.MAX_NUM_STEP_RETRIES, 2.5)


def test_integrator_settings():
    options = ProcessOptions(
        abs_tol=1e-9, integrator_type="RK23", max_retries=3
    )
    settings = options.integrator_settings()
    assert settings.method is IntegratorType.RK23
    assert settings.abs_tol == 1e-9
    assert settings.max_retries == 3


def test_flatten_options():
    nested = {
        "integrator": {"type": "BDF", "absolute_tolerance": 1e-8},
        "plot_resolution": {"value": "HIGH", "desc": "log density"},
    }
    assert flatten_options(nested) == {
        "integrator_type": "BDF",
        "integrator_absolute_tolerance": 1e-8,
        "plot_resolution": "HIGH",
    }


def test_from_dict():
    options = ProcessOptions.from_dict(
        {
            "integrator": {
                "type": "RK12",
                "absolute_tolerance": 1e-7,
                "max_num_step_retries": 4,
            },
            "relative_tolerance": {"value": 1e-5},
            "plot_resolution": "HIGH",
        }
    )
    assert options.integrator_type is IntegratorType.RK12
    assert options.abs_tol == 1e-7
    assert options.rel_tol == 1e-5
    assert options.max_retries == 4
    assert options.plot_resolution is PlotResolution.HIGH

    with pytest.raises(ValueError):
        ProcessOptions.from_dict({"solver": {"colour": "red"}})


def test_to_dict_round_trip():
    options = ProcessOptions(integrator_type="BDF", abs_tol=1e-9)
    data = options.to_dict()
    assert data["INTEGRATOR_TYPE"] == "BDF"
    assert ProcessOptions.from_dict(data) == options


def test_read_options(tmp_path):
    path = tmp_path / "options.yaml"
    path.write_text(
        "process:\n"
        "  integrator:\n"
        "    type: RK4\n"
        "    initial_integrator_stepsize: 0.01\n"
        "  plot_resolution: COARSE\n"
    )
    options = read_options(path)
    assert options.integrator_type is IntegratorType.RK4
    assert options.initial_step == 0.01
    assert options.plot_resolution is PlotResolution.COARSE


def test_read_empty_options(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert read_options(path) == ProcessOptions()
