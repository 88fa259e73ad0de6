"""Process simulation engine for dynamic systems.

This package advances a dynamic system (differential states, optional
algebraic states, controls, parameters and disturbances) forward in time
with a numerical integrator, evaluates an output function, and records
every resulting trajectory in a simulation log.

Model functions are plain NumPy callables ``f(t, x, xa, u, p, w)``.

Main Components
---------------
Process : Simulation orchestrator (init / run / get_last lifecycle)
DynamicSystem : Model functions with declared dimensions
TimeGrid : Time-indexed vector samples
DisturbanceSource : Interpolated disturbance data
SimulationLog : One TimeGrid per LogChannel

Integrators
-----------
RungeKutta4 : Fixed-step explicit RK4
EmbeddedRungeKutta : Adaptive RK12 / RK23 / RK45 (default)
BackwardDifferentiation : Adaptive BDF for stiff systems and DAEs

Examples
--------
>>> import numpy as np
>>> from process_sim import (
...     DynamicSystem, LogChannel, Option, Process, TimeGrid
... )
>>> # Define dynamics
>>> def tank(t, x, xa, u, p, w):
...     return np.array([u[0] - p[0] * np.sqrt(max(x[0], 0.0))])
>>>
>>> process = Process(DynamicSystem(tank, n_x=1, n_u=1, n_p=1))
>>> process.set(Option.ABSOLUTE_TOLERANCE, 1e-8)
>>> process.initialize_start_values([1.0])
>>> process.init(0.0)
>>> process.run(
...     TimeGrid.from_arrays([0.0, 5.0, 10.0], [0.5, 1.0, 1.0]),
...     TimeGrid.constant(0.0, [0.8]),
... )
>>> level = process.get_last(LogChannel.SIMULATED_DIFFERENTIAL_STATES)
>>> df = level.to_dataframe(columns=["level"])
"""

# Core simulation components
from process_sim.process import Process, ProcessStatus
from process_sim.model import Dimensions, DynamicSystem
from process_sim.grid import TimeGrid

# Inputs and disturbances
from process_sim.inputs import (
    ConstantInput,
    InputSignals,
    PiecewiseConstantInput,
)
from process_sim.disturbance import DisturbanceSource, read_disturbance_table

# Integrators
from process_sim.integrators import (
    BackwardDifferentiation,
    EmbeddedRungeKutta,
    Integrator,
    IntegratorSettings,
    IntegratorType,
    RungeKutta4,
    StepResult,
    make_integrator,
)

# Configuration and results
from process_sim.options import (
    Option,
    PlotResolution,
    ProcessOptions,
    read_options,
)
from process_sim.log import LogChannel, SimulationLog

# Errors
from process_sim.exceptions import (
    ConfigurationError,
    DimensionError,
    IntegrationDivergedError,
    IntegrationError,
    MalformedDataError,
    NoDataError,
    NonFiniteResultError,
    NonFiniteStateError,
    NotConfiguredError,
    OrderError,
    SimulationError,
    StepSizeUnderflowError,
)

__all__ = [
    # Core
    "Process",
    "ProcessStatus",
    "DynamicSystem",
    "Dimensions",
    "TimeGrid",
    # Inputs
    "ConstantInput",
    "PiecewiseConstantInput",
    "InputSignals",
    "DisturbanceSource",
    "read_disturbance_table",
    # Integrators
    "Integrator",
    "IntegratorSettings",
    "IntegratorType",
    "RungeKutta4",
    "EmbeddedRungeKutta",
    "BackwardDifferentiation",
    "StepResult",
    "make_integrator",
    # Configuration and results
    "Option",
    "PlotResolution",
    "ProcessOptions",
    "read_options",
    "LogChannel",
    "SimulationLog",
    # Errors
    "SimulationError",
    "ConfigurationError",
    "NotConfiguredError",
    "DimensionError",
    "MalformedDataError",
    "OrderError",
    "NoDataError",
    "NonFiniteResultError",
    "NonFiniteStateError",
    "IntegrationError",
    "IntegrationDivergedError",
    "StepSizeUnderflowError",
]
