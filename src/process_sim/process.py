"""Process: orchestrates simulation of a dynamic system.

A :class:`Process` owns a model, its configuration, the current
simulation state, an optional disturbance source and the simulation log.
Its lifecycle is::

    UNINITIALIZED --init--> INITIALIZED --run--> RUNNING --> COMPLETED
                                                        \\--> FAILED

``init`` may be called again from any state except RUNNING to start
over with a fresh log.
"""

import enum
import logging
from os import PathLike
from typing import Any, Optional, Union

import numpy as np

from process_sim.disturbance import DisturbanceSource
from process_sim.exceptions import (
    ConfigurationError,
    DimensionError,
    NoDataError,
)
from process_sim.grid import TimeGrid
from process_sim.inputs import (
    ConstantInput,
    InputSignals,
    PiecewiseConstantInput,
)
from process_sim.integrators import IntegratorType, make_integrator
from process_sim.log import LogChannel, SimulationLog
from process_sim.model import DynamicSystem
from process_sim.options import Option, ProcessOptions

logger = logging.getLogger(__name__)


class ProcessStatus(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Process:
    """Simulates a dynamic system driven by controls and disturbances.

    Parameters
    ----------
    model : DynamicSystem, optional
        Model to simulate. Can also be set with set_dynamic_system.
    integrator_type : IntegratorType or str, optional
        Integration method, overrides the INTEGRATOR_TYPE option
    options : ProcessOptions, optional
        Initial configuration. Defaults are used if None.

    Examples
    --------
    >>> def oscillator(t, x, xa, u, p, w):
    ...     return np.array([x[1], -x[0] + u[0]])
    >>> process = Process(DynamicSystem(oscillator, n_x=2, n_u=1))
    >>> process.set(Option.ABSOLUTE_TOLERANCE, 1e-8)
    >>> process.initialize_start_values([1.0, 0.0])
    >>> process.init(0.0)
    >>> controls = TimeGrid.from_arrays([0.0, 1.0, 2.0], [0.0, 0.5, 0.5])
    >>> process.run(controls)
    >>> states = process.get_last(LogChannel.SIMULATED_DIFFERENTIAL_STATES)
    >>> states.last_time
    2.0
    """

    def __init__(
        self,
        model: Optional[DynamicSystem] = None,
        integrator_type: Optional[Union[IntegratorType, str]] = None,
        options: Optional[ProcessOptions] = None,
    ):
        self._options = options or ProcessOptions()
        self._model = None
        self._status = ProcessStatus.UNINITIALIZED
        self._x0 = None
        self._xa0 = None
        self._disturbance = None
        self._time = None
        self._x = None
        self._xa = None
        self._log = None
        self._error = None

        if model is not None:
            self.set_dynamic_system(model, integrator_type)
        elif integrator_type is not None:
            self.set(Option.INTEGRATOR_TYPE, integrator_type)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_dynamic_system(
        self,
        model: DynamicSystem,
        integrator_type: Optional[Union[IntegratorType, str]] = None,
    ) -> None:
        """Bind the model and, optionally, the integration method.

        Raises
        ------
        ConfigurationError
            If the process has already been initialized
        """
        if self._status is not ProcessStatus.UNINITIALIZED:
            raise ConfigurationError(
                "the dynamic system can only be set before init() "
                f"(status is {self._status.name})"
            )
        if not isinstance(model, DynamicSystem):
            raise TypeError(
                f"model must be a DynamicSystem, got {type(model).__name__}"
            )
        self._model = model
        if integrator_type is not None:
            self.set(Option.INTEGRATOR_TYPE, integrator_type)

        # Start values and disturbances of a previous model may not fit
        if self._x0 is not None and len(self._x0) != model.n_x:
            self._x0 = None
        if self._xa0 is not None and len(self._xa0) != model.n_xa:
            self._xa0 = None
        logger.debug("Dynamic system set: %r", model)

    def set(self, option: Union[Option, str], value: Any) -> None:
        """Set a configuration option.

        Raises
        ------
        ConfigurationError
            If called while a run is in progress
        ValueError
            If the option or value is invalid
        """
        if self._status is ProcessStatus.RUNNING:
            raise ConfigurationError("cannot change options during a run")
        self._options = self._options.set(option, value)

    def get(self, option: Union[Option, str]) -> Any:
        """Current value of a configuration option."""
        return self._options.get(option)

    def initialize_start_values(self, x0, xa0=None) -> None:
        """Store the initial differential (and algebraic) states.

        Parameters
        ----------
        x0 : array-like
            Differential states, shape (n_x,)
        xa0 : array-like, optional
            Initial guess of the algebraic states, shape (n_xa,).
            Defaults to zeros; a consistent value is solved for at the
            start of each run.

        Raises
        ------
        ConfigurationError
            If no dynamic system has been set
        DimensionError
            If a vector has the wrong length
        """
        model = self._require_model()
        x0 = np.asarray(x0, dtype=float).reshape(-1)
        if len(x0) != model.n_x:
            raise DimensionError("x0", model.n_x, len(x0))
        if xa0 is None:
            xa0 = np.zeros(model.n_xa)
        xa0 = np.asarray(xa0, dtype=float).reshape(-1)
        if len(xa0) != model.n_xa:
            raise DimensionError("xa0", model.n_xa, len(xa0))
        self._x0 = x0
        self._xa0 = xa0

    def set_process_disturbance(
        self,
        source: Union[DisturbanceSource, TimeGrid, np.ndarray, str, PathLike],
    ) -> None:
        """Bind the disturbance source.

        Parameters
        ----------
        source : DisturbanceSource, TimeGrid, array-like or path
            A source, data to load into one, or the path of a
            disturbance table file

        Raises
        ------
        DimensionError
            If the source dimension does not match the model's n_w
        MalformedDataError
            If the data cannot be loaded
        """
        if not isinstance(source, DisturbanceSource):
            if isinstance(source, (str, PathLike)):
                source = DisturbanceSource.from_file(source)
            else:
                source = DisturbanceSource.load(source)
        if self._model is not None and source.dimension != self._model.n_w:
            raise DimensionError(
                "disturbance", self._model.n_w, source.dimension
            )
        self._disturbance = source

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self, t0: float = 0.0) -> None:
        """Reset the state to the start values at t0 and clear the log.

        Raises
        ------
        ConfigurationError
            If the model, the start values or a required disturbance
            source are missing, or a run is in progress
        """
        if self._status is ProcessStatus.RUNNING:
            raise ConfigurationError("cannot init() during a run")
        model = self._require_model()
        if self._x0 is None:
            raise ConfigurationError(
                "start values not set, call initialize_start_values()"
            )
        if self._disturbance is None and model.n_w > 0:
            raise ConfigurationError(
                f"model has {model.n_w} disturbances but no disturbance "
                "source is set"
            )
        if (
            self._disturbance is not None
            and self._disturbance.dimension != model.n_w
        ):
            raise DimensionError(
                "disturbance", model.n_w, self._disturbance.dimension
            )

        self._time = float(t0)
        self._x = self._x0.copy()
        self._xa = self._xa0.copy()
        self._log = SimulationLog(model.dimensions())
        self._error = None
        self._status = ProcessStatus.INITIALIZED
        logger.debug("Process initialized at t0=%g", self._time)

    def run(
        self,
        control_grid: Optional[TimeGrid] = None,
        parameter_grid: Optional[TimeGrid] = None,
        end_time: Optional[float] = None,
    ) -> None:
        """Simulate from the current time to the end of the horizon.

        Controls and parameters are held constant over each interval
        between consecutive breakpoints of the two grids; disturbances
        are sampled continuously. Integration also stops at every
        disturbance sample time inside the horizon so that the integrator
        never steps across a kink in the disturbance, without changing
        the held inputs. Results are appended to the log.

        Parameters
        ----------
        control_grid : TimeGrid, optional
            Control breakpoints and values, dimension n_u. May be omitted
            only if n_u == 0, in which case end_time is required.
        parameter_grid : TimeGrid, optional
            Parameter values, dimension n_p. A single sample holds the
            parameters for the whole run. May be omitted only if n_p == 0.
        end_time : float, optional
            End of the horizon. Defaults to the last control breakpoint.

        Raises
        ------
        ConfigurationError
            If the process is not in the INITIALIZED state
        DimensionError
            If a grid does not match the model dimensions. The process
            state and log are left unchanged.
        ValueError
            If the horizon does not extend past the current time
        NonFiniteResultError, NonFiniteStateError, IntegrationError
            If integration fails. The process is left FAILED with the
            error, the last valid state and the partial log.
        """
        if self._status is not ProcessStatus.INITIALIZED:
            raise ConfigurationError(
                "run() requires an initialized process, call init() first "
                f"(status is {self._status.name})"
            )
        model = self._model
        t0 = self._time

        u_signal = self._input_signal("controls", control_grid, model.n_u)
        p_signal = self._input_signal("parameters", parameter_grid, model.n_p)
        if control_grid is None and end_time is None:
            raise ValueError("end_time is required without a control grid")
        if end_time is None:
            end_time = control_grid.last_time
        t_end = float(end_time)
        time_eps = 1e-10 * max(1.0, abs(t_end))
        if t_end <= t0 + time_eps:
            raise ValueError(
                f"horizon end {t_end} is not after the current time {t0}"
            )

        breakpoints = self._breakpoints(
            t0, t_end, time_eps, control_grid, parameter_grid
        )
        if self._disturbance is not None:
            w_signal = self._disturbance
            knots = self._knots(
                breakpoints, self._disturbance.grid.times, time_eps
            )
        else:
            w_signal = ConstantInput(np.zeros(model.n_w))
            knots = []
        integrator = make_integrator(self._options.integrator_settings())
        log_spacing = (t_end - t0) / self._options.plot_resolution.value

        logger.info(
            "Running %r from t=%g to t=%g over %d interval(s) with %r",
            model,
            t0,
            t_end,
            len(breakpoints) - 1,
            integrator,
        )
        self._status = ProcessStatus.RUNNING
        try:
            if control_grid is not None:
                self._log.record_grid(
                    LogChannel.NOMINAL_CONTROLS, control_grid
                )
            if parameter_grid is not None:
                self._log.record_grid(
                    LogChannel.NOMINAL_PARAMETERS, parameter_grid
                )

            last_logged = None
            for t_hold, t_next in zip(breakpoints[:-1], breakpoints[1:]):
                inputs = InputSignals(
                    u=ConstantInput(u_signal(t_hold)),
                    p=ConstantInput(p_signal(t_hold)),
                    w=w_signal,
                )
                if last_logged is None:
                    self._xa = integrator.consistent_algebraic_state(
                        model, t0, self._x, self._xa, inputs
                    )
                    self._record(t0, self._x, self._xa, inputs)
                    last_logged = t0

                def on_step(t, x, xa, t_next=t_next, inputs=inputs):
                    nonlocal last_logged
                    self._time, self._x, self._xa = t, x, xa
                    if t == t_next or t - last_logged >= log_spacing:
                        self._record(t, x, xa, inputs)
                        last_logged = t

                # Disturbance knots split the interval, inputs stay held
                stops = [t for t in knots if t_hold < t < t_next] + [t_next]
                t_start = t_hold
                for t_stop in stops:
                    result = integrator.advance(
                        model, t_start, self._x, self._xa, inputs, t_stop,
                        on_step=on_step,
                    )
                    self._x, self._xa, self._time = result
                    t_start = t_stop
        except Exception as err:
            self._status = ProcessStatus.FAILED
            self._error = err
            logger.warning(
                "Simulation failed at t=%g: %s", self._time, err
            )
            raise

        self._status = ProcessStatus.COMPLETED
        logger.info(
            "Simulation completed at t=%g with %d logged samples",
            self._time,
            len(self._log.get(LogChannel.SIMULATED_DIFFERENTIAL_STATES)),
        )

    def get_last(self, channel: Union[LogChannel, str]) -> TimeGrid:
        """Copy of the grid recorded for ``channel`` by the last run.

        Raises
        ------
        NoDataError
            If no run has completed successfully since the last init
        """
        if self._status is not ProcessStatus.COMPLETED:
            raise NoDataError(
                "no completed run to query "
                f"(status is {self._status.name})"
            )
        return self._log.get(channel).copy()

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def status(self) -> ProcessStatus:
        return self._status

    @property
    def model(self) -> Optional[DynamicSystem]:
        return self._model

    @property
    def options(self) -> ProcessOptions:
        return self._options

    @property
    def disturbance(self) -> Optional[DisturbanceSource]:
        return self._disturbance

    @property
    def time(self) -> Optional[float]:
        """Current simulation time (last valid time after a failure)."""
        return self._time

    @property
    def x(self) -> Optional[np.ndarray]:
        """Current differential states (copy)."""
        return None if self._x is None else self._x.copy()

    @property
    def xa(self) -> Optional[np.ndarray]:
        """Current algebraic states (copy)."""
        return None if self._xa is None else self._xa.copy()

    @property
    def error(self) -> Optional[Exception]:
        """Error that made the last run fail, if any."""
        return self._error

    @property
    def log(self) -> Optional[SimulationLog]:
        """The simulation log, including partial data of a failed run."""
        return self._log

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_model(self) -> DynamicSystem:
        if self._model is None:
            raise ConfigurationError(
                "no dynamic system set, call set_dynamic_system()"
            )
        return self._model

    @staticmethod
    def _input_signal(name, grid, dimension):
        if grid is None:
            if dimension > 0:
                raise DimensionError(
                    name,
                    dimension,
                    0,
                    message=f"model has {dimension} {name} but no "
                    f"{name} grid was given",
                )
            return ConstantInput(np.zeros(0))
        if not isinstance(grid, TimeGrid):
            raise TypeError(f"{name} must be a TimeGrid")
        if grid.dimension != dimension:
            raise DimensionError(name, dimension, grid.dimension)
        if grid.is_empty():
            raise ValueError(f"{name} grid is empty")
        return PiecewiseConstantInput(grid)

    @staticmethod
    def _breakpoints(t0, t_end, time_eps, *grids):
        times = [t0, t_end]
        for grid in grids:
            if grid is not None:
                times.extend(grid.times)
        times = np.unique(np.asarray(times, dtype=float))
        inner = times[(times > t0 + time_eps) & (times < t_end - time_eps)]
        return [t0] + inner.tolist() + [t_end]

    @staticmethod
    def _knots(breakpoints, times, time_eps):
        # Disturbance sample times strictly inside the horizon that do not
        # coincide with a breakpoint
        times = np.asarray(times, dtype=float)
        times = times[
            (times > breakpoints[0] + time_eps)
            & (times < breakpoints[-1] - time_eps)
        ]
        if len(times) == 0:
            return []
        gap = np.abs(times[:, None] - np.asarray(breakpoints)[None, :])
        return times[gap.min(axis=1) > time_eps].tolist()

    def _record(self, t, x, xa, inputs):
        u, p, w = inputs(t)
        y = self._model.evaluate_output(t, x, xa, u, p, w)
        log = self._log
        log.record(LogChannel.SIMULATED_DIFFERENTIAL_STATES, t, x)
        log.record(LogChannel.SIMULATED_ALGEBRAIC_STATES, t, xa)
        log.record(LogChannel.SIMULATED_CONTROLS, t, u)
        log.record(LogChannel.SIMULATED_PARAMETERS, t, p)
        log.record(LogChannel.SIMULATED_DISTURBANCES, t, w)
        log.record(LogChannel.PROCESS_OUTPUT, t, y)

    def __repr__(self):
        return (
            f"Process(status={self._status.name}, model={self._model!r}, "
            f"time={self._time})"
        )
