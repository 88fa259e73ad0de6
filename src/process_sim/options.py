"""Process configuration options.

Options are identified by :class:`Option` members (or their names) and
stored in a :class:`ProcessOptions` dataclass which validates every
value. Options can also be read from nested mappings or YAML files::

    integrator:
      type: RK45
      absolute_tolerance: 1.0e-8
      relative_tolerance: {value: 1.0e-6}
    plot_resolution: HIGH

Nested keys are joined with '_' and matched case-insensitively against
the option names (a leading section name such as ``integrator`` may be
dropped if the joined key is not an option by itself).
"""

import enum
import math
from dataclasses import dataclass, fields, replace
from os import PathLike
from typing import Any, Union

import yaml

from process_sim.integrators import IntegratorSettings, IntegratorType


class PlotResolution(enum.Enum):
    """Sampling density of the simulation log.

    The value is the number of log samples per simulated horizon; the
    log is never denser than the integrator's accepted steps.
    """

    COARSE = 20
    MEDIUM = 100
    HIGH = 1000

    @classmethod
    def parse(cls, value: Union["PlotResolution", str]) -> "PlotResolution":
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper()
        if key == "LOW":
            key = "COARSE"
        try:
            return cls[key]
        except KeyError:
            raise ValueError(
                f"Unknown plot resolution {value!r}. Choose from "
                f"{[m.name for m in cls]}"
            ) from None


class Option(enum.Enum):
    """Recognized configuration options and their ProcessOptions field."""

    ABSOLUTE_TOLERANCE = "abs_tol"
    RELATIVE_TOLERANCE = "rel_tol"
    INTEGRATOR_TYPE = "integrator_type"
    PLOT_RESOLUTION = "plot_resolution"
    INITIAL_INTEGRATOR_STEPSIZE = "initial_step"
    MIN_INTEGRATOR_STEPSIZE = "min_step"
    MAX_INTEGRATOR_STEPSIZE = "max_step"
    MAX_NUM_INTEGRATOR_STEPS = "max_num_steps"
    MAX_NUM_STEP_RETRIES = "max_retries"

    @classmethod
    def parse(cls, value: Union["Option", str]) -> "Option":
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper()
        if key == "LOG_RESOLUTION":
            key = "PLOT_RESOLUTION"
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"Unknown option {value!r}") from None


@dataclass(frozen=True)
class ProcessOptions:
    """Configuration of a Process.

    Parameters
    ----------
    abs_tol : float, default=1e-6
        Absolute integration tolerance (ABSOLUTE_TOLERANCE)
    rel_tol : float, default=1e-6
        Relative integration tolerance (RELATIVE_TOLERANCE)
    integrator_type : IntegratorType, default=RK45
        Integration method (INTEGRATOR_TYPE)
    plot_resolution : PlotResolution, default=MEDIUM
        Log sampling density (PLOT_RESOLUTION)
    initial_step : float, default=1e-3
        Initial (or fixed) step size (INITIAL_INTEGRATOR_STEPSIZE)
    min_step : float, default=1e-12
        Step size floor (MIN_INTEGRATOR_STEPSIZE)
    max_step : float, default=inf
        Step size ceiling (MAX_INTEGRATOR_STEPSIZE)
    max_num_steps : int, default=100000
        Step attempts per interval (MAX_NUM_INTEGRATOR_STEPS)
    max_retries : int, default=10
        Consecutive step rejections (MAX_NUM_STEP_RETRIES)

    Examples
    --------
    >>> options = ProcessOptions().set("ABSOLUTE_TOLERANCE", 1e-8)
    >>> options.get(Option.ABSOLUTE_TOLERANCE)
    1e-08
    """

    abs_tol: float = 1e-6
    rel_tol: float = 1e-6
    integrator_type: IntegratorType = IntegratorType.RK45
    plot_resolution: PlotResolution = PlotResolution.MEDIUM
    initial_step: float = 1e-3
    min_step: float = 1e-12
    max_step: float = math.inf
    max_num_steps: int = 100000
    max_retries: int = 10

    def __post_init__(self):
        """Coerce enum values and validate via IntegratorSettings."""
        object.__setattr__(
            self,
            "integrator_type",
            IntegratorType.parse(self.integrator_type),
        )
        object.__setattr__(
            self,
            "plot_resolution",
            PlotResolution.parse(self.plot_resolution),
        )
        float_fields = ("abs_tol", "rel_tol", "initial_step", "min_step")
        for name in float_fields + ("max_step",):
            object.__setattr__(self, name, float(getattr(self, name)))
        for name in ("max_num_steps", "max_retries"):
            value = getattr(self, name)
            if int(value) != value:
                raise ValueError(f"{name} must be an integer, got {value}")
            object.__setattr__(self, name, int(value))
        self.integrator_settings()

    def set(self, option: Union[Option, str], value: Any) -> "ProcessOptions":
        """Return a copy with ``option`` set to ``value``.

        Raises
        ------
        ValueError
            If the option is unknown or the value is invalid
        """
        option = Option.parse(option)
        return replace(self, **{option.value: value})

    def get(self, option: Union[Option, str]) -> Any:
        """Current value of ``option``."""
        return getattr(self, Option.parse(option).value)

    def integrator_settings(self) -> IntegratorSettings:
        """Integrator settings derived from these options."""
        return IntegratorSettings(
            method=self.integrator_type,
            abs_tol=self.abs_tol,
            rel_tol=self.rel_tol,
            initial_step=self.initial_step,
            min_step=self.min_step,
            max_step=self.max_step,
            max_num_steps=self.max_num_steps,
            max_retries=self.max_retries,
        )

    @classmethod
    def from_dict(cls, options_dict: dict) -> "ProcessOptions":
        """Create options from a (possibly nested) mapping.

        Parameters
        ----------
        options_dict : dict
            Mapping of option names to values. Nested mappings are
            flattened with :func:`flatten_options`; leaves may be plain
            values or dicts with a 'value' key.

        Raises
        ------
        ValueError
            If a key does not name an option
        """
        options = cls()
        for key, value in flatten_options(options_dict).items():
            options = options.set(_match_option(key), value)
        return options

    def to_dict(self) -> dict:
        """Option names mapped to plain (YAML-friendly) values."""
        result = {}
        for option in Option:
            value = self.get(option)
            if isinstance(value, enum.Enum):
                value = value.name
            result[option.name] = value
        return result


_FIELD_NAMES = {f.name for f in fields(ProcessOptions)}


def _match_option(key: str) -> Option:
    parts = key.split("_")
    # Try the full key, then with leading section names dropped
    for i in range(len(parts)):
        candidate = "_".join(parts[i:])
        try:
            return Option.parse(candidate)
        except ValueError:
            pass
        if candidate.lower() in _FIELD_NAMES:
            return Option(candidate.lower())
    # Section name followed by 'type' (e.g. integrator: {type: RK45})
    if key.upper() == "INTEGRATOR_TYPE" or parts[-1].upper() == "TYPE":
        return Option.INTEGRATOR_TYPE
    raise ValueError(f"Unknown option {key!r}")


def flatten_options(options_dict: dict, parent_key: str = "", sep: str = "_"):
    """Flatten a nested options mapping by concatenating keys.

    Parameters
    ----------
    options_dict : dict
        Nested mapping. A dict with a 'value' key is a leaf, its other
        fields (e.g. 'desc') are ignored.
    parent_key : str, optional
        Prefix for keys (used in recursion), by default ''
    sep : str, optional
        Separator between nested keys, by default '_'

    Returns
    -------
    dict
        Flat dictionary of joined keys to values

    Examples
    --------
    >>> flatten_options({'integrator': {'type': 'BDF'}, 'plot_resolution':
    ...     {'value': 'HIGH', 'desc': 'log density'}})
    {'integrator_type': 'BDF', 'plot_resolution': 'HIGH'}
    """
    items = []

    for key, value in options_dict.items():
        new_key = f"{parent_key}{sep}{key}" if parent_key else str(key)

        if isinstance(value, dict):
            if "value" in value:
                items.append((new_key, value["value"]))
            else:
                items.extend(
                    flatten_options(value, parent_key=new_key, sep=sep).items()
                )
        else:
            items.append((new_key, value))

    return dict(items)


def read_options(path: Union[str, PathLike]) -> ProcessOptions:
    """Load process options from a YAML file.

    An empty file gives the default options. The options may be at the
    top level or under a ``process`` section.
    """
    with open(path, "r") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"{path}: expected a mapping of options")
    if "process" in config and isinstance(config["process"], dict):
        config = config["process"]

    return ProcessOptions.from_dict(config)
