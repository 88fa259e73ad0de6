"""Exception hierarchy for the process simulation engine.

All errors raised by this package derive from :class:`SimulationError`,
so callers can catch everything the engine reports with one clause.
Errors that describe bad argument values also derive from
:class:`ValueError` and the non-finite errors from
:class:`ArithmeticError`.
"""

from typing import Optional


class SimulationError(Exception):
    """Base class for all errors raised by process_sim."""


class ConfigurationError(SimulationError):
    """Raised when an operation is called in the wrong lifecycle state.

    Examples are calling ``init`` before a model or start values were
    set, or ``run`` before ``init``.
    """


NotConfiguredError = ConfigurationError


class DimensionError(SimulationError, ValueError):
    """Raised when a vector length does not match a declared dimension."""

    def __init__(
        self,
        name: str,
        expected: int,
        actual: int,
        message: Optional[str] = None,
    ):
        self.name = name
        self.expected = expected
        self.actual = actual

        if message is None:
            message = (
                f"{name} has dimension {actual}, expected {expected}"
            )

        super().__init__(message)


class MalformedDataError(SimulationError, ValueError):
    """Raised when tabulated data violates the table format."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class OrderError(SimulationError, ValueError):
    """Raised when a grid append is not strictly after the last time."""

    def __init__(self, t: float, last: float):
        self.t = t
        self.last = last
        super().__init__(
            f"time {t!r} is not strictly greater than last time {last!r}"
        )


class NoDataError(SimulationError):
    """Raised when data is queried before it exists."""


class NonFiniteError(SimulationError, ArithmeticError):
    """Base class for NaN/infinity detection."""


class NonFiniteResultError(NonFiniteError):
    """Raised when a model function returns NaN or infinite values."""

    def __init__(self, function: str, t: float):
        self.function = function
        self.t = t
        super().__init__(
            f"{function} returned non-finite values at t={t!r}"
        )


class NonFiniteStateError(NonFiniteError):
    """Raised when the propagated state becomes NaN or infinite."""

    def __init__(self, t: float):
        self.t = t
        super().__init__(f"state became non-finite at t={t!r}")


class IntegrationError(SimulationError):
    """Base class for integrator failures.

    Parameters
    ----------
    message : str
        Description of the failure
    t : float
        Time reached when the integrator gave up
    step_size : float
        Last step size attempted
    """

    def __init__(self, message: str, t: float, step_size: float):
        self.t = t
        self.step_size = step_size
        super().__init__(f"{message} (t={t!r}, h={step_size!r})")


class IntegrationDivergedError(IntegrationError):
    """Raised when error control cannot meet the tolerances."""


class StepSizeUnderflowError(IntegrationError):
    """Raised when the adaptive step shrinks below the minimum step."""
