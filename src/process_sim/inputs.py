"""Input signal classes for the exogenous inputs of a dynamic system.

Notes
-----
Controls and parameters are piecewise constant: the Process holds each
at the value of the grid breakpoint that opens the current integration
interval. Disturbances are sampled continuously, interpolated from
tabulated data (see :mod:`process_sim.disturbance`).

Every signal is a callable ``signal(t) -> ndarray`` so the integrators
can evaluate inputs at any stage time inside an interval.
"""

from dataclasses import dataclass
from typing import Any, Protocol

import numpy as np

from process_sim.grid import TimeGrid


class InputSignal(Protocol):
    """Protocol for input signals.

    Input signals are callable objects that return the input vector
    at a given time.
    """

    def __call__(self, t: float) -> np.ndarray:
        """Evaluate input at time t.

        Parameters
        ----------
        t : float
            Time at which to evaluate input

        Returns
        -------
        value : ndarray
            Input vector at time t
        """
        ...


class ConstantInput:
    """Constant input signal.

    Returns the same vector at all times.

    Parameters
    ----------
    value : scalar or array-like
        Constant value to return

    Examples
    --------
    >>> u = ConstantInput([5.0])
    >>> u(0.0)
    array([5.])
    >>> u(10.0)
    array([5.])
    """

    def __init__(self, value: Any):
        self.value = np.atleast_1d(np.asarray(value, dtype=float))

    def __call__(self, t: float) -> np.ndarray:
        """Return constant value."""
        return self.value.copy()

    def __repr__(self):
        return f"ConstantInput(value={self.value.tolist()})"


class PiecewiseConstantInput:
    """Zero-order hold over the samples of a time grid.

    The value at ``t`` is the value of the last sample whose time is not
    after ``t``. Before the first sample the first value is returned.

    Parameters
    ----------
    grid : TimeGrid
        Breakpoints and values. Must contain at least one sample.

    Examples
    --------
    >>> grid = TimeGrid.from_arrays([0, 2, 5], [[1.0], [2.0], [3.0]])
    >>> u = PiecewiseConstantInput(grid)
    >>> u(1.0)  # t in [0, 2)
    array([1.])
    >>> u(3.0)  # t in [2, 5)
    array([2.])
    >>> u(6.0)  # t >= 5
    array([3.])
    """

    def __init__(self, grid: TimeGrid):
        if grid.is_empty():
            raise ValueError("PiecewiseConstantInput requires a sample")
        self.grid = grid

    @property
    def dimension(self) -> int:
        return self.grid.dimension

    def __call__(self, t: float) -> np.ndarray:
        """Return the held value at time t."""
        return self.grid.value(self.grid.index_at(t))

    def __repr__(self):
        return (
            f"PiecewiseConstantInput(dimension={self.grid.dimension}, "
            f"n_breakpoints={len(self.grid)})"
        )


@dataclass(frozen=True)
class InputSignals:
    """The three input signals driving one integration interval.

    Parameters
    ----------
    u : InputSignal
        Controls, piecewise constant
    p : InputSignal
        Parameters, constant over the interval
    w : InputSignal
        Disturbances, sampled continuously
    """

    u: InputSignal
    p: InputSignal
    w: InputSignal

    def __call__(self, t: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Evaluate ``(u, p, w)`` at time t."""
        return self.u(t), self.p(t), self.w(t)

    @classmethod
    def zeros(cls, n_u: int = 0, n_p: int = 0, n_w: int = 0):
        """Signals that are identically zero with the given dimensions."""
        return cls(
            u=ConstantInput(np.zeros(n_u)),
            p=ConstantInput(np.zeros(n_p)),
            w=ConstantInput(np.zeros(n_w)),
        )
