"""Dynamic system model wrapping user-supplied model functions.

The model functions are opaque, side-effect free callables taking
``(t, x, xa, u, p, w)``:

- ``rhs`` returns the differential state derivatives ``xdot``
- ``algebraic`` (DAE only) returns the residual ``h`` of ``0 = h(...)``
- ``output`` returns the process output ``y`` (defaults to ``y = x``)

:class:`DynamicSystem` fixes the dimensions at construction and checks
every evaluation against them.
"""

from dataclasses import dataclass
from typing import Any, Callable, NamedTuple, Optional, Protocol

import numpy as np

from process_sim.exceptions import DimensionError, NonFiniteResultError


class ModelFunction(Protocol):
    """Protocol for model functions (rhs, algebraic residual, output)."""

    def __call__(
        self,
        t: float,
        x: np.ndarray,
        xa: np.ndarray,
        u: np.ndarray,
        p: np.ndarray,
        w: np.ndarray,
    ) -> Any:
        """Evaluate the function.

        Parameters
        ----------
        t : float
            Current time
        x : ndarray
            Differential states, shape (n_x,)
        xa : ndarray
            Algebraic states, shape (n_xa,)
        u : ndarray
            Controls, shape (n_u,)
        p : ndarray
            Parameters, shape (n_p,)
        w : ndarray
            Disturbances, shape (n_w,)

        Returns
        -------
        value : array-like
            Function value
        """
        ...


class Dimensions(NamedTuple):
    n_x: int
    n_xa: int
    n_u: int
    n_p: int
    n_w: int
    n_y: int


@dataclass(frozen=True)
class DynamicSystem:
    """Immutable bundle of model functions and their dimensions.

    Parameters
    ----------
    rhs : callable
        Function f(t, x, xa, u, p, w) -> xdot, length n_x
    n_x : int
        Number of differential states
    n_xa : int, default=0
        Number of algebraic states
    n_u : int, default=0
        Number of controls
    n_p : int, default=0
        Number of parameters
    n_w : int, default=0
        Number of disturbances
    algebraic : callable, optional
        Function h(t, x, xa, u, p, w) -> residual, length n_xa.
        Required if and only if n_xa > 0.
    output : callable, optional
        Function g(t, x, xa, u, p, w) -> y. If None, outputs are the
        differential states.
    n_y : int, optional
        Number of outputs. Required with ``output``; defaults to n_x
        without it.

    Examples
    --------
    >>> def decay(t, x, xa, u, p, w):
    ...     return -p[0] * x + u
    >>> model = DynamicSystem(decay, n_x=1, n_u=1, n_p=1)
    >>> model.evaluate_rhs(0.0, [1.0], [], [0.0], [2.0], [])
    array([-2.])
    """

    rhs: Callable
    n_x: int
    n_xa: int = 0
    n_u: int = 0
    n_p: int = 0
    n_w: int = 0
    algebraic: Optional[Callable] = None
    output: Optional[Callable] = None
    n_y: Optional[int] = None

    def __post_init__(self):
        """Validate dimensions and functions."""
        for name in ("n_x", "n_xa", "n_u", "n_p", "n_w"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.n_xa > 0 and self.algebraic is None:
            raise ValueError("algebraic function required when n_xa > 0")
        if self.n_xa == 0 and self.algebraic is not None:
            raise ValueError("algebraic function given but n_xa == 0")
        if self.output is None:
            if self.n_y not in (None, self.n_x):
                raise ValueError("n_y must equal n_x without an output")
            # Frozen dataclass: bypass __setattr__ for the default
            object.__setattr__(self, "n_y", self.n_x)
        elif self.n_y is None:
            raise ValueError("n_y is required when output is given")
        elif self.n_y < 0:
            raise ValueError("n_y must be >= 0")

    def dimensions(self) -> Dimensions:
        """Declared dimensions (n_x, n_xa, n_u, n_p, n_w, n_y)."""
        return Dimensions(
            self.n_x, self.n_xa, self.n_u, self.n_p, self.n_w, self.n_y
        )

    def evaluate_rhs(self, t, x, xa, u, p, w) -> np.ndarray:
        """Evaluate the differential state derivatives.

        Raises
        ------
        DimensionError
            If an argument or the result has the wrong length
        NonFiniteResultError
            If the result contains NaN or infinite values
        """
        args = self._check_args(x, xa, u, p, w)
        return self._check_result(
            "rhs", self.rhs(t, *args), self.n_x, t
        )

    def evaluate_algebraic(self, t, x, xa, u, p, w) -> np.ndarray:
        """Evaluate the algebraic residual (empty if n_xa == 0)."""
        args = self._check_args(x, xa, u, p, w)
        if self.algebraic is None:
            return np.zeros(0)
        return self._check_result(
            "algebraic", self.algebraic(t, *args), self.n_xa, t
        )

    def evaluate_output(self, t, x, xa, u, p, w) -> np.ndarray:
        """Evaluate the process output (y = x by default)."""
        args = self._check_args(x, xa, u, p, w)
        if self.output is None:
            return args[0].copy()
        return self._check_result(
            "output", self.output(t, *args), self.n_y, t
        )

    def _check_args(self, x, xa, u, p, w):
        args = []
        for name, value, expected in (
            ("x", x, self.n_x),
            ("xa", xa, self.n_xa),
            ("u", u, self.n_u),
            ("p", p, self.n_p),
            ("w", w, self.n_w),
        ):
            value = np.asarray(value, dtype=float).reshape(-1)
            if len(value) != expected:
                raise DimensionError(name, expected, len(value))
            args.append(value)
        return args

    @staticmethod
    def _check_result(name, value, expected, t):
        value = np.asarray(value, dtype=float).reshape(-1)
        if len(value) != expected:
            raise DimensionError(f"{name} result", expected, len(value))
        if not np.all(np.isfinite(value)):
            raise NonFiniteResultError(name, t)
        return value

    def __repr__(self):
        dims = ", ".join(
            f"{k}={v}" for k, v in self.dimensions()._asdict().items()
        )
        return f"DynamicSystem({dims})"
