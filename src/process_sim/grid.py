"""Time-indexed grid of vector samples.

A :class:`TimeGrid` is the container every other component exchanges:
control and parameter trajectories, disturbance tables and every logged
simulation channel are stored as grids.
"""

from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from process_sim.exceptions import DimensionError, NoDataError, OrderError

ArrayLike = Union[Sequence[float], np.ndarray]

_INITIAL_CAPACITY = 16


class TimeGrid:
    """Ordered samples ``(t_i, v_i)`` of a fixed-dimension vector.

    Times are strictly increasing and every value vector has the same
    dimension (which may be zero). Grids are mutated only by
    :meth:`append`; all other methods are pure reads.

    Parameters
    ----------
    dimension : int
        Length of each value vector
    time_tolerance : float, optional
        Relative tolerance used by :meth:`value_at` to match a query time
        with a stored sample time, by default 1e-10

    Examples
    --------
    >>> grid = TimeGrid(dimension=1)
    >>> grid.append(0.0, [0.0])
    >>> grid.append(2.0, [4.0])
    >>> grid.value_at(0.5)
    array([1.])
    >>> grid.value_at(10.0)  # clamped to the last sample
    array([4.])
    """

    def __init__(self, dimension: int, time_tolerance: float = 1e-10):
        if dimension < 0:
            raise ValueError(f"dimension must be >= 0, got {dimension}")
        self._dimension = int(dimension)
        self.time_tolerance = time_tolerance
        self._size = 0
        self._times = np.empty(_INITIAL_CAPACITY)
        self._values = np.empty((_INITIAL_CAPACITY, self._dimension))

    @classmethod
    def from_arrays(
        cls,
        times: ArrayLike,
        values: Optional[ArrayLike] = None,
        dimension: Optional[int] = None,
        **kwargs,
    ) -> "TimeGrid":
        """Build a grid from literal data.

        Parameters
        ----------
        times : array-like
            Sample times, shape (n,), strictly increasing
        values : array-like, optional
            Sample values, shape (n, d). A 1-D array is treated as a
            single component, shape (n, 1). May be omitted for a
            zero-dimensional grid.
        dimension : int, optional
            Expected dimension. Required when ``values`` is None (then it
            must be 0); otherwise checked against the data.

        Raises
        ------
        OrderError
            If times are not strictly increasing
        DimensionError
            If the data does not match ``dimension``
        """
        times = np.asarray(times, dtype=float).reshape(-1)
        if values is None:
            if dimension not in (None, 0):
                raise DimensionError("values", dimension, 0)
            values = np.empty((len(times), 0))
        else:
            values = np.asarray(values, dtype=float)
            if values.ndim == 1:
                values = values.reshape(-1, 1)
            if values.ndim != 2 or values.shape[0] != len(times):
                raise ValueError(
                    f"values must have shape ({len(times)}, d), "
                    f"got {values.shape}"
                )
            if dimension is not None and values.shape[1] != dimension:
                raise DimensionError("values", dimension, values.shape[1])

        grid = cls(values.shape[1], **kwargs)
        for t, v in zip(times, values):
            grid.append(t, v)
        return grid

    @classmethod
    def constant(cls, t: float, value: ArrayLike) -> "TimeGrid":
        """Single-sample grid holding ``value`` from time ``t`` on."""
        value = np.atleast_1d(np.asarray(value, dtype=float))
        return cls.from_arrays([t], value.reshape(1, -1))

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def append(self, t: float, value: ArrayLike) -> None:
        """Append a sample after the last stored time.

        Raises
        ------
        OrderError
            If ``t`` is not strictly greater than the last time. The grid
            is left unchanged.
        DimensionError
            If ``value`` does not have the grid's dimension
        """
        t = float(t)
        value = np.asarray(value, dtype=float).reshape(-1)
        if len(value) != self._dimension:
            raise DimensionError("value", self._dimension, len(value))
        if self._size > 0 and not t > self._times[self._size - 1]:
            raise OrderError(t, float(self._times[self._size - 1]))

        if self._size == len(self._times):
            capacity = 2 * len(self._times)
            times = np.empty(capacity)
            times[: self._size] = self._times
            values = np.empty((capacity, self._dimension))
            values[: self._size] = self._values
            self._times, self._values = times, values

        self._times[self._size] = t
        self._values[self._size] = value
        self._size += 1

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> int:
        """Length of each value vector."""
        return self._dimension

    @property
    def times(self) -> np.ndarray:
        """Copy of the sample times, shape (n,)."""
        return self._times[: self._size].copy()

    @property
    def values(self) -> np.ndarray:
        """Copy of the sample values, shape (n, d)."""
        return self._values[: self._size].copy()

    @property
    def first_time(self) -> float:
        self._require_data()
        return float(self._times[0])

    @property
    def last_time(self) -> float:
        self._require_data()
        return float(self._times[self._size - 1])

    def size(self) -> int:
        """Number of stored samples."""
        return self._size

    def is_empty(self) -> bool:
        return self._size == 0

    def time_at(self, index: int) -> float:
        """Time of the sample at ``index`` (negative indices allowed)."""
        return float(self._times[: self._size][index])

    def value(self, index: int) -> np.ndarray:
        """Value of the sample at ``index`` (negative indices allowed)."""
        return self._values[: self._size][index].copy()

    def value_at(self, t: float) -> np.ndarray:
        """Value at time ``t``.

        Returns the stored sample when ``t`` matches a sample time within
        the time tolerance, linearly interpolates between the bracketing
        samples inside the range, and clamps to the first or last sample
        outside it.

        Raises
        ------
        NoDataError
            If the grid is empty
        """
        self._require_data()
        times = self._times[: self._size]
        values = self._values[: self._size]

        if t <= times[0]:
            return values[0].copy()
        if t >= times[-1]:
            return values[-1].copy()

        tol = self.time_tolerance * max(1.0, abs(t))
        idx = int(np.searchsorted(times, t, side="right"))
        t_lo, t_hi = times[idx - 1], times[idx]
        if t - t_lo <= tol:
            return values[idx - 1].copy()
        if t_hi - t <= tol:
            return values[idx].copy()

        weight = (t - t_lo) / (t_hi - t_lo)
        return (1.0 - weight) * values[idx - 1] + weight * values[idx]

    def index_at(self, t: float) -> int:
        """Index of the last sample with time <= ``t`` (0 before start).

        This is the sample that holds at ``t`` when the grid is read as a
        piecewise-constant (zero-order hold) signal.
        """
        self._require_data()
        times = self._times[: self._size]
        tol = self.time_tolerance * max(1.0, abs(t))
        idx = int(np.searchsorted(times, t + tol, side="right")) - 1
        return max(idx, 0)

    def copy(self) -> "TimeGrid":
        """Independent copy of this grid."""
        grid = TimeGrid(self._dimension, time_tolerance=self.time_tolerance)
        capacity = max(_INITIAL_CAPACITY, self._size)
        grid._times = np.empty(capacity)
        grid._values = np.empty((capacity, self._dimension))
        grid._times[: self._size] = self._times[: self._size]
        grid._values[: self._size] = self._values[: self._size]
        grid._size = self._size
        return grid

    def to_dataframe(self, columns: Optional[list[str]] = None):
        """Convert to a pandas DataFrame indexed by time.

        Parameters
        ----------
        columns : list of str, optional
            Column names. If None, defaults to ['v1', 'v2', ...]

        Returns
        -------
        df : pandas.DataFrame
        """
        if columns is None:
            columns = [f"v{i+1}" for i in range(self._dimension)]
        elif len(columns) != self._dimension:
            raise DimensionError("columns", self._dimension, len(columns))

        df = pd.DataFrame(
            self._values[: self._size].copy(),
            index=pd.Index(self.times, name="time"),
            columns=columns,
        )
        return df

    def _require_data(self):
        if self._size == 0:
            raise NoDataError("grid is empty")

    def __len__(self):
        return self._size

    def __eq__(self, other):
        if not isinstance(other, TimeGrid):
            return NotImplemented
        return (
            self._dimension == other._dimension
            and np.array_equal(self.times, other.times)
            and np.array_equal(self.values, other.values)
        )

    def __repr__(self):
        if self._size == 0:
            return f"TimeGrid(dimension={self._dimension}, n_samples=0)"
        return (
            f"TimeGrid(dimension={self._dimension}, "
            f"n_samples={self._size}, "
            f"t=[{self.first_time}, {self.last_time}])"
        )
