"""Disturbance sources loaded from tabulated time/value data.

A disturbance table is a whitespace (or tab) delimited text file whose
first column is time and whose remaining columns are the components of
the disturbance vector::

    # measured road profile
    time    w1      w2
    0.0     0.00    1.0
    0.5     0.02    1.0
    1.0     0.01    0.9

Any header or separator lines before the first numeric row are ignored.
"""

import io
import logging
from os import PathLike
from typing import Iterable, Optional, Union

import numpy as np
import pandas as pd
import pint

from process_sim.exceptions import MalformedDataError, OrderError
from process_sim.grid import TimeGrid

logger = logging.getLogger(__name__)


def _is_numeric_row(line: str) -> bool:
    values = pd.to_numeric(pd.Series(line.split()), errors="coerce")
    return bool(values.notna().all())


def _data_fields(line: str) -> list[str]:
    return line.split("#", 1)[0].split()


def _locate_error(lines: list[str], first: int, n_cols: int):
    """Line number and description of the first bad data row."""
    for line_no, line in enumerate(lines[first:], start=first + 1):
        fields = _data_fields(line)
        if not fields:
            continue
        if len(fields) != n_cols:
            return line_no, f"expected {n_cols} columns, got {len(fields)}"
        if not _is_numeric_row(" ".join(fields)):
            return line_no, f"non-numeric data row {line.strip()!r}"
    return None, "could not parse table"


def read_disturbance_table(lines: Iterable[str]) -> np.ndarray:
    """Parse the text lines of a disturbance table.

    Parameters
    ----------
    lines : iterable of str
        Lines of the table (e.g. an open file)

    Returns
    -------
    table : ndarray
        Array of shape (n_rows, 1 + n_w) with time in column 0

    Raises
    ------
    MalformedDataError
        If there are no numeric rows, fewer than two columns, a row with
        a different column count, or a non-numeric row after the data
        started.

    Notes
    -----
    - Lines before the first fully numeric row are treated as header
    - After that, blank lines and '#' comments are skipped
    - Monotonicity of the time column is checked by
      :meth:`DisturbanceSource.load`, not here
    """
    lines = [line.rstrip("\r\n") for line in lines]

    n_header = 0
    for line in lines:
        fields = _data_fields(line)
        if fields and _is_numeric_row(" ".join(fields)):
            break
        n_header += 1
    else:
        raise MalformedDataError("table contains no numeric rows")

    n_cols = len(_data_fields(lines[n_header]))
    if n_cols < 2:
        raise MalformedDataError(
            "table needs a time column and at least one value column, "
            f"got {n_cols} column(s)",
            line=n_header + 1,
        )

    try:
        df = pd.read_csv(
            io.StringIO("\n".join(lines[n_header:])),
            sep=r"\s+",
            header=None,
            comment="#",
            skip_blank_lines=True,
        )
    except pd.errors.ParserError as err:
        line_no, message = _locate_error(lines, n_header, n_cols)
        raise MalformedDataError(message, line=line_no) from err

    numeric = all(pd.api.types.is_numeric_dtype(dt) for dt in df.dtypes)
    if df.shape[1] != n_cols or not numeric or df.isna().any().any():
        # Short rows are padded with NaN, text makes a column non-numeric
        line_no, message = _locate_error(lines, n_header, n_cols)
        raise MalformedDataError(message, line=line_no)

    return df.to_numpy(dtype=float)


class DisturbanceSource:
    """Disturbance signal interpolated from tabulated samples.

    The data is loaded once and then sampled any number of times.
    Queries between samples are linearly interpolated; queries outside
    ``[t_min, t_max]`` return the nearest boundary value (clamping), the
    data is never extrapolated.

    Parameters
    ----------
    grid : TimeGrid
        Disturbance samples. Use :meth:`load` or :meth:`from_file` to
        build a source from raw data with validation.

    Examples
    --------
    >>> source = DisturbanceSource.load([[0.0, 1.0], [1.0, 3.0]])
    >>> source.sample(0.5)
    array([2.])
    >>> source.sample(-1.0)
    array([1.])
    """

    def __init__(self, grid: TimeGrid):
        if grid.is_empty():
            raise MalformedDataError("disturbance data is empty")
        self._grid = grid.copy()

    @classmethod
    def load(
        cls,
        table: Union[TimeGrid, np.ndarray, list],
        time_units: Optional[str] = None,
        ureg: Optional[pint.UnitRegistry] = None,
    ) -> "DisturbanceSource":
        """Validate and load a time/value table.

        Parameters
        ----------
        table : TimeGrid or array-like
            Either a grid, or rows of ``[t, w1, ..., wn]``
        time_units : str, optional
            Units of the time column (e.g. 'min', 'hour'). If given,
            times are converted to seconds.
        ureg : pint.UnitRegistry, optional
            Unit registry for the conversion. If None, a new registry is
            created.

        Raises
        ------
        MalformedDataError
            If times are not strictly increasing or the rows do not all
            have the same number of columns
        """
        if isinstance(table, TimeGrid):
            if time_units is not None:
                table = np.column_stack([table.times, table.values])
            else:
                return cls(table)

        try:
            data = np.array(table, dtype=float)
        except ValueError as err:
            raise MalformedDataError(
                f"rows have inconsistent column counts: {err}"
            ) from err
        if data.ndim != 2 or data.shape[0] == 0 or data.shape[1] < 2:
            raise MalformedDataError(
                "table must have shape (n_rows, 1 + n_w) with n_rows >= 1 "
                f"and n_w >= 1, got {data.shape}"
            )

        times = data[:, 0]
        if time_units is not None:
            if ureg is None:
                ureg = pint.UnitRegistry()
            times = ureg.Quantity(times, time_units).to("second").magnitude

        if not np.all(np.isfinite(data)):
            raise MalformedDataError("table contains non-finite values")

        try:
            grid = TimeGrid.from_arrays(times, data[:, 1:])
        except OrderError as err:
            raise MalformedDataError(
                f"time column must be strictly increasing: {err}"
            ) from err

        return cls(grid)

    @classmethod
    def from_file(
        cls,
        path: Union[str, PathLike],
        time_units: Optional[str] = None,
        ureg: Optional[pint.UnitRegistry] = None,
    ) -> "DisturbanceSource":
        """Load a disturbance table from a text file.

        See :func:`read_disturbance_table` for the format and
        :meth:`load` for the remaining parameters.
        """
        with open(path, "r") as f:
            table = read_disturbance_table(f)
        source = cls.load(table, time_units=time_units, ureg=ureg)
        logger.info(
            "Loaded disturbance table %s: %d samples, dimension %d, "
            "t in [%g, %g]",
            path,
            len(source._grid),
            source.dimension,
            source.t_min,
            source.t_max,
        )
        return source

    @property
    def dimension(self) -> int:
        """Number of disturbance components."""
        return self._grid.dimension

    @property
    def t_min(self) -> float:
        return self._grid.first_time

    @property
    def t_max(self) -> float:
        return self._grid.last_time

    @property
    def grid(self) -> TimeGrid:
        """Copy of the underlying samples."""
        return self._grid.copy()

    def sample(self, t: float) -> np.ndarray:
        """Disturbance vector at time t (clamped outside the data)."""
        return self._grid.value_at(t)

    def __call__(self, t: float) -> np.ndarray:
        return self.sample(t)

    def __repr__(self):
        return (
            f"DisturbanceSource(dimension={self.dimension}, "
            f"n_samples={len(self._grid)}, "
            f"t=[{self.t_min}, {self.t_max}])"
        )
