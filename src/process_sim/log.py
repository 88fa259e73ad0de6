"""Simulation log: one time grid per recorded quantity.

The log is owned by a single Process and recreated by ``Process.init``.
Each :class:`LogChannel` holds a :class:`~process_sim.grid.TimeGrid`
whose dimension matches the model dimension of that quantity.
"""

import enum
import os
from typing import Iterable, Optional, Union

import numpy as np
import pandas as pd
from scipy.io import loadmat, savemat

from process_sim.exceptions import DimensionError
from process_sim.grid import TimeGrid
from process_sim.model import Dimensions


class LogChannel(enum.Enum):
    """Queryable log channels.

    The value is ``(dimension field, column prefix)``.
    """

    SIMULATED_DIFFERENTIAL_STATES = ("n_x", "x")
    SIMULATED_ALGEBRAIC_STATES = ("n_xa", "xa")
    SIMULATED_CONTROLS = ("n_u", "u")
    SIMULATED_PARAMETERS = ("n_p", "p")
    SIMULATED_DISTURBANCES = ("n_w", "w")
    PROCESS_OUTPUT = ("n_y", "y")
    NOMINAL_CONTROLS = ("n_u", "u_nominal")
    NOMINAL_PARAMETERS = ("n_p", "p_nominal")

    @property
    def prefix(self) -> str:
        return self.value[1]

    def dimension(self, dimensions: Dimensions) -> int:
        """Dimension of this channel for a model with ``dimensions``."""
        return getattr(dimensions, self.value[0])

    @classmethod
    def parse(cls, value: Union["LogChannel", str]) -> "LogChannel":
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper()
        if key.startswith("LOG_"):
            key = key[4:]
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"Unknown log channel {value!r}") from None

    @classmethod
    def simulated(cls) -> list["LogChannel"]:
        """Channels sampled during integration (not the nominal ones)."""
        return [c for c in cls if not c.name.startswith("NOMINAL")]


class SimulationLog:
    """Typed store of one TimeGrid per LogChannel.

    Parameters
    ----------
    dimensions : Dimensions
        Model dimensions; fixes the dimension of every channel

    Examples
    --------
    >>> from process_sim.model import DynamicSystem
    >>> model = DynamicSystem(lambda t, x, xa, u, p, w: -x, n_x=1)
    >>> log = SimulationLog(model.dimensions())
    >>> log.record(LogChannel.SIMULATED_DIFFERENTIAL_STATES, 0.0, [1.0])
    >>> log.get(LogChannel.SIMULATED_DIFFERENTIAL_STATES).size()
    1
    """

    def __init__(self, dimensions: Dimensions):
        self.dimensions = dimensions
        self._grids = {}
        self.reset()

    def reset(self) -> None:
        """Clear every channel."""
        self._grids = {
            channel: TimeGrid(channel.dimension(self.dimensions))
            for channel in LogChannel
        }

    def record(self, channel: LogChannel, t: float, value) -> None:
        """Append a sample to a channel.

        Raises
        ------
        OrderError
            If ``t`` is not after the channel's last time
        DimensionError
            If ``value`` has the wrong length
        """
        self._grids[LogChannel.parse(channel)].append(t, value)

    def record_grid(self, channel: LogChannel, grid: TimeGrid) -> None:
        """Replace a channel's content with a copy of ``grid``."""
        channel = LogChannel.parse(channel)
        expected = channel.dimension(self.dimensions)
        if grid.dimension != expected:
            raise DimensionError(channel.name, expected, grid.dimension)
        self._grids[channel] = grid.copy()

    def get(self, channel: Union[LogChannel, str]) -> TimeGrid:
        """The stored grid of a channel (not a copy)."""
        return self._grids[LogChannel.parse(channel)]

    def channels(self) -> list[LogChannel]:
        return list(self._grids)

    def is_empty(self) -> bool:
        """True if no channel holds any sample."""
        return all(grid.is_empty() for grid in self._grids.values())

    def to_dataframe(
        self, channels: Optional[Iterable[LogChannel]] = None
    ) -> pd.DataFrame:
        """Combine channels into one DataFrame indexed by time.

        Columns are named by channel prefix and 1-based component index,
        e.g. 'x1', 'x2', 'u1', 'y1'. Channels sampled at different times
        are outer-joined (missing entries are NaN).

        Parameters
        ----------
        channels : iterable of LogChannel, optional
            Channels to include. Defaults to the simulated channels.

        Returns
        -------
        df : pandas.DataFrame
        """
        if channels is None:
            channels = LogChannel.simulated()

        dfs = []
        for channel in channels:
            channel = LogChannel.parse(channel)
            grid = self._grids[channel]
            if grid.dimension == 0:
                continue
            columns = [
                f"{channel.prefix}{i+1}" for i in range(grid.dimension)
            ]
            dfs.append(grid.to_dataframe(columns=columns))

        if not dfs:
            return pd.DataFrame(index=pd.Index([], name="time"))

        df = pd.concat(dfs, axis=1).sort_index()
        df.index.name = "time"
        return df

    def _arrays(self) -> dict:
        arrays = {}
        for channel, grid in self._grids.items():
            arrays[f"{channel.prefix}_time"] = grid.times
            arrays[f"{channel.prefix}_values"] = grid.values
        return arrays

    def save(self, filename: str) -> None:
        """Save the log to file.

        Supports .npz and .mat (every channel, with its own time vector)
        and .csv (simulated channels, joined on time).

        Parameters
        ----------
        filename : str
            Output filename with extension

        Examples
        --------
        >>> process.log.save('simulation_log.npz')
        >>> process.log.save('simulation_log.csv')
        """
        ext = os.path.splitext(filename)[1].lower()

        if ext == ".npz":
            np.savez_compressed(filename, **self._arrays())

        elif ext == ".csv":
            df = self.to_dataframe().reset_index()
            df.to_csv(filename, index=False)

        elif ext == ".mat":
            savemat(filename, self._arrays())

        else:
            raise ValueError(
                f"Unsupported file extension '{ext}'. Use .npz, .csv, or .mat"
            )

    @classmethod
    def load(cls, filename: str, dimensions: Dimensions) -> "SimulationLog":
        """Load a log saved in .npz or .mat format.

        Parameters
        ----------
        filename : str
            Input filename
        dimensions : Dimensions
            Model dimensions the log was recorded with

        Returns
        -------
        log : SimulationLog
        """
        ext = os.path.splitext(filename)[1].lower()
        if ext == ".npz":
            with np.load(filename) as npz:
                data = dict(npz)
        elif ext == ".mat":
            data = loadmat(filename)
        else:
            raise ValueError(
                f"Unsupported file extension '{ext}'. Use .npz or .mat"
            )

        log = cls(dimensions)
        for channel in LogChannel:
            key = channel.prefix
            if f"{key}_time" not in data:
                continue
            # .mat files store vectors as 2-D arrays
            times = np.asarray(data[f"{key}_time"], dtype=float).ravel()
            n_dim = channel.dimension(dimensions)
            values = np.asarray(data[f"{key}_values"], dtype=float)
            log.record_grid(
                channel,
                TimeGrid.from_arrays(
                    times,
                    values.reshape(len(times), n_dim),
                    dimension=n_dim,
                ),
            )
        return log

    def __repr__(self):
        sizes = ", ".join(
            f"{channel.name}={len(grid)}"
            for channel, grid in self._grids.items()
        )
        return f"SimulationLog({sizes})"
