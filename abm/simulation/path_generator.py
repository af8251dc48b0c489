"""Monte Carlo path generator for Arithmetic Brownian Motion."""

from collections.abc import Mapping
from typing import Dict, Iterator, List, NamedTuple, Optional, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from abm.exceptions import InvalidParameterError, NumericOverflowError
from abm.simulation.path_set import PathSet
from abm.simulation.request import ModelParameters, SimulationRequest, TimeGrid


class PathPoint(NamedTuple):
    """A single (time, value) observation of a path."""

    time: float
    value: float


class Path:
    """An immutable simulated path.

    Parameters
    ----------
    index : int
        Position of the path within its request
    times : array-like
        Grid times, length steps + 1
    values : array-like
        Simulated values, same length as ``times``
    """

    def __init__(self, index: int, times, values):
        times = np.array(times, dtype=float)
        values = np.array(values, dtype=float)
        if times.shape != values.shape or times.ndim != 1:
            raise ValueError(
                f"times and values must be 1-D arrays of equal length, "
                f"got {times.shape} and {values.shape}"
            )
        times.setflags(write=False)
        values.setflags(write=False)
        self._index = int(index)
        self._times = times
        self._values = values

    @property
    def index(self) -> int:
        return self._index

    @property
    def times(self) -> np.ndarray:
        return self._times

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def initial(self) -> PathPoint:
        return self[0]

    @property
    def terminal(self) -> PathPoint:
        return self[-1]

    def __len__(self) -> int:
        return len(self._values)

    def __getitem__(self, i: int) -> PathPoint:
        return PathPoint(float(self._times[i]), float(self._values[i]))

    def __iter__(self) -> Iterator[PathPoint]:
        for t, v in zip(self._times, self._values):
            yield PathPoint(float(t), float(v))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Path):
            return NotImplemented
        return (
            self._index == other._index
            and np.array_equal(self._times, other._times)
            and np.array_equal(self._values, other._values)
        )

    __hash__ = None

    def __repr__(self) -> str:
        start, end = self.initial, self.terminal
        return (
            f"Path(index={self._index}, points={len(self)}, "
            f"start=({start.time:g}, {start.value:g}), "
            f"end=({end.time:g}, {end.value:g}))"
        )

    def to_records(self) -> List[Dict[str, float]]:
        """Return the path as a list of ``{'time': t, 'value': v}`` dicts."""
        return [{"time": p.time, "value": p.value} for p in self]

    def to_series(self) -> pd.Series:
        """Return the path values as a Series indexed by time."""
        return pd.Series(
            self._values.copy(),
            index=pd.Index(self._times.copy(), name="time"),
            name=self._index,
        )


class PathSimulator:
    """Generates independent ABM paths with the Euler-Maruyama scheme.

    Each step applies S(i) = S(i-1) + mu*dt + sigma*sqrt(dt)*Z with
    Z ~ N(0, 1). Drift and diffusion are constant, so the scheme is exact.
    Values are never clamped; ABM paths may go negative.

    Path k draws from its own generator seeded with (seed, k), which keeps
    paths reproducible regardless of ``path_count`` or worker scheduling.

    Parameters
    ----------
    max_workers : int, optional
        Number of threads used to simulate paths. ``None`` or 1 simulates
        sequentially in the calling thread.
    """

    DEFAULT_MAX_WORKERS = 1

    def __init__(self, max_workers: Optional[int] = None):
        if max_workers is None:
            max_workers = self.DEFAULT_MAX_WORKERS
        if (
            isinstance(max_workers, bool)
            or not isinstance(max_workers, (int, np.integer))
            or max_workers < 1
        ):
            raise InvalidParameterError(
                "max_workers", max_workers, "must be a positive integer"
            )
        self.max_workers = int(max_workers)

    def generate(self, request: SimulationRequest) -> PathSet:
        """Simulate every path of a request.

        Parameters
        ----------
        request : SimulationRequest
            Parameters, grid, initial value, path count and optional seed

        Returns
        -------
        PathSet
            Successful paths in index order, plus one
            ``NumericOverflowError`` per path that became non-finite

        Raises
        ------
        InvalidParameterError
            If the request is invalid; raised before any path is simulated
        """
        if not isinstance(request, SimulationRequest):
            raise InvalidParameterError(
                "request", request, "must be a SimulationRequest"
            )
        request.validate()

        grid = request.grid
        times = grid.times
        times.setflags(write=False)

        # Computed once per grid and shared by every path
        sqrt_dt = grid.sqrt_dt
        drift_step = request.parameters.drift * grid.dt
        diffusion_scale = request.parameters.volatility * sqrt_dt

        if request.seed is not None:
            entropy = request.seed
        else:
            entropy = np.random.SeedSequence().entropy

        def simulate(index: int) -> Union[Path, NumericOverflowError]:
            try:
                return self._simulate_path(
                    index=index,
                    entropy=entropy,
                    initial_value=request.initial_value,
                    drift_step=drift_step,
                    diffusion_scale=diffusion_scale,
                    times=times,
                )
            except NumericOverflowError as exc:
                return exc

        if self.max_workers > 1 and request.path_count > 1:
            workers = min(self.max_workers, request.path_count)
            # Results come back in input order
            outcomes = Parallel(n_jobs=workers, prefer="threads")(
                delayed(simulate)(index) for index in range(request.path_count)
            )
        else:
            outcomes = [simulate(index) for index in range(request.path_count)]

        paths = [o for o in outcomes if isinstance(o, Path)]
        failures = [o for o in outcomes if isinstance(o, NumericOverflowError)]

        return PathSet(
            request=request,
            paths=paths,
            failures=failures,
            times=times,
            entropy=entropy,
        )

    @staticmethod
    def _simulate_path(
        index: int,
        entropy: int,
        initial_value: float,
        drift_step: float,
        diffusion_scale: float,
        times: np.ndarray,
    ) -> Path:
        """Simulate a single path.

        Raises
        ------
        NumericOverflowError
            At the first step whose value is not finite
        """
        steps = len(times) - 1
        rng = np.random.default_rng(
            np.random.SeedSequence(entropy=entropy, spawn_key=(index,))
        )
        z = rng.standard_normal(steps)

        values = np.empty(steps + 1, dtype=float)
        values[0] = initial_value
        with np.errstate(over="ignore", invalid="ignore"):
            values[1:] = drift_step + diffusion_scale * z
            # accumulate is sequential: S(i) = S(i-1) + increment(i)
            np.add.accumulate(values, out=values)

        non_finite = np.flatnonzero(~np.isfinite(values))
        if non_finite.size:
            step = int(non_finite[0])
            raise NumericOverflowError(
                path_index=index,
                step=step,
                time=float(times[step]),
                value=float(values[step]),
            )

        return Path(index, times, values)


def _coerce_parameters(parameters) -> ModelParameters:
    if isinstance(parameters, ModelParameters):
        return parameters
    if isinstance(parameters, Mapping):
        return ModelParameters(
            drift=parameters.get("drift"),
            volatility=parameters.get("volatility"),
        )
    raise InvalidParameterError(
        "parameters", parameters, "must be ModelParameters or a mapping"
    )


def _coerce_grid(grid) -> TimeGrid:
    if isinstance(grid, TimeGrid):
        return grid
    if isinstance(grid, Mapping):
        return TimeGrid(
            start=grid.get("start", 0.0),
            end=grid.get("end"),
            steps=grid.get("steps"),
        )
    raise InvalidParameterError("grid", grid, "must be a TimeGrid or a mapping")


def generate(
    parameters: Union[ModelParameters, Mapping],
    grid: Union[TimeGrid, Mapping],
    initial_value: float,
    path_count: int = 1,
    seed: Optional[int] = None,
    max_workers: Optional[int] = None,
) -> List[List[Dict[str, float]]]:
    """Simulate ABM paths and return them as plain records.

    Parameters
    ----------
    parameters : ModelParameters or mapping
        ``{'drift': mu, 'volatility': sigma}``
    grid : TimeGrid or mapping
        ``{'start': t0, 'end': t1, 'steps': n}``; ``start`` defaults to 0
    initial_value : float
        Value of every path at the grid start
    path_count : int, default=1
        Number of independent paths
    seed : int, optional
        Seed for reproducible output
    max_workers : int, optional
        Threads used to simulate paths

    Returns
    -------
    list
        One list of ``{'time': t, 'value': v}`` dicts per path

    Raises
    ------
    InvalidParameterError
        If any input is invalid
    NumericOverflowError
        If any path became non-finite; ``failures`` lists every such path
    """
    request = SimulationRequest(
        parameters=_coerce_parameters(parameters),
        grid=_coerce_grid(grid),
        initial_value=initial_value,
        path_count=path_count,
        seed=seed,
    )
    path_set = PathSimulator(max_workers=max_workers).generate(request)
    path_set.raise_for_failures()
    return path_set.to_records()
