"""Value objects describing a simulation request."""

import math
import numbers
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from abm.exceptions import InvalidParameterError


def _as_float(field: str, value) -> float:
    """Coerce a real number to float, rejecting bools, NaN and infinities."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidParameterError(field, value, "must be a real number")
    try:
        value = float(value)
    except OverflowError:
        raise InvalidParameterError(field, value, "must be finite") from None
    if not math.isfinite(value):
        raise InvalidParameterError(field, value, "must be finite")
    return value


def _as_int(field: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidParameterError(field, value, "must be an integer")
    return int(value)


@dataclass(frozen=True)
class ModelParameters:
    """Drift and volatility of dS = mu*dt + sigma*dW.

    Parameters
    ----------
    drift : float
        Deterministic trend per unit time (mu)
    volatility : float
        Diffusion coefficient (sigma). Must be >= 0; a value of 0 yields
        pure deterministic drift.
    """

    drift: float
    volatility: float

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check invariants, normalising both fields to float.

        Raises
        ------
        InvalidParameterError
            If drift is not finite, or volatility is negative or not finite
        """
        object.__setattr__(self, "drift", _as_float("drift", self.drift))
        volatility = _as_float("volatility", self.volatility)
        if volatility < 0:
            raise InvalidParameterError(
                "volatility", volatility, "must be non-negative"
            )
        object.__setattr__(self, "volatility", volatility)

    def expected_value(
        self, initial_value: float, t: Union[float, np.ndarray]
    ) -> Union[float, np.ndarray]:
        """E[S(t)] = S0 + mu*t for a path started at t=0."""
        return initial_value + self.drift * np.asarray(t, dtype=float)

    def variance(self, t: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        """Var[S(t)] = sigma^2 * t."""
        return self.volatility ** 2 * np.asarray(t, dtype=float)

    def std(self, t: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        """Standard deviation sigma * sqrt(t)."""
        return self.volatility * np.sqrt(np.asarray(t, dtype=float))


@dataclass(frozen=True)
class TimeGrid:
    """Uniform time grid over [start, end] with ``steps`` intervals.

    Parameters
    ----------
    start : float
        First grid time, >= 0
    end : float
        Last grid time, > start
    steps : int
        Number of intervals, >= 1
    """

    start: float
    end: float
    steps: int

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check invariants.

        Raises
        ------
        InvalidParameterError
            If start < 0, end <= start or steps < 1
        """
        start = _as_float("start", self.start)
        if start < 0:
            raise InvalidParameterError("start", start, "must be non-negative")
        end = _as_float("end", self.end)
        if end <= start:
            raise InvalidParameterError(
                "end", end, f"must be greater than start ({start})"
            )
        steps = _as_int("steps", self.steps)
        if steps < 1:
            raise InvalidParameterError("steps", steps, "must be at least 1")
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)
        object.__setattr__(self, "steps", steps)

    @property
    def horizon(self) -> float:
        return self.end - self.start

    @property
    def dt(self) -> float:
        """Constant step size (end - start) / steps."""
        return (self.end - self.start) / self.steps

    @property
    def sqrt_dt(self) -> float:
        return math.sqrt(self.dt)

    @property
    def times(self) -> np.ndarray:
        """Grid times ``start + i*dt`` for i = 0..steps."""
        return self.start + np.arange(self.steps + 1, dtype=float) * self.dt


@dataclass(frozen=True)
class SimulationRequest:
    """Everything needed for one call to ``PathSimulator.generate``.

    Parameters
    ----------
    parameters : ModelParameters
        Drift and volatility
    grid : TimeGrid
        Uniform time grid
    initial_value : float
        Value of every path at ``grid.start``
    path_count : int, default=1
        Number of independent paths, >= 1
    seed : int, optional
        Non-negative seed. Identical requests with the same seed produce
        identical paths; path k depends only on (seed, k).
    """

    parameters: ModelParameters
    grid: TimeGrid
    initial_value: float
    path_count: int = 1
    seed: Optional[int] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check every field of the request.

        Raises
        ------
        InvalidParameterError
            Naming the first offending field
        """
        if not isinstance(self.parameters, ModelParameters):
            raise InvalidParameterError(
                "parameters", self.parameters, "must be a ModelParameters"
            )
        if not isinstance(self.grid, TimeGrid):
            raise InvalidParameterError("grid", self.grid, "must be a TimeGrid")
        self.parameters.validate()
        self.grid.validate()

        object.__setattr__(
            self, "initial_value", _as_float("initial_value", self.initial_value)
        )
        path_count = _as_int("path_count", self.path_count)
        if path_count < 1:
            raise InvalidParameterError(
                "path_count", path_count, "must be at least 1"
            )
        object.__setattr__(self, "path_count", path_count)

        if self.seed is not None:
            seed = _as_int("seed", self.seed)
            if seed < 0:
                raise InvalidParameterError("seed", seed, "must be non-negative")
            object.__setattr__(self, "seed", seed)
