"""Container for the paths produced by one simulation request."""

from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

import numpy as np
import pandas as pd

from abm.exceptions import NumericOverflowError

if TYPE_CHECKING:
    from abm.simulation.path_generator import Path
    from abm.simulation.request import SimulationRequest


class PathSet:
    """Result of ``PathSimulator.generate``.

    Holds the paths that completed, the per-path overflow failures, and
    summary statistics across paths.

    Parameters
    ----------
    request : SimulationRequest
        Request the paths were generated from
    paths : list of Path
        Successfully simulated paths, ordered by index
    failures : list of NumericOverflowError
        One entry per path that became non-finite
    times : np.ndarray
        Grid times shared by every path
    entropy : int
        Seed entropy used; equals ``request.seed`` when one was given.
        Passing it as the seed reproduces an unseeded run.
    """

    def __init__(
        self,
        request: "SimulationRequest",
        paths: List["Path"],
        failures: List[NumericOverflowError],
        times: np.ndarray,
        entropy: int,
    ):
        self.request = request
        self.paths = tuple(paths)
        self.failures = tuple(failures)
        self.times = times
        self.entropy = entropy

    @property
    def ok(self) -> bool:
        """True when every path completed."""
        return not self.failures

    def raise_for_failures(self) -> None:
        """Raise the first overflow failure, if any.

        Raises
        ------
        NumericOverflowError
            With ``failures`` listing every failed path
        """
        if self.failures:
            first = self.failures[0]
            raise NumericOverflowError(
                path_index=first.path_index,
                step=first.step,
                time=first.time,
                value=first.value,
            ).with_failures(list(self.failures))

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self) -> Iterator["Path"]:
        return iter(self.paths)

    def __getitem__(self, i: int) -> "Path":
        return self.paths[i]

    def __repr__(self) -> str:
        return (
            f"PathSet(paths={len(self.paths)}, failures={len(self.failures)}, "
            f"points={len(self.times)})"
        )

    @property
    def values(self) -> np.ndarray:
        """Array of shape (n_successful, steps + 1)."""
        if not self.paths:
            return np.empty((0, len(self.times)), dtype=float)
        return np.vstack([path.values for path in self.paths])

    def terminal_values(self) -> np.ndarray:
        """Values of every successful path at the last grid time."""
        return self.get_values_at_step(-1)

    def get_values_at_step(self, step: int) -> np.ndarray:
        """Values of every successful path at grid step ``step``.

        Raises
        ------
        IndexError
            If ``step`` is outside the grid
        """
        n_points = len(self.times)
        if not -n_points <= step < n_points:
            raise IndexError(f"step {step} outside grid of {n_points} points")
        return np.array([path.values[step] for path in self.paths], dtype=float)

    def get_statistics(self) -> Dict:
        """Get counts of completed and failed paths.

        Returns
        -------
        dict
            Dictionary with statistics:
            - num_total: Number of requested paths
            - num_completed: Number of paths that completed
            - num_failed: Number of paths that overflowed
            - success_rate: Fraction of paths that completed
        """
        num_total = self.request.path_count
        num_completed = len(self.paths)
        return {
            "num_total": num_total,
            "num_completed": num_completed,
            "num_failed": len(self.failures),
            "success_rate": num_completed / num_total if num_total > 0 else 0.0,
        }

    def get_bounds_at_step(self, step: int) -> Optional[Dict[str, float]]:
        """Get min/max/mean/std/median across paths at a grid step.

        Returns
        -------
        dict, optional
            Summary statistics, or None if no path completed
        """
        values = self.get_values_at_step(step)
        if values.size == 0:
            return None
        return {
            "time": float(self.times[step]),
            "min": float(np.min(values)),
            "max": float(np.max(values)),
            "mean": float(np.mean(values)),
            "std": float(np.std(values)),
            "median": float(np.median(values)),
        }

    def to_frame(self) -> pd.DataFrame:
        """Return paths as a DataFrame indexed by time, one column per path."""
        return pd.DataFrame(
            {path.index: path.values for path in self.paths},
            index=pd.Index(np.asarray(self.times, dtype=float), name="time"),
        )

    def to_records(self) -> List[List[Dict[str, float]]]:
        """Return paths as lists of ``{'time': t, 'value': v}`` dicts."""
        return [path.to_records() for path in self.paths]
