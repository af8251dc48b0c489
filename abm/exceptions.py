"""Exception types raised by the ABM simulator."""

from typing import Any, List, Optional


class SimulationError(Exception):
    """Base class for all simulator errors."""


class InvalidParameterError(SimulationError, ValueError):
    """A simulation request is structurally invalid.

    Raised before any simulation work begins.

    Parameters
    ----------
    field : str
        Name of the offending field (e.g. ``'volatility'``)
    value : Any
        The rejected value
    reason : str
        Human readable description of the constraint that was violated
    """

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


class NumericOverflowError(SimulationError, ArithmeticError):
    """A simulated value became non-finite.

    Parameters
    ----------
    path_index : int
        Index of the path that overflowed
    step : int
        First step whose value is non-finite (1-based, step 0 is the
        initial value)
    time : float
        Grid time of that step
    value : float
        The non-finite value (``inf``, ``-inf`` or ``nan``)
    """

    def __init__(self, path_index: int, step: int, time: float, value: float):
        self.path_index = path_index
        self.step = step
        self.time = time
        self.value = value
        # Populated when several per-path failures are raised together
        self.failures: List["NumericOverflowError"] = [self]
        super().__init__(
            f"Path {path_index} became non-finite ({value}) at step {step} "
            f"(t={time:g}); reduce drift, volatility or the grid horizon"
        )

    def with_failures(
        self, failures: Optional[List["NumericOverflowError"]]
    ) -> "NumericOverflowError":
        """Attach the full list of failures of a call and return self."""
        if failures:
            self.failures = list(failures)
        return self
