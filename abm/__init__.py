"""Arithmetic Brownian Motion (ABM) path simulator.

A Python package for simulating asset price paths following
dS = mu*dt + sigma*dW with the Euler-Maruyama scheme.
"""

from abm.exceptions import (
    SimulationError,
    InvalidParameterError,
    NumericOverflowError,
)
from abm.model import ArithmeticBrownianMotion
from abm.simulation import (
    ModelParameters,
    TimeGrid,
    SimulationRequest,
    Path,
    PathPoint,
    PathSet,
    PathSimulator,
    generate,
)

__version__ = "1.0.0"
__all__ = [
    "ArithmeticBrownianMotion",
    "ModelParameters",
    "TimeGrid",
    "SimulationRequest",
    "Path",
    "PathPoint",
    "PathSet",
    "PathSimulator",
    "generate",
    "SimulationError",
    "InvalidParameterError",
    "NumericOverflowError",
]
