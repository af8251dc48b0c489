"""Simulation engine for generating and summarising ABM paths."""

from abm.simulation.request import ModelParameters, TimeGrid, SimulationRequest
from abm.simulation.path_set import PathSet
from abm.simulation.path_generator import Path, PathPoint, PathSimulator, generate

__all__ = [
    "ModelParameters",
    "TimeGrid",
    "SimulationRequest",
    "Path",
    "PathPoint",
    "PathSet",
    "PathSimulator",
    "generate",
]
