"""
Arithmetic Brownian Motion model for asset price simulation.

This module wraps the path simulator behind a single object configured
with the model parameters and simulation size, starting at t = 0.
"""

from typing import Optional, Union
import numpy as np

from abm.simulation.path_generator import PathSimulator
from abm.simulation.path_set import PathSet
from abm.simulation.request import ModelParameters, SimulationRequest, TimeGrid


class ArithmeticBrownianMotion:
    """
    Arithmetic Brownian Motion model.

    Simulates the price of an asset with

        dS = mu * dt + sigma * dW

    where increments are normally distributed, so (unlike Geometric
    Brownian Motion) simulated prices can become negative.

    Parameters
    ----------
    mu : float, default=0.05
        Drift (expected change per unit time)
    sigma : float, default=0.4
        Volatility (standard deviation of changes per unit time), >= 0
    n_paths : int, default=50
        Number of simulated paths
    n_steps : int, default=200
        Number of steps in each path
    t_end : float, default=1.0
        Total simulated time
    s_0 : float, default=200.0
        Initial value of the asset (price at t=0)
    seed : int, optional
        Random seed for reproducibility
    max_workers : int, optional
        Threads used to simulate paths

    Attributes
    ----------
    paths : np.ndarray
        Simulated paths of shape (n_paths, n_steps + 1), set by simulate()
    path_set : PathSet
        Full result of the last simulate() call
    """

    def __init__(
        self,
        mu: float = 0.05,
        sigma: float = 0.4,
        n_paths: int = 50,
        n_steps: int = 200,
        t_end: float = 1.0,
        s_0: float = 200.0,
        seed: Optional[int] = None,
        max_workers: Optional[int] = None,
    ):
        self.parameters = ModelParameters(drift=mu, volatility=sigma)
        self.grid = TimeGrid(start=0.0, end=t_end, steps=n_steps)
        self.request = SimulationRequest(
            parameters=self.parameters,
            grid=self.grid,
            initial_value=s_0,
            path_count=n_paths,
            seed=seed,
        )
        self.simulator = PathSimulator(max_workers=max_workers)

        self.path_set: Optional[PathSet] = None
        self.paths: Optional[np.ndarray] = None

    @property
    def mu(self) -> float:
        return self.parameters.drift

    @property
    def sigma(self) -> float:
        return self.parameters.volatility

    @property
    def n_paths(self) -> int:
        return self.request.path_count

    @property
    def n_steps(self) -> int:
        return self.grid.steps

    @property
    def t_end(self) -> float:
        return self.grid.end

    @property
    def s_0(self) -> float:
        return self.request.initial_value

    def time_grid(self) -> np.ndarray:
        """
        Time axis of the simulation.

        Returns
        -------
        np.ndarray
            Times 0, dt, ..., t_end (n_steps + 1 values)
        """
        return self.grid.times

    def simulate(self) -> np.ndarray:
        """
        Simulate the asset price paths using the Euler-Maruyama method.

        Returns
        -------
        np.ndarray
            Array of shape (n_paths, n_steps + 1); every row starts at s_0

        Raises
        ------
        NumericOverflowError
            If any path became non-finite
        """
        self.path_set = self.simulator.generate(self.request)
        self.path_set.raise_for_failures()
        self.paths = self.path_set.values
        return self.paths

    def theoretical_mean(
        self, t: Union[float, np.ndarray]
    ) -> Union[float, np.ndarray]:
        """E[S(t)] = s_0 + mu * t."""
        return self.parameters.expected_value(self.s_0, t)

    def theoretical_var(
        self, t: Union[float, np.ndarray]
    ) -> Union[float, np.ndarray]:
        """Var[S(t)] = sigma^2 * t."""
        return self.parameters.variance(t)
