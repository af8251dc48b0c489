"""
Tests for the ABM path simulator.
"""

from unittest.mock import patch

import numpy as np
import pytest
from joblib import Parallel

from abm.exceptions import InvalidParameterError, NumericOverflowError
from abm.simulation import (
    ModelParameters,
    Path,
    PathPoint,
    PathSimulator,
    SimulationRequest,
    TimeGrid,
    generate,
)


def make_request(
    drift=0.05,
    volatility=0.2,
    start=0.0,
    end=1.0,
    steps=252,
    initial_value=100.0,
    path_count=1,
    seed=42,
):
    return SimulationRequest(
        parameters=ModelParameters(drift=drift, volatility=volatility),
        grid=TimeGrid(start=start, end=end, steps=steps),
        initial_value=initial_value,
        path_count=path_count,
        seed=seed,
    )


class TestPathSimulator:
    """Test suite for PathSimulator.generate."""

    @pytest.fixture
    def simulator(self):
        return PathSimulator()

    @pytest.fixture
    def request_100(self):
        """Request for 100 paths on a 50-step grid."""
        return make_request(steps=50, path_count=100, seed=7)

    def test_concrete_scenario(self, simulator):
        """Test the daily-grid scenario with a single seeded path."""
        path_set = simulator.generate(make_request())

        assert len(path_set) == 1
        path = path_set[0]
        assert len(path) == 253
        assert path[0] == PathPoint(0.0, 100.0)
        assert path.terminal.time == pytest.approx(1.0)

    def test_determinism(self, simulator, request_100):
        """Test that the same request and seed give identical paths."""
        first = simulator.generate(request_100)
        second = simulator.generate(request_100)

        assert first.paths == second.paths
        np.testing.assert_array_equal(first.values, second.values)

    def test_different_seeds_differ(self, simulator):
        """Test that different seeds produce different paths."""
        a = simulator.generate(make_request(seed=1))
        b = simulator.generate(make_request(seed=2))

        assert not np.array_equal(a.values, b.values)

    def test_grid_shape(self, simulator):
        """Test path length, first point and time spacing."""
        request = make_request(start=2.0, end=5.0, steps=30, path_count=5,
                               initial_value=-3.5)
        path_set = simulator.generate(request)

        for path in path_set:
            assert len(path) == 31
            assert path.initial == PathPoint(2.0, -3.5)
            np.testing.assert_allclose(np.diff(path.times), 0.1, rtol=1e-12)
            assert path.times[-1] == pytest.approx(5.0)

    def test_zero_volatility_is_pure_drift(self, simulator):
        """Test that sigma = 0 yields S0 + mu*i*dt regardless of seed."""
        expected = 100.0 + 0.05 * np.arange(253) / 252

        for seed in (1, 2, None):
            path_set = simulator.generate(
                make_request(volatility=0.0, path_count=3, seed=seed)
            )
            assert path_set.ok
            for path in path_set:
                assert np.all(np.isfinite(path.values))
                np.testing.assert_allclose(path.values, expected, rtol=1e-12)

    def test_negative_values_are_not_clamped(self, simulator):
        """Test that ABM paths are allowed to cross zero."""
        path_set = simulator.generate(
            make_request(drift=-10.0, volatility=0.0, initial_value=1.0, steps=10)
        )

        assert path_set[0].terminal.value == pytest.approx(-9.0)
        assert np.any(path_set[0].values < 0)

    def test_paths_are_distinct(self, simulator, request_100):
        """Test that paths of one request are not copies of each other."""
        values = simulator.generate(request_100).values

        assert len({tuple(row) for row in values}) == 100

    def test_path_depends_only_on_seed_and_index(self, simulator):
        """Test that path k is the same whatever the path count."""
        small = simulator.generate(make_request(path_count=3, seed=11))
        large = simulator.generate(make_request(path_count=10, seed=11))

        for k in range(3):
            assert small[k] == large[k]

    def test_threaded_matches_sequential(self, request_100):
        """Test that distributing paths over threads changes nothing."""
        sequential = PathSimulator().generate(request_100)
        threaded = PathSimulator(max_workers=4).generate(request_100)

        assert [p.index for p in threaded] == list(range(100))
        np.testing.assert_array_equal(sequential.values, threaded.values)

    @patch(
        "abm.simulation.path_generator.Parallel",
        wraps=Parallel,
    )
    def test_thread_pool_used_when_requested(self, mock_parallel, request_100):
        """Test that max_workers > 1 runs paths on a thread pool."""
        PathSimulator(max_workers=4).generate(request_100)

        mock_parallel.assert_called_once_with(n_jobs=4, prefer="threads")

    @patch(
        "abm.simulation.path_generator.Parallel",
        wraps=Parallel,
    )
    def test_sequential_by_default(self, mock_parallel, simulator, request_100):
        """Test that the default simulator does not start threads."""
        simulator.generate(request_100)

        mock_parallel.assert_not_called()

    def test_unseeded_run_can_be_replayed(self, simulator):
        """Test that the reported entropy reproduces an unseeded run."""
        first = simulator.generate(make_request(seed=None, path_count=4))
        replay = simulator.generate(
            make_request(seed=first.entropy, path_count=4)
        )

        assert first.entropy is not None
        np.testing.assert_array_equal(first.values, replay.values)

    def test_request_is_not_mutated(self, simulator, request_100):
        """Test that generate leaves the request untouched."""
        before = (request_100.parameters, request_100.grid,
                  request_100.initial_value, request_100.path_count,
                  request_100.seed)

        simulator.generate(request_100)

        after = (request_100.parameters, request_100.grid,
                 request_100.initial_value, request_100.path_count,
                 request_100.seed)
        assert before == after

    def test_mean_and_variance_converge(self, simulator):
        """Test terminal sample moments against S0 + mu*T and sigma^2*T."""
        path_set = simulator.generate(make_request(path_count=10000, seed=2024))
        terminal = path_set.terminal_values()

        # Five standard errors
        assert abs(terminal.mean() - 100.05) < 5 * 0.2 / np.sqrt(10000)
        assert abs(terminal.var(ddof=1) - 0.04) < 5 * 0.04 * np.sqrt(2 / 9999)

    def test_terminal_distribution_across_seeds(self, simulator):
        """Test the concrete scenario's terminal value over many seeds."""
        terminal = np.array([
            simulator.generate(make_request(seed=seed))[0].terminal.value
            for seed in range(2000)
        ])

        assert abs(terminal.mean() - 100.05) < 5 * 0.2 / np.sqrt(2000)
        assert abs(terminal.std(ddof=1) - 0.2) < 0.02

    def test_overflow_is_reported_per_path(self, simulator):
        """Test that a non-finite step is reported with path and step."""
        request = make_request(drift=1e308, volatility=0.0, start=0.0,
                               end=10.0, steps=10, initial_value=0.0,
                               path_count=3)

        path_set = simulator.generate(request)

        assert not path_set.ok
        assert len(path_set) == 0
        assert [f.path_index for f in path_set.failures] == [0, 1, 2]
        for failure in path_set.failures:
            assert isinstance(failure, NumericOverflowError)
            assert failure.step == 2
            assert failure.time == pytest.approx(2.0)
            assert np.isinf(failure.value)

    def test_overflow_does_not_abort_siblings(self):
        """Test that completed paths are kept alongside failed ones."""
        request = make_request(drift=0.0, volatility=1e308, end=1.0, steps=1,
                               initial_value=0.0, path_count=200, seed=3)

        for simulator in (PathSimulator(), PathSimulator(max_workers=3)):
            path_set = simulator.generate(request)
            completed = {p.index for p in path_set}
            failed = {f.path_index for f in path_set.failures}

            assert completed and failed
            assert completed.isdisjoint(failed)
            assert completed | failed == set(range(200))
            assert all(f.step == 1 for f in path_set.failures)
            assert all(np.all(np.isfinite(p.values)) for p in path_set)

    def test_raise_for_failures(self, simulator):
        """Test that raise_for_failures carries every failure."""
        request = make_request(drift=1e308, volatility=0.0, end=10.0,
                               steps=10, initial_value=0.0, path_count=2)
        path_set = simulator.generate(request)

        with pytest.raises(NumericOverflowError, match="Path 0") as exc_info:
            path_set.raise_for_failures()
        assert len(exc_info.value.failures) == 2

    def test_rejects_non_request(self, simulator):
        """Test that generate only accepts a SimulationRequest."""
        with pytest.raises(InvalidParameterError, match="request"):
            simulator.generate({"drift": 0.1})

    @pytest.mark.parametrize("max_workers", [0, -2, 1.5, True])
    def test_invalid_max_workers(self, max_workers):
        """Test that the worker count must be a positive integer."""
        with pytest.raises(InvalidParameterError) as exc_info:
            PathSimulator(max_workers=max_workers)
        assert exc_info.value.field == "max_workers"


class TestPath:
    """Test suite for Path."""

    @pytest.fixture
    def path(self):
        return Path(3, [0.0, 0.5, 1.0], [10.0, 11.0, 9.5])

    def test_points(self, path):
        """Test indexing and iteration."""
        assert path.index == 3
        assert len(path) == 3
        assert path[1] == PathPoint(0.5, 11.0)
        assert list(path) == [(0.0, 10.0), (0.5, 11.0), (1.0, 9.5)]
        assert path.initial.value == 10.0
        assert path.terminal.time == 1.0

    def test_is_read_only(self, path):
        """Test that path arrays cannot be modified."""
        with pytest.raises(ValueError):
            path.values[0] = 0.0
        with pytest.raises(ValueError):
            path.times[0] = 0.0

    def test_copies_input(self):
        """Test that later changes to the source arrays do not leak in."""
        values = np.array([1.0, 2.0])
        path = Path(0, [0.0, 1.0], values)
        values[0] = 99.0

        assert path.values[0] == 1.0

    def test_to_records(self, path):
        assert path.to_records() == [
            {"time": 0.0, "value": 10.0},
            {"time": 0.5, "value": 11.0},
            {"time": 1.0, "value": 9.5},
        ]

    def test_to_series(self, path):
        series = path.to_series()

        assert series.name == 3
        assert series.index.name == "time"
        assert series.loc[0.5] == 11.0

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError, match="equal length"):
            Path(0, [0.0, 1.0], [1.0])


class TestGenerateFunction:
    """Test suite for the module-level generate entry point."""

    def test_returns_records(self):
        """Test the plain list-of-records output."""
        paths = generate(
            parameters={"drift": 0.05, "volatility": 0.2},
            grid={"start": 0, "end": 1, "steps": 252},
            initial_value=100,
            path_count=2,
            seed=42,
        )

        assert len(paths) == 2
        assert all(len(path) == 253 for path in paths)
        assert paths[0][0] == {"time": 0.0, "value": 100.0}

    def test_matches_simulator(self):
        """Test that generate agrees with PathSimulator."""
        records = generate(ModelParameters(0.05, 0.2),
                           TimeGrid(0.0, 1.0, 252), 100.0, seed=42)
        path_set = PathSimulator().generate(make_request())

        assert records == path_set.to_records()

    def test_grid_start_defaults_to_zero(self):
        paths = generate({"drift": 0.0, "volatility": 1.0},
                         {"end": 2.0, "steps": 4}, 0.0, seed=1)

        assert [p["time"] for p in paths[0]] == [0.0, 0.5, 1.0, 1.5, 2.0]

    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"parameters": {"drift": 0.05, "volatility": -1}}, "volatility"),
            ({"grid": {"start": 0, "end": 1, "steps": 0}}, "steps"),
            ({"path_count": 0}, "path_count"),
            ({"grid": {"start": 1, "end": 1, "steps": 10}}, "end"),
            ({"parameters": {"volatility": 0.2}}, "drift"),
            ({"parameters": [0.05, 0.2]}, "parameters"),
            ({"grid": (0, 1, 10)}, "grid"),
            ({"seed": -5}, "seed"),
        ],
    )
    @patch("abm.simulation.path_generator.PathSimulator._simulate_path")
    def test_invalid_input(self, mock_simulate, kwargs, field):
        """Test that invalid input fails before any path is simulated."""
        arguments = {
            "parameters": {"drift": 0.05, "volatility": 0.2},
            "grid": {"start": 0, "end": 1, "steps": 10},
            "initial_value": 100.0,
            "path_count": 2,
            "seed": 1,
        }
        arguments.update(kwargs)

        with pytest.raises(InvalidParameterError) as exc_info:
            generate(**arguments)

        assert exc_info.value.field == field
        assert field in str(exc_info.value)
        mock_simulate.assert_not_called()

    def test_overflow_raises(self):
        """Test that per-path failures surface as NumericOverflowError."""
        with pytest.raises(NumericOverflowError) as exc_info:
            generate({"drift": 1e308, "volatility": 0.0},
                     {"start": 0, "end": 10, "steps": 10},
                     initial_value=0.0, path_count=4, seed=0)

        assert exc_info.value.step == 2
        assert [f.path_index for f in exc_info.value.failures] == [0, 1, 2, 3]
