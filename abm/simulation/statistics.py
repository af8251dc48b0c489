"""Statistical self-checks for simulated ABM paths.

The closed-form solution S(t) = S0 + mu*t + sigma*W(t) gives exact
moments, so a path set can be checked against them:

- terminal mean against S0 + mu*T (one-sample t-test)
- terminal variance against sigma^2*T (chi-square test)
- Gaussian increments (D'Agostino-Pearson test)
- no correlation between the increments of different paths
"""

from typing import Dict, Tuple

import numpy as np
from scipy import stats

from abm.simulation.path_set import PathSet


def _check_alpha(alpha: float) -> None:
    if not 0 < alpha < 1:
        raise ValueError(f"alpha must be between 0 and 1, got {alpha}")


def _terminal_sample(path_set: PathSet, min_paths: int = 2) -> np.ndarray:
    values = path_set.terminal_values()
    if values.size < min_paths:
        raise ValueError(
            f"At least {min_paths} completed paths are required, "
            f"got {values.size}"
        )
    return values


def _theoretical_terminal(path_set: PathSet) -> Tuple[float, float]:
    request = path_set.request
    horizon = request.grid.horizon
    mean = float(request.parameters.expected_value(request.initial_value, horizon))
    variance = float(request.parameters.variance(horizon))
    return mean, variance


def summarize_terminal(path_set: PathSet) -> Dict[str, float]:
    """Compare terminal sample moments with the closed-form ones.

    Parameters
    ----------
    path_set : PathSet
        Result of a simulation with at least two completed paths

    Returns
    -------
    dict
        sample_mean, sample_variance, sample_std, expected_mean,
        expected_variance, expected_std, mean_error, variance_error and
        n_paths
    """
    values = _terminal_sample(path_set)
    expected_mean, expected_variance = _theoretical_terminal(path_set)
    sample_mean = float(np.mean(values))
    sample_variance = float(np.var(values, ddof=1))
    return {
        "n_paths": int(values.size),
        "sample_mean": sample_mean,
        "sample_variance": sample_variance,
        "sample_std": float(np.sqrt(sample_variance)),
        "expected_mean": expected_mean,
        "expected_variance": expected_variance,
        "expected_std": float(np.sqrt(expected_variance)),
        "mean_error": sample_mean - expected_mean,
        "variance_error": sample_variance - expected_variance,
    }


def check_moments(path_set: PathSet, alpha: float = 0.001) -> Dict:
    """Test terminal mean and variance against their theoretical values.

    With zero volatility the terminal value is deterministic, so the
    check becomes an exact comparison within floating-point tolerance.

    Parameters
    ----------
    path_set : PathSet
        Result of a simulation with at least two completed paths
    alpha : float, default=0.001
        Significance level of each test

    Returns
    -------
    dict
        The ``summarize_terminal`` fields plus mean_pvalue,
        variance_pvalue, mean_passed, variance_passed and passed
    """
    _check_alpha(alpha)
    summary = summarize_terminal(path_set)
    values = _terminal_sample(path_set)
    n = values.size
    expected_mean = summary["expected_mean"]
    expected_variance = summary["expected_variance"]

    if expected_variance == 0.0:
        scale = max(1.0, abs(expected_mean))
        mean_passed = bool(
            np.allclose(values, expected_mean, rtol=1e-9, atol=1e-9 * scale)
        )
        mean_pvalue = 1.0 if mean_passed else 0.0
        variance_passed = mean_passed
        variance_pvalue = mean_pvalue
    else:
        mean_pvalue = float(stats.ttest_1samp(values, expected_mean).pvalue)
        # (n-1) s^2 / sigma^2 ~ chi2(n-1), two-sided
        statistic = (n - 1) * summary["sample_variance"] / expected_variance
        cdf = stats.chi2.cdf(statistic, df=n - 1)
        variance_pvalue = float(min(1.0, 2 * min(cdf, 1 - cdf)))
        mean_passed = mean_pvalue >= alpha
        variance_passed = variance_pvalue >= alpha

    summary.update({
        "alpha": alpha,
        "mean_pvalue": mean_pvalue,
        "variance_pvalue": variance_pvalue,
        "mean_passed": mean_passed,
        "variance_passed": variance_passed,
        "passed": mean_passed and variance_passed,
    })
    return summary


def standardized_increments(path_set: PathSet) -> np.ndarray:
    """Return increments rescaled to N(0, 1) under the model.

    Array of shape (n_successful, steps).

    Raises
    ------
    ValueError
        If volatility is zero (increments are deterministic)
    """
    request = path_set.request
    volatility = request.parameters.volatility
    if volatility == 0:
        raise ValueError("Increments are deterministic when volatility is 0")
    dt = request.grid.dt
    increments = np.diff(path_set.values, axis=1)
    return (increments - request.parameters.drift * dt) / (volatility * np.sqrt(dt))


def check_normality(path_set: PathSet, alpha: float = 0.001) -> Dict:
    """Test that pooled standardized increments are standard normal.

    Returns
    -------
    dict
        statistic, pvalue, mean, std, n_samples and passed
    """
    _check_alpha(alpha)
    z = standardized_increments(path_set).ravel()
    if z.size < 20:
        raise ValueError(
            f"At least 20 increments are required, got {z.size}"
        )
    result = stats.normaltest(z)
    pvalue = float(result.pvalue)
    return {
        "statistic": float(result.statistic),
        "pvalue": pvalue,
        "mean": float(np.mean(z)),
        "std": float(np.std(z, ddof=1)),
        "n_samples": int(z.size),
        "passed": pvalue >= alpha,
    }


def check_independence(
    path_set: PathSet, alpha: float = 0.001, max_pairs: int = 100
) -> Dict:
    """Check that distinct paths are not identical or correlated.

    Every path is compared with every other for exact duplicates.
    Increments of consecutive path pairs are tested with Pearson's
    correlation; a Bonferroni correction is applied across pairs.

    Parameters
    ----------
    path_set : PathSet
        Result of a simulation with at least two completed paths and at
        least three steps
    alpha : float, default=0.001
        Family-wise significance level
    max_pairs : int, default=100
        Maximum number of path pairs to test

    Returns
    -------
    dict
        n_pairs, duplicate_paths, min_pvalue, max_abs_correlation and
        passed
    """
    _check_alpha(alpha)
    if max_pairs < 1:
        raise ValueError(f"max_pairs must be positive, got {max_pairs}")
    values = path_set.values
    if values.shape[0] < 2:
        raise ValueError(
            f"At least 2 completed paths are required, got {values.shape[0]}"
        )
    if values.shape[1] < 4:
        raise ValueError("At least 3 steps are required to test correlation")

    increments = np.diff(values, axis=1)
    n_pairs = min(max_pairs, values.shape[0] - 1)

    # Paths duplicating an earlier path, compared across the whole set
    duplicate_paths = int(values.shape[0] - np.unique(values, axis=0).shape[0])

    min_pvalue = 1.0
    max_abs_correlation = 0.0
    for i in range(n_pairs):
        a, b = increments[i], increments[i + 1]
        if np.array_equal(a, b):
            continue
        if np.ptp(a) == 0 or np.ptp(b) == 0:
            # Deterministic increments carry no correlation information
            continue
        result = stats.pearsonr(a, b)
        min_pvalue = min(min_pvalue, float(result.pvalue))
        max_abs_correlation = max(max_abs_correlation, abs(float(result.statistic)))

    return {
        "n_pairs": n_pairs,
        "duplicate_paths": duplicate_paths,
        "min_pvalue": min_pvalue,
        "max_abs_correlation": max_abs_correlation,
        "passed": duplicate_paths == 0 and min_pvalue >= alpha / n_pairs,
    }
