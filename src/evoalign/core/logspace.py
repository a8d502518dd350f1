"""
Log-domain vector and matrix products.

Probabilities are carried as natural logarithms; zero probability is -inf.
"""

import numpy as np
from scipy.special import logsumexp


def safe_log(x) -> np.ndarray:
    """Elementwise log that maps zero to -inf without a warning."""
    with np.errstate(divide="ignore"):
        return np.log(x)


def one_hot_log(size: int, state: int) -> np.ndarray:
    """Log-vector of a point mass at ``state``."""
    v = np.full(size, -np.inf)
    v[state] = 0.0
    return v


def log_inner_product(log_a: np.ndarray, log_b: np.ndarray) -> float:
    """log(sum_i a_i * b_i)."""
    return float(logsumexp(log_a + log_b))


def log_matvec(log_M: np.ndarray, log_v: np.ndarray) -> np.ndarray:
    """out[i] = log(sum_j M[i,j] * v[j])."""
    return logsumexp(log_M + log_v[np.newaxis, :], axis=1)


def log_vecmat(log_v: np.ndarray, log_M: np.ndarray) -> np.ndarray:
    """out[j] = log(sum_i v[i] * M[i,j])."""
    return logsumexp(log_v[:, np.newaxis] + log_M, axis=0)
