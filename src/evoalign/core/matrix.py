"""
Matrix helpers for continuous-time substitution models.

This module provides the reference matrix exponential, construction of
rate matrices from exchangeabilities, and the tolerance predicates that
guard every complex-to-real reduction in :mod:`evoalign.core.eigen`.
"""

import numpy as np
from scipy.linalg import expm

from ..constants import EPSILON


def matrix_exponential(Q: np.ndarray, t: float) -> np.ndarray:
    """
    Compute transition probability matrix P(t) = exp(Q*t).

    Uses scipy's Padé approximation with scaling and squaring. This is the
    independent reference against which eigendecomposition results are
    checked.

    Parameters
    ----------
    Q : ndarray, shape (n, n)
        Rate matrix (generator)
    t : float
        Branch length (time)

    Returns
    -------
    P : ndarray, shape (n, n)
        Transition probability matrix, P[i,j] = P(j | i, t)

    Examples
    --------
    >>> Q = np.array([[-1.0, 1.0], [2.0, -2.0]])
    >>> P = matrix_exponential(Q, 0.5)
    >>> np.allclose(P.sum(axis=1), 1.0)
    True
    """
    return expm(Q * t)


def create_reversible_Q(
    rates: np.ndarray, pi: np.ndarray, normalize: bool = True
) -> np.ndarray:
    """
    Create a reversible rate matrix from exchangeabilities and equilibrium frequencies.

    Parameters
    ----------
    rates : ndarray, shape (n, n)
        Symmetric exchangeability matrix (r[i,j] = r[j,i])
    pi : ndarray, shape (n,)
        Stationary distribution
    normalize : bool, default=True
        If True, scale Q so that the expected rate is 1 substitution per time unit

    Returns
    -------
    Q : ndarray, shape (n, n)
        Rate matrix with Q[i,j] = r[i,j] * pi[j] and zero row sums

    Examples
    --------
    >>> rates = np.ones((4, 4)) - np.eye(4)  # JC69
    >>> Q = create_reversible_Q(rates, np.ones(4) / 4)
    """
    Q = np.asarray(rates, dtype=float) * pi[np.newaxis, :]
    np.fill_diagonal(Q, 0.0)
    np.fill_diagonal(Q, -Q.sum(axis=1))

    if normalize:
        expected_rate = -np.dot(pi, Q.diagonal())
        Q /= expected_rate

    return Q


def check_detailed_balance(Q: np.ndarray, pi: np.ndarray, rtol: float = 1e-10) -> bool:
    """
    Test if rate matrix Q satisfies detailed balance with stationary distribution pi.

    Detailed balance: pi_i * Q[i,j] == pi_j * Q[j,i] for all i, j. The
    eigendecomposition never relies on this property; it is exposed for
    tests and diagnostics.
    """
    flux = pi[:, np.newaxis] * Q
    return bool(np.allclose(flux, flux.T, rtol=rtol, atol=0.0))


def check_generator(Q: np.ndarray, atol: float = 1e-8) -> bool:
    """Test that Q is square, has non-negative off-diagonals, and zero row sums."""
    if Q.ndim != 2 or Q.shape[0] != Q.shape[1]:
        return False
    off_diagonal = Q - np.diag(Q.diagonal())
    return bool(np.all(off_diagonal >= 0.0) and np.allclose(Q.sum(axis=1), 0.0, atol=atol))


def near_equal(x, y) -> np.ndarray:
    """
    Compare real or complex values within EPSILON.

    Real and imaginary parts are compared separately, each with an absolute
    and relative tolerance of EPSILON. Broadcasts like numpy.
    """
    x = np.asarray(x)
    y = np.asarray(y)
    return np.isclose(x.real, y.real, rtol=EPSILON, atol=EPSILON) & np.isclose(
        np.imag(x), np.imag(y), rtol=EPSILON, atol=EPSILON
    )


def near_real(z) -> np.ndarray:
    """True where the imaginary part of z is within EPSILON of zero."""
    return np.abs(np.imag(z)) <= EPSILON
