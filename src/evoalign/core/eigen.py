"""
Eigendecomposition of substitution rate matrices.

The generator Q is factored as Q = V @ diag(eigenvalues) @ V^{-1} using a
general (nonsymmetric) eigensolver, so no reversibility is assumed. A real
asymmetric Q can have complex-conjugate eigenpairs, so all intermediate
arithmetic is complex; every quantity that must be real (a probability or an
expected count) is checked to have a negligible imaginary part before it is
returned.
"""

import logging
import warnings

import numpy as np
from scipy.linalg import LinAlgWarning, eig, lu_factor, lu_solve

from ..constants import EPSILON
from ..errors import InvariantError, invariant
from .matrix import near_equal, near_real

logger = logging.getLogger(__name__)


class EigenModel:
    """
    Eigen-decomposed substitution model.

    Parameters
    ----------
    model : SubstitutionModel
        Rate model providing the generator matrix ``Q``

    Attributes
    ----------
    eigenvalues : np.ndarray, shape (A,), complex
        Eigenvalues of Q
    evec : np.ndarray, shape (A, A), complex
        Right eigenvector matrix V (columns are eigenvectors)
    evec_inv : np.ndarray, shape (A, A), complex
        Left eigenvector matrix V^{-1}

    Notes
    -----
    The decomposition is computed once. Query methods are pure functions
    of their arguments: exp(eigenvalue * t) is recomputed for each call
    and never stored on the instance, so one EigenModel can serve queries
    at different times from several threads.

    Examples
    --------
    >>> from evoalign.models.rate import SubstitutionModel
    >>> eigen = EigenModel(SubstitutionModel.jukes_cantor())
    >>> P = eigen.substitution_matrix(0.1)
    >>> np.allclose(P.sum(axis=1), 1.0)
    True
    """

    def __init__(self, model):
        self.model = model
        n = model.alphabet_size

        eigenvalues, evec = eig(model.Q)
        self.eigenvalues = np.asarray(eigenvalues, dtype=complex)
        self.evec = np.asarray(evec, dtype=complex)

        # scipy only warns on an exactly singular factor; check it ourselves
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", LinAlgWarning)
            lu, piv = lu_factor(self.evec)
        invariant(
            bool(np.all(np.abs(np.diag(lu)) > 0)),
            "Eigenvector matrix is singular (rate matrix is not diagonalizable)",
        )
        self.evec_inv = lu_solve((lu, piv), np.eye(n, dtype=complex))
        invariant(
            bool(np.all(np.isfinite(self.evec_inv))),
            "Inverse eigenvector matrix has non-finite entries",
        )

        # A defective Q gives a nearly singular V that the LU check misses
        cond = np.linalg.cond(self.evec)
        invariant(
            bool(np.isfinite(cond) and cond * EPSILON < 1.0),
            "Eigenvector matrix is ill-conditioned (condition number %g); "
            "rate matrix is not diagonalizable",
            cond,
        )
        scale = max(1.0, float(np.max(np.abs(model.Q))))
        error = float(np.max(np.abs(self.rate_matrix() - model.Q)))
        invariant(
            error <= EPSILON * scale,
            "Eigendecomposition does not reconstruct the rate matrix (max error %g)",
            error,
        )

        # Rates used to scale expected counts: Q off the diagonal, 1 on it
        self._count_rates = np.array(model.Q, dtype=float)
        np.fill_diagonal(self._count_rates, 1.0)

        for array in (self.eigenvalues, self.evec, self.evec_inv):
            array.setflags(write=False)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Eigenvalues: %s\nRight eigenvector matrix, V:\n%s\n"
                "Left eigenvector matrix, V^-1:\n%s\nProduct V^-1 * V:\n%s\n"
                "Reconstituted rate matrix:\n%s",
                np.array2string(self.eigenvalues),
                np.array2string(self.evec),
                np.array2string(self.evec_inv),
                np.array2string(self.evec_inv_evec()),
                np.array2string(self.rate_matrix()),
            )

    @property
    def alphabet_size(self) -> int:
        return len(self.eigenvalues)

    def rate_matrix(self) -> np.ndarray:
        """Reconstruct Q as V @ diag(eigenvalues) @ V^{-1} (complex)."""
        return (self.evec * self.eigenvalues[np.newaxis, :]) @ self.evec_inv

    def evec_inv_evec(self) -> np.ndarray:
        """V^{-1} @ V, which should be the identity."""
        return self.evec_inv @ self.evec

    def exp_eigenvalues(self, t: float) -> np.ndarray:
        """exp(eigenvalue_k * t) for every k."""
        return np.exp(self.eigenvalues * t)

    def substitution_probability(self, t: float, i: int, j: int) -> float:
        """
        Probability of ending in state j after time t, starting from state i.

        Raises
        ------
        InvariantError
            If the result has an imaginary part larger than EPSILON
        """
        p = np.sum(self.evec[i, :] * self.evec_inv[:, j] * self.exp_eigenvalues(t))
        invariant(
            bool(near_real(p)),
            "Probability has imaginary part: p=(%g,%g)", p.real, p.imag,
        )
        return min(1.0, max(0.0, float(p.real)))

    def substitution_matrix(self, t: float) -> np.ndarray:
        """
        Transition probability matrix P(t) = V @ diag(exp(eigenvalues*t)) @ V^{-1}.

        Real parts are clamped to [0, 1] to absorb rounding error.

        Parameters
        ----------
        t : float
            Branch length

        Returns
        -------
        np.ndarray, shape (A, A)
            P[i,j] = P(j | i, t)
        """
        P = (self.evec * self.exp_eigenvalues(t)[np.newaxis, :]) @ self.evec_inv
        bad = ~near_real(P)
        if np.any(bad):
            i, j = np.argwhere(bad)[0]
            raise InvariantError(
                f"Probability has imaginary part: P[{i},{j}]=({P[i, j].real:g},{P[i, j].imag:g})"
            )
        return np.clip(P.real, 0.0, 1.0)

    def expected_count_kernel(self, t: float) -> np.ndarray:
        """
        Eigenbasis kernel for expected substitution counts.

        K[k,l] = integral_0^t exp(eigenvalue_k * s) * exp(eigenvalue_l * (t-s)) ds

        which is t * exp(eigenvalue_k * t) when the two eigenvalues are equal
        (within EPSILON on real and imaginary parts; always on the diagonal)
        and (exp(eigenvalue_k t) - exp(eigenvalue_l t)) / (eigenvalue_k - eigenvalue_l)
        otherwise.

        Returns
        -------
        np.ndarray, shape (A, A), complex
        """
        ev = self.eigenvalues
        exp_ev_t = self.exp_eigenvalues(t)

        equal = near_equal(ev[:, np.newaxis], ev[np.newaxis, :])
        np.fill_diagonal(equal, True)

        denom = np.where(equal, 1.0, ev[:, np.newaxis] - ev[np.newaxis, :])
        distinct = (exp_ev_t[:, np.newaxis] - exp_ev_t[np.newaxis, :]) / denom
        same = np.broadcast_to((exp_ev_t * t)[:, np.newaxis], distinct.shape)
        kernel = np.where(equal, same, distinct)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Eigensubstitution matrix at time t=%g:\n%s", t, np.array2string(kernel)
            )
        return kernel

    def _count_projections(self, a: int, b: int) -> tuple[np.ndarray, np.ndarray]:
        # X[k,i] = V[a,k] V^-1[k,i];  Y[j,l] = V[j,l] V^-1[l,b]
        X = self.evec[a, :, np.newaxis] * self.evec_inv
        Y = self.evec * self.evec_inv[np.newaxis, :, b]
        return X, Y

    def expected_substitution_count(
        self,
        a: int,
        b: int,
        i: int,
        j: int,
        sub: np.ndarray,
        kernel: np.ndarray,
    ) -> float:
        """
        Expected number of i->j substitutions on a branch with endpoints a, b.

        For i == j this is the expected time spent in state i.

        Parameters
        ----------
        a, b : int
            Parent and child states at the ends of the branch
        i, j : int
            Source and destination states of the substitution
        sub : np.ndarray, shape (A, A)
            substitution_matrix(t) for the branch
        kernel : np.ndarray, shape (A, A), complex
            expected_count_kernel(t) for the branch

        Returns
        -------
        float
            Non-negative expected count, zero if P(b|a,t) is zero

        Raises
        ------
        InvariantError
            If the eigenbasis contraction has a non-negligible imaginary part
        """
        X, Y = self._count_projections(a, b)
        c = np.sum(X[:, i, np.newaxis] * kernel * Y[j, np.newaxis, :])
        invariant(
            bool(near_real(c)),
            "Count has imaginary part: c=(%g,%g)", c.real, c.imag,
        )
        p_ab = sub[a, b]
        if p_ab <= 0:
            return 0.0
        return max(0.0, float(self._count_rates[i, j] * c.real / p_ab))

    def expected_substitution_counts(
        self, a: int, b: int, sub: np.ndarray, kernel: np.ndarray
    ) -> np.ndarray:
        """
        Matrix of :meth:`expected_substitution_count` over all (i, j).

        Returns
        -------
        np.ndarray, shape (A, A)
        """
        X, Y = self._count_projections(a, b)
        C = X.T @ kernel @ Y.T
        bad = ~near_real(C)
        if np.any(bad):
            i, j = np.argwhere(bad)[0]
            raise InvariantError(
                f"Count has imaginary part: c[{i},{j}]=({C[i, j].real:g},{C[i, j].imag:g})"
            )
        p_ab = sub[a, b]
        if p_ab <= 0:
            return np.zeros_like(self._count_rates)
        return np.maximum(0.0, self._count_rates * C.real / p_ab)

    def accumulate_substitution_counts(
        self,
        counts: np.ndarray,
        a: int,
        b: int,
        weight: float,
        sub: np.ndarray,
        kernel: np.ndarray,
    ) -> None:
        """Add ``weight`` times the expected counts for endpoints (a, b) into ``counts``."""
        counts += weight * self.expected_substitution_counts(a, b, sub, kernel)

    def __repr__(self) -> str:
        return f"EigenModel(alphabet_size={self.alphabet_size}, epsilon={EPSILON:g})"
