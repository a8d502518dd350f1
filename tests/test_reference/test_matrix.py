"""
Reference tests for matrix operations.

These tests validate the matrix exponential and rate matrix construction
against analytical solutions and known properties of generators.
"""

import numpy as np
import pytest
from evoalign.core.matrix import (
    check_detailed_balance,
    check_generator,
    create_reversible_Q,
    matrix_exponential,
    near_equal,
    near_real,
)


class TestMatrixExponential:
    """Test matrix exponential computation."""

    def test_jc69_analytical(self):
        """Test matrix exponential against analytical JC69 solution."""
        alpha = 0.25
        Q = np.full((4, 4), alpha)
        np.fill_diagonal(Q, -3 * alpha)
        t = 0.1

        P = matrix_exponential(Q, t)

        # P(t) = 1/4 + 3/4 exp(-4at) on the diagonal, 1/4 - 1/4 exp(-4at) off it
        e_term = np.exp(-4 * alpha * t)
        np.testing.assert_allclose(np.diag(P), 0.25 + 0.75 * e_term, rtol=1e-10)
        off_diagonal = P[~np.eye(4, dtype=bool)]
        np.testing.assert_allclose(off_diagonal, 0.25 - 0.25 * e_term, rtol=1e-10)

    def test_two_state_analytical(self):
        """Test the asymmetric two-state chain against its closed form."""
        a, b = 1.0, 2.0
        Q = np.array([[-a, a], [b, -b]])
        t = 0.3

        P = matrix_exponential(Q, t)

        decay = np.exp(-(a + b) * t)
        expected = np.array(
            [
                [(b + a * decay) / (a + b), (a - a * decay) / (a + b)],
                [(b - b * decay) / (a + b), (a + b * decay) / (a + b)],
            ]
        )
        np.testing.assert_allclose(P, expected, rtol=1e-10)

    def test_row_sums_one(self):
        """Test that transition probability matrix rows sum to 1."""
        Q = self._random_rate_matrix(4)
        P = matrix_exponential(Q, 0.1)
        np.testing.assert_allclose(P.sum(axis=1), 1.0, rtol=1e-10)

    def test_identity_at_zero(self):
        """Test P(0) = I."""
        Q = self._random_rate_matrix(4)
        np.testing.assert_allclose(matrix_exponential(Q, 0.0), np.eye(4), rtol=1e-10)

    def test_semigroup_property(self):
        """Test P(t1 + t2) = P(t1) @ P(t2)."""
        Q = self._random_rate_matrix(4)
        t1, t2 = 0.05, 0.15

        P_sum = matrix_exponential(Q, t1 + t2)
        P_prod = matrix_exponential(Q, t1) @ matrix_exponential(Q, t2)

        np.testing.assert_allclose(P_sum, P_prod, rtol=1e-8)

    @staticmethod
    def _random_rate_matrix(n: int, seed: int = 42) -> np.ndarray:
        """Create a random reversible rate matrix."""
        rng = np.random.default_rng(seed)
        pi = rng.dirichlet(np.ones(n))
        rates = rng.uniform(0, 1, (n, n))
        rates = (rates + rates.T) / 2
        return create_reversible_Q(rates, pi)


class TestReversibleQ:
    """Test creation and properties of reversible rate matrices."""

    def test_detailed_balance(self):
        """Test detailed balance condition."""
        pi = np.array([0.3, 0.2, 0.4, 0.1])
        rates = np.array(
            [[0, 1, 2, 1], [1, 0, 1, 2], [2, 1, 0, 1], [1, 2, 1, 0]]
        )
        Q = create_reversible_Q(rates, pi)

        assert check_detailed_balance(Q, pi)
        assert check_generator(Q)

    def test_normalization(self):
        """Test that normalized Q has expected rate of 1."""
        pi = np.array([0.1, 0.2, 0.3, 0.4])
        Q = create_reversible_Q(np.ones((4, 4)), pi, normalize=True)

        np.testing.assert_allclose(-np.dot(pi, np.diag(Q)), 1.0, rtol=1e-10)

    def test_non_reversible_fails_detailed_balance(self, cyclic_model):
        """A circulant drift model is a generator but not reversible."""
        assert check_generator(cyclic_model.Q)
        assert not check_detailed_balance(cyclic_model.Q, cyclic_model.pi)


class TestGeneratorChecks:
    """Test generator validation and tolerance predicates."""

    def test_negative_off_diagonal(self):
        Q = np.array([[1.0, -1.0], [1.0, -1.0]])
        assert not check_generator(Q)

    def test_nonzero_row_sum(self):
        Q = np.array([[-1.0, 2.0], [1.0, -1.0]])
        assert not check_generator(Q)

    def test_non_square(self):
        assert not check_generator(np.zeros((2, 3)))

    def test_near_equal_complex(self):
        """Real and imaginary parts are compared separately."""
        assert near_equal(1.0 + 1.0j, 1.0 + 5e-7 + 1.0j)
        assert not near_equal(1.0 + 1.0j, 1.0 + 1.00001j)
        assert not near_equal(-2.0, -2.0001)

    def test_near_real(self):
        assert near_real(3.0 + 5e-7j)
        assert not near_real(3.0 + 2e-6j)
        np.testing.assert_array_equal(near_real(np.array([1.0, 1.0 + 1e-3j])), [True, False])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
