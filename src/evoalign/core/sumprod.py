"""
Column-wise sum-product (inside-outside) inference on a tree.

For every column of a multiple alignment whose rows correspond to tree
nodes, :class:`ColumnSumProduct` propagates log-domain state probabilities
from the leaves up to the column root and back down again. From the two
passes it reports the column log-likelihood, per-node and per-branch
posterior probabilities, and it accumulates the sufficient statistics
(root state counts and expected substitution counts) needed to re-estimate
the substitution model.

The per-node vectors follow the usual notation:

- F[n] ("up-evidence"): P(observed residues below n | state of n)
- E[n] ("up-propagated"): F[n] pushed across the branch above n, i.e.
  P(observed residues below n | state of n's parent)
- G[n] ("down-evidence"): P(state of n, observed residues outside n's subtree)
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..constants import EPSILON, GAP_CHARS, WILDCARD_CHAR
from ..errors import InvariantError, invariant, require
from .eigen import EigenModel
from .logspace import log_inner_product, log_matvec, log_vecmat, one_hot_log, safe_log

logger = logging.getLogger(__name__)


class ColumnSumProduct:
    """
    Sum-product engine stepping through the columns of a tree alignment.

    Parameters
    ----------
    model : SubstitutionModel
        Substitution model
    tree : Tree
        Rooted tree; node ``i`` owns alignment row ``i``
    gapped : list[str]
        One gapped row per tree node, in node index order. Internal nodes
        carry the wildcard character wherever they are present.
    eigen : EigenModel, optional
        Precomputed eigendecomposition of ``model`` (shared across engines)

    Notes
    -----
    Usage follows the column state machine::

        engine = ColumnSumProduct(model, tree, gapped)
        while not engine.alignment_done():
            engine.fill_up()
            engine.fill_down()
            ...  # posterior queries, count accumulation
            engine.next_column()

    Raises
    ------
    InputError
        If the number of rows differs from the number of tree nodes, or the
        rows have different lengths
    """

    def __init__(self, model, tree, gapped: list[str], eigen: Optional[EigenModel] = None):
        require(
            tree.n_nodes == len(gapped),
            "Every tree node must have an alignment row (%d nodes, %d rows)",
            tree.n_nodes, len(gapped),
        )
        lengths = {len(row) for row in gapped}
        require(len(lengths) <= 1, "Alignment rows have different lengths: %s", sorted(lengths))

        self.model = model
        self.tree = tree
        self.gapped = list(gapped)
        self.eigen = eigen if eigen is not None else EigenModel(model)
        self.n_states = model.alphabet_size
        self.n_columns = len(self.gapped[0]) if self.gapped else 0
        self.log_ins_prob = safe_log(model.pi)

        n_nodes = tree.n_nodes
        self._parent = [tree.parent_node(r) for r in range(n_nodes)]
        self._children = [tree.children(r) for r in range(n_nodes)]

        # Per-branch tables, indexed by the child node of the branch
        self.branch_sub_prob: list[Optional[np.ndarray]] = [None] * n_nodes
        self.branch_log_sub_prob: list[Optional[np.ndarray]] = [None] * n_nodes
        self.branch_eigen_sub_count: list[Optional[np.ndarray]] = [None] * n_nodes
        for r in range(n_nodes):
            if self._parent[r] >= 0:
                t = tree.branch_length(r)
                sub = self.eigen.substitution_matrix(t)
                self.branch_sub_prob[r] = sub
                self.branch_log_sub_prob[r] = safe_log(sub)
                self.branch_eigen_sub_count[r] = self.eigen.expected_count_kernel(t)

        self.log_f = np.full((n_nodes, self.n_states), -np.inf)
        self.log_e = np.full((n_nodes, self.n_states), -np.inf)
        self.log_g = np.full((n_nodes, self.n_states), -np.inf)

        self.column = 0
        self.present_rows: list[int] = []
        self.column_log_likelihood = 0.0
        self._present: set[int] = set()
        self._root: Optional[int] = None

        if not self.alignment_done():
            self._init_column()

    def _char(self, row: int) -> str:
        return self.gapped[row][self.column]

    def is_gap(self, row: int) -> bool:
        return self._char(row) in GAP_CHARS

    def is_wild(self, row: int) -> bool:
        return self._char(row) == WILDCARD_CHAR

    def _init_column(self) -> None:
        """Find the present rows of the current column and check their shape."""
        present = []
        present_kids = [0] * self.tree.n_nodes
        roots = []
        for r in range(self.tree.n_nodes):
            if self.is_gap(r):
                continue
            present.append(r)
            invariant(
                self.is_wild(r) or present_kids[r] == 0,
                "At node %d (%s), column %d (%s): internal node sequences must be wildcards (%s)",
                r, self.tree.node_name(r), self.column, self._char(r), WILDCARD_CHAR,
            )
            rp = self._parent[r]
            if rp < 0 or self.is_gap(rp):
                roots.append(r)
            else:
                present_kids[rp] += 1

        if len(roots) > 1:
            raise InvariantError(
                f"Multiple root nodes at column {self.column}: "
                + ", ".join(self.tree.node_name(r) for r in roots)
            )

        self.present_rows = present
        self._present = set(present)
        self._root = roots[0] if roots else None
        self.column_log_likelihood = 0.0

    def alignment_done(self) -> bool:
        return self.column >= self.n_columns

    def next_column(self) -> None:
        self.column += 1
        if not self.alignment_done():
            self._init_column()

    def column_empty(self) -> bool:
        return not self.present_rows

    def column_root(self) -> Optional[int]:
        """Root of the present subtree of the current column (None if empty)."""
        return self._root

    def _require_branch(self, node: int) -> None:
        require(
            node in self._present and node != self._root and self._parent[node] >= 0,
            "Node %d (%s) has no branch to a present parent at column %d",
            node, self.tree.node_name(node), self.column,
        )

    def _require_possible_column(self) -> None:
        require(
            np.isfinite(self.column_log_likelihood),
            "Column %d has zero probability under the model",
            self.column,
        )

    def _sibling_log_evidence(self, node: int) -> np.ndarray:
        """Sum of E over the present siblings of ``node``."""
        self._require_branch(node)
        total = np.zeros(self.n_states)
        for sibling in self._children[self._parent[node]]:
            if sibling != node and sibling in self._present:
                total += self.log_e[sibling]
        return total

    def fill_up(self) -> None:
        """
        Upward (inside) pass, leaves to root.

        Sets F for every present row, E for every present row below the
        column root, and the column log-likelihood.
        """
        self.column_log_likelihood = 0.0
        for r in self.present_rows:
            if self.is_wild(r):
                log_f = np.zeros(self.n_states)
                for child in self._children[r]:
                    if child in self._present:
                        log_f += self.log_e[child]
            else:
                log_f = one_hot_log(self.n_states, self.model.tokenize(self._char(r)))
            self.log_f[r] = log_f

            if r == self._root:
                self.column_log_likelihood = log_inner_product(log_f, self.log_ins_prob)
            else:
                self.log_e[r] = log_matvec(self.branch_log_sub_prob[r], log_f)

    def fill_down(self) -> None:
        """
        Downward (outside) pass, root to leaves.

        G at the column root is the log insertion distribution; below it
        G[n][j] = log sum_i exp(G[parent][i] + logP_n[i,j] + sibling E[i]).
        """
        if self.column_empty():
            return
        self.log_g[self._root] = self.log_ins_prob
        for r in reversed(self.present_rows[:-1]):
            rp = self._parent[r]
            self.log_g[r] = log_vecmat(
                self.log_g[rp] + self._sibling_log_evidence(r), self.branch_log_sub_prob[r]
            )

    def log_node_posterior(self, node: int) -> np.ndarray:
        """Log posterior distribution of the state at ``node``."""
        return self.log_f[node] + self.log_g[node] - self.column_log_likelihood

    def log_branch_posterior_matrix(self, node: int) -> np.ndarray:
        """Log joint posterior of (parent state, node state) for the branch above ``node``."""
        self._require_branch(node)
        parent = self._parent[node]
        log_d = self.log_g[parent] + self._sibling_log_evidence(node)
        return (
            log_d[:, np.newaxis]
            + self.branch_log_sub_prob[node]
            + self.log_f[node][np.newaxis, :]
            - self.column_log_likelihood
        )

    def log_branch_posterior(self, node: int, parent_state: int, node_state: int) -> float:
        """Log joint posterior that the branch above ``node`` goes parent_state -> node_state."""
        self._require_branch(node)
        parent = self._parent[node]
        return float(
            self.log_g[parent][parent_state]
            + self.branch_log_sub_prob[node][parent_state, node_state]
            + self.log_f[node][node_state]
            + self._sibling_log_evidence(node)[parent_state]
            - self.column_log_likelihood
        )

    def max_posterior_state(self, node: int) -> int:
        self._require_possible_column()
        return int(np.argmax(self.log_node_posterior(node)))

    def accumulate_root_counts(self, root_counts: np.ndarray) -> None:
        """Add the posterior distribution of the column root state to ``root_counts``."""
        if self.column_empty():
            return
        self._require_possible_column()
        root_counts += np.exp(
            self.log_ins_prob + self.log_f[self._root] - self.column_log_likelihood
        )

    def accumulate_sub_counts(self, root_counts: np.ndarray, sub_counts: np.ndarray) -> None:
        """
        Accumulate root counts and expected substitution counts for this column.

        Every branch above a present non-root row contributes
        sum_{a,b} P(a, b | column) * E[#(i->j) | a, b], evaluated state pair by
        state pair with :meth:`EigenModel.accumulate_substitution_counts`.
        """
        self.accumulate_root_counts(root_counts)
        for node in self.present_rows:
            if node == self._root:
                continue
            sub = self.branch_sub_prob[node]
            kernel = self.branch_eigen_sub_count[node]
            weights = np.exp(self.log_branch_posterior_matrix(node))
            for a in range(self.n_states):
                for b in range(self.n_states):
                    if weights[a, b] > 0:
                        self.eigen.accumulate_substitution_counts(
                            sub_counts, a, b, weights[a, b], sub, kernel
                        )

    def accumulate_eigen_counts(self, root_counts: np.ndarray, eigen_counts: np.ndarray) -> None:
        """
        Accumulate root counts and eigenbasis substitution counts for this column.

        The outside evidence D[a] (parent down-evidence times sibling evidence)
        and inside evidence U[b] of each branch are projected into the
        eigenbasis once, then combined with the branch count kernel:

            eigen_counts[k,l] += Dbasis[k] * K[k,l] * Ubasis[l] / norm

        with Dbasis = D @ V and Ubasis = V^{-1} @ U. Both vectors are shifted
        by their maximum log value before exponentiation; ``norm`` divides out
        the column likelihood together with those shifts. Use
        :meth:`get_sub_counts` to convert the result to real counts.
        """
        self.accumulate_root_counts(root_counts)
        evec = self.eigen.evec
        evec_inv = self.eigen.evec_inv
        for node in self.present_rows:
            if node == self._root:
                continue
            parent = self._parent[node]
            log_u = self.log_f[node]
            log_d = self.log_g[parent] + self._sibling_log_evidence(node)
            max_log_u = np.max(log_u)
            max_log_d = np.max(log_d)
            norm = np.exp(self.column_log_likelihood - max_log_u - max_log_d)

            u = np.exp(log_u - max_log_u)
            d = np.exp(log_d - max_log_d)
            u_basis = evec_inv @ u
            d_basis = d @ evec

            if logger.isEnabledFor(logging.DEBUG):
                joint = d[:, np.newaxis] * self.branch_sub_prob[node] * u[np.newaxis, :] / norm
                logger.debug(
                    "Column #%d: P(%s, %s) =\n%s",
                    self.column, self.tree.node_name(parent), self.tree.node_name(node),
                    np.array2string(joint),
                )

            eigen_counts += (
                np.outer(d_basis, u_basis) * self.branch_eigen_sub_count[node] / norm
            )

    def get_sub_counts(self, eigen_counts: np.ndarray) -> np.ndarray:
        """
        Convert accumulated eigenbasis counts into an A x A real count matrix.

        counts[i,j] = r_ij * Re(sum_k V^{-1}[k,i] sum_l eigen_counts[k,l] V[j,l])

        where r_ij is Q[i,j] off the diagonal and 1 on it, so the diagonal
        holds expected time spent in each state.
        """
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Eigencounts matrix:\n%s", np.array2string(eigen_counts))
        c = self.eigen.evec_inv.T @ eigen_counts @ self.eigen.evec.T
        # Accumulated counts grow with the number of columns, so the
        # imaginary tolerance is relative to their magnitude
        scale = max(1.0, float(np.max(np.abs(c))) if c.size else 1.0)
        invariant(
            bool(np.all(np.abs(c.imag) <= EPSILON * scale)),
            "Substitution counts have imaginary part: max |imag| = %g", float(np.max(np.abs(c.imag))),
        )
        counts = c.real.copy()
        off_diagonal = ~np.eye(self.n_states, dtype=bool)
        counts[off_diagonal] *= self.model.Q[off_diagonal]
        return counts


@dataclass
class SubstitutionCounts:
    """
    Sufficient statistics for substitution model re-estimation.

    Attributes
    ----------
    alphabet : str
        Model alphabet (row/column labels)
    root_counts : np.ndarray, shape (A,)
        Expected number of times each state occurs at a column root
    sub_counts : np.ndarray, shape (A, A)
        Expected i->j substitution counts off the diagonal, expected time
        spent in state i on the diagonal
    log_likelihood : float
        Sum of column log-likelihoods
    n_columns : int
        Number of alignment columns visited
    """

    alphabet: str
    root_counts: np.ndarray
    sub_counts: np.ndarray
    log_likelihood: float
    n_columns: int

    def to_dict(self) -> dict:
        """JSON-compatible representation keyed by alphabet symbols."""
        return {
            "logLikelihood": float(self.log_likelihood),
            "columns": int(self.n_columns),
            "rootCount": {c: float(x) for c, x in zip(self.alphabet, self.root_counts)},
            "subCount": {
                src: {dest: float(self.sub_counts[i, j]) for j, dest in enumerate(self.alphabet)}
                for i, src in enumerate(self.alphabet)
            },
        }


def collect_counts(
    model, tree, gapped: list[str], use_eigen: bool = True, eigen: Optional[EigenModel] = None
) -> SubstitutionCounts:
    """
    Run the sum-product engine over every column and accumulate counts.

    Parameters
    ----------
    model : SubstitutionModel
    tree : Tree
    gapped : list[str]
        One gapped row per tree node, in node index order
    use_eigen : bool, default=True
        Accumulate in the eigenbasis (fast) rather than state pair by state
        pair (direct). Both give the same counts up to rounding.
    eigen : EigenModel, optional
        Precomputed eigendecomposition

    Returns
    -------
    SubstitutionCounts
    """
    engine = ColumnSumProduct(model, tree, gapped, eigen=eigen)
    n = model.alphabet_size
    root_counts = np.zeros(n)
    sub_counts = np.zeros((n, n))
    eigen_counts = np.zeros((n, n), dtype=complex)
    log_likelihood = 0.0

    while not engine.alignment_done():
        engine.fill_up()
        engine.fill_down()
        log_likelihood += engine.column_log_likelihood
        if use_eigen:
            engine.accumulate_eigen_counts(root_counts, eigen_counts)
        else:
            engine.accumulate_sub_counts(root_counts, sub_counts)
        engine.next_column()

    if use_eigen:
        sub_counts = engine.get_sub_counts(eigen_counts)

    logger.info(
        "Accumulated counts over %d columns (log-likelihood %g)",
        engine.n_columns, log_likelihood,
    )
    return SubstitutionCounts(
        alphabet=model.alphabet,
        root_counts=root_counts,
        sub_counts=sub_counts,
        log_likelihood=log_likelihood,
        n_columns=engine.n_columns,
    )


def reconstruct_ancestors(model, tree, gapped: list[str], eigen: Optional[EigenModel] = None) -> list[str]:
    """
    Replace every present wildcard with its maximum posterior state.

    Returns
    -------
    list[str]
        Gapped rows in node order; observed residues and gaps are unchanged
    """
    engine = ColumnSumProduct(model, tree, gapped, eigen=eigen)
    rows = [list(row) for row in gapped]
    while not engine.alignment_done():
        engine.fill_up()
        engine.fill_down()
        for r in engine.present_rows:
            if engine.is_wild(r):
                rows[r][engine.column] = model.alphabet[engine.max_posterior_state(r)]
        engine.next_column()
    return ["".join(row) for row in rows]
