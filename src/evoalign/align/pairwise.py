"""
Pairwise sequence alignment.

The guide alignment builder treats the pairwise aligner as a black box:
given two token sequences, a substitution model, a time and an optional
envelope, it returns a two-row alignment path and a log-probability score.
:class:`PairHMMAligner` is the default implementation.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from ..core.logspace import safe_log
from ..core.matrix import matrix_exponential
from ..errors import InputError, require
from .path import AlignPath

logger = logging.getLogger(__name__)

# Pair HMM states
MATCH, DELETE, INSERT = 0, 1, 2
N_STATES = 3


class DiagonalEnvelope:
    """
    Band of DP cells around the main diagonal.

    Cell (i, j) is allowed when

        min(0, n - m) - band <= j - i <= max(0, n - m) + band

    for sequence lengths m and n, so the envelope always contains a
    complete path from (0, 0) to (m, n). ``band=None`` allows every cell.
    """

    def __init__(self, len_x: int, len_y: int, band: Optional[int] = None):
        require(band is None or band >= 0, "Envelope band must be non-negative, got %s", band)
        self.len_x = len_x
        self.len_y = len_y
        self.band = band
        diff = len_y - len_x
        if band is None:
            self.min_offset = -len_x
            self.max_offset = len_y
        else:
            self.min_offset = min(0, diff) - band
            self.max_offset = max(0, diff) + band

    def contains(self, i: int, j: int) -> bool:
        return self.min_offset <= j - i <= self.max_offset

    def row_mask(self, i: int) -> np.ndarray:
        """Boolean mask over j = 0..len_y of the allowed cells in row i."""
        offsets = np.arange(self.len_y + 1) - i
        return (offsets >= self.min_offset) & (offsets <= self.max_offset)

    def __repr__(self) -> str:
        return f"DiagonalEnvelope(len_x={self.len_x}, len_y={self.len_y}, band={self.band})"


class PairwiseAligner(ABC):
    """
    Abstract base class for pairwise aligners.

    Subclasses implement :meth:`__call__`. Any callable with the same
    signature can be used in place of a subclass.
    """

    @abstractmethod
    def __call__(
        self,
        x: np.ndarray,
        y: np.ndarray,
        model,
        time: float,
        envelope: Optional[DiagonalEnvelope] = None,
    ) -> tuple[AlignPath, float]:
        """
        Align two token sequences.

        Parameters
        ----------
        x, y : np.ndarray
            Integer token sequences
        model : SubstitutionModel
            Substitution and indel model
        time : float
            Evolutionary time separating the sequences
        envelope : DiagonalEnvelope, optional
            Restricts the DP cells that may be visited

        Returns
        -------
        path : AlignPath
            Two-row path; row 0 is ``x`` and row 1 is ``y``
        score : float
            Log-probability score of the alignment

        Raises
        ------
        InputError
            If no path has non-zero probability under the model
        """


class PairHMMAligner(PairwiseAligner):
    """
    Viterbi alignment under a three-state (match/delete/insert) pair HMM.

    Match columns emit pi[a] * P(b | a, t). Delete columns (residue of x
    only) and insert columns (residue of y only) emit pi. Gap opening
    probabilities are 1 - exp(-rate * t) for the model's deletion and
    insertion rates; extension probabilities come straight from the model.
    Insertions may follow deletions but not the other way round.

    Parameters
    ----------
    band : int, optional
        Default envelope band used when no envelope is passed to the call

    Examples
    --------
    >>> from evoalign.models.rate import SubstitutionModel
    >>> model = SubstitutionModel.jukes_cantor()
    >>> aligner = PairHMMAligner()
    >>> x = model.tokenize_sequence("acgt")
    >>> path, score = aligner(x, x, model, 0.1)
    >>> path[0].tolist()
    [True, True, True, True]
    """

    def __init__(self, band: Optional[int] = None):
        self.band = band

    @staticmethod
    def log_transitions(model, time: float) -> np.ndarray:
        """3x3 log transition matrix indexed [from_state, to_state]."""
        p_del = 1.0 - np.exp(-model.del_rate * time)
        p_ins = 1.0 - np.exp(-model.ins_rate * time)
        T = np.zeros((N_STATES, N_STATES))
        T[MATCH, MATCH] = (1 - p_del) * (1 - p_ins)
        T[MATCH, DELETE] = p_del
        T[MATCH, INSERT] = (1 - p_del) * p_ins
        T[DELETE, MATCH] = (1 - model.del_ext) * (1 - p_ins)
        T[DELETE, DELETE] = model.del_ext
        T[DELETE, INSERT] = (1 - model.del_ext) * p_ins
        T[INSERT, MATCH] = 1 - model.ins_ext
        T[INSERT, INSERT] = model.ins_ext
        return safe_log(T)

    @staticmethod
    def log_match_emissions(model, time: float) -> np.ndarray:
        """log(pi[a] * P(b | a, t)) indexed [a, b]."""
        P = np.clip(matrix_exponential(model.Q, time), 0.0, 1.0)
        return safe_log(model.pi)[:, np.newaxis] + safe_log(P)

    def __call__(
        self,
        x: np.ndarray,
        y: np.ndarray,
        model,
        time: float,
        envelope: Optional[DiagonalEnvelope] = None,
    ) -> tuple[AlignPath, float]:
        m, n = len(x), len(y)
        if envelope is None:
            envelope = DiagonalEnvelope(m, n, self.band)

        log_t = self.log_transitions(model, time)
        log_match = self.log_match_emissions(model, time)
        log_pi = safe_log(model.pi)

        # score[s, i, j]: best log-probability of a path ending at (i, j) in state s
        score = np.full((N_STATES, m + 1, n + 1), -np.inf)
        pointer = np.zeros((N_STATES, m + 1, n + 1), dtype=np.int8)
        score[MATCH, 0, 0] = 0.0

        for i in range(m + 1):
            mask = envelope.row_mask(i)
            if i > 0:
                # Match and delete cells depend only on row i-1
                prev = score[:, i - 1, :]
                cand = prev[:, :-1] + log_t[:, MATCH, np.newaxis]
                best = np.argmax(cand, axis=0)
                score[MATCH, i, 1:] = (
                    cand[best, np.arange(n)] + log_match[x[i - 1], y]
                )
                pointer[MATCH, i, 1:] = best

                cand = prev + log_t[:, DELETE, np.newaxis]
                best = np.argmax(cand, axis=0)
                score[DELETE, i, :] = cand[best, np.arange(n + 1)] + log_pi[x[i - 1]]
                pointer[DELETE, i, :] = best

                score[MATCH, i, ~mask] = -np.inf
                score[DELETE, i, ~mask] = -np.inf

            # Insert cells depend on the cell to the left in the same row
            for j in range(1, n + 1):
                if not mask[j]:
                    continue
                cand = score[:, i, j - 1] + log_t[:, INSERT]
                best = int(np.argmax(cand))
                score[INSERT, i, j] = cand[best] + log_pi[y[j - 1]]
                pointer[INSERT, i, j] = best

        # Ending from any state uses that state's transition into match
        final = score[:, m, n] + log_t[:, MATCH]
        state = int(np.argmax(final))
        total = float(final[state])
        if not np.isfinite(total):
            raise InputError(
                f"No alignment path with non-zero probability (lengths {m} and {n}, time {time:g})"
            )

        columns = []
        i, j = m, n
        while i > 0 or j > 0:
            previous = int(pointer[state, i, j])
            if state == MATCH:
                columns.append((True, True))
                i -= 1
                j -= 1
            elif state == DELETE:
                columns.append((True, False))
                i -= 1
            else:
                columns.append((False, True))
                j -= 1
            state = previous
        columns.reverse()

        path = {
            0: np.array([c[0] for c in columns], dtype=bool),
            1: np.array([c[1] for c in columns], dtype=bool),
        }
        logger.debug("Pairwise alignment: %d x %d -> %d columns, score %g", m, n, len(columns), total)
        return path, total
