"""
Continuous-time substitution models.
"""

import json
from pathlib import Path

import numpy as np

from ..constants import (
    DEFAULT_DEL_EXT,
    DEFAULT_DEL_RATE,
    DEFAULT_INS_EXT,
    DEFAULT_INS_RATE,
)
from ..core.matrix import check_generator, create_reversible_Q
from ..errors import InputError, require


class SubstitutionModel:
    """
    Substitution rate model over a finite alphabet.

    The model is immutable after construction: the rate matrix and the
    equilibrium distribution are stored as read-only arrays, so one instance
    can be shared freely between eigendecompositions, column sum-product
    engines and pairwise aligners.

    Parameters
    ----------
    alphabet : str
        Distinct symbols, one per state (tokenization is case-insensitive)
    Q : np.ndarray, shape (A, A)
        Generator matrix (non-negative off-diagonals, zero row sums)
    pi : np.ndarray, shape (A,)
        Equilibrium (root/insertion) distribution
    ins_rate, del_rate : float
        Insertion and deletion rates, used by the pairwise aligner
    ins_ext, del_ext : float
        Insertion and deletion extension probabilities

    Examples
    --------
    >>> model = SubstitutionModel.jukes_cantor("acgt")
    >>> model.alphabet_size
    4
    >>> model.tokenize("G")
    2
    """

    def __init__(
        self,
        alphabet: str,
        Q: np.ndarray,
        pi: np.ndarray,
        ins_rate: float = DEFAULT_INS_RATE,
        del_rate: float = DEFAULT_DEL_RATE,
        ins_ext: float = DEFAULT_INS_EXT,
        del_ext: float = DEFAULT_DEL_EXT,
    ):
        n = len(alphabet)
        require(n > 0, "Alphabet is empty")
        require(
            len(set(alphabet.lower())) == n,
            "Alphabet symbols must be distinct: %s", alphabet,
        )

        Q = np.array(Q, dtype=float)
        pi = np.array(pi, dtype=float)
        require(Q.shape == (n, n), "Rate matrix has shape %s, expected (%d, %d)", Q.shape, n, n)
        require(pi.shape == (n,), "pi must have length %d, got %d", n, len(pi))
        require(check_generator(Q), "Rate matrix must have non-negative off-diagonals and zero row sums")
        require(np.all(pi >= 0) and pi.sum() > 0, "pi must be a non-negative, non-zero vector")
        require(0 <= ins_ext < 1 and 0 <= del_ext < 1, "Extension probabilities must be in [0, 1)")
        require(ins_rate >= 0 and del_rate >= 0, "Indel rates must be non-negative")

        pi = pi / pi.sum()
        Q.setflags(write=False)
        pi.setflags(write=False)

        self._alphabet = alphabet
        self._Q = Q
        self._pi = pi
        self.ins_rate = float(ins_rate)
        self.del_rate = float(del_rate)
        self.ins_ext = float(ins_ext)
        self.del_ext = float(del_ext)

        self._token = {}
        for i, c in enumerate(alphabet):
            self._token[c.lower()] = i
            self._token[c.upper()] = i

    @property
    def alphabet(self) -> str:
        return self._alphabet

    @property
    def alphabet_size(self) -> int:
        return len(self._alphabet)

    @property
    def Q(self) -> np.ndarray:
        """Generator matrix (read-only)."""
        return self._Q

    @property
    def pi(self) -> np.ndarray:
        """Equilibrium / insertion distribution (read-only)."""
        return self._pi

    def is_symbol(self, c: str) -> bool:
        return c in self._token

    def tokenize(self, c: str) -> int:
        """Return the state index of symbol ``c``."""
        try:
            return self._token[c]
        except KeyError:
            raise InputError(f"Symbol '{c}' is not in alphabet '{self._alphabet}'") from None

    def tokenize_sequence(self, seq: str) -> np.ndarray:
        """Tokenize an ungapped sequence into an integer array."""
        return np.array([self.tokenize(c) for c in seq], dtype=np.intp)

    @classmethod
    def jukes_cantor(cls, alphabet: str = "acgt", **kwargs) -> "SubstitutionModel":
        """Equal-rate model with uniform equilibrium, normalized to unit rate."""
        n = len(alphabet)
        pi = np.ones(n) / n
        Q = create_reversible_Q(np.ones((n, n)), pi)
        return cls(alphabet, Q, pi, **kwargs)

    @classmethod
    def reversible(
        cls, alphabet: str, rates: np.ndarray, pi: np.ndarray, normalize: bool = True, **kwargs
    ) -> "SubstitutionModel":
        """Build a reversible model from symmetric exchangeabilities and frequencies."""
        pi = np.asarray(pi, dtype=float)
        Q = create_reversible_Q(np.asarray(rates, dtype=float), pi / pi.sum(), normalize=normalize)
        return cls(alphabet, Q, pi, **kwargs)

    @classmethod
    def from_dict(cls, data: dict) -> "SubstitutionModel":
        """
        Build a model from its JSON representation.

        The expected layout is::

            {"alphabet": "acgt",
             "rootprob": {"a": 0.25, "c": 0.25, "g": 0.25, "t": 0.25},
             "subrate": {"a": {"c": 0.1, "g": 0.3, "t": 0.1}, ...},
             "insrate": 0.01, "delrate": 0.01,
             "insextprob": 0.66, "delextprob": 0.66}

        Missing substitution rates are zero; the diagonal is derived from
        the off-diagonal rates. Missing indel parameters take default values.
        """
        require(isinstance(data, dict), "Rate model must be a JSON object")
        require("alphabet" in data, "Rate model has no 'alphabet'")
        alphabet = data["alphabet"]
        n = len(alphabet)
        index = {c.lower(): i for i, c in enumerate(alphabet)}

        def state(c: str) -> int:
            require(c.lower() in index, "Symbol '%s' is not in alphabet '%s'", c, alphabet)
            return index[c.lower()]

        pi = np.zeros(n)
        rootprob = data.get("rootprob")
        if rootprob is None:
            pi[:] = 1.0 / n
        else:
            for c, p in rootprob.items():
                pi[state(c)] = float(p)

        Q = np.zeros((n, n))
        for src, row in data.get("subrate", {}).items():
            i = state(src)
            for dest, rate in row.items():
                j = state(dest)
                if i != j:
                    Q[i, j] = float(rate)
        np.fill_diagonal(Q, -Q.sum(axis=1))

        return cls(
            alphabet,
            Q,
            pi,
            ins_rate=float(data.get("insrate", DEFAULT_INS_RATE)),
            del_rate=float(data.get("delrate", DEFAULT_DEL_RATE)),
            ins_ext=float(data.get("insextprob", DEFAULT_INS_EXT)),
            del_ext=float(data.get("delextprob", DEFAULT_DEL_EXT)),
        )

    @classmethod
    def from_json(cls, filepath: Path | str) -> "SubstitutionModel":
        """Read a model from a JSON file (see :meth:`from_dict`)."""
        filepath = Path(filepath)
        with open(filepath, "r") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise InputError(f"Rate model {filepath} is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        """JSON representation, inverse of :meth:`from_dict`."""
        subrate = {}
        for i, src in enumerate(self._alphabet):
            subrate[src] = {
                dest: float(self._Q[i, j])
                for j, dest in enumerate(self._alphabet)
                if i != j and self._Q[i, j] > 0
            }
        return {
            "alphabet": self._alphabet,
            "rootprob": {c: float(p) for c, p in zip(self._alphabet, self._pi)},
            "subrate": subrate,
            "insrate": self.ins_rate,
            "delrate": self.del_rate,
            "insextprob": self.ins_ext,
            "delextprob": self.del_ext,
        }

    def __repr__(self) -> str:
        return f"SubstitutionModel(alphabet='{self._alphabet}')"
