"""
Guide alignment construction.

A guide alignment is assembled from a sparse set of pairwise alignments:

1. Random pairs of sequences are aligned until there are at least
   ~N log2 N edges and the edges connect every sequence.
2. A maximum-weight spanning tree is grown over the pairwise scores.
3. The pairwise paths on the spanning tree are merged into one multiple
   alignment path.
"""

import heapq
import itertools
import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from ..errors import InvariantError, require
from ..io.sequences import Alignment, Sequence
from ..logs import plural
from .pairwise import PairHMMAligner
from .path import AlignPath, merge_align_paths

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Edge:
    """
    Scored pairwise alignment between two sequences.

    Attributes
    ----------
    row1, row2 : int
        Sequence indices, row1 < row2
    lp : float
        Log-probability score of the pairwise alignment
    """

    row1: int
    row2: int
    lp: float


class Partition:
    """
    Disjoint sets of sequence indices.

    Every index starts in its own set. Merging two sets moves the members
    of the higher-numbered set into the lower-numbered one, so set 0 always
    holds index 0 and grows as sets are joined.

    Parameters
    ----------
    n : int
        Number of indices
    """

    def __init__(self, n: int):
        self.seq_set_idx = list(range(n))
        self.seq_set: list[set[int]] = [{i} for i in range(n)]
        self.n_sets = n

    def in_same_set(self, row1: int, row2: int) -> bool:
        return self.seq_set_idx[row1] == self.seq_set_idx[row2]

    def merge(self, row1: int, row2: int) -> None:
        """Join the sets holding ``row1`` and ``row2`` (no-op if already joined)."""
        if self.in_same_set(row1, row2):
            return
        idx1, idx2 = sorted((self.seq_set_idx[row1], self.seq_set_idx[row2]))
        for member in self.seq_set[idx2]:
            self.seq_set_idx[member] = idx1
        self.seq_set[idx1] |= self.seq_set[idx2]
        self.seq_set[idx2] = set()
        self.n_sets -= 1

    def __repr__(self) -> str:
        return f"Partition(n={len(self.seq_set_idx)}, n_sets={self.n_sets})"


def target_edge_count(n: int) -> int:
    """min(n(n-1)/2, ceil(n log2 n)): the number of random edges to sample."""
    return min(n * (n - 1) // 2, math.ceil(n * math.log2(n)))


class GuideAlignmentBuilder:
    """
    Sparse random alignment graph and its maximum-weight spanning tree.

    The random pairwise alignments are computed on construction. The
    spanning tree and the merged path are computed on request.

    Parameters
    ----------
    seqs : list[Sequence]
        Ungapped input sequences (at least two)
    model : SubstitutionModel
        Substitution and indel model passed to the pairwise aligner
    time : float
        Evolutionary time assumed between every pair of sequences
    rng : numpy.random.Generator
        Source of randomness for edge sampling
    aligner : callable, optional
        Pairwise aligner, ``aligner(x, y, model, time) -> (path, score)``; it
        applies its own envelope. Defaults to :class:`PairHMMAligner` with no band.

    Raises
    ------
    InputError
        If fewer than two sequences are given, ``time`` is not positive,
        or a sequence contains a symbol outside the model alphabet

    Examples
    --------
    >>> rng = np.random.default_rng(42)
    >>> builder = GuideAlignmentBuilder(seqs, model, 0.1, rng)
    >>> alignment = builder.alignment()
    """

    def __init__(
        self,
        seqs: list[Sequence],
        model,
        time: float,
        rng: np.random.Generator,
        aligner: Optional[Callable] = None,
    ):
        n = len(seqs)
        require(n >= 2, "Guide alignment needs at least two sequences, got %d", n)
        require(time > 0, "Evolutionary time must be positive, got %g", time)
        self.seqs = list(seqs)
        self.model = model
        self.time = time
        self.aligner = aligner if aligner is not None else PairHMMAligner()
        self.tokens = [model.tokenize_sequence(s.seq) for s in self.seqs]

        # Per-node max-heaps of (-lp, insertion order, edge)
        self.edges: list[list[tuple[float, int, Edge]]] = [[] for _ in range(n)]
        self.edge_path: dict[tuple[int, int], AlignPath] = {}
        self._counter = itertools.count()

        partition = Partition(n)
        target = target_edge_count(n)
        n_edges = 0
        while n_edges < target or partition.n_sets > 1:
            src, dest = self._draw_pair(rng)
            edge = self._align_pair(src, dest)
            partition.merge(edge.row1, edge.row2)
            n_edges += 1
            logger.info(
                "Aligned %s and %s (%s, %s)",
                self.seqs[src].name, self.seqs[dest].name,
                plural(n_edges, "edge"), plural(partition.n_sets, "disconnected set"),
            )

    @property
    def n_seqs(self) -> int:
        return len(self.seqs)

    def _draw_pair(self, rng: np.random.Generator) -> tuple[int, int]:
        """Draw an unordered pair of distinct indices that has no edge yet."""
        while True:
            src = int(rng.integers(self.n_seqs))
            dest = int(rng.integers(self.n_seqs))
            if dest < src:
                src, dest = dest, src
            if src != dest and (src, dest) not in self.edge_path:
                return src, dest

    def _align_pair(self, src: int, dest: int) -> Edge:
        x, y = self.tokens[src], self.tokens[dest]
        pair_path, lp = self.aligner(x, y, self.model, self.time)
        self.edge_path[(src, dest)] = {src: pair_path[0], dest: pair_path[1]}

        edge = Edge(src, dest, float(lp))
        order = next(self._counter)
        heapq.heappush(self.edges[src], (-edge.lp, order, edge))
        heapq.heappush(self.edges[dest], (-edge.lp, order, edge))
        return edge

    def spanning_tree_paths(self) -> list[AlignPath]:
        """
        Pairwise paths on a maximum-weight spanning tree of the edge graph.

        The tree is grown from the set holding sequence 0: at each step the
        best-scoring edge leaving that set is added. Works on copies of the
        edge heaps, so calling it twice gives the same result.

        Returns
        -------
        list[AlignPath]
            N-1 two-row paths, in the order their edges were chosen

        Raises
        ------
        InvariantError
            If no edge leaves the growing set while other sets remain
        """
        heaps = [list(heap) for heap in self.edges]
        partition = Partition(self.n_seqs)
        paths = []
        while partition.n_sets > 1:
            best: Optional[Edge] = None
            for src in sorted(partition.seq_set[0]):
                heap = heaps[src]
                while heap and partition.in_same_set(heap[0][2].row1, heap[0][2].row2):
                    heapq.heappop(heap)
                if heap and (best is None or heap[0][2].lp > best.lp):
                    best = heap[0][2]
            if best is None:
                raise InvariantError("Found no valid edge")

            paths.append(self.edge_path[(best.row1, best.row2)])
            partition.merge(best.row1, best.row2)
            logger.info(
                "Joined %s and %s (%s, %s)",
                self.seqs[best.row1].name, self.seqs[best.row2].name,
                plural(len(paths), "edge"), plural(partition.n_sets, "disconnected set"),
            )
        return paths

    def mst_path(self) -> AlignPath:
        """Merged alignment path over all sequences."""
        return merge_align_paths(self.spanning_tree_paths())

    def alignment(self) -> Alignment:
        """Guide alignment as gapped sequences, in input order."""
        return Alignment.from_path(self.seqs, self.mst_path())


def build_guide_alignment(
    seqs: list[Sequence],
    model,
    time: float,
    rng: Optional[np.random.Generator] = None,
    aligner: Optional[Callable] = None,
) -> Alignment:
    """
    Build a guide alignment of ungapped sequences.

    Parameters
    ----------
    seqs : list[Sequence]
        Ungapped sequences
    model : SubstitutionModel
    time : float
        Evolutionary time between sequences
    rng : numpy.random.Generator, optional
        Random generator; a fresh unseeded one if omitted
    aligner : callable, optional
        Pairwise aligner (default :class:`PairHMMAligner`)

    Returns
    -------
    Alignment
    """
    if rng is None:
        rng = np.random.default_rng()
    return GuideAlignmentBuilder(seqs, model, time, rng, aligner=aligner).alignment()
