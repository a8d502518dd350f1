"""
evoalign: statistical alignment and ancestral inference on phylogenetic trees.

Three subsystems work under a continuous-time Markov substitution model:

- an eigendecomposed model evaluator giving substitution probabilities and
  expected substitution counts for any branch length,
- a column-wise sum-product engine computing column likelihoods, posterior
  marginals and the sufficient statistics for model re-estimation,
- a randomized guide-alignment builder merging pairwise alignments along a
  maximum-weight spanning tree.

Quick Start
-----------
Build a guide alignment:

>>> import numpy as np
>>> from evoalign import SubstitutionModel, read_fasta, build_guide_alignment
>>> model = SubstitutionModel.from_json("model.json")
>>> aln = build_guide_alignment(read_fasta("seqs.fa"), model, 0.1, np.random.default_rng(1))

Accumulate substitution counts over a tree alignment:

>>> from evoalign import Alignment, Tree, collect_counts
>>> tree = Tree.from_file("tree.nwk")
>>> rows = Alignment.from_fasta("aligned.fa").rows_for_tree(tree)
>>> counts = collect_counts(model, tree, rows)
>>> print(counts.log_likelihood)
"""

__version__ = "0.1.0"

from .errors import EvoAlignError, InputError, InvariantError

from .core import EigenModel, ColumnSumProduct, SubstitutionCounts, collect_counts, reconstruct_ancestors
from .models import SubstitutionModel
from .io import Alignment, Sequence, Tree, TreeNode, read_fasta, write_fasta
from .align import DiagonalEnvelope, PairHMMAligner, merge_align_paths
from .align.guide import Edge, Partition, GuideAlignmentBuilder, build_guide_alignment

__all__ = [
    "__version__",
    # Errors
    "EvoAlignError",
    "InputError",
    "InvariantError",
    # Model evaluation and inference
    "SubstitutionModel",
    "EigenModel",
    "ColumnSumProduct",
    "SubstitutionCounts",
    "collect_counts",
    "reconstruct_ancestors",
    # Input/output
    "Alignment",
    "Sequence",
    "Tree",
    "TreeNode",
    "read_fasta",
    "write_fasta",
    # Alignment
    "DiagonalEnvelope",
    "PairHMMAligner",
    "merge_align_paths",
    "Edge",
    "Partition",
    "GuideAlignmentBuilder",
    "build_guide_alignment",
]
