"""
Alignment paths and pairwise alignment.

The guide alignment builder lives in :mod:`evoalign.align.guide`.
"""

from evoalign.align.path import AlignPath, align_path_columns, merge_align_paths
from evoalign.align.pairwise import DiagonalEnvelope, PairHMMAligner, PairwiseAligner

__all__ = [
    "AlignPath",
    "align_path_columns",
    "merge_align_paths",
    "DiagonalEnvelope",
    "PairHMMAligner",
    "PairwiseAligner",
]
