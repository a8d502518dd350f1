"""
Core numerical routines.

- **Matrix operations**: matrix exponential and rate matrix construction
- **Eigendecomposition**: substitution probabilities and expected-count kernels
- **Sum-product**: per-column inside-outside passes over a tree
"""

from evoalign.core.matrix import matrix_exponential, create_reversible_Q
from evoalign.core.eigen import EigenModel
from evoalign.core.sumprod import (
    ColumnSumProduct,
    SubstitutionCounts,
    collect_counts,
    reconstruct_ancestors,
)

__all__ = [
    "matrix_exponential",
    "create_reversible_Q",
    "EigenModel",
    "ColumnSumProduct",
    "SubstitutionCounts",
    "collect_counts",
    "reconstruct_ancestors",
]
