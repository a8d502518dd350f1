"""
Input/Output modules for sequences, alignments and phylogenetic trees.

- **Sequences and alignments**: FASTA format, gapped rows and alignment paths
- **Phylogenetic trees**: Newick format
"""

from evoalign.io.sequences import Alignment, Sequence, read_fasta, write_fasta
from evoalign.io.trees import Tree, TreeNode

__all__ = ["Alignment", "Sequence", "Tree", "TreeNode", "read_fasta", "write_fasta"]
