"""
Pytest configuration and shared fixtures.
"""

import json

import numpy as np
import pytest
from typer.testing import CliRunner

from evoalign.io.trees import Tree
from evoalign.models.rate import SubstitutionModel


@pytest.fixture
def jc_model():
    """Jukes-Cantor nucleotide model with unit expected rate."""
    return SubstitutionModel.jukes_cantor("acgt")


@pytest.fixture
def cyclic_model():
    """
    Non-reversible three-state model with a complex-conjugate eigenpair.

    The circulant generator drifts x -> y -> z -> x faster than backwards,
    so detailed balance fails and two eigenvalues are -3.75 +/- 1.3i.
    """
    Q = np.array(
        [
            [-2.5, 2.0, 0.5],
            [0.5, -2.5, 2.0],
            [2.0, 0.5, -2.5],
        ]
    )
    return SubstitutionModel("xyz", Q, np.ones(3) / 3)


@pytest.fixture
def hky_model():
    """Reversible nucleotide model with unequal frequencies and kappa = 4."""
    pi = np.array([0.1, 0.2, 0.3, 0.4])
    rates = np.ones((4, 4))
    rates[0, 2] = rates[2, 0] = 4.0
    rates[1, 3] = rates[3, 1] = 4.0
    return SubstitutionModel.reversible("acgt", rates, pi)


@pytest.fixture
def make_k80():
    """Factory for K80 models with uniform frequencies (degenerate eigenvalues at kappa = 1)."""

    def _make(kappa: float) -> SubstitutionModel:
        rates = np.ones((4, 4))
        rates[0, 2] = rates[2, 0] = kappa
        rates[1, 3] = rates[3, 1] = kappa
        return SubstitutionModel.reversible("acgt", rates, np.ones(4) / 4)

    return _make


@pytest.fixture
def star_tree():
    """Three leaves joined at the root: a=0, b=1, c=2, root=3."""
    return Tree.from_newick("(a:0.1,b:0.2,c:0.3)root;")


@pytest.fixture
def four_leaf_tree():
    """Balanced tree: a=0, b=1, ab=2, c=3, d=4, cd=5, root=6."""
    return Tree.from_newick("((a:0.1,b:0.2)ab:0.15,(c:0.3,d:0.05)cd:0.1)root;")


@pytest.fixture
def model_file(tmp_path, hky_model):
    """Rate model JSON file."""
    path = tmp_path / "model.json"
    path.write_text(json.dumps(hky_model.to_dict()))
    return path


@pytest.fixture
def tree_file(tmp_path):
    """Four-leaf Newick tree file with unnamed internal nodes."""
    path = tmp_path / "tree.nwk"
    path.write_text("((a:0.1,b:0.2):0.15,(c:0.3,d:0.05):0.1);\n")
    return path


@pytest.fixture
def unaligned_file(tmp_path):
    """Ungapped FASTA sequences."""
    path = tmp_path / "seqs.fa"
    path.write_text(
        ">a\nacgtacgtaa\n"
        ">b\nacgtcgtaa\n"
        ">c\naggtacgtta\n"
        ">d\nacgtacgtaacg\n"
    )
    return path


@pytest.fixture
def aligned_file(tmp_path):
    """Gapped FASTA alignment of the tree_file leaves."""
    path = tmp_path / "aligned.fa"
    path.write_text(
        ">a\nacgt-acgt\n"
        ">b\nacgtt-cgt\n"
        ">c\naggt--cga\n"
        ">d\nacgtaacg-\n"
    )
    return path


@pytest.fixture
def cli_runner():
    """CLI test runner for Typer apps."""
    return CliRunner()
