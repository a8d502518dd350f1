"""
Unit tests for I/O modules (sequence, tree and rate model parsing).
"""

import io
import json

import numpy as np
import pytest

from evoalign.errors import InputError, InvariantError
from evoalign.io.sequences import (
    Alignment,
    Sequence,
    format_fasta,
    parse_fasta,
    read_fasta,
    write_fasta,
)
from evoalign.io.trees import Tree
from evoalign.models.rate import SubstitutionModel


class TestFasta:
    """Test FASTA parsing and writing."""

    def test_parse(self):
        text = ">seq1 some description\nACGT\nac\n\n>seq2\nTT-A\n"
        records = parse_fasta(io.StringIO(text))
        assert [r.name for r in records] == ["seq1", "seq2"]
        assert records[0].seq == "ACGTac"
        assert records[1].seq == "TT-A"

    def test_data_before_header(self):
        with pytest.raises(InputError):
            parse_fasta(io.StringIO("ACGT\n>seq1\nAC\n"))

    def test_write_and_read(self, tmp_path):
        records = [Sequence("a", "acgt" * 20), Sequence("b", "")]
        path = tmp_path / "out.fa"
        write_fasta(records, path, line_width=50)

        lines = path.read_text().splitlines()
        assert lines[0] == ">a"
        assert len(lines[1]) == 50
        assert [(r.name, r.seq) for r in read_fasta(path)] == [("a", "acgt" * 20), ("b", "")]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.fa"
        path.write_text("")
        with pytest.raises(InputError, match="No sequences"):
            read_fasta(path)

    def test_format_empty(self):
        assert format_fasta([]) == ""


class TestAlignment:
    """Test gapped alignments and their paths."""

    def test_unequal_lengths(self):
        with pytest.raises(InputError, match="different lengths"):
            Alignment(names=["a", "b"], rows=["acg", "ac"])

    def test_path_round_trip(self):
        aln = Alignment(names=["a", "b"], rows=["ac-gt", "a.cg-"])
        path = aln.path()
        rebuilt = Alignment.from_path(aln.ungapped(), path)
        assert rebuilt.rows == ["ac-gt", "a-cg-"]

    def test_from_path_residue_mismatch(self):
        path = {0: np.array([True, True]), 1: np.array([True, False])}
        with pytest.raises(InvariantError):
            Alignment.from_path([Sequence("a", "ac"), Sequence("b", "ac")], path)

    def test_from_fasta(self, aligned_file):
        aln = Alignment.from_fasta(aligned_file)
        assert aln.n_rows == 4
        assert aln.n_columns == 9

    def test_rows_for_tree(self, four_leaf_tree):
        aln = Alignment(names=["d", "c", "b", "a"], rows=["--a", "-g-", "c--", "a-t"])
        rows = aln.rows_for_tree(four_leaf_tree)
        assert rows == ["a-t", "c--", "*-*", "-g-", "--a", "-**", "***"]

    def test_rows_for_tree_keeps_named_ancestor(self, four_leaf_tree):
        aln = Alignment(
            names=["a", "b", "c", "d", "ab"], rows=["a-", "c-", "gt", "g-", "--"]
        )
        rows = aln.rows_for_tree(four_leaf_tree)
        assert rows[2] == "--"

    def test_rows_for_tree_missing_leaf(self, four_leaf_tree):
        aln = Alignment(names=["a", "b", "c"], rows=["a", "c", "g"])
        with pytest.raises(InputError, match="Leaf 'd'"):
            aln.rows_for_tree(four_leaf_tree)

    def test_rows_for_tree_unknown_name(self, four_leaf_tree):
        aln = Alignment(names=["a", "b", "c", "d", "e"], rows=["a"] * 5)
        with pytest.raises(InputError, match="not found in tree"):
            aln.rows_for_tree(four_leaf_tree)


class TestTreeParsing:
    """Test Newick tree parsing."""

    def test_postorder_numbering(self, four_leaf_tree):
        names = [four_leaf_tree.node_name(i) for i in range(four_leaf_tree.n_nodes)]
        assert names == ["a", "b", "ab", "c", "d", "cd", "root"]
        assert four_leaf_tree.leaf_names == ["a", "b", "c", "d"]
        assert four_leaf_tree.root.id == 6
        assert [n.id for n in four_leaf_tree.postorder()] == list(range(7))

    def test_index_queries(self, four_leaf_tree):
        tree = four_leaf_tree
        assert tree.parent_node(0) == 2
        assert tree.parent_node(6) == -1
        assert tree.children(6) == [2, 5]
        assert tree.n_children(2) == 2
        assert tree.siblings(3) == [4]
        assert tree.siblings(6) == []
        assert tree.branch_length(2) == pytest.approx(0.15)
        assert tree.is_leaf(4)
        assert not tree.is_leaf(5)
        assert tree.node_index("cd") == 5

    def test_branches(self, four_leaf_tree):
        branches = four_leaf_tree.get_branches()
        assert len(branches) == 6
        assert all(child.parent is parent for parent, child in branches)

    def test_unnamed_internal_nodes(self):
        tree = Tree.from_newick("((a:1,b:2):3,c:4);")
        assert tree.node_name(2) == "node2"
        assert tree.node_name(4) == "node4"
        assert tree.node_index("node2") == 2

    def test_comments_and_whitespace(self):
        tree = Tree.from_newick("( a : 0.5 [comment], b:0.25 )r ;\n")
        assert tree.leaf_names == ["a", "b"]
        assert tree.branch_length(0) == pytest.approx(0.5)
        assert tree.node_name(2) == "r"

    def test_closest_leaf(self, four_leaf_tree):
        tree = four_leaf_tree
        assert tree.closest_leaf(0) == (0, 0.0)
        leaf, dist = tree.closest_leaf(2)
        assert leaf == 0 and dist == pytest.approx(0.1)
        # From the root: a is 0.25 away, d is 0.15 away
        leaf, dist = tree.closest_leaf(6)
        assert leaf == 4 and dist == pytest.approx(0.15)

    def test_from_file(self, tree_file):
        tree = Tree.from_file(tree_file)
        assert tree.n_leaves == 4
        assert tree.n_nodes == 7

    @pytest.mark.parametrize(
        "newick, message",
        [
            ("(a:1,b:2)", "missing semicolon"),
            ("(a:1,b:-2);", "Negative branch length"),
            ("(a:1,a:2);", "Duplicate leaf names"),
            ("(a:1,:2);", "has no name"),
            ("(a:1,b:x);", "Invalid branch length"),
            ("(a:1,b:2;", "expected ','"),
        ],
    )
    def test_invalid(self, newick, message):
        with pytest.raises(InputError, match=message):
            Tree.from_newick(newick)


class TestRateModel:
    """Test substitution model construction and JSON parsing."""

    def test_from_dict(self):
        model = SubstitutionModel.from_dict(
            {
                "alphabet": "ab",
                "rootprob": {"a": 0.25, "b": 0.75},
                "subrate": {"a": {"b": 3.0}, "b": {"a": 1.0}},
                "insrate": 0.02,
            }
        )
        np.testing.assert_allclose(model.Q, [[-3.0, 3.0], [1.0, -1.0]])
        np.testing.assert_allclose(model.pi, [0.25, 0.75])
        assert model.ins_rate == 0.02
        assert model.del_rate == 0.01
        assert model.ins_ext == 0.66

    def test_json_round_trip(self, tmp_path, hky_model):
        path = tmp_path / "model.json"
        path.write_text(json.dumps(hky_model.to_dict()))
        model = SubstitutionModel.from_json(path)
        np.testing.assert_allclose(model.Q, hky_model.Q, rtol=1e-12)
        np.testing.assert_allclose(model.pi, hky_model.pi, rtol=1e-12)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(InputError, match="not valid JSON"):
            SubstitutionModel.from_json(path)

    def test_unknown_symbol_in_rates(self):
        with pytest.raises(InputError, match="not in alphabet"):
            SubstitutionModel.from_dict({"alphabet": "ab", "subrate": {"a": {"z": 1.0}}})

    def test_tokenize_case_insensitive(self, jc_model):
        assert jc_model.tokenize("G") == jc_model.tokenize("g") == 2
        np.testing.assert_array_equal(jc_model.tokenize_sequence("AcGt"), [0, 1, 2, 3])
        assert jc_model.is_symbol("T")
        assert not jc_model.is_symbol("-")

    def test_unknown_symbol(self, jc_model):
        with pytest.raises(InputError, match="not in alphabet"):
            jc_model.tokenize("n")

    def test_immutable(self, jc_model):
        with pytest.raises(ValueError):
            jc_model.Q[0, 1] = 5.0

    def test_invalid_generator(self):
        with pytest.raises(InputError, match="zero row sums"):
            SubstitutionModel("ab", np.array([[-1.0, 2.0], [1.0, -1.0]]), np.ones(2))

    def test_duplicate_alphabet(self):
        with pytest.raises(InputError, match="distinct"):
            SubstitutionModel.jukes_cantor("aA")
