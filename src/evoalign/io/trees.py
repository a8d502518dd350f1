"""
Phylogenetic tree parsing and index-based queries.

Nodes are numbered in post-order: every child has a smaller index than its
parent and the root is the last node. Alignment rows for the column
sum-product engine follow the same numbering.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..errors import InputError, require


@dataclass
class TreeNode:
    """
    Phylogenetic tree node.

    Attributes
    ----------
    id : int
        Post-order node index
    name : Optional[str]
        Node name (always set for leaves)
    parent : Optional[TreeNode]
        Parent node
    children : list[TreeNode]
        Child nodes
    branch_length : float
        Branch length to parent
    """

    id: int
    name: Optional[str] = None
    parent: Optional["TreeNode"] = None
    children: list["TreeNode"] = field(default_factory=list)
    branch_length: float = 0.0

    @property
    def is_leaf(self) -> bool:
        """Check if node is a leaf."""
        return len(self.children) == 0


@dataclass
class Tree:
    """
    Rooted phylogenetic tree.

    Attributes
    ----------
    root : TreeNode
        Root node of the tree
    nodes : list[TreeNode]
        All nodes, indexed by post-order id (root last)
    leaf_names : list[str]
        Names of leaf nodes, in index order
    """

    root: TreeNode
    nodes: list[TreeNode]
    leaf_names: list[str]

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_leaves(self) -> int:
        return len(self.leaf_names)

    @classmethod
    def from_newick(cls, newick_string: str) -> "Tree":
        """
        Parse a Newick format tree string.

        Parameters
        ----------
        newick_string : str
            Newick format tree, e.g. ``"((a:0.1,b:0.2)ab:0.3,c:0.4)root;"``

        Returns
        -------
        Tree
            Parsed tree with post-order node ids

        Raises
        ------
        InputError
            If the string is not valid Newick
        """
        # Remove [comments] and whitespace outside names
        newick = re.sub(r"\[[^\]]*\]", "", newick_string).strip()
        if ";" not in newick:
            raise InputError("Invalid Newick format: missing semicolon")
        newick = newick[: newick.index(";")]
        newick = newick.replace("\n", "").replace("\t", "").replace("\r", "")

        def skip_whitespace(s: str, pos: int) -> int:
            """Skip whitespace characters."""
            while pos < len(s) and s[pos] == " ":
                pos += 1
            return pos

        def parse_node(s: str, start: int, parent: Optional[TreeNode] = None) -> tuple[TreeNode, int]:
            """Parse a node from position start in string s."""
            node = TreeNode(id=-1, parent=parent)
            pos = skip_whitespace(s, start)

            if pos < len(s) and s[pos] == "(":
                pos = skip_whitespace(s, pos + 1)
                while True:
                    child, pos = parse_node(s, pos, node)
                    node.children.append(child)
                    pos = skip_whitespace(s, pos)

                    if pos < len(s) and s[pos] == ",":
                        pos = skip_whitespace(s, pos + 1)
                        continue
                    elif pos < len(s) and s[pos] == ")":
                        pos = skip_whitespace(s, pos + 1)
                        break
                    else:
                        raise InputError(f"Invalid Newick format: expected ',' or ')' at position {pos}")

            name_start = pos
            while pos < len(s) and s[pos] not in ",:() ":
                pos += 1
            if pos > name_start:
                node.name = s[name_start:pos]

            pos = skip_whitespace(s, pos)

            if pos < len(s) and s[pos] == ":":
                pos = skip_whitespace(s, pos + 1)
                length_start = pos
                while pos < len(s) and s[pos] not in ",() ":
                    pos += 1
                try:
                    node.branch_length = float(s[length_start:pos])
                except ValueError:
                    raise InputError(f"Invalid branch length: {s[length_start:pos]}") from None
                require(node.branch_length >= 0, "Negative branch length: %g", node.branch_length)

            return node, pos

        root, pos = parse_node(newick, 0, None)
        if skip_whitespace(newick, pos) != len(newick):
            raise InputError(f"Invalid Newick format: unexpected text at position {pos}")

        nodes: list[TreeNode] = []

        def number(node: TreeNode) -> None:
            """Assign post-order ids."""
            for child in node.children:
                number(child)
            node.id = len(nodes)
            nodes.append(node)

        number(root)

        leaf_names = []
        for node in nodes:
            if node.is_leaf:
                require(node.name is not None, "Leaf node %d has no name", node.id)
                leaf_names.append(node.name)
        require(len(set(leaf_names)) == len(leaf_names), "Duplicate leaf names in tree")

        return cls(root=root, nodes=nodes, leaf_names=leaf_names)

    @classmethod
    def from_file(cls, filepath: Path | str) -> "Tree":
        """Read a Newick tree from a file."""
        with open(Path(filepath), "r") as f:
            return cls.from_newick(f.read())

    def postorder(self) -> list[TreeNode]:
        """
        Return nodes in post-order traversal (leaves to root).

        Returns
        -------
        list[TreeNode]
            Nodes in post-order (identical to index order)
        """
        return list(self.nodes)

    def get_branches(self) -> list[tuple[TreeNode, TreeNode]]:
        """
        Get all branches as (parent, child) pairs, in child index order.
        """
        return [(node.parent, node) for node in self.nodes if node.parent is not None]

    def parent_node(self, idx: int) -> int:
        """Index of the parent of node ``idx``, or -1 for the root."""
        parent = self.nodes[idx].parent
        return -1 if parent is None else parent.id

    def children(self, idx: int) -> list[int]:
        return [child.id for child in self.nodes[idx].children]

    def n_children(self, idx: int) -> int:
        return len(self.nodes[idx].children)

    def siblings(self, idx: int) -> list[int]:
        """Indices of the other children of node ``idx``'s parent."""
        parent = self.nodes[idx].parent
        if parent is None:
            return []
        return [child.id for child in parent.children if child.id != idx]

    def branch_length(self, idx: int) -> float:
        """Length of the branch from node ``idx`` to its parent."""
        return self.nodes[idx].branch_length

    def is_leaf(self, idx: int) -> bool:
        return self.nodes[idx].is_leaf

    def node_name(self, idx: int) -> str:
        """Node name, or a generated ``node<idx>`` name for unnamed internal nodes."""
        name = self.nodes[idx].name
        return name if name is not None else f"node{idx}"

    def node_index(self, name: str) -> int:
        for node in self.nodes:
            if self.node_name(node.id) == name:
                return node.id
        raise InputError(f"Tree has no node named '{name}'")

    def closest_leaf(self, idx: int) -> tuple[int, float]:
        """
        Nearest leaf to node ``idx`` by path length, searching the whole tree.

        Returns
        -------
        tuple[int, float]
            (leaf index, distance); a leaf is its own closest leaf at distance 0
        """
        best = (-1, float("inf"))
        visited = {idx}
        frontier = [(idx, 0.0)]
        while frontier:
            node_idx, dist = frontier.pop()
            node = self.nodes[node_idx]
            if node.is_leaf and (dist < best[1] or (dist == best[1] and node_idx < best[0])):
                best = (node_idx, dist)
            neighbours = [(child.id, child.branch_length) for child in node.children]
            if node.parent is not None:
                neighbours.append((node.parent.id, node.branch_length))
            for next_idx, length in neighbours:
                if next_idx not in visited:
                    visited.add(next_idx)
                    frontier.append((next_idx, dist + length))
        return best
