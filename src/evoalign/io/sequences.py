"""
Sequence file parsing and gapped alignment handling.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

import numpy as np

from ..align.path import AlignPath, align_path_columns, path_from_gapped
from ..constants import GAP_CHAR, GAP_CHARS, WILDCARD_CHAR
from ..errors import InputError, invariant, require


@dataclass
class Sequence:
    """A named sequence (gapped or ungapped)."""

    name: str
    seq: str

    def __len__(self) -> int:
        return len(self.seq)


def parse_fasta(handle: TextIO) -> list[Sequence]:
    """Parse FASTA records from an open text handle. Case is preserved."""
    sequences = []
    current_name = None
    current_seq = []

    for line in handle:
        line = line.strip()

        if not line:
            continue

        if line.startswith(">"):
            if current_name is not None:
                sequences.append(Sequence(current_name, "".join(current_seq)))
            current_name = line[1:].strip().split()[0] if line[1:].strip() else ""
            current_seq = []
        else:
            require(current_name is not None, "FASTA sequence data before first '>' header")
            current_seq.append(re.sub(r"\s", "", line))

    if current_name is not None:
        sequences.append(Sequence(current_name, "".join(current_seq)))

    return sequences


def read_fasta(filepath: Path | str) -> list[Sequence]:
    """
    Read sequences from a FASTA file.

    Raises
    ------
    InputError
        If the file contains no sequences
    """
    filepath = Path(filepath)
    with open(filepath, "r") as f:
        sequences = parse_fasta(f)
    require(len(sequences) > 0, "No sequences found in FASTA file %s", filepath)
    return sequences


def format_fasta(sequences: list[Sequence], line_width: int = 60) -> str:
    """Format sequences as FASTA text, wrapping at ``line_width`` characters."""
    lines = []
    for record in sequences:
        lines.append(f">{record.name}")
        for i in range(0, len(record.seq), line_width):
            lines.append(record.seq[i:i + line_width])
    return "\n".join(lines) + "\n" if lines else ""


def write_fasta(sequences: list[Sequence], filepath: Path | str, line_width: int = 60) -> None:
    """Write sequences to a FASTA file."""
    with open(Path(filepath), "w") as f:
        f.write(format_fasta(sequences, line_width))


def ungap(seq: str) -> str:
    return "".join(c for c in seq if c not in GAP_CHARS)


@dataclass
class Alignment:
    """
    Multiple sequence alignment stored as gapped rows.

    Attributes
    ----------
    names : list[str]
        Row names
    rows : list[str]
        Gapped row strings, all of the same length
    """

    names: list[str]
    rows: list[str]

    def __post_init__(self):
        require(len(self.names) == len(self.rows), "Alignment has %d names but %d rows",
                len(self.names), len(self.rows))
        lengths = {len(row) for row in self.rows}
        require(len(lengths) <= 1, "Sequences have different lengths: %s", sorted(lengths))

    @property
    def n_rows(self) -> int:
        return len(self.rows)

    @property
    def n_columns(self) -> int:
        return len(self.rows[0]) if self.rows else 0

    @classmethod
    def from_sequences(cls, sequences: list[Sequence]) -> "Alignment":
        return cls(names=[s.name for s in sequences], rows=[s.seq for s in sequences])

    @classmethod
    def from_fasta(cls, filepath: Path | str) -> "Alignment":
        """
        Parse a gapped FASTA alignment.

        Examples
        --------
        >>> aln = Alignment.from_fasta("aligned.fa")
        """
        return cls.from_sequences(read_fasta(filepath))

    @classmethod
    def from_path(cls, sequences: list[Sequence], path: AlignPath) -> "Alignment":
        """
        Realize an alignment path over ungapped sequences.

        Row ``r`` of the path holds the residues of ``sequences[r]``.
        """
        n_columns = align_path_columns(path)
        rows = []
        for r, record in enumerate(sequences):
            row_path = path.get(r, np.zeros(n_columns, dtype=bool))
            invariant(
                int(np.count_nonzero(row_path)) == len(record.seq),
                "Path row %d has %d residues but sequence %s has length %d",
                r, int(np.count_nonzero(row_path)), record.name, len(record.seq),
            )
            residues = iter(record.seq)
            rows.append("".join(next(residues) if present else GAP_CHAR for present in row_path))
        return cls(names=[s.name for s in sequences], rows=rows)

    def path(self) -> AlignPath:
        return path_from_gapped(self.rows)

    def sequences(self) -> list[Sequence]:
        return [Sequence(name, row) for name, row in zip(self.names, self.rows)]

    def ungapped(self) -> list[Sequence]:
        return [Sequence(name, ungap(row)) for name, row in zip(self.names, self.rows)]

    def to_fasta(self, filepath: Path | str) -> None:
        write_fasta(self.sequences(), filepath)

    def rows_for_tree(self, tree) -> list[str]:
        """
        Gapped rows in tree node order, one per node.

        Leaves must be present by name. Internal nodes that are present by
        name use their row; the others get a wildcard wherever any child row
        has a residue and a gap elsewhere.

        Raises
        ------
        InputError
            If a leaf has no row or a row name is not a tree node
        """
        by_name = dict(zip(self.names, self.rows))
        node_names = [tree.node_name(i) for i in range(tree.n_nodes)]
        unknown = sorted(set(by_name) - set(node_names))
        require(not unknown, "Alignment rows not found in tree: %s", ", ".join(unknown))

        rows: list[str] = []
        for idx, name in enumerate(node_names):
            if name in by_name:
                rows.append(by_name[name])
            elif tree.is_leaf(idx):
                raise InputError(f"Leaf '{name}' has no alignment row")
            else:
                kids = [rows[c] for c in tree.children(idx)]
                rows.append("".join(
                    WILDCARD_CHAR if any(kid[col] not in GAP_CHARS for kid in kids) else GAP_CHAR
                    for col in range(self.n_columns)
                ))
        return rows

    def __repr__(self) -> str:
        return f"Alignment(n_rows={self.n_rows}, n_columns={self.n_columns})"
