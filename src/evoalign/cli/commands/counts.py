"""Counts and reconstruct command implementations."""

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from ...core.eigen import EigenModel
from ...core.sumprod import collect_counts, reconstruct_ancestors
from ...errors import EvoAlignError
from ...io.sequences import Alignment, Sequence, format_fasta
from ...io.trees import Tree
from ...models.rate import SubstitutionModel

logger = logging.getLogger(__name__)


def load_tree_alignment(alignment: Path, tree: Path, model: Path):
    """Load model, tree and the per-node gapped rows of an alignment."""
    rate_model = SubstitutionModel.from_json(model)
    tree_obj = Tree.from_file(tree)
    rows = Alignment.from_fasta(alignment).rows_for_tree(tree_obj)
    logger.info(
        "Loaded %d rows x %d columns on a tree with %d leaves",
        len(rows), len(rows[0]) if rows else 0, tree_obj.n_leaves,
    )
    return rate_model, tree_obj, rows


def _write(output_text: str, output: Optional[Path]) -> None:
    if output:
        with open(output, "w") as f:
            f.write(output_text)
        logger.info("Results written to %s", output)
    else:
        typer.echo(output_text, nl=False)


def run_counts(
    alignment: Path,
    tree: Path,
    model: Path,
    direct: bool,
    output: Optional[Path],
):
    """Accumulate substitution counts and write them as JSON."""
    try:
        rate_model, tree_obj, rows = load_tree_alignment(alignment, tree, model)
        result = collect_counts(
            rate_model, tree_obj, rows, use_eigen=not direct, eigen=EigenModel(rate_model)
        )
    except EvoAlignError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    _write(json.dumps(result.to_dict(), indent=2) + "\n", output)


def run_reconstruct(
    alignment: Path,
    tree: Path,
    model: Path,
    output: Optional[Path],
):
    """Reconstruct ancestral rows and write every node's row as FASTA."""
    try:
        rate_model, tree_obj, rows = load_tree_alignment(alignment, tree, model)
        reconstructed = reconstruct_ancestors(rate_model, tree_obj, rows)
    except EvoAlignError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    records = [
        Sequence(tree_obj.node_name(idx), row) for idx, row in enumerate(reconstructed)
    ]
    _write(format_fasta(records), output)
