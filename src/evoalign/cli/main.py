"""Main CLI application for evoalign."""

import logging
import typer
from pathlib import Path
from typing import Optional

from ..logs import configure_logger

app = typer.Typer(
    name="evoalign",
    help="Statistical alignment and ancestral reconstruction on phylogenetic trees",
    no_args_is_help=True,
)


_handler: Optional[logging.Handler] = None


def setup_logging(verbose: bool, debug: bool) -> logging.Logger:
    """Send evoalign log records to the current stderr at the requested verbosity."""
    global _handler
    logger = logging.getLogger("evoalign")
    if _handler is not None:
        logger.removeHandler(_handler)
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(_handler)
    return configure_logger(logger, verbose=verbose, debug=debug)


@app.command()
def guide(
    sequences: Path = typer.Option(
        ...,
        "--sequences", "-s",
        help="Ungapped sequences (FASTA)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    model: Path = typer.Option(
        ...,
        "--model", "-m",
        help="Substitution rate model (JSON)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    time: float = typer.Option(
        ...,
        "--time", "-t",
        help="Evolutionary time between sequences (must be positive)",
        min=0.0,
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Random seed for reproducibility",
    ),
    band: Optional[int] = typer.Option(
        None,
        "--band",
        help="Pairwise DP band width around the main diagonal (default: full)",
        min=0,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output FASTA file (default: stdout)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show alignment progress",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Show debugging output",
    ),
):
    """
    Build a guide alignment from random pairwise alignments.

    Pairs of sequences are aligned at random until every sequence is
    connected, then the alignments on a maximum-weight spanning tree are
    merged into one multiple alignment.

    Example:
        evoalign guide -s seqs.fa -m model.json -t 0.1 --seed 1 -o guide.fa
    """
    from .commands.guide import run_guide

    setup_logging(verbose, debug)
    run_guide(
        sequences=sequences,
        model=model,
        time=time,
        seed=seed,
        band=band,
        output=output,
    )


@app.command()
def counts(
    alignment: Path = typer.Option(
        ...,
        "--alignment", "-s",
        help="Gapped alignment of tree nodes (FASTA)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    tree: Path = typer.Option(
        ...,
        "--tree", "-n",
        help="Phylogenetic tree file (Newick format)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    model: Path = typer.Option(
        ...,
        "--model", "-m",
        help="Substitution rate model (JSON)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    direct: bool = typer.Option(
        False,
        "--direct",
        help="Accumulate counts state pair by state pair instead of in the eigenbasis",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output JSON file (default: stdout)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show progress",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Show debugging output",
    ),
):
    """
    Compute expected substitution counts for an alignment on a tree.

    Reports root state counts, expected substitution counts (expected time
    spent in each state on the diagonal) and the log-likelihood as JSON.
    Internal nodes missing from the alignment are treated as unobserved.

    Example:
        evoalign counts -s aligned.fa -n tree.nwk -m model.json
    """
    from .commands.counts import run_counts

    setup_logging(verbose, debug)
    run_counts(
        alignment=alignment,
        tree=tree,
        model=model,
        direct=direct,
        output=output,
    )


@app.command()
def reconstruct(
    alignment: Path = typer.Option(
        ...,
        "--alignment", "-s",
        help="Gapped alignment of tree nodes (FASTA)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    tree: Path = typer.Option(
        ...,
        "--tree", "-n",
        help="Phylogenetic tree file (Newick format)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    model: Path = typer.Option(
        ...,
        "--model", "-m",
        help="Substitution rate model (JSON)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output FASTA file (default: stdout)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show progress",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Show debugging output",
    ),
):
    """
    Reconstruct ancestral sequences by maximum posterior state.

    Writes every tree node's row, with ancestral wildcards replaced by
    the most probable residue.

    Example:
        evoalign reconstruct -s aligned.fa -n tree.nwk -m model.json -o ancestors.fa
    """
    from .commands.counts import run_reconstruct

    setup_logging(verbose, debug)
    run_reconstruct(
        alignment=alignment,
        tree=tree,
        model=model,
        output=output,
    )


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
