"""Guide command implementation."""

import logging
from pathlib import Path
from typing import Optional

import numpy as np
import typer

from ...align.guide import build_guide_alignment
from ...align.pairwise import PairHMMAligner
from ...errors import EvoAlignError
from ...io.sequences import Sequence, format_fasta, read_fasta, ungap
from ...models.rate import SubstitutionModel

logger = logging.getLogger(__name__)


def run_guide(
    sequences: Path,
    model: Path,
    time: float,
    seed: Optional[int],
    band: Optional[int],
    output: Optional[Path],
):
    """Build a guide alignment and write it as FASTA."""
    try:
        seqs = [Sequence(s.name, ungap(s.seq)) for s in read_fasta(sequences)]
        rate_model = SubstitutionModel.from_json(model)
        rng = np.random.default_rng(seed)
        alignment = build_guide_alignment(
            seqs, rate_model, time, rng=rng, aligner=PairHMMAligner(band=band)
        )
    except EvoAlignError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    output_text = format_fasta(alignment.sequences())
    if output:
        with open(output, "w") as f:
            f.write(output_text)
        logger.info("Guide alignment written to %s", output)
    else:
        typer.echo(output_text, nl=False)
