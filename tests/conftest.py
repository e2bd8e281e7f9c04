"""
Pytest configuration and common fixtures for varmotif tests.
"""
import sys
import tempfile
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Force testing the installed package, not the local source
project_root = str(Path(__file__).parent.parent.absolute())
if project_root in sys.path:
    sys.path.remove(project_root)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def kmer_z_scores():
    """Z-scores of four 6-mers over six samples.

    CATTCC and ATTCCA share a pattern (normalized covariance 0.833 on the
    forward strand at offset +1); GGGGGG and TTTTTT vary independently.
    """
    samples = [f"sample_{i}" for i in range(1, 7)]
    return pd.DataFrame(
        [
            [3.0, -3.0, 3.0, -3.0, 3.0, -3.0],
            [2.5, -2.5, 2.5, -2.5, 2.5, -2.5],
            [2.0, 2.0, -2.0, -2.0, 0.0, 0.0],
            [0.0, 0.0, 2.0, -2.0, -2.0, 2.0],
        ],
        index=["CATTCC", "ATTCCA", "GGGGGG", "TTTTTT"],
        columns=samples,
    )


@pytest.fixture
def deviations_file(temp_dir, kmer_z_scores):
    """Tab separated deviation table with one non k-mer annotation."""
    table = kmer_z_scores.copy()
    table.loc["GATA2"] = [1.0, -1.0, 0.5, -0.5, 0.0, 0.0]
    path = temp_dir / "deviations.tsv"
    table.to_csv(path, sep="\t")
    return path


@pytest.fixture
def gata_motif_matrix():
    """Seven-position GATA-like probability matrix."""
    return np.array(
        [
            [0.10, 0.40, 0.40, 0.10],
            [0.05, 0.05, 0.85, 0.05],
            [0.85, 0.05, 0.05, 0.05],
            [0.05, 0.05, 0.05, 0.85],
            [0.85, 0.05, 0.05, 0.05],
            [0.60, 0.10, 0.20, 0.10],
            [0.25, 0.25, 0.25, 0.25],
        ]
    )
