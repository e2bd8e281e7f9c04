from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence

import joblib
import numpy as np
import pandas as pd

from varmotif.deviations import DeviationMatrix
from varmotif.models import Motif


def read_meme(path: str | Path) -> List[Motif]:
    """Read every motif of a MEME formatted file."""
    motifs: List[Motif] = []
    source = str(path)

    with open(path) as handle:
        line = handle.readline()
        while line:
            if line.startswith("MOTIF"):
                parts = line.strip().split()
                if len(parts) < 2:
                    raise ValueError(f"Malformed MOTIF line in {source}: {line.strip()!r}")
                name = parts[1]

                header_line = handle.readline()
                while header_line and not header_line.strip():
                    header_line = handle.readline()
                header = header_line.replace("=", "= ").split()

                try:
                    length_idx = header.index("w=") + 1
                    length = int(header[length_idx])
                except (ValueError, IndexError) as e:
                    raise ValueError(f"Motif {name!r} in {source} has no 'w=' width in its header") from e

                matrix = []
                while len(matrix) < length:
                    row_line = handle.readline()
                    if not row_line:
                        break
                    row = row_line.strip().split()
                    if not row:
                        continue
                    matrix.append([float(x) for x in row])

                motifs.append(Motif(name=name, matrix=np.array(matrix, dtype=np.float64), metadata={"source": source}))

            line = handle.readline()

    if not motifs:
        raise ValueError(f"No motifs found in {path}")

    return motifs


def write_meme(motifs: Sequence[Motif], path: str | Path) -> None:
    """Write a list of motifs to a MEME formatted file."""
    with open(path, "w") as out:
        out.write("MEME version 4\n\n")
        out.write("ALPHABET= ACGT\n\n")
        out.write("strands: + -\n\n")
        out.write("Background letter frequencies\n")
        out.write("A 0.25 C 0.25 G 0.25 T 0.25\n\n")
        for motif in motifs:
            out.write(f"MOTIF {motif.name}\n")
            out.write(f"letter-probability matrix: alength= 4 w= {motif.width}\n")
            for row in motif.matrix:
                out.write(" " + " ".join(f"{val:.6f}" for val in row) + "\n")
            out.write("\n")


def write_pfm(motif: Motif, path: str | Path) -> None:
    """Write a motif as a Position Frequency Matrix file (one row per position)."""
    with open(path, "w") as f:
        f.write(f">{motif.name}\n")
        np.savetxt(f, motif.matrix, fmt="%.6f", delimiter="\t")


def read_pfm(path: str | Path) -> Motif:
    """Read a Position Frequency Matrix file written by :func:`write_pfm`."""
    name = os.path.splitext(os.path.basename(str(path)))[0]
    with open(path) as handle:
        first = handle.readline().strip()
    if first.startswith(">") and len(first) > 1:
        name = first[1:].strip()
    matrix = np.loadtxt(path, comments=">", ndmin=2)
    if matrix.shape[1] != 4 and matrix.shape[0] == 4:
        matrix = matrix.T
    return Motif(name=name, matrix=matrix, metadata={"source": str(path)})


def read_motifs(path: str | Path) -> List[Motif]:
    """Read motifs from ``.meme``, ``.pfm`` or joblib ``.pkl`` files."""
    _, ext = os.path.splitext(str(path).lower())

    if ext == ".meme":
        return read_meme(path)
    elif ext == ".pfm":
        return [read_pfm(path)]
    elif ext == ".pkl":
        loaded = joblib.load(path)
        motifs = [loaded] if isinstance(loaded, Motif) else list(loaded)
        if not all(isinstance(m, Motif) for m in motifs):
            raise ValueError(f"{path} does not contain Motif objects")
        return motifs
    else:
        raise ValueError(f"Unsupported motif format: {path}")


def write_motifs(motifs: Sequence[Motif], path: str | Path) -> None:
    """Write motifs, choosing the format from the file extension."""
    _, ext = os.path.splitext(str(path).lower())
    os.makedirs(os.path.dirname(os.path.abspath(str(path))), exist_ok=True)

    if ext == ".meme":
        write_meme(motifs, path)
    elif ext == ".pkl":
        joblib.dump(list(motifs), path)
    elif ext == ".pfm":
        if len(motifs) != 1:
            raise ValueError(f"A .pfm file holds exactly one motif, got {len(motifs)}")
        write_pfm(motifs[0], path)
    else:
        raise ValueError(f"Unsupported motif format: {path}")

    logger = logging.getLogger(__name__)
    logger.info(f"Wrote {len(motifs)} motif(s) to {path}")


def _table_separator(path: str | Path) -> str:
    """Tab for .tsv/.txt files, comma otherwise."""
    suffix = Path(path).suffix.lower()
    return "\t" if suffix in {".tsv", ".txt", ".tab"} else ","


def read_table(path: str | Path) -> pd.DataFrame:
    """Read a labelled numeric table; the first column holds the row labels."""
    table = pd.read_csv(path, sep=_table_separator(path), index_col=0)
    table.index = table.index.astype(str)
    return table


def read_deviations(path: str | Path, deviations_path: Optional[str | Path] = None) -> DeviationMatrix:
    """Load a Z-score table (and optionally raw deviations) produced by the deviation engine."""
    z_scores = read_table(path)
    deviations = read_table(deviations_path) if deviations_path is not None else None

    logger = logging.getLogger(__name__)
    logger.info(f"Loaded deviations for {z_scores.shape[0]} annotation(s) x {z_scores.shape[1]} sample(s) from {path}")
    return DeviationMatrix(z_scores=z_scores, deviations=deviations)


def read_covariance(path: str | Path) -> pd.DataFrame:
    """Load a square covariance table indexed by annotation on both axes."""
    covariance = read_table(path)
    covariance.columns = covariance.columns.astype(str)
    return covariance


def write_table(frame: pd.DataFrame, path: str | Path) -> None:
    """Write a DataFrame with its index, separator chosen from the extension."""
    frame.to_csv(path, sep=_table_separator(path))
