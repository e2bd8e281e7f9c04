"""
Motif Models Module
===================

Immutable position weight matrix (PWM) container and the pure functions
that create, orient and pack motifs.

A motif is stored as a ``(width, 4)`` probability matrix with columns in
``A, C, G, T`` order.  Matrices are validated on construction and frozen
afterwards: a row that does not sum to one is rejected, never normalized.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field as dc_field
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from varmotif.functions import ALPHABET, consensus_sequence, encode_kmer, reverse_complement_matrix
from varmotif.ragged import RaggedData, ragged_from_list

PROBABILITY_TOLERANCE = 1e-4


class InvalidMotifError(ValueError):
    """Raised when a matrix is not a valid position probability matrix."""


def validate_matrix(matrix, name: str = "") -> np.ndarray:
    """Return a read-only float64 copy of ``matrix`` or raise InvalidMotifError."""
    try:
        arr = np.array(matrix, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidMotifError(f"Motif {name!r}: matrix is not numeric ({e})") from e

    if arr.ndim != 2 or arr.shape[1] != len(ALPHABET):
        raise InvalidMotifError(f"Motif {name!r}: expected a (width, 4) matrix, got shape {arr.shape}")
    if arr.shape[0] == 0:
        raise InvalidMotifError(f"Motif {name!r}: zero-width matrix")
    if not np.all(np.isfinite(arr)):
        raise InvalidMotifError(f"Motif {name!r}: matrix contains non-finite values")
    if np.any(arr < 0):
        raise InvalidMotifError(f"Motif {name!r}: matrix contains negative probabilities")

    row_sums = arr.sum(axis=1)
    bad_rows = np.where(np.abs(row_sums - 1.0) > PROBABILITY_TOLERANCE)[0]
    if bad_rows.size > 0:
        pos = int(bad_rows[0])
        raise InvalidMotifError(f"Motif {name!r}: position {pos} sums to {row_sums[pos]:.6f}, expected 1")

    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Motif:
    """Immutable position weight matrix.

    Attributes
    ----------
    name : str
        Motif identifier, used as row/column label in comparison results
    matrix : np.ndarray
        Read-only ``(width, 4)`` probability matrix, columns A, C, G, T
    metadata : dict
        Free-form annotations (seed k-mer, source file, ...)
    """

    name: str
    matrix: np.ndarray
    metadata: dict = dc_field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "matrix", validate_matrix(self.matrix, self.name))

    @property
    def width(self) -> int:
        """Number of positions."""
        return int(self.matrix.shape[0])

    @property
    def consensus(self) -> str:
        """Most probable nucleotide at each position."""
        return consensus_sequence(self.matrix)

    def to_frame(self) -> pd.DataFrame:
        """Return the matrix as a width x 4 DataFrame with A, C, G, T columns."""
        return pd.DataFrame(self.matrix, columns=list(ALPHABET))


def motif_from_kmer(kmer: str, name: Optional[str] = None, **metadata) -> Motif:
    """Create the degenerate one-hot motif of a single k-mer."""
    return Motif(name=name or kmer.upper(), matrix=encode_kmer(kmer), metadata=metadata)


def motif_from_counts(counts: np.ndarray, name: str, **metadata) -> Motif:
    """Create a motif from a ``(width, 4)`` matrix of non-negative weights by normalizing each row.

    This is the explicit normalization path; ``Motif`` itself never normalizes.
    """
    counts = np.asarray(counts, dtype=np.float64)
    totals = counts.sum(axis=1, keepdims=True)
    if np.any(totals <= 0):
        raise InvalidMotifError(f"Motif {name!r}: a position has no weight")
    return Motif(name=name, matrix=counts / totals, metadata=metadata)


def reverse_complement(motif: Motif) -> Motif:
    """Return the reverse complement of a motif."""
    metadata = dict(motif.metadata)
    metadata["reverse_complement_of"] = motif.name
    return Motif(name=f"{motif.name}_rc", matrix=reverse_complement_matrix(motif.matrix), metadata=metadata)


def pack_motifs(motifs: Iterable[Motif]) -> RaggedData:
    """Stack motif matrices into RaggedData for the alignment kernels."""
    matrices: List[np.ndarray] = [m.matrix for m in motifs]
    return ragged_from_list(matrices, dtype=np.float64)


def unique_names(motifs: List[Motif]) -> List[str]:
    """Return motif names, suffixing duplicates so they can label DataFrame axes.

    A suffixed label never reuses another motif's own name or a label
    already handed out.
    """
    original = {motif.name for motif in motifs}
    assigned: set = set()
    names = []
    for motif in motifs:
        label = motif.name
        count = 0
        while label in assigned or (count and label in original):
            count += 1
            label = f"{motif.name}.{count}"
        assigned.add(label)
        names.append(label)
    if len(original) != len(motifs):
        logger = logging.getLogger(__name__)
        logger.warning("Duplicate motif names found; suffixes were added to keep labels unique")
    return names
