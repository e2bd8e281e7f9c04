"""
assembly
========

De novo motif assembly from k-mer deviations.

Highly variable k-mers are taken as seeds in order of decreasing
variability.  For each seed, the unused k-mers that covary with it are
aligned onto it (both strands, every offset) and merged into a position
weight matrix in which every k-mer contributes its nucleotides with a
weight equal to its normalized covariance with the seed (the seed itself
has weight 1).  Merged k-mers are consumed and never seed a motif of
their own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from varmotif.deviations import DeviationsLike, as_z_scores, compute_variability, deviations_covariability
from varmotif.functions import (
    METRIC_ED,
    STRAND_FORWARD,
    STRAND_REVERSE,
    align_pair,
    count_mismatches,
    encode_kmer,
    reverse_complement_kmer,
)
from varmotif.models import Motif, motif_from_counts

_NUC_INDEX = {"A": 0, "C": 1, "G": 2, "T": 3}


class AssemblerInputError(ValueError):
    """Raised when the k-mer deviations or covariance matrix cannot support assembly."""


@dataclass(frozen=True)
class AssemblyConfig:
    """Parameters of the de novo assembler.

    Attributes
    ----------
    variability_threshold : float
        Minimum variability for a k-mer to seed a motif.
    p_cutoff : float
        Maximum adjusted variability p-value for a k-mer to seed a motif.
    covariance_threshold : float
        Minimum normalized covariance with the seed for a k-mer to be merged.
    max_mismatches : int
        Maximum mismatched positions between an aligned k-mer and the seed.
    min_overlap : int, optional
        Minimum overlap when aligning k-mers onto the seed; defaults to k - 1.
    max_motifs : int, optional
        Stop after this many motifs.
    """

    variability_threshold: float = 1.5
    p_cutoff: float = 0.01
    covariance_threshold: float = 0.5
    max_mismatches: int = 1
    min_overlap: Optional[int] = None
    max_motifs: Optional[int] = None

    def __post_init__(self):
        if self.covariance_threshold <= 0:
            raise ValueError(f"covariance_threshold must be positive, got {self.covariance_threshold}")
        if not 0 <= self.p_cutoff <= 1:
            raise ValueError(f"p_cutoff must be within [0, 1], got {self.p_cutoff}")
        if self.max_mismatches < 0:
            raise ValueError(f"max_mismatches must be non-negative, got {self.max_mismatches}")
        if self.min_overlap is not None and self.min_overlap < 1:
            raise ValueError(f"min_overlap must be at least 1, got {self.min_overlap}")
        if self.max_motifs is not None and self.max_motifs < 1:
            raise ValueError(f"max_motifs must be at least 1, got {self.max_motifs}")


def create_assembly_config(**kwargs) -> AssemblyConfig:
    """Build an AssemblyConfig, rejecting unknown parameters."""
    return AssemblyConfig(**kwargs)


@dataclass(frozen=True, eq=False)
class AssembledMotif:
    """A de novo motif together with the k-mers it was built from.

    ``members``, ``strands``, ``offsets`` and ``weights`` are parallel; the
    seed comes first with strand ``+``, offset 0 and weight 1.  Offsets are
    relative to the first position of the seed.
    """

    motif: Motif
    seed: str
    variability: float
    members: Tuple[str, ...]
    strands: Tuple[str, ...]
    offsets: Tuple[int, ...]
    weights: Tuple[float, ...]

    @property
    def name(self) -> str:
        return self.motif.name

    def to_dict(self) -> dict:
        """JSON-friendly summary."""
        return {
            "name": self.motif.name,
            "seed": self.seed,
            "variability": float(self.variability),
            "consensus": self.motif.consensus,
            "width": self.motif.width,
            "members": list(self.members),
        }


def _validate_kmers(index: pd.Index) -> Tuple[List[str], int]:
    """Check that all annotations are unique ACGT k-mers of one length."""
    if len(index) == 0:
        raise AssemblerInputError("The deviation set contains no k-mers")
    kmers = []
    for label in index:
        if not isinstance(label, str) or not label or set(label) - set(_NUC_INDEX):
            raise AssemblerInputError(f"Annotation {label!r} is not an ACGT k-mer")
        kmers.append(label)
    lengths = {len(kmer) for kmer in kmers}
    if len(lengths) != 1:
        raise AssemblerInputError(f"All k-mers must share one length, got lengths {sorted(lengths)}")
    if len(set(kmers)) != len(kmers):
        raise AssemblerInputError("K-mers in the deviation set must be unique")
    return kmers, lengths.pop()


def _seed_statistics(kmers: List[str], variability: pd.DataFrame) -> Tuple[Dict[str, float], Dict[str, float]]:
    """Look up variability and adjusted p-value for every k-mer."""
    if "variability" not in variability.columns:
        raise AssemblerInputError("Variability table has no 'variability' column")
    missing = [kmer for kmer in kmers if kmer not in variability.index]
    if missing:
        raise AssemblerInputError(f"Variability missing for {len(missing)} k-mer(s), e.g. {missing[0]!r}")

    table = variability.loc[kmers]
    values = table["variability"].to_numpy(dtype=np.float64)
    if not np.all(np.isfinite(values)):
        raise AssemblerInputError("Variability table contains non-finite values")
    if "p_value_adj" in table.columns:
        p_adj = table["p_value_adj"].to_numpy(dtype=np.float64)
    else:
        p_adj = np.zeros(len(kmers))
    return dict(zip(kmers, values, strict=True)), dict(zip(kmers, p_adj, strict=True))


def _covariance_row(covariance: pd.DataFrame, seed: str, candidates: List[str]) -> np.ndarray:
    """Covariances of the seed with every candidate; any gap is an input error."""
    if seed not in covariance.index:
        raise AssemblerInputError(f"Covariance matrix has no row for seed {seed!r}")
    missing = [kmer for kmer in candidates if kmer not in covariance.columns]
    if missing:
        raise AssemblerInputError(
            f"Covariance matrix is missing {len(missing)} entr(y/ies) for seed {seed!r}, e.g. {missing[0]!r}"
        )
    row = covariance.loc[seed, candidates].to_numpy(dtype=np.float64)
    if np.isnan(row).any():
        bad = candidates[int(np.where(np.isnan(row))[0][0])]
        raise AssemblerInputError(f"Covariance between {seed!r} and {bad!r} is missing")
    return row


def _build_pwm(placements: List[Tuple[str, int, int, float]], k: int, name: str, seed: str) -> Motif:
    """Accumulate covariance-weighted nucleotide counts of the aligned k-mers into a PWM."""
    start = min(0, min(offset for _, _, offset, _ in placements))
    end = max(k, max(offset + k for _, _, offset, _ in placements))

    counts = np.zeros((end - start, 4), dtype=np.float64)
    for kmer, strand, offset, weight in placements:
        oriented = reverse_complement_kmer(kmer) if strand == STRAND_REVERSE else kmer
        for j, nuc in enumerate(oriented):
            counts[offset - start + j, _NUC_INDEX[nuc]] += weight

    return motif_from_counts(counts, name=name, seed=seed, n_kmers=len(placements))


def assemble_kmers(
    deviations: DeviationsLike,
    covariance: Optional[pd.DataFrame] = None,
    variability: Optional[pd.DataFrame] = None,
    config: Optional[AssemblyConfig] = None,
    progress: bool = False,
    **config_kwargs,
) -> List[AssembledMotif]:
    """
    Assemble de novo motifs from k-mer deviations.

    Parameters
    ----------
    deviations : DeviationMatrix or pd.DataFrame
        Z-scores of k-mers (rows) across samples (columns).
    covariance : pd.DataFrame, optional
        Normalized covariance between k-mers, indexed by k-mer on both
        axes.  Computed from ``deviations`` when omitted.
    variability : pd.DataFrame, optional
        Output of :func:`compute_variability`.  Computed when omitted.
    config : AssemblyConfig, optional
        Assembler parameters.  Loose keyword arguments may be passed
        instead, but not together with ``config``.
    progress : bool
        Log one line per assembled motif.

    Returns
    -------
    List[AssembledMotif]
        Motifs in decreasing order of seed variability.
    """
    if config is not None and config_kwargs:
        raise ValueError("Use either 'config' or assembler kwargs, not both.")
    config = config or create_assembly_config(**config_kwargs)
    logger = logging.getLogger(__name__)

    z = as_z_scores(deviations)
    kmers, k = _validate_kmers(z.index)

    if variability is None:
        variability = compute_variability(z, bootstrap_samples=0)
    if covariance is None:
        covariance = deviations_covariability(z)

    var_by_kmer, p_by_kmer = _seed_statistics(kmers, variability)
    ranking = sorted(kmers, key=lambda kmer: (-var_by_kmer[kmer], kmer))
    min_overlap = config.min_overlap or max(k - 1, 1)

    used: set = set()
    motifs: List[AssembledMotif] = []

    for seed in ranking:
        if config.max_motifs is not None and len(motifs) >= config.max_motifs:
            break
        if seed in used:
            continue
        if var_by_kmer[seed] < config.variability_threshold:
            break
        if not p_by_kmer[seed] <= config.p_cutoff:
            logger.debug(f"Seed candidate {seed} skipped: adjusted p-value {p_by_kmer[seed]:.3g}")
            continue

        candidates = [kmer for kmer in ranking if kmer not in used and kmer != seed]
        cov_row = _covariance_row(covariance, seed, candidates)

        seed_matrix = encode_kmer(seed)
        placements = [(seed, STRAND_FORWARD, 0, 1.0)]
        for kmer, cov in zip(candidates, cov_row, strict=True):
            if cov < config.covariance_threshold:
                continue
            aligned = align_pair(seed_matrix, encode_kmer(kmer), METRIC_ED, min_overlap)
            if aligned is None:
                continue
            _, strand, offset = aligned
            mismatches = count_mismatches(seed, kmer, strand, offset)
            if mismatches > config.max_mismatches:
                logger.debug(f"{kmer} covaries with {seed} ({cov:.3f}) but has {mismatches} mismatches")
                continue
            placements.append((kmer, strand, offset, float(cov)))

        name = f"denovo_{len(motifs) + 1}"
        motif = _build_pwm(placements, k, name, seed)
        used.update(kmer for kmer, _, _, _ in placements)

        motifs.append(
            AssembledMotif(
                motif=motif,
                seed=seed,
                variability=float(var_by_kmer[seed]),
                members=tuple(p[0] for p in placements),
                strands=tuple("+" if p[1] == STRAND_FORWARD else "-" for p in placements),
                offsets=tuple(int(p[2]) for p in placements),
                weights=tuple(float(p[3]) for p in placements),
            )
        )

        if progress:
            logger.info(
                f"{name}: seed {seed} (variability {var_by_kmer[seed]:.3f}), "
                f"{len(placements)} k-mer(s), consensus {motif.consensus}"
            )

    logger.info(f"Assembled {len(motifs)} motif(s) from {len(kmers)} {k}-mer(s); {len(used)} k-mer(s) consumed")
    return motifs


def unassigned_kmers(kmers, motifs: List[AssembledMotif]) -> List[str]:
    """K-mers not consumed by any assembled motif."""
    used = {member for motif in motifs for member in motif.members}
    return [kmer for kmer in kmers if kmer not in used]
