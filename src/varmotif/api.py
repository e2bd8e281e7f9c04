"""High-level public API for de novo assembly and motif comparison."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

import pandas as pd

from varmotif.assembly import AssembledMotif, AssemblyConfig, assemble_kmers, create_assembly_config
from varmotif.comparison import ComparatorConfig, MotifDistanceComparator, MotifDistanceResult, create_comparator_config
from varmotif.deviations import DeviationMatrix, compute_variability, deviations_covariability
from varmotif.io import read_covariance, read_deviations, read_motifs
from varmotif.models import Motif

DeviationsRef = Union[DeviationMatrix, pd.DataFrame, str, Path]
CovarianceRef = Union[pd.DataFrame, str, Path]
MotifsRef = Union[Sequence[Motif], str, Path]


@dataclass
class AnalysisConfig:
    """Unified configuration object for library usage."""

    deviations: DeviationsRef
    covariance: Optional[CovarianceRef] = None
    known_motifs: Optional[MotifsRef] = None
    kmer_length: Optional[int] = None
    bootstrap_samples: int = 0
    seed: int = 127
    n_jobs: int = 1
    progress: bool = False
    assembly: AssemblyConfig = field(default_factory=create_assembly_config)
    comparator: ComparatorConfig = field(default_factory=create_comparator_config)


@dataclass
class AnalysisResult:
    """Variability table, assembled motifs and (optionally) their closest known motifs."""

    variability: pd.DataFrame
    motifs: List[AssembledMotif]
    matches: Optional[MotifDistanceResult] = None

    @property
    def pwms(self) -> List[Motif]:
        return [m.motif for m in self.motifs]


def create_config(
    deviations: DeviationsRef,
    covariance: Optional[CovarianceRef] = None,
    known_motifs: Optional[MotifsRef] = None,
    kmer_length: Optional[int] = None,
    bootstrap_samples: int = 0,
    seed: int = 127,
    n_jobs: int = 1,
    progress: bool = False,
    assembly: Optional[AssemblyConfig] = None,
    comparator: Optional[ComparatorConfig] = None,
    **assembly_kwargs,
) -> AnalysisConfig:
    """Build a unified analysis config."""

    if assembly is not None and assembly_kwargs:
        raise ValueError("Use either 'assembly' or assembler kwargs, not both.")

    return AnalysisConfig(
        deviations=deviations,
        covariance=covariance,
        known_motifs=known_motifs,
        kmer_length=kmer_length,
        bootstrap_samples=bootstrap_samples,
        seed=seed,
        n_jobs=n_jobs,
        progress=progress,
        assembly=assembly or create_assembly_config(**assembly_kwargs),
        comparator=comparator or create_comparator_config(),
    )


def assemble_motifs(
    deviations: DeviationsRef,
    covariance: Optional[CovarianceRef] = None,
    known_motifs: Optional[MotifsRef] = None,
    kmer_length: Optional[int] = None,
    bootstrap_samples: int = 0,
    seed: int = 127,
    n_jobs: int = 1,
    progress: bool = False,
    assembly: Optional[AssemblyConfig] = None,
    comparator: Optional[ComparatorConfig] = None,
    **assembly_kwargs,
) -> AnalysisResult:
    """Single-call entry point: variability, de novo assembly and optional annotation against known motifs."""

    config = create_config(
        deviations=deviations,
        covariance=covariance,
        known_motifs=known_motifs,
        kmer_length=kmer_length,
        bootstrap_samples=bootstrap_samples,
        seed=seed,
        n_jobs=n_jobs,
        progress=progress,
        assembly=assembly,
        comparator=comparator,
        **assembly_kwargs,
    )
    return run_analysis(config)


def run_analysis(config: AnalysisConfig) -> AnalysisResult:
    """Execute an analysis using the unified config."""

    deviations = _resolve_deviations(config.deviations).kmer_slice(config.kmer_length)
    variability = compute_variability(
        deviations, bootstrap_samples=config.bootstrap_samples, seed=config.seed, n_jobs=config.n_jobs
    )
    covariance = _resolve_covariance(config.covariance, deviations)

    motifs = assemble_kmers(
        deviations,
        covariance=covariance,
        variability=variability,
        config=config.assembly,
        progress=config.progress,
    )

    matches = None
    if config.known_motifs is not None and motifs:
        known = _resolve_motifs(config.known_motifs)
        comparator = MotifDistanceComparator.from_config(config.comparator)
        matches = comparator.compare([m.motif for m in motifs], known)

    return AnalysisResult(variability=variability, motifs=motifs, matches=matches)


def compare_motifs(
    motifs_1: MotifsRef,
    motifs_2: Optional[MotifsRef] = None,
    metric: str = "ed",
    min_overlap: int = 5,
    n_jobs: int = 1,
    comparator: Optional[ComparatorConfig] = None,
) -> MotifDistanceResult:
    """Single-call entry point for motif comparison."""

    config = comparator or create_comparator_config(metric=metric, min_overlap=min_overlap, n_jobs=n_jobs)
    queries = _resolve_motifs(motifs_1)
    targets = _resolve_motifs(motifs_2) if motifs_2 is not None else None
    return MotifDistanceComparator.from_config(config).compare(queries, targets)


def _resolve_deviations(source: DeviationsRef) -> DeviationMatrix:
    """Convert a deviation reference to DeviationMatrix."""

    if isinstance(source, DeviationMatrix):
        return source
    if isinstance(source, pd.DataFrame):
        return DeviationMatrix(z_scores=source)
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Deviation file not found: {path}")
        return read_deviations(path)
    raise TypeError(f"Unsupported deviations reference type: {type(source)!r}")


def _resolve_covariance(source: Optional[CovarianceRef], deviations: DeviationMatrix) -> pd.DataFrame:
    """Load the covariance table, or derive it from the deviations."""

    if source is None:
        return deviations_covariability(deviations)
    if isinstance(source, pd.DataFrame):
        return source
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Covariance file not found: {path}")
        return read_covariance(path)
    raise TypeError(f"Unsupported covariance reference type: {type(source)!r}")


def _resolve_motifs(source: MotifsRef) -> List[Motif]:
    """Convert a motif reference to a list of Motif."""

    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Motif file not found: {path}")
        return read_motifs(path)
    if isinstance(source, Motif):
        return [source]
    motifs = list(source)
    if not all(isinstance(m, Motif) for m in motifs):
        raise TypeError("Motif collections must contain Motif objects")
    return motifs
