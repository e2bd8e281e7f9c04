"""
varmotif
==================

De novo motif discovery from k-mer accessibility deviations and distance
computation between position weight matrices.  The deviation matrix itself
(GC-bias corrected, background-peak based) is produced by an external
engine; this package starts from its Z-scores.

The top level modules expose the following key components:

``deviations``
    :class:`DeviationMatrix` container, per-annotation variability with
    bootstrap intervals and chi-squared p-values, normalized
    covariability, and differential tests between sample groups.

``assembly``
    The de novo assembler: highly variable k-mers seed motifs, covarying
    k-mers are aligned onto the seed and merged into a PWM.

``comparison``
    :class:`MotifDistanceComparator` and :func:`pwm_distance`, searching
    both strands and every offset for the closest alignment of two PWMs.

``models``
    The immutable :class:`Motif` and helpers to build, orient and pack it.

``io``
    MEME/PFM motif files and TSV/CSV deviation and covariance tables.

``api`` / ``pipeline`` / ``cli``
    Single-call library entry points, file based orchestration and the
    ``varmotif`` command line interface.
"""

from varmotif.api import (
    AnalysisConfig,
    AnalysisResult,
    assemble_motifs,
    compare_motifs,
    create_config,
    run_analysis,
)
from varmotif.assembly import (
    AssembledMotif,
    AssemblerInputError,
    AssemblyConfig,
    assemble_kmers,
    create_assembly_config,
    unassigned_kmers,
)
from varmotif.comparison import (
    ComparatorConfig,
    MotifDistanceComparator,
    MotifDistanceResult,
    create_comparator_config,
    pwm_distance,
)
from varmotif.deviations import (
    DeviationMatrix,
    compute_variability,
    deviations_covariability,
    differential_deviations,
    differential_variability,
)
from varmotif.io import read_deviations, read_motifs, write_motifs
from varmotif.models import InvalidMotifError, Motif, motif_from_counts, motif_from_kmer, reverse_complement

__all__ = [
    "AnalysisConfig",
    "AnalysisResult",
    "AssembledMotif",
    "AssemblerInputError",
    "AssemblyConfig",
    "ComparatorConfig",
    "DeviationMatrix",
    "InvalidMotifError",
    "Motif",
    "MotifDistanceComparator",
    "MotifDistanceResult",
    "assemble_kmers",
    "assemble_motifs",
    "compare_motifs",
    "compute_variability",
    "create_assembly_config",
    "create_comparator_config",
    "create_config",
    "deviations_covariability",
    "differential_deviations",
    "differential_variability",
    "motif_from_counts",
    "motif_from_kmer",
    "pwm_distance",
    "read_deviations",
    "read_motifs",
    "reverse_complement",
    "run_analysis",
    "unassigned_kmers",
    "write_motifs",
]

__version__ = "0.1.0"
