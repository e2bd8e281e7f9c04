"""
comparison
==========

Distance between position weight matrices under an unknown relative
orientation and offset.  Every pair of motifs from two collections is
aligned on both strands and at every offset that leaves at least
``min_overlap`` positions overlapping; the alignment with the smallest
mean per-position divergence is reported together with its strand and
offset.  Pairs that cannot overlap enough are reported with sentinel
values rather than raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed, effective_n_jobs

from varmotif.functions import METRIC_COSINE, METRIC_ED, METRIC_JSD, STRAND_FORWARD, align_pair, pairwise_alignment
from varmotif.models import Motif, pack_motifs, unique_names
from varmotif.ragged import RaggedData

DEFAULT_MIN_OVERLAP = 5
NO_STRAND = "."


class MetricRegistry:
    """Registry mapping metric names to the divergence codes understood by the JIT kernels."""

    def __init__(self):
        """Initialize registry state."""
        self._metrics: Dict[str, int] = {}
        self._descriptions: Dict[str, str] = {}

    def register(self, key: str, code: int, description: str = "") -> None:
        """Register a per-position divergence under ``key``."""
        self._metrics[key] = code
        self._descriptions[key] = description
        logging.getLogger(__name__).debug(f"Registered distance metric: {key} -> {code}")

    def get(self, key: str) -> int:
        """Get the kernel code of a metric."""
        if key not in self._metrics:
            available = list(self._metrics.keys())
            raise ValueError(f"Distance metric '{key}' not found. Available: {available}")
        return self._metrics[key]

    def available(self) -> List[str]:
        """Registered metric names."""
        return list(self._metrics.keys())

    def describe(self, key: str) -> str:
        self.get(key)
        return self._descriptions[key]


registry = MetricRegistry()
registry.register("ed", METRIC_ED, "Euclidean distance between columns scaled to [0, 1]")
registry.register("jsd", METRIC_JSD, "Jensen-Shannon divergence (base 2)")
registry.register("cosine", METRIC_COSINE, "1 - cosine similarity between columns")


@dataclass(frozen=True)
class ComparatorConfig:
    """Parameters of the motif distance comparator."""

    metric: str = "ed"
    min_overlap: int = DEFAULT_MIN_OVERLAP
    n_jobs: int = 1

    def __post_init__(self):
        object.__setattr__(self, "metric", self.metric.lower())
        registry.get(self.metric)
        if self.min_overlap < 1:
            raise ValueError(f"min_overlap must be at least 1, got {self.min_overlap}")
        if self.n_jobs == 0:
            raise ValueError("n_jobs must be non-zero")


def create_comparator_config(**kwargs) -> ComparatorConfig:
    """Build a ComparatorConfig, rejecting unknown parameters."""
    return ComparatorConfig(**kwargs)


@dataclass(frozen=True, eq=False)
class MotifDistanceResult:
    """Pairwise comparison of two motif collections.

    Attributes
    ----------
    distance : pd.DataFrame
        Query x target distances; NaN where no alignment reaches ``min_overlap``
    strand : pd.DataFrame
        ``"+"`` (target as given), ``"-"`` (reverse complement) or ``"."``
    offset : pd.DataFrame
        Nullable ``Int64`` position of the oriented target's first column on the query
    """

    distance: pd.DataFrame
    strand: pd.DataFrame
    offset: pd.DataFrame
    metric: str
    min_overlap: int

    def comparable(self) -> pd.DataFrame:
        """Boolean mask of pairs with a valid alignment."""
        return self.distance.notna()

    def to_long(self) -> pd.DataFrame:
        """Tidy table with one row per (query, target) pair."""
        n_query, n_target = self.distance.shape
        return pd.DataFrame(
            {
                "query": np.repeat(self.distance.index.to_numpy(dtype=object), n_target),
                "target": np.tile(self.distance.columns.to_numpy(dtype=object), n_query),
                "distance": self.distance.to_numpy(dtype=np.float64).ravel(),
                "strand": self.strand.to_numpy(dtype=object).ravel(),
                "offset": pd.array(list(self.offset.to_numpy(dtype=object).ravel()), dtype="Int64"),
                "metric": self.metric,
            }
        )

    def best_matches(self, exclude_self: bool = False) -> pd.DataFrame:
        """Closest target for every query; queries without a comparable target get NaN."""
        rows = []
        for query in self.distance.index:
            distances = self.distance.loc[query]
            if exclude_self:
                distances = distances[distances.index != query]
            distances = distances.dropna()
            if distances.empty:
                rows.append({"query": query, "target": None, "distance": np.nan, "strand": NO_STRAND, "offset": pd.NA})
                continue
            target = distances.idxmin()
            rows.append(
                {
                    "query": query,
                    "target": target,
                    "distance": float(distances[target]),
                    "strand": self.strand.loc[query, target],
                    "offset": self.offset.loc[query, target],
                }
            )
        frame = pd.DataFrame(rows, columns=["query", "target", "distance", "strand", "offset"])
        frame["offset"] = frame["offset"].astype("Int64")
        return frame


class MotifDistanceComparator:
    """
    Comparator for PWM collections using a per-position divergence.

    Both orientations of the target and every offset with at least
    ``min_overlap`` overlapping positions are searched; exact ties prefer
    the forward strand, then the smaller absolute offset, then the smaller
    offset.
    """

    def __init__(self, metric: str = "ed", min_overlap: int = DEFAULT_MIN_OVERLAP, n_jobs: int = 1):
        """
        Initialize comparator.

        Parameters
        ----------
        metric : str
            Registered per-position divergence: 'ed', 'jsd' or 'cosine'.
        min_overlap : int
            Minimum number of overlapping positions for an alignment to count.
        n_jobs : int
            Number of parallel jobs over query chunks. -1 to use all cores.
        """
        config = ComparatorConfig(metric=metric, min_overlap=min_overlap, n_jobs=n_jobs)
        self.name = f"MotifDistanceComparator_{config.metric.upper()}"
        self.metric = config.metric
        self.metric_code = registry.get(config.metric)
        self.min_overlap = config.min_overlap
        self.n_jobs = config.n_jobs

    @classmethod
    def from_config(cls, config: ComparatorConfig) -> "MotifDistanceComparator":
        return cls(metric=config.metric, min_overlap=config.min_overlap, n_jobs=config.n_jobs)

    def _align_chunk(self, queries: RaggedData, targets: RaggedData):
        """Worker function: align one chunk of queries against all targets."""
        return pairwise_alignment(queries, targets, self.metric_code, self.min_overlap)

    def compare_pair(self, motif_1: Motif, motif_2: Motif) -> dict:
        """
        Compare two motifs.

        Returns
        -------
        dict
            query, target, distance, strand, offset and metric; distance is
            NaN, strand ``"."`` and offset None when no alignment is valid.
        """
        aligned = align_pair(motif_1.matrix, motif_2.matrix, self.metric_code, self.min_overlap)
        result = {"query": motif_1.name, "target": motif_2.name, "metric": self.metric}
        if aligned is None:
            result.update({"distance": float("nan"), "strand": NO_STRAND, "offset": None})
        else:
            distance, strand, offset = aligned
            result.update({"distance": distance, "strand": "+" if strand == STRAND_FORWARD else "-", "offset": offset})
        return result

    def compare(self, motifs_1: Sequence[Motif], motifs_2: Optional[Sequence[Motif]] = None) -> MotifDistanceResult:
        """
        Compare every motif of the first collection with every motif of the second.

        Parameters
        ----------
        motifs_1 : Sequence[Motif]
            Query motifs (rows of the result).
        motifs_2 : Sequence[Motif], optional
            Target motifs (columns). Defaults to ``motifs_1``.

        Returns
        -------
        MotifDistanceResult
            Distance, strand and offset matrices.
        """
        motifs_1 = list(motifs_1)
        motifs_2 = motifs_1 if motifs_2 is None else list(motifs_2)
        query_names = unique_names(motifs_1)
        target_names = unique_names(motifs_2)

        targets = pack_motifs(motifs_2)
        n_chunks = min(len(motifs_1), effective_n_jobs(self.n_jobs)) if motifs_1 else 0

        if n_chunks <= 1:
            distances, strands, shifts = self._align_chunk(pack_motifs(motifs_1), targets)
        else:
            chunks = np.array_split(np.arange(len(motifs_1)), n_chunks)
            results = Parallel(n_jobs=self.n_jobs, backend="loky")(
                delayed(self._align_chunk)(pack_motifs([motifs_1[i] for i in chunk]), targets) for chunk in chunks
            )
            distances = np.vstack([r[0] for r in results])
            strands = np.vstack([r[1] for r in results])
            shifts = np.vstack([r[2] for r in results])

        found = strands >= 0
        n_invalid = int((~found).sum())
        if n_invalid:
            logger = logging.getLogger(__name__)
            logger.warning(f"{n_invalid} pair(s) have no alignment with at least {self.min_overlap} overlapping positions")

        strand_labels = np.where(strands == STRAND_FORWARD, "+", "-").astype(object)
        strand_labels[~found] = NO_STRAND

        offset = pd.DataFrame(shifts, index=query_names, columns=target_names).astype("Int64").mask(~found)

        return MotifDistanceResult(
            distance=pd.DataFrame(distances, index=query_names, columns=target_names),
            strand=pd.DataFrame(strand_labels, index=query_names, columns=target_names),
            offset=offset,
            metric=self.metric,
            min_overlap=self.min_overlap,
        )


def pwm_distance(
    motifs_1: Sequence[Motif],
    motifs_2: Optional[Sequence[Motif]] = None,
    metric: str = "ed",
    min_overlap: int = DEFAULT_MIN_OVERLAP,
    n_jobs: int = 1,
) -> MotifDistanceResult:
    """Single-call entry point: distance, strand and offset matrices of two motif collections."""
    comparator = MotifDistanceComparator(metric=metric, min_overlap=min_overlap, n_jobs=n_jobs)
    return comparator.compare(motifs_1, motifs_2)
