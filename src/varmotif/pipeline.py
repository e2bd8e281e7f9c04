"""
Unified pipeline for file based analyses.
This module connects the readers, the assembler and the comparator for the command line interface.
"""

import logging
from pathlib import Path
from typing import Any, List, Optional, Union

import numpy as np
import pandas as pd

from varmotif.assembly import assemble_kmers, create_assembly_config
from varmotif.comparison import MotifDistanceComparator
from varmotif.deviations import DeviationMatrix, compute_variability, deviations_covariability
from varmotif.io import read_covariance, read_deviations, read_motifs, write_motifs, write_table


def to_records(frame: pd.DataFrame, index_label: Optional[str] = None) -> List[dict]:
    """Convert a DataFrame to JSON-serializable records (missing values become None)."""
    if index_label is not None:
        frame = frame.rename_axis(index_label).reset_index()

    records = []
    for row in frame.to_dict(orient="records"):
        clean = {}
        for key, value in row.items():
            if value is None or (not isinstance(value, str) and pd.isna(value)):
                clean[key] = None
            elif isinstance(value, np.integer):
                clean[key] = int(value)
            elif isinstance(value, np.floating):
                clean[key] = float(value)
            else:
                clean[key] = value
        records.append(clean)
    return records


class Pipeline:
    """
    Unified pipeline for variability, assembly and comparison runs.

    Each ``execute_*`` method loads its inputs from files, runs one analysis
    and returns JSON-serializable results.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def load_deviations(self, deviations_path: Union[str, Path], kmer_length: Optional[int] = None) -> DeviationMatrix:
        """
        Load a deviation table and keep its k-mer rows.

        Args:
            deviations_path: Path to a TSV/CSV table of Z-scores (annotations x samples)
            kmer_length: Keep only k-mers of this length if given

        Returns:
            DeviationMatrix restricted to k-mer annotations
        """
        deviations = read_deviations(deviations_path)
        kmers = deviations.kmer_slice(kmer_length)
        self.logger.info(f"Using {kmers.z_scores.shape[0]} k-mer(s) out of {deviations.z_scores.shape[0]} annotation(s)")
        return kmers

    def execute_variability(
        self,
        deviations_path: Union[str, Path],
        bootstrap_samples: int = 1000,
        seed: Optional[int] = None,
        n_jobs: int = 1,
        output: Optional[Union[str, Path]] = None,
    ) -> List[dict]:
        """
        Compute the variability table of every annotation.

        Args:
            deviations_path: Path to the deviation table
            bootstrap_samples: Resamples for the variability interval
            seed: Random seed for the bootstrap
            n_jobs: Parallel jobs for the bootstrap
            output: Optional table path to write the result to

        Returns:
            Variability records sorted by decreasing variability
        """
        deviations = read_deviations(deviations_path)
        table = compute_variability(deviations, bootstrap_samples=bootstrap_samples, seed=seed, n_jobs=n_jobs)
        table = table.sort_values("variability", ascending=False, kind="mergesort")
        if output is not None:
            write_table(table, output)
        return to_records(table, index_label="name")

    def execute_assembly(
        self,
        deviations_path: Union[str, Path],
        covariance_path: Optional[Union[str, Path]] = None,
        output: Optional[Union[str, Path]] = None,
        kmer_length: Optional[int] = None,
        progress: bool = False,
        **kwargs,
    ) -> List[dict]:
        """
        Assemble de novo motifs from k-mer deviations.

        Args:
            deviations_path: Path to the deviation table
            covariance_path: Optional covariance table; derived from the deviations when omitted
            output: Optional motif file (.meme, .pkl) for the assembled PWMs
            kmer_length: Keep only k-mers of this length
            progress: Log one line per motif
            **kwargs: Assembler parameters

        Returns:
            One summary record per assembled motif
        """
        deviations = self.load_deviations(deviations_path, kmer_length)

        if covariance_path is not None:
            self.logger.info(f"Loading covariance from {covariance_path}")
            covariance = read_covariance(covariance_path)
        else:
            self.logger.info("Computing covariance from deviations")
            covariance = deviations_covariability(deviations)

        assembly_kwargs = {}
        for param in [
            "variability_threshold",
            "p_cutoff",
            "covariance_threshold",
            "max_mismatches",
            "min_overlap",
            "max_motifs",
        ]:
            if kwargs.get(param) is not None:
                assembly_kwargs[param] = kwargs[param]
        config = create_assembly_config(**assembly_kwargs)

        motifs = assemble_kmers(deviations, covariance=covariance, config=config, progress=progress)

        if output is not None:
            if motifs:
                write_motifs([m.motif for m in motifs], output)
            else:
                self.logger.warning(f"No motifs assembled; {output} was not written")

        return [m.to_dict() for m in motifs]

    def execute_comparison(
        self,
        motifs1_path: Union[str, Path],
        motifs2_path: Optional[Union[str, Path]] = None,
        all_pairs: bool = False,
        **kwargs,
    ) -> List[dict]:
        """
        Compare two motif files.

        Args:
            motifs1_path: Query motif file
            motifs2_path: Target motif file; the queries are compared with themselves when omitted
            all_pairs: Report every pair instead of the closest target per query
            **kwargs: Comparator parameters (metric, min_overlap, n_jobs)

        Returns:
            Comparison records
        """
        motifs_1 = read_motifs(motifs1_path)
        motifs_2 = read_motifs(motifs2_path) if motifs2_path is not None else None
        self.logger.info(
            f"Loaded {len(motifs_1)} query motif(s)"
            + (f" and {len(motifs_2)} target motif(s)" if motifs_2 is not None else "")
        )

        comp_kwargs = {}
        for param in ["metric", "min_overlap", "n_jobs"]:
            if param in kwargs:
                comp_kwargs[param] = kwargs[param]
        comparator = MotifDistanceComparator(**comp_kwargs)
        result = comparator.compare(motifs_1, motifs_2)

        if all_pairs:
            return to_records(result.to_long())
        matches = result.best_matches(exclude_self=motifs_2 is None)
        matches["metric"] = result.metric
        return to_records(matches)

    def run_pipeline(self, mode: str, **kwargs) -> Any:
        """
        Main entry point for the unified pipeline.

        Args:
            mode: 'variability', 'assemble' or 'compare'
            **kwargs: Arguments of the matching ``execute_*`` method

        Returns:
            JSON-serializable results
        """
        self.logger.info(f"Starting pipeline with mode='{mode}'")

        if mode == "variability":
            result = self.execute_variability(**kwargs)
        elif mode == "assemble":
            result = self.execute_assembly(**kwargs)
        elif mode == "compare":
            result = self.execute_comparison(**kwargs)
        else:
            raise ValueError(f"Unknown mode: {mode}. Expected 'variability', 'assemble' or 'compare'.")

        self.logger.info("Pipeline completed successfully")
        return result


def run_pipeline(mode: str, **kwargs) -> Any:
    """
    Module-level function to run the pipeline.

    Args:
        mode: 'variability', 'assemble' or 'compare'
        **kwargs: Arguments of the matching ``Pipeline.execute_*`` method

    Returns:
        JSON-serializable results
    """
    pipeline = Pipeline()
    return pipeline.run_pipeline(mode, **kwargs)
