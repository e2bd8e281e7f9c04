"""
deviations
==========

Container for a precomputed deviation matrix and the statistics derived
from it: per-annotation variability, normalized covariability between
annotations and differential tests between sample groups.

The matrix itself comes from an external deviation engine (GC-bias
corrected accessibility deviations); nothing here recomputes it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy import stats

from varmotif.functions import bootstrap_sd, normalized_covariance

_KMER_PATTERN = re.compile(r"^[ACGT]+$")


@dataclass(frozen=True, eq=False)
class DeviationMatrix:
    """Bias-corrected deviations of annotations (rows) across samples (columns).

    Attributes
    ----------
    z_scores : pd.DataFrame
        Deviation Z-scores, indexed by annotation name
    deviations : pd.DataFrame, optional
        Bias-corrected raw deviations with the same labels
    """

    z_scores: pd.DataFrame
    deviations: Optional[pd.DataFrame] = None

    def __post_init__(self):
        if not isinstance(self.z_scores, pd.DataFrame):
            raise TypeError(f"z_scores must be a DataFrame, got {type(self.z_scores)!r}")
        if not self.z_scores.index.is_unique:
            raise ValueError("Annotation names in z_scores must be unique")
        if self.deviations is not None:
            if not self.deviations.index.equals(self.z_scores.index) or not self.deviations.columns.equals(
                self.z_scores.columns
            ):
                raise ValueError("deviations and z_scores must share annotation and sample labels")

    @property
    def annotations(self) -> pd.Index:
        """Annotation labels."""
        return self.z_scores.index

    @property
    def samples(self) -> pd.Index:
        """Sample labels."""
        return self.z_scores.columns

    def kmer_slice(self, k: Optional[int] = None) -> "DeviationMatrix":
        """Return the rows whose annotation is an ACGT k-mer (of length ``k`` if given)."""
        names = self.z_scores.index.astype(str)
        mask = np.array([bool(_KMER_PATTERN.match(name)) and (k is None or len(name) == k) for name in names])
        dropped = int((~mask).sum())
        if dropped:
            logger = logging.getLogger(__name__)
            logger.debug(f"kmer_slice dropped {dropped} non k-mer annotation(s)")
        deviations = self.deviations.loc[mask] if self.deviations is not None else None
        return DeviationMatrix(self.z_scores.loc[mask], deviations)


DeviationsLike = Union[DeviationMatrix, pd.DataFrame]


def as_z_scores(deviations: DeviationsLike) -> pd.DataFrame:
    """Return the Z-score DataFrame behind a DeviationMatrix or a plain DataFrame."""
    if isinstance(deviations, DeviationMatrix):
        return deviations.z_scores
    if isinstance(deviations, pd.DataFrame):
        return deviations
    raise TypeError(f"Unsupported deviations type: {type(deviations)!r}")


def _finite_values(z: pd.DataFrame) -> np.ndarray:
    """Extract a float matrix, rejecting missing or infinite entries."""
    values = z.to_numpy(dtype=np.float64)
    if not np.all(np.isfinite(values)):
        raise ValueError("Deviation matrix contains missing or non-finite values")
    return values


def adjust_pvalues(p_values: np.ndarray) -> np.ndarray:
    """Benjamini-Hochberg adjustment; NaN entries are left as NaN."""
    p_values = np.asarray(p_values, dtype=np.float64)
    adjusted = np.full_like(p_values, np.nan)
    finite = np.isfinite(p_values)
    if finite.any():
        adjusted[finite] = stats.false_discovery_control(p_values[finite], method="bh")
    return adjusted


def compute_variability(
    deviations: DeviationsLike,
    bootstrap_samples: int = 1000,
    seed: Optional[int] = None,
    n_jobs: int = 1,
) -> pd.DataFrame:
    """
    Compute the variability of every annotation across samples.

    Variability is the standard deviation of the Z-scores.  Under the null
    the Z-scores have unit variance, so ``(n - 1) * sd**2`` follows a
    chi-squared distribution with ``n - 1`` degrees of freedom, which
    gives the upper-tail p-value.

    Parameters
    ----------
    deviations : DeviationMatrix or pd.DataFrame
        Z-scores, annotations in rows and samples in columns.
    bootstrap_samples : int
        Number of column resamples used for the 95% interval of the
        standard deviation.  Set to 0 to skip (bounds become NaN).
    seed : int, optional
        Random seed for reproducible bootstrap intervals.
    n_jobs : int
        Number of parallel jobs for the bootstrap. -1 to use all cores.

    Returns
    -------
    pd.DataFrame
        Columns ``variability``, ``bootstrap_lower_bound``,
        ``bootstrap_upper_bound``, ``p_value`` and ``p_value_adj``.
    """
    z = as_z_scores(deviations)
    values = _finite_values(z)
    n_samples = values.shape[1]
    if n_samples < 2:
        raise ValueError(f"At least two samples are required to compute variability, got {n_samples}")

    variability = np.std(values, axis=1, ddof=1)
    p_values = stats.chi2.sf((n_samples - 1) * variability**2, df=n_samples - 1)

    lower = np.full(values.shape[0], np.nan)
    upper = np.full(values.shape[0], np.nan)
    if bootstrap_samples > 0 and values.shape[0] > 0:
        base_rng = np.random.default_rng(seed)
        seeds = base_rng.integers(0, 2**31, size=bootstrap_samples)
        boot = Parallel(n_jobs=n_jobs, backend="loky")(delayed(bootstrap_sd)(values, int(s)) for s in seeds)
        boot = np.vstack(boot)
        lower = np.quantile(boot, 0.025, axis=0)
        upper = np.quantile(boot, 0.975, axis=0)

    logger = logging.getLogger(__name__)
    logger.info(f"Computed variability for {values.shape[0]} annotation(s) over {n_samples} sample(s)")

    return pd.DataFrame(
        {
            "variability": variability,
            "bootstrap_lower_bound": lower,
            "bootstrap_upper_bound": upper,
            "p_value": p_values,
            "p_value_adj": adjust_pvalues(p_values),
        },
        index=z.index,
    )


def deviations_covariability(deviations: DeviationsLike) -> pd.DataFrame:
    """Normalized covariance between annotations: cov(i, j) / max(var(i), var(j))."""
    z = as_z_scores(deviations)
    values = _finite_values(z)
    if values.shape[1] < 2:
        raise ValueError("At least two samples are required to compute covariability")
    return pd.DataFrame(normalized_covariance(values), index=z.index, columns=z.index)


def _split_groups(z: pd.DataFrame, groups: Union[Sequence, pd.Series]):
    """Split the Z-score matrix into one array per sample group."""
    if isinstance(groups, pd.Series):
        labels = groups.reindex(z.columns)
        if labels.isna().any():
            missing = list(z.columns[labels.isna().to_numpy()])
            raise ValueError(f"No group label for sample(s): {missing}")
        labels = labels.to_numpy()
    else:
        labels = np.asarray(list(groups), dtype=object)
        if labels.size != z.shape[1]:
            raise ValueError(f"Got {labels.size} group label(s) for {z.shape[1]} sample(s)")

    values = _finite_values(z)
    names = sorted(set(labels), key=str)
    if len(names) < 2:
        raise ValueError("At least two sample groups are required")
    arrays = [values[:, labels == name] for name in names]
    return names, arrays


def differential_deviations(
    deviations: DeviationsLike, groups: Union[Sequence, pd.Series], parametric: bool = True
) -> pd.DataFrame:
    """
    Test every annotation for a difference in mean deviation between sample groups.

    Two groups use Welch's t-test (or Mann-Whitney U when ``parametric`` is
    False); more groups use one-way ANOVA (or Kruskal-Wallis).
    """
    z = as_z_scores(deviations)
    names, arrays = _split_groups(z, groups)

    if parametric and min(a.shape[1] for a in arrays) < 2:
        raise ValueError("Parametric tests need at least two samples per group")

    if len(arrays) == 2:
        if parametric:
            result = stats.ttest_ind(arrays[0], arrays[1], axis=1, equal_var=False)
        else:
            result = stats.mannwhitneyu(arrays[0], arrays[1], axis=1, alternative="two-sided")
    else:
        if parametric:
            result = stats.f_oneway(*arrays, axis=1)
        else:
            result = stats.kruskal(*arrays, axis=1)

    frame = pd.DataFrame(
        {
            "statistic": np.asarray(result.statistic, dtype=np.float64),
            "p_value": np.asarray(result.pvalue, dtype=np.float64),
        },
        index=z.index,
    )
    frame["p_value_adj"] = adjust_pvalues(frame["p_value"].to_numpy())
    for name, arr in zip(names, arrays, strict=True):
        frame[f"mean_{name}"] = arr.mean(axis=1)
    return frame


def differential_variability(deviations: DeviationsLike, groups: Union[Sequence, pd.Series]) -> pd.DataFrame:
    """Brown-Forsythe test (median-centred Levene) for a difference in variability between groups."""
    z = as_z_scores(deviations)
    names, arrays = _split_groups(z, groups)

    statistics = np.full(z.shape[0], np.nan)
    p_values = np.full(z.shape[0], np.nan)
    for i in range(z.shape[0]):
        rows = [arr[i] for arr in arrays]
        if all(np.ptp(row) == 0 for row in rows):
            continue
        res = stats.levene(*rows, center="median")
        statistics[i] = res.statistic
        p_values[i] = res.pvalue

    frame = pd.DataFrame({"statistic": statistics, "p_value": p_values}, index=z.index)
    frame["p_value_adj"] = adjust_pvalues(p_values)
    for name, arr in zip(names, arrays, strict=True):
        frame[f"sd_{name}"] = arr.std(axis=1, ddof=1) if arr.shape[1] > 1 else np.nan
    return frame
