import math

import numpy as np
from numba import njit

from varmotif.ragged import RaggedData

ALPHABET = "ACGT"
_NUC_INDEX = {nuc: idx for idx, nuc in enumerate(ALPHABET)}
_COMPLEMENT = str.maketrans("ACGT", "TGCA")

METRIC_ED = 0
METRIC_JSD = 1
METRIC_COSINE = 2

STRAND_FORWARD = 0
STRAND_REVERSE = 1

# distances closer than this are treated as ties
TIE_TOLERANCE = 1e-9


def encode_kmer(kmer: str) -> np.ndarray:
    """One-hot encode a k-mer into a ``(k, 4)`` probability matrix."""
    matrix = np.zeros((len(kmer), 4), dtype=np.float64)
    for pos, nuc in enumerate(kmer.upper()):
        if nuc not in _NUC_INDEX:
            raise ValueError(f"Invalid nucleotide {nuc!r} in k-mer {kmer!r}")
        matrix[pos, _NUC_INDEX[nuc]] = 1.0
    return matrix


def reverse_complement_kmer(kmer: str) -> str:
    """Return the reverse complement of an ACGT string."""
    return kmer.upper().translate(_COMPLEMENT)[::-1]


def reverse_complement_matrix(matrix: np.ndarray) -> np.ndarray:
    """Reverse complement a ``(width, 4)`` matrix with ACGT columns."""
    return np.ascontiguousarray(matrix[::-1, ::-1])


def consensus_sequence(matrix: np.ndarray) -> str:
    """Most probable nucleotide per position; ties resolve in ACGT order."""
    return "".join(ALPHABET[idx] for idx in np.argmax(matrix, axis=1))


def count_mismatches(reference: str, kmer: str, strand: int, offset: int) -> int:
    """Count mismatched positions of an aligned k-mer within its overlap with the reference."""
    oriented = reverse_complement_kmer(kmer) if strand == STRAND_REVERSE else kmer.upper()
    reference = reference.upper()
    start_ref = max(offset, 0)
    start_kmer = max(-offset, 0)
    overlap = min(len(reference) - start_ref, len(oriented) - start_kmer)
    mismatches = 0
    for j in range(max(overlap, 0)):
        if reference[start_ref + j] != oriented[start_kmer + j]:
            mismatches += 1
    return mismatches


@njit(cache=True)
def _reverse_complement(matrix):
    """Reverse complement kernel; column b maps to 3 - b."""
    width = matrix.shape[0]
    result = np.empty((width, 4), dtype=np.float64)
    for i in range(width):
        for b in range(4):
            result[width - 1 - i, 3 - b] = matrix[i, b]
    return result


@njit(inline="always")
def _column_distance(m1, row1, m2, row2, metric):
    """Per-position divergence between two probability rows."""
    if metric == METRIC_ED:
        total = 0.0
        for b in range(4):
            d = m1[row1, b] - m2[row2, b]
            total += d * d
        return math.sqrt(total) / math.sqrt(2.0)
    elif metric == METRIC_JSD:
        total = 0.0
        for b in range(4):
            p = m1[row1, b]
            q = m2[row2, b]
            mid = 0.5 * (p + q)
            if p > 0.0:
                total += 0.5 * p * math.log2(p / mid)
            if q > 0.0:
                total += 0.5 * q * math.log2(q / mid)
        return max(total, 0.0)
    else:
        dot = 0.0
        norm1 = 0.0
        norm2 = 0.0
        for b in range(4):
            p = m1[row1, b]
            q = m2[row2, b]
            dot += p * q
            norm1 += p * p
            norm2 += q * q
        if norm1 <= 0.0 or norm2 <= 0.0:
            return 1.0
        return max(1.0 - dot / math.sqrt(norm1 * norm2), 0.0)


@njit(cache=True)
def _overlap_distance(m1, m2, start1, start2, overlap, metric):
    """Mean per-position divergence over an overlap window."""
    total = 0.0
    for j in range(overlap):
        total += _column_distance(m1, start1 + j, m2, start2 + j, metric)
    return total / overlap


@njit(inline="always")
def _is_better(distance, strand, offset, best_distance, best_strand, best_offset):
    """Order candidate alignments: distance, then forward strand, then |offset|, then offset.

    Offsets are compared in the query's frame, so exact ties (reverse strand
    between motifs of unequal width, or forward at o and -o) can resolve to
    alignments that do not map onto each other when query and target swap.
    """
    if distance < best_distance - TIE_TOLERANCE:
        return True
    if distance > best_distance + TIE_TOLERANCE:
        return False
    if strand != best_strand:
        return strand < best_strand
    if abs(offset) != abs(best_offset):
        return abs(offset) < abs(best_offset)
    return offset < best_offset


@njit(cache=True)
def _align_pair(m1, m2, metric, min_overlap):
    """
    Search both strands and every offset for the alignment of m2 onto m1 with minimal distance.

    The offset is the position of m2's first row on m1 (negative when m2 starts first).
    Returns (distance, strand, offset, found); found is False when no offset reaches min_overlap.
    """
    len1 = m1.shape[0]
    len2 = m2.shape[0]
    m2_rc = _reverse_complement(m2)

    best_distance = np.inf
    best_strand = STRAND_FORWARD
    best_offset = 0
    found = False

    for strand in range(2):
        for offset in range(-(len2 - 1), len1):
            start1 = offset if offset > 0 else 0
            start2 = -offset if offset < 0 else 0
            overlap = min(len1 - start1, len2 - start2)
            if overlap < min_overlap:
                continue

            if strand == STRAND_FORWARD:
                distance = _overlap_distance(m1, m2, start1, start2, overlap, metric)
            else:
                distance = _overlap_distance(m1, m2_rc, start1, start2, overlap, metric)

            if not found or _is_better(distance, strand, offset, best_distance, best_strand, best_offset):
                best_distance = distance
                best_strand = strand
                best_offset = offset
                found = True

    return best_distance, best_strand, best_offset, found


@njit(cache=True)
def _pairwise_alignment_kernel(data1, offsets1, data2, offsets2, metric, min_overlap):
    """Best alignment for every pair of two ragged motif collections."""
    n1 = len(offsets1) - 1
    n2 = len(offsets2) - 1

    distances = np.full((n1, n2), np.nan)
    strands = np.full((n1, n2), -1, dtype=np.int8)
    shifts = np.zeros((n1, n2), dtype=np.int64)

    for i in range(n1):
        m1 = data1[offsets1[i] : offsets1[i + 1]]
        for j in range(n2):
            m2 = data2[offsets2[j] : offsets2[j + 1]]
            distance, strand, offset, found = _align_pair(m1, m2, metric, min_overlap)
            if found:
                distances[i, j] = distance
                strands[i, j] = strand
                shifts[i, j] = offset

    return distances, strands, shifts


def align_pair(matrix1: np.ndarray, matrix2: np.ndarray, metric: int = METRIC_ED, min_overlap: int = 1):
    """Best (distance, strand, offset) of matrix2 against matrix1, or None if they cannot overlap."""
    m1 = np.ascontiguousarray(matrix1, dtype=np.float64)
    m2 = np.ascontiguousarray(matrix2, dtype=np.float64)
    distance, strand, offset, found = _align_pair(m1, m2, metric, min_overlap)
    if not found:
        return None
    return float(distance), int(strand), int(offset)


def pairwise_alignment(collection1: RaggedData, collection2: RaggedData, metric: int = METRIC_ED, min_overlap: int = 1):
    """Compute distance, strand and offset matrices for two ragged motif collections."""
    return _pairwise_alignment_kernel(
        np.ascontiguousarray(collection1.data, dtype=np.float64),
        collection1.offsets,
        np.ascontiguousarray(collection2.data, dtype=np.float64),
        collection2.offsets,
        metric,
        min_overlap,
    )


def normalized_covariance(values: np.ndarray) -> np.ndarray:
    """
    Covariance of every row pair divided by the larger of the two row variances.

    Rows with zero variance get zero covariance everywhere, including the diagonal.
    """
    values = np.asarray(values, dtype=np.float64)
    if values.shape[0] == 0:
        return np.zeros((0, 0), dtype=np.float64)
    cov = np.atleast_2d(np.cov(values, ddof=1))
    var = np.diag(cov).copy()
    denom = np.maximum.outer(var, var)
    return np.divide(cov, denom, out=np.zeros_like(cov), where=denom > 0)


def bootstrap_sd(values: np.ndarray, seed: int) -> np.ndarray:
    """Row standard deviations over one resample of the columns drawn with replacement."""
    rng = np.random.default_rng(seed)
    n_samples = values.shape[1]
    idx = rng.integers(0, n_samples, size=n_samples)
    return np.std(values[:, idx], axis=1, ddof=1)
