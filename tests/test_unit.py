"""
Unit tests for key computational functions in varmotif.

These tests validate the correctness of individual functions from:
- varmotif/functions.py and varmotif/ragged.py
- varmotif/models.py
- varmotif/comparison.py
- varmotif/deviations.py
- varmotif/assembly.py
- varmotif/io.py and varmotif/api.py
"""

import dataclasses

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from varmotif.api import assemble_motifs, compare_motifs, create_config
from varmotif.assembly import (
    AssemblerInputError,
    assemble_kmers,
    create_assembly_config,
    unassigned_kmers,
)
from varmotif.comparison import (
    MotifDistanceComparator,
    create_comparator_config,
    pwm_distance,
)
from varmotif.comparison import registry as metric_registry
from varmotif.deviations import (
    DeviationMatrix,
    compute_variability,
    deviations_covariability,
    differential_deviations,
    differential_variability,
)
from varmotif.functions import (
    METRIC_COSINE,
    METRIC_ED,
    METRIC_JSD,
    STRAND_FORWARD,
    STRAND_REVERSE,
    align_pair,
    count_mismatches,
    encode_kmer,
    normalized_covariance,
    reverse_complement_kmer,
)
from varmotif.io import read_meme, read_motifs, read_pfm, write_meme, write_pfm
from varmotif.models import InvalidMotifError, Motif, motif_from_counts, motif_from_kmer, reverse_complement
from varmotif.pipeline import to_records
from varmotif.ragged import RaggedData, ragged_from_list


# ---------------------------------------------------------------------------
# functions / ragged
# ---------------------------------------------------------------------------


def test_ragged_from_list_matrices():
    """Test stacking matrices of different widths"""
    first = np.full((3, 4), 0.25)
    second = encode_kmer("ACGTA")

    packed = ragged_from_list([first, second])

    assert isinstance(packed, RaggedData)
    np.testing.assert_array_equal(packed.offsets, [0, 3, 8])
    assert packed.data.shape == (8, 4)
    np.testing.assert_array_equal(packed.data[packed.offsets[1] : packed.offsets[2]], second)


def test_ragged_from_empty_list():
    """Test that an empty collection keeps a (0, 4) shape"""
    packed = ragged_from_list([])
    np.testing.assert_array_equal(packed.offsets, [0])
    assert packed.data.shape == (0, 4)


def test_encode_kmer():
    """Test one-hot encoding of a k-mer"""
    matrix = encode_kmer("ACGT")
    np.testing.assert_array_equal(matrix, np.eye(4))

    with pytest.raises(ValueError):
        encode_kmer("ACNT")


def test_reverse_complement_kmer():
    """Test reverse complement of ACGT strings"""
    assert reverse_complement_kmer("CATTCC") == "GGAATG"
    assert reverse_complement_kmer("acgt") == "ACGT"


def test_count_mismatches():
    """Test mismatch counting inside the overlap of an aligned k-mer"""
    assert count_mismatches("CATTCC", "ATTCCA", STRAND_FORWARD, 1) == 0
    assert count_mismatches("CATTCC", "CATGCC", STRAND_FORWARD, 0) == 1
    # TGGAAT reverse complemented is ATTCCA
    assert count_mismatches("CATTCC", "TGGAAT", STRAND_REVERSE, 1) == 0


def test_normalized_covariance_basic(kmer_z_scores):
    """Test covariance scaled by the larger variance"""
    cov = normalized_covariance(kmer_z_scores.to_numpy())

    np.testing.assert_allclose(np.diag(cov), 1.0)
    assert cov[0, 1] == pytest.approx(2.5 / 3.0)
    assert cov[0, 2] == pytest.approx(0.0)
    assert cov[2, 3] == pytest.approx(0.0)
    np.testing.assert_allclose(cov, cov.T)


def test_normalized_covariance_constant_row():
    """Test that a constant row has zero covariance with everything"""
    values = np.array([[1.0, 1.0, 1.0, 1.0], [1.0, -1.0, 2.0, 0.0]])
    cov = normalized_covariance(values)
    np.testing.assert_array_equal(cov[0], 0.0)
    np.testing.assert_array_equal(cov[:, 0], 0.0)
    assert cov[1, 1] == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# models
# ---------------------------------------------------------------------------


def test_motif_creation(gata_motif_matrix):
    """Test Motif creation and immutability"""
    motif = Motif(name="GATA", matrix=gata_motif_matrix)

    assert motif.width == 7
    assert motif.consensus == "CGATAAA"
    assert motif.to_frame().columns.tolist() == ["A", "C", "G", "T"]

    with pytest.raises(ValueError):
        motif.matrix[0, 0] = 1.0

    with pytest.raises(dataclasses.FrozenInstanceError):
        motif.name = "modified"


def test_motif_validation_errors():
    """Test that invalid matrices are rejected, never normalized"""
    with pytest.raises(InvalidMotifError):
        Motif("bad_sum", np.array([[0.5, 0.5, 0.5, 0.5]]))
    with pytest.raises(InvalidMotifError):
        Motif("zero_width", np.empty((0, 4)))
    with pytest.raises(InvalidMotifError):
        Motif("wrong_shape", np.full((4, 3), 1 / 3))
    with pytest.raises(InvalidMotifError):
        Motif("negative", np.array([[1.2, -0.2, 0.0, 0.0]]))
    with pytest.raises(InvalidMotifError):
        Motif("nan", np.array([[np.nan, 0.5, 0.25, 0.25]]))

    # InvalidMotifError is a ValueError
    with pytest.raises(ValueError):
        Motif("bad_sum", np.array([[0.1, 0.1, 0.1, 0.1]]))


def test_motif_tolerates_rounding():
    """Test that rows within the probability tolerance are kept as given"""
    matrix = np.array([[0.25, 0.25, 0.25, 0.25 + 5e-5]])
    motif = Motif("rounded", matrix)
    assert motif.matrix[0, 3] == pytest.approx(0.25 + 5e-5)


def test_motif_from_counts_and_kmer():
    """Test the explicit normalization path and k-mer motifs"""
    motif = motif_from_counts(np.array([[2.0, 0.0, 2.0, 0.0], [0.0, 0.0, 0.0, 5.0]]), name="counts", seed="GT")
    np.testing.assert_allclose(motif.matrix, [[0.5, 0.0, 0.5, 0.0], [0.0, 0.0, 0.0, 1.0]])
    assert motif.metadata["seed"] == "GT"

    with pytest.raises(InvalidMotifError):
        motif_from_counts(np.zeros((2, 4)), name="empty")

    kmer_motif = motif_from_kmer("gatc")
    assert kmer_motif.name == "GATC"
    assert kmer_motif.consensus == "GATC"


def test_reverse_complement_motif(gata_motif_matrix):
    """Test motif reverse complement"""
    motif = Motif("GATA", gata_motif_matrix)
    rc = reverse_complement(motif)

    assert rc.name == "GATA_rc"
    assert rc.consensus == "ATTATCC"
    np.testing.assert_allclose(reverse_complement(rc).matrix, motif.matrix)


# ---------------------------------------------------------------------------
# comparison
# ---------------------------------------------------------------------------


def test_align_pair_identity(gata_motif_matrix):
    """Test that a motif aligns onto itself with zero distance"""
    for metric in [METRIC_ED, METRIC_JSD, METRIC_COSINE]:
        distance, strand, offset = align_pair(gata_motif_matrix, gata_motif_matrix, metric, 5)
        assert distance == pytest.approx(0.0, abs=1e-12)
        assert strand == STRAND_FORWARD
        assert offset == 0


def test_align_pair_too_short():
    """Test that no alignment is returned when min_overlap cannot be reached"""
    assert align_pair(encode_kmer("ACG"), encode_kmer("ACGT"), METRIC_ED, 5) is None


def test_disjoint_columns_have_unit_distance():
    """Test the upper bound of every metric on one-hot columns"""
    a = motif_from_kmer("AAAAA")
    c = motif_from_kmer("CCCCC")
    for metric in ["ed", "jsd", "cosine"]:
        result = pwm_distance([a], [c], metric=metric, min_overlap=5)
        assert result.distance.loc["AAAAA", "CCCCC"] == pytest.approx(1.0)
        # equal distances on both strands resolve to the forward strand
        assert result.strand.loc["AAAAA", "CCCCC"] == "+"
        assert result.offset.loc["AAAAA", "CCCCC"] == 0


def test_pwm_distance_reverse_complement(gata_motif_matrix):
    """Test that a reverse complemented motif is found on the reverse strand"""
    motif = Motif("GATA", gata_motif_matrix)
    result = pwm_distance([motif], [reverse_complement(motif)], min_overlap=5)

    assert result.distance.loc["GATA", "GATA_rc"] == pytest.approx(0.0, abs=1e-12)
    assert result.strand.loc["GATA", "GATA_rc"] == "-"
    assert result.offset.loc["GATA", "GATA_rc"] == 0


def test_pwm_distance_offset_and_inversion(gata_motif_matrix):
    """Test offsets of a sub-motif and their inversion when queries and targets swap"""
    full = Motif("full", gata_motif_matrix)
    part = Motif("part", gata_motif_matrix[2:])

    forward = pwm_distance([full], [part], min_overlap=5)
    assert forward.distance.loc["full", "part"] == pytest.approx(0.0, abs=1e-12)
    assert forward.strand.loc["full", "part"] == "+"
    assert forward.offset.loc["full", "part"] == 2

    swapped = pwm_distance([part], [full], min_overlap=5)
    assert swapped.distance.loc["part", "full"] == pytest.approx(0.0, abs=1e-12)
    assert swapped.strand.loc["part", "full"] == "+"
    assert swapped.offset.loc["part", "full"] == -2

    part_rc = reverse_complement(part)
    reverse = pwm_distance([full], [part_rc], min_overlap=5)
    assert reverse.strand.loc["full", "part_rc"] == "-"
    assert reverse.offset.loc["full", "part_rc"] == 2

    # reverse strand: offset + width(query') - width(target') with roles swapped
    reverse_swapped = pwm_distance([part_rc], [full], min_overlap=5)
    assert reverse_swapped.strand.loc["part_rc", "full"] == "-"
    assert reverse_swapped.offset.loc["part_rc", "full"] == 2 + part_rc.width - full.width

    # exact reverse-strand ties between equal widths map onto each other
    poly_t = motif_from_kmer("TTTTTT")
    poly_a = motif_from_kmer("AAAAAA")
    tied = pwm_distance([poly_t], [poly_a], min_overlap=5)
    tied_swapped = pwm_distance([poly_a], [poly_t], min_overlap=5)
    assert tied.strand.loc["TTTTTT", "AAAAAA"] == "-"
    assert tied.offset.loc["TTTTTT", "AAAAAA"] == 0
    assert tied_swapped.offset.loc["AAAAAA", "TTTTTT"] == 0

    # between unequal widths each argument order breaks the tie in its own query frame
    long_t = motif_from_kmer("TTTTTTT")
    short_a = motif_from_kmer("AAAAA")
    tied = pwm_distance([long_t], [short_a], min_overlap=5)
    tied_swapped = pwm_distance([short_a], [long_t], min_overlap=5)
    assert tied.distance.loc["TTTTTTT", "AAAAA"] == pytest.approx(0.0)
    assert tied_swapped.distance.loc["AAAAA", "TTTTTTT"] == pytest.approx(0.0)
    assert tied.strand.loc["TTTTTTT", "AAAAA"] == "-"
    assert tied_swapped.strand.loc["AAAAA", "TTTTTTT"] == "-"
    assert tied.offset.loc["TTTTTTT", "AAAAA"] == 0
    assert tied_swapped.offset.loc["AAAAA", "TTTTTTT"] == 0


def test_pwm_distance_symmetry(gata_motif_matrix):
    """Test that the distance does not depend on the argument order"""
    rng = np.random.default_rng(3)
    motifs = [Motif("GATA", gata_motif_matrix)]
    for i, width in enumerate([6, 8, 9]):
        counts = rng.random((width, 4)) + 0.01
        motifs.append(motif_from_counts(counts, name=f"random_{i}"))

    for metric in ["ed", "jsd", "cosine"]:
        result = pwm_distance(motifs, metric=metric, min_overlap=5)
        np.testing.assert_allclose(result.distance.to_numpy(), result.distance.to_numpy().T, atol=1e-12)
        assert (result.distance.to_numpy() >= 0).all()


def test_pwm_distance_sentinels():
    """Test that pairs without enough overlap get NaN, '.' and <NA>"""
    short = motif_from_kmer("ACG")
    long = motif_from_kmer("GATTACA")
    result = pwm_distance([short], [long], min_overlap=5)

    assert np.isnan(result.distance.loc["ACG", "GATTACA"])
    assert result.strand.loc["ACG", "GATTACA"] == "."
    assert result.offset.loc["ACG", "GATTACA"] is pd.NA
    assert not result.comparable().loc["ACG", "GATTACA"]

    long_table = result.to_long()
    assert long_table.loc[0, "strand"] == "."
    assert str(long_table["offset"].dtype) == "Int64"


def test_compare_pair_and_parallel(gata_motif_matrix):
    """Test single pair comparison and parallel chunked comparison"""
    motif = Motif("GATA", gata_motif_matrix)
    comparator = MotifDistanceComparator(metric="jsd", min_overlap=4, n_jobs=2)

    pair = comparator.compare_pair(motif, reverse_complement(motif))
    assert pair["strand"] == "-"
    assert pair["distance"] == pytest.approx(0.0, abs=1e-12)
    assert pair["metric"] == "jsd"

    queries = [motif, reverse_complement(motif), motif_from_kmer("GATAAG"), motif_from_kmer("CCCCCC")]
    parallel = comparator.compare(queries)
    serial = MotifDistanceComparator(metric="jsd", min_overlap=4, n_jobs=1).compare(queries)
    np.testing.assert_allclose(parallel.distance.to_numpy(), serial.distance.to_numpy())
    assert parallel.strand.equals(serial.strand)


def test_compare_duplicate_names():
    """Test that duplicate motif names get unique labels"""
    motif = motif_from_kmer("GATAAG", name="dup")
    result = pwm_distance([motif, motif], min_overlap=5)
    assert result.distance.index.tolist() == ["dup", "dup.1"]


def test_compare_suffix_does_not_collide():
    """Test that a suffixed label skips names already used by other motifs"""
    motifs = [
        motif_from_kmer("GATAAG", name="a"),
        motif_from_kmer("CCCCCC", name="a"),
        motif_from_kmer("TTTTTT", name="a.1"),
    ]
    result = pwm_distance(motifs, min_overlap=5)

    assert result.distance.index.tolist() == ["a", "a.2", "a.1"]
    assert result.distance.columns.is_unique
    assert result.offset.columns.tolist() == ["a", "a.2", "a.1"]

    # every offset cell matches its own pair
    for i, query in enumerate(motifs):
        for j, target in enumerate(motifs):
            pair = MotifDistanceComparator(min_overlap=5).compare_pair(query, target)
            assert result.offset.iloc[i, j] == pair["offset"]
            assert result.strand.iloc[i, j] == pair["strand"]

    matches = result.best_matches(exclude_self=True)
    assert matches["query"].tolist() == ["a", "a.2", "a.1"]


def test_best_matches(gata_motif_matrix):
    """Test closest target selection"""
    motif = Motif("GATA", gata_motif_matrix)
    other = motif_from_kmer("CCCCCCC", name="poly_c")
    result = pwm_distance([motif, other], min_overlap=5)

    matches = result.best_matches(exclude_self=True).set_index("query")
    assert matches.loc["GATA", "target"] == "poly_c"

    matches = result.best_matches().set_index("query")
    assert matches.loc["GATA", "target"] == "GATA"
    assert matches.loc["GATA", "distance"] == pytest.approx(0.0, abs=1e-12)


def test_create_comparator_config():
    """Test ComparatorConfig creation and factory function"""
    config = create_comparator_config()
    assert config.metric == "ed"
    assert config.min_overlap == 5
    assert config.n_jobs == 1

    config = create_comparator_config(metric="JSD", min_overlap=3)
    assert config.metric == "jsd"
    assert config.min_overlap == 3

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.metric = "modified"

    with pytest.raises(ValueError):
        create_comparator_config(metric="pcc")
    with pytest.raises(ValueError):
        create_comparator_config(min_overlap=0)
    with pytest.raises(TypeError):
        create_comparator_config(permutations=10)


def test_metric_registry():
    """Test metric registry functionality"""
    assert metric_registry.get("ed") == METRIC_ED
    assert metric_registry.get("jsd") == METRIC_JSD
    assert metric_registry.get("cosine") == METRIC_COSINE
    assert set(metric_registry.available()) == {"ed", "jsd", "cosine"}
    assert "Jensen-Shannon" in metric_registry.describe("jsd")

    with pytest.raises(ValueError):
        metric_registry.get("invalid_metric")


# ---------------------------------------------------------------------------
# deviations
# ---------------------------------------------------------------------------


def test_deviation_matrix_kmer_slice(kmer_z_scores):
    """Test that non k-mer annotations are dropped"""
    table = kmer_z_scores.copy()
    table.loc["GATA2"] = 0.5
    table.loc["ACG"] = 0.1
    deviations = DeviationMatrix(table)

    assert deviations.kmer_slice().annotations.tolist() == ["CATTCC", "ATTCCA", "GGGGGG", "TTTTTT", "ACG"]
    assert deviations.kmer_slice(3).annotations.tolist() == ["ACG"]

    with pytest.raises(TypeError):
        DeviationMatrix(table.to_numpy())


def test_compute_variability(kmer_z_scores):
    """Test sd of Z-scores and chi-squared p-values"""
    table = compute_variability(kmer_z_scores, bootstrap_samples=0)

    assert list(table.columns) == [
        "variability",
        "bootstrap_lower_bound",
        "bootstrap_upper_bound",
        "p_value",
        "p_value_adj",
    ]
    assert table.loc["CATTCC", "variability"] == pytest.approx(np.sqrt(10.8))
    assert table.loc["GGGGGG", "variability"] == pytest.approx(table.loc["TTTTTT", "variability"])
    assert table.loc["CATTCC", "p_value"] == pytest.approx(stats.chi2.sf(54.0, df=5))
    assert table["bootstrap_lower_bound"].isna().all()
    assert (table["p_value_adj"] >= table["p_value"]).all()


def test_compute_variability_bootstrap_reproducible(kmer_z_scores):
    """Test that bootstrap bounds are reproducible with a seed"""
    first = compute_variability(kmer_z_scores, bootstrap_samples=50, seed=7)
    second = compute_variability(kmer_z_scores, bootstrap_samples=50, seed=7)

    pd.testing.assert_frame_equal(first, second)
    assert (first["bootstrap_lower_bound"] <= first["bootstrap_upper_bound"]).all()


def test_compute_variability_errors(kmer_z_scores):
    """Test input checks of the variability computation"""
    with pytest.raises(ValueError):
        compute_variability(kmer_z_scores.iloc[:, :1], bootstrap_samples=0)

    table = kmer_z_scores.copy()
    table.iloc[0, 0] = np.nan
    with pytest.raises(ValueError):
        compute_variability(table, bootstrap_samples=0)


def test_deviations_covariability(kmer_z_scores):
    """Test normalized covariance table labels and values"""
    cov = deviations_covariability(DeviationMatrix(kmer_z_scores))
    assert cov.index.tolist() == kmer_z_scores.index.tolist()
    assert cov.columns.tolist() == kmer_z_scores.index.tolist()
    assert cov.loc["CATTCC", "ATTCCA"] == pytest.approx(0.8333333333)
    assert cov.loc["ATTCCA", "CATTCC"] == pytest.approx(0.8333333333)


def test_differential_deviations(kmer_z_scores):
    """Test two-group and multi-group differential deviation tests"""
    groups = ["a", "a", "a", "b", "b", "b"]
    table = differential_deviations(kmer_z_scores, groups)

    assert {"statistic", "p_value", "p_value_adj", "mean_a", "mean_b"} <= set(table.columns)
    assert table.loc["CATTCC", "mean_a"] == pytest.approx(1.0)
    assert table.loc["CATTCC", "mean_b"] == pytest.approx(-1.0)
    assert ((table["p_value"] >= 0) & (table["p_value"] <= 1)).all()

    three = differential_deviations(kmer_z_scores, ["x", "x", "y", "y", "z", "z"], parametric=False)
    assert {"mean_x", "mean_y", "mean_z"} <= set(three.columns)
    assert ((three["p_value"] >= 0) & (three["p_value"] <= 1)).all()


def test_differential_group_errors(kmer_z_scores):
    """Test group label validation"""
    with pytest.raises(ValueError):
        differential_deviations(kmer_z_scores, ["a"] * 6)
    with pytest.raises(ValueError):
        differential_deviations(kmer_z_scores, ["a", "b"])

    labels = pd.Series(["a", "b", "a"], index=kmer_z_scores.columns[:3])
    with pytest.raises(ValueError):
        differential_deviations(kmer_z_scores, labels)


def test_differential_variability(kmer_z_scores):
    """Test the Brown-Forsythe test between sample groups"""
    groups = pd.Series(["a", "a", "a", "b", "b", "b"], index=kmer_z_scores.columns)
    table = differential_variability(kmer_z_scores, groups)

    assert {"statistic", "p_value", "p_value_adj", "sd_a", "sd_b"} <= set(table.columns)
    assert table.loc["CATTCC", "sd_a"] == pytest.approx(np.std([3.0, -3.0, 3.0], ddof=1))


# ---------------------------------------------------------------------------
# assembly
# ---------------------------------------------------------------------------


def test_assemble_kmers_basic(kmer_z_scores):
    """Test that covarying overlapping k-mers merge into one motif"""
    motifs = assemble_kmers(kmer_z_scores, p_cutoff=0.05)

    assert [m.name for m in motifs] == ["denovo_1", "denovo_2", "denovo_3"]
    first = motifs[0]
    assert first.seed == "CATTCC"
    assert first.motif.consensus == "CATTCCA"
    assert first.motif.width == 7
    assert first.members == ("CATTCC", "ATTCCA")
    assert first.strands == ("+", "+")
    assert first.offsets == (0, 1)
    assert first.weights[0] == 1.0
    assert first.weights[1] == pytest.approx(2.5 / 3.0)
    np.testing.assert_allclose(first.motif.matrix.sum(axis=1), 1.0)

    # ties in variability resolve lexically
    assert [m.seed for m in motifs[1:]] == ["GGGGGG", "TTTTTT"]
    assert motifs[1].motif.consensus == "GGGGGG"


def test_assemble_kmers_consumes_members(kmer_z_scores):
    """Test that merged k-mers never seed motifs and each k-mer is used once"""
    motifs = assemble_kmers(kmer_z_scores, p_cutoff=0.05)

    assert "ATTCCA" not in [m.seed for m in motifs]
    members = [kmer for m in motifs for kmer in m.members]
    assert len(members) == len(set(members))
    assert unassigned_kmers(kmer_z_scores.index, motifs) == []


def test_assemble_kmers_deterministic(kmer_z_scores):
    """Test that repeated runs give identical motifs in identical order"""
    first = assemble_kmers(kmer_z_scores, p_cutoff=0.05)
    second = assemble_kmers(kmer_z_scores.copy(), p_cutoff=0.05, progress=True)

    assert [m.name for m in first] == [m.name for m in second]
    for a, b in zip(first, second):
        np.testing.assert_array_equal(a.motif.matrix, b.motif.matrix)
        assert a.members == b.members


def test_assemble_kmers_variability_threshold(kmer_z_scores):
    """Test that seeding stops below the variability threshold"""
    motifs = assemble_kmers(kmer_z_scores, p_cutoff=0.05, variability_threshold=2.0)

    assert len(motifs) == 1
    assert motifs[0].seed == "CATTCC"
    assert unassigned_kmers(kmer_z_scores.index, motifs) == ["GGGGGG", "TTTTTT"]

    motifs = assemble_kmers(kmer_z_scores, p_cutoff=0.05, max_motifs=2)
    assert len(motifs) == 2


def test_assemble_kmers_reverse_strand(kmer_z_scores):
    """Test that a k-mer matching the seed's reverse strand is merged reverse complemented"""
    table = kmer_z_scores.rename(index={"ATTCCA": "TGGAAT"})
    motifs = assemble_kmers(table, p_cutoff=0.05)

    first = motifs[0]
    assert first.members == ("CATTCC", "TGGAAT")
    assert first.strands == ("+", "-")
    assert first.offsets == (0, 1)
    assert first.motif.consensus == "CATTCCA"


def test_assemble_kmers_max_mismatches(kmer_z_scores):
    """Test that aligned k-mers with too many mismatches are not merged"""
    table = kmer_z_scores.rename(index={"ATTCCA": "CATGCC"})

    merged = assemble_kmers(table, p_cutoff=0.05, max_mismatches=1)
    assert merged[0].members == ("CATTCC", "CATGCC")
    assert merged[0].motif.width == 6

    strict = assemble_kmers(table, p_cutoff=0.05, max_mismatches=0)
    assert strict[0].members == ("CATTCC",)
    assert strict[1].seed == "CATGCC"


def test_assemble_kmers_explicit_covariance(kmer_z_scores):
    """Test that a supplied covariance matrix drives the merge"""
    cov = deviations_covariability(kmer_z_scores)
    cov.loc["CATTCC", "ATTCCA"] = 0.1

    motifs = assemble_kmers(kmer_z_scores, covariance=cov, p_cutoff=0.05)
    assert motifs[0].members == ("CATTCC",)


def test_assemble_kmers_zero_covariance(kmer_z_scores):
    """Test that an all-zero covariance matrix yields one degenerate motif per seed"""
    kmers = kmer_z_scores.index
    cov = pd.DataFrame(0.0, index=kmers, columns=kmers)

    motifs = assemble_kmers(kmer_z_scores, covariance=cov, p_cutoff=0.05)

    assert [m.seed for m in motifs] == ["CATTCC", "ATTCCA", "GGGGGG", "TTTTTT"]
    for motif in motifs:
        assert motif.members == (motif.seed,)
        np.testing.assert_array_equal(motif.motif.matrix, encode_kmer(motif.seed))

    again = assemble_kmers(kmer_z_scores, covariance=cov, p_cutoff=0.05)
    assert [m.motif.consensus for m in again] == [m.motif.consensus for m in motifs]


def test_assemble_kmers_covariance_errors(kmer_z_scores):
    """Test that missing covariance entries are input errors"""
    cov = deviations_covariability(kmer_z_scores)

    with pytest.raises(AssemblerInputError):
        assemble_kmers(kmer_z_scores, covariance=cov.drop(columns=["ATTCCA"]), p_cutoff=0.05)

    cov.loc["CATTCC", "GGGGGG"] = np.nan
    with pytest.raises(AssemblerInputError):
        assemble_kmers(kmer_z_scores, covariance=cov, p_cutoff=0.05)


def test_assemble_kmers_input_errors(kmer_z_scores):
    """Test validation of the k-mer set"""
    mixed = kmer_z_scores.copy()
    mixed.loc["ACGT"] = 1.0
    with pytest.raises(AssemblerInputError):
        assemble_kmers(mixed)

    named = kmer_z_scores.copy()
    named.loc["GATA2_"] = 1.0
    with pytest.raises(AssemblerInputError):
        assemble_kmers(named)

    with pytest.raises(AssemblerInputError):
        assemble_kmers(kmer_z_scores.iloc[:0])

    # AssemblerInputError is a ValueError
    with pytest.raises(ValueError):
        assemble_kmers(mixed)


def test_create_assembly_config():
    """Test AssemblyConfig defaults and validation"""
    config = create_assembly_config()
    assert config.variability_threshold == 1.5
    assert config.p_cutoff == 0.01
    assert config.covariance_threshold == 0.5
    assert config.max_mismatches == 1
    assert config.min_overlap is None

    with pytest.raises(ValueError):
        create_assembly_config(covariance_threshold=0.0)
    with pytest.raises(ValueError):
        create_assembly_config(p_cutoff=1.5)
    with pytest.raises(ValueError):
        assemble_kmers(pd.DataFrame(), config=config, p_cutoff=0.05)


# ---------------------------------------------------------------------------
# io / api / pipeline
# ---------------------------------------------------------------------------


def test_meme_file_round_trip(temp_dir, gata_motif_matrix):
    """Test writing and reading MEME files"""
    motifs = [Motif("GATA", gata_motif_matrix), motif_from_kmer("CATTCCA", name="denovo_1")]
    path = temp_dir / "motifs.meme"

    write_meme(motifs, path)
    loaded = read_meme(path)

    assert [m.name for m in loaded] == ["GATA", "denovo_1"]
    np.testing.assert_allclose(loaded[0].matrix, gata_motif_matrix, atol=1e-6)
    assert loaded[1].consensus == "CATTCCA"


def test_pfm_file(temp_dir, gata_motif_matrix):
    """Test writing and reading PFM files"""
    path = temp_dir / "gata.pfm"
    write_pfm(Motif("GATA", gata_motif_matrix), path)

    motif = read_pfm(path)
    assert motif.name == "GATA"
    assert motif.width == 7

    with pytest.raises(ValueError):
        read_motifs(temp_dir / "motifs.xyz")


def test_assemble_motifs_api(kmer_z_scores):
    """Test the single-call analysis with annotation against known motifs"""
    known = [motif_from_kmer("CATTCCA", name="known_ets"), motif_from_kmer("ACACACA", name="known_ca")]
    result = assemble_motifs(kmer_z_scores, known_motifs=known, p_cutoff=0.05)

    assert [m.name for m in result.pwms] == ["denovo_1", "denovo_2", "denovo_3"]
    assert result.variability.shape[0] == 4
    assert result.matches.distance.loc["denovo_1", "known_ets"] == pytest.approx(0.0, abs=1e-12)
    assert result.matches.offset.loc["denovo_1", "known_ets"] == 0


def test_create_config_rejects_mixed_parameters(kmer_z_scores):
    """Test that config objects and loose kwargs are not mixed"""
    with pytest.raises(ValueError):
        create_config(kmer_z_scores, assembly=create_assembly_config(), p_cutoff=0.05)


def test_compare_motifs_api(gata_motif_matrix):
    """Test single-call motif comparison"""
    motif = Motif("GATA", gata_motif_matrix)
    result = compare_motifs([motif], [reverse_complement(motif)], metric="cosine")

    assert result.metric == "cosine"
    assert result.strand.loc["GATA", "GATA_rc"] == "-"


def test_to_records_json_safe():
    """Test conversion of tables to JSON-friendly records"""
    frame = pd.DataFrame({"distance": [0.5, np.nan], "offset": pd.array([1, None], dtype="Int64")}, index=["a", "b"])
    records = to_records(frame, index_label="name")

    assert records[0] == {"name": "a", "distance": 0.5, "offset": 1}
    assert records[1]["distance"] is None
    assert records[1]["offset"] is None


if __name__ == "__main__":
    pytest.main([__file__])
