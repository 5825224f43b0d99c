"""Test suite for genotype matrices and the population context."""

import numpy as np
import pytest
from hypothesis import given
from hypothesis import strategies as st

from founderhmm import Dosage, GenotypeMatrix, ParentCall, PopulationData
from founderhmm.genotypes import (
    HET,
    HOM_MAJOR,
    HOM_MINOR,
    MISSING,
    allele_char,
    allele_code,
    code_parent_calls,
    dosage_to_call,
    obs_to_dosage,
)

genotypes = [
    ["AA", "CC", "AC", "NN"],
    ["AA", "CC", "CC", "GG"],
    ["CC", "AA", "NA", "GT"],
]


def test_from_strings():
    """Test building a matrix from diploid strings."""
    m = GenotypeMatrix.from_strings(["x", "y", "z"], [1, 5, 9, 12], genotypes, chrom=2)
    assert m.n_taxa == 3
    assert m.n_sites == 4
    assert m.chrom == "2"
    assert m.genotype(0, 2) == "AC"
    assert m.genotype(0, 3) == "NN"
    # A half-missing genotype is fully missing
    assert m.genotype(2, 2) == "NN"
    assert np.all(m.alleles[2, 2] == -1)
    assert m.to_strings()[1, 3] == "GG"


def test_alleles_read_only():
    """Test that stored alleles cannot be modified in place."""
    m = GenotypeMatrix.from_strings(["x", "y", "z"], [1, 5, 9, 12], genotypes)
    with pytest.raises(ValueError):
        m.alleles[0, 0, 0] = 1


@pytest.mark.parametrize(
    "taxa,positions,geno",
    [
        (["x", "y"], [1, 2], [["AA", "CC"]]),
        (["x"], [1], [["AA", "CC"]]),
        (["x", "x"], [1, 2], [["AA", "CC"], ["AA", "CC"]]),
        (["x"], [2, 1], [["AA", "CC"]]),
        (["x"], [1, 2], [["AA", "QQ"]]),
        (["x"], [1, 2], [["AA", "ACG"]]),
    ],
)
def test_bad_matrix(taxa, positions, geno):
    """Test that inconsistent inputs raise a ValueError."""
    with pytest.raises(ValueError):
        GenotypeMatrix.from_strings(taxa, positions, geno)


def test_allele_summaries():
    """Test major / minor alleles and their frequencies."""
    m = GenotypeMatrix.from_strings(["x", "y", "z"], [1, 5, 9, 12], genotypes)
    assert np.all(m.major_allele() == [0, 1, 1, 2])
    assert np.all(m.minor_allele() == [1, 0, 0, 3])
    assert np.isclose(m.major_allele_frequency()[0], 4 / 6)
    assert np.isclose(m.minor_allele_frequency()[2], 1 / 4)
    assert np.isclose(m.missing_fraction()[2], 2 / 6)
    # Restricted to the first two taxa, site 0 is monomorphic
    assert m.minor_allele([0, 1])[0] == -1
    assert m.major_allele([0])[3] == -1


def test_genotype_classes():
    """Test classification of genotypes relative to the major / minor allele."""
    m = GenotypeMatrix.from_strings(["x", "y", "z"], [1, 5, 9, 12], genotypes)
    classes = m.genotype_classes()
    assert np.all(classes[:, 0] == [HOM_MAJOR, HOM_MAJOR, HOM_MINOR])
    assert np.all(classes[:, 2] == [HET, HOM_MAJOR, MISSING])
    assert np.all(classes[:, 3] == [MISSING, HOM_MAJOR, HET])


def test_filters_and_lookup():
    """Test taxon lookup and site / taxon filtering."""
    m = GenotypeMatrix.from_strings(["x", "y", "z"], [1, 5, 9, 12], genotypes)
    assert m.taxon_index("y") == 1
    assert m.taxon_index("w") == -1
    sub = m.filter_sites([1, 3])
    assert np.all(sub.positions == [5, 12])
    assert sub.genotype(2, 1) == "GT"
    sub = m.filter_taxa([2])
    assert sub.taxa[0] == "z"
    assert m == GenotypeMatrix.from_strings(["x", "y", "z"], [1, 5, 9, 12], genotypes)
    assert m != sub


def test_allele_codes():
    """Test conversion between allele characters and codes."""
    for ch in "ACGT+-":
        assert allele_char(allele_code(ch)) == ch
    assert allele_code("N") == -1
    with pytest.raises(ValueError):
        allele_code("Z")


def test_parent_call_mapping():
    """Test the mappings between founder calls and dosage states."""
    obs = np.array([ParentCall.A, ParentCall.HET, ParentCall.C])
    assert np.all(obs_to_dosage(obs) == [Dosage.AA, Dosage.AC, Dosage.CC])
    states = np.array([0, 1, 2, 3, 4])
    assert np.all(dosage_to_call(states) == [0, 1, 1, 1, 2])


def test_code_parent_calls():
    """Test recoding of genotypes as founder calls."""
    alleles = np.array(
        [
            [[0, 0], [2, 3]],
            [[0, 1], [3, 3]],
            [[1, 1], [0, 0]],
            [[-1, -1], [2, 2]],
        ]
    )
    calls = code_parent_calls(alleles, [0, 3], [1, 2])
    expected = np.array([[0, 1], [1, 0], [2, -1], [-1, 2]])
    assert np.all(calls == expected)


@given(calls=st.lists(st.sampled_from([0, 1, 2]), min_size=1, max_size=50))
def test_dosage_call_consistency(calls):
    """Test that mapping calls to dosages and back is the identity."""
    calls = np.array(calls)
    assert np.all(dosage_to_call(obs_to_dosage(calls)) == calls)


def test_population_data_evolve():
    """Test that pipeline stages produce new versions of the context."""
    m = GenotypeMatrix.from_strings(["x", "y", "z"], [1, 5, 9, 12], genotypes)
    pop = PopulationData(name="fam", parent1="x", parent2="z", original=m)
    assert pop.version == 0
    assert pop.called_sites().size == 0
    pop2 = pop.evolve(
        snp_index=np.array([True, False, True, False]),
        allele_a=np.array([0, 1], dtype=np.int8),
        allele_c=np.array([1, 0], dtype=np.int8),
        imputed=np.zeros((3, 2), dtype=np.int8),
    )
    assert pop2.version == 1
    assert pop.snp_index is None
    assert np.all(pop2.called_sites() == [0, 2])
    assert np.all(pop2.called_positions() == [1, 9])


@pytest.mark.parametrize(
    "snp_index,allele_a,imputed",
    [
        (np.array([True, False, True]), np.zeros(2), np.zeros((3, 2))),
        (np.array([True, False, True, False]), np.zeros(3), np.zeros((3, 2))),
        (np.array([True, False, True, False]), np.zeros(2), np.zeros((2, 2))),
    ],
)
def test_population_data_mismatch(snp_index, allele_a, imputed):
    """Test that inconsistent context arrays are rejected."""
    m = GenotypeMatrix.from_strings(["x", "y", "z"], [1, 5, 9, 12], genotypes)
    with pytest.raises(ValueError):
        PopulationData(
            name="fam",
            parent1="x",
            parent2="z",
            original=m,
            snp_index=snp_index,
            allele_a=allele_a,
            allele_c=np.zeros(2),
            imputed=imputed,
        )
