"""Synthetic genotype builders for the unit-testing suite."""

import numpy as np
from scipy.linalg import hadamard

from founderhmm import GenotypeMatrix, ParentCall, PopulationData

# Sylvester rows are mutually orthogonal and (apart from row 0) balanced,
# so two distinct rows used as site patterns have r = 0 exactly.
HADAMARD = hadamard(64)


def planted_core_matrix(n_sites=40, core=range(15, 25), linked=(), flipped=()):
    """Matrix of 64 homozygous taxa with a planted block of perfectly linked sites.

    Sites in `core` and `linked` share one pattern, sites in `flipped` carry
    its mirror image and every other site an unrelated pattern.
    """
    assert n_sites <= 62
    patterns = HADAMARD[2 : 2 + n_sites].copy()
    for s in list(core) + list(linked):
        patterns[s] = HADAMARD[1]
    for s in flipped:
        patterns[s] = -HADAMARD[1]
    genotypes = np.where(patterns.T > 0, "AA", "CC")
    taxa = [f"T{i}" for i in range(64)]
    return GenotypeMatrix.from_strings(taxa, 100 * np.arange(1, n_sites + 1), genotypes)


def two_cluster_matrix(n_per_group=15, n_sites=5):
    """Two groups of taxa, all AA in the first and all CC in the second."""
    genotypes = [["AA"] * n_sites] * n_per_group + [["CC"] * n_sites] * n_per_group
    taxa = [f"G0_{i}" for i in range(n_per_group)] + [
        f"G1_{i}" for i in range(n_per_group)
    ]
    return GenotypeMatrix.from_strings(taxa, np.arange(1, n_sites + 1), genotypes)


def called_population(calls, positions=None, allele_a=0, allele_c=1, name="fam"):
    """Population context with every site called from a matrix of `ParentCall` values."""
    calls = np.asarray(calls, dtype=np.int8)
    n, m = calls.shape
    if positions is None:
        positions = 1000 * np.arange(1, m + 1)
    a = np.full(m, allele_a, dtype=np.int8)
    c = np.full(m, allele_c, dtype=np.int8)
    alleles = np.full((n, m, 2), -1, dtype=np.int8)
    alleles[calls == ParentCall.A] = [allele_a, allele_a]
    alleles[calls == ParentCall.HET] = [allele_a, allele_c]
    alleles[calls == ParentCall.C] = [allele_c, allele_c]
    taxa = [f"T{i}" for i in range(n)]
    matrix = GenotypeMatrix(taxa, positions, alleles)
    return PopulationData(
        name=name,
        parent1="T0",
        parent2="T1",
        original=matrix,
        snp_index=np.ones(m, dtype=bool),
        allele_a=a,
        allele_c=c,
        imputed=calls,
    )


def truth_calls(dosage):
    """Founder calls implied by true founder-C dosages."""
    calls = np.full(dosage.shape, ParentCall.HET, dtype=np.int8)
    calls[dosage == 0] = ParentCall.A
    calls[dosage == 2] = ParentCall.C
    return calls
