"""Site filtering and pairwise statistics between sites and between taxa."""

import logging

import numpy as np

from .genotypes import HET, HOM_MAJOR, HOM_MINOR, MISSING


def polymorphic_sites(matrix, max_missing=1.0, min_maf=0.0, min_allele_count=0):
    """Flag the sites that are informative enough for clustering.

    A site qualifies when at least two alleles are observed, the minor
    allele is carried by more than two gametes and by more than
    `min_allele_count`, the minor allele frequency exceeds `min_maf` and
    the missing gamete fraction does not exceed `max_missing`.

    Arguments:
        - matrix (`GenotypeMatrix`): genotypes of the population
        - max_missing (`float`): maximum fraction of missing gametes
        - min_maf (`float`): minimum minor allele frequency (exclusive)
        - min_allele_count (`int`): minor allele gametes must exceed this count

    Returns:
        - polybits (`np.array`): boolean array, True for polymorphic sites

    """
    assert (max_missing >= 0) and (max_missing <= 1)
    assert (min_maf >= 0) and (min_maf < 1)
    counts = np.sort(matrix.allele_counts(), axis=1)
    minor_count = counts[:, -2]
    total = counts.sum(axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        maf = np.where(total > 0, minor_count / total, 0.0)
    polybits = (
        (minor_count > 2)
        & (minor_count > min_allele_count)
        & (maf > min_maf)
        & (matrix.missing_fraction() <= max_missing)
    )
    return polybits


def r_from_counts(s1, s2, prod, total):
    """Pearson r of two 0/1 variables from their sufficient statistics.

    With x = 1 for the major allele at site one and y likewise at site two,
    sum(x^2) = sum(x) so the variance terms reduce to sum(x)(N - sum(x))/N.
    """
    s1 = np.asarray(s1, dtype=float)
    s2 = np.asarray(s2, dtype=float)
    prod = np.asarray(prod, dtype=float)
    total = np.asarray(total, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        num = prod - s1 * s2 / total
        denom = (s1 * (total - s1) / total) * (s2 * (total - s2) / total)
        r = num / np.sqrt(denom)
    r = np.where((total < 2) | (denom == 0), np.nan, r)
    return r


def compute_r(matrix, site1, site2):
    """Genotype correlation between two sites over taxa homozygous at both."""
    classes = matrix.genotype_classes()[:, [site1, site2]]
    return float(site_r_matrix(classes)[0, 1])


def site_r_matrix(classes):
    """Correlation between all pairs of sites.

    Only taxa that are non-missing and homozygous at both sites of a pair
    contribute to that pair.

    Arguments:
        - classes (`np.array`): n_taxa x n_sites genotype classes

    Returns:
        - r (`np.array`): n_sites x n_sites matrix of r (NaN where undefined)

    """
    hom = ((classes == HOM_MAJOR) | (classes == HOM_MINOR)).astype(float)
    major = (classes == HOM_MAJOR).astype(float)
    total = hom.T @ hom
    s1 = major.T @ hom
    s2 = hom.T @ major
    prod = major.T @ major
    return r_from_counts(s1, s2, prod, total)


def snp_distance(matrix):
    """Distance between sites as 1 - r^2, with undefined cells repaired."""
    r = site_r_matrix(matrix.genotype_classes())
    return estimate_missing_distances(np.clip(1.0 - r**2, 0.0, None))


def ibs_distance(matrix):
    """Identity-by-state distance between all pairs of taxa.

    The distance of a pair is the mean of |d_i - d_j| / 2 over the sites
    where both taxa are called, where d is the minor allele dosage.

    Arguments:
        - matrix (`GenotypeMatrix`): genotypes restricted to the sites to compare

    Returns:
        - dm (`np.array`): n_taxa x n_taxa distances, NaN for pairs with no shared site

    """
    classes = matrix.genotype_classes()
    called = classes != MISSING
    dosage = np.where(classes == HOM_MINOR, 2.0, 0.0)
    dosage[classes == HET] = 1.0
    n = matrix.n_taxa
    dm = np.full((n, n), np.nan)
    for i in range(n):
        both = called[i][np.newaxis, :] & called
        diff = np.abs(dosage[i][np.newaxis, :] - dosage) / 2.0
        n_shared = both.sum(axis=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            dm[i] = np.where(
                n_shared > 0, np.sum(diff * both, axis=1) / n_shared, np.nan
            )
    return dm


def estimate_missing_distances(dm):
    """Replace undefined distances with the average distance.

    Arguments:
        - dm (`np.array`): symmetric n x n distance matrix possibly holding NaN

    Returns:
        - repaired (`np.array`): copy with NaN off-diagonal cells set to the mean
          of the finite off-diagonal cells and a zero diagonal

    """
    dm = np.array(dm, dtype=float)
    assert (dm.ndim == 2) and (dm.shape[0] == dm.shape[1])
    n = dm.shape[0]
    off_diag = dm[~np.eye(n, dtype=bool)]
    finite = off_diag[np.isfinite(off_diag)]
    if finite.size > 0:
        avg_dist = np.mean(finite)
    else:
        logging.warning(
            f"No defined distances among {n} items, setting missing distances to 0."
        )
        avg_dist = 0.0
    dm[~np.isfinite(dm)] = avg_dist
    np.fill_diagonal(dm, 0.0)
    return dm


def id_correlation(prev_groups, cur_groups):
    """Correlation between two assignments of taxa to a pair of groups.

    Arguments:
        - prev_groups (`tuple`): two collections of taxon names from one window
        - cur_groups (`tuple`): two collections of taxon names from the next window

    Returns:
        - r (`float`): positive when group labels agree, negative when swapped

    """
    counts = np.zeros((2, 2))
    for i in range(2):
        for j in range(2):
            counts[i, j] = len(set(prev_groups[i]) & set(cur_groups[j]))
    num = counts[0, 0] * counts[1, 1] - counts[0, 1] * counts[1, 0]
    p1 = counts[0, 0] + counts[0, 1]
    q1 = counts[1, 0] + counts[1, 1]
    p2 = counts[0, 0] + counts[1, 0]
    q2 = counts[0, 1] + counts[1, 1]
    denom = p1 * q1 * p2 * q2
    if denom == 0:
        return np.nan
    return num / np.sqrt(denom)
