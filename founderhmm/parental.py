"""Discovery of founder haplotype groups and calling of founder alleles.

Two strategies assign a founder allele (A or C) to each polymorphic site:

* `call_parent_alleles` clusters a core block of mutually linked sites,
  splits the taxa into the two founder groups at that block and extends the
  calls outwards along the chromosome using linkage to already called sites.
* `call_parent_alleles_by_window` clusters taxa independently within
  consecutive windows of polymorphic sites and keeps the group labels of
  neighbouring windows in a consistent orientation.

"""

import logging
from collections import deque
from dataclasses import dataclass

import numpy as np

from .cluster import UPGMACluster, group_sizes, largest_groups
from .genotypes import (
    NUCLEOTIDES,
    UNKNOWN_ALLELE,
    ParentCall,
    code_parent_calls,
)
from .stats import (
    estimate_missing_distances,
    ibs_distance,
    id_correlation,
    polymorphic_sites,
    r_from_counts,
    site_r_matrix,
)


@dataclass(frozen=True)
class TwoGroupPolicy:
    """Rule declaring that two founder groups of taxa have been found.

    The tree is cut into more and more groups until the largest group
    holds at most `max_major_fraction` of all taxa and the second largest
    has at least `min_minor_size` members.
    """

    max_major_fraction: float = 0.5
    min_minor_size: int = 10

    def is_satisfied(self, major_size, minor_size, n_taxa):
        return (major_size <= self.max_major_fraction * n_taxa) and (
            minor_size >= self.min_minor_size
        )


def find_core_snps(
    matrix, polybits, window_size=50, number_to_try=10, cut_height=0.3, observer=None
):
    """Find a block of polymorphic sites that are in strong linkage with each other.

    Several windows of `window_size` consecutive polymorphic sites, centred on
    evenly spaced offsets along the chromosome, are clustered on 1 - r^2.
    The window whose largest cluster is biggest provides the core sites.

    Arguments:
        - matrix (`GenotypeMatrix`): genotypes of the population
        - polybits (`np.array`): boolean flags of the polymorphic sites
        - window_size (`int`): number of polymorphic sites per candidate window
        - number_to_try (`int`): number of candidate windows
        - cut_height (`float`): height at which the site dendrogram is cut
        - observer (`callable`): optional callback receiving each site clusterer

    Returns:
        - core_snps (`np.array`): sorted site indices of the core block

    """
    if window_size <= 0:
        raise ValueError(f"Window size must be positive, got {window_size}!")
    if number_to_try <= 0:
        raise ValueError(f"Number of windows to try must be positive, got {number_to_try}!")
    assert polybits.size == matrix.n_sites
    poly = np.flatnonzero(polybits)
    if poly.size == 0:
        logging.warning("No polymorphic sites available to search for core SNPs.")
        return np.zeros(0, dtype=int)
    interval = poly.size // (number_to_try + 1)
    classes = matrix.genotype_classes()
    best = np.zeros(0, dtype=int)
    for t in range(number_to_try):
        start = max(0, (t + 1) * interval - window_size // 2)
        snp_ids = poly[start : start + window_size]
        if snp_ids.size < 2:
            continue
        r = site_r_matrix(classes[:, snp_ids])
        dm = estimate_missing_distances(np.clip(1.0 - r**2, 0.0, None))
        groups = UPGMACluster(dm, observer=observer).groups_by_height(cut_height)
        snp_set = np.sort(snp_ids[groups == largest_groups(groups)[0]])
        logging.info(
            f"Core SNP window {t} starting at site {snp_ids[0]} has a largest cluster of {snp_set.size} sites."
        )
        if snp_set.size > best.size:
            best = snp_set
    return best


def find_taxa_groups(matrix, sites, policy=None, observer=None, parent_index=None):
    """Split taxa into the two founder groups using IBS clustering at a set of sites.

    The tree is cut into k = 1, 2, ... groups until `policy` is satisfied.
    When the rows of both founders are given, the cut must also place them
    in different groups and the groups holding the founders are returned.
    Should no cut satisfy both, the first cut separating the founders is used.

    Arguments:
        - matrix (`GenotypeMatrix`): genotypes of the population
        - sites (`np.array`): site indices to compute IBS distances on
        - policy (`TwoGroupPolicy`): rule for when two groups have been found
        - observer (`callable`): optional callback receiving the taxa clusterer
        - parent_index (`tuple`): rows of founder A and founder C (-1 when absent)

    Returns:
        - major_taxa (`np.array`): row indices of the largest group, or of the
          founder A group when both founders are given
        - minor_taxa (`np.array`): row indices of the second largest group, or
          of the founder C group when both founders are given

    """
    if policy is None:
        policy = TwoGroupPolicy()
    n = matrix.n_taxa
    seeded = (
        parent_index is not None
        and min(parent_index) >= 0
        and parent_index[0] != parent_index[1]
    )
    dm = estimate_missing_distances(ibs_distance(matrix.filter_sites(sites)))
    clusterer = UPGMACluster(dm, observer=observer)
    groups = np.zeros(n, dtype=int)
    first_split = None
    for k in range(1, n + 1):
        groups = clusterer.groups_by_count(k)
        sizes = group_sizes(groups)
        order = largest_groups(groups, 2)
        minor_size = sizes[order[1]] if order.size > 1 else 0
        satisfied = policy.is_satisfied(sizes[order[0]], minor_size, n)
        if seeded:
            split = groups[parent_index[0]] != groups[parent_index[1]]
            if split and first_split is None:
                first_split = groups
            if split and satisfied:
                break
        elif satisfied:
            break
    else:
        if first_split is not None:
            logging.warning(
                f"Could not split {n} taxa into two founder groups, using the first cut "
                f"separating the founders."
            )
            groups = first_split
        else:
            logging.warning(
                f"Could not split {n} taxa into two founder groups, using the two largest groups."
            )
    sizes = group_sizes(groups)
    order = largest_groups(groups, 2)
    for i, size in enumerate(sizes):
        if size > 5:
            logging.info(f"Taxa group {i} has {size} members.")
    if seeded and groups[parent_index[0]] != groups[parent_index[1]]:
        return (
            np.flatnonzero(groups == groups[parent_index[0]]),
            np.flatnonzero(groups == groups[parent_index[1]]),
        )
    major_taxa = np.flatnonzero(groups == order[0])
    minor_taxa = (
        np.flatnonzero(groups == order[1]) if order.size > 1 else np.zeros(0, dtype=int)
    )
    return major_taxa, minor_taxa


def assign_founder_groups(matrix, taxa_groups, parent1, parent2):
    """Order two taxa groups as (founder A group, founder C group) by where the founders fall."""
    g0, g1 = taxa_groups
    p1 = matrix.taxon_index(parent1)
    p2 = matrix.taxon_index(parent2)
    if p1 in g0:
        return g0, g1
    if p1 in g1:
        return g1, g0
    if p2 in g0:
        return g1, g0
    return g0, g1


def recode_parental_snp(site_alleles, ref_calls, min_r):
    """Test whether a site is linked to a set of already called reference sites.

    For every homozygous class at the new site the number of founder A and
    founder C calls carried at the reference sites by taxa of that class is
    counted. The classes most often seen with A and with C define a 2 x 2
    table from which r is computed.

    Arguments:
        - site_alleles (`np.array`): n_taxa x 2 allele codes at the new site
        - ref_calls (`np.array`): n_taxa x k `ParentCall` values at the reference sites
        - min_r (`float`): minimum |r| for the site to be called

    Returns:
        - None when the site is not linked, otherwise a tuple of
          (founder A allele, founder C allele, n_taxa parent calls at the site)

    """
    a0 = site_alleles[:, 0]
    a1 = site_alleles[:, 1]
    hom = (a0 != UNKNOWN_ALLELE) & (a0 == a1)
    n_a = np.sum(ref_calls == ParentCall.A, axis=1)
    n_c = np.sum(ref_calls == ParentCall.C, axis=1)
    acount = np.bincount(a0[hom], weights=n_a[hom], minlength=len(NUCLEOTIDES))
    ccount = np.bincount(a0[hom], weights=n_c[hom], minlength=len(NUCLEOTIDES))
    maxa = int(np.argmax(acount))
    maxc = int(np.argmax(ccount))
    if maxa == maxc:
        return None
    total = acount[maxa] + acount[maxc] + ccount[maxa] + ccount[maxc]
    sumx = acount[maxa] + acount[maxc]
    sumy = acount[maxa] + ccount[maxa]
    r = float(np.abs(r_from_counts(sumx, sumy, acount[maxa], total)))
    if np.isnan(r) or r < min_r:
        return None
    calls = code_parent_calls(site_alleles[:, np.newaxis, :], [maxa], [maxc])[:, 0]
    return maxa, maxc, calls


def _empty_calls(popdata):
    n_taxa = popdata.original.n_taxa
    return popdata.evolve(
        snp_index=np.zeros(popdata.original.n_sites, dtype=bool),
        allele_a=np.zeros(0, dtype=np.int8),
        allele_c=np.zeros(0, dtype=np.int8),
        imputed=np.zeros((n_taxa, 0), dtype=np.int8),
    )


def _extend_calls(matrix, polybits, coded, called, allele_a, allele_c, ref, sites, min_r):
    """Extend founder calls over `sites`, each tested against the sliding reference set."""
    n_added = 0
    for s in sites:
        if not polybits[s] or called[s]:
            continue
        res = recode_parental_snp(matrix.alleles[:, s], coded[:, list(ref)], min_r)
        if res is not None:
            allele_a[s], allele_c[s], coded[:, s] = res
            called[s] = True
            ref.append(s)
            n_added += 1
    return n_added


def call_parent_alleles(
    popdata,
    min_allele_count=0,
    window_size=50,
    number_to_try=10,
    cut_height=0.3,
    min_r=0.5,
    extend_size=25,
    max_missing=1.0,
    min_maf=0.0,
    policy=None,
    observer=None,
):
    """Call founder alleles along a whole chromosome from a core block of linked sites.

    Arguments:
        - popdata (`PopulationData`): family context
        - min_allele_count (`int`): minor allele count that polymorphic sites must exceed
        - window_size (`int`): number of polymorphic sites per core-SNP window
        - number_to_try (`int`): number of core-SNP windows to try
        - cut_height (`float`): height at which the site dendrogram is cut
        - min_r (`float`): minimum |r| for extending calls to a new site
        - extend_size (`int`): number of most recently called sites used as reference
        - max_missing (`float`): maximum missing fraction for polymorphic sites
        - min_maf (`float`): minimum minor allele frequency for polymorphic sites
        - policy (`TwoGroupPolicy`): rule for when two founder groups have been found
        - observer (`callable`): optional callback receiving every clusterer built

    Returns:
        - popdata (`PopulationData`): new context carrying the founder calls

    """
    if extend_size <= 0:
        raise ValueError(f"Extension reference size must be positive, got {extend_size}!")
    matrix = popdata.original
    polybits = polymorphic_sites(
        matrix,
        max_missing=max_missing,
        min_maf=min_maf,
        min_allele_count=min_allele_count,
    )
    core_snps = find_core_snps(
        matrix,
        polybits,
        window_size=window_size,
        number_to_try=number_to_try,
        cut_height=cut_height,
        observer=observer,
    )
    if core_snps.size == 0:
        logging.warning(f"No core SNPs found for family {popdata.name}.")
        return _empty_calls(popdata)
    a_group, c_group = assign_founder_groups(
        matrix,
        find_taxa_groups(matrix, core_snps, policy=policy, observer=observer),
        popdata.parent1,
        popdata.parent2,
    )
    n_sites = matrix.n_sites
    allele_a = np.full(n_sites, UNKNOWN_ALLELE, dtype=np.int8)
    allele_c = np.full(n_sites, UNKNOWN_ALLELE, dtype=np.int8)
    called = np.zeros(n_sites, dtype=bool)
    coded = np.full((matrix.n_taxa, n_sites), ParentCall.MISSING, dtype=np.int8)

    # Founder alleles at the core sites are the major alleles of each group
    major_a = matrix.major_allele(a_group)[core_snps]
    major_c = matrix.major_allele(c_group)[core_snps]
    ok = (major_a != UNKNOWN_ALLELE) & (major_c != UNKNOWN_ALLELE) & (major_a != major_c)
    core_called = core_snps[ok]
    if core_called.size == 0:
        logging.warning(f"No callable core SNPs for family {popdata.name}.")
        return _empty_calls(popdata)
    allele_a[core_called] = major_a[ok]
    allele_c[core_called] = major_c[ok]
    coded[:, core_called] = code_parent_calls(
        matrix.alleles[:, core_called], major_a[ok], major_c[ok]
    )
    called[core_called] = True

    # From the core block towards the start, then towards the end
    ref = deque(core_called[:extend_size][::-1], maxlen=extend_size)
    n_left = _extend_calls(
        matrix, polybits, coded, called, allele_a, allele_c, ref,
        range(core_snps[0] - 1, -1, -1), min_r,
    )
    ref = deque(core_called[-extend_size:], maxlen=extend_size)
    n_right = _extend_calls(
        matrix, polybits, coded, called, allele_a, allele_c, ref,
        range(core_snps[-1] + 1, n_sites), min_r,
    )
    logging.info(
        f"Family {popdata.name}: {n_sites} sites, {np.sum(polybits)} polymorphic, "
        f"{core_called.size} core, {n_left + n_right} added by linkage, "
        f"{np.sum(called)} called."
    )
    return popdata.evolve(
        snp_index=called,
        allele_a=allele_a[called],
        allele_c=allele_c[called],
        imputed=coded[:, called],
    )


def get_windows(polybits, window_size):
    """Split the polymorphic sites into consecutive windows, the last one possibly smaller."""
    if window_size <= 0:
        raise ValueError(f"Window size must be positive, got {window_size}!")
    poly = np.flatnonzero(polybits)
    return [poly[i : i + window_size] for i in range(0, poly.size, window_size)]


def is_callable_site(matrix, taxa_groups, min_freq=0.6):
    """Flag sites where the two taxa groups carry different, well supported major alleles."""
    maj0 = matrix.major_allele(taxa_groups[0])
    maj1 = matrix.major_allele(taxa_groups[1])
    with np.errstate(invalid="ignore"):
        f0 = matrix.major_allele_frequency(taxa_groups[0]) > min_freq
        f1 = matrix.major_allele_frequency(taxa_groups[1]) > min_freq
    return (
        (maj0 != UNKNOWN_ALLELE) & (maj1 != UNKNOWN_ALLELE) & (maj0 != maj1) & f0 & f1
    )


def _seeded_groups(matrix, parent_index, policy, observer):
    """Two taxa groups, those holding the founders when both are present, founder A group first."""
    g0, g1 = find_taxa_groups(
        matrix,
        np.arange(matrix.n_sites),
        policy=policy,
        observer=observer,
        parent_index=parent_index,
    )
    p1, p2 = parent_index
    if (p1 >= 0 and p1 in g1) or (p1 < 0 and p2 >= 0 and p2 in g0):
        return g1, g0
    return g0, g1


def taxa_group_clusters(matrix, parent_index, policy=None, observer=None):
    """Cluster taxa in a window into two founder groups.

    With both founders present the groups are the clusters holding them, so
    a large cluster of heterozygous progeny is never taken as a founder group.
    When more than five sites separate the first two groups the taxa are
    clustered again on those sites only.

    Arguments:
        - matrix (`GenotypeMatrix`): genotypes of one window
        - parent_index (`tuple`): rows of founder A and founder C (-1 when absent)

    Returns:
        - taxa_groups (`tuple`): row indices of the two groups
        - sites (`np.array`): window-relative sites used for the final grouping

    """
    groups = _seeded_groups(matrix, parent_index, policy, observer)
    keep = np.flatnonzero(is_callable_site(matrix, groups))
    if keep.size > 5:
        groups = _seeded_groups(matrix.filter_sites(keep), parent_index, policy, observer)
        return groups, keep
    return groups, np.arange(matrix.n_sites)


def check_group_order(taxa_groups, taxa_names, popdata, r, min_r=-0.05, label=""):
    """Swap group labels that are inverted relative to the previous window.

    Founders found in the same group, or in groups that disagree with the
    sign of r, are reported but never treated as errors.
    """
    names0 = set(taxa_names[taxa_groups[0]])
    names1 = set(taxa_names[taxa_groups[1]])
    p1group = 0 if popdata.parent1 in names0 else (1 if popdata.parent1 in names1 else -1)
    p2group = 1 if popdata.parent2 in names1 else (0 if popdata.parent2 in names0 else -1)
    same_group = p1group >= 0 and p1group == p2group
    wrong_group = False
    if not same_group:
        if p1group == 0 or (p1group < 0 and p2group == 1):
            wrong_group = r < 0
        elif p1group == 1 or (p1group < 0 and p2group == 0):
            wrong_group = r > 0
    if same_group:
        logging.warning(f"Both parents in the same group for family {popdata.name} at {label}.")
    if wrong_group:
        logging.warning(f"Parents in unexpected group for family {popdata.name} at {label}.")
    if r < min_r:
        return taxa_groups[1], taxa_groups[0]
    return taxa_groups


def call_parent_alleles_by_window(
    popdata, max_missing=1.0, min_maf=0.0, window_size=50, policy=None, observer=None
):
    """Call founder alleles independently in consecutive windows of polymorphic sites.

    Arguments:
        - popdata (`PopulationData`): family context
        - max_missing (`float`): maximum missing fraction for polymorphic sites
        - min_maf (`float`): minimum minor allele frequency for polymorphic sites
        - window_size (`int`): number of polymorphic sites per window
        - policy (`TwoGroupPolicy`): rule for when two founder groups have been found
        - observer (`callable`): optional callback receiving every clusterer built

    Returns:
        - popdata (`PopulationData`): new context carrying the founder calls

    """
    matrix = popdata.original
    polybits = polymorphic_sites(matrix, max_missing=max_missing, min_maf=min_maf)
    windows = get_windows(polybits, window_size)
    n_sites = matrix.n_sites
    allele_a = np.full(n_sites, UNKNOWN_ALLELE, dtype=np.int8)
    allele_c = np.full(n_sites, UNKNOWN_ALLELE, dtype=np.int8)
    called = np.zeros(n_sites, dtype=bool)
    parent_index = (matrix.taxon_index(popdata.parent1), matrix.taxon_index(popdata.parent2))

    prev_names = None
    for snp_ids in windows:
        window = matrix.filter_sites(snp_ids)
        groups, sites = taxa_group_clusters(window, parent_index, policy, observer)
        label = f"{matrix.chrom}:{matrix.positions[snp_ids[0]]}"
        r = 0.0
        if prev_names is not None:
            r = id_correlation(prev_names, (matrix.taxa[groups[0]], matrix.taxa[groups[1]]))
            logging.info(
                f"For {popdata.name} the window starting at {label}, r = {r:.3f}, "
                f"# of snps in window = {sites.size}"
            )
        else:
            logging.info(
                f"For {popdata.name} the window starting at {label}, "
                f"# of snps in window = {sites.size}"
            )
        groups = check_group_order(groups, matrix.taxa, popdata, r, label=label)
        prev_names = (matrix.taxa[groups[0]], matrix.taxa[groups[1]])

        ok = is_callable_site(window.filter_sites(sites), groups)
        target = snp_ids[sites[ok]]
        allele_a[target] = window.major_allele(groups[0])[sites[ok]]
        allele_c[target] = window.major_allele(groups[1])[sites[ok]]
        called[target] = True

    logging.info(f"Number of called snps for family {popdata.name} = {np.sum(called)}")
    if not np.any(called):
        return _empty_calls(popdata)
    called_sites = np.flatnonzero(called)
    coded = code_parent_calls(
        matrix.alleles[:, called_sites], allele_a[called_sites], allele_c[called_sites]
    )
    return popdata.evolve(
        snp_index=called,
        allele_a=allele_a[called_sites],
        allele_c=allele_c[called_sites],
        imputed=coded,
    )
