"""Genotype matrix and population context for founder-origin imputation."""

from dataclasses import dataclass, replace
from enum import IntEnum

import numpy as np

NUCLEOTIDES = "ACGT+-"
MISSING_CHAR = "N"
UNKNOWN_ALLELE = -1

# Classes used by the correlation and IBS statistics
HOM_MAJOR = 0
HET = 1
HOM_MINOR = 2
MISSING = -1


class ParentCall(IntEnum):
    """Founder-coded call at a site, also the HMM observation class."""

    MISSING = -1
    A = 0
    HET = 1
    C = 2


class Dosage(IntEnum):
    """Hidden founder-dosage states of the five-state HMM."""

    AA = 0
    AAAC = 1
    AC = 2
    ACCC = 3
    CC = 4


def obs_to_dosage(obs):
    """Map parent-call observations directly onto dosage states.

    Arguments:
        - obs (`np.array`): observation classes (A=0, HET=1, C=2)

    Returns:
        - states (`np.array`): A -> AA, C -> CC, HET -> AC

    """
    obs = np.asarray(obs)
    states = np.full(obs.size, Dosage.AC, dtype=np.int64)
    states[obs == ParentCall.A] = Dosage.AA
    states[obs == ParentCall.C] = Dosage.CC
    return states


def dosage_to_call(states):
    """Collapse dosage states into parent calls (any mixture is heterozygous)."""
    states = np.asarray(states)
    calls = np.full(states.size, ParentCall.HET, dtype=np.int8)
    calls[states == Dosage.AA] = ParentCall.A
    calls[states == Dosage.CC] = ParentCall.C
    return calls


def code_parent_calls(alleles, allele_a, allele_c):
    """Recode diploid genotypes at a set of sites as founder calls.

    Arguments:
        - alleles (`np.array`): n x k x 2 allele codes for k sites
        - allele_a (`np.array`): k founder-A allele codes
        - allele_c (`np.array`): k founder-C allele codes

    Returns:
        - calls (`np.array`): n x k int8 matrix of `ParentCall` values

    """
    allele_a = np.asarray(allele_a)[np.newaxis, :]
    allele_c = np.asarray(allele_c)[np.newaxis, :]
    a0 = alleles[:, :, 0]
    a1 = alleles[:, :, 1]
    calls = np.full(a0.shape, ParentCall.MISSING, dtype=np.int8)
    calls[(a0 == allele_a) & (a1 == allele_a)] = ParentCall.A
    calls[(a0 == allele_c) & (a1 == allele_c)] = ParentCall.C
    het = ((a0 == allele_a) & (a1 == allele_c)) | ((a0 == allele_c) & (a1 == allele_a))
    calls[het] = ParentCall.HET
    return calls


def allele_code(ch):
    """Convert a single allele character into its integer code."""
    if ch == MISSING_CHAR:
        return UNKNOWN_ALLELE
    idx = NUCLEOTIDES.find(ch)
    if idx < 0:
        raise ValueError(f"Unknown allele character {ch!r}!")
    return idx


def allele_char(code):
    """Convert an integer allele code into its character."""
    if code == UNKNOWN_ALLELE:
        return MISSING_CHAR
    return NUCLEOTIDES[code]


class GenotypeMatrix:
    """Bi-allelic diploid calls for taxa (rows) by sites (columns) on one chromosome."""

    def __init__(self, taxa, positions, alleles, chrom="1"):
        """Initialize a genotype matrix.

        Arguments:
            - taxa (`list`): unique taxon names, one per row
            - positions (`np.array`): physical positions of the sites (non-decreasing)
            - alleles (`np.array`): n_taxa x n_sites x 2 allele codes, -1 for missing
            - chrom (`str`): chromosome label

        Returns: GenotypeMatrix object

        """
        alleles = np.asarray(alleles, dtype=np.int8)
        positions = np.asarray(positions, dtype=np.int64)
        taxa = np.asarray(taxa, dtype=str)
        if alleles.ndim != 3 or alleles.shape[2] != 2:
            raise ValueError("Alleles must be an n_taxa x n_sites x 2 array!")
        if alleles.shape[0] != taxa.size:
            raise ValueError(
                f"{taxa.size} taxa names given for {alleles.shape[0]} rows of genotypes!"
            )
        if alleles.shape[1] != positions.size:
            raise ValueError(
                f"{positions.size} positions given for {alleles.shape[1]} sites!"
            )
        if np.unique(taxa).size != taxa.size:
            raise ValueError("Taxa names must be unique!")
        if np.any(np.diff(positions) < 0):
            raise ValueError("Sites must be ordered by physical position!")
        # A cell with a single unknown allele is treated as fully missing
        partial = np.any(alleles == UNKNOWN_ALLELE, axis=2)
        alleles = alleles.copy()
        alleles[partial] = UNKNOWN_ALLELE
        alleles.setflags(write=False)
        self.taxa = taxa
        self.positions = positions
        self.alleles = alleles
        self.chrom = str(chrom)

    @classmethod
    def from_strings(cls, taxa, positions, genotypes, chrom="1"):
        """Build a matrix from diploid strings such as "AA", "AC" or "NN".

        Arguments:
            - taxa (`list`): taxon names
            - positions (`list`): site positions
            - genotypes (`list`): n_taxa lists of n_sites diploid strings

        """
        genotypes = np.asarray(genotypes, dtype=str)
        if genotypes.ndim != 2:
            raise ValueError("Genotypes must be a two-dimensional table of strings!")
        alleles = np.full(genotypes.shape + (2,), UNKNOWN_ALLELE, dtype=np.int8)
        for (t, s), g in np.ndenumerate(genotypes):
            if g in ("", MISSING_CHAR, MISSING_CHAR * 2):
                continue
            if len(g) != 2:
                raise ValueError(f"Genotype {g!r} for taxon {t} site {s} is not diploid!")
            alleles[t, s, 0] = allele_code(g[0])
            alleles[t, s, 1] = allele_code(g[1])
        return cls(taxa, positions, alleles, chrom=chrom)

    @property
    def n_taxa(self):
        return self.alleles.shape[0]

    @property
    def n_sites(self):
        return self.alleles.shape[1]

    def taxon_index(self, name):
        """Return the row of a taxon, or -1 when it is absent."""
        idx = np.flatnonzero(self.taxa == name)
        return int(idx[0]) if idx.size > 0 else -1

    def genotype(self, taxon, site):
        """Diploid string for a single cell."""
        a0, a1 = self.alleles[taxon, site]
        if a0 == UNKNOWN_ALLELE:
            return MISSING_CHAR * 2
        return allele_char(a0) + allele_char(a1)

    def to_strings(self):
        """Convert the whole matrix to an n_taxa x n_sites array of diploid strings."""
        out = np.empty((self.n_taxa, self.n_sites), dtype=object)
        for t in range(self.n_taxa):
            for s in range(self.n_sites):
                out[t, s] = self.genotype(t, s)
        return out

    def is_missing(self):
        return self.alleles[:, :, 0] == UNKNOWN_ALLELE

    def is_het(self):
        return (~self.is_missing()) & (self.alleles[:, :, 0] != self.alleles[:, :, 1])

    def allele_counts(self, taxa=None):
        """Count gametes carrying each allele at every site.

        Arguments:
            - taxa (`np.array`): optional row indices to restrict the count to

        Returns:
            - counts (`np.array`): n_sites x 6 gamete counts per allele code

        """
        alleles = self.alleles if taxa is None else self.alleles[np.asarray(taxa, dtype=int)]
        counts = np.zeros((self.n_sites, len(NUCLEOTIDES)), dtype=np.int64)
        for code in range(len(NUCLEOTIDES)):
            counts[:, code] = np.sum(alleles == code, axis=(0, 2))
        return counts

    def major_allele(self, taxa=None):
        """Most frequent allele per site (ties to the lower code), -1 without data."""
        counts = self.allele_counts(taxa)
        major = np.argmax(counts, axis=1).astype(np.int8)
        major[counts.sum(axis=1) == 0] = UNKNOWN_ALLELE
        return major

    def minor_allele(self, taxa=None):
        """Second most frequent allele per site, -1 when fewer than two are observed."""
        counts = self.allele_counts(taxa)
        order = np.argsort(-counts, axis=1, kind="stable")
        minor = order[:, 1].astype(np.int8)
        minor[counts[np.arange(self.n_sites), order[:, 1]] == 0] = UNKNOWN_ALLELE
        return minor

    def major_allele_frequency(self, taxa=None):
        counts = self.allele_counts(taxa)
        total = counts.sum(axis=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.where(total > 0, counts.max(axis=1) / total, np.nan)

    def minor_allele_frequency(self, taxa=None):
        counts = np.sort(self.allele_counts(taxa), axis=1)
        total = counts.sum(axis=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.where(total > 0, counts[:, -2] / total, np.nan)

    def missing_fraction(self):
        """Fraction of missing gametes at each site."""
        return np.mean(self.alleles == UNKNOWN_ALLELE, axis=(0, 2))

    def genotype_classes(self):
        """Classify each cell as homozygous major, heterozygous, homozygous minor or missing.

        Homozygous calls of any third allele are reported as missing.
        """
        major = self.major_allele()[np.newaxis, :]
        minor = self.minor_allele()[np.newaxis, :]
        a0 = self.alleles[:, :, 0]
        a1 = self.alleles[:, :, 1]
        classes = np.full(a0.shape, MISSING, dtype=np.int8)
        classes[(a0 == major) & (a1 == major)] = HOM_MAJOR
        classes[(a0 == minor) & (a1 == minor) & (minor != UNKNOWN_ALLELE)] = HOM_MINOR
        het = ((a0 == major) & (a1 == minor)) | ((a0 == minor) & (a1 == major))
        classes[het & (minor != UNKNOWN_ALLELE)] = HET
        return classes

    def filter_sites(self, sites):
        sites = np.asarray(sites, dtype=int)
        return GenotypeMatrix(
            self.taxa, self.positions[sites], self.alleles[:, sites], chrom=self.chrom
        )

    def filter_taxa(self, taxa):
        taxa = np.asarray(taxa, dtype=int)
        return GenotypeMatrix(
            self.taxa[taxa], self.positions, self.alleles[taxa], chrom=self.chrom
        )

    def with_alleles(self, alleles):
        """Rebuild the matrix with a new allele array of the same shape."""
        alleles = np.asarray(alleles, dtype=np.int8)
        assert alleles.shape == self.alleles.shape
        return GenotypeMatrix(self.taxa, self.positions, alleles, chrom=self.chrom)

    def __eq__(self, other):
        if not isinstance(other, GenotypeMatrix):
            return NotImplemented
        return (
            self.chrom == other.chrom
            and np.array_equal(self.taxa, other.taxa)
            and np.array_equal(self.positions, other.positions)
            and np.array_equal(self.alleles, other.alleles)
        )

    def __repr__(self):
        return (
            f"GenotypeMatrix(chrom={self.chrom!r}, n_taxa={self.n_taxa}, "
            f"n_sites={self.n_sites})"
        )


@dataclass(frozen=True, eq=False)
class PopulationData:
    """Per-family context passed through the imputation pipeline.

    Each stage returns a new context through `evolve` rather than
    mutating this one; `version` counts the stages applied.

    Attributes:
        - name (`str`): family name
        - parent1 (`str`): taxon name of founder A
        - parent2 (`str`): taxon name of founder C
        - original (`GenotypeMatrix`): genotypes of the family
        - snp_index (`np.array`): boolean per site, True when the site has a founder-allele call
        - allele_a (`np.array`): founder A allele code per called site
        - allele_c (`np.array`): founder C allele code per called site
        - imputed (`np.array`): n_taxa x n_called matrix of `ParentCall` values
        - version (`int`): number of pipeline stages applied

    """

    name: str
    parent1: str
    parent2: str
    original: GenotypeMatrix
    snp_index: np.ndarray = None
    allele_a: np.ndarray = None
    allele_c: np.ndarray = None
    imputed: np.ndarray = None
    version: int = 0

    def __post_init__(self):
        if self.snp_index is None:
            return
        n_sites = self.original.n_sites
        if self.snp_index.size != n_sites:
            raise ValueError(
                f"Family {self.name}: call flags cover {self.snp_index.size} sites "
                f"but the genotype matrix has {n_sites}!"
            )
        n_called = int(np.sum(self.snp_index))
        for label, arr in (("A", self.allele_a), ("C", self.allele_c)):
            if arr is None or arr.size != n_called:
                size = None if arr is None else arr.size
                raise ValueError(
                    f"Family {self.name}: founder {label} alleles have length {size} "
                    f"for {n_called} called sites!"
                )
        if self.imputed is not None and self.imputed.shape != (
            self.original.n_taxa,
            n_called,
        ):
            raise ValueError(
                f"Family {self.name}: imputed calls have shape {self.imputed.shape}, "
                f"expected {(self.original.n_taxa, n_called)}!"
            )

    def evolve(self, **changes):
        """Return a copy of the context with some fields replaced."""
        return replace(self, version=self.version + 1, **changes)

    def called_sites(self):
        """Site indices holding a founder-allele call, in increasing order."""
        if self.snp_index is None:
            return np.zeros(0, dtype=int)
        return np.flatnonzero(self.snp_index)

    def called_positions(self):
        return self.original.positions[self.called_sites()]
