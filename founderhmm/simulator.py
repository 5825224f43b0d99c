"""Simulation of biparental populations for testing founder imputation."""

import numpy as np
from scipy.stats import binom, randint, uniform

from .genotypes import UNKNOWN_ALLELE, GenotypeMatrix


class BiparentalSim:
    """Simulator of F2 and recombinant inbred line (RIL) families from two inbred founders."""

    def __init__(self, parent1="PA", parent2="PC"):
        """Initialize the simulator.

        Arguments:
            - parent1 (`str`): taxon name of founder A
            - parent2 (`str`): taxon name of founder C

        Returns: BiparentalSim object

        """
        assert parent1 != parent2
        self.parent1 = parent1
        self.parent2 = parent2

    def draw_founders(self, m=1000, frac_mono=0.0, length=1e7, seed=42):
        """Draw the alleles of the two inbred founders and the site positions.

        Args:
            m (`int`): number of sites.
            frac_mono (`float`): fraction of sites where the founders carry the same allele.
            length (`float`): length of the simulated chromosome.
            seed (`int`): random number seed.

        Output:
            allele_a (`np.array`): founder A allele codes.
            allele_c (`np.array`): founder C allele codes.
            pos (`np.array`): sorted, distinct site positions.

        """
        assert m > 0
        assert (frac_mono >= 0) and (frac_mono <= 1)
        assert length >= m
        assert seed > 0
        np.random.seed(seed)
        # Gaps average length / m so the chromosome spans roughly `length`
        pos = np.cumsum(randint.rvs(1, max(2, int(2 * length / m)), size=m))
        allele_a = randint.rvs(0, 4, size=m)
        allele_c = (allele_a + randint.rvs(1, 4, size=m)) % 4
        mono = binom.rvs(1, frac_mono, size=m).astype(bool)
        allele_c[mono] = allele_a[mono]
        return allele_a.astype(np.int8), allele_c.astype(np.int8), pos

    def sim_recombinant_haplotype(self, pos, rec_rate=1e-7):
        """Founder origin (0 for A, 1 for C) along one recombinant haplotype."""
        m = pos.size
        zs = np.zeros(m, dtype=np.int8)
        zs[0] = binom.rvs(1, 0.5)
        us = uniform.rvs(size=m)
        for i in range(1, m):
            d = pos[i] - pos[i - 1]
            zs[i] = 1 - zs[i - 1] if us[i] <= (1 - np.exp(-rec_rate * d)) else zs[i - 1]
        return zs

    def sim_progeny(self, pos, n=100, design="F2", rec_rate=1e-7, seed=42):
        """Simulate the founder-C dosage of progeny along the chromosome.

        Args:
            pos (`np.array`): site positions.
            n (`int`): number of progeny.
            design (`str`): "F2" for two independent recombinant haplotypes or
                "RIL" for a single doubled recombinant haplotype.
            rec_rate (`float`): uniform recombination rate per basepair.
            seed (`int`): random number seed.

        Output:
            dosage (`np.array`): n x m founder-C dosage (0, 1 or 2).

        """
        assert n > 0
        assert design in ["F2", "RIL"]
        assert np.all(np.diff(pos) > 0)
        np.random.seed(seed)
        dosage = np.zeros((n, pos.size), dtype=np.int8)
        for i in range(n):
            h0 = self.sim_recombinant_haplotype(pos, rec_rate=rec_rate)
            if design == "F2":
                h1 = self.sim_recombinant_haplotype(pos, rec_rate=rec_rate)
            else:
                h1 = h0
            dosage[i] = h0 + h1
        return dosage

    def add_errors(self, dosage, err_rate=0.0, missing_rate=0.0, seed=42):
        """Add genotyping errors (a different random dosage) and missing calls (-1)."""
        assert (err_rate >= 0) and (err_rate < 1)
        assert (missing_rate >= 0) and (missing_rate < 1)
        np.random.seed(seed)
        observed = dosage.copy()
        errs = binom.rvs(1, err_rate, size=dosage.shape).astype(bool)
        shift = randint.rvs(1, 3, size=dosage.shape)
        observed[errs] = (dosage[errs] + shift[errs]) % 3
        missing = binom.rvs(1, missing_rate, size=dosage.shape).astype(bool)
        observed[missing] = -1
        return observed

    def dosage_to_alleles(self, dosage, allele_a, allele_c):
        """Convert founder-C dosages into n x m x 2 allele codes."""
        a = np.broadcast_to(allele_a[np.newaxis, :], dosage.shape)
        c = np.broadcast_to(allele_c[np.newaxis, :], dosage.shape)
        alleles = np.full(dosage.shape + (2,), UNKNOWN_ALLELE, dtype=np.int8)
        alleles[:, :, 0] = np.where(dosage == 2, c, a)
        alleles[:, :, 1] = np.where(dosage == 0, a, c)
        alleles[dosage < 0] = UNKNOWN_ALLELE
        return alleles

    def sim_population(
        self,
        n=100,
        m=1000,
        design="F2",
        length=1e7,
        rec_rate=1e-7,
        frac_mono=0.0,
        err_rate=0.0,
        missing_rate=0.0,
        chrom="1",
        seed=42,
    ):
        """Simulate a full biparental family with both founders included as taxa.

        Args:
            n (`int`): number of progeny.
            m (`int`): number of sites.
            design (`str`): "F2" or "RIL".
            length (`float`): length of the simulated chromosome.
            rec_rate (`float`): uniform recombination rate per basepair.
            frac_mono (`float`): fraction of sites monomorphic between founders.
            err_rate (`float`): per-genotype error rate in the progeny.
            missing_rate (`float`): per-genotype missing rate in the progeny.
            chrom (`str`): chromosome label.
            seed (`int`): random number seed.

        Output:
            results (`dict`): `matrix` (observed `GenotypeMatrix`, founders in the
            first two rows), `dosage` (true founder-C dosage of every taxon),
            `allele_a`, `allele_c` and `pos`.

        """
        allele_a, allele_c, pos = self.draw_founders(
            m=m, frac_mono=frac_mono, length=length, seed=seed
        )
        progeny = self.sim_progeny(pos, n=n, design=design, rec_rate=rec_rate, seed=seed)
        observed = self.add_errors(
            progeny, err_rate=err_rate, missing_rate=missing_rate, seed=seed
        )
        founders = np.vstack(
            [np.zeros(m, dtype=np.int8), np.full(m, 2, dtype=np.int8)]
        )
        dosage = np.vstack([founders, progeny])
        alleles = self.dosage_to_alleles(
            np.vstack([founders, observed]), allele_a, allele_c
        )
        taxa = [self.parent1, self.parent2] + [f"{design}_{i}" for i in range(n)]
        matrix = GenotypeMatrix(taxa, pos, alleles, chrom=chrom)
        return {
            "matrix": matrix,
            "dosage": dosage,
            "allele_a": allele_a,
            "allele_c": allele_c,
            "pos": pos,
        }
