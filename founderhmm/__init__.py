"""Founderhmm is an HMM-based method for founder-origin imputation in biparental populations.

Founderhmm calls which founder allele each progeny carries along a
chromosome of an F2 or recombinant inbred family, from genotypes that
may be sparse and noisy, and rewrites the genotypes from the smoothed
founder calls.

Modules exported are:

* GenotypeMatrix: diploid genotypes of taxa by sites on one chromosome.
* PopulationData: per-family context passed through the pipeline.
* UPGMACluster: average-linkage clustering of sites or taxa.
* TwoGroupPolicy: rule for when two founder groups of taxa have been found.
* call_parent_alleles: founder allele calling from a core block of linked sites.
* call_parent_alleles_by_window: founder allele calling window by window.
* FiveStateHMM: module for smoothing founder calls with a five-state dosage HMM.
* fill_gaps_in_alignment / update_snp_alignment: post-processing of founder calls.
* impute_family: the full pipeline for one family and chromosome.
* BiparentalSim: module to generate synthetic F2 and RIL families.
* DataReader: reading and writing of genotype tables.
"""

__version__ = "0.1.0"

from .cluster import UPGMACluster
from .founderhmm import (
    FiveStateHMM,
    HMMResult,
    call_rates,
    fill_gaps_in_alignment,
    impute_family,
    update_snp_alignment,
)
from .genotypes import Dosage, GenotypeMatrix, ParentCall, PopulationData
from .io import DataReader
from .parental import (
    TwoGroupPolicy,
    call_parent_alleles,
    call_parent_alleles_by_window,
)
from .simulator import BiparentalSim
