"""
Founderhmm imputes founder-origin genotypes in biparental populations.

Calls coded relative to the two founders (A, C or heterozygous) are
smoothed along each chromosome with a five-state HMM over founder dosage,
whose parameters are re-estimated from the decoded paths.

Modules available are:

- FiveStateHMM: Viterbi decoding and count-based EM of the founder dosage HMM.
- fill_gaps_in_alignment: fill missing calls bracketed by identical calls.
- update_snp_alignment: rewrite the original genotypes from the founder calls.
- impute_family: full pipeline from raw genotypes to rewritten genotypes.

"""

import logging
from dataclasses import dataclass

import numpy as np
from founderhmm_utils import viterbi_algo

from .genotypes import (
    UNKNOWN_ALLELE,
    Dosage,
    ParentCall,
    dosage_to_call,
    obs_to_dosage,
)
from .parental import call_parent_alleles, call_parent_alleles_by_window

N_STATES = len(Dosage)
N_OBS = 3


def create_transition_matrix(rates=None):
    """Create the symmetric base transition matrix between dosage states.

    Arguments:
        - rates (`dict`): probability of moving between a pair of states per
          average segment length, keyed by (state, state) with state < state

    Returns:
        - A (`np.array`): 5 x 5 transition probabilities

    """
    if rates is None:
        rates = {
            (0, 1): 1e-4,
            (0, 2): 3e-4,
            (0, 3): 1e-4,
            (0, 4): 5e-4,
            (1, 2): 5e-5,
            (1, 3): 5e-5,
            (1, 4): 1e-4,
            (2, 3): 5e-5,
            (2, 4): 3e-4,
            (3, 4): 1e-4,
        }
    A = np.zeros(shape=(N_STATES, N_STATES))
    for (i, j), p in rates.items():
        assert (i != j) and (p >= 0)
        A[i, j] = p
        A[j, i] = p
    for i in range(N_STATES):
        A[i, i] = 1.0 - np.sum(A[i, :])
    assert np.all(A >= 0)
    return A


def create_emission_matrix():
    """Create the initial emission matrix, states in rows and observations (A, het, C) in columns."""
    E = np.array(
        [
            [0.98, 0.001, 0.001],
            [0.6, 0.2, 0.2],
            [0.3, 0.4, 0.3],
            [0.2, 0.2, 0.6],
            [0.001, 0.001, 0.98],
        ]
    )
    return E / E.sum(axis=1, keepdims=True)


def normalize_counts(counts, previous):
    """Row-normalize a count table, keeping the previous row where a state was never visited."""
    counts = np.asarray(counts, dtype=float)
    rowsum = counts.sum(axis=1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        probs = counts / rowsum
    empty = rowsum[:, 0] == 0
    probs[empty] = previous[empty]
    return probs


def is_converged(prev_counts, counts):
    return np.array_equal(prev_counts, counts)


@dataclass
class HMMResult:
    """Outcome of fitting the five-state HMM."""

    paths: list
    n_iter: int
    converged: bool
    transition_counts: np.ndarray
    emission_counts: np.ndarray


class FiveStateHMM:
    """Five-state founder dosage HMM over the called sites of a chromosome.

    States are the dosage classes AA, 3A:1C, AC, 1A:3C and CC; the
    observations are the founder calls A, het and C.
    """

    def __init__(self, prob_het=0.1, max_iter=50, min_obs=20, max_switch=0.5):
        """Initialize the HMM.

        Arguments:
            - prob_het (`float`): prior probability of a heterozygous dosage state
            - max_iter (`int`): maximum number of EM iterations
            - min_obs (`int`): minimum observations for a taxon to be Viterbi decoded
            - max_switch (`float`): cap on the probability of leaving a state across a gap

        Returns: FiveStateHMM object

        """
        assert (prob_het >= 0) and (prob_het < 1)
        assert max_iter > 0
        assert (max_switch > 0) and (max_switch < 1)
        self.prob_het = prob_het
        self.max_iter = max_iter
        self.min_obs = min_obs
        self.max_switch = max_switch
        self.transition = create_transition_matrix()
        self.emission = create_emission_matrix()
        phom = (1.0 - prob_het) / 2.0
        self.pi0 = np.array(
            [phom, 0.25 * prob_het, 0.5 * prob_het, 0.25 * prob_het, phom]
        )
        self.avg_seg = 1.0

    def set_average_segment_length(self, positions):
        """Use the span of the called sites divided by their number as the distance unit."""
        positions = np.asarray(positions, dtype=float)
        avg_seg = 0.0
        if positions.size > 0:
            avg_seg = (positions.max() - positions.min()) / positions.size
        self.avg_seg = avg_seg if avg_seg > 0 else 1.0

    def viterbi_algorithm(self, obs, pos):
        """Most likely dosage path for one taxon.

        Arguments:
            - obs (`np.array`): observation classes at the taxon's called sites
            - pos (`np.array`): positions of those sites

        Returns:
            - path (`np.array`): decoded dosage states
            - deltas (`np.array`): log-probabilities of the best paths
            - psi (`np.array`): back-pointers

        """
        assert obs.size == pos.size
        assert np.all(np.isin(obs, [ParentCall.A, ParentCall.HET, ParentCall.C]))
        path, deltas, psi = viterbi_algo(
            obs,
            pos,
            self.emission,
            self.transition,
            self.avg_seg,
            self.pi0,
            max_switch=self.max_switch,
        )
        return path, deltas, psi

    def decode(self, obs, pos):
        """Decode a taxon, assigning states directly when it has too few observations."""
        if obs.size < self.min_obs:
            return obs_to_dosage(obs)
        path, _, _ = self.viterbi_algorithm(obs, pos)
        return path

    def count_states(self, observations, paths):
        """Count transitions between consecutive states and state-observation pairs."""
        transition_counts = np.zeros((N_STATES, N_STATES), dtype=np.int64)
        emission_counts = np.zeros((N_STATES, N_OBS), dtype=np.int64)
        for obs, path in zip(observations, paths):
            if path.size > 1:
                np.add.at(transition_counts, (path[:-1], path[1:]), 1)
            np.add.at(emission_counts, (path, obs), 1)
        return transition_counts, emission_counts

    def fit(self, observations, positions, avg_seg=None, label=""):
        """Alternate Viterbi decoding and count-based re-estimation until the counts settle.

        Arguments:
            - observations (`list`): per-taxon arrays of observation classes
            - positions (`list`): per-taxon arrays of positions
            - avg_seg (`float`): average distance between called sites, estimated from
              the positions when not given
            - label (`str`): name used in log messages

        Returns:
            - result (`HMMResult`): decoded paths and fitting diagnostics

        """
        assert len(observations) == len(positions)
        if avg_seg is not None:
            self.avg_seg = avg_seg
        elif len(positions) > 0:
            self.set_average_segment_length(np.concatenate(positions))
        prev_counts = np.zeros((N_STATES, N_OBS), dtype=np.int64)
        converged = False
        paths = []
        transition_counts = np.zeros((N_STATES, N_STATES), dtype=np.int64)
        emission_counts = np.zeros((N_STATES, N_OBS), dtype=np.int64)
        n_iter = 0
        while n_iter < self.max_iter and not converged:
            n_iter += 1
            logging.info(f"Iteration {n_iter} for {label}")
            paths = [self.decode(obs, pos) for obs, pos in zip(observations, positions)]
            transition_counts, emission_counts = self.count_states(observations, paths)
            converged = is_converged(prev_counts, emission_counts)
            prev_counts = emission_counts
            self.transition = normalize_counts(transition_counts, self.transition)
            self.emission = normalize_counts(emission_counts, self.emission)
        if converged:
            logging.info(f"{label}: EM algorithm converged at iteration {n_iter}.")
        else:
            logging.warning(
                f"{label}: EM algorithm failed to converge after {n_iter} iterations."
            )
        logging.info(f"Transition counts from row to column:\n{transition_counts}")
        logging.info(f"Transition probabilities:\n{np.round(self.transition, 6)}")
        logging.info(f"Imputation counts, rows=states, columns=observations:\n{emission_counts}")
        logging.info(f"Emission probabilities:\n{np.round(self.emission, 6)}")
        return HMMResult(
            paths=paths,
            n_iter=n_iter,
            converged=converged,
            transition_counts=transition_counts,
            emission_counts=emission_counts,
        )

    def impute(self, popdata):
        """Impute the founder calls of a family.

        Arguments:
            - popdata (`PopulationData`): context carrying founder calls

        Returns:
            - popdata (`PopulationData`): context with smoothed founder calls
            - result (`HMMResult`): fitting diagnostics

        """
        if popdata.imputed is None:
            raise ValueError(f"Family {popdata.name} has no founder calls to impute!")
        calls = popdata.imputed
        pos = popdata.called_positions()
        self.set_average_segment_length(pos)
        label = f"{popdata.name}, chromosome {popdata.original.chrom}"
        not_missing = [np.flatnonzero(row != ParentCall.MISSING) for row in calls]
        observations = [calls[t, idx].astype(np.int64) for t, idx in enumerate(not_missing)]
        positions = [pos[idx] for idx in not_missing]
        for t, obs in enumerate(observations):
            if obs.size < self.min_obs:
                logging.info(
                    f"Fewer than {self.min_obs} observations for {popdata.original.taxa[t]}"
                )
        result = self.fit(observations, positions, avg_seg=self.avg_seg, label=label)
        imputed = calls.copy()
        for t, idx in enumerate(not_missing):
            imputed[t, idx] = dosage_to_call(result.paths[t])
        return popdata.evolve(imputed=imputed), result


def fill_gaps_in_alignment(popdata):
    """Fill runs of missing calls bracketed by two identical calls.

    Gaps flanked by different calls, or at either end of the chromosome, stay missing.
    """
    if popdata.imputed is None:
        raise ValueError(f"Family {popdata.name} has no founder calls to fill!")
    imputed = popdata.imputed.copy()
    for row in imputed:
        prev_site = -1
        for s in np.flatnonzero(row != ParentCall.MISSING):
            if prev_site >= 0 and row[s] == row[prev_site] and s - prev_site > 1:
                row[prev_site + 1 : s] = row[s]
            prev_site = s
    return popdata.evolve(imputed=imputed)


def update_snp_alignment(popdata):
    """Rewrite the genotypes at called sites from the founder calls.

    A becomes the founder A homozygote, C the founder C homozygote, het
    the A/C heterozygote and a missing call a missing genotype. Sites
    without a founder call are left unchanged.
    """
    if popdata.imputed is None:
        raise ValueError(f"Family {popdata.name} has no founder calls to apply!")
    matrix = popdata.original
    sites = popdata.called_sites()
    alleles = np.array(matrix.alleles)
    calls = popdata.imputed
    a = np.broadcast_to(popdata.allele_a[np.newaxis, :], calls.shape)
    c = np.broadcast_to(popdata.allele_c[np.newaxis, :], calls.shape)
    first = np.full(calls.shape, UNKNOWN_ALLELE, dtype=np.int8)
    second = np.full(calls.shape, UNKNOWN_ALLELE, dtype=np.int8)
    is_a = calls == ParentCall.A
    is_c = calls == ParentCall.C
    is_het = calls == ParentCall.HET
    first[is_a | is_het] = a[is_a | is_het]
    second[is_a] = a[is_a]
    first[is_c] = c[is_c]
    second[is_c | is_het] = c[is_c | is_het]
    alleles[:, sites, 0] = first
    alleles[:, sites, 1] = second
    logging.info(
        f"Original alignment updated for family {popdata.name} chromosome {matrix.chrom}."
    )
    return popdata.evolve(original=matrix.with_alleles(alleles))


def call_rates(popdata):
    """Fraction of called sites with a non-missing founder call, per taxon."""
    if popdata.imputed is None or popdata.imputed.shape[1] == 0:
        return np.zeros(popdata.original.n_taxa)
    return np.mean(popdata.imputed != ParentCall.MISSING, axis=1)


def impute_family(
    popdata,
    mode="chromosome",
    fill_gaps=True,
    prob_het=0.1,
    max_iter=50,
    min_obs=20,
    **kwargs,
):
    """Run the full founder imputation pipeline on one family.

    Arguments:
        - popdata (`PopulationData`): family context with the original genotypes
        - mode (`str`): "chromosome" for core-SNP extension or "window" for windowed calling
        - fill_gaps (`bool`): fill gaps bracketed by identical calls after the HMM
        - prob_het (`float`): prior probability of a heterozygous dosage state
        - max_iter (`int`): maximum number of EM iterations
        - min_obs (`int`): minimum observations for Viterbi decoding of a taxon
        - kwargs: thresholds passed to the founder allele caller

    Returns:
        - popdata (`PopulationData`): final context with rewritten genotypes
        - result (`HMMResult`): HMM fitting diagnostics

    """
    if mode == "chromosome":
        popdata = call_parent_alleles(popdata, **kwargs)
    elif mode == "window":
        popdata = call_parent_alleles_by_window(popdata, **kwargs)
    else:
        raise ValueError(f"Mode {mode} is not supported, use 'chromosome' or 'window'!")
    hmm = FiveStateHMM(prob_het=prob_het, max_iter=max_iter, min_obs=min_obs)
    popdata, result = hmm.impute(popdata)
    if fill_gaps:
        popdata = fill_gaps_in_alignment(popdata)
    popdata = update_snp_alignment(popdata)
    return popdata, result
