"""Test suite for the five-state founder dosage HMM."""

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from utils import called_population

from founderhmm import FiveStateHMM, ParentCall
from founderhmm.founderhmm import (
    create_emission_matrix,
    create_transition_matrix,
    is_converged,
    normalize_counts,
)


def test_transition_matrix():
    """Test that the base transition matrix is symmetric and row-stochastic."""
    A = create_transition_matrix()
    assert A.shape == (5, 5)
    assert np.allclose(A, A.T)
    assert np.allclose(A.sum(axis=1), 1.0)
    assert np.isclose(A[0, 4], 5e-4)
    assert np.isclose(A[1, 2], 5e-5)


def test_emission_matrix():
    """Test that the initial emission matrix is row-stochastic and mirrored."""
    E = create_emission_matrix()
    assert E.shape == (5, 3)
    assert np.allclose(E.sum(axis=1), 1.0)
    assert np.allclose(E, E[::-1, ::-1])


@pytest.mark.parametrize("prob_het", [0.0, 0.1, 0.5])
def test_initial_distribution(prob_het):
    """Test the prior over dosage states."""
    hmm = FiveStateHMM(prob_het=prob_het)
    assert np.isclose(hmm.pi0.sum(), 1.0)
    assert np.isclose(hmm.pi0[0], hmm.pi0[4])
    assert np.isclose(hmm.pi0[1:4].sum(), prob_het)


def test_average_segment_length():
    """Test the distance unit derived from the called positions."""
    hmm = FiveStateHMM()
    hmm.set_average_segment_length(np.array([100, 300, 1100, 2100]))
    assert np.isclose(hmm.avg_seg, 500.0)
    hmm.set_average_segment_length(np.array([5, 5, 5]))
    assert hmm.avg_seg == 1.0
    hmm.set_average_segment_length(np.array([]))
    assert hmm.avg_seg == 1.0


def test_viterbi_round_trip():
    """Test that a noise-free AA / CC path is decoded exactly and EM converges quickly."""
    obs = np.array([ParentCall.A] * 40 + [ParentCall.C] * 40 + [ParentCall.A] * 20)
    pos = 1000 * np.arange(1, 101)
    hmm = FiveStateHMM()
    result = hmm.fit([obs.astype(np.int64)], [pos])
    expected = np.array([0] * 40 + [4] * 40 + [0] * 20)
    assert np.all(result.paths[0] == expected)
    assert result.converged
    assert result.n_iter <= 2
    assert result.transition_counts[0, 4] == 1
    assert result.transition_counts[4, 0] == 1
    assert result.emission_counts[0, 0] == 60
    assert result.emission_counts[4, 2] == 40


def test_heterozygous_segment():
    """Test that a run of heterozygous calls decodes to a mixed dosage state."""
    obs = np.array([ParentCall.A] * 30 + [ParentCall.HET] * 30 + [ParentCall.C] * 30)
    pos = 100 * np.arange(1, 91)
    hmm = FiveStateHMM()
    result = hmm.fit([obs.astype(np.int64)], [pos])
    path = result.paths[0]
    assert np.all(path[:30] == 0)
    assert np.all(np.isin(path[30:60], [1, 2, 3]))
    assert np.all(path[60:] == 4)


def test_sparse_taxon_decoded_directly():
    """Test that taxa with few observations take states straight from their calls."""
    hmm = FiveStateHMM(min_obs=20)
    obs = np.array([0, 2, 1, 0], dtype=np.int64)
    path = hmm.decode(obs, np.arange(4))
    assert np.all(path == [0, 4, 2, 0])


def test_non_convergence_warning(caplog):
    """Test that hitting the iteration cap is reported without raising."""
    rng = np.random.default_rng(1)
    obs = rng.integers(0, 3, size=200)
    hmm = FiveStateHMM(max_iter=1)
    result = hmm.fit([obs], [np.arange(200)])
    assert not result.converged
    assert result.n_iter == 1
    assert "failed to converge" in caplog.text


def test_normalize_counts_keeps_unvisited_rows():
    """Test that states without counts keep their previous probabilities."""
    previous = create_emission_matrix()
    counts = np.zeros((5, 3))
    counts[0] = [8, 1, 1]
    probs = normalize_counts(counts, previous)
    assert np.allclose(probs[0], [0.8, 0.1, 0.1])
    assert np.allclose(probs[1:], previous[1:])


def test_is_converged():
    """Test the convergence predicate."""
    a = np.array([[1, 2], [3, 4]])
    assert is_converged(a, a.copy())
    assert not is_converged(a, a + 1)


def test_impute_population():
    """Test imputation of a called population, leaving missing cells untouched."""
    row0 = [0] * 25 + [2] * 25
    row1 = [2] * 10 + [-1] * 5 + [2] * 35
    row2 = [0, -1, 2, 1] + [-1] * 46
    pop = called_population([row0, row1, row2])
    hmm = FiveStateHMM()
    res, result = hmm.impute(pop)
    assert res.version == pop.version + 1
    assert np.all(res.imputed[0] == row0)
    assert np.all(res.imputed[1] == row1)
    # Sparse taxon keeps its own calls
    assert np.all(res.imputed[2] == row2)
    assert len(result.paths) == 3


def test_impute_without_calls():
    """Test that imputing before calling founder alleles is rejected."""
    pop = called_population([[0, 2]])
    with pytest.raises(ValueError):
        FiveStateHMM().impute(pop.evolve(imputed=None))


@given(
    obs=st.lists(st.integers(min_value=0, max_value=2), min_size=20, max_size=80),
    prob_het=st.floats(min_value=0.01, max_value=0.5),
)
@settings(max_examples=50, deadline=None)
def test_fit_properties(obs, prob_het):
    """Test that decoded paths are valid states and the learned matrices stay stochastic."""
    obs = np.array(obs, dtype=np.int64)
    hmm = FiveStateHMM(prob_het=prob_het, max_iter=10)
    result = hmm.fit([obs], [10 * np.arange(obs.size)])
    path = result.paths[0]
    assert path.size == obs.size
    assert np.all((path >= 0) & (path <= 4))
    assert np.allclose(hmm.transition.sum(axis=1), 1.0)
    assert np.allclose(hmm.emission.sum(axis=1), 1.0)
