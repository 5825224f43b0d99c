"""Test suite to make sure that input I/O is correct."""

import numpy as np
import pandas as pd
import pytest

from founderhmm import DataReader, GenotypeMatrix

# -------- Creating fake test data -------- #
test_df = pd.DataFrame(
    {
        "chrom": ["chr1", "chr1", "chr2", "chr1"],
        "pos": [30, 10, 5, 20],
        "P1": ["AA", "CC", "GG", "NN"],
        "P2": ["CC", "AA", "TT", "AC"],
        "F2_0": ["AC", "NA", "GT", "AA"],
    }
)


@pytest.mark.parametrize("suffix,sep", [("tsv", "\t"), ("csv", ","), ("txt", " ")])
def test_read_text(suffix, sep, tmp_path):
    """Test reading in a genotype table with each supported separator."""
    p = tmp_path / f"x.{suffix}"
    test_df.to_csv(p, sep=sep, index=None)
    matrices = DataReader().read_data(str(p))
    assert list(matrices.keys()) == ["chr1", "chr2"]
    m = matrices["chr1"]
    assert m.n_sites == 3
    assert list(m.taxa) == ["P1", "P2", "F2_0"]
    assert np.all(m.positions == [10, 20, 30])
    assert m.genotype(0, 0) == "CC"
    assert m.genotype(0, 1) == "NN"
    assert m.genotype(2, 0) == "NN"
    assert matrices["chr2"].genotype(2, 0) == "GT"


def test_read_missing_column(tmp_path):
    """Test that a table without positions is rejected."""
    p = tmp_path / "x.tsv"
    test_df.drop(columns=["pos"]).to_csv(p, sep="\t", index=None)
    with pytest.raises(ValueError):
        DataReader().read_data(str(p))


def test_read_no_taxa(tmp_path):
    """Test that a table without taxa is rejected."""
    p = tmp_path / "x.tsv"
    test_df[["chrom", "pos"]].to_csv(p, sep="\t", index=None)
    with pytest.raises(ValueError):
        DataReader().read_data(str(p))


@pytest.mark.parametrize("fname", ["out.tsv", "out.tsv.gz", "out.csv"])
def test_write_read(fname, tmp_path):
    """Test that written genotype tables are read back unchanged."""
    data_reader = DataReader()
    p = tmp_path / "x.tsv"
    test_df.to_csv(p, sep="\t", index=None)
    matrices = data_reader.read_data(str(p))
    out_fp = str(tmp_path / fname)
    df = data_reader.write_data(matrices, out_fp)
    assert df.shape == (4, 5)
    matrices2 = data_reader.read_data(out_fp)
    for c in matrices:
        assert matrices[c] == matrices2[c]


def test_write_read_npz(tmp_path):
    """Test the numpy format for genotype matrices."""
    data_reader = DataReader()
    m1 = GenotypeMatrix.from_strings(
        ["a", "b"], [3, 7], [["AA", "AC"], ["CC", "NN"]], chrom="1"
    )
    m2 = GenotypeMatrix.from_strings(["a", "b"], [2], [["GG"], ["TT"]], chrom="2")
    out_fp = str(tmp_path / "x.npz")
    data_reader.write_data_np({"1": m1, "2": m2}, out_fp)
    matrices = data_reader.read_data(out_fp)
    assert matrices["1"] == m1
    assert matrices["2"] == m2


def test_write_npz_mismatched_taxa(tmp_path):
    """Test that chromosomes with different taxa cannot share an .npz file."""
    m1 = GenotypeMatrix.from_strings(["a", "b"], [3], [["AA"], ["CC"]])
    m2 = GenotypeMatrix.from_strings(["a", "c"], [3], [["AA"], ["CC"]], chrom="2")
    with pytest.raises(ValueError):
        DataReader().write_data_np({"1": m1, "2": m2}, str(tmp_path / "x.npz"))


def test_read_npz_missing_key(tmp_path):
    """Test that an .npz file without alleles is rejected."""
    p = str(tmp_path / "x.npz")
    np.savez(p, taxa=np.array(["a"]), chrom=np.array(["1"]), pos=np.array([1]))
    with pytest.raises(ValueError):
        DataReader().read_data(p)
