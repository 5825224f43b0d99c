import numpy as np
import pandas as pd

from .genotypes import GenotypeMatrix


class DataReader:
    """Input / output class for genotype tables used by founderhmm."""

    def __init__(self, required_cols=("chrom", "pos")):
        self.required_cols = list(required_cols)
        self.dtypes = {"chrom": str, "pos": np.int64}

    def sep(self, fp):
        """Column separator implied by a file name."""
        if ".tsv" in fp:
            return "\t"
        elif ".txt" in fp:
            return " "
        return ","

    def to_matrices(self, df):
        """Split a genotype table into one `GenotypeMatrix` per chromosome.

        Arguments:
            - df (`pd.DataFrame`): table with `chrom`, `pos` and one column of
              diploid genotype strings per taxon

        Returns:
            - matrices (`dict`): chromosome label to `GenotypeMatrix`, ordered by
              first appearance in the table

        """
        for x in self.required_cols:
            if x not in df.columns:
                raise ValueError(f"Column {x} is missing from the genotype table!")
        taxa = [c for c in df.columns if c not in self.required_cols]
        if len(taxa) == 0:
            raise ValueError("Genotype table has no taxa columns!")
        matrices = {}
        for c in pd.unique(df["chrom"]):
            cur_df = df[df["chrom"] == c].sort_values("pos", kind="stable")
            matrices[str(c)] = GenotypeMatrix.from_strings(
                taxa,
                cur_df["pos"].values,
                cur_df[taxa].values.T,
                chrom=str(c),
            )
        return matrices

    def read_data_df(self, input_fp):
        """Read in data from a delimited text genotype table."""
        df = pd.read_csv(
            input_fp, sep=self.sep(input_fp), dtype=str, keep_default_na=False
        )
        if "pos" in df.columns:
            df["pos"] = df["pos"].astype(np.int64)
        return self.to_matrices(df)

    def read_data_np(self, input_fp):
        """Read data from an .npz file holding `taxa`, `chrom`, `pos` and `alleles`."""
        data = np.load(input_fp, allow_pickle=True)
        for x in ["taxa", "chrom", "pos", "alleles"]:
            if x not in data:
                raise ValueError(f"Key {x} is missing from {input_fp}!")
        chrom = data["chrom"].astype(str)
        pos = data["pos"]
        alleles = data["alleles"]
        matrices = {}
        for c in pd.unique(chrom):
            idx = np.flatnonzero(chrom == c)
            idx = idx[np.argsort(pos[idx], kind="stable")]
            matrices[str(c)] = GenotypeMatrix(
                data["taxa"], pos[idx], alleles[:, idx], chrom=str(c)
            )
        return matrices

    def read_data(self, input_fp):
        """Read in data in either pandas/numpy format."""
        if (".npz" in input_fp) or (".npy" in input_fp):
            matrices = self.read_data_np(input_fp)
        else:
            matrices = self.read_data_df(input_fp)
        return matrices

    def to_dataframe(self, matrices):
        """Stack genotype matrices into a single table, one row per site."""
        dfs = []
        for matrix in matrices.values():
            df = pd.DataFrame(matrix.to_strings().T, columns=matrix.taxa)
            df.insert(0, "pos", matrix.positions)
            df.insert(0, "chrom", matrix.chrom)
            dfs.append(df)
        return pd.concat(dfs, ignore_index=True)

    def write_data(self, matrices, output_fp):
        """Write genotype matrices as a delimited text table (gzip when the name ends in .gz)."""
        df = self.to_dataframe(matrices)
        df.to_csv(output_fp, sep=self.sep(output_fp), index=None)
        return df

    def write_data_np(self, matrices, output_fp):
        """Write genotype matrices sharing the same taxa into a single .npz file."""
        matrices = list(matrices.values())
        taxa = matrices[0].taxa
        for m in matrices:
            if not np.array_equal(m.taxa, taxa):
                raise ValueError("All chromosomes must carry the same taxa!")
        np.savez(
            output_fp,
            taxa=taxa,
            chrom=np.concatenate([np.repeat(m.chrom, m.n_sites) for m in matrices]),
            pos=np.concatenate([m.positions for m in matrices]),
            alleles=np.concatenate([m.alleles for m in matrices], axis=1),
        )
