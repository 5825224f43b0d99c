"""CLI for founderhmm."""
import logging

import click
import numpy as np
import pandas as pd

from founderhmm import DataReader, PopulationData, TwoGroupPolicy, call_rates, impute_family

# Setup the logging configuration for the CLI
logging.basicConfig(
    format="%(asctime)s %(levelname)-8s %(message)s",
    level=logging.INFO,
    datefmt="%Y-%m-%d %H:%M:%S",
)


@click.command()
@click.option(
    "--input",
    "-i",
    required=True,
    type=click.Path(exists=True),
    help="Input genotype table (.tsv/.csv/.txt, optionally gzipped, or .npz).",
)
@click.option(
    "--parent1",
    "-p1",
    required=True,
    type=str,
    help="Taxon name of founder A.",
)
@click.option(
    "--parent2",
    "-p2",
    required=True,
    type=str,
    help="Taxon name of founder C.",
)
@click.option(
    "--family",
    "-f",
    required=False,
    default="family",
    type=str,
    show_default=True,
    help="Family name used in log messages.",
)
@click.option(
    "--mode",
    required=True,
    default="chromosome",
    type=click.Choice(["chromosome", "window"]),
    show_default=True,
    help="Call founder alleles from a core block of linked sites or window by window.",
)
@click.option(
    "--window_size",
    "-w",
    required=False,
    default=50,
    type=int,
    show_default=True,
    help="Number of polymorphic sites per window.",
)
@click.option(
    "--number_to_try",
    required=False,
    default=10,
    type=int,
    show_default=True,
    help="Number of windows tried when searching for core SNPs.",
)
@click.option(
    "--cut_height",
    required=False,
    default=0.3,
    type=float,
    show_default=True,
    help="Height at which the SNP dendrogram is cut when searching for core SNPs.",
)
@click.option(
    "--min_r",
    required=False,
    default=0.5,
    type=float,
    show_default=True,
    help="Minimum |r| with called sites for a site to be added by linkage.",
)
@click.option(
    "--extend_size",
    required=False,
    default=25,
    type=int,
    show_default=True,
    help="Number of recently called sites used as reference when extending calls.",
)
@click.option(
    "--min_allele_count",
    required=False,
    default=0,
    type=int,
    show_default=True,
    help="Minor allele count that polymorphic sites must exceed.",
)
@click.option(
    "--max_missing",
    required=False,
    default=1.0,
    type=float,
    show_default=True,
    help="Maximum missing fraction for polymorphic sites.",
)
@click.option(
    "--min_maf",
    required=False,
    default=0.0,
    type=float,
    show_default=True,
    help="Minimum minor allele frequency for polymorphic sites.",
)
@click.option(
    "--max_major_fraction",
    required=False,
    default=0.5,
    type=float,
    show_default=True,
    help="Largest taxa group may hold at most this fraction of all taxa.",
)
@click.option(
    "--min_minor_size",
    required=False,
    default=10,
    type=int,
    show_default=True,
    help="Second largest taxa group must hold at least this many taxa.",
)
@click.option(
    "--prob_het",
    required=False,
    default=0.1,
    type=float,
    show_default=True,
    help="Prior probability of a heterozygous founder dosage.",
)
@click.option(
    "--max_iter",
    required=False,
    default=50,
    type=int,
    show_default=True,
    help="Maximum number of EM iterations.",
)
@click.option(
    "--min_obs",
    required=False,
    default=20,
    type=int,
    show_default=True,
    help="Minimum number of observations for a taxon to be decoded by the HMM.",
)
@click.option(
    "--no_fill_gaps",
    is_flag=True,
    required=False,
    default=False,
    type=bool,
    help="Do not fill missing calls bracketed by identical calls.",
)
@click.option(
    "--gzip",
    "-g",
    is_flag=True,
    required=False,
    type=bool,
    default=False,
    help="Gzip output files.",
)
@click.option(
    "--out",
    "-o",
    required=True,
    type=str,
    default="founderhmm",
    help="Output file prefix.",
)
def main(
    input,
    parent1,
    parent2,
    family="family",
    mode="chromosome",
    window_size=50,
    number_to_try=10,
    cut_height=0.3,
    min_r=0.5,
    extend_size=25,
    min_allele_count=0,
    max_missing=1.0,
    min_maf=0.0,
    max_major_fraction=0.5,
    min_minor_size=10,
    prob_het=0.1,
    max_iter=50,
    min_obs=20,
    no_fill_gaps=False,
    gzip=False,
    out="founderhmm",
):
    """Founderhmm CLI."""
    logging.info(f"Starting to read input data {input}.")
    data_reader = DataReader()
    matrices = data_reader.read_data(input)
    logging.info(f"Finished reading in {input}.")
    policy = TwoGroupPolicy(
        max_major_fraction=max_major_fraction, min_minor_size=min_minor_size
    )
    params = dict(
        window_size=window_size, max_missing=max_missing, min_maf=min_maf, policy=policy
    )
    if mode == "chromosome":
        params.update(
            number_to_try=number_to_try,
            cut_height=cut_height,
            min_r=min_r,
            extend_size=extend_size,
            min_allele_count=min_allele_count,
        )
    updated = {}
    rate_dfs = []
    for c, matrix in matrices.items():
        for p in [parent1, parent2]:
            if matrix.taxon_index(p) < 0:
                logging.warning(f"Parent {p} is not among the taxa of chromosome {c}.")
        logging.info(f"Starting founder imputation for family {family} chromosome {c}.")
        popdata = PopulationData(
            name=family, parent1=parent1, parent2=parent2, original=matrix
        )
        popdata, result = impute_family(
            popdata,
            mode=mode,
            fill_gaps=not no_fill_gaps,
            prob_het=prob_het,
            max_iter=max_iter,
            min_obs=min_obs,
            **params,
        )
        updated[c] = popdata.original
        rate_dfs.append(
            pd.DataFrame(
                {
                    "chrom": c,
                    "taxon": matrix.taxa,
                    "n_called_sites": popdata.called_sites().size,
                    "call_rate": call_rates(popdata),
                    "converged": result.converged,
                    "n_iter": result.n_iter,
                }
            )
        )
        logging.info(
            f"Finished chromosome {c}: {popdata.called_sites().size} called sites, "
            f"mean call rate {np.mean(call_rates(popdata)):.3f}."
        )
    out_fp = f"{out}.imputed.tsv.gz" if gzip else f"{out}.imputed.tsv"
    data_reader.write_data(updated, out_fp)
    logging.info(f"Wrote updated genotypes to {out_fp}")
    out_fp = f"{out}.call_rates.tsv.gz" if gzip else f"{out}.call_rates.tsv"
    pd.concat(rate_dfs).to_csv(out_fp, sep="\t", index=None)
    logging.info(f"Wrote per-taxon call rates to {out_fp}")
    logging.info("Finished founderhmm analysis!")
