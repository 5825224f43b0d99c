"""CLI for simulating biparental populations in founderhmm."""
import logging

import click
import numpy as np
import pandas as pd

from founderhmm import BiparentalSim, DataReader
from founderhmm.genotypes import allele_char

# Setup the logging configuration for the CLI
logging.basicConfig(
    format="%(asctime)s %(levelname)-8s %(message)s",
    level=logging.INFO,
    datefmt="%Y-%m-%d %H:%M:%S",
)


@click.command()
@click.option(
    "--design",
    required=True,
    default="F2",
    type=click.Choice(["F2", "RIL"]),
    show_default=True,
    help="Population design to simulate.",
)
@click.option(
    "--chrom",
    "-c",
    required=False,
    default="1",
    type=str,
    show_default=True,
    help="Chromosome indicator.",
)
@click.option(
    "--n",
    "-n",
    required=False,
    default=100,
    type=int,
    show_default=True,
    help="Number of progeny to simulate.",
)
@click.option(
    "--m",
    "-m",
    required=False,
    default=1000,
    type=int,
    show_default=True,
    help="Number of variants to simulate on chromosome.",
)
@click.option(
    "--length",
    "-l",
    required=False,
    default=1e7,
    type=float,
    show_default=True,
    help="Length of chromosome to simulate.",
)
@click.option(
    "--recomb_rate",
    "-r",
    required=False,
    default=1e-7,
    type=float,
    show_default=True,
    help="Recombination rate between SNPs.",
)
@click.option(
    "--frac_mono",
    required=False,
    default=0.0,
    type=float,
    show_default=True,
    help="Fraction of sites where the founders carry the same allele.",
)
@click.option(
    "--err_rate",
    "-e",
    required=False,
    default=0.0,
    type=float,
    show_default=True,
    help="Genotyping error rate in the progeny.",
)
@click.option(
    "--missing_rate",
    required=False,
    default=0.0,
    type=float,
    show_default=True,
    help="Rate of missing genotypes in the progeny.",
)
@click.option(
    "--parent1",
    required=False,
    default="PA",
    type=str,
    show_default=True,
    help="Taxon name of founder A.",
)
@click.option(
    "--parent2",
    required=False,
    default="PC",
    type=str,
    show_default=True,
    help="Taxon name of founder C.",
)
@click.option(
    "--seed",
    required=True,
    default=42,
    type=int,
    show_default=True,
    help="Random seed for simulation.",
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
@click.option(
    "--format",
    "-fmt",
    required=True,
    type=click.Choice(["tsv", "npz"]),
    default="tsv",
    help="Output file format.",
)
def main(
    design="F2",
    chrom="1",
    n=100,
    m=1000,
    length=1e7,
    recomb_rate=1e-7,
    frac_mono=0.0,
    err_rate=0.0,
    missing_rate=0.0,
    parent1="PA",
    parent2="PC",
    seed=42,
    gzip=False,
    out="founderhmm",
    format="tsv",
):
    """Founderhmm-Simulator CLI."""
    logging.info(f"Starting simulation of an {design} family ...")
    sim = BiparentalSim(parent1=parent1, parent2=parent2)
    results = sim.sim_population(
        n=n,
        m=m,
        design=design,
        length=length,
        rec_rate=recomb_rate,
        frac_mono=frac_mono,
        err_rate=err_rate,
        missing_rate=missing_rate,
        chrom=chrom,
        seed=seed,
    )
    data_reader = DataReader()
    matrices = {chrom: results["matrix"]}
    if format == "tsv":
        out_fp = f"{out}.tsv.gz" if gzip else f"{out}.tsv"
        logging.info(f"Writing output to {out_fp}")
        data_reader.write_data(matrices, out_fp)
    else:
        out_fp = f"{out}.npz"
        logging.info(f"Writing output to {out_fp} ...")
        data_reader.write_data_np(matrices, out_fp)
    # The true founder dosages are kept alongside for benchmarking
    truth_fp = f"{out}.truth.tsv.gz" if gzip else f"{out}.truth.tsv"
    truth_df = pd.DataFrame(results["dosage"].T, columns=results["matrix"].taxa)
    truth_df.insert(0, "allele_c", [allele_char(a) for a in results["allele_c"]])
    truth_df.insert(0, "allele_a", [allele_char(a) for a in results["allele_a"]])
    truth_df.insert(0, "pos", results["pos"])
    truth_df.insert(0, "chrom", np.repeat(chrom, m))
    truth_df.to_csv(truth_fp, sep="\t", index=None)
    logging.info(f"Wrote true founder dosages to {truth_fp}")
    logging.info("Finished data simulation!")
