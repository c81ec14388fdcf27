import os
from pathlib import Path

import rich_click as click

from hapkmer.utils.logging.loggit import log_start_info


@click.command(no_args_is_help=True)
@click.option(
    "-t",
    "--haplotype-table",
    required=False,
    type=click.Path(exists=True, dir_okay=False),
    help="TSV haplotype table with columns hap_id, contig, start, end and optionally sample",
)
@click.option(
    "-f",
    "--haplotype-fasta",
    required=False,
    type=click.Path(exists=True, dir_okay=False),
    help="FASTA of haplotype sequences, record ids must match hap_id in the table",
)
@click.option(
    "-o",
    "--output",
    default=lambda: f"{os.getcwd()}/hapkmer_out",
    type=click.Path(),
    help="Output directory for the index and reports",
)
@click.option(
    "--index-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Index file path. Default: <output>/kmerIndex.txt",
)
@click.option(
    "--discard-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="If set, write the discarded kmer hashes (one per line) to this file",
)
@click.option(
    "-m",
    "--hash-mask",
    default="3",
    show_default=True,
    help="Mask applied to each kmer hash before comparing to --hash-filter. Accepts 0x/0b prefixes",
)
@click.option(
    "--hash-filter",
    "hash_filter_value",
    default="1",
    show_default=True,
    help="Kmers are kept when (hash & mask) equals this value. Must not set bits outside the mask",
)
@click.option(
    "-k",
    "--max-haps-to-keep",
    type=int,
    default=None,
    help="A kmer is discarded once an occurrence would take its haplotype count past this. Default: half the number of samples",
)
@click.option(
    "--threads",
    default=1,
    type=int,
    show_default=True,
    help="Number of worker processes for hashing and encoding",
)
@click.option(
    "-n",
    "--no-diagnostics",
    is_flag=True,
    default=False,
    help="Do not write the per-range statistics report",
)
@click.option(
    "--statistics-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Statistics report path. Default: kmerIndexStatistics.txt next to the index",
)
@click.option(
    "--config-file",
    required=False,
    type=click.Path(exists=True, dir_okay=False),
    help="hapkmer_config.json written by a previous build; replays that build and ignores the other options. Example: --config-file out/hapkmer_config.json",
)
@click.option(
    "-g",
    "--log-file",
    type=click.Path(),
    default=lambda: f"{os.getcwd()}/hapkmer.log",
    help="Path to save logging messages to. Defaults to the current folder",
)
@click.option(
    "-ll",
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error", "critical"]),
    help="Log level",
)
def build_index(
    haplotype_table,
    haplotype_fasta,
    output,
    index_file,
    discard_file,
    hash_mask,
    hash_filter_value,
    max_haps_to_keep,
    threads,
    no_diagnostics,
    statistics_file,
    config_file,
    log_file,
    log_level,
):
    """Build a kmer index from haplotype sequences.

    Every haplotype of every reference range is hashed into canonical 32-mers.
    Hashes passing the mask filter are discarded once an occurrence would take
    them past --max-haps-to-keep haplotypes. The rest are assigned to the range
    holding most of those haplotypes and written with a bitset of the
    haplotypes carrying them. With --config-file the build is repeated from a
    saved hapkmer_config.json.
    """
    from hapkmer.index.errors import KmerIndexError
    from hapkmer.index.pipeline import build_kmer_index
    from hapkmer.index.providers import default_max_haps_to_keep, load_haplotype_graph
    from hapkmer.utils.config import IndexConfig

    if config_file is None and (haplotype_table is None or haplotype_fasta is None):
        raise click.UsageError(
            "Either --haplotype-table and --haplotype-fasta, or --config-file must be provided."
        )

    try:
        if config_file is not None:
            config = IndexConfig.read(config_file)
        else:
            config = IndexConfig(
                output=output,
                haplotype_table=haplotype_table,
                haplotype_fasta=haplotype_fasta,
                index_file=index_file,
                discard_file=discard_file,
                statistics_file=statistics_file,
                hash_mask=hash_mask,
                hash_filter_value=hash_filter_value,
                max_haps_to_keep=max_haps_to_keep,
                threads=threads,
                diagnostics=not no_diagnostics,
                log_file=log_file,
                log_level=log_level,
            )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    if config.haplotype_table is None or config.haplotype_fasta is None:
        raise click.BadParameter(f"{config_file} does not name a haplotype table and FASTA")

    logger = config.logger
    log_start_info(logger, config.to_dict())

    try:
        graph = load_haplotype_graph(config.haplotype_table, config.haplotype_fasta)
        if config.max_haps_to_keep is None:
            config.update(max_haps_to_keep=default_max_haps_to_keep(graph))
            logger.info(f"Using max haplotypes per kmer of {config.max_haps_to_keep}")

        result = build_kmer_index(
            sequences=graph,
            metadata=graph,
            index_file=config.index_file,
            kmer_filter=config.kmer_filter,
            max_haps_to_keep=config.max_haps_to_keep,
            threads=config.threads,
            discard_file=config.discard_file,
            diagnostics=config.diagnostics,
            statistics_file=config.statistics_file,
        )
    except (KmerIndexError, ValueError, OSError) as e:
        logger.error(f"Kmer index build failed: {e}")
        raise click.ClickException(str(e)) from e

    config.save(Path(config.index_file).parent / "hapkmer_config.json")
    logger.info("[bold green]✓[/bold green] Kmer index built")
    logger.info(f"[bold blue]Index:[/bold blue] {result.index_file}")
    if result.statistics_file:
        logger.info(f"[bold blue]Statistics:[/bold blue] {result.statistics_file}")
