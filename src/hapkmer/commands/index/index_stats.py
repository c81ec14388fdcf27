import os
from pathlib import Path

import rich_click as click

from hapkmer.utils.logging.loggit import log_start_info, setup_logging

COUNTS_FILENAME = "kmerIndexCounts.txt"
LOOKUP_FILENAME = "kmerLookup.txt"


@click.command(no_args_is_help=True)
@click.option(
    "-t",
    "--haplotype-table",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="TSV haplotype table the index was built from (supplies the reference ranges)",
)
@click.option(
    "-i",
    "--index-file",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Kmer index file",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Output TSV. Default: kmerIndexCounts.txt next to the index",
)
@click.option(
    "-k",
    "--kmer",
    "kmers",
    multiple=True,
    help="32-mer to look up; writes the haplotypes carrying it per range to kmerLookup.txt. Repeatable",
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
def index_stats(haplotype_table, index_file, output, kmers, log_file, log_level):
    """Count indexed kmers per reference range of an existing index.

    Writes contig, start, end, length and kmerCount for every range of the
    haplotype table; ranges absent from the index get a count of 0. With
    --kmer, also reports which haplotypes of which range carry each kmer.
    """
    import polars as pl

    from hapkmer.index.diagnostics import kmer_index_statistics, summarize_counts, write_statistics
    from hapkmer.index.errors import KmerIndexError
    from hapkmer.index.hashing import canonical_hash
    from hapkmer.index.providers import load_haplotype_graph
    from hapkmer.index.reader import count_kmers_by_range, load_kmer_index

    logger = setup_logging(log_file, log_level)
    log_start_info(logger, locals())

    output = Path(output) if output else Path(index_file).parent / COUNTS_FILENAME
    try:
        graph = load_haplotype_graph(haplotype_table)
        stats = kmer_index_statistics(graph.ranges(), count_kmers_by_range(index_file))
        write_statistics(stats, output)

        if kmers:
            index = load_kmer_index(index_file)
            range_to_hap_index = graph.range_to_hap_index()
            rows = []
            for kmer in kmers:
                kmer = kmer.strip().upper()
                found = index.hap_ids_for_hash(canonical_hash(kmer), range_to_hap_index)
                if not found:
                    logger.warning(f"Kmer {kmer} is not in the index")
                for refrange, hap_ids in found.items():
                    rows.append(
                        {
                            "kmer": kmer,
                            "contig": refrange.contig,
                            "start": refrange.start,
                            "end": refrange.end,
                            "hap_ids": ",".join(hap_ids),
                        }
                    )
            lookup = pl.DataFrame(
                rows,
                schema={
                    "kmer": pl.String,
                    "contig": pl.String,
                    "start": pl.Int64,
                    "end": pl.Int64,
                    "hap_ids": pl.String,
                },
            )
            lookup_file = output.parent / LOOKUP_FILENAME
            lookup.write_csv(lookup_file, separator="\t")
            logger.info(f"Wrote {lookup.height} kmer lookup rows to {lookup_file}")
    except (KmerIndexError, ValueError, OSError) as e:
        logger.error(f"Failed computing index statistics: {e}")
        raise click.ClickException(str(e)) from e

    for line in summarize_counts(stats):
        logger.info(line)
    logger.info(f"[bold blue]Output:[/bold blue] {output}")
