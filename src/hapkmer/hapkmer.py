# hapkmer.py
import rich_click as click

from .utils.lazy_group import LazyGroup
from .utils.logging.loggit import get_version_info

# Configure rich_click for nice formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_COMMANDS_TABLE_SHOW_LINES = True
click.rich_click.STYLE_COMMANDS_TABLE_PAD_EDGE = True
click.rich_click.STYLE_COMMANDS_TABLE_PADDING = (0, 2)
click.rich_click.STYLE_OPTIONS_LIST_ALIGN_IN_COLUMNS = True


@click.group(cls=LazyGroup, context_settings={"help_option_names": ["-h", "--help", "-help"]}, lazy_subcommands={
    "index": {
        "name": "Kmer Index",
        "commands": {
            "build-index": "hapkmer.commands.index.build_index.build_index",
            "index-stats": "hapkmer.commands.index.index_stats.index_stats",
        }
    },
})
@click.version_option(version=get_version_info(), prog_name="hapkmer")
def hapkmer():
    """hapkmer: haplotype k-mer index toolkit.\n
    Use hapkmer `command` --help for more details \n"""
    pass


if __name__ == "__main__":
    hapkmer()
