"""Lazy loading for (Rich)Click command groups.

Subcommands are only imported when they are invoked or listed in help, which
keeps ``hapkmer --help`` fast even though the index commands pull in polars.

Example:
    ```python
    @click.group(cls=LazyGroup, lazy_subcommands={
        "index": {
            "name": "Kmer Index",
            "commands": {
                "build-index": "package.module.build_index",
            }
        },
        "hidden_cmd": "hidden:package.module.hidden_cmd"
    })
    def cli():
        pass
    ```
"""

import importlib
from importlib.util import find_spec

import rich_click as click
from click import Command as ClickCommand
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()


class LazyGroup(click.RichGroup):
    """Click Group subclass that lazily loads commands.

    Args:
        *args: Variable length argument list passed to Click.Group
        lazy_subcommands (dict, optional): Mapping of command names to either
            an import path ("module.command_object") or a group definition
            ``{"name": "Display Name", "commands": {...}}``. Prefix an import
            path with "hidden:" to keep it out of listings.
        **kwargs: Arbitrary keyword arguments passed to Click.Group
    """

    def __init__(self, *args, lazy_subcommands=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.lazy_subcommands = dict(lazy_subcommands or {})
        self._command_groups = {}
        self._init_command_groups()

    def _init_command_groups(self):
        for name, value in list(self.lazy_subcommands.items()):
            if isinstance(value, dict) and "name" in value and "commands" in value:
                self._command_groups[name] = {"name": value["name"], "commands": {}}
                for cmd_name, cmd_path in value["commands"].items():
                    self.lazy_subcommands[cmd_name] = cmd_path
                    if not cmd_path.startswith("hidden:"):
                        self._command_groups[name]["commands"][cmd_name] = cmd_path
                del self.lazy_subcommands[name]

    def list_commands(self, ctx):
        base = super().list_commands(ctx)
        lazy = sorted(
            name
            for name, path in self.lazy_subcommands.items()
            if not path.startswith("hidden:")
        )
        return base + lazy

    def get_command(self, ctx, cmd_name):
        if cmd_name in self.lazy_subcommands:
            try:
                return self._lazy_load(cmd_name)
            except (ImportError, AttributeError) as e:
                if not self.lazy_subcommands[cmd_name].startswith("hidden:"):
                    console.print(
                        f"[yellow]Warning:[/yellow] Failed to load command '{cmd_name}': {str(e)}"
                    )
                return None
        return super().get_command(ctx, cmd_name)

    def _lazy_load(self, cmd_name):
        """Import and return the click command registered as ``cmd_name``.

        Raises:
            ImportError: If the module cannot be imported
            AttributeError: If the command object is not found in the module
            ValueError: If the loaded object is not a Click command
        """
        import_path = self.lazy_subcommands[cmd_name]
        if import_path.startswith("hidden:"):
            import_path = import_path[len("hidden:"):]

        modname, cmd_object_name = import_path.rsplit(".", 1)
        if find_spec(modname) is None:
            raise ImportError(f"Module '{modname}' not found")

        mod = importlib.import_module(modname)
        if not hasattr(mod, cmd_object_name):
            raise AttributeError(f"Module '{modname}' has no attribute '{cmd_object_name}'")

        cmd_object = getattr(mod, cmd_object_name)
        if not isinstance(cmd_object, ClickCommand):
            raise ValueError(
                f"Object '{cmd_object_name}' in module '{modname}' is not a Click command"
            )
        return cmd_object

    def format_commands(self, ctx, formatter):
        """Show commands grouped into panels."""
        for group_name, group_info in sorted(self._command_groups.items()):
            valid_commands = []
            for cmd_name in group_info["commands"]:
                cmd = self.get_command(ctx, cmd_name)
                if cmd is None:
                    continue
                valid_commands.append((cmd_name, cmd.get_short_help_str(limit=float("inf"))))

            if valid_commands:
                table = Table(show_header=False, box=None, padding=(0, 2), show_edge=False)
                table.add_column("Command", style="bold cyan", width=20)
                table.add_column("Description", no_wrap=False)
                for cmd_name, help_str in sorted(valid_commands):
                    table.add_row(cmd_name, help_str or "")
                console.print(
                    Panel(
                        table,
                        title=f"[bold]{group_info['name']}[/bold]",
                        title_align="left",
                        border_style="dim",
                    )
                )
