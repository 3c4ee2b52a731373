"""Console entry point for the ``rivalscope`` command."""

import sys

from rich.console import Console

err_console = Console(stderr=True)


def main_cli() -> None:
    from .cli.main import cli

    try:
        cli(prog_name="rivalscope")
    except KeyboardInterrupt:
        err_console.print("\n❌ Operation cancelled by user", style="red")
        sys.exit(130)


if __name__ == "__main__":
    main_cli()
