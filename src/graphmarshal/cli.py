"""Command line tools to inspect documents without knowing their shape."""

from __future__ import annotations

import shutil
import sys
from typing import TextIO

import click

from . import errors, tree


@click.group()
def cli() -> None:
    pass


@cli.command()
@click.argument("files", nargs=-1, type=click.Path(dir_okay=False))
def check(files: tuple[str, ...]) -> None:
    """Check that files contain well formed documents"""
    columns, _ = shutil.get_terminal_size()
    retcode = 0
    for filename in files:
        click.echo(f"Checking {filename}".ljust(columns - 8), nl=False)
        try:
            with open(filename, "r", encoding="utf-8") as fd:
                tree.parse_from(fd)
        except (errors.ParseError, OSError) as e:
            click.secho("FAILED", fg="red")
            click.echo(f"{filename}: {e}", err=True)
            retcode = 1
        else:
            click.secho("OK", fg="green")
    sys.exit(retcode)


@cli.command()
@click.argument("file", type=click.File("r", encoding="utf-8"))
@click.option(
    "--indent",
    type=click.IntRange(min=0),
    default=None,
    help="Pretty print with this indentation",
)
def fmt(file: TextIO, indent: int | None) -> None:
    """Re-print a document (use ``-`` to read from stdin)"""
    try:
        node = tree.parse_from(file)
    except errors.ParseError as e:
        raise click.ClickException(str(e)) from None
    click.echo(tree.render(node, indent=indent))


def main() -> None:  # pragma: no cover
    cli()
