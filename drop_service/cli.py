#!/usr/bin/env python3
"""
Command-line client for the drop service.
"""
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from drop_service.client import DEFAULT_API_URL, DropClient, DropClientError

console = Console()


def _fail(error: DropClientError):
    console.print(f"[red]Error: {error.message}[/red]")
    sys.exit(1)


@click.group()
@click.option('--api-url', envvar='DROP_API_URL', default=DEFAULT_API_URL, show_default=True, help='Drop service base URL')
@click.pass_context
def cli(ctx, api_url: str):
    """Send text and files to the drop service and fetch them back."""
    ctx.obj = DropClient(api_url)
    ctx.call_on_close(ctx.obj.close)


@cli.command()
@click.argument('text')
@click.pass_obj
def send(client: DropClient, text: str):
    """Store a text snippet."""
    try:
        entry = client.send_text(text)
    except DropClientError as e:
        _fail(e)
    console.print(f"[green]Saved text entry {entry['id']}[/green]")


@cli.command()
@click.argument('files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def upload(client: DropClient, files):
    """Upload one or more files as a single entry."""
    try:
        report = client.upload_files(files)
    except DropClientError as e:
        _fail(e)

    table = Table(title="Upload results")
    table.add_column("File", style="cyan")
    table.add_column("Status")
    table.add_column("Storage key", style="dim")
    for outcome in report.outcomes:
        status = "[green]uploaded[/green]" if outcome.uploaded else f"[red]failed: {outcome.error}[/red]"
        table.add_row(outcome.name, status, outcome.storage_key or "")
    console.print(table)

    if report.entry:
        console.print(f"Entry {report.entry['id']} created with {len(report.entry['files'])} file(s)")
    if report.confirm_error:
        console.print(f"[red]Error: {report.confirm_error}[/red]")
        for outcome in report.outcomes:
            if outcome.uploaded:
                console.print(f"[yellow]{outcome.storage_key} was uploaded but not recorded[/yellow]")
    if report.failed or report.confirm_error:
        sys.exit(1)


@cli.command(name='list')
@click.pass_obj
def list_entries(client: DropClient):
    """List entries, newest first."""
    try:
        rows = client.list_entries()
    except DropClientError as e:
        _fail(e)

    table = Table(title="Entries")
    table.add_column("ID", style="dim")
    table.add_column("Kind")
    table.add_column("Content")
    table.add_column("Created")
    for row in rows:
        if row["kind"] == "text":
            content = row["text"]
        else:
            content = row["name"]
            if row.get("groupSize", 1) > 1:
                content += f" (1 of {row['groupSize']})"
        table.add_row(row["id"], row["kind"], content, row["createdAt"])
    console.print(table)


@cli.command()
@click.argument('entry_id')
@click.option('--key', 'storage_key', default=None, help='Storage key of the file, required for multi-file entries')
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path), default=None, help='Where to save the file')
@click.pass_obj
def download(client: DropClient, entry_id: str, storage_key: Optional[str], output: Optional[Path]):
    """Download a file from an entry, or print its link when no output is given."""
    if output is None:
        try:
            link = client.download_url(entry_id, storage_key)
        except DropClientError as e:
            _fail(e)
        console.print(link["downloadUrl"], soft_wrap=True)
        return
    try:
        saved = client.download(entry_id, output, storage_key)
    except DropClientError as e:
        _fail(e)
    console.print(f"[green]Saved to {saved}[/green]")


@cli.command()
@click.argument('entry_id')
@click.confirmation_option(prompt='Deleting removes every file in the entry. Continue?')
@click.pass_obj
def delete(client: DropClient, entry_id: str):
    """Delete an entry and its stored files."""
    try:
        result = client.delete_entry(entry_id)
    except DropClientError as e:
        _fail(e)
    for outcome in result.get("objects", []):
        if not outcome["deleted"]:
            console.print(f"[yellow]Object {outcome['storageKey']} was left behind: {outcome['error']}[/yellow]")
    console.print(f"[green]Deleted entry {entry_id}[/green]")


if __name__ == '__main__':
    cli()
