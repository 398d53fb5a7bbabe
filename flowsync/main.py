"""FlowSync CLI: classify messages, derive tasks, and voice briefings."""

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from flowsync.cli.pipeline_cmd import brief, process, status, tasks
from flowsync.config import store_api_key

console = Console()


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging")
def cli(verbose):
    """FlowSync: prioritized messages, atomic tasks, spoken briefings."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@cli.command("set-key")
@click.argument("provider", type=click.Choice(["gemini", "claude", "elevenlabs", "slack"]))
@click.option("--key", prompt=True, hide_input=True, help="API key")
def set_key(provider, key):
    """Store an API key in macOS Keychain.

    Examples:

        flowsync set-key gemini

        flowsync set-key elevenlabs
    """
    if store_api_key(provider, key):
        console.print(f"[green]✓[/green] {provider} API key stored in Keychain")
    else:
        console.print("[red]Failed to store key[/red] (is the macOS `security` tool available?)")


cli.add_command(process)
cli.add_command(brief)
cli.add_command(tasks)
cli.add_command(status)


if __name__ == "__main__":
    cli()
