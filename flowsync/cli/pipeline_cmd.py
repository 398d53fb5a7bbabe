"""CLI commands for the FlowSync pipeline.

Commands:
  process    classify, decompose and store a subscriber's messages
  brief      compose (and voice) briefings for one or more subscribers
  tasks      list stored tasks for a subscriber
  status     per-subscriber message / task counts
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from flowsync.config import Settings, get_api_key, load_settings

console = Console()
logger = logging.getLogger(__name__)


def _open_store(settings: Settings):
    from flowsync.store.documents import DocumentStore
    return DocumentStore(settings.db_path)


def _build_llm(settings: Settings):
    from flowsync.llm.client import LLMClient
    return LLMClient(provider=settings.provider, model=settings.model)


def _build_speech(settings: Settings):
    from flowsync.speech.elevenlabs import SpeechClient, VoiceSettings
    return SpeechClient(
        api_key=get_api_key("ELEVENLABS_API_KEY", "elevenlabs"),
        voice_id=settings.voice_id,
        settings=VoiceSettings(
            stability=settings.voice_stability,
            similarity_boost=settings.voice_similarity_boost,
            speed=settings.voice_speed,
        ),
    )


@click.command("process")
@click.argument("subscriber")
@click.option("--input", "input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="JSON file of messages to process")
@click.option("--slack", "from_slack", is_flag=True, default=False,
              help="Read recent messages from Slack instead of a file")
@click.option("--hours", default=None, type=int, help="Slack lookback hours (default: config window)")
def process(subscriber: str, input_path: Optional[Path], from_slack: bool, hours: Optional[int]):
    """Classify a subscriber's messages, derive tasks and store both.

    \b
    Examples:
        flowsync process alice --input inbox.json
        flowsync process alice --slack --hours 24
    """
    from flowsync.pipeline.classify import PriorityClassifier
    from flowsync.pipeline.decompose import TaskDecomposer
    from flowsync.pipeline.persist import PersistenceCoordinator
    from flowsync.pipeline.runner import SubscriberProcessor
    from flowsync.sources.files import load_messages
    from flowsync.sources.slack import check_slack_available, read_recent_slack_messages

    if bool(input_path) == from_slack:
        raise click.UsageError("Pass exactly one of --input or --slack")

    settings = load_settings()

    if from_slack:
        ok, reason = check_slack_available()
        if not ok:
            console.print(f"[red]Slack unavailable:[/red] {reason}")
            raise SystemExit(1)
        messages = read_recent_slack_messages(hours=hours or settings.window_hours)
    else:
        messages = load_messages(input_path)

    console.print(f"[bold]Processing {len(messages)} messages for {subscriber}[/bold]")
    if not messages:
        return

    try:
        llm = _build_llm(settings)
    except (ImportError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1)

    store = _open_store(settings)
    processor = SubscriberProcessor(
        classifier=PriorityClassifier(llm, max_body_chars=settings.classify_max_chars),
        decomposer=TaskDecomposer(llm),
        coordinator=PersistenceCoordinator(store),
        store=store,
    )
    try:
        stats = processor.process(subscriber, messages)
    finally:
        store.close()

    console.print(
        f"  Classified {stats['classified']} "
        f"([red]{stats['critical']} critical[/red], [yellow]{stats['action']} action[/yellow], "
        f"[dim]{stats['info']} info[/dim])"
    )
    if stats["skipped_existing"]:
        console.print(f"  [dim]{stats['skipped_existing']} already stored, skipped[/dim]")
    console.print(f"  Stored {stats['messages_written']} messages, {stats['tasks_written']} tasks")
    if stats["classify_fallbacks"] or stats["error_tasks"]:
        console.print(
            f"  [yellow]{stats['classify_fallbacks']} classification fallbacks, "
            f"{stats['error_tasks']} review tasks[/yellow]"
        )


@click.command("brief")
@click.argument("subscribers", nargs=-1)
@click.option("--hours", default=None, type=int, help="Window in hours (default: config)")
@click.option("--max-items", default=None, type=int, help="Max items per briefing (default: config)")
@click.option("--mark-read", is_flag=True, default=False, help="Mark briefed messages as read")
@click.option("--text-only", is_flag=True, default=False, help="Print the script, skip synthesis")
def brief(subscribers: tuple, hours: Optional[int], max_items: Optional[int],
          mark_read: bool, text_only: bool):
    """Compose briefings. With no SUBSCRIBERS, every known subscriber is briefed.

    \b
    Examples:
        flowsync brief alice
        flowsync brief alice --text-only --hours 24
        flowsync brief --mark-read
    """
    from flowsync.pipeline.briefing import BriefingComposer
    from flowsync.pipeline.runner import BriefingRunner, run_all

    settings = load_settings()
    try:
        llm = _build_llm(settings)
    except (ImportError, ValueError) as exc:
        logger.warning("No completion client, briefings use the template: %s", exc)
        console.print("[yellow]No completion client configured, using the briefing template[/yellow]")
        llm = None

    try:
        speech = None if text_only else _build_speech(settings)
    except (ImportError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1)

    store = _open_store(settings)
    targets = list(subscribers) or store.list_subscribers()
    if not targets:
        console.print("[yellow]No subscribers found. Run: flowsync process SUBSCRIBER --input FILE[/yellow]")
        store.close()
        return

    runner = BriefingRunner(
        store=store,
        composer=BriefingComposer(llm),
        speech=speech,
        output_dir=Path(settings.output_dir),
    )

    def work(subscriber_id: str):
        console.print(f"\n[bold]Briefing for {subscriber_id}[/bold]")
        artifact = runner.run(
            subscriber_id,
            window_hours=hours or settings.window_hours,
            max_items=max_items or settings.max_items,
            mark_read=mark_read,
            synthesize=not text_only,
        )
        if artifact is None:
            console.print("  [dim]Nothing critical or actionable, no briefing[/dim]")
            return None
        if text_only:
            console.print(artifact.script.text)
        source = "template" if artifact.script.used_fallback else "AI"
        console.print(f"  [green]✓[/green] {len(artifact.script.source_message_ids)} items ({source})")
        console.print(f"  {artifact.audio_path or artifact.script_path}")
        return artifact

    try:
        summary = run_all(targets, work, delay_seconds=settings.subscriber_delay_seconds)
    finally:
        store.close()

    for subscriber_id, error in summary["failed"].items():
        console.print(f"[red]✗ {subscriber_id}:[/red] {error}")
    if summary["failed"]:
        raise SystemExit(1)


@click.command("tasks")
@click.argument("subscriber")
@click.option("--open", "open_only", is_flag=True, default=False, help="Hide completed tasks")
def tasks(subscriber: str, open_only: bool):
    """List stored tasks for a subscriber."""
    settings = load_settings()
    store = _open_store(settings)
    try:
        rows = store.get_tasks(subscriber, include_completed=not open_only)
    finally:
        store.close()

    if not rows:
        console.print(f"[yellow]No tasks for {subscriber}[/yellow]")
        return

    priority_styles = {"high": "[bold red]high[/bold red]", "medium": "[yellow]medium[/yellow]", "low": "[dim]low[/dim]"}

    table = Table(title=f"Tasks: {subscriber}")
    table.add_column("Title", style="cyan", max_width=50)
    table.add_column("Priority", justify="center")
    table.add_column("Due", style="dim")
    table.add_column("Source", style="dim")
    table.add_column("Tags", style="dim", max_width=30)
    table.add_column("Done", justify="center")

    for task in rows:
        table.add_row(
            task.title[:50],
            priority_styles.get(task.priority, task.priority),
            task.due_date.isoformat() if task.due_date else "",
            task.source,
            ",".join(task.tags),
            "✓" if task.completed else "",
        )

    console.print(table)


@click.command("status")
def status():
    """Show per-subscriber message and task counts."""
    settings = load_settings()
    store = _open_store(settings)
    try:
        rows = store.stats()
    finally:
        store.close()

    if not rows:
        console.print("[yellow]Store is empty. Run: flowsync process SUBSCRIBER --input FILE[/yellow]")
        return

    table = Table(title="FlowSync Store")
    table.add_column("Subscriber", style="cyan")
    table.add_column("Messages", justify="right")
    table.add_column("Unread", justify="right", style="yellow")
    table.add_column("Tasks", justify="right")
    table.add_column("Open", justify="right", style="green")

    for row in rows:
        table.add_row(
            row["subscriber_id"],
            str(row["messages"]),
            str(row["unread"]),
            str(row["tasks"]),
            str(row["open_tasks"]),
        )

    console.print(table)
    console.print(f"[dim]{settings.db_path}[/dim]")
