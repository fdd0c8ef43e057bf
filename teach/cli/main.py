"""
Typer CLI for the teach session orchestrator.

Commands:
    teach run CURRICULUM --topic ID     - Interactive Socratic session on a topic
    teach check CURRICULUM              - Validate every topic's prerequisite graph
    teach resume CURRICULUM [ID]        - Continue a saved session (default: most recent)
    teach replay TRANSCRIPT CURRICULUM  - Rebuild a session from a saved transcript
    teach sessions [--clean]            - List saved sessions, optionally pruning expired ones

Usage:
    teach --help
    teach run curricula/recursion.yaml --topic recursion
    teach run curricula/recursion.yaml -t recursion --oracle-url http://localhost:8200
    teach resume curricula/recursion.yaml
    teach replay ~/.teach/sessions/1a2b3c4d.json curricula/recursion.yaml
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Optional, TypeVar

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from config import Settings, get_settings
from teach.adaptive.concept_graph import ConceptGraph
from teach.adaptive.validation_gate import GatePolicy
from teach.content.loader import Curriculum
from teach.core.errors import (
    InvalidTopicError,
    OracleError,
    OracleTimeoutError,
    ProtocolViolationError,
    SessionClosedError,
    TranscriptError,
)
from teach.core.models import Session, SessionSummary, Statement, TurnOutcome
from teach.tutor.controller import SessionController
from teach.tutor.oracle import ScriptedOracle, TutorOracle
from teach.tutor.session_store import TranscriptStore
from teach.tutor.transcript import Transcript, export_transcript

T = TypeVar("T")

console = Console()

QUIT_WORDS = {":q", ":quit", ":exit"}

app = typer.Typer(
    name="teach",
    help="Socratic tutoring sessions with validated concept mastery",
    no_args_is_help=True,
)


@app.callback()
def configure(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override the configured log level"
    ),
) -> None:
    """Configure logging before any command runs."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level=(log_level or settings.log_level).upper(),
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="1 MB")


# =============================================================================
# Helpers
# =============================================================================

def _load_curriculum(path: Path) -> Curriculum:
    try:
        return Curriculum.load(path)
    except InvalidTopicError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _build_oracle(curriculum: Curriculum, oracle_url: Optional[str], settings: Settings) -> TutorOracle:
    """Remote oracle when a URL is configured, scripted oracle otherwise."""
    if oracle_url:
        from teach.integrations.http_oracle import HttpOracle
        return HttpOracle(
            oracle_url,
            timeout_ms=settings.oracle_timeout_ms,
            retry_attempts=settings.oracle_retry_attempts,
        )
    return ScriptedOracle(curriculum, mastery_streak=settings.mastery_streak)


def _with_retry(call: Callable[[], T]) -> Optional[T]:
    """Run an oracle-backed turn, offering a retry when it times out."""
    while True:
        try:
            return call()
        except OracleTimeoutError as e:
            console.print(f"[yellow]{e}[/yellow]")
            if not Confirm.ask("Retry?", default=True):
                return None


def _show_reply(outcome: TurnOutcome, session: Session) -> None:
    verdict = outcome.exchange.verdict
    style = {"correct": "green", "partial": "yellow", "incorrect": "red"}[verdict.correctness.value]
    line = f"[{style}]{verdict.correctness.value}[/{style}]"
    if verdict.applies_transfer:
        line += " [dim](applied to a new case)[/dim]"
    console.print(line)

    if outcome.reply is not None:
        color = "green" if isinstance(outcome.reply, Statement) else "cyan"
        console.print(f"[{color}]{outcome.reply.text}[/{color}]")

    if outcome.advanced_to:
        nxt = session.graph.concept(outcome.advanced_to)
        console.print(f"\n[bold]Next concept:[/bold] {nxt.display_name}")


def _run_loop(controller: SessionController, session: Session) -> int:
    """Drive the session until it finishes or the learner quits. Returns an exit code."""
    while not session.is_finished:
        concept = session.current_concept

        outcome = _with_retry(lambda: controller.next_turn(session))
        if outcome is None:
            return 0

        status = outcome.status
        console.print(Panel(
            outcome.exchange.question.text,
            title=f"[bold]{concept.display_name}[/bold]",
            subtitle=f"[{status.color}]{status.value}[/{status.color}]",
            border_style="blue",
        ))

        answer = ""
        while not answer:
            answer = Prompt.ask("[cyan]>_[/cyan]").strip()
        if answer in QUIT_WORDS:
            return 0

        outcome = _with_retry(lambda: controller.next_turn(session, answer))
        if outcome is None:
            return 0
        _show_reply(outcome, session)

    console.print("\n[bold green]Every reachable concept has been resolved.[/bold green]")
    return 0


def _print_summary(session: Session, summary: SessionSummary) -> None:
    table = Table(title=f"Session {session.session_id}: {session.topic.label}")
    table.add_column("Concept", style="cyan")
    table.add_column("Status")
    table.add_column("Exchanges", justify="right")

    for concept in session.graph.concepts():
        status = session.graph.status(concept.id)
        table.add_row(
            concept.display_name,
            f"[{status.color}]{status.value}[/{status.color}]",
            str(len(session.exchanges_for(concept.id))),
        )

    console.print(table)
    console.print(
        f"Mastered {len(summary.mastered)}/{len(session.graph)} concepts "
        f"in {summary.total_exchanges} exchanges"
    )


def _close_oracle(oracle: TutorOracle) -> None:
    """Release oracle resources such as the HttpOracle's httpx client."""
    close = getattr(oracle, "close", None)
    if callable(close):
        close()


def _drive(controller: SessionController, session: Session) -> int:
    """Run the loop, mapping oracle failures to exit codes."""
    try:
        return _run_loop(controller, session)
    except ProtocolViolationError as e:
        rprint(f"[red]Protocol violation:[/red] {e}")
        return 2
    except OracleError as e:
        rprint(f"[red]Oracle failure:[/red] {e}")
        return 3


def _finish(
    controller: SessionController,
    session: Session,
    settings: Settings,
    save: bool,
    record: bool,
) -> None:
    """End the session, print its summary and persist the transcript."""
    summary = controller.end(session)
    _print_summary(session, summary)

    transcript = export_transcript(session)
    if save:
        store = TranscriptStore(settings.session_dir, settings.session_expiry_hours)
        path = store.save(transcript)
        rprint(f"[dim]Transcript saved to {path}[/dim]")
    if record:
        from teach.tutor.dialogue_recorder import DialogueRecorder
        if DialogueRecorder(settings.database_url).record(transcript, summary):
            rprint("[dim]Transcript recorded to the audit database[/dim]")
        else:
            rprint("[yellow]Could not record transcript to the audit database[/yellow]")


# =============================================================================
# Commands
# =============================================================================

@app.command("run")
def run_session(
    curriculum_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Curriculum YAML/JSON file"),
    topic: str = typer.Option(..., "--topic", "-t", help="Topic id to study"),
    oracle_url: Optional[str] = typer.Option(None, "--oracle-url", help="Remote oracle base URL"),
    save: bool = typer.Option(True, "--save/--no-save", help="Save the transcript for replay"),
    record: bool = typer.Option(False, "--record", help="Write the transcript to the audit database"),
) -> None:
    """Start an interactive Socratic session. Type :q to stop."""
    settings = get_settings()
    curriculum = _load_curriculum(curriculum_path)
    oracle = _build_oracle(curriculum, oracle_url or settings.oracle_url, settings)
    try:
        controller = SessionController(curriculum, oracle, policy=GatePolicy.from_settings(settings))
        try:
            session = controller.start(curriculum.topic(topic))
        except InvalidTopicError as e:
            rprint(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)

        exit_code = _drive(controller, session)
        _finish(controller, session, settings, save, record)
    finally:
        _close_oracle(oracle)

    if exit_code:
        raise typer.Exit(exit_code)


@app.command("resume")
def resume_session(
    curriculum_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Curriculum YAML/JSON file"),
    session_id: Optional[str] = typer.Argument(None, help="Saved session id (default: most recent)"),
    oracle_url: Optional[str] = typer.Option(None, "--oracle-url", help="Remote oracle base URL"),
    save: bool = typer.Option(True, "--save/--no-save", help="Save the transcript again when done"),
    record: bool = typer.Option(False, "--record", help="Write the transcript to the audit database"),
) -> None:
    """
    Continue a saved session where it left off.

    Saved sessions expire after the configured number of hours.
    """
    settings = get_settings()
    store = TranscriptStore(settings.session_dir, settings.session_expiry_hours)
    transcript = store.load(session_id) if session_id else store.get_latest()

    if transcript is None:
        if session_id:
            rprint(f"[red]Error:[/red] no saved session '{session_id}'")
            raise typer.Exit(1)
        console.print(Panel(
            "[yellow]No saved session found[/yellow]\n\n"
            "Start a new session with: [cyan]teach run CURRICULUM --topic ID[/cyan]",
            border_style="yellow",
        ))
        return

    answered = sum(1 for r in transcript.records if r.role == "learner")
    console.print(Panel(
        f"[cyan]Found saved session {transcript.session_id}[/cyan]\n\n"
        f"Topic: [bold]{transcript.topic_label or transcript.topic_id}[/bold]\n"
        f"Started: {transcript.started_at.strftime('%Y-%m-%d %H:%M')}\n"
        f"Answers so far: {answered}",
        border_style="blue",
    ))

    if not Confirm.ask("Resume this session?", default=True):
        if Confirm.ask("Delete the saved session?", default=False):
            store.delete(transcript.session_id)
            rprint("[dim]Session deleted[/dim]")
        return

    curriculum = _load_curriculum(curriculum_path)
    oracle = _build_oracle(curriculum, oracle_url or settings.oracle_url, settings)
    try:
        controller = SessionController(curriculum, oracle, policy=GatePolicy.from_settings(settings))
        try:
            session = controller.resume(transcript)
        except (TranscriptError, InvalidTopicError) as e:
            rprint(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        except SessionClosedError:
            rprint("[green]This session has no concepts left to probe.[/green]")
            return

        exit_code = _drive(controller, session)
        _finish(controller, session, settings, save, record)
    finally:
        _close_oracle(oracle)

    if exit_code:
        raise typer.Exit(exit_code)


@app.command("check")
def check_curriculum(
    curriculum_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Curriculum YAML/JSON file"),
) -> None:
    """Validate every topic's prerequisite graph and show its concept order."""
    curriculum = _load_curriculum(curriculum_path)

    table = Table(title=f"Curriculum: {curriculum_path.name}")
    table.add_column("Topic", style="cyan")
    table.add_column("Concepts", justify="right")
    table.add_column("Order / Problem")

    failures = 0
    for topic in curriculum.topics():
        try:
            graph = ConceptGraph.build(topic, curriculum.concepts_for(topic))
        except InvalidTopicError as e:
            failures += 1
            table.add_row(topic.id, "-", f"[red]{e.reason}[/red]")
            continue
        table.add_row(topic.id, str(len(graph)), " -> ".join(graph.topological_order()))

    console.print(table)
    if failures:
        rprint(f"[red]{failures} invalid topic(s)[/red]")
        raise typer.Exit(1)
    rprint("[green][OK][/green] All topics are valid")


@app.command("replay")
def replay_transcript(
    transcript_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Saved transcript JSON"),
    curriculum_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Curriculum YAML/JSON file"),
) -> None:
    """Rebuild a session from a transcript and show where it stands."""
    settings = get_settings()
    curriculum = _load_curriculum(curriculum_path)
    controller = SessionController(
        curriculum,
        ScriptedOracle(curriculum, mastery_streak=settings.mastery_streak),
        policy=GatePolicy.from_settings(settings),
    )

    try:
        transcript = Transcript.from_json(transcript_path.read_text(encoding="utf-8"))
        session = controller.import_transcript(transcript)
    except (TranscriptError, InvalidTopicError) as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    was_closed = session.is_closed
    _print_summary(session, controller.end(session))
    if session.current_concept_id and not was_closed:
        rprint(f"Current concept: [cyan]{session.current_concept.display_name}[/cyan]")


@app.command("sessions")
def list_sessions(
    clean: bool = typer.Option(False, "--clean", help="Delete expired and unreadable transcripts first"),
) -> None:
    """List saved, non-expired sessions."""
    settings = get_settings()
    store = TranscriptStore(settings.session_dir, settings.session_expiry_hours)
    if clean:
        removed = store.cleanup_expired()
        rprint(f"[dim]Removed {removed} expired transcript(s)[/dim]")
    transcripts = store.list_sessions()

    if not transcripts:
        rprint("[dim]No saved sessions[/dim]")
        return

    table = Table(title="Saved sessions")
    table.add_column("Session", style="cyan")
    table.add_column("Topic")
    table.add_column("Started")
    table.add_column("Records", justify="right")
    table.add_column("Ended")

    for transcript in transcripts:
        table.add_row(
            transcript.session_id,
            transcript.topic_label or transcript.topic_id,
            transcript.started_at.strftime("%Y-%m-%d %H:%M"),
            str(len(transcript.records)),
            "yes" if transcript.ended_at else "no",
        )
    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
