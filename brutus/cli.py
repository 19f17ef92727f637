"""Typer CLI entry point for Brutus."""

from __future__ import annotations

import contextlib
import logging
import re
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

import typer

from .config import (
    EnvironmentSettingError,
    Settings,
    clear_environment_setting,
    get_settings,
    list_environment_settings,
    update_environment_setting,
)
from .core.analysis.aggregator import (
    AnalysisError,
    CallAnalysisAggregator,
    CallReport,
    InvalidRequestError,
)
from .core.pipeline.coordinator import SessionCoordinator, SessionNotFoundError
from .core.research import ResearchService
from .core.tasks import BackgroundTasks
from .data.models import CallAnalysis, Fragment
from .data.storage import CoachStore
from .logging import configure_logging, get_logger
from .services.factory import (
    ServiceConfigurationError,
    resolve_oracle_backend,
    resolve_transcription_backend,
)
from .services.transcription.base import TranscriptionError
from .utils.audio import mime_type_for_extension

app = typer.Typer(help="Brutus live sales-call coach")
LOGGER = get_logger(__name__)

_TIMESTAMPED_LINE = re.compile(r"^\[(?:(\d+):)?(\d+):(\d{2})\]\s*(.*)$")


@dataclass
class _Runtime:
    settings: Settings
    store: CoachStore
    tasks: BackgroundTasks
    aggregator: CallAnalysisAggregator
    coordinator: SessionCoordinator
    research: ResearchService


@contextlib.contextmanager
def _open_runtime(
    oracle_backend: Optional[str] = None,
    transcription_backend: Optional[str] = None,
    clock: Callable[[], float] = time.time,
) -> Iterator[_Runtime]:
    settings = get_settings()
    configure_logging(settings.log_level)
    logging.getLogger().setLevel(settings.log_level.upper())

    try:
        oracle = resolve_oracle_backend(oracle_backend or settings.oracle_backend)
        transcription = resolve_transcription_backend(
            transcription_backend or settings.transcription_backend
        )
    except ServiceConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    store = CoachStore(settings.database_path)
    store.initialize()
    tasks = BackgroundTasks(max_workers=settings.background_workers)
    aggregator = CallAnalysisAggregator(
        store, oracle, tasks=tasks, transcription=transcription, settings=settings, clock=clock
    )
    coordinator = SessionCoordinator(
        store, oracle, aggregator, transcription=transcription, settings=settings, clock=clock
    )
    research = ResearchService(store, oracle, tasks, clock=clock)
    try:
        yield _Runtime(settings, store, tasks, aggregator, coordinator, research)
    finally:
        # Profile refreshes and research run in the background; let them land.
        tasks.drain()
        tasks.shutdown()


def parse_replay_lines(lines: List[str], interval: float) -> List[Tuple[float, str]]:
    """Turn transcript lines into ``(seconds_into_call, text)`` pairs.

    Lines shaped like ``[mm:ss] text`` or ``[hh:mm:ss] text`` keep their own
    timestamp; other lines are spaced ``interval`` seconds after the previous
    fragment.
    """

    fragments: List[Tuple[float, str]] = []
    current = 0.0
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        match = _TIMESTAMPED_LINE.match(line)
        if match:
            hours, minutes, seconds, text = match.groups()
            current = int(hours or 0) * 3600 + int(minutes) * 60 + int(seconds)
        else:
            text = line
            if fragments:
                current += interval
        if text.strip():
            fragments.append((float(current), text.strip()))
    return fragments


def _read_text(path: Path) -> str:
    if str(path) == "-":
        return sys.stdin.read()
    if not path.exists():
        raise typer.BadParameter(f"File not found: {path}")
    return path.read_text(encoding="utf-8")


def _echo_analysis(analysis: CallAnalysis) -> None:
    typer.echo(f"Score: {analysis.overall_score:.0f}/100")
    typer.echo(f"Talk ratio: {analysis.talk_ratio:.0f}%")
    typer.echo(f"Interruptions: {analysis.interruption_count}")
    if analysis.overall_roast:
        typer.echo(f"Roast: {analysis.overall_roast}")
    for item in analysis.feedback:
        typer.echo(f"  [{item.type}] {item.text}")
    if analysis.action_items:
        typer.echo("Action items:")
        for action in analysis.action_items:
            typer.echo(f"  - {action}")


def _echo_report(report: CallReport) -> None:
    typer.echo(f"Call saved as {report.call.id}")
    if report.call.tags:
        typer.echo(f"Tags: {', '.join(report.call.tags)}")
    _echo_analysis(report.analysis)


class _ReplayClock:
    """Wall clock that advances with the replayed call timeline."""

    def __init__(self) -> None:
        self.base = float(int(time.time()))
        self.offset = 0.0

    def __call__(self) -> float:
        return self.base + self.offset


@app.command()
def replay(
    transcript: Path = typer.Argument(..., help="Transcript file, one fragment per line ('-' for stdin)"),
    owner: str = typer.Option("local", help="Salesperson the session belongs to"),
    interval: float = typer.Option(10.0, help="Seconds between untimestamped lines"),
    notes: bool = typer.Option(False, "--notes/--no-notes", help="Generate AI notes while replaying"),
    oracle_backend: Optional[str] = typer.Option(None, help="Oracle backend: dummy/openai"),
) -> None:
    """Replay a transcript through a live session and print the coaching."""

    fragments = parse_replay_lines(_read_text(transcript).splitlines(), interval)
    if not fragments:
        raise typer.BadParameter("Transcript is empty")

    clock = _ReplayClock()
    with _open_runtime(oracle_backend=oracle_backend, transcription_backend="none", clock=clock) as runtime:
        session = runtime.coordinator.start_session(owner)
        typer.echo(f"Session {session.id} started")
        for seconds, text in fragments:
            clock.offset = seconds
            fragment = Fragment(text=text, time_into_call=seconds, notes_enabled=notes)
            feedback = runtime.coordinator.handle_fragment(owner, session.id, fragment)
            if feedback is not None:
                typer.echo(f"[{int(seconds) // 60:02d}:{int(seconds) % 60:02d}] {feedback.kind}: {feedback.text}")

        try:
            summary = runtime.coordinator.end_session(owner, session.id)
        except AnalysisError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc

        typer.echo(summary.message)
        if summary.call_id:
            typer.echo(f"Call saved as {summary.call_id} ({summary.duration_seconds}s)")
        if summary.analysis is not None:
            _echo_analysis(summary.analysis)
        if notes:
            for note in runtime.store.list_notes(owner, session_id=session.id):
                typer.echo(f"Note: {note.content}")


@app.command()
def analyze(
    transcript: Path = typer.Argument(..., help="Transcript file ('-' for stdin)"),
    owner: str = typer.Option("local", help="Salesperson the call belongs to"),
    duration: float = typer.Option(0.0, help="Call duration in seconds"),
    oracle_backend: Optional[str] = typer.Option(None, help="Oracle backend: dummy/openai"),
) -> None:
    """Analyze a finished call transcript and store it."""

    text = _read_text(transcript)
    with _open_runtime(oracle_backend=oracle_backend, transcription_backend="none") as runtime:
        try:
            report = runtime.aggregator.analyze_transcript(owner, text, duration)
        except (InvalidRequestError, AnalysisError) as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc
        _echo_report(report)


@app.command("analyze-audio")
def analyze_audio(
    audio: Path = typer.Argument(..., help="Recorded call audio"),
    owner: str = typer.Option("local", help="Salesperson the call belongs to"),
    mime_type: Optional[str] = typer.Option(None, help="Override the detected mime type"),
    oracle_backend: Optional[str] = typer.Option(None, help="Oracle backend: dummy/openai"),
    transcription_backend: Optional[str] = typer.Option(None, help="Transcription backend: dummy/openai"),
) -> None:
    """Transcribe and analyze a recorded call."""

    if not audio.exists():
        raise typer.BadParameter(f"File not found: {audio}")
    payload = audio.read_bytes()
    resolved_mime = mime_type or mime_type_for_extension(audio.suffix)
    with _open_runtime(oracle_backend=oracle_backend, transcription_backend=transcription_backend) as runtime:
        try:
            report = runtime.aggregator.analyze_audio(owner, payload, resolved_mime)
        except (InvalidRequestError, AnalysisError, TranscriptionError) as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc
        _echo_report(report)


@app.command()
def calls(
    owner: str = typer.Option("local", help="Salesperson whose calls to list"),
    tag: Optional[str] = typer.Option(None, help="Only calls carrying this tag"),
    limit: int = typer.Option(20, help="Maximum number of calls"),
    offset: int = typer.Option(0, help="Number of calls to skip"),
) -> None:
    """List stored calls, newest first."""

    with _open_runtime(transcription_backend="none") as runtime:
        found = runtime.store.list_calls(owner, limit=limit, offset=offset, tag=tag)
        total = runtime.store.count_calls(owner)
    if not found:
        typer.echo("No calls found")
        return
    for call in found:
        stamp = time.strftime("%Y-%m-%d %H:%M", time.localtime(call.created_at))
        tags = ", ".join(call.tags) or "-"
        typer.echo(f"{call.id}  {stamp}  score={call.overall_score:.0f}  {call.duration_seconds}s  [{tags}]")
    typer.echo(f"{len(found)} of {total} calls")


@app.command("delete-call")
def delete_call(
    call_id: str = typer.Argument(..., help="Call identifier"),
    owner: str = typer.Option("local", help="Salesperson the call belongs to"),
) -> None:
    """Delete a stored call."""

    with _open_runtime(transcription_backend="none") as runtime:
        deleted = runtime.aggregator.delete_call(owner, call_id)
    if not deleted:
        typer.echo("Call not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted call {call_id}")


@app.command()
def profile(owner: str = typer.Option("local", help="Salesperson to show")) -> None:
    """Show the rolling coaching profile."""

    with _open_runtime(transcription_backend="none") as runtime:
        current = runtime.store.fetch_profile(owner)
    if current is None:
        typer.echo("No profile yet")
        return
    typer.echo(f"Calls analyzed: {current.total_calls_analyzed}")
    typer.echo(f"Average talk ratio: {current.talk_ratio_avg:.0f}%")
    if current.score_avg is not None:
        typer.echo(f"Average score: {current.score_avg:.0f}")
    if current.close_rate is not None:
        typer.echo(f"Close rate: {current.close_rate:.0f}%")
    for label, values in (
        ("Bad habits", current.bad_habits),
        ("Strengths", current.strengths),
        ("Improving", current.areas_improving),
    ):
        if values:
            typer.echo(f"{label}: {', '.join(values)}")
    if current.summary:
        typer.echo(current.summary)


@app.command()
def dashboard(owner: str = typer.Option("local", help="Salesperson to summarise")) -> None:
    """Show the profile headline, latest calls, and this week's scores."""

    with _open_runtime(transcription_backend="none") as runtime:
        stats = runtime.aggregator.dashboard(owner)
    if stats.profile is not None:
        typer.echo(f"Calls analyzed: {stats.profile.total_calls_analyzed}")
        typer.echo(f"Average talk ratio: {stats.profile.talk_ratio_avg:.0f}%")
    typer.echo(f"Calls this week: {stats.weekly_call_count}")
    if stats.weekly_scores:
        typer.echo("Weekly scores: " + " ".join(f"{score:.0f}" for _, score in stats.weekly_scores))
    if not stats.recent_calls:
        typer.echo("No calls yet")
        return
    typer.echo("Recent calls:")
    for call in stats.recent_calls:
        stamp = time.strftime("%Y-%m-%d %H:%M", time.localtime(call.created_at))
        typer.echo(f"  {call.id}  {stamp}  score={call.overall_score:.0f}  talk={call.talk_ratio:.0f}%")


@app.command("refresh-profile")
def refresh_profile(
    owner: str = typer.Option("local", help="Salesperson to refresh"),
    oracle_backend: Optional[str] = typer.Option(None, help="Oracle backend: dummy/openai"),
) -> None:
    """Rebuild the coaching profile from recent calls."""

    with _open_runtime(oracle_backend=oracle_backend, transcription_backend="none") as runtime:
        updated = runtime.aggregator.refresh_profile(owner)
    if updated is None:
        typer.echo("No calls to learn from")
        return
    typer.echo(updated.summary or "Profile updated")


@app.command()
def reconcile(owner: str = typer.Option("local", help="Salesperson to reconcile")) -> None:
    """Reset the analyzed-calls counter to the number of stored calls."""

    with _open_runtime(transcription_backend="none") as runtime:
        count = runtime.store.reconcile_call_count(owner)
    typer.echo(f"Calls analyzed: {count}")


@app.command()
def chat(
    message: str = typer.Argument(..., help="What to ask Brutus"),
    owner: str = typer.Option("local", help="Salesperson asking"),
    oracle_backend: Optional[str] = typer.Option(None, help="Oracle backend: dummy/openai"),
) -> None:
    """Ask Brutus about your calls."""

    with _open_runtime(oracle_backend=oracle_backend, transcription_backend="none") as runtime:
        try:
            reply = runtime.aggregator.chat(owner, message)
        except InvalidRequestError as exc:
            raise typer.BadParameter(str(exc)) from exc
    typer.echo(reply)


@app.command("notes")
def list_notes(
    owner: str = typer.Option("local", help="Salesperson whose notes to list"),
    session_id: Optional[str] = typer.Option(None, "--session", help="Only notes of this session"),
) -> None:
    """List call notes."""

    with _open_runtime(transcription_backend="none") as runtime:
        found = runtime.store.list_notes(owner, session_id=session_id)
    if not found:
        typer.echo("No notes found")
        return
    for note in found:
        typer.echo(f"{note.id}  {note.session_id}  ({note.type.value})  {note.content}")


@app.command("add-note")
def add_note(
    session_id: str = typer.Argument(..., help="Session the note belongs to"),
    content: str = typer.Argument(..., help="Note text"),
    owner: str = typer.Option("local", help="Salesperson writing the note"),
) -> None:
    """Attach a manual note to a session."""

    with _open_runtime(transcription_backend="none") as runtime:
        try:
            note = runtime.coordinator.add_note(owner, session_id, content)
        except (InvalidRequestError, SessionNotFoundError) as exc:
            raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Note saved as {note.id}")


@app.command("delete-note")
def delete_note(
    note_id: str = typer.Argument(..., help="Note identifier"),
    owner: str = typer.Option("local", help="Salesperson the note belongs to"),
) -> None:
    """Delete a call note."""

    with _open_runtime(transcription_backend="none") as runtime:
        deleted = runtime.coordinator.delete_note(owner, note_id)
    if not deleted:
        typer.echo("Note not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted note {note_id}")


@app.command()
def research(
    query: str = typer.Argument(..., help="What to look up"),
    owner: str = typer.Option("local", help="Salesperson asking"),
    session_id: Optional[str] = typer.Option(None, "--session", help="Session to attach the research to"),
    oracle_backend: Optional[str] = typer.Option(None, help="Oracle backend: dummy/openai"),
) -> None:
    """Run a research request and print the result."""

    with _open_runtime(oracle_backend=oracle_backend, transcription_backend="none") as runtime:
        try:
            pending = runtime.research.request(owner, query, session_id=session_id)
        except InvalidRequestError as exc:
            raise typer.BadParameter(str(exc)) from exc
        runtime.tasks.drain()
        resolved = runtime.research.get(owner, pending.id) or pending
    typer.echo(f"Research {resolved.id}: {resolved.status.value}")
    if resolved.results:
        typer.echo(resolved.results)


@app.command("env")
def show_env() -> None:
    """List configuration settings and their environment variables."""

    for setting in list_environment_settings():
        typer.echo(f"{setting.env_name}={setting.value!s}  (default: {setting.default!s})")


@app.command("set-env")
def set_env(
    field: str = typer.Argument(..., help="Settings field name, e.g. oracle_backend"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Persist a configuration override to the .env file."""

    try:
        update_environment_setting(field, value)
    except EnvironmentSettingError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Updated {field}")


@app.command("unset-env")
def unset_env(field: str = typer.Argument(..., help="Settings field name")) -> None:
    """Remove a configuration override from the .env file."""

    try:
        clear_environment_setting(field)
    except EnvironmentSettingError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Cleared {field}")


if __name__ == "__main__":  # pragma: no cover
    app()
