"""
Main CLI application using Typer.
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Annotated, List, Optional, Tuple

import typer
from dateutil import tz
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.json_store import JsonReservationStore
from ..adapters.poll_files import load_poll, save_poll
from ..adapters.rest_store import RestReservationStore
from ..config import AppConfig, get_default_config_path
from ..domain.availability import AvailabilityIntersector
from ..domain.booking_validator import BookingValidator
from ..domain.clock import format_minutes, parse_date, parse_end_time, parse_time_of_day
from ..domain.exceptions import SchedulingError
from ..domain.models import BookingKind, BookingProposal, Interval, ParticipantAvailability, PollSession
from ..services.reservations import ReservationResult, ReservationService

app = typer.Typer(
    name="rehearsalplanner",
    help="Book the rehearsal room and find times the whole ensemble can make",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """
    Rehearsal room booking and ensemble scheduling.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(config_file: Optional[Path]) -> Tuple[AppConfig, ReservationService]:
    """Load the configuration and wire the service to the configured store."""
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)

    if config.store.backend == "rest":
        store = RestReservationStore(
            base_url=config.store.url,
            api_key=config.store.api_key,
            table=config.store.table,
            timeout=config.store.timeout_seconds,
            encode_midnight=config.store.encode_midnight,
        )
    else:
        store = JsonReservationStore(config.store.path, encode_midnight=config.store.encode_midnight)

    window = config.hours.to_day_window()
    service = ReservationService(
        store=store,
        validator=BookingValidator(window),
        intersector=AvailabilityIntersector(window.granularity),
        max_attempts=config.write_attempts,
    )
    return config, service


def _now(config: AppConfig) -> datetime:
    return datetime.now(tz.gettz(config.timezone))


def _parse_day(value: Optional[str], config: AppConfig) -> date:
    if not value:
        return _now(config).date()
    try:
        return parse_date(value)
    except ValueError as e:
        console.print(f"[red]Invalid date: {e}[/red]")
        raise typer.Exit(1)


def _parse_minutes(value: str, *, end: bool = False) -> int:
    try:
        return parse_end_time(value) if end else parse_time_of_day(value)
    except ValueError as e:
        console.print(f"[red]Invalid time: {e}[/red]")
        raise typer.Exit(1)


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


def _report(result: ReservationResult) -> None:
    """Print a booking outcome; exit non-zero on rejection."""
    if result.ok:
        booking = result.booking
        console.print(
            f"[green]✓ Booked[/green] {booking.date.isoformat()} {booking.interval} "
            f"[dim](id {booking.id})[/dim]"
        )
        return

    verdict = result.verdict
    console.print(f"[bold red]✗ Cannot book ({verdict.rejection.value}):[/bold red] {verdict.reason}")
    raise typer.Exit(2)


@app.command()
def day(
    on: Annotated[Optional[str], typer.Argument(help="Date (YYYY-MM-DD). Defaults to today.")] = None,
    config_file: ConfigOption = None,
):
    """
    Show the room's timetable for one day.
    """
    try:
        config, service = _load(config_file)
        target = _parse_day(on, config)
        calendar = service.calendar_for(target)
        window = service.validator.window

        table = Table(title=f"Room {target.isoformat()}", show_header=True, header_style="bold cyan")
        table.add_column("Time", style="bold")
        table.add_column("Booking")
        table.add_column("Owner", style="dim")

        for minute in window.start_options():
            occupant = calendar.occupant_at(minute)
            if occupant is None:
                table.add_row(format_minutes(minute), "[green]free[/green]", "")
            else:
                table.add_row(format_minutes(minute), occupant.label or occupant.kind.value, occupant.owner)

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(str(e))


@app.command()
def free(
    on: Annotated[Optional[str], typer.Argument(help="Date (YYYY-MM-DD). Defaults to today.")] = None,
    config_file: ConfigOption = None,
):
    """
    List the free windows of a day that can still be booked.
    """
    try:
        config, service = _load(config_file)
        target = _parse_day(on, config)

        now = _now(config)
        not_before = now.hour * 60 + now.minute if target == now.date() else None
        if target < now.date():
            windows = []
        else:
            windows = service.free_windows(target, not_before=not_before)

        if not windows:
            console.print(f"[yellow]⚠ No free time left on {target.isoformat()}.[/yellow]")
            return

        console.print(f"[bold green]✓ {len(windows)} free window(s) on {target.isoformat()}:[/bold green]\n")
        for window in windows:
            console.print(f"  {window} ({window.duration_minutes()} min)")

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(str(e))


@app.command()
def ends(
    on: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    config_file: ConfigOption = None,
):
    """
    Show every end time a booking starting at START may have.
    """
    try:
        config, service = _load(config_file)
        target = _parse_day(on, config)
        options = service.end_options(target, _parse_minutes(start))
        console.print("  ".join(format_minutes(m) for m in options))

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(str(e))


@app.command()
def book(
    on: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    end: Annotated[str, typer.Argument(help="End time (HH:MM, 24:00 for midnight)")],
    owner: Annotated[str, typer.Option("--owner", "-o", help="Who books the room")],
    label: Annotated[str, typer.Option("--label", "-l", help="What the room is used for")],
    kind: Annotated[BookingKind, typer.Option("--kind", "-k", help="Kind of booking")] = BookingKind.PERSONAL,
    edit: Annotated[Optional[str], typer.Option("--edit", "-e", help="Id of an existing booking to move instead of adding one")] = None,
    config_file: ConfigOption = None,
):
    """
    Book the room.

    Examples:

        rehearsalplanner book 2025-06-01 11:00 13:00 -o alice -l practice

        rehearsalplanner book 2025-06-01 11:00 14:00 -o alice -l practice --edit <id>
    """
    try:
        config, service = _load(config_file)
        config.limits.check(owner, label)
        target = _parse_day(on, config)

        proposal = BookingProposal(
            date=target,
            interval=Interval(_parse_minutes(start), _parse_minutes(end, end=True)),
            owner=owner.strip(),
            label=label.strip(),
            kind=kind,
        )
        _report(service.book(proposal, exclude_id=edit))

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(str(e))


@app.command()
def cancel(
    booking_id: Annotated[str, typer.Argument(help="Id of the booking to delete")],
    config_file: ConfigOption = None,
):
    """
    Cancel a booking.
    """
    try:
        _, service = _load(config_file)
        service.cancel(booking_id)
        console.print(f"[green]✓ Cancelled {booking_id}[/green]")

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(str(e))


@app.command()
def upcoming(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum number of bookings")] = 20,
    config_file: ConfigOption = None,
):
    """
    List bookings from today on.
    """
    try:
        config, service = _load(config_file)
        bookings = service.upcoming(_now(config).date(), limit=limit)

        if not bookings:
            console.print("[yellow]No upcoming bookings.[/yellow]")
            return

        table = Table(title="Upcoming bookings", show_header=True, header_style="bold cyan")
        table.add_column("Date", style="bold yellow")
        table.add_column("Time")
        table.add_column("Label")
        table.add_column("Owner", style="dim")
        table.add_column("Kind", style="dim")
        table.add_column("Id", style="dim")

        for booking in bookings:
            table.add_row(
                booking.date.isoformat(),
                str(booking.interval),
                booking.label,
                booking.owner,
                booking.kind.value,
                booking.id,
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(str(e))


@app.command("poll-submit")
def poll_submit(
    poll_file: Annotated[Path, typer.Argument(help="Poll YAML file (created if missing)")],
    participant: Annotated[str, typer.Argument(help="Member name")],
    slots: Annotated[List[str], typer.Argument(help="Free slots as 'YYYY-MM-DD HH:mm'")],
    config_file: ConfigOption = None,
):
    """
    Submit (or replace) a member's free slots for a rehearsal poll.
    """
    try:
        config, service = _load(config_file)

        parts: List[str] = []
        if config.members:
            member = config.resolve_members([participant])[0]
            participant, parts = member.name, member.parts

        if poll_file.exists():
            session = load_poll(poll_file)
        else:
            session = PollSession(poll_id=poll_file.stem, title=poll_file.stem)

        submission = ParticipantAvailability.from_submission(participant, slots, parts=parts)
        session = session.with_submission(submission)

        # Surface misaligned slots now rather than when the poll is evaluated
        service.common_ranges(session)
        save_poll(session, poll_file)

        console.print(
            f"[green]✓ Saved {len(submission.slots)} slot(s) for {participant}[/green] "
            f"({len(session.submissions)} response(s) so far)"
        )

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(str(e))


@app.command("poll-result")
def poll_result(
    poll_file: Annotated[Path, typer.Argument(help="Poll YAML file")],
    config_file: ConfigOption = None,
):
    """
    Show the time ranges every respondent of a poll can attend.
    """
    try:
        _, service = _load(config_file)
        session = load_poll(poll_file)
        result = service.common_ranges(session)

        console.print(f"\n[bold cyan]{session.title or session.poll_id}[/bold cyan]")
        for submission in session.submissions:
            parts = ", ".join(submission.parts)
            console.print(f"  {submission.participant_id}" + (f" [dim]({parts})[/dim]" if parts else ""))
        console.print()

        if result.is_empty:
            console.print(
                "[yellow]⚠ No time works for everyone.[/yellow]\n"
                "Try fewer members or ask them to pick more slots."
            )
            return

        console.print(f"[bold green]✓ {len(result)} common range(s):[/bold green]\n")
        for index, common in enumerate(result, 1):
            console.print(f"  {index}. {common}")
        console.print()

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(str(e))


@app.command("poll-confirm")
def poll_confirm(
    poll_file: Annotated[Path, typer.Argument(help="Poll YAML file")],
    choice: Annotated[int, typer.Argument(help="Number of the range shown by poll-result")],
    owner: Annotated[str, typer.Option("--owner", "-o", help="Who books the room")],
    label: Annotated[Optional[str], typer.Option("--label", "-l", help="Booking label. Defaults to the poll title.")] = None,
    config_file: ConfigOption = None,
):
    """
    Book one of a poll's common ranges for the ensemble.
    """
    try:
        config, service = _load(config_file)
        session = load_poll(poll_file)
        result = service.common_ranges(session)

        if not 1 <= choice <= len(result):
            _fail(f"Choose a range between 1 and {len(result)}." if len(result) else "The poll has no common range.")

        booking_label = label or session.title or session.poll_id
        config.limits.check(owner, booking_label)

        _report(service.confirm(session, result.ranges[choice - 1], owner=owner, label=booking_label))

    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(str(e))


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]rehearsalplanner[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
