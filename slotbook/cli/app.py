"""
Main CLI application using Typer.
"""

import asyncio
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_store import InMemoryStore
from ..adapters.sqlite_store import SqliteStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import SlotbookError
from ..domain.intervals import format_minutes
from ..domain.models import Client, Recurrence, WorkingHoursPolicy
from ..services.availability import AvailabilityService
from ..services.booking import BookingCommitter
from ..services.staff import StaffService

app = typer.Typer(
    name="slotbook",
    help="Self-service appointment booking: openings, bookings and staff configuration",
    add_completion=False
)

console = Console()

DEMO_DATA_FILE = Path(__file__).parent.parent / "adapters" / "demo_data.json"

WEEKDAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


class AppState:
    """Options shared by every command."""

    def __init__(self, config: AppConfig, mock: bool):
        self.config = config
        self.mock = mock
        self._memory_store: InMemoryStore | None = None

    @contextmanager
    def store(self) -> Iterator:
        """Open the configured store for the duration of one command."""
        if self.mock:
            if self._memory_store is None:
                self._memory_store = InMemoryStore.from_json(DEMO_DATA_FILE)
            yield self._memory_store
            return

        store = SqliteStore(self.config.database_path)
        try:
            store.initialize(default_policy=self.config.working_hours.to_policy())
            yield store
        finally:
            store.close()

    def availability(self, store) -> AvailabilityService:
        booking = self.config.booking
        return AvailabilityService(
            store,
            timezone=self.config.business.timezone,
            step_minutes=booking.slot_step_minutes,
            window_days=booking.window_days,
            min_advance_minutes=booking.min_advance_minutes,
            read_retries=booking.read_retries,
            retry_backoff_seconds=booking.retry_backoff_seconds,
        )

    def committer(self, store) -> BookingCommitter:
        booking = self.config.booking
        return BookingCommitter(
            store,
            timezone=self.config.business.timezone,
            step_minutes=booking.slot_step_minutes,
            min_advance_minutes=booking.min_advance_minutes,
            read_retries=booking.read_retries,
            retry_backoff_seconds=booking.retry_backoff_seconds,
        )

    def staff(self, store) -> StaffService:
        return StaffService(store, committer=self.committer(store))


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    if config_file is not None:
        return AppConfig.load_from_yaml(config_file)

    default_path = get_default_config_path()
    if default_path.exists():
        return AppConfig.load_from_yaml(default_path)
    return AppConfig()


@contextmanager
def _handle_errors() -> Iterator[None]:
    """Turn application errors into a red message and exit code 1."""
    try:
        yield
    except (SlotbookError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _state(ctx: typer.Context) -> AppState:
    return ctx.obj


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use built-in demo data instead of the database.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    """
    slotbook - find openings and book appointments.
    """
    _configure_logging(verbose)
    with _handle_errors():
        ctx.obj = AppState(config=_load_config(config_file), mock=mock)


@app.command()
def init(ctx: typer.Context):
    """
    Create the database and seed the working hours from the config.
    """
    state = _state(ctx)
    with _handle_errors(), state.store():
        console.print(f"[green]✓ Database ready at {state.config.database_path}[/green]")


@app.command()
def days(
    ctx: typer.Context,
    service: Annotated[Optional[str], typer.Option("--service", "-s", help="Only show days with openings for this service id")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="First date (YYYY-MM-DD), defaults to today")] = None,
    length: Annotated[Optional[int], typer.Option("--days", "-n", help="Window length in days")] = None,
):
    """
    List the days clients can book.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        availability = state.availability(store)
        if service:
            result = asyncio.run(availability.days_with_openings(service, start=start, days=length))
        else:
            result = asyncio.run(availability.open_days(start=start, days=length))

        if not result:
            console.print("[yellow]⚠ No bookable days in this window.[/yellow]")
            return

        for day in result:
            console.print(f"  {day.format('dddd, DD.MM.YYYY')}  [dim]{day.isoformat()}[/dim]")


@app.command()
def slots(
    ctx: typer.Context,
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    service: Annotated[str, typer.Argument(help="Service id")],
):
    """
    List the free start times for a service on a date.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        result = asyncio.run(state.availability(store).available_slots(date, service))

        if not result:
            console.print(f"[yellow]⚠ No openings on {date}.[/yellow]")
            return

        console.print(f"[bold green]✓ {len(result)} opening(s):[/bold green]\n")
        for slot in result:
            console.print(f"  {slot.format_display()}")


@app.command()
def book(
    ctx: typer.Context,
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    service: Annotated[str, typer.Argument(help="Service id")],
    name: Annotated[str, typer.Option("--name", help="Client name")],
    phone: Annotated[str, typer.Option("--phone", help="Client phone")] = "",
    staff: Annotated[bool, typer.Option("--staff", help="Staff booking: allow times outside the slot grid")] = False,
):
    """
    Book an appointment.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        if staff:
            booking = asyncio.run(state.staff(store).book_for_client(service, date, time, name, phone))
        else:
            client = Client(name=name.strip(), phone=phone.strip())
            booking = asyncio.run(state.committer(store).commit(service, date, time, client))

        console.print(Panel.fit(
            f"[bold green]✓ Booked![/bold green]\n\n"
            f"[bold]Service:[/bold] {booking.service_name}\n"
            f"[bold]When:[/bold] {booking.date.format('dddd, DD.MM.YYYY')} {booking.start_time} - {booking.end_time}\n"
            f"[bold]Client:[/bold] {booking.client_name}\n"
            f"[bold]Reference:[/bold] {booking.id}",
            title="Appointment"
        ))


@app.command()
def agenda(
    ctx: typer.Context,
    date: Annotated[Optional[str], typer.Argument(help="Date (YYYY-MM-DD), defaults to today")] = None,
):
    """
    Show the appointments of a day.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        day = date or state.availability(store).today().isoformat()
        bookings = asyncio.run(state.staff(store).agenda(day))

        if not bookings:
            console.print(f"[yellow]No appointments on {day}.[/yellow]")
            return

        table = Table(title=f"Appointments {day}", show_header=True, header_style="bold cyan")
        table.add_column("Time", style="bold yellow")
        table.add_column("Service")
        table.add_column("Client")
        table.add_column("Phone", style="dim")
        table.add_column("Id", style="dim")
        for booking in bookings:
            table.add_row(f"{booking.start_time}-{booking.end_time}", booking.service_name,
                          booking.client_name, booking.client_phone, booking.id)
        console.print(table)


@app.command()
def cancel(
    ctx: typer.Context,
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
):
    """
    Cancel an appointment.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        asyncio.run(state.staff(store).cancel_appointment(appointment_id))
        console.print(f"[green]✓ Appointment {appointment_id} cancelled.[/green]")


@app.command("services")
def list_services(ctx: typer.Context):
    """
    List the configured services.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        result = asyncio.run(state.staff(store).list_services())

        if not result:
            console.print("[yellow]No services configured yet.[/yellow]")
            return

        table = Table(title="Services", show_header=True, header_style="bold cyan")
        table.add_column("Id", style="dim")
        table.add_column("Name", style="bold yellow")
        table.add_column("Duration")
        table.add_column("Price")
        for item in result:
            table.add_row(item.id, item.name, f"{item.duration_minutes} min", item.price_label)
        console.print(table)


@app.command()
def add_service(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Display name")],
    duration: Annotated[int, typer.Option("--duration", "-d", help="Duration in minutes")] = 30,
    price: Annotated[str, typer.Option("--price", help="Price label, e.g. 'from 12 EUR'")] = "",
    description: Annotated[str, typer.Option("--description", help="Short description")] = "",
    service_id: Annotated[Optional[str], typer.Option("--id", help="Id to create or replace")] = None,
):
    """
    Create or update a service.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        saved = asyncio.run(state.staff(store).save_service(
            name=name, duration_minutes=duration, price_label=price,
            description=description, service_id=service_id,
        ))
        console.print(f"[green]✓ Saved service {saved.name} ({saved.id})[/green]")


@app.command()
def remove_service(
    ctx: typer.Context,
    service_id: Annotated[str, typer.Argument(help="Service id")],
):
    """
    Delete a service.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        asyncio.run(state.staff(store).delete_service(service_id))
        console.print(f"[green]✓ Service {service_id} deleted.[/green]")


@app.command()
def hours(ctx: typer.Context):
    """
    Show the working hours.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        policy = asyncio.run(state.staff(store).get_working_hours())
        if policy is None:
            console.print("[yellow]Working hours have not been configured yet.[/yellow]")
            return
        console.print(_describe_policy(policy))


@app.command()
def set_hours(
    ctx: typer.Context,
    open_time: Annotated[str, typer.Option("--open", help="Opening time (HH:MM)")],
    close_time: Annotated[str, typer.Option("--close", help="Closing time (HH:MM)")],
    break_start: Annotated[Optional[str], typer.Option("--break-start", help="Break start (HH:MM)")] = None,
    break_end: Annotated[Optional[str], typer.Option("--break-end", help="Break end (HH:MM)")] = None,
    closed: Annotated[Optional[List[int]], typer.Option("--closed", help="Closed weekday, 0=Sunday..6=Saturday (repeatable)")] = None,
):
    """
    Replace the working hours.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        policy = asyncio.run(state.staff(store).save_working_hours(
            open_time, close_time, break_start, break_end, list(closed or []),
        ))
        console.print("[green]✓ Working hours saved.[/green]")
        console.print(_describe_policy(policy))


@app.command()
def blackouts(ctx: typer.Context):
    """
    List the blackout rules.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        rules = asyncio.run(state.staff(store).list_blackout_rules())

        if not rules:
            console.print("[yellow]No active blackouts.[/yellow]")
            return

        table = Table(title="Blackouts", show_header=True, header_style="bold cyan")
        table.add_column("Id", style="dim")
        table.add_column("Title", style="bold yellow")
        table.add_column("From")
        table.add_column("Time")
        table.add_column("Repeats")
        for rule in rules:
            table.add_row(rule.id, rule.title, rule.anchor_date.isoformat(),
                          str(rule.time_range), rule.describe())
        console.print(table)


@app.command()
def add_blackout(
    ctx: typer.Context,
    title: Annotated[str, typer.Argument(help="What the closure is for")],
    date: Annotated[str, typer.Option("--date", help="First date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Option("--start", help="Start time (HH:MM)")],
    end: Annotated[str, typer.Option("--end", help="End time (HH:MM)")],
    repeat: Annotated[Recurrence, typer.Option("--repeat", help="Recurrence")] = Recurrence.NONE,
    count: Annotated[int, typer.Option("--count", help="Occurrences including the first")] = 1,
):
    """
    Block time on a date, optionally repeating.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        rule = asyncio.run(state.staff(store).add_blackout_rule(title, date, start, end, repeat, count))
        console.print(f"[green]✓ Blackout '{rule.title}' added ({rule.id}, {rule.describe()}).[/green]")


@app.command()
def remove_blackout(
    ctx: typer.Context,
    rule_id: Annotated[str, typer.Argument(help="Blackout rule id")],
):
    """
    Delete a blackout rule.
    """
    state = _state(ctx)
    with _handle_errors(), state.store() as store:
        asyncio.run(state.staff(store).delete_blackout_rule(rule_id))
        console.print(f"[green]✓ Blackout {rule_id} deleted.[/green]")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotbook[/bold cyan] version [bold]{__version__}[/bold]\n")


def _describe_policy(policy: WorkingHoursPolicy) -> str:
    lines = [f"[bold]Open:[/bold] {format_minutes(policy.open_time)} - {format_minutes(policy.close_time)}"]
    if policy.break_range is not None:
        lines.append(f"[bold]Break:[/bold] {policy.break_range}")
    closed = ", ".join(WEEKDAY_NAMES[day] for day in sorted(policy.closed_weekdays)) or "none"
    lines.append(f"[bold]Closed:[/bold] {closed}")
    return "\n".join(lines)


if __name__ == "__main__":
    app()
