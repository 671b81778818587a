"""CLI entry point using Typer."""

from datetime import datetime, timedelta

import typer
from rich.console import Console
from rich.table import Table

from jamwatch.domain import Direction, Street, SummaryStatus
from jamwatch.log import configure_logging

app = typer.Typer(
    name="jamwatch",
    help="Jamwatch - crowd-sourced street status reports, timelines and forecasts.",
)
console = Console()

configure_logging()

STATUS_STYLES = {
    SummaryStatus.STOI: "bold red",
    SummaryStatus.TOCZY_SIE: "yellow",
    SummaryStatus.JEDZIE: "green",
    SummaryStatus.NEUTRAL: "dim",
}


def _styled(status: SummaryStatus) -> str:
    return f"[{STATUS_STYLES[status]}]{status.value}[/{STATUS_STYLES[status]}]"


def _hhmm(value: datetime) -> str:
    from jamwatch.timeutil import to_local

    return to_local(value).strftime("%H:%M")


@app.command()
def init_db() -> None:
    """Create database tables (use Alembic for managed deployments)."""
    from jamwatch.db import init_db as create_tables

    create_tables()
    console.print("[bold green]Tables created.[/bold green]")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("jamwatch.api:create_app", factory=True, host=host, port=port)


@app.command()
def status(street: Street = typer.Argument(...), direction: Direction = typer.Argument(...)) -> None:
    """Show the current majority status."""
    from jamwatch.status.aggregate import Aggregator

    current = Aggregator().current_status(street, direction)
    console.print(
        f"{street.value} ({direction.label}): {_styled(current.status)} "
        f"[dim]({_hhmm(current.window_start)}-{_hhmm(current.window_end)})[/dim]"
    )


@app.command()
def timeline(
    street: Street = typer.Argument(...),
    direction: Direction = typer.Argument(...),
    week: bool = typer.Option(False, "--week", help="Seven days of hourly buckets instead of today"),
) -> None:
    """Show hourly majority status for today or the last week."""
    from jamwatch.status.aggregate import Aggregator
    from jamwatch.timeutil import to_local

    aggregator = Aggregator()
    buckets = aggregator.week_timeline(street, direction) if week else aggregator.today_timeline(street, direction)

    table = Table(title=f"{street.value} ({direction.label})")
    table.add_column("Start", style="cyan")
    table.add_column("Status")
    for bucket in buckets:
        table.add_row(to_local(bucket.start).strftime("%a %H:%M"), _styled(bucket.status))
    console.print(table)


@app.command()
def forecast(
    street: Street = typer.Argument(...),
    direction: Direction = typer.Argument(...),
    extended: bool = typer.Option(False, "--extended", help="Coarse forecast starting one hour out"),
) -> None:
    """Show the forecast as status ranges."""
    from jamwatch.config import settings
    from jamwatch.status.forecast import Forecaster, group_into_ranges

    forecaster = Forecaster()
    if extended:
        buckets = forecaster.extended_forecast(street, direction)
        interval = settings.extended_forecast_interval_minutes
    else:
        buckets = forecaster.short_forecast(street, direction)
        interval = settings.short_forecast_interval_minutes

    table = Table(title=f"Forecast {street.value} ({direction.label})")
    table.add_column("From", style="cyan")
    table.add_column("To", style="cyan")
    table.add_column("Minutes", style="white")
    table.add_column("Status")
    for status_range in group_into_ranges(buckets, timedelta(minutes=interval)):
        table.add_row(
            _hhmm(status_range.start),
            _hhmm(status_range.end),
            str(status_range.duration_minutes),
            _styled(status_range.status),
        )
    console.print(table)


@app.command()
def commute(
    street: Street = typer.Argument(...),
    direction: Direction = typer.Argument(...),
    at: str = typer.Option("08:00", "--at", help="Departure time HH:MM"),
) -> None:
    """Compare one departure time across the last seven days."""
    from jamwatch.status.forecast import Forecaster

    try:
        hour_text, minute_text = at.split(":")
        hour, minute = int(hour_text), int(minute_text)
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] invalid time {at!r}, expected HH:MM")
        raise typer.Exit(1)

    by_weekday = Forecaster().weekday_comparison(street, direction, hour, minute)
    table = Table(title=f"{street.value} ({direction.label}) at {hour:02d}:{minute:02d}")
    table.add_column("Day", style="cyan")
    table.add_column("Date", style="white")
    table.add_column("Status")
    for _, entry in sorted(by_weekday.items()):
        table.add_row(entry.day.strftime("%A"), entry.day.isoformat(), _styled(entry.status))
    console.print(table)


@app.command()
def notify_drain(limit: int = typer.Option(100, help="Maximum notifications to process")) -> None:
    """Deliver pending incident notifications."""
    from jamwatch.outbound.notifications import deliver_pending

    stats = deliver_pending(limit=limit)
    table = Table(title="Notification Delivery")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green")
    for key, value in stats.items():
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def prune_rate_limits(
    older_than_hours: int = typer.Option(24, help="Delete limiter slots idle for longer than this"),
) -> None:
    """Delete expired rate-limit slots."""
    from jamwatch.limits.rate_limit import RateLimiter
    from jamwatch.timeutil import utcnow

    removed = RateLimiter().prune(utcnow() - timedelta(hours=older_than_hours))
    console.print(f"[green]Removed {removed} rate-limit rows.[/green]")


if __name__ == "__main__":
    app()
