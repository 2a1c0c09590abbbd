"""Command-line interface for readstreak.

Built with Typer for commands and Rich for output.
"""

import json
import logging
from calendar import month_name, monthrange
from datetime import date
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import TypeAdapter
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import get_config
from .db.sqlite import StorageError
from .engine.display import SOURCE_LABELS, describe_day, sources_by_priority
from .engine.schemas import Book, BookStatus
from .streaks import StreakManager, StreakStatus

# Create the main app
app = typer.Typer(
    name="readstreak",
    help="Track reading streaks from your books and reading days.",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()

BOOK_LIST = TypeAdapter(List[Book])


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def get_manager() -> StreakManager:
    return StreakManager()


def fail(error: Exception) -> None:
    """Report an error and exit with status 1."""
    print_error(escape(str(error)))
    raise typer.Exit(1)


def format_change(change: int) -> str:
    if change > 0:
        return f"[green]+{change}[/green]"
    if change < 0:
        return f"[red]{change}[/red]"
    return "0"


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Track reading streaks from your books and reading days."""
    level = logging.DEBUG if verbose else get_config().log_level
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ============================================================================
# Streak Commands
# ============================================================================


@app.command()
def status() -> None:
    """Show current streak status."""
    manager = get_manager()
    try:
        streak = manager.get_streak()
        streak_status = manager.get_status()
    except (ValueError, StorageError) as e:
        fail(e)

    status_display = {
        StreakStatus.ACTIVE: "[green]Active[/green]",
        StreakStatus.AT_RISK: "[yellow]At Risk[/yellow]",
        StreakStatus.ENDED: "[red]Ended[/red]",
    }[streak_status]

    content_parts = [
        f"[bold]Current Streak:[/bold] {streak.current_streak} days {status_display}",
        f"[bold]Longest Streak:[/bold] {streak.longest_streak} days",
        f"Last read: {streak.last_read_date or 'never'}",
    ]

    goal = f"Today: {streak.today_progress:g} / {streak.daily_goal:g} pages"
    if streak.goal_progress is not None and streak.goal_progress >= 1:
        goal += " [green](goal met)[/green]"
    content_parts.append(goal)

    if streak_status == StreakStatus.AT_RISK:
        content_parts.append("[dim]Read today to keep your streak going![/dim]")
    elif streak_status == StreakStatus.ENDED:
        content_parts.append("[dim]Start reading today to begin a new streak![/dim]")

    console.print(Panel("\n".join(content_parts), title="[blue]Streak Status[/blue]"))


@app.command()
def mark(
    date_str: Optional[str] = typer.Argument(None, help="Date (YYYY-MM-DD), default today"),
    book: Optional[List[str]] = typer.Option(None, "--book", "-b", help="Book ID read that day"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Notes for the day"),
) -> None:
    """Mark a day as read."""
    manager = get_manager()
    try:
        entry = manager.mark_read(date_str, book_ids=book, notes=notes)
        streak = manager.get_streak()
    except (ValueError, StorageError) as e:
        fail(e)

    print_success(f"Marked {entry.date} as read")
    console.print(f"Current Streak: {streak.current_streak} days")


@app.command()
def unmark(
    date_str: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
) -> None:
    """Remove a day from the reading history."""
    manager = get_manager()
    try:
        removed = manager.unmark_day(date_str)
        still_counted = manager.get_day(date_str) is not None
    except (ValueError, StorageError) as e:
        fail(e)

    if not removed:
        print_warning(f"{date_str} is not in the reading history")
        return

    print_success(f"Removed {date_str}")
    if still_counted:
        print_info("A book's reading dates still cover this day")


@app.command()
def note(
    date_str: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
    notes: str = typer.Argument(..., help="Notes for the day"),
) -> None:
    """Attach notes to a recorded reading day."""
    manager = get_manager()
    try:
        entry = manager.annotate_day(date_str, notes=notes)
    except (ValueError, StorageError) as e:
        fail(e)

    print_success(f"Updated notes for {entry.date}")


@app.command()
def day(
    date_str: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
) -> None:
    """Show why a day counts as a reading day."""
    manager = get_manager()
    try:
        entry = manager.get_day(date_str)
    except (ValueError, StorageError) as e:
        fail(e)

    if entry is None:
        print_info(f"No reading recorded on {date_str}")
        return

    table = Table(title=f"{entry.date}: {describe_day(entry)}")
    table.add_column("Source")
    table.add_column("Books")
    table.add_column("Pages", justify="right")

    for source_type in sources_by_priority(entry):
        for source in entry.sources:
            if source.type != source_type:
                continue
            table.add_row(
                SOURCE_LABELS[source.type],
                ", ".join(source.book_ids) or "-",
                f"{source.progress:g}" if source.progress else "-",
            )

    console.print(table)
    if entry.notes:
        console.print(f"[dim]Notes: {escape(entry.notes)}[/dim]")


@app.command()
def calendar(
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Year"),
    month: Optional[int] = typer.Option(None, "--month", "-m", help="Month (1-12)"),
) -> None:
    """Show reading calendar."""
    manager = get_manager()

    today = date.today()
    year = year or today.year
    month = month or today.month

    try:
        cal = manager.get_calendar(year, month)
    except (ValueError, StorageError) as e:
        fail(e)

    console.print(f"\n[bold]{month_name[month]} {year}[/bold]")
    console.print(f"Reading days: {cal.total_reading_days} | Pages: {cal.total_pages:g}\n")

    console.print("Mon Tue Wed Thu Fri Sat Sun")

    # Leading spaces up to the first weekday
    line = "    " * date(year, month, 1).weekday()
    _, days_in_month = monthrange(year, month)

    for day_num in range(1, days_in_month + 1):
        if cal.days.get(day_num, False):
            if cal.sources.get(day_num) == "manual":
                line += f"[magenta]{day_num:3}[/magenta] "
            elif cal.streak_days.get(day_num, 0) >= 7:
                line += f"[green]{day_num:3}[/green] "
            else:
                line += f"[cyan]{day_num:3}[/cyan] "
        else:
            line += f"[dim]{day_num:3}[/dim] "

        if date(year, month, day_num).weekday() == 6:
            console.print(line)
            line = ""

    if line:
        console.print(line)

    console.print(
        "\n[cyan]Cyan[/cyan] = Reading day | [green]Green[/green] = 7+ day streak"
        " | [magenta]Magenta[/magenta] = Marked by hand"
    )


@app.command()
def stats() -> None:
    """Show reading-day statistics."""
    manager = get_manager()
    try:
        statistics = manager.get_statistics()
    except (ValueError, StorageError) as e:
        fail(e)

    if not statistics.total_reading_days:
        print_info("No reading activity yet")
        return

    table = Table(title="Reading Days")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Reading days", str(statistics.total_reading_days))
    table.add_row("Books", str(statistics.total_books))
    table.add_row("First", statistics.earliest or "-")
    table.add_row("Latest", statistics.latest or "-")
    for source_type, count in statistics.source_breakdown.items():
        table.add_row(f"Days with {source_type.replace('_', ' ')}", str(count))

    console.print(table)


# ============================================================================
# Book Commands
# ============================================================================


@app.command()
def add(
    title: str = typer.Argument(..., help="Book title"),
    author: str = typer.Option("", "--author", "-a", help="Author"),
    book_status: BookStatus = typer.Option(
        BookStatus.WANT_TO_READ, "--status", "-s", help="Reading status"
    ),
    pages: Optional[int] = typer.Option(None, "--pages", "-p", help="Total pages"),
    started: Optional[str] = typer.Option(None, "--started", help="Start date (YYYY-MM-DD)"),
    finished: Optional[str] = typer.Option(None, "--finished", help="Finish date (YYYY-MM-DD)"),
) -> None:
    """Add a book to the library."""
    manager = get_manager()
    try:
        book = manager.add_book(Book(
            title=title,
            author=author,
            status=book_status,
            total_pages=pages,
            date_started=started,
            date_finished=finished,
            progress=100 if finished else 0,
        ))
    except (ValueError, StorageError) as e:
        fail(e)

    print_success(f"Added '{book.title}' ({book.id})")


@app.command()
def books() -> None:
    """List books in the library."""
    manager = get_manager()
    try:
        all_books = manager.db.get_books()
    except StorageError as e:
        fail(e)

    if not all_books:
        print_info("No books yet")
        return

    table = Table(title="Books", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan", no_wrap=False, max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Status", style="yellow")
    table.add_column("Progress", justify="right")
    table.add_column("Dates")

    for book in all_books:
        dates = f"{book.date_started or '?'} -> {book.date_finished or '...'}"
        table.add_row(
            book.id,
            book.title,
            book.author,
            book.status.value,
            f"{book.progress:g}%",
            dates,
        )

    console.print(table)


@app.command()
def progress(
    book_id: str = typer.Argument(..., help="Book ID"),
    percent: float = typer.Argument(..., help="New progress (0-100)"),
) -> None:
    """Update a book's reading progress."""
    manager = get_manager()
    try:
        entry = manager.update_progress(book_id, percent)
        streak = manager.get_streak()
    except (ValueError, StorageError) as e:
        fail(e)

    print_success(
        f"Progress {entry.old_progress:g}% -> {entry.new_progress:g}% "
        f"(~{entry.pages_read} pages)"
    )
    console.print(
        f"Today: {streak.today_progress:g} / {streak.daily_goal:g} pages | "
        f"Current Streak: {streak.current_streak} days"
    )


@app.command("import")
def import_books(
    file: Path = typer.Argument(..., help="JSON file with a list of books", exists=True),
) -> None:
    """Import books and fold their reading dates into the streak."""
    manager = get_manager()
    try:
        data = json.loads(file.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            data = data.get("books", [])
        imported = BOOK_LIST.validate_python(data)
        result = manager.import_books(imported)
    except (ValueError, StorageError) as e:
        fail(e)

    if result.found_nothing:
        print_warning(
            f"Read {result.imported_count} books but nothing usable was found "
            "(no book has both a start and a finish date)"
        )
        return

    table = Table(title="Import Results")
    table.add_column("Metric")
    table.add_column("Before", justify="right")
    table.add_column("After", justify="right")
    table.add_column("Change", justify="right")
    table.add_row(
        "Current streak",
        str(result.old_current_streak),
        str(result.new_current_streak),
        format_change(result.current_streak_change),
    )
    table.add_row(
        "Longest streak",
        str(result.old_longest_streak),
        str(result.new_longest_streak),
        format_change(result.longest_streak_change),
    )

    print_success(
        f"Imported {result.imported_count} books: {result.periods_processed} reading periods, "
        f"{result.days_added} reading days ({len(result.new_books)} new books)"
    )
    console.print(table)


@app.command()
def rebuild() -> None:
    """Rebuild the reading history from the books."""
    manager = get_manager()
    try:
        history = manager.rebuild_history()
    except (ValueError, StorageError) as e:
        fail(e)

    print_success(f"Rebuilt history with {len(history.reading_days)} reading days")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"readstreak version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
