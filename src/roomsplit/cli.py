import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from roomsplit.categorization import create_categorizer
from roomsplit.config.settings import Settings
from roomsplit.database.connection import DatabaseConfig, DatabaseManager
from roomsplit.database.document_store import SQLiteDocumentStore
from roomsplit.domain.models import ExpenseDraft, ExpenseUpdate, ReceiptFile, Session, UserProfile
from roomsplit.domain.validation import (
    parse_cost,
    validate_budget,
    validate_expense_fields,
    validate_room_id,
)
from roomsplit.repositories.expense_repository import ExpenseRepository
from roomsplit.repositories.profile_repository import ProfileRepository
from roomsplit.services import aggregation
from roomsplit.services.expense_service import ExpenseService
from roomsplit.storage.local import LocalMediaStore

app = typer.Typer(
    name="roomsplit",
    help="Share expenses with your roommates",
    add_completion=False,
)
room_app = typer.Typer(help="Create, join and leave rooms")
app.add_typer(room_app, name="room")

console = Console()

DATE_FORMATS = ["%Y-%m-%d"]


@dataclass
class AppContext:
    """Everything the commands need, wired once per process."""
    db_manager: DatabaseManager
    profiles: ProfileRepository
    expenses: ExpenseService


def build_context(settings: Settings) -> AppContext:
    db_manager = DatabaseManager(DatabaseConfig(settings.database_path))
    db_manager.initialize()

    store = SQLiteDocumentStore(db_manager)
    media_store = LocalMediaStore(settings.media_root, settings.media_base_url)

    return AppContext(
        db_manager=db_manager,
        profiles=ProfileRepository(store, media_store),
        expenses=ExpenseService(
            repository=ExpenseRepository(store),
            categorizer=create_categorizer(settings),
            media_store=media_store,
        ),
    )


class State:
    verbose: bool = False
    user_id: Optional[str] = None
    context: Optional[AppContext] = None


state = State()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    user: Optional[str] = typer.Option(
        None,
        "--user", "-u",
        envvar="ROOMSPLIT_USER",
        help="Your user id",
    ),
):
    """
    Roomsplit - log shared purchases and see who spent what.
    """
    configure_logging(verbose)

    if state.context is None:
        state.context = build_context(Settings.load())

    state.verbose = verbose
    state.user_id = user


def fail(e: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {e}")
    if state.verbose:
        console.print_exception()
    raise typer.Exit(code=1)


def current_session() -> Session:
    if not state.user_id:
        raise ValueError("No user given. Pass --user or set ROOMSPLIT_USER.")
    return Session(user_id=state.user_id)


def current_profile() -> UserProfile:
    session = current_session()
    profile = state.context.profiles.get(session.user_id)
    if profile is None:
        raise ValueError(f"No profile for '{session.user_id}'. Run 'roomsplit signup' first.")
    return profile


def current_room(profile: UserProfile) -> str:
    if not profile.room_id:
        raise ValueError("You are not in a room yet. Use 'roomsplit room create' or 'roomsplit room join'.")
    return profile.room_id


def read_file(path: Optional[Path]) -> Optional[ReceiptFile]:
    if path is None:
        return None
    return ReceiptFile(filename=path.name, content=path.read_bytes())


def format_money(amount: Decimal) -> str:
    return f"${amount:,.2f}"


@app.command()
def signup(
    name: str = typer.Argument(..., help="Display name"),
    email: str = typer.Argument(..., help="Email address"),
):
    """
    Create your profile.

    Examples:
        roomsplit --user alice signup "Alice" alice@example.com
    """
    try:
        session = current_session()
        state.context.profiles.create(
            UserProfile(user_id=session.user_id, name=name, email=email)
        )
        console.print(f"[bold green]✓ Welcome, {name}![/bold green]")
    except Exception as e:
        fail(e)


@app.command()
def profile():
    """Show your profile and budgets."""
    try:
        user = current_profile()
        lines = [
            f"[bold]Name:[/bold] {user.name}",
            f"[bold]Email:[/bold] {user.email}",
            f"[bold]Room:[/bold] {user.room_id or '-'}",
            f"[bold]Avatar:[/bold] {user.avatar_url or '-'}",
            f"[bold]Monthly budget:[/bold] "
            f"{format_money(user.monthly_budget) if user.monthly_budget is not None else '-'}",
        ]
        for category, limit in user.category_budgets.items():
            lines.append(f"  • {category}: {format_money(limit)}")

        console.print(Panel("\n".join(lines), title=user.user_id, border_style="cyan"))
    except Exception as e:
        fail(e)


@app.command(name="profile-update")
def profile_update(
    name: Optional[str] = typer.Option(None, "--name", help="New display name"),
    avatar: Optional[Path] = typer.Option(
        None,
        "--avatar",
        help="Image to use as avatar",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
):
    """Change your display name or avatar."""
    try:
        session = current_session()
        if name is not None:
            state.context.profiles.update_profile(session.user_id, {"name": name})
            console.print(f"[green]✓[/green] Name updated to {name}")
        if avatar is not None:
            url = state.context.profiles.update_avatar(session.user_id, read_file(avatar))
            console.print(f"[green]✓[/green] Avatar uploaded: {url}")
    except Exception as e:
        fail(e)


@app.command()
def budget(
    amount: str = typer.Argument(..., help="Budget amount"),
    category: Optional[str] = typer.Option(
        None,
        "--category", "-c",
        help="Set a limit for one category instead of the monthly budget",
    ),
):
    """
    Set your personal monthly budget.

    Examples:
        roomsplit budget 500
        roomsplit budget 150 --category Groceries
    """
    try:
        user = current_profile()
        value = parse_cost(amount)
        validate_budget(value)

        if category is None:
            state.context.profiles.update_profile(user.user_id, {"monthly_budget": value})
            console.print(f"[green]✓[/green] Monthly budget set to {format_money(value)}")
        else:
            budgets = dict(user.category_budgets)
            budgets[category] = value
            state.context.profiles.update_profile(user.user_id, {"category_budgets": budgets})
            console.print(f"[green]✓[/green] {category} budget set to {format_money(value)}")
    except Exception as e:
        fail(e)


@room_app.command("create")
def room_create():
    """Create a new room and join it."""
    try:
        session = current_session()
        room_id = state.context.profiles.create_room(session.user_id)
        console.print(Panel.fit(
            f"[bold]{room_id}[/bold]\n\nShare this ID with your roommates so they can join.",
            title="Room Created!",
            border_style="green",
        ))
    except Exception as e:
        fail(e)


@room_app.command("join")
def room_join(room_id: str = typer.Argument(..., help="Room ID to join")):
    """Join an existing room."""
    try:
        validate_room_id(room_id)
        session = current_session()
        state.context.profiles.join(session.user_id, room_id)
        console.print(f"[green]✓[/green] You have joined room: {room_id}")
    except Exception as e:
        fail(e)


@room_app.command("leave")
def room_leave():
    """Leave your current room."""
    try:
        session = current_session()
        state.context.profiles.leave(session.user_id)
        console.print("[green]✓[/green] You left the room")
    except Exception as e:
        fail(e)


@room_app.command("members")
def room_members():
    """List everyone in your room."""
    try:
        room_id = current_room(current_profile())
        table = Table(title=f"Room {room_id}")
        table.add_column("User", style="cyan")
        table.add_column("Name")
        table.add_column("Email", style="dim")

        for member in state.context.profiles.list_members(room_id):
            table.add_row(member.user_id, member.name, member.email)

        console.print(table)
    except Exception as e:
        fail(e)


@app.command()
def add(
    shop: str = typer.Option(..., "--shop", "-s", help="Where you bought it"),
    items: str = typer.Option(..., "--items", "-i", help="What you bought"),
    cost: str = typer.Option(..., "--cost", "-c", help="How much it cost"),
    purchase_date: Optional[datetime] = typer.Option(
        None,
        "--date", "-d",
        formats=DATE_FORMATS,
        help="Purchase date (defaults to today)",
    ),
    receipt: Optional[Path] = typer.Option(
        None,
        "--receipt", "-r",
        help="Receipt image to attach",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
):
    """
    Log a purchase for your room.

    Examples:
        roomsplit add --shop SuperMart --items "milk, bread" --cost 12.50
        roomsplit add -s IKEA -i "shower curtain" -c 19.99 --receipt receipt.jpg
    """
    try:
        user = current_profile()
        room_id = current_room(user)
        amount = parse_cost(cost)
        day = purchase_date.date() if purchase_date else date.today()
        validate_expense_fields(shop, items, amount, day)

        with console.status("Categorizing expense..."):
            expense = state.context.expenses.create(
                Session(user.user_id),
                ExpenseDraft(
                    room_id=room_id,
                    date=day,
                    shop=shop.strip(),
                    items=items.strip(),
                    cost=amount,
                    receipt=read_file(receipt),
                ),
            )

        console.print(
            f"[bold green]✓ Added {format_money(expense.cost)} at {expense.shop}[/bold green] "
            f"([magenta]{expense.category}[/magenta]) id={expense.id}"
        )
    except Exception as e:
        fail(e)


@app.command()
def edit(
    expense_id: str = typer.Argument(..., help="Expense to edit"),
    shop: Optional[str] = typer.Option(None, "--shop", "-s"),
    items: Optional[str] = typer.Option(None, "--items", "-i"),
    cost: Optional[str] = typer.Option(None, "--cost", "-c"),
    purchase_date: Optional[datetime] = typer.Option(None, "--date", "-d", formats=DATE_FORMATS),
    receipt: Optional[Path] = typer.Option(
        None,
        "--receipt", "-r",
        help="Replace the attached receipt",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    remove_receipt: bool = typer.Option(
        False,
        "--remove-receipt",
        help="Drop the attached receipt",
    ),
):
    """
    Edit one of your expenses. Unspecified fields keep their value.
    """
    try:
        session = current_session()
        existing = state.context.expenses.get(expense_id)
        if existing is None:
            raise ValueError(f"Expense '{expense_id}' not found")

        new_shop = shop.strip() if shop is not None else existing.shop
        new_items = items.strip() if items is not None else existing.items
        new_cost = parse_cost(cost) if cost is not None else existing.cost
        new_date = purchase_date.date() if purchase_date else existing.date
        validate_expense_fields(new_shop, new_items, new_cost, new_date)

        with console.status("Updating expense..."):
            expense = state.context.expenses.update(
                session,
                ExpenseUpdate(
                    id=expense_id,
                    date=new_date,
                    shop=new_shop,
                    items=new_items,
                    cost=new_cost,
                    receipt=read_file(receipt),
                    remove_image=remove_receipt,
                ),
            )

        console.print(f"[bold green]✓ Updated {expense.id}[/bold green] ([magenta]{expense.category}[/magenta])")
    except Exception as e:
        fail(e)


@app.command()
def delete(
    expense_id: str = typer.Argument(..., help="Expense to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
):
    """Delete one of your expenses and its receipt."""
    try:
        session = current_session()
        if not yes and not typer.confirm(f"Delete expense {expense_id}?"):
            console.print("[yellow]Cancelled[/yellow]")
            return

        state.context.expenses.remove(session, expense_id)
        console.print(f"[bold green]✓ Deleted {expense_id}[/bold green]")
    except Exception as e:
        fail(e)


@app.command(name="list")
def list_expenses(
    sort: str = typer.Option("date", "--sort", help="date, cost, shop or user"),
    ascending: bool = typer.Option(False, "--asc", help="Sort ascending"),
    members: Optional[List[str]] = typer.Option(
        None,
        "--member", "-m",
        help="Only show expenses by this user (repeatable)",
    ),
):
    """
    Show your room's expenses.

    Examples:
        roomsplit list
        roomsplit list --sort cost --asc --member alice
    """
    try:
        room_id = current_room(current_profile())
        roster = state.context.profiles.list_members(room_id)
        names = aggregation.roster_names(roster)

        rows = aggregation.filter_and_sort(
            state.context.expenses.list_room(room_id),
            roster,
            selected_users=members or None,
            sort_key=sort,
            direction="asc" if ascending else "desc",
        )

        if not rows:
            console.print(Panel(
                "[yellow]No expenses found for the selected filter[/yellow]",
                border_style="yellow",
            ))
            return

        table = Table(title=f"Expenses - {room_id}")
        table.add_column("ID", style="dim")
        table.add_column("Date", style="cyan")
        table.add_column("User")
        table.add_column("Shop", style="white")
        table.add_column("Items", max_width=40)
        table.add_column("Category", style="magenta")
        table.add_column("Cost", justify="right", style="red")
        table.add_column("Receipt", justify="center")

        for expense in rows:
            table.add_row(
                expense.id,
                str(expense.date),
                names.get(expense.user_id) or aggregation.placeholder_name(expense.user_id),
                expense.shop,
                expense.items,
                expense.category,
                format_money(expense.cost),
                "📎" if expense.has_receipt else "",
            )

        console.print(table)
        console.print(f"[bold]Total:[/bold] {format_money(aggregation.table_total(rows))}")
    except Exception as e:
        fail(e)


@app.command()
def summary(
    reference: Optional[datetime] = typer.Option(
        None,
        "--date", "-d",
        formats=DATE_FORMATS,
        help="Reference date for month-to-date numbers (defaults to today)",
    ),
):
    """
    Spending per roommate, per category, and your budget progress.
    """
    try:
        user = current_profile()
        room_id = current_room(user)
        reference_date = reference.date() if reference else date.today()

        expenses = state.context.expenses.list_room(room_id)
        roster = state.context.profiles.list_members(room_id)

        if not expenses:
            console.print(Panel(
                "[yellow]No expenses logged in this room yet[/yellow]",
                title="Empty Summary",
                border_style="yellow",
            ))
            return

        user_table = Table(title="Spent per roommate", box=None, padding=(0, 2))
        user_table.add_column("Roommate", style="cyan")
        user_table.add_column("Total", justify="right", style="red")
        for entry in aggregation.totals_by_user(expenses, roster):
            user_table.add_row(entry.name, format_money(entry.total))
        console.print(user_table)

        grand_total = aggregation.table_total(expenses)
        category_table = Table(title="Spent per category", box=None, padding=(0, 2))
        category_table.add_column("Category", style="cyan")
        category_table.add_column("Total", justify="right", style="red")
        category_table.add_column("% of Total", justify="right", style="dim")
        for entry in aggregation.totals_by_category(expenses):
            percentage = entry.total / grand_total * 100 if grand_total > 0 else 0
            category_table.add_row(entry.category, format_money(entry.total), f"{percentage:.1f}%")
        console.print(category_table)

        spend = aggregation.month_to_date_spend(expenses, reference_date)
        progress = aggregation.budget_progress(spend, user.monthly_budget)
        month_name = reference_date.strftime("%B %Y")

        budget_text = f"[bold]Room spend this month:[/bold] {format_money(spend)}\n"
        if user.monthly_budget:
            color = "red" if progress > 100 else "green"
            budget_text += (
                f"[bold]Monthly budget:[/bold] {format_money(user.monthly_budget)}\n"
                f"[{color}]{progress:.0f}% of budget used[/{color}]"
            )
        else:
            budget_text += "[dim]No monthly budget set. Use 'roomsplit budget'.[/dim]"

        for status in aggregation.category_budget_progress(expenses, user.category_budgets, reference_date):
            color = "red" if status.over_budget else "green"
            budget_text += (
                f"\n  • {status.category}: {format_money(status.spent)} / "
                f"{format_money(status.limit)} [{color}]({status.progress:.0f}%)[/{color}]"
            )

        console.print(Panel(budget_text, title=f"[bold]{month_name}[/bold]", border_style="cyan"))
    except Exception as e:
        fail(e)


def cli_main():
    """Entry point for the CLI"""
    app()


if __name__ == "__main__":
    cli_main()
