"""CLI for group-split using Typer."""

import json
import logging
import sys
from decimal import Decimal
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from . import allocator
from .balances import calculate_user_balance
from .config import Settings, load_settings
from .exceptions import ConfigurationError
from .ledger import parse_expenses
from .members import MemberDirectory
from .models import Expense, ParticipantRole, Transfer
from .settlement import active_expenses, active_total, expense_progress, is_fully_settled
from .simplifier import obligations_from_balance, simplify_debts, simplify_group
from .ui import edit_split_interactive

app = typer.Typer(
    name="group-split",
    help="Split group expenses, check balances and work out who pays whom",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def format_money(amount: Decimal, use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    """
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            return f"($[red]{abs_amount:,.2f}[/red])"
        return f"(${abs_amount:,.2f})"
    if use_color:
        return f" [green]${abs_amount:,.2f}[/green] "
    return f" ${abs_amount:,.2f} "


def load_expenses(path: Path) -> list[Expense]:
    """Read an exported expense list (JSON) into validated expenses."""
    payload = json.loads(path.read_text(encoding="utf-8"))
    return parse_expenses(payload)


def load_directory(settings: Settings, members_file: Path | None) -> MemberDirectory:
    path = members_file or settings.members_file
    return MemberDirectory.from_file(path) if path else MemberDirectory()


def resolve_user(settings: Settings, user: str | None) -> str:
    user_id = user or settings.device_id
    if not user_id:
        raise ConfigurationError(
            "No user given. Pass --user or set GROUP_SPLIT_DEVICE_ID."
        )
    return user_id


def display_transfers(transfers: list[Transfer], directory: MemberDirectory):
    """Display netted transfers as a table."""
    if not transfers:
        console.print("[green]✓ Everyone is settled up[/green]")
        return

    table = Table(title="Transfers", show_header=True, header_style="bold magenta")
    table.add_column("From", style="cyan")
    table.add_column("To", style="cyan")
    table.add_column("Amount", justify="right")
    for transfer in transfers:
        table.add_row(
            directory.label(transfer.from_user),
            directory.label(transfer.to_user),
            format_money(transfer.amount),
        )
    console.print(table)


@app.command()
def balance(
    expenses_file: Path = typer.Argument(..., exists=True, help="Exported expenses JSON"),
    user: str | None = typer.Option(None, "--user", "-u", help="Member id"),
    members_file: Path | None = typer.Option(
        None, "--members", "-m", exists=True, help="Member directory JSON"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show what a member is owed and owes across all expenses."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        user_id = resolve_user(settings, user)
        directory = load_directory(settings, members_file)
        expenses = load_expenses(expenses_file)

        result = calculate_user_balance(expenses, user_id)

        table = Table(
            title=f"Balance for {directory.label(user_id)}",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Expense", style="cyan", width=30)
        table.add_column("Counterparty")
        table.add_column("Amount", justify="right", width=14)

        for credit in result.detailed_credits:
            table.add_row(
                credit.expense_name,
                f"{directory.label(credit.from_user)} owes you",
                format_money(credit.amount),
            )
        for debt in result.detailed_debts:
            table.add_row(
                debt.expense_name,
                f"you owe {directory.label(debt.to_user)}",
                format_money(-debt.amount),
            )

        console.print(table)
        console.print()
        console.print("[bold]Summary:[/bold]")
        console.print(f"  Owed to you: {format_money(result.total_owed)}")
        console.print(f"  You owe:     {format_money(-result.total_owing)}")
        console.print(f"  Net:         {format_money(result.net_balance)}")

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)


@app.command()
def simplify(
    expenses_file: Path = typer.Argument(..., exists=True, help="Exported expenses JSON"),
    user: str | None = typer.Option(
        None, "--user", "-u", help="Only net this member's debts and credits"
    ),
    active_only: bool = typer.Option(
        False, "--active-only", help="Skip expenses that are fully settled"
    ),
    members_file: Path | None = typer.Option(
        None, "--members", "-m", exists=True, help="Member directory JSON"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Net everyone's obligations into the fewest pairwise transfers."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        directory = load_directory(settings, members_file)
        expenses = load_expenses(expenses_file)
        if active_only:
            expenses = active_expenses(expenses)

        if user:
            user_balance = calculate_user_balance(expenses, user)
            transfers = simplify_debts(
                obligations_from_balance(user, user_balance),
                threshold=settings.settle_threshold,
            )
        else:
            transfers = simplify_group(expenses, threshold=settings.settle_threshold)

        display_transfers(transfers, directory)

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)


@app.command()
def status(
    expenses_file: Path = typer.Argument(..., exists=True, help="Exported expenses JSON"),
    members_file: Path | None = typer.Option(
        None, "--members", "-m", exists=True, help="Member directory JSON"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List expenses with their payment progress and settlement state."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        directory = load_directory(settings, members_file)
        expenses = load_expenses(expenses_file)

        table = Table(title="Expenses", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=10)
        table.add_column("Description", style="cyan", width=30)
        table.add_column("Total", justify="right", width=12)
        table.add_column("Created by")
        table.add_column("Progress")
        table.add_column("Settled", justify="center")

        for expense in expenses:
            table.add_row(
                expense.id[:10],
                expense.description,
                format_money(expense.total_amount),
                directory.label(expense.created_by),
                expense_progress(expense).value,
                "[green]✓[/green]" if is_fully_settled(expense) else "",
            )

        console.print(table)
        console.print(
            f"\n  Active expenses: {len(active_expenses(expenses))} of {len(expenses)}"
        )
        console.print(f"  Active total:   {format_money(active_total(expenses))}")

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)


@app.command()
def split(
    total: str = typer.Argument(..., help="Expense total"),
    member_ids: list[str] = typer.Argument(..., help="Members sharing this side"),
    role: ParticipantRole = typer.Option(
        ParticipantRole.OWER, "--role", "-r", help="Which side is being split"
    ),
    members_file: Path | None = typer.Option(
        None, "--members", "-m", exists=True, help="Member directory JSON"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Interactively split a total by percentage among members.

    Starts from an equal split. Prints the finalized participant rows as JSON.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        directory = load_directory(settings, members_file)
        total_amount = Decimal(total)

        state = allocator.equal_split(role, member_ids)
        participants = edit_split_interactive(
            state,
            total_amount,
            directory,
            console,
            tolerance=settings.split_tolerance,
        )
        if participants is None:
            console.print("[yellow]No split saved.[/yellow]")
            return

        rows = [p.model_dump(mode="json", by_alias=True) for p in participants]
        console.print_json(json.dumps(rows))

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)


if __name__ == "__main__":
    app()
