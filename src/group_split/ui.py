"""Interactive split editor for the terminal."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document
from rich.console import Console
from rich.table import Table

from . import allocator
from .allocator import SplitState
from .exceptions import ExpenseValidationError
from .members import MemberDirectory
from .models import Participant

logger = logging.getLogger(__name__)

COMMANDS = ["add", "remove", "set", "lock", "done", "help"]

HELP_TEXT = (
    "Commands:\n"
    "  add <member>          add a member (resets to equal shares)\n"
    "  remove <member>       remove a member\n"
    "  set <member> <pct>    set a member's percentage\n"
    "  lock <member>         lock/unlock a member's percentage\n"
    "  done                  save the split\n"
    "Press Enter on an empty line or Ctrl+C to cancel."
)


class MemberCompleter(Completer):
    """Completes editor commands, then fuzzy-matches member names."""

    def __init__(self, directory: MemberDirectory, extra_ids: list[str] | None = None):
        """Initialize the completer with the known members."""
        self.directory = directory
        ids = list(directory.member_ids)
        for member_id in extra_ids or []:
            if member_id not in ids:
                ids.append(member_id)
        self.searchable = [(member_id, directory.label(member_id)) for member_id in ids]

    def get_completions(self, document: Document, complete_event: Any):
        """Get command or member completions for the word being typed."""
        words = document.text_before_cursor.split(" ")
        current = words[-1].lower()

        if len(words) == 1:
            for command in COMMANDS:
                if command.startswith(current):
                    yield Completion(text=command, start_position=-len(current))
            return

        if len(words) == 2:
            for member_id, label in self.searchable:
                if self._fuzzy_match(current, label.lower()) or self._fuzzy_match(
                    current, member_id.lower()
                ):
                    yield Completion(
                        text=member_id,
                        start_position=-len(current),
                        display=f"{label} ({member_id})",
                    )

    def _fuzzy_match(self, query: str, text: str) -> bool:
        """All characters in query must appear in order in text."""
        query_idx = 0
        for char in text:
            if query_idx < len(query) and char == query[query_idx]:
                query_idx += 1
        return query_idx == len(query)


def resolve_member(token: str, directory: MemberDirectory, state: SplitState) -> str:
    """Map a typed id or display name to a member id."""
    if token in directory or token in state.selected:
        return token
    for member_id in [*directory.member_ids, *state.selected]:
        if directory.label(member_id).lower() == token.lower():
            return member_id
    return token


def render_split(
    state: SplitState, directory: MemberDirectory, total_amount: Decimal
) -> Table:
    """Build a table of the current split with the amount each share implies."""
    table = Table(
        title=f"{state.role.value.title()} split",
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("Member", style="cyan")
    table.add_column("Share", justify="right")
    table.add_column("Max", justify="right", style="dim")
    table.add_column("Amount", justify="right")
    table.add_column("Lock", justify="center")

    for member_id in state.selected:
        pct = state.percentage(member_id)
        if member_id in state.locked:
            lock = "locked"
        elif allocator.is_last_unlocked(state, member_id):
            lock = "[dim]auto[/dim]"
        else:
            lock = ""
        table.add_row(
            directory.label(member_id),
            f"{pct:.2f}%",
            f"{allocator.max_percentage(state, member_id):.2f}%",
            f"${allocator.round2(total_amount * pct / 100):,.2f}",
            lock,
        )

    total_pct = state.total_percentage
    style = "green" if abs(total_pct - 100) <= allocator.NORMALIZE_TOLERANCE else "red"
    table.add_row("[bold]Total[/bold]", f"[{style}]{total_pct:.2f}%[/{style}]", "", "", "")
    return table


def edit_split_interactive(
    state: SplitState,
    total_amount: Decimal,
    directory: MemberDirectory,
    console: Console,
    tolerance: Decimal = allocator.NORMALIZE_TOLERANCE,
) -> list[Participant] | None:
    """
    Drive a SplitState from the prompt until it finalizes.

    Args:
        state: Starting split (typically an equal split)
        total_amount: Expense total the shares apply to
        directory: Members for completion and labels
        console: Rich console for rendering
        tolerance: Percentage drift that triggers normalization

    Returns:
        Finalized participant rows, or None if the user cancelled
    """
    completer = MemberCompleter(directory, extra_ids=list(state.selected))
    session: PromptSession[str] = PromptSession(completer=completer)

    console.print(HELP_TEXT)

    try:
        while True:
            console.print(render_split(state, directory, total_amount))
            line = session.prompt("split> ", complete_while_typing=True).strip()

            if not line:
                return None

            command, *args = line.split()
            try:
                if command == "done":
                    result = allocator.finalize(state, total_amount, tolerance=tolerance)
                    if result.needs_confirmation:
                        state = result.state
                        console.print(
                            "[yellow]Percentages didn't add up to 100%. They were "
                            "rescaled; review and type 'done' again to save.[/yellow]"
                        )
                        continue
                    logger.info(
                        f"Finalized {state.role.value} split over "
                        f"{len(result.participants)} members"
                    )
                    return result.participants

                if command == "help":
                    console.print(HELP_TEXT)
                elif command in ("add", "remove") and len(args) == 1:
                    member_id = resolve_member(args[0], directory, state)
                    if (command == "add") == (member_id in state.selected):
                        console.print(f"[yellow]Nothing to {command} for {args[0]}[/yellow]")
                    else:
                        state = allocator.select(state, member_id)
                elif command == "set" and len(args) == 2:
                    member_id = resolve_member(args[0], directory, state)
                    state = allocator.set_percentage(state, member_id, Decimal(args[1]))
                elif command == "lock" and len(args) == 1:
                    member_id = resolve_member(args[0], directory, state)
                    toggled = allocator.toggle_lock(state, member_id)
                    if toggled is state:
                        console.print(
                            "[yellow]The last unlocked member can't be locked.[/yellow]"
                        )
                    state = toggled
                else:
                    console.print(f"[red]Unrecognized command:[/red] {line}")
            except ExpenseValidationError as e:
                console.print(f"[red]✗[/red] {e}")
            except InvalidOperation:
                console.print(f"[red]✗[/red] Not a number: {args[-1]}")

    except KeyboardInterrupt:
        console.print("\n⏭️  Cancelled")
        return None
    except EOFError:
        return None
