"""
Console report generator for Tollgate.

Uses Rich to display decisions and debug traces. A trace lists every step
in the order it was selected, with its score at selection time and its
outcome:

    + [0] enable owns
    - [4] prevent intoxicated
      [14] prevent ~has_driving_license

Design Principles:
    - Status at a glance: icons and colors for passed, failed, skipped
    - The plain-text trace lines match `str(TraceEntry)` exactly
"""

from typing import Iterable, Mapping

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tollgate.policy.base import Policy
from tollgate.schema import Action, TraceEntry


# Status icons
ICON_ALLOWED = "[green]✓[/green]"
ICON_DENIED = "[red]✗[/red]"
ICON_SKIPPED = "[dim]○[/dim]"


def format_trace(entries: Iterable[TraceEntry]) -> str:
    """Plain-text trace, one line per step."""
    return "\n".join(str(entry) for entry in entries)


def print_trace(
    entries: list[TraceEntry],
    ability: str,
    allowed: bool,
    console: Console | None = None,
    verbose: bool = False,
) -> None:
    """
    Print a debug trace as a table.

    Args:
        entries: Trace entries from `Policy.debug`
        ability: The ability that was decided
        allowed: The final decision
        console: Rich Console instance (creates one if not provided)
        verbose: Whether to show the decision context of each step
    """
    if console is None:
        console = Console()

    _print_header(console, ability, allowed)
    console.print()

    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("#", style="dim", width=3, justify="right")
    table.add_column("Result", width=6, justify="center")
    table.add_column("Score", justify="right", width=7)
    table.add_column("Action", width=8)
    table.add_column("Rule", overflow="fold")
    if verbose:
        table.add_column("Context", style="dim", overflow="fold")

    for index, entry in enumerate(entries, start=1):
        row = [
            str(index),
            _result_icon(entry),
            _format_score(entry.score),
            _format_action(entry.action),
            entry.rule,
        ]
        if verbose:
            row.append(entry.context)
        table.add_row(*row)

    console.print(table)

    executed = sum(1 for entry in entries if entry.passed is not None)
    console.print(f"  [dim]Steps executed:[/dim] {executed} of {len(entries)}")


def print_decisions(
    decisions: Mapping[str, bool],
    console: Console | None = None,
) -> None:
    """Print one row per ability with its allow/deny outcome."""
    if console is None:
        console = Console()

    table = Table(show_header=True, header_style="bold")
    table.add_column("Ability", style="cyan")
    table.add_column("Decision", justify="center")

    for ability, allowed in decisions.items():
        decision = f"{ICON_ALLOWED} allowed" if allowed else f"{ICON_DENIED} denied"
        table.add_row(ability, decision)

    console.print(table)


def print_policy_summary(
    policy_type: type[Policy],
    console: Console | None = None,
) -> None:
    """Print the conditions and per-ability rules of a policy type."""
    if console is None:
        console = Console()

    configuration = policy_type.configuration()

    console.print(Panel(Text(policy_type.__name__, style="bold cyan"), expand=False))

    conditions = Table(show_header=True, header_style="bold", title="Conditions")
    conditions.add_column("Name", style="cyan")
    conditions.add_column("Scope")
    conditions.add_column("Score", justify="right")
    conditions.add_column("Description", overflow="fold")
    for name, condition in sorted(configuration.conditions.items()):
        score = "auto" if condition.score is None else _format_score(condition.score)
        conditions.add_row(name, condition.scope.value, score, condition.description or "")
    console.print(conditions)

    rules = Table(show_header=True, header_style="bold", title="Rules")
    rules.add_column("Ability", style="cyan")
    rules.add_column("Action", width=8)
    rules.add_column("Rule", overflow="fold")
    for ability in configuration.ability_names:
        for action, rule in configuration.abilities[ability]:
            rules.add_row(ability, _format_action(action), rule.repr())
    for action, rule in configuration.global_actions:
        rules.add_row("[dim]*[/dim]", _format_action(action), rule.repr())
    console.print(rules)

    if configuration.overrides:
        console.print(f"  [dim]Overrides:[/dim] {', '.join(sorted(configuration.overrides))}")


def _print_header(console: Console, ability: str, allowed: bool) -> None:
    header = Text()
    header.append(" Ability ", style="bold")
    header.append(ability, style="bold cyan")
    header.append(" │ ", style="dim")
    if allowed:
        header.append("ALLOWED", style="bold green")
    else:
        header.append("DENIED", style="bold red")
    console.print(Panel(header, expand=False))


def _result_icon(entry: TraceEntry) -> str:
    if entry.passed is None:
        return ICON_SKIPPED
    return ICON_ALLOWED if entry.passed else ICON_DENIED


def _format_action(action: Action) -> str:
    if action is Action.ENABLE:
        return "[green]enable[/green]"
    return "[yellow]prevent[/yellow]"


def _format_score(score: float) -> str:
    if score == int(score):
        return str(int(score))
    return f"{score:.2f}"
