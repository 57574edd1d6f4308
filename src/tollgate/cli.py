"""
CLI entry point for Tollgate.

This module provides the Typer-based command-line interface for evaluating
YAML policy documents. Condition values are supplied as facts on the command
line, which makes the CLI a what-if tool for rule sets.

Commands:
    check       Decide one or more abilities
    explain     Decide one ability and print its debug trace
    validate    Validate a policy document and summarize it

Architecture Note:
    The CLI is thin: it parses arguments, compiles the document with
    tollgate.policy.loader and delegates rendering to tollgate.report.
"""

import json
import traceback
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from tollgate import __version__
from tollgate.errors import TollgateError
from tollgate.policy.base import Policy
from tollgate.policy.loader import load_policy
from tollgate.report import print_decisions, print_policy_summary, print_trace

# Initialize Typer app with metadata
app = typer.Typer(
    name="tollgate",
    help="Evaluate authorization policy documents.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}

PolicyArgument = Annotated[
    Path,
    typer.Argument(
        help="Path to the policy YAML file.",
        exists=True,
        readable=True,
        resolve_path=True,
    ),
]

FactOption = Annotated[
    Optional[list[str]],
    typer.Option(
        "--fact",
        "-f",
        help="Condition value as NAME=BOOL. Repeatable.",
    ),
]

DebugOption = Annotated[
    bool,
    typer.Option(
        "--debug",
        help="Enable debug mode with full error tracebacks.",
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]tollgate[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    Tollgate - Declarative, cache-aware authorization decisions.

    Compile a YAML policy document and decide abilities against facts.
    """
    pass


@app.command()
def check(
    policy_path: PolicyArgument,
    abilities: Annotated[
        list[str],
        typer.Argument(help="Abilities to decide."),
    ],
    fact: FactOption = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output decisions in JSON format.",
        ),
    ] = False,
    debug: DebugOption = False,
) -> None:
    """
    Decide abilities against the given facts.

    Exits with 0 when every ability is allowed, 1 otherwise.

    Example:
        $ tollgate check vehicle.yaml drive_vehicle --fact owns=true
    """
    facts = _parse_facts(fact)
    policy = _build_context(policy_path, facts, debug)

    try:
        decisions = {ability: policy.allowed(ability) for ability in abilities}
    except TollgateError as e:
        _report_error("Evaluation error", e, debug)
        raise typer.Exit(code=1)

    if json_output:
        print(json.dumps({"decisions": decisions, "allowed": all(decisions.values())}, indent=2))
    else:
        print_decisions(decisions, console=console)

    raise typer.Exit(code=0 if all(decisions.values()) else 1)


@app.command()
def explain(
    policy_path: PolicyArgument,
    ability: Annotated[
        str,
        typer.Argument(help="Ability to decide."),
    ],
    fact: FactOption = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Show the decision context of every step.",
        ),
    ] = False,
    plain: Annotated[
        bool,
        typer.Option(
            "--plain",
            help="Print the trace as plain text lines.",
        ),
    ] = False,
    debug: DebugOption = False,
) -> None:
    """
    Decide one ability and show which steps ran, in order.

    Example:
        $ tollgate explain vehicle.yaml drive_vehicle -f owns=true -f intoxicated=false
    """
    facts = _parse_facts(fact)
    policy = _build_context(policy_path, facts, debug)

    try:
        entries = policy.debug(ability)
        allowed = policy.allowed(ability)
    except TollgateError as e:
        _report_error("Evaluation error", e, debug)
        raise typer.Exit(code=1)

    if plain:
        for entry in entries:
            print(entry)
    else:
        print_trace(entries, ability, allowed, console=console, verbose=verbose)

    raise typer.Exit(code=0 if allowed else 1)


@app.command()
def validate(
    policy_path: PolicyArgument,
    debug: DebugOption = False,
) -> None:
    """
    Validate a policy document and print its conditions and rules.

    Example:
        $ tollgate validate vehicle.yaml
    """
    policy_type = _load(policy_path, debug)
    print_policy_summary(policy_type, console=console)
    console.print(f"[green]✓[/green] {policy_path.name} is valid")


# =============================================================================
# Helpers
# =============================================================================


def _parse_facts(values: list[str] | None) -> dict[str, bool]:
    facts: dict[str, bool] = {}
    for value in values or []:
        name, separator, raw = value.partition("=")
        name = name.strip()
        raw = raw.strip().lower()
        if not separator or not name:
            raise typer.BadParameter(f"Expected NAME=BOOL, got {value!r}", param_hint="--fact")
        if raw in _TRUE:
            facts[name] = True
        elif raw in _FALSE:
            facts[name] = False
        else:
            raise typer.BadParameter(f"Not a boolean: {raw!r}", param_hint="--fact")
    return facts


def _load(policy_path: Path, debug: bool) -> type[Policy]:
    try:
        return load_policy(policy_path)
    except TollgateError as e:
        _report_error("Error loading policy", e, debug)
        raise typer.Exit(code=1)


def _build_context(policy_path: Path, facts: dict[str, bool], debug: bool) -> Policy:
    policy_type = _load(policy_path, debug)
    return policy_type(None, facts)


def _report_error(title: str, error: TollgateError, debug: bool) -> None:
    console.print(f"[red]{title}: {error.message}[/red]")
    if error.suggestion:
        console.print(f"[dim]{error.suggestion}[/dim]")
    if debug:
        console.print(f"[dim]{traceback.format_exc()}[/dim]")


if __name__ == "__main__":
    app()
