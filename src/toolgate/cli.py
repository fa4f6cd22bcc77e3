"""
CLI entry point for Toolgate.

This module provides the Typer-based command-line interface for Toolgate.

Commands:
    check path|domain|command   Ask the policy engine for a single decision
    tools                       List the tools the policy enables
    run                         Execute one tool call through the registry

Exit codes:
    0   Allowed / tool succeeded
    1   Denied / tool failed or unavailable
    2   Policy could not be loaded

Architecture Note:
    The CLI is thin: it loads the policy, builds the registry
    and delegates. The same objects can be used programmatically.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from toolgate import __version__
from toolgate.errors import ToolgateError
from toolgate.policy import PolicyEngine
from toolgate.schema import Policy, PolicyDecision, load_policy
from toolgate.tools import ToolContext, ToolOutput, build_registry

EXIT_OK = 0
EXIT_DENIED = 1
EXIT_CONFIG = 2

app = typer.Typer(
    name="toolgate",
    help="Check agent tool actions against an authorization policy.",
    add_completion=False,
    no_args_is_help=True,
)
check_app = typer.Typer(
    help="Ask the policy engine for a single decision.",
    no_args_is_help=True,
)
app.add_typer(check_app, name="check")

console = Console()
err_console = Console(stderr=True)

PolicyOption = Annotated[
    Path,
    typer.Option(
        "--policy",
        "-p",
        help="Path to the policy YAML file.",
        resolve_path=True,
    ),
]
WorkspaceOption = Annotated[
    Optional[str],
    typer.Option(
        "--workspace",
        "-w",
        help="Override the policy's workspace directory.",
    ),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output results in JSON format."),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]toolgate[/bold] version {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich; DEBUG shows every decision."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log every policy decision."),
    ] = False,
) -> None:
    """
    Toolgate - Policy gate for agent tools.

    Every path, domain and command an agent's tools touch is checked
    against a deny-wins, default-deny policy.
    """
    configure_logging(verbose)


def _load(policy_path: Path, workspace: str | None) -> Policy:
    """Load the policy or exit with EXIT_CONFIG."""
    try:
        return load_policy(policy_path, workspace=workspace)
    except FileNotFoundError:
        err_console.print(f"[red]Policy file not found: {policy_path}[/red]")
    except ToolgateError as e:
        err_console.print(f"[red]Error loading policy: {e}[/red]")
    raise typer.Exit(code=EXIT_CONFIG)


def _report_decision(kind: str, tool: str, value: str, decision: PolicyDecision, as_json: bool) -> None:
    if as_json:
        console.print_json(
            json.dumps({"kind": kind, "tool": tool, "value": value, **decision.model_dump()})
        )
    elif decision.allowed:
        console.print(f"[green]ALLOWED[/green] {tool} {kind} {value!r}: {decision.reason}")
    else:
        console.print(f"[red]DENIED[/red] {tool} {kind} {value!r}: {decision.reason}")
    raise typer.Exit(code=EXIT_OK if decision.allowed else EXIT_DENIED)


@check_app.command("path")
def check_path(
    tool: Annotated[str, typer.Argument(help="Tool name, e.g. read.")],
    path: Annotated[str, typer.Argument(help="Path to check.")],
    policy_path: PolicyOption = Path("policy.yaml"),
    workspace: WorkspaceOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Check a filesystem path for a tool.

    Example:
        $ toolgate check path read ./src/main.py --policy policy.yaml
    """
    engine = PolicyEngine(_load(policy_path, workspace))
    _report_decision("path", tool, path, engine.check_path(tool, path), json_output)


@check_app.command("domain")
def check_domain(
    tool: Annotated[str, typer.Argument(help="Tool name, e.g. web_fetch.")],
    domain: Annotated[str, typer.Argument(help="Domain or http(s) URL to check.")],
    policy_path: PolicyOption = Path("policy.yaml"),
    json_output: JsonOption = False,
) -> None:
    """Check a network domain (or the host of a URL) for a tool."""
    engine = PolicyEngine(_load(policy_path, None))
    if "://" in domain:
        decision = engine.check_url(tool, domain)
    else:
        decision = engine.check_domain(tool, domain)
    _report_decision("domain", tool, domain, decision, json_output)


@check_app.command("command")
def check_command(
    tool: Annotated[str, typer.Argument(help="Tool name, e.g. bash.")],
    command: Annotated[str, typer.Argument(help="Whole command string to check.")],
    policy_path: PolicyOption = Path("policy.yaml"),
    json_output: JsonOption = False,
) -> None:
    """Check a shell command string for a tool."""
    engine = PolicyEngine(_load(policy_path, None))
    _report_decision("command", tool, command, engine.check_command(tool, command), json_output)


@app.command()
def tools(
    policy_path: PolicyOption = Path("policy.yaml"),
    workspace: WorkspaceOption = None,
    json_output: JsonOption = False,
) -> None:
    """List the tools the policy enables, as the agent's planner sees them."""
    try:
        registry = build_registry(_load(policy_path, workspace))
    except ToolgateError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=EXIT_CONFIG)

    definitions = registry.definitions()
    if json_output:
        console.print_json(json.dumps([d.to_dict() for d in definitions]))
        return

    if not definitions:
        console.print("[yellow]No tools are enabled by this policy.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan")
    table.add_column("Parameters")
    table.add_column("Description")
    for definition in definitions:
        properties = definition.parameters.get("properties", {})
        required = set(definition.parameters.get("required", []))
        params = ", ".join(p if p in required else f"[dim]{p}?[/dim]" for p in properties)
        table.add_row(definition.name, params, definition.description)
    console.print(table)


def _parse_args(pairs: list[str], args_json: str | None) -> dict[str, Any]:
    """Merge --args-json and key=value pairs (pairs win)."""
    args: dict[str, Any] = {}
    if args_json:
        try:
            parsed = json.loads(args_json)
        except json.JSONDecodeError as e:
            raise typer.BadParameter(f"not valid JSON: {e}", param_hint="--args-json") from e
        if not isinstance(parsed, dict):
            raise typer.BadParameter("must be a JSON object", param_hint="--args-json")
        args.update(parsed)
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected key=value, got {pair!r}", param_hint="--arg")
        args[key] = value
    return args


@app.command()
def run(
    tool: Annotated[str, typer.Argument(help="Tool to execute.")],
    arg: Annotated[
        Optional[list[str]],
        typer.Option("--arg", "-a", help="Tool argument as key=value (repeatable)."),
    ] = None,
    args_json: Annotated[
        Optional[str],
        typer.Option("--args-json", help="Tool arguments as a JSON object."),
    ] = None,
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", help="Timeout in seconds for blocking actions."),
    ] = None,
    policy_path: PolicyOption = Path("policy.yaml"),
    workspace: WorkspaceOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Execute one tool call under the policy.

    Example:
        $ toolgate run read --arg path=README.md --policy policy.yaml
    """
    tool_args = _parse_args(arg or [], args_json)
    try:
        registry = build_registry(_load(policy_path, workspace))
    except ToolgateError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=EXIT_CONFIG)

    output = registry.execute(tool, tool_args, ToolContext(timeout_seconds=timeout))
    _display_output(tool, output, json_output)
    raise typer.Exit(code=EXIT_OK if output.success else EXIT_DENIED)


def _display_output(tool: str, output: ToolOutput, as_json: bool) -> None:
    """Display a tool result."""
    if as_json:
        console.print_json(
            json.dumps(
                {
                    "tool": tool,
                    "success": output.success,
                    "denied": output.is_denied,
                    "data": output.data,
                    "error": output.error,
                    "metadata": output.metadata,
                },
                default=str,
            )
        )
        return

    if output.success:
        data = output.data
        if isinstance(data, str):
            console.print(data, markup=False, highlight=False)
        else:
            console.print_json(json.dumps(data, default=str))
    elif output.is_denied:
        err_console.print(f"[yellow]{output.error}[/yellow]")
    else:
        err_console.print(f"[red]{output.error}[/red]")


if __name__ == "__main__":
    app()
