"""Typer-based CLI for callscope call-graph analysis."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from . import __version__, config, config_manager
from .analysis import GraphSnapshot, ProjectAnalyzer
from .errors import CallscopeError
from .graph_export import export_dot, export_json
from .mermaid import render_sequence
from .models import CallersTreeNode, CodeItem, ItemKind
from .sequence import apply_edits
from .sequence_edits import load_edit_state

console = Console()
logger = logging.getLogger(__name__)

app = typer.Typer(
    help="🦀 callscope: static call graphs, impact analysis and sequence diagrams for Rust.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(
    help="⚙️  Configuration: show and change analysis settings.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(config_app, name="config")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"callscope v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log analysis progress and skipped files."),
):
    """callscope: best-effort call graph analysis without a compiler."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


# ===================================================================
# Helpers
# ===================================================================

def _analyze(project_path: Path) -> GraphSnapshot:
    settings = config_manager.load_settings()
    try:
        return ProjectAnalyzer(settings).analyze(project_path)
    except CallscopeError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)


def _resolve_target(snapshot: GraphSnapshot, query: str) -> CodeItem:
    matches = snapshot.find_items(query)
    if not matches:
        typer.echo(f"❌ Symbol '{query}' not found in project.", err=True)
        raise typer.Exit(code=1)
    if len(matches) > 1:
        typer.echo(f"❌ Symbol '{query}' is ambiguous. Use a full id:", err=True)
        for item in matches:
            typer.echo(f"   - {item.id}", err=True)
        raise typer.Exit(code=1)
    return matches[0]


def _parse_depths(values: List[str]) -> Dict[str, int]:
    depths: Dict[str, int] = {}
    for value in values:
        name, sep, number = value.rpartition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Expected ID=DEPTH, got '{value}'")
        try:
            depths[name] = int(number)
        except ValueError:
            raise typer.BadParameter(f"Depth must be an integer in '{value}'")
    return depths


def _add_tree(branch: Tree, node: CallersTreeNode) -> None:
    for child in node.children:
        caller = child.caller
        label = f"{caller.name} [dim]{caller.call_site.file}:{caller.call_site.line}[/dim]"
        _add_tree(branch.add(label), child)


# ===================================================================
# Commands
# ===================================================================

@app.command("analyze")
def analyze(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to a Rust project."),
    as_json: bool = typer.Option(False, "--json", help="Print the full snapshot as JSON."),
):
    """Extract entities and call edges and print a summary."""
    snapshot = _analyze(project_path)
    if as_json:
        typer.echo(json.dumps(snapshot.to_dict(), indent=2))
        return

    counts: Dict[str, int] = {}
    for item in snapshot.items:
        counts[item.kind.value] = counts.get(item.kind.value, 0) + 1

    table = Table(title="Analysis Summary", show_header=True, show_lines=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Files", str(len(snapshot.files)))
    for kind in ItemKind:
        if counts.get(kind.value):
            table.add_row(f"Entities: {kind.value}", str(counts[kind.value]))
    table.add_row("Call edges", str(len(snapshot.edges)))
    table.add_row("Typed edges", str(sum(1 for e in snapshot.edges if e.typed)))
    table.add_row("Test links", str(len(snapshot.test_edges)))
    table.add_row("Unresolved", str(len(snapshot.unresolved)))
    table.add_row("External calls", str(len(snapshot.external)))
    console.print(table)


@app.command("callers")
def callers(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to a Rust project."),
    symbol: str = typer.Argument(..., help="Entity id, Type::method or function name."),
    tree: bool = typer.Option(False, "--tree", help="Expand callers of callers."),
    depth: Optional[int] = typer.Option(None, min=1, help="Maximum tree depth."),
):
    """Show who calls SYMBOL."""
    snapshot = _analyze(project_path)
    target = _resolve_target(snapshot, symbol)

    if tree:
        root = Tree(f"[bold]{target.qualified_name}[/bold]")
        _add_tree(root, snapshot.callers_tree(target.id, depth))
        console.print(root)
        return

    found = snapshot.callers(target.id)
    if not found:
        typer.echo(f"No callers of {target.qualified_name}.")
        return
    table = Table(title=f"Callers of {target.qualified_name}")
    table.add_column("Caller", style="cyan")
    table.add_column("Declared")
    table.add_column("Call site")
    for caller in found:
        table.add_row(
            caller.name,
            f"{caller.file}:{caller.line}",
            f"{caller.call_site.file}:{caller.call_site.line}",
        )
    console.print(table)


@app.command("impact")
def impact(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to a Rust project."),
    symbol: str = typer.Argument(..., help="Entity id, Type::method or function name."),
    depth: Optional[int] = typer.Option(None, min=1, help="Maximum number of caller hops."),
    tests: bool = typer.Option(True, "--tests/--no-tests", help="Include affected tests."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
):
    """Transitive callers of SYMBOL and the tests that reach it."""
    snapshot = _analyze(project_path)
    target = _resolve_target(snapshot, symbol)
    result = snapshot.impact(target.id, max_depth=depth, include_tests=tests)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    color = "red" if result.has_cycle else "green"
    console.print(
        Panel.fit(
            f"[bold]{result.total_affected}[/bold] affected, max depth {result.max_depth}"
            + (f", [red]{len(result.cycle_nodes)} cycle node(s)[/red]" if result.has_cycle else ""),
            title=f"[bold]Impact of {target.qualified_name}[/bold]",
            border_style=color,
        )
    )

    table = Table(show_header=True, show_lines=False)
    table.add_column("Level", justify="right")
    table.add_column("Caller", style="cyan")
    table.add_column("Call site")
    for caller in result.direct_impact:
        table.add_row("0", caller.name, f"{caller.call_site.file}:{caller.call_site.line}")
    for level in sorted(result.indirect_impact):
        for caller in result.indirect_impact[level]:
            table.add_row(str(level), caller.name, f"{caller.call_site.file}:{caller.call_site.line}")
    if result.total_affected:
        console.print(table)

    if tests and (result.direct_tests or result.indirect_tests):
        console.print("\n[bold]Affected tests[/bold]")
        for test in result.direct_tests:
            console.print(f"  • {test.name} [dim](direct)[/dim]")
        for test in result.indirect_tests:
            console.print(f"  • {test.name} [dim](via {test.source_item})[/dim]")


@app.command("metrics")
def metrics(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to a Rust project."),
    paths: bool = typer.Option(False, "--paths", help="Also list critical paths."),
    clusters: bool = typer.Option(False, "--clusters", help="Also list directory clusters."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
):
    """Graph statistics: degrees, isolated nodes and cycles."""
    snapshot = _analyze(project_path)
    stats = snapshot.metrics()

    if as_json:
        payload = stats.to_dict()
        if paths:
            payload["critical_paths"] = snapshot.critical_paths()
        if clusters:
            payload["clusters"] = [c.to_dict() for c in snapshot.clusters()]
        typer.echo(json.dumps(payload, indent=2))
        return

    table = Table(title="Graph Metrics", show_header=True, show_lines=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Nodes", str(stats.node_count))
    table.add_row("Edges", str(stats.edge_count))
    table.add_row("Average degree", f"{stats.avg_degree:.2f}")
    table.add_row("Max in-degree", f"{stats.max_in_degree.count} ({stats.max_in_degree.node_id or '-'})")
    table.add_row("Max out-degree", f"{stats.max_out_degree.count} ({stats.max_out_degree.node_id or '-'})")
    table.add_row("Isolated nodes", str(len(stats.isolated_nodes)))
    table.add_row("Cycles", str(stats.cycle_count))
    console.print(table)

    if paths:
        console.print("\n[bold]Critical paths[/bold]")
        for path in snapshot.critical_paths():
            console.print("  " + " → ".join(node.split("::")[-2] for node in path))
    if clusters:
        console.print("\n[bold]Clusters[/bold]")
        for cluster in snapshot.clusters():
            console.print(f"  {cluster.label}: {len(cluster.nodes)} node(s)")


@app.command("sequence")
def sequence(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to a Rust project."),
    symbol: str = typer.Argument(..., help="Root function: entity id, Type::method or name."),
    default_depth: Optional[int] = typer.Option(None, min=0, help="Expansion depth for callees without an override."),
    depth_for: List[str] = typer.Option([], "--depth-for", help="Per-function depth, ID=DEPTH (repeatable)."),
    edits: Optional[Path] = typer.Option(None, "--edits", help="JSON file with saved diagram edits."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write Mermaid text to a file."),
    list_functions: bool = typer.Option(False, "--list-functions", help="List expandable functions and exit."),
):
    """Generate a Mermaid sequence diagram rooted at SYMBOL."""
    snapshot = _analyze(project_path)
    root = _resolve_target(snapshot, symbol)

    if list_functions:
        table = Table(title=f"Functions reachable from {root.qualified_name}")
        table.add_column("Function", style="cyan")
        table.add_column("Id")
        table.add_column("Expandable", justify="right")
        for setting in snapshot.depth_settings(root.id):
            table.add_row(setting.display_name, setting.function_id, str(setting.max_expandable_depth))
        console.print(table)
        return

    diagram = snapshot.sequence(root.id, _parse_depths(depth_for), default_depth)
    edit_state = load_edit_state(edits) if edits is not None else None
    text = render_sequence(apply_edits(diagram, edit_state))

    if output is not None:
        output.write_text(text, encoding="utf-8")
        typer.echo(f"Wrote sequence diagram to {output}")
    else:
        typer.echo(text)


@app.command("unresolved")
def unresolved(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to a Rust project."),
    reason: Optional[str] = typer.Option(None, help="Only show reasons starting with this code."),
    limit: int = typer.Option(50, min=1, help="Maximum rows to show."),
):
    """List method calls whose receiver type could not be inferred."""
    snapshot = _analyze(project_path)
    rows = [u for u in snapshot.unresolved if reason is None or str(u.reason).startswith(reason)]
    if not rows:
        typer.echo("No unresolved calls.")
        return

    table = Table(title=f"Unresolved calls ({len(rows)})")
    table.add_column("Location")
    table.add_column("Receiver", style="cyan")
    table.add_column("Method")
    table.add_column("Reason", style="yellow")
    for entry in rows[:limit]:
        table.add_row(f"{entry.file}:{entry.line}", entry.receiver_text, entry.method, str(entry.reason))
    console.print(table)


@app.command("export")
def export(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to a Rust project."),
    fmt: str = typer.Option("json", "--format", "-f", help="Export format: json or dot."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
    focus: str = typer.Option("", help="Restrict a DOT export to edges touching this symbol."),
):
    """Export the call graph to JSON or Graphviz DOT."""
    fmt = fmt.lower()
    if fmt not in {"json", "dot"}:
        raise typer.BadParameter("Format must be one of: json, dot")

    snapshot = _analyze(project_path)
    if output is None:
        output = Path.cwd() / f"{project_path.resolve().name}_callgraph.{fmt}"

    if fmt == "json":
        export_json(snapshot, output)
    else:
        export_dot(snapshot, output, focus=focus)
    typer.echo(f"Exported call graph to {output}")


# ===================================================================
# Config sub-commands
# ===================================================================

@config_app.command("show")
def config_show():
    """Print the effective settings."""
    settings = config_manager.load_settings()
    table = Table(title=f"Settings ({config.CONFIG_FILE})")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for section, values in settings.to_sections().items():
        for key, value in values.items():
            table.add_row(f"{section}.{key}", str(value))
    console.print(table)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting as SECTION.KEY, e.g. analysis.max_depth."),
    value: str = typer.Argument(..., help="New value."),
):
    """Change one setting in the config file."""
    section, _, name = key.partition(".")
    try:
        config_manager.save_setting(section, name, value)
    except KeyError:
        raise typer.BadParameter(f"Unknown setting '{key}'. Known: {', '.join(config_manager.setting_keys())}")
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    typer.echo(f"Set {key} = {value}")


if __name__ == "__main__":
    app()
