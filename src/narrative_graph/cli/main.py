#!/usr/bin/env python3
"""
narrative-graph CLI - serve the API, check edges and validate stories
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from narrative_graph.settings import settings

console = Console()

SEVERITY_STYLE = {"critical": "bold red", "high": "red", "medium": "yellow", "low": "dim"}


def _configure_logging() -> None:
    level = (settings.log_level or "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _graph_store():
    from narrative_graph.server import build_graph_store

    try:
        return build_graph_store(settings)
    except RuntimeError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)


def _violation_table(title: str, violations: list[dict]) -> Table:
    table = Table(title=title)
    table.add_column("Severity", width=9)
    table.add_column("Category", style="cyan", width=20)
    table.add_column("Description", style="white", overflow="fold")
    table.add_column("Nodes", style="blue", overflow="fold")
    for v in violations:
        table.add_row(
            f"[{SEVERITY_STYLE.get(v['severity'], '')}]{v['severity']}[/]",
            v["category"],
            v["description"],
            ", ".join(v["affected_node_ids"]),
        )
    return table


@click.group()
def cli():
    """Narrative graph - consistency validation for branching stories"""
    pass


@cli.command()
def version():
    """Print the package version"""
    from narrative_graph import __version__

    click.echo(__version__)


@cli.command()
@click.option("--host", default=None, help="Bind host (defaults to settings)")
@click.option("--port", default=None, type=int, help="Bind port (defaults to settings)")
def serve(host, port):
    """Run the HTTP API"""
    _configure_logging()
    from narrative_graph.server import main

    main(host=host, port=port)


@cli.command("check-edge")
@click.argument("from_type")
@click.argument("relation_type")
@click.argument("to_type")
def check_edge(from_type, relation_type, to_type):
    """Check whether RELATION_TYPE may connect FROM_TYPE to TO_TYPE"""
    from narrative_graph.graph import check_compatibility

    verdict = check_compatibility(from_type, to_type, relation_type)
    if verdict.valid:
        console.print(f"[green]✓[/green] {from_type} -[{relation_type}]-> {to_type} is allowed")
        return
    console.print(f"[red]✗[/red] {verdict.reason}")
    sys.exit(1)


@cli.command()
@click.option("--relation", "relation_type", default=None, help="Only show this relationship type")
def compatibility(relation_type):
    """Show the relationship compatibility table"""
    from narrative_graph.graph import allowed_pairs

    table = Table(title="Allowed relationships")
    table.add_column("From", style="cyan")
    table.add_column("Relationship", style="magenta")
    table.add_column("To", style="green")
    for src, rel, dst in allowed_pairs():
        if relation_type and rel.value != relation_type.upper():
            continue
        table.add_row(src.value, rel.value, dst.value)
    console.print(table)


@cli.command()
@click.argument("story_id")
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON")
def validate(story_id, as_json):
    """Validate a story's narrative consistency"""
    _configure_logging()
    from narrative_graph.consistency import ConsistencyValidator
    from narrative_graph.errors import NarrativeGraphError

    store = _graph_store()
    validator = ConsistencyValidator(store, check_timeout=settings.validation_check_timeout_seconds)
    try:
        result = asyncio.run(validator.validate_story(story_id)).to_dict()
    except NarrativeGraphError as e:
        console.print(f"[red]{e.message}[/red]")
        sys.exit(1)
    finally:
        store.close()

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    status = "[green]consistent[/green]" if result["is_consistent"] else "[red]inconsistent[/red]"
    console.print(
        Panel(
            f"Story {story_id} is {status}\n"
            f"Confidence: {result['confidence_score']:.2f}"
            + ("\n[yellow]Partial result: some checks did not complete[/yellow]" if result["partial"] else ""),
            title="Consistency",
        )
    )
    if result["violations"]:
        console.print(_violation_table("Violations", result["violations"]))
    if result["warnings"]:
        console.print(_violation_table("Warnings", result["warnings"]))

    checks = Table(title="Checks")
    checks.add_column("Check", style="cyan")
    checks.add_column("Status")
    checks.add_column("Findings", justify="right")
    for c in result["checks"]:
        checks.add_row(c["name"], c["status"], str(c["violation_count"]))
    console.print(checks)


@cli.command()
@click.argument("story_id")
def report(story_id):
    """Print a consistency report for a story"""
    _configure_logging()
    from narrative_graph.consistency import ConsistencyValidator
    from narrative_graph.errors import NarrativeGraphError

    store = _graph_store()
    validator = ConsistencyValidator(store, check_timeout=settings.validation_check_timeout_seconds)
    try:
        rep = asyncio.run(validator.generate_report(story_id)).to_dict()
    except NarrativeGraphError as e:
        console.print(f"[red]{e.message}[/red]")
        sys.exit(1)
    finally:
        store.close()

    summary = rep["summary"]
    console.print(
        Panel(
            f"Violations: {summary['total_violations']} "
            f"(critical: {summary['critical_violations']})\n"
            f"Warnings: {summary['total_warnings']}\n"
            f"Score: {summary['consistency_score']:.2f}",
            title=f"Report for {story_id}",
        )
    )
    if rep["top_violations"]:
        console.print(_violation_table("Top violations", rep["top_violations"]))
    for rec in rep["recommendations"]:
        console.print(f"• {rec}")


@cli.command("validate-structure")
@click.option("--max-cycle-length", default=10, type=click.IntRange(1, 10), help="Longest cycle to look for")
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON")
def validate_structure(max_cycle_length, as_json):
    """Audit the stored graph for orphans, cycles and disallowed edges"""
    _configure_logging()
    from narrative_graph.errors import NarrativeGraphError
    from narrative_graph.graph import NarrativeGraphService

    store = _graph_store()
    try:
        result = NarrativeGraphService(store).validate_structure(max_cycle_length=max_cycle_length)
    except NarrativeGraphError as e:
        console.print(f"[red]{e.message}[/red]")
        sys.exit(1)
    finally:
        store.close()

    if as_json:
        click.echo(json.dumps(result, indent=2))
    else:
        status = "[green]valid[/green]" if result["is_valid"] else "[red]invalid[/red]"
        console.print(Panel("\n".join([f"Graph structure is {status}", *result["issues"]]), title="Structure"))
        if result["invalid_relationships"]:
            table = Table(title="Disallowed relationships")
            table.add_column("Relationship", style="blue", overflow="fold")
            table.add_column("Edge", style="magenta")
            table.add_column("Reason", style="white", overflow="fold")
            for edge in result["invalid_relationships"]:
                table.add_row(
                    edge["id"] or "-",
                    f"{edge['from_type']} -[{edge['type']}]-> {edge['to_type']}",
                    edge["reason"] or "",
                )
            console.print(table)
    if not result["is_valid"]:
        sys.exit(1)


@cli.group()
def rules():
    """Manage consistency rules"""
    pass


@rules.command("list")
def rules_list():
    """List enabled rules, newest first"""
    _configure_logging()
    from narrative_graph.consistency import RuleRegistry

    store = _graph_store()
    try:
        enabled = RuleRegistry(store).list_enabled_rules()
    finally:
        store.close()

    if not enabled:
        console.print("[yellow]No enabled rules[/yellow]")
        return

    table = Table(title="Consistency rules")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Category", style="magenta")
    table.add_column("Created", style="green")
    for rule in enabled:
        table.add_row(rule.id, rule.name, rule.category.value, rule.created_at.strftime("%Y-%m-%d %H:%M"))
    console.print(table)


@rules.command("add")
@click.option("--name", required=True)
@click.option("--category", required=True, type=click.Choice(
    ["character_trait", "behavior_pattern", "timeline_rule", "state_rule"]
))
@click.option("--logic", "rule_logic", required=True, help="Rule expression (stored, not evaluated)")
@click.option("--description", default="")
@click.option("--disabled", is_flag=True, help="Store the rule disabled")
def rules_add(name, category, rule_logic, description, disabled):
    """Register a consistency rule"""
    _configure_logging()
    from narrative_graph.consistency import RuleRegistry
    from narrative_graph.errors import ValidationError

    store = _graph_store()
    try:
        rule = RuleRegistry(store).create_rule(
            name=name,
            description=description,
            category=category,
            rule_logic=rule_logic,
            enabled=not disabled,
        )
    except ValidationError as e:
        console.print(f"[red]{e.message}[/red]")
        sys.exit(1)
    finally:
        store.close()
    console.print(f"[green]✓[/green] Created rule {rule.id}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
