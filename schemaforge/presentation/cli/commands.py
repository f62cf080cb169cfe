"""CLI commands using Click framework."""

import json
import logging
import os
from pathlib import Path

import click

from schemaforge.application.dtos.generation_dto import GenerationRequest
from schemaforge.domain.errors import AggregateError, SchemaForgeError, UnconfirmedBreakingChange
from schemaforge.domain.services.constraint_parser import format_field_definition, parse_field_definition
from schemaforge.infrastructure.di_container import DIContainer
from schemaforge.infrastructure.serialization.snapshot_codec import graph_to_document, plan_to_json


@click.group()
@click.version_option(version="0.1.0")
@click.option('--verbose', '-v', count=True, help='Increase log verbosity (-v info, -vv debug)')
@click.pass_context
def cli(ctx, verbose):
    """schemaforge - resolve schema configuration and plan migrations."""
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = getattr(logging, os.getenv("SCHEMAFORGE_LOG_LEVEL", "WARNING").upper(), logging.WARNING)
    logging.basicConfig(level=level, format='%(asctime)s - %(levelname)s - %(message)s')
    ctx.ensure_object(dict)
    ctx.obj.setdefault("container", DIContainer())


def _report(error: SchemaForgeError):
    """Print every issue carried by ``error`` and abort."""
    if isinstance(error, AggregateError):
        click.echo(f"\n❌ {error.message}", err=True)
        for issue in error.issues:
            click.echo(f"   {issue}", err=True)
    else:
        click.echo(f"\n❌ {error}", err=True)
    raise click.Abort()


def _print_plan(plan):
    if plan.is_empty:
        click.echo("   No schema changes")
        return
    for i, op in enumerate(plan.operations, 1):
        icon = "✓" if op.is_safe else "⚠️"
        click.echo(f"   {icon} {i}. {op.describe()} [{op.classification.value}]")
        if op.reason:
            click.echo(f"      Reason: {op.reason}")


@cli.command('parse-field')
@click.argument('definition')
@click.option('--name', '-n', default='field', help='Field name to use')
def parse_field(definition, name):
    """Parse one field definition, e.g. "string, required, max_length=255"."""
    try:
        spec = parse_field_definition(name, definition)
    except SchemaForgeError as e:
        click.echo(f"❌ {e}", err=True)
        click.echo(f"   {definition}", err=True)
        click.echo(f"   {' ' * getattr(e, 'position', 0)}^", err=True)
        raise click.Abort()

    click.echo(f"name:        {spec.name}")
    click.echo(f"type:        {spec.universal_type.value}")
    click.echo(f"constraints: {', '.join(sorted(c.value for c in spec.constraints)) or '-'}")
    if not spec.bounds.is_empty():
        bounds = {k: v for k, v in vars(spec.bounds).items() if v is not None}
        click.echo(f"bounds:      {bounds}")
    if spec.has_default:
        click.echo(f"default:     {spec.default!r}")
    if spec.enum_values:
        click.echo(f"enum:        {list(spec.enum_values)}")
    if spec.reference:
        click.echo(f"references:  {spec.reference}")
    click.echo(f"canonical:   {format_field_definition(spec)}")


@cli.command()
@click.argument('config', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write the resolved graph as JSON')
@click.pass_context
def resolve(ctx, config, output):
    """Resolve and validate a configuration."""
    container = ctx.obj["container"]
    try:
        graph = container.get_resolve_use_case().execute(config)
    except SchemaForgeError as e:
        _report(e)

    click.echo(f"✅ Resolved {len(graph.tables)} table(s), {len(graph.services)} service(s)")
    for table in graph.tables:
        click.echo(f"   • {table.name} ({len(table.fields)} fields) from {table.source}")

    if output:
        Path(output).write_text(
            json.dumps(graph_to_document(graph), indent=2, sort_keys=True, ensure_ascii=False),
            encoding="utf-8",
        )
        click.echo(f"\n💾 Graph saved to: {output}")


@cli.command()
@click.argument('config', type=click.Path(exists=True, dir_okay=False))
@click.option('--snapshot', '-s', type=click.Path(dir_okay=False), help='Snapshot file (default from environment)')
@click.pass_context
def plan(ctx, config, snapshot):
    """Preview the migration plan without touching the snapshot."""
    container = ctx.obj["container"]
    if snapshot:
        container.configure(snapshot_path=snapshot)
    try:
        response = container.get_orchestrator().generate(GenerationRequest(config_path=config, dry_run=True))
    except SchemaForgeError as e:
        _report(e)

    click.echo("📝 Planned changes:")
    _print_plan(response.plan)
    if response.plan.has_breaking_changes:
        click.echo(f"\n⚠️  {len(response.plan.pending_confirmation)} breaking operation(s) need --allow-breaking")


@cli.command()
@click.argument('config', type=click.Path(exists=True, dir_okay=False))
@click.option('--snapshot', '-s', type=click.Path(dir_okay=False), help='Snapshot file (default from environment)')
@click.option('--allow-breaking', is_flag=True, default=False, help='Confirm breaking operations')
@click.option('--output', '-o', type=click.Path(dir_okay=False), default='migration_plan.json',
              help='Output file for the migration plan')
@click.pass_context
def generate(ctx, config, snapshot, allow_breaking, output):
    """Resolve, plan against the last snapshot and record the new snapshot."""
    container = ctx.obj["container"]
    if snapshot:
        container.configure(snapshot_path=snapshot)

    def write_plan(plan):
        try:
            Path(output).write_text(plan_to_json(plan), encoding="utf-8")
        except OSError as e:
            raise click.FileError(output, hint=f"{e.strerror}; snapshot left untouched")

    try:
        response = container.get_orchestrator().generate(
            GenerationRequest(config_path=config, allow_breaking=allow_breaking),
            emit_plan=write_plan,
        )
    except UnconfirmedBreakingChange as e:
        click.echo("📝 Planned changes:", err=True)
        for op in e.plan.pending_confirmation:
            click.echo(f"   ⚠️  {op.describe()}: {op.reason}", err=True)
        click.echo("\n❌ Breaking changes require --allow-breaking", err=True)
        raise click.Abort()
    except SchemaForgeError as e:
        _report(e)

    click.echo("📝 Planned changes:")
    _print_plan(response.plan)

    if response.migration_required:
        click.echo(f"\n💾 Plan saved to: {output}")
    if response.snapshot_written:
        click.echo(f"💾 Snapshot updated: {container.snapshot_path}")
    click.echo("\n✅ Generation complete!")


if __name__ == '__main__':
    cli()
