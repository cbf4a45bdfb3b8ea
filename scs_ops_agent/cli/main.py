"""Main CLI entry point for SCS Ops Agent."""

import click
import json
import sys
from pathlib import Path
from typing import Dict, Any

import yaml
from tabulate import tabulate

from scs_ops_agent import __version__
from scs_ops_agent.exceptions import ScsOpsError, ValidationError, format_error_response
from scs_ops_agent.logging_config import setup_logging
from scs_ops_agent.models.instance import DesiredSpec, InstanceHandle
from scs_ops_agent.services.planner import plan_steps


def load_document(path: Path) -> Dict[str, Any]:
    """Load a YAML or JSON mapping from disk."""
    with open(path, 'r') as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValidationError(f"{path} must contain a mapping at the top level")

    return data


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, verbose):
    """SCS Ops Agent CLI - Validate and plan SCS instance changes."""

    if verbose:
        setup_logging()

    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose


@cli.command()
@click.argument('desired_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(desired_file):
    """Validate a desired-state file."""

    try:
        spec = DesiredSpec.from_config(load_document(desired_file))
    except (ScsOpsError, yaml.YAMLError) as e:
        click.echo(f"❌ Invalid desired spec: {e}", err=True)
        raise click.Abort()

    click.echo(f"✅ {desired_file} is valid")
    click.echo(f"   Instance: {spec.instance_name}")
    click.echo(f"   Topology: {spec.cluster_type.value}")
    click.echo(f"   Node Type: {spec.node_type}")
    click.echo(f"   Shards: {spec.shard_num}")


@cli.command()
@click.argument('desired_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument('observed_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--format', '-f', type=click.Choice(['table', 'json']), default='table',
              help='Output format')
def plan(desired_file, observed_file, format):
    """Show the steps that would bring an instance to the desired state.

    OBSERVED_FILE is an instance detail document as returned by the control
    plane. Nothing is sent to the remote side.
    """

    try:
        spec = DesiredSpec.from_config(load_document(desired_file))
        detail = load_document(observed_file)
        handle = InstanceHandle.from_detail(detail.get('instanceId', ''), detail)
        steps = plan_steps(handle, spec)
    except (ScsOpsError, yaml.YAMLError) as e:
        if format == 'json':
            click.echo(json.dumps(format_error_response(e), indent=2), err=True)
        else:
            click.echo(f"❌ Failed to plan: {e}", err=True)
        raise click.Abort()

    if format == 'json':
        click.echo(json.dumps({
            'instance_id': handle.instance_id,
            'steps': [
                {'kind': step.kind.value, 'params': step.params}
                for step in steps
            ]
        }, indent=2))
        return

    if not steps:
        click.echo(f"✅ Instance {handle.instance_id} already matches {desired_file}")
        return

    click.echo(f"Plan for instance {handle.instance_id} ({handle.cluster_type.value}):")
    rows = [
        [index, step.kind.value, ", ".join(f"{k}={v}" for k, v in step.params.items())]
        for index, step in enumerate(steps, start=1)
    ]
    click.echo(tabulate(rows, headers=['#', 'Step', 'Change'], tablefmt='grid'))


@cli.command()
def version():
    """Show version information."""
    click.echo("SCS Ops Agent CLI")
    click.echo(f"Version: {__version__}")


def main():
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\n👋 Operation cancelled by user")
        sys.exit(1)
    except Exception as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
