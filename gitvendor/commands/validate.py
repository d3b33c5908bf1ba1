"""
Validate command for git-vendor.

Runs every static check on vendor.yml and reports all findings at once,
instead of stopping at the first one the way sync does.
"""

from typing import List

import click

from ..cli_utils import add_common_options, echo_progress, emit_json, handle_errors, project_root
from ..config import configure_logging, load_config
from ..domain.vendor import PathConflict, VendorConfig
from ..errors import ConfigError, ConflictError, UnsafePathError
from ..infra.yaml_store import StateStore
from ..services.validation_service import (
    ConflictValidator,
    config_problems,
    nested_destinations,
    validate_dest_path,
)


def unsafe_paths(config: VendorConfig) -> List[str]:
    """One message per unsafe destination across all mappings."""
    messages = []
    for owner, dest in ConflictValidator().expand(config):
        try:
            validate_dest_path(dest)
        except UnsafePathError as e:
            messages.append(f"{owner.vendor}@{owner.ref} ({owner.source}): {e}")
    return messages


@click.command('validate')
@add_common_options('verbose', 'json')
@click.pass_context
@handle_errors
def validate_handler(ctx: click.Context, verbose: bool, output_json: bool):
    """
    Check vendor.yml for configuration errors, unsafe destinations and
    destination conflicts. Destinations nested inside another mapping's
    destination are reported as warnings.

    Exits 66 on configuration errors and 70 on unsafe or conflicting
    destinations.
    """
    configure_logging(load_config(), verbose)
    vendor_config = StateStore(project_root(ctx)).load_config()

    problems = config_problems(vendor_config)
    unsafe = unsafe_paths(vendor_config)
    conflicts: List[PathConflict] = ConflictValidator().find_conflicts(vendor_config)
    nested = nested_destinations(vendor_config)

    if output_json:
        emit_json({
            'type': 'validation',
            'valid': not (problems or unsafe or conflicts),
            'problems': problems,
            'unsafe_paths': unsafe,
            'conflicts': [c.to_dict() for c in conflicts],
            'nested': [{'dest': outer, 'inner': inner} for outer, inner in nested.items()],
        })
    else:
        for problem in problems:
            click.echo(f"config: {problem}")
        for message in unsafe:
            click.echo(f"unsafe: {message}")
        for conflict in conflicts:
            click.echo(f"conflict: {conflict.describe()}")
        for outer, inner in nested.items():
            click.echo(f"warning: {outer} contains {', '.join(inner)}; "
                       f"sync replaces {outer} around them")

    if problems:
        raise ConfigError(f"{len(problems)} configuration problem(s)", problems=problems)
    if unsafe or conflicts:
        raise ConflictError(
            f"{len(unsafe)} unsafe path(s), {len(conflicts)} conflict(s)",
            conflicts=conflicts,
        )
    if not output_json:
        echo_progress(f"vendor.yml is valid ({len(vendor_config.vendors)} vendor(s))")
