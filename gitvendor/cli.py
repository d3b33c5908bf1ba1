#!/usr/bin/env python3

import click

from gitvendor import __version__
from gitvendor.commands.annotate import annotate_handler
from gitvendor.commands.check_updates import check_updates_handler, diff_handler
from gitvendor.commands.sync import sync_handler
from gitvendor.commands.update import update_handler
from gitvendor.commands.validate import validate_handler
from gitvendor.commands.verify import verify_handler


@click.group()
@click.version_option(__version__, prog_name='git-vendor')
@click.option('--project-dir', '-C', 'project_dir', default='.',
              type=click.Path(exists=True, file_okay=False),
              help='Project root holding .git-vendor/ (default: current directory)')
@click.pass_context
def cli(ctx, project_dir):
    """git-vendor - Vendor files from other git repositories, pinned to commits.

    Tracks vendored paths in .git-vendor/vendor.yml, pins them in
    vendor.lock and records provenance in commit trailers and git notes.
    """
    ctx.ensure_object(dict)
    ctx.obj['root'] = project_dir


# Materialization
cli.add_command(sync_handler)
cli.add_command(update_handler)

# Inspection
cli.add_command(check_updates_handler)
cli.add_command(diff_handler)
cli.add_command(validate_handler)
cli.add_command(verify_handler)

# Provenance
cli.add_command(annotate_handler)


def main():
    cli()

if __name__ == "__main__":
    main()
