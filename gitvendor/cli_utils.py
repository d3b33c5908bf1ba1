"""
Common CLI utilities and decorators for consistent command behavior.
"""

import json
import logging
import sys
from functools import wraps
from pathlib import Path
from typing import Any, Dict, Generator, TypeVar

import click

from .exit_codes import INTERRUPTED, CommandError, get_exit_code_for_exception

logger = logging.getLogger(__name__)

T = TypeVar('T')


def emit_json(obj: Dict[str, Any]) -> None:
    """One JSON object per line on stdout."""
    print(json.dumps(obj, ensure_ascii=False), flush=True)


def echo_progress(message: str) -> None:
    """Progress goes to stderr so stdout stays clean for --json."""
    click.echo(message, err=True)


def drain(generator: Generator[str, None, T], output_json: bool = False, prefix: str = "") -> T:
    """
    Run a service generator to completion, reporting its progress lines,
    and return its result.
    """
    while True:
        try:
            message = next(generator)
        except StopIteration as stop:
            return stop.value
        if output_json:
            emit_json({'progress': message.strip()})
        else:
            echo_progress(f"{prefix}{message}")


def handle_errors(func):
    """
    Decorator that provides standard error behavior for commands:
    - CommandError subclasses exit with their own exit code
    - Ctrl+C exits with 130 once the services have stopped their workers
    - With --json, errors are also reported as a JSON object on stdout
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        output_json = kwargs.get('output_json', False)
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            echo_progress("Interrupted by user")
            sys.exit(INTERRUPTED)
        except click.ClickException:
            raise
        except CommandError as e:
            if output_json:
                error_obj = {
                    "error": str(e),
                    "type": type(e).__name__,
                    "exit_code": e.exit_code,
                }
                if hasattr(e, 'succeeded'):
                    error_obj['succeeded'] = e.succeeded
                    error_obj['failed'] = e.failed
                emit_json(error_obj)
            click.echo(f"Error: {e}", err=True)
            sys.exit(e.exit_code)
        except OSError as e:
            logger.debug("Command failed", exc_info=True)
            if output_json:
                emit_json({"error": str(e), "type": type(e).__name__})
            click.echo(f"Error: {e}", err=True)
            sys.exit(get_exit_code_for_exception(e))

    return wrapper


def project_root(ctx: click.Context) -> Path:
    """Project root chosen with the group's --project-dir option."""
    obj = ctx.find_root().obj or {}
    return Path(obj.get('root') or '.').resolve()


# Standard options that many commands share
common_options = {
    'verbose': click.option('-v', '--verbose', is_flag=True,
                            help='Log every git command and debug details'),
    'json': click.option('--json', 'output_json', is_flag=True,
                         help='Output as JSONL'),
    'pretty': click.option('--pretty', is_flag=True,
                           help='Display results with rich formatting'),
    'dry_run': click.option('--dry-run', is_flag=True,
                            help='Report what would change without writing anything'),
    'group': click.option('--group', '-g', default=None,
                          help='Only vendors in this group'),
    'parallel': click.option('--parallel', '-j', type=click.IntRange(1, 8), default=None,
                             help='Number of vendors processed concurrently (max 8)'),
    'commit': click.option('--commit', 'do_commit', is_flag=True,
                           help='Create one commit for all vendored changes'),
}


def add_common_options(*option_names):
    """
    Decorator to add common options to a command.

    Example:
        @add_common_options('verbose', 'dry_run')
        def my_command(verbose, dry_run):
            ...
    """
    def decorator(func):
        for name in reversed(option_names):
            if name in common_options:
                func = common_options[name](func)
        return func
    return decorator
