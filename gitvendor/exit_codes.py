"""
Exit codes for git-vendor commands.

POSIX-style: 0 success, 1 general failure, application codes in 64-113.
"""

SUCCESS = 0
GENERAL_ERROR = 1

# check-updates reports drift with the same code as a general failure
UPDATES_AVAILABLE = 1

CONFIG_ERROR = 66        # vendor.yml missing or invalid
PERMISSION_ERROR = 67    # cannot write a destination or .git-vendor/
NETWORK_ERROR = 68       # remote unreachable or timed out
CONFLICT_ERROR = 70      # destination collision or unsafe path
PARTIAL_SUCCESS = 71     # some vendors synced, some failed
INTERRUPTED = 130        # Ctrl+C

# OSErrors that escape a command, by class name
EXCEPTION_EXIT_CODES = {
    'FileNotFoundError': GENERAL_ERROR,
    'PermissionError': PERMISSION_ERROR,
    'ConnectionError': NETWORK_ERROR,
    'TimeoutError': NETWORK_ERROR,
    'KeyboardInterrupt': INTERRUPTED,
}


def get_exit_code_for_exception(exc: BaseException) -> int:
    """
    Exit code for an exception that reached the command boundary.

    Exceptions carrying their own ``exit_code`` (see CommandError) win
    over the name-based table.
    """
    code = getattr(exc, 'exit_code', None)
    if isinstance(code, int):
        return code
    return EXCEPTION_EXIT_CODES.get(exc.__class__.__name__, GENERAL_ERROR)


class CommandError(Exception):
    """Raised by commands and services to end the process with ``exit_code``."""
    def __init__(self, message: str, exit_code: int = GENERAL_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


class PartialSuccessError(CommandError):
    """Some vendors succeeded and some failed."""
    def __init__(self, message: str, succeeded: int = 0, failed: int = 0):
        super().__init__(message, PARTIAL_SUCCESS)
        self.succeeded = succeeded
        self.failed = failed


class UpdatesAvailableError(CommandError):
    """Raised by check-updates when at least one ref is behind its remote."""
    def __init__(self, message: str, outdated: int = 0, errors: int = 0):
        super().__init__(message, UPDATES_AVAILABLE)
        self.outdated = outdated
        self.errors = errors
