"""Staging error taxonomy.

Every fatal condition of a compile maps to one subclass with a stable exit
code. Calling tooling branches on these codes, so they never change between
releases. The reserved code 44 is only ever used for an unsupported
execution environment.
"""

EXIT_SUCCESS = 0
EXIT_INTERNAL = 1
EXIT_MISSING_CONFIGURATION = 10
EXIT_INVALID_DIRECTIVE = 11
EXIT_INVALID_ROOT = 12
EXIT_INVALID_CREDENTIALS = 13
EXIT_HOOK_FAILURE = 14
EXIT_DEPENDENCY_FETCH = 15
EXIT_CONFIGURATION_CONFLICT = 16
EXIT_ASSET_RELOCATION = 17
EXIT_OUTPUT_WRITE = 18
EXIT_UNSUPPORTED_ENVIRONMENT = 44


class StagingError(Exception):
    """Base class for errors that abort a compile."""

    kind = 'StagingError'
    exit_code = EXIT_INTERNAL

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnsupportedEnvironment(StagingError):
    """Execution environment (stack) is not supported by this compiler."""
    kind = 'UnsupportedEnvironment'
    exit_code = EXIT_UNSUPPORTED_ENVIRONMENT


class MissingConfiguration(StagingError):
    """Strict variant found no Staticfile."""
    kind = 'MissingConfiguration'
    exit_code = EXIT_MISSING_CONFIGURATION


class InvalidDirective(StagingError):
    """A Staticfile directive has a value that cannot be coerced."""
    kind = 'InvalidDirective'
    exit_code = EXIT_INVALID_DIRECTIVE


class InvalidRoot(StagingError):
    """Configured root is missing, not a directory, or escapes the app tree."""
    kind = 'InvalidRoot'
    exit_code = EXIT_INVALID_ROOT

    def __init__(self, message: str, root: str = '', reason: str = ''):
        super().__init__(message)
        self.root = root
        self.reason = reason  # 'not_found', 'not_directory', 'escapes'


class InvalidCredentials(StagingError):
    """Staticfile.auth is malformed. Never carries file contents."""
    kind = 'InvalidCredentials'
    exit_code = EXIT_INVALID_CREDENTIALS


class HookFailure(StagingError):
    """A pre/post compile hook exited non-zero or timed out."""
    kind = 'HookFailure'
    exit_code = EXIT_HOOK_FAILURE

    def __init__(self, message: str, hook: str = '', returncode: int = -1):
        super().__init__(message)
        self.hook = hook
        self.returncode = returncode


class DependencyFetchFailure(StagingError):
    """The server runtime could not be downloaded or verified."""
    kind = 'DependencyFetchFailure'
    exit_code = EXIT_DEPENDENCY_FETCH


class ConfigurationConflict(StagingError):
    """Two directives claim the same resource and no precedence resolves it."""
    kind = 'ConfigurationConflict'
    exit_code = EXIT_CONFIGURATION_CONFLICT


class AssetRelocationError(StagingError):
    """Moving content into the serving directory failed."""
    kind = 'AssetRelocationError'
    exit_code = EXIT_ASSET_RELOCATION


class OutputWriteError(StagingError):
    """Writing generated files into the build tree failed."""
    kind = 'OutputWriteError'
    exit_code = EXIT_OUTPUT_WRITE
