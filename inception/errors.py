"""Error kinds raised by the bootstrap workflows."""

from __future__ import annotations

# Exit statuses shared by every command.
EXIT_SUCCESS = 0
EXIT_GENERAL = 1
EXIT_USAGE = 2
EXIT_IO = 3
EXIT_GIT_FAILURE = 5
EXIT_CONFIG = 6
EXIT_DEPENDENCY = 127


class InceptionError(Exception):
    """Base class for all errors reported by the tool."""

    exit_code = EXIT_GENERAL


class UsageError(InceptionError):
    """Raised for missing or invalid parameters."""

    exit_code = EXIT_USAGE


class SigningError(InceptionError):
    """Raised when a signing key is missing, malformed or rejected."""

    exit_code = EXIT_CONFIG


class RepositoryError(InceptionError):
    """Raised when the version-control layer fails."""

    exit_code = EXIT_GIT_FAILURE


class NotFoundError(InceptionError):
    """Raised when a repository has no root commit to work with."""

    exit_code = EXIT_GIT_FAILURE


class ToolingError(InceptionError):
    """Raised when a required external program cannot be executed."""

    exit_code = EXIT_DEPENDENCY


class ConfigurationError(InceptionError):
    """Raised when the local environment is not configured as required."""

    exit_code = EXIT_CONFIG
