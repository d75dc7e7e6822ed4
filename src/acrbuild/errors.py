"""Custom error types for acrbuild."""

from __future__ import annotations

from typing import Optional


class ConfigurationError(ValueError):
    """Raised when user-supplied configuration cannot be used.

    Configuration errors are always raised before any archiving or remote
    work begins, so nothing needs to be cleaned up when one surfaces.

    Common causes:
        - An ignore pattern that cannot be parsed (unterminated ``[`` class,
          trailing backslash, empty pattern)
        - Missing registry settings (resource group, registry name,
          subscription, image names)
        - Values of the wrong type in the Buildfile

    What to check:
        - Review the ignore list in your Buildfile and ``.dockerignore``
        - Verify the ``[default]`` section and the selected environment
    """


class BuildfileError(ConfigurationError):
    """Base class for Buildfile errors.

    Buildfiles are TOML configuration files describing the registry and the
    build context. These errors indicate problems with the Buildfile itself.
    """


class BuildfileNotFoundError(BuildfileError):
    """Raised when a Buildfile cannot be located.

    acrbuild searches for Buildfile, Buildfile.toml, buildfile, or
    buildfile.toml in the current directory and its parents.

    What to check:
        - Run from within the project directory
        - Set the ACRBUILD_FILE environment variable to an explicit path
    """


class BuildfileInvalidError(BuildfileError):
    """Raised when a Buildfile contains invalid TOML or an invalid schema.

    Common causes:
        - TOML syntax errors (unclosed brackets, invalid escaping, etc.)
        - Sections that are not tables
        - Settings with the wrong type (string where a list is expected)
    """


class BuildfileEnvironmentNotFoundError(BuildfileError):
    """Raised when a requested environment is missing from the Buildfile.

    What to check:
        - Verify the environment name exists in your Buildfile
        - Check the ACRBUILD_ENV environment variable

    Examples:
        >>> load_environment(env="producton")  # Typo!
        BuildfileEnvironmentNotFoundError: Environment 'producton' not defined in Buildfile.
    """


class ArchiveError(OSError):
    """Raised when the build context archive cannot be written.

    Any failure while reading a source file or writing the destination
    aborts the whole archive; there is no partial or best-effort result.
    The partially written destination file is left in place.

    Common causes:
        - Destination directory does not exist or is not writable
        - Disk full while writing the archive
        - A source file disappeared or became unreadable mid-copy
        - Adding entries after the archive was sealed
    """


class LogStreamError(OSError):
    """Raised when the remote build log cannot be read.

    The log is an append blob that grows while the build runs. This error
    covers transport failures and unexpected HTTP responses; a build that
    finishes with a failure is *not* reported through this exception.

    Attributes:
        status_code: HTTP status of the failing response, when there was one.
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (HTTP {self.status_code})"
        return self.message


class RegistryError(Exception):
    """Raised when a registry control-plane call fails.

    Common causes:
        - Expired or missing access token (401/403)
        - Wrong subscription, resource group or registry name (404)
        - The registry rejected the build request (400)
        - Network connectivity issues

    What to check:
        - Refresh the token: ``az account get-access-token``
        - Verify the registry settings in your Buildfile

    Attributes:
        message: Error description
        status_code: HTTP status of the failing response, if any
        body: Response text returned by the service, if any
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code is not None:
            parts.append(f"status: {self.status_code}")
        if self.body:
            parts.append(f"response: {self.body}")
        return "\n".join(parts)


class OperationCancelled(Exception):
    """Raised inside a blocking call when its cancellation token is set.

    This is not an error: callers translate it into a ``CANCELLED``
    terminal state and never report it through the error sink.
    """
