"""Exceptions related to flux-bootstrap."""

__all__ = [
    "FluxException",
    "InputException",
    "CommandException",
    "KubectlException",
    "ObjectNotFoundError",
    "PermissionDeniedError",
    "FluxCliException",
    "SshException",
    "GenerateException",
    "InstallException",
    "ResourceFailedError",
    "ReadinessTimeoutError",
]


class FluxException(Exception):
    """Generic base exception used for this library."""


class InputException(FluxException):
    """Raised when the bootstrap configuration or arguments are not valid."""


class CommandException(FluxException):
    """Raised when there is a failure running a subcommand."""


class KubectlException(CommandException):
    """Raised when there is a failure running a kubectl command."""


class ObjectNotFoundError(KubectlException):
    """Raised when an object does not exist in the cluster."""


class PermissionDeniedError(KubectlException):
    """Raised when the cluster refuses access to an object."""


class FluxCliException(CommandException):
    """Raised when there is a failure running a flux command."""


class SshException(CommandException):
    """Raised when there is a failure generating keys or scanning host keys."""


class GenerateException(FluxException):
    """Raised when manifests could not be generated or written to disk."""


class InstallException(FluxException):
    """Raised when the toolkit components could not be installed.

    The underlying kubectl error is available as `__cause__`.
    """


class ResourceFailedError(FluxException):
    """Raised when a resource reports a terminal failure condition."""

    def __init__(self, resource_name: str, message: str | None) -> None:
        super().__init__(
            f"Resource {resource_name} failed: {message or 'Unknown error'}"
        )
        self.resource_name = resource_name
        self.message = message


class ReadinessTimeoutError(FluxException):
    """Raised when a resource did not become ready before the timeout."""
