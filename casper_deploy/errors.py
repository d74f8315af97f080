"""
Error types raised by casper_deploy.

Every failure is fatal for the current invocation: library code raises, the
CLI prints one diagnostic line and exits with status 1.
"""


class DeployError(Exception):
    """Base class for everything this package raises on purpose."""


class ConfigError(DeployError):
    """Required configuration is missing or invalid."""


class ConnectivityError(DeployError):
    """The node could not be reached or returned no result."""


class RpcError(DeployError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, message: str, code: int = None):
        super().__init__(message)
        self.code = code


class MalformedResponseError(DeployError):
    """A response did not have the expected shape."""


class EmptyResultError(MalformedResponseError):
    """An expected field was absent or empty."""


class NotFoundError(DeployError):
    """A key or path did not resolve under the given state root."""


class MissingNamedKeyError(NotFoundError):
    """The account has no named key with the requested name."""


class UnknownEntryPointError(DeployError):
    """No argument schema exists for the entry point."""


class InvalidArgumentError(DeployError):
    """An argument value does not match its declared type."""


class ProfileError(DeployError):
    """A contract profile file could not be loaded."""


class SubmissionError(DeployError):
    """The external client failed or rejected the deploy."""
