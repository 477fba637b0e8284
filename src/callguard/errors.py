"""Shared error types for callguard."""


class ServiceUnavailableError(RuntimeError):
    """Failure raised by the sample unreliable service."""
