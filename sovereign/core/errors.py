"""
Error taxonomy. Every failure is scoped to a single request; the HTTP layer
renders any SovereignError as {"error": message} with its status_code.
"""


class SovereignError(Exception):
    status_code: int = 500


class ValidationError(SovereignError):
    """Malformed or missing request fields."""
    status_code = 400


class MalformedInput(ValidationError):
    """Identity or signature could not be decoded from its external encoding."""


class AuthError(SovereignError):
    status_code = 401


class ChallengeNotFound(AuthError):
    """Never issued, already consumed, superseded, or expired."""
    status_code = 400


class InvalidSignature(AuthError):
    status_code = 401


class Unauthorized(AuthError):
    status_code = 401


class UpstreamError(SovereignError):
    """Embedding / completion / anchor provider failure. Retryable."""
    status_code = 500


class UpstreamTimeout(UpstreamError):
    pass


class StorageError(SovereignError):
    """Persistence layer failure. Retryable."""
    status_code = 500
