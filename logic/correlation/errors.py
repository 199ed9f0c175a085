"""Errors raised by the wallet cross-reference engine."""


class CorrelationError(Exception):
    """Base class for correlation failures."""
    pass


class RetrievalError(CorrelationError):
    """Raised when the buyers of a token could not be retrieved."""

    def __init__(self, token_id: str, cause: object = None):
        self.token_id = token_id
        self.cause = cause
        message = f"Failed to retrieve buyers for {token_id}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class InvalidConfigError(CorrelationError):
    """Raised when a correlation request is malformed (e.g. no cohorts)."""
    pass
