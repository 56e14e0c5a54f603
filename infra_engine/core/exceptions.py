"""Error types raised inside the generation and expansion pipeline.

Only InvalidInputError crosses a public boundary. The others are raised by
the backend adapters and recovered by the fallback paths.
"""


class InfraEngineError(Exception):
    """Base class for pipeline errors."""


class InvalidInputError(InfraEngineError, ValueError):
    """Raised when a required description is empty or missing."""


class GenerationSchemaViolation(InfraEngineError):
    """Raised when generative output does not match the requested schema."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


class UpstreamUnavailableError(InfraEngineError):
    """Raised when a generative or topology backend is unreachable or erroring."""

    def __init__(self, message: str, backend: str, status_code: int | None = None):
        super().__init__(message)
        self.backend = backend
        self.status_code = status_code


class TopologyPayloadError(InfraEngineError):
    """Raised when the topology service returns a malformed or empty payload."""
