"""Error taxonomy shared by the agents and the HTTP layer."""


class TryOnError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ConfigurationError(TryOnError):
    """No API keys configured. Fatal, never retried."""
    status_code = 503


class InvalidRequestError(TryOnError, ValueError):
    status_code = 400


class AccessDenied(TryOnError):
    """Premium tier requested without the matching shared secret."""
    status_code = 403


class AnalysisError(TryOnError):
    """Structured output was empty, not JSON, or did not match the schema."""
    status_code = 502


class GenerationFailed(TryOnError):
    """The model answered without the artefact we asked for."""
    status_code = 502
