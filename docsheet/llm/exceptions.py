"""Exceptions raised while calling the vision model and reading its response."""


class LLMClientError(Exception):
    """Base exception for LLM client errors."""
    pass


class LLMConnectionError(LLMClientError):
    """Network failure, timeout or throttling; safe to retry."""
    pass


class LLMResponseError(LLMClientError):
    """Endpoint answered with a non-retryable error status."""
    pass


class MissingCredentialError(LLMClientError):
    """No API key configured; raised before any request is sent."""
    pass


class EmptyResponseError(LLMClientError):
    """The model returned no text."""
    pass


class InvalidResponseFormatError(LLMClientError):
    """The model's text is not a JSON object with an extracted_data array."""

    def __init__(self, message: str, raw_response: str = ""):
        self.raw_response = raw_response
        super().__init__(message)
