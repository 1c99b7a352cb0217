"""LLM module for structured data extraction with a vision model."""

from .client import GeminiClient
from .exceptions import (
    EmptyResponseError,
    InvalidResponseFormatError,
    LLMClientError,
    MissingCredentialError,
)
from .parser import parse_extraction_response

__all__ = [
    "EmptyResponseError",
    "GeminiClient",
    "InvalidResponseFormatError",
    "LLMClientError",
    "MissingCredentialError",
    "parse_extraction_response",
]
