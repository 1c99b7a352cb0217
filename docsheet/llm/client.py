"""
Gemini vision client for structured document extraction.

Sends the document inline together with the fixed system instruction and
optional OCR text, then parses the JSON reply into records.

With retry logic for transient network and throttling failures.
"""

import base64
import logging
from typing import Optional

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from docsheet.config import GeminiConfig, get_config
from docsheet.llm.exceptions import (
    EmptyResponseError,
    LLMClientError,
    LLMConnectionError,
    LLMResponseError,
    MissingCredentialError,
)
from docsheet.llm.parser import parse_extraction_response
from docsheet.llm.prompts import EXTRACTION_INSTRUCTION, get_ocr_context, get_system_instruction
from docsheet.models.extraction import ExtractedRecord

logger = logging.getLogger(__name__)


class GeminiClient:
    """Client for the Gemini generateContent endpoint."""

    def __init__(self, config: Optional[GeminiConfig] = None):
        """Initialize Gemini client."""
        self.config = config or get_config().gemini
        self.base_url = self.config.base_url.rstrip("/")

    def check_credentials(self) -> None:
        """
        Make sure an API key is configured.

        Raises:
            MissingCredentialError: If no key is set
        """
        is_valid, message = self.config.validate_api_key()
        if not is_valid:
            raise MissingCredentialError(message)

    def _get_headers(self) -> dict:
        """Get request headers with authentication."""
        return {
            "x-goog-api-key": self.config.api_key.strip(),
            "Content-Type": "application/json",
        }

    def build_request(
        self,
        content: bytes,
        media_type: str,
        ocr_text: Optional[str] = None,
    ) -> dict:
        """
        Build the generateContent request body.

        Parts are ordered: document, OCR context (only when the OCR text is
        non-blank), extraction instruction.
        """
        parts = [
            {
                "inline_data": {
                    "mime_type": media_type,
                    "data": base64.b64encode(content).decode("utf-8"),
                }
            }
        ]

        if ocr_text and ocr_text.strip():
            parts.append({"text": get_ocr_context(ocr_text)})

        parts.append({"text": EXTRACTION_INSTRUCTION})

        return {
            "system_instruction": {"parts": [{"text": get_system_instruction()}]},
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "temperature": self.config.temperature,
                "responseMimeType": "application/json",
                "maxOutputTokens": self.config.max_output_tokens,
            },
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(LLMConnectionError),
        reraise=True,
    )
    def generate(self, payload: dict) -> str:
        """
        Send a request and return the concatenated response text.

        Raises:
            LLMConnectionError: Network failure, timeout, 429 or 5xx
            LLMResponseError: Any other non-200 status
            LLMClientError: Rejected API key
        """
        url = f"{self.base_url}/models/{self.config.model}:generateContent"

        try:
            response = requests.post(
                url,
                headers=self._get_headers(),
                json=payload,
                timeout=self.config.timeout,
            )
        except requests.exceptions.ConnectionError as e:
            raise LLMConnectionError(f"Failed to connect to Gemini: {e}")
        except requests.exceptions.Timeout:
            raise LLMConnectionError("Gemini request timed out")

        if response.status_code in (401, 403):
            raise LLMClientError("Invalid Gemini API key")
        elif response.status_code == 429:
            raise LLMConnectionError("Gemini rate limit exceeded")
        elif response.status_code >= 500:
            raise LLMConnectionError(f"Gemini returned status {response.status_code}")
        elif response.status_code != 200:
            raise LLMResponseError(f"Gemini returned status {response.status_code}: {response.text}")

        return self._response_text(response.json())

    def _response_text(self, result: dict) -> str:
        """Join the text parts of the first candidate."""
        candidates = result.get("candidates") or []
        if not candidates:
            block_reason = (result.get("promptFeedback") or {}).get("blockReason")
            if block_reason:
                raise EmptyResponseError(f"Gemini returned no candidates (blocked: {block_reason})")
            raise EmptyResponseError("Gemini returned no candidates")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if not text.strip():
            finish_reason = candidates[0].get("finishReason", "unknown")
            raise EmptyResponseError(f"Empty response from Gemini (finish reason: {finish_reason})")
        return text

    def extract(
        self,
        content: bytes,
        media_type: str,
        ocr_text: Optional[str] = None,
    ) -> list[ExtractedRecord]:
        """
        Extract structured records from a document.

        Args:
            content: Raw document bytes
            media_type: MIME type of the document
            ocr_text: Optional OCR text used as supplemental context

        Returns:
            The extracted_data records from the model response

        Raises:
            MissingCredentialError: If no API key is configured
            EmptyResponseError: If the model returns no text
            InvalidResponseFormatError: If the text is not the expected JSON
            LLMClientError: For transport and HTTP failures
        """
        self.check_credentials()

        payload = self.build_request(content, media_type, ocr_text)
        logger.info(
            f"Sending {media_type} ({len(content):,} bytes) to {self.config.model}"
            f"{' with OCR context' if len(payload['contents'][0]['parts']) == 3 else ''}"
        )

        text = self.generate(payload)
        records = parse_extraction_response(text)

        logger.info(f"{self.config.model} returned {len(records)} records")
        return records


def create_client(config: Optional[GeminiConfig] = None) -> GeminiClient:
    """
    Create a Gemini client.

    Args:
        config: Gemini configuration (uses the global config if omitted)

    Returns:
        Configured GeminiClient instance
    """
    return GeminiClient(config=config)
