"""
Vision model response parser.

Handles:
- Stripping an optional markdown code fence around the JSON
- Decoding and shape-checking the extraction contract
"""

import json
import logging
import re
from typing import Optional

from pydantic import ValidationError

from docsheet.llm.exceptions import EmptyResponseError, InvalidResponseFormatError
from docsheet.models.extraction import ExtractedRecord, ExtractionResponse

logger = logging.getLogger(__name__)

# ```json ... ``` or ``` ... ``` wrapping the whole response
CODE_FENCE_PATTERN = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence, if present."""
    stripped = text.strip()
    match = CODE_FENCE_PATTERN.match(stripped)
    if match:
        return match.group(1).strip()
    return stripped


def parse_extraction_response(response: Optional[str]) -> list[ExtractedRecord]:
    """
    Parse the model's text into a list of records.

    The extracted_data array is returned as-is; individual field names and
    value types are not checked.

    Args:
        response: Raw text returned by the model

    Returns:
        The extracted_data records, in response order

    Raises:
        EmptyResponseError: If the response is empty
        InvalidResponseFormatError: If it is not JSON or lacks extracted_data
    """
    if response is None or not response.strip():
        raise EmptyResponseError("Empty response from the vision model")

    json_str = strip_code_fence(response)

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse JSON response: {response[:500]!r}")
        raise InvalidResponseFormatError(
            f"The model did not return valid JSON: {e}",
            raw_response=response,
        ) from e

    if not isinstance(data, dict) or not isinstance(data.get("extracted_data"), list):
        raise InvalidResponseFormatError(
            "The model response has no 'extracted_data' array",
            raw_response=response,
        )

    try:
        parsed = ExtractionResponse.model_validate(data)
    except ValidationError as e:
        raise InvalidResponseFormatError(
            f"'extracted_data' must be a list of objects: {e.error_count()} invalid item(s)",
            raw_response=response,
        ) from e

    logger.debug(f"Parsed {len(parsed.extracted_data)} records from response")
    return parsed.extracted_data
