"""
Extraction and batch result models.

Records are schema-less: each model response decides its own columns,
so an ExtractedRecord is just an ordered str -> scalar mapping.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel

ExtractedRecord = dict[str, Union[str, int, float, bool, None]]


class BatchEmptyResultError(Exception):
    """No document in a non-empty batch produced any records."""
    pass


class ExtractionResponse(BaseModel):
    """Top-level JSON object the vision model must return."""
    extracted_data: list[dict[str, Any]]


class BatchStatus(Enum):
    """Aggregate outcome of a batch run."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"  # Nothing was queued


@dataclass
class BatchResult:
    """Merged output of one batch run, in queue order."""
    records: list[ExtractedRecord] = field(default_factory=list)
    status: BatchStatus = BatchStatus.SKIPPED
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    message: str = ""

    @property
    def success(self) -> bool:
        return self.status == BatchStatus.SUCCESS

    @property
    def document_count(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def raise_for_status(self) -> None:
        """Raise BatchEmptyResultError if no document produced any records."""
        if self.status == BatchStatus.FAILED:
            raise BatchEmptyResultError(self.message)
