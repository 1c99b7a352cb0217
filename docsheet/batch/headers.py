"""
Column header reconciliation for exported rows.

Headers come from the first record of a batch by default; an opt-in union
strategy keeps every key seen. The user may rename headers before export
through a HeaderMapping.
"""

import logging
from typing import Iterable, Optional

from docsheet.config import HeaderStrategy
from docsheet.models.extraction import ExtractedRecord

logger = logging.getLogger(__name__)

SOURCE_FILE_KEY = "Source_File"


def _source_first(keys: list[str]) -> list[str]:
    if SOURCE_FILE_KEY in keys:
        return [SOURCE_FILE_KEY] + [k for k in keys if k != SOURCE_FILE_KEY]
    return keys


def derive_headers(
    rows: list[ExtractedRecord],
    strategy: HeaderStrategy = HeaderStrategy.FIRST_ROW,
) -> list[str]:
    """
    Derive the ordered column headers for a batch.

    With FIRST_ROW only the first record's keys are used, so keys that
    appear only in later records are not exported. Source_File, when
    present, always comes first.

    Args:
        rows: Batch records in queue order
        strategy: Header derivation strategy

    Returns:
        Ordered unique header names (empty if there are no rows)
    """
    if not rows:
        return []

    if strategy == HeaderStrategy.UNION:
        keys = list(dict.fromkeys(key for row in rows for key in row))
    else:
        keys = list(rows[0])
        dropped = {key for row in rows[1:] for key in row if key not in rows[0]}
        if dropped:
            logger.warning(
                f"{len(dropped)} column(s) absent from the first row will not be exported: "
                f"{', '.join(sorted(dropped))}"
            )

    return _source_first(keys)


class HeaderMapping:
    """Ordered mapping from original column keys to display names."""

    def __init__(self, mapping: Optional[dict[str, str]] = None):
        self._mapping: dict[str, str] = dict(mapping or {})

    @classmethod
    def identity(cls, keys: Iterable[str]) -> "HeaderMapping":
        """Map every key to itself."""
        return cls({key: key for key in keys})

    def __len__(self) -> int:
        return len(self._mapping)

    def __contains__(self, key: object) -> bool:
        return key in self._mapping

    def __getitem__(self, key: str) -> str:
        return self._mapping.get(key, key)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, HeaderMapping):
            return self._mapping == other._mapping
        return NotImplemented

    @property
    def keys(self) -> list[str]:
        return list(self._mapping)

    def as_dict(self) -> dict[str, str]:
        return dict(self._mapping)

    def rename(self, key: str, display_name: str) -> None:
        """
        Set the display name for an original key.

        A blank name resets the key to itself.

        Raises:
            KeyError: If key is not part of the mapping
            ValueError: If another key already uses display_name
        """
        if key not in self._mapping:
            raise KeyError(key)

        display_name = display_name.strip() or key
        for other_key, other_name in self._mapping.items():
            if other_key != key and other_name == display_name:
                raise ValueError(f"'{display_name}' is already used for column '{other_key}'")

        self._mapping[key] = display_name

    def rename_all(self, display_names: dict[str, str]) -> None:
        """
        Set several display names at once.

        Names are checked as a whole, so two columns may swap names. Blank
        names reset to the key. Nothing changes if any check fails.

        Raises:
            KeyError: If a key is not part of the mapping
            ValueError: If two columns would end up with the same name
        """
        updated = dict(self._mapping)
        for key, display_name in display_names.items():
            if key not in updated:
                raise KeyError(key)
            updated[key] = display_name.strip() or key

        seen = {}
        for key, display_name in updated.items():
            if display_name in seen:
                raise ValueError(
                    f"'{display_name}' is used for both '{seen[display_name]}' and '{key}'"
                )
            seen[display_name] = key

        self._mapping = updated

    def display_headers(self) -> list[str]:
        """Display names in column order."""
        return list(self._mapping.values())

    def apply(self, rows: list[ExtractedRecord]) -> list[ExtractedRecord]:
        """Rename keys of every row; see apply_mapping."""
        return apply_mapping(rows, self._mapping)


def apply_mapping(
    rows: list[ExtractedRecord],
    mapping: dict[str, str],
) -> list[ExtractedRecord]:
    """
    Produce new rows with each key replaced by its display name.

    Unmapped keys keep their original name, except when that name has been
    given to a renamed column; then the unmapped key is left out so it cannot
    overwrite the renamed value. Row order, key order and values are
    preserved; the input rows are not modified.
    """
    claimed = {name for key, name in mapping.items() if name != key}
    return [
        {
            mapping.get(key, key): value
            for key, value in row.items()
            if key in mapping or key not in claimed
        }
        for row in rows
    ]
