"""
Pure helpers for sequence numbers: code/cadence normalization, period markers
and the formatted-number layout.

Layout: ``separator.join([prefix, period_label, zero_padded_value]) + suffix``,
where empty components are skipped. A yearly INV sequence with padding 5
issues ``INV-2024-00042``; a never-resetting CT sequence issues ``CT-1001``.

Period markers are integers so they can be compared inside a single UPDATE
statement: never -> 0, yearly -> YYYY, quarterly -> YYYY*10+Q,
monthly -> YYYY*100+MM.
"""
from __future__ import annotations

import re
from datetime import datetime

from sequence_service.models.sequence_config import ResetCadence
from sequence_service.services.sequence_errors import (
    InvalidDocumentTypeCode,
    SequenceValidationError,
)

_CODE_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]{1,39}$")

MAX_PADDING_WIDTH = 20
MAX_START_VALUE = 10**15


def normalize_code(value: str | None) -> str:
    normalized = (value or "").strip().upper()
    if not _CODE_PATTERN.match(normalized):
        raise InvalidDocumentTypeCode(
            "Document type code must start with a letter and contain only A-Z, 0-9 or _ "
            "(2-40 characters).",
            document_type_code=value,
        )
    return normalized


def normalize_cadence(value: str | ResetCadence | None) -> str:
    if isinstance(value, ResetCadence):
        return value.value
    normalized = (value or ResetCadence.NEVER.value).strip().lower()
    allowed = {c.value for c in ResetCadence}
    if normalized not in allowed:
        raise SequenceValidationError(
            f"reset_cadence must be one of {', '.join(sorted(allowed))}.",
            field="reset_cadence",
        )
    return normalized


def validate_counter_rules(
    *,
    padding_width: int | None = None,
    start_value: int | None = None,
    increment_by: int | None = None,
) -> None:
    if padding_width is not None and not 1 <= int(padding_width) <= MAX_PADDING_WIDTH:
        raise SequenceValidationError(
            f"padding_width must be between 1 and {MAX_PADDING_WIDTH}.",
            field="padding_width",
        )
    if start_value is not None and not 0 <= int(start_value) <= MAX_START_VALUE:
        raise SequenceValidationError(
            "start_value must be zero or a positive integer.",
            field="start_value",
        )
    if increment_by is not None and int(increment_by) < 1:
        raise SequenceValidationError(
            "increment_by must be at least 1.",
            field="increment_by",
        )


def validate_period_layout(*, reset_cadence: str, include_period: bool) -> None:
    """A counter that restarts each period needs the period label to stay unique."""
    if not include_period and normalize_cadence(reset_cadence) != ResetCadence.NEVER.value:
        raise SequenceValidationError(
            "include_period cannot be disabled for a sequence that resets "
            f"{normalize_cadence(reset_cadence)}; numbers would repeat every period.",
            field="include_period",
        )


def period_markers(now: datetime) -> dict[str, int]:
    quarter = (now.month - 1) // 3 + 1
    return {
        ResetCadence.NEVER.value: 0,
        ResetCadence.YEARLY.value: now.year,
        ResetCadence.QUARTERLY.value: now.year * 10 + quarter,
        ResetCadence.MONTHLY.value: now.year * 100 + now.month,
    }


def period_marker(cadence: str, now: datetime) -> int:
    return period_markers(now)[normalize_cadence(cadence)]


def period_label(cadence: str, marker: int | None) -> str:
    if marker is None:
        return ""
    cadence = normalize_cadence(cadence)
    if cadence == ResetCadence.YEARLY.value:
        return str(marker)
    if cadence == ResetCadence.QUARTERLY.value:
        return f"{marker // 10}Q{marker % 10}"
    if cadence == ResetCadence.MONTHLY.value:
        return f"{marker:06d}"
    return ""


def format_sequence_number(config, value: int, marker: int | None) -> str:
    """Render ``value`` for ``config`` in the period identified by ``marker``."""
    parts = []
    if config.prefix:
        parts.append(config.prefix)
    if config.include_period:
        label = period_label(config.reset_cadence, marker)
        if label:
            parts.append(label)
    parts.append(str(value).zfill(int(config.padding_width)))
    return f"{config.separator.join(parts)}{config.suffix or ''}"


def next_value_preview(config, now: datetime) -> tuple[int, int]:
    """Value and period marker the next allocation would produce, without mutating."""
    marker = period_marker(config.reset_cadence, now)
    if config.last_reset_period != marker:
        return int(config.start_value), marker
    return int(config.current_value) + int(config.increment_by), marker
