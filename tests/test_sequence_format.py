from __future__ import annotations

from datetime import datetime

import pytest

from sequence_service.services.sequence_errors import (
    InvalidDocumentTypeCode,
    SequenceValidationError,
)
from sequence_service.services.sequence_format import (
    format_sequence_number,
    next_value_preview,
    normalize_cadence,
    normalize_code,
    period_label,
    period_markers,
    validate_counter_rules,
)
from sequence_service.services.sequence_store import SequenceConfigData


def _config(**overrides) -> SequenceConfigData:
    values = {
        "id": 1,
        "tenant_id": "t-1",
        "code": "INVOICE",
        "is_live": True,
        "prefix": "INV",
        "padding_width": 5,
        "reset_cadence": "yearly",
        "start_value": 1,
        "current_value": 41,
        "last_reset_period": 2024,
    }
    values.update(overrides)
    return SequenceConfigData(**values)


def test_normalize_code_uppercases_and_trims():
    assert normalize_code("  invoice ") == "INVOICE"
    assert normalize_code("purchase_order2") == "PURCHASE_ORDER2"


@pytest.mark.parametrize("raw", ["", None, "1INVOICE", "IN-VOICE", "X", "A" * 41])
def test_normalize_code_rejects_malformed_codes(raw):
    with pytest.raises(InvalidDocumentTypeCode) as exc_info:
        normalize_code(raw)
    assert exc_info.value.status_code == 400


def test_normalize_cadence_defaults_to_never_and_rejects_unknown():
    assert normalize_cadence(None) == "never"
    assert normalize_cadence(" Monthly ") == "monthly"
    with pytest.raises(SequenceValidationError):
        normalize_cadence("weekly")


def test_validate_counter_rules_bounds():
    validate_counter_rules(padding_width=1, start_value=0, increment_by=1)
    with pytest.raises(SequenceValidationError):
        validate_counter_rules(padding_width=0)
    with pytest.raises(SequenceValidationError):
        validate_counter_rules(padding_width=21)
    with pytest.raises(SequenceValidationError):
        validate_counter_rules(start_value=-1)
    with pytest.raises(SequenceValidationError) as exc_info:
        validate_counter_rules(increment_by=0)
    assert exc_info.value.context["field"] == "increment_by"


def test_period_markers_per_cadence():
    markers = period_markers(datetime(2024, 11, 2))
    assert markers == {"never": 0, "yearly": 2024, "quarterly": 20244, "monthly": 202411}


def test_period_labels():
    assert period_label("yearly", 2024) == "2024"
    assert period_label("quarterly", 20241) == "2024Q1"
    assert period_label("monthly", 202403) == "202403"
    assert period_label("never", 0) == ""
    assert period_label("yearly", None) == ""


def test_format_yearly_invoice_number():
    assert format_sequence_number(_config(), 42, 2024) == "INV-2024-00042"


def test_format_without_period_and_with_suffix():
    config = _config(reset_cadence="never", last_reset_period=0, prefix="CT", padding_width=4, suffix="/A")
    assert format_sequence_number(config, 1001, 0) == "CT-1001/A"


def test_format_skips_period_when_disabled_and_empty_prefix():
    config = _config(include_period=False, prefix="", padding_width=3)
    assert format_sequence_number(config, 7, 2024) == "007"


def test_format_never_truncates_values_wider_than_padding():
    config = _config(reset_cadence="never", padding_width=2, prefix="T", separator="")
    assert format_sequence_number(config, 12345, 0) == "T12345"


def test_next_value_preview_continues_within_period():
    value, marker = next_value_preview(_config(), datetime(2024, 6, 1))
    assert (value, marker) == (42, 2024)


def test_next_value_preview_restarts_after_rollover():
    value, marker = next_value_preview(_config(start_value=1), datetime(2025, 1, 1))
    assert (value, marker) == (1, 2025)
