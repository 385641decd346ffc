from __future__ import annotations

from datetime import datetime

import pytest

from sequence_service.core.config import settings
from sequence_service.services.sequence_admin import SequenceAdminService
from sequence_service.services.sequence_errors import (
    ConcurrencyConflict,
    ConfigNotFound,
    InvalidDocumentTypeCode,
    TenantMismatch,
)
from sequence_service.services.sequence_generator import SequenceGenerator
from sequence_service.services.sequence_store import (
    InMemorySequenceConfigStore,
    SqlSequenceConfigStore,
)


@pytest.fixture(params=["sql", "memory"])
def store(request, db_session):
    if request.param == "sql":
        return SqlSequenceConfigStore(db_session)
    return InMemorySequenceConfigStore()


def _create(store, clock, tenant_id="t-1", is_live=True, **values):
    values.setdefault("code", "INVOICE")
    return SequenceAdminService(store, clock=clock).create_config(tenant_id, is_live, values)


def test_next_issues_start_value_then_increments(store, clock):
    _create(store, clock, code="CONTACT", prefix="CT", padding_width=4, start_value=1001)
    generator = SequenceGenerator(store, clock=clock)

    assert generator.next("t-1", "CONTACT", True) == "CT-1001"
    assert generator.next("t-1", "contact", True) == "CT-1002"
    assert generator.next("t-1", "CONTACT", True) == "CT-1003"


def test_next_formats_yearly_invoice(store, clock):
    _create(store, clock, prefix="INV", padding_width=5, reset_cadence="yearly", start_value=42)
    generator = SequenceGenerator(store, clock=clock)

    allocated = generator.allocate("t-1", "INVOICE", True)
    assert allocated.sequence_number == "INV-2024-00042"
    assert allocated.value == 42
    assert str(allocated) == "INV-2024-00042"


def test_increment_by_step(store, clock):
    _create(store, clock, code="TICKET", prefix="TKT", start_value=10, increment_by=5, padding_width=3)
    generator = SequenceGenerator(store, clock=clock)

    values = [generator.allocate("t-1", "TICKET", True).value for _ in range(3)]
    assert values == [10, 15, 20]


def test_monthly_rollover_restarts_at_start_value(store, clock):
    _create(store, clock, prefix="INV", reset_cadence="monthly", padding_width=3)
    generator = SequenceGenerator(store, clock=clock)

    assert generator.next("t-1", "INVOICE", True) == "INV-202403-001"
    assert generator.next("t-1", "INVOICE", True) == "INV-202403-002"

    clock.now = datetime(2024, 4, 1, 0, 0, 1)
    assert generator.next("t-1", "INVOICE", True) == "INV-202404-001"
    assert generator.next("t-1", "INVOICE", True) == "INV-202404-002"


def test_yearly_rollover_from_last_year(store, clock):
    clock.now = datetime(2023, 12, 31, 23, 59)
    _create(store, clock, prefix="INV", reset_cadence="yearly", padding_width=5, start_value=1)
    generator = SequenceGenerator(store, clock=clock)
    for _ in range(41):
        generator.next("t-1", "INVOICE", True)
    assert store.get("t-1", "INVOICE", True).last_reset_period == 2023

    clock.now = datetime(2024, 1, 1, 0, 0)
    assert generator.next("t-1", "INVOICE", True) == "INV-2024-00001"
    assert generator.next("t-1", "INVOICE", True) == "INV-2024-00002"
    assert store.get("t-1", "INVOICE", True).current_value == 2


def test_quarterly_rollover(store, clock):
    _create(store, clock, prefix="QT", reset_cadence="quarterly", padding_width=2, start_value=1)
    generator = SequenceGenerator(store, clock=clock)

    assert generator.next("t-1", "INVOICE", True) == "QT-2024Q1-01"
    clock.now = datetime(2024, 5, 20)
    assert generator.next("t-1", "INVOICE", True) == "QT-2024Q2-01"


def test_never_cadence_does_not_reset_across_years(store, clock):
    _create(store, clock, code="CONTRACT", prefix="CN", padding_width=4, start_value=1001)
    generator = SequenceGenerator(store, clock=clock)

    assert generator.next("t-1", "CONTRACT", True) == "CN-1001"
    clock.now = datetime(2031, 1, 1)
    assert generator.next("t-1", "CONTRACT", True) == "CN-1002"


def test_tenants_and_environments_are_isolated(store, clock):
    _create(store, clock, "t-1", True, prefix="INV")
    _create(store, clock, "t-1", False, prefix="INV")
    _create(store, clock, "t-2", True, prefix="INV")
    generator = SequenceGenerator(store, clock=clock)

    assert generator.allocate("t-1", "INVOICE", True).value == 1
    assert generator.allocate("t-1", "INVOICE", True).value == 2
    assert generator.allocate("t-1", "INVOICE", False).value == 1
    assert generator.allocate("t-2", "INVOICE", True).value == 1


def test_missing_config_raises_when_auto_create_disabled(store, clock):
    generator = SequenceGenerator(store, clock=clock, auto_create=False)

    with pytest.raises(ConfigNotFound) as exc_info:
        generator.next("t-1", "INVOICE", True)
    assert exc_info.value.status_code == 404
    assert exc_info.value.context["document_type_code"] == "INVOICE"
    assert store.find("t-1", "INVOICE", True) is None


def test_auto_create_uses_system_defaults_for_known_codes(store, clock):
    generator = SequenceGenerator(store, clock=clock, auto_create=True)

    assert generator.next("t-1", "INVOICE", True) == "INV-10001"
    assert generator.next("t-1", "INVOICE", True) == "INV-10002"
    created = store.get("t-1", "INVOICE", True)
    assert created.is_deletable is False


def test_auto_create_for_unknown_code(store, clock):
    generator = SequenceGenerator(store, clock=clock, auto_create=True)

    assert generator.next("t-1", "WORK_ORDER", False) == "WORK_ORDER-00001"


def test_auto_create_policy_follows_settings(store, clock, monkeypatch):
    monkeypatch.setattr(settings, "SEQUENCE_AUTO_CREATE_MISSING", True)
    assert SequenceGenerator(store, clock=clock).auto_create is True
    monkeypatch.setattr(settings, "SEQUENCE_AUTO_CREATE_MISSING", False)
    assert SequenceGenerator(store, clock=clock).auto_create is False


def test_invalid_code_is_rejected_before_touching_storage(store, clock):
    generator = SequenceGenerator(store, clock=clock, auto_create=True)
    with pytest.raises(InvalidDocumentTypeCode):
        generator.next("t-1", "bad code!", True)


def test_deleted_config_is_not_used(store, clock):
    created = _create(store, clock, code="WORK_ORDER")
    SequenceAdminService(store, clock=clock).delete_config("t-1", created.id)
    generator = SequenceGenerator(store, clock=clock, auto_create=False)

    with pytest.raises(ConfigNotFound):
        generator.next("t-1", "WORK_ORDER", True)


class _FlakyStore(InMemorySequenceConfigStore):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.calls = 0

    def increment_and_fetch(self, tenant_id, code, is_live, *, period_markers):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConcurrencyConflict("Sequence counter is busy, retry the request.")
        return super().increment_and_fetch(tenant_id, code, is_live, period_markers=period_markers)


def test_transient_conflicts_are_retried(clock):
    store = _FlakyStore(failures=2)
    _create(store, clock, prefix="INV")
    generator = SequenceGenerator(store, clock=clock, max_attempts=3)

    assert generator.allocate("t-1", "INVOICE", True).value == 1
    assert store.calls == 3


def test_conflict_surfaces_after_retries_are_exhausted(clock):
    store = _FlakyStore(failures=5)
    _create(store, clock, prefix="INV")
    generator = SequenceGenerator(store, clock=clock, max_attempts=2)

    with pytest.raises(ConcurrencyConflict) as exc_info:
        generator.next("t-1", "INVOICE", True)
    assert exc_info.value.retryable is True
    assert store.calls == 2
    # Nothing was consumed by the failed attempts.
    assert store.get("t-1", "INVOICE", True).current_value == 0


class _ForeignRowStore(InMemorySequenceConfigStore):
    def increment_and_fetch(self, tenant_id, code, is_live, *, period_markers):
        return super().increment_and_fetch("t-other", code, is_live, period_markers=period_markers)


def test_row_from_another_tenant_is_rejected(clock):
    store = _ForeignRowStore()
    _create(store, clock, "t-other", True, prefix="INV")
    generator = SequenceGenerator(store, clock=clock)

    with pytest.raises(TenantMismatch):
        generator.next("t-1", "INVOICE", True)
