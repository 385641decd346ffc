from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sequence_service.core.config import settings
from sequence_service.core.flow_logging import flow_info
from sequence_service.services.sequence_defaults import build_default_config
from sequence_service.services.sequence_errors import (
    ConcurrencyConflict,
    ConfigNotFound,
    DuplicateConfig,
    TenantMismatch,
)
from sequence_service.services.sequence_format import (
    format_sequence_number,
    normalize_code,
    period_markers,
)
from sequence_service.services.sequence_store import SequenceConfigData, SequenceConfigStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocatedNumber:
    sequence_number: str
    value: int
    code: str
    is_live: bool
    config: SequenceConfigData

    def __str__(self) -> str:
        return self.sequence_number


class SequenceGenerator:
    """Issues the next formatted number for a tenant/code/environment key."""

    def __init__(
        self,
        store: SequenceConfigStore,
        *,
        clock: Callable[[], datetime] | None = None,
        auto_create: bool | None = None,
        max_attempts: int | None = None,
    ):
        self.store = store
        self._clock = clock or datetime.utcnow
        self.auto_create = settings.SEQUENCE_AUTO_CREATE_MISSING if auto_create is None else auto_create
        attempts = settings.SEQUENCE_INCREMENT_MAX_RETRIES if max_attempts is None else max_attempts
        self.max_attempts = max(1, int(attempts))

    def now(self) -> datetime:
        return self._clock()

    def next(self, tenant_id: str, code: str, is_live: bool) -> str:
        return self.allocate(tenant_id, code, is_live).sequence_number

    def allocate(
        self,
        tenant_id: str,
        code: str,
        is_live: bool,
        *,
        created_by: str = "system@local",
    ) -> AllocatedNumber:
        code = normalize_code(code)
        markers = period_markers(self.now())

        last_error: ConcurrencyConflict | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                row = self._increment(tenant_id, code, is_live, markers, created_by=created_by)
                if row.tenant_id != tenant_id:
                    self.store.rollback()
                    raise TenantMismatch(
                        "Resolved sequence belongs to another tenant.",
                        document_type_code=code,
                    )
                self.store.commit()
                break
            except ConcurrencyConflict as exc:
                last_error = exc
                logger.warning(
                    "sequence_increment_retry tenant_id=%s code=%s is_live=%s attempt=%s/%s",
                    tenant_id,
                    code,
                    is_live,
                    attempt,
                    self.max_attempts,
                )
        else:
            raise last_error

        value = int(row.current_value)
        formatted = format_sequence_number(row, value, row.last_reset_period)
        flow_info(
            logger,
            "sequence_allocated tenant_id=%s code=%s is_live=%s value=%s number=%s",
            tenant_id,
            code,
            is_live,
            value,
            formatted,
            category="sequence_allocation",
        )
        return AllocatedNumber(
            sequence_number=formatted,
            value=value,
            code=code,
            is_live=bool(is_live),
            config=row,
        )

    def _increment(
        self,
        tenant_id: str,
        code: str,
        is_live: bool,
        markers: dict[str, int],
        *,
        created_by: str,
    ) -> SequenceConfigData:
        row = self.store.increment_and_fetch(tenant_id, code, is_live, period_markers=markers)
        if row is not None:
            return row

        if not self.auto_create:
            self.store.rollback()
            raise ConfigNotFound(
                f"Sequence {code} is not configured for this tenant. Seed sequences first.",
                document_type_code=code,
            )

        default = build_default_config(tenant_id, code, is_live, created_by=created_by)
        try:
            self.store.create(default, initial_period=markers[default.reset_cadence])
        except DuplicateConfig:
            # Created concurrently by another request; fall through to the increment.
            pass
        else:
            logger.info(
                "sequence_auto_created tenant_id=%s code=%s is_live=%s", tenant_id, code, is_live
            )

        row = self.store.increment_and_fetch(tenant_id, code, is_live, period_markers=markers)
        if row is None:
            self.store.rollback()
            raise ConfigNotFound(
                f"Sequence {code} could not be created for this tenant.",
                document_type_code=code,
            )
        return row
