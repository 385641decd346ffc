"""
Administrative operations on tenant sequences: configuration CRUD, status,
manual reset, onboarding seed and backfill of records created before
numbering was enabled.

Every counter mutation goes through the store's atomic primitives
(``increment_and_fetch`` / ``reset_counter``), the same ones ``next`` uses, so
admin calls can run alongside live allocations for the same key.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from sequence_service.models.records import Contact, Contract, Invoice
from sequence_service.services.sequence_defaults import DEFAULT_SEQUENCES, build_default_config
from sequence_service.services.sequence_errors import (
    BackfillNotSupported,
    ConfigNotFound,
    DuplicateConfig,
    SequenceValidationError,
)
from sequence_service.services.sequence_format import (
    format_sequence_number,
    next_value_preview,
    normalize_cadence,
    normalize_code,
    period_markers,
    validate_counter_rules,
    validate_period_layout,
)
from sequence_service.services.sequence_store import (
    NewSequenceConfig,
    SequenceConfigData,
    SequenceConfigStore,
    UPDATABLE_FIELDS,
)

logger = logging.getLogger(__name__)

# code -> (record model, number column)
BACKFILL_TARGETS: dict[str, tuple[type, str]] = {
    "CONTACT": (Contact, "contact_number"),
    "CONTRACT": (Contract, "contract_number"),
    "INVOICE": (Invoice, "invoice_number"),
}


def _value_or(values: dict, key: str, default):
    value = values.get(key)
    return default if value is None else value


@dataclass(frozen=True)
class SequenceStatus:
    config: SequenceConfigData
    next_value: int
    next_preview: str


@dataclass(frozen=True)
class ResetResult:
    code: str
    old_value: int
    new_value: int
    next_preview: str


@dataclass
class SeedResult:
    created: list[SequenceConfigData] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BackfillResult:
    code: str
    updated: int
    first_number: str | None
    last_number: str | None
    current_value: int


class SequenceAdminService:
    def __init__(
        self,
        store: SequenceConfigStore,
        *,
        db: Session | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.db = db
        self._clock = clock or datetime.utcnow

    def _markers(self) -> dict[str, int]:
        return period_markers(self._clock())

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def list_configs(self, tenant_id: str, is_live: bool) -> list[SequenceConfigData]:
        return self.store.list(tenant_id, is_live)

    def status(self, tenant_id: str, is_live: bool) -> list[SequenceStatus]:
        now = self._clock()
        result = []
        for config in self.store.list(tenant_id, is_live):
            value, marker = next_value_preview(config, now)
            result.append(
                SequenceStatus(
                    config=config,
                    next_value=value,
                    next_preview=format_sequence_number(config, value, marker),
                )
            )
        return result

    def create_config(
        self,
        tenant_id: str,
        is_live: bool,
        values: dict,
        *,
        created_by: str = "system@local",
    ) -> SequenceConfigData:
        code = normalize_code(values.get("code"))
        cadence = normalize_cadence(values.get("reset_cadence"))
        padding_width = int(_value_or(values, "padding_width", 4))
        start_value = int(_value_or(values, "start_value", 1))
        increment_by = int(_value_or(values, "increment_by", 1))
        validate_counter_rules(
            padding_width=padding_width,
            start_value=start_value,
            increment_by=increment_by,
        )
        include_period = values.get("include_period")
        include_period = True if include_period is None else bool(include_period)
        validate_period_layout(reset_cadence=cadence, include_period=include_period)
        config = NewSequenceConfig(
            tenant_id=tenant_id,
            code=code,
            is_live=bool(is_live),
            name=(values.get("name") or code.replace("_", " ").title()).strip(),
            description=(values.get("description") or "").strip(),
            prefix=values.get("prefix") or "",
            separator=_value_or(values, "separator", "-"),
            suffix=values.get("suffix") or "",
            padding_width=padding_width,
            include_period=include_period,
            reset_cadence=cadence,
            start_value=start_value,
            increment_by=increment_by,
            is_deletable=values.get("is_deletable") is not False,
            created_by=created_by,
        )
        created = self.store.create(config, initial_period=self._markers()[cadence])
        self.store.commit()
        logger.info(
            "sequence_config_created tenant_id=%s code=%s is_live=%s id=%s",
            tenant_id,
            code,
            is_live,
            created.id,
        )
        return created

    def update_config(
        self,
        tenant_id: str,
        config_id: int,
        changes: dict,
        *,
        changed_by: str = "system@local",
    ) -> SequenceConfigData:
        if "current_value" in changes:
            raise SequenceValidationError(
                "current_value cannot be set directly; use the reset operation.",
                field="current_value",
            )
        patch = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}
        if "reset_cadence" in patch:
            patch["reset_cadence"] = normalize_cadence(patch["reset_cadence"])
        validate_counter_rules(
            padding_width=patch.get("padding_width"),
            start_value=patch.get("start_value"),
            increment_by=patch.get("increment_by"),
        )
        current = self.store.get_by_id(config_id, tenant_id=tenant_id)
        validate_period_layout(
            reset_cadence=patch.get("reset_cadence", current.reset_cadence),
            include_period=bool(patch.get("include_period", current.include_period)),
        )
        updated = self.store.update(
            config_id,
            patch,
            tenant_id=tenant_id,
            changed_by=changed_by,
            period_markers=self._markers(),
        )
        self.store.commit()
        logger.info(
            "sequence_config_updated tenant_id=%s id=%s fields=%s",
            tenant_id,
            config_id,
            sorted(patch),
        )
        return updated

    def delete_config(
        self,
        tenant_id: str,
        config_id: int,
        *,
        changed_by: str = "system@local",
    ) -> None:
        self.store.delete(config_id, tenant_id=tenant_id, changed_by=changed_by)
        self.store.commit()
        logger.info("sequence_config_deleted tenant_id=%s id=%s", tenant_id, config_id)

    # ------------------------------------------------------------------
    # Counter administration
    # ------------------------------------------------------------------

    def reset_sequence(
        self,
        tenant_id: str,
        code: str,
        is_live: bool,
        new_start_value: int | None = None,
        *,
        changed_by: str = "system@local",
    ) -> ResetResult:
        code = normalize_code(code)
        if new_start_value is not None:
            validate_counter_rules(start_value=new_start_value)
        outcome = self.store.reset_counter(
            tenant_id,
            code,
            is_live,
            period_markers=self._markers(),
            new_start_value=new_start_value,
            changed_by=changed_by,
        )
        self.store.commit()
        config = outcome.config
        next_value = int(config.current_value) + int(config.increment_by)
        logger.info(
            "sequence_reset tenant_id=%s code=%s is_live=%s old_value=%s next_value=%s",
            tenant_id,
            code,
            is_live,
            outcome.old_value,
            next_value,
        )
        return ResetResult(
            code=code,
            old_value=outcome.old_value,
            new_value=next_value,
            next_preview=format_sequence_number(config, next_value, config.last_reset_period),
        )

    def seed_defaults(self, tenant_id: str, *, created_by: str = "system@local") -> SeedResult:
        markers = self._markers()
        result = SeedResult()
        for is_live in (True, False):
            for default in DEFAULT_SEQUENCES:
                key = f"{default.code}:{'live' if is_live else 'test'}"
                if self.store.find(tenant_id, default.code, is_live, include_inactive=True):
                    result.skipped.append(key)
                    continue
                config = build_default_config(
                    tenant_id, default.code, is_live, created_by=created_by
                )
                try:
                    created = self.store.create(
                        config, initial_period=markers[config.reset_cadence]
                    )
                except DuplicateConfig:
                    # Seeded by a concurrent onboarding request.
                    result.skipped.append(key)
                    continue
                result.created.append(created)
        self.store.commit()
        logger.info(
            "sequence_seed tenant_id=%s created=%s skipped=%s",
            tenant_id,
            len(result.created),
            len(result.skipped),
        )
        return result

    def backfill_existing(self, tenant_id: str, code: str, is_live: bool) -> BackfillResult:
        code = normalize_code(code)
        target = BACKFILL_TARGETS.get(code)
        if target is None or self.db is None:
            raise BackfillNotSupported(
                f"Backfill not supported for {code}",
                document_type_code=code,
                supported_codes=sorted(BACKFILL_TARGETS),
            )
        model, column_name = target
        column = getattr(model, column_name)

        if self.store.find(tenant_id, code, is_live) is None:
            raise ConfigNotFound(
                f"Sequence {code} is not configured for this tenant. Seed sequences first.",
                document_type_code=code,
            )

        records = (
            self.db.execute(
                select(model)
                .where(model.tenant_id == tenant_id)
                .where(model.is_live.is_(bool(is_live)))
                .where(or_(column.is_(None), func.trim(column) == ""))
                .order_by(model.created_at.asc(), model.id.asc())
                .with_for_update()
            )
            .scalars()
            .all()
        )

        markers = self._markers()
        first_number = last_number = None
        current_value = None
        try:
            for record in records:
                row = self.store.increment_and_fetch(
                    tenant_id, code, is_live, period_markers=markers
                )
                if row is None:
                    raise ConfigNotFound(
                        f"Sequence {code} was removed during backfill.",
                        document_type_code=code,
                    )
                number = format_sequence_number(row, int(row.current_value), row.last_reset_period)
                setattr(record, column_name, number)
                first_number = first_number or number
                last_number = number
                current_value = int(row.current_value)
            self.db.flush()
            self.store.commit()
            if getattr(self.store, "db", None) is not self.db:
                self.db.commit()
        except Exception:
            self.store.rollback()
            raise

        if current_value is None:
            current_value = int(self.store.get(tenant_id, code, is_live).current_value)
        logger.info(
            "sequence_backfill tenant_id=%s code=%s is_live=%s updated=%s current_value=%s",
            tenant_id,
            code,
            is_live,
            len(records),
            current_value,
        )
        return BackfillResult(
            code=code,
            updated=len(records),
            first_number=first_number,
            last_number=last_number,
            current_value=current_value,
        )
