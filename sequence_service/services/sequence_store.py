"""
Persistence for sequence configurations.

Two interchangeable stores implement the same contract:

- ``SqlSequenceConfigStore``: SQLAlchemy session backed. The counter is moved
  by one ``UPDATE ... RETURNING`` statement that also applies a due period
  reset, so concurrent allocations for the same key are serialized by the
  database row lock and never observe the same value.
- ``InMemorySequenceConfigStore``: process-local, guarded by a lock. Used for
  tests and local tooling.

Mutating methods do not commit; callers end the unit of work with
``commit()`` / ``rollback()``.
"""
from __future__ import annotations

import abc
import threading
from dataclasses import dataclass, fields, replace
from datetime import datetime

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from sequence_service.models.sequence_config import SequenceConfig
from sequence_service.services.sequence_errors import (
    ConcurrencyConflict,
    ConfigNotFound,
    DuplicateConfig,
    SequenceNotDeletable,
    TenantMismatch,
)

# Fields an update may change. Counter state only moves through
# increment_and_fetch / reset_counter.
UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "prefix",
        "separator",
        "suffix",
        "padding_width",
        "include_period",
        "reset_cadence",
        "start_value",
        "increment_by",
    }
)


@dataclass(frozen=True)
class SequenceConfigData:
    id: int
    tenant_id: str
    code: str
    is_live: bool
    name: str = ""
    description: str = ""
    prefix: str = ""
    separator: str = "-"
    suffix: str = ""
    padding_width: int = 5
    include_period: bool = True
    reset_cadence: str = "never"
    start_value: int = 1
    increment_by: int = 1
    current_value: int = 0
    last_reset_period: int | None = None
    is_deletable: bool = True
    is_active: bool = True
    created_by: str = "system@local"
    last_changed_by: str = "system@local"
    created_at: datetime | None = None
    updated_at: datetime | None = None


_DATA_FIELDS = tuple(f.name for f in fields(SequenceConfigData))


@dataclass(frozen=True)
class NewSequenceConfig:
    tenant_id: str
    code: str
    is_live: bool
    name: str = ""
    description: str = ""
    prefix: str = ""
    separator: str = "-"
    suffix: str = ""
    padding_width: int = 5
    include_period: bool = True
    reset_cadence: str = "never"
    start_value: int = 1
    increment_by: int = 1
    is_deletable: bool = True
    created_by: str = "system@local"


@dataclass(frozen=True)
class ResetOutcome:
    old_value: int
    config: SequenceConfigData


class SequenceConfigStore(abc.ABC):
    @abc.abstractmethod
    def find(
        self, tenant_id: str, code: str, is_live: bool, *, include_inactive: bool = False
    ) -> SequenceConfigData | None:
        ...

    def get(self, tenant_id: str, code: str, is_live: bool) -> SequenceConfigData:
        row = self.find(tenant_id, code, is_live)
        if row is None:
            raise ConfigNotFound(
                f"Sequence {code} is not configured for this tenant. Seed sequences first.",
                document_type_code=code,
            )
        return row

    @abc.abstractmethod
    def get_by_id(self, config_id: int, *, tenant_id: str) -> SequenceConfigData:
        ...

    @abc.abstractmethod
    def list(self, tenant_id: str, is_live: bool) -> list[SequenceConfigData]:
        ...

    @abc.abstractmethod
    def create(self, config: NewSequenceConfig, *, initial_period: int) -> SequenceConfigData:
        ...

    @abc.abstractmethod
    def update(
        self,
        config_id: int,
        changes: dict,
        *,
        tenant_id: str,
        changed_by: str,
        period_markers: dict[str, int],
    ) -> SequenceConfigData:
        ...

    @abc.abstractmethod
    def delete(self, config_id: int, *, tenant_id: str, changed_by: str) -> None:
        ...

    @abc.abstractmethod
    def increment_and_fetch(
        self,
        tenant_id: str,
        code: str,
        is_live: bool,
        *,
        period_markers: dict[str, int],
    ) -> SequenceConfigData | None:
        """
        Atomically advance the counter and return the updated row.

        When the period marker for the row's cadence differs from
        ``last_reset_period`` the issued value is ``start_value`` and the marker
        is stored; otherwise ``current_value + increment_by``. Returns None when
        no active row exists. Raises ConcurrencyConflict when the storage
        primitive fails; in that case nothing was changed.
        """

    @abc.abstractmethod
    def reset_counter(
        self,
        tenant_id: str,
        code: str,
        is_live: bool,
        *,
        period_markers: dict[str, int],
        new_start_value: int | None = None,
        changed_by: str = "system@local",
    ) -> ResetOutcome:
        ...

    def commit(self) -> None:
        return None

    def rollback(self) -> None:
        return None


def _check_tenant(row_tenant_id: str, tenant_id: str, config_id: int) -> None:
    if row_tenant_id != tenant_id:
        raise TenantMismatch(
            "Sequence configuration belongs to another tenant.",
            config_id=config_id,
        )


def _initial_counter(start_value: int, increment_by: int) -> int:
    return int(start_value) - int(increment_by)


class SqlSequenceConfigStore(SequenceConfigStore):
    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _to_data(row) -> SequenceConfigData:
        if isinstance(row, SequenceConfig):
            return SequenceConfigData(**{name: getattr(row, name) for name in _DATA_FIELDS})
        return SequenceConfigData(**{name: row[name] for name in _DATA_FIELDS})

    def _key_query(self, tenant_id: str, code: str, is_live: bool):
        return (
            select(SequenceConfig)
            .where(SequenceConfig.tenant_id == tenant_id)
            .where(SequenceConfig.code == code)
            .where(SequenceConfig.is_live.is_(bool(is_live)))
            .execution_options(populate_existing=True)
        )

    def _row_by_id(self, config_id: int, *, tenant_id: str, for_update: bool = False) -> SequenceConfig:
        stmt = (
            select(SequenceConfig)
            .where(SequenceConfig.id == int(config_id))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        row = self.db.execute(stmt).scalar_one_or_none()
        if row is None or not row.is_active:
            raise ConfigNotFound("Configuration not found.", config_id=config_id)
        _check_tenant(row.tenant_id, tenant_id, config_id)
        return row

    def find(self, tenant_id, code, is_live, *, include_inactive=False):
        stmt = self._key_query(tenant_id, code, is_live)
        if not include_inactive:
            stmt = stmt.where(SequenceConfig.is_active.is_(True))
        row = self.db.execute(stmt).scalar_one_or_none()
        return self._to_data(row) if row is not None else None

    def get_by_id(self, config_id, *, tenant_id):
        return self._to_data(self._row_by_id(config_id, tenant_id=tenant_id))

    def list(self, tenant_id, is_live):
        stmt = (
            select(SequenceConfig)
            .where(SequenceConfig.tenant_id == tenant_id)
            .where(SequenceConfig.is_live.is_(bool(is_live)))
            .where(SequenceConfig.is_active.is_(True))
            .order_by(SequenceConfig.id.asc())
            .execution_options(populate_existing=True)
        )
        return [self._to_data(row) for row in self.db.execute(stmt).scalars().all()]

    def _locked_key_row(self, tenant_id: str, code: str, is_live: bool) -> SequenceConfig | None:
        return self.db.execute(
            self._key_query(tenant_id, code, is_live).with_for_update()
        ).scalar_one_or_none()

    def create(self, config, *, initial_period):
        existing = self._locked_key_row(config.tenant_id, config.code, config.is_live)
        if existing is not None and existing.is_active:
            raise DuplicateConfig(
                f"Sequence type {config.code} already exists",
                document_type_code=config.code,
            )

        if existing is not None:
            # Revive the soft-deleted row; its counter is kept so earlier
            # numbers are never issued again.
            if config.reset_cadence != existing.reset_cadence:
                # Keep counting in the current period of the new cadence.
                existing.last_reset_period = initial_period
            for name in UPDATABLE_FIELDS:
                setattr(existing, name, getattr(config, name))
            existing.is_deletable = config.is_deletable
            existing.is_active = True
            existing.last_changed_by = config.created_by
            self.db.flush()
            return self._to_data(existing)

        row = SequenceConfig(
            tenant_id=config.tenant_id,
            code=config.code,
            is_live=config.is_live,
            name=config.name,
            description=config.description,
            prefix=config.prefix,
            separator=config.separator,
            suffix=config.suffix,
            padding_width=config.padding_width,
            include_period=config.include_period,
            reset_cadence=config.reset_cadence,
            start_value=config.start_value,
            increment_by=config.increment_by,
            current_value=_initial_counter(config.start_value, config.increment_by),
            last_reset_period=initial_period,
            is_deletable=config.is_deletable,
            is_active=True,
            created_by=config.created_by,
            last_changed_by=config.created_by,
        )
        try:
            # Roll back only the failed insert, not the caller's transaction.
            with self.db.begin_nested():
                self.db.add(row)
                self.db.flush()
        except IntegrityError as exc:
            raise DuplicateConfig(
                f"Sequence type {config.code} already exists",
                document_type_code=config.code,
            ) from exc
        self.db.refresh(row)
        return self._to_data(row)

    def update(self, config_id, changes, *, tenant_id, changed_by, period_markers):
        row = self._row_by_id(config_id, tenant_id=tenant_id, for_update=True)
        patch = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        new_cadence = patch.get("reset_cadence")
        if new_cadence is not None and new_cadence != row.reset_cadence:
            # Keep counting in the current period of the new cadence.
            row.last_reset_period = period_markers[new_cadence]
        for key, value in patch.items():
            setattr(row, key, value)
        row.last_changed_by = changed_by
        self.db.flush()
        self.db.refresh(row)
        return self._to_data(row)

    def delete(self, config_id, *, tenant_id, changed_by):
        row = self._row_by_id(config_id, tenant_id=tenant_id, for_update=True)
        if row.is_deletable is False:
            raise SequenceNotDeletable(
                f"System sequence {row.code} cannot be deleted",
                config_id=config_id,
            )
        row.is_active = False
        row.last_changed_by = changed_by
        self.db.flush()

    @staticmethod
    def _marker_expr(period_markers: dict[str, int]):
        return case(period_markers, value=SequenceConfig.reset_cadence, else_=0)

    def _key_update(self, tenant_id: str, code: str, is_live: bool):
        return (
            update(SequenceConfig)
            .where(SequenceConfig.tenant_id == tenant_id)
            .where(SequenceConfig.code == code)
            .where(SequenceConfig.is_live.is_(bool(is_live)))
            .where(SequenceConfig.is_active.is_(True))
            .returning(*SequenceConfig.__table__.c)
            .execution_options(synchronize_session=False)
        )

    def _execute_counter_update(self, stmt) -> SequenceConfigData | None:
        try:
            row = self.db.execute(stmt).mappings().first()
        except OperationalError as exc:
            self.db.rollback()
            raise ConcurrencyConflict(
                "Sequence counter is busy, retry the request.",
            ) from exc
        return self._to_data(row) if row is not None else None

    def increment_and_fetch(self, tenant_id, code, is_live, *, period_markers):
        marker = self._marker_expr(period_markers)
        rolled_over = func.coalesce(SequenceConfig.last_reset_period, -1) != marker
        stmt = self._key_update(tenant_id, code, is_live).values(
            current_value=case(
                (rolled_over, SequenceConfig.start_value),
                else_=SequenceConfig.current_value + SequenceConfig.increment_by,
            ),
            last_reset_period=marker,
        )
        return self._execute_counter_update(stmt)

    def reset_counter(
        self,
        tenant_id,
        code,
        is_live,
        *,
        period_markers,
        new_start_value=None,
        changed_by="system@local",
    ):
        locked = self.db.execute(
            self._key_query(tenant_id, code, is_live)
            .where(SequenceConfig.is_active.is_(True))
            .with_for_update()
        ).scalar_one_or_none()
        if locked is None:
            raise ConfigNotFound(
                f"Sequence {code} is not configured for this tenant. Seed sequences first.",
                document_type_code=code,
            )
        old_value = int(locked.current_value)

        base = SequenceConfig.start_value if new_start_value is None else int(new_start_value)
        stmt = self._key_update(tenant_id, code, is_live).values(
            current_value=base - SequenceConfig.increment_by,
            last_reset_period=self._marker_expr(period_markers),
            last_changed_by=changed_by,
        )
        row = self._execute_counter_update(stmt)
        if row is None:
            raise ConfigNotFound(
                f"Sequence {code} is not configured for this tenant.",
                document_type_code=code,
            )
        return ResetOutcome(old_value=old_value, config=row)

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()


class InMemorySequenceConfigStore(SequenceConfigStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[int, SequenceConfigData] = {}
        self._next_id = 1

    @staticmethod
    def _now() -> datetime:
        return datetime.utcnow()

    def _key_row(self, tenant_id: str, code: str, is_live: bool) -> SequenceConfigData | None:
        for row in self._rows.values():
            if row.tenant_id == tenant_id and row.code == code and row.is_live == bool(is_live):
                return row
        return None

    def _row_by_id(self, config_id: int, *, tenant_id: str) -> SequenceConfigData:
        row = self._rows.get(int(config_id))
        if row is None or not row.is_active:
            raise ConfigNotFound("Configuration not found.", config_id=config_id)
        _check_tenant(row.tenant_id, tenant_id, config_id)
        return row

    def find(self, tenant_id, code, is_live, *, include_inactive=False):
        with self._lock:
            row = self._key_row(tenant_id, code, is_live)
        if row is None or (not include_inactive and not row.is_active):
            return None
        return row

    def get_by_id(self, config_id, *, tenant_id):
        with self._lock:
            return self._row_by_id(config_id, tenant_id=tenant_id)

    def list(self, tenant_id, is_live):
        with self._lock:
            rows = [
                row
                for row in self._rows.values()
                if row.tenant_id == tenant_id and row.is_live == bool(is_live) and row.is_active
            ]
        return sorted(rows, key=lambda r: r.id)

    def create(self, config, *, initial_period):
        now = self._now()
        with self._lock:
            existing = self._key_row(config.tenant_id, config.code, config.is_live)
            if existing is not None and existing.is_active:
                raise DuplicateConfig(
                    f"Sequence type {config.code} already exists",
                    document_type_code=config.code,
                )
            if existing is not None:
                revive_period = existing.last_reset_period
                if config.reset_cadence != existing.reset_cadence:
                    revive_period = initial_period
                revived = replace(
                    existing,
                    last_reset_period=revive_period,
                    **{name: getattr(config, name) for name in UPDATABLE_FIELDS},
                    is_deletable=config.is_deletable,
                    is_active=True,
                    last_changed_by=config.created_by,
                    updated_at=now,
                )
                self._rows[existing.id] = revived
                return revived

            row = SequenceConfigData(
                id=self._next_id,
                tenant_id=config.tenant_id,
                code=config.code,
                is_live=bool(config.is_live),
                name=config.name,
                description=config.description,
                prefix=config.prefix,
                separator=config.separator,
                suffix=config.suffix,
                padding_width=config.padding_width,
                include_period=config.include_period,
                reset_cadence=config.reset_cadence,
                start_value=config.start_value,
                increment_by=config.increment_by,
                current_value=_initial_counter(config.start_value, config.increment_by),
                last_reset_period=initial_period,
                is_deletable=config.is_deletable,
                created_by=config.created_by,
                last_changed_by=config.created_by,
                created_at=now,
                updated_at=now,
            )
            self._rows[row.id] = row
            self._next_id += 1
            return row

    def update(self, config_id, changes, *, tenant_id, changed_by, period_markers):
        with self._lock:
            row = self._row_by_id(config_id, tenant_id=tenant_id)
            patch = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
            new_cadence = patch.get("reset_cadence")
            if new_cadence is not None and new_cadence != row.reset_cadence:
                patch["last_reset_period"] = period_markers[new_cadence]
            updated = replace(row, **patch, last_changed_by=changed_by, updated_at=self._now())
            self._rows[row.id] = updated
            return updated

    def delete(self, config_id, *, tenant_id, changed_by):
        with self._lock:
            row = self._row_by_id(config_id, tenant_id=tenant_id)
            if row.is_deletable is False:
                raise SequenceNotDeletable(
                    f"System sequence {row.code} cannot be deleted",
                    config_id=config_id,
                )
            self._rows[row.id] = replace(
                row, is_active=False, last_changed_by=changed_by, updated_at=self._now()
            )

    def increment_and_fetch(self, tenant_id, code, is_live, *, period_markers):
        with self._lock:
            row = self._key_row(tenant_id, code, is_live)
            if row is None or not row.is_active:
                return None
            marker = period_markers.get(row.reset_cadence, 0)
            if row.last_reset_period != marker:
                value = row.start_value
            else:
                value = row.current_value + row.increment_by
            updated = replace(
                row, current_value=value, last_reset_period=marker, updated_at=self._now()
            )
            self._rows[row.id] = updated
            return updated

    def reset_counter(
        self,
        tenant_id,
        code,
        is_live,
        *,
        period_markers,
        new_start_value=None,
        changed_by="system@local",
    ):
        with self._lock:
            row = self._key_row(tenant_id, code, is_live)
            if row is None or not row.is_active:
                raise ConfigNotFound(
                    f"Sequence {code} is not configured for this tenant. Seed sequences first.",
                    document_type_code=code,
                )
            base = row.start_value if new_start_value is None else int(new_start_value)
            updated = replace(
                row,
                current_value=base - row.increment_by,
                last_reset_period=period_markers.get(row.reset_cadence, 0),
                last_changed_by=changed_by,
                updated_at=self._now(),
            )
            self._rows[row.id] = updated
            return ResetOutcome(old_value=row.current_value, config=updated)
